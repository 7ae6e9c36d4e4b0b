"""Whale alert significance filter and per-user alert state.

The scanner runs the aggregator over every tracked whale, keeps
transactions at or above the user's minimum USD value and attributes each
one back to the whale that sent or received it.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, replace
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any

from nexus_portfolio.config import Settings, get_settings
from nexus_portfolio.whales.models import Alert, WhaleWallet

if TYPE_CHECKING:
    from redis.asyncio import Redis

    from nexus_portfolio.aggregator import PortfolioAggregator

logger = logging.getLogger(__name__)

DEFAULT_MIN_VALUE_USD = Decimal("50000")
READ_ALERTS_KEY_PREFIX = "nexus:alerts:read:"
ALERT_SETTINGS_KEY_PREFIX = "nexus:alerts:settings:"


@dataclass(frozen=True)
class UserAlertSettings:
    """Per-user alert preferences."""

    min_value: Decimal = DEFAULT_MIN_VALUE_USD

    @classmethod
    def from_dict(
        cls,
        data: dict[str, Any],
        *,
        default: Decimal = DEFAULT_MIN_VALUE_USD,
    ) -> UserAlertSettings:
        try:
            min_value = Decimal(str(data["minValue"]))
        except (KeyError, InvalidOperation):
            return cls(min_value=default)
        if not min_value.is_finite() or min_value < 0:
            return cls(min_value=default)
        return cls(min_value=min_value)

    def to_dict(self) -> dict[str, str]:
        return {"minValue": str(self.min_value)}


class AlertStateStore:
    """Redis-backed read flags and alert settings, keyed by user.

    Without Redis every alert is unread and settings fall back to the
    default threshold; state errors are logged and never raised.
    """

    def __init__(
        self,
        redis: Redis | None = None,
        *,
        default_min_value: Decimal = DEFAULT_MIN_VALUE_USD,
    ) -> None:
        self._redis = redis
        self._default_min_value = default_min_value

    @classmethod
    def from_settings(cls, settings: Settings, *, redis: Redis | None = None) -> AlertStateStore:
        """Build a store whose default threshold is ALERTS_MIN_VALUE_USD."""
        return cls(redis, default_min_value=settings.alerts.min_value_usd)

    @staticmethod
    def _read_key(user_id: str) -> str:
        return f"{READ_ALERTS_KEY_PREFIX}{user_id}"

    @staticmethod
    def _settings_key(user_id: str) -> str:
        return f"{ALERT_SETTINGS_KEY_PREFIX}{user_id}"

    async def read_ids(self, user_id: str) -> set[str]:
        if not self._redis:
            return set()
        try:
            members = await self._redis.smembers(self._read_key(user_id))
        except Exception as e:
            logger.warning("Failed to load read alerts for %s: %s", user_id, e)
            return set()
        return {m.decode() if isinstance(m, bytes) else str(m) for m in members}

    async def mark_read(self, user_id: str, alert_id: str) -> None:
        await self.mark_all_read(user_id, [alert_id])

    async def mark_all_read(self, user_id: str, alert_ids: Iterable[str]) -> None:
        ids = sorted(set(alert_ids))
        if not self._redis or not ids:
            return
        try:
            await self._redis.sadd(self._read_key(user_id), *ids)
        except Exception as e:
            logger.warning("Failed to persist read alerts for %s: %s", user_id, e)

    async def get_settings(self, user_id: str) -> UserAlertSettings:
        default = UserAlertSettings(min_value=self._default_min_value)
        if not self._redis:
            return default
        try:
            raw = await self._redis.get(self._settings_key(user_id))
        except Exception as e:
            logger.warning("Failed to load alert settings for %s: %s", user_id, e)
            return default
        if raw is None:
            return default
        try:
            payload = json.loads(raw if isinstance(raw, str) else raw.decode())
        except (ValueError, AttributeError):
            return default
        if not isinstance(payload, dict):
            return default
        return UserAlertSettings.from_dict(payload, default=self._default_min_value)

    async def update_settings(self, user_id: str, settings: UserAlertSettings) -> None:
        if not self._redis:
            return
        try:
            await self._redis.set(self._settings_key(user_id), json.dumps(settings.to_dict()))
        except Exception as e:
            logger.warning("Failed to save alert settings for %s: %s", user_id, e)


class AlertScanner:
    """Turns significant whale transactions into alerts.

    Example:
        ```python
        scanner = AlertScanner(aggregator, AlertStateStore.from_settings(settings, redis=redis))
        alerts = await scanner.scan(whales, user_id="user-1")
        unread = [a for a in alerts if not a.is_read]
        ```
    """

    def __init__(self, aggregator: PortfolioAggregator, state: AlertStateStore | None = None) -> None:
        self._aggregator = aggregator
        self._state = state or AlertStateStore.from_settings(get_settings())

    @property
    def state(self) -> AlertStateStore:
        return self._state

    async def scan(
        self,
        whales: Sequence[WhaleWallet],
        user_id: str,
        min_value_usd: Decimal | None = None,
    ) -> list[Alert]:
        """Build alerts for one user, newest first.

        Args:
            whales: Tracked whale wallets.
            user_id: Owner of the read flags and settings.
            min_value_usd: Threshold override; defaults to the user's
                stored setting.
        """
        if not whales:
            return []
        if min_value_usd is None:
            min_value_usd = (await self._state.get_settings(user_id)).min_value

        assets = await self._aggregator.aggregate(w.to_wallet() for w in whales)
        read_ids = await self._state.read_ids(user_id)

        alerts: dict[str, Alert] = {}
        for tx in assets.transactions:
            if tx.value_usd is None or tx.value_usd < min_value_usd:
                continue
            whale = next((w for w in whales if tx.involves(w.address)), None)
            if whale is None or tx.hash in alerts:
                continue
            alerts[tx.hash] = Alert(
                id=tx.hash,
                whale_id=whale.id,
                whale_name=whale.name,
                transaction=tx,
                timestamp=tx.timestamp,
                is_read=tx.hash in read_ids,
            )

        logger.info(
            "Alert scan for %s: %d whale(s), %d significant transaction(s)",
            user_id,
            len(whales),
            len(alerts),
        )
        return sorted(alerts.values(), key=lambda a: a.timestamp, reverse=True)

    async def mark_read(self, user_id: str, alert: Alert) -> Alert:
        await self._state.mark_read(user_id, alert.id)
        return replace(alert, is_read=True)

    async def mark_all_read(self, user_id: str, alerts: Iterable[Alert]) -> list[Alert]:
        alerts = list(alerts)
        await self._state.mark_all_read(user_id, (a.id for a in alerts))
        return [replace(a, is_read=True) for a in alerts]
