"""Chain adapter contract.

Each adapter serves one chain family. Wallets in a batch are fetched
concurrently and independently: a failure for one wallet is logged and
contributes an empty result, never aborting the rest of the batch.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, ClassVar

from nexus_portfolio.portfolio.chains import ChainFamily, chain_family
from nexus_portfolio.portfolio.models import DeFiPosition, NFT, TokenBalance, Transaction, Wallet

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENT_WALLETS = 8


@dataclass(frozen=True)
class AdapterResult:
    """Partial, price-less records produced by a chain adapter."""

    tokens: tuple[TokenBalance, ...] = ()
    nfts: tuple[NFT, ...] = ()
    transactions: tuple[Transaction, ...] = ()
    defi_positions: tuple[DeFiPosition, ...] = ()

    @classmethod
    def empty(cls) -> AdapterResult:
        return cls()

    @classmethod
    def combine(cls, results: Iterable[AdapterResult]) -> AdapterResult:
        """Concatenate several results; no merging or deduplication."""
        tokens: list[TokenBalance] = []
        nfts: list[NFT] = []
        transactions: list[Transaction] = []
        defi_positions: list[DeFiPosition] = []
        for result in results:
            tokens.extend(result.tokens)
            nfts.extend(result.nfts)
            transactions.extend(result.transactions)
            defi_positions.extend(result.defi_positions)
        return cls(
            tokens=tuple(tokens),
            nfts=tuple(nfts),
            transactions=tuple(transactions),
            defi_positions=tuple(defi_positions),
        )

    @property
    def is_empty(self) -> bool:
        return not (self.tokens or self.nfts or self.transactions or self.defi_positions)


class ChainAdapter(ABC):
    """Fetches holdings and history for wallets of one chain family.

    Subclasses declare their provider capabilities so that gaps (e.g. no
    DeFi data on Solana) are explicit rather than inferred from empty lists.
    """

    family: ClassVar[ChainFamily]
    name: ClassVar[str]
    supports_nfts: ClassVar[bool] = False
    supports_defi: ClassVar[bool] = False
    max_concurrent_wallets: ClassVar[int] = DEFAULT_MAX_CONCURRENT_WALLETS

    def accepts(self, wallet: Wallet) -> bool:
        return chain_family(wallet.blockchain) is self.family

    async def fetch(
        self,
        wallets: Sequence[Wallet],
        *,
        wallet_timeout: float | None = None,
    ) -> AdapterResult:
        """Fetch all wallets concurrently and combine their results.

        Wallets of other chain families are ignored. At most
        ``max_concurrent_wallets`` wallets are in flight at once, and
        ``wallet_timeout`` bounds each wallet separately, counted from the
        moment its fetch starts. A wallet that fails or times out
        contributes an empty result; the others are kept.
        """
        batch = [w for w in wallets if self.accepts(w)]
        if not batch:
            return AdapterResult.empty()
        slots = asyncio.Semaphore(self.max_concurrent_wallets)
        results = await asyncio.gather(
            *(self._fetch_wallet_safe(w, slots, wallet_timeout) for w in batch)
        )
        return AdapterResult.combine(results)

    async def _fetch_wallet_safe(
        self,
        wallet: Wallet,
        slots: asyncio.Semaphore,
        timeout: float | None,
    ) -> AdapterResult:
        async with slots:
            try:
                return await asyncio.wait_for(self.fetch_wallet(wallet), timeout=timeout)
            except TimeoutError:
                logger.warning(
                    "%s adapter timed out after %.1fs for %s wallet %s",
                    self.name,
                    timeout,
                    wallet.blockchain.value,
                    wallet.address,
                )
            except Exception as e:
                logger.warning(
                    "%s adapter failed for %s wallet %s: %s",
                    self.name,
                    wallet.blockchain.value,
                    wallet.address,
                    e,
                )
        return AdapterResult.empty()

    async def _gather_parts(
        self,
        wallet: Wallet,
        parts: Mapping[str, Awaitable[Any]],
    ) -> dict[str, Any]:
        """Run a wallet's sub-requests concurrently.

        A failed part is logged and left out of the returned mapping, so one
        broken endpoint does not blank the whole wallet. When every part
        fails the first error is raised.
        """
        names = list(parts)
        outcomes = await asyncio.gather(*parts.values(), return_exceptions=True)
        settled: dict[str, Any] = {}
        errors: list[Exception] = []
        for name, outcome in zip(names, outcomes, strict=True):
            if isinstance(outcome, Exception):
                errors.append(outcome)
                logger.warning(
                    "%s %s request failed for %s: %s", self.name, name, wallet.address, outcome
                )
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                settled[name] = outcome
        if errors and not settled:
            raise errors[0]
        return settled

    @abstractmethod
    async def fetch_wallet(self, wallet: Wallet) -> AdapterResult:
        """Fetch one wallet. May raise; the caller isolates failures."""

    async def aclose(self) -> None:  # noqa: B027
        """Release provider connections."""
