"""Shared normalization helpers for chain adapters.

Raw balances arrive as integer strings in the smallest unit (wei,
lamports, satoshis). A record whose amount or decimals cannot be parsed
is dropped rather than guessed: a wrong decimals value silently corrupts
every downstream USD figure.
"""

from __future__ import annotations

import contextlib
from collections import defaultdict
from collections.abc import Iterable
from dataclasses import replace
from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation

from nexus_portfolio.portfolio.models import Transaction, TransactionType

IPFS_SCHEME = "ipfs://"
IPFS_GATEWAY = "https://ipfs.io/ipfs/"

# Dependency-free SVG "No Image" tile.
PLACEHOLDER_IMAGE = (
    "data:image/svg+xml;base64,PHN2ZyB4bWxucz0iaHR0cDovL3d3dy53My5vcmcvMjAwMC9zdmciIHZpZXdCb3g9"
    "IjAgMCAxMDAgMTAwIj48cmVjdCB3aWR0aD0iMTAwIiBoZWlnaHQ9IjEwMCIgZmlsbD0iIzIzMjMyMyIvPjx0ZXh0IHg9"
    "IjUwJSIgeT0iNTAlIiBkb21pbmFudC1iYXNlbGluZT0ibWlkZGxlIiB0ZXh0LWFuY2hvcj0ibWlkZGxlIiBmaWxsPSIj"
    "NjY2IiBmb250LXNpemU9IjEwIj5ObyBJbWFnZTwvdGV4dD48L3N2Zz4="
)

MAX_DECIMALS = 36


def resolve_ipfs_url(url: object) -> str:
    """Rewrite ipfs:// URIs to the HTTP gateway; missing URLs become a placeholder."""
    if not isinstance(url, str) or not url.strip():
        return PLACEHOLDER_IMAGE
    url = url.strip()
    if url.startswith(IPFS_SCHEME):
        path = url[len(IPFS_SCHEME) :]
        if path.startswith("ipfs/"):
            path = path[len("ipfs/") :]
        if not path:
            return PLACEHOLDER_IMAGE
        return f"{IPFS_GATEWAY}{path}"
    return url


def has_image(url: object) -> bool:
    """True when a provider supplied something that resolves to a real image."""
    return resolve_ipfs_url(url) != PLACEHOLDER_IMAGE


def parse_decimals(value: object) -> int | None:
    """Parse a token decimals value; None when missing or invalid."""
    if value is None or isinstance(value, bool):
        return None
    try:
        decimals = int(str(value).strip())
    except ValueError:
        return None
    if decimals < 0 or decimals > MAX_DECIMALS:
        return None
    return decimals


def parse_decimal(value: object) -> Decimal | None:
    """Parse a finite decimal number (e.g. a provider-reported USD value)."""
    if value is None or isinstance(value, bool):
        return None
    try:
        result = Decimal(str(value).strip())
    except InvalidOperation:
        return None
    return result if result.is_finite() else None


def scale_amount(raw: object, decimals: object) -> Decimal | None:
    """Convert a smallest-unit integer balance into a token amount.

    Returns None when either input is unusable, or the balance is negative.
    """
    scale = parse_decimals(decimals)
    if scale is None:
        return None
    units = parse_decimal(raw)
    if units is None or units < 0 or units != units.to_integral_value():
        return None
    return units.scaleb(-scale)


def parse_timestamp(value: object) -> datetime | None:
    """Parse an ISO 8601 string or unix-seconds value into an aware UTC datetime."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        ts = float(value)
        if ts > 1e12:
            ts /= 1000.0
        with contextlib.suppress(OverflowError, OSError, ValueError):
            return datetime.fromtimestamp(ts, tz=UTC)
        return None
    if isinstance(value, str) and value.strip():
        with contextlib.suppress(ValueError):
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=UTC)
            return parsed.astimezone(UTC)
    return None


def transfer_direction(
    wallet_address: str,
    from_address: str,
    to_address: str,
    *,
    case_sensitive: bool = False,
) -> TransactionType | None:
    """Classify a transfer relative to the queried wallet.

    Returns None for transfers the wallet is not party to and for
    self-transfers.
    """
    wallet, sender, recipient = wallet_address, from_address, to_address
    if not case_sensitive:
        wallet, sender, recipient = wallet.lower(), sender.lower(), recipient.lower()
    if sender == recipient:
        return None
    if sender == wallet:
        return TransactionType.SEND
    if recipient == wallet:
        return TransactionType.RECEIVE
    return None


def infer_swaps(transactions: Iterable[Transaction]) -> list[Transaction]:
    """Relabel legs of a swap.

    A transaction hash that carries both an outgoing and an incoming leg in
    different tokens is a swap; every leg of it becomes type `swap`.
    """
    transactions = list(transactions)
    legs: dict[str, list[Transaction]] = defaultdict(list)
    for tx in transactions:
        legs[tx.hash].append(tx)

    swap_hashes = set()
    for tx_hash, group in legs.items():
        sent = {t.token_symbol.lower() for t in group if t.type is TransactionType.SEND}
        received = {t.token_symbol.lower() for t in group if t.type is TransactionType.RECEIVE}
        if sent and received and sent != received:
            swap_hashes.add(tx_hash)

    if not swap_hashes:
        return transactions
    return [
        replace(tx, type=TransactionType.SWAP) if tx.hash in swap_hashes else tx
        for tx in transactions
    ]
