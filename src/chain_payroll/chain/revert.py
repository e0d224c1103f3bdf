"""Classify chain-layer failures into a small, stable set of kinds.

Callers branch on :class:`FailureKind` instead of grepping exception text
for things like ``"Already claimed"``. The text matching happens once, here,
against the web3 exception that carried the revert reason.
"""

from __future__ import annotations

from enum import Enum

from web3.exceptions import ContractLogicError, TimeExhausted, Web3Exception


class FailureKind(str, Enum):
    REVERTED = "reverted"
    ALREADY_CLAIMED = "already_claimed"
    NOT_CLAIMABLE = "not_claimable"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    NONCE_CONFLICT = "nonce_conflict"
    USER_REJECTED = "user_rejected"
    TIMEOUT = "timeout"
    TRANSPORT = "transport"
    UNKNOWN = "unknown"


# (needle, kind) checked in order against the lower-cased message.
_REASON_PATTERNS: list[tuple[str, FailureKind]] = [
    ("already claimed", FailureKind.ALREADY_CLAIMED),
    ("not claimable", FailureKind.NOT_CLAIMABLE),
    ("insufficient funds", FailureKind.INSUFFICIENT_FUNDS),
    ("nonce too low", FailureKind.NONCE_CONFLICT),
    ("replacement transaction underpriced", FailureKind.NONCE_CONFLICT),
    ("already known", FailureKind.NONCE_CONFLICT),
    ("user rejected", FailureKind.USER_REJECTED),
    ("user denied", FailureKind.USER_REJECTED),
]


def _match_reason(message: str) -> FailureKind | None:
    lowered = message.lower()
    for needle, kind in _REASON_PATTERNS:
        if needle in lowered:
            return kind
    return None


def classify_failure(exc: BaseException) -> FailureKind:
    """Map an exception raised while talking to the chain to a FailureKind."""
    if isinstance(exc, TimeExhausted):
        return FailureKind.TIMEOUT
    if isinstance(exc, ContractLogicError):
        return _match_reason(str(exc)) or FailureKind.REVERTED
    if isinstance(exc, OSError):
        return FailureKind.TRANSPORT
    if isinstance(exc, (Web3Exception, ValueError)):
        # JSON-RPC errors ("insufficient funds for gas", "nonce too low")
        return _match_reason(str(exc)) or FailureKind.UNKNOWN
    return FailureKind.UNKNOWN

