"""Ownership transfer enums and the transfer state table."""

from enum import Enum


class TransferStatus(str, Enum):
    """Lifecycle of an ownership transfer. Only PENDING is non-terminal."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    EXPIRED = "expired"

    @property
    def is_terminal(self) -> bool:
        return not TRANSFER_TRANSITIONS[self]


class TransferAction(str, Enum):
    """Actions recorded in the transfer-scoped audit log."""

    INITIATED = "initiated"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


TRANSFER_TRANSITIONS: dict[TransferStatus, frozenset[TransferStatus]] = {
    TransferStatus.PENDING: frozenset(
        {
            TransferStatus.ACCEPTED,
            TransferStatus.REJECTED,
            TransferStatus.CANCELLED,
            TransferStatus.EXPIRED,
        }
    ),
    TransferStatus.ACCEPTED: frozenset(),
    TransferStatus.REJECTED: frozenset(),
    TransferStatus.CANCELLED: frozenset(),
    TransferStatus.EXPIRED: frozenset(),
}

# Verb used in "Transfer cannot be <verb>" messages
TRANSITION_VERBS: dict[TransferStatus, str] = {
    TransferStatus.ACCEPTED: "accepted",
    TransferStatus.REJECTED: "rejected",
    TransferStatus.CANCELLED: "cancelled",
    TransferStatus.EXPIRED: "expired",
}

_missing = set(TransferStatus) - set(TRANSFER_TRANSITIONS)
if _missing:
    raise RuntimeError(f"Transfer statuses without transitions: {sorted(s.value for s in _missing)}")
_targets = set().union(*TRANSFER_TRANSITIONS.values())
if _targets - set(TRANSITION_VERBS):
    raise RuntimeError("Every transition target needs a verb")
