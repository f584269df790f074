from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


class MintState(str, Enum):
    """Lifecycle states of a mint operation."""
    QUEUED = "queued"
    SUBMITTING = "submitting"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    CONFIRMED = "confirmed"
    RETRY_SCHEDULED = "retry_scheduled"
    FAILED_PERMANENT = "failed_permanent"


class TxStatus(str, Enum):
    """Status of a destination-chain transaction as reported by the RPC node."""
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    PENDING = "PENDING"
    NOT_FOUND = "NOT_FOUND"


@dataclass(frozen=True)
class LockEvent:
    """
    An accepted lock on the source chain.

    Amounts are kept in source-chain base units; conversion to destination
    precision happens once, inside the mint coordinator.
    """
    lock_id: int
    source_user: str
    token: str
    amount: int
    destination_address: str
    destination_symbol: str
    source_tx_hash: str
    source_block: int
    log_index: int
    detected_at: datetime


@dataclass
class MintOperation:
    """Mutable work item wrapping one accepted LockEvent."""
    event: LockEvent
    state: MintState = MintState.QUEUED
    attempts: int = 0
    converted_amount: Optional[int] = None
    destination_tx_hash: Optional[str] = None
    next_attempt_at: Optional[float] = None
    last_error: Optional[str] = None
    history: list = field(default_factory=list)

    @property
    def lock_id(self) -> int:
        return self.event.lock_id

    def transition(self, state: MintState):
        self.history.append(state)
        self.state = state


@dataclass(frozen=True)
class ValidationResult:
    accepted: bool
    event: Optional[LockEvent] = None
    reason: Optional[str] = None

    @classmethod
    def accept(cls, event: LockEvent) -> "ValidationResult":
        return cls(accepted=True, event=event)

    @classmethod
    def reject(cls, reason: str) -> "ValidationResult":
        return cls(accepted=False, reason=reason)
