import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional

from lockmint.models import LockEvent, ValidationResult

# Stellar account ids: 'G' followed by 55 base32 characters.
STELLAR_ADDRESS_PATTERN = re.compile(r'^G[A-Z2-7]{55}$')

REJECT_MISSING_FIELD = "missing or malformed field: {}"
REJECT_AMOUNT_RANGE = "amount out of range"
REJECT_NOT_WHITELISTED = "token not whitelisted"
REJECT_ADDRESS_FORMAT = "invalid address format"


def is_valid_destination_address(address: Any) -> bool:
    return isinstance(address, str) and bool(STELLAR_ADDRESS_PATTERN.match(address))


def _as_non_negative_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value >= 0 else None
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


def _non_empty_str(value: Any) -> bool:
    return isinstance(value, str) and value.strip() != ''


class EventValidator:
    """
    Checks raw lock events before they may be minted.

    Checks run in a fixed order and stop at the first failure: field shape,
    amount bounds (inclusive), token whitelist, destination address grammar.
    A rejection is final for that event.
    """
    def __init__(self, min_amount: int, max_amount: int,
                 enable_whitelist: bool = False, whitelisted_tokens: Iterable[str] = ()):
        if min_amount > max_amount:
            raise ValueError(f"min_amount ({min_amount}) exceeds max_amount ({max_amount})")
        self.min_amount = min_amount
        self.max_amount = max_amount
        self.enable_whitelist = enable_whitelist
        self.whitelisted_tokens = {token.lower() for token in whitelisted_tokens}

    def validate(self, raw: Dict[str, Any], detected_at: Optional[datetime] = None) -> ValidationResult:
        """
        Validates a raw lock event.

        Args:
            raw (Dict[str, Any]): A raw event as returned by ChainReader.get_lock_events.
            detected_at (Optional[datetime]): Detection time; defaults to now (UTC).

        Returns:
            ValidationResult: accepted with a LockEvent, or rejected with a reason.
        """
        lock_id = _as_non_negative_int(raw.get('lock_id'))
        if lock_id is None:
            return ValidationResult.reject(REJECT_MISSING_FIELD.format('lock_id'))
        amount = _as_non_negative_int(raw.get('amount'))
        if amount is None:
            return ValidationResult.reject(REJECT_MISSING_FIELD.format('amount'))
        for name in ('user', 'token', 'destination_address', 'tx_hash'):
            if not _non_empty_str(raw.get(name)):
                return ValidationResult.reject(REJECT_MISSING_FIELD.format(name))
        block_number = _as_non_negative_int(raw.get('block_number'))
        if block_number is None:
            return ValidationResult.reject(REJECT_MISSING_FIELD.format('block_number'))

        if amount < self.min_amount or amount > self.max_amount:
            return ValidationResult.reject(REJECT_AMOUNT_RANGE)

        if self.enable_whitelist and raw['token'].lower() not in self.whitelisted_tokens:
            return ValidationResult.reject(REJECT_NOT_WHITELISTED)

        if not is_valid_destination_address(raw['destination_address']):
            return ValidationResult.reject(REJECT_ADDRESS_FORMAT)

        event = LockEvent(
            lock_id=lock_id,
            source_user=raw['user'],
            token=raw['token'],
            amount=amount,
            destination_address=raw['destination_address'],
            destination_symbol=raw.get('destination_symbol') or '',
            source_tx_hash=raw['tx_hash'],
            source_block=block_number,
            log_index=_as_non_negative_int(raw.get('log_index')) or 0,
            detected_at=detected_at or datetime.now(timezone.utc),
        )
        logging.debug(f"Lock {lock_id} from tx {event.source_tx_hash} passed validation.")
        return ValidationResult.accept(event)
