import json
import logging
import os
import threading
from datetime import datetime, timezone
from typing import Callable, Optional, Union

from lockmint.chain_reader import ChainReader
from lockmint.errors import TRANSIENT_ERRORS
from lockmint.models import LockEvent
from lockmint.validator import EventValidator


class LockWatcher:
    """
    Scans the source blockchain for lock events within confirmed block ranges.
    It owns the block cursor (the last fully processed block) and only advances
    it after a whole batch has been fetched and handed off. Accepted events are
    published through a callback; the watcher never looks at what happens to
    them afterwards.
    """
    def __init__(self, reader: ChainReader, validator: EventValidator,
                 publish: Callable[[LockEvent], None],
                 confirmations: int = 3, max_batch_size: int = 10, poll_interval: float = 5.0,
                 start_block: Union[str, int] = 'latest', state_file: Optional[str] = None):
        if max_batch_size < 1:
            raise ValueError("max_batch_size must be at least 1")
        self.reader = reader
        self.validator = validator
        self.publish = publish
        self.confirmations = confirmations
        self.max_batch_size = max_batch_size
        self.poll_interval = poll_interval
        self.start_block = start_block
        self.state_file = state_file

        self.last_processed_block: Optional[int] = None
        self.events_accepted = 0
        self.events_rejected = 0
        self.fetch_errors = 0

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive() and not self._stop_event.is_set()

    def initialize(self):
        """
        Positions the cursor. A saved state file wins over the configured start
        block so that a restart resumes where the previous run stopped.
        """
        saved = self._load_last_processed_block()
        if saved is not None:
            self.last_processed_block = saved
            logging.info(f"Resuming scan after block {saved} (loaded from state file).")
        elif self.start_block == 'latest':
            self.last_processed_block = self.reader.current_height()
            logging.info(f"Starting scan from chain head, block {self.last_processed_block}.")
        else:
            self.last_processed_block = int(self.start_block)
            logging.info(f"Starting scan after configured block {self.last_processed_block}.")

    def _load_last_processed_block(self) -> Optional[int]:
        """Loads the cursor from the state file, or None when there is no usable state."""
        if not self.state_file:
            return None
        try:
            with open(self.state_file, 'r') as f:
                state = json.load(f)
            return int(state['last_processed_block'])
        except FileNotFoundError:
            return None
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            logging.warning(f"State file {self.state_file} is invalid ({e}). Ignoring it.")
            return None

    def _save_last_processed_block(self, block_number: int):
        """Saves the cursor so that the watcher can resume from it after a restart."""
        if not self.state_file:
            return
        state_dir = os.path.dirname(self.state_file)
        if state_dir:
            os.makedirs(state_dir, exist_ok=True)
        tmp_path = f"{self.state_file}.tmp"
        with open(tmp_path, 'w') as f:
            json.dump({'last_processed_block': block_number}, f)
        os.replace(tmp_path, self.state_file)

    def _advance_cursor(self, to_block: int):
        if to_block < self.last_processed_block:
            raise RuntimeError(f"Refusing to move cursor backwards from {self.last_processed_block} to {to_block}")
        self.last_processed_block = to_block
        try:
            self._save_last_processed_block(to_block)
        except OSError as e:
            logging.error(f"Could not save state to {self.state_file}: {e}")

    def tick(self) -> int:
        """
        Runs one poll cycle.

        Returns:
            int: The number of events published during this tick.
        """
        if self.last_processed_block is None:
            self.initialize()

        try:
            current_height = self.reader.current_height()
        except Exception as e:
            self._record_fetch_error("reading block height", e)
            return 0

        safe_height = current_height - self.confirmations
        from_block = self.last_processed_block + 1
        if safe_height < from_block:
            logging.debug(
                f"No confirmed blocks to scan. Head: {current_height}, last processed: {self.last_processed_block}"
            )
            return 0

        to_block = min(safe_height, self.last_processed_block + self.max_batch_size)
        logging.info(f"Scanning blocks {from_block}-{to_block} (head {current_height}, confirmations {self.confirmations})")

        try:
            raw_events = self.reader.get_lock_events(from_block, to_block)
        except Exception as e:
            self._record_fetch_error(f"fetching blocks {from_block}-{to_block}", e)
            return 0

        published = 0
        for raw in raw_events:
            result = self.validator.validate(raw, detected_at=datetime.now(timezone.utc))
            if not result.accepted:
                self.events_rejected += 1
                logging.warning(
                    f"Rejected lock {raw.get('lock_id')} from tx {raw.get('tx_hash')}: {result.reason}"
                )
                continue
            event = result.event
            logging.info(
                f"Accepted lock {event.lock_id}: {event.amount} of {event.token} "
                f"for {event.destination_address} (tx {event.source_tx_hash})"
            )
            self.publish(event)
            self.events_accepted += 1
            published += 1

        self._advance_cursor(to_block)
        return published

    def _record_fetch_error(self, action: str, error: Exception):
        self.fetch_errors += 1
        if isinstance(error, TRANSIENT_ERRORS):
            logging.warning(f"RPC error while {action}: {error}. Will retry on the next tick.")
        else:
            logging.error(f"Unexpected error while {action}: {error}. Will retry on the next tick.", exc_info=True)

    def start(self):
        if self.is_running:
            logging.warning("Lock watcher is already running")
            return
        if self.last_processed_block is None:
            self.initialize()
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name='lock-watcher', daemon=True)
        self._thread.start()
        logging.info("Lock watcher started.")

    def stop(self, timeout: Optional[float] = None):
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
        logging.info(f"Lock watcher stopped at block {self.last_processed_block}.")

    def _run(self):
        while not self._stop_event.is_set():
            try:
                self.tick()
            except Exception as e:
                logging.error(f"An unexpected error occurred in the watcher loop: {e}", exc_info=True)
            self._stop_event.wait(self.poll_interval)
