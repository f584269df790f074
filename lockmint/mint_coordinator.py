import heapq
import itertools
import logging
import queue
import threading
import time
from collections import OrderedDict, deque
from typing import Callable, Deque, Dict, List, Optional, Tuple

from lockmint.errors import (
    TRANSIENT_ERRORS,
    AlreadyMintedError,
    ConfirmationTimeoutError,
    MintSubmissionError,
)
from lockmint.models import LockEvent, MintOperation, MintState, TxStatus
from lockmint.utils import convert_amount


class MintCoordinator:
    """
    Turns accepted lock events into confirmed mints on the destination chain.

    Lock events arrive through ``publish`` on an internal hand-off queue. Only
    the coordinator thread reads that queue, so the pending set, the work queue
    and the retry schedule are never shared with the producer.

    Submissions are strictly serialized: one operation at a time goes through
    submitting -> awaiting_confirmation -> a terminal or retry state before the
    next one starts, because every destination transaction consumes the
    signer's next sequence number.

    Settled lock ids are remembered so a late re-delivery is discarded. Only
    the most recent ``settled_capacity`` of them are kept; the watcher's cursor
    never moves backwards, so re-deliveries within one process are recent.
    """
    def __init__(self, client, source_decimals: int = 18, destination_decimals: int = 7,
                 retry_attempts: int = 3, retry_delay: float = 10.0,
                 confirmation_timeout: float = 300.0, confirmation_poll_interval: float = 2.0,
                 idle_interval: float = 1.0, settled_capacity: int = 10_000,
                 clock: Callable[[], float] = time.monotonic,
                 sleep: Callable[[float], None] = time.sleep):
        if retry_attempts < 1:
            raise ValueError("retry_attempts must be at least 1")
        if settled_capacity < 1:
            raise ValueError("settled_capacity must be at least 1")
        self.client = client
        self.source_decimals = source_decimals
        self.destination_decimals = destination_decimals
        self.retry_attempts = retry_attempts
        self.retry_delay = retry_delay
        self.confirmation_timeout = confirmation_timeout
        self.confirmation_poll_interval = confirmation_poll_interval
        self.idle_interval = idle_interval
        self._clock = clock
        self._sleep = sleep

        self._inbox: "queue.Queue[LockEvent]" = queue.Queue()
        self._work: Deque[MintOperation] = deque()
        self._retries: List[Tuple[float, int, MintOperation]] = []
        self._retry_seq = itertools.count()
        self.pending: Dict[int, MintOperation] = {}
        self.settled_capacity = settled_capacity
        self._settled: "OrderedDict[int, None]" = OrderedDict()
        self.in_flight: Optional[MintOperation] = None

        self.total_queued = 0
        self.total_confirmed = 0
        self.total_failed = 0
        self.total_duplicates = 0
        self.failed_attempts = 0

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    # -- hand-off ---------------------------------------------------------

    def publish(self, event: LockEvent):
        """Hands an accepted lock event to the coordinator. Safe to call from any thread."""
        self._inbox.put(event)

    def _drain_inbox(self):
        while True:
            try:
                event = self._inbox.get_nowait()
            except queue.Empty:
                return
            self._accept(event)

    def _accept(self, event: LockEvent):
        if event.lock_id in self.pending or event.lock_id in self._settled:
            self.total_duplicates += 1
            logging.debug(f"Discarding duplicate delivery of lock {event.lock_id} (tx {event.source_tx_hash})")
            return
        operation = MintOperation(event=event)
        operation.transition(MintState.QUEUED)
        self.pending[event.lock_id] = operation
        self._work.append(operation)
        self.total_queued += 1
        logging.info(
            f"Queued mint for lock {event.lock_id}: {event.amount} base units to {event.destination_address}"
        )

    # -- status -----------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive() and not self._stop_event.is_set()

    @property
    def queue_length(self) -> int:
        return len(self._work) + len(self._retries) + self._inbox.qsize()

    @property
    def pending_mints(self) -> int:
        return len(self.pending)

    def get_queue_status(self) -> dict:
        return {
            'queueLength': self.queue_length,
            'pendingMints': self.pending_mints,
            'isRunning': self.is_running,
            'confirmed': self.total_confirmed,
            'failed': self.total_failed,
        }

    # -- processing -------------------------------------------------------

    def _promote_due_retries(self):
        now = self._clock()
        while self._retries and self._retries[0][0] <= now:
            _, _, operation = heapq.heappop(self._retries)
            self._work.append(operation)

    def run_once(self) -> bool:
        """
        Runs one iteration of the processing loop.

        Returns:
            bool: True if an operation was processed, False if there was nothing due.
        """
        self._drain_inbox()
        self._promote_due_retries()
        if not self._work:
            return False
        operation = self._work.popleft()
        self._process(operation)
        return True

    def _process(self, operation: MintOperation):
        self.in_flight = operation
        try:
            operation.attempts += 1
            operation.next_attempt_at = None
            operation.transition(MintState.SUBMITTING)
            if operation.converted_amount is None:
                operation.converted_amount = convert_amount(
                    operation.event.amount, self.source_decimals, self.destination_decimals
                )
            logging.info(
                f"Minting {operation.converted_amount} for lock {operation.lock_id} "
                f"(attempt {operation.attempts}/{self.retry_attempts})"
            )

            try:
                operation.destination_tx_hash = self.client.submit_mint(operation.event, operation.converted_amount)
                operation.transition(MintState.AWAITING_CONFIRMATION)
                status = self._await_confirmation(operation.destination_tx_hash)
            except AlreadyMintedError as e:
                logging.warning(f"Destination reports lock {operation.lock_id} as already minted: {e}")
                self._confirm(operation)
                return
            except (MintSubmissionError, *TRANSIENT_ERRORS) as e:
                self._fail_attempt(operation, e)
                return
            except Exception as e:
                logging.error(f"Unexpected error while minting lock {operation.lock_id}: {e}", exc_info=True)
                self._fail_attempt(operation, e)
                return

            if status == TxStatus.SUCCESS:
                self._confirm(operation)
            else:
                self._fail_attempt(
                    operation, MintSubmissionError(f"Transaction {operation.destination_tx_hash} failed on-chain")
                )
        finally:
            self.in_flight = None

    def _await_confirmation(self, tx_hash: str) -> TxStatus:
        """
        Polls the destination chain until the transaction is terminal.

        Raises:
            ConfirmationTimeoutError: The bounded wait elapsed first.
        """
        started = self._clock()
        while True:
            try:
                status = self.client.get_transaction_status(tx_hash)
            except TRANSIENT_ERRORS as e:
                logging.warning(f"Status poll for {tx_hash} failed: {e}. Polling again.")
                status = TxStatus.PENDING
            if status in (TxStatus.SUCCESS, TxStatus.FAILED):
                return status
            waited = self._clock() - started
            if waited >= self.confirmation_timeout:
                raise ConfirmationTimeoutError(tx_hash, waited)
            self._sleep(self.confirmation_poll_interval)

    def _confirm(self, operation: MintOperation):
        operation.transition(MintState.CONFIRMED)
        self._settle(operation)
        self.total_confirmed += 1
        logging.info(
            f"Mint confirmed for lock {operation.lock_id}: {operation.converted_amount} to "
            f"{operation.event.destination_address} (tx {operation.destination_tx_hash}, "
            f"attempts {operation.attempts})"
        )

    def _fail_attempt(self, operation: MintOperation, error: Exception):
        self.failed_attempts += 1
        operation.last_error = str(error)
        if operation.attempts < self.retry_attempts:
            operation.next_attempt_at = self._clock() + self.retry_delay
            operation.transition(MintState.RETRY_SCHEDULED)
            heapq.heappush(self._retries, (operation.next_attempt_at, next(self._retry_seq), operation))
            logging.warning(
                f"Mint attempt {operation.attempts} for lock {operation.lock_id} failed: {error}. "
                f"Retrying in {self.retry_delay}s."
            )
            return

        operation.transition(MintState.FAILED_PERMANENT)
        self._settle(operation)
        self.total_failed += 1
        # No refund path exists; an operator has to resolve this lock by hand.
        logging.critical(
            f"ALERT: mint for lock {operation.lock_id} failed permanently after {operation.attempts} attempts. "
            f"Source tx {operation.event.source_tx_hash}, amount {operation.event.amount}, "
            f"recipient {operation.event.destination_address}, last error: {error}. Manual intervention required."
        )

    def _settle(self, operation: MintOperation):
        self.pending.pop(operation.lock_id, None)
        self._settled[operation.lock_id] = None
        while len(self._settled) > self.settled_capacity:
            self._settled.popitem(last=False)

    # -- lifecycle --------------------------------------------------------

    def start(self):
        if self.is_running:
            logging.warning("Mint coordinator is already running")
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name='mint-coordinator', daemon=True)
        self._thread.start()
        logging.info("Mint coordinator started.")

    def stop(self, timeout: Optional[float] = None):
        """Stops the loop after the in-flight operation, if any, has finished."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            if self._thread.is_alive():
                logging.warning("Mint coordinator is still finishing an in-flight mint.")
                return
        self._drain_inbox()
        if self.pending:
            logging.warning(f"Mint coordinator stopped with {len(self.pending)} unfinished mint(s): "
                            f"{sorted(self.pending)}")
        else:
            logging.info("Mint coordinator stopped.")

    def _run(self):
        while not self._stop_event.is_set():
            try:
                processed = self.run_once()
            except Exception as e:
                logging.error(f"Error in mint queue processing: {e}", exc_info=True)
                processed = False
            if not processed:
                self._stop_event.wait(self.idle_interval)
