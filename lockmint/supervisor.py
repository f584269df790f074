import logging
import threading
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from lockmint.chain_reader import BlockchainConnector, ChainReader
from lockmint.config import BridgeConfig
from lockmint.lock_watcher import LockWatcher
from lockmint.mint_coordinator import MintCoordinator
from lockmint.stellar_client import StellarMintClient
from lockmint.validator import EventValidator


class BridgeSupervisor:
    """
    The orchestrator that owns the lifecycle of the lock watcher and the mint
    coordinator, and runs the health and statistics timers. It keeps no bridge
    state of its own; every figure it reports comes from its children.
    """
    def __init__(self, watcher: LockWatcher, coordinator: MintCoordinator,
                 health_interval: float = 30.0, stats_interval: float = 300.0):
        self.watcher = watcher
        self.coordinator = coordinator
        self.health_interval = health_interval
        self.stats_interval = stats_interval
        self.start_time: Optional[datetime] = None
        self._timers_stop = threading.Event()
        self._timers: List[threading.Thread] = []
        self._running = False

    @classmethod
    def from_config(cls, config: BridgeConfig) -> "BridgeSupervisor":
        """
        Builds every component from configuration and wires the watcher's
        output to the coordinator's input.
        """
        source_connector = BlockchainConnector(config.source_rpc_url)
        if source_connector.chain_id != config.source_chain_id:
            logging.warning(
                f"Source RPC reports chain ID {source_connector.chain_id}, expected {config.source_chain_id}"
            )
        operator = source_connector.w3.eth.account.from_key(config.validator_private_key)
        logging.info(f"Bridge operator address: {operator.address}")

        contract = source_connector.get_contract(config.lockbox_address, config.lockbox_abi_path)
        reader = ChainReader(source_connector, contract, event_name=config.lock_event_name)
        validator = EventValidator(
            min_amount=config.min_amount,
            max_amount=config.max_amount,
            enable_whitelist=config.enable_whitelist,
            whitelisted_tokens=config.whitelisted_tokens,
        )

        client = StellarMintClient(
            rpc_url=config.stellar_rpc_url,
            secret_key=config.stellar_secret_key,
            contract_id=config.stellar_contract_id,
            network_passphrase=config.stellar_network_passphrase,
            mint_function=config.stellar_mint_function,
        )
        client.initialize()

        coordinator = MintCoordinator(
            client,
            source_decimals=config.source_decimals,
            destination_decimals=config.destination_decimals,
            retry_attempts=config.retry_attempts,
            retry_delay=config.retry_delay,
            confirmation_timeout=config.confirmation_timeout,
            confirmation_poll_interval=config.confirmation_poll_interval,
        )
        watcher = LockWatcher(
            reader,
            validator,
            publish=coordinator.publish,
            confirmations=config.confirmations,
            max_batch_size=config.max_batch_size,
            poll_interval=config.poll_interval,
            start_block=config.start_block,
            state_file=config.state_file,
        )
        return cls(watcher, coordinator,
                   health_interval=config.health_interval, stats_interval=config.stats_interval)

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self):
        if self._running:
            logging.warning("Bridge supervisor is already running")
            return
        logging.info("Starting bridge supervisor...")
        self.start_time = datetime.now(timezone.utc)

        # The consumer must be attached before the producer emits anything.
        self.coordinator.start()
        try:
            self.watcher.start()
        except Exception:
            logging.error("Lock watcher failed to start; stopping the mint coordinator.")
            self.coordinator.stop()
            self.start_time = None
            raise

        self._timers_stop.clear()
        self._timers = [
            self._start_timer('health-probe', self.health_interval, self.health_check),
            self._start_timer('stats-emitter', self.stats_interval, self.log_stats),
        ]
        self._running = True
        logging.info("Bridge supervisor is now running and monitoring for cross-chain transfers.")

    def stop(self, timeout: Optional[float] = None):
        if not self._running:
            logging.warning("Bridge supervisor is not running")
            return
        logging.info("Stopping bridge supervisor...")
        self.watcher.stop(timeout)
        self.coordinator.stop(timeout)
        self._timers_stop.set()
        for timer in self._timers:
            timer.join(timeout)
        self._timers = []
        self._running = False
        logging.info("Bridge supervisor stopped.")

    def restart(self, pause: float = 5.0):
        logging.info("Restarting bridge supervisor...")
        self.stop()
        time.sleep(pause)
        self.start()

    def _start_timer(self, name: str, interval: float, action: Callable[[], Any]) -> threading.Thread:
        def _loop():
            while not self._timers_stop.wait(interval):
                try:
                    action()
                except Exception as e:
                    logging.error(f"{name} failed: {e}", exc_info=True)

        thread = threading.Thread(target=_loop, name=name, daemon=True)
        thread.start()
        return thread

    @property
    def uptime(self) -> float:
        if self.start_time is None:
            return 0.0
        return (datetime.now(timezone.utc) - self.start_time).total_seconds()

    def health_check(self) -> Dict[str, Any]:
        """Reports whether each sub-loop is alive, and warns about the ones that are not."""
        health = {
            'uptime': self.uptime,
            'lockWatcher': {
                'isRunning': self.watcher.is_running,
                'lastProcessedBlock': self.watcher.last_processed_block,
            },
            'mintCoordinator': {
                'isRunning': self.coordinator.is_running,
                'queueLength': self.coordinator.queue_length,
                'pendingMints': self.coordinator.pending_mints,
            },
        }
        logging.debug(f"Bridge health check: {health}")
        if self._running and not health['lockWatcher']['isRunning']:
            logging.warning("Lock watcher is not running")
        if self._running and not health['mintCoordinator']['isRunning']:
            logging.warning("Mint coordinator is not running")
        return health

    def get_stats(self) -> Dict[str, Any]:
        return {
            'uptime': int(self.uptime),
            'lastProcessedBlock': self.watcher.last_processed_block,
            'queued': self.coordinator.total_queued,
            'queueLength': self.coordinator.queue_length,
            'pendingMints': self.coordinator.pending_mints,
            'confirmed': self.coordinator.total_confirmed,
            'failed': self.coordinator.total_failed,
            'rejected': self.watcher.events_rejected,
            'duplicates': self.coordinator.total_duplicates,
            'totalProcessed': self.coordinator.total_confirmed,
            'totalErrors': self.watcher.fetch_errors + self.coordinator.failed_attempts,
        }

    def log_stats(self):
        logging.info(f"Bridge statistics: {self.get_stats()}")

    def get_status(self) -> Dict[str, Any]:
        return {
            'isRunning': self._running,
            'startTime': self.start_time.isoformat() if self.start_time else None,
            'uptime': self.uptime,
            'stats': self.get_stats(),
            'health': self.health_check(),
        }
