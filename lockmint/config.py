import logging
import os
from typing import List, Optional, Union

from dotenv import load_dotenv

from lockmint.utils import mask_secret

DEFAULT_STELLAR_RPC_URL = 'https://soroban-testnet.stellar.org'
TESTNET_PASSPHRASE = 'Test SDF Network ; September 2015'
PUBLIC_PASSPHRASE = 'Public Global Stellar Network ; September 2015'

SUPPORTED_MINT_FUNCTIONS = ('mint', 'bridge_deposit')


def _parse_int(name: str, default: int, minimum: Optional[int] = None) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == '':
        return default
    try:
        value = int(raw.strip())
    except ValueError:
        raise ValueError(f'Environment variable {name} must be an integer, got {raw!r}')
    if minimum is not None and value < minimum:
        raise ValueError(f'Environment variable {name} must be >= {minimum}, got {value}')
    return value


def _parse_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == '':
        return default
    try:
        value = float(raw.strip())
    except ValueError:
        raise ValueError(f'Environment variable {name} must be a number, got {raw!r}')
    if value < 0:
        raise ValueError(f'Environment variable {name} must be non-negative, got {value}')
    return value


def _parse_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ('1', 'true', 'yes', 'on')


def _parse_start_block(raw: Optional[str]) -> Union[str, int]:
    if raw is None or raw.strip().lower() in ('', 'latest'):
        return 'latest'
    try:
        value = int(raw.strip())
    except ValueError:
        raise ValueError(f"START_BLOCK must be 'latest' or a block height, got {raw!r}")
    if value < 0:
        raise ValueError(f'START_BLOCK must be non-negative, got {value}')
    return value


class BridgeConfig:
    """
    Manages bridge configuration by loading environment variables from a .env file.
    Variables already present in the process environment take precedence over
    the file, so deployments can override individual settings.
    """
    REQUIRED_VARS = {
        'source_rpc_url': 'ETHEREUM_RPC_URL',
        'lockbox_address': 'LOCKBOX_CONTRACT_ADDRESS',
        'validator_private_key': 'VALIDATOR_PRIVATE_KEY',
        'stellar_secret_key': 'STELLAR_SECRET_KEY',
        'stellar_contract_id': 'STELLAR_CONTRACT_ID',
    }

    def __init__(self, env_file_path: str = '.env'):
        """
        Initializes the BridgeConfig and loads environment variables.
        Args:
            env_file_path (str): The path to the .env file.
        """
        load_dotenv(dotenv_path=env_file_path)

        # --- Source chain ---
        self.source_rpc_url: Optional[str] = os.getenv('ETHEREUM_RPC_URL')
        self.source_chain_id: int = _parse_int('ETHEREUM_CHAIN_ID', 11155111)
        self.lockbox_address: Optional[str] = os.getenv('LOCKBOX_CONTRACT_ADDRESS')
        self.lockbox_abi_path: Optional[str] = os.getenv('LOCKBOX_ABI_PATH') or None
        self.lock_event_name: str = os.getenv('LOCK_EVENT_NAME', 'AssetLocked')
        self.validator_private_key: Optional[str] = os.getenv('VALIDATOR_PRIVATE_KEY')
        self.start_block: Union[str, int] = _parse_start_block(os.getenv('START_BLOCK'))
        self.confirmations: int = _parse_int('CONFIRMATIONS', 3, minimum=0)
        self.poll_interval: float = _parse_float('POLL_INTERVAL_SEC', 5.0)
        self.state_file: Optional[str] = os.getenv('STATE_FILE_PATH') or None

        # --- Destination chain ---
        self.stellar_network: str = os.getenv('STELLAR_NETWORK', 'testnet').lower()
        self.stellar_rpc_url: str = os.getenv('STELLAR_RPC_URL', DEFAULT_STELLAR_RPC_URL)
        default_passphrase = PUBLIC_PASSPHRASE if self.stellar_network == 'mainnet' else TESTNET_PASSPHRASE
        self.stellar_network_passphrase: str = os.getenv('STELLAR_NETWORK_PASSPHRASE', default_passphrase)
        self.stellar_secret_key: Optional[str] = os.getenv('STELLAR_SECRET_KEY')
        self.stellar_contract_id: Optional[str] = os.getenv('STELLAR_CONTRACT_ID')
        self.stellar_mint_function: str = os.getenv('STELLAR_MINT_FUNCTION', 'mint')

        # --- Bridge limits and retry policy ---
        self.min_amount: int = _parse_int('MIN_BRIDGE_AMOUNT', 10 ** 15, minimum=0)
        self.max_amount: int = _parse_int('MAX_BRIDGE_AMOUNT', 10 ** 21, minimum=0)
        self.enable_whitelist: bool = _parse_bool('ENABLE_WHITELIST')
        self.whitelisted_tokens: List[str] = [
            token.strip().lower()
            for token in os.getenv('WHITELISTED_TOKENS', '').split(',')
            if token.strip()
        ]
        self.max_batch_size: int = _parse_int('MAX_BATCH_SIZE', 10, minimum=1)
        self.retry_attempts: int = _parse_int('RETRY_ATTEMPTS', 3, minimum=1)
        self.retry_delay: float = _parse_float('RETRY_DELAY_SEC', 10.0)
        self.confirmation_timeout: float = _parse_float('CONFIRMATION_TIMEOUT_SEC', 300.0)
        self.confirmation_poll_interval: float = _parse_float('CONFIRMATION_POLL_SEC', 2.0)
        self.source_decimals: int = _parse_int('SOURCE_DECIMALS', 18, minimum=0)
        self.destination_decimals: int = _parse_int('DESTINATION_DECIMALS', 7, minimum=0)

        # --- Supervision and logging ---
        self.health_interval: float = _parse_float('HEALTH_CHECK_INTERVAL_SEC', 30.0)
        self.stats_interval: float = _parse_float('STATS_INTERVAL_SEC', 300.0)
        self.log_level: str = os.getenv('LOG_LEVEL', 'INFO')
        self.log_file: Optional[str] = os.getenv('LOG_FILE') or None

        self._validate_config()

    def _validate_config(self):
        """Validates that all necessary configuration variables are present and consistent."""
        missing = [env for attr, env in self.REQUIRED_VARS.items() if not getattr(self, attr)]
        if missing:
            raise ValueError(f"Missing required environment variables: {', '.join(missing)}")
        if self.min_amount > self.max_amount:
            raise ValueError(
                f'MIN_BRIDGE_AMOUNT ({self.min_amount}) exceeds MAX_BRIDGE_AMOUNT ({self.max_amount})'
            )
        if self.stellar_mint_function not in SUPPORTED_MINT_FUNCTIONS:
            raise ValueError(
                f"STELLAR_MINT_FUNCTION must be one of {SUPPORTED_MINT_FUNCTIONS}, "
                f"got {self.stellar_mint_function!r}"
            )
        if self.enable_whitelist and not self.whitelisted_tokens:
            logging.warning("Token whitelist is enabled but WHITELISTED_TOKENS is empty; every lock will be rejected.")
        logging.info("Configuration loaded and validated successfully.")

    def summary(self) -> dict:
        """Returns the effective configuration with credentials masked, for display and logging."""
        return {
            'source_rpc_url': self.source_rpc_url,
            'source_chain_id': self.source_chain_id,
            'lockbox_address': self.lockbox_address,
            'lock_event_name': self.lock_event_name,
            'validator_private_key': mask_secret(self.validator_private_key),
            'start_block': self.start_block,
            'confirmations': self.confirmations,
            'poll_interval': self.poll_interval,
            'state_file': self.state_file,
            'stellar_network': self.stellar_network,
            'stellar_rpc_url': self.stellar_rpc_url,
            'stellar_contract_id': self.stellar_contract_id,
            'stellar_secret_key': mask_secret(self.stellar_secret_key),
            'stellar_mint_function': self.stellar_mint_function,
            'min_amount': self.min_amount,
            'max_amount': self.max_amount,
            'enable_whitelist': self.enable_whitelist,
            'whitelisted_tokens': self.whitelisted_tokens,
            'max_batch_size': self.max_batch_size,
            'retry_attempts': self.retry_attempts,
            'retry_delay': self.retry_delay,
            'confirmation_timeout': self.confirmation_timeout,
            'source_decimals': self.source_decimals,
            'destination_decimals': self.destination_decimals,
        }
