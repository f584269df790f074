"""
Tests for environment-driven configuration.
"""
import pytest

from lockmint.config import TESTNET_PASSPHRASE, BridgeConfig

ALL_VARS = [
    'ETHEREUM_RPC_URL', 'ETHEREUM_CHAIN_ID', 'LOCKBOX_CONTRACT_ADDRESS', 'LOCKBOX_ABI_PATH',
    'LOCK_EVENT_NAME', 'VALIDATOR_PRIVATE_KEY', 'START_BLOCK', 'CONFIRMATIONS', 'POLL_INTERVAL_SEC',
    'STATE_FILE_PATH', 'STELLAR_NETWORK', 'STELLAR_RPC_URL',
    'STELLAR_NETWORK_PASSPHRASE', 'STELLAR_SECRET_KEY', 'STELLAR_CONTRACT_ID', 'STELLAR_MINT_FUNCTION',
    'MIN_BRIDGE_AMOUNT', 'MAX_BRIDGE_AMOUNT', 'ENABLE_WHITELIST', 'WHITELISTED_TOKENS',
    'MAX_BATCH_SIZE', 'RETRY_ATTEMPTS', 'RETRY_DELAY_SEC', 'CONFIRMATION_TIMEOUT_SEC',
    'CONFIRMATION_POLL_SEC', 'SOURCE_DECIMALS', 'DESTINATION_DECIMALS', 'HEALTH_CHECK_INTERVAL_SEC',
    'STATS_INTERVAL_SEC', 'LOG_LEVEL', 'LOG_FILE',
]

REQUIRED = {
    'ETHEREUM_RPC_URL': 'https://rpc.sepolia.org',
    'LOCKBOX_CONTRACT_ADDRESS': '0x7b79995e5f793A07Bc00c21412e50Eaae098E7f9',
    'VALIDATOR_PRIVATE_KEY': '0x' + 'ab' * 32,
    'STELLAR_SECRET_KEY': 'SBSECRETSECRETSECRETSECRETSECRETSECRETSECRETSECRETSECRET',
    'STELLAR_CONTRACT_ID': 'CCONTRACTCONTRACTCONTRACTCONTRACTCONTRACTCONTRACTCONTRAC',
}


@pytest.fixture
def env(monkeypatch, tmp_path):
    """Clean environment; anything a test or a .env file adds is removed afterwards."""
    for name in ALL_VARS:
        monkeypatch.setenv(name, 'placeholder')
        monkeypatch.delenv(name)
    for name, value in REQUIRED.items():
        monkeypatch.setenv(name, value)
    return tmp_path / 'missing.env'


def test_defaults(env):
    config = BridgeConfig(env_file_path=str(env))

    assert config.start_block == 'latest'
    assert config.confirmations == 3
    assert config.max_batch_size == 10
    assert config.retry_attempts == 3
    assert config.retry_delay == 10.0
    assert config.min_amount == 10 ** 15
    assert config.max_amount == 10 ** 21
    assert config.enable_whitelist is False
    assert config.source_decimals == 18
    assert config.destination_decimals == 7
    assert config.stellar_network_passphrase == TESTNET_PASSPHRASE
    assert config.state_file is None


def test_missing_required_vars_are_all_named(env, monkeypatch):
    monkeypatch.delenv('ETHEREUM_RPC_URL')
    monkeypatch.delenv('STELLAR_CONTRACT_ID')

    with pytest.raises(ValueError) as excinfo:
        BridgeConfig(env_file_path=str(env))
    assert 'ETHEREUM_RPC_URL' in str(excinfo.value)
    assert 'STELLAR_CONTRACT_ID' in str(excinfo.value)


def test_explicit_start_block_and_whitelist(env, monkeypatch):
    monkeypatch.setenv('START_BLOCK', '5000000')
    monkeypatch.setenv('ENABLE_WHITELIST', 'true')
    monkeypatch.setenv('WHITELISTED_TOKENS', '0xAbC, 0xDEF ,')

    config = BridgeConfig(env_file_path=str(env))
    assert config.start_block == 5_000_000
    assert config.enable_whitelist is True
    assert config.whitelisted_tokens == ['0xabc', '0xdef']


@pytest.mark.parametrize('name,value', [
    ('CONFIRMATIONS', 'three'),
    ('MAX_BATCH_SIZE', '0'),
    ('RETRY_ATTEMPTS', '0'),
    ('START_BLOCK', 'earliest'),
    ('RETRY_DELAY_SEC', '-1'),
    ('STELLAR_MINT_FUNCTION', 'burn'),
])
def test_malformed_values_raise(env, monkeypatch, name, value):
    monkeypatch.setenv(name, value)
    with pytest.raises(ValueError):
        BridgeConfig(env_file_path=str(env))


def test_min_above_max_raises(env, monkeypatch):
    monkeypatch.setenv('MIN_BRIDGE_AMOUNT', '100')
    monkeypatch.setenv('MAX_BRIDGE_AMOUNT', '10')
    with pytest.raises(ValueError):
        BridgeConfig(env_file_path=str(env))


def test_values_from_env_file(env, monkeypatch, tmp_path):
    env_file = tmp_path / '.env'
    env_file.write_text('CONFIRMATIONS=12\nRETRY_ATTEMPTS=5\n')
    config = BridgeConfig(env_file_path=str(env_file))
    assert config.confirmations == 12
    assert config.retry_attempts == 5


def test_process_environment_overrides_env_file(env, monkeypatch, tmp_path):
    env_file = tmp_path / '.env'
    env_file.write_text('CONFIRMATIONS=12\n')
    monkeypatch.setenv('CONFIRMATIONS', '6')
    assert BridgeConfig(env_file_path=str(env_file)).confirmations == 6


def test_summary_masks_credentials(env):
    summary = BridgeConfig(env_file_path=str(env)).summary()
    assert summary['validator_private_key'].endswith('abab')
    assert REQUIRED['VALIDATOR_PRIVATE_KEY'] not in summary.values()
    assert REQUIRED['STELLAR_SECRET_KEY'] not in summary.values()


def test_horizon_url_is_not_a_setting(env, monkeypatch):
    monkeypatch.setenv('STELLAR_HORIZON_URL', 'https://horizon.example.org')
    config = BridgeConfig(env_file_path=str(env))
    assert 'https://horizon.example.org' not in config.summary().values()
    assert not hasattr(config, 'stellar_horizon_url')
