import json
import logging
from typing import Any, Dict, List, Optional

from web3 import Web3
from web3.contract import Contract

# Lockbox ABI fragment used when no ABI file is configured.
LOCKBOX_ABI = json.loads('''
[
    {
        "anonymous": false,
        "inputs": [
            {"indexed": true, "internalType": "address", "name": "user", "type": "address"},
            {"indexed": true, "internalType": "address", "name": "token", "type": "address"},
            {"indexed": false, "internalType": "uint256", "name": "amount", "type": "uint256"},
            {"indexed": false, "internalType": "string", "name": "stellarAddress", "type": "string"},
            {"indexed": false, "internalType": "string", "name": "stellarSymbol", "type": "string"},
            {"indexed": true, "internalType": "uint256", "name": "lockId", "type": "uint256"}
        ],
        "name": "AssetLocked",
        "type": "event"
    }
]
''')


class BlockchainConnector:
    """
    Handles the connection to the source blockchain via a Web3 provider.
    It encapsulates the Web3 instance and provides utility methods for interacting
    with the chain, such as loading smart contracts.
    """
    def __init__(self, rpc_url: str):
        """
        Establishes a connection to the blockchain.
        Args:
            rpc_url (str): The RPC URL of the blockchain node.
        """
        self.w3 = Web3(Web3.HTTPProvider(rpc_url))
        if not self.w3.is_connected():
            raise ConnectionError(f"Failed to connect to blockchain via RPC: {rpc_url}")
        self.chain_id = self.w3.eth.chain_id
        logging.info(f"Successfully connected to chain ID {self.chain_id} at {rpc_url}")

    def get_contract(self, address: str, abi_path: Optional[str] = None) -> Contract:
        """
        Loads and returns a Web3 Contract object.
        Args:
            address (str): The address of the smart contract.
            abi_path (Optional[str]): The file path to the contract's ABI JSON file.
                The built-in lockbox ABI is used when omitted.
        Returns:
            Contract: A Web3 Contract instance.
        """
        abi = LOCKBOX_ABI
        if abi_path:
            try:
                with open(abi_path, 'r') as f:
                    abi = json.load(f)
            except FileNotFoundError:
                logging.error(f"ABI file not found at path: {abi_path}")
                raise
        checksum_address = Web3.to_checksum_address(address)
        return self.w3.eth.contract(address=checksum_address, abi=abi)


class ChainReader:
    """
    Stateless read access to the source chain: block height, receipts and
    decoded lock events. It performs no validation and swallows no errors;
    the caller decides the retry policy.
    """
    def __init__(self, connector: BlockchainConnector, contract: Contract, event_name: str = 'AssetLocked'):
        self.connector = connector
        self.contract = contract
        self.event_name = event_name

    def current_height(self) -> int:
        return self.connector.w3.eth.block_number

    def get_transaction_receipt(self, tx_hash: str) -> Dict[str, Any]:
        return self.connector.w3.eth.get_transaction_receipt(tx_hash)

    def get_lock_events(self, from_block: int, to_block: int) -> List[Dict[str, Any]]:
        """
        Fetches lock events for an inclusive block range.

        Args:
            from_block (int): First block of the range.
            to_block (int): Last block of the range.

        Returns:
            List[Dict[str, Any]]: Raw lock events ordered by (block_number, log_index).
        """
        if from_block > to_block:
            raise ValueError(f"Invalid block range {from_block}-{to_block}")

        logging.debug(f"Fetching '{self.event_name}' logs from block {from_block} to {to_block}")
        event = getattr(self.contract.events, self.event_name)
        logs = event().get_logs(from_block=from_block, to_block=to_block)

        raw_events = [self._decode_log(log) for log in logs]
        raw_events.sort(key=lambda e: (e['block_number'], e['log_index']))
        if raw_events:
            logging.info(f"Found {len(raw_events)} '{self.event_name}' event(s) in blocks {from_block}-{to_block}")
        return raw_events

    @staticmethod
    def _decode_log(log: Dict[str, Any]) -> Dict[str, Any]:
        args = log['args']
        return {
            'lock_id': args.get('lockId'),
            'user': args.get('user'),
            'token': args.get('token'),
            'amount': args.get('amount'),
            'destination_address': args.get('stellarAddress'),
            'destination_symbol': args.get('stellarSymbol'),
            'tx_hash': Web3.to_hex(log['transactionHash']),
            'block_number': log['blockNumber'],
            'log_index': log['logIndex'],
        }
