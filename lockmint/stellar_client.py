import logging

from stellar_sdk import Keypair, SorobanServer, TransactionBuilder, scval
from stellar_sdk.exceptions import BaseRequestError, PrepareTransactionException, SdkError
from stellar_sdk.soroban_rpc import GetTransactionStatus, SendTransactionStatus

from lockmint.errors import AlreadyMintedError, MintSubmissionError
from lockmint.models import LockEvent, TxStatus

# Simulation errors containing one of these mean the contract already minted this lock.
ALREADY_MINTED_MARKERS = ('already minted', 'already processed', 'lock already')

BASE_FEE = 10_000_000
TX_TIMEOUT_SEC = 300
# Read-only contract function simulated at startup to confirm the contract is reachable.
CONNECTIVITY_CHECK_FUNCTION = 'name'
CONNECTIVITY_CHECK_TIMEOUT_SEC = 30


class StellarMintClient:
    """
    Mints pegged assets on a Soroban token contract.

    Every submission reloads the signer account so the transaction always uses
    the next sequence number. The coordinator serializes calls, so two
    submissions never compete for the same sequence slot.
    """
    def __init__(self, rpc_url: str, secret_key: str, contract_id: str, network_passphrase: str,
                 mint_function: str = 'mint'):
        self.server = SorobanServer(rpc_url)
        self.keypair = Keypair.from_secret(secret_key)
        self.contract_id = contract_id
        self.network_passphrase = network_passphrase
        self.mint_function = mint_function

    @property
    def public_key(self) -> str:
        return self.keypair.public_key

    def initialize(self) -> int:
        """
        Verifies that the signing account exists and checks that the token
        contract answers a read-only call. A failed contract check is only
        logged; minting will surface the problem if it persists.

        Returns:
            int: The account's current sequence number.
        """
        account = self.server.load_account(self.public_key)
        sequence = account.sequence
        logging.info(
            f"Stellar minter ready. Signer: {self.public_key}, contract: {self.contract_id}, "
            f"sequence: {sequence}"
        )
        self.check_contract(account)
        return sequence

    def check_contract(self, account) -> bool:
        """Simulates a read-only contract call. Returns True when the simulation succeeds."""
        try:
            tx = (
                TransactionBuilder(account, network_passphrase=self.network_passphrase, base_fee=BASE_FEE)
                .append_invoke_contract_function_op(
                    contract_id=self.contract_id,
                    function_name=CONNECTIVITY_CHECK_FUNCTION,
                    parameters=[],
                )
                .set_timeout(CONNECTIVITY_CHECK_TIMEOUT_SEC)
                .build()
            )
            response = self.server.simulate_transaction(tx)
        except SdkError as e:
            logging.warning(f"Could not test connectivity to contract {self.contract_id}: {e}")
            return False
        if response.error:
            logging.warning(
                f"Contract connectivity test for {self.contract_id} failed: {response.error}. Continuing."
            )
            return False
        logging.info(f"Contract connectivity test for {self.contract_id} successful.")
        return True

    def _mint_parameters(self, event: LockEvent, amount: int) -> list:
        if self.mint_function == 'bridge_deposit':
            return [
                scval.to_address(event.destination_address),
                scval.to_symbol(event.destination_symbol),
                scval.to_int128(amount),
                scval.to_uint64(event.lock_id),
            ]
        return [scval.to_address(event.destination_address), scval.to_int128(amount)]

    def submit_mint(self, event: LockEvent, amount: int) -> str:
        """
        Builds, signs and sends a mint transaction.

        Args:
            event (LockEvent): The lock being honoured.
            amount (int): Amount in destination base units.

        Returns:
            str: The destination transaction hash.

        Raises:
            AlreadyMintedError: The contract refused the mint as a duplicate.
            MintSubmissionError: The network refused the transaction.
        """
        source = self.server.load_account(self.public_key)
        tx = (
            TransactionBuilder(source, network_passphrase=self.network_passphrase, base_fee=BASE_FEE)
            .append_invoke_contract_function_op(
                contract_id=self.contract_id,
                function_name=self.mint_function,
                parameters=self._mint_parameters(event, amount),
            )
            .set_timeout(TX_TIMEOUT_SEC)
            .build()
        )

        try:
            tx = self.server.prepare_transaction(tx)
        except PrepareTransactionException as e:
            message = str(getattr(e.simulate_transaction_response, 'error', None) or e)
            if any(marker in message.lower() for marker in ALREADY_MINTED_MARKERS):
                raise AlreadyMintedError(f"Lock {event.lock_id} already minted: {message}") from e
            raise MintSubmissionError(f"Simulation failed for lock {event.lock_id}: {message}") from e

        tx.sign(self.keypair)
        response = self.server.send_transaction(tx)

        if response.status == SendTransactionStatus.PENDING:
            logging.info(f"Mint for lock {event.lock_id} submitted as {response.hash}, waiting for confirmation")
            return response.hash
        if response.status == SendTransactionStatus.DUPLICATE:
            logging.info(f"Mint for lock {event.lock_id} already in flight as {response.hash}")
            return response.hash
        raise MintSubmissionError(
            f"Transaction submission failed with status {response.status}: {response.error_result_xdr}"
        )

    def get_transaction_status(self, tx_hash: str) -> TxStatus:
        """
        Reports the status of a submitted transaction. A failed RPC call means
        the outcome is still unknown, so it is reported as PENDING.
        """
        try:
            response = self.server.get_transaction(tx_hash)
        except BaseRequestError as e:
            logging.warning(f"Could not fetch status of {tx_hash}: {e}")
            return TxStatus.PENDING
        if response.status == GetTransactionStatus.SUCCESS:
            return TxStatus.SUCCESS
        if response.status == GetTransactionStatus.FAILED:
            return TxStatus.FAILED
        return TxStatus.NOT_FOUND
