import requests
from stellar_sdk.exceptions import BaseRequestError
from web3.exceptions import Web3Exception

# Errors that never terminate a lock or a mint; the calling loop retries later.
# stellar-sdk wraps its transport failures in BaseRequestError subclasses.
TRANSIENT_ERRORS = (
    requests.exceptions.RequestException,
    BaseRequestError,
    ConnectionError,
    TimeoutError,
    Web3Exception,
)


class MintSubmissionError(Exception):
    """The destination chain rejected or failed a mint transaction."""


class AlreadyMintedError(MintSubmissionError):
    """The destination contract reports this lock as already minted."""


class ConfirmationTimeoutError(MintSubmissionError):
    """A submitted mint did not reach a terminal status within the bounded wait."""

    def __init__(self, tx_hash: str, waited: float):
        super().__init__(f"Transaction {tx_hash} not confirmed after {waited:.0f}s")
        self.tx_hash = tx_hash
        self.waited = waited
