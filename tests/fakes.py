"""In-memory stand-ins for the source chain, the destination chain and time."""
from datetime import datetime, timezone

import requests

from lockmint.errors import AlreadyMintedError, MintSubmissionError
from lockmint.models import LockEvent, TxStatus

VALID_ADDRESS = 'GBRPYHIL2CI3FNQ4BXLFMNDLFJUNPU2HY3ZMFSHONUCEOASW7QC7OX2H'
TOKEN = '0x7b79995e5f793A07Bc00c21412e50Eaae098E7f9'
USER = '0x1111111111111111111111111111111111111111'
ONE_MILLI_ETH = 1_000_000_000_000_000


def make_raw(lock_id=7, amount=ONE_MILLI_ETH, destination_address=VALID_ADDRESS,
             block_number=996, log_index=0, token=TOKEN, **overrides):
    raw = {
        'lock_id': lock_id,
        'user': USER,
        'token': token,
        'amount': amount,
        'destination_address': destination_address,
        'destination_symbol': 'sWETH',
        'tx_hash': '0x' + format(lock_id, '064x'),
        'block_number': block_number,
        'log_index': log_index,
    }
    raw.update(overrides)
    return raw


def make_event(lock_id=7, amount=ONE_MILLI_ETH, destination_address=VALID_ADDRESS, block_number=996):
    return LockEvent(
        lock_id=lock_id,
        source_user=USER,
        token=TOKEN,
        amount=amount,
        destination_address=destination_address,
        destination_symbol='sWETH',
        source_tx_hash='0x' + format(lock_id, '064x'),
        source_block=block_number,
        log_index=0,
        detected_at=datetime(2025, 1, 1, tzinfo=timezone.utc),
    )


class FakeClock:
    """A monotonic clock that only moves when something sleeps."""

    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.now += seconds

    def advance(self, seconds):
        self.now += seconds


class FakeReader:
    """Source chain holding raw lock events keyed by block number."""

    def __init__(self, height=1000):
        self.height = height
        self.events = []
        self.calls = []
        self.fail_height = False
        self.fail_fetch = False

    def add(self, raw):
        self.events.append(raw)

    def current_height(self):
        if self.fail_height:
            raise requests.exceptions.ConnectionError('source RPC unreachable')
        return self.height

    def get_lock_events(self, from_block, to_block):
        self.calls.append((from_block, to_block))
        if self.fail_fetch:
            raise requests.exceptions.ReadTimeout('eth_getLogs timed out')
        found = [e for e in self.events if from_block <= e['block_number'] <= to_block]
        return sorted(found, key=lambda e: (e['block_number'], e['log_index']))


class FakeMintClient:
    """
    Destination chain whose behaviour is scripted per submission.

    Each entry of ``script`` drives one submit_mint call:
      'ok'       submitted, confirmed on the first poll
      'reject'   submission raises MintSubmissionError
      'rpc'      submission raises a requests ConnectionError
      'onchain'  submitted, poll reports FAILED
      'hang'     submitted, poll never reaches a terminal status
      'already'  contract reports the lock as already minted
    Once the script is exhausted every further submission is 'ok'.
    """

    def __init__(self, script=None):
        self.script = list(script or [])
        self.submissions = []
        self.statuses = {}
        self.polls = 0
        self.log = []

    def submit_mint(self, event, amount):
        behaviour = self.script.pop(0) if self.script else 'ok'
        self.submissions.append((event.lock_id, amount))
        self.log.append(('submit', event.lock_id, behaviour))
        if behaviour == 'reject':
            raise MintSubmissionError('tx_bad_seq')
        if behaviour == 'rpc':
            raise requests.exceptions.ConnectionError('soroban RPC unreachable')
        if behaviour == 'already':
            raise AlreadyMintedError(f'lock {event.lock_id} already minted')
        tx_hash = f'tx-{event.lock_id}-{len(self.submissions)}'
        self.statuses[tx_hash] = {
            'ok': TxStatus.SUCCESS,
            'onchain': TxStatus.FAILED,
            'hang': TxStatus.NOT_FOUND,
        }[behaviour]
        return tx_hash

    def get_transaction_status(self, tx_hash):
        self.polls += 1
        status = self.statuses[tx_hash]
        self.log.append(('poll', tx_hash, status))
        return status
