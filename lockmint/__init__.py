from lockmint.models import LockEvent, MintOperation, MintState, TxStatus, ValidationResult
from lockmint.utils import convert_amount

__version__ = '0.1.0'

__all__ = [
    'LockEvent',
    'MintOperation',
    'MintState',
    'TxStatus',
    'ValidationResult',
    'convert_amount',
]
