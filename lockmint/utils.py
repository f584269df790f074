import logging
import os
from typing import Optional

LOG_FORMAT = '%(asctime)s - %(levelname)s - [%(module)s] - %(message)s'
LOG_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def convert_amount(amount: int, source_decimals: int, destination_decimals: int) -> int:
    """
    Converts a base-unit amount between two fixed-point precisions.

    Narrowing conversions floor the result, so the recipient never receives
    more than was locked. Widening conversions are exact.

    Args:
        amount: The amount in source-chain base units. Must be non-negative.
        source_decimals: Decimal places of the source asset (e.g. 18).
        destination_decimals: Decimal places of the destination asset (e.g. 7).

    Returns:
        The amount in destination-chain base units.

    Example:
        >>> convert_amount(1_000_000_000_000_000, 18, 7)
        10000
    """
    if amount < 0:
        raise ValueError(f"Amount must be non-negative, got {amount}")
    if source_decimals < 0 or destination_decimals < 0:
        raise ValueError("Decimal counts must be non-negative")

    if source_decimals >= destination_decimals:
        return amount // 10 ** (source_decimals - destination_decimals)
    return amount * 10 ** (destination_decimals - source_decimals)


def mask_secret(value: Optional[str], visible: int = 4) -> str:
    """Returns a log-safe rendering of a credential, keeping only its last characters."""
    if not value:
        return '<unset>'
    if len(value) <= visible:
        return '*' * len(value)
    return '*' * (len(value) - visible) + value[-visible:]


def setup_logging(level: str = 'INFO', log_file: Optional[str] = None):
    """
    Configures the root logger with a console handler and, optionally, a file handler.

    Args:
        level (str): Log level name, e.g. 'DEBUG' or 'info'.
        log_file (Optional[str]): Path of a log file. Its directory is created if needed.
    """
    handlers = [logging.StreamHandler()]
    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
        handlers=handlers,
        force=True,
    )
