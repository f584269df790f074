"""
Tests for amount conversion and the small helpers in lockmint.utils.
"""
import logging

import pytest

from lockmint.utils import convert_amount, mask_secret, setup_logging


def test_convert_eighteen_to_seven_decimals():
    """0.001 of an 18-decimal asset becomes 10_000 stroops."""
    assert convert_amount(1_000_000_000_000_000, 18, 7) == 10_000


def test_convert_floors_sub_unit_remainder():
    """Dust below the destination's smallest unit is dropped, never rounded up."""
    assert convert_amount(1_000_000_000_000_000 + 99_999_999_999, 18, 7) == 10_000
    assert convert_amount(99_999_999_999, 18, 7) == 0


def test_convert_uses_given_decimals_not_constants():
    assert convert_amount(123_456_789, 8, 6) == 1_234_567
    assert convert_amount(5_000_000, 6, 6) == 5_000_000


def test_convert_widening_is_exact():
    assert convert_amount(15, 6, 8) == 1_500


def test_convert_rejects_negative_amount():
    with pytest.raises(ValueError):
        convert_amount(-1, 18, 7)


def test_convert_is_deterministic():
    amount = 987_654_321_987_654_321
    assert len({convert_amount(amount, 18, 7) for _ in range(5)}) == 1


def test_mask_secret_keeps_tail_only():
    assert mask_secret('SABCDEFGHIJKL') == '*********IJKL'
    assert mask_secret('abc') == '***'
    assert mask_secret(None) == '<unset>'


def test_setup_logging_creates_log_directory(tmp_path):
    log_file = tmp_path / 'logs' / 'bridge.log'
    setup_logging('debug', str(log_file))
    try:
        logging.getLogger().debug('hello from the bridge')
        assert log_file.exists()
        assert logging.getLogger().level == logging.DEBUG
    finally:
        for handler in list(logging.getLogger().handlers):
            handler.close()
            logging.getLogger().removeHandler(handler)
