"""Tests for balance persistence."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

import pytest

from sipcoin.db.profiles import credit_balance, get_balance


def test_missing_profile_has_zero_balance():
    assert get_balance("new-user").sipcoins_balance == 0


def test_credit_creates_then_increments():
    assert credit_balance("user-1", 150).sipcoins_balance == 150
    assert credit_balance("user-1", 66).sipcoins_balance == 216
    assert get_balance("user-1").sipcoins_balance == 216
    assert get_balance("user-2").sipcoins_balance == 0


def test_negative_credit_is_rejected():
    with pytest.raises(ValueError):
        credit_balance("user-1", -1)


def test_concurrent_credits_are_not_lost():
    credit_balance("user-1", 0)

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(lambda _: credit_balance("user-1", 10), range(40)))

    assert get_balance("user-1").sipcoins_balance == 400
