from datetime import datetime

import pytest

from config import UTC
from tools.coupons import clamp_discount, generate_coupon, z85_encode


def test_z85_reference_vector():
    assert z85_encode(bytes([0x86, 0x4F, 0xD2, 0x6F, 0xB5, 0x59, 0xF7, 0x5B])) == "HelloWorld"


def test_z85_rejects_partial_groups():
    with pytest.raises(ValueError):
        z85_encode(b"abc")


@pytest.mark.parametrize("requested,granted", [(0, 10), (10, 10), (17.6, 18), (99, 20)])
def test_clamp(requested, granted):
    assert clamp_discount(requested, 10, 20) == granted


def test_coupon_for_fixed_date():
    coupon = generate_coupon(15, now=datetime(2025, 1, 9, tzinfo=UTC))
    assert coupon == {"couponCode": z85_encode(b"JAN25-15"), "discount": 15}
    assert len(coupon["couponCode"]) == 10


@pytest.mark.parametrize("requested", [float("inf"), float("-inf"), float("nan")])
def test_clamp_rejects_non_finite(requested):
    with pytest.raises(ValueError):
        clamp_discount(requested, 10, 20)
