from decimal import Decimal

import pytest

from cryptotaxsim.schemas import dec_to_str


@pytest.mark.parametrize(
    "value,expected",
    [
        (Decimal("0"), "0"),
        (Decimal("-0.000000001"), "0"),
        (Decimal("1097.80"), "1097.8"),
        (Decimal("0.123456789"), "0.12345679"),
        (Decimal("1E+25"), "10000000000000000000000000"),
        (Decimal("12345678901234567890123456.123456789"), "12345678901234567890123456.12345679"),
    ],
)
def test_dec_to_str(value, expected):
    assert dec_to_str(value) == expected
