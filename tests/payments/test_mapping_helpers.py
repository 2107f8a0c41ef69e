import pytest

from domain.order.entity import PaymentMethod
from infrastructure.external.payments.base import BasePaymentClient
from infrastructure.external.payments.paystack_client import from_minor, to_minor
from decimal import Decimal


class _MapClient(BasePaymentClient):
    provider = "paystack"


def test_provider_status_mapping():
    c = _MapClient()
    assert c._map_status("success") == "completed"
    assert c._map_status("abandoned") == "failed"
    assert c._map_status("failed") == "failed"
    assert c._map_status("ongoing") == "pending"
    assert c._map_status("reversed") == "refunded"


@pytest.mark.parametrize(
    "channel,method",
    [
        ("card", PaymentMethod.CARD),
        ("bank", PaymentMethod.BANK_TRANSFER),
        ("bank_transfer", PaymentMethod.BANK_TRANSFER),
        ("ussd", PaymentMethod.WALLET),
        ("mobile_money", PaymentMethod.WALLET),
        ("qr", PaymentMethod.CARD),
        (None, PaymentMethod.CARD),
    ],
)
def test_channel_mapping(channel, method):
    assert _MapClient()._map_method(channel) == method


def test_minor_unit_conversion():
    assert to_minor(58131) == 5813100
    assert from_minor(97197) == Decimal("971.97")
    assert from_minor(None) == Decimal("0")
