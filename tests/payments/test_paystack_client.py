import asyncio
import hashlib
import hmac
import json

import httpx
import pytest

from application.dtos.payments import InitializeTransaction, RefundRequest
from infrastructure.external.payments import close_payment_gateways, get_payment_gateway
from infrastructure.external.payments.exceptions import (
    PaymentProviderError,
    PaymentRecoverableError,
    PaymentSignatureError,
    PaymentTimeoutError,
)
from infrastructure.external.payments.paystack_client import PaystackClient, compute_signature

SECRET = "sk_test_marketplace"


def _client(handler) -> PaystackClient:
    return PaystackClient(SECRET, base_url="https://api.paystack.test", transport=httpx.MockTransport(handler))


def test_signature_is_hmac_sha512_of_raw_body():
    body = b'{"event":"charge.success"}'
    expected = hmac.new(SECRET.encode(), body, hashlib.sha512).hexdigest()
    assert compute_signature(SECRET, body) == expected


def test_parse_webhook_checks_signature(paystack, signer):
    body = json.dumps({"event": "charge.success", "data": {"id": 302961, "reference": "PAY_1_2"}}).encode()

    with pytest.raises(PaymentSignatureError):
        paystack.parse_webhook({}, body)
    with pytest.raises(PaymentSignatureError):
        paystack.parse_webhook({"x-paystack-signature": "0" * 128}, body)
    with pytest.raises(PaymentSignatureError):
        # 签名基于原始字节，重新序列化后的内容不能通过
        paystack.parse_webhook({"x-paystack-signature": signer(body)}, body + b" ")

    event = paystack.parse_webhook({"X-Paystack-Signature": signer(body)}, body)
    assert event.type == "charge.success"
    assert event.provider == "paystack"
    assert event.id == "302961"
    assert event.reference == "PAY_1_2"


def test_webhook_to_verified(paystack, signer):
    body = json.dumps({
        "event": "charge.success",
        "data": {"id": 1, "reference": "PAY_1_2", "status": "success", "channel": "ussd", "fees": 15000, "amount": 100000},
    }).encode()
    verified = paystack.to_verified(paystack.parse_webhook({"x-paystack-signature": signer(body)}, body))
    assert verified.succeeded
    assert verified.method.value == "wallet"
    assert verified.amount == 1000
    assert str(verified.fees) == "150"


@pytest.mark.asyncio
async def test_initialize_sends_minor_units(paystack, paystack_api):
    result = await paystack.initialize_transaction(InitializeTransaction(
        reference="PAY_1_2",
        email="buyer@example.com",
        amount=58131,
        callback_url="https://shop.example.com/checkout?ordno=ORD1",
        metadata={"order_number": "ORD1"},
    ))
    assert result.authorization_url == "https://checkout.paystack.com/PAY_1_2"
    assert result.access_code == "ac_0peioxfhpn"

    sent = json.loads(paystack_api.requests[0].content)
    assert sent["amount"] == 5813100
    assert sent["currency"] == "NGN"
    assert sent["callback_url"] == "https://shop.example.com/checkout?ordno=ORD1"
    assert sent["metadata"] == {"order_number": "ORD1"}


@pytest.mark.asyncio
async def test_verify_normalizes_transaction(paystack):
    verified = await paystack.verify_transaction("PAY_1_2")
    assert verified.status == "completed"
    assert verified.transaction_id == "4099260516"
    assert str(verified.fees) == "971.97"
    assert verified.paid_at is not None
    assert verified.risk_action == "default"


@pytest.mark.asyncio
async def test_refund_uses_transaction_id(paystack, paystack_api):
    result = await paystack.refund(RefundRequest(transaction_id="4099260516", amount=10000, reason="damaged"))
    assert result.refund_id == "3018284"
    sent = json.loads(paystack_api.requests[0].content)
    assert sent == {"transaction": "4099260516", "amount": 1000000, "merchant_note": "damaged"}


@pytest.mark.asyncio
async def test_error_responses_are_mapped():
    client = _client(lambda request: httpx.Response(400, json={"status": False, "message": "Invalid key"}))
    with pytest.raises(PaymentProviderError) as exc:
        await client.verify_transaction("PAY_1")
    assert exc.value.message == "Failed to verify payment: Invalid key"

    client = _client(lambda request: httpx.Response(503, text="upstream down"))
    with pytest.raises(PaymentRecoverableError):
        await client.verify_transaction("PAY_1")


@pytest.mark.asyncio
async def test_timeout_is_mapped():
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(PaymentTimeoutError):
        await _client(handler).verify_transaction("PAY_1")


@pytest.mark.asyncio
async def test_gateway_factory_caches_per_provider(monkeypatch):
    from core.settings import payment_settings
    monkeypatch.setattr(payment_settings.paystack, "secret_key", SECRET)

    first = get_payment_gateway("paystack")
    assert isinstance(first, PaystackClient)
    assert get_payment_gateway("PAYSTACK") is first
    with pytest.raises(ValueError):
        get_payment_gateway("stripe")
    await close_payment_gateways()
    assert get_payment_gateway("paystack") is not first
    await close_payment_gateways()


@pytest.mark.asyncio
async def test_refund_is_not_resent_after_read_timeout():
    paths = []

    def handler(request):
        paths.append(request.url.path)
        if len(paths) == 1:
            raise httpx.ReadTimeout("timed out", request=request)
        return httpx.Response(200, json={"status": True, "data": {"id": 3018284, "status": "pending"}})

    with pytest.raises(PaymentTimeoutError):
        await _client(handler).refund(RefundRequest(transaction_id="4099260516", amount=10000))
    assert paths == ["/refund"]


@pytest.mark.asyncio
async def test_post_is_retried_when_connection_never_opened():
    paths = []

    def handler(request):
        paths.append(request.url.path)
        if len(paths) == 1:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(200, json={"status": True, "data": {"id": 3018284, "status": "pending"}})

    result = await _client(handler).refund(RefundRequest(transaction_id="4099260516"))
    assert result.refund_id == "3018284"
    assert paths == ["/refund", "/refund"]


@pytest.mark.asyncio
async def test_verify_is_retried_after_read_timeout():
    calls = []

    def handler(request):
        calls.append(request.url.path)
        if len(calls) == 1:
            raise httpx.ReadTimeout("timed out", request=request)
        return httpx.Response(200, json={
            "status": True,
            "data": {"id": 1, "status": "success", "reference": "PAY_1", "amount": 100000, "channel": "card"},
        })

    verified = await _client(handler).verify_transaction("PAY_1")
    assert verified.succeeded
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_whole_call_is_capped_by_total_timeout():
    async def handler(request):
        await asyncio.sleep(1)
        return httpx.Response(200, json={"status": True, "data": {}})

    client = _client(handler)
    client._timeouts_cfg = {"connect": 0.05, "read": 0.05, "write": 0.05, "total": 0.05}
    with pytest.raises(PaymentTimeoutError):
        await client.verify_transaction("PAY_1")
