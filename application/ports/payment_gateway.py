"""
Payment gateway port (application/ports) exposing a replaceable protocol.

Application depends on this Protocol; infrastructure implements adapters.
"""
from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from application.dtos.payments import (
    InitializeTransaction,
    InitializedTransaction,
    RefundRequest,
    RefundResult,
    VerifiedTransaction,
    WebhookEvent,
)


@runtime_checkable
class PaymentGateway(Protocol):
    """Gateway protocol for third-party payment providers.

    Implementations should be async and side-effect free beyond IO.
    """

    provider: str

    async def initialize_transaction(self, req: InitializeTransaction) -> InitializedTransaction: ...

    async def verify_transaction(self, reference: str) -> VerifiedTransaction: ...

    async def refund(self, req: RefundRequest) -> RefundResult: ...

    def parse_webhook(self, headers: dict[str, Any], body: bytes) -> WebhookEvent: ...

    def to_verified(self, event: WebhookEvent) -> VerifiedTransaction: ...

    async def aclose(self) -> None: ...
