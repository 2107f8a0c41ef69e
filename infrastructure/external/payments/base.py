"""
Base payment client implementing shared concerns: http, retry, logging, mapping.

Concrete providers should subclass and implement provider-specific logic.
"""
from __future__ import annotations

import asyncio
from typing import Any, Callable, Optional
from contextlib import asynccontextmanager

import httpx
from tenacity import AsyncRetrying, stop_after_attempt, stop_after_delay, wait_exponential, retry_if_exception_type

from core.logging_config import get_logger
from application.dtos.payments import (
    InitializeTransaction,
    InitializedTransaction,
    RefundRequest,
    RefundResult,
    VerifiedTransaction,
    WebhookEvent,
)
from application.ports.payment_gateway import PaymentGateway
from domain.order.entity import PaymentMethod
from shared.codes.payment_codes import PROVIDER_CHANNEL_TO_METHOD, PROVIDER_STATUS_TO_INTERNAL


logger = get_logger(__name__)


class BasePaymentClient(PaymentGateway):
    provider: str = "base"

    def __init__(
        self,
        *,
        timeouts: Optional[dict[str, float]] = None,
        retry: Optional[dict[str, Any]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._timeouts_cfg = timeouts or {"connect": 5.0, "read": 30.0, "write": 30.0, "total": 30.0}
        self._retry_cfg = retry or {"max": 2, "base": 0.2}
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def timeouts(self) -> httpx.Timeout:
        return httpx.Timeout(
            connect=self._timeouts_cfg["connect"],
            read=self._timeouts_cfg["read"],
            write=self._timeouts_cfg["write"],
            pool=self._timeouts_cfg["total"],
        )

    def _client_kwargs(self) -> dict[str, Any]:
        return {}

    @asynccontextmanager
    async def client(self):
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeouts,
                transport=self._transport,
                **self._client_kwargs(),
            )
        try:
            yield self._client
        finally:
            # Keep open for reuse; explicit aclose() will close.
            ...

    async def aclose(self) -> None:
        """Close underlying HTTP client if created."""
        if self._client is not None:
            try:
                await self._client.aclose()
            finally:
                self._client = None

    async def _retry(self, fn: Callable[[], Any], *, idempotent: bool = True):
        """
        幂等请求在任何传输错误上重试；非幂等请求只在连接未建立时重试，
        读超时后网关可能已经处理过该请求。包括重试在内的整个调用受 total 超时约束。
        """
        retry_on = (httpx.TransportError,) if idempotent else (httpx.ConnectError, httpx.ConnectTimeout)
        total = float(self._timeouts_cfg["total"])

        async def attempts():
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(int(self._retry_cfg["max"]) + 1) | stop_after_delay(total),
                wait=wait_exponential(multiplier=self._retry_cfg["base"], min=0.1, max=2.0),
                retry=retry_if_exception_type(retry_on),
                reraise=True,
            ):
                with attempt:
                    return await fn()

        try:
            return await asyncio.wait_for(attempts(), timeout=total)
        except asyncio.TimeoutError as exc:
            raise httpx.TimeoutException(f"Gateway call exceeded {total:g}s") from exc

    # Default implementations raise to force override where needed
    async def initialize_transaction(self, req: InitializeTransaction) -> InitializedTransaction:  # type: ignore[override]
        raise NotImplementedError

    async def verify_transaction(self, reference: str) -> VerifiedTransaction:  # type: ignore[override]
        raise NotImplementedError

    async def refund(self, req: RefundRequest) -> RefundResult:  # type: ignore[override]
        raise NotImplementedError

    def parse_webhook(self, headers: dict[str, Any], body: bytes) -> WebhookEvent:  # type: ignore[override]
        raise NotImplementedError

    # Helpers
    def _map_status(self, provider_status: str) -> str:
        mapping = PROVIDER_STATUS_TO_INTERNAL.get(self.provider, {})
        return mapping.get(provider_status, provider_status)

    def _map_method(self, channel: Optional[str]) -> PaymentMethod:
        mapping = PROVIDER_CHANNEL_TO_METHOD.get(self.provider, {})
        return PaymentMethod(mapping.get((channel or "").lower(), PaymentMethod.CARD.value))

    def _log(self, event: str, **kwargs) -> None:
        logger.info(
            event,
            provider=self.provider,
            **kwargs,
        )
