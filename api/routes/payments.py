"""
Payments API routes.

Thin layer over PaymentApplicationService: initialize, verify, webhook,
refund and queries. No gateway SDK details here.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, Path, Request

from api.dependencies import get_current_admin, get_current_user, get_payment_service
from api.utils.headers import client_ip
from application.dto import (
    CurrentUserDTO,
    InitializePaymentDTO,
    PaginationParams,
    PaymentInitializationDTO,
    PaymentResponseDTO,
    PaymentVerificationDTO,
    RefundPaymentDTO,
    VerifyPaymentDTO,
    WebhookAckDTO,
)
from application.services.payment_service import PaymentApplicationService
from core.i18n import t
from core.response import PaginatedData, Response as ApiResponse, paginated_response, success_response
from domain.payment.entity import PaymentStatus


router = APIRouter(prefix="/payments", tags=["Payments"])


@router.post("/initialize", summary="Initialize payment", response_model=ApiResponse[PaymentInitializationDTO])
async def initialize_payment(
    body: InitializePaymentDTO,
    current_user: CurrentUserDTO = Depends(get_current_user),
    service: PaymentApplicationService = Depends(get_payment_service),
):
    """Returns the existing pending payment when one was created in the last 30 minutes."""
    result = await service.initialize_payment(body, current_user)
    return success_response(data=result, message=t("payment.initialize.success"))


@router.post("/verify", summary="Verify payment", response_model=ApiResponse[PaymentVerificationDTO])
async def verify_payment(
    body: VerifyPaymentDTO,
    current_user: CurrentUserDTO = Depends(get_current_user),
    service: PaymentApplicationService = Depends(get_payment_service),
):
    result = await service.verify_payment(body.reference)
    if result.already_verified:
        message = t("payment.verify.already")
    elif result.payment.status == PaymentStatus.COMPLETED:
        message = t("payment.verify.success")
    else:
        message = t("payment.verify.failed")
    return success_response(data=result, message=message)


@router.post("/webhook/{provider}", summary="Gateway webhook", response_model=ApiResponse[WebhookAckDTO])
async def payments_webhook(
    request: Request,
    provider: str,
    service: PaymentApplicationService = Depends(get_payment_service),
):
    # 验签基于原始请求体
    raw_body = await request.body()
    headers = {k: v for k, v in request.headers.items()}
    ack = await service.handle_webhook(provider, headers, raw_body, client_ip=client_ip(request))
    return success_response(data=ack, message=t("payment.webhook.received"))


@router.get("/my/history", summary="My payments", response_model=ApiResponse[PaginatedData[PaymentResponseDTO]])
async def payment_history(
    params: PaginationParams = Depends(),
    current_user: CurrentUserDTO = Depends(get_current_user),
    service: PaymentApplicationService = Depends(get_payment_service),
):
    items, total = await service.list_history(current_user, params.skip, params.limit)
    return paginated_response(items, total, params.page, params.size, message=t("payment.history.success"))


@router.get("/{payment_id}", summary="Payment details", response_model=ApiResponse[PaymentResponseDTO])
async def get_payment(
    payment_id: int = Path(..., gt=0),
    current_user: CurrentUserDTO = Depends(get_current_user),
    service: PaymentApplicationService = Depends(get_payment_service),
):
    payment = await service.get_payment(payment_id, current_user)
    return success_response(data=payment, message=t("payment.get.success"))


@router.post("/{payment_id}/refund", summary="Refund payment (admin)", response_model=ApiResponse[PaymentResponseDTO])
async def refund_payment(
    body: RefundPaymentDTO,
    payment_id: int = Path(..., gt=0),
    current_user: CurrentUserDTO = Depends(get_current_admin),
    service: PaymentApplicationService = Depends(get_payment_service),
):
    payment = await service.refund_payment(payment_id, body, current_user)
    return success_response(data=payment, message=t("payment.refund.success"))
