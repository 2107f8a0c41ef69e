"""
订单API路由 - FastAPI表现层
"""
from fastapi import APIRouter, Depends, Path, Request

from api.dependencies import get_current_admin, get_current_user, get_order_service
from application.dto import CurrentUserDTO
from application.dtos.orders import (
    CalculateOrderDTO,
    CancelOrderDTO,
    CreateOrderDTO,
    CreateOrderResponseDTO,
    OrderCalculationDTO,
    OrderQueryParams,
    OrderResponseDTO,
    SellerPayoutDTO,
    SellerPayoutResponseDTO,
    UpdateOrderStatusDTO,
)
from application.services.order_service import OrderApplicationService
from core.i18n import t
from core.response import PaginatedData, Response as ApiResponse, paginated_response, success_response

router = APIRouter(
    prefix="/orders",
    tags=["订单管理"]
)


@router.post("/calculate", summary="计算订单金额", response_model=ApiResponse[OrderCalculationDTO])
async def calculate_order(
    body: CalculateOrderDTO,
    current_user: CurrentUserDTO = Depends(get_current_user),
    service: OrderApplicationService = Depends(get_order_service),
):
    """
    计算购物车金额，不修改任何状态

    - 服务费 3.5%，税 7.5%（基于商品金额 + 服务费）
    - 不可售商品列入 unavailable_items 且不计入合计
    """
    result = await service.calculate(body, current_user)
    return success_response(data=result, message=t("order.calculate.success"))


@router.post("", summary="创建订单", response_model=ApiResponse[CreateOrderResponseDTO], status_code=201)
async def create_order(
    request: Request,
    body: CreateOrderDTO,
    current_user: CurrentUserDTO = Depends(get_current_user),
    service: OrderApplicationService = Depends(get_order_service),
):
    """
    创建订单

    提供 payment_method（例如 paystack）时同时初始化支付；初始化失败时订单仍然返回。
    """
    result = await service.create_order(body, current_user, origin=request.headers.get("origin"))
    return success_response(data=result, message=t("order.create.success"))


@router.get("", summary="订单列表", response_model=ApiResponse[PaginatedData[OrderResponseDTO]])
async def list_orders(
    params: OrderQueryParams = Depends(),
    current_user: CurrentUserDTO = Depends(get_current_user),
    service: OrderApplicationService = Depends(get_order_service),
):
    """管理员返回全部订单，其他用户返回自己作为买家或卖家的订单"""
    items, total = await service.list_orders(params, current_user)
    return paginated_response(items, total, params.page, params.limit, message=t("order.list.success"))


@router.get("/my/purchases", summary="我的购买", response_model=ApiResponse[PaginatedData[OrderResponseDTO]])
async def my_purchases(
    params: OrderQueryParams = Depends(),
    current_user: CurrentUserDTO = Depends(get_current_user),
    service: OrderApplicationService = Depends(get_order_service),
):
    items, total = await service.list_purchases(params, current_user)
    return paginated_response(items, total, params.page, params.limit, message=t("order.list.success"))


@router.get("/my/sales", summary="我的销售", response_model=ApiResponse[PaginatedData[OrderResponseDTO]])
async def my_sales(
    params: OrderQueryParams = Depends(),
    current_user: CurrentUserDTO = Depends(get_current_user),
    service: OrderApplicationService = Depends(get_order_service),
):
    items, total = await service.list_sales(params, current_user)
    return paginated_response(items, total, params.page, params.limit, message=t("order.list.success"))


@router.get("/user/{user_id}", summary="指定用户的订单（管理员）", response_model=ApiResponse[PaginatedData[OrderResponseDTO]])
async def user_orders(
    user_id: int = Path(..., gt=0),
    params: OrderQueryParams = Depends(),
    current_user: CurrentUserDTO = Depends(get_current_admin),
    service: OrderApplicationService = Depends(get_order_service),
):
    items, total = await service.list_user_orders(user_id, params, current_user)
    return paginated_response(items, total, params.page, params.limit, message=t("order.list.success"))


@router.get("/number/{order_number}", summary="按订单号查询", response_model=ApiResponse[OrderResponseDTO])
async def get_order_by_number(
    order_number: str,
    current_user: CurrentUserDTO = Depends(get_current_user),
    service: OrderApplicationService = Depends(get_order_service),
):
    order = await service.get_order_by_number(order_number, current_user)
    return success_response(data=order, message=t("order.get.success"))


@router.get("/{order_id}", summary="订单详情", response_model=ApiResponse[OrderResponseDTO])
async def get_order(
    order_id: int = Path(..., gt=0),
    current_user: CurrentUserDTO = Depends(get_current_user),
    service: OrderApplicationService = Depends(get_order_service),
):
    """买家、订单内卖家或管理员可查看"""
    order = await service.get_order(order_id, current_user)
    return success_response(data=order, message=t("order.get.success"))


@router.patch("/{order_id}/status", summary="更新订单状态", response_model=ApiResponse[OrderResponseDTO])
async def update_order_status(
    body: UpdateOrderStatusDTO,
    order_id: int = Path(..., gt=0),
    current_user: CurrentUserDTO = Depends(get_current_user),
    service: OrderApplicationService = Depends(get_order_service),
):
    """
    更新订单状态

    - 卖家：CONFIRMED / PROCESSING / SHIPPED
    - 买家：CANCELLED
    - 管理员：任意状态，但仍受状态机约束
    """
    order = await service.update_status(order_id, body, current_user)
    return success_response(data=order, message=t("order.status.update.success"))


@router.post("/{order_id}/cancel", summary="取消订单", response_model=ApiResponse[OrderResponseDTO])
async def cancel_order(
    body: CancelOrderDTO,
    order_id: int = Path(..., gt=0),
    current_user: CurrentUserDTO = Depends(get_current_user),
    service: OrderApplicationService = Depends(get_order_service),
):
    order = await service.cancel_order(order_id, body, current_user)
    return success_response(data=order, message=t("order.cancel.success"))


@router.post("/{order_id}/payout", summary="卖家结算（管理员）", response_model=ApiResponse[SellerPayoutResponseDTO])
async def process_payout(
    body: SellerPayoutDTO,
    order_id: int = Path(..., gt=0),
    current_user: CurrentUserDTO = Depends(get_current_admin),
    service: OrderApplicationService = Depends(get_order_service),
):
    payout = await service.process_payout(order_id, body, current_user)
    return success_response(data=payout, message=t("order.payout.success"))
