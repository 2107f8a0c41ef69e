"""
支付仓储实现 - 使用SQLAlchemy实现数据访问
"""
from typing import Optional, List, Tuple
from decimal import Decimal
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError

from domain.common.exceptions import ConflictException
from domain.order.entity import PaymentMethod
from domain.payment.entity import Payment, PaymentGateway, PaymentStatus
from domain.payment.repository import PaymentRepository
from domain.payment.service import PaymentNotFoundException
from infrastructure.models.payment import PaymentModel
from core.logging_config import get_logger


logger = get_logger(__name__)

_UPDATABLE_FIELDS = (
    "fees",
    "net_amount",
    "transaction_id",
    "gateway_reference",
    "authorization_url",
    "access_code",
    "gateway_response",
    "failure_reason",
    "callback_url",
    "customer",
    "authorization",
    "gateway_metadata",
    "ip_address",
    "risk_action",
    "refunded",
    "refunded_amount",
    "refunded_at",
    "refund_reason",
    "refund_reference",
    "paid_at",
    "failed_at",
    "completed_at",
)


class SQLAlchemyPaymentRepository(PaymentRepository):
    """支付仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: PaymentModel) -> Payment:
        """将数据库模型转换为领域实体"""
        return Payment(
            id=model.id,
            reference=model.reference,
            order_id=model.order_id,
            user_id=model.user_id,
            gateway=PaymentGateway(model.gateway),
            amount=model.amount,
            currency=model.currency,
            status=PaymentStatus(model.status),
            method=PaymentMethod(model.method) if model.method else None,
            fees=Decimal(str(model.fees or 0)),
            net_amount=Decimal(str(model.net_amount)) if model.net_amount is not None else None,
            transaction_id=model.transaction_id,
            gateway_reference=model.gateway_reference,
            authorization_url=model.authorization_url,
            access_code=model.access_code,
            gateway_response=model.gateway_response,
            failure_reason=model.failure_reason,
            callback_url=model.callback_url,
            customer=model.customer or {},
            authorization=model.authorization or {},
            gateway_metadata=model.gateway_metadata or {},
            ip_address=model.ip_address,
            risk_action=model.risk_action,
            refunded=model.refunded,
            refunded_amount=model.refunded_amount,
            refunded_at=model.refunded_at,
            refund_reason=model.refund_reason,
            refund_reference=model.refund_reference,
            initiated_at=model.initiated_at,
            paid_at=model.paid_at,
            failed_at=model.failed_at,
            completed_at=model.completed_at,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    def _to_model(self, entity: Payment) -> PaymentModel:
        """将领域实体转换为数据库模型"""
        return PaymentModel(
            reference=entity.reference,
            order_id=entity.order_id,
            user_id=entity.user_id,
            gateway=entity.gateway.value,
            status=entity.status.value,
            method=entity.method.value if entity.method else None,
            amount=entity.amount,
            currency=entity.currency,
            fees=entity.fees,
            net_amount=entity.net_amount,
            authorization_url=entity.authorization_url,
            access_code=entity.access_code,
            callback_url=entity.callback_url,
            customer=entity.customer,
            authorization=entity.authorization,
            gateway_metadata=entity.gateway_metadata,
            initiated_at=entity.initiated_at,
        )

    async def create(self, payment: Payment) -> Payment:
        """创建支付记录"""
        db_payment = self._to_model(payment)
        try:
            async with self.session.begin_nested():
                self.session.add(db_payment)
                await self.session.flush()
        except IntegrityError:
            logger.warning("payment_create_conflict", reference=payment.reference)
            raise ConflictException(f"Payment reference {payment.reference} already exists") from None
        await self.session.refresh(db_payment)
        logger.info(
            "payment_created",
            payment_id=db_payment.id,
            order_id=db_payment.order_id,
            gateway=db_payment.gateway,
        )
        return self._to_entity(db_payment)

    async def get_by_id(self, payment_id: int) -> Optional[Payment]:
        """根据ID获取支付"""
        result = await self.session.execute(
            select(PaymentModel).where(PaymentModel.id == payment_id)
        )
        db_payment = result.scalar_one_or_none()
        return self._to_entity(db_payment) if db_payment else None

    async def get_by_reference(self, reference: str) -> Optional[Payment]:
        """根据支付流水号获取支付"""
        result = await self.session.execute(
            select(PaymentModel).where(PaymentModel.reference == reference)
        )
        db_payment = result.scalar_one_or_none()
        return self._to_entity(db_payment) if db_payment else None

    async def get_latest_for_order(
        self,
        order_id: int,
        status: Optional[PaymentStatus] = None,
    ) -> Optional[Payment]:
        query = select(PaymentModel).where(PaymentModel.order_id == order_id)
        if status:
            query = query.where(PaymentModel.status == status.value)
        query = query.order_by(PaymentModel.created_at.desc(), PaymentModel.id.desc()).limit(1)
        result = await self.session.execute(query)
        db_payment = result.scalar_one_or_none()
        return self._to_entity(db_payment) if db_payment else None

    async def list_by_user(
        self,
        user_id: int,
        skip: int = 0,
        limit: int = 20,
    ) -> Tuple[List[Payment], int]:
        """获取用户的支付列表"""
        total = (
            await self.session.execute(
                select(func.count()).select_from(PaymentModel).where(PaymentModel.user_id == user_id)
            )
        ).scalar_one()
        query = (
            select(PaymentModel)
            .where(PaymentModel.user_id == user_id)
            .order_by(PaymentModel.created_at.desc(), PaymentModel.id.desc())
            .offset(skip)
            .limit(limit)
        )
        result = await self.session.execute(query)
        return [self._to_entity(p) for p in result.scalars().all()], int(total)

    async def update(self, payment: Payment) -> Payment:
        """更新支付记录"""
        db_payment = (
            await self.session.execute(select(PaymentModel).where(PaymentModel.id == payment.id))
        ).scalar_one_or_none()
        if db_payment is None:
            raise PaymentNotFoundException(payment.id)

        db_payment.status = payment.status.value
        db_payment.method = payment.method.value if payment.method else None
        for name in _UPDATABLE_FIELDS:
            setattr(db_payment, name, getattr(payment, name))

        await self.session.flush()
        await self.session.refresh(db_payment)
        logger.info("payment_updated", payment_id=db_payment.id, status=db_payment.status)
        return self._to_entity(db_payment)
