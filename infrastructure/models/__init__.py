"""Infrastructure models package exports."""
from .base import Base, metadata
from .user import UserModel
from .product import ProductModel
from .order import OrderModel, OrderItemModel
from .payment import PaymentModel

__all__ = [
    "Base",
    "metadata",
    "UserModel",
    "ProductModel",
    "OrderModel",
    "OrderItemModel",
    "PaymentModel",
]
