"""Product domain exports."""
from .entity import Product
from .repository import ProductRepository

__all__ = ["Product", "ProductRepository"]
