"""用例边界的异常转换"""
from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from core.logging_config import get_logger
from domain.common.exceptions import BusinessException, OrderValidationException

logger = get_logger(__name__)


@contextmanager
def translate_errors(operation: str) -> Iterator[None]:
    """
    业务异常原样抛出；其它异常记录原始错误后包装为
    OrderValidationException("Failed to <operation>: <message>")
    """
    try:
        yield
    except BusinessException:
        raise
    except Exception as exc:
        logger.error("use_case_failed", operation=operation, error=str(exc), exc_info=True)
        raise OrderValidationException(f"Failed to {operation}: {exc}") from exc
