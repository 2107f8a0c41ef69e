from .request_id import RequestIDMiddleware, get_request_id, get_client_ip
from .logging import LoggingMiddleware
from .locale import LocaleMiddleware
from .rate_limit import RateLimitMiddleware

__all__ = [
    "RequestIDMiddleware",
    "LoggingMiddleware",
    "LocaleMiddleware",
    "RateLimitMiddleware",
    "get_request_id",
    "get_client_ip",
]
