from .locale import LocaleMiddleware
from .logging import LoggingMiddleware
from .request_id import RequestIDMiddleware, get_client_ip

__all__ = [
    "LocaleMiddleware",
    "LoggingMiddleware",
    "RequestIDMiddleware",
    "get_client_ip",
]
