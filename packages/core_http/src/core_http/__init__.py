from .client import fetch_bytes, get_http_client
from .errors import attach_standard_error_handlers, raise_http_error

__all__ = ["fetch_bytes", "get_http_client", "attach_standard_error_handlers", "raise_http_error"]
