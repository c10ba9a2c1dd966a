"""Request-scoped middleware: correlation ids, principals and response headers."""

from .request_id import RequestIdMiddleware, bind_principal, principal_ctx_var, request_id_ctx_var
from .security_headers import SecurityHeadersMiddleware

__all__ = [
    "RequestIdMiddleware",
    "SecurityHeadersMiddleware",
    "bind_principal",
    "principal_ctx_var",
    "request_id_ctx_var",
]
