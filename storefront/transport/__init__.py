"""
Transport — HTTP/JSON calls with failures mapped onto storefront.errors.
"""

from storefront.transport._http import (
    GATEWAY_STATUSES,
    classify,
    HttpTransport,
)

__all__ = (
    "GATEWAY_STATUSES",
    "classify",
    "HttpTransport",
)
