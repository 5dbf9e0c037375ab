"""Remote build API access."""

from .client import ApiClient, ApiResponse, rewrite_url
from .credentials import TokenProvider

__all__ = ["ApiClient", "ApiResponse", "TokenProvider", "rewrite_url"]
