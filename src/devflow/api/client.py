"""HTTP client for the remote build/deploy API."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import requests

from ..config import ApiConfig

logger = logging.getLogger(__name__)


@dataclass
class ApiResponse:
    """Normalized envelope over the raw `{data, message, code}` JSON bodies."""

    success: bool
    data: Any = None
    message: Optional[str] = None
    code: Optional[str] = None
    status_code: Optional[int] = None

    def ok_with(self, key: str) -> bool:
        """True when the call succeeded and `data[key]` is present."""
        return self.success and isinstance(self.data, dict) and bool(self.data.get(key))

    @classmethod
    def failure(
        cls,
        message: str,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
        data: Any = None,
    ) -> "ApiResponse":
        return cls(success=False, data=data, message=message, code=code, status_code=status_code)


def rewrite_url(path: str, prefix_map: Dict[str, str]) -> str:
    """Prepend the base URL registered for the first matching path prefix."""
    for prefix, base_url in prefix_map.items():
        if path.startswith(prefix):
            return f"{base_url.rstrip('/')}{path}"
    return path


class ApiClient:
    """Issues authenticated JSON requests; failures come back as ApiResponse, never raised."""

    def __init__(
        self,
        config: ApiConfig,
        token_provider: Callable[[], Optional[str]],
        session: Optional[requests.Session] = None,
    ) -> None:
        self.config = config
        self.token_provider = token_provider
        self.session = session or requests.Session()

    def request(
        self,
        path: str,
        method: str = "GET",
        body: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> ApiResponse:
        timeout = timeout if timeout is not None else self.config.timeout
        url = rewrite_url(path, self.config.prefix_map)

        try:
            token = self.token_provider()
        except (ValueError, OSError) as exc:
            logger.error("HTTP request to %s skipped: reading auth token failed: %s", path, exc)
            return ApiResponse.failure(f"Reading auth token failed: {exc}")
        if not token:
            logger.error("HTTP request to %s skipped: no auth token", path)
            return ApiResponse.failure("No auth token available")

        headers = {
            "Authorization": _bearer(token),
            "Content-Type": "application/json",
        }

        try:
            response = self.session.request(
                method.upper(),
                url,
                params={k: str(v) for k, v in (params or {}).items()},
                json=body,
                headers=headers,
                timeout=timeout,
            )
        except requests.exceptions.Timeout:
            logger.error("HTTP %s %s timed out after %ss", method, path, timeout)
            return ApiResponse.failure(f"Request timed out after {timeout:g}s")
        except requests.exceptions.RequestException as exc:
            logger.error("HTTP %s %s failed: %s", method, path, exc)
            return ApiResponse.failure(str(exc) or "Request failed")

        payload = _decode_json(response)

        # 只有200才算作成功，其它都当作异常
        if response.status_code != 200:
            message = f"HTTP {response.status_code}"
            code = str(response.status_code)
            if isinstance(payload, dict):
                message = payload.get("message") or message
                if payload.get("code") is not None:
                    code = str(payload["code"])
            logger.error("HTTP %s %s failed: %s (code=%s)", method, path, message, code)
            return ApiResponse.failure(message, code=code, status_code=response.status_code)

        if not isinstance(payload, dict):
            logger.error("HTTP %s %s returned a non-JSON body", method, path)
            return ApiResponse.failure(
                "Invalid JSON response", status_code=response.status_code
            )

        code = payload.get("code")
        return ApiResponse(
            success=True,
            data=payload.get("data") or payload,
            message=payload.get("message"),
            code=str(code) if code is not None else None,
            status_code=response.status_code,
        )

    def close(self) -> None:
        self.session.close()


def _bearer(token: str) -> str:
    token = token.strip()
    if token.lower().startswith("bearer "):
        return token
    return f"Bearer {token}"


def _decode_json(response: requests.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None
