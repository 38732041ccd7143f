"""
HTTP client wrapper for the Supabase REST, auth and storage APIs.
Handles headers, retries and error mapping; degrades to a fail-fast mode when
the service is not configured.
"""

import asyncio
import os
import time
from typing import Optional, Dict, Any

import httpx

from ..config import settings
from .auth import AuthManager
from .exceptions import (
    DataAccessError,
    ServiceNotConfiguredError,
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    NotFoundError,
    RateLimitError,
)
from ..utils.logger import get_logger

logger = get_logger(__name__)

# Raw HTTP debug toggle (set SPRINTDESK_HTTP_DEBUG=1 to enable)
_HTTP_DEBUG = os.environ.get("SPRINTDESK_HTTP_DEBUG", "0") in {"1", "true", "True"}

IDEMPOTENT_METHODS = frozenset({"GET", "HEAD", "PUT", "PATCH", "DELETE"})


class BackendClient:
    """HTTP client for the remote data service with error mapping and retries."""

    def __init__(
        self,
        auth_manager: Optional[AuthManager] = None,
        *,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        max_retries: Optional[int] = None,
        timeout: Optional[float] = None,
    ):
        self.auth_manager = auth_manager or AuthManager()
        if base_url is None:
            self.base_url = (settings.supabase_url or "").rstrip("/")
            self.configured = settings.is_configured
        else:
            self.base_url = base_url.rstrip("/")
            self.configured = bool(self.base_url and self.auth_manager.anon_key)
        self.max_retries = settings.supabase_max_retries if max_retries is None else max_retries
        self.timeout = settings.supabase_timeout if timeout is None else timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        if self.configured:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.timeout),
                transport=self._transport,
            )
        else:
            logger.warning("Remote data service is not configured; running in local-only mode")
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    async def aclose(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def request(
        self,
        method: str,
        path: str,
        json: Any = None,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        use_session: bool = True,
        **kwargs
    ) -> Any:
        """Make a request to the remote data service."""
        if not self.configured:
            raise ServiceNotConfiguredError()
        if not self._client:
            raise RuntimeError("Client not initialized. Use 'async with' context manager.")

        request_headers = (
            self.auth_manager.get_auth_headers() if use_session else self.auth_manager.get_basic_headers()
        )
        if headers:
            request_headers.update(headers)

        logger.debug(f"API Request: {method} {path}")
        if params:
            logger.debug(f"  Params: {params}")
        if json is not None:
            logger.debug(f"  Body: {self._mask_sensitive_data(json)}")

        retries = self.max_retries if method.upper() in IDEMPOTENT_METHODS else 0
        for attempt in range(retries + 1):
            start_ts = time.monotonic()
            try:
                response = await self._client.request(
                    method=method,
                    url=path,
                    json=json,
                    params=params,
                    headers=request_headers,
                    **kwargs
                )
            except httpx.TimeoutException:
                duration_ms = int((time.monotonic() - start_ts) * 1000)
                logger.warning(
                    f"Request timeout (attempt {attempt + 1}/{retries + 1}): {method} {path} | duration={duration_ms} ms"
                )
                if attempt == retries:
                    raise DataAccessError("Request timeout")
                await asyncio.sleep(2 ** attempt)
                continue
            except httpx.NetworkError as e:
                logger.warning(f"Network error (attempt {attempt + 1}/{retries + 1}): {e}")
                if attempt == retries:
                    raise DataAccessError(f"Network error: {e}")
                await asyncio.sleep(2 ** attempt)
                continue

            logger.debug(f"API Response: {response.status_code} for {method} {path}")
            if response.status_code == 429 and attempt < retries:
                retry_after = response.headers.get("Retry-After")
                sleep_sec = 1.0
                if retry_after:
                    try:
                        sleep_sec = max(sleep_sec, float(retry_after))
                    except ValueError:
                        logger.debug(f"Ignoring unparseable Retry-After header {retry_after!r}")
                logger.warning(f"Rate limited (429). Sleeping {sleep_sec:.2f}s before retry")
                await asyncio.sleep(sleep_sec)
                continue

            result = self._handle_response(response)
            duration_ms = int((time.monotonic() - start_ts) * 1000)
            logger.debug(f"  Request duration: {duration_ms} ms (attempt {attempt + 1})")
            return result

        raise DataAccessError("Max retries exceeded")

    def _mask_sensitive_data(self, data: Any) -> Any:
        """Mask sensitive data in logs."""
        if not isinstance(data, dict):
            return data

        masked = data.copy()
        sensitive_keys = ['password', 'api_key', 'apikey', 'token', 'secret']

        for key in masked:
            if any(sensitive in key.lower() for sensitive in sensitive_keys):
                masked[key] = "***MASKED***"

        return masked

    def _handle_response(self, response: httpx.Response) -> Any:
        """Handle HTTP response, raising appropriate exceptions for errors.
        Returns decoded JSON (or None for empty bodies) on success.
        """
        if 200 <= response.status_code < 300:
            if _HTTP_DEBUG:
                logger.debug(
                    "HTTP DEBUG success: %s %s -> %s\nBody: %s",
                    response.request.method,
                    response.request.url,
                    response.status_code,
                    response.text,
                )
            if response.status_code == 204 or not response.content:
                return None
            try:
                return response.json()
            except ValueError:
                return response.text

        try:
            parsed = response.json()
        except ValueError:
            parsed = None
        if isinstance(parsed, dict):
            error_data = parsed
            error_message = (
                parsed.get("message")
                or parsed.get("msg")
                or parsed.get("error_description")
                or parsed.get("error")
                or f"HTTP {response.status_code}"
            )
        else:
            error_data = {"raw": response.text}
            error_message = f"HTTP {response.status_code}"
        logger.error(f"API Error {response.status_code}: {error_message}")

        status = response.status_code
        if status == 401:
            raise AuthenticationError(error_message, status_code=status, details=error_data)
        elif status == 403:
            raise AuthorizationError(error_message, status_code=status, details=error_data)
        elif status == 404:
            raise NotFoundError(error_message, status_code=status, details=error_data)
        elif status == 409:
            raise ConflictError(error_message, status_code=status, details=error_data)
        elif status == 429:
            raise RateLimitError(error_message, status_code=status, details=error_data)
        else:
            raise DataAccessError(error_message, status_code=status, details=error_data)

    # Convenience methods
    async def get(self, path: str, params: Optional[Dict[str, Any]] = None, **kwargs) -> Any:
        """Make GET request."""
        return await self.request("GET", path, params=params, **kwargs)

    async def post(self, path: str, json: Any = None, params: Optional[Dict[str, Any]] = None, **kwargs) -> Any:
        """Make POST request."""
        return await self.request("POST", path, json=json, params=params, **kwargs)

    async def patch(self, path: str, json: Any = None, params: Optional[Dict[str, Any]] = None, **kwargs) -> Any:
        """Make PATCH request."""
        return await self.request("PATCH", path, json=json, params=params, **kwargs)

    async def delete(self, path: str, params: Optional[Dict[str, Any]] = None, **kwargs) -> Any:
        """Make DELETE request."""
        return await self.request("DELETE", path, params=params, **kwargs)
