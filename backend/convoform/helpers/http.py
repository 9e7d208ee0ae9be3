"""Shared JSON-over-HTTP plumbing for the collaborator clients."""

import logging
from typing import Any, Dict, Optional, Type

import httpx

from convoform.config import settings
from convoform.exceptions import ConvoformError

logger = logging.getLogger(__name__)


class JsonApiClient:
    """Base class for the forms and AI clients.

    Subclasses set ``error_cls``; every transport failure, non-2xx response
    or undecodable body is raised as that error. One ``httpx.AsyncClient``
    is opened per request.
    """

    error_cls: Type[ConvoformError] = ConvoformError
    service_name = "API"

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            base_url: Service root
            token: Bearer token (defaults to API_TOKEN)
            timeout: Request timeout in seconds (defaults to HTTP_TIMEOUT_SECONDS)
            transport: Optional httpx transport, e.g. ``httpx.ASGITransport(app=app)``
        """
        self.base_url = base_url.rstrip("/")
        self.token = token if token is not None else settings.api_token
        self.timeout = timeout or settings.http_timeout_seconds
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _error(self, message: str, status_code: Optional[int] = None) -> ConvoformError:
        return self.error_cls(message)

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
                headers=self._headers(),
            ) as client:
                response = await client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            logger.error("%s %s %s timed out", self.service_name, method, path)
            raise self._error(f"{method} {path} timed out") from e
        except httpx.HTTPError as e:
            logger.error("%s %s %s failed: %s", self.service_name, method, path, e)
            raise self._error(f"{method} {path} failed: {e}") from e

        if response.status_code >= 400:
            detail = error_detail(response)
            logger.warning(
                "%s %s %s returned %d: %s",
                self.service_name, method, path, response.status_code, detail,
            )
            raise self._error(detail, response.status_code)

        try:
            return response.json()
        except ValueError as e:
            raise self._error(f"{method} {path} returned invalid JSON") from e


def error_detail(response: httpx.Response) -> str:
    """Human readable error from a FastAPI (``detail``) or plain (``error``) body."""
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        return str(body.get("detail") or body.get("error") or body)
    return str(body)
