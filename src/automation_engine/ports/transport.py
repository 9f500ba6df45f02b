"""Transport port: outbound HTTP calls and email delivery."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional, Union

import httpx
import structlog

from ..core.config import TransportConfig
from ..core.errors import NetworkError, TransportError


logger = structlog.get_logger()


@dataclass
class HttpResponse:
    """Status and decoded body of an HTTP call."""
    status: int
    body: Any = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


class Transport(ABC):
    """
    Outbound side effects for webhook and email actions.

    `http_call` raises NetworkError when the endpoint cannot be reached and
    returns the response otherwise, whatever its status. `send_email` raises
    TransportError when delivery fails.
    """

    @abstractmethod
    async def http_call(
        self,
        url: str,
        method: str = "POST",
        body: Any = None,
        headers: Optional[dict[str, str]] = None,
    ) -> HttpResponse:
        raise NotImplementedError

    @abstractmethod
    async def send_email(
        self,
        to: Union[str, list[str]],
        subject: str,
        body: str,
        record: Optional[dict[str, Any]] = None,
    ) -> None:
        raise NotImplementedError


class HttpxTransport(Transport):
    """
    Transport on httpx.

    Email goes out as a JSON POST of {to, subject, body, record} to the
    configured email endpoint.
    """

    def __init__(
        self,
        config: Optional[TransportConfig] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.config = config or TransportConfig()
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.config.http_timeout_seconds,
                headers=self.config.default_headers,
            )
        return self._client

    async def close(self) -> None:
        """Close the underlying client if this transport created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def http_call(
        self,
        url: str,
        method: str = "POST",
        body: Any = None,
        headers: Optional[dict[str, str]] = None,
    ) -> HttpResponse:
        method = method.upper()
        send_body = body is not None and method != "GET"

        try:
            response = await self._get_client().request(
                method,
                url,
                json=body if send_body else None,
                headers=headers or None,
            )
        except httpx.TimeoutException:
            raise NetworkError(f"Request to {url} timed out", url=url)
        except httpx.HTTPError as e:
            raise NetworkError(str(e) or f"Request to {url} failed", url=url)

        try:
            data = response.json()
        except ValueError:
            data = response.text

        logger.debug("http_call_completed", url=url, method=method, status=response.status_code)
        return HttpResponse(status=response.status_code, body=data)

    async def send_email(
        self,
        to: Union[str, list[str]],
        subject: str,
        body: str,
        record: Optional[dict[str, Any]] = None,
    ) -> None:
        endpoint = self.config.email_endpoint
        if not endpoint:
            raise TransportError("Email transport not configured")

        response = await self.http_call(
            endpoint,
            "POST",
            {"to": to, "subject": subject, "body": body, "record": record},
        )
        if not response.ok:
            message = None
            if isinstance(response.body, dict):
                message = response.body.get("error")
            raise TransportError(
                message or f"Email endpoint returned {response.status}",
                url=endpoint,
            )
