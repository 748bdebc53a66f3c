"""Async JMAP client: sends batched method calls and correlates the responses."""

import logging
from collections.abc import Callable
from typing import Any, TypeVar

import httpx

from .config import JmapConfig
from .errors import MethodError, ResponseShapeError, TransportError
from .protocol import (
    CallHandle,
    GetResult,
    Method,
    MethodResponse,
    QueryResult,
    RequestBuilder,
    SetResult,
    parse_method_responses,
)
from .session import JmapSession

logger = logging.getLogger("jmapmail.client")

T = TypeVar("T")


class BatchResult:
    """Method responses from one exchange, addressable by the handles that produced them."""

    def __init__(self, responses: list[MethodResponse], session_state: str | None = None):
        self.responses = responses
        self.session_state = session_state

    def response(self, handle: CallHandle) -> MethodResponse:
        """Return the raw response for a call.

        Responses come back in call order, so the handle's index is tried
        first; a server that emits extra responses is handled by falling
        back to a call-id scan.
        """
        if handle.index < len(self.responses):
            candidate = self.responses[handle.index]
            if candidate.call_id == handle.call_id:
                return candidate
        for candidate in self.responses:
            if candidate.call_id == handle.call_id:
                return candidate
        raise ResponseShapeError(f"No response for call {handle.call_id} ({handle.method})")

    def _extract(self, handle: CallHandle, parse: Callable[[dict[str, Any], str], T]) -> T:
        resp = self.response(handle)
        if resp.is_error:
            raise MethodError(
                handle.method,
                resp.result.get("type", "serverFail"),
                resp.result.get("description", ""),
            )
        if resp.name != handle.method:
            raise ResponseShapeError(
                f"Expected {handle.method} response for call {handle.call_id}, got {resp.name}"
            )
        return parse(resp.result, handle.method)

    def get(self, handle: CallHandle) -> GetResult:
        return self._extract(handle, GetResult.from_dict)

    def query(self, handle: CallHandle) -> QueryResult:
        return self._extract(handle, QueryResult.from_dict)

    def set(self, handle: CallHandle) -> SetResult:
        return self._extract(handle, SetResult.from_dict)


class JmapClient:
    """Async client for a JMAP API endpoint.

    Use as an async context manager; the underlying httpx client lives for
    the duration of the block.
    """

    def __init__(
        self,
        session: JmapSession,
        config: JmapConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.session = session
        self.config = config or JmapConfig()
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "JmapClient":
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(self.config.timeout_seconds),
            transport=self._transport,
        )
        return self

    async def __aexit__(self, *args) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("Client not initialized. Use async context manager.")
        return self._client

    @property
    def account_id(self) -> str:
        return self.session.account_id

    @property
    def auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.session.access_token}"}

    def new_request(self) -> RequestBuilder:
        return RequestBuilder()

    async def execute(self, request: RequestBuilder) -> BatchResult:
        """Send every call in ``request`` as one HTTP POST.

        Raises:
            TransportError: If the exchange fails; no call result is usable then.
        """
        if not len(request):
            return BatchResult([])

        method_names = ", ".join(call.name for call in request.calls)
        logger.debug(f"JMAP request: {method_names}")

        try:
            response = await self.client.post(
                self.session.api_url,
                headers={**self.auth_headers, "Content-Type": "application/json"},
                json=request.to_dict(),
            )
        except httpx.HTTPError as e:
            raise TransportError(f"JMAP request failed: {e}") from e

        if response.is_error:
            logger.error(f"JMAP request failed with HTTP {response.status_code}: {method_names}")
            raise TransportError(
                f"JMAP request failed: {response.status_code}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise TransportError("JMAP response was not valid JSON") from e

        responses, session_state = parse_method_responses(data)
        return BatchResult(responses, session_state)

    async def call(self, method: Method | str, arguments: dict[str, Any]) -> tuple[BatchResult, CallHandle]:
        """Convenience for a single-call request."""
        request = self.new_request()
        handle = request.add(method, arguments)
        return await self.execute(request), handle
