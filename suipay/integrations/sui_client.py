"""
Sui full node JSON-RPC client used as the payment event source.

Implements:
- Paged ``suix_queryEvents`` queries filtered by Move module
- Configurable ordering (ascending for indexing, descending for inspection)
- Bounded retry with exponential backoff on transport errors
"""
import abc
import enum
import itertools
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from suipay.config import Settings

logger = structlog.get_logger(__name__)

QUERY_EVENTS_METHOD = "suix_queryEvents"


class EventSourceError(Exception):
    """Raised when an event page cannot be fetched or decoded."""

    pass


class EventOrder(enum.Enum):
    """Order in which the node returns events."""

    ASCENDING = "ascending"
    DESCENDING = "descending"

    @property
    def descending(self) -> bool:
        return self is EventOrder.DESCENDING


@dataclass(frozen=True)
class EventId:
    """Position of one event in the chain's event stream."""

    tx_digest: str
    event_seq: str

    def to_json(self) -> Dict[str, str]:
        return {"txDigest": self.tx_digest, "eventSeq": self.event_seq}

    @classmethod
    def from_json(cls, data: Any) -> Optional["EventId"]:
        """Build an EventId from the node's ``{txDigest, eventSeq}`` shape."""
        if not isinstance(data, dict):
            return None
        tx_digest = data.get("txDigest", data.get("tx_digest"))
        event_seq = data.get("eventSeq", data.get("event_seq"))
        if tx_digest is None or event_seq is None:
            return None
        return cls(tx_digest=str(tx_digest), event_seq=str(event_seq))


@dataclass(frozen=True)
class EventFilter:
    """Selects events emitted by one Move module of one package."""

    package: str
    module: str

    def to_json(self) -> Dict[str, Any]:
        return {"MoveModule": {"package": self.package, "module": self.module}}


@dataclass
class EventPage:
    """One page of raw events plus the position to resume from."""

    events: List[Dict[str, Any]] = field(default_factory=list)
    next_cursor: Optional[EventId] = None
    has_next_page: bool = False


class EventSource(abc.ABC):
    """Abstract source of on-chain events."""

    @abc.abstractmethod
    async def fetch_page(
        self,
        event_filter: EventFilter,
        cursor: Optional[EventId],
        page_size: int,
        order: EventOrder = EventOrder.ASCENDING,
    ) -> EventPage:
        """
        Fetch one page of events.

        Raises:
            EventSourceError: On network or decode failure
        """


class SuiEventSource(EventSource):
    """
    Event source backed by a Sui full node's JSON-RPC API.

    Features:
    - Shared pooled ``httpx.AsyncClient``
    - Retries transport errors only; protocol errors fail immediately
    """

    def __init__(
        self,
        rpc_url: str,
        timeout_seconds: float = 10.0,
        max_attempts: int = 3,
        backoff_multiplier: float = 0.5,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize Sui event source.

        Args:
            rpc_url: JSON-RPC endpoint of the full node
            timeout_seconds: Per-request timeout
            max_attempts: Attempts per call when the transport fails
            backoff_multiplier: Exponential backoff multiplier (seconds)
            client: Optional pre-built HTTP client
        """
        self.rpc_url = rpc_url
        self.max_attempts = max_attempts
        self.backoff_multiplier = backoff_multiplier
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)
        self._owns_client = client is None
        self._request_ids = itertools.count(1)

        logger.info("sui_event_source_initialized", rpc_url=rpc_url)

    @classmethod
    def from_settings(cls, settings: Settings) -> "SuiEventSource":
        return cls(
            rpc_url=settings.sui_rpc_url,
            timeout_seconds=settings.sui_rpc_timeout_seconds,
            max_attempts=settings.sui_rpc_max_attempts,
        )

    async def _call(self, method: str, params: List[Any]) -> Any:
        """
        Perform one JSON-RPC call and return its ``result``.

        Args:
            method: RPC method name
            params: Positional parameters

        Returns:
            Any: The ``result`` member of the response

        Raises:
            EventSourceError: If the call fails or returns no result
        """
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._request_ids),
            "method": method,
            "params": params,
        }

        try:
            async for attempt in AsyncRetrying(
                retry=retry_if_exception_type(httpx.TransportError),
                stop=stop_after_attempt(self.max_attempts),
                wait=wait_exponential(multiplier=self.backoff_multiplier, max=8),
                reraise=True,
            ):
                with attempt:
                    response = await self._client.post(self.rpc_url, json=payload)
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPStatusError as e:
            logger.warning(
                "sui_rpc_http_error",
                method=method,
                status_code=e.response.status_code,
            )
            raise EventSourceError(f"Sui RPC returned HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.warning("sui_rpc_transport_error", method=method, error=str(e))
            raise EventSourceError(f"Sui RPC request failed: {str(e)}") from e
        except ValueError as e:
            raise EventSourceError(f"Sui RPC returned invalid JSON: {str(e)}") from e

        if not isinstance(body, dict):
            raise EventSourceError("Sui RPC response is not a JSON object")
        if body.get("error") is not None:
            raise EventSourceError(f"Sui RPC error: {body['error']}")
        if body.get("result") is None:
            raise EventSourceError("Sui RPC response has no result")

        return body["result"]

    async def fetch_page(
        self,
        event_filter: EventFilter,
        cursor: Optional[EventId],
        page_size: int,
        order: EventOrder = EventOrder.ASCENDING,
    ) -> EventPage:
        result = await self._call(
            QUERY_EVENTS_METHOD,
            [
                event_filter.to_json(),
                cursor.to_json() if cursor else None,
                page_size,
                order.descending,
            ],
        )

        data = result.get("data") if isinstance(result, dict) else None
        if not isinstance(data, list):
            raise EventSourceError("Sui RPC result has no event list")

        next_cursor_raw = result.get("nextCursor", result.get("next_cursor"))
        has_next_page = bool(result.get("hasNextPage", result.get("has_next_page", False)))

        page = EventPage(
            events=data,
            next_cursor=EventId.from_json(next_cursor_raw),
            has_next_page=has_next_page,
        )

        logger.debug(
            "sui_event_page_fetched",
            count=len(page.events),
            order=order.value,
            has_next_page=page.has_next_page,
        )

        return page

    async def get_chain_identifier(self) -> str:
        """Return the node's chain identifier (used for health checks)."""
        return str(await self._call("sui_getChainIdentifier", []))

    async def aclose(self) -> None:
        """Close the underlying HTTP client if this source created it."""
        if self._owns_client:
            await self._client.aclose()
