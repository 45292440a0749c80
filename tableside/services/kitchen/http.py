"""
HTTP Order Source

Production order source for a kitchen display: polls the platform API
with the owner's bearer token.

    GET   /api/restaurants/{id}/orders     full order set
    PATCH /api/orders/{id}/status          lifecycle transition

Non-2xx responses are rebuilt into the domain error types; transport
failures, timeouts and unreadable bodies become TransientIO.

Author: Khalil Bannouri
Version: 1.0.0
"""

import logging
from typing import Optional, Sequence

import httpx
import pydantic

from tableside.core.errors import TablesideError, TransientIO, error_for_status
from tableside.models import OrderStatus
from tableside.schemas import OrderListResponse, OrderResponse
from tableside.services.kitchen.base import OrderSource
from tableside.services.lifecycle import TransitionContext

logger = logging.getLogger(__name__)


def error_from_response(response: httpx.Response) -> TablesideError:
    """Map an error response to its domain error."""
    detail = None
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        detail = body.get("detail") or body.get("error")
    if detail is not None and not isinstance(detail, str):
        detail = str(detail)
    return error_for_status(response.status_code, detail)


def parse_response(schema, response: httpx.Response):
    """Validate a 2xx body; a proxy page or a changed schema is not fatal."""
    try:
        return schema.model_validate(response.json())
    except (ValueError, pydantic.ValidationError) as e:
        logger.warning(f"Unreadable response from {response.request.url}: {e}")
        raise TransientIO(f"Unreadable response from order API ({response.status_code})") from e


class HttpOrderSource(OrderSource):
    """
    Order source backed by the platform HTTP API.

    Args:
        base_url: API root, e.g. ``http://localhost:8001``
        token: Owner/kitchen bearer token
        timeout: Per-request timeout in seconds
        client: Pre-built client (tests pass one with a mock transport)
    """

    def __init__(
        self,
        base_url: str,
        token: str,
        timeout: float = 8.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)
        self.headers = {"Authorization": f"Bearer {token}"}
        logger.info(f"HttpOrderSource initialized ({base_url})")

    @property
    def source_name(self) -> str:
        return "http"

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            response = await self.client.request(method, url, headers=self.headers, **kwargs)
        except httpx.TimeoutException as e:
            logger.warning(f"{method} {url} timed out")
            raise TransientIO(f"Request timed out: {method} {url}") from e
        except httpx.RequestError as e:
            logger.warning(f"{method} {url} failed: {e}")
            raise TransientIO(f"Cannot reach order API: {e}") from e

        if response.is_error:
            raise error_from_response(response)
        return response

    async def fetch_orders(self, restaurant_id: str) -> Sequence[OrderResponse]:
        response = await self._request("GET", f"/api/restaurants/{restaurant_id}/orders")
        return parse_response(OrderListResponse, response).orders

    async def update_status(
        self,
        order_id: str,
        target_status: OrderStatus,
        context: Optional[TransitionContext] = None,
    ) -> OrderResponse:
        payload: dict = {"status": OrderStatus(target_status).value}
        if context is not None:
            if context.estimated_ready_time is not None:
                payload["estimated_ready_time"] = context.estimated_ready_time.isoformat()
            if context.cancellation_reason:
                payload["cancellation_reason"] = context.cancellation_reason

        response = await self._request("PATCH", f"/api/orders/{order_id}/status", json=payload)
        return parse_response(OrderResponse, response)

    async def close(self) -> None:
        if self._owns_client:
            await self.client.aclose()
