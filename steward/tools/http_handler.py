"""
HTTP tool handler - runs tools hosted behind a remote endpoint.

Each call is ``POST {base_url}/tools/{tool_name}`` with a JSON body
``{"input": {...}, "context": {...}}``; the response body is the handler
envelope ``{"success": bool, "data"?: ..., "error"?: ...}``.

HTTP and transport failures are turned into failure envelopes carrying an
explicit ``error_category`` so the executor does not have to guess.
"""

import logging
from typing import Any, Dict, Optional

import httpx

from .models import CallerContext

logger = logging.getLogger(__name__)


def _category_for_status(status_code: int) -> str:
    """Map an HTTP status code to an ErrorCategory value."""
    if status_code in (408, 425, 429, 502, 503, 504):
        return "transient"
    if status_code in (401, 403):
        return "user_action_required"
    if status_code >= 500:
        return "permanent_system"
    return "permanent_logic"


class HttpToolHandler:
    """
    Tool handler that forwards calls to a remote tool service.

    Usage:
        handler = HttpToolHandler("https://tools.internal", api_key="...")
        executor = ResilientToolExecutor(catalog, handler)
        ...
        await handler.close()
    """

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._base_url = base_url.rstrip("/")
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self._owns_client = client is None
        # No client-side timeout; the executor owns the deadline
        self._client = client or httpx.AsyncClient(headers=headers, timeout=None)
        if client is not None:
            self._client.headers.update(headers)

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def execute(
        self,
        tool_name: str,
        input: Dict[str, Any],
        context: CallerContext,
    ) -> Dict[str, Any]:
        url = f"{self._base_url}/tools/{tool_name}"
        try:
            response = await self._client.post(
                url,
                json={"input": input, "context": context.to_dict()},
            )
        except httpx.TransportError as e:
            logger.warning(f"Transport error calling {tool_name}: {e}")
            return {
                "success": False,
                "error": f"Network error: {e}",
                "error_category": "transient",
            }

        if response.status_code >= 400:
            return {
                "success": False,
                "error": f"HTTP {response.status_code}: {response.text[:200]}",
                "error_category": _category_for_status(response.status_code),
            }

        try:
            body = response.json()
        except ValueError:
            return {
                "success": False,
                "error": "Tool service returned a non-JSON body",
                "error_category": "permanent_system",
            }
        return body
