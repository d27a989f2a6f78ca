"""HTTP client for the orchestration and snapshot endpoints."""

from collections.abc import AsyncIterator
from typing import Any

import httpx

from artemis.core.errors import TransportError
from artemis.core.logging import get_logger
from artemis.core.schemas_events import StreamEvent
from artemis.core.schemas_orchestration import FormActionType
from artemis.core.schemas_snapshots import (
    BranchListResponse,
    SnapshotCreate,
    SnapshotListResponse,
    UISnapshot,
)
from artemis.core.sse import SSEDecoder

logger = get_logger(__name__)


class ArtemisClient:
    """Thin async client over the v1 API."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._http = httpx.AsyncClient(base_url=base_url.rstrip("/"), timeout=timeout, transport=transport)

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "ArtemisClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def stream_turn(self, body: dict[str, Any]) -> AsyncIterator[StreamEvent]:
        """
        Open an orchestration stream and yield decoded events.

        Args:
            body: Turn request (camelCase keys); None values are dropped

        Yields:
            StreamEvent items in server emission order

        Raises:
            TransportError: On network failure or a non-2xx response
        """
        payload = {k: v for k, v in body.items() if v is not None}
        decoder = SSEDecoder()

        try:
            async with self._http.stream("POST", "/v1/chat/orchestrate/stream", json=payload) as response:
                if response.status_code >= 400:
                    await response.aread()
                    raise TransportError(
                        f"Turn request failed with HTTP {response.status_code}",
                        status_code=response.status_code,
                    )

                async for chunk in response.aiter_text():
                    for event in decoder.feed(chunk):
                        yield event

            for event in decoder.close():
                yield event

        except httpx.HTTPError as e:
            raise TransportError(f"Stream interrupted: {e}") from e

    async def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        try:
            response = await self._http.request(method, url, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise TransportError(
                f"{method} {url} failed with HTTP {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise TransportError(f"{method} {url} failed: {e}") from e
        return response.json()

    async def create_snapshot(self, session_id: str, create: SnapshotCreate) -> UISnapshot:
        data = await self._request(
            "POST",
            f"/v1/chat/sessions/{session_id}/ui-snapshots",
            json=create.model_dump(mode="json", by_alias=True),
        )
        return UISnapshot.model_validate(data)

    async def list_snapshots(
        self,
        session_id: str,
        branch: str | None = None,
        include_inactive: bool = False,
    ) -> list[UISnapshot]:
        params: dict[str, Any] = {"includeInactive": str(include_inactive).lower()}
        if branch:
            params["branch"] = branch
        data = await self._request("GET", f"/v1/chat/sessions/{session_id}/ui-snapshots", params=params)
        return SnapshotListResponse.model_validate(data).snapshots

    async def list_branches(self, session_id: str) -> BranchListResponse:
        data = await self._request("GET", f"/v1/chat/sessions/{session_id}/ui-snapshots/branches")
        return BranchListResponse.model_validate(data)

    async def deactivate_snapshots(self, session_id: str, snapshot_ids: list[str]) -> int:
        if not snapshot_ids:
            return 0
        data = await self._request(
            "PATCH",
            f"/v1/chat/sessions/{session_id}/ui-snapshots/bulk",
            json={"snapshotIds": snapshot_ids},
        )
        return int(data.get("updated", 0))

    async def execute_action(
        self,
        action_type: FormActionType,
        payload: dict[str, Any],
        session_id: str | None = None,
    ) -> Any:
        """
        Submit a confirmed write action.

        Returns:
            The ERP result for the write

        Raises:
            TransportError: If the write was rejected or the request failed
        """
        body: dict[str, Any] = {"actionType": action_type.value, "payload": payload}
        if session_id:
            body["sessionId"] = session_id
        data = await self._request("POST", "/v1/actions/execute", json=body)
        return data.get("result")
