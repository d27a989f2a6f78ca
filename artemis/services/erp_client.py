"""ERP REST client for catalog endpoints.

Uses httpx for async HTTP requests. Each catalog endpoint is a POST to
``{ERP_BASE_URL}/{controller}/{method}``; the ERP wraps results in an
envelope with ``Success`` / ``ErrorMessage``.
"""

from typing import Any

import httpx

from artemis.core.config import get_settings
from artemis.core.logging import get_logger
from artemis.core.schemas_orchestration import FormActionType
from artemis.core.tool_catalog import WRITE_ENDPOINTS, ApiEndpoint, EndpointKind, get_endpoint

logger = get_logger(__name__)


class ErpError(Exception):
    """An ERP call could not be completed."""


class ErpClient:
    """Executes catalog endpoints against the ERP."""

    def __init__(self, base_url: str, timeout: float = 30.0, transport: httpx.AsyncBaseTransport | None = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls) -> "ErpClient":
        settings = get_settings()
        return cls(settings.ERP_BASE_URL, timeout=settings.ERP_TIMEOUT_SECONDS)

    def _build_body(self, endpoint: ApiEndpoint, parameters: dict[str, Any]) -> dict[str, Any]:
        if endpoint.kind == EndpointKind.EXPORT:
            return {
                "Format": 1,
                "ExportFilter": parameters.get("filter"),
                **{k: v for k, v in parameters.items() if k != "filter"},
            }
        if endpoint.kind == EndpointKind.IMPORT:
            return {"Data": parameters, "ValidateOnly": False}
        return dict(parameters)

    async def _post(self, endpoint: ApiEndpoint, parameters: dict[str, Any]) -> Any:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            resp = await client.post(
                f"{self.base_url}{endpoint.path}",
                json=self._build_body(endpoint, parameters),
            )
            resp.raise_for_status()
            payload = resp.json()

        if isinstance(payload, dict) and "Success" in payload:
            if not payload["Success"]:
                raise ErpError(payload.get("ErrorMessage") or f"{endpoint.id} failed")
            return payload.get("Data", payload.get("Result"))
        return payload

    async def execute(self, target_id: str, parameters: dict[str, Any] | None = None) -> Any:
        """
        Run one read endpoint the engine asked for.

        Args:
            target_id: Catalog endpoint id
            parameters: Endpoint parameters from the decision

        Returns:
            The endpoint's result data

        Raises:
            ErpError: If the id is not in the catalog or the ERP reports failure
            httpx.HTTPError: On transport or HTTP status failures
        """
        endpoint = get_endpoint(target_id)
        if endpoint is None:
            raise ErpError(f"Unknown endpoint '{target_id}'")

        logger.info(f"ERP call {endpoint.id} -> {endpoint.path}")
        return await self._post(endpoint, parameters or {})

    async def execute_write(self, action_type: FormActionType, data: dict[str, Any]) -> Any:
        """
        Submit a confirmed write action.

        Raises:
            ErpError: If the ERP rejects the write
            httpx.HTTPError: On transport or HTTP status failures
        """
        endpoint = WRITE_ENDPOINTS[action_type]
        logger.info(f"ERP write {action_type.value} -> {endpoint.path}")
        return await self._post(endpoint, data)
