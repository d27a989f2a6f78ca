"""Confirmed write actions submitted from generated forms."""

from typing import Any

import httpx
from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from artemis.core.logging import get_logger
from artemis.core.schemas_orchestration import FormActionType
from artemis.services.erp_client import ErpClient, ErpError

logger = get_logger(__name__)

router = APIRouter()


class ExecuteActionRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    action_type: FormActionType
    payload: dict[str, Any] = Field(..., min_length=1)
    session_id: str | None = None


class ExecuteActionResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    success: bool
    action_type: FormActionType
    result: Any = None


@router.post("/actions/execute", response_model=ExecuteActionResponse)
async def execute_action(body: ExecuteActionRequest) -> ExecuteActionResponse:
    """
    Run one write operation the user confirmed in a generated form.

    Raises:
        HTTPException: 422 if the ERP rejects the write, 502 if it is unreachable
    """
    extra = {"session_id": body.session_id} if body.session_id else {}

    try:
        result = await ErpClient.from_settings().execute_write(body.action_type, body.payload)
    except ErpError as e:
        logger.warning(f"Write action {body.action_type.value} rejected: {e}", extra=extra)
        raise HTTPException(status_code=422, detail=str(e)) from e
    except httpx.HTTPError as e:
        logger.error(f"Write action {body.action_type.value} failed: {e}", extra=extra)
        raise HTTPException(status_code=502, detail="ERP unavailable") from e

    logger.info(f"Write action {body.action_type.value} executed", extra=extra)
    return ExecuteActionResponse(success=True, action_type=body.action_type, result=result)
