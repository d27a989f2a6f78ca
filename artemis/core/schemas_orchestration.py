"""Pydantic models for the orchestration decision contract.

The reasoning engine returns one OrchestrationDecision per turn. The schema is
closed: unknown properties and unknown enum values fail validation, so the
rest of the pipeline can pattern-match on the decision without discovery.

Wire names are camelCase; attributes are snake_case.
"""

import json
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator
from pydantic.alias_generators import to_camel

from artemis.core.errors import DecisionValidationError
from artemis.core.llm import strip_llm_fences


# =============================================================================
# Enums
# =============================================================================


class ResponseFormat(str, Enum):
    """How the assistant answers this turn."""

    TEXT = "text"
    UI = "ui"
    FORM = "form"


class LayoutIntent(str, Enum):
    """Server-declared layout for the assistant surface."""

    FULL = "full"
    EXTENDED = "extended"
    PREVIEW = "preview"
    HIDDEN = "hidden"


class VisualizationType(str, Enum):
    TABLE = "table"
    CHART = "chart"
    CARDS = "cards"
    TIMELINE = "timeline"
    METRICS = "metrics"
    MIXED = "mixed"


class ChartType(str, Enum):
    BAR = "bar"
    LINE = "line"
    PIE = "pie"
    AREA = "area"
    SCATTER = "scatter"


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


class FormActionType(str, Enum):
    """Write operations a generated form may submit."""

    CREATE_SALES_ORDER = "create_sales_order"
    CREATE_CUSTOMER = "create_customer"
    UPDATE_CUSTOMER = "update_customer"
    CREATE_ITEM = "create_item"
    UPDATE_STOCK = "update_stock"


class DecisionErrorKind(str, Enum):
    CLARIFICATION_NEEDED = "clarification_needed"
    INSUFFICIENT_DATA = "insufficient_data"
    OPERATION_FAILED = "operation_failed"


# =============================================================================
# Decision parts
# =============================================================================


class ContractModel(BaseModel):
    """Base for closed, camelCase wire models."""

    model_config = ConfigDict(
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
    )


class ApiCall(ContractModel):
    """One business-system call requested by the engine."""

    target_id: str = Field(..., min_length=1, description="Endpoint id from the tool catalog")
    reason: str
    parameters: dict[str, Any] = Field(default_factory=dict)
    expected_data: str | None = None


class SortSpec(ContractModel):
    field: str
    direction: SortDirection


class UiSpec(ContractModel):
    """What to visualize, not how."""

    type: VisualizationType
    data_description: str
    highlights: list[str] | None = None
    chart_type: ChartType | None = None
    group_by: str | None = None
    sort_by: SortSpec | None = None
    filters: dict[str, Any] | None = None


class FormSpec(ContractModel):
    """What a write-operation form must collect."""

    action_type: FormActionType
    title: str
    description: str | None = None
    prefill_data: dict[str, Any] | None = None
    field_hints: dict[str, str] | None = None
    hidden_fields: list[str] | None = None


class DecisionError(ContractModel):
    kind: DecisionErrorKind
    message: str
    clarifying_question: str | None = None
    suggestions: list[str] | None = None


class OrchestrationDecision(ContractModel):
    """Complete structured output of the reasoning engine for one turn."""

    thinking: str | None = None
    response_format: ResponseFormat
    layout_intent: LayoutIntent
    text_response: str
    api_calls: list[ApiCall] | None = None
    ui_spec: UiSpec | None = None
    form_spec: FormSpec | None = None
    error: DecisionError | None = None
    suggest_ui: bool | None = Field(default=None, alias="suggestUI")

    @model_validator(mode="after")
    def check_format_payload(self) -> "OrchestrationDecision":
        """Exactly the payload the response format requires must be present."""
        if self.response_format == ResponseFormat.UI:
            if self.ui_spec is None:
                raise ValueError("responseFormat 'ui' requires uiSpec")
            if self.form_spec is not None:
                raise ValueError("responseFormat 'ui' must not carry formSpec")
        elif self.response_format == ResponseFormat.FORM:
            if self.form_spec is None:
                raise ValueError("responseFormat 'form' requires formSpec")
            if self.ui_spec is not None:
                raise ValueError("responseFormat 'form' must not carry uiSpec")
        elif self.ui_spec is not None or self.form_spec is not None:
            raise ValueError("responseFormat 'text' must not carry uiSpec or formSpec")
        return self

    @property
    def produces_ui(self) -> bool:
        return self.response_format in (ResponseFormat.UI, ResponseFormat.FORM)


def validate_decision(raw: str | dict[str, Any]) -> OrchestrationDecision:
    """
    Validate raw engine output against the closed decision schema.

    Args:
        raw: JSON text (markdown fences tolerated) or an already-parsed dict

    Returns:
        Validated OrchestrationDecision

    Raises:
        DecisionValidationError: If the output is not JSON or fails validation
    """
    if isinstance(raw, str):
        try:
            raw = json.loads(strip_llm_fences(raw))
        except json.JSONDecodeError as e:
            raise DecisionValidationError(f"Decision is not valid JSON: {e}") from e

    if not isinstance(raw, dict):
        raise DecisionValidationError(f"Decision must be a JSON object, got {type(raw).__name__}")

    try:
        return OrchestrationDecision.model_validate(raw)
    except ValidationError as e:
        raise DecisionValidationError(
            f"Decision failed schema validation ({e.error_count()} errors)",
            details=e.errors(include_url=False),
        ) from e


# =============================================================================
# JSON schema sent to the reasoning engine
# =============================================================================


def _nullable(schema: dict[str, Any]) -> dict[str, Any]:
    return {"anyOf": [schema, {"type": "null"}]}


def _enum(enum_cls: type[Enum]) -> dict[str, Any]:
    return {"type": "string", "enum": [member.value for member in enum_cls]}


_STRING_LIST = {"type": "array", "items": {"type": "string"}}
_OPEN_OBJECT = {"type": "object", "additionalProperties": True}

ORCHESTRATION_DECISION_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "thinking": _nullable({"type": "string"}),
        "responseFormat": _enum(ResponseFormat),
        "layoutIntent": _enum(LayoutIntent),
        "textResponse": {"type": "string"},
        "apiCalls": _nullable(
            {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "targetId": {"type": "string"},
                        "reason": {"type": "string"},
                        "parameters": _OPEN_OBJECT,
                        "expectedData": _nullable({"type": "string"}),
                    },
                    "required": ["targetId", "reason", "parameters"],
                    "additionalProperties": False,
                },
            }
        ),
        "uiSpec": _nullable(
            {
                "type": "object",
                "properties": {
                    "type": _enum(VisualizationType),
                    "dataDescription": {"type": "string"},
                    "highlights": _nullable(_STRING_LIST),
                    "chartType": _nullable(_enum(ChartType)),
                    "groupBy": _nullable({"type": "string"}),
                    "sortBy": _nullable(
                        {
                            "type": "object",
                            "properties": {
                                "field": {"type": "string"},
                                "direction": _enum(SortDirection),
                            },
                            "required": ["field", "direction"],
                            "additionalProperties": False,
                        }
                    ),
                    "filters": _nullable(_OPEN_OBJECT),
                },
                "required": ["type", "dataDescription"],
                "additionalProperties": False,
            }
        ),
        "formSpec": _nullable(
            {
                "type": "object",
                "properties": {
                    "actionType": _enum(FormActionType),
                    "title": {"type": "string"},
                    "description": _nullable({"type": "string"}),
                    "prefillData": _nullable(_OPEN_OBJECT),
                    "fieldHints": _nullable(_OPEN_OBJECT),
                    "hiddenFields": _nullable(_STRING_LIST),
                },
                "required": ["actionType", "title"],
                "additionalProperties": False,
            }
        ),
        "error": _nullable(
            {
                "type": "object",
                "properties": {
                    "kind": _enum(DecisionErrorKind),
                    "message": {"type": "string"},
                    "clarifyingQuestion": _nullable({"type": "string"}),
                    "suggestions": _nullable(_STRING_LIST),
                },
                "required": ["kind", "message"],
                "additionalProperties": False,
            }
        ),
        "suggestUI": _nullable({"type": "boolean"}),
    },
    "required": ["responseFormat", "layoutIntent", "textResponse"],
    "additionalProperties": False,
}
