"""Reasoning-engine call that produces one OrchestrationDecision per turn."""

from artemis.core.config import get_settings
from artemis.core.llm import get_openai_client
from artemis.core.logging import get_logger
from artemis.core.schemas_orchestration import (
    ORCHESTRATION_DECISION_SCHEMA,
    OrchestrationDecision,
    validate_decision,
)
from artemis.core.tool_catalog import catalog_for_prompt
from artemis.core.ui_merge import UIDocument

logger = get_logger(__name__)


SYSTEM_PROMPT = """You are Artemis, an assistant for people working in an ERP system.

For every user message decide how to answer and return ONE JSON object that
matches the provided schema. Never add properties the schema does not define.

RESPONSE FORMAT:
- "text": conversational answers, explanations, confirmations. No uiSpec/formSpec.
- "ui": the user wants to see business data (lists, trends, comparisons, KPIs).
  Fill uiSpec with WHAT to show; a separate generator decides HOW.
- "form": the user wants to create or change something (order, customer, item,
  stock). Fill formSpec; the user confirms the form before anything is written.

Always fill textResponse with a short human-readable summary, even for ui/form.

LAYOUT INTENT:
- "full": long conversational answers that need the whole screen
- "extended": answers that sit next to data
- "preview": short answers and confirmations
- "hidden": the generated UI should take center stage

DATA:
Request the data you need in apiCalls, choosing targetId ONLY from this catalog
(* marks required parameters):
{catalog}

If the request is ambiguous, answer with responseFormat "text" and set error.kind
"clarification_needed" with a clarifyingQuestion and a few suggestions.
"""


def _describe_current_ui(document: UIDocument | None) -> str:
    if document is None or document.is_empty:
        return "No UI is currently displayed."
    if document.is_opaque:
        return "A generated UI is currently displayed (content not inspectable)."

    lines = ["Currently displayed UI sections (id: type - title):"]
    for section in document.sections:
        lines.append(f"- {section.id}: {section.type} - {section.title or 'untitled'}")
    return "\n".join(lines)


async def decide_turn(
    message: str,
    history: list[dict[str, str]],
    current_ui: UIDocument | None = None,
) -> OrchestrationDecision:
    """
    Ask the reasoning engine for this turn's decision.

    Args:
        message: The user's message
        history: Prior {role, content} messages, oldest first
        current_ui: Document currently on screen, summarized for the engine

    Returns:
        Validated OrchestrationDecision

    Raises:
        DecisionValidationError: If the engine output fails schema validation
        openai.APIError: On provider failures (classified by the caller)
    """
    settings = get_settings()
    client = get_openai_client()

    messages = [
        {"role": "system", "content": SYSTEM_PROMPT.format(catalog=catalog_for_prompt())},
        *history,
        {"role": "system", "content": _describe_current_ui(current_ui)},
        {"role": "user", "content": message},
    ]

    response = await client.chat.completions.create(
        model=settings.ORCHESTRATION_MODEL,
        messages=messages,
        temperature=0.2,
        response_format={
            "type": "json_schema",
            "json_schema": {
                "name": "orchestration_decision",
                "schema": ORCHESTRATION_DECISION_SCHEMA,
                # Free-form parameter maps cannot be expressed in strict mode;
                # validate_decision enforces the closed schema instead.
                "strict": False,
            },
        },
    )

    raw = response.choices[0].message.content or ""
    decision = validate_decision(raw)

    logger.info(
        f"Decision: format={decision.response_format.value}, "
        f"layout={decision.layout_intent.value}, "
        f"api_calls={len(decision.api_calls or [])}"
    )
    return decision
