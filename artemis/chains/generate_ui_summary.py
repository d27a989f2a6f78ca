"""Short chat-history message describing a generated UI."""

from artemis.core.config import get_settings
from artemis.core.llm import get_openai_client
from artemis.core.logging import get_logger
from artemis.core.ui_merge import MergeAction

logger = get_logger(__name__)

SYSTEM_PROMPT = """You write one or two sentences telling the user what the
interface on their screen now shows. Mention the key numbers or highlights if
they are given. No markdown, no greetings."""

_ACTION_HINTS = {
    MergeAction.NEW: "A new interface was created.",
    MergeAction.ADD: "New sections were added to the existing interface.",
    MergeAction.MODIFY: "Part of the existing interface was updated.",
    MergeAction.REPLACE: "The previous interface was replaced.",
}


async def generate_ui_summary(
    message: str,
    data_description: str,
    highlights: list[str] | None,
    action: MergeAction,
) -> str:
    """
    Summarize a generated UI for the chat history.

    Args:
        message: The user's request
        data_description: What the UI visualizes
        highlights: Notable facts the engine asked to emphasize
        action: How the UI was merged into what was on screen

    Returns:
        Summary text

    Raises:
        openai.APIError: On provider failures
    """
    settings = get_settings()
    client = get_openai_client()

    parts = [
        f"User request: {message}",
        f"Interface content: {data_description}",
        _ACTION_HINTS[action],
    ]
    if highlights:
        parts.append("Highlights: " + "; ".join(highlights))

    response = await client.chat.completions.create(
        model=settings.SUMMARY_MODEL,
        messages=[
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": "\n".join(parts)},
        ],
        temperature=0.4,
        max_tokens=120,
    )

    summary = (response.choices[0].message.content or "").strip()
    logger.debug(f"UI summary generated ({len(summary)} chars)")
    return summary or data_description
