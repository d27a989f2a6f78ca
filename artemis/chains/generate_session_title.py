"""Session title from the first user message."""

from artemis.core.config import get_settings
from artemis.core.llm import get_openai_client

SYSTEM_PROMPT = """Generate a short title (max 6 words) for a conversation that
starts with the user's message. Reply with the title only, no quotes."""

MAX_TITLE_LENGTH = 60


async def generate_session_title(message: str) -> str:
    """
    Generate a title for a new chat session.

    Raises:
        openai.APIError: On provider failures
    """
    settings = get_settings()
    client = get_openai_client()

    response = await client.chat.completions.create(
        model=settings.TITLE_MODEL,
        messages=[
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": message},
        ],
        temperature=0.3,
        max_tokens=20,
    )

    title = (response.choices[0].message.content or "").strip().strip('"').strip("'")
    if not title:
        title = message.strip()
    return title[:MAX_TITLE_LENGTH]
