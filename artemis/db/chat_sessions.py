"""Chat session and message database operations."""

from typing import Any

from artemis.core.logging import get_logger
from artemis.db.supabase_client import get_supabase

logger = get_logger(__name__)

DEFAULT_SESSION_TITLE = "New Chat"


def create_chat_session(title: str = DEFAULT_SESSION_TITLE) -> dict[str, Any]:
    """
    Create a new chat session.

    Args:
        title: Initial session title

    Returns:
        Inserted session row

    Raises:
        Exception: If database operation fails
    """
    supabase = get_supabase()

    try:
        response = supabase.table("chat_sessions").insert({"title": title}).execute()

        if not response.data:
            raise ValueError("No data returned from create_chat_session")

        session = response.data[0]
        logger.info(f"Created chat session {session['id']}", extra={"session_id": session["id"]})
        return session

    except Exception as e:
        logger.error(f"Failed to create chat session: {e}")
        raise


def get_chat_session(session_id: str) -> dict[str, Any] | None:
    """
    Get a chat session by id.

    Returns:
        Session row, or None if it does not exist
    """
    supabase = get_supabase()

    try:
        response = (
            supabase.table("chat_sessions")
            .select("*")
            .eq("id", session_id)
            .limit(1)
            .execute()
        )
        return response.data[0] if response.data else None

    except Exception as e:
        logger.error(f"Failed to get chat session {session_id}: {e}", extra={"session_id": session_id})
        raise


def update_session_title(session_id: str, title: str) -> None:
    supabase = get_supabase()

    try:
        supabase.table("chat_sessions").update({"title": title}).eq("id", session_id).execute()
        logger.info(f"Updated title for session {session_id}", extra={"session_id": session_id})

    except Exception as e:
        logger.error(f"Failed to update session title: {e}", extra={"session_id": session_id})
        raise


def insert_chat_message(
    session_id: str,
    role: str,
    content: str,
    response_type: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """
    Persist one chat message.

    Args:
        session_id: Owning session
        role: 'user' or 'assistant'
        content: Message text
        response_type: 'text', 'ui' or 'form' for assistant messages
        metadata: Tool calls, layout intent and similar per-turn details

    Returns:
        Inserted message row

    Raises:
        Exception: If database operation fails
    """
    supabase = get_supabase()

    try:
        response = (
            supabase.table("chat_messages")
            .insert(
                {
                    "session_id": session_id,
                    "role": role,
                    "content": content,
                    "response_type": response_type,
                    "metadata": metadata or {},
                }
            )
            .execute()
        )

        if not response.data:
            raise ValueError("No data returned from insert_chat_message")

        return response.data[0]

    except Exception as e:
        logger.error(f"Failed to insert {role} message: {e}", extra={"session_id": session_id})
        raise


def list_chat_messages(session_id: str) -> list[dict[str, Any]]:
    """
    List a session's messages in chronological order.

    Raises:
        Exception: If database operation fails
    """
    supabase = get_supabase()

    try:
        response = (
            supabase.table("chat_messages")
            .select("*")
            .eq("session_id", session_id)
            .order("created_at")
            .execute()
        )
        return response.data or []

    except Exception as e:
        logger.error(f"Failed to list messages for session {session_id}: {e}", extra={"session_id": session_id})
        raise


def conversation_context(
    messages: list[dict[str, Any]],
    window: int,
    fork_from_message_id: str | None = None,
) -> list[dict[str, str]]:
    """
    Build the engine's conversation context from stored messages.

    Messages from ``fork_from_message_id`` onward are left out, so an edited
    turn is answered as if the later history never happened. Nothing is
    deleted.

    Args:
        messages: Session messages in chronological order
        window: Maximum number of messages to keep (most recent)
        fork_from_message_id: Message being edited, if any

    Returns:
        List of {role, content} dicts
    """
    if fork_from_message_id:
        for i, message in enumerate(messages):
            if str(message.get("id")) == fork_from_message_id:
                messages = messages[:i]
                break

    context = [
        {"role": m["role"], "content": m["content"]}
        for m in messages
        if m.get("content", "").strip() and m.get("role") in ("user", "assistant")
    ]
    return context[-window:] if window > 0 else []
