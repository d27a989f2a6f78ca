"""Generative-UI provider client.

The provider speaks the OpenAI chat-completions protocol and streams its
answer wrapped in ``<thinking>``, ``<content>`` and ``<artifact>`` tags. We ask
for the UI as a sectioned JSON document inside ``<content>``; anything else it
returns is carried as opaque markup.
"""

import json
import re
from collections.abc import AsyncGenerator
from dataclasses import dataclass
from typing import Any, Literal

from artemis.core.config import get_settings
from artemis.core.llm import get_ui_generator_client
from artemis.core.logging import get_logger
from artemis.core.schemas_orchestration import FormSpec, UiSpec
from artemis.core.ui_merge import UIDocument

logger = get_logger(__name__)

ChunkKind = Literal["thinking", "content", "artifact"]

_TAG_RE = re.compile(r"<(thinking|content|artifact)(?:\s[^>]*)?>(.*?)</\1>", re.DOTALL)
_OPEN_TAG_RE = re.compile(r"<(thinking|content|artifact)(?:\s[^>]*)?>")

MAX_DATA_CHARS = 12000

SYSTEM_PROMPT = """You build interactive business interfaces from ERP data.

Return the interface inside <content></content> as ONE JSON object:
{"version": 1, "sections": [{"id": "...", "type": "...", "title": "...", "props": {...}}]}

- One section per independent part (a table, a chart, a metric group, a form).
- Section types: table, chart, cards, timeline, metrics, form.
- Keep ids stable and descriptive (e.g. "sales-by-month"). When asked to update
  existing sections, reuse their ids; new parts get new ids.
- Put your reasoning, if any, in <thinking></thinking>.
"""


@dataclass
class UIChunk:
    kind: ChunkKind
    content: str


class TaggedStreamParser:
    """
    Splits a streamed provider answer into tagged chunks.

    Complete tag blocks are emitted as soon as their closing tag arrives.
    Text outside any tag is held until close() and emitted as content.
    """

    def __init__(self) -> None:
        self._buffer = ""
        self._untagged: list[str] = []

    def feed(self, delta: str) -> list[UIChunk]:
        self._buffer += delta
        chunks: list[UIChunk] = []
        while match := _TAG_RE.search(self._buffer):
            leading = self._buffer[: match.start()]
            if leading.strip():
                self._untagged.append(leading)
            chunks.append(UIChunk(kind=match.group(1), content=match.group(2)))
            self._buffer = self._buffer[match.end():]
        return chunks

    def close(self) -> list[UIChunk]:
        remaining = self._buffer
        self._buffer = ""
        # An unterminated block still counts as its tag's content
        open_match = _OPEN_TAG_RE.search(remaining)
        chunks: list[UIChunk] = []
        if open_match:
            leading = remaining[: open_match.start()]
            if leading.strip():
                self._untagged.append(leading)
            tail = remaining[open_match.end():]
            if tail.strip():
                chunks.append(UIChunk(kind=open_match.group(1), content=tail))
        elif remaining.strip():
            self._untagged.append(remaining)

        untagged = "".join(self._untagged).strip()
        self._untagged = []
        if untagged:
            chunks.insert(0, UIChunk(kind="content", content=untagged))
        return chunks


def build_generation_prompt(
    message: str,
    ui_spec: UiSpec | None,
    form_spec: FormSpec | None,
    data: dict[str, Any],
    current_ui: UIDocument | None,
    targets: list[str] | None = None,
) -> str:
    """Compose the user prompt for one UI generation."""
    parts = [f"User request: {message}"]

    if ui_spec is not None:
        parts.append(f"Visualization: {ui_spec.type.value} - {ui_spec.data_description}")
        if ui_spec.chart_type:
            parts.append(f"Chart type: {ui_spec.chart_type.value}")
        if ui_spec.highlights:
            parts.append("Highlight: " + "; ".join(ui_spec.highlights))
        if ui_spec.group_by:
            parts.append(f"Group by: {ui_spec.group_by}")
        if ui_spec.sort_by:
            parts.append(f"Sort by: {ui_spec.sort_by.field} {ui_spec.sort_by.direction.value}")
        if ui_spec.filters:
            parts.append(f"Filters: {json.dumps(ui_spec.filters)}")

    if form_spec is not None:
        parts.append(f"Form: {form_spec.title} (action {form_spec.action_type.value})")
        if form_spec.description:
            parts.append(form_spec.description)
        if form_spec.prefill_data:
            parts.append(f"Prefill: {json.dumps(form_spec.prefill_data)}")
        if form_spec.field_hints:
            parts.append(f"Field hints: {json.dumps(form_spec.field_hints)}")
        if form_spec.hidden_fields:
            parts.append("Hidden fields: " + ", ".join(form_spec.hidden_fields))

    if current_ui is not None and not current_ui.is_empty and not current_ui.is_opaque:
        sections = ", ".join(f"{s.id} ({s.type})" for s in current_ui.sections)
        parts.append(f"Sections already on screen: {sections}")
    if targets:
        parts.append("Update only these sections: " + ", ".join(targets))

    if data:
        data_text = json.dumps(data, default=str)
        if len(data_text) > MAX_DATA_CHARS:
            data_text = data_text[:MAX_DATA_CHARS] + "...(truncated)"
        parts.append(f"Data:\n{data_text}")

    return "\n".join(parts)


async def stream_ui(prompt: str) -> AsyncGenerator[UIChunk, None]:
    """
    Stream one UI generation.

    Args:
        prompt: Output of build_generation_prompt

    Yields:
        UIChunk items in arrival order

    Raises:
        openai.APIError: On provider failures
    """
    settings = get_settings()
    client = get_ui_generator_client()
    parser = TaggedStreamParser()

    stream = await client.chat.completions.create(
        model=settings.UI_GENERATOR_MODEL,
        messages=[
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ],
        max_tokens=settings.UI_GENERATOR_MAX_TOKENS,
        stream=True,
    )

    async for chunk in stream:
        if not chunk.choices:
            continue
        delta = chunk.choices[0].delta.content
        if not delta:
            continue
        for parsed in parser.feed(delta):
            yield parsed

    for parsed in parser.close():
        yield parsed
