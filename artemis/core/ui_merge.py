"""UI document model and merge resolver.

The resolver decides how a freshly generated UI fragment relates to the
document currently on screen (NEW, ADD, MODIFY or REPLACE) and applies it.
It runs server-side only; clients receive the decision in a ``ui_action``
event and the merged result in ``ui_complete``.

Documents are JSON objects of the form::

    {"version": 1, "sections": [{"id": ..., "type": ..., "title": ..., "props": {...}}]}

Section ``id`` is the merge key. Content that is not such a document (raw
generative-UI markup) is wrapped in a single opaque ``markup`` section and can
only ever be replaced.
"""

import json
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, ValidationError, model_validator

from artemis.core.logging import get_logger

logger = get_logger(__name__)

DOCUMENT_VERSION = 1
MARKUP_SECTION_TYPE = "markup"


class MergeAction(str, Enum):
    NEW = "NEW"
    ADD = "ADD"
    MODIFY = "MODIFY"
    REPLACE = "REPLACE"


class MergeSignal(str, Enum):
    """What the turn tells us about the user's intent toward the current UI."""

    SAME_ARTIFACT = "same_artifact"
    UNRELATED = "unrelated"
    UNKNOWN = "unknown"


# =============================================================================
# UI document
# =============================================================================


def _slug(value: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-")


class UISection(BaseModel):
    """One independently replaceable part of a UI document."""

    id: str = ""
    type: str
    title: str | None = None
    props: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def derive_id(self) -> "UISection":
        if not self.id:
            self.id = f"{self.type}:{_slug(self.title or '')}" if self.title else self.type
        return self


class UIDocument(BaseModel):
    version: int = DOCUMENT_VERSION
    sections: list[UISection] = Field(default_factory=list)

    @property
    def section_ids(self) -> list[str]:
        return [section.id for section in self.sections]

    @property
    def is_empty(self) -> bool:
        return not self.sections

    @property
    def is_opaque(self) -> bool:
        return any(section.type == MARKUP_SECTION_TYPE for section in self.sections)

    @property
    def section_types(self) -> set[str]:
        return {section.type for section in self.sections}

    def serialize(self) -> str:
        return json.dumps(self.model_dump(mode="json"))


def wrap_markup(content: str) -> UIDocument:
    """Wrap opaque generative-UI markup as a single-section document."""
    return UIDocument(
        sections=[UISection(id=MARKUP_SECTION_TYPE, type=MARKUP_SECTION_TYPE, props={"markup": content})]
    )


def parse_ui_document(content: str | None) -> UIDocument | None:
    """
    Parse serialized UI content into a document.

    Args:
        content: Serialized document, raw markup, or None

    Returns:
        UIDocument, or None when there is no content at all
    """
    if content is None or not content.strip():
        return None

    try:
        data = json.loads(content)
    except json.JSONDecodeError:
        return wrap_markup(content)

    if isinstance(data, dict) and isinstance(data.get("sections"), list):
        try:
            return UIDocument.model_validate(data)
        except ValidationError as e:
            logger.debug(f"UI content looks like a document but failed validation: {e.error_count()} errors")

    return wrap_markup(content)


# =============================================================================
# Resolver
# =============================================================================


@dataclass(frozen=True)
class MergePolicy:
    """
    Tunable policy for ambiguous merges.

    A classification whose confidence falls below ``confidence_threshold`` is
    not applied; the resolver falls back to REPLACE and marks the result as
    defaulted.
    """

    confidence_threshold: float = 0.6

    @classmethod
    def from_settings(cls) -> "MergePolicy":
        from artemis.core.config import get_settings

        return cls(confidence_threshold=get_settings().MERGE_CONFIDENCE_THRESHOLD)


DEFAULT_POLICY = MergePolicy()

# Confidence attached to each classification rule
CONFIDENCE_CERTAIN = 1.0
CONFIDENCE_EXPLICIT_TARGETS = 0.95
CONFIDENCE_FULL_COVER = 0.9
CONFIDENCE_UNRELATED = 0.9
CONFIDENCE_PROPER_SUBSET = 0.9
CONFIDENCE_SAME_ARTIFACT_ADD = 0.85
CONFIDENCE_PARTIAL_OVERLAP = 0.7
CONFIDENCE_UNSIGNALLED_ADD = 0.4


@dataclass
class MergeResult:
    action: MergeAction
    document: UIDocument
    confidence: float
    has_existing: bool
    defaulted: bool = False
    reason: str = ""

    def to_event_content(self) -> dict[str, Any]:
        return {
            "action": self.action.value,
            "hasExisting": self.has_existing,
            "confidence": round(self.confidence, 3),
            "defaulted": self.defaulted,
            "reason": self.reason,
        }

    def to_metadata(self) -> dict[str, Any]:
        """Fields recorded on the committed snapshot."""
        return {
            "uiAction": self.action.value,
            "mergeConfidence": round(self.confidence, 3),
            "mergeDefaulted": self.defaulted,
            "mergeReason": self.reason,
        }


def _replace_in_place(previous: UIDocument, fragment: UIDocument, targets: dict[str, str]) -> UIDocument:
    """Swap targeted sections in place; fragment sections with no target are appended."""
    by_target = {target_id: fragment_id for fragment_id, target_id in targets.items()}
    fragment_by_id = {section.id: section for section in fragment.sections}

    merged: list[UISection] = []
    for section in previous.sections:
        fragment_id = by_target.get(section.id)
        if fragment_id is None:
            merged.append(section)
        else:
            merged.append(fragment_by_id[fragment_id].model_copy(update={"id": section.id}))

    merged.extend(s for s in fragment.sections if s.id not in targets)
    return UIDocument(sections=merged)


def _classify(
    previous: UIDocument,
    fragment: UIDocument,
    signal: MergeSignal,
    explicit_targets: list[str] | None,
) -> tuple[MergeAction, float, str, dict[str, str]]:
    """Return (action, confidence, reason, fragment-id → target-id map)."""
    if previous.is_opaque or fragment.is_opaque:
        return MergeAction.REPLACE, CONFIDENCE_CERTAIN, "opaque content can only be replaced", {}

    if signal == MergeSignal.UNRELATED:
        return MergeAction.REPLACE, CONFIDENCE_UNRELATED, "turn is unrelated to the current UI", {}

    prev_ids = set(previous.section_ids)
    frag_ids = fragment.section_ids

    if explicit_targets:
        targets = [t for t in explicit_targets if t in prev_ids]
        if targets:
            if len(targets) == 1 and len(frag_ids) == 1:
                mapping = {frag_ids[0]: targets[0]}
            else:
                mapping = {fid: fid for fid in frag_ids if fid in targets}
            # Untargeted sections that already exist update in place, never duplicate
            for fid in frag_ids:
                if fid in prev_ids and fid not in mapping and fid not in mapping.values():
                    mapping[fid] = fid
            if mapping:
                return (
                    MergeAction.MODIFY,
                    CONFIDENCE_EXPLICIT_TARGETS,
                    f"explicit targets: {', '.join(sorted(mapping.values()))}",
                    mapping,
                )

    overlap = prev_ids.intersection(frag_ids)

    if overlap == prev_ids:
        return MergeAction.REPLACE, CONFIDENCE_FULL_COVER, "fragment covers every existing section", {}

    if overlap:
        mapping = {fid: fid for fid in frag_ids if fid in overlap}
        if len(overlap) == len(frag_ids):
            return (
                MergeAction.MODIFY,
                CONFIDENCE_PROPER_SUBSET,
                f"fragment updates {len(overlap)} of {len(prev_ids)} sections",
                mapping,
            )
        return (
            MergeAction.MODIFY,
            CONFIDENCE_PARTIAL_OVERLAP,
            f"fragment updates {len(overlap)} sections and adds {len(frag_ids) - len(overlap)}",
            mapping,
        )

    if signal == MergeSignal.SAME_ARTIFACT:
        return MergeAction.ADD, CONFIDENCE_SAME_ARTIFACT_ADD, "new sections for the same artifact", {}

    return MergeAction.ADD, CONFIDENCE_UNSIGNALLED_ADD, "disjoint sections without intent signal", {}


def resolve_merge(
    previous: UIDocument | None,
    fragment: UIDocument,
    signal: MergeSignal = MergeSignal.UNKNOWN,
    explicit_targets: list[str] | None = None,
    policy: MergePolicy = DEFAULT_POLICY,
) -> MergeResult:
    """
    Decide and apply the merge of a new fragment into the current document.

    Args:
        previous: Document currently on screen (None if there is none)
        fragment: Newly generated document
        signal: Intent signal for this turn
        explicit_targets: Section ids the turn says it is editing
        policy: Ambiguity policy

    Returns:
        MergeResult with the merged document

    Raises:
        ValueError: If the fragment has no sections
    """
    if fragment.is_empty:
        raise ValueError("Cannot merge an empty UI fragment")

    if previous is None or previous.is_empty:
        return MergeResult(
            action=MergeAction.NEW,
            document=fragment,
            confidence=CONFIDENCE_CERTAIN,
            has_existing=False,
            reason="no existing UI",
        )

    action, confidence, reason, mapping = _classify(previous, fragment, signal, explicit_targets)

    if confidence < policy.confidence_threshold:
        logger.info(
            f"Merge ambiguous ({action.value} at {confidence:.2f}), defaulting to REPLACE"
        )
        return MergeResult(
            action=MergeAction.REPLACE,
            document=fragment,
            confidence=confidence,
            has_existing=True,
            defaulted=True,
            reason=(
                f"{action.value} confidence {confidence:.2f} below threshold "
                f"{policy.confidence_threshold:.2f}: {reason}"
            ),
        )

    if action == MergeAction.REPLACE:
        document = fragment
    elif action == MergeAction.ADD:
        document = UIDocument(sections=[*previous.sections, *fragment.sections])
    else:
        document = _replace_in_place(previous, fragment, mapping)

    return MergeResult(
        action=action,
        document=document,
        confidence=confidence,
        has_existing=True,
        reason=reason,
    )


@dataclass
class MergeAccumulator:
    """
    Collects generated UI chunks for one turn and resolves once at completion.

    Resolution only happens on the assembled fragment, so feeding a turn's
    chunks in order always gives the same document as a single resolve call.
    """

    previous: UIDocument | None = None
    signal: MergeSignal = MergeSignal.UNKNOWN
    explicit_targets: list[str] | None = None
    policy: MergePolicy = DEFAULT_POLICY
    _chunks: list[str] = field(default_factory=list, init=False, repr=False)

    def feed(self, chunk: str) -> None:
        if chunk:
            self._chunks.append(chunk)

    @property
    def content(self) -> str:
        return "".join(self._chunks)

    @property
    def has_content(self) -> bool:
        return bool(self.content.strip())

    def resolve(self) -> MergeResult:
        """
        Resolve the assembled fragment against the previous document.

        Raises:
            ValueError: If no UI content was produced
        """
        fragment = parse_ui_document(self.content)
        if fragment is None:
            raise ValueError("No UI content was generated")
        return resolve_merge(
            self.previous,
            fragment,
            signal=self.signal,
            explicit_targets=self.explicit_targets,
            policy=self.policy,
        )


def derive_merge_signal(
    requested: MergeSignal | None,
    *,
    is_fork: bool,
    previous: UIDocument | None,
    visualization_type: str | None,
) -> MergeSignal:
    """
    Work out the merge signal for a turn.

    An explicit request wins. Fork/edit turns and turns without prior UI are
    unrelated to what is on screen. A turn asking for the same kind of
    visualization as a section already shown is treated as the same artifact.
    """
    if requested is not None:
        return requested
    if is_fork or previous is None or previous.is_empty:
        return MergeSignal.UNRELATED
    if visualization_type and visualization_type in previous.section_types:
        return MergeSignal.SAME_ARTIFACT
    return MergeSignal.UNKNOWN
