"""Author agent that keeps a novel's working documents in step with the conversation."""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Literal, Mapping, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..models.generation import (
    ChatMessage,
    GenerationClient,
    GenerationParams,
    parse_json_payload,
)
from ..prompts import AUTHOR_SYSTEM_PROMPT
from ..utils.ids import new_request_id

LOGGER = logging.getLogger(__name__)

AUTHOR_PARAMS = GenerationParams(temperature=0.4, max_tokens=2000)
DOCUMENT_PROMPT_CHARS = 2000
HISTORY_TURNS = 10

DOCUMENT_TITLES: Dict[str, str] = {
    "mainStory": "Main story",
    "characterProfiles": "Character profiles",
    "outline": "Chapter outline",
    "worldview": "Worldview",
    "memo": "Writing memo",
}


class AuthorModel(BaseModel):
    """Lenient base for records parsed out of author agent output."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class AuthorDocument(AuthorModel):
    title: str
    content: str = ""
    format: Literal["markdown", "word", "text"] = "markdown"


class AuthorRelationship(AuthorModel):
    source: str = Field(alias="from")
    target: str = Field(alias="to")
    type: str
    description: Optional[str] = None


class AuthorTimelineItem(AuthorModel):
    title: str
    description: Optional[str] = None
    time_position: Optional[float] = Field(default=None, alias="timePosition")
    importance: Optional[Literal["high", "medium", "low"]] = None


class ConsistencyReport(AuthorModel):
    issues: List[str] = Field(default_factory=list)
    score: Optional[float] = None


class CreativityReport(AuthorModel):
    score: Optional[float] = None
    notes: Optional[str] = None


class AuthorAgentResult(AuthorModel):
    """Normalised author agent response."""

    reply: str
    intent: Optional[str] = None
    context_summary: Optional[str] = Field(default=None, alias="contextSummary")
    documents: Dict[str, AuthorDocument]
    suggestions: List[str] = Field(default_factory=list)
    relationships: List[AuthorRelationship] = Field(default_factory=list)
    timeline: List[AuthorTimelineItem] = Field(default_factory=list)
    consistency: ConsistencyReport = Field(default_factory=ConsistencyReport)
    creativity: CreativityReport = Field(default_factory=CreativityReport)
    duration_ms: int = Field(default=0, alias="durationMs")
    request_id: str = Field(default="", alias="requestId")


def normalize_document(key: str, document: Any = None) -> AuthorDocument:
    """Fill a possibly partial document with the defaults for ``key``."""
    data = document if isinstance(document, Mapping) else {}
    title = data.get("title")
    content = data.get("content")
    doc_format = data.get("format")
    return AuthorDocument(
        title=title if isinstance(title, str) else DOCUMENT_TITLES[key],
        content=content if isinstance(content, str) else "",
        format=doc_format if doc_format in ("markdown", "word", "text") else "markdown",
    )


def normalize_documents(documents: Any = None) -> Dict[str, AuthorDocument]:
    data = documents if isinstance(documents, Mapping) else {}
    return {key: normalize_document(key, data.get(key)) for key in DOCUMENT_TITLES}


def trim_content(content: str, max_length: int = DOCUMENT_PROMPT_CHARS) -> str:
    if len(content) <= max_length:
        return content
    return f"{content[:max_length]}..."


class AuthorAgent:
    """Answers the author and proposes updated versions of the five project documents."""

    def __init__(
        self,
        client: GenerationClient,
        model_id: str,
        *,
        params: GenerationParams | None = None,
    ) -> None:
        self._client = client
        self._model_id = model_id
        self._params = params or AUTHOR_PARAMS

    def build_messages(
        self,
        user_message: str,
        documents: Mapping[str, AuthorDocument],
        history: Sequence[ChatMessage] = (),
    ) -> List[ChatMessage]:
        doc_text = "\n\n".join(
            f"[{document.title}]\n{trim_content(document.content) or '(empty)'}"
            for document in documents.values()
        )
        recent = "\n".join(f"{message.role}: {message.content}" for message in list(history)[-HISTORY_TURNS:])
        return [
            ChatMessage("system", AUTHOR_SYSTEM_PROMPT),
            ChatMessage("system", f"Current documents:\n{doc_text}"),
            ChatMessage("system", f"Recent conversation:\n{recent or '(none)'}"),
            ChatMessage("user", user_message),
        ]

    def interact(
        self,
        project_id: str | int,
        user_message: str,
        *,
        documents: Mapping[str, Any] | None = None,
        history: Sequence[ChatMessage] = (),
    ) -> AuthorAgentResult:
        started = time.monotonic()
        request_id = new_request_id(f"{project_id}-author")
        current = normalize_documents(documents)
        messages = self.build_messages(user_message, current, history)

        try:
            result = self._client.generate(self._model_id, messages, self._params)
        except Exception as error:
            LOGGER.warning("Author agent failed to generate: %s", error)
            return AuthorAgentResult(
                reply=f"(system error: author agent failed to generate - {error})",
                documents=current,
                duration_ms=_elapsed_ms(started),
                request_id=request_id,
            )

        raw = result.content if isinstance(result.content, str) else str(result.content)
        try:
            payload = parse_json_payload(raw)
        except ValueError:
            payload = None
        return normalize_result(payload, raw, _elapsed_ms(started), request_id)


def normalize_result(raw: Any, fallback_reply: str, duration_ms: int, request_id: str) -> AuthorAgentResult:
    """Build a result from loosely-shaped model output, keeping valid parts only."""
    data = raw if isinstance(raw, Mapping) else {}
    consistency = data.get("consistency") if isinstance(data.get("consistency"), Mapping) else {}
    creativity = data.get("creativity") if isinstance(data.get("creativity"), Mapping) else {}
    issues = consistency.get("issues", data.get("consistencyIssues"))

    return AuthorAgentResult(
        reply=_string(data.get("reply")) or fallback_reply,
        intent=_string(data.get("intent")),
        context_summary=_string(data.get("contextSummary")),
        documents=normalize_documents(data.get("documents")),
        suggestions=[str(entry) for entry in _list(data.get("suggestions"))],
        relationships=_records(AuthorRelationship, data.get("relationships")),
        timeline=_records(AuthorTimelineItem, data.get("timeline")),
        consistency=ConsistencyReport(
            issues=[str(entry) for entry in _list(issues)],
            score=_number(consistency.get("score")),
        ),
        creativity=CreativityReport(
            score=_number(creativity.get("score")),
            notes=_string(creativity.get("notes")),
        ),
        duration_ms=duration_ms,
        request_id=request_id,
    )


def _records(model: type[AuthorModel], value: Any) -> List[Any]:
    records = []
    for entry in _list(value):
        try:
            records.append(model.model_validate(entry))
        except ValidationError:
            LOGGER.debug("Dropping malformed %s entry: %r", model.__name__, entry)
    return records


def _list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


def _string(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def _number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


__all__ = [
    "AUTHOR_PARAMS",
    "AuthorAgent",
    "AuthorAgentResult",
    "AuthorDocument",
    "AuthorRelationship",
    "AuthorTimelineItem",
    "ConsistencyReport",
    "CreativityReport",
    "DOCUMENT_TITLES",
    "normalize_documents",
    "normalize_result",
]
