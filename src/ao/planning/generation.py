"""Plan generation for the task planner: reference fetch, model call, normalisation."""

from __future__ import annotations

import logging
import urllib.error
import urllib.request
from typing import Any, Callable, Iterable, List, Sequence

from ..models.generation import (
    ChatMessage,
    GenerationClient,
    GenerationParams,
    parse_json_payload,
)
from ..prompts import (
    TASK_PLANNER_SYSTEM_PROMPT,
    TASK_PLANNER_USER_PROMPT,
    render_repository_context,
)
from ..schema import TaskItem

LOGGER = logging.getLogger(__name__)

PLAN_PARAMS = GenerationParams(temperature=0.2, max_tokens=2500)
REFERENCE_TIMEOUT = 8.0
REFERENCE_MAX_CHARS = 4000

_PRIORITIES = {"high", "medium", "low"}

ReferenceFetcher = Callable[[str], str]


class PlanFormatError(ValueError):
    """Raised when a model response does not contain a usable task list."""


def _fallback_item(
    item_id: str,
    title: str,
    priority: str,
    estimate: float,
    accepts: Sequence[str],
    depends_on: Sequence[str] = (),
) -> TaskItem:
    return TaskItem(
        id=item_id,
        title=title,
        priority=priority,  # type: ignore[arg-type]
        estimate_minutes=estimate,
        accepts=list(accepts),
        depends_on=list(depends_on),
    )


def fallback_plan() -> List[TaskItem]:
    """Return the fixed five-item checklist used when generation fails."""
    return [
        _fallback_item(
            "plan-1",
            "Build the task planning engine (analyse the repository and generate the todo list)",
            "high",
            120,
            ["todo.md is generated with task breakdown, acceptance criteria, dependencies and estimates"],
        ),
        _fallback_item(
            "monitor-1",
            "Implement live execution monitoring (per-second checks, logs and trace)",
            "high",
            90,
            [
                "Completing a subtask updates the todo status and timestamps",
                "An execution log is produced",
                "The full trace is retained",
            ],
            ["plan-1"],
        ),
        _fallback_item(
            "resume-1",
            "Implement checkpoint resume without duplicate execution",
            "medium",
            60,
            [
                "The completed list is loaded and pending items are highlighted",
                "Work continues from the checkpoint without repeating finished items",
            ],
            ["monitor-1"],
        ),
        _fallback_item(
            "persist-1",
            "Persist state locally and remotely with a 30 second autosave",
            "medium",
            45,
            ["Snapshots are saved on a schedule", "Restored state is fully validated"],
            ["resume-1"],
        ),
        _fallback_item(
            "ui-1",
            "Interactive control panel (live progress, task tree, priority changes, manual control)",
            "medium",
            90,
            [
                "Progress bar with percentage",
                "Task tree",
                "Priority changes and status queries",
                "Manual intervention controls",
                "Panel and background state stay consistent",
            ],
            ["persist-1"],
        ),
    ]


def fetch_reference(
    url: str,
    *,
    timeout: float = REFERENCE_TIMEOUT,
    max_chars: int = REFERENCE_MAX_CHARS,
) -> str:
    """Fetch up to ``max_chars`` characters of text from ``url``; failures yield ``""``."""
    try:
        request = urllib.request.Request(url, headers={"User-Agent": "agent-orchestrator"})
        with urllib.request.urlopen(request, timeout=timeout) as response:
            charset = response.headers.get_content_charset() or "utf-8"
            body = response.read()
    except (urllib.error.URLError, OSError, ValueError) as error:
        LOGGER.debug("Reference fetch for %s failed: %s", url, error)
        return ""
    return body.decode(charset, errors="replace")[:max_chars]


def build_plan_messages(repo_url: str, reference: str) -> List[ChatMessage]:
    return [
        ChatMessage("system", TASK_PLANNER_SYSTEM_PROMPT),
        ChatMessage("system", render_repository_context(repo_url, reference)),
        ChatMessage("user", TASK_PLANNER_USER_PROMPT),
    ]


def normalize_items(raw_items: Iterable[Any]) -> List[TaskItem]:
    """Coerce loosely-shaped task dictionaries into pending ``TaskItem`` records."""
    items: List[TaskItem] = []
    for index, raw in enumerate(raw_items, start=1):
        data = raw if isinstance(raw, dict) else {}
        identifier = data.get("id")
        title = data.get("title")
        priority = data.get("priority")
        estimate = data.get("estimateMinutes", data.get("estimate_minutes"))
        depends_on = data.get("dependsOn", data.get("depends_on"))
        items.append(
            TaskItem(
                id=str(identifier) if identifier is not None else f"t-{index}",
                title=str(title) if title is not None else f"Untitled task {index}",
                priority=priority if isinstance(priority, str) and priority in _PRIORITIES else "medium",
                estimate_minutes=_numeric(estimate),
                accepts=_string_list(data.get("accepts")),
                depends_on=_string_list(depends_on),
            )
        )
    return items


def parse_plan(content: str) -> List[TaskItem]:
    """Parse a model response into task items.

    Accepts a bare JSON array or an object with a ``tasks`` array. Raises
    ``PlanFormatError`` when the payload is not JSON or yields no items.
    """
    try:
        payload = parse_json_payload(content)
    except ValueError as error:
        raise PlanFormatError(f"Plan response is not valid JSON: {error}") from error

    if isinstance(payload, list):
        raw_items = payload
    elif isinstance(payload, dict) and isinstance(payload.get("tasks"), list):
        raw_items = payload["tasks"]
    else:
        raw_items = []

    try:
        items = normalize_items(raw_items)
    except (TypeError, ValueError) as error:
        raise PlanFormatError(f"Plan response has malformed tasks: {error}") from error
    if not items:
        raise PlanFormatError("Plan response contained no tasks.")
    return items


def generate_plan(
    client: GenerationClient,
    model_id: str,
    repo_url: str,
    *,
    params: GenerationParams | None = None,
    fetch: ReferenceFetcher | None = None,
    attempts: int = 2,
) -> List[TaskItem]:
    """Ask the model for a checklist describing ``repo_url``.

    A response that cannot be parsed is retried until ``attempts`` is used up;
    a generation error or the final parse failure returns ``fallback_plan()``.
    """
    reference = (fetch or fetch_reference)(repo_url)
    messages = build_plan_messages(repo_url, reference)
    params = params or PLAN_PARAMS

    for attempt in range(1, max(1, attempts) + 1):
        try:
            result = client.generate(model_id, messages, params)
        except Exception as error:
            LOGGER.warning("Task plan generation failed; using fallback plan: %s", error)
            return fallback_plan()
        try:
            return parse_plan(result.content if isinstance(result.content, str) else str(result.content))
        except PlanFormatError as error:
            LOGGER.warning("Task plan attempt %s unusable: %s", attempt, error)

    return fallback_plan()


def _numeric(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def _string_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(entry) for entry in value]


__all__ = [
    "PLAN_PARAMS",
    "PlanFormatError",
    "ReferenceFetcher",
    "build_plan_messages",
    "fallback_plan",
    "fetch_reference",
    "generate_plan",
    "normalize_items",
    "parse_plan",
]
