from __future__ import annotations

import pytest

from ao.models.generation import GenerationTransportError
from ao.planning.generation import (
    PlanFormatError,
    fallback_plan,
    fetch_reference,
    generate_plan,
    normalize_items,
    parse_plan,
)


def _no_fetch(url: str) -> str:
    return ""


def test_normalize_items_fills_defaults() -> None:
    items = normalize_items(
        [
            {"id": 7, "title": "Build", "priority": "urgent", "estimateMinutes": "90", "accepts": [1, "two"]},
            {"dependsOn": ["7"], "estimateMinutes": 15, "priority": "low"},
            "not a task",
        ]
    )

    first, second, third = items
    assert first.id == "7"
    assert first.priority == "medium"
    assert first.estimate_minutes is None
    assert first.accepts == ["1", "two"]
    assert second.id == "t-2"
    assert second.title == "Untitled task 2"
    assert second.depends_on == ["7"]
    assert second.estimate_minutes == 15
    assert second.priority == "low"
    assert third.id == "t-3"
    assert all(item.status == "pending" for item in items)


def test_parse_plan_accepts_array_or_tasks_object() -> None:
    assert [item.id for item in parse_plan('[{"id": "x", "title": "X"}]')] == ["x"]
    fenced = '```json\n{"tasks": [{"id": "y", "title": "Y"}]}\n```'
    assert [item.id for item in parse_plan(fenced)] == ["y"]


def test_generate_plan_retries_once_then_falls_back(scripted_client) -> None:
    client = scripted_client("not json", '{"tasks": []}')

    items = generate_plan(client, "m", "https://example.com/repo", fetch=_no_fetch)

    assert len(client.calls) == 2
    assert [item.id for item in items] == ["plan-1", "monitor-1", "resume-1", "persist-1", "ui-1"]


def test_generate_plan_uses_second_attempt_when_valid(scripted_client) -> None:
    client = scripted_client("oops", [{"id": "only", "title": "Only task"}])

    items = generate_plan(client, "m", "https://example.com/repo", fetch=_no_fetch)

    assert [item.id for item in items] == ["only"]


def test_generate_plan_falls_back_on_generation_error(scripted_client) -> None:
    client = scripted_client(GenerationTransportError("timeout"))

    items = generate_plan(client, "m", "https://example.com/repo", fetch=_no_fetch)

    assert len(client.calls) == 1
    assert items == fallback_plan()


def test_generate_plan_sends_reference_and_sampling_params(scripted_client) -> None:
    client = scripted_client([{"id": "a", "title": "A"}])

    generate_plan(client, "m", "https://example.com/repo", fetch=lambda url: f"README for {url}")

    call = client.calls[0]
    assert call.params.temperature == 0.2
    assert call.params.max_tokens == 2500
    assert call.system[1] == (
        "Repository URL: https://example.com/repo\n"
        "README / page excerpt:\nREADME for https://example.com/repo"
    )


def test_fallback_plan_chains_dependencies() -> None:
    plan = fallback_plan()

    assert plan[0].depends_on == []
    for previous, item in zip(plan, plan[1:]):
        assert item.depends_on == [previous.id]
    assert [item.estimate_minutes for item in plan] == [120, 90, 60, 45, 90]
    assert [item.priority for item in plan] == ["high", "high", "medium", "medium", "medium"]


def test_fetch_reference_is_best_effort(tmp_path) -> None:
    readme = tmp_path / "README.md"
    readme.write_text("x" * 5000, encoding="utf-8")

    assert fetch_reference(readme.as_uri(), max_chars=100) == "x" * 100
    assert fetch_reference((tmp_path / "missing.md").as_uri()) == ""
    assert fetch_reference("not a url") == ""


def test_deeply_nested_reply_is_retried(scripted_client) -> None:
    client = scripted_client(
        "[" * 200000,
        {"tasks": [{"id": "a", "title": "A", "priority": ["high"]}]},
    )

    items = generate_plan(client, "m", "https://example.com/repo", fetch=_no_fetch)

    assert len(client.calls) == 2
    assert [(item.id, item.priority) for item in items] == [("a", "medium")]


def test_normalize_items_ignores_unhashable_priority() -> None:
    items = normalize_items([{"id": "a", "title": "A", "priority": {"level": "high"}}])

    assert items[0].priority == "medium"


def test_normalisation_errors_surface_as_plan_format_errors(monkeypatch) -> None:
    def broken(raw_items):
        raise TypeError("unhashable type: 'list'")

    monkeypatch.setattr("ao.planning.generation.normalize_items", broken)

    with pytest.raises(PlanFormatError, match="malformed tasks"):
        parse_plan('[{"id": "a"}]')
