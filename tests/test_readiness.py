from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from ocdc_scheduler.readiness import (
    NotReadyReason,
    ReadinessEvaluator,
    WorkItem,
    has_dependency_reference,
    is_unfinished_tracking_issue,
)
from ocdc_scheduler.repos import RepoConfig

NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


def make_config(**readiness) -> RepoConfig:
    return RepoConfig.model_validate({"id": "org/repo", "readiness": readiness})


def make_item(number: int = 1, *, days_old: float | None = 0, **fields) -> WorkItem:
    raw = {"number": number, "title": f"Item {number}", **fields}
    if days_old is not None:
        raw["created_at"] = (NOW - timedelta(days=days_old)).strftime("%Y-%m-%dT%H:%M:%SZ")
    return WorkItem.from_raw(raw)


@pytest.fixture
def evaluator() -> ReadinessEvaluator:
    return ReadinessEvaluator(clock=lambda: NOW)


def test_blocking_label_makes_item_not_ready(evaluator: ReadinessEvaluator) -> None:
    config = make_config()

    assert not evaluator.check_labels(make_item(labels=["bug", "blocked"]), config)
    assert evaluator.check_labels(make_item(labels=["bug"]), config)


def test_exclude_labels_match_case_insensitively(evaluator: ReadinessEvaluator) -> None:
    config = make_config(labels={"exclude": ["WontFix"]})

    assert not evaluator.check_labels(make_item(labels=["wontfix"]), config)


@pytest.mark.parametrize(
    "body",
    [
        "Blocked by #10",
        "This depends on org/repo#3",
        "requires #4 to land first",
        "Waiting on #2",
        "waiting for #8",
        "Do this after #1",
    ],
)
def test_dependency_phrases_block(body: str, evaluator: ReadinessEvaluator) -> None:
    assert has_dependency_reference(body)
    assert not evaluator.check_dependencies(make_item(body=body), make_config())


@pytest.mark.parametrize("body", ["Related to #5", "requires more thought", "hereafter #3", ""])
def test_non_dependency_bodies_pass(body: str, evaluator: ReadinessEvaluator) -> None:
    assert not has_dependency_reference(body)
    assert evaluator.check_dependencies(make_item(body=body), make_config())


def test_single_checkbox_never_blocks() -> None:
    assert not is_unfinished_tracking_issue("- [ ] remember to update docs")


def test_tracking_issue_with_open_tasks_blocks(evaluator: ReadinessEvaluator) -> None:
    body = "Tasks:\n- [x] design\n- [ ] build\n* [ ] ship\n"

    assert is_unfinished_tracking_issue(body)
    assert not evaluator.check_dependencies(make_item(body=body), make_config())


def test_finished_tracking_issue_passes() -> None:
    assert not is_unfinished_tracking_issue("- [x] one\n- [X] two\n")


def test_checkbox_threshold_is_configurable(evaluator: ReadinessEvaluator) -> None:
    body = "- [ ] one\n- [ ] two\n"
    config = make_config(dependencies={"tracking_checkbox_min": 3})

    assert not is_unfinished_tracking_issue(body, min_checkboxes=3)
    assert evaluator.check_dependencies(make_item(body=body), config)


def test_body_checks_can_be_disabled(evaluator: ReadinessEvaluator) -> None:
    config = make_config(dependencies={"check_body_references": False})
    assert evaluator.check_dependencies(make_item(body="Blocked by #10"), config)


def test_priority_uses_max_label_weight(evaluator: ReadinessEvaluator) -> None:
    config = make_config(
        priority={"labels": [{"label": "low", "weight": 10}, {"label": "HIGH", "weight": 50}], "age_weight": 1}
    )
    item = make_item(labels=["low", "high"], days_old=0, comments=5, milestone={"title": "v1"})

    # Inferred bonuses only apply without a label score.
    assert evaluator.calculate_priority(item, config) == 50


def test_age_component_is_days_times_weight(evaluator: ReadinessEvaluator) -> None:
    config = make_config(priority={"age_weight": 3})

    assert evaluator.calculate_priority(make_item(days_old=4.5), config) == 12
    older = evaluator.calculate_priority(make_item(days_old=10), config)
    newer = evaluator.calculate_priority(make_item(days_old=2), config)
    assert older > newer


def test_missing_or_future_dates_have_no_age(evaluator: ReadinessEvaluator) -> None:
    config = make_config()

    assert evaluator.calculate_priority(make_item(days_old=None), config) == 0
    assert evaluator.calculate_priority(make_item(days_old=-3), config) == 0


def test_inferred_bonuses_are_capped(evaluator: ReadinessEvaluator) -> None:
    config = make_config()
    item = make_item(
        milestone={"title": "v2"},
        reactions={"+1": 100},
        comments=50,
        assignees=[{"login": "dev"}],
    )

    assert evaluator.calculate_priority(item, config) == 20 + 30 + 20 + 15


def test_small_inferred_bonuses(evaluator: ReadinessEvaluator) -> None:
    item = make_item(reactions={"+1": 2}, comments=3)
    assert evaluator.calculate_priority(item, make_config()) == 10 + 6


def test_evaluate_reports_reason(evaluator: ReadinessEvaluator) -> None:
    config = make_config()

    labelled = evaluator.evaluate(make_item(labels=["blocked"], body="Blocked by #1"), config)
    dependent = evaluator.evaluate(make_item(body="Blocked by #1"), config)
    ready = evaluator.evaluate(make_item(days_old=2), config)

    assert (labelled.eligible, labelled.reason) == (False, NotReadyReason.HAS_BLOCKING_LABEL)
    assert (dependent.eligible, dependent.reason) == (False, NotReadyReason.HAS_DEPENDENCY)
    assert ready.eligible and ready.score == 2 and ready.reason is None


def test_evaluate_batch_is_stable(evaluator: ReadinessEvaluator) -> None:
    items = [make_item(1), make_item(2, days_old=3), make_item(3)]

    ranked = evaluator.evaluate_batch(items, make_config())

    assert [item.number for item, _ in ranked] == [2, 1, 3]


def test_top_eligible_returns_raw_payloads(evaluator: ReadinessEvaluator) -> None:
    config = make_config(
        priority={
            "labels": [{"label": "critical", "weight": 100}, {"label": "medium", "weight": 25}],
            "age_weight": 1,
        }
    )
    items = [
        make_item(1, labels=[], days_old=1),
        make_item(2, labels=["medium"], days_old=1),
        make_item(3, labels=["critical"], days_old=1),
        make_item(4, labels=["critical", "blocked"], days_old=30),
    ]

    top = evaluator.top_eligible(items, config, 2)

    assert [raw["number"] for raw in top] == [3, 2]
    assert evaluator.top_eligible(items, config, 0) == []
