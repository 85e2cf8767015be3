# tests/test_aggregator.py
import copy

from multi_engine_dashboard.aggregator import (
    ResultAggregator,
    group_by_prompt,
    group_by_step,
    parse_timestamp,
)
from multi_engine_dashboard.db.services import open_store
from multi_engine_dashboard.models import Result, Step


def _result(id, prompt, created_at, step_id=1, engine="OpenAI"):
    return Result(
        id=id,
        step_id=step_id,
        prompt=prompt,
        engine=engine,
        response=f"response {id}",
        metadata=None,
        created_at=created_at,
    )


def _step(id, order_index, name=None, project_id=1):
    return Step(
        id=id,
        project_id=project_id,
        name=name or f"step{order_index}",
        order_index=order_index,
        created_at="2024-01-01T00:00:00.000000+00:00",
    )


T1 = "2024-05-01T10:00:00.000000+00:00"
T2 = "2024-05-01T11:00:00.000000+00:00"
T3 = "2024-05-01T12:00:00.000000+00:00"


def test_parse_timestamp_handles_naive_and_aware_values():
    assert parse_timestamp("2024-05-01 10:00:00") == parse_timestamp(T1)
    assert parse_timestamp(T2) > parse_timestamp(T1)


def test_group_by_prompt_partitions_results():
    results = [
        _result(1, "A", T1),
        _result(2, "B", T2),
        _result(3, "A", T3, engine="Google"),
        _result(4, "C", T1),
    ]

    groups = group_by_prompt(results)

    assert sorted(g.prompt for g in groups) == ["A", "B", "C"]
    member_ids = sorted(r.id for g in groups for r in g.results)
    assert member_ids == [1, 2, 3, 4]
    for g in groups:
        assert all(r.prompt == g.prompt for r in g.results)


def test_group_timestamp_is_latest_member_and_groups_are_newest_first():
    results = [
        _result(1, "A", T1),
        _result(2, "B", T2),
        _result(3, "A", T3),
    ]

    groups = group_by_prompt(results)

    assert [g.prompt for g in groups] == ["A", "B"]
    assert groups[0].timestamp == T3
    assert groups[1].timestamp == T2
    # members keep input order
    assert [r.id for r in groups[0].results] == [1, 3]


def test_equal_timestamps_keep_first_seen_order():
    results = [
        _result(1, "second", T1),
        _result(2, "first", T2),
        _result(3, "third", T1),
    ]

    groups = group_by_prompt(results)

    assert [g.prompt for g in groups] == ["first", "second", "third"]


def test_mixed_timestamp_formats_compare_chronologically():
    results = [
        _result(1, "legacy", "2024-05-01 13:00:00"),
        _result(2, "new", T3),
    ]

    groups = group_by_prompt(results)

    assert [g.prompt for g in groups] == ["legacy", "new"]


def test_prompts_are_matched_exactly():
    groups = group_by_prompt([_result(1, "Hello", T1), _result(2, "hello", T2), _result(3, "Hello ", T3)])
    assert len(groups) == 3


def test_group_by_prompt_empty_input():
    assert group_by_prompt([]) == []


def test_group_by_step_omits_empty_steps_and_orders_by_index():
    steps = [_step(30, 3), _step(10, 1), _step(20, 2), _step(40, 4)]
    results = [
        _result(1, "A", T1, step_id=30),
        _result(2, "A", T2, step_id=10),
        _result(3, "B", T3, step_id=30),
        # belongs to a step outside this project
        _result(4, "A", T3, step_id=99),
    ]

    step_groups = group_by_step(steps, results)

    assert [sg.step.order_index for sg in step_groups] == [1, 3]
    assert [sg.result_count for sg in step_groups] == [1, 2]
    assert [pg.prompt for pg in step_groups[1].prompt_groups] == ["B", "A"]


def test_group_by_step_accepts_one_shot_iterables():
    steps = iter([_step(10, 1), _step(20, 2)])
    results = iter([_result(1, "A", T1, step_id=20)])

    step_groups = group_by_step(steps, results)

    assert [sg.step.id for sg in step_groups] == [20]


def test_grouping_is_idempotent_and_does_not_mutate_input():
    results = [_result(1, "A", T1), _result(2, "B", T2), _result(3, "A", T3)]
    snapshot = copy.deepcopy(results)

    first = group_by_prompt(results)
    second = group_by_prompt(results)

    assert results == snapshot
    assert [g.to_dict() for g in first] == [g.to_dict() for g in second]


def test_step_group_to_dict_shape():
    step_groups = group_by_step([_step(10, 1, name="research")], [_result(1, "A", T1, step_id=10)])

    payload = step_groups[0].to_dict()

    assert payload["step"]["name"] == "research"
    assert payload["resultCount"] == 1
    assert payload["promptGroups"][0]["prompt"] == "A"
    assert payload["promptGroups"][0]["timestamp"] == T1
    assert payload["promptGroups"][0]["results"][0]["id"] == 1


def test_same_prompt_twice_across_engines_forms_one_group(tmp_path):
    store = open_store(tmp_path / "agg.db")
    project = store.projects.create_project("P")
    steps = store.projects.list_steps(project.id)
    first, third = steps[0], steps[2]

    saved = []
    for _ in range(2):
        for engine in ("OpenAI", "Google"):
            saved.append(store.results.save_result(first.id, "X", engine, f"{engine} says hi"))
    store.results.save_result(third.id, "Y", "Anthropic", "later step")

    aggregator = ResultAggregator(store)

    step_groups = aggregator.step_history(first.id)
    assert len(step_groups) == 1
    group = step_groups[0]
    assert group.prompt == "X"
    assert len(group.results) == 4
    assert group.timestamp == max(r.created_at for r in saved)

    history = aggregator.project_history(project.id)
    assert [sg.step.name for sg in history] == [first.name, third.name]
    assert [sg.result_count for sg in history] == [4, 1]

    assert aggregator.project_history(12345) == []
    assert aggregator.step_history(12345) == []
