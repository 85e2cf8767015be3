# aggregator.py
"""
Turn flat result rows into the grouped views shown on the dashboard.

Pure functions: no I/O, inputs are never mutated.
"""
from __future__ import annotations

from datetime import datetime, UTC
from typing import Dict, Iterable, List

from multi_engine_dashboard.models import PromptGroup, Result, Step, StepGroup


def parse_timestamp(value: str) -> datetime:
    """
    Parse ISO-8601 text or SQLite's CURRENT_TIMESTAMP form
    ('YYYY-MM-DD HH:MM:SS'). Naive values are taken as UTC.
    """
    ts = datetime.fromisoformat(value)
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=UTC)
    return ts


def group_by_prompt(results: Iterable[Result]) -> List[PromptGroup]:
    """
    Partition results by exact prompt text.

    A group's timestamp is the latest created_at among its members;
    groups are returned newest first. Members keep their input order,
    and groups with equal timestamps keep first-seen order.
    """
    members: Dict[str, List[Result]] = {}
    for result in results:
        members.setdefault(result.prompt, []).append(result)

    groups = []
    for prompt, group_results in members.items():
        latest = max(group_results, key=lambda r: parse_timestamp(r.created_at))
        groups.append(
            PromptGroup(
                prompt=prompt,
                results=list(group_results),
                timestamp=latest.created_at,
            )
        )

    return sorted(groups, key=lambda g: parse_timestamp(g.timestamp), reverse=True)


def group_by_step(steps: Iterable[Step], results: Iterable[Result]) -> List[StepGroup]:
    """
    Group a project's results under its steps.

    Steps without results are left out; the rest are ordered by
    order_index and each holds its results grouped by prompt.
    Results for steps not in `steps` are ignored.
    """
    steps_by_id = {step.id: step for step in steps}
    by_step: Dict[int, List[Result]] = {step_id: [] for step_id in steps_by_id}

    for result in results:
        if result.step_id in by_step:
            by_step[result.step_id].append(result)

    step_groups = [
        StepGroup(step=steps_by_id[step_id], prompt_groups=group_by_prompt(step_results))
        for step_id, step_results in by_step.items()
        if step_results
    ]

    return sorted(step_groups, key=lambda sg: sg.step.order_index)


class ResultAggregator:
    """
    Fetch a project's or step's results from the store and group them.
    """

    def __init__(self, store):
        self.store = store

    def step_history(self, step_id: int) -> List[PromptGroup]:
        return group_by_prompt(self.store.results.list_results(step_id=step_id))

    def project_history(self, project_id: int) -> List[StepGroup]:
        steps = self.store.projects.list_steps(project_id)
        results = self.store.results.list_results(project_id=project_id)
        return group_by_step(steps, results)
