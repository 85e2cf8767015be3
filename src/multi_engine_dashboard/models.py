# models.py
from __future__ import annotations

from dataclasses import dataclass, field, asdict
from typing import List, Dict, Any, Optional, Union

# -------------------------
# Persisted entities
# -------------------------


@dataclass(frozen=True)
class Project:
    id: int
    name: str
    description: Optional[str]
    created_at: str
    updated_at: str

    @classmethod
    def from_row(cls, row) -> "Project":
        return cls(
            id=row["id"],
            name=row["name"],
            description=row["description"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class Step:
    """
    One stage of a project's fixed pipeline. Immutable once created.
    """
    id: int
    project_id: int
    name: str
    order_index: int
    created_at: str

    @classmethod
    def from_row(cls, row) -> "Step":
        return cls(
            id=row["id"],
            project_id=row["project_id"],
            name=row["name"],
            order_index=row["order_index"],
            created_at=row["created_at"],
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class Result:
    """
    One persisted engine response to one prompt at one step.
    """
    id: int
    step_id: int
    prompt: str
    engine: str
    response: str
    metadata: Optional[Dict[str, Any]]
    created_at: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# -------------------------
# Fan-out outcomes
# -------------------------


@dataclass(frozen=True)
class Success:
    text: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    ok: bool = field(default=True, init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {"ok": True, "response": self.text, "metadata": dict(self.metadata)}


@dataclass(frozen=True)
class Failure:
    error: str
    # "configuration" | "provider"
    kind: str = "provider"
    ok: bool = field(default=False, init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {"ok": False, "error": self.error, "kind": self.kind}


Outcome = Union[Success, Failure]


# -------------------------
# Presentation groups
# -------------------------


@dataclass
class PromptGroup:
    prompt: str
    results: List[Result]
    # max created_at among results
    timestamp: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "prompt": self.prompt,
            "timestamp": self.timestamp,
            "results": [r.to_dict() for r in self.results],
        }


@dataclass
class StepGroup:
    step: Step
    prompt_groups: List[PromptGroup]

    @property
    def result_count(self) -> int:
        return sum(len(g.results) for g in self.prompt_groups)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step": self.step.to_dict(),
            "resultCount": self.result_count,
            "promptGroups": [g.to_dict() for g in self.prompt_groups],
        }
