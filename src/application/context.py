"""
application.context - Immutable per-run context.

Replaces a mutable "current context" stored on the agent. Every run
receives its context explicitly and merging produces a new value, so two
jobs executing concurrently never see each other's data.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping, Optional
from uuid import uuid4


@dataclass(frozen=True)
class RunContext:
    """Context threaded through Agent.run() and workflow executions.

    Attributes:
        values:        Arbitrary caller-supplied data (read-only mapping).
        execution_id:  Correlation id of the workflow execution, if any.
        job_id:        The job being executed, if any.
        request_id:    Unique per run, for tracing/logging.
    """
    values: Mapping[str, Any] = field(default_factory=dict)
    execution_id: Optional[str] = None
    job_id: Optional[str] = None
    request_id: str = field(default_factory=lambda: uuid4().hex)

    def __post_init__(self) -> None:
        object.__setattr__(self, "values", MappingProxyType(dict(self.values)))

    @classmethod
    def coerce(cls, context: Any) -> RunContext:
        """Accept None, a mapping, or an existing RunContext."""
        if context is None:
            return cls()
        if isinstance(context, RunContext):
            return context
        if isinstance(context, Mapping):
            return cls(values=context)
        raise TypeError(f"Unsupported context type: {type(context).__name__}")

    def merge(self, other: Any) -> RunContext:
        """Return a new context with `other` layered on top of this one."""
        if other is None:
            return self
        other = RunContext.coerce(other)
        return RunContext(
            values={**self.values, **other.values},
            execution_id=other.execution_id or self.execution_id,
            job_id=other.job_id or self.job_id,
            request_id=other.request_id,
        )

    def get(self, key: str, default: Any = None) -> Any:
        return self.values.get(key, default)

    def as_dict(self) -> dict[str, Any]:
        return {
            "values": dict(self.values),
            "execution_id": self.execution_id,
            "job_id": self.job_id,
            "request_id": self.request_id,
        }
