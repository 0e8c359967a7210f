"""
domain.models - Value objects for agents, tools, jobs and workflows.

These are plain data containers with no dependencies on infrastructure
(no LangChain, no provider SDKs). Parsing from the JSON configuration
record lives next to each type as a from_dict() classmethod.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Union

from domain.exceptions import ConfigurationError


# ---------------------------------------------------------------------------
# Agent
# ---------------------------------------------------------------------------

class AgentStatus(str, Enum):
    IDLE = "idle"
    WORKING = "working"
    ERROR = "error"


@dataclass(frozen=True)
class AgentConfig:
    """Configuration record for one agent.

    llm_config carries temperature / max_output_tokens and an optional
    "provider_overrides" mapping of provider name -> extra request keys.
    tools lists tool names resolved against the factory's registered tools.
    """
    agent_id: str
    name: str = ""
    description: str = ""
    role: str = ""
    goals: tuple[str, ...] = ()
    tools: tuple[str, ...] = ()
    llm_config: dict[str, Any] = field(default_factory=dict)
    provider: Optional[str] = None
    max_history_length: Optional[int] = None

    @classmethod
    def from_dict(cls, agent_id: str, raw: dict[str, Any]) -> AgentConfig:
        if not isinstance(raw, dict):
            raise ConfigurationError(f"Agent '{agent_id}' config must be an object")
        goals = raw.get("goals") or []
        tools = raw.get("tools") or []
        if isinstance(tools, dict):
            tools = list(tools)
        llm_config = raw.get("llm_config") or raw.get("llmConfig") or {}
        return cls(
            agent_id=str(raw.get("id") or agent_id),
            name=str(raw.get("name") or agent_id),
            description=str(raw.get("description") or ""),
            role=str(raw.get("role") or ""),
            goals=tuple(str(g) for g in goals),
            tools=tuple(str(t) for t in tools),
            llm_config=dict(llm_config),
            provider=raw.get("provider"),
            max_history_length=raw.get("max_history_length") or raw.get("maxHistoryLength"),
        )


@dataclass(frozen=True)
class HistoryEntry:
    """One completed agent run: what went in and what came out."""
    input: Any
    response: Any
    timestamp: Optional[datetime] = None


# ---------------------------------------------------------------------------
# Tool calls
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ToolCall:
    """A model-issued request to invoke a named tool."""
    name: str
    args: dict[str, Any] = field(default_factory=dict)
    call_id: Optional[str] = None


@dataclass(frozen=True)
class ToolCallResult:
    """Outcome of one tool call. Exactly one of result / error is meaningful."""
    tool_name: str
    result: Any = None
    error: Optional[str] = None
    call_id: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def as_response(self) -> dict[str, Any]:
        """Payload sent back to the model in the function-result turn."""
        if self.error is not None:
            return {"error": self.error}
        return {"result": self.result}


# ---------------------------------------------------------------------------
# Jobs and workflows
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class JobDefinition:
    """A named unit of work bound to one agent.

    inputs may hold literals and ${brief.*} / ${jobs.<id>.output} references.
    """
    job_id: str
    agent_id: str
    description: str = ""
    inputs: Any = None

    @classmethod
    def from_dict(cls, job_id: str, raw: Any) -> JobDefinition:
        if not isinstance(raw, dict):
            raise ConfigurationError(f"Job '{job_id}' definition must be an object")
        agent_id = raw.get("agent") or raw.get("agent_id") or raw.get("agentId")
        if not agent_id or not isinstance(agent_id, str):
            raise ConfigurationError(f"Job '{job_id}' does not reference an agent")
        return cls(
            job_id=job_id,
            agent_id=agent_id,
            description=str(raw.get("description") or ""),
            inputs=raw.get("inputs", raw.get("input")),
        )


@dataclass(frozen=True)
class JobStep:
    """Sequential step: one job that must finish before the next step."""
    job_id: str

    @property
    def job_ids(self) -> tuple[str, ...]:
        return (self.job_id,)


@dataclass(frozen=True)
class ParallelStep:
    """A group of jobs executed concurrently."""
    job_ids: tuple[str, ...]


Step = Union[JobStep, ParallelStep]


def parse_step(raw: Any) -> Step:
    """Parse `"jobId"` or `{"type": "parallel", "jobs": [...]}` into a Step."""
    if isinstance(raw, str) and raw:
        return JobStep(raw)
    if isinstance(raw, dict) and raw.get("type") == "parallel":
        jobs = raw.get("jobs")
        if not isinstance(jobs, list) or not jobs or not all(isinstance(j, str) for j in jobs):
            raise ConfigurationError(f"Parallel step needs a non-empty list of job ids: {raw!r}")
        return ParallelStep(tuple(jobs))
    raise ConfigurationError(f"Invalid workflow step: {raw!r}")


def parse_steps(raw: Any, owner: str) -> tuple[Step, ...]:
    if not isinstance(raw, list):
        raise ConfigurationError(f"Workflow of '{owner}' must be a list of steps")
    return tuple(parse_step(s) for s in raw)


@dataclass(frozen=True)
class WorkflowDefinition:
    workflow_id: str
    steps: tuple[Step, ...]
    description: str = ""

    @classmethod
    def from_dict(cls, workflow_id: str, raw: Any) -> WorkflowDefinition:
        if isinstance(raw, list):
            raw = {"steps": raw}
        if not isinstance(raw, dict):
            raise ConfigurationError(f"Workflow '{workflow_id}' must be an object")
        return cls(
            workflow_id=workflow_id,
            steps=parse_steps(raw.get("steps"), workflow_id),
            description=str(raw.get("description") or ""),
        )


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

class JobStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    RECOVERED = "recovered"


class WorkflowStatus(str, Enum):
    COMPLETED = "completed"
    COMPLETED_WITH_ERRORS = "completed_with_errors"
    FAILED = "failed"


@dataclass
class JobResult:
    """Recorded outcome of one job in one workflow execution."""
    job_id: str
    agent_id: str
    step_index: int
    status: JobStatus
    input: Any = None
    output: Any = None
    error: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @property
    def ok(self) -> bool:
        return self.status is not JobStatus.FAILED


@dataclass
class WorkflowResult:
    execution_id: str
    workflow_id: str
    status: WorkflowStatus = WorkflowStatus.COMPLETED
    results: dict[str, JobResult] = field(default_factory=dict)
    error: Optional[str] = None
    aborted_at_step: Optional[int] = None

    def outputs(self) -> dict[str, Any]:
        """Job id -> output for every job that produced one."""
        return {
            job_id: r.output for job_id, r in self.results.items() if r.ok
        }
