"""
application.services.team - A named group of agents, jobs and a workflow.

Built from the "team" section of the configuration record. Agents are
resolved against an already-constructed registry: a job whose agent is
missing is skipped with a warning, a malformed job map fails fast.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from application.events import EventBus
from application.services.workflow_runner import ErrorHandler, WorkflowRunner, validate_workflow
from domain.exceptions import ConfigurationError
from domain.models import JobDefinition, Step, WorkflowDefinition, WorkflowResult, parse_steps
from domain.ports import AgentPort

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TeamConfig:
    team_id: str
    name: str
    description: str = ""
    agent_ids: tuple[str, ...] = ()
    jobs: Mapping[str, JobDefinition] = field(default_factory=dict)
    workflow: tuple[Step, ...] = ()

    @classmethod
    def from_dict(cls, team_id: str, raw: Any) -> TeamConfig:
        if not isinstance(raw, dict):
            raise ConfigurationError(f"Team '{team_id}' config must be an object")
        agent_ids = raw.get("agents") or []
        if not isinstance(agent_ids, list):
            raise ConfigurationError(f"Team '{team_id}': 'agents' must be a list of ids")
        raw_jobs = raw.get("jobs") or {}
        if not isinstance(raw_jobs, dict):
            raise ConfigurationError(f"Team '{team_id}': 'jobs' must map job ids to definitions")
        jobs = {job_id: JobDefinition.from_dict(job_id, j) for job_id, j in raw_jobs.items()}
        return cls(
            team_id=team_id,
            name=str(raw.get("name") or team_id),
            description=str(raw.get("description") or ""),
            agent_ids=tuple(str(a) for a in agent_ids),
            jobs=jobs,
            workflow=parse_steps(raw.get("workflow") or [], team_id),
        )


class Team:
    """Resolves which agent runs which job and exposes the team workflow."""

    def __init__(
        self,
        config: TeamConfig,
        agents: Mapping[str, AgentPort],
        *,
        bus: EventBus | None = None,
        job_schemas: Mapping[str, Mapping[str, Any]] | None = None,
    ):
        self._config = config
        self._bus = bus or EventBus()
        self._job_schemas = dict(job_schemas or {})

        self._agents: dict[str, AgentPort] = {}
        for agent_id in config.agent_ids:
            agent = agents.get(agent_id)
            if agent is None:
                logger.warning("Team '%s': agent '%s' not found", config.team_id, agent_id)
                continue
            self._agents[agent_id] = agent

        self._jobs: dict[str, JobDefinition] = {}
        self._skipped: set[str] = set()
        for job_id, job in config.jobs.items():
            if job.agent_id not in self._agents:
                logger.warning(
                    "Team '%s': skipping job '%s', agent '%s' is not available",
                    config.team_id, job_id, job.agent_id,
                )
                self._skipped.add(job_id)
                continue
            self._jobs[job_id] = job

        self._workflow = WorkflowDefinition(
            workflow_id=config.team_id, steps=config.workflow, description=config.description,
        )
        validate_workflow(self._workflow, self._jobs, self._skipped)

    @property
    def id(self) -> str:
        return self._config.team_id

    @property
    def name(self) -> str:
        return self._config.name

    @property
    def description(self) -> str:
        return self._config.description

    @property
    def agents(self) -> dict[str, AgentPort]:
        return dict(self._agents)

    @property
    def jobs(self) -> dict[str, JobDefinition]:
        return dict(self._jobs)

    @property
    def skipped_jobs(self) -> set[str]:
        return set(self._skipped)

    @property
    def workflow(self) -> tuple[Step, ...]:
        return self._workflow.steps

    def has_job(self, job_id: str) -> bool:
        return job_id in self._jobs

    def get_job(self, job_id: str) -> JobDefinition:
        job = self._jobs.get(job_id)
        if job is None:
            raise ConfigurationError(f"Team '{self.id}' has no job '{job_id}'")
        return job

    def get_agent_for_job(self, job_id: str) -> AgentPort:
        return self._agents[self.get_job(job_id).agent_id]

    async def run(
        self,
        brief: Optional[Mapping[str, Any]] = None,
        context: Any = None,
        *,
        error_handlers: Mapping[str, ErrorHandler] | None = None,
        job_timeout: Optional[float] = None,
        raise_on_error: bool = False,
    ) -> WorkflowResult:
        """Execute the team's own workflow."""
        runner = WorkflowRunner(
            self._jobs, self._agents, bus=self._bus,
            job_schemas=self._job_schemas, error_handlers=error_handlers,
        )
        return await runner.execute(
            self._workflow,
            brief or {},
            context,
            job_timeout=job_timeout,
            raise_on_error=raise_on_error,
        )
