"""
application.services.agency - Workflow engine over one or more teams.

The agency owns the brief (inputs shared by every job), the named
workflows, optional per-job input/output contracts and error handlers.
Each execute_workflow() call gets a fresh execution id; nothing about an
execution survives the call except the returned WorkflowResult.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from application.events import EventBus
from application.services.team import Team
from application.services.workflow_runner import ErrorHandler, WorkflowRunner, validate_workflow
from domain.exceptions import ConfigurationError
from domain.models import JobDefinition, WorkflowDefinition, WorkflowResult
from domain.ports import AgentPort

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AgencyConfig:
    """The agency-level parts of the configuration record."""
    name: str
    description: str = ""
    brief: Mapping[str, Any] = field(default_factory=dict)
    workflows: Mapping[str, WorkflowDefinition] = field(default_factory=dict)
    job_schemas: Mapping[str, Mapping[str, Any]] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> AgencyConfig:
        agency = raw.get("agency") or {}
        if not isinstance(agency, dict):
            raise ConfigurationError("'agency' must be an object")
        brief = raw.get("brief") or {}
        if not isinstance(brief, dict):
            raise ConfigurationError("'brief' must be an object")
        raw_workflows = raw.get("workflows") or {}
        if not isinstance(raw_workflows, dict):
            raise ConfigurationError("'workflows' must map workflow ids to definitions")
        schemas = raw.get("jobSchemas") or raw.get("job_schemas") or {}
        if not isinstance(schemas, dict):
            raise ConfigurationError("'jobSchemas' must map job ids to contracts")
        return cls(
            name=str(agency.get("name") or "agency"),
            description=str(agency.get("description") or ""),
            brief=dict(brief),
            workflows={
                wf_id: WorkflowDefinition.from_dict(wf_id, wf)
                for wf_id, wf in raw_workflows.items()
            },
            job_schemas=dict(schemas),
        )


class Agency:
    """Holds teams, brief and workflows; executes workflows by id."""

    def __init__(
        self,
        config: AgencyConfig,
        teams: list[Team],
        *,
        bus: EventBus | None = None,
        error_handlers: Mapping[str, ErrorHandler] | None = None,
        workflow_error_handlers: Mapping[str, ErrorHandler] | None = None,
    ):
        self._config = config
        self._bus = bus or EventBus()
        self._teams = {team.id: team for team in teams}
        self._brief = dict(config.brief)
        self._error_handlers: dict[str, ErrorHandler] = dict(error_handlers or {})
        self._workflow_error_handlers: dict[str, ErrorHandler] = dict(workflow_error_handlers or {})

        self._jobs: dict[str, JobDefinition] = {}
        self._agents: dict[str, AgentPort] = {}
        skipped: set[str] = set()
        for team in teams:
            for job_id, job in team.jobs.items():
                if job_id in self._jobs:
                    raise ConfigurationError(f"Job id '{job_id}' is defined by more than one team")
                self._jobs[job_id] = job
            self._agents.update(team.agents)
            skipped |= team.skipped_jobs

        self._workflows: dict[str, WorkflowDefinition] = dict(config.workflows)
        for team in teams:
            if team.workflow and team.id not in self._workflows:
                self._workflows[team.id] = WorkflowDefinition(team.id, team.workflow, team.description)

        for workflow in self._workflows.values():
            validate_workflow(workflow, self._jobs, skipped)
        for job_id in config.job_schemas:
            if job_id not in self._jobs and job_id not in skipped:
                logger.warning("Schema declared for unknown job '%s'", job_id)

        logger.info(
            "Agency '%s' ready: %d team(s), %d job(s), %d workflow(s)",
            config.name, len(self._teams), len(self._jobs), len(self._workflows),
        )

    @property
    def name(self) -> str:
        return self._config.name

    @property
    def description(self) -> str:
        return self._config.description

    @property
    def brief(self) -> dict[str, Any]:
        return dict(self._brief)

    @property
    def teams(self) -> dict[str, Team]:
        return dict(self._teams)

    @property
    def workflows(self) -> dict[str, WorkflowDefinition]:
        return dict(self._workflows)

    @property
    def bus(self) -> EventBus:
        return self._bus

    def get_team(self, team_id: str) -> Team:
        if team_id not in self._teams:
            raise ConfigurationError(f"Unknown team '{team_id}'")
        return self._teams[team_id]

    def get_agent(self, agent_id: str) -> AgentPort:
        if agent_id not in self._agents:
            raise ConfigurationError(f"Unknown agent '{agent_id}'")
        return self._agents[agent_id]

    def register_error_handler(self, job_id: str, handler: ErrorHandler) -> None:
        self._error_handlers[job_id] = handler

    def register_workflow_error_handler(self, workflow_id: str, handler: ErrorHandler) -> None:
        self._workflow_error_handlers[workflow_id] = handler

    async def execute_workflow(
        self,
        workflow_id: str,
        context: Any = None,
        *,
        brief: Optional[Mapping[str, Any]] = None,
        job_timeout: Optional[float] = None,
        raise_on_error: bool = False,
    ) -> WorkflowResult:
        """Execute a workflow by id.

        Args:
            workflow_id:    Id from the "workflows" section (or a team id).
            context:        Mapping or RunContext passed to every agent run.
            brief:          Extra brief values layered over the agency brief.
            job_timeout:    Seconds per job; a timeout counts as a job failure.
            raise_on_error: Raise WorkflowExecutionError instead of returning
                            a failed result when an unhandled job error aborts.

        Raises:
            ConfigurationError: unknown workflow id or unresolvable reference.
        """
        workflow = self._workflows.get(workflow_id)
        if workflow is None:
            raise ConfigurationError(f"Unknown workflow '{workflow_id}'")

        runner = WorkflowRunner(
            self._jobs,
            self._agents,
            bus=self._bus,
            job_schemas=self._config.job_schemas,
            error_handlers=self._error_handlers,
        )
        return await runner.execute(
            workflow,
            {**self._brief, **(brief or {})},
            context,
            workflow_error_handler=self._workflow_error_handlers.get(workflow_id),
            job_timeout=job_timeout,
            raise_on_error=raise_on_error,
        )
