"""
application.services.workflow_runner - Step walker shared by Team and Agency.

Executes a workflow definition:
    1. Sequential step  -> resolve inputs, run the job's agent, await it
    2. Parallel step    -> resolve every member's inputs first, then run all
                           agents concurrently and wait for all to settle
    3. Failed job       -> per-job handler, else workflow handler, else abort
                           the remaining steps (collected results are kept)

Configuration errors (unknown jobs, bad references) are raised immediately
and never routed to error handlers.
"""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Collection, Mapping, Optional
from uuid import uuid4

from application.context import RunContext
from application.events import (
    JOB_COMPLETED,
    JOB_FAILED,
    JOB_STARTED,
    WORKFLOW_COMPLETED,
    WORKFLOW_STARTED,
    EventBus,
)
from application.references import ReferenceResolver, check_reference_syntax, iter_references, referenced_jobs
from domain.exceptions import (
    ConfigurationError,
    JobExecutionError,
    JobSchemaError,
    WorkflowExecutionError,
)
from domain.models import (
    JobDefinition,
    JobResult,
    JobStatus,
    ParallelStep,
    WorkflowDefinition,
    WorkflowResult,
    WorkflowStatus,
)
from domain.ports import AgentPort

logger = logging.getLogger(__name__)

ErrorHandler = Callable[[JobExecutionError, RunContext], Any]

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.DOTALL)


# ---------------------------------------------------------------------------
# Static validation
# ---------------------------------------------------------------------------

def validate_workflow(
    workflow: WorkflowDefinition,
    jobs: Mapping[str, JobDefinition],
    skipped: Collection[str] = (),
) -> None:
    """Reject unknown jobs, forward/same-step references and agent reuse in a parallel step.

    Jobs listed in `skipped` (dropped because their agent is missing) are
    allowed here; executing a step that needs one raises ConfigurationError.
    """
    earlier: set[str] = set()
    for index, step in enumerate(workflow.steps):
        step_jobs = step.job_ids
        if len(set(step_jobs)) != len(step_jobs):
            raise ConfigurationError(
                f"Workflow '{workflow.workflow_id}' step {index} lists a job twice"
            )
        agents_in_step: dict[str, str] = {}
        for job_id in step_jobs:
            if job_id in earlier:
                raise ConfigurationError(
                    f"Workflow '{workflow.workflow_id}' runs job '{job_id}' more than once"
                )
            job = jobs.get(job_id)
            if job is None:
                if job_id in skipped:
                    logger.warning(
                        "Workflow '%s' step %d uses unavailable job '%s'",
                        workflow.workflow_id, index, job_id,
                    )
                    continue
                raise ConfigurationError(
                    f"Workflow '{workflow.workflow_id}' references unknown job '{job_id}'"
                )
            for path in iter_references(job.inputs):
                check_reference_syntax(path)
            for source in referenced_jobs(job.inputs):
                if source not in earlier:
                    raise ConfigurationError(
                        f"Job '{job_id}' (step {index}) references job '{source}' "
                        "which does not run in an earlier step"
                    )
            if isinstance(step, ParallelStep):
                other = agents_in_step.get(job.agent_id)
                if other is not None:
                    raise ConfigurationError(
                        f"Jobs '{other}' and '{job_id}' share agent '{job.agent_id}' "
                        f"in parallel step {index} of workflow '{workflow.workflow_id}'"
                    )
                agents_in_step[job.agent_id] = job_id
        earlier.update(step_jobs)


# ---------------------------------------------------------------------------
# Job contracts
# ---------------------------------------------------------------------------

def check_job_input(job_id: str, schema: Optional[Mapping[str, Any]], value: Any) -> None:
    if not schema:
        return
    required = schema.get("required") or []
    if required:
        if not isinstance(value, Mapping):
            raise JobSchemaError(job_id, "input must be an object")
        missing = [k for k in required if k not in value]
        if missing:
            raise JobSchemaError(job_id, f"input is missing {', '.join(missing)}")


def apply_job_output(job_id: str, schema: Optional[Mapping[str, Any]], value: Any) -> Any:
    """Check the agent's output; "object" outputs are parsed from JSON text."""
    if not schema:
        return value
    if schema.get("type") == "object":
        if isinstance(value, str):
            text = _FENCE_RE.sub("", value.strip()).strip()
            try:
                value = json.loads(text)
            except json.JSONDecodeError as exc:
                raise JobSchemaError(job_id, f"output is not valid JSON: {exc}") from exc
        if not isinstance(value, Mapping):
            raise JobSchemaError(job_id, "output must be an object")
        missing = [k for k in schema.get("required") or [] if k not in value]
        if missing:
            raise JobSchemaError(job_id, f"output is missing {', '.join(missing)}")
    return value


def build_job_payload(job: JobDefinition, resolved: Any) -> Any:
    """What the agent receives: the job description plus resolved inputs."""
    if not job.description:
        return resolved
    if resolved is None:
        return job.description
    return {"task": job.description, "input": resolved}


def _now() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------

@dataclass
class _PreparedJob:
    job: JobDefinition
    agent: AgentPort
    input: Any


class WorkflowRunner:
    """Executes workflows over a fixed set of jobs and agents."""

    def __init__(
        self,
        jobs: Mapping[str, JobDefinition],
        agents: Mapping[str, AgentPort],
        *,
        bus: EventBus | None = None,
        job_schemas: Mapping[str, Mapping[str, Any]] | None = None,
        error_handlers: Mapping[str, ErrorHandler] | None = None,
    ):
        self._jobs = jobs
        self._agents = agents
        self._bus = bus or EventBus()
        self._job_schemas = job_schemas or {}
        self._error_handlers = error_handlers if error_handlers is not None else {}

    async def execute(
        self,
        workflow: WorkflowDefinition,
        brief: Mapping[str, Any],
        context: Any = None,
        *,
        workflow_error_handler: ErrorHandler | None = None,
        job_timeout: Optional[float] = None,
        raise_on_error: bool = False,
    ) -> WorkflowResult:
        """Walk the steps in order. Returns the result map and overall status."""
        execution_id = uuid4().hex
        ctx = RunContext.coerce(context).merge(RunContext(execution_id=execution_id))
        result = WorkflowResult(execution_id=execution_id, workflow_id=workflow.workflow_id)
        outputs: dict[str, Any] = {}
        failed: set[str] = set()

        logger.info(
            "Workflow '%s' started (execution=%s, %d step(s))",
            workflow.workflow_id, execution_id, len(workflow.steps),
        )
        self._bus.emit(WORKFLOW_STARTED, {
            "workflow": workflow.workflow_id, "executionId": execution_id,
        })

        for index, step in enumerate(workflow.steps):
            resolver = ReferenceResolver(brief, outputs, failed)
            prepared: list[_PreparedJob] = []
            early_failures: list[tuple[str, JobExecutionError]] = []

            # Resolve every input before dispatching anything in this step.
            for job_id in step.job_ids:
                job = self._jobs.get(job_id)
                if job is None:
                    raise ConfigurationError(
                        f"Workflow '{workflow.workflow_id}' step {index}: job '{job_id}' is not available"
                    )
                agent = self._agents.get(job.agent_id)
                if agent is None:
                    raise ConfigurationError(
                        f"Job '{job_id}' references unknown agent '{job.agent_id}'"
                    )
                try:
                    resolved = resolver.resolve(job.inputs, job_id)
                    check_job_input(job_id, self._job_schemas.get(job_id, {}).get("input"), resolved)
                except JobExecutionError as exc:
                    exc.step_index = index
                    early_failures.append((job_id, exc))
                    continue
                prepared.append(_PreparedJob(job, agent, resolved))

            logger.info(
                "Workflow '%s' step %d: %s", workflow.workflow_id, index, ", ".join(step.job_ids),
            )
            job_results = await asyncio.gather(*(
                self._run_job(p, index, ctx, workflow.workflow_id, job_timeout) for p in prepared
            ))
            settled: list[tuple[str, Any, Optional[JobExecutionError]]] = [
                (p.job.job_id, *r) for p, r in zip(prepared, job_results)
            ]
            settled.extend((job_id, None, err) for job_id, err in early_failures)

            abort: Optional[JobExecutionError] = None
            for job_id, job_result, error in sorted(settled, key=lambda s: step.job_ids.index(s[0])):
                if error is None:
                    result.results[job_id] = job_result
                    outputs[job_id] = job_result.output
                    continue

                record = job_result or self._failure_record(
                    self._jobs[job_id], index, None, error,
                )
                result.results[job_id] = record
                handled, recovered = await self._handle_failure(
                    error, ctx, workflow_error_handler,
                )
                if handled and recovered is not None:
                    record.status = JobStatus.RECOVERED
                    record.output = recovered
                    outputs[job_id] = recovered
                    logger.warning("Job '%s' failed and was recovered by its error handler", job_id)
                elif handled:
                    failed.add(job_id)
                    logger.warning("Job '%s' failed; error handled, workflow continues", job_id)
                else:
                    failed.add(job_id)
                    abort = abort or error

            if abort is not None:
                result.status = WorkflowStatus.FAILED
                result.error = str(abort)
                result.aborted_at_step = index
                logger.error(
                    "Workflow '%s' aborted at step %d: %s", workflow.workflow_id, index, abort,
                )
                self._bus.emit(WORKFLOW_COMPLETED, {
                    "workflow": workflow.workflow_id, "executionId": execution_id,
                    "status": result.status.value,
                })
                if raise_on_error:
                    raise WorkflowExecutionError(
                        workflow.workflow_id, abort.job_id, index,
                        abort.cause or abort, result,
                    ) from abort
                return result

        if any(r.status is not JobStatus.SUCCEEDED for r in result.results.values()):
            result.status = WorkflowStatus.COMPLETED_WITH_ERRORS
        logger.info("Workflow '%s' finished: %s", workflow.workflow_id, result.status.value)
        self._bus.emit(WORKFLOW_COMPLETED, {
            "workflow": workflow.workflow_id, "executionId": execution_id,
            "status": result.status.value,
        })
        return result

    async def _run_job(
        self,
        prepared: _PreparedJob,
        step_index: int,
        ctx: RunContext,
        workflow_id: str,
        timeout: Optional[float],
    ) -> tuple[JobResult, Optional[JobExecutionError]]:
        """Run one job. Never raises: failures come back as (record, error)."""
        job, agent = prepared.job, prepared.agent
        started = _now()
        event = {
            "workflow": workflow_id, "executionId": ctx.execution_id,
            "job": job.job_id, "agent": agent.id, "step": step_index,
        }
        self._bus.emit(JOB_STARTED, event)
        job_ctx = ctx.merge(RunContext(
            values={"job": job.job_id, "workflow": workflow_id},
            execution_id=ctx.execution_id,
            job_id=job.job_id,
        ))

        try:
            call = agent.run(build_job_payload(job, prepared.input), job_ctx)
            if timeout is not None:
                output = await asyncio.wait_for(call, timeout)
            else:
                output = await call
            output = apply_job_output(
                job.job_id, self._job_schemas.get(job.job_id, {}).get("output"), output,
            )
        except JobExecutionError as exc:
            exc.step_index = step_index
            error = exc
        except asyncio.TimeoutError as exc:
            error = JobExecutionError(
                job.job_id, f"timed out after {timeout}s", step_index=step_index, cause=exc,
            )
        except Exception as exc:
            error = JobExecutionError(job.job_id, str(exc), step_index=step_index, cause=exc)
        else:
            record = JobResult(
                job_id=job.job_id, agent_id=agent.id, step_index=step_index,
                status=JobStatus.SUCCEEDED, input=prepared.input, output=output,
                started_at=started, finished_at=_now(),
            )
            self._bus.emit(JOB_COMPLETED, {**event, "output": output})
            return record, None

        self._bus.emit(JOB_FAILED, {**event, "error": error})
        record = self._failure_record(job, step_index, prepared.input, error, started)
        return record, error

    @staticmethod
    def _failure_record(
        job: JobDefinition,
        step_index: int,
        input: Any,
        error: JobExecutionError,
        started: Optional[datetime] = None,
    ) -> JobResult:
        return JobResult(
            job_id=job.job_id, agent_id=job.agent_id, step_index=step_index,
            status=JobStatus.FAILED, input=input, error=str(error),
            started_at=started, finished_at=_now(),
        )

    async def _handle_failure(
        self,
        error: JobExecutionError,
        ctx: RunContext,
        workflow_handler: ErrorHandler | None,
    ) -> tuple[bool, Any]:
        """Returns (handled, recovered_output)."""
        handler = self._error_handlers.get(error.job_id) or workflow_handler
        if handler is None:
            return False, None
        try:
            value = handler(error, ctx)
            if inspect.isawaitable(value):
                value = await value
        except Exception:
            logger.exception("Error handler for job '%s' failed", error.job_id)
            return False, None
        return True, value
