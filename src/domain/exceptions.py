"""
domain.exceptions - Custom exception hierarchy for the agent workflow engine.

All errors inherit from AgencyError so callers can catch broad or
specific exceptions as needed.
"""

from __future__ import annotations

from typing import Any, Optional


class AgencyError(Exception):
    """Base exception for all agency-level errors."""


class ConfigurationError(AgencyError):
    """Raised when agents, jobs, workflows or tools are misconfigured."""


class ToolValidationError(ConfigurationError):
    """Raised when a tool is registered without a name, schema or callable."""


class ReferenceResolutionError(ConfigurationError):
    """Raised when a ${brief.*} or ${jobs.*} input reference cannot be resolved."""


class LLMClientError(AgencyError):
    """Raised when the language-model provider fails (transport, auth, quota)."""


class ToolExecutionError(AgencyError):
    """Raised when a tool keeps failing after every retry attempt."""

    def __init__(self, tool_name: str, attempts: int, cause: BaseException):
        super().__init__(
            f"Tool '{tool_name}' failed after {attempts} attempt(s): {cause}"
        )
        self.tool_name = tool_name
        self.attempts = attempts
        self.cause = cause


class JobExecutionError(AgencyError):
    """Raised when a workflow job fails. Carries the job id and step index."""

    def __init__(
        self,
        job_id: str,
        message: str,
        *,
        step_index: Optional[int] = None,
        cause: Optional[BaseException] = None,
    ):
        location = f" (step {step_index})" if step_index is not None else ""
        super().__init__(f"Job '{job_id}'{location} failed: {message}")
        self.job_id = job_id
        self.step_index = step_index
        self.cause = cause


class JobSchemaError(JobExecutionError):
    """Raised when a job's resolved input or output violates its contract."""


class WorkflowExecutionError(AgencyError):
    """Raised when a workflow aborts. `result` holds what was collected so far."""

    def __init__(
        self,
        workflow_id: str,
        job_id: str,
        step_index: int,
        cause: BaseException,
        result: Any = None,
    ):
        super().__init__(
            f"Workflow '{workflow_id}' aborted at step {step_index} "
            f"(job '{job_id}'): {cause}"
        )
        self.workflow_id = workflow_id
        self.job_id = job_id
        self.step_index = step_index
        self.cause = cause
        self.result = result
