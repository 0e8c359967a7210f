"""
application.references - ${...} input references between jobs.

Grammar (inside any string of a job's `inputs`, nested dicts/lists walked):

    ${brief.KEY}                   value of KEY in the agency brief
    ${brief.KEY.a.b}               nested field / list index inside it
    ${jobs.JOB_ID.output}          recorded output of an earlier job
    ${jobs.JOB_ID.output.a.0}      nested field / list index inside it

A string that is exactly one reference resolves to the raw value; references
embedded in longer text are interpolated with str(). Anything that cannot be
resolved raises, never a silent None: a field missing from an earlier job's
output fails the consuming job (JobExecutionError); every other miss is a
ReferenceResolutionError.
"""

from __future__ import annotations

import re
from typing import Any, Collection, Iterator, Mapping

from domain.exceptions import JobExecutionError, ReferenceResolutionError

_REFERENCE_RE = re.compile(r"\$\{([^}]+)\}")


def iter_references(value: Any) -> Iterator[str]:
    """Yield every reference path found in a (possibly nested) job input value."""
    if isinstance(value, str):
        for match in _REFERENCE_RE.finditer(value):
            yield match.group(1).strip()
    elif isinstance(value, (list, tuple)):
        for item in value:
            yield from iter_references(item)
    elif isinstance(value, dict):
        for item in value.values():
            yield from iter_references(item)


def referenced_jobs(value: Any) -> set[str]:
    """Job ids referenced through ${jobs.<id>.output...}."""
    jobs = set()
    for path in iter_references(value):
        parts = path.split(".")
        if parts[0] == "jobs" and len(parts) >= 2:
            jobs.add(parts[1])
    return jobs


def check_reference_syntax(path: str) -> None:
    parts = path.split(".")
    if parts[0] == "brief":
        if len(parts) < 2 or not parts[1]:
            raise ReferenceResolutionError(f"'${{{path}}}' must name a brief key")
    elif parts[0] == "jobs":
        if len(parts) < 3 or not parts[1] or parts[2] != "output":
            raise ReferenceResolutionError(
                f"'${{{path}}}' must have the form jobs.<id>.output[.field]"
            )
    else:
        raise ReferenceResolutionError(
            f"'${{{path}}}' must start with 'brief.' or 'jobs.'"
        )


def _walk(value: Any, parts: list[str], path: str) -> Any:
    cur = value
    for part in parts:
        if isinstance(cur, Mapping):
            if part not in cur:
                raise ReferenceResolutionError(f"'${{{path}}}': no field '{part}'")
            cur = cur[part]
        elif isinstance(cur, (list, tuple)):
            try:
                cur = cur[int(part)]
            except (ValueError, IndexError) as exc:
                raise ReferenceResolutionError(f"'${{{path}}}': bad index '{part}'") from exc
        elif not isinstance(cur, (str, bytes, int, float, bool)) and hasattr(cur, part):
            cur = getattr(cur, part)
        else:
            raise ReferenceResolutionError(f"'${{{path}}}': no field '{part}'")
    return cur


class ReferenceResolver:
    """Resolves references against the brief and the outputs collected so far."""

    def __init__(
        self,
        brief: Mapping[str, Any],
        outputs: Mapping[str, Any],
        failed: Collection[str] = (),
    ):
        self._brief = brief
        self._outputs = outputs
        self._failed = failed

    def lookup(self, path: str, job_id: str) -> Any:
        check_reference_syntax(path)
        parts = path.split(".")
        if parts[0] == "brief":
            key = parts[1]
            if key not in self._brief:
                raise ReferenceResolutionError(f"Job '{job_id}': brief has no key '{key}'")
            return _walk(self._brief[key], parts[2:], path)

        source = parts[1]
        if source in self._failed:
            raise JobExecutionError(job_id, f"depends on failed job '{source}'")
        if source not in self._outputs:
            raise ReferenceResolutionError(
                f"Job '{job_id}' references job '{source}' which has not been executed"
            )
        # Output shape is only known at run time: a missing field fails the consuming job.
        try:
            return _walk(self._outputs[source], parts[3:], path)
        except ReferenceResolutionError as exc:
            raise JobExecutionError(job_id, str(exc), cause=exc) from exc

    def resolve(self, value: Any, job_id: str) -> Any:
        """Return `value` with every reference replaced."""
        if isinstance(value, str):
            whole = _REFERENCE_RE.fullmatch(value.strip())
            if whole:
                return self.lookup(whole.group(1).strip(), job_id)

            def _repl(match: re.Match[str]) -> str:
                v = self.lookup(match.group(1).strip(), job_id)
                return "" if v is None else str(v)

            return _REFERENCE_RE.sub(_repl, value)

        if isinstance(value, list):
            return [self.resolve(v, job_id) for v in value]
        if isinstance(value, tuple):
            return tuple(self.resolve(v, job_id) for v in value)
        if isinstance(value, dict):
            return {k: self.resolve(v, job_id) for k, v in value.items()}
        return value
