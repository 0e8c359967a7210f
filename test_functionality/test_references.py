"""Tests for ${brief.*} / ${jobs.*} reference resolution."""
import pytest

from application.references import ReferenceResolver, check_reference_syntax, referenced_jobs
from domain.exceptions import JobExecutionError, ReferenceResolutionError

BRIEF = {"topic": "solar", "limits": {"words": 800}, "tags": ["a", "b"]}
OUTPUTS = {"outline": {"title": "Sun", "sections": ["intro", "cost"]}, "research": "notes"}


def resolver(failed=()):
    return ReferenceResolver(BRIEF, OUTPUTS, failed)


def test_whole_string_reference_keeps_type():
    r = resolver()
    assert r.resolve("${jobs.outline.output}", "draft") == OUTPUTS["outline"]
    assert r.resolve("${brief.limits.words}", "draft") == 800
    assert r.resolve("${jobs.outline.output.sections.1}", "draft") == "cost"


def test_embedded_references_are_interpolated():
    r = resolver()
    text = r.resolve("Write about ${brief.topic} using ${jobs.research.output}", "draft")
    assert text == "Write about solar using notes"


def test_nested_structures_are_walked():
    inputs = {
        "title": "${jobs.outline.output.title}",
        "tags": ["${brief.tags.0}", "fixed"],
        "count": 3,
    }
    assert resolver().resolve(inputs, "draft") == {"title": "Sun", "tags": ["a", "fixed"], "count": 3}


@pytest.mark.parametrize("value", [
    "${brief.missing}",
    "${brief.limits.pages}",
    "${jobs.review.output}",
    "${jobs.outline.result}",
    "${other.thing}",
    "${brief}",
])
def test_unresolvable_references_raise(value):
    with pytest.raises(ReferenceResolutionError):
        resolver().resolve(value, "draft")


@pytest.mark.parametrize("value", [
    "${jobs.outline.output.sections.9}",
    "${jobs.outline.output.author}",
    "${jobs.research.output.title}",
])
def test_missing_field_in_job_output_fails_the_consuming_job(value):
    with pytest.raises(JobExecutionError) as info:
        resolver().resolve(value, "draft")
    assert info.value.job_id == "draft"
    assert isinstance(info.value.cause, ReferenceResolutionError)


def test_reference_to_failed_job_is_a_job_failure():
    with pytest.raises(JobExecutionError) as info:
        ReferenceResolver(BRIEF, {}, failed={"research"}).resolve("${jobs.research.output}", "draft")
    assert info.value.job_id == "draft"


def test_syntax_check_and_referenced_jobs():
    check_reference_syntax("jobs.a.output.x")
    with pytest.raises(ReferenceResolutionError):
        check_reference_syntax("jobs.a")
    inputs = {"x": "${jobs.a.output}", "y": ["${jobs.b.output.z} and ${brief.k}"]}
    assert referenced_jobs(inputs) == {"a", "b"}


def test_non_reference_values_pass_through():
    assert resolver().resolve(None, "j") is None
    assert resolver().resolve("plain $ text {}", "j") == "plain $ text {}"
