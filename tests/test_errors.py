import pytest

from errors import (
    ErrorKind,
    ExecutionFailed,
    GuardrailDenied,
    InternalParseError,
    NotFound,
    Unauthorized,
    UpstreamUnavailable,
    ValidationError,
)


@pytest.mark.parametrize("cls,kind,status", [
    (Unauthorized, ErrorKind.UNAUTHORIZED, 401),
    (ValidationError, ErrorKind.VALIDATION_ERROR, 400),
    (GuardrailDenied, ErrorKind.GUARDRAIL_DENIED, 403),
    (UpstreamUnavailable, ErrorKind.UPSTREAM_UNAVAILABLE, 503),
    (NotFound, ErrorKind.NOT_FOUND, 404),
    (InternalParseError, ErrorKind.INTERNAL_PARSE_ERROR, 500),
    (ExecutionFailed, ErrorKind.EXECUTION_FAILED, 500),
])
def test_error_taxonomy(cls, kind, status):
    err = cls("nope", reason="because")
    assert err.kind is kind
    assert err.status_code == status
    assert err.message == "nope"
    assert err.reason == "because"


def test_error_kinds_serialize_as_strings():
    assert ErrorKind.GUARDRAIL_DENIED.value == "guardrail_denied"
