from cdemaker.services.errors import (
    RateLimitedError,
    TerminalModelError,
    UnknownModelError,
    classify_error,
    is_rate_limit_message,
)


def test_rate_limit_markers_case_insensitive():
    assert is_rate_limit_message("HTTP 429 Too Many Requests")
    assert is_rate_limit_message("Rate Limit exceeded")
    assert is_rate_limit_message("Quota exceeded for project")
    assert is_rate_limit_message("RESOURCE EXHAUSTED")
    assert not is_rate_limit_message("400 invalid argument")


def test_typed_errors_pass_through():
    err = TerminalModelError("bad request", status_code=400)
    assert classify_error(err) is err
    assert classify_error(RateLimitedError("slow down")).kind == "rate_limited"


def test_untyped_errors_fall_back_to_message():
    assert isinstance(classify_error(RuntimeError("429: resource exhausted")), RateLimitedError)
    other = classify_error(RuntimeError("socket closed"))
    assert isinstance(other, UnknownModelError)
    assert other.kind == "unknown"
    assert other.message == "socket closed"
