import pytest

from nodeproblem.log_buffer import LogBuffer, concat_logs
from nodeproblem.types import Log


@pytest.mark.parametrize(
    "max_lines, logs, expected",
    [
        (1, ["a", "b"], "b"),
        (2, ["a", "b"], "a\nb"),
        (2, ["a", "b", "c"], "b\nc"),
        (2, ["a", "b", "c", "d"], "c\nd"),
    ],
)
def test_push(max_lines, logs, expected):
    buffer = LogBuffer(max_lines)
    for message in logs:
        buffer.push(Log(message=message))
    assert str(buffer) == expected


def _messages(buffer, expr):
    return [log.message for log in buffer.match(expr)]


@pytest.mark.parametrize(
    "expr, expected",
    [
        ("a1", []),
        ("b1", []),
        ("b2", ["b2"]),
        (r"\w{2}", ["b2"]),
        ("a1\nb2", ["a1", "b2"]),
        ("a1b2", []),
    ],
)
def test_match_buffer_not_full(expr, expected):
    buffer = LogBuffer(4)
    for message in ["a1", "b2"]:
        buffer.push(Log(message=message))
    assert _messages(buffer, expr) == expected


@pytest.mark.parametrize(
    "expr, expected",
    [
        ("(?s)a1.+", []),
        (r"[a-z]\d\n[a-z]\d", ["d4", "e5"]),
        (r"[a-z]\d", ["e5"]),
    ],
)
def test_match_buffer_full(expr, expected):
    buffer = LogBuffer(4)
    for message in ["a1", "b2", "c3", "d4", "e5"]:
        buffer.push(Log(message=message))
    assert _messages(buffer, expr) == expected


def test_match_returns_the_pushed_objects():
    buffer = LogBuffer(3)
    log = Log(message="hello")
    buffer.push(log)
    assert buffer.match("hello")[0] is log


def test_empty_buffer_matches_nothing():
    assert LogBuffer(3).match("x") == []


def test_invalid_size():
    with pytest.raises(ValueError):
        LogBuffer(0)


def test_concat_logs():
    assert concat_logs(["a", "b", "c"]) == "a\nb\nc"
    assert concat_logs([]) == ""