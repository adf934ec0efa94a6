"""
Value comparison for assertions.

Each matcher returns (matched, detail); detail always names both the
expected and the actual value so a report can be read without
re-running anything.
"""

import posixpath
import re
from typing import Any, Tuple, Union

from ..exceptions import AssertionMismatch
from ..models.assertion import Matcher


def format_value(value: Any) -> str:
    """Human-readable rendering for report details."""
    if (
        isinstance(value, tuple)
        and len(value) == 3
        and all(isinstance(v, int) and not isinstance(v, bool) for v in value)
    ):
        major, minor, mode = value
        return f"{major}:{minor}:{mode:04o}"
    if isinstance(value, bytes):
        text = repr(value)
        return text if len(text) <= 120 else text[:117] + "..."
    return repr(value)


def normalize_line_endings(data: Union[str, bytes]) -> bytes:
    """CRLF and lone CR become LF. Strings are encoded as UTF-8."""
    if isinstance(data, str):
        data = data.encode("utf-8")
    return data.replace(b"\r\n", b"\n").replace(b"\r", b"\n")


def resolve_link_target(target: str, link_path: str) -> str:
    """Absolute, normalized form of a symlink target.

    A relative target is resolved against the directory holding the
    link, so "pts/ptmx" under /dev/ptmx becomes /dev/pts/ptmx.
    """
    if not target.startswith("/"):
        target = posixpath.join(posixpath.dirname(link_path), target)
    return posixpath.normpath(target)


def compare(
    matcher: Matcher,
    expected: Any,
    actual: Any,
    link_path: str = "/",
) -> Tuple[bool, str]:
    """Compare actual against expected.

    Args:
        matcher: How to compare
        expected: Expected value
        actual: Observed value
        link_path: Path of the link for SYMLINK_TARGET comparisons

    Returns:
        (matched, detail)
    """
    if matcher == Matcher.SYMLINK_TARGET:
        want = resolve_link_target(str(expected), link_path)
        got = resolve_link_target(str(actual), link_path)
        matched = want == got
        detail = f"expected link to {want}, got {actual!r}"
        if matched and got != str(actual):
            detail = f"{actual!r} resolves to {got}"
        elif matched:
            detail = f"links to {got}"
        return matched, detail

    if matcher == Matcher.REGEX:
        text = actual if isinstance(actual, str) else format_value(actual)
        matched = re.search(str(expected), text) is not None
        return matched, f"expected match for /{expected}/, got {text!r}"

    if matcher == Matcher.OUTPUT:
        want = normalize_line_endings(expected)
        got = normalize_line_endings(actual)
        if want == got:
            return True, f"output matches ({len(got)} bytes)"
        return False, f"expected output {format_value(want)}, got {format_value(got)}"

    # EQUALS
    if isinstance(expected, bool) or isinstance(actual, bool):
        matched = bool(actual) == bool(expected) and isinstance(actual, bool)
    elif isinstance(expected, (list, tuple)) and isinstance(actual, (list, tuple)):
        matched = tuple(expected) == tuple(actual)
    elif isinstance(expected, (int, float)) and isinstance(actual, (int, float)):
        matched = expected == actual
    else:
        matched = str(expected) == str(actual)

    if matched:
        return True, f"got {format_value(actual)}"
    return False, f"expected {format_value(expected)}, got {format_value(actual)}"


def assert_match(matcher: Matcher, expected: Any, actual: Any, link_path: str = "/") -> str:
    """Like compare(), but raises AssertionMismatch instead of returning False."""
    matched, detail = compare(matcher, expected, actual, link_path)
    if not matched:
        raise AssertionMismatch(expected, actual, detail)
    return detail
