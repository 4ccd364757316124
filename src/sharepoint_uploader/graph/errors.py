"""Graph error documents and their translation into readable failure messages.

Graph reports failures as ``{"error": {"code", "message", "details": [...],
"innerError": {...}}}`` where ``innerError`` may itself nest further inner
errors. This module parses that shape into a small, depth-bounded tree and
renders it (or any other exception) into one deterministic message.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

# Inner error chains deeper than this are truncated.
MAX_INNER_ERROR_DEPTH = 5

# Structured codes Graph uses when a create collides with an existing name.
NAME_CONFLICT_CODES = frozenset({"nameAlreadyExists", "resourceAlreadyExists"})

HTTP_CONFLICT = 409

FIELD_ERROR = "error"
FIELD_CODE = "code"
FIELD_MESSAGE = "message"
FIELD_DETAILS = "details"
FIELD_TARGET = "target"
FIELD_INNER_ERROR = "innerError"


@dataclass(frozen=True)
class ErrorDetail:
    """A single ``{target, message}`` entry from an error's details list."""

    target: str
    message: str


@dataclass(frozen=True)
class InnerError:
    """One link in the chain of nested inner errors."""

    code: str
    message: str
    inner: InnerError | None = None

    def chain(self) -> list[InnerError]:
        """Return this error and its descendants, outer first, capped in depth."""
        levels: list[InnerError] = []
        current: InnerError | None = self
        while current is not None and len(levels) < MAX_INNER_ERROR_DEPTH:
            levels.append(current)
            current = current.inner
        return levels


@dataclass(frozen=True)
class ODataError:
    """Structured error returned by the Graph API."""

    code: str
    message: str
    details: tuple[ErrorDetail, ...] = field(default_factory=tuple)
    inner: InnerError | None = None

    @classmethod
    def from_body(cls, body: Any) -> ODataError | None:
        """Parse a decoded response body into an ODataError.

        Args:
            body: Decoded JSON response body.

        Returns:
            The parsed error, or None if the body is not a Graph error document.
        """
        if not isinstance(body, dict):
            return None
        error = body.get(FIELD_ERROR)
        if not isinstance(error, dict):
            return None

        details = tuple(
            ErrorDetail(
                target=str(d.get(FIELD_TARGET) or ""),
                message=str(d.get(FIELD_MESSAGE) or ""),
            )
            for d in error.get(FIELD_DETAILS) or []
            if isinstance(d, dict)
        )
        return cls(
            code=str(error.get(FIELD_CODE) or ""),
            message=str(error.get(FIELD_MESSAGE) or ""),
            details=details,
            inner=_parse_inner(error.get(FIELD_INNER_ERROR)),
        )

    def codes(self) -> list[str]:
        """Return the top-level code followed by every inner code."""
        codes = [self.code]
        if self.inner is not None:
            codes.extend(level.code for level in self.inner.chain())
        return [c for c in codes if c]


class GraphApiError(Exception):
    """Raised when the Graph API returns a non-2xx response."""

    def __init__(self, status_code: int, message: str, error: ODataError | None = None) -> None:
        super().__init__(f"Graph API error {status_code}: {message}")
        self.status_code = status_code
        self.message = message
        self.error = error


class GraphTransportError(GraphApiError):
    """Raised when a request gets no usable answer from the Graph API.

    Covers network failures, where ``status_code`` is 0, and 2xx responses
    whose body is not JSON.
    """

    def __init__(self, message: str, status_code: int = 0) -> None:
        super().__init__(status_code, message)
        self.args = (f"Graph request failed: {message}",)


def _parse_inner(raw: Any) -> InnerError | None:
    """Parse a nested innerError chain iteratively, stopping at the depth cap."""
    levels: list[tuple[str, str]] = []
    current = raw
    while isinstance(current, dict) and len(levels) < MAX_INNER_ERROR_DEPTH:
        levels.append(
            (str(current.get(FIELD_CODE) or ""), str(current.get(FIELD_MESSAGE) or ""))
        )
        current = current.get(FIELD_INNER_ERROR)

    inner: InnerError | None = None
    for code, message in reversed(levels):
        inner = InnerError(code=code, message=message, inner=inner)
    return inner


def format_odata_error(error: ODataError) -> str:
    """Render a structured error, outer first, each inner level indented by depth.

    Args:
        error: Parsed Graph error.

    Returns:
        Multi-line description of the error.
    """
    text = f"Code={error.code}, Message={error.message}"
    if error.details:
        joined = "; ".join(f"{d.target}: {d.message}" for d in error.details)
        text += f", Details=[{joined}]"
    if error.inner is not None:
        for depth, level in enumerate(error.inner.chain(), start=1):
            indent = " " * (depth * 2)
            text += f"\n{indent}InnerError[{depth}]: Code={level.code}, Message={level.message}"
    return text


def summarize_exception(exc: BaseException) -> str:
    """Describe an exception for logging and error messages.

    Graph errors carrying a structured document are rendered in full. Any
    other exception is reported with its type, message and one level of
    wrapped cause.
    """
    if isinstance(exc, GraphApiError) and exc.error is not None:
        return f"HTTP {exc.status_code}; {format_odata_error(exc.error)}"

    text = f"{type(exc).__name__}: {exc}"
    cause = exc.__cause__ or exc.__context__
    if cause is not None:
        text += f" (caused by {type(cause).__name__}: {cause})"
    return text


def describe_failure(operation: str, exc: BaseException) -> str:
    """Return ``"{operation} failed: {summary}"`` for an exception."""
    return f"{operation} failed: {summarize_exception(exc)}"


def is_name_conflict(exc: BaseException) -> bool:
    """Return True if the error reports that an item with the same name exists.

    Prefers the HTTP status and structured codes. Matching the code names in
    the message text is a fallback for responses without a parseable body.
    """
    if not isinstance(exc, GraphApiError):
        return False
    if exc.error is not None and NAME_CONFLICT_CODES.intersection(exc.error.codes()):
        return True
    if exc.status_code == HTTP_CONFLICT:
        return True
    return any(code in exc.message for code in NAME_CONFLICT_CODES)
