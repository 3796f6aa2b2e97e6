"""Translation of raw compiler output into structured diagnostics."""

from __future__ import annotations

import re
from pathlib import PurePath
from typing import List, Optional

from lob.data import Diagnostic, GeneratedSource, Severity, SourceLocation

DIAGNOSTIC_RE = re.compile(
    r"^(?P<file>[^:\n]+):(?P<line>\d+):(?:(?P<col>\d+):)?\s*"
    r"(?P<severity>error|warning|note)(?:\[(?P<code>\w+)\])?:\s*(?P<message>.*)$"
)
"""One ``file:line[:col]: severity[code]: message`` line, as printed by the build driver."""

_TRACEBACK_FRAME_RE = re.compile(r'^\s*File "(?P<file>[^"]+)", line (?P<line>\d+)')
_TRACEBACK_EXC_RE = re.compile(
    r"^(?P<code>[A-Za-z_][\w.]*(?:Error|Exception|Warning|Interrupt)):\s*(?P<message>.*)$"
)
_CLOSURE_RE = re.compile(r"\|\s*\w*(?:\s*,\s*\w+)*\s*\|")

_HINTS = [
    (
        (
            "was never closed",
            "unmatched ')'",
            "unmatched ']'",
            "unmatched '}'",
            "does not match opening parenthesis",
            "unexpected EOF",
        ),
        "Unbalanced brackets: check that every '(', '[' and '{' in the expression is closed.",
    ),
    (
        (
            "unterminated string literal",
            "unterminated triple-quoted string",
            "EOL while scanning",
        ),
        "Unterminated string. Quote the whole expression with single quotes in the shell and "
        "use double quotes inside it.",
    ),
    (
        ("Perhaps you forgot a comma",),
        "Separate arguments with commas.",
    ),
    (
        ("Maybe you meant '=='", "cannot assign to"),
        "Compare values with '=='; '=' is not allowed inside an expression.",
    ),
    (
        ("expected ':'",),
        "A lambda needs a colon after its parameters: lambda x: x + 1",
    ),
]


def suggest(message: str, expression: Optional[str] = None) -> Optional[str]:
    """Suggest a fix for a common mistake, based on the compiler message and the expression.

    Parameters
    ----------
    message : str
        The compiler message.
    expression : Optional[str]
        The user expression, if known.

    Returns
    -------
    Optional[str]
        The suggestion, or None if the message matches no known pattern.
    """
    for patterns, hint in _HINTS:
        if any(p in message for p in patterns):
            return hint
    if expression and _CLOSURE_RE.search(expression) and "lambda" not in expression:
        return "Functions are written as lambdas, e.g. _.filter(lambda x: len(x) > 1)"
    if expression and ".parse_csv" in expression:
        return "Use the --csv flag to read delimited input instead of parse_csv()."
    return None


def map_location(
    line: int, column: Optional[int], source: Optional[GeneratedSource]
) -> SourceLocation:
    """Translate a program position to an expression-relative one when it lies in the span.

    The mapping is best effort: positions outside the span are reported as generated scaffolding
    with their program line number.
    """
    if source is not None and source.in_expression(line):
        return SourceLocation(
            line=source.expression_line(line), column=column, in_expression=True
        )
    return SourceLocation(line=line, column=column, in_expression=False)


def _matches_source(file: str, source_name: Optional[str]) -> bool:
    return source_name is None or PurePath(file.strip()).name == source_name


def parse_structured(
    stderr: str, source: Optional[GeneratedSource] = None, source_name: Optional[str] = None
) -> List[Diagnostic]:
    """Parse ``file:line[:col]: severity[code]: message`` lines.

    Positions are mapped through ``source`` only when the file is the generated program
    (``source_name``); diagnostics about other files keep the file name in their message.
    """
    expression = source.expression_text() if source is not None else None
    diagnostics = []
    for raw in stderr.splitlines():
        m = DIAGNOSTIC_RE.match(raw.strip())
        if m is None:
            continue
        message = m.group("message").strip() or m.group("code") or "compiler error"
        line = int(m.group("line"))
        col = int(m.group("col")) if m.group("col") else None
        if _matches_source(m.group("file"), source_name):
            location = map_location(max(line, 1), col, source)
        else:
            location = None
            message = f"{m.group('file').strip()}:{line}: {message}"
        diagnostics.append(
            Diagnostic(
                severity=Severity(m.group("severity")),
                message=message,
                code=m.group("code"),
                location=location,
                hint=suggest(message, expression),
            )
        )
    return diagnostics


def parse_traceback(
    stderr: str, source: Optional[GeneratedSource] = None, source_name: Optional[str] = None
) -> List[Diagnostic]:
    """Parse a Python traceback into a single error diagnostic, if one is present."""
    location = None
    exc = None
    for raw in stderr.splitlines():
        frame = _TRACEBACK_FRAME_RE.match(raw)
        if frame is not None:
            if _matches_source(frame.group("file"), source_name):
                location = map_location(max(int(frame.group("line")), 1), None, source)
            continue
        m = _TRACEBACK_EXC_RE.match(raw.strip())
        if m is not None:
            exc = m
    if exc is None:
        return []
    message = exc.group("message").strip() or exc.group("code")
    code = exc.group("code").rsplit(".", 1)[-1]
    expression = source.expression_text() if source is not None else None
    return [
        Diagnostic(
            severity=Severity.ERROR,
            message=message,
            code=code,
            location=location,
            hint=suggest(message, expression),
        )
    ]


def parse_diagnostics(
    stderr: str,
    source: Optional[GeneratedSource] = None,
    source_name: Optional[str] = None,
    failed: bool = True,
) -> List[Diagnostic]:
    """Turn compiler stderr into diagnostics.

    Tries the structured format first, then a Python traceback. When the compiler failed and
    neither yields an error, a single opaque error carrying the last line of stderr is returned,
    so a failed build always has at least one error diagnostic.

    Parameters
    ----------
    stderr : str
        The compiler's standard error.
    source : Optional[GeneratedSource]
        The compiled program, used to map lines to the expression.
    source_name : Optional[str]
        File name of the program as passed to the compiler.
    failed : bool
        Whether the compiler exited with a non-zero status.

    Returns
    -------
    List[Diagnostic]
        The diagnostics, in the order the compiler reported them.
    """
    diagnostics = parse_structured(stderr, source, source_name)
    has_error = any(d.severity == Severity.ERROR for d in diagnostics)
    if failed and not has_error:
        diagnostics.extend(parse_traceback(stderr, source, source_name))
        has_error = any(d.severity == Severity.ERROR for d in diagnostics)
    if failed and not has_error:
        lines = [line.strip() for line in stderr.splitlines() if line.strip()]
        message = lines[-1] if lines else "compiler failed without output"
        diagnostics.append(Diagnostic(severity=Severity.ERROR, message=message))
    return diagnostics
