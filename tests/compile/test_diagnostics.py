import sys

import pytest

from lob.codegen import generate
from lob.compile.diagnostics import parse_diagnostics, suggest
from lob.data import Expression, Severity


@pytest.fixture
def source():
    return generate(Expression.detect("_.filter(lambda x: len(x) > 1"))


def test_structured_error_is_mapped_into_the_expression(source):
    first, _ = source.expression_span
    stderr = f"/tmp/build-1/pipeline.py:{first}:9: error[SyntaxError]: '(' was never closed\n"
    diagnostics = parse_diagnostics(stderr, source, "pipeline.py")
    assert len(diagnostics) == 1
    d = diagnostics[0]
    assert d.severity == Severity.ERROR
    assert d.code == "SyntaxError"
    assert d.message == "'(' was never closed"
    assert d.location.in_expression
    assert d.location.line == 1
    assert d.location.column == 9
    assert "Unbalanced brackets" in d.hint


def test_line_outside_span_is_scaffolding(source):
    _, last = source.expression_span
    stderr = f"pipeline.py:{last + 1}: error[SyntaxError]: invalid syntax\n"
    d = parse_diagnostics(stderr, source, "pipeline.py")[0]
    assert not d.location.in_expression
    assert d.location.line == last + 1
    assert d.location.column is None


def test_warnings_do_not_count_as_errors(source):
    first, _ = source.expression_span
    stderr = f"pipeline.py:{first}: warning[SyntaxWarning]: \"is\" with a literal\n"
    diagnostics = parse_diagnostics(stderr, source, "pipeline.py", failed=False)
    assert [d.severity for d in diagnostics] == [Severity.WARNING]


def test_other_files_keep_their_name(source):
    stderr = "/opt/lib/lob_prelude/fluent.py:3: error[SyntaxError]: bad\n"
    d = parse_diagnostics(stderr, source, "pipeline.py")[0]
    assert d.location is None
    assert d.message.startswith("/opt/lib/lob_prelude/fluent.py:3:")


def test_traceback_fallback(source):
    first, _ = source.expression_span
    stderr = (
        "Traceback (most recent call last):\n"
        '  File "/usr/lib/python3.12/py_compile.py", line 144, in compile\n'
        f'  File "/tmp/build-1/pipeline.py", line {first}\n'
        "MemoryError: out of memory\n"
    )
    diagnostics = parse_diagnostics(stderr, source, "pipeline.py")
    assert len(diagnostics) == 1
    assert diagnostics[0].code == "MemoryError"
    assert diagnostics[0].message == "out of memory"
    assert diagnostics[0].location.in_expression


def test_opaque_fallback_uses_last_line(source):
    diagnostics = parse_diagnostics("something\nwent badly wrong\n", source, "pipeline.py")
    assert len(diagnostics) == 1
    assert diagnostics[0].severity == Severity.ERROR
    assert diagnostics[0].message == "went badly wrong"
    assert diagnostics[0].location is None


def test_opaque_fallback_without_output():
    diagnostics = parse_diagnostics("", None, None)
    assert diagnostics[0].message == "compiler failed without output"


def test_success_without_output_has_no_diagnostics():
    assert parse_diagnostics("", None, None, failed=False) == []


@pytest.mark.parametrize(
    "message, expression, expected",
    [
        ("'(' was never closed", None, "Unbalanced brackets"),
        ("unmatched ')'", None, "Unbalanced brackets"),
        ("unterminated string literal (detected at line 9)", None, "Unterminated string"),
        ("invalid syntax. Perhaps you forgot a comma?", None, "commas"),
        ("invalid syntax. Maybe you meant '==' or ':=' instead of '='?", None, "=="),
        ("invalid syntax", "_.filter(|x| x > 1)", "lambda"),
        ("invalid syntax", "_.parse_csv()", "--csv"),
    ],
)
def test_suggest(message, expression, expected):
    assert expected in suggest(message, expression)


def test_suggest_nothing_for_unknown_message():
    assert suggest("some random error", "_.count()") is None


if __name__ == "__main__":
    pytest.main(sys.argv)
