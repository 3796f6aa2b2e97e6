"""Source generation: splice an expression into the program template."""

from __future__ import annotations

from typing import Callable, Dict, List

from lob.data import Expression, GeneratedSource, InputFormat, InputMode
from lob.errors import GenerationError

GENERATOR_VERSION = 2
"""Version of the template below. Part of the generated text, hence of every BuildKey."""

_HEADER = [
    f"# Generated by lob (template v{GENERATOR_VERSION}). Do not edit.",
    "import sys",
    "",
    "from lob_prelude import *  # noqa: F401,F403",
    "",
    "",
    "def main():",
]

_FOOTER = [
    "    )",
    "    return emit(result, {output_format!r})",
    "",
    "",
    'if __name__ == "__main__":',
    "    sys.exit(main())",
    "",
]

_STDIN_READERS: Dict[InputFormat, str] = {
    InputFormat.LINES: "read_lines(sys.argv[1:])",
    InputFormat.CSV: "read_csv(sys.argv[1:])",
    InputFormat.TSV: 'read_csv(sys.argv[1:], delimiter="\\t")',
    InputFormat.JSON: "read_json(sys.argv[1:])",
}


def _stdin_preamble(expression: Expression) -> List[str]:
    return [f"    _ = {_STDIN_READERS[expression.input_format]}"]


def _literal_preamble(expression: Expression) -> List[str]:
    return []


def _range_preamble(expression: Expression) -> List[str]:
    bounds = expression.bounds
    if bounds is None:
        raise GenerationError("Range mode expression reached the generator without bounds")
    return [f"    _ = lob_range({bounds.start!r}, {bounds.stop!r}, {bounds.step!r})"]


_PREAMBLES: Dict[InputMode, Callable[[Expression], List[str]]] = {
    InputMode.STDIN: _stdin_preamble,
    InputMode.LITERAL: _literal_preamble,
    InputMode.RANGE: _range_preamble,
}


def generate(expression: Expression) -> GeneratedSource:
    """Generate the complete program for an expression.

    The function is pure: identical expressions produce byte-identical text across calls and
    processes, which keeps BuildKeys stable. The expression is not validated; it is spliced
    verbatim (line endings normalized to ``\\n``) inside parentheses on lines of its own, and
    the program hands the resulting value to the prelude's ``emit`` together with the
    expression's output format.

    Parameters
    ----------
    expression : Expression
        The captured expression and its input mode.

    Returns
    -------
    GeneratedSource
        The program text and the line span occupied by the expression.

    Raises
    ------
    GenerationError
        If the expression's input mode has no preamble. This is an internal invariant
        violation, not a user error.
    """
    try:
        preamble = _PREAMBLES[expression.mode]
    except KeyError as e:
        raise GenerationError(f"No preamble for input mode {expression.mode!r}") from e

    body = expression.text.replace("\r\n", "\n").replace("\r", "\n").split("\n")

    lines = list(_HEADER)
    lines.extend(preamble(expression))
    lines.append("    result = (")
    first = len(lines) + 1
    lines.extend(body)
    last = len(lines)
    output_format = expression.output_format.value
    lines.extend(line.format(output_format=output_format) for line in _FOOTER)

    return GeneratedSource(
        text="\n".join(lines),
        expression_span=(first, last),
        mode=expression.mode,
        generator_version=GENERATOR_VERSION,
    )
