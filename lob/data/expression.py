"""Strong-typed definitions for user expressions and the sources generated from them."""

import hashlib
from enum import Enum
from typing import Optional, Tuple

from pydantic import Field, model_validator

from .utils import FrozenModel, NonEmptyString


class InputMode(str, Enum):
    """Where the pipeline described by an expression takes its items from."""

    STDIN = "stdin"
    """Line-oriented stream read from the program arguments or standard input. The expression
    refers to it as ``_``."""
    LITERAL = "literal"
    """The expression supplies its own collection, e.g. ``lob([1, 2, 3])``."""
    RANGE = "range"
    """A numeric range bound to ``_``; unbounded when no stop is given."""


class InputFormat(str, Enum):
    """How stdin-mode input is parsed into items."""

    LINES = "lines"
    """Stripped, non-empty text lines."""
    CSV = "csv"
    """Comma separated rows with a header line, one dict per row keyed by the header."""
    TSV = "tsv"
    """Tab separated rows with a header line, one dict per row keyed by the header."""
    JSON = "json"
    """JSON lines, one decoded document per line."""


class OutputFormat(str, Enum):
    """How the program prints the value of the expression."""

    JSONL = "jsonl"
    """One JSON document per item, one item per line."""
    JSON = "json"
    """A single JSON document; streams are collected into one array."""
    DEBUG = "debug"
    """Python ``repr`` of each item, one per line."""
    CSV = "csv"
    """Comma separated rows. Dict items use the keys of the first item as the header."""
    TABLE = "table"
    """Aligned plain-text columns. Materializes the whole result before printing."""

    @classmethod
    def parse(cls, text: str) -> "OutputFormat":
        """Parse a format name; ``jsonlines`` is accepted for ``jsonl``.

        Raises
        ------
        ValueError
            If the name is unknown.
        """
        name = text.strip().lower()
        if name == "jsonlines":
            name = "jsonl"
        if name not in {f.value for f in cls}:
            choices = ", ".join(f.value for f in cls)
            raise ValueError(f"Unknown output format '{text}'. Expected one of {choices}")
        return cls(name)


class RangeSpec(FrozenModel):
    """Bounds of a numeric range input."""

    start: int = 0
    """First value of the range."""
    stop: Optional[int] = None
    """Exclusive end of the range. ``None`` makes the range unbounded."""
    step: int = 1
    """Increment between values. Must not be zero."""

    @model_validator(mode="after")
    def _validate_step(self) -> "RangeSpec":
        if self.step == 0:
            raise ValueError("Range step must not be zero")
        return self

    @classmethod
    def parse(cls, text: str) -> "RangeSpec":
        """Parse ``START:STOP[:STEP]``; an empty STOP means unbounded.

        Raises
        ------
        ValueError
            If the text is not a valid range.
        """
        parts = text.split(":")
        if not 1 <= len(parts) <= 3:
            raise ValueError(f"Invalid range '{text}'. Expected START:STOP[:STEP]")
        try:
            start = int(parts[0]) if parts[0] else 0
            stop = int(parts[1]) if len(parts) > 1 and parts[1] else None
            step = int(parts[2]) if len(parts) > 2 and parts[2] else 1
        except ValueError as e:
            raise ValueError(f"Invalid range '{text}': {e}") from e
        return cls(start=start, stop=stop, step=step)


class Expression(FrozenModel):
    """A fluent pipeline expression captured from the user, together with its input mode.

    The text is opaque to lob: it is spliced verbatim into the generated program and only the
    compiler decides whether it is valid.
    """

    text: NonEmptyString
    """The expression exactly as supplied by the user."""
    mode: InputMode
    """Which preamble the generated program uses to bind the input stream."""
    input_format: InputFormat = InputFormat.LINES
    """Parsing of stdin-mode input. Only meaningful when mode is ``stdin``."""
    bounds: Optional[RangeSpec] = None
    """Range bounds. Required when mode is ``range`` and forbidden otherwise."""
    output_format: OutputFormat = OutputFormat.JSONL
    """How the result is printed. Part of the generated program, hence of the BuildKey."""

    @model_validator(mode="after")
    def _validate_mode(self) -> "Expression":
        if self.mode == InputMode.RANGE and self.bounds is None:
            raise ValueError("Range mode requires bounds")
        if self.mode != InputMode.RANGE and self.bounds is not None:
            raise ValueError(f"Bounds are only allowed in range mode, got mode '{self.mode.value}'")
        if self.mode != InputMode.STDIN and self.input_format != InputFormat.LINES:
            raise ValueError(
                f"Input format '{self.input_format.value}' is only allowed in stdin mode"
            )
        return self

    @classmethod
    def detect(
        cls,
        text: str,
        input_format: InputFormat = InputFormat.LINES,
        bounds: Optional[RangeSpec] = None,
        output_format: OutputFormat = OutputFormat.JSONL,
    ) -> "Expression":
        """Capture an expression, picking the input mode from its shape.

        Range mode is chosen when bounds are given, stdin mode when the expression starts with
        ``_``, and literal mode otherwise.
        """
        if bounds is not None:
            return cls(
                text=text, mode=InputMode.RANGE, bounds=bounds, output_format=output_format
            )
        if text.lstrip().startswith("_"):
            return cls(
                text=text,
                mode=InputMode.STDIN,
                input_format=input_format,
                output_format=output_format,
            )
        return cls(text=text, mode=InputMode.LITERAL, output_format=output_format)


class GeneratedSource(FrozenModel):
    """Complete program text derived from an Expression. A value type owning no resources."""

    text: str
    """The program text, byte-for-byte deterministic for a given expression."""
    expression_span: Tuple[int, int]
    """First and last 1-based line numbers occupied by the spliced expression."""
    mode: InputMode
    """The input mode the program was generated for."""
    generator_version: int = Field(default=1, ge=1)
    """Version of the program template. Bumped whenever the template changes."""

    def sha256(self) -> str:
        """Hex SHA-256 digest of the UTF-8 encoded program text."""
        return hashlib.sha256(self.text.encode("utf-8")).hexdigest()

    def in_expression(self, line: int) -> bool:
        """Whether a 1-based program line belongs to the user expression."""
        first, last = self.expression_span
        return first <= line <= last

    def expression_line(self, line: int) -> int:
        """Translate a program line inside the expression span to a 1-based expression line."""
        return line - self.expression_span[0] + 1

    def expression_text(self) -> str:
        """The spliced expression, recovered from the program text."""
        first, last = self.expression_span
        return "\n".join(self.text.split("\n")[first - 1 : last])
