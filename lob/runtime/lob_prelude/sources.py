"""Stream sources available to expressions."""

import csv
import io
import itertools
import json
import sys

from .fluent import Lob


def lob(iterable):
    """Wrap any iterable in a ``Lob``."""
    return Lob(iterable)


def lob_range(start=0, stop=None, step=1):
    """A numeric stream from ``start`` by ``step``. Unbounded when ``stop`` is None."""
    if step == 0:
        raise ValueError("lob_range() step must not be zero")
    if stop is None:
        return Lob(itertools.count(start, step))
    return Lob(range(start, stop, step))


def _stdin():
    buffer = getattr(sys.stdin, "buffer", None)
    if buffer is None:
        return sys.stdin
    # Decode like file input so invalid bytes never abort the program.
    return io.TextIOWrapper(buffer, encoding="utf-8", errors="replace", newline="")


def _raw_lines(paths):
    if not paths:
        for line in _stdin():
            yield line
        return
    for path in paths:
        with open(path, encoding="utf-8", errors="replace", newline="") as f:
            for line in f:
                yield line


def _lines(paths):
    for line in _raw_lines(paths):
        line = line.strip()
        if line:
            yield line


def read_lines(paths=()):
    """Lines of the given files, or of standard input when none are given.

    Lines are stripped and blank lines are skipped. Input is read lazily, so an expression that
    stops early never reads the rest of its input.
    """
    return Lob(_lines(list(paths)))


def read_csv(paths=(), delimiter=","):
    """Rows of delimited text as dicts keyed by the header line.

    Blank lines are skipped. Missing trailing fields are ``None``; extra fields are kept as a
    list under the ``None`` key, as ``csv.DictReader`` does.
    """
    return Lob(csv.DictReader(_lines(list(paths)), delimiter=delimiter))


def read_json(paths=()):
    """One JSON document per non-blank line."""
    return Lob(json.loads(line) for line in _lines(list(paths)))
