"""Writing the value of an expression to standard output."""

import csv
import json
import os
import sys
from collections.abc import Iterator, Mapping


def _default(value):
    if isinstance(value, (set, frozenset)):
        return list(value)
    if isinstance(value, Iterator):
        return list(value)
    return repr(value)


def format_item(value):
    """One canonical JSON document for ``value``. Unknown objects fall back to their repr."""
    return json.dumps(value, ensure_ascii=False, default=_default)


def _items(result):
    return result if isinstance(result, Iterator) else iter([result])


def _cell(value):
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return format_item(value)


def _write_jsonl(result, out):
    for item in _items(result):
        out.write(format_item(item))
        out.write("\n")


def _write_json(result, out):
    value = list(result) if isinstance(result, Iterator) else result
    out.write(format_item(value))
    out.write("\n")


def _write_debug(result, out):
    for item in _items(result):
        out.write(repr(item))
        out.write("\n")


def _write_csv(result, out):
    writer = csv.writer(out, lineterminator="\n")
    header = None
    for item in _items(result):
        if isinstance(item, Mapping):
            if header is None:
                header = list(item)
                writer.writerow(header)
            writer.writerow([_cell(item.get(key)) for key in header])
        elif isinstance(item, (list, tuple)):
            writer.writerow([_cell(v) for v in item])
        else:
            writer.writerow([_cell(item)])


def _write_table(result, out):
    items = list(_items(result))
    header = None
    if items and all(isinstance(item, Mapping) for item in items):
        header = []
        for item in items:
            header.extend(key for key in item if key not in header)
        rows = [[_cell(item.get(key)) for key in header] for item in items]
        header = [_cell(key) for key in header]
    else:
        rows = [
            [_cell(v) for v in item] if isinstance(item, (list, tuple)) else [_cell(item)]
            for item in items
        ]

    lines = rows if header is None else [header] + rows
    ncols = max((len(line) for line in lines), default=0)
    widths = [0] * ncols
    for line in lines:
        for i, cell in enumerate(line):
            widths[i] = max(widths[i], len(cell))

    def render(cells):
        return "  ".join(cell.ljust(widths[i]) for i, cell in enumerate(cells)).rstrip()

    if header is not None:
        out.write(render(header) + "\n")
        out.write("  ".join("-" * w for w in widths) + "\n")
    for row in rows:
        out.write(render(row) + "\n")


_WRITERS = {
    "jsonl": _write_jsonl,
    "json": _write_json,
    "debug": _write_debug,
    "csv": _write_csv,
    "table": _write_table,
}


def _silence_stdout():
    # Further writes, including the interpreter's final flush, go to devnull.
    devnull = os.open(os.devnull, os.O_WRONLY)
    try:
        os.dup2(devnull, sys.stdout.fileno())
    finally:
        os.close(devnull)


def emit(result, output_format="jsonl"):
    """Print ``result`` in ``output_format``.

    ``jsonl``, ``debug`` and ``csv`` print each item of a stream on its own line and anything
    else once; ``json`` prints one document, collecting a stream into an array; ``table``
    collects everything and prints aligned columns.

    Returns the process exit status. A closed output pipe is not an error: the consumer has
    seen all it wanted, so the program stops quietly with status 0.
    """
    try:
        write = _WRITERS[output_format]
    except KeyError:
        raise ValueError(f"Unknown output format '{output_format}'") from None
    out = sys.stdout
    try:
        write(result, out)
        out.flush()
    except BrokenPipeError:
        _silence_stdout()
    return 0
