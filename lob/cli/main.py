import argparse
import sys
from pathlib import Path
from typing import List, Optional

from lob.codegen import generate
from lob.config import LobConfig
from lob.data import Expression, InputFormat, OutputFormat, RangeSpec
from lob.errors import CompileError, LobError
from lob.logging import configure_logging
from lob.pipeline import Pipeline


def _expression(args: argparse.Namespace) -> Expression:
    bounds = RangeSpec.parse(args.range) if args.range else None
    return Expression.detect(
        args.expression,
        InputFormat(args.input_format),
        bounds,
        OutputFormat.parse(args.output_format),
    )


def _exit_code(returncode: int) -> int:
    # Shell convention for a child killed by signal N.
    if returncode < 0:
        return 128 - returncode
    return returncode


def _check_files(files: List[str]) -> None:
    for path in files:
        if not Path(path).exists():
            raise LobError(f"File not found: {path}")


def run(args: argparse.Namespace) -> int:
    expression = _expression(args)
    _check_files(args.files)
    pipeline = Pipeline(LobConfig.from_env())
    if args.verbose:
        print(f"Expression: {expression.text}", file=sys.stderr)
    result = pipeline.run(expression, args=args.files)
    if args.stats:
        timings = result.timings
        build = sum(v for k, v in timings.items() if k != "execute")
        print("", file=sys.stderr)
        print("Statistics:", file=sys.stderr)
        print(f"  Build time:       {build * 1000:.1f} ms", file=sys.stderr)
        print(f"  Execution time:   {timings.get('execute', 0.0) * 1000:.1f} ms", file=sys.stderr)
        print(f"  Total time:       {sum(timings.values()) * 1000:.1f} ms", file=sys.stderr)
        print(f"  Cache:            {'hit' if result.cache_hit else 'miss'}", file=sys.stderr)
    return _exit_code(result.returncode)


def source(args: argparse.Namespace) -> int:
    print(generate(_expression(args)).text, end="")
    return 0


def cache_stats(args: argparse.Namespace) -> int:
    pipeline = Pipeline(LobConfig.from_env())
    stats = pipeline.stats()
    print("Cache statistics:")
    print(f"  Cached binaries: {stats.count}")
    print(f"  Total size: {stats.format_size()}")
    print(f"  Cache directory: {pipeline.cache.root}")
    return 0


def cache_clear(args: argparse.Namespace) -> int:
    Pipeline(LobConfig.from_env()).clear()
    print("Cache cleared successfully")
    return 0


def _add_expression_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("expression", help="Fluent expression, e.g. '_.filter(lambda x: x)'")
    parser.add_argument(
        "--range",
        metavar="START:STOP[:STEP]",
        help="Bind _ to a numeric range instead of input. STOP may be empty for no bound.",
    )
    fmt = parser.add_mutually_exclusive_group()
    fmt.add_argument(
        "--csv", dest="input_format", action="store_const", const="csv", help="Parse input as CSV"
    )
    fmt.add_argument(
        "--tsv", dest="input_format", action="store_const", const="tsv", help="Parse input as TSV"
    )
    fmt.add_argument(
        "--json",
        dest="input_format",
        action="store_const",
        const="json",
        help="Parse input as one JSON document per line",
    )
    parser.add_argument(
        "-f",
        "--format",
        dest="output_format",
        default="jsonl",
        metavar="FORMAT",
        help="Output format: jsonl (default), json, debug, csv or table",
    )
    parser.set_defaults(input_format="lines")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="lob",
        description="Compile and run fluent data pipelines",
        formatter_class=argparse.RawTextHelpFormatter,
    )
    command_subparsers = parser.add_subparsers(
        dest="command", required=True, help="Primary commands"
    )

    run_parser = command_subparsers.add_parser("run", help="Compile (if needed) and run.")
    _add_expression_arguments(run_parser)
    run_parser.add_argument("files", nargs="*", help="Input files. Defaults to stdin.")
    run_parser.add_argument(
        "-v", "--verbose", action="count", default=0, help="Log build steps (-vv for debug)"
    )
    run_parser.add_argument("--stats", action="store_true", help="Print timings to stderr")
    run_parser.set_defaults(func=run)

    source_parser = command_subparsers.add_parser(
        "source", help="Print the generated program without compiling it."
    )
    _add_expression_arguments(source_parser)
    source_parser.set_defaults(func=source)

    cache_parser = command_subparsers.add_parser("cache", help="Inspect or clear the cache.")
    cache_subparsers = cache_parser.add_subparsers(
        dest="cache_subcommand", required=True, help="Cache actions"
    )
    stats_parser = cache_subparsers.add_parser("stats", help="Show cache statistics.")
    stats_parser.set_defaults(func=cache_stats)
    clear_parser = cache_subparsers.add_parser("clear", help="Remove every cached artifact.")
    clear_parser.set_defaults(func=cache_clear)

    return parser


def cli(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    verbose = getattr(args, "verbose", 0)
    configure_logging({0: None, 1: "INFO"}.get(verbose, "DEBUG"))

    try:
        return args.func(args)
    except CompileError as e:
        print(e.render(), file=sys.stderr)
        return 1
    except LobError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except ValueError as e:
        # Invalid range, input format or environment value.
        print(f"Error: {e}", file=sys.stderr)
        return 2
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(cli())
