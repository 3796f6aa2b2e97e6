"""lob build driver.

Runs under the toolchain interpreter, never inside the lob process, and depends on the standard
library only. It byte-compiles a generated program at the requested optimization level and
links it, together with the ``lob_prelude`` support package, into one executable zip archive::

    python -I lobc.py --source prog.py --output prog.lob --support DIR --optimize 2

Problems are reported on stderr, one per line, as ``file:line[:col]: severity[Code]: message``,
and the exit status is 1. Nothing is written to ``--output`` unless the build succeeds.
"""

import argparse
import os
import py_compile
import sys
import warnings
import zipfile

PRELUDE_PACKAGE = "lob_prelude"
_ZIP_DATE = (1980, 1, 1, 0, 0, 0)


class BuildFailure(Exception):
    pass


def report(path, severity, code, message, line=None, column=None):
    where = path
    if line is not None:
        where += ":%d" % line
        if column is not None:
            where += ":%d" % column
    message = " ".join(str(message).split()) or code
    sys.stderr.write("%s: %s[%s]: %s\n" % (where, severity, code, message))


def compile_file(path, optimize, scratch):
    """Byte-compile one file and return the pyc bytes. Warnings are reported, errors raised."""
    cfile = os.path.join(scratch, "%s.%d.pyc" % (os.path.basename(path), os.getpid()))
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        try:
            py_compile.compile(
                path,
                cfile=cfile,
                dfile=os.path.basename(path),
                doraise=True,
                optimize=optimize,
                invalidation_mode=py_compile.PycInvalidationMode.UNCHECKED_HASH,
            )
        except py_compile.PyCompileError as e:
            exc = e.exc_value
            if isinstance(exc, SyntaxError):
                column = exc.offset if exc.offset and exc.offset > 0 else None
                report(path, "error", e.exc_type_name, exc.msg, exc.lineno or None, column)
            else:
                report(path, "error", e.exc_type_name, exc)
            raise BuildFailure() from e
    for w in caught:
        report(path, "warning", w.category.__name__, w.message, w.lineno or None)
    try:
        with open(cfile, "rb") as f:
            return f.read()
    finally:
        os.unlink(cfile)


def collect_prelude(support, optimize, scratch):
    package = os.path.join(support, PRELUDE_PACKAGE)
    if not os.path.isfile(os.path.join(package, "__init__.py")):
        report(package, "error", "MissingSupport", "support package not found")
        raise BuildFailure()
    members = {}
    for name in sorted(os.listdir(package)):
        if name.endswith(".py"):
            arcname = "%s/%s.pyc" % (PRELUDE_PACKAGE, name[:-3])
            members[arcname] = compile_file(os.path.join(package, name), optimize, scratch)
    return members


def shebang():
    interpreter = sys.executable
    # A shebang line cannot quote its interpreter path.
    if not interpreter or " " in interpreter:
        return "#!/usr/bin/env python3\n"
    return "#!%s -Es\n" % interpreter


def link(output, members):
    """Write the executable archive. Members are added in sorted order with a fixed timestamp."""
    with open(output, "wb") as f:
        f.write(shebang().encode("utf-8"))
        with zipfile.ZipFile(f, "w", compression=zipfile.ZIP_DEFLATED) as zf:
            for arcname in sorted(members):
                info = zipfile.ZipInfo(arcname, date_time=_ZIP_DATE)
                info.compress_type = zipfile.ZIP_DEFLATED
                info.external_attr = 0o644 << 16
                zf.writestr(info, members[arcname])
    os.chmod(output, 0o755)


def build(args):
    scratch = os.path.dirname(os.path.abspath(args.output))
    members = {"__main__.pyc": compile_file(args.source, args.optimize, scratch)}
    members.update(collect_prelude(args.support, args.optimize, scratch))
    link(args.output, members)


def main(argv=None):
    parser = argparse.ArgumentParser(prog="lobc", description="Build a lob pipeline artifact")
    parser.add_argument("--source", required=True)
    parser.add_argument("--output", required=True)
    parser.add_argument("--support", required=True)
    parser.add_argument("--optimize", type=int, default=2, choices=(0, 1, 2))
    args = parser.parse_args(argv)

    if sys.version_info < (3, 8):
        report(args.source, "error", "UnsupportedInterpreter", "Python 3.8 or newer is required")
        return 1
    try:
        build(args)
        if os.path.getsize(args.output) == 0:
            report(args.output, "error", "EmptyArtifact", "linker produced an empty file")
            raise BuildFailure()
    except (BuildFailure, OSError) as e:
        if isinstance(e, OSError):
            report(args.output, "error", type(e).__name__, e)
        if os.path.exists(args.output):
            os.unlink(args.output)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
