import io
import os
import signal
import subprocess
import sys
from pathlib import Path

import pytest

from lob.compile import ExecutionResult, Runnable, RunnableMetadata
from lob.compile.runnable import _should_forward
from lob.errors import ArtifactLaunchError, ExecutionError

pytestmark = pytest.mark.requires_posix


def _program(tmp_path: Path, body: str, name: str = "prog") -> Runnable:
    """Write an executable Python script standing in for a compiled artifact."""
    path = tmp_path / name
    path.write_text(f"#!{sys.executable}\nimport os, signal, sys\n{body}")
    os.chmod(path, 0o755)
    return Runnable(path, RunnableMetadata(key="0" * 64, toolchain="system"))


UPPER = "sys.stdout.buffer.write(sys.stdin.buffer.read().upper())\n"


def test_bytes_in_bytes_out(tmp_path: Path):
    r = _program(tmp_path, UPPER)
    out = io.BytesIO()
    assert r.run(stdin=b"a\nbb\n", stdout=out) == 0
    assert out.getvalue() == b"A\nBB\n"


def test_text_sink_receives_str(tmp_path: Path):
    r = _program(tmp_path, "sys.stdout.buffer.write('caf\\u00e9\\n'.encode('utf-8'))\n")
    out = io.StringIO()
    assert r.run(stdout=out) == 0
    assert out.getvalue() == "café\n"


def test_str_and_chunk_iterables_as_input(tmp_path: Path):
    r = _program(tmp_path, UPPER)
    out = io.BytesIO()
    r.run(stdin="x\n", stdout=out)
    r.run(stdin=[b"y\n", "z\n"], stdout=out)
    r.run(stdin=io.BytesIO(b"w\n"), stdout=out)
    assert out.getvalue() == b"X\nY\nZ\nW\n"


def test_real_file_descriptors_are_passed_through(tmp_path: Path):
    r = _program(tmp_path, UPPER)
    src = tmp_path / "in.txt"
    src.write_bytes(b"abc\n")
    dst = tmp_path / "out.txt"
    with open(src, "rb") as fin, open(dst, "wb") as fout:
        assert r.run(stdin=fin, stdout=fout) == 0
    assert dst.read_bytes() == b"ABC\n"


def test_args_are_forwarded(tmp_path: Path):
    r = _program(tmp_path, "print(' '.join(sys.argv[1:]))\n")
    out = io.BytesIO()
    r.run(stdout=out, args=["a.txt", "b.txt"])
    assert out.getvalue() == b"a.txt b.txt\n"


def test_exit_status_is_verbatim(tmp_path: Path):
    r = _program(tmp_path, "sys.exit(3)\n")
    assert r.run(stdout=io.BytesIO()) == 3


def test_killed_child_reports_negative_status(tmp_path: Path):
    r = _program(tmp_path, "os.kill(os.getpid(), signal.SIGKILL)\n")
    assert r.run(stdout=io.BytesIO()) == -9


def test_child_may_stop_reading_early(tmp_path: Path):
    r = _program(tmp_path, "print(sys.stdin.readline().strip())\n")
    out = io.BytesIO()
    assert r.run(stdin=b"first\n" + b"x" * (4 * 1024 * 1024), stdout=out) == 0
    assert out.getvalue() == b"first\n"


def test_missing_artifact_cannot_launch(tmp_path: Path):
    r = Runnable(tmp_path / "missing.lob", RunnableMetadata(key="k"))
    with pytest.raises(ArtifactLaunchError, match="Failed to launch"):
        r.run(stdout=io.BytesIO())


def test_unsupported_streams(tmp_path: Path):
    r = _program(tmp_path, UPPER)
    with pytest.raises(TypeError):
        r.run(stdin=42)
    with pytest.raises(TypeError):
        r.run(stdout=object())


def test_execute_records_timing(tmp_path: Path):
    r = _program(tmp_path, "sys.exit(2)\n")
    r.metadata.cache_hit = True
    result = r.execute(stdout=io.BytesIO())
    assert result.returncode == 2
    assert not result.ok
    assert result.cache_hit
    assert result.artifact == r.artifact
    assert result.timings["execute"] >= 0
    with pytest.raises(ExecutionError):
        result.check()


def test_sigint_is_not_forwarded_within_the_process_group():
    cmd = [sys.executable, "-c", "import time; time.sleep(30)"]
    same_group = subprocess.Popen(cmd)
    own_session = subprocess.Popen(cmd, start_new_session=True)
    try:
        # The terminal already delivered SIGINT to every member of our group.
        assert not _should_forward(same_group, signal.SIGINT)
        assert _should_forward(same_group, signal.SIGTERM)
        assert _should_forward(own_session, signal.SIGINT)
    finally:
        for proc in (same_group, own_session):
            proc.kill()
            proc.wait()


class _SignallingSink:
    """Sends SIGTERM to this process on the first write."""

    def __init__(self) -> None:
        self.data = b""

    def write(self, chunk: bytes) -> None:
        if not self.data and chunk:
            os.kill(os.getpid(), signal.SIGTERM)
        self.data += chunk


def test_sigterm_is_forwarded_to_the_child(tmp_path: Path):
    r = _program(tmp_path, "print('ready', flush=True)\nimport time\ntime.sleep(30)\n")
    sink = _SignallingSink()
    previous = signal.getsignal(signal.SIGTERM)
    assert r.run(stdout=sink) == -signal.SIGTERM
    assert sink.data == b"ready\n"
    assert signal.getsignal(signal.SIGTERM) == previous


def test_check_passes_on_success():
    result = ExecutionResult(returncode=0)
    assert result.check() is result


if __name__ == "__main__":
    pytest.main(sys.argv)
