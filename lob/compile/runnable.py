"""Runnable wrapper for compiled artifacts."""

from __future__ import annotations

import codecs
import errno
import io
import os
import signal
import subprocess
import threading
import time
from contextlib import contextmanager, suppress
from pathlib import Path
from typing import IO, Any, Callable, Dict, Iterable, Iterator, Optional, Sequence, Tuple

from pydantic import BaseModel, Field

from lob.errors import ArtifactLaunchError, ExecutionError
from lob.logging import get_logger

logger = get_logger("Runnable")

CHUNK_SIZE = 64 * 1024
"""Bytes moved per read when pumping data to or from the child."""

_FORWARDED_SIGNALS = ("SIGINT", "SIGTERM")
_PIPE_ERRNOS = (errno.EPIPE, errno.EINVAL)


class RunnableMetadata(BaseModel):
    """Metadata about a runnable artifact.

    Records how the artifact was obtained, for logging and for ``--stats`` output.
    """

    key: str
    """BuildKey of the artifact."""
    toolchain: str = ""
    """Origin of the toolchain that compiled the artifact."""
    cache_hit: bool = False
    """Whether the artifact came from the cache rather than a fresh build."""
    misc: Dict[str, Any] = Field(default_factory=dict)
    """Miscellaneous metadata, such as build timings."""


class ExecutionResult(BaseModel):
    """Outcome of running a pipeline."""

    returncode: int
    """The child's exit status; negative when it was killed by a signal."""
    artifact: Optional[Path] = None
    """The artifact that ran."""
    cache_hit: bool = False
    """Whether the artifact was reused from the cache."""
    timings: Dict[str, float] = Field(default_factory=dict)
    """Seconds spent per phase, e.g. ``generate``, ``compile``, ``execute``."""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def check(self) -> "ExecutionResult":
        """Raise ExecutionError if the pipeline did not exit successfully.

        Returns
        -------
        ExecutionResult
            ``self``, for chaining.
        """
        if self.returncode != 0:
            raise ExecutionError(
                self.returncode, str(self.artifact) if self.artifact is not None else None
            )
        return self


def _real_fileno(stream: Any) -> Optional[int]:
    fileno = getattr(stream, "fileno", None)
    if fileno is None:
        return None
    try:
        fd = fileno()
    except (io.UnsupportedOperation, AttributeError, OSError, ValueError):
        return None
    return fd if isinstance(fd, int) and fd >= 0 else None


def _iter_input(source: Any) -> Iterator[bytes]:
    if isinstance(source, (bytes, bytearray, memoryview)):
        data = bytes(source)
        for i in range(0, len(data), CHUNK_SIZE):
            yield data[i : i + CHUNK_SIZE]
        return
    if isinstance(source, str):
        yield from _iter_input(source.encode("utf-8"))
        return
    read = getattr(source, "read", None)
    if callable(read):
        while True:
            chunk = read(CHUNK_SIZE)
            if not chunk:
                return
            yield chunk.encode("utf-8") if isinstance(chunk, str) else bytes(chunk)
    for item in source:
        yield item.encode("utf-8") if isinstance(item, str) else bytes(item)


def _pump_input(source: Any, pipe: IO[bytes]) -> None:
    """Feed ``source`` to the child's stdin. The child closing its input early is not an error."""
    try:
        for chunk in _iter_input(source):
            if chunk:
                pipe.write(chunk)
                pipe.flush()
    except BrokenPipeError:
        logger.debug("Pipeline closed its input early")
    except OSError as e:
        if e.errno not in _PIPE_ERRNOS:
            logger.warning("Failed to feed pipeline input: %s", e)
    finally:
        with suppress(OSError):
            pipe.close()


def _make_writer(sink: Any) -> Callable[[bytes], None]:
    if not isinstance(sink, io.TextIOBase):
        return sink.write
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    def write(chunk: bytes) -> None:
        text = decoder.decode(chunk, final=not chunk)
        if text:
            sink.write(text)

    return write


def _copy_output(pipe: IO[bytes], sink: Any) -> None:
    """Copy the child's stdout to ``sink`` as it arrives."""
    write = _make_writer(sink)
    read = getattr(pipe, "read1", pipe.read)
    try:
        while True:
            chunk = read(CHUNK_SIZE)
            if not chunk:
                write(b"")
                break
            write(chunk)
            flush = getattr(sink, "flush", None)
            if flush is not None:
                flush()
    except BrokenPipeError:
        # Our consumer went away; closing the pipe lets the child stop too.
        logger.debug("Output consumer closed the pipe")
    finally:
        with suppress(OSError):
            pipe.close()


def _should_forward(proc: subprocess.Popen, signum: int) -> bool:
    """Whether ``signum`` received by this process must be passed on to ``proc``.

    A terminal delivers SIGINT to the whole foreground process group, so a child sharing our
    group already has it.
    """
    if signum != getattr(signal, "SIGINT", None) or not hasattr(os, "getpgid"):
        return True
    try:
        return os.getpgid(proc.pid) != os.getpgrp()
    except ProcessLookupError:
        return False


@contextmanager
def _forward_signals(proc: subprocess.Popen) -> Iterator[None]:
    """Forward SIGINT and SIGTERM to ``proc`` while the block runs.

    Handlers can only be installed from the main thread; elsewhere this is a no-op.
    """
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    def forward(signum, frame):
        if proc.poll() is None and _should_forward(proc, signum):
            logger.debug("Forwarding signal %d to pid %d", signum, proc.pid)
            with suppress(ProcessLookupError):
                proc.send_signal(signum)

    previous = {}
    for name in _FORWARDED_SIGNALS:
        signum = getattr(signal, name, None)
        if signum is None:
            continue
        previous[signum] = signal.signal(signum, forward)
    try:
        yield
    finally:
        for signum, handler in previous.items():
            signal.signal(signum, handler)


class Runnable:
    """An executable wrapper around a compiled artifact.

    The artifact runs as a child process. Standard streams that are backed by a real file
    descriptor are handed to the child directly, so data flows without any copying in this
    process; anything else is pumped through pipes.
    """

    artifact: Path
    """Path of the executable artifact."""
    metadata: RunnableMetadata
    """Metadata about how the artifact was obtained."""

    def __init__(self, artifact: Path, metadata: RunnableMetadata) -> None:
        """Constructor for the Runnable class.

        Parameters
        ----------
        artifact : Path
            The executable artifact.
        metadata : RunnableMetadata
            The metadata for the runnable.
        """
        self.artifact = Path(artifact)
        self.metadata = metadata

    def command(self, args: Sequence[str] = ()) -> list:
        return [str(self.artifact), *[str(a) for a in args]]

    def run(
        self,
        stdin: Any = None,
        stdout: Any = None,
        args: Sequence[str] = (),
    ) -> int:
        """Run the artifact to completion.

        Parameters
        ----------
        stdin : Any
            None inherits this process's stdin. A file object with a real descriptor is passed
            to the child directly. Bytes, str, readable objects and iterables of chunks are fed
            from a background thread; the child exiting before consuming all of it is normal.
        stdout : Any
            None inherits this process's stdout. A file object with a real descriptor is passed
            to the child directly. Any other writable receives the output incrementally, as
            str if it is a text stream and as bytes otherwise.
        args : Sequence[str]
            Program arguments, e.g. input files.

        Returns
        -------
        int
            The child's exit status, verbatim. Negative if it was killed by a signal.

        Raises
        ------
        ArtifactLaunchError
            If the artifact cannot be executed.
        """
        stdin_arg, feed = self._wire_input(stdin)
        stdout_arg, sink = self._wire_output(stdout)

        cmd = self.command(args)
        try:
            proc = subprocess.Popen(cmd, stdin=stdin_arg, stdout=stdout_arg)
        except OSError as e:
            raise ArtifactLaunchError(f"Failed to launch artifact {self.artifact}: {e}") from e

        feeder = None
        with _forward_signals(proc):
            try:
                if feed is not None:
                    feeder = threading.Thread(
                        target=_pump_input, args=(feed, proc.stdin), daemon=True
                    )
                    feeder.start()
                if sink is not None:
                    _copy_output(proc.stdout, sink)
                proc.wait()
            finally:
                if proc.poll() is None:
                    proc.kill()
                    proc.wait()
                if feeder is not None:
                    feeder.join(timeout=1.0)

        logger.debug("Artifact %s exited with status %d", self.artifact, proc.returncode)
        return proc.returncode

    def execute(
        self, stdin: Any = None, stdout: Any = None, args: Sequence[str] = ()
    ) -> ExecutionResult:
        """Like ``run`` but returns an ExecutionResult with the execution time."""
        start = time.perf_counter()
        returncode = self.run(stdin=stdin, stdout=stdout, args=args)
        return ExecutionResult(
            returncode=returncode,
            artifact=self.artifact,
            cache_hit=self.metadata.cache_hit,
            timings={"execute": time.perf_counter() - start},
        )

    @staticmethod
    def _wire_input(stdin: Any) -> Tuple[Any, Any]:
        if stdin is None:
            return None, None
        fd = _real_fileno(stdin)
        if fd is not None:
            return fd, None
        if isinstance(stdin, (bytes, bytearray, memoryview, str)) or hasattr(stdin, "read"):
            return subprocess.PIPE, stdin
        if isinstance(stdin, Iterable):
            return subprocess.PIPE, stdin
        raise TypeError(f"Unsupported stdin source of type {type(stdin).__name__}")

    @staticmethod
    def _wire_output(stdout: Any) -> Tuple[Any, Any]:
        if stdout is None:
            return None, None
        fd = _real_fileno(stdout)
        if fd is not None:
            flush = getattr(stdout, "flush", None)
            if flush is not None:
                # Output already buffered here must precede the child's.
                flush()
            return fd, None
        if not hasattr(stdout, "write"):
            raise TypeError(f"Unsupported stdout sink of type {type(stdout).__name__}")
        return subprocess.PIPE, stdout
