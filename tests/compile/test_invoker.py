import os
import subprocess
import sys
import zipfile
from pathlib import Path

import pytest

from lob.codegen import generate
from lob.compile import CompilerInvoker, SystemToolchain
from lob.config import LobConfig
from lob.data import Expression, Severity, ToolchainDescriptor
from lob.errors import ToolchainError

pytestmark = pytest.mark.requires_posix


@pytest.fixture
def descriptor(config: LobConfig) -> ToolchainDescriptor:
    return SystemToolchain(config).resolve()


def test_compile_produces_executable_archive(descriptor: ToolchainDescriptor, tmp_path: Path):
    source = generate(Expression.detect("_.filter(lambda x: len(x) > 1)"))
    result = CompilerInvoker().compile(source, descriptor, tmp_path)

    assert result.ok
    assert result.errors == []
    assert result.artifact == tmp_path / CompilerInvoker.ARTIFACT_NAME
    assert os.access(result.artifact, os.X_OK)
    assert result.artifact.read_bytes().startswith(b"#!")
    with zipfile.ZipFile(result.artifact) as zf:
        names = zf.namelist()
    assert "__main__.pyc" in names
    assert "lob_prelude/__init__.pyc" in names
    assert "lob_prelude/fluent.pyc" in names
    assert (tmp_path / CompilerInvoker.SOURCE_NAME).read_text() == source.text

    proc = subprocess.run(
        [str(result.artifact)], input=b"a\nbb\nccc\n", capture_output=True, timeout=60
    )
    assert proc.returncode == 0
    assert proc.stdout == b'"bb"\n"ccc"\n'


def test_toolchain_compiles_with_its_own_invoker(config: LobConfig, tmp_path: Path):
    toolchain = SystemToolchain(config)
    descriptor = toolchain.resolve()
    source = generate(Expression.detect("lob([1, 2]).sum()"))
    result = toolchain.compile(source, descriptor, tmp_path)
    assert result.ok
    proc = subprocess.run([str(result.artifact)], capture_output=True, timeout=60)
    assert proc.stdout == b"3\n"


def test_syntax_error_is_reported_in_expression(descriptor: ToolchainDescriptor, tmp_path: Path):
    source = generate(Expression.detect("_.filter(lambda x: x >)"))
    result = CompilerInvoker().compile(source, descriptor, tmp_path)

    assert not result.ok
    assert result.artifact is None
    assert not (tmp_path / CompilerInvoker.ARTIFACT_NAME).exists()
    errors = result.errors
    assert len(errors) == 1
    assert errors[0].severity == Severity.ERROR
    assert errors[0].code == "SyntaxError"
    assert errors[0].location is not None
    assert errors[0].location.in_expression
    assert errors[0].location.line == 1
    assert "SyntaxError" in result.stderr


def test_command_uses_profile_level(descriptor: ToolchainDescriptor, tmp_path: Path):
    cmd = CompilerInvoker().command(descriptor, tmp_path / "p.py", tmp_path / "p.lob")
    assert cmd[0] == str(descriptor.compiler)
    assert cmd[1] == "-I"
    assert cmd[-2:] == ["--optimize", "2"]


def test_missing_compiler_is_a_toolchain_error(descriptor: ToolchainDescriptor, tmp_path: Path):
    missing = descriptor.model_copy(update={"compiler": tmp_path / "no-such-python"})
    source = generate(Expression.detect("_.count()"))
    with pytest.raises(ToolchainError, match="not found"):
        CompilerInvoker().compile(source, missing, tmp_path)


if __name__ == "__main__":
    pytest.main(sys.argv)
