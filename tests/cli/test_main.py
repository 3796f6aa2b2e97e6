import sys
from pathlib import Path

import pytest

from lob.cli import cli
from lob.cli.main import build_parser

pytestmark = pytest.mark.requires_posix


@pytest.fixture
def system_python(tmp_cache_dir: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.setenv("LOB_TOOLCHAIN", "system")
    monkeypatch.setenv("LOB_PYTHON", sys.executable)
    return tmp_cache_dir


def test_source_prints_generated_program(tmp_cache_dir: Path, capsys):
    assert cli(["source", "_.count()"]) == 0
    out = capsys.readouterr().out
    assert "from lob_prelude import *" in out
    assert "_ = read_lines(sys.argv[1:])" in out
    assert "_.count()" in out
    assert not tmp_cache_dir.exists()


def test_source_with_range_and_formats(tmp_cache_dir: Path, capsys):
    assert cli(["source", "_.sum()", "--range", "1:10:2"]) == 0
    assert "_ = lob_range(1, 10, 2)" in capsys.readouterr().out
    assert cli(["source", "_.count()", "--tsv"]) == 0
    assert 'delimiter="\\t"' in capsys.readouterr().out


def test_run_reads_files(system_python: Path, tmp_path: Path, capfd):
    data = tmp_path / "words.txt"
    data.write_text("a\nbb\nccc\n")
    assert cli(["run", "_.filter(lambda x: len(x) > 1).count()", str(data)]) == 0
    assert capfd.readouterr().out == "2\n"


def test_run_stats_and_verbose(system_python: Path, tmp_path: Path, capfd):
    data = tmp_path / "nums.txt"
    data.write_text("1\n2\n")
    argv = ["run", "_.map(int).sum()", str(data), "--stats", "-v"]
    assert cli(argv) == 0
    first = capfd.readouterr()
    assert first.out == "3\n"
    assert "Expression: _.map(int).sum()" in first.err
    assert "Statistics:" in first.err
    assert "Cache:            miss" in first.err

    assert cli(argv) == 0
    assert "Cache:            hit" in capfd.readouterr().err


def test_run_propagates_exit_status(system_python: Path, capfd):
    assert cli(["run", "lob([1]).map(lambda x: sys.exit(7))"]) == 7


def test_compile_error_exits_with_one(system_python: Path, capfd):
    assert cli(["run", "_.filter(lambda x: x >)"]) == 1
    err = capfd.readouterr().err
    assert "Compilation failed" in err
    assert "expression: _.filter(lambda x: x >)" in err
    assert "SyntaxError" in err


def test_invalid_range_exits_with_two(system_python: Path, capfd):
    assert cli(["run", "_.count()", "--range", "a:b"]) == 2
    assert "Invalid range" in capfd.readouterr().err


def test_cache_stats_and_clear(system_python: Path, tmp_path: Path, capfd):
    data = tmp_path / "in.txt"
    data.write_text("x\n")
    assert cli(["run", "_.count()", str(data)]) == 0
    capfd.readouterr()

    assert cli(["cache", "stats"]) == 0
    out = capfd.readouterr().out
    assert "Cached binaries: 1" in out
    assert f"Cache directory: {system_python}" in out

    assert cli(["cache", "clear"]) == 0
    assert "Cache cleared successfully" in capfd.readouterr().out
    assert cli(["cache", "stats"]) == 0
    assert "Cached binaries: 0" in capfd.readouterr().out


def test_missing_input_file_is_reported_before_compiling(
    system_python: Path, tmp_path: Path, capfd
):
    assert cli(["run", "_.count()", str(tmp_path / "absent.txt")]) == 1
    assert f"File not found: {tmp_path / 'absent.txt'}" in capfd.readouterr().err
    assert cli(["cache", "stats"]) == 0
    assert "Cached binaries: 0" in capfd.readouterr().out


def test_csv_rows_by_header_as_table(system_python: Path, tmp_path: Path, capfd):
    data = tmp_path / "people.csv"
    data.write_text("name,age\nAlice,30\n")
    assert cli(["run", "_.map(lambda r: r)", str(data), "--csv", "--format", "table"]) == 0
    assert capfd.readouterr().out == "name   age\n-----  ---\nAlice  30\n"

    assert cli(["run", "_.map(lambda r: r['name'])", str(data), "--csv"]) == 0
    assert capfd.readouterr().out == '"Alice"\n'


def test_json_output_format(system_python: Path, tmp_path: Path, capfd):
    data = tmp_path / "nums.txt"
    data.write_text("1\n2\n")
    assert cli(["run", "_.map(int)", str(data), "-f", "json"]) == 0
    assert capfd.readouterr().out == "[1, 2]\n"


def test_unknown_output_format_exits_with_two(system_python: Path, capfd):
    assert cli(["run", "_.count()", "-f", "yaml"]) == 2
    assert "Unknown output format 'yaml'" in capfd.readouterr().err


def test_source_embeds_output_format(tmp_cache_dir: Path, capsys):
    assert cli(["source", "_.count()", "-f", "debug"]) == 0
    assert "return emit(result, 'debug')" in capsys.readouterr().out


def test_format_flags_are_exclusive():
    with pytest.raises(SystemExit):
        build_parser().parse_args(["run", "_.count()", "--csv", "--json"])


if __name__ == "__main__":
    pytest.main(sys.argv)
