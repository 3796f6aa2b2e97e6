import io
import sys
from pathlib import Path

import pytest

from lob.runtime.lob_prelude import (
    Lob,
    emit,
    format_item,
    lob,
    lob_range,
    read_csv,
    read_json,
    read_lines,
)


def test_selection():
    assert lob(range(10)).filter(lambda x: x % 2).to_list() == [1, 3, 5, 7, 9]
    assert lob(range(10)).skip(3).take(2).to_list() == [3, 4]
    assert lob([1, 2, 5, 1]).take_while(lambda x: x < 3).to_list() == [1, 2]
    assert lob([1, 2, 5, 1]).drop_while(lambda x: x < 3).to_list() == [5, 1]
    assert lob([3, 1, 3, 2, 1]).unique().to_list() == [3, 1, 2]


def test_transformation():
    assert lob("ab").map(str.upper).to_list() == ["A", "B"]
    assert lob("ab").enumerate().to_list() == [(0, "a"), (1, "b")]
    assert lob("ab").enumerate(1).to_list() == [(1, "a"), (2, "b")]
    assert lob([1, 2, 3]).zip("xy").to_list() == [(1, "x"), (2, "y")]
    assert lob([[1, 2], [], [3]]).flatten().to_list() == [1, 2, 3]


def test_grouping():
    assert lob(range(5)).chunk(2).to_list() == [[0, 1], [2, 3], [4]]
    assert lob(range(4)).window(3).to_list() == [[0, 1, 2], [1, 2, 3]]
    assert lob(range(2)).window(3).to_list() == []
    groups = lob(["apple", "bob", "avocado", "cat"]).group_by(lambda s: s[0]).to_list()
    assert groups == [("a", ["apple", "avocado"]), ("b", ["bob"]), ("c", ["cat"])]
    with pytest.raises(ValueError):
        lob([1]).chunk(0)


def test_joins():
    users = [(1, "ann"), (2, "bob"), (3, "cid")]
    orders = [(1, "book"), (1, "pen"), (3, "cup")]
    inner = lob(users).join_inner(orders, lambda u: u[0], lambda o: o[0]).to_list()
    assert inner == [
        ((1, "ann"), (1, "book")),
        ((1, "ann"), (1, "pen")),
        ((3, "cid"), (3, "cup")),
    ]
    left = lob(users).join_left(orders, lambda u: u[0], lambda o: o[0]).to_list()
    assert ((2, "bob"), None) in left
    assert len(left) == 4


def test_terminals():
    assert lob(range(4)).count() == 4
    assert lob(range(4)).sum() == 6
    assert lob([3, 1, 2]).min() == 1
    assert lob(["a", "ccc", "bb"]).max(key=len) == "ccc"
    assert lob([]).min() is None
    assert lob([1, 2]).first() == 1
    assert lob([]).first() is None
    assert lob([1, 2]).last() == 2
    assert lob([1, 2, 3]).reduce(lambda a, b: a * b) == 6
    assert lob([]).reduce(lambda a, b: a * b) is None
    assert lob([1, 2, 3]).fold(10, lambda a, b: a + b) == 16
    assert lob([0, 1]).any()
    assert not lob([0, 1]).all()
    assert lob([2, 4]).all(lambda x: x % 2 == 0)
    assert lob([1, 1, 2]).collect(set) == {1, 2}


def test_operations_are_lazy():
    consumed = []

    def source():
        for i in range(100):
            consumed.append(i)
            yield i

    stream = lob(source()).map(lambda x: x * 2).filter(lambda x: x > 2)
    assert consumed == []
    assert stream.take(2).to_list() == [4, 6]
    assert consumed == [0, 1, 2, 3]


def test_lob_range():
    assert lob_range(0, 5).to_list() == [0, 1, 2, 3, 4]
    assert lob_range(10, 0, -3).to_list() == [10, 7, 4, 1]
    assert lob_range(5).take(3).to_list() == [5, 6, 7]
    with pytest.raises(ValueError):
        lob_range(0, 5, 0)


def test_read_lines_from_files(tmp_path: Path):
    a = tmp_path / "a.txt"
    b = tmp_path / "b.txt"
    a.write_text("one\n\n  two  \n")
    b.write_text("three")
    assert read_lines([str(a), str(b)]).to_list() == ["one", "two", "three"]


def test_read_lines_from_stdin(monkeypatch):
    monkeypatch.setattr(sys, "stdin", io.StringIO("a\r\nbb\n\nccc\n"))
    assert read_lines([]).to_list() == ["a", "bb", "ccc"]


def test_read_csv_and_tsv_key_rows_by_header(tmp_path: Path):
    csv_file = tmp_path / "data.csv"
    csv_file.write_text('name,age\nAlice,30\n\n"smith, j",42\n')
    assert read_csv([str(csv_file)]).to_list() == [
        {"name": "Alice", "age": "30"},
        {"name": "smith, j", "age": "42"},
    ]
    tsv_file = tmp_path / "data.tsv"
    tsv_file.write_text("a\tb\n1\t2\n")
    assert read_csv([str(tsv_file)], delimiter="\t").to_list() == [{"a": "1", "b": "2"}]


def test_read_csv_header_only_is_empty(tmp_path: Path):
    csv_file = tmp_path / "data.csv"
    csv_file.write_text("name,age\n")
    assert read_csv([str(csv_file)]).count() == 0


def test_invalid_utf8_on_stdin_is_replaced(monkeypatch):
    stdin = io.TextIOWrapper(io.BytesIO(b"ok\n\xff\xfebad\n"), encoding="utf-8")
    monkeypatch.setattr(sys, "stdin", stdin)
    assert read_lines().to_list() == ["ok", "\ufffd\ufffdbad"]


def test_read_json(tmp_path: Path):
    path = tmp_path / "data.jsonl"
    path.write_text('{"a": 1}\n\n[1, 2]\n')
    assert read_json([str(path)]).to_list() == [{"a": 1}, [1, 2]]


def test_format_item():
    assert format_item("bb") == '"bb"'
    assert format_item(3) == "3"
    assert format_item(None) == "null"
    assert format_item(("a", 1)) == '["a", 1]'
    assert format_item("é") == '"é"'
    assert format_item({1}) == "[1]"

    class Point:
        def __repr__(self):
            return "Point(1, 2)"

    assert format_item(Point()) == '"Point(1, 2)"'


def test_emit_stream_prints_one_item_per_line(capsys):
    assert emit(lob(["a", "bb"])) == 0
    assert capsys.readouterr().out == '"a"\n"bb"\n'


def test_emit_terminal_value_prints_once(capsys):
    assert emit([1, 2]) == 0
    assert emit(3) == 0
    assert capsys.readouterr().out == "[1, 2]\n3\n"


def test_emit_generator(capsys):
    emit(x for x in range(2))
    assert capsys.readouterr().out == "0\n1\n"


def test_emit_json_collects_stream(capsys):
    emit(lob([1, 2]), "json")
    emit(3, "json")
    assert capsys.readouterr().out == "[1, 2]\n3\n"


def test_emit_debug_uses_repr(capsys):
    emit(lob(["a", (1, 2)]), "debug")
    assert capsys.readouterr().out == "'a'\n(1, 2)\n"


def test_emit_csv(capsys):
    emit(lob([{"a": 1, "b": "x,y"}, {"a": 2}]), "csv")
    assert capsys.readouterr().out == 'a,b\n1,"x,y"\n2,\n'
    emit(lob([[1, "a"], (2, None)]), "csv")
    assert capsys.readouterr().out == "1,a\n2,\n"


def test_emit_table_aligns_columns(capsys):
    emit(lob([{"name": "Alice", "age": "30"}, {"name": "Bob", "age": "5"}]), "table")
    assert capsys.readouterr().out == "name   age\n-----  ---\nAlice  30\nBob    5\n"


def test_emit_unknown_format():
    with pytest.raises(ValueError):
        emit([1], "yaml")


def test_lob_is_an_iterator():
    stream = Lob([1, 2])
    assert next(stream) == 1
    assert list(stream) == [2]


if __name__ == "__main__":
    pytest.main(sys.argv)
