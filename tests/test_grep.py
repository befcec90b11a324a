import io

import pytest

from tinyfs.grep import grep, main, match


@pytest.mark.parametrize(
    "re, text, expected",
    [
        ("^ab", "abc", True),
        ("^ab", "cab", False),
        ("a.c", "xabcx", True),
        ("ab*c", "ac", True),
        ("ab*c", "abbbc", True),
        ("ab*c", "adc", False),
        ("c$", "abc", True),
        ("c$", "cab", False),
        ("", "anything", True),
        ("^$", "", True),
        ("^$", "x", False),
        (".*z", "abz", True),
    ],
)
def test_match(re, text, expected):
    assert match(re, text) is expected


def test_grep_selects_lines():
    stream = io.BytesIO(b"foo\nbar\nfood\n")
    assert list(grep("foo", stream)) == [b"foo\n", b"food\n"]


def test_grep_drops_unterminated_last_line():
    assert list(grep("foo", io.BytesIO(b"foo\nfoo"))) == [b"foo\n"]


def test_grep_across_reads():
    lines = [b"line %d\n" % i for i in range(300)]
    data = b"".join(lines)
    assert list(grep("line", io.BytesIO(data))) == lines


def test_grep_anchored():
    data = b"xa\nax\n"
    assert list(grep("^a", io.BytesIO(data))) == [b"ax\n"]


def test_main_usage():
    assert main([]) == 1


def test_main_files(tmp_path, capsysbinary):
    f = tmp_path / "in.txt"
    f.write_bytes(b"alpha\nbeta\ngamma\n")
    assert main(["a$", str(f)]) == 0
    assert capsysbinary.readouterr().out == b"alpha\nbeta\ngamma\n"


def test_main_missing_file(tmp_path, capsys):
    missing = str(tmp_path / "nope")
    assert main(["x", missing]) == 1
    assert f"grep: cannot open {missing}" in capsys.readouterr().out