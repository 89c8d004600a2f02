import pytest

from etcdkit.boilerplate import (
    BOILERPLATE,
    BoilerplateError,
    is_supported_file_extension,
    main,
    trim_leading_comment,
    verify_boilerplate,
    verify_file,
)

HEADER_LINES = [line.replace("YEAR", "2019") for line in BOILERPLATE]

VALID = "\\/*\n" + "\n".join(HEADER_LINES) + "\n\t\t*/"

MISSING_LINES = "\n" + "\n".join(HEADER_LINES[:3]) + "\n"


def _commented(prefix):
    return "\n".join((prefix + " " + l) if l else prefix for l in HEADER_LINES) + "\n"


def test_bare_header_with_other_year_is_valid():
    lines = [line.replace("YEAR", "2021") for line in BOILERPLATE]
    assert lines[0] == "Copyright 2021 The Kubernetes Authors."
    assert verify_boilerplate("\n".join(lines)) is None


def test_valid_boilerplate():
    assert verify_boilerplate(VALID) is None


@pytest.mark.parametrize(
    "contents",
    [MISSING_LINES, "Copyright 1019 The Kubernetes Authors."],
    ids=["missing lines", "bad year"],
)
def test_invalid_boilerplate(contents):
    with pytest.raises(BoilerplateError):
        verify_boilerplate(contents)


def test_bad_year_message():
    with pytest.raises(BoilerplateError, match="cannot parse the year"):
        verify_boilerplate("Copyright 1019 The Kubernetes Authors.")


def test_missing_boilerplate():
    with pytest.raises(BoilerplateError, match="missing a boilerplate"):
        verify_boilerplate("package main\n")


def test_wrong_word_count():
    with pytest.raises(BoilerplateError, match="exactly 5 words"):
        verify_boilerplate("Copyright 2019 Someone.")


def test_truncated_header_reports_missing_lines():
    contents = "\n".join(HEADER_LINES[:5])
    with pytest.raises(BoilerplateError, match="missing lines"):
        verify_boilerplate(contents)


@pytest.mark.parametrize("prefix", ["#", "//"])
def test_commented_header_is_valid(prefix):
    assert verify_boilerplate(_commented(prefix)) is None


@pytest.mark.parametrize(
    "comment, line, expected",
    [
        ("#", "# test", "test"),
        ("#", "#", ""),
        ("//", "// test", "test"),
        ("//", "test", "test"),
    ],
)
def test_trim_leading_comment(comment, line, expected):
    assert trim_leading_comment(line, comment) == expected


def test_trim_leading_comment_without_space():
    assert trim_leading_comment("#test", "#") == "test"


@pytest.mark.parametrize(
    "path, expected",
    [
        ("main.go", True),
        ("tool.py", True),
        ("run.sh", True),
        ("README.md", False),
        ("Makefile", False),
    ],
)
def test_is_supported_file_extension(path, expected):
    assert is_supported_file_extension(path) is expected


def test_verify_file_empty_name():
    with pytest.raises(BoilerplateError, match="empty file name"):
        verify_file("")


def test_verify_file_skips_unsupported(tmp_path, capsys):
    path = tmp_path / "notes.txt"
    path.write_text("nothing here")
    verify_file(str(path))
    assert "unsupported file type" in capsys.readouterr().out


def test_verify_file_reads_file(tmp_path):
    bad = tmp_path / "bad.py"
    bad.write_text("print('hi')\n")
    with pytest.raises(BoilerplateError):
        verify_file(str(bad))


def test_main_without_arguments(capsys):
    assert main([]) == 1
    assert "usage" in capsys.readouterr().out


def test_main_statuses(tmp_path, capsys):
    good = tmp_path / "good.py"
    good.write_text(_commented("#"))
    bad = tmp_path / "bad.sh"
    bad.write_text("echo hi\n")
    assert main([str(good)]) == 0
    assert main([str(good), str(bad)]) == 1
    assert "error validating" in capsys.readouterr().out


def test_main_missing_file(tmp_path):
    assert main([str(tmp_path / "absent.go")]) == 1