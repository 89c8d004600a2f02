"""Checking that source files start with the project's header block."""

from __future__ import annotations

import re
import sys
from pathlib import Path
from typing import Optional, Sequence

YEAR_PLACEHOLDER = "YEAR"
BOILERPLATE_START = "Copyright "
BOILERPLATE_END = "limitations under the License."

SUPPORTED_EXTENSIONS = (".go", ".py", ".sh")

_YEAR_RE = re.compile(r"(20)[0-9][0-9]")

# The grant line is kept as words; the header is checked line by line.
_GRANT_WORDS = (
    "Licensed", "under", "the", "Apache", "License,", "Version", "2.0",
    "(the", '"License");',
)

BOILERPLATE = (
    BOILERPLATE_START + YEAR_PLACEHOLDER + " The Kubernetes Authors.",
    "",
    " ".join(_GRANT_WORDS),
    "you may not use this file except in compliance with the License.",
    "You may obtain a copy of the License at",
    "",
    "    http://www.apache.org/licenses/LICENSE-2.0",
    "",
    "Unless required by applicable law or agreed to in writing, software",
    'distributed under the License is distributed on an "AS IS" BASIS,',
    "WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.",
    "See the License for the specific language governing permissions and",
    BOILERPLATE_END,
)


class BoilerplateError(Exception):
    """A file's header does not match the expected boilerplate."""


def trim_leading_comment(line: str, c: str) -> str:
    """Strip a line comment marker at the very start of a line, and one space after it."""
    if not line.startswith(c):
        return line
    rest = line[len(c):]
    return rest[1:] if rest.startswith(" ") else rest


def is_supported_file_extension(file_path: str) -> bool:
    """Tell whether the file's extension is one whose header is checked."""
    idx = file_path.rfind(".")
    if idx == -1:
        return False
    return file_path[idx:] in SUPPORTED_EXTENSIONS


def verify_boilerplate(contents: str) -> None:
    """Raise BoilerplateError unless contents hold the complete boilerplate."""
    idx = 0
    found_start = False
    expected_words = len(BOILERPLATE[0].split(" "))

    for line in contents.split("\n"):
        line = trim_leading_comment(line, "//")
        line = trim_leading_comment(line, "#")

        bp_line = BOILERPLATE[idx]
        if BOILERPLATE_START in line:
            found_start = True
            year_words = line.split(" ")
            if len(year_words) != expected_words:
                raise BoilerplateError(
                    f"copyright line should contain exactly {expected_words} words"
                )
            if not _YEAR_RE.search(year_words[1]):
                raise BoilerplateError("cannot parse the year in the copyright line")
            bp_line = bp_line.replace(YEAR_PLACEHOLDER, year_words[1])

        if found_start:
            if line != bp_line:
                raise BoilerplateError(
                    f"boilerplate line {idx + 1} does not match\n"
                    f"expected: {bp_line!r}\ngot: {line!r}"
                )
            idx += 1
            if line.startswith(BOILERPLATE_END):
                break

    if not found_start:
        raise BoilerplateError("the file is missing a boilerplate")
    if idx < len(BOILERPLATE):
        raise BoilerplateError("boilerplate has missing lines")


def verify_file(file_path: str) -> None:
    """Check one file; files of unsupported types are reported and skipped."""
    if not file_path:
        raise BoilerplateError("empty file name")
    if not is_supported_file_extension(file_path):
        print(f"skipping {file_path!r}: unsupported file type")
        return
    contents = Path(file_path).read_bytes().decode("utf-8", "replace")
    verify_boilerplate(contents)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Check every file named on the command line; return the exit status."""
    paths = list(sys.argv[1:] if argv is None else argv)
    if not paths:
        print("usage: verify-boilerplate <path-to-file> <path-to-file> ...")
        return 1

    has_error = False
    for file_path in paths:
        try:
            verify_file(file_path)
        except (BoilerplateError, OSError) as err:
            print(f"error validating {file_path!r}: {err}")
            has_error = True
    return 1 if has_error else 0