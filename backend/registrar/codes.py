"""Course/program code normalization.

Student and block records carry program identity in several shapes: numeric
codes ("103"), abbreviations ("BSEd-Math", "HRM"), full program names and
codes embedded in labels ("103-1A"). Everything funnels through one table of
`Program` values; input that matches nothing is `Program.UNKNOWN` and callers
must handle it rather than assume a program.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from registrar.errors import InputValidationError


class Program(str, Enum):
    BEED = "101"
    BSED_ENGLISH = "102"
    BSED_MATH = "103"
    BSBA_HRM = "201"
    UNKNOWN = ""

    @property
    def abbreviation(self) -> str:
        return _ABBREVIATIONS[self]

    @property
    def is_known(self) -> bool:
        return self is not Program.UNKNOWN

    def __str__(self) -> str:
        return self.value


_ABBREVIATIONS: dict[Program, str] = {
    Program.BEED: "BEED",
    Program.BSED_ENGLISH: "BSEd-English",
    Program.BSED_MATH: "BSEd-Math",
    Program.BSBA_HRM: "BSBA-HRM",
    Program.UNKNOWN: "N/A",
}

# program -> (substring keys, exact aliases), matched against the compacted text.
# Order matters: the first program with a hit wins.
_ALIASES: dict[Program, tuple[tuple[str, ...], tuple[str, ...]]] = {
    Program.BEED: (("BEED", "ELEMENTARYEDUCATION"), ()),
    Program.BSED_ENGLISH: (("BSEDENGLISH", "MAJORINENGLISH"), ("ENGLISH",)),
    Program.BSED_MATH: (("BSEDMATH", "MAJORINMATH"), ("MATH", "MATHEMATICS")),
    Program.BSBA_HRM: (("BSBAHRM", "BSBSHRM", "BUSINESSADMINISTRATION", "MAJORINHRM"), ("HRM",)),
}

_BY_CODE: dict[str, Program] = {p.value: p for p in Program if p.is_known}

SEMESTERS: tuple[str, ...] = ("1st", "2nd", "Summer")
_SEMESTER_ALIASES: dict[str, str] = {
    "1": "1st",
    "1ST": "1st",
    "FIRST": "1st",
    "2": "2nd",
    "2ND": "2nd",
    "SECOND": "2nd",
    "S": "Summer",
    "SUMMER": "Summer",
}

_SEPARATORS = re.compile(r"[\s_\-–—]+")
_DIGITS = re.compile(r"^\d+$", re.ASCII)
_FOUR_DIGITS = re.compile(r"^\d{4}$", re.ASCII)
_CODE_TOKEN = re.compile(r"(?<!\d)(101|102|103|201)(?!\d)", re.ASCII)
_GROUP_NAME = re.compile(r"^\s*(?P<course>.+?)\s*-\s*(?P<level>\d{1,2})\s*(?P<letter>[A-Za-z])?\s*$", re.ASCII)
_SCHOOL_YEAR = re.compile(r"^\s*(?:S\.?Y\.?\s*)?(\d{4})\s*(?:[-/]\s*(\d{4}))?\s*$", re.ASCII | re.IGNORECASE)


def _compact(text: str) -> str:
    return _SEPARATORS.sub("", text.upper())


def course_code_of(raw: Any) -> Program:
    """Classify a raw course/program identifier.

    Numeric input passes through when it names a known program code. Free text
    is compared case-, whitespace-, underscore- and hyphen-insensitively against
    the alias table.
    """

    if isinstance(raw, Program):
        return raw
    if raw is None or isinstance(raw, bool):
        return Program.UNKNOWN

    text = str(raw).strip()
    if not text:
        return Program.UNKNOWN
    if _DIGITS.match(text):
        return _BY_CODE.get(text, Program.UNKNOWN)

    compact = _compact(text)
    for program, (keys, exact) in _ALIASES.items():
        if compact in exact:
            return program
        if any(key in compact for key in keys):
            return program
    return Program.UNKNOWN


def extract_course_code(text: Any) -> Program:
    """Classify a composite label such as a block group name or "103-1A BSEd-Math"."""

    if isinstance(text, Program):
        return text

    upper = str(text or "").upper().strip()
    if not upper:
        return Program.UNKNOWN

    match = _CODE_TOKEN.search(upper)
    if match:
        return _BY_CODE[match.group(1)]

    program = course_code_of(upper)
    if program.is_known:
        return program

    compact = _compact(upper)
    if "BSED" in compact and "ENGLISH" in compact:
        return Program.BSED_ENGLISH
    if "BSED" in compact and "MATH" in compact:
        return Program.BSED_MATH
    if "BSBA" in compact and "HRM" in compact:
        return Program.BSBA_HRM
    return Program.UNKNOWN


def course_label(code: Any) -> str:
    text = str(code.value if isinstance(code, Program) else (code if code is not None else "")).strip()
    if not text:
        return "N/A"
    program = extract_course_code(text)
    if program.is_known:
        return program.abbreviation
    return text


@dataclass(frozen=True)
class GroupLabel:
    program: Program
    year_level: int | None
    block_letter: str | None


def parse_group_name(name: Any) -> GroupLabel:
    text = str(name or "")
    program = extract_course_code(text)
    match = _GROUP_NAME.match(text)
    if match is None:
        return GroupLabel(program=program, year_level=None, block_letter=None)
    letter = match.group("letter")
    return GroupLabel(
        program=program,
        year_level=int(match.group("level")),
        block_letter=letter.upper() if letter else None,
    )


def build_group_name(program: Any, year_level: Any, block_letter: Any) -> str:
    resolved = course_code_of(program)
    if not resolved.is_known:
        raise InputValidationError("Course is required", field="course")

    try:
        level = int(year_level)
    except (TypeError, ValueError):
        raise InputValidationError("Year level must be between 1 and 5", field="year_level") from None
    if level < 1 or level > 5:
        raise InputValidationError("Year level must be between 1 and 5", field="year_level")

    letter = str(block_letter or "").strip().upper()[:1]
    if not re.fullmatch(r"[A-Z]", letter):
        raise InputValidationError("Block letter must be a single letter (A-Z)", field="block_letter")

    return f"{resolved.value}-{level}{letter}"


def parse_school_year(value: Any) -> int:
    """Return the starting year of "2026", "2026-2027" or "SY 2026-2027"."""

    if isinstance(value, int) and not isinstance(value, bool):
        text = str(value)
    else:
        text = str(value or "")

    match = _SCHOOL_YEAR.match(text)
    if match is None:
        raise InputValidationError(f"Invalid school year: {text.strip() or '(blank)'}", field="year")

    start = int(match.group(1))
    end = match.group(2)
    if end is not None and int(end) != start + 1:
        raise InputValidationError(f"Invalid school year: {text.strip()}", field="year")
    if start < 1900 or start > 2999:
        raise InputValidationError(f"Invalid school year: {text.strip()}", field="year")
    return start


def normalize_semester(value: Any) -> str:
    text = str(value or "").strip()
    if text in SEMESTERS:
        return text
    resolved = _SEMESTER_ALIASES.get(text.upper())
    if resolved is None:
        raise InputValidationError("Semester must be one of 1st, 2nd, Summer", field="semester")
    return resolved


def _field(record: Any, *names: str) -> Any:
    for name in names:
        if isinstance(record, Mapping):
            if name in record:
                return record[name]
        elif hasattr(record, name):
            return getattr(record, name)
    return None


def format_student_number(student: Any) -> str:
    """Rebuild a canonical YYYY-CCC-SSSSS student number from ragged input.

    Never raises; missing pieces degrade to 0000 / 000 / 00000. Applying it to
    its own output returns the same string.
    """

    raw = str(_field(student, "student_number", "studentNumber") or "").strip()
    fallback = course_code_of(_field(student, "course"))

    parts = [part.strip() for part in raw.split("-") if part.strip()]

    year = parts[0] if parts and _FOUR_DIGITS.match(parts[0]) else "0000"
    seq_part = next((part for part in reversed(parts) if _DIGITS.match(part)), "00000")

    compact_digits = re.sub(r"\D+", "", raw)
    if len(parts) == 1 and len(compact_digits) >= 8:
        year = compact_digits[:4]
        seq_part = compact_digits[-5:]

    seq = seq_part[-5:].rjust(5, "0")

    alpha = "-".join(part for part in parts if re.search(r"[A-Za-z]", part))
    from_raw = course_code_of(alpha or (parts[1] if len(parts) > 1 else ""))
    course = fallback if fallback.is_known else from_raw

    return f"{year}-{course.value or '000'}-{seq}"


def format_student_name(student: Any) -> str:
    pieces = [
        _field(student, "first_name", "firstName"),
        _field(student, "middle_name", "middleName"),
        _field(student, "last_name", "lastName"),
        _field(student, "suffix"),
    ]
    return " ".join(str(p).strip() for p in pieces if p and str(p).strip())
