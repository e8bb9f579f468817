from __future__ import annotations

import argparse
import sys
import uuid
from pathlib import Path

# Allow running this script from any working directory.
BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from sqlalchemy import select

from core.bootstrap import bootstrap_schema
from core.config import settings
from core.database import SessionLocal
from core.security import create_access_token
from models import BlockGroup, BlockSection, Student
from registrar.codes import build_group_name, normalize_semester, parse_school_year


SAMPLE_STUDENTS = [
    ("2026-103-00001", "Juan", "Dela Cruz", "BSEd-Math", 1, "Regular"),
    ("2026-103-00002", "Maria", "Santos", "103", 1, "Regular"),
    ("2026-103-00003", "Jose", "Reyes", "Bachelor of Secondary Education - Major in Mathematics", 2, "Irregular"),
    ("2026-101-00004", "Ana", "Bautista", "BEED", 1, "Regular"),
    ("2026-201-00005", "Carlo", "Garcia", "BSBA-HRM", 1, "Regular"),
]


def _ensure_group(db, *, name: str, semester: str, year: int) -> BlockGroup:
    group = db.execute(
        select(BlockGroup).where(BlockGroup.name == name, BlockGroup.semester == semester, BlockGroup.year == year)
    ).scalar_one_or_none()
    if group is None:
        group = BlockGroup(
            name=name,
            semester=semester,
            year=year,
            max_overcap=settings.default_max_overcap,
            allow_capacity_increase=True,
        )
        db.add(group)
        db.flush()
    return group


def _ensure_section(db, group: BlockGroup, *, code: str, capacity: int) -> BlockSection:
    section = db.execute(
        select(BlockSection).where(BlockSection.block_group_id == group.id, BlockSection.section_code == code)
    ).scalar_one_or_none()
    if section is None:
        section = BlockSection(block_group_id=group.id, section_code=code, capacity=capacity)
        db.add(section)
        db.flush()
    return section


def main() -> int:
    parser = argparse.ArgumentParser(description="Seed sample block groups/sections/students and print a dev token.")
    parser.add_argument("--semester", default="1st")
    parser.add_argument("--year", default="2026")
    parser.add_argument("--capacity", type=int, default=settings.default_section_capacity)
    parser.add_argument("--role", default="REGISTRAR")
    parser.add_argument("--no-students", action="store_true", help="Only create blocks")
    args = parser.parse_args()

    if settings.environment.lower() == "production":
        raise SystemExit("Refusing to seed sample data in production")

    semester = normalize_semester(args.semester)
    year = parse_school_year(args.year)

    bootstrap_schema()
    with SessionLocal() as db:
        for program, letters in (("103", "AB"), ("101", "A"), ("201", "A")):
            name = build_group_name(program, 1, "A")
            group = _ensure_group(db, name=name, semester=semester, year=year)
            for letter in letters:
                _ensure_section(db, group, code=build_group_name(program, 1, letter), capacity=args.capacity)
            print(f"OK: block {name} ({semester} {year})")

        if not args.no_students:
            for number, first, last, course, level, status in SAMPLE_STUDENTS:
                exists = db.execute(select(Student.id).where(Student.student_number == number)).first()
                if exists is not None:
                    continue
                db.add(
                    Student(
                        student_number=number,
                        first_name=first,
                        last_name=last,
                        course=course,
                        year_level=level,
                        student_status=status,
                    )
                )
            print(f"OK: {len(SAMPLE_STUDENTS)} sample students present")
        db.commit()

    role = (args.role or "REGISTRAR").strip().upper()
    token = create_access_token(user_id=str(uuid.uuid4()), username="dev-registrar", role=role)
    print("Dev token (export as REGISTRAR_TOKEN):")
    print(token)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
