from __future__ import annotations

import pytest
from sqlalchemy.exc import IntegrityError

from core.database import SessionLocal
from models import BlockGroup, BlockSection
from models.block_group import SEMESTERS
from models.block_section import SECTION_STATUSES
from registrar.codes import SEMESTERS as CLIENT_SEMESTERS


def test_semester_values_match_client():
    assert SEMESTERS == CLIENT_SEMESTERS


def test_group_semester_is_constrained():
    with SessionLocal() as db:
        db.add(BlockGroup(name="103-1A", semester="3rd", year=2026))
        with pytest.raises(IntegrityError):
            db.commit()


@pytest.mark.parametrize("status", SECTION_STATUSES)
def test_section_accepts_known_statuses(seed, status):
    group = seed.group("103-1A")
    section = seed.section(group, "103-1A", status=status)
    assert seed.get_section(section).status == status


def test_section_status_is_constrained(seed):
    group = seed.group("103-1A")
    with pytest.raises(IntegrityError):
        seed.section(group, "103-1A", status="ARCHIVED")
