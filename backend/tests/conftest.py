from __future__ import annotations

import os
import uuid
from dataclasses import dataclass

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET_KEY"] = "test-secret-key"
os.environ["ENVIRONMENT"] = "test"
os.environ.pop("REGISTRAR_TOKEN", None)

import pytest
from fastapi.testclient import TestClient

from core.database import ENGINE, SessionLocal
from core.security import create_access_token
from main import app
from models import Base, BlockGroup, BlockSection, Student, StudentBlockAssignment
from registrar.transport import BlockApi


@pytest.fixture(autouse=True)
def _fresh_schema():
    Base.metadata.drop_all(ENGINE)
    Base.metadata.create_all(ENGINE)
    yield


@pytest.fixture
def staff_token() -> str:
    return create_access_token(user_id=str(uuid.uuid4()), username="registrar", role="REGISTRAR")


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


@pytest.fixture
def auth_headers(staff_token: str) -> dict:
    return {"Authorization": f"Bearer {staff_token}"}


@pytest.fixture
def api(client: TestClient, staff_token: str) -> BlockApi:
    return BlockApi(client, token=staff_token)


@dataclass
class Seeder:
    """Writes fixture rows directly through the ORM, one committed session per call."""

    def group(
        self,
        name: str = "103-1A",
        *,
        semester: str = "1st",
        year: int = 2026,
        max_overcap: int = 5,
        allow_capacity_increase: bool = True,
    ) -> str:
        with SessionLocal() as db:
            group = BlockGroup(
                name=name,
                semester=semester,
                year=year,
                max_overcap=max_overcap,
                allow_capacity_increase=allow_capacity_increase,
            )
            db.add(group)
            db.commit()
            return str(group.id)

    def section(self, group_id: str, code: str, *, capacity: int = 30, population: int = 0, status: str = "OPEN") -> str:
        with SessionLocal() as db:
            section = BlockSection(
                block_group_id=uuid.UUID(group_id),
                section_code=code,
                capacity=capacity,
                current_population=population,
                status=status,
            )
            db.add(section)
            db.commit()
            return str(section.id)

    def student(
        self,
        first_name: str,
        last_name: str = "Student",
        *,
        number: str = "",
        course: str | None = "103",
        year_level: int | None = 1,
        status: str = "Regular",
    ) -> str:
        with SessionLocal() as db:
            student = Student(
                student_number=number,
                first_name=first_name,
                last_name=last_name,
                course=course,
                year_level=year_level,
                student_status=status,
            )
            db.add(student)
            db.commit()
            return str(student.id)

    def assignment(self, student_id: str, section_id: str, *, semester: str = "1st", year: int = 2026) -> None:
        with SessionLocal() as db:
            db.add(
                StudentBlockAssignment(
                    student_id=uuid.UUID(student_id),
                    section_id=uuid.UUID(section_id),
                    semester=semester,
                    year=year,
                )
            )
            db.commit()

    def get_section(self, section_id: str) -> BlockSection:
        with SessionLocal() as db:
            return db.get(BlockSection, uuid.UUID(section_id))


@pytest.fixture
def seed() -> Seeder:
    return Seeder()


@pytest.fixture
def full_block(seed: Seeder) -> dict:
    """103-1A full at 30/30 with sibling 103-1B at 25/30 and one unassigned student."""

    group_id = seed.group("103-1A")
    full = seed.section(group_id, "103-1A", capacity=30, population=30)
    sibling = seed.section(group_id, "103-1B", capacity=30, population=25)
    student = seed.student("Juan", "Dela Cruz", number="2026-103-00001")
    return {"group": group_id, "full": full, "sibling": sibling, "student": student}
