from __future__ import annotations

import uuid

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from models.base import Base


SEMESTERS = ("1st", "2nd", "Summer")
_SEMESTER_LIST = ", ".join(f"'{s}'" for s in SEMESTERS)


class BlockGroup(Base):
    __tablename__ = "block_groups"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    # "{courseCode}-{yearLevel}{blockLetter}", e.g. "103-1A"
    name = Column(Text, nullable=False)
    semester = Column(String(10), nullable=False)
    year = Column(Integer, nullable=False)
    max_overcap = Column(Integer, nullable=False, default=5)
    allow_capacity_increase = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    sections = relationship(
        "BlockSection",
        back_populates="group",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="BlockSection.section_code",
    )

    __table_args__ = (
        UniqueConstraint("name", "semester", "year", name="uq_block_groups_name_semester_year"),
        CheckConstraint(f"semester in ({_SEMESTER_LIST})", name="ck_block_groups_semester"),
        CheckConstraint("max_overcap >= 0", name="ck_block_groups_max_overcap"),
    )
