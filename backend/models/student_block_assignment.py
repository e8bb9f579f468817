from __future__ import annotations

import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, UniqueConstraint, Uuid
from sqlalchemy.sql import func

from models.base import Base


class StudentBlockAssignment(Base):
    __tablename__ = "student_block_assignments"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    student_id = Column(Uuid, ForeignKey("students.id", ondelete="CASCADE"), nullable=False)
    section_id = Column(Uuid, ForeignKey("block_sections.id", ondelete="CASCADE"), nullable=False)
    semester = Column(String(10), nullable=False)
    year = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False, default="ASSIGNED")
    assigned_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        # One active assignment per student per semester/year.
        UniqueConstraint("student_id", "semester", "year", name="uq_student_block_assignments_term"),
        Index("ix_student_block_assignments_section_status", "section_id", "status"),
    )
