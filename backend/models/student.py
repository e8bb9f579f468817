from __future__ import annotations

import uuid

from sqlalchemy import Column, DateTime, Integer, String, Text, Uuid
from sqlalchemy.sql import func

from models.base import Base


class Student(Base):
    """Student record as owned by the registrar's student service.

    The block API only reads it.
    """

    __tablename__ = "students"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    student_number = Column(Text, nullable=False, default="")
    first_name = Column(Text, nullable=False)
    middle_name = Column(Text, nullable=True)
    last_name = Column(Text, nullable=False)
    suffix = Column(Text, nullable=True)
    # Raw program identifier in mixed formats ("103", "BSEd-Math", "Bachelor of ...").
    course = Column(Text, nullable=True)
    year_level = Column(Integer, nullable=True)
    student_status = Column(String(20), nullable=False, default="Regular")
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
