from __future__ import annotations

import uuid
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


Semester = Literal["1st", "2nd", "Summer"]
Action = Literal["TRANSFER", "OVERRIDE", "INCREASE_CAPACITY", "CLOSE_SECTION"]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class BlockPolicies(CamelModel):
    max_overcap: int = Field(default=5, ge=0)
    allow_capacity_increase: bool = True


class BlockGroupCreate(CamelModel):
    name: str = Field(min_length=1)
    semester: Semester
    year: int = Field(ge=1900, le=2999)
    policies: BlockPolicies | None = None


class BlockGroupOut(CamelModel):
    id: uuid.UUID
    name: str
    semester: str
    year: int
    policies: BlockPolicies
    created_at: datetime | None = None

    @classmethod
    def from_model(cls, group) -> BlockGroupOut:
        return cls(
            id=group.id,
            name=group.name,
            semester=group.semester,
            year=group.year,
            policies=BlockPolicies(
                max_overcap=group.max_overcap,
                allow_capacity_increase=group.allow_capacity_increase,
            ),
            created_at=group.created_at,
        )


class BlockSectionCreate(CamelModel):
    section_code: str = Field(min_length=1)
    capacity: int = Field(ge=1)
    schedule: str = ""
    class_adviser: str = ""


class BlockSectionOut(CamelModel):
    id: uuid.UUID
    block_group_id: uuid.UUID
    section_code: str
    capacity: int
    current_population: int
    status: str
    schedule: str = ""
    class_adviser: str = ""


class StudentOut(CamelModel):
    id: uuid.UUID
    student_number: str = ""
    first_name: str
    middle_name: str | None = None
    last_name: str
    suffix: str | None = None
    course: str | None = None
    year_level: int | None = None
    student_status: str | None = None


class RosterOut(CamelModel):
    students: list[StudentOut]


class SuggestedSectionOut(CamelModel):
    id: uuid.UUID
    code: str
    available_slots: int
    schedule: str = ""


class SectionSnapshotOut(CamelModel):
    id: uuid.UUID
    code: str
    capacity: int
    current_population: int


class AssignStudentRequest(CamelModel):
    student_id: uuid.UUID
    section_id: uuid.UUID
    semester: Semester
    year: int = Field(ge=1900, le=2999)


class AssignedOut(CamelModel):
    status: Literal["ASSIGNED"] = "ASSIGNED"
    assignment_id: uuid.UUID
    section: SectionSnapshotOut


class OverCapacityOut(CamelModel):
    status: Literal["OVER_CAPACITY"] = "OVER_CAPACITY"
    section: SectionSnapshotOut
    projected_population: int
    allowed_actions: list[Action]
    suggested_sections: list[SuggestedSectionOut]
    policy_limits: BlockPolicies


class DecisionRequest(CamelModel):
    action: Action
    student_id: uuid.UUID
    section_id: uuid.UUID
    semester: Semester
    year: int = Field(ge=1900, le=2999)
    reason: str | None = None
    target_section_id: uuid.UUID | None = None
    new_capacity: int | None = Field(default=None, ge=1)


class DecisionResultOut(CamelModel):
    status: Literal["SUCCESS"] = "SUCCESS"
    action: Action
    message: str
    assignment_id: uuid.UUID | None = None
    section: BlockSectionOut
    target_section: BlockSectionOut | None = None


class MessageOut(BaseModel):
    message: str
