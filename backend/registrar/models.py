from __future__ import annotations

import logging
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter, field_validator
from pydantic.alias_generators import to_camel

from registrar.codes import Program, course_code_of, format_student_name, format_student_number, parse_group_name, GroupLabel


logger = logging.getLogger(__name__)


Semester = Literal["1st", "2nd", "Summer"]


class DecisionAction(str, Enum):
    TRANSFER = "TRANSFER"
    OVERRIDE = "OVERRIDE"
    INCREASE_CAPACITY = "INCREASE_CAPACITY"
    CLOSE_SECTION = "CLOSE_SECTION"

    @property
    def requires_reason(self) -> bool:
        return self is not DecisionAction.TRANSFER

    def __str__(self) -> str:
        return self.value


class WireModel(BaseModel):
    """Snapshot of a server record. Immutable: refresh, don't patch."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True, extra="ignore")


class BlockPolicies(WireModel):
    max_overcap: int = 5
    allow_capacity_increase: bool = True


class BlockGroup(WireModel):
    id: str = Field(validation_alias=AliasChoices("id", "_id"))
    name: str
    semester: Semester
    year: int
    policies: BlockPolicies = Field(default_factory=BlockPolicies)

    @property
    def label(self) -> GroupLabel:
        return parse_group_name(self.name)

    @property
    def program(self) -> Program:
        return self.label.program


class BlockSection(WireModel):
    id: str = Field(validation_alias=AliasChoices("id", "_id"))
    block_group_id: str
    section_code: str
    capacity: int
    current_population: int = 0
    status: Literal["OPEN", "CLOSED"] = "OPEN"
    schedule: str = ""
    class_adviser: str = ""

    @property
    def available_slots(self) -> int:
        return max(0, self.capacity - self.current_population)

    @property
    def is_open(self) -> bool:
        return self.status == "OPEN"


class Student(WireModel):
    id: str = Field(validation_alias=AliasChoices("id", "_id"))
    student_number: str = ""
    first_name: str = ""
    middle_name: str | None = None
    last_name: str = ""
    suffix: str | None = None
    course: str | int | None = None
    year_level: int | None = None
    student_status: str | None = None

    @property
    def full_name(self) -> str:
        return format_student_name(self)

    @property
    def formatted_number(self) -> str:
        return format_student_number(self)

    @property
    def program(self) -> Program:
        return course_code_of(self.course)


class SectionSnapshot(WireModel):
    id: str
    code: str
    capacity: int
    current_population: int


class SuggestedSection(WireModel):
    id: str
    code: str
    available_slots: int
    schedule: str = ""


class Assigned(WireModel):
    status: Literal["ASSIGNED"]
    assignment_id: str | None = None
    section: SectionSnapshot | None = None


class OverCapacity(WireModel):
    status: Literal["OVER_CAPACITY"]
    section: SectionSnapshot
    projected_population: int
    allowed_actions: tuple[DecisionAction, ...]
    suggested_sections: tuple[SuggestedSection, ...] = ()
    policy_limits: BlockPolicies | None = None

    @field_validator("allowed_actions", mode="before")
    @classmethod
    def _drop_unknown_actions(cls, v: Any) -> Any:
        if not isinstance(v, (list, tuple)):
            return v
        known = {a.value for a in DecisionAction}
        kept = [a for a in v if str(a) in known]
        if len(kept) != len(v):
            logger.debug("Ignoring unsupported overcapacity actions: %s", [a for a in v if str(a) not in known])
        return kept

    @property
    def overcapacity_count(self) -> int:
        return max(0, self.projected_population - self.section.capacity)

    def suggested(self, section_id: str) -> SuggestedSection | None:
        return next((s for s in self.suggested_sections if s.id == section_id), None)


AssignResult = Annotated[Union[Assigned, OverCapacity], Field(discriminator="status")]

ASSIGN_RESULT_ADAPTER: TypeAdapter[Assigned | OverCapacity] = TypeAdapter(AssignResult)


class DecisionRequest(WireModel):
    action: DecisionAction
    student_id: str
    section_id: str
    semester: Semester
    year: int
    reason: str | None = None
    target_section_id: str | None = None
    new_capacity: int | None = None

    def payload(self) -> dict[str, Any]:
        # Unset fields are omitted so nothing from another action leaks into the request.
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class DecisionResult(WireModel):
    status: Literal["SUCCESS"]
    action: DecisionAction
    message: str = ""
    assignment_id: str | None = None
    section: BlockSection | None = None
    target_section: BlockSection | None = None


class CatalogSection(WireModel):
    """A section joined with its group, as listed across all blocks."""

    section: BlockSection
    group_name: str
    semester: Semester
    year: int
    course: Program

    @property
    def sort_key(self) -> str:
        return f"{self.course.value}-{self.section.section_code}"
