from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

from registrar.codes import normalize_semester
from registrar.errors import InputValidationError, RequestFailedError
from registrar.models import Assigned, OverCapacity
from registrar.transport import BlockApi


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PendingOvercapacity:
    """A single-student overcapacity result waiting for a staff decision."""

    student_id: str
    section_id: str
    semester: str
    year: int
    result: OverCapacity


@dataclass(frozen=True)
class BatchFailure:
    student_id: str
    name: str
    message: str


@dataclass
class BatchOutcome:
    submitted: int
    assigned: list[str] = field(default_factory=list)
    overcapacity: list[str] = field(default_factory=list)
    overcapacity_ids: list[str] = field(default_factory=list)
    failures: list[BatchFailure] = field(default_factory=list)
    pending: PendingOvercapacity | None = None

    @property
    def assigned_count(self) -> int:
        return len(self.assigned)

    @property
    def ok(self) -> bool:
        return not self.overcapacity and not self.failures and self.pending is None

    def summary(self) -> str:
        if self.pending is not None:
            section = self.pending.result.section
            return (
                f"Section {section.code} is full ({section.current_population}/{section.capacity}); "
                "a decision is required"
            )

        text = f"{len(self.assigned)} assigned"
        if self.overcapacity:
            text += ", overcapacity for: " + ", ".join(self.overcapacity)
        if self.failures:
            text += "; failed for: " + ", ".join(f"{f.name} ({f.message})" for f in self.failures)
        return text


def _validate_target(section_id: str, semester: str, year: int) -> tuple[str, int]:
    if not str(section_id or "").strip():
        raise InputValidationError("Please select a block section", field="section_id")
    semester = normalize_semester(semester)
    try:
        year = int(year)
    except (TypeError, ValueError):
        raise InputValidationError("Year must be a number", field="year") from None
    if year <= 0:
        raise InputValidationError("Year must be a number", field="year")
    return semester, year


class AssignmentEngine:
    """Places students into block sections through the block API.

    The server does the capacity check and the increment in one step; this side
    only routes the two expected outcomes. OverCapacity is a result, not an error.
    """

    def __init__(self, api: BlockApi) -> None:
        self._api = api

    def assign(self, student_id: str, section_id: str, semester: str, year: int) -> Assigned | OverCapacity:
        if not str(student_id or "").strip():
            raise InputValidationError("Please select a student", field="student_id")
        semester, year = _validate_target(section_id, semester, year)

        result = self._api.assign_student(student_id=student_id, section_id=section_id, semester=semester, year=year)
        if isinstance(result, OverCapacity):
            logger.info(
                "Overcapacity: student=%s section=%s population=%s/%s projected=%s",
                student_id,
                result.section.code,
                result.section.current_population,
                result.section.capacity,
                result.projected_population,
            )
        else:
            logger.info("Assigned student=%s section=%s", student_id, section_id)
        return result

    def assign_batch(
        self,
        student_ids: Sequence[str],
        section_id: str,
        semester: str,
        year: int,
        *,
        names: Mapping[str, str] | None = None,
    ) -> BatchOutcome:
        """Assign each student in submission order.

        A lone student hitting overcapacity stops the batch and comes back as
        `outcome.pending` for the resolution controller. In larger batches
        overcapacity and request failures are collected per student and the rest
        keep going; only a missing session aborts.
        """

        ids = [str(i) for i in student_ids]
        if not ids:
            raise InputValidationError("Please select a block and at least one student", field="student_ids")
        if any(not i.strip() for i in ids):
            raise InputValidationError("Please select a student", field="student_ids")
        semester, year = _validate_target(section_id, semester, year)

        names = names or {}
        outcome = BatchOutcome(submitted=len(ids))
        for student_id in ids:
            label = names.get(student_id) or student_id
            try:
                result = self.assign(student_id, section_id, semester, year)
            except RequestFailedError as exc:
                outcome.failures.append(BatchFailure(student_id=student_id, name=label, message=exc.message))
                continue

            if isinstance(result, OverCapacity):
                if len(ids) == 1:
                    outcome.pending = PendingOvercapacity(
                        student_id=student_id,
                        section_id=section_id,
                        semester=semester,
                        year=year,
                        result=result,
                    )
                    break
                outcome.overcapacity.append(label)
                outcome.overcapacity_ids.append(student_id)
                continue

            outcome.assigned.append(student_id)

        logger.info("Batch assignment to section %s: %s", section_id, outcome.summary())
        return outcome
