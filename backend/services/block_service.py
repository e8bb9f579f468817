from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.config import settings
from models.block_action_log import BlockActionLog
from models.block_group import BlockGroup
from models.block_section import BlockSection
from models.student import Student
from models.student_block_assignment import StudentBlockAssignment
from registrar.codes import course_code_of, extract_course_code, normalize_semester, parse_group_name
from registrar.errors import InputValidationError
from schemas.block import (
    AssignedOut,
    BlockPolicies,
    BlockSectionOut,
    DecisionRequest,
    DecisionResultOut,
    OverCapacityOut,
    SectionSnapshotOut,
    SuggestedSectionOut,
)


logger = logging.getLogger(__name__)


ACTIVE_STATUS = "ASSIGNED"


class BlockServiceError(Exception):
    """Refusal from the block service, rendered as {"code", "message", "error"}."""

    def __init__(self, status_code: int, code: str, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message


def _semester(value: str) -> str:
    try:
        return normalize_semester(value)
    except InputValidationError as exc:
        raise BlockServiceError(400, "INVALID_SEMESTER", exc.message) from exc


def _get_group(db: Session, group_id: uuid.UUID) -> BlockGroup:
    group = db.get(BlockGroup, group_id)
    if group is None:
        raise BlockServiceError(404, "GROUP_NOT_FOUND", "Block group not found")
    return group


def _get_section(db: Session, section_id: uuid.UUID, *, for_update: bool = False) -> BlockSection:
    q = select(BlockSection).where(BlockSection.id == section_id)
    if for_update:
        q = q.with_for_update()
    section = db.execute(q).scalar_one_or_none()
    if section is None:
        raise BlockServiceError(404, "SECTION_NOT_FOUND", "Block section not found")
    return section


def _get_student(db: Session, student_id: uuid.UUID) -> Student:
    student = db.get(Student, student_id)
    if student is None:
        raise BlockServiceError(404, "STUDENT_NOT_FOUND", "Student not found")
    return student


def _policies(group: BlockGroup) -> BlockPolicies:
    return BlockPolicies(max_overcap=group.max_overcap, allow_capacity_increase=group.allow_capacity_increase)


def _snapshot(section: BlockSection) -> SectionSnapshotOut:
    return SectionSnapshotOut(
        id=section.id,
        code=section.section_code,
        capacity=section.capacity,
        current_population=section.current_population,
    )


# -- groups and sections -------------------------------------------------------


def list_groups(db: Session) -> list[BlockGroup]:
    return db.execute(select(BlockGroup).order_by(BlockGroup.name.asc(), BlockGroup.year.asc())).scalars().all()


def create_group(
    db: Session,
    *,
    name: str,
    semester: str,
    year: int,
    policies: BlockPolicies | None = None,
) -> BlockGroup:
    name = (name or "").strip()
    if not name:
        raise BlockServiceError(400, "NAME_REQUIRED", "name, semester, and year are required")

    group = BlockGroup(
        name=name,
        semester=_semester(semester),
        year=int(year),
        max_overcap=policies.max_overcap if policies is not None else settings.default_max_overcap,
        allow_capacity_increase=policies.allow_capacity_increase if policies is not None else True,
    )
    db.add(group)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise BlockServiceError(409, "GROUP_EXISTS", "Block group already exists for this semester/year")
    db.refresh(group)
    logger.info("Created block group %s (%s %s)", group.name, group.semester, group.year)
    return group


def delete_group(db: Session, group_id: uuid.UUID) -> str:
    group = _get_group(db, group_id)
    section_ids = [s.id for s in group.sections]
    if section_ids:
        assigned = db.execute(
            select(func.count())
            .select_from(StudentBlockAssignment)
            .where(StudentBlockAssignment.section_id.in_(section_ids))
            .where(StudentBlockAssignment.status == ACTIVE_STATUS)
        ).scalar_one()
        if assigned:
            raise BlockServiceError(
                409,
                "GROUP_NOT_EMPTY",
                f"Cannot delete block. It still has {assigned} assigned record(s).",
            )

    db.delete(group)
    db.commit()
    logger.info("Deleted block group %s (%s)", group.name, group_id)
    return "Block group deleted successfully"


def list_sections(db: Session, group_id: uuid.UUID) -> list[BlockSection]:
    _get_group(db, group_id)
    return (
        db.execute(
            select(BlockSection).where(BlockSection.block_group_id == group_id).order_by(BlockSection.section_code.asc())
        )
        .scalars()
        .all()
    )


def create_section(
    db: Session,
    group_id: uuid.UUID,
    *,
    section_code: str,
    capacity: int,
    schedule: str = "",
    class_adviser: str = "",
) -> BlockSection:
    _get_group(db, group_id)
    code = (section_code or "").strip()
    if not code:
        raise BlockServiceError(400, "SECTION_CODE_REQUIRED", "sectionCode and capacity are required")

    section = BlockSection(
        block_group_id=group_id,
        section_code=code,
        capacity=int(capacity),
        current_population=0,
        status="OPEN",
        schedule=(schedule or "").strip(),
        class_adviser=(class_adviser or "").strip(),
    )
    db.add(section)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise BlockServiceError(409, "SECTION_EXISTS", "Section code already exists in this group")
    db.refresh(section)
    logger.info("Created section %s (capacity %s) in group %s", code, section.capacity, group_id)
    return section


# -- students ------------------------------------------------------------------


def assignable_students(
    db: Session,
    *,
    semester: str,
    year: int,
    q: str = "",
    group_id: uuid.UUID | None = None,
    limit: int | None = None,
) -> list[Student]:
    """Students without an active assignment for the term, optionally narrowed to a group.

    For a group, students must belong to the group's program; Regular students must
    also match its year level. Irregular students of any level stay listed.
    """

    semester = _semester(semester)
    limit = min(int(limit or settings.assignable_students_limit), 500)

    assigned = (
        select(StudentBlockAssignment.student_id)
        .where(StudentBlockAssignment.semester == semester)
        .where(StudentBlockAssignment.year == int(year))
        .where(StudentBlockAssignment.status == ACTIVE_STATUS)
    )
    query = select(Student).where(Student.id.not_in(assigned))

    search = (q or "").strip()
    if search:
        pattern = f"%{search.lower()}%"
        query = query.where(
            or_(
                func.lower(Student.first_name).like(pattern),
                func.lower(func.coalesce(Student.middle_name, "")).like(pattern),
                func.lower(Student.last_name).like(pattern),
                func.lower(Student.student_number).like(pattern),
            )
        )

    program = None
    if group_id is not None:
        label = parse_group_name(_get_group(db, group_id).name)
        program = label.program if label.program.is_known else None
        if label.year_level is not None:
            query = query.where(or_(Student.year_level == label.year_level, Student.student_status != "Regular"))

    query = query.order_by(Student.last_name.asc(), Student.first_name.asc())
    if program is None:
        return db.execute(query.limit(limit)).scalars().all()

    # Course values come in mixed formats, so the program match happens here.
    out: list[Student] = []
    for student in db.execute(query).scalars():
        if course_code_of(student.course) is program:
            out.append(student)
            if len(out) >= limit:
                break
    return out


def section_roster(db: Session, section_id: uuid.UUID) -> list[Student]:
    _get_section(db, section_id)
    return (
        db.execute(
            select(Student)
            .join(StudentBlockAssignment, StudentBlockAssignment.student_id == Student.id)
            .where(StudentBlockAssignment.section_id == section_id)
            .where(StudentBlockAssignment.status == ACTIVE_STATUS)
            .order_by(Student.last_name.asc(), Student.first_name.asc())
        )
        .scalars()
        .all()
    )


def suggested_sections(db: Session, section_id: uuid.UUID, *, limit: int = 5) -> list[SuggestedSectionOut]:
    """Open sibling sections with room, most free slots first."""

    section = _get_section(db, section_id)
    rows = (
        db.execute(
            select(BlockSection)
            .where(BlockSection.block_group_id == section.block_group_id)
            .where(BlockSection.id != section.id)
            .where(BlockSection.status == "OPEN")
            .where(BlockSection.current_population < BlockSection.capacity)
        )
        .scalars()
        .all()
    )
    rows = sorted(rows, key=lambda s: (-(s.capacity - s.current_population), s.section_code))
    return [
        SuggestedSectionOut(
            id=s.id,
            code=s.section_code,
            available_slots=s.capacity - s.current_population,
            schedule=s.schedule or "",
        )
        for s in rows[: max(0, int(limit))]
    ]


# -- assignment ----------------------------------------------------------------


def allowed_actions(
    group: BlockGroup,
    section: BlockSection,
    projected: int,
    suggestions: list[SuggestedSectionOut],
) -> list[str]:
    actions: list[str] = []
    if suggestions:
        actions.append("TRANSFER")
    if projected <= section.capacity + group.max_overcap:
        actions.append("OVERRIDE")
    if group.allow_capacity_increase:
        actions.append("INCREASE_CAPACITY")
    if section.current_population > 0:
        actions.append("CLOSE_SECTION")
    return actions


def _already_assigned() -> BlockServiceError:
    return BlockServiceError(409, "ALREADY_ASSIGNED", "Student already assigned for this semester")


def _check_not_assigned(db: Session, student_id: uuid.UUID, semester: str, year: int) -> None:
    existing = db.execute(
        select(StudentBlockAssignment.id)
        .where(StudentBlockAssignment.student_id == student_id)
        .where(StudentBlockAssignment.semester == semester)
        .where(StudentBlockAssignment.year == int(year))
        .limit(1)
    ).first()
    if existing is not None:
        raise _already_assigned()


def _check_eligible(group: BlockGroup, student: Student, semester: str, year: int) -> None:
    if group.semester != semester or group.year != int(year):
        raise BlockServiceError(
            400,
            "TERM_MISMATCH",
            f"Block {group.name} is for {group.semester} semester {group.year}",
        )

    label = parse_group_name(group.name)
    group_program = extract_course_code(group.name)
    if group_program.is_known and course_code_of(student.course) is not group_program:
        raise BlockServiceError(400, "COURSE_MISMATCH", "Student course does not match selected block group")

    if label.year_level is not None and student.student_status == "Regular" and student.year_level != label.year_level:
        raise BlockServiceError(
            400,
            "YEAR_LEVEL_MISMATCH",
            f"Regular students can only be assigned to year level {label.year_level} blocks for this group",
        )


def _increment_if_room(db: Session, section_id: uuid.UUID) -> bool:
    # Check and increment in one statement; concurrent requests can't both take the last slot.
    result = db.execute(
        update(BlockSection)
        .where(BlockSection.id == section_id)
        .where(BlockSection.status == "OPEN")
        .where(BlockSection.current_population < BlockSection.capacity)
        .values(current_population=BlockSection.current_population + 1)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def _record_assignment(
    db: Session,
    *,
    student_id: uuid.UUID,
    section_id: uuid.UUID,
    semester: str,
    year: int,
) -> StudentBlockAssignment:
    assignment = StudentBlockAssignment(
        student_id=student_id,
        section_id=section_id,
        semester=semester,
        year=int(year),
        status=ACTIVE_STATUS,
    )
    db.add(assignment)
    try:
        db.flush()
    except IntegrityError:
        # Lost a race with a concurrent assignment; undoes the increment too.
        db.rollback()
        raise _already_assigned() from None
    return assignment


def _log(db: Session, action: str, *, section_id, student_id, registrar_id: str, reason: str | None = None, details=None):
    db.add(
        BlockActionLog(
            action_type=action,
            section_id=section_id,
            student_id=student_id,
            registrar_id=registrar_id,
            reason=reason,
            details=details or {},
        )
    )


def _commit_assignment(db: Session) -> None:
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise _already_assigned()


def assign_student(
    db: Session,
    *,
    student_id: uuid.UUID,
    section_id: uuid.UUID,
    semester: str,
    year: int,
    registrar_id: str,
) -> AssignedOut | OverCapacityOut:
    semester = _semester(semester)
    _check_not_assigned(db, student_id, semester, year)

    section = db.get(BlockSection, section_id)
    if section is None or section.status != "OPEN":
        raise BlockServiceError(400, "SECTION_NOT_OPEN", "Section not found or not open")
    student = _get_student(db, student_id)
    group = section.group
    _check_eligible(group, student, semester, year)

    if _increment_if_room(db, section.id):
        assignment = _record_assignment(db, student_id=student.id, section_id=section.id, semester=semester, year=year)
        _log(db, "ASSIGN", section_id=section.id, student_id=student.id, registrar_id=registrar_id)
        _commit_assignment(db)
        db.refresh(section)
        logger.info(
            "Assigned student %s to %s (%s/%s)",
            student.id,
            section.section_code,
            section.current_population,
            section.capacity,
        )
        return AssignedOut(assignment_id=assignment.id, section=_snapshot(section))

    db.rollback()
    db.refresh(section)
    if section.status != "OPEN":
        raise BlockServiceError(400, "SECTION_NOT_OPEN", "Section not found or not open")

    projected = section.current_population + 1
    suggestions = suggested_sections(db, section.id)
    logger.info(
        "Section %s full (%s/%s); overcapacity for student %s",
        section.section_code,
        section.current_population,
        section.capacity,
        student.id,
    )
    return OverCapacityOut(
        section=_snapshot(section),
        projected_population=projected,
        allowed_actions=allowed_actions(group, section, projected, suggestions),
        suggested_sections=suggestions,
        policy_limits=_policies(group),
    )


# -- overcapacity decisions ----------------------------------------------------


@dataclass(frozen=True)
class _Applied:
    message: str
    assignment_id: uuid.UUID | None = None
    target: BlockSection | None = None


def _require_reason(decision: DecisionRequest) -> str:
    reason = (decision.reason or "").strip()
    if not reason:
        raise BlockServiceError(400, "REASON_REQUIRED", "A reason is required for this action")
    return reason


def apply_decision(db: Session, decision: DecisionRequest, *, registrar_id: str) -> DecisionResultOut:
    """Apply a staff decision for an overcapacity result in one transaction.

    Everything the client sent is checked again against current state; the
    section may have changed since the overcapacity payload was produced.
    """

    semester = _semester(decision.semester)
    section = _get_section(db, decision.section_id, for_update=True)
    group = section.group
    student = _get_student(db, decision.student_id)
    _check_not_assigned(db, student.id, semester, decision.year)
    _check_eligible(group, student, semester, decision.year)

    projected = section.current_population + 1
    suggestions = suggested_sections(db, section.id, limit=50)
    allowed = allowed_actions(group, section, projected, suggestions)
    if section.status != "OPEN" or decision.action not in allowed:
        db.rollback()
        raise BlockServiceError(
            409,
            "ACTION_NOT_ALLOWED",
            f"{decision.action} is not allowed for section {section.section_code}",
        )

    reason = None
    details: dict = {"projectedPopulation": projected, "capacity": section.capacity}

    if decision.action == "OVERRIDE":
        reason = _require_reason(decision)
        section.current_population = BlockSection.current_population + 1
        assignment = _record_assignment(db, student_id=student.id, section_id=section.id, semester=semester, year=decision.year)
        applied = _Applied(
            message=(
                f"Student assigned to {section.section_code} over capacity "
                f"({section.current_population}/{section.capacity})"
            ),
            assignment_id=assignment.id,
        )

    elif decision.action == "TRANSFER":
        if decision.target_section_id is None:
            raise BlockServiceError(400, "TARGET_REQUIRED", "A target section is required")
        target = _get_section(db, decision.target_section_id, for_update=True)
        if target.block_group_id != section.block_group_id or target.id == section.id:
            raise BlockServiceError(400, "INVALID_TARGET", "Target section must be another section of the same block")
        if not _increment_if_room(db, target.id):
            db.rollback()
            raise BlockServiceError(409, "TARGET_FULL", f"Section {target.section_code} has no available slots")
        assignment = _record_assignment(db, student_id=student.id, section_id=target.id, semester=semester, year=decision.year)
        details["targetSectionId"] = str(target.id)
        reason = (decision.reason or "").strip() or None
        applied = _Applied(
            message=f"Student transferred to {target.section_code}",
            assignment_id=assignment.id,
            target=target,
        )

    elif decision.action == "INCREASE_CAPACITY":
        reason = _require_reason(decision)
        new_capacity = decision.new_capacity
        if new_capacity is None or new_capacity <= section.capacity or new_capacity < projected:
            raise BlockServiceError(
                400,
                "INVALID_CAPACITY",
                f"New capacity must be at least {max(projected, section.capacity + 1)}",
            )
        details["previousCapacity"] = section.capacity
        details["newCapacity"] = new_capacity
        section.capacity = new_capacity
        section.current_population = BlockSection.current_population + 1
        assignment = _record_assignment(db, student_id=student.id, section_id=section.id, semester=semester, year=decision.year)
        applied = _Applied(
            message=f"Capacity of {section.section_code} increased to {new_capacity}; student assigned",
            assignment_id=assignment.id,
        )

    else:
        reason = _require_reason(decision)
        section.status = "CLOSED"
        applied = _Applied(message=f"Section {section.section_code} closed; student was not assigned")

    _log(
        db,
        decision.action,
        section_id=section.id,
        student_id=student.id,
        registrar_id=registrar_id,
        reason=reason,
        details=details,
    )
    _commit_assignment(db)
    db.refresh(section)
    if applied.target is not None:
        db.refresh(applied.target)

    logger.info(
        "Overcapacity decision %s by %s for student %s in %s: %s",
        decision.action,
        registrar_id,
        student.id,
        section.section_code,
        applied.message,
    )
    return DecisionResultOut(
        action=decision.action,
        message=applied.message,
        assignment_id=applied.assignment_id,
        section=BlockSectionOut.model_validate(section),
        target_section=BlockSectionOut.model_validate(applied.target) if applied.target is not None else None,
    )
