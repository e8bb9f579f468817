from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from api.deps import get_registrar_id
from core.database import get_db
from schemas.block import (
    AssignedOut,
    AssignStudentRequest,
    BlockGroupCreate,
    BlockGroupOut,
    BlockSectionCreate,
    BlockSectionOut,
    DecisionRequest,
    DecisionResultOut,
    MessageOut,
    OverCapacityOut,
    RosterOut,
    StudentOut,
    SuggestedSectionOut,
)
from services import block_service


router = APIRouter()


@router.get("/groups", response_model=list[BlockGroupOut])
def list_groups(db: Session = Depends(get_db)) -> list[BlockGroupOut]:
    return [BlockGroupOut.from_model(g) for g in block_service.list_groups(db)]


@router.post("/groups", response_model=BlockGroupOut, status_code=201)
def create_group(payload: BlockGroupCreate, db: Session = Depends(get_db)) -> BlockGroupOut:
    group = block_service.create_group(
        db,
        name=payload.name,
        semester=payload.semester,
        year=payload.year,
        policies=payload.policies,
    )
    return BlockGroupOut.from_model(group)


@router.delete("/groups/{group_id}", response_model=MessageOut)
def delete_group(group_id: uuid.UUID, db: Session = Depends(get_db)) -> MessageOut:
    return MessageOut(message=block_service.delete_group(db, group_id))


@router.get("/groups/{group_id}/sections", response_model=list[BlockSectionOut])
def list_sections(group_id: uuid.UUID, db: Session = Depends(get_db)) -> list[BlockSectionOut]:
    return block_service.list_sections(db, group_id)


@router.post("/groups/{group_id}/sections", response_model=BlockSectionOut, status_code=201)
def create_section(group_id: uuid.UUID, payload: BlockSectionCreate, db: Session = Depends(get_db)) -> BlockSectionOut:
    return block_service.create_section(
        db,
        group_id,
        section_code=payload.section_code,
        capacity=payload.capacity,
        schedule=payload.schedule,
        class_adviser=payload.class_adviser,
    )


@router.get("/assignable-students", response_model=list[StudentOut])
def assignable_students(
    semester: str = Query(...),
    year: int = Query(..., ge=1900, le=2999),
    q: str = Query(default=""),
    group_id: uuid.UUID | None = Query(default=None, alias="groupId"),
    limit: int | None = Query(default=None, ge=1, le=500),
    db: Session = Depends(get_db),
) -> list[StudentOut]:
    return block_service.assignable_students(db, semester=semester, year=year, q=q, group_id=group_id, limit=limit)


@router.get("/sections/{section_id}/students", response_model=RosterOut)
def section_students(section_id: uuid.UUID, db: Session = Depends(get_db)) -> RosterOut:
    students = block_service.section_roster(db, section_id)
    return RosterOut(students=[StudentOut.model_validate(s) for s in students])


@router.get("/sections/{section_id}/suggested", response_model=list[SuggestedSectionOut])
def suggested_sections(
    section_id: uuid.UUID,
    limit: int = Query(default=5, ge=1, le=50),
    db: Session = Depends(get_db),
) -> list[SuggestedSectionOut]:
    return block_service.suggested_sections(db, section_id, limit=limit)


@router.post("/assign-student", response_model=AssignedOut | OverCapacityOut)
def assign_student(
    payload: AssignStudentRequest,
    registrar_id: str = Depends(get_registrar_id),
    db: Session = Depends(get_db),
) -> AssignedOut | OverCapacityOut:
    return block_service.assign_student(
        db,
        student_id=payload.student_id,
        section_id=payload.section_id,
        semester=payload.semester,
        year=payload.year,
        registrar_id=registrar_id,
    )


@router.post("/overcapacity/decision", response_model=DecisionResultOut)
def overcapacity_decision(
    payload: DecisionRequest,
    registrar_id: str = Depends(get_registrar_id),
    db: Session = Depends(get_db),
) -> DecisionResultOut:
    return block_service.apply_decision(db, payload, registrar_id=registrar_id)
