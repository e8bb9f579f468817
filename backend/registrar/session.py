from __future__ import annotations

import logging

from registrar.codes import build_group_name, normalize_semester, parse_school_year
from registrar.directory import BlockDirectory
from registrar.engine import AssignmentEngine, BatchOutcome
from registrar.errors import InputValidationError, RegistrarError
from registrar.finder import AssignableStudentFinder, Selection
from registrar.models import BlockGroup, BlockSection, DecisionResult, Student
from registrar.resolution import OvercapacityResolution, TransitionListener
from registrar.transport import BlockApi


logger = logging.getLogger(__name__)


class BlockAssignmentSession:
    """State behind the registrar's block screen.

    Holds the selected group, the last sections/students snapshot, the search text,
    the student selection and the chosen section. Snapshots are replaced after
    every write, never patched locally.
    """

    def __init__(
        self,
        api: BlockApi,
        *,
        default_capacity: int = 30,
        on_transition: TransitionListener | None = None,
    ) -> None:
        self.api = api
        self.directory = BlockDirectory(api)
        self.finder = AssignableStudentFinder(api)
        self.engine = AssignmentEngine(api)
        self.resolution = OvercapacityResolution(api, on_transition=on_transition)
        self.default_capacity = default_capacity

        self.group: BlockGroup | None = None
        self.sections: list[BlockSection] = []
        self.students: list[Student] = []
        self.query: str = ""
        self.selection = Selection()
        self.section_id: str | None = None
        self.notices: list[str] = []

    # -- reads -----------------------------------------------------------------

    def _require_group(self) -> BlockGroup:
        if self.group is None:
            raise InputValidationError("Please select a block group", field="group_id")
        return self.group

    @property
    def section(self) -> BlockSection | None:
        return next((s for s in self.sections if s.id == self.section_id), None)

    def select_group(self, group_id: str) -> BlockGroup:
        group = next((g for g in self.directory.list_groups() if g.id == group_id), None)
        if group is None:
            raise InputValidationError("Block group not found", field="group_id")
        if self.group is None or self.group.id != group.id:
            self.selection.clear()
            self.section_id = None
            self.query = ""
        self.group = group
        self.refresh()
        return group

    def refresh(self) -> None:
        group = self._require_group()
        self.sections = self.directory.list_sections(group.id)
        self.students = self.finder.find_assignable(group.semester, group.year, group.id, self.query)
        self.selection.prune(self.students)

        current = self.section
        if self.section_id is not None and (current is None or not current.is_open):
            logger.debug("Section %s is no longer selectable", self.section_id)
            self.section_id = None

    def search(self, query: str) -> list[Student]:
        self.query = (query or "").strip()
        self.refresh()
        return self.students

    def select_section(self, section_id: str) -> BlockSection:
        section = next((s for s in self.sections if s.id == section_id), None)
        if section is None:
            raise InputValidationError("Block section not found", field="section_id")
        if not section.is_open:
            raise InputValidationError(f"Section {section.section_code} is closed", field="section_id")
        self.section_id = section.id
        return section

    def toggle_student(self, student_id: str) -> bool:
        if not any(s.id == student_id for s in self.students):
            raise InputValidationError("Student is not assignable", field="student_id")
        return self.selection.toggle(student_id)

    # -- writes ----------------------------------------------------------------

    def _refresh_after_failure(self) -> None:
        try:
            self.refresh()
        except RegistrarError as exc:
            logger.warning("Refresh after failed request also failed: %s", exc)

    def assign_selected(self) -> BatchOutcome:
        group = self._require_group()
        if not self.section_id or not len(self.selection):
            raise InputValidationError("Please select a block and at least one student", field="student_ids")
        if self.resolution.is_open:
            raise InputValidationError(
                "Resolve or cancel the pending overcapacity decision first", field="student_ids"
            )

        names = {s.id: s.full_name for s in self.students}
        try:
            outcome = self.engine.assign_batch(
                self.selection.ids, self.section_id, group.semester, group.year, names=names
            )
        except RegistrarError:
            self._refresh_after_failure()
            raise

        if outcome.pending is not None:
            pending = outcome.pending
            self.resolution.open(pending.result, pending.student_id, pending.semester, pending.year)
        self.notices.append(outcome.summary())
        self.refresh()
        return outcome

    def resolve(self) -> DecisionResult:
        try:
            result = self.resolution.submit()
        except RegistrarError:
            self._refresh_after_failure()
            raise
        self.notices.append(result.message or f"{result.action} applied")
        self.refresh()
        return result

    def create_block(
        self,
        program: str,
        year_level: int | str,
        block_letter: str,
        *,
        semester: str,
        year: int | str,
        capacity: int | None = None,
    ) -> tuple[BlockGroup, BlockSection]:
        """Create a block group named like "101-1A" with one section of the same code."""

        name = build_group_name(program, year_level, block_letter)
        semester = normalize_semester(semester)
        year = parse_school_year(year)
        capacity = self.default_capacity if capacity is None else int(capacity)
        if capacity < 1:
            raise InputValidationError("Capacity must be at least 1", field="capacity")

        group = self.api.create_group(name=name, semester=semester, year=year)
        section = self.api.create_section(group.id, section_code=name, capacity=capacity)
        logger.info("Created block %s (%s %s) with capacity %s", name, semester, year, capacity)
        self.notices.append(f"Block {name} created")

        self.group = group
        self.selection.clear()
        self.section_id = None
        self.query = ""
        self.refresh()
        return group, section

    def delete_group(self, group_id: str) -> str:
        if not str(group_id or "").strip():
            raise InputValidationError("Please select a block group", field="group_id")
        message = self.api.delete_group(group_id)
        logger.info("Deleted block group %s", group_id)
        self.notices.append(message)
        if self.group is not None and self.group.id == group_id:
            self.group = None
            self.sections = []
            self.students = []
            self.selection.clear()
            self.section_id = None
        return message
