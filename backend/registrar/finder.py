from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator

from registrar.codes import normalize_semester
from registrar.errors import InputValidationError
from registrar.models import Student
from registrar.transport import BlockApi


logger = logging.getLogger(__name__)


class AssignableStudentFinder:
    def __init__(self, api: BlockApi) -> None:
        self._api = api

    def find_assignable(self, semester: str, year: int, group_id: str = "", query: str = "") -> list[Student]:
        """Students with no active assignment for the semester/year.

        Name/number matching is done server-side; `query` is only trimmed here.
        """

        semester = normalize_semester(semester)
        try:
            year = int(year)
        except (TypeError, ValueError):
            raise InputValidationError("Year must be a number", field="year") from None
        if year <= 0:
            raise InputValidationError("Year must be a number", field="year")

        students = self._api.assignable_students(
            semester=semester,
            year=year,
            q=(query or "").strip(),
            group_id=group_id or "",
        )
        logger.debug("Assignable students for %s %s (group=%s): %d", semester, year, group_id or "-", len(students))
        return students


class Selection:
    """Ordered set of selected student ids.

    Must be pruned against every refreshed assignable list so it never points at
    a student who can no longer be assigned.
    """

    def __init__(self, ids: Iterable[str] = ()) -> None:
        self._ids: list[str] = []
        for student_id in ids:
            self.add(student_id)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._ids))

    def __len__(self) -> int:
        return len(self._ids)

    def __contains__(self, student_id: object) -> bool:
        return student_id in self._ids

    @property
    def ids(self) -> list[str]:
        return list(self._ids)

    def add(self, student_id: str) -> None:
        if student_id and student_id not in self._ids:
            self._ids.append(student_id)

    def remove(self, student_id: str) -> None:
        if student_id in self._ids:
            self._ids.remove(student_id)

    def toggle(self, student_id: str) -> bool:
        """Flip membership; returns True when the student is now selected."""
        if student_id in self._ids:
            self._ids.remove(student_id)
            return False
        self.add(student_id)
        return student_id in self._ids

    def clear(self) -> None:
        self._ids.clear()

    def prune(self, students: Iterable[Student]) -> list[str]:
        available = {s.id for s in students}
        dropped = [i for i in self._ids if i not in available]
        if dropped:
            self._ids = [i for i in self._ids if i in available]
            logger.debug("Dropped %d selected student(s) no longer assignable", len(dropped))
        return dropped
