from __future__ import annotations

import logging

from registrar.codes import extract_course_code
from registrar.errors import RequestFailedError
from registrar.models import BlockGroup, BlockSection, CatalogSection, Student
from registrar.transport import BlockApi


logger = logging.getLogger(__name__)


class BlockDirectory:
    """Read-only view of block groups and their sections.

    Every call goes to the server; nothing is cached. A failed read raises and is
    retried only when the caller refreshes again.
    """

    def __init__(self, api: BlockApi) -> None:
        self._api = api

    def list_groups(self) -> list[BlockGroup]:
        return self._api.list_groups()

    def list_sections(self, group_id: str) -> list[BlockSection]:
        return self._api.list_sections(group_id)

    def open_sections(self, group_id: str) -> list[BlockSection]:
        return [s for s in self.list_sections(group_id) if s.is_open]

    def find_section(self, group_id: str, section_id: str) -> BlockSection | None:
        return next((s for s in self.list_sections(group_id) if s.id == section_id), None)

    def roster(self, section_id: str) -> list[Student]:
        return self._api.section_students(section_id)

    def catalog(self) -> list[CatalogSection]:
        """All sections across all groups, labelled with their program.

        A group whose sections can't be loaded is left out rather than failing the
        whole listing.
        """

        entries: list[CatalogSection] = []
        for group in self.list_groups():
            try:
                sections = self.list_sections(group.id)
            except RequestFailedError as exc:
                logger.warning("Skipping block group %s (%s): %s", group.name, group.id, exc.message)
                continue
            for section in sections:
                entries.append(
                    CatalogSection(
                        section=section,
                        group_name=group.name,
                        semester=group.semester,
                        year=group.year,
                        course=extract_course_code(f"{group.name} {section.section_code}"),
                    )
                )
        entries.sort(key=lambda e: e.sort_key)
        return entries
