from __future__ import annotations

import argparse
import logging
import sys
from typing import Callable, Sequence

import httpx

from core.logging import setup_logging
from registrar.codes import course_label
from registrar.config import ClientSettings
from registrar.errors import AuthenticationError, InputValidationError, RegistrarError, RequestFailedError
from registrar.models import DecisionAction, OverCapacity
from registrar.session import BlockAssignmentSession
from registrar.transport import BlockApi


InputFn = Callable[[str], str]


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="registrar", description="Block section assignment for registrar staff.")
    parser.add_argument("--api-url", default=None, help="Block API base URL (default: REGISTRAR_API_URL)")
    parser.add_argument("--token", default=None, help="Bearer token (default: REGISTRAR_TOKEN)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Show debug logs on the console")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("groups", help="List block groups")
    sub.add_parser("catalog", help="List every section across all block groups")

    p = sub.add_parser("sections", help="List sections of a block group")
    p.add_argument("group_id")

    p = sub.add_parser("roster", help="List students assigned to a section")
    p.add_argument("section_id")

    p = sub.add_parser("students", help="List students assignable to a block group")
    p.add_argument("group_id")
    p.add_argument("-q", "--query", default="", help="Filter by name or student number")

    p = sub.add_parser("assign", help="Assign students to a section")
    p.add_argument("group_id")
    p.add_argument("section_id")
    p.add_argument("student_ids", nargs="+")

    p = sub.add_parser("create-block", help="Create a block group with its first section")
    p.add_argument("--course", required=True, help="Program code or name, e.g. 103 or BSEd-Math")
    p.add_argument("--year-level", required=True)
    p.add_argument("--letter", required=True, help="Block letter A-Z")
    p.add_argument("--semester", required=True, help="1st, 2nd or Summer")
    p.add_argument("--year", required=True, help="School year, e.g. 2026 or 2026-2027")
    p.add_argument("--capacity", type=int, default=None)

    p = sub.add_parser("delete-block", help="Delete a block group and its sections")
    p.add_argument("group_id")
    p.add_argument("--yes", action="store_true", help="Actually delete")

    return parser


def _print_sections(session: BlockAssignmentSession) -> None:
    for s in session.sections:
        print(f"{s.id}  {s.section_code:<12} {s.current_population:>3}/{s.capacity:<3} {s.status}")


def _print_students(students) -> None:
    for st in students:
        print(f"{st.id}  {st.formatted_number}  {st.full_name}  {course_label(st.course)}")


def _prompt_decision(session: BlockAssignmentSession, input_fn: InputFn) -> int:
    resolution = session.resolution
    oc: OverCapacity = resolution.over_capacity
    sec = oc.section
    print(f"Section {sec.code} is full: {sec.current_population}/{sec.capacity}, projected {oc.projected_population}")
    if oc.suggested_sections:
        print("Sections with room:")
        for i, s in enumerate(oc.suggested_sections, start=1):
            print(f"  {i}. {s.code} ({s.available_slots} slots)")
    actions = list(oc.allowed_actions)
    if not actions:
        print("No actions are available for this section.")
        resolution.cancel()
        return 1

    while True:
        listing = ", ".join(f"{i}={a}" for i, a in enumerate(actions, start=1))
        raw = input_fn(f"Action [{listing}] (blank to cancel): ").strip()
        if not raw:
            resolution.cancel()
            print("Decision cancelled; student was not assigned.")
            return 1
        if raw.isdigit() and 1 <= int(raw) <= len(actions):
            raw = actions[int(raw) - 1].value

        try:
            resolution.choose(raw)
            action = resolution.action
            if action is DecisionAction.TRANSFER:
                pick = input_fn("Target section (number or code): ").strip()
                resolution.set_target(_pick_suggestion(oc, pick))
            if action is DecisionAction.INCREASE_CAPACITY:
                resolution.set_new_capacity(input_fn(f"New capacity (>= {oc.projected_population}): ").strip())
            if action.requires_reason:
                resolution.set_reason(input_fn("Reason: "))
            result = session.resolve()
        except AuthenticationError:
            raise
        except (InputValidationError, RequestFailedError) as exc:
            print(f"Error: {exc.message}")
            continue

        print(result.message or f"{result.action} applied")
        return 0


def _pick_suggestion(oc: OverCapacity, pick: str) -> str:
    if pick.isdigit() and 1 <= int(pick) <= len(oc.suggested_sections):
        return oc.suggested_sections[int(pick) - 1].id
    for s in oc.suggested_sections:
        if pick and pick.upper() in (s.code.upper(), s.id.upper()):
            return s.id
    return pick


def _run(args: argparse.Namespace, session: BlockAssignmentSession, input_fn: InputFn) -> int:
    api = session.api
    if args.command == "groups":
        for g in session.directory.list_groups():
            print(f"{g.id}  {g.name:<12} {g.semester:<6} {g.year}  max overcap {g.policies.max_overcap}")
        return 0

    if args.command == "catalog":
        for entry in session.directory.catalog():
            s = entry.section
            print(
                f"{s.id}  {course_label(entry.course):<12} {s.section_code:<12} "
                f"{s.current_population:>3}/{s.capacity:<3} {entry.semester} {entry.year}"
            )
        return 0

    if args.command == "sections":
        session.select_group(args.group_id)
        _print_sections(session)
        return 0

    if args.command == "roster":
        _print_students(session.directory.roster(args.section_id))
        return 0

    if args.command == "students":
        session.select_group(args.group_id)
        _print_students(session.search(args.query))
        return 0

    if args.command == "assign":
        session.select_group(args.group_id)
        session.select_section(args.section_id)
        for student_id in args.student_ids:
            if student_id not in session.selection:
                session.toggle_student(student_id)
        outcome = session.assign_selected()
        print(outcome.summary())
        if outcome.pending is not None:
            return _prompt_decision(session, input_fn)
        return 0 if outcome.ok else 1

    if args.command == "create-block":
        group, section = session.create_block(
            args.course,
            args.year_level,
            args.letter,
            semester=args.semester,
            year=args.year,
            capacity=args.capacity,
        )
        print(f"Created {group.name} ({group.id}) with section {section.section_code} capacity {section.capacity}")
        return 0

    if args.command == "delete-block":
        if not args.yes:
            print("Dry run. Re-run with --yes to apply.")
            print(f"Would delete block group {args.group_id!r} and its sections")
            return 0
        print(session.delete_group(args.group_id))
        return 0

    raise SystemExit(f"Unknown command: {args.command}")


def main(argv: Sequence[str] | None = None, *, api: BlockApi | None = None, input_fn: InputFn = input) -> int:
    args = _build_parser().parse_args(argv)
    settings = ClientSettings()
    setup_logging(
        environment=settings.environment,
        log_file="registrar.log",
        console_level=logging.DEBUG if args.verbose else logging.WARNING,
    )

    owned = api is None
    if api is None:
        client = httpx.Client(
            base_url=(args.api_url or settings.api_url).rstrip("/"),
            timeout=settings.timeout_seconds,
            follow_redirects=True,
        )
        api = BlockApi(client, token=args.token or settings.token)

    session = BlockAssignmentSession(api, default_capacity=settings.default_capacity)
    try:
        return _run(args, session, input_fn)
    except RegistrarError as exc:
        print(f"Error: {getattr(exc, 'message', None) or exc}", file=sys.stderr)
        return 1
    except EOFError:
        print("Aborted.", file=sys.stderr)
        return 1
    finally:
        if owned:
            api.close()


if __name__ == "__main__":
    raise SystemExit(main())
