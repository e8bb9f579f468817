from __future__ import annotations

import httpx
import pytest

from registrar.engine import AssignmentEngine
from registrar.errors import InputValidationError, InvalidTransitionError, RequestFailedError
from registrar.models import ASSIGN_RESULT_ADAPTER, DecisionAction
from registrar.resolution import OvercapacityResolution, ResolutionState
from registrar.transport import BlockApi


OVER_CAPACITY = {
    "status": "OVER_CAPACITY",
    "section": {"id": "s1", "code": "103-1A", "capacity": 30, "currentPopulation": 30},
    "projectedPopulation": 31,
    "allowedActions": ["TRANSFER", "OVERRIDE", "INCREASE_CAPACITY", "CLOSE_SECTION"],
    "suggestedSections": [{"id": "s2", "code": "103-1B", "availableSlots": 5}],
}


def _mock_api(handler) -> BlockApi:
    return BlockApi(httpx.Client(base_url="http://blocks.test", transport=httpx.MockTransport(handler)), token="t")


def _no_requests(request: httpx.Request) -> httpx.Response:
    raise AssertionError("no request expected")


def _opened(api: BlockApi, **kwargs) -> OvercapacityResolution:
    controller = OvercapacityResolution(api, **kwargs)
    controller.open(ASSIGN_RESULT_ADAPTER.validate_python(OVER_CAPACITY), "st1", "1st", 2026)
    return controller


def _open_full_block(api, full_block) -> OvercapacityResolution:
    outcome = AssignmentEngine(api).assign_batch([full_block["student"]], full_block["full"], "1st", 2026)
    pending = outcome.pending
    controller = OvercapacityResolution(api)
    controller.open(pending.result, pending.student_id, pending.semester, pending.year)
    return controller


def test_transfer_to_suggested_section(api, seed, full_block):
    controller = _open_full_block(api, full_block)
    assert controller.state is ResolutionState.AWAITING_DECISION

    controller.choose(DecisionAction.TRANSFER)
    controller.set_target(full_block["sibling"])
    result = controller.submit()

    assert controller.state is ResolutionState.RESOLVED
    assert controller.over_capacity is None
    assert result.action is DecisionAction.TRANSFER
    assert result.target_section.current_population == 26
    assert seed.get_section(full_block["full"]).current_population == 30
    assert seed.get_section(full_block["sibling"]).current_population == 26
    assert full_block["student"] not in [s.id for s in api.assignable_students(semester="1st", year=2026)]
    assert [s.id for s in api.section_students(full_block["sibling"])] == [full_block["student"]]


def test_override_exceeds_capacity_within_policy(api, seed, full_block):
    controller = _open_full_block(api, full_block)
    controller.choose("override")
    controller.set_reason("Dean approved")
    result = controller.submit()

    assert result.section.current_population == 31
    assert result.section.capacity == 30
    assert seed.get_section(full_block["full"]).current_population == 31


def test_increase_capacity_then_assign(api, seed, full_block):
    controller = _open_full_block(api, full_block)
    controller.choose(DecisionAction.INCREASE_CAPACITY)
    controller.set_new_capacity("35")
    controller.set_reason("Extra chairs")
    result = controller.submit()

    section = seed.get_section(full_block["full"])
    assert (section.capacity, section.current_population) == (35, 31)
    assert result.assignment_id is not None


def test_close_section_leaves_student_unassigned(api, seed, full_block):
    controller = _open_full_block(api, full_block)
    controller.choose(DecisionAction.CLOSE_SECTION)
    controller.set_reason("Room unavailable")
    result = controller.submit()

    assert result.section.status == "CLOSED"
    assert result.assignment_id is None
    assert full_block["student"] in [s.id for s in api.assignable_students(semester="1st", year=2026)]


def test_server_rejects_action_the_policy_no_longer_allows(api, seed):
    group = seed.group("103-1A", max_overcap=0, allow_capacity_increase=True)
    section = seed.section(group, "103-1A", capacity=30, population=30)
    student = seed.student("Ana")
    outcome = AssignmentEngine(api).assign_batch([student], section, "1st", 2026)
    assert DecisionAction.OVERRIDE not in outcome.pending.result.allowed_actions

    controller = OvercapacityResolution(api)
    controller.open(outcome.pending.result, student, "1st", 2026)
    with pytest.raises(InputValidationError):
        controller.choose(DecisionAction.OVERRIDE)


@pytest.mark.parametrize(
    "action, setup, field",
    [
        (DecisionAction.OVERRIDE, lambda c: None, "reason"),
        (DecisionAction.OVERRIDE, lambda c: c.set_reason("   "), "reason"),
        (DecisionAction.CLOSE_SECTION, lambda c: None, "reason"),
        (DecisionAction.TRANSFER, lambda c: None, "target_section_id"),
        (DecisionAction.TRANSFER, lambda c: c.set_target("s9"), "target_section_id"),
        (DecisionAction.INCREASE_CAPACITY, lambda c: c.set_reason("r"), "new_capacity"),
        (DecisionAction.INCREASE_CAPACITY, lambda c: (c.set_reason("r"), c.set_new_capacity(30)), "new_capacity"),
    ],
)
def test_incomplete_decisions_never_reach_the_network(action, setup, field):
    controller = _opened(_mock_api(_no_requests))
    controller.choose(action)
    setup(controller)
    with pytest.raises(InputValidationError) as exc:
        controller.submit()
    assert exc.value.field == field
    assert controller.state is ResolutionState.AWAITING_DECISION


def test_fields_must_match_the_chosen_action():
    controller = _opened(_mock_api(_no_requests))
    with pytest.raises(InputValidationError):
        controller.set_reason("no action yet")
    controller.choose(DecisionAction.TRANSFER)
    with pytest.raises(InputValidationError):
        controller.set_new_capacity(40)


def test_choosing_again_clears_previous_fields():
    controller = _opened(_mock_api(_no_requests))
    controller.choose(DecisionAction.TRANSFER)
    controller.set_target("s2")
    controller.choose(DecisionAction.OVERRIDE)
    assert controller.target_section_id is None
    assert controller.reason == ""


def test_failed_submit_keeps_decision_open_and_does_not_retry():
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(409, json={"code": "TARGET_FULL", "error": "Section 103-1B has no available slots"})

    transitions: list[tuple[ResolutionState, ResolutionState]] = []
    controller = _opened(_mock_api(handler), on_transition=lambda old, new: transitions.append((old, new)))
    controller.choose(DecisionAction.TRANSFER)
    controller.set_target("s2")

    with pytest.raises(RequestFailedError, match="no available slots"):
        controller.submit()

    assert len(calls) == 1
    assert controller.state is ResolutionState.AWAITING_DECISION
    assert controller.last_error.code == "TARGET_FULL"
    assert controller.action is DecisionAction.TRANSFER
    assert transitions == [
        (ResolutionState.IDLE, ResolutionState.AWAITING_DECISION),
        (ResolutionState.AWAITING_DECISION, ResolutionState.SUBMITTING),
        (ResolutionState.SUBMITTING, ResolutionState.FAILED),
        (ResolutionState.FAILED, ResolutionState.AWAITING_DECISION),
    ]


def test_cancel_is_rejected_while_submitting():
    errors: list[Exception] = []
    controller: OvercapacityResolution | None = None

    def handler(request: httpx.Request) -> httpx.Response:
        try:
            controller.cancel()
        except InvalidTransitionError as exc:
            errors.append(exc)
        return httpx.Response(200, json={"status": "SUCCESS", "action": "OVERRIDE", "message": "done"})

    controller = _opened(_mock_api(handler))
    controller.choose(DecisionAction.OVERRIDE)
    controller.set_reason("Dean approved")
    controller.submit()

    assert len(errors) == 1
    assert errors[0].state == "SUBMITTING"
    assert controller.state is ResolutionState.RESOLVED


def test_cancel_discards_the_decision():
    controller = _opened(_mock_api(_no_requests))
    controller.choose(DecisionAction.TRANSFER)
    controller.cancel()
    assert controller.state is ResolutionState.IDLE
    assert controller.over_capacity is None
    with pytest.raises(InvalidTransitionError):
        controller.choose(DecisionAction.TRANSFER)


def test_open_requires_idle_or_resolved():
    controller = _opened(_mock_api(_no_requests))
    with pytest.raises(InvalidTransitionError):
        controller.open(ASSIGN_RESULT_ADAPTER.validate_python(OVER_CAPACITY), "st2", "1st", 2026)
