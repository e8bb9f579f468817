from __future__ import annotations

import logging
from enum import Enum
from typing import Callable

from registrar.codes import normalize_semester
from registrar.errors import InputValidationError, InvalidTransitionError, RegistrarError
from registrar.models import DecisionAction, DecisionRequest, DecisionResult, OverCapacity
from registrar.transport import BlockApi


logger = logging.getLogger(__name__)


class ResolutionState(str, Enum):
    IDLE = "IDLE"
    AWAITING_DECISION = "AWAITING_DECISION"
    SUBMITTING = "SUBMITTING"
    RESOLVED = "RESOLVED"
    FAILED = "FAILED"

    def __str__(self) -> str:
        return self.value


TransitionListener = Callable[[ResolutionState, ResolutionState], None]


class OvercapacityResolution:
    """Drives one overcapacity decision from the server's payload to a single submit.

    The controller only collects and checks the registrar's choice. Which actions
    are offered, and whether the chosen one is still valid, is decided by the
    server. A failed submit leaves the decision open so it can be corrected and
    sent again by hand.
    """

    def __init__(self, api: BlockApi, *, on_transition: TransitionListener | None = None) -> None:
        self._api = api
        self._on_transition = on_transition
        self._state = ResolutionState.IDLE
        self._over_capacity: OverCapacity | None = None
        self._student_id: str | None = None
        self._semester: str | None = None
        self._year: int | None = None
        self._action: DecisionAction | None = None
        self._reason: str = ""
        self._target_section_id: str | None = None
        self._new_capacity: int | None = None
        self.last_error: RegistrarError | None = None
        self.last_result: DecisionResult | None = None
        self.history: list[tuple[ResolutionState, ResolutionState]] = []

    # -- state -----------------------------------------------------------------

    @property
    def state(self) -> ResolutionState:
        return self._state

    @property
    def over_capacity(self) -> OverCapacity | None:
        return self._over_capacity

    @property
    def student_id(self) -> str | None:
        return self._student_id

    @property
    def action(self) -> DecisionAction | None:
        return self._action

    @property
    def reason(self) -> str:
        return self._reason

    @property
    def target_section_id(self) -> str | None:
        return self._target_section_id

    @property
    def new_capacity(self) -> int | None:
        return self._new_capacity

    @property
    def allowed_actions(self) -> tuple[DecisionAction, ...]:
        return self._over_capacity.allowed_actions if self._over_capacity is not None else ()

    @property
    def is_open(self) -> bool:
        return self._state in (ResolutionState.AWAITING_DECISION, ResolutionState.FAILED)

    def _move(self, new: ResolutionState) -> None:
        old = self._state
        self._state = new
        self.history.append((old, new))
        logger.debug("Overcapacity resolution %s -> %s", old, new)
        if self._on_transition is not None:
            self._on_transition(old, new)

    def _require(self, operation: str, *states: ResolutionState) -> None:
        if self._state not in states:
            raise InvalidTransitionError(operation, str(self._state))

    def _clear_choice(self) -> None:
        self._action = None
        self._reason = ""
        self._target_section_id = None
        self._new_capacity = None

    def _reset(self) -> None:
        self._over_capacity = None
        self._student_id = None
        self._semester = None
        self._year = None
        self._clear_choice()

    # -- operations ------------------------------------------------------------

    def open(self, over_capacity: OverCapacity, student_id: str, semester: str, year: int) -> None:
        self._require("open a decision", ResolutionState.IDLE, ResolutionState.RESOLVED)
        if not str(student_id or "").strip():
            raise InputValidationError("Please select a student", field="student_id")

        self._over_capacity = over_capacity
        self._student_id = student_id
        self._semester = normalize_semester(semester)
        self._year = int(year)
        self._clear_choice()
        self.last_error = None
        self.last_result = None
        self._move(ResolutionState.AWAITING_DECISION)

    def choose(self, action: DecisionAction | str) -> None:
        self._require("choose an action", ResolutionState.AWAITING_DECISION)
        try:
            action = DecisionAction(str(action).strip().upper())
        except ValueError:
            raise InputValidationError(f"Unknown action: {action}", field="action") from None
        if action not in self.allowed_actions:
            raise InputValidationError(f"{action} is not allowed for this section", field="action")
        self._clear_choice()
        self._action = action

    def _require_action(self, field: str, *actions: DecisionAction) -> None:
        self._require(f"set {field}", ResolutionState.AWAITING_DECISION)
        if self._action is None:
            raise InputValidationError("Please choose an action first", field="action")
        if self._action not in actions:
            raise InputValidationError(f"{field} does not apply to {self._action}", field=field)

    def set_reason(self, reason: str) -> None:
        self._require_action(
            "reason", DecisionAction.OVERRIDE, DecisionAction.INCREASE_CAPACITY, DecisionAction.CLOSE_SECTION
        )
        self._reason = reason or ""

    def set_target(self, section_id: str) -> None:
        self._require_action("target section", DecisionAction.TRANSFER)
        self._target_section_id = section_id or None

    def set_new_capacity(self, capacity: int | str) -> None:
        self._require_action("new capacity", DecisionAction.INCREASE_CAPACITY)
        try:
            self._new_capacity = int(capacity)
        except (TypeError, ValueError):
            raise InputValidationError("New capacity must be a number", field="new_capacity") from None

    def build_decision(self) -> DecisionRequest:
        self._require("build a decision", ResolutionState.AWAITING_DECISION)
        oc = self._over_capacity
        action = self._action
        if oc is None or action is None:
            raise InputValidationError("Please choose an action", field="action")

        reason = self._reason.strip()
        if action.requires_reason and not reason:
            raise InputValidationError("Please provide a reason for this decision", field="reason")

        target: str | None = None
        new_capacity: int | None = None
        if action is DecisionAction.TRANSFER:
            if not self._target_section_id:
                raise InputValidationError("Please select a target section", field="target_section_id")
            if oc.suggested(self._target_section_id) is None:
                raise InputValidationError("Target section is not one of the suggested sections", field="target_section_id")
            target = self._target_section_id
        elif action is DecisionAction.INCREASE_CAPACITY:
            if self._new_capacity is None:
                raise InputValidationError("Please enter the new capacity", field="new_capacity")
            if self._new_capacity <= oc.section.capacity or self._new_capacity < oc.projected_population:
                raise InputValidationError(
                    f"New capacity must be at least {max(oc.projected_population, oc.section.capacity + 1)}",
                    field="new_capacity",
                )
            new_capacity = self._new_capacity

        return DecisionRequest(
            action=action,
            student_id=self._student_id,
            section_id=oc.section.id,
            semester=self._semester,
            year=self._year,
            reason=reason or None,
            target_section_id=target,
            new_capacity=new_capacity,
        )

    def submit(self) -> DecisionResult:
        """Send the decision once. Errors are stored, re-raised, and leave the decision open."""

        decision = self.build_decision()
        self._move(ResolutionState.SUBMITTING)
        try:
            result = self._api.submit_decision(decision)
        except RegistrarError as exc:
            self.last_error = exc
            logger.warning("Overcapacity decision %s for student %s failed: %s", decision.action, decision.student_id, exc)
            self._move(ResolutionState.FAILED)
            self._move(ResolutionState.AWAITING_DECISION)
            raise

        logger.info(
            "Overcapacity decision %s applied for student %s (section %s): %s",
            decision.action,
            decision.student_id,
            decision.section_id,
            result.message,
        )
        self.last_result = result
        self.last_error = None
        self._reset()
        self._move(ResolutionState.RESOLVED)
        return result

    def cancel(self) -> None:
        self._require(
            "cancel",
            ResolutionState.IDLE,
            ResolutionState.AWAITING_DECISION,
            ResolutionState.FAILED,
            ResolutionState.RESOLVED,
        )
        self._reset()
        self.last_error = None
        if self._state is not ResolutionState.IDLE:
            self._move(ResolutionState.IDLE)
