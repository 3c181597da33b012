"""
Workflow Engine

Deterministic task state machine with per-application, group-based
authorization.

States:
    Open -> ToDo -> Doing -> Done -> Closed
    (Doing -> ToDo and Done -> Doing send work back one stage)

Enforces:
- Only transitions listed in VALID_TRANSITIONS, never a self-transition,
  nothing out of Closed
- The group required for a target comes from the application's permits;
  an unset group blocks the transition for everyone
- State, owner and audit note are committed as one write, compared against
  the state the decision was made on
- Description/plan edits need authentication only
"""

import logging
from typing import Dict, List, Optional, Set, Tuple, Union

from .application_registry import ApplicationRegistry
from .errors import (
    ForbiddenError,
    InvalidArgumentError,
    InvalidTransitionError,
    NotFoundError,
    TrackerError,
    UnavailableError,
)
from .membership import MembershipOracle
from .models import (
    TASK_CREATED_TEXT,
    Application,
    AuditNote,
    PermitStage,
    Task,
    TaskState,
    TaskSummary,
    make_task_id,
    utc_now,
)
from .task_ledger import TaskLedger

logger = logging.getLogger("workflow_engine")

# -----------------------------------------------------------------------------
# Transition Rules
# -----------------------------------------------------------------------------

# Valid transitions from each state
VALID_TRANSITIONS: Dict[TaskState, List[TaskState]] = {
    TaskState.OPEN: [TaskState.TODO],
    TaskState.TODO: [TaskState.DOING],
    TaskState.DOING: [TaskState.DONE, TaskState.TODO],  # Can go back to ToDo
    TaskState.DONE: [TaskState.CLOSED, TaskState.DOING],  # Reject sends it back to Doing
    TaskState.CLOSED: [],  # Terminal state
}

# Permit stage whose group may move a task INTO each target state
REQUIRED_PERMIT: Dict[TaskState, PermitStage] = {
    TaskState.TODO: PermitStage.TODO,
    TaskState.DOING: PermitStage.DOING,
    TaskState.DONE: PermitStage.DOING,
    TaskState.CLOSED: PermitStage.DONE,
}

# Creation is the only way into Open
CREATE_PERMIT = PermitStage.OPEN


def transition_text(old: TaskState, new: TaskState) -> str:
    return f"Task transitioned from {old.value} to {new.value}"


class WorkflowEngine:
    """
    Engine for task creation, transitions and edits.

    The engine never decides identity; it receives an authenticated
    principal and asks the membership oracle about groups.
    """

    def __init__(
        self,
        applications: ApplicationRegistry,
        ledger: TaskLedger,
        oracle: MembershipOracle,
    ):
        self._applications = applications
        self._ledger = ledger
        self._oracle = oracle

    # -------------------------------------------------------------------------
    # Validation
    # -------------------------------------------------------------------------

    def can_transition(
        self,
        current_state: TaskState,
        target_state: TaskState,
    ) -> Tuple[bool, str]:
        """Check if a state transition is valid."""
        valid_targets = VALID_TRANSITIONS.get(current_state, [])
        if target_state in valid_targets:
            return True, f"Transition {current_state.value} -> {target_state.value} allowed"
        return False, (
            f"Invalid transition: {current_state.value} -> {target_state.value}. "
            f"Valid targets: {[t.value for t in valid_targets]}"
        )

    def get_valid_transitions(self, current_state: TaskState) -> List[TaskState]:
        return list(VALID_TRANSITIONS.get(current_state, []))

    @staticmethod
    def _parse_target(target_state: Union[str, TaskState]) -> TaskState:
        if isinstance(target_state, TaskState):
            return target_state
        state = TaskState.parse(target_state)
        if state is None:
            raise InvalidArgumentError(
                f"Unknown state '{target_state}'",
                details={"state": target_state, "valid": [s.value for s in TaskState]},
            )
        return state

    @staticmethod
    def _require_principal(principal: str) -> None:
        if not principal or not principal.strip():
            raise InvalidArgumentError("An authenticated principal is required")

    # -------------------------------------------------------------------------
    # Authorization
    # -------------------------------------------------------------------------

    def _is_member(self, principal: str, group: str) -> bool:
        try:
            return self._oracle.is_member(principal, group)
        except TrackerError:
            raise
        except Exception as e:
            logger.error(f"Membership check failed for {principal} in {group}: {e}")
            raise UnavailableError(
                "Membership check failed",
                details={"principal": principal, "group": group, "error": str(e)},
            )

    def _authorize(self, principal: str, application: Application, stage: PermitStage) -> str:
        """Return the group that authorized the principal, or raise ForbiddenError."""
        group = application.permit_for(stage)
        if group is None:
            logger.warning(
                f"Denied {principal} on {application.acronym}: no group permitted for {stage.value}"
            )
            raise ForbiddenError(
                f"No group permitted for stage '{stage.value}' in {application.acronym}",
                details={"application": application.acronym, "stage": stage.value, "reason": "unconfigured"},
            )
        if not self._is_member(principal, group):
            logger.warning(
                f"Denied {principal} on {application.acronym}: not in group '{group}' for {stage.value}"
            )
            raise ForbiddenError(
                f"'{principal}' is not a member of group '{group}'",
                details={
                    "application": application.acronym,
                    "stage": stage.value,
                    "group": group,
                    "reason": "not_member",
                },
            )
        return group

    def _is_authorized(self, principal: str, application: Application, stage: PermitStage) -> bool:
        group = application.permit_for(stage)
        return group is not None and self._is_member(principal, group)

    # -------------------------------------------------------------------------
    # Task Operations
    # -------------------------------------------------------------------------

    def create_task(
        self,
        principal: str,
        acronym: str,
        name: str,
        description: Optional[str] = None,
        plan: Optional[str] = None,
    ) -> TaskSummary:
        """
        Create a task in state Open.

        The task number is reserved only after authorization succeeds. A
        reserved number is never handed out again, even if storing the task
        then fails.
        """
        self._require_principal(principal)
        if not name or not name.strip():
            raise InvalidArgumentError("Task name is required")

        application = self._applications.get(acronym)
        self._authorize(principal, application, CREATE_PERMIT)

        number = self._applications.reserve_next_task_number(acronym)
        task_id = make_task_id(acronym, number)
        now = utc_now()

        task = Task(
            id=task_id,
            app_acronym=acronym,
            name=name.strip(),
            description=description,
            plan=plan or None,
            state=TaskState.OPEN,
            creator=principal,
            owner=principal,
            created_at=now,
        )
        note = AuditNote(
            principal=principal,
            state=TaskState.OPEN,
            timestamp=now,
            text=TASK_CREATED_TEXT,
        )
        self._ledger.create_with_id(task, note)

        logger.info(f"Task {task_id} created in {acronym} by {principal}")
        return task.summary()

    def transition(
        self,
        principal: str,
        acronym: str,
        task_id: str,
        target_state: Union[str, TaskState],
        note: Optional[str] = None,
    ) -> TaskSummary:
        """
        Move a task to target_state.

        Read, validation, authorization and write happen under the task's
        lock; the write is additionally conditional on the state read.
        """
        self._require_principal(principal)

        with self._ledger.locked(task_id):
            task = self._load_task(acronym, task_id)
            application = self._applications.get(acronym)

            target = self._parse_target(target_state)
            current = task.state

            can_do, message = self.can_transition(current, target)
            if not can_do:
                logger.warning(f"Rejected transition on {task_id} by {principal}: {message}")
                raise InvalidTransitionError(
                    current.value,
                    target.value,
                    [t.value for t in VALID_TRANSITIONS.get(current, [])],
                )

            self._authorize(principal, application, REQUIRED_PERMIT[target])

            audit = AuditNote(
                principal=principal,
                state=target,
                timestamp=utc_now(),
                text=note if note else transition_text(current, target),
            )
            updated = self._ledger.append_note_and_set_state(
                task_id,
                new_state=target,
                new_owner=principal,
                note=audit,
                expected_state=current,
            )

        logger.info(f"Task {task_id}: {current.value} -> {target.value} (by: {principal})")
        return updated.summary()

    def edit_details(
        self,
        principal: str,
        acronym: str,
        task_id: str,
        description: Optional[str] = None,
        plan: Optional[str] = None,
        note: Optional[str] = None,
    ) -> Task:
        """
        Edit description and/or plan, and/or add a note.

        Any authenticated principal may edit any task of the application;
        only workflow progression is group-gated. None means "not supplied".
        """
        self._require_principal(principal)

        fields: Dict[str, Optional[str]] = {}
        if description is not None:
            fields["description"] = description
        if plan is not None:
            fields["plan"] = plan or None
        if not fields and not note:
            raise InvalidArgumentError("Nothing to update: supply description, plan or note")

        with self._ledger.locked(task_id):
            task = self._load_task(acronym, task_id)
            audit = None
            if note:
                audit = AuditNote(
                    principal=principal,
                    state=task.state,
                    timestamp=utc_now(),
                    text=note,
                )
            updated = self._ledger.update_fields(task_id, fields, principal, audit)

        logger.info(f"Task {task_id} edited by {principal}: fields={sorted(fields)}, note={bool(note)}")
        return updated

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def _load_task(self, acronym: str, task_id: str) -> Task:
        """Load a task that belongs to the given application."""
        task = self._ledger.get(task_id)
        if task.app_acronym != acronym:
            raise NotFoundError("Task", task_id)
        return task

    def get_task(self, acronym: str, task_id: str) -> Task:
        self._applications.get(acronym)
        return self._load_task(acronym, task_id)

    def list_tasks(self, acronym: str) -> List[Task]:
        """All tasks of an application with their notes, newest first."""
        self._applications.get(acronym)
        return self._ledger.list_by_application(acronym)

    def board(self, acronym: str) -> Dict[TaskState, List[Task]]:
        """Tasks grouped by state, every state present."""
        columns: Dict[TaskState, List[Task]] = {state: [] for state in TaskState}
        for task in self.list_tasks(acronym):
            columns[task.state].append(task)
        return columns

    def can_create(self, principal: str, acronym: str) -> bool:
        application = self._applications.get(acronym)
        return self._is_authorized(principal, application, CREATE_PERMIT)

    def available_transitions(self, principal: str, acronym: str, task_id: str) -> List[TaskState]:
        """Targets that are both valid from the task's state and authorized."""
        task = self.get_task(acronym, task_id)
        application = self._applications.get(acronym)
        authorized_stages: Set[PermitStage] = {
            stage for stage in set(REQUIRED_PERMIT.values())
            if self._is_authorized(principal, application, stage)
        }
        return [
            target for target in self.get_valid_transitions(task.state)
            if REQUIRED_PERMIT[target] in authorized_stages
        ]
