"""
Task Ledger

Stores tasks with their current state, owner and audit notes.

CRITICAL CONSTRAINTS:
- Notes are newest-first and APPEND-ONLY: new notes are prepended, existing
  notes are never edited or removed
- Every mutation writes the field change and its note in ONE document write
- append_note_and_set_state is the sole mutator of task state
- No-op edits (no field and no note) are rejected
- Each application's tasks live in their own document (tasks/<ACRONYM>.json),
  so work in one application never waits on another
"""

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional

from .errors import ConflictError, InvalidArgumentError, InvalidTransitionError, NotFoundError
from .models import AuditNote, Task, TaskState, decode, is_valid_acronym
from .storage import JsonDocumentStore, ShardedDocumentStore

logger = logging.getLogger("task_ledger")

TASKS_DIR = "tasks"

EDITABLE_FIELDS = ("description", "plan")


def _task_number(task: Task) -> int:
    try:
        return int(task.id.rsplit("_", 1)[1])
    except (IndexError, ValueError):
        return 0


def _task_acronym(task_id: str) -> str:
    return task_id.rsplit("_", 1)[0] if "_" in task_id else ""


class TaskLedger:
    """
    Persistent task collection.

    Callers that read a task, validate, and then write must hold
    locked(task_id) across the whole sequence.
    """

    def __init__(self, data_dir: Path):
        self._store = ShardedDocumentStore(Path(data_dir) / TASKS_DIR, "tasks")

    def _shard(self, task_id: str) -> JsonDocumentStore:
        """Document holding task_id; NotFoundError if there cannot be one."""
        acronym = _task_acronym(task_id)
        store = self._store.shard(acronym) if is_valid_acronym(acronym) else None
        if store is None:
            raise NotFoundError("Task", task_id)
        return store

    @contextmanager
    def locked(self, task_id: str) -> Iterator[None]:
        """Serialize read-validate-write sequences on one task."""
        with self._shard(task_id).locked(task_id):
            yield

    # -------------------------------------------------------------------------
    # READ Operations
    # -------------------------------------------------------------------------

    def get(self, task_id: str) -> Task:
        record = self._shard(task_id).get(task_id)
        if record is None:
            raise NotFoundError("Task", task_id)
        return decode(Task, record)

    def list_by_application(self, acronym: str) -> List[Task]:
        """Tasks of one application, newest creation first."""
        store = self._store.shard(acronym) if is_valid_acronym(acronym) else None
        tasks = [decode(Task, r) for r in store.values()] if store else []
        tasks.sort(key=_task_number, reverse=True)
        return tasks

    # -------------------------------------------------------------------------
    # WRITE Operations
    # -------------------------------------------------------------------------

    def create_with_id(self, task: Task, initial_note: AuditNote) -> Task:
        """
        Store a new task whose id was reserved by the caller.

        The initial note becomes the task's only audit entry. An id that is
        already present is refused, never overwritten.
        """
        task.notes = [initial_note]
        store = self._store.shard(task.app_acronym, create=True)
        if not store.insert(task.id, task.to_dict()):
            raise ConflictError("Task", task.id)
        logger.info(f"Created task {task.id} in {task.app_acronym} by {task.creator}")
        return task

    def append_note_and_set_state(
        self,
        task_id: str,
        new_state: TaskState,
        new_owner: str,
        note: AuditNote,
        expected_state: Optional[TaskState] = None,
    ) -> Task:
        """
        Set state and owner and prepend the note, as one write.

        With expected_state, the write only happens if the stored state
        still matches; otherwise InvalidTransitionError is raised and the
        task is untouched.
        """
        def apply(record: Dict[str, Any]) -> Dict[str, Any]:
            if expected_state is not None and record["state"] != expected_state.value:
                raise InvalidTransitionError(record["state"], new_state.value)
            record["state"] = new_state.value
            record["owner"] = new_owner
            record["notes"] = [note.to_dict()] + list(record.get("notes", []))
            return record

        try:
            record = self._shard(task_id).mutate(task_id, apply)
        except KeyError:
            raise NotFoundError("Task", task_id)

        logger.debug(f"Task {task_id} state set to {new_state.value} by {new_owner}")
        return decode(Task, record)

    def update_fields(
        self,
        task_id: str,
        fields: Mapping[str, Optional[str]],
        new_owner: str,
        note: Optional[AuditNote] = None,
    ) -> Task:
        """
        Update the supplied description/plan fields, set owner, and prepend
        the note if one is given.
        """
        unknown = [k for k in fields if k not in EDITABLE_FIELDS]
        if unknown:
            raise InvalidArgumentError(
                f"Fields cannot be edited: {unknown}",
                details={"fields": unknown, "editable": list(EDITABLE_FIELDS)},
            )
        if not fields and note is None:
            raise InvalidArgumentError("Nothing to update: supply a field or a note")

        def apply(record: Dict[str, Any]) -> Dict[str, Any]:
            record.update(fields)
            record["owner"] = new_owner
            if note is not None:
                record["notes"] = [note.to_dict()] + list(record.get("notes", []))
            return record

        try:
            record = self._shard(task_id).mutate(task_id, apply)
        except KeyError:
            raise NotFoundError("Task", task_id)

        logger.debug(f"Task {task_id} fields {sorted(fields)} updated by {new_owner}")
        return decode(Task, record)
