"""
Data model for applications, plans, tasks and audit notes.

Persisted as plain dicts inside the JSON document stores; every record
round-trips through to_dict()/from_dict().
"""

import re
from dataclasses import dataclass, field, asdict
from datetime import date, datetime, timezone
from enum import Enum
from typing import Optional, Dict, Any, List, Type, TypeVar, Union

from .errors import UnavailableError


# -----------------------------------------------------------------------------
# Enums
# -----------------------------------------------------------------------------
class TaskState(str, Enum):
    """
    Workflow states.

    OPEN is entered only at creation. CLOSED is terminal.
    """
    OPEN = "Open"
    TODO = "ToDo"
    DOING = "Doing"
    DONE = "Done"
    CLOSED = "Closed"

    @classmethod
    def parse(cls, value: str) -> Optional["TaskState"]:
        """Return the matching state, or None for an unknown name."""
        for state in cls:
            if state.value == value:
                return state
        return None


class PermitStage(str, Enum):
    """
    Permission-checked stages of an application.

    OPEN gates creation, TODO gates entry to ToDo, DOING gates entry to
    Doing and Done, DONE gates closing.
    """
    OPEN = "Open"
    TODO = "ToDo"
    DOING = "Doing"
    DONE = "Done"


TASK_CREATED_TEXT = "Task created"

_HEX_COLOR = re.compile(r"^#[0-9a-fA-F]{6}$")

# Acronyms name files on disk and prefix task ids ({acronym}_{n})
_ACRONYM = re.compile(r"[A-Za-z0-9-]+")


def utc_now() -> str:
    """Current UTC time in ISO format."""
    return datetime.now(timezone.utc).isoformat()


def is_hex_color(value: str) -> bool:
    return bool(_HEX_COLOR.match(value))


def is_valid_acronym(value: str) -> bool:
    return bool(value) and _ACRONYM.fullmatch(value) is not None


def parse_date(value: Union[str, date]) -> date:
    """
    Calendar date from a date object or a YYYY-MM-DD string.

    Month and day may be unpadded (2024-9-1). Raises ValueError otherwise.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return datetime.strptime(value.strip(), "%Y-%m-%d").date()
    raise ValueError(f"Not a date: {value!r}")


# -----------------------------------------------------------------------------
# Application
# -----------------------------------------------------------------------------
@dataclass
class Application:
    """
    A configured project owning tasks, plans and per-stage permissions.

    An empty or missing permit entry means nobody may perform that stage.
    """
    acronym: str
    description: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    running_number: int = 0
    permits: Dict[PermitStage, Optional[str]] = field(default_factory=dict)
    created_at: str = field(default_factory=utc_now)
    updated_at: Optional[str] = None

    def permit_for(self, stage: PermitStage) -> Optional[str]:
        """Group authorized for a stage, or None when unconfigured."""
        group = self.permits.get(stage)
        return group or None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "acronym": self.acronym,
            "description": self.description,
            "start_date": self.start_date,
            "end_date": self.end_date,
            "running_number": self.running_number,
            "permits": {stage.value: self.permits.get(stage) for stage in PermitStage},
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Application":
        return cls(
            acronym=data["acronym"],
            description=data.get("description"),
            start_date=data.get("start_date"),
            end_date=data.get("end_date"),
            running_number=data.get("running_number", 0),
            permits={
                PermitStage(k): v
                for k, v in (data.get("permits") or {}).items()
                if v
            },
            created_at=data.get("created_at") or utc_now(),
            updated_at=data.get("updated_at"),
        )


# -----------------------------------------------------------------------------
# Plan
# -----------------------------------------------------------------------------
@dataclass
class Plan:
    """Milestone grouping. Name is unique within its application only."""
    name: str
    app_acronym: str
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    color: Optional[str] = None  # display hint only

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Plan":
        return cls(
            name=data["name"],
            app_acronym=data["app_acronym"],
            start_date=data.get("start_date"),
            end_date=data.get("end_date"),
            color=data.get("color"),
        )


# -----------------------------------------------------------------------------
# Audit Note (Frozen - Immutable)
# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class AuditNote:
    """
    Immutable record of who changed a task and why.

    `state` is the state the task was in, or moved into, when written.
    """
    principal: str
    state: TaskState
    timestamp: str  # ISO format
    text: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "principal": self.principal,
            "state": self.state.value,
            "timestamp": self.timestamp,
            "text": self.text,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AuditNote":
        return cls(
            principal=data["principal"],
            state=TaskState(data["state"]),
            timestamp=data["timestamp"],
            text=data["text"],
        )


# -----------------------------------------------------------------------------
# Task
# -----------------------------------------------------------------------------
@dataclass
class Task:
    """
    A unit of work in an application.

    `notes` is newest-first; the creation note is always the last entry.
    """
    id: str
    app_acronym: str
    name: str
    state: TaskState
    creator: str
    owner: str
    created_at: str
    description: Optional[str] = None
    plan: Optional[str] = None  # soft reference to a plan name
    notes: List[AuditNote] = field(default_factory=list)

    def summary(self) -> "TaskSummary":
        return TaskSummary(id=self.id, state=self.state, owner=self.owner)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "app_acronym": self.app_acronym,
            "name": self.name,
            "description": self.description,
            "plan": self.plan,
            "state": self.state.value,
            "creator": self.creator,
            "owner": self.owner,
            "created_at": self.created_at,
            "notes": [n.to_dict() for n in self.notes],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Task":
        return cls(
            id=data["id"],
            app_acronym=data["app_acronym"],
            name=data["name"],
            description=data.get("description"),
            plan=data.get("plan"),
            state=TaskState(data["state"]),
            creator=data["creator"],
            owner=data["owner"],
            created_at=data["created_at"],
            notes=[AuditNote.from_dict(n) for n in data.get("notes", [])],
        )


@dataclass(frozen=True)
class TaskSummary:
    """Result of a creation or transition."""
    id: str
    state: TaskState
    owner: str


def make_task_id(acronym: str, number: int) -> str:
    return f"{acronym}_{number}"


Model = TypeVar("Model", Application, Plan, Task)


def decode(model: Type[Model], record: Dict[str, Any]) -> Model:
    """
    Build a model from a stored record.

    A record that does not decode means the store is damaged, which is
    reported as UnavailableError rather than a programming error.
    """
    try:
        return model.from_dict(record)
    except (KeyError, ValueError, TypeError, AttributeError) as e:
        raise UnavailableError(
            f"Corrupt {model.__name__} record",
            details={"error": f"{type(e).__name__}: {e}"},
        )
