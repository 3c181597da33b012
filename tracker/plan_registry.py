"""
Plan Registry

Milestone groupings within an application. Tasks refer to plans by name
only, so renaming or removing a plan never touches tasks.
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from .application_registry import (
    DATE_FIELDS,
    ApplicationRegistry,
    DateValue,
    check_date_range,
    normalize_date,
)
from .errors import ConflictError, InvalidArgumentError, NotFoundError
from .models import Plan, decode, is_hex_color
from .storage import JsonDocumentStore, ShardedDocumentStore

logger = logging.getLogger("plan_registry")

PLANS_DIR = "plans"

UPDATABLE_FIELDS = ("start_date", "end_date", "color")


def _validate(start_date: DateValue, end_date: DateValue, color: Optional[str]) -> None:
    if color and not is_hex_color(color):
        raise InvalidArgumentError(
            "Plan color must be a #rrggbb hex string",
            details={"color": color},
        )
    check_date_range(start_date, end_date)


class PlanRegistry:
    """Plans of each application, keyed by plan name."""

    def __init__(self, data_dir: Path, applications: ApplicationRegistry):
        self._store = ShardedDocumentStore(Path(data_dir) / PLANS_DIR, "plans")
        self._applications = applications

    def _require_application(self, acronym: str) -> None:
        if not self._applications.exists(acronym):
            raise NotFoundError("Application", acronym)

    def list(self, acronym: str) -> List[Plan]:
        self._require_application(acronym)
        store = self._store.shard(acronym)
        plans = [decode(Plan, r) for r in store.values()] if store else []
        plans.sort(key=lambda p: p.name)
        return plans

    def get(self, acronym: str, name: str) -> Plan:
        self._require_application(acronym)
        store = self._store.shard(acronym)
        record = store.get(name) if store else None
        if record is None:
            raise NotFoundError("Plan", f"{acronym}/{name}")
        return decode(Plan, record)

    def create(
        self,
        acronym: str,
        name: str,
        start_date: DateValue = None,
        end_date: DateValue = None,
        color: Optional[str] = None,
    ) -> Plan:
        name = (name or "").strip()
        if not name:
            raise InvalidArgumentError("Plan name is required")
        _validate(start_date, end_date, color)
        self._require_application(acronym)

        plan = Plan(
            name=name,
            app_acronym=acronym,
            start_date=normalize_date("start_date", start_date),
            end_date=normalize_date("end_date", end_date),
            color=color,
        )
        store: JsonDocumentStore = self._store.shard(acronym, create=True)
        if not store.insert(name, plan.to_dict()):
            raise ConflictError("Plan", f"{acronym}/{name}")

        logger.info(f"Created plan {acronym}/{name}")
        return plan

    def update(self, acronym: str, name: str, fields: Mapping[str, Any]) -> Plan:
        """Update dates and color. The name is part of the identity."""
        fields = dict(fields)
        unknown = [k for k in fields if k not in UPDATABLE_FIELDS]
        if unknown:
            raise InvalidArgumentError(
                f"Unknown plan fields: {unknown}",
                details={"unknown": unknown},
            )
        for field_name in DATE_FIELDS:
            if field_name in fields:
                fields[field_name] = normalize_date(field_name, fields[field_name])

        def apply(record: Dict[str, Any]) -> Dict[str, Any]:
            merged = {**record, **fields}
            _validate(merged.get("start_date"), merged.get("end_date"), merged.get("color"))
            record.update(fields)
            return record

        self._require_application(acronym)
        store = self._store.shard(acronym)
        if store is None:
            raise NotFoundError("Plan", f"{acronym}/{name}")
        try:
            record = store.mutate(name, apply)
        except KeyError:
            raise NotFoundError("Plan", f"{acronym}/{name}")

        logger.info(f"Updated plan {acronym}/{name}: {sorted(fields)}")
        return decode(Plan, record)
