"""
Application Registry

Source of truth for applications: metadata, the four per-stage permission
groups, and the running number behind task ids.

HARD CONSTRAINTS:
- Acronyms are unique and immutable
- running_number only ever increases by one, and each value is handed out
  to exactly one caller
- Permission updates touch only the stages supplied
- Metadata and permissions changed together are written together
"""

import logging
from datetime import date
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from .errors import ConflictError, InvalidArgumentError, NotFoundError
from .models import Application, PermitStage, decode, is_valid_acronym, parse_date, utc_now
from .storage import JsonDocumentStore, ShardedDocumentStore

logger = logging.getLogger("application_registry")

APPLICATIONS_DIR = "applications"

METADATA_FIELDS = ("description", "start_date", "end_date")
DATE_FIELDS = ("start_date", "end_date")

DateValue = Union[str, date, None]


def parse_permit_mapping(mapping: Mapping[Any, Optional[str]]) -> Dict[PermitStage, Optional[str]]:
    """
    Convert a stage->group mapping with string or enum keys.

    Unknown stage names raise InvalidArgumentError. Empty strings become None.
    """
    parsed: Dict[PermitStage, Optional[str]] = {}
    unknown = []
    for key, group in mapping.items():
        try:
            stage = key if isinstance(key, PermitStage) else PermitStage(key)
        except ValueError:
            unknown.append(str(key))
            continue
        if group is not None and not isinstance(group, str):
            raise InvalidArgumentError(
                f"Group for stage '{stage.value}' must be a string",
                details={"stage": stage.value},
            )
        parsed[stage] = group.strip() if group and group.strip() else None

    if unknown:
        raise InvalidArgumentError(
            f"Unknown permission stages: {unknown}",
            details={"unknown": unknown, "valid": [s.value for s in PermitStage]},
        )
    return parsed


def normalize_date(name: str, value: DateValue) -> Optional[str]:
    """ISO string for a date field; None or "" clears it."""
    if value is None or value == "":
        return None
    try:
        return parse_date(value).isoformat()
    except ValueError:
        raise InvalidArgumentError(
            f"{name} must be a YYYY-MM-DD date",
            details={name: str(value)},
        )


def check_date_range(start_date: DateValue, end_date: DateValue) -> None:
    start = normalize_date("start_date", start_date)
    end = normalize_date("end_date", end_date)
    if start and end and parse_date(start) > parse_date(end):
        raise InvalidArgumentError(
            "start_date must not be after end_date",
            details={"start_date": start, "end_date": end},
        )


def validate_acronym(acronym: str) -> str:
    acronym = (acronym or "").strip()
    if not acronym:
        raise InvalidArgumentError("Application acronym is required")
    if not is_valid_acronym(acronym):
        raise InvalidArgumentError(
            "Application acronym may only contain letters, digits and '-'",
            details={"acronym": acronym},
        )
    return acronym


class ApplicationRegistry:
    """
    Registry of applications, one document per application.

    Provides:
    - create / get / list
    - metadata and permission updates
    - atomic task-number reservation
    """

    def __init__(self, data_dir: Path):
        self._store = ShardedDocumentStore(Path(data_dir) / APPLICATIONS_DIR, "applications")

    def _shard(self, acronym: str) -> JsonDocumentStore:
        store = self._store.shard(acronym) if is_valid_acronym(acronym) else None
        if store is None:
            raise NotFoundError("Application", acronym)
        return store

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get(self, acronym: str) -> Application:
        record = self._shard(acronym).get(acronym)
        if record is None:
            raise NotFoundError("Application", acronym)
        return decode(Application, record)

    def exists(self, acronym: str) -> bool:
        try:
            return self._shard(acronym).contains(acronym)
        except NotFoundError:
            return False

    def list(self) -> List[Application]:
        apps = []
        for name in self._store.names():
            store = self._store.shard(name)
            record = store.get(name) if store else None
            if record is not None:
                apps.append(decode(Application, record))
        apps.sort(key=lambda a: a.acronym)
        return apps

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    def create(
        self,
        acronym: str,
        description: Optional[str] = None,
        start_date: DateValue = None,
        end_date: DateValue = None,
        permits: Optional[Mapping[Any, Optional[str]]] = None,
    ) -> Application:
        """Create an application with running_number 0."""
        acronym = validate_acronym(acronym)
        check_date_range(start_date, end_date)

        application = Application(
            acronym=acronym,
            description=description,
            start_date=normalize_date("start_date", start_date),
            end_date=normalize_date("end_date", end_date),
            running_number=0,
            permits=parse_permit_mapping(permits or {}),
        )
        store = self._store.shard(acronym, create=True)
        if not store.insert(acronym, application.to_dict()):
            raise ConflictError("Application", acronym)

        logger.info(f"Created application {acronym}")
        return application

    def update(
        self,
        acronym: str,
        fields: Optional[Mapping[str, Any]] = None,
        permits: Optional[Mapping[Any, Optional[str]]] = None,
    ) -> Application:
        """
        Update metadata fields and/or permissions in one write.

        Either both parts are stored or neither is. Stages not in permits
        keep their current group; permission changes affect future
        transitions only.
        """
        fields = dict(fields or {})
        unknown = [k for k in fields if k not in METADATA_FIELDS]
        if unknown:
            raise InvalidArgumentError(
                f"Unknown application fields: {unknown}",
                details={"unknown": unknown},
            )
        for name in DATE_FIELDS:
            if name in fields:
                fields[name] = normalize_date(name, fields[name])
        parsed_permits = parse_permit_mapping(permits or {})

        def apply(record: Dict[str, Any]) -> Dict[str, Any]:
            merged = {**record, **fields}
            check_date_range(merged.get("start_date"), merged.get("end_date"))
            record.update(fields)
            current = record.setdefault("permits", {})
            for stage, group in parsed_permits.items():
                current[stage.value] = group
            record["updated_at"] = utc_now()
            return record

        try:
            record = self._shard(acronym).mutate(acronym, apply)
        except KeyError:
            raise NotFoundError("Application", acronym)

        if fields:
            logger.info(f"Updated application {acronym}: {sorted(fields)}")
        if parsed_permits:
            changed = {s.value: g for s, g in parsed_permits.items()}
            logger.info(f"Updated permissions for {acronym}: {changed}")
        return decode(Application, record)

    def update_metadata(self, acronym: str, fields: Mapping[str, Any]) -> Application:
        """Update description/start_date/end_date. Acronym is immutable."""
        return self.update(acronym, fields=fields)

    def update_permissions(self, acronym: str, mapping: Mapping[Any, Optional[str]]) -> Application:
        return self.update(acronym, permits=mapping)

    def reserve_next_task_number(self, acronym: str) -> int:
        """
        Increment and return the application's running number.

        The increment and its persistence happen as one step; concurrent
        callers for the same acronym never observe the same number.
        """
        def bump(record: Dict[str, Any]) -> int:
            record["running_number"] = int(record.get("running_number", 0)) + 1
            return record["running_number"]

        try:
            number = self._shard(acronym).mutate(acronym, bump)
        except KeyError:
            raise NotFoundError("Application", acronym)

        logger.debug(f"Reserved task number {number} for {acronym}")
        return number
