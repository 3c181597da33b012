"""
Service wiring

Builds the registries, ledger, membership policy and engine from settings,
and keeps one process-wide instance for the HTTP layer.
"""

import logging
from pathlib import Path
from typing import Any, Mapping, Optional

from .application_registry import ApplicationRegistry
from .config import Settings, get_settings
from .membership import AdminPolicy, MembershipDirectory, MembershipOracle
from .models import Application
from .plan_registry import PlanRegistry
from .task_ledger import TaskLedger
from .workflow_engine import WorkflowEngine

logger = logging.getLogger("service")


class TrackerService:
    """All core components, wired together."""

    def __init__(
        self,
        data_dir: Path,
        oracle: MembershipOracle,
        admin_principals=("admin",),
        admin_group: Optional[str] = "admin",
        admin_override_workflow: bool = False,
    ):
        self.data_dir = Path(data_dir)
        self.oracle = oracle
        self.policy = AdminPolicy(
            oracle,
            admin_principals=admin_principals,
            admin_group=admin_group,
            override_workflow=admin_override_workflow,
        )
        self.applications = ApplicationRegistry(self.data_dir)
        self.plans = PlanRegistry(self.data_dir, self.applications)
        self.ledger = TaskLedger(self.data_dir)
        self.engine = WorkflowEngine(
            self.applications,
            self.ledger,
            self.policy.workflow_oracle(),
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "TrackerService":
        oracle = MembershipDirectory.from_yaml(settings.memberships_file)
        return cls(
            data_dir=settings.data_dir,
            oracle=oracle,
            admin_principals=settings.admin_principals,
            admin_group=settings.admin_group,
            admin_override_workflow=settings.admin_override_workflow,
        )

    # -------------------------------------------------------------------------
    # Application administration
    # -------------------------------------------------------------------------

    def create_application(self, acronym: str, **metadata: Any) -> Application:
        return self.applications.create(acronym, **metadata)

    def set_application_permissions(self, acronym: str, mapping: Mapping[Any, Optional[str]]) -> None:
        self.applications.update_permissions(acronym, mapping)

    def update_application(
        self,
        acronym: str,
        fields: Optional[Mapping[str, Any]] = None,
        permits: Optional[Mapping[Any, Optional[str]]] = None,
    ) -> Application:
        """Metadata and permission changes, stored as one write."""
        return self.applications.update(acronym, fields=fields, permits=permits)


# -----------------------------------------------------------------------------
# Global Service Instance
# -----------------------------------------------------------------------------
_service: Optional[TrackerService] = None


def get_service() -> TrackerService:
    """Get the global service instance."""
    global _service
    if _service is None:
        settings = get_settings()
        _service = TrackerService.from_settings(settings)
        logger.info(f"Tracker service initialized (data_dir={settings.data_dir})")
    return _service


def set_service(service: Optional[TrackerService]) -> None:
    """Replace the global service instance (None resets it)."""
    global _service
    _service = service
