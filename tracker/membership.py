"""
Group Membership

The workflow engine only asks one question: is principal P a member of
group G? Where the answer comes from is outside the engine.

MembershipDirectory answers it from a YAML file:

    alice: [dev]
    bob: [pm, qa]

AdminPolicy decides who administers applications and whether admin
principals also bypass group checks on task workflow (off by default).
"""

import logging
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set

import yaml

from .errors import UnavailableError

logger = logging.getLogger("membership")


class MembershipOracle(ABC):
    """Answers group-membership questions."""

    @abstractmethod
    def is_member(self, principal: str, group: str) -> bool:
        ...


class MembershipDirectory(MembershipOracle):
    """In-memory principal -> groups mapping, optionally loaded from YAML."""

    def __init__(self, memberships: Optional[Dict[str, Iterable[str]]] = None):
        self._lock = threading.Lock()
        self._groups: Dict[str, Set[str]] = {
            principal: set(groups or [])
            for principal, groups in (memberships or {}).items()
        }

    @classmethod
    def from_yaml(cls, path: Path) -> "MembershipDirectory":
        """
        Load memberships from a YAML mapping of principal to group list.

        A missing file yields an empty directory. An unreadable or malformed
        file raises UnavailableError rather than dropping memberships.
        """
        path = Path(path)
        if not path.exists():
            logger.warning(f"Memberships file {path} not found, no principal has any group")
            return cls()

        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Failed to read memberships file {path}: {e}")
            raise UnavailableError(
                "Failed to read memberships",
                details={"path": str(path), "error": str(e)},
            )

        if not isinstance(data, dict):
            raise UnavailableError(
                "Memberships file must map principals to group lists",
                details={"path": str(path)},
            )

        memberships: Dict[str, List[str]] = {}
        for principal, groups in data.items():
            if groups is None:
                groups = []
            if not isinstance(groups, list):
                raise UnavailableError(
                    f"Groups for '{principal}' must be a list",
                    details={"path": str(path), "principal": str(principal)},
                )
            memberships[str(principal)] = [str(g) for g in groups]

        logger.info(f"Loaded memberships for {len(memberships)} principals from {path}")
        return cls(memberships)

    def is_member(self, principal: str, group: str) -> bool:
        with self._lock:
            return group in self._groups.get(principal, set())

    def groups_of(self, principal: str) -> List[str]:
        with self._lock:
            return sorted(self._groups.get(principal, set()))

    def set_groups(self, principal: str, groups: Iterable[str]) -> None:
        with self._lock:
            self._groups[principal] = set(groups)


class AdminOverrideOracle(MembershipOracle):
    """Treats admin principals as members of every group."""

    def __init__(self, inner: MembershipOracle, admin_principals: Iterable[str]):
        self._inner = inner
        self._admins = frozenset(admin_principals)

    def is_member(self, principal: str, group: str) -> bool:
        if principal in self._admins:
            return True
        return self._inner.is_member(principal, group)


class AdminPolicy:
    """Administrative authority and the optional workflow bypass."""

    def __init__(
        self,
        oracle: MembershipOracle,
        admin_principals: Iterable[str] = ("admin",),
        admin_group: Optional[str] = "admin",
        override_workflow: bool = False,
    ):
        self._oracle = oracle
        self.admin_principals = frozenset(admin_principals)
        self.admin_group = admin_group
        self.override_workflow = override_workflow

    def is_admin(self, principal: str) -> bool:
        if principal in self.admin_principals:
            return True
        if self.admin_group:
            return self._oracle.is_member(principal, self.admin_group)
        return False

    def workflow_oracle(self) -> MembershipOracle:
        """Oracle the workflow engine should consult."""
        if self.override_workflow:
            return AdminOverrideOracle(self._oracle, self.admin_principals)
        return self._oracle
