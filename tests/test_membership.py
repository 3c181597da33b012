"""
Tests for membership lookups and the admin policy.
"""

import pytest

from tracker.errors import ForbiddenError, UnavailableError
from tracker.membership import AdminPolicy, MembershipDirectory, MembershipOracle
from tracker.models import TaskState
from tracker.service import TrackerService

from tests.conftest import DEMO, DEMO_PERMITS


class TestMembershipDirectory:

    def test_oracle_interface_is_abstract(self):
        with pytest.raises(TypeError):
            MembershipOracle()

        class Incomplete(MembershipOracle):
            pass

        with pytest.raises(TypeError):
            Incomplete()

    def test_is_member(self, directory):
        assert directory.is_member("alice", "dev") is True
        assert directory.is_member("alice", "pm") is False
        assert directory.is_member("nobody", "dev") is False

    def test_set_groups(self, directory):
        directory.set_groups("erin", ["qa", "pm"])
        assert directory.groups_of("erin") == ["pm", "qa"]

    def test_from_yaml(self, tmp_path):
        path = tmp_path / "memberships.yaml"
        path.write_text("alice: [dev]\nbob:\n  - pm\n  - qa\nerin:\n")
        directory = MembershipDirectory.from_yaml(path)
        assert directory.groups_of("bob") == ["pm", "qa"]
        assert directory.groups_of("erin") == []

    def test_missing_yaml_is_empty(self, tmp_path):
        directory = MembershipDirectory.from_yaml(tmp_path / "absent.yaml")
        assert directory.is_member("alice", "dev") is False

    @pytest.mark.parametrize("content", ["- alice\n- bob\n", "alice: dev\n", "alice: [dev\n"])
    def test_malformed_yaml(self, tmp_path, content):
        path = tmp_path / "memberships.yaml"
        path.write_text(content)
        with pytest.raises(UnavailableError):
            MembershipDirectory.from_yaml(path)


class TestAdminPolicy:

    def test_admin_by_name_or_group(self, directory):
        policy = AdminPolicy(directory, admin_principals=["admin"], admin_group="admin")
        assert policy.is_admin("admin") is True
        assert policy.is_admin("root") is True
        assert policy.is_admin("alice") is False

    def test_admin_group_disabled(self, directory):
        policy = AdminPolicy(directory, admin_principals=["admin"], admin_group=None)
        assert policy.is_admin("root") is False

    def test_workflow_oracle_without_override(self, directory):
        policy = AdminPolicy(directory)
        assert policy.workflow_oracle() is directory

    def test_admin_has_no_workflow_rights_by_default(self, service, demo_app):
        with pytest.raises(ForbiddenError):
            service.engine.create_task("admin", DEMO, "Admin task")

    def test_override_lets_admin_through_configured_stages(self, data_dir, directory):
        service = TrackerService(data_dir, directory, admin_override_workflow=True)
        service.create_application(DEMO, permits=DEMO_PERMITS)

        summary = service.engine.create_task("admin", DEMO, "Admin task")
        assert service.engine.transition("admin", DEMO, summary.id, "ToDo").state == TaskState.TODO
        # Others are still checked normally
        with pytest.raises(ForbiddenError):
            service.engine.transition("erin", DEMO, summary.id, "Doing")

    def test_override_does_not_open_unconfigured_stages(self, data_dir, directory):
        service = TrackerService(data_dir, directory, admin_override_workflow=True)
        service.create_application("BARE")
        with pytest.raises(ForbiddenError):
            service.engine.create_task("admin", "BARE", "Anything")
