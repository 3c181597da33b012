"""
Tests for the plan registry.
"""

import pytest

from tracker.errors import ConflictError, InvalidArgumentError, NotFoundError

from tests.conftest import DEMO


@pytest.fixture
def plans(service, demo_app):
    return service.plans


class TestPlans:

    def test_create_and_get(self, plans):
        plans.create(DEMO, "MVP1", start_date="2024-01-01", end_date="2024-03-01", color="#1a2b3c")
        plan = plans.get(DEMO, "MVP1")
        assert plan.app_acronym == DEMO
        assert plan.color == "#1a2b3c"

    def test_name_unique_per_application(self, plans, service):
        service.create_application("OTHER")
        plans.create(DEMO, "MVP1")
        plans.create("OTHER", "MVP1")
        with pytest.raises(ConflictError):
            plans.create(DEMO, "MVP1")

    def test_list_is_scoped_and_sorted(self, plans, service):
        service.create_application("OTHER")
        plans.create(DEMO, "beta")
        plans.create(DEMO, "alpha")
        plans.create("OTHER", "gamma")
        assert [p.name for p in plans.list(DEMO)] == ["alpha", "beta"]

    def test_unknown_application(self, plans):
        with pytest.raises(NotFoundError):
            plans.create("NOPE", "MVP1")
        with pytest.raises(NotFoundError):
            plans.list("NOPE")

    @pytest.mark.parametrize("kwargs", [
        {"name": " "},
        {"name": "p", "color": "red"},
        {"name": "p", "start_date": "2024-02-01", "end_date": "2024-01-01"},
    ])
    def test_invalid_plans(self, plans, kwargs):
        with pytest.raises(InvalidArgumentError):
            plans.create(DEMO, **kwargs)

    def test_update(self, plans):
        plans.create(DEMO, "MVP1")
        plan = plans.update(DEMO, "MVP1", {"color": "#ffffff", "end_date": "2024-06-30"})
        assert plan.color == "#ffffff"
        assert plans.get(DEMO, "MVP1").end_date == "2024-06-30"

    def test_update_rejects_name_change(self, plans):
        plans.create(DEMO, "MVP1")
        with pytest.raises(InvalidArgumentError):
            plans.update(DEMO, "MVP1", {"name": "MVP2"})

    def test_update_unknown_plan(self, plans):
        with pytest.raises(NotFoundError):
            plans.update(DEMO, "ghost", {"color": "#000000"})

    def test_unpadded_start_before_later_month(self, plans):
        plan = plans.create(DEMO, "P1", start_date="2024-9-01", end_date="2024-10-01")
        assert plan.start_date == "2024-09-01"
        assert plan.end_date == "2024-10-01"

    def test_junk_date_rejected(self, plans):
        with pytest.raises(InvalidArgumentError):
            plans.create(DEMO, "P1", start_date="banana")
        assert plans.list(DEMO) == []

    def test_update_checks_range_against_stored_dates(self, plans):
        plans.create(DEMO, "P1", start_date="2024-09-01")
        with pytest.raises(InvalidArgumentError):
            plans.update(DEMO, "P1", {"end_date": "2024-8-31"})
        assert plans.update(DEMO, "P1", {"end_date": "2024-10-1"}).end_date == "2024-10-01"

    def test_plans_stored_per_application(self, plans, service, data_dir):
        service.create_application("OTHER")
        plans.create(DEMO, "MVP1")
        plans.create("OTHER", "MVP1")
        assert (data_dir / "plans" / "DEMO.json").exists()
        assert (data_dir / "plans" / "OTHER.json").exists()
