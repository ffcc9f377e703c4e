"""Tests for the task service."""

import pytest

from teamhub.errors import NotFoundError, ValidationError
from teamhub.tasks.models import TaskStatus


class TestTaskCrud:
    """Tests for creating, listing, updating and deleting tasks."""

    def test_create_defaults_to_pending(self, task_service, free_team, users):
        task = task_service.create_task(free_team.id, users["admin"].id, "Write docs")

        assert task["title"] == "Write docs"
        assert task["status"] == "pending"
        assert task["created_by"] == users["admin"].id

    def test_list_filters_by_status(self, task_service, free_team, users):
        task_service.create_task(free_team.id, users["admin"].id, "One")
        task_service.create_task(free_team.id, users["admin"].id, "Two", status="completed")

        assert len(task_service.list_tasks(free_team.id, users["admin"].id)) == 2
        done = task_service.list_tasks(free_team.id, users["admin"].id, status=TaskStatus.COMPLETED)
        assert [t["title"] for t in done] == ["Two"]

    def test_update_fields(self, task_service, free_team, users):
        task = task_service.create_task(free_team.id, users["admin"].id, "Draft")

        updated = task_service.update_task(task["id"], users["admin"].id, title="Final", status="in-progress")

        assert updated["title"] == "Final"
        assert updated["status"] == "in-progress"
        assert updated["description"] is None

    def test_delete(self, task_service, free_team, users):
        task = task_service.create_task(free_team.id, users["admin"].id, "Temp")

        task_service.delete_task(task["id"], users["admin"].id)

        assert task_service.list_tasks(free_team.id, users["admin"].id) == []
        with pytest.raises(NotFoundError):
            task_service.delete_task(task["id"], users["admin"].id)


class TestTaskRules:
    """Tests for membership and validation rules."""

    def test_non_member_cannot_see_or_create(self, task_service, free_team, users):
        with pytest.raises(NotFoundError):
            task_service.list_tasks(free_team.id, users["bob"].id)
        with pytest.raises(NotFoundError):
            task_service.create_task(free_team.id, users["bob"].id, "Sneaky")

    def test_non_member_cannot_touch_task(self, task_service, free_team, users):
        task = task_service.create_task(free_team.id, users["admin"].id, "Private")

        with pytest.raises(NotFoundError):
            task_service.update_task(task["id"], users["bob"].id, title="Mine now")

    def test_member_can_create(self, task_service, gateway, free_team, users):
        gateway.request_join(free_team.id, users["bob"].id)

        task = task_service.create_task(free_team.id, users["bob"].id, "Joined work")
        assert task["created_by"] == users["bob"].id

    @pytest.mark.parametrize("title", ["", "   ", "x" * 256])
    def test_bad_title_rejected(self, task_service, free_team, users, title):
        with pytest.raises(ValidationError):
            task_service.create_task(free_team.id, users["admin"].id, title)

    def test_unknown_status_rejected(self, task_service, free_team, users):
        with pytest.raises(ValidationError):
            task_service.create_task(free_team.id, users["admin"].id, "Task", status="done")

    def test_basic_tier_task_limit(self, task_service, registry, users):
        team = registry.create_team(users["admin"].id, "Small", tier="basic")
        for i in range(50):
            task_service.create_task(team.id, users["admin"].id, f"Task {i}")

        with pytest.raises(ValidationError):
            task_service.create_task(team.id, users["admin"].id, "One too many")
