"""Task service: per-team task records."""

from sqlalchemy import func, select

from teamhub.errors import NotFoundError, ValidationError
from teamhub.logging_config import get_logger
from teamhub.storage.db import Database, db as default_db
from teamhub.tasks.models import Task, TaskStatus
from teamhub.teams.membership import MembershipStore
from teamhub.teams.models import TIER_CATALOG, Team

MAX_TITLE_LENGTH = 255


def _parse_status(value: TaskStatus | str) -> TaskStatus:
    try:
        return TaskStatus(value)
    except ValueError:
        raise ValidationError(f"Unknown task status: {value}")


class TaskService:
    """Task CRUD. Every operation requires membership of the task's team."""

    def __init__(self, database: Database | None = None):
        self.db = database or default_db
        self.logger = get_logger(__name__)

    def _require_member(self, session, team_id: str, user_id: str) -> Team:
        team = session.get(Team, team_id)
        if team is None or not MembershipStore(session).is_member(team_id, user_id):
            raise NotFoundError("Team not found or you are not a member")
        return team

    def _get_task(self, session, task_id: int, user_id: str) -> Task:
        task = session.get(Task, task_id)
        if task is None or not MembershipStore(session).is_member(task.team_id, user_id):
            raise NotFoundError(f"Task {task_id} not found")
        return task

    def list_tasks(self, team_id: str, user_id: str, status: TaskStatus | str | None = None) -> list[dict]:
        with self.db.session() as session:
            self._require_member(session, team_id, user_id)
            query = select(Task).where(Task.team_id == team_id).order_by(Task.created_at.desc())
            if status is not None:
                query = query.where(Task.status == _parse_status(status))
            return [task.to_dict() for task in session.scalars(query)]

    def create_task(
        self,
        team_id: str,
        user_id: str,
        title: str,
        description: str | None = None,
        status: TaskStatus | str = TaskStatus.PENDING,
    ) -> dict:
        """Create a task.

        Raises:
            NotFoundError: Team missing or user not a member
            ValidationError: Bad title or status, or the tier task limit is reached
        """
        title = (title or "").strip()
        if not title:
            raise ValidationError("Task title is required")
        if len(title) > MAX_TITLE_LENGTH:
            raise ValidationError(f"Task title cannot exceed {MAX_TITLE_LENGTH} characters")
        status = _parse_status(status)

        with self.db.session() as session:
            team = self._require_member(session, team_id, user_id)

            limit = TIER_CATALOG[team.tier].max_tasks
            if limit is not None:
                count = session.scalar(select(func.count(Task.id)).where(Task.team_id == team_id)) or 0
                if count >= limit:
                    raise ValidationError(f"Team has reached the maximum of {limit} tasks for the {team.tier.value} tier")

            task = Task(
                team_id=team_id,
                title=title,
                description=description,
                status=status,
                created_by=user_id,
            )
            session.add(task)
            session.flush()

            self.logger.info("task_created", task_id=task.id, team_id=team_id, user_id=user_id)
            return task.to_dict()

    def update_task(
        self,
        task_id: int,
        user_id: str,
        title: str | None = None,
        description: str | None = None,
        status: TaskStatus | str | None = None,
    ) -> dict:
        with self.db.session() as session:
            task = self._get_task(session, task_id, user_id)

            if title is not None:
                title = title.strip()
                if not title:
                    raise ValidationError("Task title is required")
                if len(title) > MAX_TITLE_LENGTH:
                    raise ValidationError(f"Task title cannot exceed {MAX_TITLE_LENGTH} characters")
                task.title = title
            if description is not None:
                task.description = description
            if status is not None:
                task.status = _parse_status(status)

            session.flush()
            self.logger.info("task_updated", task_id=task_id, user_id=user_id)
            return task.to_dict()

    def delete_task(self, task_id: int, user_id: str) -> None:
        with self.db.session() as session:
            task = self._get_task(session, task_id, user_id)
            session.delete(task)

        self.logger.info("task_deleted", task_id=task_id, user_id=user_id)


# Singleton instance
task_service = TaskService()
