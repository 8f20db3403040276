import logging
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlmodel import Session

from .errors import InvalidInputError, engine_operation
from .models import Task, utcnow
from .plans import ensure_plan_open, get_task, member_plan

logger = logging.getLogger(__name__)


class TaskState(str, Enum):
    open = "open"
    completed = "completed"


def task_state(task: Task) -> TaskState:
    return TaskState.completed if task.is_completed else TaskState.open


def apply_transition(
    task: Task,
    target: TaskState,
    acting_user_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> bool:
    """Move ``task`` to ``target``. Returns False when it was already there."""
    if task_state(task) == target:
        return False
    now = now or utcnow()
    if target == TaskState.completed:
        if acting_user_id is None:
            raise InvalidInputError("Completing a task requires an acting user")
        task.is_completed = True
        task.completed_at = now
        task.completed_by = acting_user_id
    else:
        task.is_completed = False
        task.completed_at = None
        task.completed_by = None
    task.updated_at = now
    return True


@engine_operation("update task completion status")
def set_task_completion(
    session: Session, acting_user_id: int, task_id: int, is_completed: bool
) -> Task:
    task = get_task(session, task_id)
    plan = member_plan(session, acting_user_id, task.monthly_plan_id, for_update=True)
    ensure_plan_open(plan, "Cannot update tasks in a closed plan")
    target = TaskState.completed if is_completed else TaskState.open
    if apply_transition(task, target, acting_user_id):
        session.add(task)
        session.flush()
        logger.debug("Task %s is now %s (user %s)", task.id, target.value, acting_user_id)
    return task
