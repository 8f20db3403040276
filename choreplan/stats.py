import math
from collections import defaultdict
from dataclasses import dataclass
from typing import Iterable, Optional

from sqlmodel import Session, select

from .errors import RecordNotFoundError, engine_operation
from .household import get_household_categories, get_users_by_id
from .models import (
    CategoryStats,
    MonthlyPlan,
    PlanStatistics,
    ProgressSummary,
    Task,
    TaskAssignment,
    UserStats,
)


def percentage(part: int, whole: int) -> int:
    if whole <= 0:
        return 0
    return int(math.floor(part * 100 / whole + 0.5))


@dataclass
class Tally:
    total_tasks: int = 0
    completed_tasks: int = 0
    total_story_points: int = 0
    completed_story_points: int = 0

    def add(self, task: Task) -> None:
        self.total_tasks += 1
        self.total_story_points += task.story_points
        if task.is_completed:
            self.completed_tasks += 1
            self.completed_story_points += task.story_points

    def fields(self) -> dict:
        return {
            "total_tasks": self.total_tasks,
            "completed_tasks": self.completed_tasks,
            "total_story_points": self.total_story_points,
            "completed_story_points": self.completed_story_points,
            "completion_rate": percentage(self.completed_tasks, self.total_tasks),
            "story_point_completion_rate": percentage(
                self.completed_story_points, self.total_story_points
            ),
        }


def previous_period(month: int, year: int) -> tuple[int, int]:
    if month == 1:
        return 12, year - 1
    return month - 1, year


def get_plan_tasks(session: Session, plan_id: int) -> list[Task]:
    return session.exec(
        select(Task).where(Task.monthly_plan_id == plan_id).order_by(Task.id)
    ).all()


def get_assignee_map(session: Session, plan_id: int) -> dict[int, list[int]]:
    rows = session.exec(
        select(TaskAssignment)
        .join(Task, Task.id == TaskAssignment.task_id)
        .where(Task.monthly_plan_id == plan_id)
        .order_by(TaskAssignment.task_id, TaskAssignment.user_id)
    ).all()
    assignees: dict[int, list[int]] = defaultdict(list)
    for row in rows:
        assignees[row.task_id].append(row.user_id)
    return assignees


def summarize(tasks: Iterable[Task]) -> ProgressSummary:
    tally = Tally()
    for task in tasks:
        tally.add(task)
    return ProgressSummary(**tally.fields())


def find_previous_plan(session: Session, plan: MonthlyPlan) -> Optional[MonthlyPlan]:
    month, year = previous_period(plan.month, plan.year)
    return session.exec(
        select(MonthlyPlan).where(
            MonthlyPlan.household_id == plan.household_id,
            MonthlyPlan.month == month,
            MonthlyPlan.year == year,
        )
    ).first()


def build_plan_statistics(
    session: Session,
    plan: MonthlyPlan,
    tasks: Optional[list[Task]] = None,
    assignees: Optional[dict[int, list[int]]] = None,
) -> PlanStatistics:
    if tasks is None:
        tasks = get_plan_tasks(session, plan.id)
    if assignees is None:
        assignees = get_assignee_map(session, plan.id)

    # A task with several assignees counts in full for each of them.
    overall = Tally()
    by_category: dict[int, Tally] = defaultdict(Tally)
    by_user: dict[int, Tally] = defaultdict(Tally)
    for task in tasks:
        overall.add(task)
        by_category[task.category_id].add(task)
        for user_id in assignees.get(task.id, []):
            by_user[user_id].add(task)

    category_names = {c.id: c.name for c in get_household_categories(session, plan.household_id)}
    category_stats = [
        CategoryStats(
            category_id=category_id,
            category_name=category_names.get(category_id, "Uncategorized"),
            **tally.fields(),
        )
        for category_id, tally in by_category.items()
    ]
    category_stats.sort(key=lambda s: (s.category_name.lower(), s.category_id))

    users = get_users_by_id(session, set(by_user))
    user_stats = [
        UserStats(
            user_id=user_id,
            first_name=users[user_id].first_name if user_id in users else "",
            last_name=users[user_id].last_name if user_id in users else "",
            **tally.fields(),
        )
        for user_id, tally in by_user.items()
    ]
    user_stats.sort(key=lambda s: (s.first_name.lower(), s.last_name.lower(), s.user_id))

    previous_month = None
    previous_plan = find_previous_plan(session, plan)
    if previous_plan:
        previous_month = summarize(get_plan_tasks(session, previous_plan.id))

    return PlanStatistics(
        **overall.fields(),
        category_stats=category_stats,
        user_stats=user_stats,
        previous_month=previous_month,
    )


@engine_operation("calculate plan statistics")
def compute_stats(session: Session, plan_id: int) -> PlanStatistics:
    plan = session.get(MonthlyPlan, plan_id)
    if not plan:
        raise RecordNotFoundError("Monthly plan not found")
    return build_plan_statistics(session, plan)
