import logging
from datetime import date
from typing import Iterable, Optional

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from .assignments import resolve_assignees, resolve_for_template_task
from .errors import DuplicatePlanError, PlanClosedError, RecordNotFoundError, engine_operation
from .household import (
    get_household_categories,
    get_household_category,
    get_household_member_ids,
    get_household_members,
    get_users_by_id,
    verify_household_membership,
)
from .models import (
    AssignedUser,
    MonthlyPlan,
    PlanDetail,
    Task,
    TaskAssignment,
    TaskView,
    TemplateTask,
    utcnow,
)
from .stats import build_plan_statistics, get_assignee_map, get_plan_tasks
from .templates import get_template, get_template_tasks
from .validation import check_month_year, check_story_points, clean_description, clean_name

logger = logging.getLogger(__name__)


def get_plan(session: Session, plan_id: int, for_update: bool = False) -> MonthlyPlan:
    statement = select(MonthlyPlan).where(MonthlyPlan.id == plan_id)
    if for_update:
        statement = statement.with_for_update()
    plan = session.exec(statement).first()
    if not plan:
        raise RecordNotFoundError("Monthly plan not found")
    return plan


def find_plan(session: Session, household_id: int, month: int, year: int) -> Optional[MonthlyPlan]:
    return session.exec(
        select(MonthlyPlan).where(
            MonthlyPlan.household_id == household_id,
            MonthlyPlan.month == month,
            MonthlyPlan.year == year,
        )
    ).first()


def get_task(session: Session, task_id: int) -> Task:
    task = session.get(Task, task_id)
    if not task:
        raise RecordNotFoundError("Task not found")
    return task


def ensure_plan_open(plan: MonthlyPlan, message: str) -> None:
    if plan.is_closed:
        raise PlanClosedError(message)


def member_plan(
    session: Session, acting_user_id: int, plan_id: int, for_update: bool = False
) -> MonthlyPlan:
    plan = get_plan(session, plan_id, for_update=for_update)
    verify_household_membership(session, acting_user_id, plan.household_id)
    return plan


def expand_template_tasks(
    plan: MonthlyPlan,
    template_tasks: Iterable[TemplateTask],
    member_ids: set[int],
) -> list[Task]:
    tasks: list[Task] = []
    for template_task in template_tasks:
        assignees = sorted(resolve_for_template_task(template_task, member_ids))
        for _ in range(template_task.times_per_month):
            tasks.append(
                Task(
                    monthly_plan_id=plan.id,
                    template_task_id=template_task.id,
                    category_id=template_task.category_id,
                    name=template_task.name,
                    description=template_task.description,
                    story_points=template_task.story_points,
                    is_template_task=True,
                    assignments=[TaskAssignment(user_id=user_id) for user_id in assignees],
                )
            )
    return tasks


@engine_operation("create monthly plan")
def create_plan(
    session: Session,
    acting_user_id: int,
    household_id: int,
    month: int,
    year: int,
    name: str,
    template_id: Optional[int] = None,
) -> MonthlyPlan:
    verify_household_membership(session, acting_user_id, household_id)
    check_month_year(month, year)
    name = clean_name(name, "Plan name")
    if find_plan(session, household_id, month, year):
        raise DuplicatePlanError("A plan for this month and year already exists")
    template = None
    if template_id is not None:
        template = get_template(session, template_id)
        if template.household_id != household_id:
            raise RecordNotFoundError("Template not found")

    plan = MonthlyPlan(household_id=household_id, month=month, year=year, name=name)
    session.add(plan)
    try:
        session.flush()
    except IntegrityError as exc:
        # Lost a race with a concurrent request for the same month.
        raise DuplicatePlanError("A plan for this month and year already exists", cause=exc) from exc

    if template is None:
        logger.info("Created empty plan %s for household %s (%s/%s)", plan.id, household_id, month, year)
        return plan

    template_tasks = get_template_tasks(session, template.id)
    member_ids = get_household_member_ids(session, household_id)
    tasks = expand_template_tasks(plan, template_tasks, member_ids)
    session.add_all(tasks)
    session.flush()
    logger.info(
        "Created plan %s for household %s (%s/%s) with %d tasks from template %s",
        plan.id,
        household_id,
        month,
        year,
        len(tasks),
        template.id,
    )
    return plan


@engine_operation("create task")
def add_task(
    session: Session,
    acting_user_id: int,
    plan_id: int,
    category_id: int,
    name: str,
    story_points: int,
    assigned_user_ids: Optional[Iterable[int]] = None,
    description: Optional[str] = None,
    due_date: Optional[date] = None,
) -> Task:
    plan = member_plan(session, acting_user_id, plan_id, for_update=True)
    ensure_plan_open(plan, "Cannot add tasks to a closed plan")
    get_household_category(session, category_id, plan.household_id)
    check_story_points(story_points)
    member_ids = get_household_member_ids(session, plan.household_id)
    assignees = resolve_assignees(False, assigned_user_ids, member_ids)
    task = Task(
        monthly_plan_id=plan.id,
        category_id=category_id,
        name=clean_name(name, "Task name"),
        description=clean_description(description),
        story_points=story_points,
        is_template_task=False,
        due_date=due_date,
        assignments=[TaskAssignment(user_id=user_id) for user_id in sorted(assignees)],
    )
    session.add(task)
    session.flush()
    return task


@engine_operation("update plan status")
def close_plan(session: Session, acting_user_id: int, plan_id: int) -> MonthlyPlan:
    plan = member_plan(session, acting_user_id, plan_id, for_update=True)
    if not plan.is_closed:
        plan.is_closed = True
        plan.updated_at = utcnow()
        session.add(plan)
        session.flush()
        logger.info("Closed plan %s of household %s", plan.id, plan.household_id)
    return plan


@engine_operation("fetch monthly plans")
def list_household_plans(session: Session, acting_user_id: int, household_id: int) -> list[MonthlyPlan]:
    verify_household_membership(session, acting_user_id, household_id)
    return session.exec(
        select(MonthlyPlan)
        .where(MonthlyPlan.household_id == household_id)
        .order_by(MonthlyPlan.year.desc(), MonthlyPlan.month.desc())
    ).all()


@engine_operation("load monthly plan")
def get_plan_detail(session: Session, acting_user_id: int, plan_id: int) -> PlanDetail:
    plan = member_plan(session, acting_user_id, plan_id)
    tasks = get_plan_tasks(session, plan.id)
    assignees = get_assignee_map(session, plan.id)
    categories = get_household_categories(session, plan.household_id)
    category_names = {c.id: c.name for c in categories}
    users = get_users_by_id(session, {u for ids in assignees.values() for u in ids})

    views = []
    for task in tasks:
        assigned = [
            AssignedUser(user_id=u.id, first_name=u.first_name, last_name=u.last_name)
            for u in (users.get(user_id) for user_id in assignees.get(task.id, []))
            if u
        ]
        views.append(
            TaskView(
                id=task.id,
                name=task.name,
                description=task.description,
                category_id=task.category_id,
                category_name=category_names.get(task.category_id, "Uncategorized"),
                story_points=task.story_points,
                is_template_task=task.is_template_task,
                template_task_id=task.template_task_id,
                is_completed=task.is_completed,
                completed_at=task.completed_at,
                completed_by=task.completed_by,
                due_date=task.due_date,
                assigned_users=assigned,
                created_at=task.created_at,
                updated_at=task.updated_at,
            )
        )
    return PlanDetail(
        plan=plan,
        tasks=views,
        categories=categories,
        members=get_household_members(session, plan.household_id),
        stats=build_plan_statistics(session, plan, tasks=tasks, assignees=assignees),
    )
