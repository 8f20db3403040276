import logging
from typing import Iterable, Optional

from sqlmodel import Session, select

from .assignments import resolve_assignees
from .errors import PlanClosedError, RecordNotFoundError, engine_operation
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
    Task,
    Template,
    TemplateDetail,
    TemplateTask,
    TemplateTaskAssignment,
    TemplateTaskView,
    utcnow,
)
from .validation import check_story_points, check_times_per_month, clean_description, clean_name

logger = logging.getLogger(__name__)


def get_template(session: Session, template_id: int) -> Template:
    template = session.get(Template, template_id)
    if not template:
        raise RecordNotFoundError("Template not found")
    return template


def get_template_task(session: Session, template_task_id: int) -> TemplateTask:
    template_task = session.get(TemplateTask, template_task_id)
    if not template_task:
        raise RecordNotFoundError("Template task not found")
    return template_task


def get_template_tasks(session: Session, template_id: int) -> list[TemplateTask]:
    return session.exec(
        select(TemplateTask).where(TemplateTask.template_id == template_id).order_by(TemplateTask.id)
    ).all()


def _member_template(session: Session, acting_user_id: int, template_id: int) -> Template:
    template = get_template(session, template_id)
    verify_household_membership(session, acting_user_id, template.household_id)
    return template


def _explicit_assignments(
    session: Session,
    household_id: int,
    assign_to_all: bool,
    assigned_user_ids: Optional[Iterable[int]],
) -> list[TemplateTaskAssignment]:
    # Explicit rows only matter when the task isn't assigned to everyone.
    if assign_to_all:
        return []
    members = get_household_member_ids(session, household_id)
    user_ids = resolve_assignees(False, assigned_user_ids, members)
    return [TemplateTaskAssignment(user_id=user_id) for user_id in sorted(user_ids)]


def _ensure_not_used_by_closed_plan(session: Session, template_task_ids: list[int]) -> None:
    # Closed plans are read-only, including the back-reference of their tasks.
    if not template_task_ids:
        return
    in_use = session.exec(
        select(Task.id)
        .join(MonthlyPlan, MonthlyPlan.id == Task.monthly_plan_id)
        .where(
            Task.template_task_id.in_(template_task_ids),
            MonthlyPlan.is_closed == True,  # noqa: E712
        )
    ).first()
    if in_use is not None:
        raise PlanClosedError("Template task is used by a closed plan")


@engine_operation("create template")
def create_template(
    session: Session,
    acting_user_id: int,
    household_id: int,
    name: str,
    description: Optional[str] = None,
) -> Template:
    verify_household_membership(session, acting_user_id, household_id)
    template = Template(
        household_id=household_id,
        name=clean_name(name),
        description=clean_description(description),
    )
    session.add(template)
    session.flush()
    return template


@engine_operation("fetch templates")
def list_templates(session: Session, acting_user_id: int, household_id: int) -> list[Template]:
    verify_household_membership(session, acting_user_id, household_id)
    return session.exec(
        select(Template).where(Template.household_id == household_id).order_by(Template.name)
    ).all()


@engine_operation("load template")
def get_template_detail(session: Session, acting_user_id: int, template_id: int) -> TemplateDetail:
    template = _member_template(session, acting_user_id, template_id)
    categories = get_household_categories(session, template.household_id)
    category_names = {c.id: c.name for c in categories}
    template_tasks = get_template_tasks(session, template.id)
    users = get_users_by_id(
        session, {a.user_id for t in template_tasks for a in t.assignments}
    )
    views = []
    for task in template_tasks:
        assigned = [
            AssignedUser(user_id=u.id, first_name=u.first_name, last_name=u.last_name)
            for u in (users.get(a.user_id) for a in task.assignments)
            if u
        ]
        views.append(
            TemplateTaskView(
                id=task.id,
                name=task.name,
                description=task.description,
                category_id=task.category_id,
                category_name=category_names.get(task.category_id, "Uncategorized"),
                times_per_month=task.times_per_month,
                story_points=task.story_points,
                assign_to_all=task.assign_to_all,
                assigned_users=assigned,
                created_at=task.created_at,
                updated_at=task.updated_at,
            )
        )
    return TemplateDetail(
        template=template,
        tasks=views,
        categories=categories,
        members=get_household_members(session, template.household_id),
    )


@engine_operation("create template task")
def add_template_task(
    session: Session,
    acting_user_id: int,
    template_id: int,
    category_id: int,
    name: str,
    description: Optional[str] = None,
    times_per_month: int = 1,
    story_points: int = 1,
    assign_to_all: bool = False,
    assigned_user_ids: Optional[Iterable[int]] = None,
) -> TemplateTask:
    template = _member_template(session, acting_user_id, template_id)
    get_household_category(session, category_id, template.household_id)
    check_times_per_month(times_per_month)
    check_story_points(story_points)
    template_task = TemplateTask(
        template_id=template.id,
        category_id=category_id,
        name=clean_name(name, "Task name"),
        description=clean_description(description),
        times_per_month=times_per_month,
        story_points=story_points,
        assign_to_all=assign_to_all,
        assignments=_explicit_assignments(
            session, template.household_id, assign_to_all, assigned_user_ids
        ),
    )
    session.add(template_task)
    session.flush()
    return template_task


@engine_operation("update template task")
def update_template_task(
    session: Session,
    acting_user_id: int,
    template_task_id: int,
    category_id: int,
    name: str,
    description: Optional[str] = None,
    times_per_month: int = 1,
    story_points: int = 1,
    assign_to_all: bool = False,
    assigned_user_ids: Optional[Iterable[int]] = None,
) -> TemplateTask:
    template_task = get_template_task(session, template_task_id)
    template = _member_template(session, acting_user_id, template_task.template_id)
    get_household_category(session, category_id, template.household_id)
    check_times_per_month(times_per_month)
    check_story_points(story_points)
    template_task.name = clean_name(name, "Task name")
    template_task.description = clean_description(description)
    template_task.category_id = category_id
    template_task.times_per_month = times_per_month
    template_task.story_points = story_points
    template_task.assign_to_all = assign_to_all
    template_task.updated_at = utcnow()
    # Old rows must be gone before rows with the same key are inserted.
    template_task.assignments.clear()
    session.flush()
    for assignment in _explicit_assignments(
        session, template.household_id, assign_to_all, assigned_user_ids
    ):
        assignment.template_task_id = template_task.id
        template_task.assignments.append(assignment)
    session.add(template_task)
    session.flush()
    return template_task


@engine_operation("delete template task")
def delete_template_task(session: Session, acting_user_id: int, template_task_id: int) -> None:
    template_task = get_template_task(session, template_task_id)
    _member_template(session, acting_user_id, template_task.template_id)
    _ensure_not_used_by_closed_plan(session, [template_task.id])
    session.delete(template_task)
    session.flush()


@engine_operation("delete template")
def delete_template(session: Session, acting_user_id: int, template_id: int) -> None:
    template = _member_template(session, acting_user_id, template_id)
    household_id = template.household_id
    _ensure_not_used_by_closed_plan(session, [t.id for t in get_template_tasks(session, template.id)])
    session.delete(template)
    session.flush()
    logger.info("Deleted template %s of household %s", template_id, household_id)
