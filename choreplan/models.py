from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel, Relationship

FIBONACCI_POINTS = (1, 2, 3, 5, 8, 13, 21, 34, 55, 89)
MAX_TIMES_PER_MONTH = 31


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Household(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class User(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    username: str = Field(unique=True)
    first_name: str
    last_name: str
    is_admin: bool = False
    created_at: datetime = Field(default_factory=utcnow)


class HouseholdMember(SQLModel, table=True):
    user_id: int = Field(foreign_key="user.id", primary_key=True, ondelete="CASCADE")
    household_id: int = Field(foreign_key="household.id", primary_key=True, ondelete="CASCADE")
    is_owner: bool = False
    created_at: datetime = Field(default_factory=utcnow)


class Category(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    household_id: int = Field(foreign_key="household.id", ondelete="CASCADE", index=True)
    name: str
    description: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Template(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    household_id: int = Field(foreign_key="household.id", ondelete="CASCADE", index=True)
    name: str
    description: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    tasks: list["TemplateTask"] = Relationship(back_populates="template", cascade_delete=True)


class TemplateTask(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    template_id: int = Field(foreign_key="template.id", ondelete="CASCADE", index=True)
    category_id: int = Field(foreign_key="category.id", ondelete="CASCADE")
    name: str
    description: Optional[str] = None
    times_per_month: int = Field(default=1)
    story_points: int = Field(default=1)
    assign_to_all: bool = False
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    template: Template = Relationship(back_populates="tasks")
    assignments: list["TemplateTaskAssignment"] = Relationship(
        back_populates="template_task", cascade_delete=True
    )


class TemplateTaskAssignment(SQLModel, table=True):
    template_task_id: Optional[int] = Field(
        default=None, foreign_key="templatetask.id", primary_key=True, ondelete="CASCADE"
    )
    user_id: int = Field(foreign_key="user.id", primary_key=True, ondelete="CASCADE")
    created_at: datetime = Field(default_factory=utcnow)

    template_task: TemplateTask = Relationship(back_populates="assignments")


class MonthlyPlan(SQLModel, table=True):
    __table_args__ = (
        UniqueConstraint("household_id", "month", "year", name="uq_monthlyplan_household_month"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    household_id: int = Field(foreign_key="household.id", ondelete="CASCADE", index=True)
    month: int
    year: int
    name: str
    is_closed: bool = False
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    tasks: list["Task"] = Relationship(back_populates="monthly_plan", cascade_delete=True)


class Task(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    monthly_plan_id: int = Field(foreign_key="monthlyplan.id", ondelete="CASCADE", index=True)
    template_task_id: Optional[int] = Field(
        default=None, foreign_key="templatetask.id", ondelete="SET NULL"
    )
    category_id: int = Field(foreign_key="category.id", ondelete="CASCADE")
    name: str
    description: Optional[str] = None
    story_points: int
    is_template_task: bool = False
    is_completed: bool = False
    completed_at: Optional[datetime] = None
    completed_by: Optional[int] = Field(default=None, foreign_key="user.id", ondelete="SET NULL")
    due_date: Optional[date] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    monthly_plan: MonthlyPlan = Relationship(back_populates="tasks")
    assignments: list["TaskAssignment"] = Relationship(back_populates="task", cascade_delete=True)


class TaskAssignment(SQLModel, table=True):
    task_id: Optional[int] = Field(
        default=None, foreign_key="task.id", primary_key=True, ondelete="CASCADE"
    )
    user_id: int = Field(foreign_key="user.id", primary_key=True, ondelete="CASCADE")
    created_at: datetime = Field(default_factory=utcnow)

    task: Task = Relationship(back_populates="assignments")


# Read models. These are computed per request and never stored.


class AssignedUser(SQLModel):
    user_id: int
    first_name: str
    last_name: str


class MemberSummary(SQLModel):
    id: int
    first_name: str
    last_name: str


class ProgressSummary(SQLModel):
    total_tasks: int = 0
    completed_tasks: int = 0
    total_story_points: int = 0
    completed_story_points: int = 0
    completion_rate: int = 0
    story_point_completion_rate: int = 0


class CategoryStats(ProgressSummary):
    category_id: int
    category_name: str


class UserStats(ProgressSummary):
    user_id: int
    first_name: str
    last_name: str


class PlanStatistics(ProgressSummary):
    category_stats: list[CategoryStats] = []
    user_stats: list[UserStats] = []
    previous_month: Optional[ProgressSummary] = None


class TaskView(SQLModel):
    id: int
    name: str
    description: Optional[str] = None
    category_id: int
    category_name: str
    story_points: int
    is_template_task: bool
    template_task_id: Optional[int] = None
    is_completed: bool
    completed_at: Optional[datetime] = None
    completed_by: Optional[int] = None
    due_date: Optional[date] = None
    assigned_users: list[AssignedUser] = []
    created_at: datetime
    updated_at: datetime


class TemplateTaskView(SQLModel):
    id: int
    name: str
    description: Optional[str] = None
    category_id: int
    category_name: str
    times_per_month: int
    story_points: int
    assign_to_all: bool
    assigned_users: list[AssignedUser] = []
    created_at: datetime
    updated_at: datetime


class TemplateDetail(SQLModel):
    template: Template
    tasks: list[TemplateTaskView] = []
    categories: list[Category] = []
    members: list[MemberSummary] = []


class PlanDetail(SQLModel):
    plan: MonthlyPlan
    tasks: list[TaskView] = []
    categories: list[Category] = []
    members: list[MemberSummary] = []
    stats: PlanStatistics


__all__ = [
    "Household",
    "User",
    "HouseholdMember",
    "Category",
    "Template",
    "TemplateTask",
    "TemplateTaskAssignment",
    "MonthlyPlan",
    "Task",
    "TaskAssignment",
    "AssignedUser",
    "MemberSummary",
    "ProgressSummary",
    "CategoryStats",
    "UserStats",
    "PlanStatistics",
    "TaskView",
    "TemplateTaskView",
    "TemplateDetail",
    "PlanDetail",
    "FIBONACCI_POINTS",
    "MAX_TIMES_PER_MONTH",
    "utcnow",
]
