"""Request bodies accepted by the JSON API."""

from datetime import date
from typing import Annotated, Optional

from pydantic import AfterValidator, BaseModel, Field

from .models import FIBONACCI_POINTS, MAX_TIMES_PER_MONTH


def _fibonacci(value: int) -> int:
    if value not in FIBONACCI_POINTS:
        raise ValueError("Story points must be a Fibonacci number (1, 2, 3, 5, 8, 13, 21, etc.)")
    return value


StoryPoints = Annotated[int, AfterValidator(_fibonacci)]


class CreateMonthlyPlanRequest(BaseModel):
    household_id: int = Field(gt=0)
    month: int = Field(ge=1, le=12)
    year: int = Field(ge=2000, le=3000)
    name: str = Field(min_length=1, max_length=100)
    template_id: Optional[int] = Field(default=None, gt=0)


class CreateTaskRequest(BaseModel):
    category_id: int = Field(gt=0)
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    story_points: StoryPoints
    assigned_user_ids: list[int] = []
    due_date: Optional[date] = None


class CompleteTaskRequest(BaseModel):
    is_completed: bool


class CreateTemplateRequest(BaseModel):
    household_id: int = Field(gt=0)
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)


class TemplateTaskRequest(BaseModel):
    category_id: int = Field(gt=0)
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    times_per_month: int = Field(ge=1, le=MAX_TIMES_PER_MONTH)
    story_points: StoryPoints
    assign_to_all: bool = False
    assigned_user_ids: list[int] = []
