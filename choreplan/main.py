import logging
import os
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException
from sqlmodel import Session
from starlette.middleware.sessions import SessionMiddleware

from . import lifecycle, plans, templates
from .auth import require_user
from .db import get_session, init_db
from .errors import Result
from .models import MonthlyPlan, PlanDetail, Task, Template, TemplateDetail, TemplateTask, User
from .schemas import (
    CompleteTaskRequest,
    CreateMonthlyPlanRequest,
    CreateTaskRequest,
    CreateTemplateRequest,
    TemplateTaskRequest,
)


@asynccontextmanager
async def lifespan(_: FastAPI):
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    init_db()
    yield


app = FastAPI(title="Monthly chore planner", lifespan=lifespan)
app.add_middleware(
    SessionMiddleware,
    secret_key=os.getenv("SESSION_SECRET", "dev-secret"),
    session_cookie="choreplansession",
)


def unwrap(result: Result):
    if result.is_err:
        error = result.error
        raise HTTPException(status_code=error.status_code, detail=error.to_dict())
    return result.value


@app.get("/households/{household_id}/plans")
def household_plans(
    household_id: int,
    session: Session = Depends(get_session),
    user: User = Depends(require_user),
) -> dict[str, list[MonthlyPlan]]:
    return {"plans": unwrap(plans.list_household_plans(session, user.id, household_id))}


@app.post("/plans", status_code=201)
def create_monthly_plan(
    payload: CreateMonthlyPlanRequest,
    session: Session = Depends(get_session),
    user: User = Depends(require_user),
) -> dict[str, MonthlyPlan]:
    result = plans.create_plan(
        session,
        user.id,
        payload.household_id,
        payload.month,
        payload.year,
        payload.name,
        template_id=payload.template_id,
    )
    return {"plan": unwrap(result)}


@app.get("/plans/{plan_id}")
def monthly_plan_detail(
    plan_id: int,
    session: Session = Depends(get_session),
    user: User = Depends(require_user),
) -> PlanDetail:
    return unwrap(plans.get_plan_detail(session, user.id, plan_id))


@app.post("/plans/{plan_id}/tasks", status_code=201)
def add_plan_task(
    plan_id: int,
    payload: CreateTaskRequest,
    session: Session = Depends(get_session),
    user: User = Depends(require_user),
) -> dict[str, Task]:
    result = plans.add_task(
        session,
        user.id,
        plan_id,
        payload.category_id,
        payload.name,
        payload.story_points,
        assigned_user_ids=payload.assigned_user_ids,
        description=payload.description,
        due_date=payload.due_date,
    )
    return {"task": unwrap(result)}


@app.put("/tasks/{task_id}/complete")
def update_task_completion(
    task_id: int,
    payload: CompleteTaskRequest,
    session: Session = Depends(get_session),
    user: User = Depends(require_user),
) -> dict[str, Task]:
    result = lifecycle.set_task_completion(session, user.id, task_id, payload.is_completed)
    return {"task": unwrap(result)}


@app.post("/plans/{plan_id}/close")
def close_monthly_plan(
    plan_id: int,
    session: Session = Depends(get_session),
    user: User = Depends(require_user),
) -> dict[str, MonthlyPlan]:
    return {"plan": unwrap(plans.close_plan(session, user.id, plan_id))}


@app.get("/households/{household_id}/templates")
def household_templates(
    household_id: int,
    session: Session = Depends(get_session),
    user: User = Depends(require_user),
) -> dict[str, list[Template]]:
    return {"templates": unwrap(templates.list_templates(session, user.id, household_id))}


@app.post("/templates", status_code=201)
def create_template(
    payload: CreateTemplateRequest,
    session: Session = Depends(get_session),
    user: User = Depends(require_user),
) -> dict[str, Template]:
    result = templates.create_template(
        session, user.id, payload.household_id, payload.name, payload.description
    )
    return {"template": unwrap(result)}


@app.get("/templates/{template_id}")
def template_detail(
    template_id: int,
    session: Session = Depends(get_session),
    user: User = Depends(require_user),
) -> TemplateDetail:
    return unwrap(templates.get_template_detail(session, user.id, template_id))


@app.delete("/templates/{template_id}", status_code=204)
def delete_template(
    template_id: int,
    session: Session = Depends(get_session),
    user: User = Depends(require_user),
) -> None:
    unwrap(templates.delete_template(session, user.id, template_id))


@app.post("/templates/{template_id}/tasks", status_code=201)
def add_template_task(
    template_id: int,
    payload: TemplateTaskRequest,
    session: Session = Depends(get_session),
    user: User = Depends(require_user),
) -> dict[str, TemplateTask]:
    result = templates.add_template_task(
        session,
        user.id,
        template_id,
        payload.category_id,
        payload.name,
        description=payload.description,
        times_per_month=payload.times_per_month,
        story_points=payload.story_points,
        assign_to_all=payload.assign_to_all,
        assigned_user_ids=payload.assigned_user_ids,
    )
    return {"task": unwrap(result)}


@app.put("/template-tasks/{template_task_id}")
def update_template_task(
    template_task_id: int,
    payload: TemplateTaskRequest,
    session: Session = Depends(get_session),
    user: User = Depends(require_user),
) -> dict[str, TemplateTask]:
    result = templates.update_template_task(
        session,
        user.id,
        template_task_id,
        payload.category_id,
        payload.name,
        description=payload.description,
        times_per_month=payload.times_per_month,
        story_points=payload.story_points,
        assign_to_all=payload.assign_to_all,
        assigned_user_ids=payload.assigned_user_ids,
    )
    return {"task": unwrap(result)}


@app.delete("/template-tasks/{template_task_id}", status_code=204)
def delete_template_task(
    template_task_id: int,
    session: Session = Depends(get_session),
    user: User = Depends(require_user),
) -> None:
    unwrap(templates.delete_template_task(session, user.id, template_task_id))


@app.get("/health")
def health():
    return {"status": "ok"}
