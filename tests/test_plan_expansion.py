import pytest
from sqlalchemy.exc import OperationalError
from sqlmodel import Session, select

from choreplan import plans
from choreplan.errors import (
    DuplicatePlanError,
    InvalidInputError,
    PermissionDeniedError,
    RecordNotFoundError,
    StorageError,
)
from choreplan.models import HouseholdMember, MonthlyPlan, Task, TaskAssignment
from choreplan.plans import create_plan
from choreplan.templates import add_template_task, create_template


def build_template(session, home, task_rows):
    template = create_template(session, home.alice.id, home.household.id, "Chores").unwrap()
    for fields in task_rows:
        add_template_task(session, home.alice.id, template.id, home.cleaning.id, **fields).unwrap()
    return template


def assignees_by_task(session):
    result: dict[int, set[int]] = {}
    for row in session.exec(select(TaskAssignment)).all():
        result.setdefault(row.task_id, set()).add(row.user_id)
    return result


def test_plan_without_template_is_empty(session: Session, home):
    result = create_plan(session, home.alice.id, home.household.id, 3, 2024, "March")
    assert result.is_ok
    plan = result.value
    assert plan.is_closed is False
    assert (plan.month, plan.year, plan.name) == (3, 2024, "March")
    assert session.exec(select(Task)).all() == []


def test_expansion_creates_one_task_per_occurrence(session: Session, home):
    template = build_template(
        session,
        home,
        [
            {"name": "Vacuum", "times_per_month": 4, "story_points": 3, "assign_to_all": True},
            {"name": "Windows", "times_per_month": 1, "story_points": 8},
            {"name": "Dishes", "times_per_month": 31, "story_points": 1},
        ],
    )
    plan = create_plan(
        session, home.alice.id, home.household.id, 4, 2024, "April", template_id=template.id
    ).unwrap()

    tasks = session.exec(select(Task).where(Task.monthly_plan_id == plan.id)).all()
    assert len(tasks) == 4 + 1 + 31
    assert len({t.id for t in tasks}) == len(tasks)
    vacuum = [t for t in tasks if t.name == "Vacuum"]
    assert len(vacuum) == 4
    for task in tasks:
        assert task.is_template_task is True
        assert task.template_task_id is not None
        assert task.category_id == home.cleaning.id
        assert task.is_completed is False
        assert task.completed_at is None
    assert {t.story_points for t in vacuum} == {3}


def test_assign_to_all_snapshot_for_each_occurrence(session: Session, home):
    template = build_template(
        session,
        home,
        [{"name": "Trash", "times_per_month": 3, "story_points": 2, "assign_to_all": True}],
    )
    plan = create_plan(
        session, home.alice.id, home.household.id, 3, 2024, "March", template_id=template.id
    ).unwrap()

    tasks = session.exec(select(Task).where(Task.monthly_plan_id == plan.id)).all()
    assert len(tasks) == 3
    assignments = assignees_by_task(session)
    for task in tasks:
        assert assignments[task.id] == {home.alice.id, home.bob.id}


def test_explicit_assignees_resolved_against_current_members(session: Session, home):
    template = build_template(
        session,
        home,
        [
            {
                "name": "Laundry",
                "times_per_month": 2,
                "story_points": 5,
                "assigned_user_ids": [home.bob.id],
            },
            {"name": "Plants", "times_per_month": 1, "story_points": 1},
        ],
    )
    plan = create_plan(
        session, home.alice.id, home.household.id, 6, 2024, "June", template_id=template.id
    ).unwrap()

    tasks = session.exec(select(Task).where(Task.monthly_plan_id == plan.id)).all()
    assignments = assignees_by_task(session)
    laundry = [t for t in tasks if t.name == "Laundry"]
    plants = [t for t in tasks if t.name == "Plants"]
    assert all(assignments[t.id] == {home.bob.id} for t in laundry)
    assert all(t.id not in assignments for t in plants)


def test_template_without_tasks_gives_empty_plan(session: Session, home):
    template = build_template(session, home, [])
    result = create_plan(
        session, home.alice.id, home.household.id, 1, 2025, "January", template_id=template.id
    )
    assert result.is_ok
    assert session.exec(select(Task)).all() == []


def test_duplicate_plan_rejected(session: Session, home):
    first = create_plan(session, home.alice.id, home.household.id, 3, 2024, "March")
    second = create_plan(session, home.bob.id, home.household.id, 3, 2024, "March again")
    assert first.is_ok
    assert isinstance(second.error, DuplicatePlanError)
    plans_left = session.exec(select(MonthlyPlan)).all()
    assert [p.name for p in plans_left] == ["March"]


def test_same_month_allowed_for_other_household(session: Session, home):
    create_plan(session, home.alice.id, home.household.id, 3, 2024, "March").unwrap()
    other = create_plan(session, home.carol.id, home.neighbours.id, 3, 2024, "March")
    assert other.is_ok


def test_duplicate_detected_by_constraint_when_check_is_raced(session: Session, home, monkeypatch):
    create_plan(session, home.alice.id, home.household.id, 3, 2024, "March").unwrap()
    monkeypatch.setattr(plans, "find_plan", lambda *args, **kwargs: None)

    result = create_plan(session, home.bob.id, home.household.id, 3, 2024, "Racing")
    assert isinstance(result.error, DuplicatePlanError)
    assert len(session.exec(select(MonthlyPlan)).all()) == 1


def test_failure_mid_expansion_persists_nothing(session: Session, home, monkeypatch):
    template = build_template(
        session,
        home,
        [
            {"name": "Vacuum", "times_per_month": 4, "story_points": 3, "assign_to_all": True},
            {"name": "Windows", "times_per_month": 2, "story_points": 8},
        ],
    )
    real_resolve = plans.resolve_for_template_task
    calls = []

    def flaky_resolve(template_task, members):
        calls.append(template_task.id)
        if len(calls) == 2:
            raise OperationalError("INSERT INTO taskassignment", {}, Exception("connection lost"))
        return real_resolve(template_task, members)

    monkeypatch.setattr(plans, "resolve_for_template_task", flaky_resolve)
    result = create_plan(
        session, home.alice.id, home.household.id, 7, 2024, "July", template_id=template.id
    )

    assert isinstance(result.error, StorageError)
    assert session.exec(select(MonthlyPlan)).all() == []
    assert session.exec(select(Task)).all() == []
    assert session.exec(select(TaskAssignment)).all() == []


def test_non_member_cannot_create_plan(session: Session, home):
    result = create_plan(session, home.carol.id, home.household.id, 3, 2024, "March")
    assert isinstance(result.error, PermissionDeniedError)
    assert session.exec(select(MonthlyPlan)).all() == []


def test_template_from_other_household_not_found(session: Session, home):
    foreign = create_template(session, home.carol.id, home.neighbours.id, "Theirs").unwrap()
    result = create_plan(
        session, home.alice.id, home.household.id, 3, 2024, "March", template_id=foreign.id
    )
    assert isinstance(result.error, RecordNotFoundError)
    missing = create_plan(
        session, home.alice.id, home.household.id, 3, 2024, "March", template_id=4242
    )
    assert isinstance(missing.error, RecordNotFoundError)


@pytest.mark.parametrize("month,year", [(0, 2024), (13, 2024), (5, 1999), (5, 3001)])
def test_month_and_year_ranges(session: Session, home, month, year):
    result = create_plan(session, home.alice.id, home.household.id, month, year, "Bad")
    assert isinstance(result.error, InvalidInputError)


def test_membership_changes_do_not_touch_existing_assignments(session: Session, home):
    template = build_template(
        session,
        home,
        [{"name": "Trash", "times_per_month": 1, "story_points": 2, "assign_to_all": True}],
    )
    plan = create_plan(
        session, home.alice.id, home.household.id, 3, 2024, "March", template_id=template.id
    ).unwrap()
    session.delete(session.get(HouseholdMember, (home.bob.id, home.household.id)))
    session.commit()

    task = session.exec(select(Task).where(Task.monthly_plan_id == plan.id)).one()
    assert assignees_by_task(session)[task.id] == {home.alice.id, home.bob.id}

    april = create_plan(
        session, home.alice.id, home.household.id, 4, 2024, "April", template_id=template.id
    ).unwrap()
    april_task = session.exec(select(Task).where(Task.monthly_plan_id == april.id)).one()
    assert assignees_by_task(session)[april_task.id] == {home.alice.id}


def test_duplicate_reported_before_template_lookup(session: Session, home):
    create_plan(session, home.alice.id, home.household.id, 3, 2024, "March").unwrap()
    foreign = create_template(session, home.carol.id, home.neighbours.id, "Theirs").unwrap()
    result = create_plan(
        session, home.alice.id, home.household.id, 3, 2024, "Again", template_id=foreign.id
    )
    assert isinstance(result.error, DuplicatePlanError)


def test_unexpected_error_rolls_back_before_propagating(session: Session, home, monkeypatch):
    template = build_template(
        session, home, [{"name": "Vacuum", "times_per_month": 2, "story_points": 3}]
    )

    def broken_resolve(template_task, members):
        raise RuntimeError("resolver exploded")

    monkeypatch.setattr(plans, "resolve_for_template_task", broken_resolve)
    with pytest.raises(RuntimeError):
        create_plan(
            session, home.alice.id, home.household.id, 7, 2024, "July", template_id=template.id
        )

    assert session.exec(select(MonthlyPlan)).all() == []
    assert session.exec(select(Task)).all() == []
