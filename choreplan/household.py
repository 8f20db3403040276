"""Queries against the household, membership and category records.

These records are owned by the surrounding application; the planning engine
only reads them.
"""

from sqlmodel import Session, select

from .errors import InvalidCategoryError, PermissionDeniedError, RecordNotFoundError
from .models import Category, HouseholdMember, MemberSummary, User


def verify_household_membership(session: Session, user_id: int, household_id: int) -> None:
    membership = session.get(HouseholdMember, (user_id, household_id))
    if not membership:
        raise PermissionDeniedError("Household not found or access denied")


def get_household_member_ids(session: Session, household_id: int) -> set[int]:
    rows = session.exec(
        select(HouseholdMember.user_id).where(HouseholdMember.household_id == household_id)
    ).all()
    return set(rows)


def get_household_members(session: Session, household_id: int) -> list[MemberSummary]:
    users = session.exec(
        select(User)
        .join(HouseholdMember, HouseholdMember.user_id == User.id)
        .where(HouseholdMember.household_id == household_id)
        .order_by(User.first_name, User.last_name, User.id)
    ).all()
    return [MemberSummary(id=u.id, first_name=u.first_name, last_name=u.last_name) for u in users]


def get_users_by_id(session: Session, user_ids: set[int]) -> dict[int, User]:
    if not user_ids:
        return {}
    users = session.exec(select(User).where(User.id.in_(sorted(user_ids)))).all()
    return {u.id: u for u in users}


def get_household_categories(session: Session, household_id: int) -> list[Category]:
    return session.exec(
        select(Category).where(Category.household_id == household_id).order_by(Category.name)
    ).all()


def get_category(session: Session, category_id: int) -> Category:
    category = session.get(Category, category_id)
    if not category:
        raise RecordNotFoundError("Category not found")
    return category


def get_household_category(session: Session, category_id: int, household_id: int) -> Category:
    category = get_category(session, category_id)
    if category.household_id != household_id:
        raise InvalidCategoryError("Category doesn't belong to this household")
    return category
