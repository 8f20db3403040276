from typing import Iterable, Optional

from .models import TemplateTask


def resolve_assignees(
    assign_to_all: bool,
    explicit_user_ids: Optional[Iterable[int]],
    current_members: set[int],
) -> set[int]:
    if assign_to_all:
        return set(current_members)
    if not explicit_user_ids:
        return set()
    # Ids of people outside the household are dropped without an error.
    return {user_id for user_id in explicit_user_ids if user_id in current_members}


def resolve_for_template_task(template_task: TemplateTask, current_members: set[int]) -> set[int]:
    explicit = [a.user_id for a in template_task.assignments]
    return resolve_assignees(template_task.assign_to_all, explicit, current_members)
