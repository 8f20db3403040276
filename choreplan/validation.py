from typing import Optional

from .errors import InvalidInputError
from .models import FIBONACCI_POINTS, MAX_TIMES_PER_MONTH

MAX_NAME_LENGTH = 100
MAX_DESCRIPTION_LENGTH = 500
MIN_YEAR = 2000
MAX_YEAR = 3000


def clean_name(name: str, label: str = "Name") -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise InvalidInputError(f"{label} is required")
    if len(cleaned) > MAX_NAME_LENGTH:
        raise InvalidInputError(f"{label} must be less than {MAX_NAME_LENGTH} characters")
    return cleaned


def clean_description(description: Optional[str]) -> Optional[str]:
    if description is None:
        return None
    cleaned = description.strip()
    if len(cleaned) > MAX_DESCRIPTION_LENGTH:
        raise InvalidInputError(
            f"Description must be less than {MAX_DESCRIPTION_LENGTH} characters"
        )
    return cleaned or None


def check_story_points(story_points: int) -> None:
    if story_points not in FIBONACCI_POINTS:
        raise InvalidInputError(
            "Story points must be a Fibonacci number (1, 2, 3, 5, 8, 13, 21, etc.)"
        )


def check_times_per_month(times_per_month: int) -> None:
    if not 1 <= times_per_month <= MAX_TIMES_PER_MONTH:
        raise InvalidInputError(f"Times per month must be between 1 and {MAX_TIMES_PER_MONTH}")


def check_month_year(month: int, year: int) -> None:
    if not 1 <= month <= 12:
        raise InvalidInputError("Month must be between 1 and 12")
    if not MIN_YEAR <= year <= MAX_YEAR:
        raise InvalidInputError(f"Year must be between {MIN_YEAR} and {MAX_YEAR}")
