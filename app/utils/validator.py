"""Field validators for worker requests.

Each validator returns a ``ValidationResult`` and never raises. ``value``
carries the normalized field (rounded cents, trimmed text, fetched debt)
and is filled in on a best-effort basis even when the field is invalid,
so callers must check ``valid`` before trusting it.
"""

import math
import re
import sys
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Optional

from app.models.debt import Debt
from app.repositories.debt_repo import DebtRepository

DATE_FORMAT = re.compile(r"^([0-9]{4})-(0[1-9]|1[0-2])-(0[1-9]|[1-2]\d|3[0-1])")
THIRTY_DAY_MONTHS = frozenset({"04", "06", "09", "11"})


@dataclass(frozen=True)
class ValidationResult:
    errors: Dict[str, str] = field(default_factory=dict)
    value: Any = None

    @property
    def valid(self) -> bool:
        return not self.errors


def merge_errors(errors: Dict[str, str], result: ValidationResult) -> Dict[str, str]:
    """Add the result's errors to ``errors`` without overwriting existing fields."""
    for name, message in result.errors.items():
        errors.setdefault(name, message)
    return errors


def round_half_away_from_zero(value: float) -> int:
    return int(Decimal(value).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def validate_amount(amount: Any) -> ValidationResult:
    """
    Check that an amount is a number and convert it to cents.

    A machine epsilon is added before scaling so values such as 1.005 round
    up instead of being truncated by their binary representation.
    """
    text = str(amount).strip()
    try:
        # float() accepts digit separators ("1_000"); an amount never has them
        number = math.nan if "_" in text else float(text)
    except ValueError:
        number = math.nan

    if not math.isfinite(number):
        return ValidationResult({"amount": "Amount is not a number"}, 0)

    rounded = round_half_away_from_zero((number + sys.float_info.epsilon) * 100)
    return ValidationResult({}, rounded)


def _validate_text(text: Optional[str], name: str, missing: str, empty: str) -> ValidationResult:
    if text is None:
        return ValidationResult({name: missing}, "")
    trimmed = text.strip()
    if trimmed == "":
        return ValidationResult({name: empty}, trimmed)
    return ValidationResult({}, trimmed)


def validate_concept(concept: Optional[str]) -> ValidationResult:
    return _validate_text(
        concept, "concept", "Concept must not be empty", "Concept must not be empty",
    )


def validate_loaner(loaner: Optional[str]) -> ValidationResult:
    return _validate_text(
        loaner, "loaner", "Loaner cannot be noone", "Loaner cannot be empty",
    )


def is_leap_year(year: int) -> bool:
    return year % 400 == 0 or (year % 4 == 0 and year % 100 != 0)


def validate_date(date: Optional[str]) -> ValidationResult:
    """
    Check that a date is a real calendar date in YYYY-MM-DD format.

    Only the leading YYYY-MM-DD is inspected, so full ISO timestamps pass.
    """
    match = DATE_FORMAT.match(date) if isinstance(date, str) else None
    if match is None:
        return ValidationResult({"date": "The date must be in YYYY-MM-DD format"})

    year, month, day = match.groups()
    if month == "02":
        if int(day) > 29 or (int(day) == 29 and not is_leap_year(int(year))):
            return ValidationResult({"date": "Invalid date"})
    elif month in THIRTY_DAY_MONTHS and day == "31":
        return ValidationResult({"date": "Invalid date"})

    return ValidationResult()


async def validate_debt_ownership(repo: DebtRepository, user_id: str, debt_id: str) -> ValidationResult:
    """
    Check that the debt exists and belongs to the user.

    On success ``value`` is the fetched ``Debt`` so callers skip a second
    round trip. Store failures propagate.
    """
    debt: Optional[Debt] = await repo.get_by_id(debt_id)
    if debt is None:
        return ValidationResult({"debt_id": "Debt not found"})
    if debt.user_id != user_id:
        return ValidationResult({"user_id": "The user does not own this debt"})
    return ValidationResult({}, debt)
