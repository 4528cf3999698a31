"""
Income Range Menu
=================

The fixed set of thresholds a principal may prove their income exceeds.
"""

import re

from taxproof.errors import ValidationError
from taxproof.zk.models import IncomeRange


INCOME_RANGES: tuple[IncomeRange, ...] = (
    IncomeRange(id="range1", label="Income > 300,000 BDT", threshold=300_000),
    IncomeRange(id="range2", label="Income > 400,000 BDT", threshold=400_000),
    IncomeRange(id="range3", label="Income > 700,000 BDT", threshold=700_000),
    IncomeRange(id="range4", label="Income > 1,100,000 BDT", threshold=1_100_000),
    IncomeRange(id="range5", label="Income > 1,600,000 BDT", threshold=1_600_000),
)

_THRESHOLD_EXPR = re.compile(r">\s*([\d,]+)")


def available_income_ranges() -> list[IncomeRange]:
    return list(INCOME_RANGES)


def resolve_income_range(income_range: str) -> IncomeRange:
    """
    Resolve a range id, menu label, or "> N" expression to a threshold.

    Examples:
        resolve_income_range("range3").threshold         # 700000
        resolve_income_range("Income > 700,000 BDT")     # same entry
        resolve_income_range(">700000").threshold        # 700000

    Raises:
        ValidationError: Nothing in the value names a threshold.
    """
    if not isinstance(income_range, str) or not income_range.strip():
        raise ValidationError("Income range is required", field="income_range")

    wanted = income_range.strip().lower()
    for entry in INCOME_RANGES:
        if wanted in (entry.id.lower(), entry.label.lower()):
            return entry

    match = _THRESHOLD_EXPR.search(income_range)
    if match:
        digits = match.group(1).replace(",", "")
        if digits:
            threshold = int(digits)
            for entry in INCOME_RANGES:
                if entry.threshold == threshold:
                    return entry
            return IncomeRange(id="custom", label=f"Income > {threshold:,}", threshold=threshold)

    raise ValidationError(
        f"Cannot determine a threshold from income range '{income_range}'",
        field="income_range",
    )
