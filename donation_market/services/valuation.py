"""
Valuation engine.

Turns the valuation inputs of a listing into its ``estimated_value``:

- a documented manual appraisal always wins;
- items bought for less than the minor-value floor are worth nothing;
- new items keep their full price;
- everything else depreciates by age, with an extra penalty for plain "used".

Category-specific exceptions live in ``CATEGORY_POLICIES`` rather than in the
listing service, so a new category only needs a new policy record.
"""

from datetime import date
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Dict, FrozenSet, Optional, Union

from pydantic import BaseModel

from donation_market.models.schemas import Category, Condition

CENT = Decimal("0.01")
MINOR_VALUE_FLOOR = Decimal("20")
HIGH_VALUE_THRESHOLD = Decimal("1000")
SCRAP_VEHICLE_VALUE = Decimal("150.00")

# (max age in years, share of the original price retained)
DEPRECIATION_STEPS = (
    (1, Decimal("0.60")),
    (2, Decimal("0.50")),
)
OLD_ITEM_RETENTION = Decimal("0.34")
USED_PENALTY = Decimal("0.50")

Number = Union[Decimal, int, float, str]


class CategoryPolicy(BaseModel):
    category: Category
    min_age_years: int = 0
    enforce_value_ceiling: bool = True
    allowed_conditions: FrozenSet[Condition] = frozenset(
        {Condition.NEW, Condition.USED_LIKE_NEW, Condition.USED}
    )
    # Fixed value for a condition that is never run through the formula.
    fixed_values: Dict[Condition, Decimal] = {}

    class Config:
        frozen = True

    def allows(self, condition: Condition) -> bool:
        return condition in self.allowed_conditions

    def fixed_value_for(self, condition: Condition) -> Optional[Decimal]:
        return self.fixed_values.get(condition)

    def ceiling_applies(self, condition: Condition) -> bool:
        return self.enforce_value_ceiling and condition not in self.fixed_values


CATEGORY_POLICIES: Dict[Category, CategoryPolicy] = {
    Category.FURNITURE: CategoryPolicy(category=Category.FURNITURE),
    Category.BOOKS: CategoryPolicy(category=Category.BOOKS),
    Category.ANTIQUE: CategoryPolicy(
        category=Category.ANTIQUE,
        min_age_years=20,
        enforce_value_ceiling=False,
    ),
    Category.VEHICLES: CategoryPolicy(
        category=Category.VEHICLES,
        allowed_conditions=frozenset(
            {Condition.NEW, Condition.USED_LIKE_NEW, Condition.USED, Condition.SCRAP}
        ),
        fixed_values={Condition.SCRAP: SCRAP_VEHICLE_VALUE},
    ),
}


def policy_for(category: Union[Category, str]) -> CategoryPolicy:
    return CATEGORY_POLICIES[Category(category)]


def to_money(value: Number) -> Decimal:
    """Convert to a 2-place Decimal, rounding half-up. Rejects non-numbers."""
    if isinstance(value, bool):
        raise ValueError(f"Not a monetary amount: {value!r}")
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValueError(f"Not a monetary amount: {value!r}")
    if not amount.is_finite():
        raise ValueError(f"Not a monetary amount: {value!r}")
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def calculate_estimated_value(
    condition: Union[Condition, str],
    original_price: Number,
    purchase_year: int,
    current_year: Optional[int] = None,
    appraisal: Optional[Number] = None,
    appraisal_documented: bool = False,
) -> Decimal:
    condition = Condition(condition)
    if current_year is None:
        current_year = date.today().year

    if appraisal is not None and appraisal_documented:
        appraised = to_money(appraisal)
        if appraised < 0:
            raise ValueError("Appraisal must not be negative")
        return appraised

    if condition == Condition.SCRAP:
        raise ValueError("Scrap items carry a fixed value and are not depreciated")

    price = to_money(original_price)
    if price < 0:
        raise ValueError("Original price must not be negative")
    if isinstance(purchase_year, bool) or not isinstance(purchase_year, int):
        raise ValueError(f"Purchase year must be an integer, got {purchase_year!r}")
    if purchase_year < 0:
        raise ValueError("Purchase year must not be negative")

    if price < MINOR_VALUE_FLOOR:
        return Decimal("0.00")

    if condition == Condition.NEW:
        return price

    age = current_year - purchase_year
    retained = OLD_ITEM_RETENTION
    for max_age, share in DEPRECIATION_STEPS:
        if age <= max_age:
            retained = share
            break
    value = price * retained

    if condition == Condition.USED:
        value = value * USED_PENALTY

    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def appraise(
    category: Union[Category, str],
    condition: Union[Condition, str],
    original_price: Number,
    purchase_year: int,
    current_year: Optional[int] = None,
    appraisal: Optional[Number] = None,
    appraisal_documented: bool = False,
) -> Decimal:
    """Apply the category policy, then the depreciation formula."""
    policy = policy_for(category)
    condition = Condition(condition)
    if not policy.allows(condition):
        raise ValueError(f"Condition '{condition.value}' is not valid for {policy.category.value}")

    # A documented appraisal outranks the fixed value.
    fixed = policy.fixed_value_for(condition)
    if fixed is not None and not (appraisal is not None and appraisal_documented):
        return fixed

    return calculate_estimated_value(
        condition,
        original_price,
        purchase_year,
        current_year=current_year,
        appraisal=appraisal,
        appraisal_documented=appraisal_documented,
    )
