import logging
import math
import numbers
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import List, Optional, Sequence, Tuple

from config import config
from discount import DiscountConfig, DiscountType
from policy import BottleReturnTier, DiscountPolicy

logger = logging.getLogger(__name__)

# Stacking order: higher applies first; ties keep caller order
TYPE_PRIORITY = {
    DiscountType.PERCENTAGE: 3,
    DiscountType.FIXED_AMOUNT: 2,
    DiscountType.BOTTLE_RETURN: 1,
}


class ErrorKind(str, Enum):
    OUT_OF_RANGE = "OUT_OF_RANGE"
    INVALID_TIER = "INVALID_TIER"
    DURATION_EXCEEDED = "DURATION_EXCEEDED"


@dataclass(frozen=True)
class ValidationIssue:
    kind: ErrorKind
    field: str
    message: str

    def to_dict(self):
        return {"kind": self.kind.value, "field": self.field, "message": self.message}


@dataclass
class ValidationResult:
    """
    Outcome of validating a draft discount.

    `corrected_config` is the config the caller should persist: for bottle
    returns its value is replaced by the matched tier's amount. The draft
    passed in is never modified.
    """
    corrected_config: DiscountConfig
    issues: List[ValidationIssue] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.issues

    @property
    def errors(self) -> List[str]:
        return [issue.message for issue in self.issues]

    def has_error(self, kind: ErrorKind) -> bool:
        return any(issue.kind == kind for issue in self.issues)


@dataclass(frozen=True)
class AppliedDiscount:
    discount: DiscountConfig
    amount: float
    remaining_after: float


@dataclass
class StackedDiscountResult:
    """
    Breakdown of a stacked discount calculation.

    When `clamped` is set the combined-percentage cap cut the walk short and
    `total_discount` is the capped figure, so it can be lower than the sum of
    the applied amounts.
    """
    base_amount: float
    applied: List[AppliedDiscount] = field(default_factory=list)
    total_discount: float = 0.0
    clamped: bool = False

    @property
    def final_amount(self) -> float:
        return self.base_amount - self.total_discount


def _fmt(number: float) -> str:
    return f"{number:g}"


# --- Bottle return & customer tier lookups ---

def get_bottle_return_tiers(policy: DiscountPolicy) -> Tuple[BottleReturnTier, ...]:
    return policy.bottle_return_tiers


def find_bottle_return_tier(bottle_count: Optional[int], policy: DiscountPolicy) -> Optional[BottleReturnTier]:
    return policy.find_tier(bottle_count)


def max_discount_for_tier(tier: str, policy: DiscountPolicy) -> float:
    limit = policy.customer_tier_limits.get(tier)
    return limit.max_discount_percentage if limit else 0.0


def max_concurrent_discounts_for_tier(tier: str, policy: DiscountPolicy) -> int:
    limit = policy.customer_tier_limits.get(tier)
    return limit.max_concurrent_discounts if limit else 0


def validate_customer_tier(tier: str, percentage: float, policy: DiscountPolicy) -> bool:
    """
    Checks a percentage against the ceiling of a customer tier.

    Unknown tiers never qualify.
    """
    limit = policy.customer_tier_limits.get(tier)
    return limit is not None and percentage <= limit.max_discount_percentage


# --- Validation ---

def validate_date_range(start: date, end: date, category: Optional[str], policy: DiscountPolicy) -> bool:
    """
    Checks that a discount window is ordered and within its category's length limit.

    Args:
        start: First day of the window.
        end: Last day of the window.
        category: Temporal category; unknown categories use the "regular" limit.
        policy: Active discount policy.

    Returns:
        True when 0 <= whole days between start and end <= the category maximum.
    """
    duration_days = (end - start).days
    return 0 <= duration_days <= policy.max_duration_days(category)


def _check_percentage(discount: DiscountConfig, policy: DiscountPolicy) -> List[ValidationIssue]:
    bounds = policy.percentage
    if bounds.contains(discount.value):
        return []
    return [ValidationIssue(
        ErrorKind.OUT_OF_RANGE, "value",
        f"Percentage must be between {_fmt(bounds.min)}% and {_fmt(bounds.max)}%",
    )]


def _check_fixed_amount(discount: DiscountConfig, policy: DiscountPolicy) -> List[ValidationIssue]:
    bounds = policy.fixed_amount_bounds(discount.currency)
    if bounds.contains(discount.value):
        return []
    suffix = f" {discount.currency}" if discount.currency else ""
    return [ValidationIssue(
        ErrorKind.OUT_OF_RANGE, "value",
        f"Fixed amount must be between {_fmt(bounds.min)} and {_fmt(bounds.max)}{suffix}",
    )]


def _check_bottle_return(discount: DiscountConfig, policy: DiscountPolicy) -> List[ValidationIssue]:
    # Tier match and count bounds are evaluated independently
    issues = []
    count = discount.bottle_return_count

    if policy.find_tier(count) is None:
        available = ", ".join(str(t.bottle_count) for t in policy.bottle_return_tiers) or "none"
        issues.append(ValidationIssue(
            ErrorKind.INVALID_TIER, "bottle_return_count",
            f"No bottle return tier for {count} bottle(s); available tiers: {available}",
        ))

    bounds = policy.bottle_count
    if count is None or not bounds.contains(count):
        issues.append(ValidationIssue(
            ErrorKind.OUT_OF_RANGE, "bottle_return_count",
            f"Bottle count must be between {_fmt(bounds.min)} and {_fmt(bounds.max)}",
        ))
    return issues


def _check_dates(discount: DiscountConfig, policy: DiscountPolicy) -> List[ValidationIssue]:
    # A window with only one end set is not checked
    if discount.start_date is None or discount.end_date is None:
        return []
    if validate_date_range(discount.start_date, discount.end_date, discount.discount_category, policy):
        return []

    duration_days = (discount.end_date - discount.start_date).days
    if duration_days < 0:
        message = "Invalid date range: end date is before start date"
    else:
        limit = policy.max_duration_days(discount.discount_category)
        message = (
            f"Invalid date range for discount type: {duration_days} days exceeds "
            f"the {limit} day limit for '{discount.discount_category}'"
        )
    return [ValidationIssue(ErrorKind.DURATION_EXCEEDED, "end_date", message)]


_TYPE_CHECKS = {
    DiscountType.PERCENTAGE: _check_percentage,
    DiscountType.FIXED_AMOUNT: _check_fixed_amount,
    DiscountType.BOTTLE_RETURN: _check_bottle_return,
}


def validate_discount_config(discount: DiscountConfig, policy: DiscountPolicy) -> ValidationResult:
    """
    Validates a draft discount against the policy, collecting every failure.

    Args:
        discount: The draft discount.
        policy: Active discount policy.

    Returns:
        A ValidationResult. For bottle returns matching a tier, the corrected
        config carries the tier's discount amount as its value.
    """
    issues = _TYPE_CHECKS[discount.type](discount, policy) + _check_dates(discount, policy)

    corrected = discount
    if discount.type == DiscountType.BOTTLE_RETURN:
        tier = policy.find_tier(discount.bottle_return_count)
        if tier is not None and discount.value != tier.discount_amount:
            corrected = discount.with_value(tier.discount_amount)

    result = ValidationResult(corrected_config=corrected, issues=issues)
    if not result.is_valid:
        logger.warning(f"Discount {discount.name or discount.type.value} failed validation: {result.errors}")
    return result


# --- Calculation ---

def _percentage_amount(amount: float, discount: DiscountConfig, policy: DiscountPolicy) -> float:
    return amount * (discount.value / 100)


def _fixed_amount(amount: float, discount: DiscountConfig, policy: DiscountPolicy) -> float:
    return min(discount.value, amount)


def _bottle_return_amount(amount: float, discount: DiscountConfig, policy: DiscountPolicy) -> float:
    tier = policy.find_tier(discount.bottle_return_count)
    return min(tier.discount_amount, amount) if tier else 0.0


_FORMULAS = {
    DiscountType.PERCENTAGE: _percentage_amount,
    DiscountType.FIXED_AMOUNT: _fixed_amount,
    DiscountType.BOTTLE_RETURN: _bottle_return_amount,
}


def calculate_single_discount(amount: float, discount: DiscountConfig, policy: DiscountPolicy) -> float:
    """
    Discount granted by one discount against `amount`, never below 0 or above `amount`.
    """
    if amount <= 0:
        return 0.0
    raw = _FORMULAS[discount.type](amount, discount, policy)
    return max(0.0, min(raw, amount))


def calculate_discount_amount(discount: DiscountConfig, order_amount: float, policy: DiscountPolicy) -> float:
    """
    Prices a single discount at checkout, honouring its max_discount_amount cap.
    """
    amount = calculate_single_discount(order_amount, discount, policy)
    if discount.max_discount_amount is not None:
        amount = min(amount, discount.max_discount_amount)
    return max(0.0, amount)


def _as_positive_amount(value) -> Optional[float]:
    """Order amount as a float, or None unless it is a finite positive number (Decimal included)."""
    if isinstance(value, bool) or not isinstance(value, (numbers.Real, Decimal)):
        return None
    amount = float(value)
    if not math.isfinite(amount) or amount <= 0:
        return None
    return amount


def apply_stacked_discounts(
    base_amount: float,
    candidates: Sequence[DiscountConfig],
    policy: DiscountPolicy,
) -> StackedDiscountResult:
    """
    Walks the candidate discounts under the policy's stacking rules.

    Each discount is computed against what remains after the previous ones.
    With stacking disabled only the single best discount applies.

    Args:
        base_amount: Pre-discount order total.
        candidates: Discounts already known to apply to the order.
        policy: Active discount policy.

    Returns:
        A StackedDiscountResult; empty when the amount is not positive or
        there are no candidates.
    """
    amount = _as_positive_amount(base_amount)
    if amount is None or not candidates:
        return StackedDiscountResult(base_amount=amount or 0.0)
    base_amount = amount

    rules = policy.stacking_rules
    result = StackedDiscountResult(base_amount=base_amount)

    if not rules.allow_stacking:
        best, best_amount = None, -1.0
        for discount in candidates:
            amount = calculate_single_discount(base_amount, discount, policy)
            if amount > best_amount:
                best, best_amount = discount, amount
        result.applied.append(AppliedDiscount(best, best_amount, base_amount - best_amount))
        result.total_discount = best_amount
        return result

    ordered = sorted(candidates, key=lambda d: -TYPE_PRIORITY[d.type])
    cap_amount = base_amount * (rules.max_combined_percentage / 100)
    remaining = base_amount
    total = 0.0

    for discount in ordered[:rules.max_stacked_discounts]:
        amount = calculate_single_discount(remaining, discount, policy)
        total += amount
        remaining -= amount
        result.applied.append(AppliedDiscount(discount, amount, remaining))
        logger.debug(f"Stacked {discount.type.value} discount of {amount:.2f}, remaining {remaining:.2f}")

        if (total / base_amount) * 100 >= rules.max_combined_percentage:
            total = cap_amount
            result.clamped = True
            break

    result.total_discount = min(total, base_amount)
    return result


def calculate_stacked_discount(
    base_amount: float,
    candidates: Sequence[DiscountConfig],
    policy: DiscountPolicy,
) -> float:
    """
    Net discount for an order when several discounts may combine.

    Never raises: nonsensical input yields 0 so the checkout path can call it
    without guarding.
    """
    try:
        return apply_stacked_discounts(base_amount, candidates, policy).total_discount
    except Exception as e:
        logger.warning(f"Stacked discount calculation failed, applying no discount: {e}")
        return 0.0


# --- Stacking compatibility ---

def _scopes_overlap(first: str, second: str) -> bool:
    universal = config.UNIVERSAL_SCOPE
    return first == second or first == universal or second == universal


def validate_stacking_compatibility(
    existing_discounts: Sequence[DiscountConfig],
    new_discount: DiscountConfig,
    policy: DiscountPolicy,
) -> bool:
    """
    Count-based check: room remains for one more discount on the same scope.

    Type compatibility is a separate check (validate_type_compatibility).
    """
    rules = policy.stacking_rules
    if not rules.allow_stacking:
        return False

    overlapping = [
        d for d in existing_discounts
        if _scopes_overlap(d.applicable_scope, new_discount.applicable_scope)
    ]
    return len(overlapping) < rules.max_stacked_discounts


def validate_type_compatibility(
    existing_discounts: Sequence[DiscountConfig],
    new_discount: DiscountConfig,
    policy: DiscountPolicy,
) -> bool:
    """
    Type-based check against the policy's stacking matrix.

    Every existing discount must be combinable with the new one in both
    directions of the matrix.
    """
    rules = policy.stacking_rules
    if not rules.allow_stacking:
        return False

    new_type = new_discount.type.value
    return all(
        rules.can_combine(new_type, d.type.value) and rules.can_combine(d.type.value, new_type)
        for d in existing_discounts
    )
