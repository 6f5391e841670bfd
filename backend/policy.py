import copy
import json
import logging
import math
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Mapping, Optional, Tuple

from config import config

logger = logging.getLogger(__name__)

# Used when neither the requested category nor "regular" has a limit
FALLBACK_MAX_DURATION_DAYS = 30

DEFAULT_POLICY_DATA: Dict[str, Any] = {
    "percentage": {
        "minPercentage": 1,
        "maxPercentage": 75,
    },
    "fixedAmount": {
        "minAmount": 1,
        "maxAmount": 1000,
        "currencyLimits": {
            "USD": {"min": 1, "max": 1000},
            "EUR": {"min": 1, "max": 900},
            "GBP": {"min": 1, "max": 800},
        },
    },
    "bottleReturn": {
        "minBottleCount": 1,
        "maxBottleCount": 20,
        "tiers": [
            {"bottles": 1, "discountAmount": 1000, "description": "Eco Starter"},
            {"bottles": 2, "discountAmount": 2000, "description": "Green Warrior"},
            {"bottles": 3, "discountAmount": 3000, "description": "Eco Champion"},
            {"bottles": 4, "discountAmount": 4000, "description": "Environmental Hero"},
        ],
    },
    "customerTiers": {
        "bronze": {"maxDiscountPercentage": 15, "maxConcurrentDiscounts": 2},
        "silver": {"maxDiscountPercentage": 25, "maxConcurrentDiscounts": 3},
        "gold": {"maxDiscountPercentage": 40, "maxConcurrentDiscounts": 4},
        "platinum": {"maxDiscountPercentage": 60, "maxConcurrentDiscounts": 5},
        "vip": {"maxDiscountPercentage": 75, "maxConcurrentDiscounts": 10},
    },
    "stacking": {
        "allowStacking": True,
        "maxStackedDiscounts": 3,
        "maxCombinedPercentage": 50,
        "stackingMatrix": {
            "percentage": ["bottle_return", "loyalty_bonus"],
            "fixed_amount": ["bottle_return"],
            "bottle_return": ["percentage", "fixed_amount", "loyalty_bonus"],
            "loyalty_bonus": ["percentage", "bottle_return"],
        },
    },
    "temporal": {
        "maxDurationDays": {
            "flash_sale": 3,
            "weekly_promotion": 7,
            "monthly_campaign": 31,
            "seasonal": 90,
            "annual": 365,
            "regular": 30,
        },
    },
}

# Keys whose override replaces the default wholesale instead of merging into it
REPLACED_KEYS = {"tiers", "stackingMatrix"}


class PolicyError(ValueError):
    """Raised when discount policy data is malformed."""


@dataclass(frozen=True)
class Bounds:
    min: float
    max: float

    def contains(self, value: float) -> bool:
        return self.min <= value <= self.max


@dataclass(frozen=True)
class BottleReturnTier:
    bottle_count: int
    discount_amount: float
    label: str = ""


@dataclass(frozen=True)
class TierLimit:
    max_discount_percentage: float
    max_concurrent_discounts: int


@dataclass(frozen=True)
class StackingRules:
    allow_stacking: bool
    max_stacked_discounts: int
    max_combined_percentage: float
    compatibility_matrix: Mapping[str, FrozenSet[str]]

    def can_combine(self, first: str, second: str) -> bool:
        return second in self.compatibility_matrix.get(first, frozenset())


@dataclass(frozen=True)
class DiscountPolicy:
    """
    Immutable business-rule bounds against which discounts are validated and priced.

    Built once per process (see get_policy) and passed explicitly into every
    rules call, so alternate policies can be injected freely in tests.
    """
    percentage: Bounds
    fixed_amount: Bounds
    currency_limits: Mapping[str, Bounds]
    bottle_count: Bounds
    bottle_return_tiers: Tuple[BottleReturnTier, ...]
    customer_tier_limits: Mapping[str, TierLimit]
    stacking_rules: StackingRules
    temporal_rules: Mapping[str, int]

    def find_tier(self, bottle_count: Optional[int]) -> Optional[BottleReturnTier]:
        for tier in self.bottle_return_tiers:
            if tier.bottle_count == bottle_count:
                return tier
        return None

    def fixed_amount_bounds(self, currency: Optional[str] = None) -> Bounds:
        if currency and currency.upper() in self.currency_limits:
            return self.currency_limits[currency.upper()]
        return self.fixed_amount

    def max_duration_days(self, category: Optional[str]) -> int:
        if category in self.temporal_rules:
            return self.temporal_rules[category]
        return self.temporal_rules.get(config.DEFAULT_CATEGORY, FALLBACK_MAX_DURATION_DAYS)


def _merge(base: Dict[str, Any], overrides: Mapping[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in overrides.items():
        if key not in REPLACED_KEYS and isinstance(value, Mapping) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def _number(raw: Any, key: str, minimum: float = 0) -> float:
    if isinstance(raw, bool) or not isinstance(raw, (int, float)) or not math.isfinite(raw):
        raise PolicyError(f"{key} must be a number, got {raw!r}")
    if raw < minimum:
        raise PolicyError(f"{key} must be >= {minimum}, got {raw!r}")
    return float(raw)


def _integer(raw: Any, key: str, minimum: int = 0) -> int:
    value = _number(raw, key, minimum)
    if not value.is_integer():
        raise PolicyError(f"{key} must be a whole number, got {raw!r}")
    return int(value)


def _bounds(low: Any, high: Any, key: str) -> Bounds:
    bounds = Bounds(_number(low, f"{key}.min"), _number(high, f"{key}.max"))
    if bounds.min > bounds.max:
        raise PolicyError(f"{key}: min {bounds.min} exceeds max {bounds.max}")
    return bounds


def _section(data: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    section = data.get(key)
    if not isinstance(section, Mapping):
        raise PolicyError(f"{key} must be an object")
    return section


def _build_tiers(raw_tiers: Any) -> Tuple[BottleReturnTier, ...]:
    if not isinstance(raw_tiers, list):
        raise PolicyError("bottleReturn.tiers must be a list")

    tiers = []
    seen = set()
    for i, raw in enumerate(raw_tiers):
        if not isinstance(raw, Mapping):
            raise PolicyError(f"bottleReturn.tiers[{i}] must be an object")
        count = _integer(raw.get("bottles"), f"bottleReturn.tiers[{i}].bottles", minimum=1)
        if count in seen:
            raise PolicyError(f"bottleReturn.tiers: duplicate tier for {count} bottle(s)")
        seen.add(count)
        tiers.append(BottleReturnTier(
            bottle_count=count,
            discount_amount=_number(raw.get("discountAmount"), f"bottleReturn.tiers[{i}].discountAmount"),
            label=str(raw.get("description", "")),
        ))
    return tuple(tiers)


def build_policy(data: Mapping[str, Any]) -> DiscountPolicy:
    """
    Turns a complete nested policy mapping into a DiscountPolicy.

    Args:
        data: Mapping using the camelCase keys of DEFAULT_POLICY_DATA.

    Returns:
        The immutable DiscountPolicy.

    Raises:
        PolicyError: If any section is missing or carries malformed values.
    """
    percentage = _section(data, "percentage")
    fixed = _section(data, "fixedAmount")
    bottle = _section(data, "bottleReturn")
    stacking = _section(data, "stacking")
    temporal = _section(data, "temporal")
    tiers = _section(data, "customerTiers")

    currency_limits = {}
    for currency, limits in (fixed.get("currencyLimits") or {}).items():
        if not isinstance(limits, Mapping):
            raise PolicyError(f"fixedAmount.currencyLimits.{currency} must be an object")
        currency_limits[currency.upper()] = _bounds(
            limits.get("min"), limits.get("max"), f"fixedAmount.currencyLimits.{currency}"
        )

    tier_limits = {}
    for name, limits in tiers.items():
        if not isinstance(limits, Mapping):
            raise PolicyError(f"customerTiers.{name} must be an object")
        tier_limits[name] = TierLimit(
            max_discount_percentage=_number(limits.get("maxDiscountPercentage"), f"customerTiers.{name}.maxDiscountPercentage"),
            max_concurrent_discounts=_integer(limits.get("maxConcurrentDiscounts", 1), f"customerTiers.{name}.maxConcurrentDiscounts"),
        )

    matrix = stacking.get("stackingMatrix") or {}
    if not isinstance(matrix, Mapping):
        raise PolicyError("stacking.stackingMatrix must be an object")

    allow_stacking = stacking.get("allowStacking")
    if not isinstance(allow_stacking, bool):
        raise PolicyError(f"stacking.allowStacking must be true or false, got {allow_stacking!r}")

    max_combined = _number(stacking.get("maxCombinedPercentage"), "stacking.maxCombinedPercentage")
    if max_combined > 100:
        raise PolicyError(f"stacking.maxCombinedPercentage must be <= 100, got {max_combined}")

    durations = temporal.get("maxDurationDays") or {}
    if not isinstance(durations, Mapping):
        raise PolicyError("temporal.maxDurationDays must be an object")

    bottle_count = _bounds(bottle.get("minBottleCount"), bottle.get("maxBottleCount"), "bottleReturn")
    tiers = _build_tiers(bottle.get("tiers"))
    for tier in tiers:
        if not bottle_count.contains(tier.bottle_count):
            raise PolicyError(
                f"bottleReturn.tiers: tier for {tier.bottle_count} bottle(s) is outside "
                f"the {bottle_count.min:g}..{bottle_count.max:g} bottle count bounds"
            )

    return DiscountPolicy(
        percentage=_bounds(percentage.get("minPercentage"), percentage.get("maxPercentage"), "percentage"),
        fixed_amount=_bounds(fixed.get("minAmount"), fixed.get("maxAmount"), "fixedAmount"),
        currency_limits=MappingProxyType(currency_limits),
        bottle_count=bottle_count,
        bottle_return_tiers=tiers,
        customer_tier_limits=MappingProxyType(tier_limits),
        stacking_rules=StackingRules(
            allow_stacking=allow_stacking,
            max_stacked_discounts=_integer(stacking.get("maxStackedDiscounts"), "stacking.maxStackedDiscounts"),
            max_combined_percentage=max_combined,
            compatibility_matrix=MappingProxyType({k: frozenset(v) for k, v in matrix.items()}),
        ),
        temporal_rules=MappingProxyType({
            k: _integer(v, f"temporal.maxDurationDays.{k}") for k, v in durations.items()
        }),
    )


def load_policy(overrides: Optional[Mapping[str, Any]] = None) -> DiscountPolicy:
    """
    Builds a policy from the defaults, with any supplied keys taking precedence.
    """
    if overrides is not None and not isinstance(overrides, Mapping):
        raise PolicyError("Policy overrides must be an object")
    return build_policy(_merge(DEFAULT_POLICY_DATA, overrides or {}))


def load_policy_file(path: str) -> DiscountPolicy:
    """
    Reads policy overrides from a JSON file.

    Args:
        path: Location of the JSON document.

    Returns:
        The merged DiscountPolicy.

    Raises:
        PolicyError: If the file is missing, is not valid JSON, or holds bad values.
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            overrides = json.load(f)
    except OSError as e:
        raise PolicyError(f"Cannot read policy file {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise PolicyError(f"Policy file {path} is not valid JSON: {e}") from e
    return load_policy(overrides)


_POLICY_CACHE: Dict[str, DiscountPolicy] = {}


def get_policy() -> DiscountPolicy:
    """
    Returns the process-wide policy, loading it on first use.

    Uses DISCOUNT_POLICY_PATH when set, otherwise the built-in defaults.
    """
    if "active" in _POLICY_CACHE:
        return _POLICY_CACHE["active"]

    if config.POLICY_PATH:
        policy = load_policy_file(config.POLICY_PATH)
        logger.info(f"Loaded discount policy from {config.POLICY_PATH}")
    else:
        policy = load_policy()
        logger.info("Loaded built-in discount policy")

    _POLICY_CACHE["active"] = policy
    return policy


def reset_policy_cache() -> None:
    _POLICY_CACHE.clear()
