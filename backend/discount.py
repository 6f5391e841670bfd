import math
from dataclasses import dataclass, replace
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Optional

from config import config


class DiscountConfigError(ValueError):
    """Raised when a draft discount record cannot be turned into a DiscountConfig."""


class DiscountType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED_AMOUNT = "fixed_amount"
    BOTTLE_RETURN = "bottle_return"


# Accepted spellings per field: persistence columns first, then admin UI keys
FIELD_ALIASES = {
    "bottle_return_count": ("bottle_return_count", "bottleReturnCount"),
    "discount_category": ("discount_category", "discountCategory", "discount_type"),
    "start_date": ("start_date", "startDate"),
    "end_date": ("end_date", "endDate"),
    "applicable_scope": ("applicable_scope", "applicableScope", "applicable_to"),
    "max_discount_amount": ("max_discount_amount", "maxDiscountAmount"),
}


@dataclass(frozen=True)
class DiscountConfig:
    """
    A single proposed or persisted discount rule.

    For BOTTLE_RETURN discounts `value` is advisory; the amount actually granted
    always comes from the bottle-return tier matching `bottle_return_count`.
    """
    type: DiscountType
    value: float = 0.0
    bottle_return_count: Optional[int] = None
    discount_category: str = config.DEFAULT_CATEGORY
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    applicable_scope: str = config.UNIVERSAL_SCOPE
    max_discount_amount: Optional[float] = None
    currency: Optional[str] = None
    name: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "type", parse_discount_type(self.type))

    def with_value(self, value: float) -> "DiscountConfig":
        return replace(self, value=float(value))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DiscountConfig":
        """
        Parses a JSON-like discount record.

        Args:
            data: Mapping using either persistence (snake_case) or admin UI (camelCase) keys.

        Returns:
            A DiscountConfig instance.

        Raises:
            DiscountConfigError: If the type is unknown or a field cannot be parsed.
        """
        if not isinstance(data, dict):
            raise DiscountConfigError(f"Discount record must be an object, got {type(data).__name__}")

        discount_type = parse_discount_type(data.get("type"))

        def pick(field):
            for key in FIELD_ALIASES[field]:
                if data.get(key) not in (None, ""):
                    return data[key]
            return None

        max_amount = pick("max_discount_amount")
        return cls(
            type=discount_type,
            value=_parse_number(data.get("value"), "value", default=0.0),
            bottle_return_count=_parse_count(pick("bottle_return_count")),
            discount_category=str(pick("discount_category") or config.DEFAULT_CATEGORY),
            start_date=_parse_date(pick("start_date"), "start_date"),
            end_date=_parse_date(pick("end_date"), "end_date"),
            applicable_scope=str(pick("applicable_scope") or config.UNIVERSAL_SCOPE),
            max_discount_amount=_parse_number(max_amount, "max_discount_amount") if max_amount is not None else None,
            currency=str(data["currency"]).upper() if data.get("currency") else None,
            name=data.get("name"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type.value,
            "value": self.value,
            "bottle_return_count": self.bottle_return_count,
            "discount_type": self.discount_category,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "applicable_to": self.applicable_scope,
            "max_discount_amount": self.max_discount_amount,
            "currency": self.currency,
        }


def parse_discount_type(raw: Any) -> DiscountType:
    if isinstance(raw, DiscountType):
        return raw
    try:
        return DiscountType(str(raw).strip().lower())
    except ValueError:
        allowed = ", ".join(t.value for t in DiscountType)
        raise DiscountConfigError(f"Unknown discount type {raw!r}; expected one of: {allowed}") from None


def _parse_number(raw: Any, field: str, default: float = None) -> float:
    if raw is None or raw == "":
        return default
    if isinstance(raw, bool):
        raise DiscountConfigError(f"{field} must be a number, got {raw!r}")
    try:
        number = float(raw)
    except (TypeError, ValueError):
        raise DiscountConfigError(f"{field} must be a number, got {raw!r}") from None
    if not math.isfinite(number):
        raise DiscountConfigError(f"{field} must be a finite number, got {raw!r}")
    return number


def _parse_count(raw: Any) -> Optional[int]:
    if raw is None:
        return None
    number = _parse_number(raw, "bottle_return_count")
    if not number.is_integer():
        raise DiscountConfigError(f"bottle_return_count must be a whole number, got {raw!r}")
    return int(number)


def _parse_date(raw: Any, field: str) -> Optional[date]:
    if raw is None:
        return None
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    if isinstance(raw, str):
        try:
            # Accepts plain dates as well as full ISO timestamps
            return datetime.fromisoformat(raw.strip()).date()
        except ValueError:
            raise DiscountConfigError(f"{field} must be an ISO date, got {raw!r}") from None
    raise DiscountConfigError(f"{field} must be an ISO date, got {raw!r}")
