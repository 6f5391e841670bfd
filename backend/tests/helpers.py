import json
from dataclasses import replace
from datetime import date
from discount import DiscountConfig, DiscountType

def percentage(value, **kwargs):
    return DiscountConfig(type=DiscountType.PERCENTAGE, value=value, **kwargs)

def fixed_amount(value, **kwargs):
    return DiscountConfig(type=DiscountType.FIXED_AMOUNT, value=value, **kwargs)

def bottle_return(count, value=0.0, **kwargs):
    return DiscountConfig(type=DiscountType.BOTTLE_RETURN, value=value, bottle_return_count=count, **kwargs)

def windowed(discount, start, end, category=None):
    """Returns a copy of `discount` active between two ISO dates."""
    fields = {
        "start_date": date.fromisoformat(start) if start else None,
        "end_date": date.fromisoformat(end) if end else None,
    }
    if category:
        fields["discount_category"] = category
    return replace(discount, **fields)

def write_json(path, payload):
    path.write_text(json.dumps(payload), encoding="utf-8")
    return str(path)
