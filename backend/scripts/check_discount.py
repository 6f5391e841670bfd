#!/usr/bin/env python3
import os
import sys
import json

# Add the parent directory to sys.path to allow imports from the backend
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import setup_logging
from discount import DiscountConfig, DiscountConfigError
from policy import PolicyError, get_policy
from rules import apply_stacked_discounts, validate_discount_config

USAGE = "Usage: check_discount.py <draft.json> [order_amount]"


def print_status(check_name: str, status: bool, details: str = ""):
    """
    Renders the status of a single discount check to the console.

    Args:
        check_name: Human-readable identifier for the check.
        status: Boolean indicating success or failure.
        details: Optional supplementary information.
    """
    color = "\033[92m[OK]\033[0m" if status else "\033[91m[FAIL]\033[0m"
    print(f"{color} {check_name:<30} {details}")


def load_drafts(path: str) -> list:
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    records = data if isinstance(data, list) else [data]
    return [DiscountConfig.from_dict(record) for record in records]


def run_check(draft_path: str, order_amount: float = None) -> int:
    """
    Validates every draft discount in a JSON file and optionally prices an order.

    Args:
        draft_path: JSON file holding one discount object or a list of them.
        order_amount: Optional pre-discount order total to run the stacking walk on.

    Returns:
        Process exit code: 0 when every draft is valid, 1 otherwise.
    """
    print("\n=== Discount Configuration Check ===\n")

    try:
        policy = get_policy()
        drafts = load_drafts(draft_path)
    except (OSError, json.JSONDecodeError, PolicyError, DiscountConfigError) as e:
        print_status("Load drafts and policy", False, str(e))
        return 1

    all_valid = True
    corrected = []
    for i, draft in enumerate(drafts):
        result = validate_discount_config(draft, policy)
        label = draft.name or f"#{i + 1} {draft.type.value}"
        print_status(label, result.is_valid, "; ".join(result.errors))
        all_valid = all_valid and result.is_valid
        corrected.append(result.corrected_config)

    if order_amount is not None:
        stacked = apply_stacked_discounts(order_amount, corrected, policy)
        print(f"\nOrder amount: {order_amount:.2f}")
        for applied in stacked.applied:
            name = applied.discount.name or applied.discount.type.value
            print(f"  - {name:<28} -{applied.amount:.2f}  (remaining {applied.remaining_after:.2f})")
        if stacked.clamped:
            print(f"  Combined discount capped at {policy.stacking_rules.max_combined_percentage:g}%")
        print(f"Total discount: {stacked.total_discount:.2f}")
        print(f"Final amount: {stacked.final_amount:.2f}")

    print("\nDiscount check completed.")
    return 0 if all_valid else 1


def main(argv=None) -> int:
    args = sys.argv[1:] if argv is None else argv
    if not args or len(args) > 2:
        print(USAGE)
        return 2

    order_amount = None
    if len(args) == 2:
        try:
            order_amount = float(args[1])
        except ValueError:
            print(f"Invalid order amount: {args[1]}")
            return 2

    setup_logging()
    return run_check(args[0], order_amount)


if __name__ == "__main__":
    sys.exit(main())
