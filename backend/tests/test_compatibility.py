from helpers import percentage, fixed_amount, bottle_return
from rules import (
    find_bottle_return_tier,
    get_bottle_return_tiers,
    max_concurrent_discounts_for_tier,
    max_discount_for_tier,
    validate_customer_tier,
    validate_stacking_compatibility,
    validate_type_compatibility,
)

def test_stacking_disabled_rejects_everything(no_stacking_policy):
    assert validate_stacking_compatibility([], percentage(10), no_stacking_policy) is False
    assert validate_type_compatibility([], percentage(10), no_stacking_policy) is False

def test_room_left_on_empty_order(policy):
    assert validate_stacking_compatibility([], percentage(10, applicable_scope="perfumes"), policy)

def test_universal_scope_counts_against_every_scope(policy):
    existing = [fixed_amount(100) for _ in range(3)]  # all default to "all"
    new = percentage(10, applicable_scope="perfumes")
    assert validate_stacking_compatibility(existing, new, policy) is False

def test_unrelated_scopes_are_ignored(policy):
    existing = [
        fixed_amount(100, applicable_scope="accessories"),
        fixed_amount(200, applicable_scope="accessories"),
        bottle_return(1),
    ]
    new = percentage(10, applicable_scope="perfumes")
    assert validate_stacking_compatibility(existing, new, policy) is True

def test_new_universal_discount_overlaps_everything(policy):
    existing = [
        fixed_amount(100, applicable_scope="accessories"),
        fixed_amount(200, applicable_scope="gift_sets"),
        percentage(5, applicable_scope="perfumes"),
    ]
    assert validate_stacking_compatibility(existing, percentage(10), policy) is False

def test_scope_check_ignores_type_matrix(policy):
    # fixed_amount + percentage is not in the matrix but the count check allows it
    existing = [fixed_amount(100)]
    assert validate_stacking_compatibility(existing, percentage(10), policy) is True
    assert validate_type_compatibility(existing, percentage(10), policy) is False

def test_type_matrix_allows_listed_pairs(policy):
    assert validate_type_compatibility([bottle_return(1)], percentage(10), policy)
    assert validate_type_compatibility([bottle_return(1)], fixed_amount(100), policy)
    assert validate_type_compatibility([], fixed_amount(100), policy)

def test_type_matrix_rejects_same_type(policy):
    assert not validate_type_compatibility([percentage(5)], percentage(10), policy)

def test_customer_tier_limits(policy):
    assert max_discount_for_tier("gold", policy) == 40
    assert max_discount_for_tier("diamond", policy) == 0
    assert max_concurrent_discounts_for_tier("vip", policy) == 10
    assert max_concurrent_discounts_for_tier("diamond", policy) == 0

def test_validate_customer_tier(policy):
    assert validate_customer_tier("silver", 25, policy)
    assert not validate_customer_tier("silver", 26, policy)
    assert not validate_customer_tier("diamond", 1, policy)

def test_bottle_return_tier_lookup(policy):
    tiers = get_bottle_return_tiers(policy)
    assert [t.bottle_count for t in tiers] == [1, 2, 3, 4]
    assert find_bottle_return_tier(2, policy).label == "Green Warrior"
    assert find_bottle_return_tier(5, policy) is None
