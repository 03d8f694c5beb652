import pytest

from storefront.core.errors import InvalidStatusTransition, OptimisticLockError
from storefront.core.state_machine import (
    ORDER_STATUSES, ORDER_TRANSITIONS, StateMachine, can_transition, restores_inventory,
)
from storefront.models.order import Order, next_history_timestamp


ALLOWED = {
    ("pending", "confirmed"), ("pending", "cancelled"),
    ("confirmed", "processing"), ("confirmed", "cancelled"),
    ("processing", "shipped"), ("processing", "cancelled"),
    ("shipped", "delivered"), ("shipped", "returned"),
    ("delivered", "returned"), ("delivered", "refunded"),
    ("cancelled", "refunded"),
    ("returned", "refunded"),
}


def test_transition_table_is_exactly_the_whitelist():
    for src in ORDER_STATUSES:
        for dst in ORDER_STATUSES:
            assert can_transition(src, dst) == ((src, dst) in ALLOWED), (src, dst)


def test_refunded_is_terminal():
    assert ORDER_TRANSITIONS["refunded"] == frozenset()


def test_unknown_status_is_never_allowed():
    assert not can_transition("pending", "lost")
    assert not can_transition("teleported", "pending")


def test_order_walks_the_happy_path():
    o = Order(user_id="u1", id="o1")
    assert o.status == "pending"
    for target in ("confirmed", "processing", "shipped", "delivered"):
        entry = o.transition_to(target, changed_by="admin")
        assert entry.new_status == target
        assert entry.order_id == "o1"
    assert o.status == "delivered"
    assert o.version == 4
    assert o.confirmed_at and o.shipped_at and o.delivered_at
    assert o.cancelled_at is None


def test_invalid_transition_leaves_order_untouched():
    o = Order(user_id="u1", id="o1")
    with pytest.raises(InvalidStatusTransition) as exc:
        o.transition_to("delivered")
    assert exc.value.message == "Cannot transition from pending to delivered"
    assert exc.value.errors[0]["field"] == "status"
    assert o.status == "pending"
    assert o.version == 0
    assert o.updated_at is None


def test_same_status_is_not_a_transition():
    o = Order(user_id="u1", status="confirmed")
    with pytest.raises(InvalidStatusTransition):
        o.transition_to("confirmed")


def test_expected_version_mismatch_raises_before_transition():
    sm = StateMachine(state="pending", version=3)
    with pytest.raises(OptimisticLockError) as exc:
        sm.apply("confirmed", expected_version=2)
    assert (exc.value.expected, exc.value.actual) == (2, 3)
    assert sm.state == "pending"
    assert sm.version == 3

    entry = sm.apply("confirmed", actor="a1", comment="ok", expected_version=3)
    assert sm.state == "confirmed"
    assert sm.version == 4
    assert entry["previous_status"] == "pending"
    assert entry["changed_by"] == "a1"


@pytest.mark.parametrize("src,dst,expected", [
    ("pending", "cancelled", True),
    ("processing", "cancelled", True),
    ("shipped", "returned", True),
    ("delivered", "refunded", True),
    ("cancelled", "refunded", False),
    ("returned", "refunded", False),
    ("pending", "confirmed", False),
    ("shipped", "delivered", False),
])
def test_restores_inventory_only_on_first_entry_into_restoring_status(src, dst, expected):
    assert restores_inventory(src, dst) is expected


def test_history_timestamps_strictly_increase():
    first = next_history_timestamp(None)
    # a "previous" timestamp in the future still yields something later
    future = first.replace(year=first.year + 1)
    assert next_history_timestamp(future) > future
    assert next_history_timestamp(first) > first
