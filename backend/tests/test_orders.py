"""
Order grouping and group update tests.

Verifies:
- One group per customer, sorted unpaid first then paid then shipped
- Paid / Unpaid / Partial group edits and the per-item split
- One audit entry per edit, deduplicated across the group
- Stock returns on cancel and delete
"""

import pytest

from balepos.models import Order, PaymentStatus, Product, ShippingStatus
from balepos.services import order_service
from balepos.services.order_service import OrderError, derive_payment_status

from conftest import checkout_items


def _ids(result):
    return [o["id"] for o in result["orders"]]


@pytest.mark.parametrize(
    "paid,total,expected",
    [
        (0, 1_000, PaymentStatus.UNPAID),
        (1, 1_000, PaymentStatus.PARTIAL),
        (999, 1_000, PaymentStatus.PAID),
        (1_000, 1_000, PaymentStatus.PAID),
        (0, 0, PaymentStatus.PAID),
    ],
)
def test_derive_payment_status(paid, total, expected):
    assert derive_payment_status(paid, total) == expected


# =============================================================================
# GROUPING
# =============================================================================


class TestGrouping:

    def test_groups_sorted_by_payment_then_shipping(self, db_session, bale, live_session):
        key = str(live_session.id)
        shipped = checkout_items(bale, key, "shipped_sam", [10_000])
        paid = checkout_items(bale, key, "paid_pia", [20_000])
        checkout_items(bale, key, "owing_olga", [30_000, 5_000])

        order_service.apply_group_update(_ids(shipped), {"payment_status": "Paid", "shipping_status": "Shipped"})
        order_service.apply_group_update(_ids(paid), {"payment_status": "Paid"})

        groups = order_service.session_order_groups(key)
        assert [g["customer_username"] for g in groups] == ["owing_olga", "paid_pia", "shipped_sam"]
        assert groups[0]["quantity"] == 2
        assert groups[0]["total_price_cents"] == 35_000

        paid_only = order_service.session_order_groups(key, filter_status="Paid")
        assert [g["customer_username"] for g in paid_only] == ["paid_pia", "shipped_sam"]

        unpaid_only = order_service.session_order_groups(key, filter_status="Unpaid")
        assert [g["customer_username"] for g in unpaid_only] == ["owing_olga"]

    def test_newest_first_within_rank(self, db_session, bale, live_session):
        key = str(live_session.id)
        checkout_items(bale, key, "first_fay", [10_000])
        checkout_items(bale, key, "second_sol", [10_000])
        groups = order_service.session_order_groups(key)
        assert [g["customer_username"] for g in groups] == ["second_sol", "first_fay"]

    def test_search_and_vip_flag(self, db_session, bale, live_session, vip_customer):
        key = str(live_session.id)
        checkout_items(bale, key, vip_customer.username, [10_000])
        checkout_items(bale, key, "pawlover_jen", [10_000])

        groups = order_service.session_order_groups(key, search="DOG")
        assert len(groups) == 1
        assert groups[0]["is_customer_vip"] is True

    def test_unknown_filter(self, db_session, live_session):
        with pytest.raises(ValueError):
            order_service.session_order_groups(str(live_session.id), filter_status="Shipped")


# =============================================================================
# GROUP UPDATES
# =============================================================================


class TestGroupUpdate:

    def test_partial_split_proportionally(self, db_session, bale, live_session):
        result = checkout_items(bale, str(live_session.id), "pawlover_jen", [50_000, 25_000])
        group = order_service.apply_group_update(
            _ids(result), {"payment_status": "Partial", "amount_paid_cents": 37_500},
        )

        by_total = {o.total_price_cents: o for o in group.items}
        assert by_total[50_000].amount_paid_cents == 25_000
        assert by_total[25_000].amount_paid_cents == 12_500
        assert all(o.payment_status == PaymentStatus.PARTIAL for o in group.items)
        assert group.amount_paid_cents == 37_500
        assert group.payment_status == PaymentStatus.PARTIAL

    def test_paid_then_unpaid(self, db_session, bale, live_session):
        result = checkout_items(bale, str(live_session.id), "pawlover_jen", [50_000, 25_000])
        group = order_service.apply_group_update(_ids(result), {"payment_status": "Paid"})
        assert [o.amount_paid_cents for o in group.items] == [o.total_price_cents for o in group.items]

        group = order_service.apply_group_update(_ids(result), {"payment_status": "Unpaid"})
        assert group.amount_paid_cents == 0
        assert all(o.payment_status == PaymentStatus.UNPAID for o in group.items)

    def test_amount_alone_derives_status(self, db_session, bale, live_session):
        result = checkout_items(bale, str(live_session.id), "pawlover_jen", [50_000, 25_000])
        group = order_service.apply_group_update(_ids(result), {"amount_paid_cents": 75_000})
        assert group.payment_status == PaymentStatus.PAID
        assert all(o.payment_status == PaymentStatus.PAID for o in group.items)

    def test_one_audit_entry_for_the_group(self, db_session, bale, live_session):
        result = checkout_items(bale, str(live_session.id), "pawlover_jen", [50_000, 25_000])
        order_service.apply_group_update(
            _ids(result), {"payment_status": "Paid", "payment_method": "GCash", "reference_number": "TX-9"},
        )

        rows = order_service.group_log_rows(_ids(result))
        assert len(rows) == 1
        assert [c["field"] for c in rows[0]["changes"]] == ["Status", "Paid", "Method", "Ref"]
        assert rows[0]["changes"][0] == {"field": "Status", "old": "Unpaid", "new": "Paid"}
        assert rows[0]["changes"][1] == {"field": "Paid", "old": "0", "new": "750"}

    def test_no_change_no_entry(self, db_session, bale, live_session):
        result = checkout_items(bale, str(live_session.id), "pawlover_jen", [50_000])
        order_service.apply_group_update(_ids(result), {"shipping_status": "Pending"})
        assert order_service.group_log_rows(_ids(result)) == []

    def test_unknown_field_rejected(self, db_session, bale, live_session):
        result = checkout_items(bale, str(live_session.id), "pawlover_jen", [50_000])
        with pytest.raises(ValueError):
            order_service.apply_group_update(_ids(result), {"quantity": 4})

    def test_missing_ids_reported(self, db_session):
        with pytest.raises(OrderError) as exc:
            order_service.apply_group_update([9_999], {"payment_status": "Paid"})
        assert exc.value.details == {"missing_ids": [9_999]}


# =============================================================================
# STOCK
# =============================================================================


class TestStockReturns:

    def _product(self, db_session, bale, price):
        return db_session.query(Product).filter_by(sku=f"live-{bale.id}-{price}").one()

    def test_cancel_returns_stock_once(self, db_session, bale, live_session):
        result = checkout_items(bale, str(live_session.id), "pawlover_jen", [10_000, 10_000])
        order_id = _ids(result)[0]
        assert self._product(db_session, bale, 10_000).stock == -2

        order_service.update_order(order_id, {"shipping_status": ShippingStatus.CANCELLED})
        assert self._product(db_session, bale, 10_000).stock == 0

        order_service.update_order(order_id, {"shipping_status": ShippingStatus.RTS})
        assert self._product(db_session, bale, 10_000).stock == 0

        summary = order_service.delete_orders([order_id])
        assert summary["stock_returned"] == 0
        assert self._product(db_session, bale, 10_000).stock == 0

    def test_cancelled_orders_leave_totals(self, db_session, bale, live_session):
        result = checkout_items(bale, str(live_session.id), "pawlover_jen", [10_000])
        order_service.update_order(_ids(result)[0], {"shipping_status": ShippingStatus.CANCELLED})
        assert live_session.total_sales_cents == 0
        assert live_session.total_orders == 0

    def test_delete_group(self, db_session, bale, live_session):
        checkout_items(bale, str(live_session.id), "pawlover_jen", [10_000, 20_000])
        summary = order_service.delete_group(str(live_session.id), "pawlover_jen")
        assert summary["deleted"] == 2
        assert db_session.query(Order).count() == 0

        with pytest.raises(OrderError):
            order_service.delete_group(str(live_session.id), "pawlover_jen")
