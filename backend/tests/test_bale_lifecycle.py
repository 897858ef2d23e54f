"""
Bale lifecycle tests.

Verifies:
- Sold/revenue/target figures ignore cancelled orders and include cart lines
- Automatic status moves (Sold Out, back to On Sale, first sale)
- Active/Completed listing and delete protection
"""

import pytest

from balepos.models import Bale, BaleStatus, Order, ShippingStatus
from balepos.services import bale_service, order_service
from balepos.services.bale_service import BaleError, compute_bale_stats, next_bale_status

from conftest import checkout_items


def _order(quantity, total, *, shipping=ShippingStatus.PENDING, freebie=False):
    return Order(quantity=quantity, total_price_cents=total, shipping_status=shipping, is_freebie=freebie)


# =============================================================================
# PURE FIGURES
# =============================================================================


class TestComputeBaleStats:

    def test_counts_sold_revenue_and_target(self):
        bale = Bale(id=1, name="B", cost_cents=1_000_000, item_count=100)
        orders = [
            _order(3, 30_000),
            _order(1, 0, freebie=True),
            _order(5, 50_000, shipping=ShippingStatus.CANCELLED),
        ]
        stats = compute_bale_stats(bale, orders)

        assert stats.sold_count == 4
        assert stats.revenue_cents == 30_000
        assert stats.freebies_count == 1
        assert stats.remaining == 96
        assert stats.target_price_cents == round(970_000 / 96)
        assert stats.progress_pct == 3.0
        assert stats.roi_pct == 3.0
        assert stats.profit_cents == -970_000
        assert stats.is_profitable is False

    def test_rts_orders_still_count(self):
        bale = Bale(id=1, name="B", cost_cents=10_000, item_count=10)
        stats = compute_bale_stats(bale, [_order(2, 4_000, shipping=ShippingStatus.RTS)])
        assert stats.sold_count == 2

    def test_cart_lines_only_for_this_bale(self):
        bale = Bale(id=7, name="B", cost_cents=10_000, item_count=10)
        lines = [
            {"bale_id": 7, "price_cents": 1_000, "quantity": 2},
            {"bale_id": 8, "price_cents": 9_000, "quantity": 5},
        ]
        stats = compute_bale_stats(bale, [], lines)
        assert stats.sold_count == 2
        assert stats.revenue_cents == 2_000
        assert stats.remaining == 8

    def test_free_bale_is_fully_recovered(self):
        bale = Bale(id=1, name="B", cost_cents=0, item_count=5)
        stats = compute_bale_stats(bale, [])
        assert stats.progress_pct == 100.0
        assert stats.roi_pct == 0.0
        assert stats.is_profitable is True

    def test_sold_out_bale_has_no_target_price(self):
        bale = Bale(id=1, name="B", cost_cents=10_000, item_count=1)
        stats = compute_bale_stats(bale, [_order(2, 500)])
        assert stats.remaining == 0
        assert stats.target_price_cents == 0


@pytest.mark.parametrize(
    "current,sold,items,expected",
    [
        (BaleStatus.ON_SALE, 100, 100, BaleStatus.SOLD_OUT),
        (BaleStatus.ORDERED, 120, 100, BaleStatus.SOLD_OUT),
        (BaleStatus.SOLD_OUT, 99, 100, BaleStatus.ON_SALE),
        (BaleStatus.ORDERED, 1, 100, BaleStatus.ON_SALE),
        (BaleStatus.ARRIVED, 1, 100, BaleStatus.ON_SALE),
        (BaleStatus.ARRIVED, 0, 100, BaleStatus.ARRIVED),
        (BaleStatus.ON_SALE, 0, 100, BaleStatus.ON_SALE),
        (BaleStatus.ARRIVED, 5, 0, BaleStatus.ARRIVED),
    ],
)
def test_next_bale_status(current, sold, items, expected):
    assert next_bale_status(current, sold, items) == expected


# =============================================================================
# STATUS AFTER ORDER MUTATIONS
# =============================================================================


class TestStatusFollowsOrders:

    def test_sells_out_and_reopens(self, db_session, small_bale, live_session):
        result = checkout_items(small_bale, str(live_session.id), "pawlover_jen", [15_000, 12_000])
        assert db_session.get(Bale, small_bale.id).status == BaleStatus.SOLD_OUT

        order_service.delete_orders([result["orders"][0]["id"]])
        assert db_session.get(Bale, small_bale.id).status == BaleStatus.ON_SALE

    def test_cancelling_reopens(self, db_session, small_bale, live_session):
        result = checkout_items(small_bale, str(live_session.id), "pawlover_jen", [15_000, 12_000])
        order_service.update_order(result["orders"][1]["id"], {"shipping_status": ShippingStatus.CANCELLED})
        assert db_session.get(Bale, small_bale.id).status == BaleStatus.ON_SALE

    def test_completed_filter_needs_full_payment(self, db_session, small_bale, live_session):
        result = checkout_items(small_bale, str(live_session.id), "pawlover_jen", [15_000, 12_000])

        active = bale_service.list_bales(filter_status=bale_service.FILTER_ACTIVE)
        assert [row["id"] for row in active] == [small_bale.id]
        assert active[0]["is_fully_paid"] is False

        ids = [o["id"] for o in result["orders"]]
        order_service.apply_group_update(ids, {"payment_status": "Paid"})
        completed = bale_service.list_bales(filter_status=bale_service.FILTER_COMPLETED)
        assert [row["id"] for row in completed] == [small_bale.id]
        assert bale_service.list_bales(filter_status=bale_service.FILTER_ACTIVE) == []

    def test_unknown_filter_rejected(self, db_session):
        with pytest.raises(ValueError):
            bale_service.list_bales(filter_status="Archived")


class TestBaleCrud:

    def test_create_and_update(self, db_session):
        bale = bale_service.create_bale({"name": "Korean Knit", "cost_cents": 1_500_000, "item_count": 250})
        assert bale.status == BaleStatus.ORDERED

        bale_service.update_bale(bale.id, {"status": BaleStatus.ARRIVED})
        assert db_session.get(Bale, bale.id).status == BaleStatus.ARRIVED

    def test_delete_refused_with_orders(self, db_session, bale, live_session):
        checkout_items(bale, str(live_session.id), "pawlover_jen", [10_000])
        with pytest.raises(BaleError) as exc:
            bale_service.delete_bale(bale.id)
        assert exc.value.details == {"order_count": 1}

    def test_customer_breakdown(self, db_session, bale, live_session):
        checkout_items(bale, str(live_session.id), "pawlover_jen", [10_000, 10_000])
        checkout_items(bale, str(live_session.id), "dogmom_ph", [50_000])

        rows = bale_service.bale_customer_breakdown(bale.id)
        assert [r["username"] for r in rows] == ["dogmom_ph", "pawlover_jen"]
        assert rows[1]["total_quantity"] == 2
        assert rows[1]["transactions"][0]["session_name"] == "Friday Live"
