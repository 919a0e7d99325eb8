"""
Report projections folded from the movement log.
"""
from datetime import date, datetime

import pytest

from wms.errors import NotFoundError, ValidationError
from wms.models.ledger import LOG_TYPE_IN, LOG_TYPE_OUT
from wms.services import outbound_service, product_service, report_service
from wms.services.outbound_service import OutboundLine
from wms.time_utils import utcnow


@pytest.fixture
def october(db_session, receive, admin):
    """P001: initial 10, +50 before the window, -5 and +20 inside it, plus a migration pair."""
    product_service.create_product(name="Carton Box 40x30", category="Packaging", product_id="P001", initial_stock=10)
    first = receive("P001", 50, occurred_at=datetime(2026, 9, 20, 8))
    outbound_service.process_outbound(
        [OutboundLine(first.unique_id, 5, "Store A")], admin, occurred_at=datetime(2026, 10, 2, 8),
    )
    receive("P001", 20, batch_code="B2", occurred_at=datetime(2026, 10, 3, 8))
    receive("P001", 40, batch_code="LEGACY1", occurred_at=datetime(2026, 10, 4, 8), is_migration=True)


def test_stock_card_walks_running_balance(october):
    card = report_service.stock_card("P001", date(2026, 10, 1), date(2026, 10, 31))

    assert card["opening_balance"] == 60
    assert [(m["type"], m["quantity_change"], m["balance_after"]) for m in card["mutations"]] == [
        (LOG_TYPE_OUT, -5, 55),
        (LOG_TYPE_IN, 20, 75),
    ]
    assert card["closing_balance"] == 75


def test_stock_card_window_before_any_movement(october):
    card = report_service.stock_card("P001", date(2026, 1, 1), date(2026, 1, 31))

    assert card["opening_balance"] == card["closing_balance"] == 10
    assert card["mutations"] == []


def test_stock_card_rejects_bad_window_and_product(october):
    with pytest.raises(ValidationError):
        report_service.stock_card("P001", date(2026, 10, 31), date(2026, 10, 1))
    with pytest.raises(NotFoundError):
        report_service.stock_card("NOPE", date(2026, 10, 1), date(2026, 10, 31))


def test_movements_newest_first_without_migration(october):
    rows = report_service.movements(date(2026, 9, 1), date(2026, 10, 31))

    assert [(r["type"], r["quantity_change"]) for r in rows] == [
        (LOG_TYPE_IN, 20),
        (LOG_TYPE_OUT, -5),
        (LOG_TYPE_IN, 50),
    ]
    outs = report_service.movements(date(2026, 9, 1), date(2026, 10, 31), type=LOG_TYPE_OUT, search="store a")
    assert [r["recipient"] for r in outs] == ["Store A"]
    with pytest.raises(ValidationError):
        report_service.movements(date(2026, 9, 1), date(2026, 10, 31), type="MOVE")


def test_recap_rows_in_natural_order(october):
    product_service.create_product(name="Tape", category="Packaging", product_id="P10")
    product_service.create_product(name="Glue", category="Packaging", product_id="P2", initial_stock=3)

    rows = report_service.recap(date(2026, 10, 1), date(2026, 10, 31))

    assert [r["code"] for r in rows] == ["P001", "P2", "P10"]
    carton = rows[0]
    assert carton["opening_stock"] == 60
    # the migration pair shows on both sides and cancels out
    assert carton["in_range"] == 60
    assert carton["out_range"] == 45
    assert carton["stock_end"] == 75
    assert rows[1] == {
        "code": "P2", "name": "Glue", "uom": "Pcs",
        "opening_stock": 3, "in_range": 0, "out_range": 0, "stock_end": 3,
    }


def test_legacy_gap_becomes_pseudo_unit(db_session, receive):
    product_service.create_product(name="Wheat Flour", category="Ingredients", product_id="IMI001", initial_stock=30)
    receive("IMI001", 70)

    detail = report_service.product_batches("IMI001")

    assert detail["product"]["stock_today"] == 100
    assert detail["recorded_total"] == 70
    assert detail["legacy_gap"] == 30
    legacy = detail["batches"][-1]
    assert legacy["unique_id"] == "INITIAL-IMI001"
    assert legacy["batch_code"] == report_service.LEGACY_BATCH
    assert legacy["quantity"] == 30
    assert legacy["is_unlabeled"] is True
    assert detail["total"] == 100


def test_unit_trace_and_lookup(db_session, product, receive, admin):
    unit = receive("P001", 12)
    outbound_service.process_outbound([OutboundLine(unit.unique_id, 2, "Store A")], admin)

    trace = report_service.unit_trace(unit.unique_id.lower())
    assert trace["unit"]["quantity"] == 10
    assert [e["quantity_change"] for e in trace["logs"]] == [-2, 12]

    assert report_service.lookup_code(unit.unique_id)["kind"] == "unit"
    assert report_service.lookup_code(" p001 ")["kind"] == "product"
    with pytest.raises(NotFoundError):
        report_service.lookup_code("ZZZ")


def test_dashboard_counts_today(db_session, product, receive, admin):
    product_service.update_product("P001", safety_stock=50)
    unit = receive("P001", 100)
    receive("P001", 30, batch_code="OLD", is_migration=True)
    outbound_service.process_outbound([OutboundLine(unit.unique_id, 60, "Store A")], admin)
    product_service.create_product(name="Glue", category="Packaging", initial_stock=0)

    stats = report_service.dashboard(utcnow().date())

    assert stats["total_sku"] == 2
    assert stats["low_stock_items"] == 2
    assert stats["today_in"] == 100
    assert stats["today_out"] == 60
    assert stats["today_transaction_count"] == 2
    assert len(stats["trend"]) == 7
    assert stats["trend"][-1] == {"date": utcnow().date().isoformat(), "in": 100, "out": 60}
