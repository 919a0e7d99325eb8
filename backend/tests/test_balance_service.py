"""
Balance engine: every number is initial_stock plus the signed movements.
"""
from datetime import date, datetime

from wms.extensions import db
from wms.models import LogEntry, Product
from wms.models.ledger import LOG_TYPE_ADJUST, LOG_TYPE_IN, LOG_TYPE_OUT
from wms.services import balance_service, outbound_service, report_service
from wms.services.ledger_service import build_log_entry, logs_for_product
from wms.time_utils import day_window


def _entry(type, change, ts, product_id="P001", name="Carton Box 40x30"):
    return build_log_entry(
        type=type,
        product_id=product_id,
        product_name=name,
        quantity_change=change,
        stock_item_id=None,
        timestamp=ts,
    )


def test_fold_range_partitions_inbound_and_outbound():
    entries = [
        _entry(LOG_TYPE_IN, 50, datetime(2026, 9, 30, 10)),
        _entry(LOG_TYPE_IN, 20, datetime(2026, 10, 2, 9)),
        _entry(LOG_TYPE_OUT, -5, datetime(2026, 10, 3, 9)),
        _entry(LOG_TYPE_ADJUST, 3, datetime(2026, 10, 4, 9)),
        _entry(LOG_TYPE_ADJUST, -2, datetime(2026, 10, 5, 9)),
        _entry(LOG_TYPE_OUT, 0, datetime(2026, 10, 6, 9)),
    ]
    start, end = day_window(date(2026, 10, 1), date(2026, 10, 31))

    result = balance_service.fold_range(10, entries, start, end)

    assert result.opening == 60
    assert result.in_sum == 23
    assert result.out_sum == 7
    assert result.closing == 76
    assert result.to_dict() == {"opening": 60, "in": 23, "out": 7, "closing": 76}


def test_product_without_logs_opens_at_initial_stock(db_session):
    product = Product(id="P009", name="Tape", category="Packaging", unit="Roll", initial_stock=12)
    db_session.add(product)
    db_session.commit()

    start, end = day_window(date(2026, 1, 1), date(2026, 1, 31))
    assert balance_service.opening_balance(product, start) == 12
    assert balance_service.range_balance(product, start, end).to_dict() == {
        "opening": 12, "in": 0, "out": 0, "closing": 12,
    }
    assert balance_service.current_balance(product) == 12


def test_balance_identity_holds_after_movements(db_session, product, receive, admin):
    unit = receive("P001", 100, occurred_at=datetime(2026, 10, 1, 8))
    outbound_service.process_outbound(
        [outbound_service.OutboundLine(unit.unique_id, 30, "Store A")],
        admin,
        occurred_at=datetime(2026, 10, 2, 8),
    )

    product = db_session.get(Product, "P001")
    total = sum(e.quantity_change for e in logs_for_product(product))
    assert balance_service.current_balance(product) == product.initial_stock + total == 70
    assert product.stock_today == 70


def test_adjacent_windows_chain_to_the_whole_window(db_session, product, receive, admin):
    unit = receive("P001", 40, occurred_at=datetime(2026, 10, 3, 8))
    receive("P001", 25, batch_code="B2", occurred_at=datetime(2026, 10, 20, 8))
    outbound_service.process_outbound(
        [outbound_service.OutboundLine(unit.unique_id, 15, "Store A")],
        admin,
        occurred_at=datetime(2026, 10, 15, 23, 59),
    )
    product = db_session.get(Product, "P001")

    first_start, first_end = day_window(date(2026, 10, 1), date(2026, 10, 15))
    second_start, second_end = day_window(date(2026, 10, 16), date(2026, 10, 31))
    first = balance_service.range_balance(product, first_start, first_end)
    second = balance_service.range_balance(product, second_start, second_end)
    whole = balance_service.range_balance(product, first_start, second_end)

    assert first.closing == second.opening == balance_service.opening_balance(product, second_start)
    assert whole.in_sum == first.in_sum + second.in_sum
    assert whole.out_sum == first.out_sum + second.out_sum
    assert whole.closing == second.closing == 50


def test_movement_in_the_last_millisecond_belongs_to_its_day(db_session, product):
    db_session.add(_entry(LOG_TYPE_IN, 7, datetime(2026, 10, 1, 23, 59, 59, 999500)))
    db_session.commit()
    product = db_session.get(Product, "P001")

    first = report_service.recap(date(2026, 10, 1), date(2026, 10, 1))[0]
    second = report_service.recap(date(2026, 10, 2), date(2026, 10, 2))[0]

    assert (first["in_range"], first["stock_end"]) == (7, 7)
    assert (second["opening_stock"], second["in_range"], second["stock_end"]) == (7, 0, 7)

    first_start, first_end = day_window(date(2026, 10, 1), date(2026, 10, 1))
    second_start, second_end = day_window(date(2026, 10, 2), date(2026, 10, 2))
    assert first_end == second_start
    assert balance_service.range_balance(product, first_start, first_end).closing == 7
    assert balance_service.range_balance(product, second_start, second_end).opening == 7


def test_equal_timestamps_keep_insertion_order(db_session, product):
    ts = datetime(2026, 10, 5, 12)
    db_session.add_all([
        _entry(LOG_TYPE_IN, 5, ts),
        _entry(LOG_TYPE_OUT, -5, ts),
        _entry(LOG_TYPE_IN, 7, ts),
    ])
    db_session.commit()

    product = db_session.get(Product, "P001")
    rows = balance_service.running_balances(product.initial_stock, logs_for_product(product))
    assert [balance for _entry_row, balance in rows] == [5, 0, 7]


def test_legacy_rows_without_product_id_match_by_name(db_session, product):
    db_session.add(_entry(LOG_TYPE_IN, 9, datetime(2026, 1, 5), product_id=None, name="  carton BOX 40x30 "))
    db_session.add(_entry(LOG_TYPE_IN, 4, datetime(2026, 1, 6), product_id=None, name="Something Else"))
    db_session.commit()

    product = db_session.get(Product, "P001")
    assert balance_service.current_balance(product) == 9


def test_recalculate_repairs_drifted_cache(db_session, product, receive):
    receive("P001", 20)
    product = db_session.get(Product, "P001")
    product.stock_today = 999
    db_session.commit()

    drift = balance_service.find_drift()
    assert drift == [{"product_id": "P001", "name": "Carton Box 40x30", "cached": 999, "computed": 20}]

    assert balance_service.refresh_projections() == ["P001"]
    assert db.session.get(Product, "P001").stock_today == 20
    assert balance_service.find_drift() == []
    assert balance_service.refresh_projections() == []


def test_recalculate_missing_product_returns_none(db_session):
    assert balance_service.recalculate("NOPE") is None
    assert db_session.query(LogEntry).count() == 0
