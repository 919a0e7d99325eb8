"""
Stock opname: grouping, counting, admin commits and the request workflow.
"""
from datetime import date, datetime

import pytest

from wms.errors import ConflictError, PermissionDeniedError, ValidationError
from wms.models import LogEntry, OpnameRequest, Product, StockUnit
from wms.models.ledger import LOG_TYPE_ADJUST
from wms.models.opname import REQUEST_STATUS_APPROVED, REQUEST_STATUS_PENDING, REQUEST_STATUS_REJECTED
from wms.models.stock import NO_BATCH
from wms.services import balance_service, opname_service, outbound_service, product_service
from wms.services.opname_service import OpnameSession, group_key
from wms.services.outbound_service import OutboundLine


REF = date(2026, 10, 1)


def _session(search=None):
    return OpnameSession(opname_service.load_groups(search), default_ref_date=REF)


def test_grouping_is_deterministic(db_session, product, receive):
    receive("P001", 10, batch_code="B10")
    receive("P001", 5, batch_code="B2")
    receive("P001", 7, batch_code="B2")
    product_service.create_product(name="Apron", category="Other", unit="Pcs", initial_stock=4)

    first = opname_service.load_groups()
    second = opname_service.load_groups()

    assert [(g.key, g.total_system_qty) for g in first] == [(g.key, g.total_system_qty) for g in second]
    assert [(g.key, g.total_system_qty) for g in first] == [
        ("OMI001|GLOBAL", 4),
        ("P001|B2", 12),
        ("P001|B10", 10),
    ]
    assert first[0].is_global
    assert [u.quantity for u in first[1].units] == [5, 7]


def test_unit_without_batch_uses_placeholder(db_session, product, receive):
    unit = receive("P001", 3)
    db_session.get(StockUnit, unit.id).batch_code = None
    db_session.commit()

    groups = opname_service.load_groups()

    assert [g.key for g in groups] == [group_key("P001", NO_BATCH)]
    assert groups[0].total_system_qty == 3


def test_unchanged_count_is_left_out_of_summary(db_session, product, receive, admin):
    receive("P001", 60)
    session = _session()
    key = group_key("P001", "B1")

    session.set_count(key, 60)
    assert session.summary() == []

    with pytest.raises(ValidationError):
        opname_service.commit_as_admin(session, admin)

    session.set_note(key, "Checked twice")
    assert [line.variance for line in session.summary()] == [0]


def test_admin_commit_applies_variance(db_session, product, receive, admin):
    unit = receive("P001", 100)
    outbound_service.process_outbound([OutboundLine(unit.unique_id, 40, "Store A")], admin)
    session = _session()
    key = group_key("P001", "B1")

    session.set_count(key, 55)
    result = opname_service.commit_as_admin(session, admin)

    assert result["mode"] == "APPLIED"
    assert [(a["type"], a["quantity_change"]) for a in result["adjustments"]] == [(LOG_TYPE_ADJUST, -5)]
    assert result["adjustments"][0]["note"] == "Audit B1"
    assert db_session.get(StockUnit, unit.id).quantity == 55
    product = db_session.get(Product, "P001")
    assert balance_service.current_balance(product) == 55
    assert product.stock_today == 55


def test_multi_unit_batch_adjusts_only_its_first_unit(db_session, product, receive, admin):
    first = receive("P001", 4)
    second = receive("P001", 10)
    session = _session()

    session.set_count(group_key("P001", "B1"), 6)
    result = opname_service.commit_as_admin(session, admin)

    assert [(a["stock_item_id"], a["quantity_change"]) for a in result["adjustments"]] == [(first.unique_id, 2)]
    assert db_session.get(StockUnit, first.id).quantity == 6
    assert db_session.get(StockUnit, second.id).quantity == 10
    assert db_session.get(Product, "P001").stock_today == 16


def test_global_group_gets_adjustment_unit(db_session, admin):
    product_service.create_product(name="Flour", category="Ingredients", unit="Kg", initial_stock=10)
    session = _session()
    key = group_key("IMI001", opname_service.GLOBAL_BATCH)

    session.set_count(key, 12)
    opname_service.commit_as_admin(session, admin)

    unit = db_session.query(StockUnit).filter_by(product_id="IMI001").one()
    assert unit.batch_code == opname_service.ADJUSTMENT_BATCH
    assert unit.unique_id.startswith("OPN-IMI001-")
    assert unit.quantity == 12
    entry = db_session.query(LogEntry).filter_by(product_id="IMI001").one()
    assert entry.quantity_change == 2
    assert entry.note == "Audit Global"
    assert db_session.get(Product, "IMI001").stock_today == 12


def test_scanning_counts_one_per_code(db_session, product, receive):
    unit = receive("P001", 50)
    session = _session()
    key = group_key("P001", "B1")

    unmatched = session.record_scan([unit.unique_id.lower(), unit.unique_id, "p001", "UNKNOWN-1"])

    assert unmatched == ["UNKNOWN-1"]
    assert session.pending[key].new_total_qty == 3
    assert session.pending[key].note == opname_service.SCAN_NOTE

    session.record_scan(unit.unique_id)
    assert session.pending[key].new_total_qty == 4


def test_back_dated_initial_correction(db_session, product, receive, admin):
    receive("P001", 50, batch_code="OLD", occurred_at=datetime(2026, 9, 20, 8))
    new = receive("P001", 30, batch_code="NEW", occurred_at=datetime(2026, 10, 5, 8))
    outbound_service.process_outbound(
        [OutboundLine(new.unique_id, 10, "Store A")], admin, occurred_at=datetime(2026, 10, 6, 8),
    )
    log_count = db_session.query(LogEntry).count()

    session = _session()
    key = group_key("P001", "NEW")
    session.set_count(key, 65)
    session.toggle_initial(key)
    session.set_reference_date(key, date(2026, 10, 1))
    result = opname_service.commit_as_admin(session, admin)

    correction = result["initial_corrections"][0]
    assert correction["sum_mutations"] == 20
    assert correction["initial_stock"] == 45
    assert result["adjustments"] == []
    assert db_session.query(LogEntry).count() == log_count

    product = db_session.get(Product, "P001")
    assert product.initial_stock == 45
    # physical count plus the 50 received before the reference date
    assert balance_service.current_balance(product) == 115
    assert product.stock_today == 115


def test_stale_counts_are_rejected(db_session, product, receive, admin):
    receive("P001", 20)
    key = group_key("P001", "B1")
    payload = {key: {"new_total_qty": 18, "system_qty": 25}}

    session = OpnameSession.from_payload(opname_service.load_groups(), payload, default_ref_date=REF)
    with pytest.raises(ConflictError):
        opname_service.commit_as_admin(session, admin)
    assert db_session.get(Product, "P001").stock_today == 20


def test_payload_carries_session_state(db_session, product, receive):
    receive("P001", 20)
    key = group_key("P001", "B1")
    session = _session()
    session.set_count(key, 18)
    session.set_note(key, "Torn box")

    restored = OpnameSession.from_payload(opname_service.load_groups(), session.to_payload(), default_ref_date=REF)

    assert [line.to_dict() for line in restored.summary()] == [line.to_dict() for line in session.summary()]
    with pytest.raises(ValidationError):
        OpnameSession.from_payload(opname_service.load_groups(), {key: {"new_total_qty": -1}}, default_ref_date=REF)


def test_user_commit_files_requests(db_session, product, receive, user):
    unit = receive("P001", 20)
    session = _session()
    session.set_count(group_key("P001", "B1"), 17)

    result = opname_service.commit(session, user)

    assert result["mode"] == "SUBMITTED"
    request = result["requests"][0]
    assert request["status"] == REQUEST_STATUS_PENDING
    assert request["variance"] == -3
    assert request["submitted_by"] == "gudang"
    assert db_session.get(StockUnit, unit.id).quantity == 20


def test_approve_applies_and_resolves(db_session, product, receive, user, admin):
    unit = receive("P001", 20)
    session = _session()
    session.set_count(group_key("P001", "B1"), 17)
    request_id = opname_service.commit(session, user)["requests"][0]["id"]

    with pytest.raises(PermissionDeniedError):
        opname_service.approve_request(request_id, user)

    result = opname_service.approve_request(request_id, admin)

    assert result["request"]["status"] == REQUEST_STATUS_APPROVED
    assert result["request"]["resolved_by"] == "admin"
    assert [a["quantity_change"] for a in result["adjustments"]] == [-3]
    assert db_session.get(StockUnit, unit.id).quantity == 17
    assert db_session.get(Product, "P001").stock_today == 17

    with pytest.raises(ConflictError):
        opname_service.approve_request(request_id, admin)


def test_reject_leaves_stock_untouched(db_session, product, receive, user, admin):
    unit = receive("P001", 20)
    session = _session()
    session.set_count(group_key("P001", "B1"), 25)
    request_id = opname_service.commit(session, user)["requests"][0]["id"]

    rejected = opname_service.reject_request(request_id, admin, "Recount tomorrow")

    assert rejected.status == REQUEST_STATUS_REJECTED
    assert rejected.resolution_note == "Recount tomorrow"
    assert db_session.get(StockUnit, unit.id).quantity == 20
    assert [r.id for r in opname_service.list_requests(REQUEST_STATUS_PENDING)] == []
    assert db_session.query(OpnameRequest).count() == 1
