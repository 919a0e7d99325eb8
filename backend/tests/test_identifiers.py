"""
Code normalisation, id generation and ordering helpers.
"""
import re
from datetime import date

from wms.identifiers import (
    clean_batch_code,
    generate_batch_code,
    generate_unique_id,
    natural_key,
    sanitize_code,
    split_codes,
)
from wms.models.stock import UNIT_STATUS_IN_STOCK, UNIT_STATUS_OUTBOUND, status_for_quantity


def test_sanitize_code_strips_scanner_noise():
    assert sanitize_code("  pmi001-b1-20261001-noexp-a1b2\r\n") == "PMI001-B1-20261001-NOEXP-A1B2"
    assert sanitize_code("P&G_01 ") == "P&G01"
    assert sanitize_code(None) == ""
    assert sanitize_code("") == ""


def test_split_codes_accepts_text_and_lists():
    assert split_codes("A1, B2;C3\nD4  E5") == ["A1", "B2", "C3", "D4", "E5"]
    assert split_codes(["A1", "", "B2"]) == ["A1", "B2"]
    assert split_codes(None) == []
    assert split_codes([123, "A1", None, "  "]) == ["123", "A1"]


def test_generate_unique_id_format():
    uid = generate_unique_id("PMI001", "lot 7/a", date(2026, 10, 1), date(2027, 3, 31))
    assert re.fullmatch(r"PMI001-LOT7A-20261001-20270331-[0-9A-Z]{4}", uid)

    no_expiry = generate_unique_id("PMI001", "B1", date(2026, 10, 1), None)
    assert re.fullmatch(r"PMI001-B1-20261001-NOEXP-[0-9A-Z]{4}", no_expiry)


def test_generate_batch_code_format():
    code = generate_batch_code(date(2026, 10, 18))
    assert re.fullmatch(r"181026DP[0-9A-Z]{3}", code)


def test_clean_batch_code():
    assert clean_batch_code("b-12 x") == "B12X"


def test_natural_key_orders_numbers_numerically():
    codes = ["PMI10", "PMI2", "IMI1", "PMI1"]
    assert sorted(codes, key=natural_key) == ["IMI1", "PMI1", "PMI2", "PMI10"]


def test_status_for_quantity():
    assert status_for_quantity(5) == UNIT_STATUS_IN_STOCK
    assert status_for_quantity(0) == UNIT_STATUS_OUTBOUND
    assert status_for_quantity(-1) == UNIT_STATUS_OUTBOUND
