# backend/wms/services/opname_service.py
"""
Stock opname (physical count) reconciliation.

WHY: Labels get lost, counts get mis-keyed and legacy balances were never
labelled. An opname compares what the system believes per batch with what
is physically on the shelf and commits the difference.

GROUPING:
- IN_STOCK units are grouped by (product_id, batch_code).
- A product with no IN_STOCK unit still gets one GLOBAL group carrying its
  cached stock_today, so every catalog product can be audited.

COMMIT PATHS:
1. Admin, direct: the variance is written as ADJUST entries on the group's
   units (or on a synthesized ADJUSTMENT-SYSTEM unit for GLOBAL groups).
2. Admin, back-dated initial stock: initial_stock is rewritten so that the
   balance equals the physical count while all movement history since the
   reference date stays intact. No log entry is written.
3. User: every line becomes a PENDING OpnameRequest; stock is untouched
   until an admin approves it.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Iterable

from ..actor import Actor
from ..errors import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from ..extensions import db
from ..identifiers import natural_key, sanitize_code, split_codes
from ..models import LogEntry, OpnameRequest, Product, StockUnit
from ..models.opname import (
    REQUEST_STATUS_APPROVED,
    REQUEST_STATUS_PENDING,
    REQUEST_STATUS_REJECTED,
)
from ..models.stock import NO_BATCH, UNIT_STATUS_IN_STOCK
from ..time_utils import start_of_day, utcnow
from .adjustment_service import apply_adjustment, synthesize_unit
from .balance_service import recalculate, recalculate_products, sum_changes
from .concurrency import lock_for_update, run_atomic

GLOBAL_BATCH = "GLOBAL"
ADJUSTMENT_BATCH = "ADJUSTMENT-SYSTEM"
SCAN_NOTE = "Count via scanner"


def group_key(product_id: str, batch_code: str) -> str:
    return f"{product_id}|{batch_code}"


@dataclass
class BatchGroup:
    key: str
    product_id: str
    product_name: str
    unit: str
    batch_code: str
    units: list[StockUnit] = field(default_factory=list)
    total_system_qty: int = 0
    product_stock_today: int = 0
    product_initial_stock: int = 0

    @property
    def is_global(self) -> bool:
        return not self.units

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "unit": self.unit,
            "batch_code": self.batch_code,
            "unit_ids": [u.unique_id for u in self.units],
            "total_system_qty": self.total_system_qty,
            "product_stock_today": self.product_stock_today,
            "product_initial_stock": self.product_initial_stock,
        }


def build_groups(products: Iterable[Product], units: Iterable[StockUnit]) -> list[BatchGroup]:
    """
    Deterministic: the same products and units always give the same keys,
    totals and unit order (oldest unit first within a group).
    """
    active: dict[str, list[StockUnit]] = {}
    for unit in units:
        if unit.status == UNIT_STATUS_IN_STOCK:
            active.setdefault(unit.product_id, []).append(unit)

    groups: list[BatchGroup] = []
    for product in products:
        product_units = sorted(active.get(product.id, []), key=lambda u: (u.created_at, u.id or 0))
        if not product_units:
            groups.append(BatchGroup(
                key=group_key(product.id, GLOBAL_BATCH),
                product_id=product.id,
                product_name=product.name,
                unit=product.unit,
                batch_code=GLOBAL_BATCH,
                total_system_qty=product.stock_today or 0,
                product_stock_today=product.stock_today or 0,
                product_initial_stock=product.initial_stock or 0,
            ))
            continue

        by_batch: dict[str, BatchGroup] = {}
        for unit in product_units:
            batch = unit.batch_code or NO_BATCH
            key = group_key(product.id, batch)
            if key not in by_batch:
                by_batch[key] = BatchGroup(
                    key=key,
                    product_id=product.id,
                    product_name=product.name,
                    unit=product.unit,
                    batch_code=batch,
                    product_stock_today=product.stock_today or 0,
                    product_initial_stock=product.initial_stock or 0,
                )
            by_batch[key].units.append(unit)
            by_batch[key].total_system_qty += unit.quantity or 0
        groups.extend(by_batch.values())

    return sorted(groups, key=lambda g: ((g.product_name or "").lower(), natural_key(g.batch_code), g.product_id))


def load_groups(search: str | None = None) -> list[BatchGroup]:
    products = db.session.query(Product).all()
    units = db.session.query(StockUnit).filter(StockUnit.status == UNIT_STATUS_IN_STOCK).all()
    groups = build_groups(products, units)
    if search:
        needle = search.strip().lower()
        groups = [
            g for g in groups
            if needle in (g.product_name or "").lower() or needle in (g.batch_code or "").lower()
        ]
    return groups


@dataclass
class PendingCount:
    new_total_qty: int
    ref_date: date
    note: str = ""
    is_initial: bool = False
    # Group total the counter was shown; checked again at commit time
    seen_system_qty: int | None = None


@dataclass
class OpnameLine:
    key: str
    product_id: str
    product_name: str
    unit: str
    batch_code: str
    system_qty: int
    physical_qty: int
    note: str
    is_initial: bool
    ref_date: date
    seen_system_qty: int | None = None

    @property
    def variance(self) -> int:
        return self.physical_qty - self.system_qty

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "unit": self.unit,
            "batch_code": self.batch_code,
            "system_qty": self.system_qty,
            "physical_qty": self.physical_qty,
            "variance": self.variance,
            "note": self.note,
            "is_initial": self.is_initial,
            "ref_date": self.ref_date.isoformat() if self.ref_date else None,
        }


class OpnameSession:
    """
    An in-progress audit: pending counts keyed by group key.

    A group untouched so far starts from its system quantity when a number
    is typed, and from 0 when it is counted by scanning.
    """

    def __init__(self, groups: Iterable[BatchGroup], *, default_ref_date: date):
        self.groups: dict[str, BatchGroup] = {g.key: g for g in groups}
        self._ordered_keys = [g.key for g in groups]
        self.default_ref_date = default_ref_date
        self.pending: dict[str, PendingCount] = {}

    def group(self, key: str) -> BatchGroup:
        try:
            return self.groups[key]
        except KeyError:
            raise NotFoundError(f"Opname group {key} not found") from None

    def _entry(self, key: str) -> PendingCount:
        group = self.group(key)
        if key not in self.pending:
            self.pending[key] = PendingCount(
                new_total_qty=group.total_system_qty,
                ref_date=self.default_ref_date,
            )
        return self.pending[key]

    def set_count(self, key: str, qty: int) -> PendingCount:
        if not isinstance(qty, int) or isinstance(qty, bool) or qty < 0:
            raise ValidationError("Physical count must be a non-negative integer")
        entry = self._entry(key)
        entry.new_total_qty = qty
        return entry

    def set_note(self, key: str, note: str | None) -> PendingCount:
        entry = self._entry(key)
        entry.note = (note or "").strip()
        return entry

    def toggle_initial(self, key: str) -> PendingCount:
        entry = self._entry(key)
        entry.is_initial = not entry.is_initial
        return entry

    def set_initial(self, key: str, flag: bool) -> PendingCount:
        entry = self._entry(key)
        entry.is_initial = bool(flag)
        return entry

    def set_reference_date(self, key: str, ref_date: date) -> PendingCount:
        entry = self._entry(key)
        entry.ref_date = ref_date
        return entry

    def reset(self, key: str) -> None:
        self.pending.pop(key, None)

    def find_group_for_code(self, code: str) -> BatchGroup | None:
        clean = sanitize_code(code)
        if not clean:
            return None
        for key in self._ordered_keys:
            group = self.groups[key]
            if sanitize_code(group.product_id) == clean:
                return group
            if any(u.unique_id == clean for u in group.units):
                return group
        return None

    def record_scan(self, codes) -> list[str]:
        """
        Count by scanning: each recognised code adds exactly 1 to its group.
        Returns the codes that matched nothing.
        """
        unmatched = []
        for code in split_codes(codes):
            group = self.find_group_for_code(code)
            if group is None:
                unmatched.append(code)
                continue
            entry = self.pending.get(group.key)
            if entry is None:
                entry = PendingCount(new_total_qty=0, ref_date=self.default_ref_date, note=SCAN_NOTE)
                self.pending[group.key] = entry
            entry.new_total_qty += 1
        return unmatched

    def summary(self) -> list[OpnameLine]:
        """Lines to commit. A zero-variance line without note or initial flag is a no-op and is left out."""
        lines = []
        for key in self._ordered_keys:
            entry = self.pending.get(key)
            if entry is None:
                continue
            group = self.groups[key]
            line = OpnameLine(
                key=key,
                product_id=group.product_id,
                product_name=group.product_name,
                unit=group.unit,
                batch_code=group.batch_code,
                system_qty=group.total_system_qty,
                physical_qty=entry.new_total_qty,
                note=entry.note,
                is_initial=entry.is_initial,
                ref_date=entry.ref_date,
                seen_system_qty=entry.seen_system_qty,
            )
            if line.variance == 0 and not line.note and not line.is_initial:
                continue
            lines.append(line)
        return lines

    def to_payload(self) -> dict:
        return {
            key: {
                "new_total_qty": entry.new_total_qty,
                "note": entry.note,
                "is_initial": entry.is_initial,
                "ref_date": entry.ref_date.isoformat() if entry.ref_date else None,
                "system_qty": entry.seen_system_qty,
            }
            for key, entry in self.pending.items()
        }

    @classmethod
    def from_payload(cls, groups: Iterable[BatchGroup], payload: dict, *, default_ref_date: date) -> "OpnameSession":
        """Rebuild a session from its client-held state (see to_payload)."""
        session = cls(groups, default_ref_date=default_ref_date)
        for key, data in (payload or {}).items():
            session.group(key)
            if not isinstance(data, dict):
                raise ValidationError(f"{key}: expected an object with new_total_qty")
            qty = data.get("new_total_qty")
            if not isinstance(qty, int) or isinstance(qty, bool) or qty < 0:
                raise ValidationError(f"{key}: new_total_qty must be a non-negative integer")
            seen = data.get("system_qty")
            if seen is not None and (not isinstance(seen, int) or isinstance(seen, bool)):
                raise ValidationError(f"{key}: system_qty must be an integer")
            ref_date = data.get("ref_date") or default_ref_date
            if isinstance(ref_date, str):
                try:
                    ref_date = date.fromisoformat(ref_date[:10])
                except ValueError:
                    raise ValidationError(f"{key}: ref_date must be an ISO date") from None
            session.pending[key] = PendingCount(
                new_total_qty=qty,
                note=(data.get("note") or "").strip(),
                is_initial=bool(data.get("is_initial", False)),
                ref_date=ref_date,
                seen_system_qty=seen,
            )
        return session


def _check_not_stale(lines: list[OpnameLine]) -> None:
    stale = [
        {"key": line.key, "seen": line.seen_system_qty, "current": line.system_qty}
        for line in lines
        if line.seen_system_qty is not None and line.seen_system_qty != line.system_qty
    ]
    if stale:
        raise ConflictError("System quantities changed during the count; reload and recount", details={"lines": stale})


def _apply_initial_correction(line: OpnameLine) -> dict:
    """
    Back-dated baseline fix.

    initial_stock = physical - SUM(changes with timestamp >= reference date)

    Afterwards the balance equals the physical count plus whatever moved
    before the reference date, and no movement row is touched.
    """
    if line.ref_date is None:
        raise ValidationError(f"{line.key}: reference date is required for initial stock corrections")
    product = lock_for_update(db.session.query(Product).filter_by(id=line.product_id)).first()
    if product is None:
        raise NotFoundError(f"Product {line.product_id} not found")

    db.session.flush()
    sum_mutations = sum_changes(product, since=start_of_day(line.ref_date))
    calculated_initial = line.physical_qty - sum_mutations
    previous = product.initial_stock
    product.initial_stock = calculated_initial
    db.session.flush()
    recalculate(product.id)
    return {
        "product_id": product.id,
        "reference_date": line.ref_date.isoformat(),
        "physical_qty": line.physical_qty,
        "sum_mutations": sum_mutations,
        "previous_initial_stock": previous,
        "initial_stock": calculated_initial,
    }


def _apply_direct_correction(line: OpnameLine, group: BatchGroup, actor: Actor, now) -> list[LogEntry]:
    """
    Apply a counted line as one ADJUST entry.

    The first unit of the group is set to the physical count; the other
    units keep their quantity. GLOBAL groups get a synthesized
    ADJUSTMENT-SYSTEM unit.
    """
    note = line.note or (f"Audit {line.batch_code}" if group.units else "Audit Global")

    if not group.units:
        product = db.session.get(Product, line.product_id)
        if product is None:
            raise NotFoundError(f"Product {line.product_id} not found")
        unit = synthesize_unit(
            product,
            prefix="OPN",
            batch_code=ADJUSTMENT_BATCH,
            supplier="SYSTEM ADJ",
            quantity=group.total_system_qty,
        )
        entry = apply_adjustment(unit, line.physical_qty, note, actor, baseline=group.total_system_qty, at=now)
        return [entry] if entry else []

    entry = apply_adjustment(group.units[0], line.physical_qty, note, actor, at=now)
    return [entry] if entry else []


def _apply_admin_lines(lines: list[OpnameLine], groups: dict[str, BatchGroup], actor: Actor) -> dict:
    _check_not_stale(lines)
    now = utcnow()
    initial = [line for line in lines if line.is_initial]
    direct = [line for line in lines if not line.is_initial]

    # Baselines first: they are computed against the log as it stood when the count was taken
    corrections = [_apply_initial_correction(line) for line in initial]

    entries: list[LogEntry] = []
    for line in direct:
        entries.extend(_apply_direct_correction(line, groups[line.key], actor, now))

    recalculate_products(line.product_id for line in lines)
    return {"adjustments": entries, "initial_corrections": corrections}


def commit_as_admin(session: OpnameSession, actor: Actor) -> dict:
    if not actor.is_admin:
        raise PermissionDeniedError("Only an admin can apply opname corrections directly")
    lines = session.summary()
    if not lines:
        raise ValidationError("Nothing to commit: every counted group matches the system")

    def _op():
        return _apply_admin_lines(lines, session.groups, actor)

    result = run_atomic(_op, action="opname commit")
    return {
        "mode": "APPLIED",
        "lines": [line.to_dict() for line in lines],
        "adjustments": [e.to_dict() for e in result["adjustments"]],
        "initial_corrections": result["initial_corrections"],
    }


def submit_requests(session: OpnameSession, actor: Actor) -> list[OpnameRequest]:
    lines = session.summary()
    if not lines:
        raise ValidationError("Nothing to submit: every counted group matches the system")

    def _op():
        requests = []
        for line in lines:
            req = OpnameRequest(
                product_id=line.product_id,
                product_name=line.product_name,
                batch_code=line.batch_code,
                system_qty=line.system_qty,
                physical_qty=line.physical_qty,
                variance=line.variance,
                note=line.note,
                is_initial_stock_adjustment=line.is_initial,
                reference_date=line.ref_date,
                submitted_by=actor.username,
                status=REQUEST_STATUS_PENDING,
            )
            db.session.add(req)
            requests.append(req)
        db.session.flush()
        return requests

    return run_atomic(_op, action="opname submission")


def commit(session: OpnameSession, actor: Actor) -> dict:
    """Admins apply directly; everyone else files requests."""
    if actor.is_admin:
        return commit_as_admin(session, actor)
    requests = submit_requests(session, actor)
    return {"mode": "SUBMITTED", "requests": [r.to_dict() for r in requests]}


def list_requests(status: str | None = None) -> list[OpnameRequest]:
    q = db.session.query(OpnameRequest)
    if status:
        q = q.filter(OpnameRequest.status == status)
    return q.order_by(OpnameRequest.submitted_at.desc(), OpnameRequest.id.desc()).all()


def _pending_request(request_id: int) -> OpnameRequest:
    req = lock_for_update(db.session.query(OpnameRequest).filter_by(id=request_id)).first()
    if req is None:
        raise NotFoundError(f"Opname request {request_id} not found")
    if req.status != REQUEST_STATUS_PENDING:
        raise ConflictError(f"Opname request {request_id} is already {req.status}")
    return req


def approve_request(request_id: int, actor: Actor) -> dict:
    """
    Apply a PENDING request through the admin commit path and mark it
    APPROVED, in one transaction.

    The correction is applied against today's grouping: the physical count
    is the target, whatever the system quantity is now.
    """
    if not actor.is_admin:
        raise PermissionDeniedError("Only an admin can approve opname requests")

    def _op():
        req = _pending_request(request_id)
        groups = {g.key: g for g in load_groups()}
        key = group_key(req.product_id, req.batch_code)
        group = groups.get(key)
        if group is None:
            raise ConflictError(
                f"Batch {req.batch_code} of {req.product_id} is no longer in stock; recount required",
            )
        line = OpnameLine(
            key=key,
            product_id=group.product_id,
            product_name=group.product_name,
            unit=group.unit,
            batch_code=group.batch_code,
            system_qty=group.total_system_qty,
            physical_qty=req.physical_qty,
            note=req.note or f"Opname request #{req.id}",
            is_initial=req.is_initial_stock_adjustment,
            ref_date=req.reference_date,
        )
        applied = {"adjustments": [], "initial_corrections": []}
        if line.variance != 0 or line.is_initial:
            applied = _apply_admin_lines([line], groups, actor)

        req.status = REQUEST_STATUS_APPROVED
        req.resolved_by = actor.username
        req.resolved_at = utcnow()
        return req, applied

    req, applied = run_atomic(_op, action="approve opname request")
    return {
        "request": req.to_dict(),
        "adjustments": [e.to_dict() for e in applied["adjustments"]],
        "initial_corrections": applied["initial_corrections"],
    }


def reject_request(request_id: int, actor: Actor, reason: str | None = None) -> OpnameRequest:
    if not actor.is_admin:
        raise PermissionDeniedError("Only an admin can reject opname requests")

    def _op():
        req = _pending_request(request_id)
        req.status = REQUEST_STATUS_REJECTED
        req.resolved_by = actor.username
        req.resolved_at = utcnow()
        req.resolution_note = reason
        return req

    return run_atomic(_op, action="reject opname request")
