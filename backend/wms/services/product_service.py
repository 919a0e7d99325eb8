# Overview: Master data (catalog) operations; product codes and safe edits of the stock baseline.

from __future__ import annotations

from sqlalchemy import or_

from ..actor import Actor
from ..errors import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from ..extensions import db
from ..identifiers import natural_key, sanitize_code
from ..models import Product
from ..models.catalog import (
    CATEGORY_CODES,
    DEFAULT_CATEGORY_CODE,
    ORIGIN_EXTERNAL,
    ORIGIN_INTERNAL,
)
from .balance_service import recalculate
from .concurrency import run_atomic


EDITABLE_FIELDS = {"name", "category", "unit", "safety_stock", "initial_stock"}


def product_prefix(category: str, origin: str) -> str:
    """{category char}M{origin}: 'Packaging' + internal -> 'PMI'."""
    if origin not in (ORIGIN_INTERNAL, ORIGIN_EXTERNAL):
        raise ValidationError("origin must be 'I' (internal) or 'E' (external)")
    return f"{CATEGORY_CODES.get(category, DEFAULT_CATEGORY_CODE)}M{origin}"


def next_product_id(category: str, origin: str = ORIGIN_INTERNAL) -> str:
    prefix = product_prefix(category, origin)
    existing = db.session.query(Product.id).filter(Product.id.like(f"{prefix}%")).all()
    numbers = []
    for (pid,) in existing:
        tail = pid[len(prefix):]
        numbers.append(int(tail) if tail.isdigit() else 0)
    return f"{prefix}{(max(numbers) if numbers else 0) + 1:03d}"


def get_product(product_id: str) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError(f"Product {product_id} not found")
    return product


def list_products(search: str | None = None) -> list[Product]:
    q = db.session.query(Product)
    if search:
        like = f"%{search.strip()}%"
        q = q.filter(or_(Product.name.ilike(like), Product.id.ilike(like)))
    return sorted(q.all(), key=lambda p: natural_key(p.id))


def _validate_fields(fields: dict) -> None:
    if "name" in fields and not (fields["name"] or "").strip():
        raise ValidationError("name is required")
    for key in ("safety_stock", "initial_stock"):
        if key in fields and not isinstance(fields[key], int):
            raise ValidationError(f"{key} must be an integer")
    if fields.get("safety_stock", 0) < 0:
        raise ValidationError("safety_stock cannot be negative")


def create_product(
    *,
    name: str,
    category: str = "Other",
    unit: str = "Pcs",
    origin: str = ORIGIN_INTERNAL,
    product_id: str | None = None,
    initial_stock: int = 0,
    safety_stock: int = 0,
) -> Product:
    """
    Create a catalog entry. Without an explicit id the next code in the
    category/origin sequence is assigned.
    """
    def _op():
        _validate_fields({"name": name, "initial_stock": initial_stock, "safety_stock": safety_stock})
        pid = sanitize_code(product_id) if product_id else next_product_id(category, origin)
        if not pid:
            raise ValidationError("product id is empty after normalisation")
        if db.session.get(Product, pid) is not None:
            raise ConflictError(f"Product {pid} already exists")

        product = Product(
            id=pid,
            name=name.strip(),
            category=category,
            unit=unit,
            initial_stock=initial_stock,
            safety_stock=safety_stock,
            stock_today=initial_stock,
        )
        db.session.add(product)
        db.session.flush()
        recalculate(pid)
        return product

    return run_atomic(_op, action="create product")


def update_product(product_id: str, **fields) -> Product:
    """
    Edit master data. A changed initial_stock shifts every derived balance,
    so the cache is rebuilt in the same transaction.
    """
    unknown = set(fields) - EDITABLE_FIELDS
    if unknown:
        raise ValidationError(f"Fields not editable: {', '.join(sorted(unknown))}")

    def _op():
        _validate_fields(fields)
        product = get_product(product_id)
        for key, value in fields.items():
            setattr(product, key, value.strip() if isinstance(value, str) else value)
        db.session.flush()
        recalculate(product.id)
        return product

    return run_atomic(_op, action="update product")


def delete_product(product_id: str, actor: Actor) -> None:
    """
    Irreversible admin action. Units and log rows that reference the product
    are kept as historical record.
    """
    if not actor.is_admin:
        raise PermissionDeniedError("Only an admin can delete products")

    def _op():
        product = get_product(product_id)
        db.session.delete(product)

    run_atomic(_op, action="delete product")
