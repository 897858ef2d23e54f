# backend/balepos/services/products_service.py
"""
Products Service

Seeded/catalog products are managed here, and live items are synthesized
here: a live sale at a given price on a given bale always lands on the same
product row, keyed by LiveProductKey.
"""
from __future__ import annotations

from dataclasses import dataclass

from ..extensions import db
from ..models import Order, Product
from ..validation import (
    PRODUCT_POLICY,
    ConflictError,
    enforce_rules_product,
    validate_payload,
)
from .audit_log import format_amount
from . import mirror_service

PRODUCT_MUTABLE_FIELDS = {"sku", "name", "brand", "bale_id", "cost_price_cents", "selling_price_cents", "stock"}


class ProductError(Exception):
    """Raised for product operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


@dataclass(frozen=True)
class LiveProductKey:
    """
    Content key of a synthetic live product.

    Prices are integer cents, so formatting never changes the key.
    """
    bale_id: int
    price_cents: int
    is_freebie: bool

    @property
    def sku(self) -> str:
        suffix = "-f" if self.is_freebie else ""
        return f"live-{self.bale_id}-{self.price_cents}{suffix}"

    @property
    def product_name(self) -> str:
        if self.is_freebie:
            return "Gift"
        return f"Live Item ₱{format_amount(self.price_cents)}"


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def list_products(
    bale_id: int | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    Product listing with optional bale filter and pagination.

    Returns:
        Dict with 'items', 'count', and pagination metadata if paginated.
    """
    base_query = db.session.query(Product)
    if bale_id is not None:
        base_query = base_query.filter(Product.bale_id == bale_id)
    base_query = base_query.order_by(Product.name.asc(), Product.id.asc())

    # If no pagination requested, return all items
    if page is None:
        products = base_query.all()
        return {
            "items": [p.to_dict() for p in products],
            "count": len(products),
        }

    # Pagination logic
    per_page = min(per_page or 20, 100)  # Default 20, max 100
    page = max(page, 1)  # Ensure page >= 1

    total = base_query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    products = base_query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [p.to_dict() for p in products],
        "count": len(products),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if not product:
        raise ProductError("Product not found")
    return product


def create_product(payload: dict) -> Product:
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
    enforce_rules_product(patch)
    if db.session.query(Product).filter_by(sku=patch["sku"]).first():
        raise ConflictError(f"SKU {patch['sku']} already exists")

    product = Product()
    apply_product_patch(product, patch)
    db.session.add(product)
    mirror_service.record_upsert(product)
    db.session.commit()
    return product


def update_product(product_id: int, payload: dict) -> Product:
    product = get_product(product_id)
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
    enforce_rules_product(patch)
    if "sku" in patch and patch["sku"] != product.sku:
        if db.session.query(Product).filter_by(sku=patch["sku"]).first():
            raise ConflictError(f"SKU {patch['sku']} already exists")

    apply_product_patch(product, patch)
    mirror_service.record_upsert(product)
    db.session.commit()
    return product


def delete_product(product_id: int) -> None:
    """Explicit admin removal. Products referenced by orders are kept."""
    product = get_product(product_id)
    order_count = db.session.query(Order).filter_by(product_id=product_id).count()
    if order_count:
        raise ProductError("Cannot delete a product with orders", details={"order_count": order_count})
    mirror_service.record_delete(product)
    db.session.delete(product)
    db.session.commit()


def upsert_live_product(key: LiveProductKey, selling_price_cents: int) -> Product:
    """
    Find-or-create the synthetic product for key; refresh its selling price.

    Does not commit.
    """
    product = db.session.query(Product).filter_by(sku=key.sku).first()
    if product is None:
        product = Product(
            sku=key.sku,
            name=key.product_name,
            brand="Live",
            bale_id=key.bale_id,
            cost_price_cents=0,
            stock=0,
        )
        db.session.add(product)
    product.selling_price_cents = selling_price_cents
    mirror_service.record_upsert(product)
    return product
