# Overview: Tenant-scoped lookups of catalog rows shared by the workflows.

from __future__ import annotations

from ..errors import BadRequestError, NotFoundError
from ..extensions import db
from ..models import Business, Customer, Location, Product, Supplier
from .concurrency import lock_for_update

"""
Every lookup here treats "absent", "inactive" and "owned by another
business" identically. Callers pick the error kind: references coming from
request line items are BadRequest, top-level references are NotFound.
"""


def get_business(business_id: int) -> Business:
    business = db.session.get(Business, business_id)
    if business is None or not business.is_active:
        raise NotFoundError(f"Business {business_id} not found")
    return business


def get_location(business_id: int, location_id: int, *, require_active: bool = True) -> Location:
    location = db.session.get(Location, location_id)
    if location is None or location.business_id != business_id:
        raise NotFoundError(f"Location {location_id} not found")
    if require_active and not location.is_active:
        raise NotFoundError(f"Location {location_id} is inactive")
    return location


def get_primary_location(business_id: int) -> Location:
    location = (
        db.session.query(Location)
        .filter_by(business_id=business_id, is_primary=True, is_active=True)
        .order_by(Location.id)
        .first()
    )
    if location is None:
        raise NotFoundError("Business has no active primary location", code="NO_PRIMARY_LOCATION")
    return location


def get_product(business_id: int, product_id: int, *, require_active: bool = True) -> Product:
    product = db.session.get(Product, product_id)
    if product is None or product.business_id != business_id:
        raise NotFoundError(f"Product {product_id} not found")
    if require_active and not product.is_active:
        raise NotFoundError(f"Product {product_id} is inactive")
    return product


def load_products(business_id: int, product_ids) -> dict[int, Product]:
    """Resolve request product references; any miss is a BadRequest."""
    wanted = set(product_ids)
    if not wanted:
        return {}
    rows = (
        db.session.query(Product)
        .filter(Product.business_id == business_id, Product.id.in_(wanted))
        .all()
    )
    products = {p.id: p for p in rows if p.is_active}
    missing = sorted(wanted - set(products))
    if missing:
        raise BadRequestError(
            "Unknown or inactive products",
            code="INVALID_PRODUCT",
            details={"product_ids": missing},
        )
    return products


def get_customer(business_id: int, customer_id: int, *, lock: bool = False) -> Customer:
    query = db.session.query(Customer).filter_by(id=customer_id, business_id=business_id)
    if lock:
        query = lock_for_update(query).populate_existing()
    customer = query.first()
    if customer is None or not customer.is_active:
        raise NotFoundError(f"Customer {customer_id} not found")
    return customer


def get_supplier(business_id: int, supplier_id: int) -> Supplier:
    supplier = db.session.get(Supplier, supplier_id)
    if supplier is None or supplier.business_id != business_id or not supplier.is_active:
        raise NotFoundError(f"Supplier {supplier_id} not found")
    return supplier
