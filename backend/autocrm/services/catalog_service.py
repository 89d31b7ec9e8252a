# Overview: Read-only catalog lookups consumed by the PoS core, plus seeding helpers.

from __future__ import annotations

from typing import Iterable

from sqlalchemy import func, or_

from ..extensions import db
from ..errors import NotFoundError, ValidationError
from ..models import Category, Subcategory, Product


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError("product", product_id)
    return product


def require_products(product_ids: Iterable[int]) -> dict[int, Product]:
    """Resolve every id or raise NotFoundError naming the first missing one."""
    wanted = sorted(set(product_ids))
    if not wanted:
        return {}
    found = {
        p.id: p
        for p in db.session.query(Product).filter(Product.id.in_(wanted)).all()
    }
    for product_id in wanted:
        if product_id not in found:
            raise NotFoundError("product", product_id)
    return found


def search_products(query: str, limit: int = 20) -> list[Product]:
    """Case-insensitive name/SKU search; short queries return nothing."""
    if not query or len(query.strip()) < 2:
        return []
    pattern = f"%{query.strip().lower()}%"
    return db.session.query(Product).filter(
        or_(func.lower(Product.name).like(pattern), func.lower(Product.sku).like(pattern))
    ).order_by(Product.name.asc()).limit(limit).all()


def create_category(name: str, description: str | None = None, icon: str | None = None) -> Category:
    if not name or not name.strip():
        raise ValidationError("Category name is required")
    category = Category(name=name.strip(), description=description, icon=icon)
    db.session.add(category)
    db.session.commit()
    return category


def create_subcategory(category_id: int, name: str, description: str | None = None) -> Subcategory:
    if not name or not name.strip():
        raise ValidationError("Subcategory name is required")
    if db.session.get(Category, category_id) is None:
        raise NotFoundError("category", category_id)
    subcategory = Subcategory(category_id=category_id, name=name.strip(), description=description)
    db.session.add(subcategory)
    db.session.commit()
    return subcategory


def create_product(
    subcategory_id: int,
    name: str,
    *,
    sku: str | None = None,
    description: str | None = None,
    min_stock_level: int = 0,
) -> Product:
    if not name or not name.strip():
        raise ValidationError("Product name is required")
    if min_stock_level < 0:
        raise ValidationError("min_stock_level cannot be negative")
    if db.session.get(Subcategory, subcategory_id) is None:
        raise NotFoundError("subcategory", subcategory_id)

    product = Product(
        subcategory_id=subcategory_id,
        name=name.strip(),
        sku=sku or None,
        description=description,
        min_stock_level=min_stock_level,
    )
    db.session.add(product)
    db.session.commit()
    return product
