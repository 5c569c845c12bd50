from __future__ import annotations

import logging
from typing import Any, Optional, TypeVar

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from store_assistant.assistant.errors import AmbiguousMatchError, UnresolvedReferenceError
from store_assistant.assistant.slot_resolver import levenshtein
from store_assistant.db.models import Category, Product
from store_assistant.db.repositories.catalog import (
    LOW_STOCK_THRESHOLD,
    CategoriesRepository,
    ProductCategoriesRepository,
    ProductsRepository,
)


logger = logging.getLogger(__name__)

T = TypeVar("T")


def _pick(term: str, matches: list[T], *, kind: str, label) -> Optional[T]:
    """Single match wins; among several, an exact label match wins; otherwise it is ambiguous."""
    if not matches:
        return None
    if len(matches) == 1:
        return matches[0]
    lowered = term.strip().lower()
    exact = [item for item in matches if label(item).lower() == lowered]
    if len(exact) == 1:
        return exact[0]
    raise AmbiguousMatchError(term, kind=kind, candidates=[label(item) for item in matches])


def _closest(term: str, labels: list[str], limit: int = 3) -> list[str]:
    lowered = term.strip().lower()
    ranked = sorted(labels, key=lambda label: (levenshtein(lowered, label.lower()), label))
    return ranked[:limit]


def product_to_dict(product: Product) -> dict[str, Any]:
    price = float(product.price) if product.price is not None else None
    compare_price = float(product.compare_price) if product.compare_price is not None else None
    return {
        "id": product.id,
        "sku": product.sku,
        "name": product.name,
        "price": price,
        "comparePrice": compare_price,
        "stockQuantity": product.stock_quantity,
        "featured": product.featured,
        "onSale": compare_price is not None and price is not None and compare_price > price,
        "lowStock": 0 < product.stock_quantity < LOW_STOCK_THRESHOLD,
        "status": product.status.value,
    }


def category_to_dict(category: Category) -> dict[str, Any]:
    return {"id": category.id, "name": category.name, "slug": category.slug, "isActive": category.is_active}


def find_product(session: Session, *, store_id: str, term: str) -> Product:
    """Look a product up by SKU first, then by name."""
    repo = ProductsRepository(session)
    term = term.strip()
    stages = (
        lambda: repo.find_by_sku(store_id=store_id, sku=term),
        lambda: repo.search_sku(store_id=store_id, term=term),
        lambda: repo.search_name(store_id=store_id, term=term),
    )
    for stage in stages:
        product = _pick(term, stage(), kind="product", label=lambda item: item.name)
        if product is not None:
            return product

    names = [product.name for product in repo.list(store_id=store_id, limit=200)]
    raise UnresolvedReferenceError(term, kind="product", suggestions=_closest(term, names))


def find_category(session: Session, *, store_id: str, term: str) -> Optional[Category]:
    """Look a category up by slug, then by name. Returns None when nothing matches."""
    repo = CategoriesRepository(session)
    term = term.strip()
    by_slug = repo.get_by_slug(store_id=store_id, slug=repo.slugify(term))
    if by_slug:
        return by_slug
    for matches in (
        repo.search_slug(store_id=store_id, term=term),
        repo.search_name(store_id=store_id, term=term),
    ):
        category = _pick(term, matches, kind="category", label=lambda item: item.name)
        if category is not None:
            return category
    return None


def list_products(session: Session, *, store_id: str, filters: dict[str, Any]) -> list[dict[str, Any]]:
    filters = dict(filters)
    category_term = filters.pop("category", None)
    category_id = None
    if category_term:
        category = find_category(session, store_id=store_id, term=category_term)
        if category is None:
            names = [item.name for item in CategoriesRepository(session).list(store_id=store_id)]
            raise UnresolvedReferenceError(category_term, kind="category", suggestions=_closest(category_term, names))
        category_id = category.id
    products = ProductsRepository(session).list(store_id=store_id, category_id=category_id, **filters)
    return [product_to_dict(product) for product in products]


def add_product_to_category(session: Session, *, product: Product, category: Category) -> bool:
    """Returns False when the product was already assigned."""
    links = ProductCategoriesRepository(session)
    if links.get(product_id=product.id, category_id=category.id):
        return False
    try:
        links.create(product_id=product.id, category_id=category.id)
    except IntegrityError:
        # Another request assigned it between the check and the insert.
        session.rollback()
        return False
    logger.info(
        "Assigned product to category",
        extra={"product_id": product.id, "category_id": category.id, "store_id": product.store_id},
    )
    return True


def remove_product_from_category(session: Session, *, product: Product, category: Category) -> bool:
    links = ProductCategoriesRepository(session)
    link = links.get(product_id=product.id, category_id=category.id)
    if not link:
        return False
    links.delete(link)
    return True


def create_category(session: Session, *, store_id: str, name: str) -> tuple[Category, bool]:
    """Create a category unless one with the same slug exists. Returns (category, created)."""
    repo = CategoriesRepository(session)
    name = name.strip()
    if not name:
        raise ValueError("Category name is required")
    existing = repo.get_by_slug(store_id=store_id, slug=repo.slugify(name))
    if existing:
        return existing, False
    category = repo.create(store_id=store_id, name=name)
    logger.info("Created category", extra={"store_id": store_id, "category_id": category.id, "slug": category.slug})
    return category, True


def store_stats(session: Session, *, store_id: str) -> dict[str, int]:
    products = ProductsRepository(session)
    return {
        "products": products.count(store_id=store_id),
        "inStock": products.count(store_id=store_id, in_stock=True),
        "outOfStock": products.count(store_id=store_id, out_of_stock=True),
        "lowStock": products.count(store_id=store_id, low_stock=True),
        "featured": products.count(store_id=store_id, featured=True),
        "categories": CategoriesRepository(session).count(store_id=store_id),
    }
