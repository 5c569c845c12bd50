from __future__ import annotations

import re
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from store_assistant.db.models import Category, Product, ProductCategory

LOW_STOCK_THRESHOLD = 5

_SORT_ORDERS = {
    "name": (Product.name.asc(),),
    "price_asc": (Product.price.asc(), Product.name.asc()),
    "price_desc": (Product.price.desc(), Product.name.asc()),
    "stock": (Product.stock_quantity.asc(), Product.name.asc()),
    "newest": (Product.created_at.desc(), Product.name.asc()),
}


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class ProductsRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, *, store_id: str, product_id: str) -> Optional[Product]:
        stmt = select(Product).where(Product.store_id == store_id, Product.id == product_id)
        return self.session.scalars(stmt).first()

    def find_by_sku(self, *, store_id: str, sku: str) -> list[Product]:
        stmt = select(Product).where(Product.store_id == store_id, func.lower(Product.sku) == sku.lower())
        return list(self.session.scalars(stmt).all())

    def search_sku(self, *, store_id: str, term: str) -> list[Product]:
        pattern = f"%{_escape_like(term.lower())}%"
        stmt = (
            select(Product)
            .where(Product.store_id == store_id, func.lower(Product.sku).like(pattern, escape="\\"))
            .order_by(Product.sku.asc())
        )
        return list(self.session.scalars(stmt).all())

    def search_name(self, *, store_id: str, term: str) -> list[Product]:
        pattern = f"%{_escape_like(term.lower())}%"
        stmt = (
            select(Product)
            .where(Product.store_id == store_id, func.lower(Product.name).like(pattern, escape="\\"))
            .order_by(Product.name.asc())
        )
        return list(self.session.scalars(stmt).all())

    def list(
        self,
        *,
        store_id: str,
        in_stock: bool = False,
        out_of_stock: bool = False,
        low_stock: bool = False,
        featured: bool = False,
        on_sale: bool = False,
        category_id: Optional[str] = None,
        price_min: Optional[float] = None,
        price_max: Optional[float] = None,
        sort_by: str = "name",
        limit: int = 20,
    ) -> list[Product]:
        stmt = select(Product).where(Product.store_id == store_id)
        if in_stock:
            stmt = stmt.where(Product.stock_quantity > 0)
        if out_of_stock:
            stmt = stmt.where(Product.stock_quantity <= 0)
        if low_stock:
            stmt = stmt.where(Product.stock_quantity > 0, Product.stock_quantity < LOW_STOCK_THRESHOLD)
        if featured:
            stmt = stmt.where(Product.featured.is_(True))
        if on_sale:
            stmt = stmt.where(Product.compare_price.is_not(None), Product.compare_price > Product.price)
        if category_id:
            stmt = stmt.join(ProductCategory, ProductCategory.product_id == Product.id).where(
                ProductCategory.category_id == category_id
            )
        if price_min is not None:
            stmt = stmt.where(Product.price >= Decimal(str(price_min)))
        if price_max is not None:
            stmt = stmt.where(Product.price <= Decimal(str(price_max)))
        stmt = stmt.order_by(*_SORT_ORDERS.get(sort_by, _SORT_ORDERS["name"])).limit(limit)
        return list(self.session.scalars(stmt).all())

    def count(self, *, store_id: str, **filters: Any) -> int:
        stmt = select(func.count(Product.id)).where(Product.store_id == store_id)
        if filters.get("in_stock"):
            stmt = stmt.where(Product.stock_quantity > 0)
        if filters.get("out_of_stock"):
            stmt = stmt.where(Product.stock_quantity <= 0)
        if filters.get("low_stock"):
            stmt = stmt.where(Product.stock_quantity > 0, Product.stock_quantity < LOW_STOCK_THRESHOLD)
        if filters.get("featured"):
            stmt = stmt.where(Product.featured.is_(True))
        return int(self.session.execute(stmt).scalar() or 0)

    def create(self, *, store_id: str, sku: str, name: str, **fields: Any) -> Product:
        product = Product(store_id=store_id, sku=sku, name=name, **fields)
        self.session.add(product)
        self.session.commit()
        self.session.refresh(product)
        return product


class CategoriesRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    @staticmethod
    def slugify(value: str) -> str:
        text = (value or "").strip().lower()
        text = re.sub(r"[^a-z0-9]+", "-", text)
        text = re.sub(r"-{2,}", "-", text).strip("-")
        return text or "category"

    def get(self, *, store_id: str, category_id: str) -> Optional[Category]:
        stmt = select(Category).where(Category.store_id == store_id, Category.id == category_id)
        return self.session.scalars(stmt).first()

    def get_by_slug(self, *, store_id: str, slug: str) -> Optional[Category]:
        stmt = select(Category).where(Category.store_id == store_id, Category.slug == slug)
        return self.session.scalars(stmt).first()

    def search_slug(self, *, store_id: str, term: str) -> list[Category]:
        pattern = f"%{_escape_like(self.slugify(term))}%"
        stmt = (
            select(Category)
            .where(Category.store_id == store_id, Category.slug.like(pattern, escape="\\"))
            .order_by(Category.slug.asc())
        )
        return list(self.session.scalars(stmt).all())

    def search_name(self, *, store_id: str, term: str) -> list[Category]:
        pattern = f"%{_escape_like(term.lower())}%"
        stmt = (
            select(Category)
            .where(Category.store_id == store_id, func.lower(Category.name).like(pattern, escape="\\"))
            .order_by(Category.name.asc())
        )
        return list(self.session.scalars(stmt).all())

    def list(self, *, store_id: str) -> list[Category]:
        stmt = select(Category).where(Category.store_id == store_id).order_by(Category.name.asc())
        return list(self.session.scalars(stmt).all())

    def count(self, *, store_id: str) -> int:
        stmt = select(func.count(Category.id)).where(Category.store_id == store_id)
        return int(self.session.execute(stmt).scalar() or 0)

    def create(self, *, store_id: str, name: str, slug: Optional[str] = None, **fields: Any) -> Category:
        category = Category(store_id=store_id, name=name, slug=slug or self.slugify(name), **fields)
        self.session.add(category)
        self.session.commit()
        self.session.refresh(category)
        return category


class ProductCategoriesRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, *, product_id: str, category_id: str) -> Optional[ProductCategory]:
        stmt = select(ProductCategory).where(
            ProductCategory.product_id == product_id,
            ProductCategory.category_id == category_id,
        )
        return self.session.scalars(stmt).first()

    def create(self, *, product_id: str, category_id: str) -> ProductCategory:
        link = ProductCategory(product_id=product_id, category_id=category_id)
        self.session.add(link)
        self.session.commit()
        self.session.refresh(link)
        return link

    def delete(self, link: ProductCategory) -> None:
        self.session.delete(link)
        self.session.commit()
