"""Category membership maintained by the host, read by category pseudo-joins."""

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING

import structlog
from sqlalchemy import delete
from sqlmodel import col, select

from bucketstore.buckets._internal.schema.names import normalize_category
from bucketstore.buckets.models import CategoryLink

if TYPE_CHECKING:
    from bucketstore.buckets._internal.db.database import Database

logger = structlog.get_logger()


class CategoryIndex:
    """Replaces and reads the category set of a page."""

    def __init__(self, db: Database) -> None:
        self.db = db

    def set_page_categories(self, page_id: int, categories: Iterable[str]) -> list[str]:
        """Replace the page's categories. Returns the normalized, de-duplicated names."""
        names = list(dict.fromkeys(n for n in (normalize_category(c) for c in categories) if n))
        with self.db.immediate_transaction() as session:
            session.execute(delete(CategoryLink).where(col(CategoryLink.page_id) == page_id))
            for name in names:
                session.add(CategoryLink(page_id=page_id, category=name))
        logger.debug("page_categories_set", page_id=page_id, categories=names)
        return names

    def categories_for(self, page_id: int) -> list[str]:
        with self.db.session() as session:
            rows = session.exec(
                select(CategoryLink.category).where(CategoryLink.page_id == page_id).order_by(CategoryLink.category)
            ).all()
        return list(rows)
