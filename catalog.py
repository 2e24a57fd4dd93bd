import logging
from typing import Any, Dict, List, Optional

from database import DocumentStore
from dates import utcnow
from errors import NotFoundError, ValidationError
from schemas import Product, ProductUpdate

logger = logging.getLogger(__name__)

COLLECTION = "products"


def _with_rate(doc: dict) -> dict:
    # seeded products predating base_rate carry basePrice
    if "base_rate" not in doc and "basePrice" in doc:
        doc["base_rate"] = doc.pop("basePrice")
    return doc


class CatalogManager:
    def __init__(self, store: DocumentStore):
        self.store = store

    def create_product(self, product: Product) -> Dict[str, Any]:
        data = product.model_dump()
        now = utcnow()
        data.update({"created_at": now, "updated_at": now})
        product_id = self.store.create(COLLECTION, data)
        logger.info("Product %s created: %s", product_id, product.name)
        return {"id": product_id, **data}

    def get_product(self, product_id: str) -> Dict[str, Any]:
        doc = self.store.read(COLLECTION, product_id)
        if doc is None:
            raise NotFoundError("Product not found")
        return _with_rate(doc)

    def list_products(self, q: Optional[str] = None, category: Optional[str] = None) -> List[Dict[str, Any]]:
        products = [_with_rate(d) for d in self.store.query(COLLECTION)]
        if category:
            products = [p for p in products if (p.get("category") or "").lower() == category.lower()]
        if q:
            needle = q.lower()
            products = [
                p for p in products
                if needle in (p.get("name") or "").lower() or needle in (p.get("category") or "").lower()
            ]
        return sorted(products, key=lambda p: (p.get("name") or "").lower())

    def update_product(self, product_id: str, payload: ProductUpdate) -> Dict[str, Any]:
        update_data = {k: v for k, v in payload.model_dump().items() if v is not None}
        if not update_data:
            raise ValidationError("No changes")
        update_data["updated_at"] = utcnow()
        doc = self.store.update(COLLECTION, product_id, update_data, unset=["basePrice"] if "base_rate" in update_data else None)
        if doc is None:
            raise NotFoundError("Product not found")
        logger.info("Product %s updated", product_id)
        return _with_rate(doc)

    def delete_product(self, product_id: str) -> None:
        if not self.store.delete(COLLECTION, product_id):
            raise NotFoundError("Product not found")
        logger.info("Product %s deleted", product_id)
