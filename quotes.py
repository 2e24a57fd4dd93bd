"""
Quote lifecycle.

A quote starts Pending. Staff approve or reject it; either outcome can be
reset to Pending, but Approved and Rejected never flip into each other
directly. Approval is refused while the quote's effective valuation is
exactly zero.

Older quote documents used camelCase fields and three different names for
the valuation. `normalize_quote` reads those transparently and
`migrate_legacy_quotes` rewrites them once into the canonical shape.
"""
import logging
import math
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError as SchemaValidationError

from database import DocumentStore, Subscription
from dates import EPOCH, parse_timestamp, sort_key, utcnow
from errors import InvalidTransitionError, NotFoundError, ValidationError, ZeroValuationError
from estimator import breakdown_from_total, fence_area, price_area, rate_for
from schemas import CostBreakdown, Dimensions, Identity, Quote

logger = logging.getLogger(__name__)

COLLECTION = "quotes"

PENDING = "Pending"
APPROVED = "Approved"
REJECTED = "Rejected"
STATUSES = (PENDING, APPROVED, REJECTED)

# (current, target) pairs that must go through Pending first
FORBIDDEN_TRANSITIONS = {(APPROVED, REJECTED), (REJECTED, APPROVED)}

EDITABLE_FIELDS = ("product_name", "grand_total", "area", "notes")

LEGACY_FIELDS = (
    "customerId", "customerName", "customerEmail", "customer", "product", "productName",
    "projectDetails", "costBreakdown", "isRead", "createdAt", "updatedAt", "amount",
    "estimatedCost", "totalCost",
)


def to_number(value: Any, default: float = 0.0) -> float:
    """Coerce a form value to float; blanks, non-numeric and non-finite input become `default`."""
    if value is None or isinstance(value, bool):
        return default
    try:
        number = float(value) if isinstance(value, (int, float)) else float(str(value).strip())
    except (ValueError, OverflowError):
        return default
    return number if math.isfinite(number) else default


def _present(value: Any) -> bool:
    return value is not None and value != ""


def normalize_status(value: Any) -> str:
    if not value:
        return PENDING
    text = str(value).strip().title()
    return text if text in STATUSES else PENDING


def _grand_total(doc: dict) -> Any:
    breakdown = doc.get("cost_breakdown")
    if isinstance(breakdown, dict) and _present(breakdown.get("grand_total")):
        return breakdown["grand_total"]
    legacy = doc.get("costBreakdown")
    if isinstance(legacy, dict) and _present(legacy.get("grandTotal")):
        return legacy["grandTotal"]
    return doc.get("grandTotal")


def effective_valuation(doc: dict) -> float:
    """The cost figure that gates approval: grand total, then estimatedCost, then totalCost, then 0."""
    for value in (_grand_total(doc), doc.get("estimatedCost"), doc.get("totalCost")):
        if _present(value):
            return to_number(value)
    return 0.0


def _breakdown(doc: dict, area: float) -> CostBreakdown:
    current = doc.get("cost_breakdown")
    if isinstance(current, dict):
        return CostBreakdown(
            area=area,
            material_cost=to_number(current.get("material_cost")),
            labor_cost=to_number(current.get("labor_cost")),
            transport_cost=to_number(current.get("transport_cost")),
            grand_total=to_number(current.get("grand_total")),
        )
    total = effective_valuation(doc)
    legacy = doc.get("costBreakdown")
    if isinstance(legacy, dict):
        material = to_number(legacy.get("materialCost"))
        labor = to_number(legacy.get("laborCost"))
        transport = to_number(legacy.get("transportCost"))
        if abs(material + labor + transport - total) <= 0.005:
            return CostBreakdown(area=area, material_cost=material, labor_cost=labor,
                                 transport_cost=transport, grand_total=material + labor + transport)
    return itemize(area, total)


def itemize(area: float, total: float) -> CostBreakdown:
    """
    Split a grand total into the estimator's labor and transport for `area`
    with material taking the rest. A total below that labor plus transport
    is kept whole as material.
    """
    if area > 0:
        rebuilt = breakdown_from_total(area, total)
        if rebuilt.material_cost >= 0:
            return rebuilt
    return CostBreakdown(area=area, material_cost=total, grand_total=total)


def normalize_quote(doc: dict) -> Dict[str, Any]:
    """Canonical view of a quote document, whatever generation it was written in."""
    details = doc.get("projectDetails") if isinstance(doc.get("projectDetails"), dict) else {}
    product = doc.get("product") if isinstance(doc.get("product"), dict) else {}
    dims = doc.get("dimensions") if isinstance(doc.get("dimensions"), dict) else details
    dimensions = {k: to_number(dims.get(k)) for k in ("length", "width", "height")}

    if _present(doc.get("area")):
        area = to_number(doc.get("area"))
    elif _present(details.get("area")):
        area = to_number(details.get("area"))
    else:
        area = fence_area(dimensions["length"], dimensions["width"], dimensions["height"])

    is_read = doc.get("is_read", doc.get("isRead", True))
    return {
        "id": doc.get("id"),
        "customer_id": doc.get("customer_id", doc.get("customerId")),
        "customer_name": doc.get("customer_name") or doc.get("customerName") or doc.get("customer") or "",
        "customer_email": doc.get("customer_email") or doc.get("customerEmail") or "",
        "product_id": doc.get("product_id") or product.get("id"),
        "product_name": doc.get("product_name") or doc.get("productName") or product.get("name") or "",
        "dimensions": dimensions,
        "area": area,
        "cost_breakdown": _breakdown(doc, area).costs(),
        "valuation": effective_valuation(doc),
        "status": normalize_status(doc.get("status")),
        "notes": doc.get("notes") or "",
        "description": doc.get("description") or "",
        "is_read": bool(is_read),
        "created_at": parse_timestamp(doc.get("created_at", doc.get("createdAt"))),
        "updated_at": parse_timestamp(doc.get("updated_at", doc.get("updatedAt"))),
    }


def newest_first(quotes: List[dict]) -> List[dict]:
    # in-memory ordering; the store query itself is unordered
    return sorted(quotes, key=lambda q: sort_key(q.get("created_at")), reverse=True)


class QuoteLifecycleManager:
    def __init__(self, store: DocumentStore, now: Callable[[], datetime] = utcnow):
        self.store = store
        self.now = now

    # ---------- Creation ----------

    def submit_quote(self, customer: Identity, product: dict, dimensions: Any, breakdown: Any, notes: str = "") -> str:
        if not customer or not customer.email:
            raise ValidationError("Customer details are required")
        if not product or not product.get("id") or not product.get("name"):
            raise ValidationError("Please select a product")
        if dimensions is None or breakdown is None:
            raise ValidationError("Please fill in all fields")
        try:
            if not isinstance(dimensions, Dimensions):
                dimensions = Dimensions(**dimensions)
            if not isinstance(breakdown, CostBreakdown):
                breakdown = CostBreakdown(**breakdown)
        except SchemaValidationError:
            raise ValidationError("Dimensions and costs must be non-negative numbers")

        costs = breakdown.costs()
        if any(v < 0 for v in costs.values()):
            raise ValidationError("Costs cannot be negative")
        expected = costs["material_cost"] + costs["labor_cost"] + costs["transport_cost"]
        if abs(expected - costs["grand_total"]) > 0.005:
            raise ValidationError("Cost breakdown does not add up to the grand total")
        costs["grand_total"] = expected

        area = fence_area(dimensions.length, dimensions.width, dimensions.height)
        now = self.now()
        quote = Quote(
            customer_id=customer.id,
            customer_name=customer.full_name or "Guest User",
            customer_email=customer.email,
            product_id=product["id"],
            product_name=product["name"],
            dimensions=dimensions,
            area=area,
            cost_breakdown=costs,
            notes=notes or "",
            description=f"Fencing project: {product['name']} - {area:.2f} sq ft",
            created_at=now,
            updated_at=now,
        )
        quote_id = self.store.create(COLLECTION, quote)
        logger.info("Quote %s submitted by %s for %s", quote_id, customer.email, product["name"])
        return quote_id

    def record_manual_quote(self, customer_name: str, customer_email: str, grand_total: Any,
                            description: str = "", product_name: str = "", area: Any = None) -> str:
        """Quote typed in by staff for a walk-in customer, with no account or dimensions behind it."""
        name = (customer_name or "").strip()
        email = (customer_email or "").strip()
        if not name or not email:
            raise ValidationError("Customer name and email are required")
        total = to_number(grand_total)
        area = to_number(area)
        if total < 0 or area < 0:
            raise ValidationError("Amount and area cannot be negative")

        now = self.now()
        quote = Quote(
            customer_name=name,
            customer_email=email,
            product_name=(product_name or "").strip(),
            area=area,
            cost_breakdown=itemize(area, total).costs(),
            description=description or "",
            is_read=True,
            created_at=now,
            updated_at=now,
        )
        quote_id = self.store.create(COLLECTION, quote)
        logger.info("Manual quote %s recorded for %s", quote_id, email)
        return quote_id

    # ---------- Status ----------

    def transition(self, quote_id: str, target: str) -> Dict[str, Any]:
        if target not in STATUSES:
            raise ValidationError(f"Unknown quote status: {target}")
        doc = self._read(quote_id)
        current = normalize_status(doc.get("status"))

        if (current, target) in FORBIDDEN_TRANSITIONS:
            raise InvalidTransitionError(f"An {current.lower()} quote must be reset to Pending first")
        if target == APPROVED and effective_valuation(doc) == 0:
            raise ZeroValuationError()

        updated = self.store.update(COLLECTION, quote_id, {"status": target, "updated_at": self.now()})
        if updated is None:
            raise NotFoundError("Quote not found")
        logger.info("Quote %s: %s -> %s", quote_id, current, target)
        return normalize_quote(updated)

    def approve(self, quote_id: str) -> Dict[str, Any]:
        return self.transition(quote_id, APPROVED)

    def reject(self, quote_id: str) -> Dict[str, Any]:
        return self.transition(quote_id, REJECTED)

    def reset(self, quote_id: str) -> Dict[str, Any]:
        return self.transition(quote_id, PENDING)

    # ---------- Editing ----------

    def edit_details(self, quote_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        """
        Update product name, grand total, area and notes. Nothing is
        recalculated from the area. A written grand total is itemized
        against the area the quote will have after this edit.
        """
        unknown = set(changes) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Fields cannot be edited: {', '.join(sorted(unknown))}")
        doc = self._read(quote_id)
        current = normalize_quote(doc)
        updates: Dict[str, Any] = {}

        if "product_name" in changes:
            updates["product_name"] = str(changes["product_name"] or "").strip()
        if "notes" in changes:
            updates["notes"] = str(changes["notes"] or "")
        area = current["area"]
        if "area" in changes:
            area = to_number(changes["area"])
            if area < 0:
                raise ValidationError("Area cannot be negative")
            updates["area"] = area
        if "grand_total" in changes:
            total = to_number(changes["grand_total"])
            if total < 0:
                raise ValidationError("Grand total cannot be negative")
            updates["cost_breakdown"] = itemize(area, total).costs()

        updates["updated_at"] = self.now()
        updated = self.store.update(COLLECTION, quote_id, updates)
        if updated is None:
            raise NotFoundError("Quote not found")
        logger.info("Quote %s edited: %s", quote_id, ", ".join(sorted(changes)) or "no fields")
        return normalize_quote(updated)

    def suggest_recompute(self, quote_id: str, area: Any = None, product_rate: Any = None) -> CostBreakdown:
        """Breakdown the estimator would give for the quote's (or a proposed) area."""
        quote = normalize_quote(self._read(quote_id))
        if product_rate is None:
            product = self.store.read("products", quote["product_id"]) if quote["product_id"] else None
            product_rate = rate_for(product)
            if product_rate is None:
                raise ValidationError("The quoted product is no longer in the catalog")
        return price_area(quote["area"] if area is None else to_number(area), product_rate)

    def mark_read(self, quote_id: str) -> Dict[str, Any]:
        updated = self.store.update(COLLECTION, quote_id, {"is_read": True})
        if updated is None:
            raise NotFoundError("Quote not found")
        return normalize_quote(updated)

    # ---------- Queries ----------

    def _read(self, quote_id: str) -> dict:
        doc = self.store.read(COLLECTION, quote_id)
        if doc is None:
            raise NotFoundError("Quote not found")
        return doc

    def get(self, quote_id: str) -> Dict[str, Any]:
        return normalize_quote(self._read(quote_id))

    @staticmethod
    def _customer_predicate(customer_id: str) -> dict:
        return {"$or": [{"customer_id": customer_id}, {"customerId": customer_id}]}

    def list_for_customer(self, customer_id: str, status: Optional[str] = None) -> List[Dict[str, Any]]:
        docs = self.store.query(COLLECTION, self._customer_predicate(customer_id))
        return self._present_list(docs, status)

    def list_all(self, status: Optional[str] = None) -> List[Dict[str, Any]]:
        return self._present_list(self.store.query(COLLECTION), status)

    @staticmethod
    def _present_list(docs: List[dict], status: Optional[str] = None) -> List[Dict[str, Any]]:
        quotes = [normalize_quote(d) for d in docs]
        if status:
            quotes = [q for q in quotes if q["status"] == normalize_status(status)]
        return newest_first(quotes)

    def changes_since(self, since: datetime, customer_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """Quotes created or updated after `since`, oldest change first."""
        since = parse_timestamp(since) or EPOCH
        quotes = self.list_for_customer(customer_id) if customer_id else self.list_all()

        def changed_at(q):
            return q["updated_at"] or q["created_at"]

        changed = [q for q in quotes if changed_at(q) and changed_at(q) > since]
        return sorted(changed, key=lambda q: sort_key(changed_at(q)))

    def subscribe(self, callback: Callable[[List[Dict[str, Any]]], None], customer_id: Optional[str] = None) -> Subscription:
        predicate = self._customer_predicate(customer_id) if customer_id else None

        def deliver(snapshot):
            callback(self._present_list(snapshot))

        return self.store.subscribe(COLLECTION, deliver, predicate=predicate)

    def unread_count(self) -> int:
        return self.store.count(COLLECTION, {"$or": [{"is_read": False}, {"isRead": False}]})


def migrate_legacy_quotes(store: DocumentStore) -> int:
    """Rewrite camelCase quote documents into the canonical shape. Returns how many changed."""
    migrated = 0
    for doc in store.query(COLLECTION):
        legacy = [f for f in LEGACY_FIELDS if f in doc]
        if not legacy and "cost_breakdown" in doc:
            continue
        quote = normalize_quote(doc)
        canonical = {
            "customer_id": quote["customer_id"],
            "customer_name": quote["customer_name"],
            "customer_email": quote["customer_email"],
            "product_id": quote["product_id"],
            "product_name": quote["product_name"],
            "dimensions": quote["dimensions"],
            "area": quote["area"],
            "cost_breakdown": quote["cost_breakdown"],
            "status": quote["status"],
            "notes": quote["notes"],
            "description": quote["description"],
            "is_read": quote["is_read"],
            "created_at": quote["created_at"],
            "updated_at": quote["updated_at"] or quote["created_at"],
        }
        store.update(COLLECTION, doc["id"], canonical, unset=legacy)
        migrated += 1
    if migrated:
        logger.info("Migrated %d legacy quote documents", migrated)
    return migrated
