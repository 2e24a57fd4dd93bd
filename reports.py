import csv
import io
from datetime import datetime
from typing import Any, Dict, List, Optional

from database import DocumentStore
from dates import utcnow
from projects import ProjectManager
from quotes import APPROVED, PENDING, REJECTED, QuoteLifecycleManager

ACTIVE = "In Progress"
COMPLETED = "Completed"


def _project_status(doc: dict) -> str:
    return doc.get("status") or "Pending"


def admin_dashboard(store: DocumentStore, now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or utcnow()
    quotes = QuoteLifecycleManager(store).list_all()
    projects = store.query("projects")
    customers = store.count("users", {"role": {"$regex": "^customer$", "$options": "i"}})

    revenue = sum(
        q["valuation"] for q in quotes
        if q["status"] == APPROVED and q["created_at"]
        and (q["created_at"].year, q["created_at"].month) == (now.year, now.month)
    )
    return {
        "counts": {
            "products": store.count("products"),
            "quotes": len(quotes),
            "active_projects": sum(1 for p in projects if _project_status(p) == ACTIVE),
            "customers": customers,
            "unread_quotes": sum(1 for q in quotes if not q["is_read"]),
        },
        "revenue_this_month": revenue,
        "recent_quotes": quotes[:5],
    }


def customer_dashboard(store: DocumentStore, customer_id: str) -> Dict[str, Any]:
    quotes = QuoteLifecycleManager(store).list_for_customer(customer_id)
    projects = ProjectManager(store).list_for_customer(customer_id)
    by_status = {status: 0 for status in (PENDING, APPROVED, REJECTED)}
    for q in quotes:
        by_status[q["status"]] += 1
    return {
        "quotes": {"total": len(quotes), **by_status},
        "projects": {
            "total": len(projects),
            "active": sum(1 for p in projects if _project_status(p) == ACTIVE),
            "completed": sum(1 for p in projects if _project_status(p) == COMPLETED),
        },
        "recent_quotes": quotes[:5],
    }


def build_report(store: DocumentStore) -> Dict[str, Any]:
    quotes = QuoteLifecycleManager(store).list_all()
    projects = store.query("projects")
    rows = [
        {
            "id": q["id"],
            "date": q["created_at"].date().isoformat() if q["created_at"] else "N/A",
            "customer": q["customer_name"] or "N/A",
            "status": q["status"],
            "amount": q["valuation"],
        }
        for q in quotes
    ]
    total_revenue = sum(q["valuation"] for q in quotes if q["status"] == APPROVED)
    pipeline = sum(q["valuation"] for q in quotes if q["status"] == PENDING)
    return {
        "total_revenue": total_revenue,
        "pipeline_value": pipeline,
        "active_projects": sum(1 for p in projects if _project_status(p) == ACTIVE),
        "completed_projects": sum(1 for p in projects if _project_status(p) == COMPLETED),
        "chart": [{"name": "Revenue", "amount": total_revenue}, {"name": "Pipeline", "amount": pipeline}],
        "rows": rows,
    }


def report_csv(rows: List[Dict[str, Any]]) -> str:
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(["ID", "Date", "Customer", "Status", "Amount"])
    for row in rows:
        writer.writerow([row["id"], row["date"], row["customer"], row["status"], row["amount"]])
    return output.getvalue()
