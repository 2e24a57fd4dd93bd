import logging
from typing import Any, Dict, List, Optional

from database import DocumentStore
from dates import sort_key, utcnow
from errors import InvalidTransitionError, NotFoundError, ValidationError
from quotes import APPROVED, normalize_quote
from schemas import Project, ProjectUpdate

logger = logging.getLogger(__name__)

COLLECTION = "projects"

COMPLETED = "Completed"
IN_PROGRESS = "In Progress"


def reconcile_progress(status: str, progress: Any) -> Dict[str, Any]:
    """Clamp progress to 0-100 and keep it consistent with the status."""
    try:
        value = int(round(float(progress)))
    except (TypeError, ValueError):
        raise ValidationError("Progress must be a number")
    value = min(100, max(0, value))
    if value == 100:
        status = COMPLETED
    elif status == COMPLETED:
        status = IN_PROGRESS
    return {"status": status, "progress": value}


class ProjectManager:
    def __init__(self, store: DocumentStore):
        self.store = store

    def create_project(self, project: Project) -> Dict[str, Any]:
        data = project.model_dump()
        if project.quote_id:
            quote_doc = self.store.read("quotes", project.quote_id)
            if quote_doc is None:
                raise NotFoundError("Quote not found")
            quote = normalize_quote(quote_doc)
            if quote["status"] != APPROVED:
                raise InvalidTransitionError("Only approved quotes can be scheduled as projects")
            # fill references from the quote unless given explicitly
            for key in ("customer_id", "customer_name", "product_id", "product_name"):
                if not data.get(key):
                    data[key] = quote[key]
        data.update(reconcile_progress(data["status"], data["progress"]))
        if data["status"] == COMPLETED and not data.get("completed_date"):
            data["completed_date"] = utcnow().date().isoformat()
        now = utcnow()
        data.update({"created_at": now, "updated_at": now})
        project_id = self.store.create(COLLECTION, data)
        logger.info("Project %s created (quote %s)", project_id, project.quote_id)
        return {"id": project_id, **data}

    def get_project(self, project_id: str) -> Dict[str, Any]:
        doc = self.store.read(COLLECTION, project_id)
        if doc is None:
            raise NotFoundError("Project not found")
        return doc

    def update_project(self, project_id: str, payload: ProjectUpdate) -> Dict[str, Any]:
        current = self.get_project(project_id)
        changes = {k: v for k, v in payload.model_dump().items() if v is not None}
        if not changes:
            raise ValidationError("No changes")
        status = changes.get("status", current.get("status", "Pending"))
        progress = changes.get("progress", current.get("progress", 0))
        changes.update(reconcile_progress(status, progress))
        if changes["status"] == COMPLETED and not current.get("completed_date"):
            changes["completed_date"] = utcnow().date().isoformat()
        elif changes["status"] != COMPLETED:
            changes["completed_date"] = None
        changes["updated_at"] = utcnow()
        doc = self.store.update(COLLECTION, project_id, changes)
        if doc is None:
            raise NotFoundError("Project not found")
        logger.info("Project %s updated: %s at %s%%", project_id, doc["status"], doc["progress"])
        return doc

    def mark_completed(self, project_id: str) -> Dict[str, Any]:
        return self.update_project(project_id, ProjectUpdate(status=COMPLETED, progress=100))

    def list_projects(self, status: Optional[str] = None, q: Optional[str] = None) -> List[Dict[str, Any]]:
        projects = self.store.query(COLLECTION, {"status": status} if status else None)
        if q:
            needle = q.lower()
            projects = [
                p for p in projects
                if needle in (p.get("name") or "").lower()
                or needle in (p.get("customer_name") or p.get("customerName") or "").lower()
            ]
        return sorted(projects, key=lambda p: sort_key(p.get("created_at", p.get("createdAt"))), reverse=True)

    def list_for_customer(self, customer_id: str) -> List[Dict[str, Any]]:
        docs = self.store.query(COLLECTION, {"$or": [{"customer_id": customer_id}, {"customerId": customer_id}]})
        return sorted(docs, key=lambda p: sort_key(p.get("created_at", p.get("createdAt"))), reverse=True)
