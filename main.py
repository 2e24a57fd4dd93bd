import logging
import os
from datetime import datetime
from typing import Any, List, Optional

from fastapi import Depends, FastAPI, Header, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse, StreamingResponse
from pydantic import BaseModel, Field

from access import RouteDecision, area_role, home_for, route_for
from billing import prepare_bill, render_bill_html
from catalog import CatalogManager
from config import get_config
from database import DocumentStore, get_store
from dates import utcnow
from errors import AuthError, NotFoundError, PermissionDenied, PortalError, ValidationError
from estimator import estimate, rate_for
from identity import AuthSession, IdentityService
from projects import ProjectManager
from quotes import QuoteLifecycleManager, migrate_legacy_quotes
from reports import admin_dashboard, build_report, customer_dashboard, report_csv
from schemas import Identity, Product, ProductUpdate, ProfileUpdate, Project, ProjectUpdate, Settings
from seed import seed_database

config = get_config()
logging.basicConfig(level=config.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

app = FastAPI(title="Fencing Portal API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(PortalError)
def portal_error_handler(request: Request, exc: PortalError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, "code": exc.code})


# ---------- Utilities ----------

def get_identity_service(store: DocumentStore = Depends(get_store)) -> IdentityService:
    return IdentityService(store)


def _token_from(token: Optional[str], authorization: Optional[str]) -> Optional[str]:
    if token:
        return token
    if authorization and authorization.lower().startswith("bearer "):
        return authorization[7:].strip()
    return None


def get_current_session(
    token: Optional[str] = Query(None, alias="token"),
    authorization: Optional[str] = Header(None),
    identity: IdentityService = Depends(get_identity_service),
) -> AuthSession:
    return identity.session_from_token(_token_from(token, authorization))


def get_optional_session(
    token: Optional[str] = Query(None, alias="token"),
    authorization: Optional[str] = Header(None),
    identity: IdentityService = Depends(get_identity_service),
) -> Optional[AuthSession]:
    raw = _token_from(token, authorization)
    if not raw:
        return None
    try:
        return identity.session_from_token(raw)
    except AuthError as e:
        if e.code != "invalid-session":
            raise
        return None


def require_admin(session: AuthSession = Depends(get_current_session)) -> AuthSession:
    if not session.is_admin:
        logger.warning("Non-admin %s attempted an admin action", session.identity.email)
        raise PermissionDenied("Admins only")
    return session


def _ensure_can_view(session: AuthSession, owner_id: Optional[str]) -> None:
    if not session.is_admin and owner_id != session.user_id:
        raise NotFoundError("Not found")


# ---------- Auth ----------

class RegisterRequest(BaseModel):
    name: str
    email: str
    password: str
    phone: str = ""


class CreateUserRequest(RegisterRequest):
    role: str = "Customer"


class LoginRequest(BaseModel):
    email: str
    password: str


class PasswordResetRequest(BaseModel):
    email: str


class PasswordResetConfirm(BaseModel):
    token: str
    new_password: str


class TokenResponse(BaseModel):
    token: str
    user: Identity
    redirect_to: str


def _token_response(session: AuthSession) -> TokenResponse:
    return TokenResponse(token=session.token, user=session.identity, redirect_to=home_for(session))


@app.post("/auth/register", response_model=TokenResponse)
def register(req: RegisterRequest, identity: IdentityService = Depends(get_identity_service)):
    session = identity.create_account(req.email, req.password, req.name, phone=req.phone, role="Customer")
    return _token_response(session)


@app.post("/auth/admin/register", response_model=TokenResponse)
def register_admin(
    req: RegisterRequest,
    store: DocumentStore = Depends(get_store),
    identity: IdentityService = Depends(get_identity_service),
    caller: Optional[AuthSession] = Depends(get_optional_session),
):
    # open only until the first admin exists; afterwards an admin must add admins
    if store.count("users", {"role": {"$regex": "^admin$", "$options": "i"}}) and not (caller and caller.is_admin):
        raise PermissionDenied("Admins only")
    session = identity.create_account(req.email, req.password, req.name, phone=req.phone, role="Admin")
    return _token_response(session)


@app.post("/auth/login", response_model=TokenResponse)
def login(req: LoginRequest, identity: IdentityService = Depends(get_identity_service)):
    return _token_response(identity.authenticate(req.email, req.password))


@app.post("/auth/logout")
def logout(session: AuthSession = Depends(get_current_session), identity: IdentityService = Depends(get_identity_service)):
    identity.sign_out(session.token)
    return {"ok": True}


@app.post("/auth/password-reset")
def password_reset(req: PasswordResetRequest, identity: IdentityService = Depends(get_identity_service)):
    identity.send_password_reset(req.email)
    return {"ok": True}


@app.post("/auth/password-reset/confirm")
def password_reset_confirm(req: PasswordResetConfirm, identity: IdentityService = Depends(get_identity_service)):
    identity.confirm_password_reset(req.token, req.new_password)
    return {"ok": True}


@app.get("/auth/me", response_model=Identity)
def me(session: AuthSession = Depends(get_current_session)):
    return session.identity


@app.get("/profile")
def get_profile(session: AuthSession = Depends(get_current_session), identity: IdentityService = Depends(get_identity_service)):
    return identity.get_profile(session)


@app.put("/profile")
def update_profile(changes: ProfileUpdate, session: AuthSession = Depends(get_current_session), identity: IdentityService = Depends(get_identity_service)):
    return identity.update_profile(session, changes)


# ---------- Navigation ----------

@app.get("/navigation/guard", response_model=RouteDecision)
def navigation_guard(area: Optional[str] = None, session: Optional[AuthSession] = Depends(get_optional_session)):
    return route_for(session, area_role(area) if area else None)


@app.get("/admin/dashboard")
def get_admin_dashboard(session: Optional[AuthSession] = Depends(get_optional_session), store: DocumentStore = Depends(get_store)):
    decision = route_for(session, "Admin")
    if not decision.allowed:
        return RedirectResponse(decision.redirect_to, status_code=307)
    return admin_dashboard(store)


@app.get("/customer/dashboard")
def get_customer_dashboard(session: Optional[AuthSession] = Depends(get_optional_session), store: DocumentStore = Depends(get_store)):
    decision = route_for(session, "Customer")
    if not decision.allowed:
        return RedirectResponse(decision.redirect_to, status_code=307)
    return customer_dashboard(store, session.user_id)


# ---------- Catalog ----------

def get_catalog(store: DocumentStore = Depends(get_store)) -> CatalogManager:
    return CatalogManager(store)


@app.get("/products")
def list_products(q: Optional[str] = None, category: Optional[str] = None, catalog: CatalogManager = Depends(get_catalog)) -> List[dict]:
    return catalog.list_products(q=q, category=category)


@app.get("/products/{product_id}")
def get_product(product_id: str, catalog: CatalogManager = Depends(get_catalog)):
    return catalog.get_product(product_id)


@app.post("/products", status_code=201)
def create_product(payload: Product, admin: AuthSession = Depends(require_admin), catalog: CatalogManager = Depends(get_catalog)):
    return catalog.create_product(payload)


@app.put("/products/{product_id}")
def update_product(product_id: str, payload: ProductUpdate, admin: AuthSession = Depends(require_admin), catalog: CatalogManager = Depends(get_catalog)):
    return catalog.update_product(product_id, payload)


@app.delete("/products/{product_id}")
def delete_product(product_id: str, admin: AuthSession = Depends(require_admin), catalog: CatalogManager = Depends(get_catalog)):
    catalog.delete_product(product_id)
    return {"ok": True}


# ---------- Estimates ----------

class EstimateRequest(BaseModel):
    product_id: Optional[str] = None
    length: Any = None
    width: Any = None
    height: Any = None


@app.post("/estimates")
def create_estimate(req: EstimateRequest, catalog: CatalogManager = Depends(get_catalog)):
    if not req.product_id:
        raise ValidationError("Please fill in all fields")
    product = catalog.get_product(req.product_id)
    breakdown = estimate(req.length, req.width, req.height, rate_for(product))
    return {"product_id": product["id"], "product_name": product["name"], **breakdown.rounded()}


# ---------- Quotes ----------

def get_quotes(store: DocumentStore = Depends(get_store)) -> QuoteLifecycleManager:
    return QuoteLifecycleManager(store)


class QuoteRequest(BaseModel):
    product_id: Optional[str] = None
    length: Any = None
    width: Any = None
    height: Any = None
    notes: str = ""
    customer_id: Optional[str] = Field(None, description="Admins may file a proposal for a customer")


class StatusRequest(BaseModel):
    status: str


class QuoteEditRequest(BaseModel):
    product_name: Optional[Any] = None
    grand_total: Optional[Any] = None
    area: Optional[Any] = None
    notes: Optional[Any] = None


class ManualQuoteRequest(BaseModel):
    customer_name: str = ""
    customer_email: str = ""
    grand_total: Any = None
    area: Any = None
    product_name: str = ""
    description: str = ""


@app.post("/quotes", status_code=201)
def submit_quote(
    req: QuoteRequest,
    session: AuthSession = Depends(get_current_session),
    quotes: QuoteLifecycleManager = Depends(get_quotes),
    catalog: CatalogManager = Depends(get_catalog),
    identity: IdentityService = Depends(get_identity_service),
):
    if not req.product_id:
        raise ValidationError("Please fill in all fields")
    customer = session.identity
    if req.customer_id and req.customer_id != session.user_id:
        if not session.is_admin:
            raise PermissionDenied("Admins only")
        profile = identity.store.read("users", req.customer_id)
        if not profile:
            raise NotFoundError("Customer not found")
        customer = Identity(id=profile["id"], email=profile["email"], full_name=profile.get("full_name", ""), role=profile.get("role") or "Customer")

    product = catalog.get_product(req.product_id)
    # the breakdown is recomputed here; browser-side figures are not trusted
    breakdown = estimate(req.length, req.width, req.height, rate_for(product))
    dimensions = {"length": float(req.length), "width": float(req.width), "height": float(req.height)}
    quote_id = quotes.submit_quote(customer, product, dimensions, breakdown, req.notes)
    return quotes.get(quote_id)


@app.post("/admin/quotes", status_code=201)
def record_manual_quote(req: ManualQuoteRequest, admin: AuthSession = Depends(require_admin), quotes: QuoteLifecycleManager = Depends(get_quotes)):
    quote_id = quotes.record_manual_quote(
        req.customer_name, req.customer_email, req.grand_total,
        description=req.description, product_name=req.product_name, area=req.area,
    )
    return quotes.get(quote_id)


@app.get("/quotes")
def list_quotes(status: Optional[str] = None, session: AuthSession = Depends(get_current_session), quotes: QuoteLifecycleManager = Depends(get_quotes)):
    if session.is_admin:
        return quotes.list_all(status=status)
    return quotes.list_for_customer(session.user_id, status=status)


@app.get("/quotes/changes")
def quote_changes(since: datetime, session: AuthSession = Depends(get_current_session), quotes: QuoteLifecycleManager = Depends(get_quotes)):
    return quotes.changes_since(since, customer_id=None if session.is_admin else session.user_id)


@app.get("/quotes/unread-count")
def unread_quotes(admin: AuthSession = Depends(require_admin), quotes: QuoteLifecycleManager = Depends(get_quotes)):
    return {"unread": quotes.unread_count()}


@app.get("/quotes/{quote_id}")
def get_quote(quote_id: str, session: AuthSession = Depends(get_current_session), quotes: QuoteLifecycleManager = Depends(get_quotes)):
    quote = quotes.get(quote_id)
    _ensure_can_view(session, quote["customer_id"])
    return quote


@app.post("/quotes/{quote_id}/read")
def mark_quote_read(quote_id: str, admin: AuthSession = Depends(require_admin), quotes: QuoteLifecycleManager = Depends(get_quotes)):
    return quotes.mark_read(quote_id)


@app.post("/quotes/{quote_id}/status")
def update_quote_status(quote_id: str, req: StatusRequest, admin: AuthSession = Depends(require_admin), quotes: QuoteLifecycleManager = Depends(get_quotes)):
    return quotes.transition(quote_id, req.status)


@app.patch("/quotes/{quote_id}")
def edit_quote(quote_id: str, req: QuoteEditRequest, admin: AuthSession = Depends(require_admin), quotes: QuoteLifecycleManager = Depends(get_quotes)):
    return quotes.edit_details(quote_id, req.model_dump(exclude_unset=True))


@app.get("/quotes/{quote_id}/recompute")
def recompute_quote(quote_id: str, area: Optional[str] = None, admin: AuthSession = Depends(require_admin), quotes: QuoteLifecycleManager = Depends(get_quotes)):
    return quotes.suggest_recompute(quote_id, area=area).rounded()


@app.get("/quotes/{quote_id}/bill", response_class=HTMLResponse)
def quote_bill(quote_id: str, session: AuthSession = Depends(get_current_session), quotes: QuoteLifecycleManager = Depends(get_quotes)):
    quote = quotes.get(quote_id)
    _ensure_can_view(session, quote["customer_id"])
    return HTMLResponse(content=render_bill_html(prepare_bill(quote)))


@app.post("/admin/quotes/migrate")
def migrate_quotes(admin: AuthSession = Depends(require_admin), store: DocumentStore = Depends(get_store)):
    return {"migrated": migrate_legacy_quotes(store)}


# ---------- Projects ----------

def get_projects(store: DocumentStore = Depends(get_store)) -> ProjectManager:
    return ProjectManager(store)


@app.get("/projects")
def list_projects(status: Optional[str] = None, q: Optional[str] = None, session: AuthSession = Depends(get_current_session), projects: ProjectManager = Depends(get_projects)):
    if session.is_admin:
        return projects.list_projects(status=status, q=q)
    return projects.list_for_customer(session.user_id)


@app.post("/projects", status_code=201)
def create_project(project: Project, admin: AuthSession = Depends(require_admin), projects: ProjectManager = Depends(get_projects)):
    return projects.create_project(project)


@app.get("/projects/{project_id}")
def get_project(project_id: str, session: AuthSession = Depends(get_current_session), projects: ProjectManager = Depends(get_projects)):
    project = projects.get_project(project_id)
    _ensure_can_view(session, project.get("customer_id", project.get("customerId")))
    return project


@app.put("/projects/{project_id}")
def update_project(project_id: str, payload: ProjectUpdate, admin: AuthSession = Depends(require_admin), projects: ProjectManager = Depends(get_projects)):
    return projects.update_project(project_id, payload)


@app.post("/projects/{project_id}/complete")
def complete_project(project_id: str, admin: AuthSession = Depends(require_admin), projects: ProjectManager = Depends(get_projects)):
    return projects.mark_completed(project_id)


# ---------- Customers & Users ----------

@app.get("/customers")
def list_customers(q: Optional[str] = None, admin: AuthSession = Depends(require_admin), identity: IdentityService = Depends(get_identity_service)):
    return identity.list_customers(q=q)


@app.post("/users", status_code=201)
def create_user(new_user: CreateUserRequest, admin: AuthSession = Depends(require_admin), identity: IdentityService = Depends(get_identity_service)):
    session = identity.create_account(new_user.email, new_user.password, new_user.name, phone=new_user.phone, role=new_user.role)
    # the new account's own session is not handed to the admin
    identity.sign_out(session.token)
    return session.identity


# ---------- Settings ----------

SETTINGS_ID = "system"


@app.get("/settings")
def get_settings(session: AuthSession = Depends(get_current_session), store: DocumentStore = Depends(get_store)):
    doc = store.read("settings", SETTINGS_ID)
    if not doc:
        return Settings().model_dump()
    doc.pop("id", None)
    return Settings(**doc).model_dump()


@app.put("/settings")
def update_settings(settings: Settings, admin: AuthSession = Depends(require_admin), store: DocumentStore = Depends(get_store)):
    data = settings.model_dump()
    store.upsert("settings", SETTINGS_ID, data)
    logger.info("Settings updated by %s", admin.identity.email)
    return data


# ---------- Reports ----------

@app.get("/reports")
def get_report(admin: AuthSession = Depends(require_admin), store: DocumentStore = Depends(get_store)):
    return build_report(store)


@app.get("/reports/export")
def export_report(admin: AuthSession = Depends(require_admin), store: DocumentStore = Depends(get_store)):
    content = report_csv(build_report(store)["rows"])
    filename = f"financial_report_{utcnow():%Y-%m-%d}.csv"
    return StreamingResponse(iter([content]), media_type="text/csv", headers={"Content-Disposition": f"attachment; filename={filename}"})


# ---------- Seed ----------

@app.post("/admin/seed")
def seed(admin: AuthSession = Depends(require_admin), store: DocumentStore = Depends(get_store)):
    return {"ok": True, "seeded": seed_database(store)}


@app.get("/")
def root():
    return {"message": "Fencing Portal API running"}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set",
        "database_name": "✅ Set" if os.getenv("DATABASE_NAME") else "❌ Not Set",
        "connection_status": "Not Connected",
        "collections": [],
    }
    try:
        store = get_store()
        response["connection_status"] = "Connected"
        response["collections"] = store.list_collections()[:10]
        response["database"] = "✅ Connected & Working"
    except PortalError as e:
        response["database"] = f"⚠️ {e.message[:80]}"
    return response


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
