"""
Database Schemas for the Fencing Portal

Each Pydantic model maps to a MongoDB collection:
- User -> users, Session -> sessions, PasswordReset -> password_resets
- Product -> products, Quote -> quotes, Project -> projects
- Settings -> settings (a single document with _id "system")

Relations (logical):
- users -> quotes (customer_id references user id)
- products -> quotes (product_id, product_name denormalized)
- quotes -> projects (quote_id), users -> projects (customer_id)

MongoDB stays schemaless; these models validate data at the API boundary.
"""
from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field

# ---------- Core ----------

class Identity(BaseModel):
    id: str
    email: EmailStr
    full_name: str = ""
    role: str = "Customer"


class Session(BaseModel):
    user_id: str
    token: str
    created_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None


class PasswordReset(BaseModel):
    user_id: str
    token: str
    expires_at: datetime
    used: bool = False


class User(BaseModel):
    email: EmailStr
    full_name: str = Field(..., description="Display name")
    phone: str = ""
    location: str = ""
    role: str = Field("Customer", description="Customer | Admin, compared case-insensitively")
    password_hash: str
    failed_logins: int = 0
    locked_until: Optional[datetime] = None
    created_at: Optional[datetime] = None


class ProfileUpdate(BaseModel):
    full_name: Optional[str] = None
    phone: Optional[str] = None
    location: Optional[str] = None

# ---------- Catalog ----------


class Product(BaseModel):
    name: str = Field(..., min_length=1)
    category: str = ""
    base_rate: float = Field(..., ge=0, description="Currency per square foot")
    description: str = ""
    images: List[str] = []
    property_types: List[str] = []
    specifications: Dict[str, str] = {}
    features: List[str] = []
    installation_time: Optional[str] = None


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    category: Optional[str] = None
    base_rate: Optional[float] = Field(None, ge=0)
    description: Optional[str] = None
    images: Optional[List[str]] = None
    property_types: Optional[List[str]] = None
    specifications: Optional[Dict[str, str]] = None
    features: Optional[List[str]] = None
    installation_time: Optional[str] = None

# ---------- Quotes ----------

QuoteStatus = Literal["Pending", "Approved", "Rejected"]


class Dimensions(BaseModel):
    length: float = Field(..., ge=0)
    width: float = Field(..., ge=0)
    height: float = Field(..., ge=0)


class CostBreakdown(BaseModel):
    area: float = 0.0
    material_cost: float = 0.0
    labor_cost: float = 0.0
    transport_cost: float = 0.0
    grand_total: float = 0.0

    def rounded(self) -> Dict[str, float]:
        return {k: round(v, 2) for k, v in self.model_dump().items()}

    def costs(self) -> Dict[str, float]:
        return self.model_dump(exclude={"area"})


class Quote(BaseModel):
    customer_id: Optional[str] = None
    customer_name: str
    customer_email: str
    product_id: Optional[str] = None
    product_name: str = ""
    dimensions: Dimensions = Field(default_factory=lambda: Dimensions(length=0, width=0, height=0))
    area: float = 0.0
    cost_breakdown: Dict[str, float] = Field(..., description="material_cost, labor_cost, transport_cost, grand_total")
    status: QuoteStatus = "Pending"
    notes: str = ""
    description: str = ""
    is_read: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

# ---------- Projects ----------

ProjectStatus = Literal["Pending", "In Progress", "Completed"]
MilestoneStatus = Literal["Pending", "In Progress", "Completed"]


class Milestone(BaseModel):
    name: str
    status: MilestoneStatus = "Pending"
    date: Optional[str] = None


class Project(BaseModel):
    name: Optional[str] = None
    quote_id: Optional[str] = None
    customer_id: Optional[str] = None
    customer_name: Optional[str] = None
    product_id: Optional[str] = None
    product_name: Optional[str] = None
    status: ProjectStatus = "Pending"
    progress: int = 0
    milestones: List[Milestone] = []
    notes: List[str] = []
    start_date: Optional[str] = None
    estimated_completion: Optional[str] = None
    completed_date: Optional[str] = None


class ProjectUpdate(BaseModel):
    name: Optional[str] = None
    status: Optional[ProjectStatus] = None
    progress: Optional[int] = None
    milestones: Optional[List[Milestone]] = None
    notes: Optional[List[str]] = None
    start_date: Optional[str] = None
    estimated_completion: Optional[str] = None

# ---------- Settings ----------


class NotificationSettings(BaseModel):
    email: bool = True
    push: bool = True
    order_updates: bool = True
    low_stock_warnings: bool = False


class SystemSettings(BaseModel):
    tax_rate: float = Field(18, ge=0, le=100)
    currency: str = "INR"
    support_phone: str = ""


class Settings(BaseModel):
    notifications: NotificationSettings = NotificationSettings()
    system: SystemSettings = SystemSettings()
    theme: Literal["dark", "light", "system"] = "dark"
