"""
Route authorization for the two signed-in areas.

A caller without a session is sent to sign-in. A signed-in caller asking for
the other role's area is sent to their own dashboard rather than shown an
error page.
"""
from typing import Optional

from pydantic import BaseModel

from identity import AuthSession

SIGN_IN_PATH = "/signin"
ADMIN_DASHBOARD = "/admin/dashboard"
CUSTOMER_DASHBOARD = "/customer/dashboard"


class RouteDecision(BaseModel):
    allowed: bool
    redirect_to: Optional[str] = None


def home_for(session: AuthSession) -> str:
    return ADMIN_DASHBOARD if session.is_admin else CUSTOMER_DASHBOARD


def route_for(session: Optional[AuthSession], required_role: Optional[str]) -> RouteDecision:
    if session is None:
        return RouteDecision(allowed=False, redirect_to=SIGN_IN_PATH)
    if required_role:
        if session.role.strip().lower() != required_role.strip().lower():
            return RouteDecision(allowed=False, redirect_to=home_for(session))
    return RouteDecision(allowed=True)


def area_role(area: str) -> Optional[str]:
    area = (area or "").strip().lower()
    if area == "admin":
        return "Admin"
    if area == "customer":
        return "Customer"
    return None


