"""
Admin routes: companies, employees, benefit plans, FAQs, settings and the audit trail.
Every handler checks a role, resolves the company scope, calls one repository and writes an audit event.
"""
import uuid
from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from auth import CurrentUser, require_role, resolve_company_id
from auth.roles import (
    COMPANY_ADMIN,
    HR_ADMIN,
    PLATFORM_ADMIN,
    ROLE_DESCRIPTIONS,
    ROLE_DISPLAY_NAMES,
    get_managed_roles,
    normalize_legacy_role,
)
from db import benefit_plan_repository, company_repository, faq_repository, user_repository
from models import (
    AuditLogOut,
    BenefitPlanCreate,
    BenefitPlanOut,
    BenefitPlanUpdate,
    CompanyCreate,
    CompanyOut,
    CompanyUpdate,
    EmployeeCreate,
    EmployeeOut,
    EmployeeUpdate,
    FAQCreate,
    FAQOut,
    FAQUpdate,
    RoleAssignment,
    SettingsUpdate,
)
from services import response_cache
from services.audit import list_audit_logs, log_user_action

router = APIRouter(prefix="/admin", tags=["admin"])

PlatformUser = Annotated[CurrentUser, Depends(require_role(PLATFORM_ADMIN))]
CompanyAdminUser = Annotated[CurrentUser, Depends(require_role(COMPANY_ADMIN))]
HRUser = Annotated[CurrentUser, Depends(require_role(HR_ADMIN))]


def _not_found(what: str) -> HTTPException:
    return HTTPException(status_code=404, detail=f"{what} not found")


# ---------------------------------------------------------------------------
# Companies
# ---------------------------------------------------------------------------

@router.get("/companies", response_model=List[CompanyOut], summary="List companies")
async def list_companies(
    user: PlatformUser,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
):
    return await company_repository.list_all(limit=limit, offset=offset)


@router.post("/companies", response_model=CompanyOut, summary="Create company")
async def create_company(body: CompanyCreate, user: PlatformUser, request: Request):
    company = await company_repository.create(str(uuid.uuid4()), name=body.name, domain=body.domain)
    await log_user_action(
        user, "company_created", "company", company["id"], {"name": body.name}, request, company_id=company["id"]
    )
    return company


def _company_scope(user: CurrentUser, company_id: str) -> str:
    """Platform roles see any company; company admins only their own."""
    if not user.is_platform and company_id != user.company_id:
        raise HTTPException(status_code=403, detail="Access to another company is not allowed")
    return company_id


@router.get("/companies/{company_id}", response_model=CompanyOut, summary="Company detail")
async def get_company(company_id: str, user: CompanyAdminUser):
    company = await company_repository.get_by_id(_company_scope(user, company_id))
    if not company:
        raise _not_found("Company")
    return company


@router.put("/companies/{company_id}", response_model=CompanyOut, summary="Update company")
async def update_company(company_id: str, body: CompanyUpdate, user: CompanyAdminUser, request: Request):
    company = await company_repository.update(
        _company_scope(user, company_id),
        name=body.name,
        domain=body.domain,
        status=body.status,
    )
    if not company:
        raise _not_found("Company")
    await log_user_action(
        user, "company_updated", "company", company_id, body.model_dump(exclude_none=True), request, company_id=company_id
    )
    return company


# ---------------------------------------------------------------------------
# Employees
# ---------------------------------------------------------------------------

def _check_assignable(user: CurrentUser, role: str) -> str:
    normalized = normalize_legacy_role(role)
    if not normalized:
        raise HTTPException(status_code=400, detail=f"Unknown role '{role}'")
    if normalized not in get_managed_roles(user.role):
        raise HTTPException(status_code=403, detail=f"Role {user.role} cannot assign {normalized}")
    return normalized


@router.get("/roles", summary="Roles the caller may assign")
async def list_assignable_roles(user: HRUser):
    return [
        {"role": r, "name": ROLE_DISPLAY_NAMES[r], "description": ROLE_DESCRIPTIONS[r]}
        for r in get_managed_roles(user.role)
    ]


@router.get("/employees", response_model=List[EmployeeOut], summary="List employees")
async def list_employees(
    user: HRUser,
    company_id: Optional[str] = Query(None),
    role: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
):
    scope = resolve_company_id(user, company_id)
    return await user_repository.list_by_company(scope, limit=limit, offset=offset, role=role)


@router.post("/employees", response_model=EmployeeOut, summary="Add employee")
async def create_employee(
    body: EmployeeCreate,
    user: HRUser,
    request: Request,
    company_id: Optional[str] = Query(None),
):
    scope = resolve_company_id(user, company_id)
    role = _check_assignable(user, body.role)
    if await user_repository.get_by_email(body.email):
        raise HTTPException(status_code=409, detail="A user with this email already exists")
    employee = await user_repository.create(
        email=body.email,
        company_id=scope,
        name=body.name,
        role=role,
        department=body.department,
    )
    await log_user_action(
        user, "employee_created", "user", employee["id"], {"email": body.email, "role": role}, request, company_id=scope
    )
    return employee


@router.put("/employees/{user_id}", response_model=EmployeeOut, summary="Update employee")
async def update_employee(
    user_id: int,
    body: EmployeeUpdate,
    user: HRUser,
    request: Request,
    company_id: Optional[str] = Query(None),
):
    scope = resolve_company_id(user, company_id)
    employee = await user_repository.update(
        user_id,
        scope,
        name=body.name,
        department=body.department,
        status=body.status,
    )
    if not employee:
        raise _not_found("Employee")
    await log_user_action(
        user, "employee_updated", "user", user_id, body.model_dump(exclude_none=True), request, company_id=scope
    )
    return employee


@router.post("/employees/{user_id}/role", response_model=EmployeeOut, summary="Assign role")
async def assign_role(
    user_id: int,
    body: RoleAssignment,
    user: HRUser,
    request: Request,
    company_id: Optional[str] = Query(None),
):
    """The new role must be strictly below the caller's own role."""
    scope = resolve_company_id(user, company_id)
    role = _check_assignable(user, body.role)
    target = await user_repository.get_by_id(user_id)
    if not target or target["company_id"] != scope:
        raise _not_found("Employee")
    if target["role"] not in get_managed_roles(user.role):
        raise HTTPException(status_code=403, detail="Cannot change the role of a peer or superior")
    employee = await user_repository.update_role(user_id, scope, role)
    if not employee:
        raise _not_found("Employee")
    await log_user_action(
        user, "role_assigned", "user", user_id, {"from": target["role"], "to": role}, request, company_id=scope
    )
    return employee


# ---------------------------------------------------------------------------
# Benefit plans
# ---------------------------------------------------------------------------

@router.get("/benefit-plans", response_model=List[BenefitPlanOut], summary="List benefit plans")
async def list_benefit_plans(
    user: HRUser,
    company_id: Optional[str] = Query(None),
    active_only: bool = Query(False),
):
    scope = resolve_company_id(user, company_id)
    return await benefit_plan_repository.list_by_company(scope, active_only=active_only)


@router.post("/benefit-plans", response_model=BenefitPlanOut, summary="Create benefit plan")
async def create_benefit_plan(
    body: BenefitPlanCreate,
    user: HRUser,
    request: Request,
    company_id: Optional[str] = Query(None),
):
    scope = resolve_company_id(user, company_id)
    plan = await benefit_plan_repository.create(scope, **body.model_dump())
    await log_user_action(user, "benefit_plan_created", "benefit_plan", plan["id"], {"name": body.name}, request, company_id=scope)
    return plan


@router.put("/benefit-plans/{plan_id}", response_model=BenefitPlanOut, summary="Update benefit plan")
async def update_benefit_plan(
    plan_id: int,
    body: BenefitPlanUpdate,
    user: HRUser,
    request: Request,
    company_id: Optional[str] = Query(None),
):
    scope = resolve_company_id(user, company_id)
    changes = body.model_dump(exclude_none=True)
    plan = await benefit_plan_repository.update(plan_id, scope, **changes)
    if not plan:
        raise _not_found("Benefit plan")
    await log_user_action(user, "benefit_plan_updated", "benefit_plan", plan_id, changes, request, company_id=scope)
    return plan


@router.post(
    "/benefit-plans/{plan_id}/toggle-status",
    response_model=BenefitPlanOut,
    summary="Activate/deactivate benefit plan",
)
async def toggle_benefit_plan(
    plan_id: int,
    user: HRUser,
    request: Request,
    company_id: Optional[str] = Query(None),
):
    scope = resolve_company_id(user, company_id)
    plan = await benefit_plan_repository.toggle_status(plan_id, scope)
    if not plan:
        raise _not_found("Benefit plan")
    await log_user_action(
        user, "benefit_plan_toggled", "benefit_plan", plan_id, {"is_active": plan["is_active"]}, request, company_id=scope
    )
    return plan


@router.delete("/benefit-plans/{plan_id}", summary="Delete benefit plan")
async def delete_benefit_plan(
    plan_id: int,
    user: HRUser,
    request: Request,
    company_id: Optional[str] = Query(None),
):
    scope = resolve_company_id(user, company_id)
    if not await benefit_plan_repository.delete(plan_id, scope):
        raise _not_found("Benefit plan")
    await log_user_action(user, "benefit_plan_deleted", "benefit_plan", plan_id, None, request, company_id=scope)
    return {"message": "Deleted"}


# ---------------------------------------------------------------------------
# FAQs (every change invalidates the company's response cache)
# ---------------------------------------------------------------------------

@router.get("/faqs", response_model=List[FAQOut], summary="List FAQs")
async def list_faqs(
    user: HRUser,
    company_id: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
):
    scope = resolve_company_id(user, company_id)
    return await faq_repository.list_by_company(scope, category=category)


@router.post("/faqs", response_model=FAQOut, summary="Create FAQ")
async def create_faq(
    body: FAQCreate,
    user: HRUser,
    request: Request,
    company_id: Optional[str] = Query(None),
):
    scope = resolve_company_id(user, company_id)
    faq = await faq_repository.create(scope, **body.model_dump())
    await response_cache.invalidate_company(scope)
    await log_user_action(user, "faq_created", "faq", faq["id"], {"question": body.question}, request, company_id=scope)
    return faq


@router.put("/faqs/{faq_id}", response_model=FAQOut, summary="Update FAQ")
async def update_faq(
    faq_id: int,
    body: FAQUpdate,
    user: HRUser,
    request: Request,
    company_id: Optional[str] = Query(None),
):
    scope = resolve_company_id(user, company_id)
    changes = body.model_dump(exclude_none=True)
    faq = await faq_repository.update(faq_id, scope, **changes)
    if not faq:
        raise _not_found("FAQ")
    await response_cache.invalidate_company(scope)
    await log_user_action(user, "faq_updated", "faq", faq_id, changes, request, company_id=scope)
    return faq


@router.delete("/faqs/{faq_id}", summary="Delete FAQ")
async def delete_faq(
    faq_id: int,
    user: HRUser,
    request: Request,
    company_id: Optional[str] = Query(None),
):
    scope = resolve_company_id(user, company_id)
    if not await faq_repository.delete(faq_id, scope):
        raise _not_found("FAQ")
    await response_cache.invalidate_company(scope)
    await log_user_action(user, "faq_deleted", "faq", faq_id, None, request, company_id=scope)
    return {"message": "Deleted"}


# ---------------------------------------------------------------------------
# Settings and audit
# ---------------------------------------------------------------------------

@router.get("/settings", summary="Company settings")
async def get_settings(user: CompanyAdminUser, company_id: Optional[str] = Query(None)):
    company = await company_repository.get_by_id(resolve_company_id(user, company_id))
    if not company:
        raise _not_found("Company")
    return {"company_id": company["id"], "settings": company["settings"]}


@router.put("/settings", summary="Merge company settings")
async def update_settings(
    body: SettingsUpdate,
    user: CompanyAdminUser,
    request: Request,
    company_id: Optional[str] = Query(None),
):
    scope = resolve_company_id(user, company_id)
    company = await company_repository.update_settings(scope, body.settings)
    if not company:
        raise _not_found("Company")
    await log_user_action(user, "settings_updated", "company", scope, {"keys": sorted(body.settings)}, request, company_id=scope)
    return {"company_id": company["id"], "settings": company["settings"]}


@router.get("/audit-logs", response_model=List[AuditLogOut], summary="Audit trail")
async def get_audit_logs(
    user: CompanyAdminUser,
    company_id: Optional[str] = Query(None),
    action: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
):
    scope = resolve_company_id(user, company_id)
    return await list_audit_logs(scope, limit=limit, offset=offset, action=action)
