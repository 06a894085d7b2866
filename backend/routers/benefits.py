"""
Employee benefit routes: plans, enrollments and the calculators in services.benefits_tools
"""
from typing import Annotated, List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from auth import CurrentUser, get_current_user, resolve_company_id
from db import benefit_plan_repository, company_repository, enrollment_repository
from models import (
    BenefitPlanOut,
    CostCalculationRequest,
    EligibilityRequest,
    EnrollmentCreate,
    EnrollmentOut,
    PlanCompareRequest,
)
from services import benefits_tools
from services.audit import log_user_action

router = APIRouter(prefix="/benefits", tags=["benefits"])
User = Annotated[CurrentUser, Depends(get_current_user)]


@router.get("/plans", response_model=List[BenefitPlanOut], summary="Active plans of my company")
async def list_plans(user: User):
    return await benefit_plan_repository.list_by_company(resolve_company_id(user), active_only=True)


@router.get("/enrollments", response_model=List[EnrollmentOut], summary="My enrollments")
async def list_enrollments(user: User):
    return await enrollment_repository.list_by_user(user.id, resolve_company_id(user))


@router.post("/enrollments", response_model=EnrollmentOut, summary="Enroll in a plan")
async def enroll(body: EnrollmentCreate, user: User, request: Request):
    company_id = resolve_company_id(user)
    plan = await benefit_plan_repository.get(body.plan_id, company_id)
    if not plan or not plan["is_active"]:
        raise HTTPException(status_code=404, detail="Benefit plan not found")
    enrollment = await enrollment_repository.create(
        company_id,
        user.id,
        body.plan_id,
        body.coverage_level,
        body.effective_date,
    )
    if enrollment is None:
        raise HTTPException(status_code=409, detail="Already enrolled in this plan")
    await log_user_action(
        user,
        "benefit_enrolled",
        "enrollment",
        enrollment["id"],
        {"plan_id": body.plan_id, "coverage_level": body.coverage_level},
        request,
    )
    return enrollment


@router.post("/calculate-cost", summary="Estimate annual cost")
async def calculate_cost(body: CostCalculationRequest, user: User):
    return benefits_tools.calculate_cost(
        body.coverage_level,
        include_hsa=body.include_hsa,
        include_fsa=body.include_fsa,
        expected_medical_expenses=body.expected_medical_expenses,
    )


@router.post("/compare", summary="Compare 2-5 plans")
async def compare_plans(body: PlanCompareRequest, user: User):
    company_id = resolve_company_id(user)
    plans = await benefit_plan_repository.get_many(body.plan_ids, company_id)
    try:
        return benefits_tools.compare_plans(plans)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/eligibility", summary="Eligibility rules for a benefit type")
async def check_eligibility(body: EligibilityRequest, user: User):
    return benefits_tools.check_eligibility(body.benefit_type, body.employee_type, body.life_event)


@router.get("/enrollment-deadline", summary="Next enrollment deadline")
async def enrollment_deadline(
    user: User,
    enrollment_period: Literal["annual", "new_hire", "qualifying_event"] = Query("annual"),
    benefit_type: Literal["health", "dental", "vision", "all"] = Query("all"),
):
    company = await company_repository.get_by_id(resolve_company_id(user))
    if not company:
        raise HTTPException(status_code=404, detail="Company not found")
    try:
        return benefits_tools.enrollment_deadline(enrollment_period, benefit_type, company["settings"])
    except ValueError as e:
        raise HTTPException(status_code=400, detail=f"Invalid enrollment_period_end setting: {e}")


@router.get("/explain/{term}", summary="Explain a benefits term")
async def explain(
    term: str,
    user: User,
    context: Optional[Literal["health", "dental", "vision", "retirement", "general"]] = Query(None),
):
    return benefits_tools.explain_benefit(term, context or "general")
