"""
Benefits calculators behind /api/benefits: cost estimate, plan comparison,
eligibility rules, enrollment deadlines and a small glossary.

Everything here is pure; callers load plans and company settings first.
"""
from datetime import date, timedelta
from typing import Any, Optional

BASE_MONTHLY_PREMIUM = {
    "employee": 200,
    "employee_spouse": 400,
    "employee_children": 350,
    "family": 600,
}
EMPLOYER_SHARE = 0.7
TAX_RATE = 0.25
HSA_LIMIT = 3650
FSA_LIMIT = 3050

ELIGIBILITY_RULES = {
    "health": "30 days from hire date or during open enrollment",
    "dental": "30 days from hire date or during open enrollment",
    "vision": "30 days from hire date or during open enrollment",
    "life": "Immediate upon hire",
    "disability": "90 days from hire date",
    "fsa": "During open enrollment only",
    "hsa": "Must be enrolled in HDHP",
    "401k": "90 days from hire date",
}

ENROLLMENT_WINDOW_DAYS = 30

GLOSSARY = {
    "deductible": "The amount you pay for covered health care services before your insurance plan starts to pay.",
    "premium": "The amount you pay for your health insurance every month.",
    "copay": "A fixed amount you pay for a covered health care service after you've paid your deductible.",
    "coinsurance": "The percentage of costs of a covered health care service you pay after you've paid your deductible.",
    "out-of-pocket maximum": (
        "The most you have to pay for covered services in a plan year. "
        "After you reach this amount, your health plan pays 100% of covered services."
    ),
    "hsa": "Health Savings Account - A tax-advantaged account to help you save for medical expenses.",
    "fsa": "Flexible Spending Account - An account you put money into to pay for certain out-of-pocket health care costs.",
    "hdhp": "High Deductible Health Plan - A plan with a higher deductible than traditional plans, often paired with an HSA.",
    "ppo": "Preferred Provider Organization - A type of health plan with a network of providers who have agreed to lower rates.",
    "hmo": "Health Maintenance Organization - A type of health plan that usually limits coverage to care from doctors in the plan network.",
}


def calculate_cost(
    coverage_level: str,
    include_hsa: bool = False,
    include_fsa: bool = False,
    expected_medical_expenses: float = 0.0,
    plan_id: Optional[int] = None,
) -> dict[str, Any]:
    """Simplified annual cost model: flat base premium, 70% employer share, 25% tax rate."""
    if coverage_level not in BASE_MONTHLY_PREMIUM:
        raise ValueError(f"Unknown coverage level: {coverage_level}")

    annual_premium = BASE_MONTHLY_PREMIUM[coverage_level] * 12
    employer_contribution = annual_premium * EMPLOYER_SHARE
    employee_cost = annual_premium - employer_contribution
    tax_savings = employee_cost * TAX_RATE

    hsa_contribution = HSA_LIMIT if include_hsa else 0
    hsa_tax_savings = hsa_contribution * TAX_RATE
    fsa_contribution = FSA_LIMIT if include_fsa else 0
    fsa_tax_savings = fsa_contribution * TAX_RATE

    expenses = expected_medical_expenses or 0.0
    without_accounts = employee_cost - tax_savings + expenses
    with_accounts = without_accounts - hsa_tax_savings - fsa_tax_savings

    return {
        "plan_id": plan_id,
        "coverage_level": coverage_level,
        "breakdown": {
            "annual_premium": annual_premium,
            "employer_contribution": employer_contribution,
            "employee_cost": employee_cost,
            "tax_savings": tax_savings,
            "hsa_contribution": hsa_contribution,
            "hsa_tax_savings": hsa_tax_savings,
            "fsa_contribution": fsa_contribution,
            "fsa_tax_savings": fsa_tax_savings,
            "expected_medical_expenses": expenses,
        },
        "totals": {
            "without_savings_accounts": without_accounts,
            "with_savings_accounts": with_accounts,
            "annual_savings": without_accounts - with_accounts,
        },
        "monthly_employee_cost": employee_cost / 12,
    }


def compare_plans(plans: list[dict[str, Any]]) -> dict[str, Any]:
    """Side-by-side view of 2-5 loaded plans; the first one is the recommendation."""
    if len(plans) < 2:
        raise ValueError("Could not find at least two plans to compare.")
    return {
        "plans": [
            {
                "id": p["id"],
                "name": p["name"],
                "plan_type": p.get("plan_type"),
                "premium": p.get("monthly_premium"),
                "deductible": p.get("deductible_individual"),
                "out_of_pocket_max": p.get("out_of_pocket_max_individual"),
                "coverage": p.get("coverage_details") or {},
                "network": p.get("provider"),
            }
            for p in plans
        ],
        "recommendation": plans[0]["id"],
        "reasoning": "Based on your profile, this plan offers the best value.",
    }


def check_eligibility(
    benefit_type: str,
    employee_type: str = "full_time",
    life_event: Optional[str] = None,
) -> dict[str, Any]:
    if benefit_type not in ELIGIBILITY_RULES:
        raise ValueError(f"Unknown benefit type: {benefit_type}")
    # contractors are not covered by company plans
    eligible = employee_type != "contractor"
    return {
        "benefit_type": benefit_type,
        "is_eligible": eligible,
        "reason": (
            f"You are eligible for {benefit_type} benefits"
            if eligible
            else f"You are not currently eligible for {benefit_type} benefits"
        ),
        "eligibility_rule": ELIGIBILITY_RULES[benefit_type],
        "next_enrollment_window": (
            "30 days from qualifying event" if life_event == "qualifying_event" else "Next open enrollment period"
        ),
    }


def _add_year(d: date) -> date:
    try:
        return d.replace(year=d.year + 1)
    except ValueError:
        # Feb 29
        return d.replace(year=d.year + 1, day=28)


def enrollment_deadline(
    enrollment_period: str = "annual",
    benefit_type: str = "all",
    settings: Optional[dict[str, Any]] = None,
    today: Optional[date] = None,
) -> dict[str, Any]:
    """
    new_hire / qualifying_event: today + 30 days.
    annual: settings["enrollment_period_end"] (ISO date) or Nov 30, pushed a year forward if already past.
    """
    today = today or date.today()
    if enrollment_period in ("new_hire", "qualifying_event"):
        deadline = today + timedelta(days=ENROLLMENT_WINDOW_DAYS)
    else:
        configured = (settings or {}).get("enrollment_period_end")
        if configured:
            deadline = date.fromisoformat(str(configured)[:10])
        else:
            deadline = date(today.year, 11, 30)
        if deadline < today:
            deadline = _add_year(deadline)

    return {
        "benefit_type": benefit_type,
        "enrollment_period": enrollment_period or "annual",
        "deadline": deadline.isoformat(),
        "days_remaining": (deadline - today).days,
        "status": "open" if deadline >= today else "closed",
        "reminder": "Set a reminder to complete enrollment before the deadline",
    }


def explain_benefit(term: str, context: str = "general") -> dict[str, Any]:
    key = term.strip().lower()
    definition = GLOSSARY.get(
        key,
        f'"{term}" is a benefits-related term. Please ask HR for more specific information.',
    )
    return {
        "term": term,
        "definition": definition,
        "context": context or "general",
        "related_terms": [t for t in GLOSSARY if t != key][:3],
    }
