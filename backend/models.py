"""
Data model definitions
"""
from datetime import date, datetime
from enum import Enum
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class BaseSchema(BaseModel):
    """Common base model with protected namespaces disabled"""
    model_config = ConfigDict(protected_namespaces=())


class Role(str, Enum):
    """Message role"""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class Message(BaseSchema):
    """A single chat message"""
    role: Role
    content: str


# ---------------------------------------------------------------------------
# Chat
# ---------------------------------------------------------------------------

class ChatRequest(BaseSchema):
    """Chat request"""
    messages: List[Message] = Field(..., description="Conversation so far; the last item is the new user message")
    conversation_id: Optional[str] = Field(default=None, description="Existing conversation; a new one is created when omitted")
    stream: bool = Field(default=True, description="Stream the reply as SSE")
    temperature: Optional[float] = Field(default=None, ge=0.0, le=2.0)
    max_tokens: Optional[int] = Field(default=None, ge=1)
    model_id: Optional[str] = Field(default=None, description="Admin-only override of the routed model")
    priority: Literal["low", "medium", "high"] = Field(default="medium", description="High priority is always routed to the complex model")


class ChatResponse(BaseSchema):
    """Non-streaming chat response"""
    content: str
    model: str
    conversation_id: Optional[str] = None
    source: str = "llm"
    usage: Optional[dict] = None
    cost: float = 0.0
    routing_reason: Optional[str] = None
    confidence: Optional[float] = None


class ConversationInfo(BaseSchema):
    """Conversation list item"""
    id: str
    title: str
    last_model: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    message_count: int = 0


class ConversationCreate(BaseSchema):
    title: str = Field(default="New conversation", max_length=255)
    system_prompt: Optional[str] = None


class ConversationUpdate(BaseSchema):
    title: Optional[str] = Field(default=None, max_length=255)
    system_prompt: Optional[str] = None


class ConversationDetailResponse(BaseSchema):
    """Conversation with its messages"""
    id: str
    title: str
    last_model: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    messages: List[Message] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Companies and employees
# ---------------------------------------------------------------------------

class CompanyCreate(BaseSchema):
    name: str = Field(..., min_length=1, max_length=255)
    domain: Optional[str] = Field(default=None, max_length=255)


class CompanyUpdate(BaseSchema):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    domain: Optional[str] = None
    status: Optional[Literal["active", "inactive"]] = None


class CompanyOut(BaseSchema):
    id: str
    name: str
    domain: Optional[str] = None
    status: str
    settings: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime


class EmployeeCreate(BaseSchema):
    email: str = Field(..., min_length=3, max_length=255)
    name: Optional[str] = Field(default=None, max_length=255)
    role: str = "employee"
    department: Optional[str] = None


class EmployeeUpdate(BaseSchema):
    name: Optional[str] = None
    department: Optional[str] = None
    status: Optional[Literal["active", "inactive"]] = None


class RoleAssignment(BaseSchema):
    role: str


class EmployeeOut(BaseSchema):
    id: int
    company_id: Optional[str] = None
    email: str
    name: Optional[str] = None
    role: str
    department: Optional[str] = None
    status: str
    created_at: datetime
    last_active_at: Optional[datetime] = None


class SettingsUpdate(BaseSchema):
    """Keys are merged into companies.settings"""
    settings: dict[str, Any]


# ---------------------------------------------------------------------------
# Benefit plans, enrollments and FAQs
# ---------------------------------------------------------------------------

PlanType = Literal["medical", "dental", "vision", "life", "disability", "other"]
CoverageLevel = Literal["employee", "employee_spouse", "employee_children", "family"]


class BenefitPlanCreate(BaseSchema):
    name: str = Field(..., min_length=1, max_length=255)
    plan_type: PlanType = "medical"
    provider: Optional[str] = None
    monthly_premium: float = Field(default=0.0, ge=0)
    deductible_individual: float = Field(default=0.0, ge=0)
    out_of_pocket_max_individual: float = Field(default=0.0, ge=0)
    coverage_details: dict[str, Any] = Field(default_factory=dict)
    is_active: bool = True


class BenefitPlanUpdate(BaseSchema):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    plan_type: Optional[PlanType] = None
    provider: Optional[str] = None
    monthly_premium: Optional[float] = Field(default=None, ge=0)
    deductible_individual: Optional[float] = Field(default=None, ge=0)
    out_of_pocket_max_individual: Optional[float] = Field(default=None, ge=0)
    coverage_details: Optional[dict[str, Any]] = None


class BenefitPlanOut(BaseSchema):
    id: int
    company_id: str
    name: str
    plan_type: str
    provider: Optional[str] = None
    monthly_premium: float
    deductible_individual: float
    out_of_pocket_max_individual: float
    coverage_details: dict[str, Any] = Field(default_factory=dict)
    is_active: bool
    created_at: datetime
    updated_at: datetime


class EnrollmentCreate(BaseSchema):
    plan_id: int
    coverage_level: CoverageLevel = "employee"
    effective_date: Optional[date] = None


class EnrollmentOut(BaseSchema):
    id: int
    company_id: str
    user_id: int
    plan_id: int
    plan_name: Optional[str] = None
    coverage_level: str
    status: str
    effective_date: Optional[date] = None
    created_at: datetime


class FAQCreate(BaseSchema):
    question: str = Field(..., min_length=1)
    answer: str = Field(..., min_length=1)
    keywords: List[str] = Field(default_factory=list)
    category: Optional[str] = None
    is_active: bool = True


class FAQUpdate(BaseSchema):
    question: Optional[str] = None
    answer: Optional[str] = None
    keywords: Optional[List[str]] = None
    category: Optional[str] = None
    is_active: Optional[bool] = None


class FAQOut(BaseSchema):
    id: int
    company_id: str
    question: str
    answer: str
    keywords: List[str] = Field(default_factory=list)
    category: Optional[str] = None
    is_active: bool
    created_at: datetime
    updated_at: datetime


# ---------------------------------------------------------------------------
# Benefits calculators
# ---------------------------------------------------------------------------

class CostCalculationRequest(BaseSchema):
    coverage_level: CoverageLevel = "employee"
    include_hsa: bool = False
    include_fsa: bool = False
    expected_medical_expenses: float = Field(default=0.0, ge=0)


class PlanCompareRequest(BaseSchema):
    plan_ids: List[int] = Field(..., min_length=2, max_length=5)


class EligibilityRequest(BaseSchema):
    benefit_type: Literal["health", "dental", "vision", "life", "disability", "fsa", "hsa", "401k"]
    employee_type: Literal["full_time", "part_time", "contractor"] = "full_time"
    life_event: Optional[Literal["new_hire", "qualifying_event", "annual"]] = None


# ---------------------------------------------------------------------------
# Admin: routing stats and audit
# ---------------------------------------------------------------------------

class LLMRoutingAction(BaseSchema):
    action: str


class AuditLogOut(BaseSchema):
    id: int
    action: str
    resource_type: str
    resource_id: Optional[str] = None
    user_id: Optional[int] = None
    user_email: Optional[str] = None
    user_role: Optional[str] = None
    company_id: Optional[str] = None
    details: Optional[dict[str, Any]] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    success: bool = True
    error_message: Optional[str] = None
    created_at: datetime
