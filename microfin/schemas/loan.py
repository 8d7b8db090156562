from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from microfin.schemas.common import PageMeta


class LoanStatus(str, Enum):
    DRAFT = "DRAFT"
    APPLICATION_SUBMITTED = "APPLICATION_SUBMITTED"
    UNDER_APPRAISAL = "UNDER_APPRAISAL"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    APPROVED = "APPROVED"
    APPROVED_WITH_CONDITIONS = "APPROVED_WITH_CONDITIONS"
    REJECTED = "REJECTED"
    DISBURSED = "DISBURSED"
    ACTIVE = "ACTIVE"
    OVERDUE = "OVERDUE"
    CLOSED = "CLOSED"


class LoanPurpose(str, Enum):
    AGRICULTURE = "AGRICULTURE"
    TRADE = "TRADE"
    SERVICES = "SERVICES"
    MANUFACTURING = "MANUFACTURING"
    EDUCATION = "EDUCATION"
    HOUSING = "HOUSING"
    PERSONAL = "PERSONAL"
    OTHER = "OTHER"


class InterestRateType(str, Enum):
    FLAT = "FLAT"
    REDUCING_BALANCE = "REDUCING_BALANCE"


class RepaymentFrequency(str, Enum):
    WEEKLY = "WEEKLY"
    BIWEEKLY = "BIWEEKLY"
    MONTHLY = "MONTHLY"
    QUARTERLY = "QUARTERLY"


class AppraisalStatus(str, Enum):
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


class ApprovalLevel(str, Enum):
    BRANCH_MANAGER = "BRANCH_MANAGER"
    REGIONAL_MANAGER = "REGIONAL_MANAGER"
    CREDIT_COMMITTEE = "CREDIT_COMMITTEE"
    CEO = "CEO"


class ApprovalDecisionType(str, Enum):
    APPROVED = "APPROVED"
    APPROVED_WITH_CONDITIONS = "APPROVED_WITH_CONDITIONS"
    REJECTED = "REJECTED"
    REFERRED = "REFERRED"


class DisbursementStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"


class DisbursementMethod(str, Enum):
    CASH = "CASH"
    BANK_TRANSFER = "BANK_TRANSFER"
    MOBILE_MONEY = "MOBILE_MONEY"
    CHEQUE = "CHEQUE"


class InstallmentStatus(str, Enum):
    PENDING = "PENDING"
    PARTIALLY_PAID = "PARTIALLY_PAID"
    PAID = "PAID"
    OVERDUE = "OVERDUE"


class LoanAction(str, Enum):
    SUBMIT = "submit"
    CREATE_APPRAISAL = "create_appraisal"
    UPDATE_APPRAISAL = "update_appraisal"
    COMPLETE_APPRAISAL = "complete_appraisal"
    APPROVE = "approve"
    CREATE_DISBURSEMENT = "create_disbursement"
    VERIFY_DISBURSEMENT = "verify_disbursement"
    COMPLETE_DISBURSEMENT = "complete_disbursement"
    ACTIVATE = "activate"
    CLOSE = "close"


class LoanTermsMixin(BaseModel):
    @model_validator(mode="after")
    def _check_quarterly_tenure(self):
        frequency = getattr(self, "repayment_frequency", None)
        tenure = getattr(self, "tenure", None)
        if frequency in (RepaymentFrequency.QUARTERLY, RepaymentFrequency.QUARTERLY.value) and tenure:
            if tenure % 3 != 0:
                raise ValueError("Quarterly repayment requires a tenure that is a multiple of 3 months")
        return self


class LoanCreate(LoanTermsMixin):
    model_config = ConfigDict(use_enum_values=True)

    customer_id: UUID
    branch_id: UUID
    loan_officer_id: str = Field(min_length=1, max_length=64)
    product_name: str = Field(min_length=1, max_length=255)
    purpose: LoanPurpose
    requested_amount: Decimal = Field(ge=100, max_digits=18, decimal_places=2)
    interest_rate: Decimal = Field(ge=0, le=100)
    interest_rate_type: InterestRateType = InterestRateType.REDUCING_BALANCE
    tenure: int = Field(ge=1, le=60)
    repayment_frequency: RepaymentFrequency = RepaymentFrequency.MONTHLY


class LoanUpdate(LoanTermsMixin):
    model_config = ConfigDict(use_enum_values=True)

    loan_officer_id: str | None = Field(default=None, min_length=1, max_length=64)
    product_name: str | None = Field(default=None, min_length=1, max_length=255)
    purpose: LoanPurpose | None = None
    requested_amount: Decimal | None = Field(default=None, ge=100, max_digits=18, decimal_places=2)
    interest_rate: Decimal | None = Field(default=None, ge=0, le=100)
    interest_rate_type: InterestRateType | None = None
    tenure: int | None = Field(default=None, ge=1, le=60)
    repayment_frequency: RepaymentFrequency | None = None


class AppraisalFields(BaseModel):
    site_visit_date: date | None = None
    site_visit_notes: str | None = None
    site_visit_photos: list[str] | None = None
    monthly_income: Decimal | None = Field(default=None, ge=0)
    monthly_expenses: Decimal | None = Field(default=None, ge=0)
    debt_service_ratio: Decimal | None = Field(default=None, ge=0)
    credit_score: int | None = Field(default=None, ge=0, le=1000)
    scoring_notes: str | None = None
    recommended_amount: Decimal | None = Field(default=None, gt=0)
    recommended_tenure: int | None = Field(default=None, ge=1, le=60)
    recommendation: str | None = Field(default=None, max_length=30)
    appraisal_notes: str | None = None


class AppraisalCreate(AppraisalFields):
    pass


class AppraisalUpdate(AppraisalFields):
    pass


class ApprovalDecisionCreate(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    level: ApprovalLevel
    decision: ApprovalDecisionType
    approved_amount: Decimal | None = Field(default=None, gt=0)
    conditions: list[str] | None = None
    notes: str | None = None
    minutes: str | None = None


class DisbursementCreate(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    amount: Decimal = Field(gt=0)
    method: DisbursementMethod
    account_number: str | None = Field(default=None, max_length=50)
    account_name: str | None = Field(default=None, max_length=255)
    bank_name: str | None = Field(default=None, max_length=255)
    reference_number: str | None = Field(default=None, max_length=100)
    notes: str | None = None


class DisbursementComplete(BaseModel):
    confirm: bool = True
    reference_number: str | None = Field(default=None, max_length=100)


class LoanClose(BaseModel):
    final_rating: str = Field(min_length=1, max_length=30)
    closure_notes: str | None = None
    closure_checklist: list[str] | None = None


class AppraisalDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    status: AppraisalStatus
    site_visit_date: date | None = None
    site_visit_notes: str | None = None
    site_visit_photos: list[str] | None = None
    monthly_income: Decimal | None = None
    monthly_expenses: Decimal | None = None
    net_cash_flow: Decimal | None = None
    debt_service_ratio: Decimal | None = None
    credit_score: int | None = None
    scoring_notes: str | None = None
    recommended_amount: Decimal | None = None
    recommended_tenure: int | None = None
    recommendation: str | None = None
    appraisal_notes: str | None = None
    appraised_by: str | None = None
    appraised_at: datetime | None = None


class ApprovalDecisionDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    level: ApprovalLevel
    decision: ApprovalDecisionType
    approved_amount: Decimal | None = None
    conditions: list[str] | None = None
    notes: str | None = None
    minutes: str | None = None
    approved_by: str
    approved_at: datetime | None = None


class DisbursementDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    status: DisbursementStatus
    amount: Decimal
    method: DisbursementMethod
    account_number: str | None = None
    account_name: str | None = None
    bank_name: str | None = None
    reference_number: str | None = None
    notes: str | None = None
    verified_by: str | None = None
    verified_at: datetime | None = None
    disbursed_by: str | None = None
    disbursed_at: datetime | None = None


class InstallmentDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    installment_number: int
    due_date: date
    principal_amount: Decimal
    interest_amount: Decimal
    total_amount: Decimal
    outstanding_principal: Decimal
    outstanding_interest: Decimal
    outstanding_total: Decimal
    status: InstallmentStatus


class LoanSummaryDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    loan_id: str
    customer_id: UUID
    branch_id: UUID
    loan_officer_id: str
    product_name: str
    purpose: LoanPurpose
    requested_amount: Decimal
    approved_amount: Decimal | None = None
    interest_rate: Decimal
    interest_rate_type: InterestRateType
    tenure: int
    repayment_frequency: RepaymentFrequency
    status: LoanStatus
    approval_date: datetime | None = Field(
        default=None, description="Date of the final credit decision, approval or rejection"
    )
    disbursement_date: date | None = None
    activation_date: datetime | None = None
    closed_date: datetime | None = None
    version: int
    created_at: datetime | None = None


class LoanDTO(LoanSummaryDTO):
    final_rating: str | None = None
    closure_notes: str | None = None
    closure_checklist: list[str] | None = None
    appraisal: AppraisalDTO | None = None
    approval_decisions: list[ApprovalDecisionDTO] = Field(default_factory=list)
    disbursement: DisbursementDTO | None = None


class LoanListResponse(PageMeta):
    items: list[LoanSummaryDTO]


class RepaymentScheduleResponse(BaseModel):
    loan_id: str
    repayment_frequency: RepaymentFrequency
    installment_count: int
    periodic_payment: Decimal | None = None
    total_principal: Decimal
    total_interest: Decimal
    total_payable: Decimal
    installments: list[InstallmentDTO]
