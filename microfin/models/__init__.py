from microfin.models.account import Account
from microfin.models.alert import Alert
from microfin.models.audit_log import AuditLog
from microfin.models.branch import Branch
from microfin.models.customer import Customer, KycProfile, RiskProfile
from microfin.models.id_sequence import IdSequence
from microfin.models.loan import Loan
from microfin.models.loan_appraisal import LoanAppraisal
from microfin.models.loan_approval_decision import LoanApprovalDecision
from microfin.models.loan_disbursement import LoanDisbursement
from microfin.models.product import Product
from microfin.models.repayment_installment import RepaymentInstallment
from microfin.models.task import Task, TaskComment

__all__ = [
    "Account",
    "Alert",
    "AuditLog",
    "Branch",
    "Customer",
    "IdSequence",
    "KycProfile",
    "Loan",
    "LoanAppraisal",
    "LoanApprovalDecision",
    "LoanDisbursement",
    "Product",
    "RepaymentInstallment",
    "RiskProfile",
    "Task",
    "TaskComment",
]
