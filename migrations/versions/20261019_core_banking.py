"""core banking: branches, customers, products, accounts, loan lifecycle, alerts, tasks

Revision ID: 20261019_core_banking
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = "20261019_core_banking"
down_revision = None
branch_labels = None
depends_on = None


def _uuid(name: str, **kwargs) -> sa.Column:
    return sa.Column(name, postgresql.UUID(as_uuid=True), **kwargs)


def _timestamps(with_updated: bool = True) -> list[sa.Column]:
    columns = [sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False)]
    if with_updated:
        columns.append(
            sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False)
        )
    return columns


def upgrade() -> None:
    op.create_table(
        "branches",
        _uuid("id", primary_key=True, nullable=False),
        sa.Column("code", sa.String(10), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("region", sa.String(100), nullable=True),
        sa.Column("address", sa.String(500), nullable=True),
        sa.Column("phone", sa.String(30), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index("ix_branches_code", "branches", ["code"], unique=True)

    op.create_table(
        "customers",
        _uuid("id", primary_key=True, nullable=False),
        sa.Column("customer_code", sa.String(30), nullable=False),
        _uuid("branch_id", nullable=False),
        sa.Column("customer_type", sa.String(20), nullable=False, server_default="INDIVIDUAL"),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100), nullable=False),
        sa.Column("phone", sa.String(30), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("national_id", sa.String(50), nullable=True),
        sa.Column("date_of_birth", sa.Date(), nullable=True),
        sa.Column("address", sa.String(500), nullable=True),
        sa.Column("occupation", sa.String(100), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="PROSPECT"),
        sa.Column("created_by", sa.String(64), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('PROSPECT', 'ACTIVE', 'INACTIVE', 'BLACKLISTED')",
            name="ck_customer_status",
        ),
        sa.CheckConstraint(
            "customer_type IN ('INDIVIDUAL', 'GROUP', 'BUSINESS')",
            name="ck_customer_type",
        ),
        sa.ForeignKeyConstraint(["branch_id"], ["branches.id"], ondelete="RESTRICT"),
        sa.UniqueConstraint("national_id", name="uq_customers_national_id"),
    )
    op.create_index("ix_customers_customer_code", "customers", ["customer_code"], unique=True)
    op.create_index("ix_customers_branch_id", "customers", ["branch_id"])
    op.create_index("ix_customers_status", "customers", ["status"])

    op.create_table(
        "kyc_profiles",
        _uuid("id", primary_key=True, nullable=False),
        _uuid("customer_id", nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="PENDING"),
        sa.Column("has_national_id", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("has_proof_of_address", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("has_photo_proof", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("has_income_proof", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("verified_by", sa.String(64), nullable=True),
        sa.Column("verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expiry_date", sa.Date(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint(
            "status IN ('PENDING', 'INCOMPLETE', 'COMPLETE', 'EXPIRED')",
            name="ck_kyc_status",
        ),
        sa.ForeignKeyConstraint(["customer_id"], ["customers.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("customer_id", name="uq_kyc_profiles_customer_id"),
    )

    op.create_table(
        "risk_profiles",
        _uuid("id", primary_key=True, nullable=False),
        _uuid("customer_id", nullable=False),
        sa.Column("risk_level", sa.String(20), nullable=False, server_default="MEDIUM"),
        sa.Column("credit_score", sa.Integer(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("assessed_by", sa.String(64), nullable=True),
        sa.Column("assessed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("next_review_date", sa.Date(), nullable=True),
        sa.CheckConstraint(
            "risk_level IN ('LOW', 'MEDIUM', 'HIGH', 'CRITICAL')",
            name="ck_risk_level",
        ),
        sa.CheckConstraint(
            "credit_score IS NULL OR (credit_score >= 0 AND credit_score <= 1000)",
            name="ck_risk_credit_score_range",
        ),
        sa.ForeignKeyConstraint(["customer_id"], ["customers.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("customer_id", name="uq_risk_profiles_customer_id"),
    )

    op.create_table(
        "products",
        _uuid("id", primary_key=True, nullable=False),
        sa.Column("code", sa.String(20), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("product_type", sa.String(20), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="ACTIVE"),
        sa.Column("interest_rate", sa.Numeric(7, 4), nullable=False, server_default="0"),
        sa.Column("currency", sa.String(3), nullable=False, server_default="KES"),
        sa.Column("minimum_deposit", sa.Numeric(18, 2), nullable=False, server_default="0"),
        sa.Column("allow_multiple", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("auto_activate", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(with_updated=False),
        sa.CheckConstraint(
            "status IN ('ACTIVE', 'INACTIVE', 'DISCONTINUED')",
            name="ck_product_status",
        ),
        sa.CheckConstraint(
            "product_type IN ('SAVINGS', 'CURRENT', 'TERM_DEPOSIT')",
            name="ck_product_type",
        ),
        sa.CheckConstraint("minimum_deposit >= 0", name="ck_product_min_deposit_nonneg"),
        sa.CheckConstraint("interest_rate >= 0", name="ck_product_rate_nonneg"),
    )
    op.create_index("ix_products_code", "products", ["code"], unique=True)

    op.create_table(
        "accounts",
        _uuid("id", primary_key=True, nullable=False),
        sa.Column("account_number", sa.String(30), nullable=False),
        _uuid("customer_id", nullable=False),
        _uuid("product_id", nullable=False),
        sa.Column("branch_code", sa.String(10), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="PENDING"),
        sa.Column("balance", sa.Numeric(18, 2), nullable=False, server_default="0"),
        sa.Column("available_balance", sa.Numeric(18, 2), nullable=False, server_default="0"),
        sa.Column("currency", sa.String(3), nullable=False, server_default="KES"),
        sa.Column("opened_by", sa.String(64), nullable=True),
        sa.Column("activated_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('PENDING', 'ACTIVE', 'SUSPENDED', 'CLOSED')",
            name="ck_account_status",
        ),
        sa.ForeignKeyConstraint(["customer_id"], ["customers.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"], ondelete="RESTRICT"),
    )
    op.create_index("ix_accounts_account_number", "accounts", ["account_number"], unique=True)
    op.create_index("ix_accounts_customer_id", "accounts", ["customer_id"])
    op.create_index(
        "ix_accounts_customer_product_status", "accounts", ["customer_id", "product_id", "status"]
    )

    op.create_table(
        "id_sequences",
        _uuid("id", primary_key=True, nullable=False),
        sa.Column("scope", sa.String(20), nullable=False),
        sa.Column("branch_code", sa.String(10), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("current_value", sa.BigInteger(), nullable=False, server_default="0"),
        sa.UniqueConstraint("scope", "branch_code", "year", name="uq_id_sequence_scope_branch_year"),
    )

    op.create_table(
        "loans",
        _uuid("id", primary_key=True, nullable=False),
        sa.Column("loan_id", sa.String(30), nullable=False),
        _uuid("customer_id", nullable=False),
        _uuid("branch_id", nullable=False),
        sa.Column("loan_officer_id", sa.String(64), nullable=False),
        sa.Column("product_name", sa.String(255), nullable=False),
        sa.Column("purpose", sa.String(30), nullable=False),
        sa.Column("requested_amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("approved_amount", sa.Numeric(18, 2), nullable=True),
        sa.Column("interest_rate", sa.Numeric(7, 4), nullable=False),
        sa.Column("interest_rate_type", sa.String(20), nullable=False, server_default="REDUCING_BALANCE"),
        sa.Column("tenure", sa.Integer(), nullable=False),
        sa.Column("repayment_frequency", sa.String(20), nullable=False, server_default="MONTHLY"),
        sa.Column("status", sa.String(30), nullable=False, server_default="DRAFT"),
        sa.Column("approval_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("disbursement_date", sa.Date(), nullable=True),
        sa.Column("activation_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("closed_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("final_rating", sa.String(30), nullable=True),
        sa.Column("closure_notes", sa.Text(), nullable=True),
        sa.Column("closure_checklist", postgresql.JSONB(), nullable=True),
        sa.Column("created_by", sa.String(64), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        *_timestamps(),
        sa.CheckConstraint("requested_amount > 0", name="ck_loan_requested_positive"),
        sa.CheckConstraint(
            "approved_amount IS NULL OR approved_amount > 0",
            name="ck_loan_approved_positive",
        ),
        sa.CheckConstraint("interest_rate >= 0 AND interest_rate <= 100", name="ck_loan_rate_range"),
        sa.CheckConstraint("tenure >= 1 AND tenure <= 60", name="ck_loan_tenure_range"),
        sa.CheckConstraint("version >= 1", name="ck_loan_version_positive"),
        sa.CheckConstraint(
            "status IN ('DRAFT', 'APPLICATION_SUBMITTED', 'UNDER_APPRAISAL', 'PENDING_APPROVAL', "
            "'APPROVED', 'APPROVED_WITH_CONDITIONS', 'REJECTED', 'DISBURSED', 'ACTIVE', "
            "'OVERDUE', 'CLOSED')",
            name="ck_loan_status",
        ),
        sa.CheckConstraint(
            "interest_rate_type IN ('FLAT', 'REDUCING_BALANCE')",
            name="ck_loan_rate_type",
        ),
        sa.CheckConstraint(
            "repayment_frequency IN ('WEEKLY', 'BIWEEKLY', 'MONTHLY', 'QUARTERLY')",
            name="ck_loan_frequency",
        ),
        sa.ForeignKeyConstraint(["customer_id"], ["customers.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["branch_id"], ["branches.id"], ondelete="RESTRICT"),
    )
    op.create_index("ix_loans_loan_id", "loans", ["loan_id"], unique=True)
    op.create_index("ix_loans_customer_id", "loans", ["customer_id"])
    op.create_index("ix_loans_branch_id", "loans", ["branch_id"])
    op.create_index("ix_loans_loan_officer_id", "loans", ["loan_officer_id"])
    op.create_index("ix_loans_status", "loans", ["status"])

    op.create_table(
        "loan_appraisals",
        _uuid("id", primary_key=True, nullable=False),
        _uuid("loan_id", nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="IN_PROGRESS"),
        sa.Column("site_visit_date", sa.Date(), nullable=True),
        sa.Column("site_visit_notes", sa.Text(), nullable=True),
        sa.Column("site_visit_photos", postgresql.JSONB(), nullable=True),
        sa.Column("monthly_income", sa.Numeric(18, 2), nullable=True),
        sa.Column("monthly_expenses", sa.Numeric(18, 2), nullable=True),
        sa.Column("net_cash_flow", sa.Numeric(18, 2), nullable=True),
        sa.Column("debt_service_ratio", sa.Numeric(7, 4), nullable=True),
        sa.Column("credit_score", sa.Integer(), nullable=True),
        sa.Column("scoring_notes", sa.Text(), nullable=True),
        sa.Column("recommended_amount", sa.Numeric(18, 2), nullable=True),
        sa.Column("recommended_tenure", sa.Integer(), nullable=True),
        sa.Column("recommendation", sa.String(30), nullable=True),
        sa.Column("appraisal_notes", sa.Text(), nullable=True),
        sa.Column("appraised_by", sa.String(64), nullable=True),
        sa.Column("appraised_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("status IN ('IN_PROGRESS', 'COMPLETED')", name="ck_appraisal_status"),
        sa.CheckConstraint("monthly_income IS NULL OR monthly_income >= 0", name="ck_appraisal_income_nonneg"),
        sa.CheckConstraint(
            "monthly_expenses IS NULL OR monthly_expenses >= 0",
            name="ck_appraisal_expenses_nonneg",
        ),
        sa.CheckConstraint(
            "recommended_amount IS NULL OR recommended_amount > 0",
            name="ck_appraisal_recommended_positive",
        ),
        sa.ForeignKeyConstraint(["loan_id"], ["loans.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("loan_id", name="uq_loan_appraisals_loan_id"),
    )

    op.create_table(
        "loan_approval_decisions",
        _uuid("id", primary_key=True, nullable=False),
        _uuid("loan_id", nullable=False),
        sa.Column("level", sa.String(30), nullable=False),
        sa.Column("decision", sa.String(30), nullable=False),
        sa.Column("approved_amount", sa.Numeric(18, 2), nullable=True),
        sa.Column("conditions", postgresql.JSONB(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("minutes", sa.Text(), nullable=True),
        sa.Column("approved_by", sa.String(64), nullable=False),
        sa.Column("approved_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint(
            "decision IN ('APPROVED', 'APPROVED_WITH_CONDITIONS', 'REJECTED', 'REFERRED')",
            name="ck_approval_decision",
        ),
        sa.CheckConstraint(
            "level IN ('BRANCH_MANAGER', 'REGIONAL_MANAGER', 'CREDIT_COMMITTEE', 'CEO')",
            name="ck_approval_level",
        ),
        sa.ForeignKeyConstraint(["loan_id"], ["loans.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_loan_approval_decisions_loan_id", "loan_approval_decisions", ["loan_id"])

    op.create_table(
        "loan_disbursements",
        _uuid("id", primary_key=True, nullable=False),
        _uuid("loan_id", nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="PENDING"),
        sa.Column("amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("method", sa.String(20), nullable=False),
        sa.Column("account_number", sa.String(50), nullable=True),
        sa.Column("account_name", sa.String(255), nullable=True),
        sa.Column("bank_name", sa.String(255), nullable=True),
        sa.Column("reference_number", sa.String(100), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("verified_by", sa.String(64), nullable=True),
        sa.Column("verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("disbursed_by", sa.String(64), nullable=True),
        sa.Column("disbursed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(with_updated=False),
        sa.CheckConstraint("amount > 0", name="ck_disbursement_amount_positive"),
        sa.CheckConstraint(
            "status IN ('PENDING', 'PROCESSING', 'COMPLETED')",
            name="ck_disbursement_status",
        ),
        sa.CheckConstraint(
            "method IN ('CASH', 'BANK_TRANSFER', 'MOBILE_MONEY', 'CHEQUE')",
            name="ck_disbursement_method",
        ),
        sa.ForeignKeyConstraint(["loan_id"], ["loans.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("loan_id", name="uq_loan_disbursements_loan_id"),
    )

    op.create_table(
        "repayment_installments",
        _uuid("id", primary_key=True, nullable=False),
        _uuid("loan_id", nullable=False),
        sa.Column("installment_number", sa.Integer(), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column("principal_amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("interest_amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("total_amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("outstanding_principal", sa.Numeric(18, 2), nullable=False),
        sa.Column("outstanding_interest", sa.Numeric(18, 2), nullable=False),
        sa.Column("outstanding_total", sa.Numeric(18, 2), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="PENDING"),
        sa.CheckConstraint("installment_number >= 1", name="ck_installment_number_positive"),
        sa.CheckConstraint("principal_amount >= 0", name="ck_installment_principal_nonneg"),
        sa.CheckConstraint("interest_amount >= 0", name="ck_installment_interest_nonneg"),
        sa.CheckConstraint("total_amount >= 0", name="ck_installment_total_nonneg"),
        sa.CheckConstraint(
            "status IN ('PENDING', 'PARTIALLY_PAID', 'PAID', 'OVERDUE')",
            name="ck_installment_status",
        ),
        sa.ForeignKeyConstraint(["loan_id"], ["loans.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("loan_id", "installment_number", name="uq_installment_loan_number"),
    )
    op.create_index("ix_repayment_installments_loan_id", "repayment_installments", ["loan_id"])

    op.create_table(
        "audit_logs",
        _uuid("id", primary_key=True, nullable=False),
        sa.Column("actor_id", sa.String(64), nullable=True),
        sa.Column("actor_role", sa.String(30), nullable=True),
        sa.Column("branch_id", sa.String(64), nullable=True),
        sa.Column("action", sa.String(100), nullable=False),
        sa.Column("resource_type", sa.String(50), nullable=False),
        sa.Column("resource_id", sa.String(64), nullable=False),
        sa.Column("old_value", sa.JSON(), nullable=True),
        sa.Column("new_value", sa.JSON(), nullable=True),
        sa.Column("changes", sa.JSON(), nullable=True),
        sa.Column("summary", sa.String(500), nullable=True),
        sa.Column("request_id", sa.String(64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_audit_logs_resource", "audit_logs", ["resource_type", "resource_id"])
    op.create_index("ix_audit_logs_branch_created", "audit_logs", ["branch_id", "created_at"])

    op.create_table(
        "alerts",
        _uuid("id", primary_key=True, nullable=False),
        sa.Column("severity", sa.String(20), nullable=False),
        sa.Column("category", sa.String(30), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="ACTIVE"),
        sa.Column("source", sa.String(50), nullable=False, server_default="MANUAL"),
        sa.Column("requires_action", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("metadata", postgresql.JSONB(), nullable=True),
        _uuid("customer_id", nullable=True),
        _uuid("loan_id", nullable=True),
        _uuid("branch_id", nullable=True),
        sa.Column("assigned_to_id", sa.String(64), nullable=True),
        sa.Column("acknowledged_by", sa.String(64), nullable=True),
        sa.Column("acknowledged_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("escalated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("resolved_by", sa.String(64), nullable=True),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("resolution_notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "severity IN ('LOW', 'MEDIUM', 'HIGH', 'CRITICAL')",
            name="ck_alert_severity",
        ),
        sa.CheckConstraint(
            "category IN ('CREDIT_RISK', 'OPERATIONAL', 'PERFORMANCE', 'COMPLIANCE', 'FRAUD')",
            name="ck_alert_category",
        ),
        sa.CheckConstraint(
            "status IN ('ACTIVE', 'ACKNOWLEDGED', 'ESCALATED', 'RESOLVED', 'DISMISSED')",
            name="ck_alert_status",
        ),
        sa.ForeignKeyConstraint(["customer_id"], ["customers.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["loan_id"], ["loans.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["branch_id"], ["branches.id"], ondelete="SET NULL"),
    )
    op.create_index("ix_alerts_status_severity", "alerts", ["status", "severity"])
    op.create_index("ix_alerts_customer_id", "alerts", ["customer_id"])
    op.create_index("ix_alerts_loan_id", "alerts", ["loan_id"])
    op.create_index("ix_alerts_branch_id", "alerts", ["branch_id"])
    op.create_index("ix_alerts_assigned_to_id", "alerts", ["assigned_to_id"])

    op.create_table(
        "tasks",
        _uuid("id", primary_key=True, nullable=False),
        sa.Column("task_type", sa.String(30), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("priority", sa.String(20), nullable=False, server_default="MEDIUM"),
        sa.Column("status", sa.String(20), nullable=False, server_default="PENDING"),
        sa.Column("due_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("sla_hours", sa.Integer(), nullable=True),
        sa.Column("sla_due_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("assigned_to_id", sa.String(64), nullable=True),
        _uuid("customer_id", nullable=True),
        _uuid("loan_id", nullable=True),
        _uuid("branch_id", nullable=True),
        _uuid("alert_id", nullable=True),
        sa.Column("checklist", postgresql.JSONB(), nullable=True),
        sa.Column("completed_checklist", postgresql.JSONB(), nullable=True),
        sa.Column("metadata", postgresql.JSONB(), nullable=True),
        sa.Column("started_by", sa.String(64), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_by", sa.String(64), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completion_notes", sa.Text(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("created_by", sa.String(64), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "task_type IN ('FOLLOW_UP', 'COLLECTION', 'KYC_REVIEW', 'LOAN_APPRAISAL', "
            "'ALERT_RESPONSE', 'URGENT_ACTION', 'OTHER')",
            name="ck_task_type",
        ),
        sa.CheckConstraint(
            "priority IN ('LOW', 'MEDIUM', 'HIGH', 'URGENT')",
            name="ck_task_priority",
        ),
        sa.CheckConstraint(
            "status IN ('PENDING', 'IN_PROGRESS', 'COMPLETED', 'CANCELLED')",
            name="ck_task_status",
        ),
        sa.CheckConstraint("sla_hours IS NULL OR sla_hours > 0", name="ck_task_sla_hours_positive"),
        sa.ForeignKeyConstraint(["customer_id"], ["customers.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["loan_id"], ["loans.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["branch_id"], ["branches.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["alert_id"], ["alerts.id"], ondelete="SET NULL"),
    )
    op.create_index("ix_tasks_status", "tasks", ["status"])
    op.create_index("ix_tasks_alert_id", "tasks", ["alert_id"])
    op.create_index("ix_tasks_assignee_status", "tasks", ["assigned_to_id", "status"])

    op.create_table(
        "task_comments",
        _uuid("id", primary_key=True, nullable=False),
        _uuid("task_id", nullable=False),
        sa.Column("author_id", sa.String(64), nullable=True),
        sa.Column("comment", sa.Text(), nullable=False),
        *_timestamps(with_updated=False),
        sa.ForeignKeyConstraint(["task_id"], ["tasks.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_task_comments_task_id", "task_comments", ["task_id"])


def downgrade() -> None:
    op.drop_index("ix_task_comments_task_id", table_name="task_comments")
    op.drop_table("task_comments")
    for index in ("ix_tasks_assignee_status", "ix_tasks_alert_id", "ix_tasks_status"):
        op.drop_index(index, table_name="tasks")
    op.drop_table("tasks")
    for index in (
        "ix_alerts_assigned_to_id",
        "ix_alerts_branch_id",
        "ix_alerts_loan_id",
        "ix_alerts_customer_id",
        "ix_alerts_status_severity",
    ):
        op.drop_index(index, table_name="alerts")
    op.drop_table("alerts")
    op.drop_index("ix_audit_logs_branch_created", table_name="audit_logs")
    op.drop_index("ix_audit_logs_resource", table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_index("ix_repayment_installments_loan_id", table_name="repayment_installments")
    op.drop_table("repayment_installments")
    op.drop_table("loan_disbursements")
    op.drop_index("ix_loan_approval_decisions_loan_id", table_name="loan_approval_decisions")
    op.drop_table("loan_approval_decisions")
    op.drop_table("loan_appraisals")
    for index in (
        "ix_loans_status",
        "ix_loans_loan_officer_id",
        "ix_loans_branch_id",
        "ix_loans_customer_id",
        "ix_loans_loan_id",
    ):
        op.drop_index(index, table_name="loans")
    op.drop_table("loans")
    op.drop_table("id_sequences")
    op.drop_index("ix_accounts_customer_product_status", table_name="accounts")
    op.drop_index("ix_accounts_customer_id", table_name="accounts")
    op.drop_index("ix_accounts_account_number", table_name="accounts")
    op.drop_table("accounts")
    op.drop_index("ix_products_code", table_name="products")
    op.drop_table("products")
    op.drop_table("risk_profiles")
    op.drop_table("kyc_profiles")
    for index in ("ix_customers_status", "ix_customers_branch_id", "ix_customers_customer_code"):
        op.drop_index(index, table_name="customers")
    op.drop_table("customers")
    op.drop_index("ix_branches_code", table_name="branches")
    op.drop_table("branches")
