"""baseline: tenants, accounts, audit, contacts, titles, production, invoices

Revision ID: 0001_baseline
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "0001_baseline"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _user_fk(name: str) -> sa.Column:
    return sa.Column(name, sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)


def _tenant_fk() -> sa.Column:
    return sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False)


def upgrade() -> None:
    # ---------- Tenancy / accounts ----------
    op.create_table(
        "tenants",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("subdomain", sa.String(63), nullable=False, unique=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        _tenant_fk(),
        sa.Column("email", sa.String(320), nullable=False, unique=True),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("idx_users_tenant", "users", ["tenant_id"])
    op.create_table(
        "roles",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("key", sa.String(64), nullable=False, unique=True),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_table(
        "permissions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("key", sa.String(128), nullable=False, unique=True),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_table(
        "user_roles",
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("role_id", sa.Integer(), sa.ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
    )
    op.create_table(
        "role_permissions",
        sa.Column("role_id", sa.Integer(), sa.ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("permission_id", sa.Integer(), sa.ForeignKey("permissions.id", ondelete="CASCADE"), primary_key=True),
    )

    # ---------- Audit ----------
    op.create_table(
        "audit_events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("request_id", sa.String(64), nullable=True),
        sa.Column("client_ip", sa.String(64), nullable=True),
        _user_fk("actor_user_id"),
        sa.Column("actor_user_email", sa.String(320), nullable=True),
        sa.Column("action", sa.String(128), nullable=False),
        sa.Column("entity_type", sa.String(128), nullable=True),
        sa.Column("entity_id", sa.String(128), nullable=True),
        sa.Column("reason", sa.String(512), nullable=True),
        sa.Column("metadata_json", sa.Text(), nullable=True),
    )
    op.create_index("idx_audit_events_tenant_created", "audit_events", ["tenant_id", "created_at"])
    op.create_index("idx_audit_events_entity", "audit_events", ["entity_type", "entity_id"])

    # ---------- Contacts ----------
    op.create_table(
        "contacts",
        sa.Column("id", sa.Integer(), primary_key=True),
        _tenant_fk(),
        sa.Column("first_name", sa.String(255), nullable=False),
        sa.Column("last_name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("address_line1", sa.String(255), nullable=True),
        sa.Column("address_line2", sa.String(255), nullable=True),
        sa.Column("city", sa.String(100), nullable=True),
        sa.Column("state", sa.String(100), nullable=True),
        sa.Column("postal_code", sa.String(20), nullable=True),
        sa.Column("country", sa.String(100), nullable=True, server_default="USA"),
        sa.Column("tax_id", sa.String(50), nullable=True),
        sa.Column("payment_info", sa.JSON(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column(
            "portal_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, unique=True
        ),
        sa.Column("tin_encrypted", sa.Text(), nullable=True),
        sa.Column("tin_type", sa.String(10), nullable=True),
        sa.Column("tin_last_four", sa.String(4), nullable=True),
        sa.Column("is_us_based", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("w9_received", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("w9_received_date", sa.Date(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        _user_fk("created_by_user_id"),
        sa.UniqueConstraint("tenant_id", "email", name="uq_contacts_tenant_email"),
    )
    op.create_index("idx_contacts_tenant", "contacts", ["tenant_id"])
    op.create_index("idx_contacts_tenant_status", "contacts", ["tenant_id", "status"])
    op.create_index("idx_contacts_name", "contacts", ["last_name", "first_name"])

    op.create_table(
        "contact_roles",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("contact_id", sa.Integer(), sa.ForeignKey("contacts.id", ondelete="CASCADE"), nullable=False),
        sa.Column("role", sa.String(20), nullable=False),
        sa.Column("role_specific_data", sa.JSON(), nullable=True),
        sa.Column("assigned_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        _user_fk("assigned_by_user_id"),
        sa.UniqueConstraint("contact_id", "role", name="uq_contact_roles_contact_role"),
    )
    op.create_index("idx_contact_roles_role", "contact_roles", ["role"])

    # ---------- Titles ----------
    op.create_table(
        "titles",
        sa.Column("id", sa.Integer(), primary_key=True),
        _tenant_fk(),
        sa.Column("name", sa.String(500), nullable=False),
        sa.Column("isbn13", sa.String(13), nullable=True),
        sa.Column("author_contact_id", sa.Integer(), sa.ForeignKey("contacts.id", ondelete="SET NULL"), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        _user_fk("created_by_user_id"),
        sa.UniqueConstraint("tenant_id", "isbn13", name="uq_titles_tenant_isbn13"),
    )
    op.create_index("idx_titles_tenant", "titles", ["tenant_id"])

    # ---------- Production ----------
    op.create_table(
        "production_projects",
        sa.Column("id", sa.Integer(), primary_key=True),
        _tenant_fk(),
        sa.Column("title_id", sa.Integer(), sa.ForeignKey("titles.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("target_publication_date", sa.Date(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="draft"),
        sa.Column("workflow_stage", sa.String(32), nullable=False, server_default="manuscript_received"),
        sa.Column("stage_entered_at", sa.DateTime(), nullable=True),
        sa.Column("workflow_stage_history", sa.JSON(), nullable=True),
        sa.Column("manuscript_file_key", sa.String(512), nullable=True),
        sa.Column("manuscript_file_name", sa.String(255), nullable=True),
        sa.Column("manuscript_file_size", sa.Integer(), nullable=True),
        sa.Column("manuscript_uploaded_at", sa.DateTime(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        _user_fk("created_by_user_id"),
        _user_fk("updated_by_user_id"),
        sa.Column("deleted_at", sa.DateTime(), nullable=True),
        _user_fk("deleted_by_user_id"),
    )
    op.create_index("idx_production_projects_tenant", "production_projects", ["tenant_id"])
    op.create_index("idx_production_projects_title", "production_projects", ["title_id"])
    op.create_index("idx_production_projects_stage", "production_projects", ["tenant_id", "workflow_stage"])
    op.create_index("idx_production_projects_target_date", "production_projects", ["target_publication_date"])

    op.create_table(
        "production_tasks",
        sa.Column("id", sa.Integer(), primary_key=True),
        _tenant_fk(),
        sa.Column(
            "project_id", sa.Integer(), sa.ForeignKey("production_projects.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("task_type", sa.String(20), nullable=False, server_default="other"),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("vendor_id", sa.Integer(), sa.ForeignKey("contacts.id", ondelete="SET NULL"), nullable=True),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        _user_fk("created_by_user_id"),
        _user_fk("updated_by_user_id"),
        sa.Column("deleted_at", sa.DateTime(), nullable=True),
    )
    op.create_index("idx_production_tasks_project", "production_tasks", ["project_id"])
    op.create_index("idx_production_tasks_vendor", "production_tasks", ["vendor_id"])
    op.create_index("idx_production_tasks_due_date", "production_tasks", ["due_date"])

    op.create_table(
        "proof_files",
        sa.Column("id", sa.Integer(), primary_key=True),
        _tenant_fk(),
        sa.Column(
            "project_id", sa.Integer(), sa.ForeignKey("production_projects.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("file_key", sa.String(512), nullable=False),
        sa.Column("file_name", sa.String(255), nullable=False),
        sa.Column("file_size", sa.Integer(), nullable=False),
        sa.Column("mime_type", sa.String(128), nullable=False, server_default="application/pdf"),
        sa.Column("sha256", sa.String(64), nullable=False),
        sa.Column("page_count", sa.Integer(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("uploaded_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        _user_fk("uploaded_by_user_id"),
        sa.Column("approval_status", sa.String(32), nullable=False, server_default="pending"),
        sa.Column("approval_notes", sa.Text(), nullable=True),
        sa.Column("approved_at", sa.DateTime(), nullable=True),
        _user_fk("approved_by_user_id"),
        sa.Column("deleted_at", sa.DateTime(), nullable=True),
        _user_fk("deleted_by_user_id"),
        sa.UniqueConstraint("project_id", "version", name="uq_proof_files_project_version"),
    )
    op.create_index("idx_proof_files_project", "proof_files", ["project_id"])

    # ---------- Invoices ----------
    op.create_table(
        "invoices",
        sa.Column("id", sa.Integer(), primary_key=True),
        _tenant_fk(),
        sa.Column("invoice_number", sa.String(32), nullable=False),
        sa.Column("customer_id", sa.Integer(), sa.ForeignKey("contacts.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("invoice_date", sa.Date(), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="draft"),
        sa.Column("bill_to_address", sa.JSON(), nullable=False),
        sa.Column("ship_to_address", sa.JSON(), nullable=True),
        sa.Column("po_number", sa.String(100), nullable=True),
        sa.Column("payment_terms", sa.String(20), nullable=False, server_default="net_30"),
        sa.Column("custom_terms_days", sa.Integer(), nullable=True),
        sa.Column("shipping_method", sa.String(100), nullable=True),
        sa.Column("shipping_cost", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("subtotal", sa.Numeric(10, 2), nullable=False),
        sa.Column("tax_rate", sa.Numeric(5, 4), nullable=False, server_default="0"),
        sa.Column("tax_amount", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("total", sa.Numeric(10, 2), nullable=False),
        sa.Column("amount_paid", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("balance_due", sa.Numeric(10, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default="USD"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("internal_notes", sa.Text(), nullable=True),
        sa.Column("pdf_storage_key", sa.String(512), nullable=True),
        sa.Column("sent_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        _user_fk("created_by_user_id"),
        sa.UniqueConstraint("tenant_id", "invoice_number", name="uq_invoices_tenant_number"),
    )
    op.create_index("idx_invoices_tenant", "invoices", ["tenant_id"])
    op.create_index("idx_invoices_customer", "invoices", ["customer_id"])
    op.create_index("idx_invoices_status", "invoices", ["tenant_id", "status"])
    op.create_index("idx_invoices_due_date", "invoices", ["due_date"])
    op.create_index("idx_invoices_invoice_date", "invoices", ["invoice_date"])

    op.create_table(
        "invoice_line_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("invoice_id", sa.Integer(), sa.ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False),
        sa.Column("line_number", sa.Integer(), nullable=False),
        sa.Column("item_code", sa.String(50), nullable=True),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("quantity", sa.Numeric(10, 3), nullable=False, server_default="1"),
        sa.Column("unit_price", sa.Numeric(10, 2), nullable=False),
        sa.Column("tax_rate", sa.Numeric(5, 4), nullable=True),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("title_id", sa.Integer(), sa.ForeignKey("titles.id", ondelete="SET NULL"), nullable=True),
    )
    op.create_index("idx_invoice_line_items_invoice", "invoice_line_items", ["invoice_id"])

    op.create_table(
        "invoice_payments",
        sa.Column("id", sa.Integer(), primary_key=True),
        _tenant_fk(),
        sa.Column("invoice_id", sa.Integer(), sa.ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False),
        sa.Column("payment_date", sa.Date(), nullable=False),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("payment_method", sa.String(20), nullable=False),
        sa.Column("reference_number", sa.String(100), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        _user_fk("created_by_user_id"),
    )
    op.create_index("idx_invoice_payments_invoice", "invoice_payments", ["invoice_id"])
    op.create_index("idx_invoice_payments_tenant", "invoice_payments", ["tenant_id"])


def downgrade() -> None:
    for table in (
        "invoice_payments",
        "invoice_line_items",
        "invoices",
        "proof_files",
        "production_tasks",
        "production_projects",
        "titles",
        "contact_roles",
        "contacts",
        "audit_events",
        "role_permissions",
        "user_roles",
        "permissions",
        "roles",
        "users",
        "tenants",
    ):
        op.drop_table(table)
