"""Initial TrackFlow schema.

Revision ID: 0001
Revises:
Create Date: 2026-10-19
"""

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None

from alembic import op
import sqlalchemy as sa


def upgrade() -> None:
    # ── Identity ─────────────────────────────────────────────
    op.create_table(
        "users",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("hashed_password", sa.String(255)),
        sa.Column("full_name", sa.String(255), nullable=False),
        sa.Column(
            "role",
            sa.Enum("ADMIN", "MANAGER", "WORKER", name="userrole"),
            nullable=False,
        ),
        sa.Column("worker_type", sa.String(30)),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
        sa.Column("created_by", sa.String(36)),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "nfc_cards",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("card_id", sa.String(100), nullable=False),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id")),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
        sa.Column("last_used", sa.DateTime()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_nfc_cards_card_id", "nfc_cards", ["card_id"], unique=True)
    op.create_index("ix_nfc_cards_user_id", "nfc_cards", ["user_id"])

    # ── Reference data ───────────────────────────────────────
    op.create_table(
        "clients",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("contact_person", sa.String(255)),
        sa.Column("email", sa.String(255)),
        sa.Column("phone", sa.String(100)),
        sa.Column("address", sa.Text()),
        sa.Column("notes", sa.Text()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_clients_name", "clients", ["name"])

    op.create_table(
        "projects",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("internal_number", sa.String(50), nullable=False),
        sa.Column("client_id", sa.String(36), sa.ForeignKey("clients.id")),
        sa.Column("client_representative", sa.String(255)),
        sa.Column("project_start", sa.Date()),
        sa.Column("project_end", sa.Date()),
        sa.Column("delivery_date", sa.Date()),
        sa.Column("delivery_location", sa.String(500)),
        sa.Column("status", sa.String(30), server_default="Planning"),
        sa.Column("responsible_manager", sa.String(255)),
        sa.Column("notes", sa.Text()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_projects_internal_number", "projects", ["internal_number"], unique=True)
    op.create_index("ix_projects_client_id", "projects", ["client_id"])
    op.create_index("ix_projects_status", "projects", ["status"])

    # ── Production ───────────────────────────────────────────
    op.create_table(
        "assemblies",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("project_id", sa.String(36), sa.ForeignKey("projects.id"), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("weight", sa.Float(), server_default="0"),
        sa.Column("quantity", sa.Integer(), server_default="1"),
        sa.Column("width", sa.Float()),
        sa.Column("height", sa.Float()),
        sa.Column("length", sa.Float()),
        sa.Column("painting_spec", sa.String(255)),
        sa.Column("status", sa.String(30), server_default="Waiting"),
        sa.Column("start_date", sa.Date()),
        sa.Column("end_date", sa.Date()),
        sa.Column("quality_control_status", sa.String(50)),
        sa.Column("quality_control_notes", sa.Text()),
        sa.Column("parent_id", sa.String(36), sa.ForeignKey("assemblies.id")),
        sa.Column("is_parent", sa.Boolean(), server_default=sa.false()),
        sa.Column("original_quantity", sa.Integer(), server_default="1"),
        sa.Column("child_number", sa.Integer()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.UniqueConstraint("parent_id", "child_number", name="uq_assemblies_parent_child"),
    )
    op.create_index("ix_assemblies_project_id", "assemblies", ["project_id"])
    op.create_index("ix_assemblies_status", "assemblies", ["status"])
    op.create_index("ix_assemblies_parent_id", "assemblies", ["parent_id"])

    op.create_table(
        "assembly_status_logs",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("assembly_id", sa.String(36), sa.ForeignKey("assemblies.id"), nullable=False),
        sa.Column("previous_status", sa.String(30)),
        sa.Column("new_status", sa.String(30), nullable=False),
        sa.Column("updated_by", sa.String(36)),
        sa.Column("device_info", sa.JSON()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_assembly_status_logs_assembly_id", "assembly_status_logs", ["assembly_id"])
    op.create_index("ix_assembly_status_logs_created_at", "assembly_status_logs", ["created_at"])

    op.create_table(
        "assembly_qc_images",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("assembly_id", sa.String(36), sa.ForeignKey("assemblies.id"), nullable=False),
        sa.Column("image_path", sa.String(500), nullable=False),
        sa.Column("file_name", sa.String(255), nullable=False),
        sa.Column("file_size", sa.Integer(), server_default="0"),
        sa.Column("content_type", sa.String(100)),
        sa.Column("qc_status", sa.String(50)),
        sa.Column("notes", sa.Text()),
        sa.Column("created_by", sa.String(36)),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_assembly_qc_images_assembly_id", "assembly_qc_images", ["assembly_id"])
    op.create_index("ix_assembly_qc_images_created_at", "assembly_qc_images", ["created_at"])

    op.create_table(
        "drawings",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("kind", sa.String(20), nullable=False),
        sa.Column("entity_id", sa.String(36), nullable=False),
        sa.Column("file_name", sa.String(255), nullable=False),
        sa.Column("file_path", sa.String(500), nullable=False),
        sa.Column("file_size", sa.Integer(), server_default="0"),
        sa.Column("content_type", sa.String(100)),
        sa.Column("uploaded_by", sa.String(36)),
        sa.Column("uploaded_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_drawings_entity_id", "drawings", ["entity_id"])

    # ── Logistics ────────────────────────────────────────────
    op.create_table(
        "logistics_batches",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("batch_number", sa.String(50), nullable=False),
        sa.Column("client_id", sa.String(36), sa.ForeignKey("clients.id")),
        sa.Column("project_id", sa.String(36), sa.ForeignKey("projects.id")),
        sa.Column("delivery_address", sa.Text()),
        sa.Column("total_weight", sa.Float(), server_default="0"),
        sa.Column("status", sa.String(30), server_default="Pending"),
        sa.Column("shipment_date", sa.Date()),
        sa.Column("estimated_arrival", sa.Date()),
        sa.Column("actual_arrival", sa.Date()),
        sa.Column("notes", sa.Text()),
        sa.Column("created_by", sa.String(36)),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_logistics_batches_batch_number", "logistics_batches", ["batch_number"], unique=True)
    op.create_index("ix_logistics_batches_client_id", "logistics_batches", ["client_id"])
    op.create_index("ix_logistics_batches_project_id", "logistics_batches", ["project_id"])
    op.create_index("ix_logistics_batches_status", "logistics_batches", ["status"])

    op.create_table(
        "logistics_batch_assemblies",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("batch_id", sa.String(36), sa.ForeignKey("logistics_batches.id"), nullable=False),
        sa.Column("assembly_id", sa.String(36), sa.ForeignKey("assemblies.id"), nullable=False),
        sa.Column("added_by", sa.String(36)),
        sa.Column("assembly_status", sa.String(30), server_default="Completed"),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.UniqueConstraint("batch_id", "assembly_id", name="uq_batch_assembly"),
    )
    op.create_index("ix_logistics_batch_assemblies_batch_id", "logistics_batch_assemblies", ["batch_id"])
    op.create_index("ix_logistics_batch_assemblies_assembly_id", "logistics_batch_assemblies", ["assembly_id"])
    op.create_index("ix_logistics_batch_assemblies_created_at", "logistics_batch_assemblies", ["created_at"])

    # ── Barcodes (one row per bound token) ───────────────────
    op.create_table(
        "barcodes",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("barcode", sa.String(100), nullable=False),
        sa.Column("kind", sa.String(20), nullable=False),
        sa.Column("assembly_id", sa.String(36), sa.ForeignKey("assemblies.id"), unique=True),
        sa.Column("batch_id", sa.String(36), sa.ForeignKey("logistics_batches.id"), unique=True),
        sa.Column("created_by", sa.String(36)),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.CheckConstraint(
            "(assembly_id IS NULL) <> (batch_id IS NULL)",
            name="ck_barcodes_single_target",
        ),
    )
    op.create_index("ix_barcodes_barcode", "barcodes", ["barcode"], unique=True)

    # ── Audit ────────────────────────────────────────────────
    op.create_table(
        "mobile_operations_log",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("operation_type", sa.String(100), nullable=False),
        sa.Column("user_id", sa.String(36)),
        sa.Column("device_info", sa.JSON()),
        sa.Column("request_details", sa.JSON()),
        sa.Column("status_code", sa.Integer()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_mobile_operations_log_operation_type", "mobile_operations_log", ["operation_type"])
    op.create_index("ix_mobile_operations_log_user_id", "mobile_operations_log", ["user_id"])
    op.create_index("ix_mobile_operations_log_created_at", "mobile_operations_log", ["created_at"])


def downgrade() -> None:
    op.drop_table("mobile_operations_log")
    op.drop_table("barcodes")
    op.drop_table("logistics_batch_assemblies")
    op.drop_table("logistics_batches")
    op.drop_table("drawings")
    op.drop_table("assembly_qc_images")
    op.drop_table("assembly_status_logs")
    op.drop_table("assemblies")
    op.drop_table("projects")
    op.drop_table("clients")
    op.drop_table("nfc_cards")
    op.drop_table("users")
    sa.Enum(name="userrole").drop(op.get_bind(), checkfirst=True)
