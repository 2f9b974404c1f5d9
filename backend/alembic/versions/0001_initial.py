"""initial schema

Revision ID: 0001_initial
Revises: 
Create Date: 2026-10-19 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("full_name", sa.String(length=200), nullable=False, server_default=""),
        sa.Column("phone", sa.String(length=40), nullable=True),
        sa.Column(
            "role",
            sa.Enum("patient", "dentist", "admin", name="role_enum"),
            nullable=False,
            server_default="patient",
        ),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("hashed_password", sa.String(length=255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.UniqueConstraint("email"),
    )
    op.create_index("ix_users_email", "users", ["email"])

    op.create_table(
        "dentists",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column(
            "specialization",
            sa.Enum(
                "General Dentistry",
                "Orthodontics",
                "Oral Surgery",
                "Endodontics",
                "Periodontics",
                "Prosthodontics",
                "Pediatric Dentistry",
                "Cosmetic Dentistry",
                "Oral Pathology",
                name="dentist_specialization",
            ),
            nullable=False,
            server_default="General Dentistry",
        ),
        sa.Column("license_number", sa.String(length=64), nullable=False),
        sa.Column("years_of_experience", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("bio", sa.Text(), nullable=True),
        sa.Column("consultation_fee", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("user_id"),
        sa.UniqueConstraint("license_number"),
        sa.CheckConstraint("consultation_fee >= 0", name="ck_dentists_fee_non_negative"),
        sa.CheckConstraint(
            "years_of_experience >= 0 AND years_of_experience <= 50",
            name="ck_dentists_experience_range",
        ),
    )
    op.create_index("ix_dentists_is_active", "dentists", ["is_active"])
    op.create_index("ix_dentists_deleted_at", "dentists", ["deleted_at"])

    op.create_table(
        "services",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("description", sa.String(length=500), nullable=False, server_default=""),
        sa.Column(
            "category",
            sa.Enum(
                "general",
                "cosmetic",
                "orthodontics",
                "surgery",
                "pediatric",
                "emergency",
                name="service_category",
            ),
            nullable=False,
            server_default="general",
        ),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("price", sa.Numeric(10, 2), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.UniqueConstraint("name"),
        sa.CheckConstraint(
            "duration_minutes >= 15 AND duration_minutes <= 240",
            name="ck_services_duration_range",
        ),
        sa.CheckConstraint("price >= 0", name="ck_services_price_non_negative"),
    )
    op.create_index("ix_services_category", "services", ["category"])
    op.create_index("ix_services_is_active", "services", ["is_active"])

    op.create_table(
        "appointments",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("patient_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("dentist_id", sa.Integer(), sa.ForeignKey("dentists.id"), nullable=False),
        sa.Column("service_id", sa.Integer(), sa.ForeignKey("services.id"), nullable=True),
        sa.Column("starts_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("ends_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "status",
            sa.Enum("PENDING", "CONFIRMED", "COMPLETED", "CANCELLED", "NO_SHOW", name="appointment_status"),
            nullable=False,
            server_default="PENDING",
        ),
        sa.Column(
            "payment_status",
            sa.Enum("PENDING", "PAID", "REFUNDED", name="payment_status"),
            nullable=False,
            server_default="PENDING",
        ),
        sa.Column("notes", sa.String(length=500), nullable=True),
        sa.Column("symptoms", sa.String(length=300), nullable=True),
        sa.Column("clinical_notes", sa.Text(), nullable=True),
        sa.Column("price", sa.Numeric(10, 2), nullable=True),
        sa.Column(
            "created_by",
            sa.Enum("USER", "ADMIN", "DENTIST", name="booking_source"),
            nullable=False,
            server_default="USER",
        ),
        sa.Column("created_by_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("idempotency_key", sa.String(length=128), nullable=True),
        sa.Column("cancel_reason", sa.Text(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_by_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint("ends_at > starts_at", name="ck_appointments_interval"),
        sa.CheckConstraint("price IS NULL OR price >= 0", name="ck_appointments_price_non_negative"),
        sa.UniqueConstraint("patient_id", "idempotency_key", name="uq_appointments_patient_idempotency"),
    )
    op.create_index("ix_appointments_status", "appointments", ["status"])
    op.create_index("ix_appointments_dentist_starts_at", "appointments", ["dentist_id", "starts_at"])
    op.create_index("ix_appointments_patient_starts_at", "appointments", ["patient_id", "starts_at"])

    op.create_table(
        "appointment_slots",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "appointment_id",
            sa.Integer(),
            sa.ForeignKey("appointments.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("dentist_id", sa.Integer(), sa.ForeignKey("dentists.id"), nullable=False),
        sa.Column("slot_start", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("dentist_id", "slot_start", name="uq_appointment_slots_dentist_start"),
    )
    op.create_index("ix_appointment_slots_appointment_id", "appointment_slots", ["appointment_id"])

    op.create_table(
        "practice_hours",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("day_of_week", sa.Integer(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=True),
        sa.Column("end_time", sa.Time(), nullable=True),
        sa.Column("is_closed", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.UniqueConstraint("day_of_week", name="uq_practice_hours_day"),
    )
    op.create_index("ix_practice_hours_day_of_week", "practice_hours", ["day_of_week"])

    op.create_table(
        "dentist_hours",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "dentist_id",
            sa.Integer(),
            sa.ForeignKey("dentists.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("day_of_week", sa.Integer(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=True),
        sa.Column("end_time", sa.Time(), nullable=True),
        sa.Column("is_available", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.UniqueConstraint("dentist_id", "day_of_week", name="uq_dentist_hours_dentist_day"),
    )
    op.create_index("ix_dentist_hours_dentist_id", "dentist_hours", ["dentist_id"])

    op.create_table(
        "practice_closures",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("reason", sa.String(length=255), nullable=True),
    )

    op.create_table(
        "practice_overrides",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=True),
        sa.Column("end_time", sa.Time(), nullable=True),
        sa.Column("is_closed", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("reason", sa.String(length=255), nullable=True),
    )
    op.create_index("ix_practice_overrides_date", "practice_overrides", ["date"])

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("actor_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("actor_role", sa.String(length=32), nullable=True),
        sa.Column("action", sa.String(length=64), nullable=False),
        sa.Column("entity_type", sa.String(length=50), nullable=False),
        sa.Column("entity_id", sa.String(length=64), nullable=False),
        sa.Column("request_id", sa.String(length=120), nullable=True),
        sa.Column("ip_address", sa.String(length=64), nullable=True),
        sa.Column("before_json", sa.JSON(), nullable=True),
        sa.Column("after_json", sa.JSON(), nullable=True),
    )
    op.create_index("ix_audit_logs_entity_id", "audit_logs", ["entity_id"])

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("target_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("target_role", sa.String(length=32), nullable=True),
        sa.Column("kind", sa.String(length=64), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=True),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_notifications_target_user_id", "notifications", ["target_user_id"])
    op.create_index("ix_notifications_target_role", "notifications", ["target_role"])


def downgrade() -> None:
    op.drop_index("ix_notifications_target_role", table_name="notifications")
    op.drop_index("ix_notifications_target_user_id", table_name="notifications")
    op.drop_table("notifications")
    op.drop_index("ix_audit_logs_entity_id", table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_index("ix_practice_overrides_date", table_name="practice_overrides")
    op.drop_table("practice_overrides")
    op.drop_table("practice_closures")
    op.drop_index("ix_dentist_hours_dentist_id", table_name="dentist_hours")
    op.drop_table("dentist_hours")
    op.drop_index("ix_practice_hours_day_of_week", table_name="practice_hours")
    op.drop_table("practice_hours")
    op.drop_index("ix_appointment_slots_appointment_id", table_name="appointment_slots")
    op.drop_table("appointment_slots")
    op.drop_index("ix_appointments_patient_starts_at", table_name="appointments")
    op.drop_index("ix_appointments_dentist_starts_at", table_name="appointments")
    op.drop_index("ix_appointments_status", table_name="appointments")
    op.drop_table("appointments")
    op.drop_index("ix_services_is_active", table_name="services")
    op.drop_index("ix_services_category", table_name="services")
    op.drop_table("services")
    op.drop_index("ix_dentists_deleted_at", table_name="dentists")
    op.drop_index("ix_dentists_is_active", table_name="dentists")
    op.drop_table("dentists")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
    sa.Enum(name="booking_source").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="payment_status").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="appointment_status").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="service_category").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="dentist_specialization").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="role_enum").drop(op.get_bind(), checkfirst=True)
