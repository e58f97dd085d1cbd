"""create_shops_and_tryon_jobs

Revision ID: 3f1a9c2d7b10
Revises:
Create Date: 2026-10-19 18:40:00.000000

"""

from typing import Sequence, Union

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3f1a9c2d7b10"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

tryon_status = sa.Enum("PROCESSING", "COMPLETED", "FAILED", name="tryonstatus")
failure_reason = sa.Enum(
    "EXTERNAL_SERVICE", "TIMEOUT", "STALE", "INTERNAL", name="failurereason"
)


def upgrade() -> None:
    """Create shops (tenants) and tryon_jobs tables."""
    op.create_table(
        "shops",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("shop_domain", sa.String(length=255), nullable=False),
        sa.Column("shop_id", sa.String(length=255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("try_on_enabled", sa.Boolean(), nullable=False),
        sa.Column("button_text", sa.String(length=100), nullable=False),
        sa.Column("button_color", sa.String(length=20), nullable=False),
        sa.Column("popup_title", sa.String(length=200), nullable=False),
        sa.Column("max_file_size", sa.Integer(), nullable=False),
        sa.Column("allowed_file_types", sa.String(length=500), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_shops_shop_domain"), "shops", ["shop_domain"], unique=True)

    op.create_table(
        "tryon_jobs",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("shop_domain", sa.String(length=255), nullable=False),
        sa.Column("product_id", sa.String(length=255), nullable=False),
        sa.Column("product_title", sa.String(length=1000), nullable=False),
        sa.Column("product_image", sa.String(), nullable=False),
        sa.Column("customer_image", sa.String(), nullable=False),
        sa.Column("status", tryon_status, nullable=False),
        sa.Column("result_image", sa.String(), nullable=True),
        sa.Column("external_prompt_id", sa.String(length=255), nullable=True),
        sa.Column("failure_reason", failure_reason, nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_tryon_jobs_shop_domain"), "tryon_jobs", ["shop_domain"])
    op.create_index(op.f("ix_tryon_jobs_product_id"), "tryon_jobs", ["product_id"])
    op.create_index(op.f("ix_tryon_jobs_status"), "tryon_jobs", ["status"])
    op.create_index(op.f("ix_tryon_jobs_created_at"), "tryon_jobs", ["created_at"])


def downgrade() -> None:
    """Drop try-on tables."""
    op.drop_index(op.f("ix_tryon_jobs_created_at"), table_name="tryon_jobs")
    op.drop_index(op.f("ix_tryon_jobs_status"), table_name="tryon_jobs")
    op.drop_index(op.f("ix_tryon_jobs_product_id"), table_name="tryon_jobs")
    op.drop_index(op.f("ix_tryon_jobs_shop_domain"), table_name="tryon_jobs")
    op.drop_table("tryon_jobs")
    op.drop_index(op.f("ix_shops_shop_domain"), table_name="shops")
    op.drop_table("shops")
    failure_reason.drop(op.get_bind(), checkfirst=True)
    tryon_status.drop(op.get_bind(), checkfirst=True)
