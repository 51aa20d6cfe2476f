"""Initial schema for Gallery Ingest.

Revision ID: 0001
Revises:
Create Date: 2026-10-18

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Galleries
    op.create_table(
        "galleries",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("main_url", sa.String(2048), nullable=False),
        sa.Column("about_url", sa.String(2048), nullable=True),
        sa.Column("events_page", sa.String(2048), nullable=True),
        sa.Column("normalized_main_url", sa.String(2048), nullable=False, unique=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "gallery_info",
        sa.Column("gallery_id", sa.String(36), sa.ForeignKey("galleries.id"), primary_key=True),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("about", sa.Text(), nullable=True),
        sa.Column("address", sa.String(500), nullable=True),
        sa.Column("district", sa.String(255), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("phone", sa.String(100), nullable=True),
        sa.Column("instagram", sa.String(255), nullable=True),
        sa.Column("tags_json", sa.Text(), default="[]"),
        sa.Column("opening_hours", sa.Text(), nullable=True),
        sa.Column("data_json", sa.Text(), nullable=True),
        sa.Column("embedding_json", sa.Text(), nullable=True),
        sa.Column("embedding_model", sa.String(100), nullable=True),
        sa.Column("embedding_created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "gallery_hours",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("gallery_id", sa.String(36), sa.ForeignKey("galleries.id"), nullable=False),
        sa.Column("dow", sa.Integer(), nullable=False),
        sa.Column("open_minutes_json", sa.Text(), default="[]"),
        sa.UniqueConstraint("gallery_id", "dow", name="uq_gallery_hours_gallery_dow"),
    )
    op.create_index("ix_gallery_hours_gallery_id", "gallery_hours", ["gallery_id"])

    # Page registry
    op.create_table(
        "pages",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("gallery_id", sa.String(36), sa.ForeignKey("galleries.id"), nullable=True),
        sa.Column("url", sa.String(2048), nullable=False),
        sa.Column("normalized_url", sa.String(2048), nullable=False, unique=True),
        sa.Column("kind", sa.String(30), default="init"),
        sa.Column("fetch_status", sa.String(20), default="never"),
        sa.Column("fetched_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_pages_gallery_id", "pages", ["gallery_id"])
    op.create_index("ix_pages_kind", "pages", ["kind"])
    op.create_index("ix_pages_fetch_status", "pages", ["fetch_status"])

    op.create_table(
        "page_content",
        sa.Column("page_id", sa.String(36), sa.ForeignKey("pages.id"), primary_key=True),
        sa.Column("markdown", sa.Text(), nullable=True),
        sa.Column("parsed_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "page_structured",
        sa.Column("page_id", sa.String(36), sa.ForeignKey("pages.id"), primary_key=True),
        sa.Column("parse_status", sa.String(20), default="never"),
        sa.Column("extracted_page_kind", sa.String(30), nullable=True),
        sa.Column("data_json", sa.Text(), nullable=True),
        sa.Column("extraction_error", sa.Text(), nullable=True),
        sa.Column("parsed_at", sa.DateTime(), nullable=True),
        sa.Column("schema_version", sa.String(20), nullable=True),
    )
    op.create_index("ix_page_structured_parse_status", "page_structured", ["parse_status"])

    # Events
    op.create_table(
        "events",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("gallery_id", sa.String(36), sa.ForeignKey("galleries.id"), nullable=False),
        sa.Column("page_id", sa.String(36), sa.ForeignKey("pages.id"), nullable=False, unique=True),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("start_at", sa.DateTime(), nullable=False),
        sa.Column("end_at", sa.DateTime(), nullable=True),
        sa.Column("timezone", sa.String(64), nullable=False),
        sa.Column("status", sa.String(20), default="scheduled"),
        sa.Column("ticket_url", sa.String(2048), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_events_gallery_id", "events", ["gallery_id"])
    op.create_index("ix_events_start_at", "events", ["start_at"])

    op.create_table(
        "event_info",
        sa.Column("event_id", sa.String(36), sa.ForeignKey("events.id"), primary_key=True),
        sa.Column("source_page_id", sa.String(36), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("artists_json", sa.Text(), default="[]"),
        sa.Column("tags_json", sa.Text(), default="[]"),
        sa.Column("images_json", sa.Text(), default="[]"),
        sa.Column("prices_json", sa.Text(), nullable=True),
        sa.Column("data_json", sa.Text(), nullable=True),
        sa.Column("embedding_json", sa.Text(), nullable=True),
        sa.Column("embedding_model", sa.String(100), nullable=True),
        sa.Column("embedding_created_at", sa.DateTime(), nullable=True),
    )

    # Workflow state
    op.create_table(
        "workflow_runs",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("workflow", sa.String(100), nullable=False),
        sa.Column("params_json", sa.Text(), default="{}"),
        sa.Column("status", sa.String(20), default="queued"),
        sa.Column("result_json", sa.Text(), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_workflow_runs_workflow", "workflow_runs", ["workflow"])
    op.create_index("ix_workflow_runs_status", "workflow_runs", ["status"])

    op.create_table(
        "workflow_steps",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("run_id", sa.String(36), sa.ForeignKey("workflow_runs.id"), nullable=False),
        sa.Column("step_name", sa.String(500), nullable=False),
        sa.Column("status", sa.String(20), default="completed"),
        sa.Column("result_json", sa.Text(), default="null"),
        sa.Column("attempts", sa.Integer(), default=1),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("run_id", "step_name", name="uq_workflow_steps_run_step"),
    )
    op.create_index("ix_workflow_steps_run_id", "workflow_steps", ["run_id"])


def downgrade() -> None:
    op.drop_index("ix_workflow_steps_run_id", table_name="workflow_steps")
    op.drop_table("workflow_steps")

    op.drop_index("ix_workflow_runs_status", table_name="workflow_runs")
    op.drop_index("ix_workflow_runs_workflow", table_name="workflow_runs")
    op.drop_table("workflow_runs")

    op.drop_table("event_info")

    op.drop_index("ix_events_start_at", table_name="events")
    op.drop_index("ix_events_gallery_id", table_name="events")
    op.drop_table("events")

    op.drop_index("ix_page_structured_parse_status", table_name="page_structured")
    op.drop_table("page_structured")
    op.drop_table("page_content")

    op.drop_index("ix_pages_fetch_status", table_name="pages")
    op.drop_index("ix_pages_kind", table_name="pages")
    op.drop_index("ix_pages_gallery_id", table_name="pages")
    op.drop_table("pages")

    op.drop_index("ix_gallery_hours_gallery_id", table_name="gallery_hours")
    op.drop_table("gallery_hours")
    op.drop_table("gallery_info")
    op.drop_table("galleries")
