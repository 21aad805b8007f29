"""Create catalog tables and the equipment search materialized view.

Revision ID: 001_catalog_search_view
Revises: None
Create Date: 2026-10-19 09:00:00.000000

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001_catalog_search_view"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def _uuid_pk() -> sa.Column:
    return sa.Column(
        "id",
        postgresql.UUID(as_uuid=True),
        primary_key=True,
        server_default=sa.text("gen_random_uuid()"),
    )


def upgrade() -> None:
    """Apply schema migrations."""
    op.execute('CREATE EXTENSION IF NOT EXISTS "pg_trgm"')

    op.create_table(
        "sites",
        _uuid_pk(),
        sa.Column("name", sa.String(100), nullable=False, unique=True),
        *_timestamps(),
    )

    op.create_table(
        "cells",
        _uuid_pk(),
        sa.Column("site_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("sites.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("line_number", sa.String(50), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("site_id", "line_number", name="uq_cells_site_line"),
    )
    op.create_index("ix_cells_site_id", "cells", ["site_id"])

    op.create_table(
        "equipment",
        _uuid_pk(),
        sa.Column("cell_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("cells.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("equipment_type", sa.String(32), nullable=False, server_default="OTHER"),
        *_timestamps(),
        sa.CheckConstraint(
            "equipment_type IN ('PRESS', 'ROBOT', 'OVEN', 'CONVEYOR', 'ASSEMBLY_TABLE', 'OTHER')",
            name="ck_equipment_type",
        ),
    )
    op.create_index("ix_equipment_cell_id", "equipment", ["cell_id"])

    op.create_table(
        "plcs",
        _uuid_pk(),
        sa.Column(
            "equipment_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("equipment.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("tag_id", sa.String(100), nullable=False, unique=True),
        sa.Column("description", sa.Text, nullable=False, server_default=""),
        sa.Column("make", sa.String(100), nullable=False),
        sa.Column("model", sa.String(100), nullable=False),
        sa.Column("ip_address", postgresql.INET, nullable=True, unique=True),
        sa.Column("firmware_version", sa.String(50), nullable=True),
        sa.Column("search_vector", postgresql.TSVECTOR, nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_plcs_equipment_id", "plcs", ["equipment_id"])
    op.create_index("idx_plcs_make_model", "plcs", ["make", "model"])
    op.create_index("idx_plcs_search_vector", "plcs", ["search_vector"], postgresql_using="gin")

    op.create_table(
        "tags",
        _uuid_pk(),
        sa.Column("plc_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("plcs.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("data_type", sa.String(16), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("plc_id", "name", name="uq_tags_plc_name"),
        sa.CheckConstraint(
            "data_type IN ('BOOL', 'INT', 'DINT', 'REAL', 'STRING', 'TIMER', 'COUNTER')",
            name="ck_tags_data_type",
        ),
    )

    # Weighted per-PLC vector: description (A), make + model (B), tag (C)
    op.execute("""
        CREATE OR REPLACE FUNCTION update_plc_search_vector()
        RETURNS TRIGGER AS $$
        BEGIN
            NEW.search_vector :=
                setweight(to_tsvector('english', COALESCE(NEW.description, '')), 'A') ||
                setweight(to_tsvector('english', COALESCE(NEW.make, '') || ' ' || COALESCE(NEW.model, '')), 'B') ||
                setweight(to_tsvector('english', COALESCE(NEW.tag_id, '')), 'C');
            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql
    """)
    op.execute("""
        CREATE TRIGGER update_plcs_search_vector
        BEFORE INSERT OR UPDATE ON plcs
        FOR EACH ROW EXECUTE FUNCTION update_plc_search_vector()
    """)

    # Trigram indexes for similarity matching
    op.execute("CREATE INDEX idx_plcs_description_trgm ON plcs USING GIN (description gin_trgm_ops)")
    op.execute("CREATE INDEX idx_plcs_make_trgm ON plcs USING GIN (make gin_trgm_ops)")
    op.execute("CREATE INDEX idx_plcs_model_trgm ON plcs USING GIN (model gin_trgm_ops)")
    op.execute("CREATE INDEX idx_plcs_tag_id_trgm ON plcs USING GIN (tag_id gin_trgm_ops)")

    op.execute("""
        CREATE MATERIALIZED VIEW mv_equipment_search AS
        SELECT
            p.id AS plc_id,
            p.tag_id,
            p.description AS plc_description,
            p.make,
            p.model,
            p.ip_address,
            p.firmware_version,
            p.search_vector AS plc_search_vector,
            e.id AS equipment_id,
            e.name AS equipment_name,
            e.equipment_type,
            c.id AS cell_id,
            c.name AS cell_name,
            c.line_number,
            s.id AS site_id,
            s.name AS site_name,
            CONCAT(s.name, ' > ', c.name, ' > ', e.name, ' > ', p.tag_id) AS hierarchy_path,
            setweight(to_tsvector('english', COALESCE(p.description, '')), 'A') ||
            setweight(to_tsvector('english', COALESCE(p.make, '') || ' ' || COALESCE(p.model, '')), 'B') ||
            setweight(to_tsvector('english', COALESCE(p.tag_id, '')), 'C') ||
            setweight(
                to_tsvector('english', COALESCE(s.name, '') || ' ' || COALESCE(c.name, '') || ' ' || COALESCE(e.name, '')),
                'D'
            ) AS combined_search_vector,
            COALESCE(
                (SELECT string_agg(t.name || ' ' || COALESCE(t.description, ''), ' ')
                 FROM tags t WHERE t.plc_id = p.id),
                ''
            ) AS tags_text
        FROM plcs p
        JOIN equipment e ON p.equipment_id = e.id
        JOIN cells c ON e.cell_id = c.id
        JOIN sites s ON c.site_id = s.id
    """)

    # REFRESH ... CONCURRENTLY requires a unique index
    op.execute("CREATE UNIQUE INDEX idx_mv_equipment_search_plc_id ON mv_equipment_search (plc_id)")
    op.execute(
        "CREATE INDEX idx_mv_equipment_search_combined_vector ON mv_equipment_search USING GIN (combined_search_vector)"
    )
    op.execute("CREATE INDEX idx_mv_equipment_search_site_name ON mv_equipment_search (site_name)")
    op.execute("CREATE INDEX idx_mv_equipment_search_equipment_type ON mv_equipment_search (equipment_type)")
    op.execute("CREATE INDEX idx_mv_equipment_search_make_model ON mv_equipment_search (make, model)")
    op.execute(
        "CREATE INDEX idx_mv_equipment_search_description_trgm ON mv_equipment_search "
        "USING GIN (plc_description gin_trgm_ops)"
    )
    op.execute(
        "CREATE INDEX idx_mv_equipment_search_tag_id_trgm ON mv_equipment_search USING GIN (tag_id gin_trgm_ops)"
    )

    op.execute("""
        CREATE OR REPLACE FUNCTION refresh_equipment_search_view()
        RETURNS void AS $$
        BEGIN
            REFRESH MATERIALIZED VIEW CONCURRENTLY mv_equipment_search;
        END;
        $$ LANGUAGE plpgsql
    """)


def downgrade() -> None:
    """Revert schema migrations."""
    op.execute("DROP FUNCTION IF EXISTS refresh_equipment_search_view()")
    op.execute("DROP MATERIALIZED VIEW IF EXISTS mv_equipment_search")
    op.execute("DROP TRIGGER IF EXISTS update_plcs_search_vector ON plcs")
    op.execute("DROP FUNCTION IF EXISTS update_plc_search_vector()")

    op.drop_table("tags")
    op.drop_table("plcs")
    op.drop_table("equipment")
    op.drop_table("cells")
    op.drop_table("sites")
