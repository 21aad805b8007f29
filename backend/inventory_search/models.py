"""Catalog tables backing the equipment search view.

Only the columns the search surface reads are modelled here; the search
itself runs against the ``mv_equipment_search`` materialized view created
by the Alembic migration.
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import INET, TSVECTOR, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from inventory_search.database import Base

EQUIPMENT_TYPES = ("PRESS", "ROBOT", "OVEN", "CONVEYOR", "ASSEMBLY_TABLE", "OTHER")
TAG_DATA_TYPES = ("BOOL", "INT", "DINT", "REAL", "STRING", "TIMER", "COUNTER")


def _uuid_pk() -> Mapped[uuid.UUID]:
    return mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class Site(TimestampMixin, Base):
    """A physical plant site, the root of the equipment hierarchy."""

    __tablename__ = "sites"

    id: Mapped[uuid.UUID] = _uuid_pk()
    name: Mapped[str] = mapped_column(String(100), unique=True)

    cells: Mapped[list["Cell"]] = relationship(back_populates="site", cascade="all, delete-orphan")


class Cell(TimestampMixin, Base):
    """A production cell (line) within a site."""

    __tablename__ = "cells"

    id: Mapped[uuid.UUID] = _uuid_pk()
    site_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("sites.id", ondelete="CASCADE"), index=True
    )
    name: Mapped[str] = mapped_column(String(100))
    line_number: Mapped[str] = mapped_column(String(50))

    site: Mapped[Site] = relationship(back_populates="cells")
    equipment: Mapped[list["Equipment"]] = relationship(back_populates="cell", cascade="all, delete-orphan")

    __table_args__ = (UniqueConstraint("site_id", "line_number", name="uq_cells_site_line"),)


class Equipment(TimestampMixin, Base):
    """A machine within a cell (press, robot, oven, ...)."""

    __tablename__ = "equipment"

    id: Mapped[uuid.UUID] = _uuid_pk()
    cell_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("cells.id", ondelete="CASCADE"), index=True
    )
    name: Mapped[str] = mapped_column(String(100))
    equipment_type: Mapped[str] = mapped_column(String(32), default="OTHER")

    cell: Mapped[Cell] = relationship(back_populates="equipment")
    plcs: Mapped[list["PLC"]] = relationship(back_populates="equipment", cascade="all, delete-orphan")

    __table_args__ = (
        CheckConstraint(
            "equipment_type IN ({})".format(", ".join(f"'{t}'" for t in EQUIPMENT_TYPES)),
            name="ck_equipment_type",
        ),
    )


class PLC(TimestampMixin, Base):
    """A programmable logic controller attached to a piece of equipment."""

    __tablename__ = "plcs"

    id: Mapped[uuid.UUID] = _uuid_pk()
    equipment_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("equipment.id", ondelete="CASCADE"), index=True
    )
    tag_id: Mapped[str] = mapped_column(String(100), unique=True)
    description: Mapped[str] = mapped_column(Text, default="")
    make: Mapped[str] = mapped_column(String(100))
    model: Mapped[str] = mapped_column(String(100))
    ip_address: Mapped[str | None] = mapped_column(INET, nullable=True, unique=True)
    firmware_version: Mapped[str | None] = mapped_column(String(50), nullable=True)

    # Maintained by the update_plc_search_vector trigger
    search_vector: Mapped[str | None] = mapped_column(TSVECTOR, nullable=True)

    equipment: Mapped[Equipment] = relationship(back_populates="plcs")
    tags: Mapped[list["Tag"]] = relationship(back_populates="plc", cascade="all, delete-orphan")

    __table_args__ = (
        Index("idx_plcs_search_vector", "search_vector", postgresql_using="gin"),
        Index("idx_plcs_make_model", "make", "model"),
    )


class Tag(TimestampMixin, Base):
    """A named I/O point on a PLC."""

    __tablename__ = "tags"

    id: Mapped[uuid.UUID] = _uuid_pk()
    plc_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("plcs.id", ondelete="CASCADE"))
    name: Mapped[str] = mapped_column(String(100))
    data_type: Mapped[str] = mapped_column(String(16))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    plc: Mapped[PLC] = relationship(back_populates="tags")

    __table_args__ = (
        UniqueConstraint("plc_id", "name", name="uq_tags_plc_name"),
        CheckConstraint(
            "data_type IN ({})".format(", ".join(f"'{t}'" for t in TAG_DATA_TYPES)),
            name="ck_tags_data_type",
        ),
    )
