"""
SQLAlchemy models for the nightlife directory.
All database models inherit from Base (declarative base).

The tables are owned by the hosted store; these mappings mirror its schema so
the query layer can compose typed SELECTs against it.
"""
from geoalchemy2 import Geography
from geoalchemy2.elements import WKTElement
from geoalchemy2.shape import to_shape
from shapely.geometry import Point
from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    JSON,
    PrimaryKeyConstraint,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import ARRAY, JSONB
from sqlalchemy.sql import func

from nightlife.database import Base


# ---------------------------------------------------------------------------
# Geography point
# ---------------------------------------------------------------------------

SRID = 4326

# PostGIS geography on the hosted store, EWKT text on SQLite
GEOGRAPHY_POINT = Geography(geometry_type="POINT", srid=SRID).with_variant(String(), "sqlite")


def latlng_to_ewkt(latlng):
    """
    ``(lat, lng)`` to EWKT. Note the axis order is ``POINT(lng lat)``.
    """
    if latlng is None:
        return None
    lat, lng = latlng
    return f"SRID={SRID};{Point(float(lng), float(lat)).wkt}"


def point_to_latlng(value):
    """
    Stored point to ``(lat, lng)``.

    PostGIS rows come back as WKB elements; SQLite rows hold the EWKT text.
    """
    if value is None:
        return None
    if isinstance(value, str):
        value = WKTElement(value, extended=value.upper().startswith("SRID="))
    point = to_shape(value)
    return (point.y, point.x)


class LocatedMixin:
    """Adds the ``latlng`` geography column, read and written as ``(lat, lng)``."""

    location = Column("latlng", GEOGRAPHY_POINT, nullable=True)

    @property
    def latlng(self):
        return point_to_latlng(self.location)

    @latlng.setter
    def latlng(self, value):
        self.location = latlng_to_ewkt(value)


def _int_array():
    return ARRAY(Integer).with_variant(JSON(), "sqlite")


def _text_array():
    return ARRAY(String).with_variant(JSON(), "sqlite")


# ---------------------------------------------------------------------------
# Reference data
# ---------------------------------------------------------------------------

class City(LocatedMixin, Base):
    __tablename__ = "cities"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    slug = Column(String, nullable=False, unique=True, index=True)
    description = Column(Text, nullable=True)
    hero_image_url = Column(String, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class Category(Base):
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    slug = Column(String, nullable=False, unique=True, index=True)
    priority = Column(Integer, nullable=False, default=0)


class Tag(Base):
    __tablename__ = "tags"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    slug = Column(String, nullable=False, unique=True, index=True)


# ---------------------------------------------------------------------------
# Venues and their dependent rows
# ---------------------------------------------------------------------------

class Venue(LocatedMixin, Base):
    """
    A nightlife venue.
    Only rows with status 'published' are visible to public read paths;
    internal_notes is admin-only and never serialized publicly.
    """
    __tablename__ = "venues"

    id = Column(Integer, primary_key=True, index=True)
    city_id = Column(Integer, ForeignKey("cities.id"), nullable=False, index=True)
    category_id = Column(Integer, ForeignKey("categories.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    slug = Column(String, nullable=False, unique=True, index=True)
    neighborhood = Column(String, nullable=True)
    address = Column(String, nullable=False)
    whatsapp = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    instagram = Column(String, nullable=True)
    website = Column(String, nullable=True)
    price_range = Column(String, nullable=True)
    dress_code = Column(String, nullable=True)
    music_style = Column(String, nullable=True)
    age_policy = Column(String, nullable=True)
    alcohol_policy = Column(String, nullable=True)
    attributes = Column(JSON().with_variant(JSONB(), "postgresql"), nullable=False, default=dict)
    status = Column(String, nullable=False, default="draft", index=True)
    is_sponsored = Column(Boolean, nullable=False, default=False)
    priority_score = Column(Integer, nullable=False, default=0)
    internal_notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class VenueTag(Base):
    """Junction between venues and tags."""
    __tablename__ = "venues_tags"
    __table_args__ = (PrimaryKeyConstraint("venue_id", "tag_id"),)

    venue_id = Column(Integer, ForeignKey("venues.id"), nullable=False, index=True)
    tag_id = Column(Integer, ForeignKey("tags.id"), nullable=False, index=True)


class VenueContent(Base):
    """Long-form description of a venue in one language (fr or en)."""
    __tablename__ = "contents"
    __table_args__ = (UniqueConstraint("venue_id", "language"),)

    id = Column(Integer, primary_key=True, index=True)
    venue_id = Column(Integer, ForeignKey("venues.id"), nullable=False, index=True)
    language = Column(String(2), nullable=False)
    description = Column(Text, nullable=False)
    seo_keywords = Column(_text_array(), nullable=True)


class Photo(Base):
    __tablename__ = "photos"

    id = Column(Integer, primary_key=True, index=True)
    venue_id = Column(Integer, ForeignKey("venues.id"), nullable=False, index=True)
    url = Column(String, nullable=False)
    alt = Column(String, nullable=True)
    is_cover = Column(Boolean, nullable=False, default=False)
    display_order = Column("order", Integer, nullable=False, default=0)


# ---------------------------------------------------------------------------
# Curated collections and audit trail
# ---------------------------------------------------------------------------

class Collection(Base):
    """
    Curated, ordered list of venues for a city.
    venue_ids is a denormalized array; the venue delete path keeps it in sync.
    """
    __tablename__ = "collections"

    id = Column(Integer, primary_key=True, index=True)
    city_id = Column(Integer, ForeignKey("cities.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    slug = Column(String, nullable=False, unique=True, index=True)
    description = Column(Text, nullable=True)
    venue_ids = Column(_int_array(), nullable=False, default=list)
    is_active = Column(Boolean, nullable=False, default=True)
    sort_order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class AuditLog(Base):
    """Append-only record of admin writes."""
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    action = Column(String, nullable=False)
    entity_type = Column(String, nullable=False)
    entity_id = Column(Integer, nullable=True)
    entity_name = Column(String, nullable=True)
    details = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
