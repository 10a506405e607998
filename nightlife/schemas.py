"""
Pydantic schemas for request and response data validation.
Defines data structures for API endpoints with automatic validation and serialization.
"""
import re
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, computed_field, field_validator


# ──────────────────────────────────────────────
# Enumerations
# ──────────────────────────────────────────────

class CityName(str, Enum):
    CASABLANCA = "casablanca"
    MARRAKECH = "marrakech"
    RABAT = "rabat"
    TANGIER = "tangier"
    AGADIR = "agadir"
    FES = "fes"
    ESSAOUIRA = "essaouira"
    MEKNES = "meknes"


class CategoryName(str, Enum):
    NIGHTCLUB = "nightclub"
    ROOFTOP = "rooftop"
    LOUNGE = "lounge"
    BEACH_CLUB = "beach_club"
    BAR = "bar"
    RESTAURANT_BAR = "restaurant_bar"
    SHISHA_LOUNGE = "shisha_lounge"
    LIVE_MUSIC = "live_music"
    POOL_PARTY = "pool_party"


class PriceRange(str, Enum):
    BUDGET = "$"
    MODERATE = "$$"
    UPSCALE = "$$$"
    LUXURY = "$$$$"


class VenueStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"


class Language(str, Enum):
    FR = "fr"
    EN = "en"


class SortField(str, Enum):
    NAME = "name"
    CITY = "city"
    CATEGORY = "category"
    STATUS = "status"
    PRIORITY_SCORE = "priority_score"
    UPDATED_AT = "updated_at"
    CREATED_AT = "created_at"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


SLUG_PATTERN = r"^[a-z0-9]+(?:-[a-z0-9]+)*$"
PHONE_RE = re.compile(r"^\+?[0-9\s-]{7,20}$")
URL_RE = re.compile(r"^https?://[^\s/$.?#].[^\s]*$", re.IGNORECASE)


# ──────────────────────────────────────────────
# Public read models
# ──────────────────────────────────────────────

class CityResponse(BaseModel):
    id: int
    name: str
    slug: str
    description: Optional[str] = None
    hero_image_url: Optional[str] = None
    latlng: Optional[Tuple[float, float]] = Field(default=None, exclude=True)

    model_config = ConfigDict(from_attributes=True)

    @computed_field
    @property
    def latitude(self) -> Optional[float]:
        return self.latlng[0] if self.latlng else None

    @computed_field
    @property
    def longitude(self) -> Optional[float]:
        return self.latlng[1] if self.latlng else None


class CategoryResponse(BaseModel):
    id: int
    name: str
    slug: str
    priority: int

    model_config = ConfigDict(from_attributes=True)


class TagResponse(BaseModel):
    id: int
    name: str
    slug: str

    model_config = ConfigDict(from_attributes=True)


class VenueResponse(BaseModel):
    """
    Public venue row.
    Has no internal_notes field: those notes never reach visitors.
    """
    id: int
    city_id: int
    category_id: int
    name: str
    slug: str
    neighborhood: Optional[str] = None
    address: str
    latlng: Optional[Tuple[float, float]] = Field(default=None, exclude=True)
    whatsapp: Optional[str] = None
    phone: Optional[str] = None
    instagram: Optional[str] = None
    website: Optional[str] = None
    price_range: Optional[str] = None
    dress_code: Optional[str] = None
    music_style: Optional[str] = None
    age_policy: Optional[str] = None
    alcohol_policy: Optional[str] = None
    attributes: Dict[str, Any] = Field(default_factory=dict)
    status: str
    is_sponsored: bool
    priority_score: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @computed_field
    @property
    def latitude(self) -> Optional[float]:
        return self.latlng[0] if self.latlng else None

    @computed_field
    @property
    def longitude(self) -> Optional[float]:
        return self.latlng[1] if self.latlng else None


class VenueContentResponse(BaseModel):
    id: int
    venue_id: int
    language: str
    description: str
    seo_keywords: Optional[List[str]] = None

    model_config = ConfigDict(from_attributes=True)


class PhotoResponse(BaseModel):
    id: int
    venue_id: int
    url: str
    alt: Optional[str] = None
    is_cover: bool
    display_order: int

    model_config = ConfigDict(from_attributes=True)


class VenueDetail(VenueResponse):
    """Full venue payload with all related entities, used by detail pages."""
    contents: List[VenueContentResponse] = Field(default_factory=list)
    photos: List[PhotoResponse] = Field(default_factory=list)
    tags: List[TagResponse] = Field(default_factory=list)
    city: Optional[CityResponse] = None
    category: Optional[CategoryResponse] = None


class VenueCard(BaseModel):
    """Lightweight, UI-ready projection of a venue for list/grid views."""
    id: int
    name: str
    slug: str
    neighborhood: Optional[str] = None
    price_range: Optional[str] = None
    is_sponsored: bool
    priority_score: int
    cover_photo: Optional[str] = None
    description: str = ""
    category_slug: str = ""
    city_slug: str = ""
    tags: List[str] = Field(default_factory=list)


class VenueSummary(VenueResponse):
    """Venue with joined city/category names and cover image."""
    city_name: str = ""
    city_slug: str = ""
    category_name: str = ""
    category_slug: str = ""
    cover_image_url: Optional[str] = None


class VenueListResponse(BaseModel):
    venues: List[VenueResponse]
    count: int


class VenueCardsResponse(BaseModel):
    cards: List[VenueCard]
    count: int


class CollectionResponse(BaseModel):
    id: int
    city_id: int
    name: str
    slug: str
    description: Optional[str] = None
    venue_ids: List[int] = Field(default_factory=list)
    is_active: bool = True
    sort_order: int = 0

    model_config = ConfigDict(from_attributes=True)


class SearchVenueResult(BaseModel):
    """Row returned by the search_venues store function."""
    id: int
    name: str
    slug: str
    neighborhood: Optional[str] = None
    rank: float


class NearbyVenue(BaseModel):
    """Row returned by the nearby_venues store function."""
    id: int
    name: str
    slug: str
    category_id: int
    distance_m: float


# ──────────────────────────────────────────────
# Admin: venue payloads
# ──────────────────────────────────────────────

class VenueContentIn(BaseModel):
    language: Language
    description: str = Field(min_length=10, max_length=5000)
    seo_keywords: List[str] = Field(default_factory=list, max_length=20)

    model_config = ConfigDict(use_enum_values=True)

    @field_validator("seo_keywords")
    @classmethod
    def validate_keywords(cls, v):
        if any(len(keyword) > 50 for keyword in v):
            raise ValueError("Keywords must not exceed 50 characters")
        return v


class VenuePhotoIn(BaseModel):
    url: str
    alt: str = Field(default="", max_length=200)
    is_cover: bool = False
    display_order: Optional[int] = Field(default=None, ge=0)

    @field_validator("url")
    @classmethod
    def validate_url(cls, v):
        if not URL_RE.match(v):
            raise ValueError("Must be a valid URL")
        return v


class _VenueFields(BaseModel):
    """Scalar venue fields shared by the full and partial payloads."""

    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    @field_validator("whatsapp", "phone", check_fields=False)
    @classmethod
    def validate_phone(cls, v):
        if v and not PHONE_RE.match(v):
            raise ValueError("Invalid phone number")
        return v

    @field_validator("website", check_fields=False)
    @classmethod
    def validate_website(cls, v):
        if v and not URL_RE.match(v):
            raise ValueError("Must be a valid URL")
        return v


class VenueCreate(_VenueFields):
    """
    Full venue record. Used for creation (POST) and full updates (PUT):
    contents, photos and tag associations are replaced wholesale.
    """
    name: str = Field(min_length=2, max_length=120)
    slug: str = Field(min_length=2, max_length=140, pattern=SLUG_PATTERN)
    city: CityName
    category: CategoryName

    address: str = Field(min_length=5, max_length=300)
    neighborhood: str = Field(default="", max_length=100)
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)

    whatsapp: str = ""
    phone: str = ""
    instagram: str = Field(default="", max_length=100)
    website: str = ""

    price_range: Optional[PriceRange] = None
    dress_code: str = Field(default="", max_length=200)
    music_style: str = Field(default="", max_length=300)
    age_policy: str = Field(default="", max_length=200)
    alcohol_policy: str = Field(default="", max_length=200)

    attributes: Dict[str, Union[str, int, float, bool]] = Field(default_factory=dict)
    tag_ids: List[int] = Field(default_factory=list)
    contents: List[VenueContentIn] = Field(min_length=1, max_length=2)
    photos: List[VenuePhotoIn] = Field(default_factory=list)

    status: VenueStatus = VenueStatus.DRAFT
    priority_score: int = Field(default=0, ge=0, le=100)
    is_sponsored: bool = False
    internal_notes: str = Field(default="", max_length=2000)

    @field_validator("longitude")
    @classmethod
    def validate_coordinate_pair(cls, v, info: ValidationInfo):
        # latitude is missing from info.data when it failed its own checks
        if "latitude" in info.data and (info.data["latitude"] is None) != (v is None):
            raise ValueError("Latitude and longitude must be provided together")
        return v

    @field_validator("contents")
    @classmethod
    def validate_unique_languages(cls, v):
        languages = [content.language for content in v]
        if len(languages) != len(set(languages)):
            raise ValueError("Only one content entry per language is allowed")
        return v

    @field_validator("tag_ids")
    @classmethod
    def validate_unique_tags(cls, v):
        if len(v) != len(set(v)):
            raise ValueError("Duplicate tag IDs are not allowed")
        return v


class VenuePartialUpdate(_VenueFields):
    """
    Partial venue update (PATCH): only the scalar fields that are sent are
    written. Contents, photos and tags are left untouched.
    An explicit null clears a nullable field; required fields cannot be nulled.
    """
    name: Optional[str] = Field(default=None, min_length=2, max_length=120)
    slug: Optional[str] = Field(default=None, min_length=2, max_length=140, pattern=SLUG_PATTERN)
    city: Optional[CityName] = None
    category: Optional[CategoryName] = None
    address: Optional[str] = Field(default=None, min_length=5, max_length=300)
    neighborhood: Optional[str] = Field(default=None, max_length=100)
    whatsapp: Optional[str] = None
    phone: Optional[str] = None
    instagram: Optional[str] = Field(default=None, max_length=100)
    website: Optional[str] = None
    price_range: Optional[PriceRange] = None
    dress_code: Optional[str] = Field(default=None, max_length=200)
    music_style: Optional[str] = Field(default=None, max_length=300)
    age_policy: Optional[str] = Field(default=None, max_length=200)
    alcohol_policy: Optional[str] = Field(default=None, max_length=200)
    status: Optional[VenueStatus] = None
    priority_score: Optional[int] = Field(default=None, ge=0, le=100)
    is_sponsored: Optional[bool] = None
    internal_notes: Optional[str] = Field(default=None, max_length=2000)

    # Unsent fields keep their None default without going through reject_null
    model_config = ConfigDict(use_enum_values=True, validate_default=False, extra="forbid")

    @field_validator("name", "slug", "city", "category", "address", "status", "priority_score", "is_sponsored")
    @classmethod
    def reject_null(cls, v):
        if v is None:
            raise ValueError("This field cannot be cleared")
        return v


class VenueFilter(BaseModel):
    """Admin venue list filters, sorting and pagination."""
    search: str = ""
    city: Optional[CityName] = None
    category: Optional[CategoryName] = None
    status: Optional[VenueStatus] = None
    sort_by: SortField = SortField.UPDATED_AT
    sort_order: SortOrder = SortOrder.DESC
    page: int = Field(default=1, ge=1)
    per_page: int = Field(default=25, ge=1, le=100)

    model_config = ConfigDict(use_enum_values=True, validate_default=True)


class AdminVenueResponse(VenueResponse):
    internal_notes: Optional[str] = None


class AdminVenueDetailResponse(AdminVenueResponse):
    contents: List[VenueContentResponse] = Field(default_factory=list)
    photos: List[PhotoResponse] = Field(default_factory=list)
    tag_ids: List[int] = Field(default_factory=list)


class AdminVenueListResponse(BaseModel):
    venues: List[AdminVenueResponse]
    total: int
    page: int
    per_page: int


class VenueWriteResponse(BaseModel):
    venue: AdminVenueResponse
    message: str


class StatsResponse(BaseModel):
    total_venues: int
    published: int
    draft: int
    archived: int
    sponsored: int
    by_city: Dict[str, int]
    total_collections: int


# ──────────────────────────────────────────────
# Admin: collections
# ──────────────────────────────────────────────

class CollectionCreate(BaseModel):
    name: str = Field(min_length=2, max_length=120)
    slug: str = Field(min_length=2, max_length=140, pattern=SLUG_PATTERN)
    description: str = Field(default="", max_length=1000)
    city: CityName
    venue_ids: List[int] = Field(default_factory=list)
    is_active: bool = True
    sort_order: Optional[int] = Field(default=None, ge=0)

    model_config = ConfigDict(use_enum_values=True)

    @field_validator("venue_ids")
    @classmethod
    def validate_unique_ids(cls, v):
        if len(v) != len(set(v)):
            raise ValueError("Duplicate venue IDs are not allowed")
        return v


class CollectionUpdate(BaseModel):
    """
    Only the fields that are sent are written.
    A null description clears it; the other fields cannot be nulled.
    """
    name: Optional[str] = Field(default=None, min_length=2, max_length=120)
    slug: Optional[str] = Field(default=None, min_length=2, max_length=140, pattern=SLUG_PATTERN)
    description: Optional[str] = Field(default=None, max_length=1000)
    city: Optional[CityName] = None
    venue_ids: Optional[List[int]] = None
    is_active: Optional[bool] = None
    sort_order: Optional[int] = Field(default=None, ge=0)

    model_config = ConfigDict(use_enum_values=True, validate_default=False, extra="forbid")

    @field_validator("name", "slug", "city", "venue_ids", "is_active", "sort_order")
    @classmethod
    def reject_null(cls, v):
        if v is None:
            raise ValueError("This field cannot be cleared")
        return v

    @field_validator("venue_ids")
    @classmethod
    def validate_unique_ids(cls, v):
        if v is not None and len(v) != len(set(v)):
            raise ValueError("Duplicate venue IDs are not allowed")
        return v


class CollectionWriteResponse(BaseModel):
    collection: CollectionResponse
    message: str


# ──────────────────────────────────────────────
# Admin: authentication
# ──────────────────────────────────────────────

class LoginRequest(BaseModel):
    password: Optional[str] = None
