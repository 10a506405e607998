"""
Public read routes.
Visitor-facing endpoints backed by the policy-restricted database session.
Only published venues are ever returned.
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from nightlife import queries
from nightlife.config import settings
from nightlife.database import get_db
from nightlife.schemas import (
    CategoryResponse,
    CityResponse,
    CollectionResponse,
    Language,
    NearbyVenue,
    SearchVenueResult,
    VenueCardsResponse,
    VenueDetail,
    VenueListResponse,
    VenueResponse,
)
from nightlife.utils.aggregation import parse_tag_slugs

logger = logging.getLogger(__name__)

router = APIRouter()


def _city_not_found(city: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail={"error": "City not found", "details": f"No city with slug '{city}'"}
    )


@router.get("/cities", response_model=List[CityResponse])
async def list_cities(db: AsyncSession = Depends(get_db)):
    """All cities, alphabetically."""
    cities = await queries.get_cities(db)
    return [CityResponse.model_validate(city) for city in cities]


@router.get("/cities/{city}", response_model=CityResponse)
async def get_city(city: str, db: AsyncSession = Depends(get_db)):
    row = await queries.get_city(db, city)
    if row is None:
        raise _city_not_found(city)
    return CityResponse.model_validate(row)


@router.get("/categories", response_model=List[CategoryResponse])
async def list_categories(db: AsyncSession = Depends(get_db)):
    categories = await queries.get_categories(db)
    return [CategoryResponse.model_validate(category) for category in categories]


@router.get("/cities/{city}/venues", response_model=VenueListResponse)
async def list_city_venues(
    city: str,
    category: Optional[str] = None,
    tags: List[str] = Query(default=[], description="Tag slugs; repeat the parameter or comma-separate"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=settings.DEFAULT_PAGE_SIZE, ge=1, le=100),
    db: AsyncSession = Depends(get_db)
):
    """
    Published venues of a city, sponsored first then by priority.

    Args:
        city: City slug (unknown city returns an empty list)
        category: Optional category slug (unknown slug is ignored)
        tags: Tag slugs; a venue must carry all of them
        page: 1-based page number
        limit: Items per page
        db: Database session (injected by FastAPI dependency)

    Returns:
        VenueListResponse: Page of venues and the total match count
    """
    venues, count = await queries.get_venues_by_city(
        db, city, category=category, tags=parse_tag_slugs(tags), page=page, limit=limit
    )
    return VenueListResponse(
        venues=[VenueResponse.model_validate(venue) for venue in venues],
        count=count,
    )


@router.get("/cities/{city}/cards", response_model=VenueCardsResponse)
async def list_city_cards(
    city: str,
    lang: Language = Language.FR,
    category: Optional[str] = None,
    tags: List[str] = Query(default=[]),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=settings.DEFAULT_PAGE_SIZE, ge=1, le=100),
    db: AsyncSession = Depends(get_db)
):
    """Venue cards (cover photo, localized description, tag names) for a city page."""
    row = await queries.get_city(db, city)
    if row is None:
        raise _city_not_found(city)

    cards, count = await queries.get_venue_cards(
        db, row.id, language=lang.value, category=category,
        tags=parse_tag_slugs(tags), page=page, limit=limit
    )
    return VenueCardsResponse(cards=cards, count=count)


@router.get("/cities/{city}/collections", response_model=List[CollectionResponse])
async def list_city_collections(city: str, db: AsyncSession = Depends(get_db)):
    collections = await queries.get_collections_by_city(db, city)
    return [CollectionResponse.model_validate(collection) for collection in collections]


@router.get("/cities/{city}/{category}/{slug}", response_model=VenueDetail)
async def get_venue_detail(
    city: str,
    category: str,
    slug: str,
    lang: Language = Language.FR,
    db: AsyncSession = Depends(get_db)
):
    """
    Venue detail page data.

    Raises:
        HTTPException: 404 when the city, category or venue does not resolve
    """
    detail = await queries.get_venue_detail(db, city, category, slug, language=lang.value)
    if detail is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "Venue not found", "details": f"/{city}/{category}/{slug}"}
        )
    return detail


@router.get("/featured/venues", response_model=List[VenueResponse])
async def list_featured_venues(
    limit: int = Query(default=12, ge=1, le=100),
    db: AsyncSession = Depends(get_db)
):
    venues = await queries.get_featured_venues(db, limit=limit)
    return [VenueResponse.model_validate(venue) for venue in venues]


@router.get("/featured/collections", response_model=List[CollectionResponse])
async def list_featured_collections(
    limit: int = Query(default=8, ge=1, le=100),
    db: AsyncSession = Depends(get_db)
):
    collections = await queries.get_featured_collections(db, limit=limit)
    return [CollectionResponse.model_validate(collection) for collection in collections]


@router.get("/search", response_model=List[SearchVenueResult])
async def search(
    q: str = "",
    city: Optional[str] = None,
    db: AsyncSession = Depends(get_db)
):
    """
    Full-text venue search, optionally scoped to a city slug.
    A blank query or an unknown city returns an empty list.
    """
    city_id = None
    if city:
        row = await queries.get_city(db, city)
        if row is None:
            return []
        city_id = row.id

    results = await queries.search_venues(db, q, city_id=city_id)
    logger.info(f"Search '{q.strip()}' (city: {city or 'all'}): {len(results)} results")
    return results


@router.get("/nearby", response_model=List[NearbyVenue])
async def nearby(
    lat: float = Query(..., ge=-90, le=90),
    lng: float = Query(..., ge=-180, le=180),
    radius: Optional[float] = Query(default=None, gt=0, description="Radius in meters"),
    db: AsyncSession = Depends(get_db)
):
    """Venues around a point, nearest first."""
    return await queries.get_nearby_venues(db, lat, lng, radius_m=radius)
