"""
Admin venue routes.
Every endpoint requires an admin session (cookie or Bearer token) and runs
on the privileged database session.
"""
import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from nightlife import queries
from nightlife.database import get_admin_db
from nightlife.exceptions import NightlifeError
from nightlife.schemas import (
    AdminVenueDetailResponse,
    AdminVenueListResponse,
    AdminVenueResponse,
    StatsResponse,
    VenueCreate,
    VenueFilter,
    VenuePartialUpdate,
    VenueWriteResponse,
)
from nightlife.services import admin_venues
from nightlife.utils.jwt_auth import require_admin_session
from nightlife.utils.slugs import generate_slug

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", dependencies=[Depends(require_admin_session)])


def _internal_error(message: str, e: Exception) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={"error": message, "details": str(e)}
    )


@router.get("/venues", response_model=AdminVenueListResponse)
async def list_venues(
    filters: Annotated[VenueFilter, Query()],
    db: AsyncSession = Depends(get_admin_db)
):
    """
    List venues of every status with search, filters, sorting and pagination.

    Args:
        filters: search, city, category, status, sort_by, sort_order, page, per_page
        db: Privileged database session (injected by FastAPI dependency)

    Returns:
        AdminVenueListResponse: Page of venues with total, page and per_page
    """
    venues, total = await queries.list_admin_venues(db, filters)
    logger.info(f"Admin venue list: {len(venues)} of {total} (page {filters.page})")
    return AdminVenueListResponse(
        venues=[AdminVenueResponse.model_validate(venue) for venue in venues],
        total=total,
        page=filters.page,
        per_page=filters.per_page,
    )


@router.get("/stats", response_model=StatsResponse)
async def get_stats(db: AsyncSession = Depends(get_admin_db)):
    """Dashboard counters."""
    return StatsResponse(**await queries.get_admin_stats(db))


@router.get("/slug")
async def suggest_slug(name: str = Query(..., min_length=1)):
    """Suggested URL slug for a venue or collection name."""
    return {"slug": generate_slug(name)}


@router.get("/venues/{venue_id}", response_model=AdminVenueDetailResponse)
async def get_venue(venue_id: int, db: AsyncSession = Depends(get_admin_db)):
    """
    Fetch one venue with contents, photos and tag ids.

    Raises:
        NotFoundError: 404 if the venue does not exist
    """
    return await admin_venues.get_admin_venue(db, venue_id)


@router.post("/venues", response_model=VenueWriteResponse, status_code=status.HTTP_201_CREATED)
async def create_venue(payload: VenueCreate, db: AsyncSession = Depends(get_admin_db)):
    """
    Create a venue with contents, photos and tags.

    Raises:
        HTTPException: 400 on validation errors, 409 on slug conflict,
            500 if a write step fails
    """
    try:
        venue = await admin_venues.create_venue(db, payload)
        return VenueWriteResponse(
            venue=AdminVenueResponse.model_validate(venue),
            message="Venue created successfully",
        )
    except (HTTPException, NightlifeError):
        raise
    except Exception as e:
        logger.error(f"Error creating venue: {str(e)}", exc_info=True)
        raise _internal_error("Failed to create venue", e)


@router.put("/venues/{venue_id}", response_model=VenueWriteResponse)
async def replace_venue(venue_id: int, payload: VenueCreate, db: AsyncSession = Depends(get_admin_db)):
    """
    Full update: every field is validated and contents, photos and tags are
    replaced by the payload's.
    """
    try:
        venue = await admin_venues.update_venue_full(db, venue_id, payload)
        return VenueWriteResponse(
            venue=AdminVenueResponse.model_validate(venue),
            message="Venue updated successfully",
        )
    except (HTTPException, NightlifeError):
        raise
    except Exception as e:
        logger.error(f"Error updating venue {venue_id}: {str(e)}", exc_info=True)
        raise _internal_error("Failed to update venue", e)


@router.patch("/venues/{venue_id}", response_model=VenueWriteResponse)
async def patch_venue(venue_id: int, payload: VenuePartialUpdate, db: AsyncSession = Depends(get_admin_db)):
    """Partial update of scalar fields, e.g. a status change from the list view."""
    try:
        venue = await admin_venues.update_venue_partial(db, venue_id, payload)
        return VenueWriteResponse(
            venue=AdminVenueResponse.model_validate(venue),
            message="Venue updated successfully",
        )
    except (HTTPException, NightlifeError):
        raise
    except Exception as e:
        logger.error(f"Error updating venue {venue_id}: {str(e)}", exc_info=True)
        raise _internal_error("Failed to update venue", e)


@router.delete("/venues/{venue_id}")
async def remove_venue(venue_id: int, db: AsyncSession = Depends(get_admin_db)):
    """Delete a venue, its dependent rows and its collection memberships."""
    try:
        name = await admin_venues.delete_venue(db, venue_id)
        return {"message": f'Venue "{name}" deleted successfully'}
    except (HTTPException, NightlifeError):
        raise
    except Exception as e:
        logger.error(f"Error deleting venue {venue_id}: {str(e)}", exc_info=True)
        raise _internal_error("Failed to delete venue", e)
