"""
Admin collection routes.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from nightlife.database import get_admin_db
from nightlife.exceptions import NightlifeError
from nightlife.schemas import (
    CityName,
    CollectionCreate,
    CollectionResponse,
    CollectionUpdate,
    CollectionWriteResponse,
)
from nightlife.services import admin_collections
from nightlife.utils.jwt_auth import require_admin_session

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/collections", dependencies=[Depends(require_admin_session)])


@router.get("")
async def list_collections(
    city: Optional[CityName] = None,
    search: Optional[str] = None,
    is_active: Optional[bool] = None,
    db: AsyncSession = Depends(get_admin_db)
):
    """
    List collections, ordered by city then sort order.

    Args:
        city: Optional city slug
        search: Optional case-insensitive name fragment
        is_active: Optional active flag filter
        db: Privileged database session (injected by FastAPI dependency)

    Returns:
        dict: {"collections": [...]}
    """
    collections = await admin_collections.list_collections(
        db, city=city.value if city else None, search=search, is_active=is_active
    )
    return {"collections": [CollectionResponse.model_validate(c) for c in collections]}


@router.post("", response_model=CollectionWriteResponse, status_code=status.HTTP_201_CREATED)
async def create_collection(payload: CollectionCreate, db: AsyncSession = Depends(get_admin_db)):
    try:
        collection = await admin_collections.create_collection(db, payload)
        return CollectionWriteResponse(
            collection=CollectionResponse.model_validate(collection),
            message="Collection created successfully",
        )
    except (HTTPException, NightlifeError):
        raise
    except Exception as e:
        logger.error(f"Error creating collection: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to create collection", "details": str(e)}
        )


@router.put("/{collection_id}", response_model=CollectionWriteResponse)
async def update_collection(
    collection_id: int,
    payload: CollectionUpdate,
    db: AsyncSession = Depends(get_admin_db)
):
    """Update only the fields present in the payload."""
    try:
        collection = await admin_collections.update_collection(db, collection_id, payload)
        return CollectionWriteResponse(
            collection=CollectionResponse.model_validate(collection),
            message="Collection updated successfully",
        )
    except (HTTPException, NightlifeError):
        raise
    except Exception as e:
        logger.error(f"Error updating collection {collection_id}: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to update collection", "details": str(e)}
        )


@router.delete("/{collection_id}")
async def delete_collection(collection_id: int, db: AsyncSession = Depends(get_admin_db)):
    try:
        name = await admin_collections.delete_collection(db, collection_id)
        return {"message": f'Collection "{name}" deleted successfully'}
    except (HTTPException, NightlifeError):
        raise
    except Exception as e:
        logger.error(f"Error deleting collection {collection_id}: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to delete collection", "details": str(e)}
        )
