"""
Admin collection writes and listing.
"""
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from nightlife.exceptions import ConflictError, NotFoundError, ValidationFailure
from nightlife.models import City, Collection, Venue
from nightlife.queries import escape_like, store_errors
from nightlife.schemas import CollectionCreate, CollectionUpdate
from nightlife.services.audit import record_audit
from nightlife.services.steps import run_steps

logger = logging.getLogger(__name__)


async def list_collections(
    db: AsyncSession,
    city: Optional[str] = None,
    search: Optional[str] = None,
    is_active: Optional[bool] = None,
) -> List[Collection]:
    """Every collection (active or not), ordered by city then sort order."""
    stmt = select(Collection).join(City, Collection.city_id == City.id)
    if city:
        stmt = stmt.where(City.slug == city)
    if search:
        stmt = stmt.where(Collection.name.ilike(f"%{escape_like(search)}%", escape="\\"))
    if is_active is not None:
        stmt = stmt.where(Collection.is_active.is_(is_active))

    with store_errors("list_collections"):
        result = await db.execute(
            stmt.order_by(City.slug.asc(), Collection.sort_order.asc(), Collection.id.asc())
        )
        return list(result.scalars().all())


async def _get_collection_or_404(db: AsyncSession, collection_id: int) -> Collection:
    collection = await db.get(Collection, collection_id)
    if collection is None:
        raise NotFoundError("Collection not found")
    return collection


async def _ensure_slug_available(db: AsyncSession, slug: str, exclude_id: Optional[int] = None):
    stmt = select(Collection.id).where(Collection.slug == slug)
    if exclude_id is not None:
        stmt = stmt.where(Collection.id != exclude_id)
    result = await db.execute(stmt.limit(1))
    if result.scalar_one_or_none() is not None:
        raise ConflictError("A collection with this slug already exists")


async def _collection_values(db: AsyncSession, fields: Dict[str, Any]) -> Dict[str, Any]:
    """
    Payload fields -> collection column values.

    Raises:
        ValidationFailure: If the city has no row or a venue id is unknown
    """
    values = {
        key: value
        for key, value in fields.items()
        if key in ("name", "slug", "description", "venue_ids", "is_active", "sort_order")
    }
    errors: Dict[str, List[str]] = {}

    if "city" in fields:
        result = await db.execute(select(City.id).where(City.slug == fields["city"]))
        city_id = result.scalar_one_or_none()
        if city_id is None:
            errors["city"] = [f"Unknown city: {fields['city']}"]
        values["city_id"] = city_id

    if fields.get("venue_ids"):
        result = await db.execute(select(Venue.id).where(Venue.id.in_(fields["venue_ids"])))
        unknown = sorted(set(fields["venue_ids"]) - set(result.scalars().all()))
        if unknown:
            errors["venue_ids"] = [f"Unknown venue ids: {unknown}"]
        values["venue_ids"] = list(fields["venue_ids"])

    if errors:
        raise ValidationFailure(errors)
    return values


async def create_collection(db: AsyncSession, payload: CollectionCreate) -> Collection:
    """
    Create a collection. Without an explicit sort_order it goes last among
    the collections of its city.

    Raises:
        ConflictError: If the slug is already used
        ValidationFailure: If the city or a venue id has no row
        QueryError: If the insert fails
    """
    data = payload.model_dump()
    await _ensure_slug_available(db, data["slug"])
    values = await _collection_values(db, data)

    if values.get("sort_order") is None:
        result = await db.execute(
            select(func.max(Collection.sort_order)).where(Collection.city_id == values["city_id"])
        )
        last = result.scalar()
        values["sort_order"] = last + 1 if last is not None else 0

    collection = Collection(**values)

    async def insert_collection():
        db.add(collection)
        await db.flush()

    await run_steps(db, "create_collection", [("insert_collection", insert_collection)])
    await db.refresh(collection)

    logger.info(f"Created collection {collection.id} ({collection.slug})")
    await record_audit(
        db, "created", "collection", collection.id, collection.name,
        f'Created collection "{collection.name}" for {data["city"]}'
    )
    return collection


async def update_collection(db: AsyncSession, collection_id: int, payload: CollectionUpdate) -> Collection:
    """
    Write only the fields present in the payload.

    Raises:
        NotFoundError: If the collection does not exist
        ConflictError: If another collection already uses the new slug
        ValidationFailure: If the city or a venue id has no row
        QueryError: If the update fails
    """
    collection = await _get_collection_or_404(db, collection_id)

    fields = payload.model_dump(exclude_unset=True)
    if fields.get("slug"):
        await _ensure_slug_available(db, fields["slug"], exclude_id=collection_id)
    values = await _collection_values(db, fields)

    async def update_row():
        for key, value in values.items():
            setattr(collection, key, value)
        await db.flush()

    if values:
        await run_steps(db, "update_collection", [("update_collection", update_row)])
        await db.refresh(collection)

    await record_audit(
        db, "updated", "collection", collection_id, collection.name,
        f'Updated collection "{collection.name}"'
    )
    return collection


async def delete_collection(db: AsyncSession, collection_id: int) -> str:
    """
    Delete a collection.

    Returns:
        str: Name of the deleted collection

    Raises:
        NotFoundError: If the collection does not exist
        QueryError: If the delete fails
    """
    collection = await _get_collection_or_404(db, collection_id)
    name = collection.name

    async def delete_row():
        await db.delete(collection)
        await db.flush()

    await run_steps(db, "delete_collection", [("delete_collection", delete_row)])

    logger.info(f"Deleted collection {collection_id} ({name})")
    await record_audit(db, "deleted", "collection", collection_id, name, f'Deleted collection "{name}"')
    return name
