"""
Admin venue writes: create, full update, partial update, delete.

Every write runs as an ordered list of named steps (see services.steps) on the
privileged session, then appends an audit row. Slug uniqueness is checked
before any step runs.
"""
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from nightlife.exceptions import ConflictError, NotFoundError, ValidationFailure
from nightlife.models import Category, City, Collection, Photo, Tag, Venue, VenueContent, VenueTag
from nightlife.schemas import (
    AdminVenueDetailResponse,
    PhotoResponse,
    VenueContentResponse,
    VenueCreate,
    VenuePartialUpdate,
)
from nightlife.services.audit import record_audit
from nightlife.services.steps import run_steps
from nightlife.utils.aggregation import remove_venue_from_collections

logger = logging.getLogger(__name__)

SCALAR_FIELDS = (
    "name",
    "slug",
    "neighborhood",
    "address",
    "whatsapp",
    "phone",
    "instagram",
    "website",
    "price_range",
    "dress_code",
    "music_style",
    "age_policy",
    "alcohol_policy",
    "status",
    "priority_score",
    "is_sponsored",
    "internal_notes",
)


async def _get_venue_or_404(db: AsyncSession, venue_id: int) -> Venue:
    venue = await db.get(Venue, venue_id)
    if venue is None:
        raise NotFoundError("Venue not found")
    return venue


async def _ensure_slug_available(db: AsyncSession, slug: str, exclude_id: Optional[int] = None):
    stmt = select(Venue.id).where(Venue.slug == slug)
    if exclude_id is not None:
        stmt = stmt.where(Venue.id != exclude_id)
    result = await db.execute(stmt.limit(1))
    if result.scalar_one_or_none() is not None:
        raise ConflictError("A venue with this slug already exists")


async def _ensure_tags_exist(db: AsyncSession, tag_ids: List[int]):
    if not tag_ids:
        return
    result = await db.execute(select(Tag.id).where(Tag.id.in_(tag_ids)))
    unknown = sorted(set(tag_ids) - set(result.scalars().all()))
    if unknown:
        raise ValidationFailure({"tag_ids": [f"Unknown tag ids: {unknown}"]})


async def _venue_values(db: AsyncSession, fields: Dict[str, Any]) -> Dict[str, Any]:
    """
    Translate validated payload fields into venue column values.
    City and category slugs are resolved to ids; latitude/longitude become
    the latlng point.

    Raises:
        ValidationFailure: If the city or category slug has no row
    """
    values = {key: value for key, value in fields.items() if key in SCALAR_FIELDS}
    errors: Dict[str, List[str]] = {}

    if "city" in fields:
        result = await db.execute(select(City.id).where(City.slug == fields["city"]))
        city_id = result.scalar_one_or_none()
        if city_id is None:
            errors["city"] = [f"Unknown city: {fields['city']}"]
        values["city_id"] = city_id

    if "category" in fields:
        result = await db.execute(select(Category.id).where(Category.slug == fields["category"]))
        category_id = result.scalar_one_or_none()
        if category_id is None:
            errors["category"] = [f"Unknown category: {fields['category']}"]
        values["category_id"] = category_id

    if "latitude" in fields or "longitude" in fields:
        lat, lng = fields.get("latitude"), fields.get("longitude")
        values["latlng"] = (lat, lng) if lat is not None and lng is not None else None

    if "attributes" in fields:
        values["attributes"] = dict(fields["attributes"] or {})

    if errors:
        raise ValidationFailure(errors)
    return values


def _content_rows(venue_id: int, contents: List[Dict[str, Any]]) -> List[VenueContent]:
    return [
        VenueContent(
            venue_id=venue_id,
            language=content["language"],
            description=content["description"],
            seo_keywords=list(content.get("seo_keywords") or []),
        )
        for content in contents
    ]


def _photo_rows(venue_id: int, photos: List[Dict[str, Any]]) -> List[Photo]:
    # Photos without an explicit order keep their position in the payload
    return [
        Photo(
            venue_id=venue_id,
            url=photo["url"],
            alt=photo.get("alt") or "",
            is_cover=bool(photo.get("is_cover")),
            display_order=photo["display_order"] if photo.get("display_order") is not None else index,
        )
        for index, photo in enumerate(photos)
    ]


async def get_admin_venue(db: AsyncSession, venue_id: int) -> AdminVenueDetailResponse:
    """
    Fetch one venue (any status) with contents, photos and tag ids.

    Raises:
        NotFoundError: If the venue does not exist
    """
    venue = await _get_venue_or_404(db, venue_id)

    contents = await db.execute(
        select(VenueContent).where(VenueContent.venue_id == venue_id).order_by(VenueContent.language.asc())
    )
    photos = await db.execute(
        select(Photo).where(Photo.venue_id == venue_id).order_by(Photo.display_order.asc(), Photo.id.asc())
    )
    tag_ids = await db.execute(
        select(VenueTag.tag_id).where(VenueTag.venue_id == venue_id).order_by(VenueTag.tag_id.asc())
    )

    detail = AdminVenueDetailResponse.model_validate(venue)
    return detail.model_copy(update={
        "contents": [VenueContentResponse.model_validate(c) for c in contents.scalars().all()],
        "photos": [PhotoResponse.model_validate(p) for p in photos.scalars().all()],
        "tag_ids": list(tag_ids.scalars().all()),
    })


async def create_venue(db: AsyncSession, payload: VenueCreate) -> Venue:
    """
    Create a venue with its contents, photos and tag associations.

    Steps: insert_venue, insert_contents, insert_photos, insert_tags.

    Raises:
        ConflictError: If the slug is already used
        ValidationFailure: If the city, category or a tag id has no row
        QueryError: If a step fails
    """
    data = payload.model_dump()
    await _ensure_slug_available(db, data["slug"])
    values = await _venue_values(db, data)
    await _ensure_tags_exist(db, data["tag_ids"])

    venue = Venue(**values)

    async def insert_venue():
        db.add(venue)
        await db.flush()

    async def insert_contents():
        db.add_all(_content_rows(venue.id, data["contents"]))

    async def insert_photos():
        db.add_all(_photo_rows(venue.id, data["photos"]))

    async def insert_tags():
        db.add_all([VenueTag(venue_id=venue.id, tag_id=tag_id) for tag_id in data["tag_ids"]])

    await run_steps(db, "create_venue", [
        ("insert_venue", insert_venue),
        ("insert_contents", insert_contents),
        ("insert_photos", insert_photos),
        ("insert_tags", insert_tags),
    ])
    await db.refresh(venue)

    logger.info(f"Created venue {venue.id} ({venue.slug})")
    await record_audit(
        db, "created", "venue", venue.id, venue.name,
        f'Created venue "{venue.name}" in {data["city"]}'
    )
    return venue


def _update_details(existing_name: str, existing_status: str, fields: Dict[str, Any]) -> str:
    changes = []
    if fields.get("status") and fields["status"] != existing_status:
        changes.append(f"status -> {fields['status']}")
    if fields.get("name") and fields["name"] != existing_name:
        changes.append(f"name -> {fields['name']}")
    return ", ".join(changes) if changes else "Venue details updated"


async def update_venue_full(db: AsyncSession, venue_id: int, payload: VenueCreate) -> Venue:
    """
    Replace a venue record. Contents, photos and tag associations are deleted
    and re-inserted from the payload.

    Steps: update_venue, replace_contents, replace_photos, replace_tags.

    Raises:
        NotFoundError: If the venue does not exist
        ConflictError: If another venue already uses the slug
        ValidationFailure: If the city, category or a tag id has no row
        QueryError: If a step fails
    """
    venue = await _get_venue_or_404(db, venue_id)
    existing_name, existing_status = venue.name, venue.status

    data = payload.model_dump()
    await _ensure_slug_available(db, data["slug"], exclude_id=venue_id)
    values = await _venue_values(db, data)
    await _ensure_tags_exist(db, data["tag_ids"])

    async def update_venue():
        for key, value in values.items():
            setattr(venue, key, value)
        await db.flush()

    async def replace_contents():
        await db.execute(delete(VenueContent).where(VenueContent.venue_id == venue_id))
        db.add_all(_content_rows(venue_id, data["contents"]))

    async def replace_photos():
        await db.execute(delete(Photo).where(Photo.venue_id == venue_id))
        db.add_all(_photo_rows(venue_id, data["photos"]))

    async def replace_tags():
        await db.execute(delete(VenueTag).where(VenueTag.venue_id == venue_id))
        db.add_all([VenueTag(venue_id=venue_id, tag_id=tag_id) for tag_id in data["tag_ids"]])

    await run_steps(db, "update_venue", [
        ("update_venue", update_venue),
        ("replace_contents", replace_contents),
        ("replace_photos", replace_photos),
        ("replace_tags", replace_tags),
    ])
    await db.refresh(venue)

    logger.info(f"Updated venue {venue_id} (full)")
    await record_audit(
        db, "updated", "venue", venue_id, venue.name,
        _update_details(existing_name, existing_status, data)
    )
    return venue


async def update_venue_partial(db: AsyncSession, venue_id: int, payload: VenuePartialUpdate) -> Venue:
    """
    Write only the scalar fields present in the payload (e.g. a status
    toggle). Contents, photos and tags are left untouched.

    Raises:
        NotFoundError: If the venue does not exist
        ConflictError: If another venue already uses the new slug
        ValidationFailure: If a new city or category has no row
        QueryError: If the update fails
    """
    venue = await _get_venue_or_404(db, venue_id)
    existing_name, existing_status = venue.name, venue.status

    # Explicit nulls are kept: they clear the column
    fields = payload.model_dump(exclude_unset=True)
    if fields.get("slug"):
        await _ensure_slug_available(db, fields["slug"], exclude_id=venue_id)
    values = await _venue_values(db, fields)

    if values:
        async def update_venue():
            for key, value in values.items():
                setattr(venue, key, value)
            await db.flush()

        await run_steps(db, "update_venue", [("update_venue", update_venue)])
        await db.refresh(venue)

    logger.info(f"Updated venue {venue_id} (fields: {sorted(fields)})")
    await record_audit(
        db, "updated", "venue", venue_id, venue.name,
        _update_details(existing_name, existing_status, fields)
    )
    return venue


async def delete_venue(db: AsyncSession, venue_id: int) -> str:
    """
    Delete a venue and everything that references it.

    Steps: delete_dependents (contents, photos, tag links),
    prune_collections (drop the id from every collection's venue_ids),
    delete_venue.

    Returns:
        str: Name of the deleted venue

    Raises:
        NotFoundError: If the venue does not exist
        QueryError: If a step fails
    """
    venue = await _get_venue_or_404(db, venue_id)
    name = venue.name

    async def delete_dependents():
        await db.execute(delete(VenueContent).where(VenueContent.venue_id == venue_id))
        await db.execute(delete(Photo).where(Photo.venue_id == venue_id))
        await db.execute(delete(VenueTag).where(VenueTag.venue_id == venue_id))

    async def prune_collections():
        result = await db.execute(select(Collection))
        collections = {collection.id: collection for collection in result.scalars().all()}
        changes = remove_venue_from_collections(collections.values(), venue_id)
        for collection_id, venue_ids in changes.items():
            collections[collection_id].venue_ids = venue_ids
        if changes:
            logger.info(f"Removed venue {venue_id} from collections {sorted(changes)}")
        await db.flush()

    async def delete_venue_row():
        await db.delete(venue)
        await db.flush()

    await run_steps(db, "delete_venue", [
        ("delete_dependents", delete_dependents),
        ("prune_collections", prune_collections),
        ("delete_venue", delete_venue_row),
    ])

    logger.info(f"Deleted venue {venue_id} ({name})")
    await record_audit(db, "deleted", "venue", venue_id, name, f'Deleted venue "{name}"')
    return name
