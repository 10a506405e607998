"""
Venue query and aggregation layer.

Every function takes an AsyncSession (the public, policy-restricted tier for
visitor paths) and returns ORM rows or assembled view-models.

Conventions:
  get_*                 plain SELECTs
  search_* / *_nearby*  calls into store-side functions

Not-found is modelled as None / empty results. Any store error is logged and
re-raised as QueryError carrying the operation name and the store message.
"""
import asyncio
import logging
from contextlib import contextmanager
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy import Select, func, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from nightlife.config import settings
from nightlife.exceptions import QueryError
from nightlife.models import (
    Category,
    City,
    Collection,
    Photo,
    Tag,
    Venue,
    VenueContent,
    VenueTag,
)
from nightlife.schemas import (
    CategoryResponse,
    CityResponse,
    NearbyVenue,
    PhotoResponse,
    SearchVenueResult,
    TagResponse,
    VenueCard,
    VenueContentResponse,
    VenueDetail,
    VenueFilter,
    VenueSummary,
)
from nightlife.utils.aggregation import (
    assemble_venue_cards,
    descriptions_by_venue,
    pick_cover_photos,
    sort_contents_by_language,
    tag_ids_by_venue,
    venues_with_all_tags,
)

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = settings.DEFAULT_PAGE_SIZE
PUBLISHED = "published"


@contextmanager
def store_errors(context: str):
    """Translate SQLAlchemy errors raised inside the block into QueryError."""
    try:
        yield
    except SQLAlchemyError as e:
        message = str(getattr(e, "orig", None) or e)
        logger.error(f"[{context}] store error: {message}", exc_info=True)
        raise QueryError(context, message) from e


async def _fetch_scalars(db: AsyncSession, stmt) -> list:
    """
    Run a read on its own session bound to the same engine as ``db``.
    An AsyncSession cannot run statements concurrently, so fan-out reads
    each get one.
    """
    async with AsyncSession(db.bind, expire_on_commit=False) as session:
        result = await session.execute(stmt)
        return list(result.scalars().all())


async def _fetch_all(db: AsyncSession, *statements) -> List[list]:
    """
    Run independent reads concurrently, one session each.

    Every read is awaited before returning; if any failed, the first failure
    is raised once the others have finished and closed their sessions.
    """
    results = await asyncio.gather(
        *(_fetch_scalars(db, stmt) for stmt in statements),
        return_exceptions=True,
    )
    for result in results:
        if isinstance(result, BaseException):
            raise result
    return results


def _page_bounds(page: int, limit: int) -> Tuple[int, int]:
    """Offset and row count for a 1-based page. Out-of-range pages yield no rows."""
    offset = (page - 1) * limit
    return offset, limit


# ---------------------------------------------------------------------------
# Cities, categories, tags
# ---------------------------------------------------------------------------

async def get_cities(db: AsyncSession) -> List[City]:
    """Fetch every city, ordered alphabetically."""
    with store_errors("get_cities"):
        result = await db.execute(select(City).order_by(City.name.asc()))
        return list(result.scalars().all())


async def get_city(db: AsyncSession, slug: str) -> Optional[City]:
    """Fetch a single city by its URL slug. Returns None when not found."""
    with store_errors("get_city"):
        result = await db.execute(select(City).where(City.slug == slug))
        return result.scalar_one_or_none()


async def get_categories(db: AsyncSession) -> List[Category]:
    """Fetch all categories ordered by their display priority."""
    with store_errors("get_categories"):
        result = await db.execute(select(Category).order_by(Category.priority.asc(), Category.id.asc()))
        return list(result.scalars().all())


async def get_category_by_slug(db: AsyncSession, slug: str) -> Optional[Category]:
    with store_errors("get_category_by_slug"):
        result = await db.execute(select(Category).where(Category.slug == slug))
        return result.scalar_one_or_none()


async def _resolve_tag_ids(db: AsyncSession, slugs: Sequence[str]) -> List[int]:
    """Tag slugs -> ids. Unknown slugs are dropped."""
    result = await db.execute(select(Tag.id).where(Tag.slug.in_(list(slugs))))
    return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Venue list (filtering, sorting, pagination)
# ---------------------------------------------------------------------------

async def _published_venues_query(
    db: AsyncSession,
    city_id: int,
    category: Optional[str],
    tags: Optional[Sequence[str]],
) -> Optional[Select]:
    """
    Build the filtered (unordered, unpaginated) venue SELECT for a city.

    - an unknown category slug drops the category filter;
    - unknown tag slugs are dropped; with at least one known tag a venue
      must carry all of them;
    - returns None when the tag filter already rules out every venue.
    """
    stmt = select(Venue).where(Venue.city_id == city_id, Venue.status == PUBLISHED)

    if category:
        category_row = await get_category_by_slug(db, category)
        if category_row is not None:
            stmt = stmt.where(Venue.category_id == category_row.id)

    if tags:
        tag_ids = await _resolve_tag_ids(db, tags)
        if tag_ids:
            # Whole junction slice for the requested tags, tallied in memory.
            result = await db.execute(
                select(VenueTag.venue_id, VenueTag.tag_id).where(VenueTag.tag_id.in_(tag_ids))
            )
            matching_ids = venues_with_all_tags(result.all(), tag_ids)
            if not matching_ids:
                return None
            stmt = stmt.where(Venue.id.in_(matching_ids))

    return stmt


async def _paginate(
    db: AsyncSession,
    stmt: Select,
    page: int,
    limit: int,
) -> Tuple[List[Venue], int]:
    """Total count of ``stmt`` plus one page ordered sponsored-first, then priority."""
    count_result = await db.execute(select(func.count()).select_from(stmt.subquery()))
    count = count_result.scalar() or 0

    offset, row_count = _page_bounds(page, limit)
    if offset < 0 or row_count <= 0:
        return [], count

    result = await db.execute(
        stmt.order_by(Venue.is_sponsored.desc(), Venue.priority_score.desc(), Venue.id.asc())
        .offset(offset)
        .limit(row_count)
    )
    return list(result.scalars().all()), count


async def get_venues_by_city(
    db: AsyncSession,
    city_slug: str,
    category: Optional[str] = None,
    tags: Optional[Sequence[str]] = None,
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
) -> Tuple[List[Venue], int]:
    """
    Fetch published venues for a city with optional filtering and pagination.

    Sponsored venues come first, then priority_score descending. ``count`` is
    the number of matching rows before pagination, for page controls.

    Args:
        db: Database session
        city_slug: City URL slug (unknown city -> no results)
        category: Category slug (unknown slug is ignored)
        tags: Tag slugs, AND semantics (unknown slugs are ignored)
        page: 1-based page number
        limit: Items per page

    Returns:
        Tuple[List[Venue], int]: (venues on the page, total count)

    Raises:
        QueryError: If a store round trip fails
    """
    with store_errors("get_venues_by_city"):
        city = await get_city(db, city_slug)
        if city is None:
            return [], 0

        stmt = await _published_venues_query(db, city.id, category, tags)
        if stmt is None:
            return [], 0

        venues, count = await _paginate(db, stmt, page, limit)

    logger.debug(f"get_venues_by_city({city_slug}): {len(venues)} of {count}")
    return venues, count


async def get_venues_by_category(
    db: AsyncSession,
    city_slug: str,
    category_slug: str,
    tags: Optional[Sequence[str]] = None,
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
) -> Tuple[List[Venue], int]:
    return await get_venues_by_city(db, city_slug, category=category_slug, tags=tags, page=page, limit=limit)


async def get_featured_venues(db: AsyncSession, limit: int = 12) -> List[Venue]:
    """Top published venues across all cities."""
    with store_errors("get_featured_venues"):
        result = await db.execute(
            select(Venue)
            .where(Venue.status == PUBLISHED)
            .order_by(Venue.is_sponsored.desc(), Venue.priority_score.desc(), Venue.id.asc())
            .limit(limit)
        )
        return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Venue cards
# ---------------------------------------------------------------------------

async def get_venue_cards(
    db: AsyncSession,
    city_id: int,
    language: str = "fr",
    category: Optional[str] = None,
    tags: Optional[Sequence[str]] = None,
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
) -> Tuple[List[VenueCard], int]:
    """
    Build VenueCard objects for one page of a city's published venues.

    Runs the same filtered query as get_venues_by_city, then enriches the
    page with a fixed number of batched reads (contents, cover photos, tag
    links, categories, city, tag names) whatever the page size.

    Returns:
        Tuple[List[VenueCard], int]: (cards in page order, total count)
    """
    with store_errors("get_venue_cards"):
        stmt = await _published_venues_query(db, city_id, category, tags)
        if stmt is None:
            return [], 0

        venues, count = await _paginate(db, stmt, page, limit)
        if not venues:
            return [], count

        venue_ids = [venue.id for venue in venues]
        category_ids = sorted({venue.category_id for venue in venues})

        contents, photos, venue_tags, categories, cities = await _fetch_all(
            db,
            select(VenueContent).where(VenueContent.venue_id.in_(venue_ids)),
            select(Photo).where(Photo.venue_id.in_(venue_ids), Photo.is_cover.is_(True)),
            select(VenueTag).where(VenueTag.venue_id.in_(venue_ids)),
            select(Category).where(Category.id.in_(category_ids)),
            select(City).where(City.id == city_id),
        )

        tag_ids = tag_ids_by_venue(venue_tags)
        all_tag_ids = sorted({tag_id for ids in tag_ids.values() for tag_id in ids})
        tag_names: Dict[int, str] = {}
        if all_tag_ids:
            result = await db.execute(select(Tag).where(Tag.id.in_(all_tag_ids)))
            tag_names = {tag.id: tag.name for tag in result.scalars().all()}

    cards = assemble_venue_cards(
        venues,
        language,
        descriptions=descriptions_by_venue(contents),
        covers=pick_cover_photos(photos),
        venue_tag_ids=tag_ids,
        tag_names=tag_names,
        category_slugs={category.id: category.slug for category in categories},
        city_slug=cities[0].slug if cities else "",
    )
    return cards, count


# ---------------------------------------------------------------------------
# Venue detail
# ---------------------------------------------------------------------------

async def get_venue_detail(
    db: AsyncSession,
    city_slug: str,
    category_slug: str,
    venue_slug: str,
    language: str = "fr",
) -> Optional[VenueDetail]:
    """
    Fetch a single published venue with contents, photos, tags, city and
    category, addressed by its canonical /city/category/venue path.

    Returns None when any segment does not resolve or the venue is not
    published. Contents are ordered with ``language`` first.
    """
    with store_errors("get_venue_detail"):
        city = await get_city(db, city_slug)
        if city is None:
            return None

        category = await get_category_by_slug(db, category_slug)
        if category is None:
            return None

        result = await db.execute(
            select(Venue).where(
                Venue.slug == venue_slug,
                Venue.city_id == city.id,
                Venue.category_id == category.id,
                Venue.status == PUBLISHED,
            )
        )
        venue = result.scalar_one_or_none()
        if venue is None:
            return None

        contents, photos, venue_tags = await _fetch_all(
            db,
            select(VenueContent).where(VenueContent.venue_id == venue.id),
            select(Photo)
            .where(Photo.venue_id == venue.id)
            .order_by(Photo.display_order.asc(), Photo.id.asc()),
            select(VenueTag).where(VenueTag.venue_id == venue.id),
        )

        tags: List[Tag] = []
        tag_ids = [row.tag_id for row in venue_tags]
        if tag_ids:
            result = await db.execute(select(Tag).where(Tag.id.in_(tag_ids)).order_by(Tag.name.asc()))
            tags = list(result.scalars().all())

    detail = VenueDetail.model_validate(venue)
    return detail.model_copy(update={
        "contents": [VenueContentResponse.model_validate(content) for content in sort_contents_by_language(contents, language)],
        "photos": [PhotoResponse.model_validate(photo) for photo in photos],
        "tags": [TagResponse.model_validate(tag) for tag in tags],
        "city": CityResponse.model_validate(city),
        "category": CategoryResponse.model_validate(category),
    })


async def get_venue_by_slug(db: AsyncSession, slug: str) -> Optional[VenueSummary]:
    """Fetch a published venue by slug with city/category names and cover image."""
    with store_errors("get_venue_by_slug"):
        result = await db.execute(select(Venue).where(Venue.slug == slug, Venue.status == PUBLISHED))
        venue = result.scalar_one_or_none()
        if venue is None:
            return None

        cities, categories, covers = await _fetch_all(
            db,
            select(City).where(City.id == venue.city_id),
            select(Category).where(Category.id == venue.category_id),
            select(Photo).where(Photo.venue_id == venue.id, Photo.is_cover.is_(True)),
        )

    city = cities[0] if cities else None
    category = categories[0] if categories else None
    summary = VenueSummary.model_validate(venue)
    return summary.model_copy(update={
        "city_name": city.name if city else "",
        "city_slug": city.slug if city else "",
        "category_name": category.name if category else "",
        "category_slug": category.slug if category else "",
        "cover_image_url": pick_cover_photos(covers).get(venue.id),
    })


# ---------------------------------------------------------------------------
# Collections
# ---------------------------------------------------------------------------

async def get_collections_by_city(db: AsyncSession, city_slug: str) -> List[Collection]:
    """Fetch all active curated collections for a city."""
    with store_errors("get_collections_by_city"):
        city = await get_city(db, city_slug)
        if city is None:
            return []

        result = await db.execute(
            select(Collection)
            .where(Collection.city_id == city.id, Collection.is_active.is_(True))
            .order_by(Collection.name.asc())
        )
        return list(result.scalars().all())


async def get_featured_collections(db: AsyncSession, limit: int = 8) -> List[Collection]:
    with store_errors("get_featured_collections"):
        result = await db.execute(
            select(Collection)
            .where(Collection.is_active.is_(True))
            .order_by(Collection.sort_order.asc(), Collection.id.asc())
            .limit(limit)
        )
        return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Store-side functions: full-text search and PostGIS proximity
# ---------------------------------------------------------------------------

async def _call_store_function(db: AsyncSession, name: str, args: Dict[str, object]) -> list:
    """
    ``SELECT * FROM name(arg => :arg, ...)`` using named notation, so
    arguments that are left out fall back to the function's defaults.
    """
    arg_list = ", ".join(f"{key} => :{key}" for key in args)
    result = await db.execute(text(f"SELECT * FROM {name}({arg_list})"), args)
    return [dict(row) for row in result.mappings().all()]


async def search_venues(
    db: AsyncSession,
    query: str,
    city_id: Optional[int] = None,
) -> List[SearchVenueResult]:
    """
    Full-text search over venues, delegated to the ``search_venues`` store
    function (ranked results). Optionally scoped to one city.
    A blank query returns [] without a round trip.
    """
    trimmed = (query or "").strip()
    if not trimmed:
        return []

    args: Dict[str, object] = {"search_query": trimmed}
    if city_id is not None:
        args["p_city_id"] = city_id

    with store_errors("search_venues"):
        rows = await _call_store_function(db, "search_venues", args)
    return [SearchVenueResult(**row) for row in rows]


async def get_nearby_venues(
    db: AsyncSession,
    lat: float,
    lng: float,
    radius_m: Optional[float] = None,
) -> List[NearbyVenue]:
    """
    Venues around a point, delegated to the ``nearby_venues`` store function
    (ST_DWithin on venues.latlng). When ``radius_m`` is None the function's
    own default radius applies.
    """
    args: Dict[str, object] = {"p_lat": lat, "p_lng": lng}
    if radius_m is not None:
        args["p_radius_m"] = radius_m

    with store_errors("get_nearby_venues"):
        rows = await _call_store_function(db, "nearby_venues", args)
    return [NearbyVenue(**row) for row in rows]


# ---------------------------------------------------------------------------
# Admin venue list
# ---------------------------------------------------------------------------

def escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


async def list_admin_venues(db: AsyncSession, filters: VenueFilter) -> Tuple[List[Venue], int]:
    """
    Admin venue list: every status, free-text name search, exact-match
    filters, one sort field/direction, offset pagination.

    Callers must already have checked the admin session.
    """
    city = aliased(City)
    category = aliased(Category)

    stmt = (
        select(Venue)
        .join(city, Venue.city_id == city.id)
        .join(category, Venue.category_id == category.id)
    )
    if filters.search:
        stmt = stmt.where(Venue.name.ilike(f"%{escape_like(filters.search)}%", escape="\\"))
    if filters.city:
        stmt = stmt.where(city.slug == filters.city)
    if filters.category:
        stmt = stmt.where(category.slug == filters.category)
    if filters.status:
        stmt = stmt.where(Venue.status == filters.status)

    sort_columns = {
        "name": Venue.name,
        "city": city.slug,
        "category": category.slug,
        "status": Venue.status,
        "priority_score": Venue.priority_score,
        "updated_at": Venue.updated_at,
        "created_at": Venue.created_at,
    }
    sort_column = sort_columns[filters.sort_by]
    ordering = sort_column.asc() if filters.sort_order == "asc" else sort_column.desc()

    offset, row_count = _page_bounds(filters.page, filters.per_page)

    with store_errors("list_admin_venues"):
        count_result = await db.execute(select(func.count()).select_from(stmt.subquery()))
        total = count_result.scalar() or 0

        result = await db.execute(
            stmt.order_by(ordering, Venue.id.asc()).offset(offset).limit(row_count)
        )
        venues = list(result.scalars().all())

    return venues, total


async def get_admin_stats(db: AsyncSession) -> Dict[str, object]:
    """Dashboard counters: venues by status, sponsored, per city, collections."""
    with store_errors("get_admin_stats"):
        status_rows = await db.execute(select(Venue.status, func.count()).group_by(Venue.status))
        by_status = {status: count for status, count in status_rows.all()}

        sponsored = await db.execute(
            select(func.count()).select_from(Venue).where(Venue.is_sponsored.is_(True))
        )
        city_rows = await db.execute(
            select(City.slug, func.count(Venue.id))
            .join(Venue, Venue.city_id == City.id)
            .group_by(City.slug)
        )
        collections = await db.execute(select(func.count()).select_from(Collection))

    return {
        "total_venues": sum(by_status.values()),
        "published": by_status.get("published", 0),
        "draft": by_status.get("draft", 0),
        "archived": by_status.get("archived", 0),
        "sponsored": sponsored.scalar() or 0,
        "by_city": {slug: count for slug, count in city_rows.all()},
        "total_collections": collections.scalar() or 0,
    }


async def get_sitemap_data(db: AsyncSession) -> Tuple[List[City], List[Category], List[tuple]]:
    """
    Everything the sitemap needs: active cities, categories, and
    (city_slug, category_slug, venue_slug, updated_at) for every published venue.
    """
    with store_errors("get_sitemap_data"):
        cities = await db.execute(
            select(City).where(City.is_active.is_(True)).order_by(City.name.asc())
        )
        categories = await db.execute(select(Category).order_by(Category.priority.asc(), Category.id.asc()))
        venue_rows = await db.execute(
            select(City.slug, Category.slug, Venue.slug, Venue.updated_at)
            .select_from(Venue)
            .join(City, Venue.city_id == City.id)
            .join(Category, Venue.category_id == Category.id)
            .where(Venue.status == PUBLISHED)
            .order_by(Venue.updated_at.desc(), Venue.id.asc())
        )
        return (
            list(cities.scalars().all()),
            list(categories.scalars().all()),
            [tuple(row) for row in venue_rows.all()],
        )
