"""
Sitemap route.
"""
import logging

from fastapi import APIRouter, Depends
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from nightlife import queries
from nightlife.config import settings
from nightlife.database import get_db
from nightlife.exceptions import QueryError
from nightlife.utils.sitemap import build_sitemap_entries, render_sitemap

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/sitemap.xml", include_in_schema=False)
async def sitemap(db: AsyncSession = Depends(get_db)):
    """
    XML sitemap of every public page in both locales.
    If the store cannot be read, only the locale home pages are listed.
    """
    cities, categories, venues = [], [], []
    try:
        cities, categories, venues = await queries.get_sitemap_data(db)
    except QueryError as e:
        logger.warning(f"Sitemap built without store data: {str(e)}")

    entries = build_sitemap_entries(
        settings.SITE_URL,
        city_slugs=[city.slug for city in cities],
        category_slugs=[category.slug for category in categories],
        venues=venues,
        city_updated={city.slug: city.updated_at for city in cities},
    )
    return Response(content=render_sitemap(entries), media_type="application/xml")
