"""
Sitemap generation.
build_sitemap_entries is pure; render_sitemap serializes the entries to the
sitemaps.org urlset format.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Sequence
from xml.sax.saxutils import escape

from nightlife.utils.aggregation import SUPPORTED_LANGUAGES

SITEMAP_NS = "http://www.sitemaps.org/schemas/sitemap/0.9"


@dataclass
class SitemapEntry:
    url: str
    last_modified: datetime
    change_frequency: str
    priority: float


def build_sitemap_entries(
    base_url: str,
    city_slugs: Sequence[str],
    category_slugs: Sequence[str],
    venues: Iterable[tuple],
    city_updated: Optional[dict] = None,
    now: Optional[datetime] = None,
) -> List[SitemapEntry]:
    """
    Build sitemap entries for every public page, once per locale.

    Args:
        base_url: Site root, without trailing slash
        city_slugs: Active city slugs
        category_slugs: Category slugs (every city x category page is listed)
        venues: (city_slug, category_slug, venue_slug, updated_at) per published venue
        city_updated: Optional city_slug -> last modification time
        now: Timestamp used where no modification time is known

    Returns:
        List[SitemapEntry]: Home pages, city pages, city x category pages,
        then venue pages
    """
    base_url = base_url.rstrip("/")
    now = now or datetime.now(timezone.utc)
    city_updated = city_updated or {}
    entries: List[SitemapEntry] = []

    for locale in SUPPORTED_LANGUAGES:
        entries.append(SitemapEntry(f"{base_url}/{locale}", now, "daily", 1.0))

    for city in city_slugs:
        for locale in SUPPORTED_LANGUAGES:
            entries.append(SitemapEntry(
                f"{base_url}/{locale}/{city}", city_updated.get(city) or now, "weekly", 0.9
            ))

    for city in city_slugs:
        for category in category_slugs:
            for locale in SUPPORTED_LANGUAGES:
                entries.append(SitemapEntry(
                    f"{base_url}/{locale}/{city}/{category}", now, "weekly", 0.8
                ))

    for city, category, slug, updated_at in venues:
        if not city or not category:
            continue
        for locale in SUPPORTED_LANGUAGES:
            entries.append(SitemapEntry(
                f"{base_url}/{locale}/{city}/{category}/{slug}", updated_at or now, "monthly", 0.7
            ))

    return entries


def render_sitemap(entries: Iterable[SitemapEntry]) -> str:
    lines = ['<?xml version="1.0" encoding="UTF-8"?>', f'<urlset xmlns="{SITEMAP_NS}">']
    for entry in entries:
        lines.append(
            "  <url>"
            f"<loc>{escape(entry.url)}</loc>"
            f"<lastmod>{entry.last_modified.date().isoformat()}</lastmod>"
            f"<changefreq>{entry.change_frequency}</changefreq>"
            f"<priority>{entry.priority:.1f}</priority>"
            "</url>"
        )
    lines.append("</urlset>")
    return "\n".join(lines) + "\n"
