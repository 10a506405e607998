import asyncio

import pytest
from geoalchemy2.shape import from_shape
from shapely.geometry import Point
from sqlalchemy import select

from nightlife import queries
from nightlife.exceptions import QueryError
from nightlife.models import City, Photo, Venue, latlng_to_ewkt, point_to_latlng
from nightlife.schemas import VenueFilter

from tests.conftest import (
    MARRAKECH,
    PACHA,
    RICKS,
    SKY_BAR,
    SO_NIGHT,
    THEATRO,
)


class TestVenuesByCity:
    async def test_marrakech_nightclubs_with_both_tags(self, db):
        venues, count = await queries.get_venues_by_city(
            db, "marrakech", category="nightclub", tags=["live-dj", "vip"], page=1, limit=2
        )
        # sponsored first, then priority; the draft club never shows
        assert [v.id for v in venues] == [SO_NIGHT, THEATRO]
        assert count == 2

    async def test_published_only_and_ordering(self, db):
        venues, count = await queries.get_venues_by_city(db, "marrakech")
        assert [v.id for v in venues] == [SO_NIGHT, PACHA, SKY_BAR, THEATRO]
        assert count == 4

    async def test_count_ignores_pagination(self, db):
        first, count_first = await queries.get_venues_by_city(db, "marrakech", page=1, limit=3)
        second, count_second = await queries.get_venues_by_city(db, "marrakech", page=2, limit=3)
        assert count_first == count_second == 4
        assert [v.id for v in first + second] == [SO_NIGHT, PACHA, SKY_BAR, THEATRO]

    async def test_page_past_the_end_is_empty(self, db):
        venues, count = await queries.get_venues_by_city(db, "marrakech", page=5, limit=3)
        assert venues == []
        assert count == 4

    async def test_page_below_one_returns_no_rows(self, db):
        venues, count = await queries.get_venues_by_city(db, "marrakech", page=0, limit=3)
        assert venues == []
        assert count == 4

    async def test_unknown_city_is_empty(self, db):
        assert await queries.get_venues_by_city(db, "atlantis") == ([], 0)

    async def test_unknown_category_is_ignored(self, db):
        _, count = await queries.get_venues_by_city(db, "marrakech", category="karaoke")
        assert count == 4

    async def test_unknown_tags_are_ignored(self, db):
        venues, _ = await queries.get_venues_by_city(db, "marrakech", tags=["no-such-tag"])
        assert len(venues) == 4

    async def test_known_and_unknown_tags(self, db):
        venues, _ = await queries.get_venues_by_city(db, "marrakech", tags=["terrace", "no-such-tag"])
        assert [v.id for v in venues] == [SO_NIGHT]

    async def test_tag_filter_matching_nothing(self, db):
        venues, count = await queries.get_venues_by_city(
            db, "marrakech", category="rooftop", tags=["live-dj"]
        )
        assert (venues, count) == ([], 0)

    async def test_tags_filter_across_categories(self, db):
        venues, _ = await queries.get_venues_by_city(db, "marrakech", tags=["vip"])
        assert [v.id for v in venues] == [SO_NIGHT, SKY_BAR, THEATRO]

    async def test_venues_by_category(self, db):
        venues, count = await queries.get_venues_by_category(db, "marrakech", "rooftop")
        assert [v.id for v in venues] == [SKY_BAR]
        assert count == 1


class TestVenueCards:
    async def test_cards_follow_venue_order(self, db):
        venues, _ = await queries.get_venues_by_city(db, "marrakech")
        cards, count = await queries.get_venue_cards(db, MARRAKECH)
        assert [c.id for c in cards] == [v.id for v in venues]
        assert count == 4

    async def test_card_enrichment(self, db):
        cards, _ = await queries.get_venue_cards(db, MARRAKECH, language="en")
        by_id = {card.id: card for card in cards}

        theatro = by_id[THEATRO]
        assert theatro.description == "Legendary Hivernage club"
        assert theatro.cover_photo == "https://img.example/theatro-a.jpg"
        assert sorted(theatro.tags) == ["Live DJ", "VIP"]
        assert theatro.category_slug == "nightclub"
        assert theatro.city_slug == "marrakech"

        assert by_id[PACHA].cover_photo is None
        assert by_id[PACHA].description == ""
        assert by_id[SKY_BAR].category_slug == "rooftop"

    async def test_language_fallback(self, db):
        cards, _ = await queries.get_venue_cards(db, MARRAKECH, language="fr")
        so_night = next(card for card in cards if card.id == SO_NIGHT)
        assert so_night.description == "Sponsored club with a terrace"

    async def test_empty_page_skips_enrichment(self, db):
        cards, count = await queries.get_venue_cards(db, MARRAKECH, page=10, limit=5)
        assert (cards, count) == ([], 4)

    async def test_filters_apply_to_cards(self, db):
        cards, count = await queries.get_venue_cards(
            db, MARRAKECH, category="nightclub", tags=["live-dj", "vip"], limit=1
        )
        assert [c.id for c in cards] == [SO_NIGHT]
        assert count == 2


class TestVenueDetail:
    async def test_detail_with_relations(self, db):
        detail = await queries.get_venue_detail(db, "marrakech", "nightclub", "theatro", language="en")
        assert detail.id == THEATRO
        assert [c.language for c in detail.contents] == ["en", "fr"]
        assert [p.display_order for p in detail.photos] == [0, 1, 2]
        assert [t.slug for t in detail.tags] == ["live-dj", "vip"]
        assert detail.city.slug == "marrakech"
        assert detail.category.slug == "nightclub"
        assert detail.latitude == pytest.approx(31.6205)
        assert detail.longitude == pytest.approx(-8.0120)

    async def test_internal_notes_never_serialized(self, db):
        detail = await queries.get_venue_detail(db, "marrakech", "nightclub", "theatro")
        assert "internal_notes" not in detail.model_dump()

    @pytest.mark.parametrize("path", [
        ("atlantis", "nightclub", "theatro"),
        ("marrakech", "karaoke", "theatro"),
        ("marrakech", "rooftop", "theatro"),
        ("casablanca", "nightclub", "theatro"),
        ("marrakech", "nightclub", "draft-club"),
        ("marrakech", "nightclub", "nope"),
    ])
    async def test_unresolved_path_is_none(self, db, path):
        assert await queries.get_venue_detail(db, *path) is None

    async def test_venue_by_slug(self, db):
        summary = await queries.get_venue_by_slug(db, "theatro")
        assert summary.city_name == "Marrakech"
        assert summary.category_slug == "nightclub"
        assert summary.cover_image_url == "https://img.example/theatro-a.jpg"
        assert await queries.get_venue_by_slug(db, "draft-club") is None


class TestReferenceData:
    async def test_cities_and_categories(self, db):
        assert [c.slug for c in await queries.get_cities(db)] == ["casablanca", "marrakech"]
        assert [c.slug for c in await queries.get_categories(db)] == ["nightclub", "rooftop", "lounge"]
        city = await queries.get_city(db, "marrakech")
        assert city.latlng == pytest.approx((31.6295, -7.9811))
        assert await queries.get_city(db, "atlantis") is None

    async def test_featured_venues(self, db):
        venues = await queries.get_featured_venues(db, limit=3)
        assert [v.id for v in venues] == [SO_NIGHT, PACHA, SKY_BAR]

    async def test_collections(self, db):
        assert [c.slug for c in await queries.get_collections_by_city(db, "marrakech")] == [
            "best-clubs", "vip-nights"
        ]
        assert await queries.get_collections_by_city(db, "casablanca") == []
        assert await queries.get_collections_by_city(db, "atlantis") == []
        featured = await queries.get_featured_collections(db)
        assert {c.slug for c in featured} == {"best-clubs", "vip-nights"}


class TestAdminList:
    async def test_all_statuses_and_total(self, db):
        venues, total = await queries.list_admin_venues(db, VenueFilter(sort_by="name", sort_order="asc"))
        assert total == 6
        assert [v.slug for v in venues][:2] == ["draft-club", "pacha"]

    async def test_filters(self, db):
        venues, total = await queries.list_admin_venues(
            db, VenueFilter(city="marrakech", category="nightclub", status="draft")
        )
        assert [v.slug for v in venues] == ["draft-club"]
        assert total == 1

    async def test_search_is_case_insensitive_and_literal(self, db):
        venues, _ = await queries.list_admin_venues(db, VenueFilter(search="NIGHT"))
        assert [v.id for v in venues] == [SO_NIGHT]
        venues, _ = await queries.list_admin_venues(db, VenueFilter(search="%"))
        assert venues == []

    async def test_pagination_and_priority_sort(self, db):
        venues, total = await queries.list_admin_venues(
            db, VenueFilter(sort_by="priority_score", sort_order="desc", page=2, per_page=2)
        )
        assert total == 6
        assert [v.slug for v in venues] == ["sky-bar", "theatro"]

    async def test_sort_by_city(self, db):
        venues, _ = await queries.list_admin_venues(db, VenueFilter(sort_by="city", sort_order="asc"))
        assert venues[0].id == RICKS


class TestStatsAndSitemapData:
    async def test_admin_stats(self, db):
        stats = await queries.get_admin_stats(db)
        assert stats == {
            "total_venues": 6,
            "published": 5,
            "draft": 1,
            "archived": 0,
            "sponsored": 1,
            "by_city": {"marrakech": 5, "casablanca": 1},
            "total_collections": 3,
        }

    async def test_sitemap_data(self, db):
        cities, categories, venues = await queries.get_sitemap_data(db)
        assert {c.slug for c in cities} == {"casablanca", "marrakech"}
        assert len(categories) == 3
        assert ("marrakech", "nightclub", "theatro") in {row[:3] for row in venues}
        assert all(row[2] != "draft-club" for row in venues)


async def test_store_errors_become_query_errors(db):
    await db.run_sync(lambda sync_session: Venue.__table__.drop(sync_session.connection()))
    with pytest.raises(QueryError) as exc_info:
        await queries.get_venues_by_city(db, "marrakech")
    assert exc_info.value.context == "get_venues_by_city"
    assert "venues" in str(exc_info.value)


async def test_failed_parallel_read_becomes_query_error(db):
    await db.run_sync(lambda sync_session: Photo.__table__.drop(sync_session.connection()))
    await db.commit()
    with pytest.raises(QueryError) as exc_info:
        await queries.get_venue_cards(db, MARRAKECH)
    assert exc_info.value.context == "get_venue_cards"
    assert "photos" in str(exc_info.value)


async def test_parallel_reads_all_finish_before_the_error(db, monkeypatch):
    finished = []

    async def fake_fetch(session, stmt):
        if stmt == "broken":
            raise RuntimeError("read failed")
        await asyncio.sleep(0.01)
        finished.append(stmt)
        return [stmt]

    monkeypatch.setattr(queries, "_fetch_scalars", fake_fetch)
    with pytest.raises(RuntimeError, match="read failed"):
        await queries._fetch_all(db, "broken", "slow")
    assert finished == ["slow"]

    assert await queries._fetch_all(db, "a", "b") == [["a"], ["b"]]


async def test_geo_point_storage(db):
    result = await db.execute(select(City.location).where(City.slug == "casablanca"))
    assert result.scalar_one() is None

    result = await db.execute(select(City.location).where(City.slug == "marrakech"))
    stored = result.scalar_one()
    assert stored.startswith("SRID=4326;POINT")
    assert point_to_latlng(stored) == pytest.approx((31.6295, -7.9811))


def test_ewkt_axis_order():
    ewkt = latlng_to_ewkt((31.62, -8.0))
    assert ewkt.startswith("SRID=4326;POINT")
    assert point_to_latlng(ewkt) == pytest.approx((31.62, -8.0))
    assert latlng_to_ewkt(None) is None
    assert point_to_latlng(None) is None


def test_point_from_postgis_wkb():
    point = from_shape(Point(-7.5898, 33.5731), srid=4326)
    assert point_to_latlng(point) == pytest.approx((33.5731, -7.5898))
