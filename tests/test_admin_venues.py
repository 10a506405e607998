import pytest
from sqlalchemy import func, select, text

from nightlife.exceptions import QueryError
from nightlife.models import AuditLog, Collection, Photo, Venue, VenueContent, VenueTag
from nightlife.services import admin_venues
from nightlife.services.audit import record_audit
from nightlife.services.steps import run_steps

from tests.conftest import LIVE_DJ, SO_NIGHT, TERRACE, THEATRO, VIP


def venue_payload(**overrides):
    payload = {
        "name": "Le Comptoir",
        "slug": "le-comptoir",
        "city": "marrakech",
        "category": "lounge",
        "address": "Avenue Echouhada",
        "neighborhood": "Hivernage",
        "latitude": 31.62,
        "longitude": -8.0,
        "phone": "+212 524 43 77 02",
        "website": "https://comptoir.example",
        "price_range": "$$$",
        "attributes": {"terrace": True, "capacity": 300},
        "tag_ids": [LIVE_DJ, VIP],
        "contents": [
            {"language": "fr", "description": "Restaurant et spectacle", "seo_keywords": ["diner"]},
        ],
        "photos": [
            {"url": "https://img.example/c1.jpg", "is_cover": True},
            {"url": "https://img.example/c2.jpg"},
        ],
        "status": "published",
        "priority_score": 40,
        "internal_notes": "call first",
    }
    payload.update(overrides)
    return payload


async def audit_rows(session_factory):
    async with session_factory() as session:
        result = await session.execute(select(AuditLog).order_by(AuditLog.id))
        return list(result.scalars().all())


class TestAuthGate:
    @pytest.mark.parametrize("method,path", [
        ("get", "/api/admin/venues"),
        ("get", "/api/admin/stats"),
        ("get", f"/api/admin/venues/{THEATRO}"),
        ("post", "/api/admin/venues"),
        ("delete", f"/api/admin/venues/{THEATRO}"),
        ("get", "/api/admin/collections"),
    ])
    async def test_requires_session(self, client, method, path):
        response = await client.request(method.upper(), path)
        assert response.status_code == 401
        assert response.json()["error"] == "Unauthorized"

    async def test_rejects_forged_token(self, client):
        response = await client.get("/api/admin/venues", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401


class TestReadEndpoints:
    async def test_list_venues(self, admin_client):
        response = await admin_client.get(
            "/api/admin/venues", params={"city": "marrakech", "sort_by": "name", "sort_order": "asc", "per_page": 2}
        )
        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 5
        assert body["page"] == 1
        assert body["per_page"] == 2
        assert [v["slug"] for v in body["venues"]] == ["draft-club", "pacha"]

    async def test_list_venues_rejects_bad_filters(self, admin_client):
        response = await admin_client.get("/api/admin/venues", params={"per_page": 500, "sort_by": "rating"})
        assert response.status_code == 400
        details = response.json()["details"]
        assert "per_page" in details
        assert "sort_by" in details

    async def test_stats(self, admin_client):
        response = await admin_client.get("/api/admin/stats")
        assert response.status_code == 200
        assert response.json()["published"] == 5
        assert response.json()["by_city"] == {"marrakech": 5, "casablanca": 1}

    async def test_get_venue_with_relations(self, admin_client):
        response = await admin_client.get(f"/api/admin/venues/{THEATRO}")
        assert response.status_code == 200
        venue = response.json()
        assert venue["internal_notes"] == "owner prefers WhatsApp"
        assert venue["tag_ids"] == [LIVE_DJ, VIP]
        assert [c["language"] for c in venue["contents"]] == ["en", "fr"]
        assert [p["display_order"] for p in venue["photos"]] == [0, 1, 2]

    async def test_get_missing_venue(self, admin_client):
        response = await admin_client.get("/api/admin/venues/999")
        assert response.status_code == 404
        assert response.json() == {"error": "Venue not found"}

    async def test_slug_suggestion(self, admin_client):
        response = await admin_client.get("/api/admin/slug", params={"name": "Café de la Poste"})
        assert response.json() == {"slug": "cafe-de-la-poste"}


class TestCreate:
    async def test_create_venue(self, admin_client, session_factory):
        response = await admin_client.post("/api/admin/venues", json=venue_payload())

        assert response.status_code == 201
        body = response.json()
        assert body["message"] == "Venue created successfully"
        assert body["venue"]["slug"] == "le-comptoir"
        assert body["venue"]["internal_notes"] == "call first"
        assert body["venue"]["latitude"] == pytest.approx(31.62)
        venue_id = body["venue"]["id"]

        async with session_factory() as session:
            contents = (await session.execute(
                select(VenueContent).where(VenueContent.venue_id == venue_id)
            )).scalars().all()
            photos = (await session.execute(
                select(Photo).where(Photo.venue_id == venue_id).order_by(Photo.display_order)
            )).scalars().all()
            tags = (await session.execute(
                select(VenueTag.tag_id).where(VenueTag.venue_id == venue_id)
            )).scalars().all()

        assert [(c.language, c.seo_keywords) for c in contents] == [("fr", ["diner"])]
        assert [(p.display_order, p.is_cover) for p in photos] == [(0, True), (1, False)]
        assert sorted(tags) == [LIVE_DJ, VIP]

        audit = await audit_rows(session_factory)
        assert [(a.action, a.entity_type, a.entity_id) for a in audit] == [("created", "venue", venue_id)]
        assert audit[0].details == 'Created venue "Le Comptoir" in marrakech'

    async def test_duplicate_slug_conflicts(self, admin_client, session_factory):
        response = await admin_client.post("/api/admin/venues", json=venue_payload(slug="theatro"))
        assert response.status_code == 409
        assert response.json() == {"error": "A venue with this slug already exists"}
        assert await audit_rows(session_factory) == []

    @pytest.mark.parametrize("overrides,field", [
        ({"slug": "Bad Slug"}, "slug"),
        ({"name": "X"}, "name"),
        ({"city": "paris"}, "city"),
        ({"phone": "call me"}, "phone"),
        ({"priority_score": 101}, "priority_score"),
        ({"contents": []}, "contents"),
        ({"tag_ids": [1, 1]}, "tag_ids"),
        ({"latitude": 95}, "latitude"),
    ])
    async def test_validation_errors(self, admin_client, overrides, field):
        response = await admin_client.post("/api/admin/venues", json=venue_payload(**overrides))
        assert response.status_code == 400
        assert response.json()["error"] == "Validation failed"
        assert field in response.json()["details"]

    async def test_duplicate_content_language(self, admin_client):
        contents = [
            {"language": "fr", "description": "Premiere description"},
            {"language": "fr", "description": "Deuxieme description"},
        ]
        response = await admin_client.post("/api/admin/venues", json=venue_payload(contents=contents))
        assert response.status_code == 400
        assert "contents" in response.json()["details"]

    async def test_unknown_tag_ids(self, admin_client):
        response = await admin_client.post("/api/admin/venues", json=venue_payload(tag_ids=[LIVE_DJ, 404]))
        assert response.status_code == 400
        assert response.json()["details"] == {"tag_ids": ["Unknown tag ids: [404]"]}


class TestUpdate:
    async def test_full_update_keeps_own_slug(self, admin_client, session_factory):
        payload = venue_payload(
            name="Theatro Marrakech",
            slug="theatro",
            category="nightclub",
            tag_ids=[TERRACE],
            contents=[{"language": "en", "description": "Rebuilt description"}],
            photos=[],
        )
        response = await admin_client.put(f"/api/admin/venues/{THEATRO}", json=payload)

        assert response.status_code == 200
        assert response.json()["message"] == "Venue updated successfully"
        assert response.json()["venue"]["name"] == "Theatro Marrakech"

        async with session_factory() as session:
            contents = (await session.execute(
                select(VenueContent.language).where(VenueContent.venue_id == THEATRO)
            )).scalars().all()
            photo_count = (await session.execute(
                select(func.count()).select_from(Photo).where(Photo.venue_id == THEATRO)
            )).scalar()
            tags = (await session.execute(
                select(VenueTag.tag_id).where(VenueTag.venue_id == THEATRO)
            )).scalars().all()

        assert contents == ["en"]
        assert photo_count == 0
        assert tags == [TERRACE]

        audit = await audit_rows(session_factory)
        assert audit[-1].details == "name -> Theatro Marrakech"

    async def test_full_update_slug_taken_by_other_venue(self, admin_client):
        response = await admin_client.put(f"/api/admin/venues/{THEATRO}", json=venue_payload(slug="pacha"))
        assert response.status_code == 409

    async def test_full_update_requires_full_payload(self, admin_client):
        response = await admin_client.put(f"/api/admin/venues/{THEATRO}", json={"status": "archived"})
        assert response.status_code == 400

    @pytest.mark.parametrize("missing", ["latitude", "longitude"])
    async def test_full_update_needs_both_coordinates(self, admin_client, session_factory, missing):
        payload = venue_payload(slug="theatro", category="nightclub")
        del payload[missing]
        response = await admin_client.put(f"/api/admin/venues/{THEATRO}", json=payload)

        assert response.status_code == 400
        assert "longitude" in response.json()["details"]

        async with session_factory() as session:
            venue = await session.get(Venue, THEATRO)
        assert venue.latlng == pytest.approx((31.6205, -8.0120))

    async def test_full_update_can_clear_both_coordinates(self, admin_client, session_factory):
        payload = venue_payload(slug="theatro", category="nightclub", latitude=None, longitude=None)
        response = await admin_client.put(f"/api/admin/venues/{THEATRO}", json=payload)

        assert response.status_code == 200
        assert response.json()["venue"]["latitude"] is None

        async with session_factory() as session:
            venue = await session.get(Venue, THEATRO)
        assert venue.latlng is None

    async def test_partial_status_change(self, admin_client, session_factory):
        response = await admin_client.patch(f"/api/admin/venues/{THEATRO}", json={"status": "archived"})

        assert response.status_code == 200
        assert response.json()["venue"]["status"] == "archived"

        async with session_factory() as session:
            content_count = (await session.execute(
                select(func.count()).select_from(VenueContent).where(VenueContent.venue_id == THEATRO)
            )).scalar()
        assert content_count == 2

        audit = await audit_rows(session_factory)
        assert audit[-1].details == "status -> archived"

    async def test_partial_update_same_status_is_not_reported(self, admin_client, session_factory):
        await admin_client.patch(f"/api/admin/venues/{THEATRO}", json={"status": "published", "priority_score": 60})
        audit = await audit_rows(session_factory)
        assert audit[-1].details == "Venue details updated"

    async def test_partial_update_clears_nullable_fields(self, admin_client, session_factory):
        response = await admin_client.patch(
            f"/api/admin/venues/{THEATRO}", json={"neighborhood": None, "internal_notes": None}
        )

        assert response.status_code == 200
        assert response.json()["venue"]["neighborhood"] is None

        async with session_factory() as session:
            venue = await session.get(Venue, THEATRO)
        assert venue.neighborhood is None
        assert venue.internal_notes is None
        assert venue.name == "Theatro"

    @pytest.mark.parametrize("field", ["name", "address", "status", "priority_score", "is_sponsored", "city"])
    async def test_partial_update_rejects_null_required_fields(self, admin_client, session_factory, field):
        response = await admin_client.patch(f"/api/admin/venues/{THEATRO}", json={field: None})

        assert response.status_code == 400
        assert field in response.json()["details"]

        async with session_factory() as session:
            venue = await session.get(Venue, THEATRO)
        assert venue.name == "Theatro"
        assert venue.status == "published"

    async def test_partial_update_validates_fields(self, admin_client):
        response = await admin_client.patch(f"/api/admin/venues/{THEATRO}", json={"website": "not a url"})
        assert response.status_code == 400
        assert "website" in response.json()["details"]

    async def test_partial_update_rejects_sub_objects(self, admin_client):
        response = await admin_client.patch(f"/api/admin/venues/{THEATRO}", json={"contents": []})
        assert response.status_code == 400

    async def test_partial_update_slug_conflict(self, admin_client):
        response = await admin_client.patch(f"/api/admin/venues/{THEATRO}", json={"slug": "so-night"})
        assert response.status_code == 409

    async def test_partial_update_missing_venue(self, admin_client):
        response = await admin_client.patch("/api/admin/venues/999", json={"status": "draft"})
        assert response.status_code == 404

    async def test_unexpected_failure_body(self, admin_client, monkeypatch):
        async def broken(db, venue_id, payload):
            raise RuntimeError("socket closed")

        monkeypatch.setattr(admin_venues, "update_venue_partial", broken)
        response = await admin_client.patch(f"/api/admin/venues/{THEATRO}", json={"status": "draft"})

        assert response.status_code == 500
        assert response.json() == {"error": "Failed to update venue", "details": "socket closed"}


class TestDelete:
    async def test_delete_cascades_and_prunes_collections(self, admin_client, session_factory):
        response = await admin_client.delete(f"/api/admin/venues/{THEATRO}")

        assert response.status_code == 200
        assert response.json() == {"message": 'Venue "Theatro" deleted successfully'}

        async with session_factory() as session:
            collections = {
                c.slug: c.venue_ids
                for c in (await session.execute(select(Collection))).scalars().all()
            }
            remaining = {
                model.__tablename__: (await session.execute(
                    select(func.count()).select_from(model).where(model.venue_id == THEATRO)
                )).scalar()
                for model in (VenueContent, Photo, VenueTag)
            }
            venue = await session.get(Venue, THEATRO)

        assert collections["best-clubs"] == [SO_NIGHT]
        assert collections["vip-nights"] == []
        assert collections["casa-classics"] == [6]
        assert remaining == {"contents": 0, "photos": 0, "venues_tags": 0}
        assert venue is None

        audit = await audit_rows(session_factory)
        assert (audit[-1].action, audit[-1].entity_id, audit[-1].entity_name) == ("deleted", THEATRO, "Theatro")

        again = await admin_client.delete(f"/api/admin/venues/{THEATRO}")
        assert again.status_code == 404


class TestStepsAndAudit:
    async def test_failing_step_names_itself_and_keeps_earlier_steps(self, db, session_factory):
        async def first():
            await db.execute(text("UPDATE venues SET priority_score = 1 WHERE id = :id"), {"id": THEATRO})

        async def second():
            await db.execute(text("SELECT * FROM missing_table"))

        async def third():
            raise AssertionError("must not run")

        with pytest.raises(QueryError) as exc_info:
            await run_steps(db, "demo", [("first", first), ("second", second), ("third", third)])

        assert exc_info.value.context == "demo.second"
        assert "missing_table" in exc_info.value.store_message

        async with session_factory() as session:
            assert (await session.get(Venue, THEATRO)).priority_score == 1

    async def test_audit_failure_is_reported_not_raised(self, db):
        await db.run_sync(lambda sync_session: AuditLog.__table__.drop(sync_session.connection()))
        await db.commit()
        assert await record_audit(db, "created", "venue", 1, "x", "details") is False
