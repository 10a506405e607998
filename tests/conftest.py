"""
Shared fixtures.

Each test gets its own SQLite file (through aiosqlite) created from the
models and seeded with a small Marrakech/Casablanca data set. HTTP tests run
the app in-process through httpx with get_db / get_admin_db overridden.
"""
import os

os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "")

import httpx
import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from nightlife.config import settings
from nightlife.database import Base, get_admin_db, get_db
from nightlife.main import app
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
from nightlife.utils.auth import hash_password
from nightlife.utils.jwt_auth import create_access_token

ADMIN_PASSWORD = "s3cret-admin"

MARRAKECH, CASABLANCA = 1, 2
NIGHTCLUB, ROOFTOP, LOUNGE = 1, 2, 3
LIVE_DJ, VIP, TERRACE = 1, 2, 3

THEATRO, SO_NIGHT, PACHA, SKY_BAR, DRAFT_CLUB, RICKS = 1, 2, 3, 4, 5, 6


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'nightlife.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def db(session_factory, seeded):
    async with session_factory() as session:
        yield session


def _venue(venue_id, name, slug, city_id, category_id, **kwargs):
    values = dict(
        id=venue_id,
        name=name,
        slug=slug,
        city_id=city_id,
        category_id=category_id,
        address=f"{name} street",
        status="published",
        is_sponsored=False,
        priority_score=0,
        attributes={},
    )
    values.update(kwargs)
    return Venue(**values)


@pytest.fixture
async def seeded(session_factory):
    """
    Marrakech nightclubs: Theatro (live-dj, vip, priority 50), So Night
    (live-dj, vip, terrace, sponsored, priority 10), Pacha (live-dj,
    priority 90) and a draft club carrying both tags. Sky Bar is a
    Marrakech rooftop, Rick's a Casablanca lounge.
    """
    async with session_factory() as session:
        session.add_all([
            City(id=MARRAKECH, name="Marrakech", slug="marrakech", latlng=(31.6295, -7.9811)),
            City(id=CASABLANCA, name="Casablanca", slug="casablanca"),
            Category(id=NIGHTCLUB, name="Nightclub", slug="nightclub", priority=1),
            Category(id=ROOFTOP, name="Rooftop", slug="rooftop", priority=2),
            Category(id=LOUNGE, name="Lounge", slug="lounge", priority=3),
            Tag(id=LIVE_DJ, name="Live DJ", slug="live-dj"),
            Tag(id=VIP, name="VIP", slug="vip"),
            Tag(id=TERRACE, name="Terrace", slug="terrace"),
        ])
        await session.flush()

        session.add_all([
            _venue(THEATRO, "Theatro", "theatro", MARRAKECH, NIGHTCLUB, priority_score=50,
                   latlng=(31.6205, -8.0120), neighborhood="Hivernage",
                   internal_notes="owner prefers WhatsApp"),
            _venue(SO_NIGHT, "So Night", "so-night", MARRAKECH, NIGHTCLUB, priority_score=10,
                   is_sponsored=True),
            _venue(PACHA, "Pacha", "pacha", MARRAKECH, NIGHTCLUB, priority_score=90),
            _venue(SKY_BAR, "Sky Bar", "sky-bar", MARRAKECH, ROOFTOP, priority_score=70),
            _venue(DRAFT_CLUB, "Draft Club", "draft-club", MARRAKECH, NIGHTCLUB, priority_score=99,
                   status="draft"),
            _venue(RICKS, "Rick's Cafe", "ricks-cafe", CASABLANCA, LOUNGE, priority_score=20),
        ])
        await session.flush()

        session.add_all([
            VenueTag(venue_id=THEATRO, tag_id=LIVE_DJ),
            VenueTag(venue_id=THEATRO, tag_id=VIP),
            VenueTag(venue_id=SO_NIGHT, tag_id=LIVE_DJ),
            VenueTag(venue_id=SO_NIGHT, tag_id=VIP),
            VenueTag(venue_id=SO_NIGHT, tag_id=TERRACE),
            VenueTag(venue_id=PACHA, tag_id=LIVE_DJ),
            VenueTag(venue_id=SKY_BAR, tag_id=VIP),
            VenueTag(venue_id=DRAFT_CLUB, tag_id=LIVE_DJ),
            VenueTag(venue_id=DRAFT_CLUB, tag_id=VIP),
            VenueContent(venue_id=THEATRO, language="fr", description="Club mythique de l'Hivernage"),
            VenueContent(venue_id=THEATRO, language="en", description="Legendary Hivernage club"),
            VenueContent(venue_id=SO_NIGHT, language="en", description="Sponsored club with a terrace"),
            Photo(id=1, venue_id=THEATRO, url="https://img.example/theatro-b.jpg", is_cover=True, display_order=2),
            Photo(id=2, venue_id=THEATRO, url="https://img.example/theatro-a.jpg", is_cover=True, display_order=1),
            Photo(id=3, venue_id=THEATRO, url="https://img.example/theatro-c.jpg", is_cover=False, display_order=0),
            Photo(id=4, venue_id=SO_NIGHT, url="https://img.example/so-night.jpg", is_cover=True, display_order=0),
            Photo(id=5, venue_id=PACHA, url="https://img.example/pacha.jpg", is_cover=False, display_order=0),
            Collection(id=1, city_id=MARRAKECH, name="Best clubs", slug="best-clubs",
                       venue_ids=[THEATRO, SO_NIGHT], is_active=True, sort_order=0),
            Collection(id=2, city_id=MARRAKECH, name="VIP nights", slug="vip-nights",
                       venue_ids=[THEATRO], is_active=True, sort_order=1),
            Collection(id=3, city_id=CASABLANCA, name="Casa classics", slug="casa-classics",
                       venue_ids=[RICKS], is_active=False, sort_order=0),
        ])
        await session.commit()

    return True


@pytest.fixture
def admin_password(monkeypatch):
    monkeypatch.setattr(settings, "ADMIN_PASSWORD_HASH", hash_password(ADMIN_PASSWORD))
    return ADMIN_PASSWORD


@pytest.fixture
async def client(session_factory, seeded):
    async def override_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_admin_db] = override_db

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as c:
        yield c

    app.dependency_overrides.clear()


@pytest.fixture
async def admin_client(client):
    token = create_access_token({"role": "admin", "sub": "nightlife_admin"})
    client.headers["Authorization"] = f"Bearer {token}"
    return client
