"""
In-memory aggregation helpers for the venue query layer.

These functions take rows that were already fetched from the store and turn
them into filtered id lists, lookup maps and card view-models. They never
touch the database, so they can be unit-tested on plain objects.
"""
from collections import Counter
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from nightlife.schemas import VenueCard

SUPPORTED_LANGUAGES = ("fr", "en")


def venues_with_all_tags(
    junction_rows: Iterable[Tuple[int, int]],
    tag_ids: Sequence[int],
) -> List[int]:
    """
    Return the venue ids that carry every one of ``tag_ids``.

    ``junction_rows`` are (venue_id, tag_id) pairs, typically every venues_tags
    row whose tag_id is among the requested ones. Pairs are composite-unique in
    the store; duplicates are ignored here as well so a venue is never counted
    twice for the same tag.

    Args:
        junction_rows: (venue_id, tag_id) pairs
        tag_ids: Requested tag ids (AND semantics)

    Returns:
        List[int]: Matching venue ids, in first-seen order
    """
    wanted = set(tag_ids)
    if not wanted:
        return []

    seen = set()
    tally = Counter()
    for venue_id, tag_id in junction_rows:
        if tag_id not in wanted or (venue_id, tag_id) in seen:
            continue
        seen.add((venue_id, tag_id))
        tally[venue_id] += 1

    return [venue_id for venue_id, count in tally.items() if count == len(wanted)]


def pick_cover_photos(photos: Iterable) -> Dict[int, str]:
    """
    Map venue_id -> cover photo URL.

    When several photos of a venue are flagged as cover, the one with the
    lowest display order wins (then the lowest id), so the result does not
    depend on the order the store returned the rows in.
    """
    best: Dict[int, Tuple[Tuple[int, int], str]] = {}
    for photo in photos:
        if not photo.is_cover:
            continue
        key = (photo.display_order or 0, photo.id or 0)
        current = best.get(photo.venue_id)
        if current is None or key < current[0]:
            best[photo.venue_id] = (key, photo.url)
    return {venue_id: url for venue_id, (_, url) in best.items()}


def descriptions_by_venue(contents: Iterable) -> Dict[int, Dict[str, str]]:
    """Map venue_id -> language -> description."""
    by_venue: Dict[int, Dict[str, str]] = {}
    for content in contents:
        by_venue.setdefault(content.venue_id, {})[content.language] = content.description
    return by_venue


def resolve_description(by_language: Optional[Mapping[str, str]], language: str) -> str:
    """
    Pick the description in ``language``, falling back to the other
    supported language, then to an empty string.
    """
    if not by_language:
        return ""
    if by_language.get(language):
        return by_language[language]
    for other in SUPPORTED_LANGUAGES:
        if other != language and by_language.get(other):
            return by_language[other]
    return ""


def tag_ids_by_venue(junction_rows: Iterable) -> Dict[int, List[int]]:
    """Map venue_id -> list of tag ids, in row order."""
    by_venue: Dict[int, List[int]] = {}
    for row in junction_rows:
        by_venue.setdefault(row.venue_id, []).append(row.tag_id)
    return by_venue


def sort_contents_by_language(contents: Sequence, language: str) -> List:
    """Stable sort putting the requested language first."""
    return sorted(contents, key=lambda content: content.language != language)


def assemble_venue_cards(
    venues: Sequence,
    language: str,
    descriptions: Mapping[int, Mapping[str, str]],
    covers: Mapping[int, str],
    venue_tag_ids: Mapping[int, Sequence[int]],
    tag_names: Mapping[int, str],
    category_slugs: Mapping[int, str],
    city_slug: str,
) -> List[VenueCard]:
    """
    Build VenueCard view-models from a page of venue rows and the lookup maps.

    Cards come out in the same order as ``venues``. Tag ids without a known
    name are skipped.
    """
    cards = []
    for venue in venues:
        tags = [
            tag_names[tag_id]
            for tag_id in venue_tag_ids.get(venue.id, [])
            if tag_id in tag_names
        ]
        cards.append(VenueCard(
            id=venue.id,
            name=venue.name,
            slug=venue.slug,
            neighborhood=venue.neighborhood,
            price_range=venue.price_range,
            is_sponsored=venue.is_sponsored,
            priority_score=venue.priority_score,
            cover_photo=covers.get(venue.id),
            description=resolve_description(descriptions.get(venue.id), language),
            category_slug=category_slugs.get(venue.category_id, ""),
            city_slug=city_slug,
            tags=tags,
        ))
    return cards


def remove_venue_from_collections(collections: Iterable, venue_id: int) -> Dict[int, List[int]]:
    """
    Compute the new venue_ids array of every collection that contains
    ``venue_id``.

    Returns:
        Dict[int, List[int]]: collection id -> venue ids without ``venue_id``
        (collections that do not contain it are left out)
    """
    changes = {}
    for collection in collections:
        venue_ids = list(collection.venue_ids or [])
        if venue_id in venue_ids:
            changes[collection.id] = [vid for vid in venue_ids if vid != venue_id]
    return changes


def parse_tag_slugs(values: Optional[Iterable[str]]) -> List[str]:
    """
    Normalise tag query parameters: accepts repeated values and
    comma-separated lists, drops blanks and duplicates, keeps order.
    """
    slugs: List[str] = []
    for value in values or []:
        for part in value.split(","):
            slug = part.strip()
            if slug and slug not in slugs:
                slugs.append(slug)
    return slugs
