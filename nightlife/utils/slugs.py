"""URL slug helpers."""
import re
import unicodedata

_INVALID_CHARS = re.compile(r"[^a-z0-9\s-]")
_WHITESPACE = re.compile(r"\s+")
_HYPHENS = re.compile(r"-+")


def generate_slug(name: str) -> str:
    """
    Turn a display name into a URL slug: lowercase, accents stripped,
    punctuation dropped, whitespace runs become single hyphens.

    >>> generate_slug("Le Théâtre  Club!")
    'le-theatre-club'
    """
    decomposed = unicodedata.normalize("NFD", name.lower())
    ascii_only = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    slug = _INVALID_CHARS.sub("", ascii_only)
    slug = _WHITESPACE.sub("-", slug)
    slug = _HYPHENS.sub("-", slug)
    return slug.strip("-")
