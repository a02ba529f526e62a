"""
URL-safe slug helpers for organization and blog URLs.
"""

import re
import unicodedata
from typing import Iterable

_SLUG_RE = re.compile(r"^[a-z0-9][a-z0-9-]{1,61}[a-z0-9]$")


def generate_slug(text: str) -> str:
    """
    Generate a URL-safe slug.

    Example:
        generate_slug("Café & Restaurant")  # "cafe-restaurant"
    """
    slug = unicodedata.normalize("NFD", text.lower().strip())
    slug = "".join(ch for ch in slug if not unicodedata.combining(ch))
    slug = re.sub(r"[\s_]+", "-", slug)
    slug = re.sub(r"[^a-z0-9-]", "", slug)
    slug = re.sub(r"-+", "-", slug)
    return slug.strip("-")


def make_slug_unique(base_slug: str, existing_slugs: Iterable[str]) -> str:
    """Append -1, -2, ... to base_slug until it is not in existing_slugs."""
    taken = set(existing_slugs)
    slug = base_slug
    counter = 1
    while slug in taken:
        slug = f"{base_slug}-{counter}"
        counter += 1
    return slug


def is_valid_slug(slug: str) -> bool:
    """3-63 lowercase alphanumerics or hyphens, not starting or ending with a hyphen."""
    return bool(_SLUG_RE.match(slug))
