"""
Unit tests for slug helpers.
"""

import pytest

from survey_platform.services.slug import generate_slug, is_valid_slug, make_slug_unique

pytestmark = pytest.mark.unit


class TestGenerateSlug:

    def test_basic(self):
        assert generate_slug("Acme Research") == "acme-research"

    def test_accents_and_symbols(self):
        assert generate_slug("Café & Restaurant") == "cafe-restaurant"

    def test_underscores_and_repeated_separators(self):
        assert generate_slug("  my__team -- name  ") == "my-team-name"

    def test_only_symbols(self):
        assert generate_slug("!!!") == ""


class TestMakeSlugUnique:

    def test_unused_slug_kept(self):
        assert make_slug_unique("acme", ["other"]) == "acme"

    def test_counter_appended(self):
        assert make_slug_unique("acme", ["acme", "acme-1"]) == "acme-2"


class TestIsValidSlug:

    @pytest.mark.parametrize("slug", ["abc", "acme-research", "a1-b2", "a" * 63])
    def test_valid(self, slug):
        assert is_valid_slug(slug) is True

    @pytest.mark.parametrize("slug", ["ab", "-abc", "abc-", "Abc", "ab_c", "a" * 64])
    def test_invalid(self, slug):
        assert is_valid_slug(slug) is False
