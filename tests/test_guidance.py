"""Tests for aps.utils.guidance.load_guidance."""

from unittest.mock import patch


class TestLoadGuidance:
    def test_returns_rules_when_enabled(self):
        with patch("aps.config._config", {"guidance_enabled": True}):
            from aps.utils.guidance import load_guidance
            assert len(load_guidance()) > 0

    def test_returns_empty_when_disabled(self):
        with patch("aps.config._config", {"guidance_enabled": False}):
            from aps.utils.guidance import load_guidance
            assert load_guidance() == ""

    def test_returns_empty_when_key_missing(self):
        with patch("aps.config._config", {}):
            from aps.utils.guidance import load_guidance
            assert load_guidance() == ""

    def test_content_contains_key_rules(self):
        with patch("aps.config._config", {"guidance_enabled": True}):
            from aps.utils.guidance import load_guidance
            result = load_guidance().lower()
            assert "mock data mandate" in result
            assert "lazy coding" in result
            assert "[phase: ...]" in result
