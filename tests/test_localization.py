"""
Tests for localized messages, themes and length presets.
"""

import pytest

from localization import (
    get_catalog,
    get_language_instruction,
    get_story_themes,
    get_supported_languages,
    get_text,
    parse_target_seconds,
)


class TestTargetSeconds:
    @pytest.mark.parametrize("length, expected", [
        ("Short", 60),
        ("Medium (about 3 minutes)", 180),
        ("Long", 300),
        ("Trung bình", 180),
        ("90 seconds", 90),
        ("45 giây", 45),
        ("30秒", 30),
        ("2 phút", 120),
        ("4", 240),
        ("as long as it takes", 60),
        ("", 60),
    ])
    def test_parse(self, length, expected):
        assert parse_target_seconds(length) == expected


class TestCatalog:
    def test_every_language_has_every_key(self):
        keys = set(get_catalog("en"))
        for code in get_supported_languages():
            assert set(get_catalog(code)) == keys

    def test_missing_language_falls_back_to_english(self):
        assert get_text("ja", "story_failed") == get_text("en", "story_failed")
        assert get_text("xx", "design_empty") == get_text("en", "design_empty")

    def test_placeholders_are_filled(self):
        text = get_text("en", "fix_unparseable", position="Shot A -> Shot B")
        assert '"Shot A -> Shot B"' in text

    def test_vietnamese_message(self):
        assert get_text("vi", "report_missing") == "Hãy chạy kiểm tra mạch phim trước."

    def test_manual_titles_are_lists(self):
        assert len(get_text("vi", "manual_titles")) == 3


class TestThemesAndInstructions:
    def test_story_themes(self):
        assert len(get_story_themes("en")) == 9
        assert get_story_themes("vi")[0] == "Cuộc sống Đồng quê yên bình"
        assert get_story_themes("ja") == get_story_themes("en")

    def test_language_instruction_pins_english_twins(self):
        for code in ("en", "vi", "ja", "xx"):
            assert get_language_instruction(code).endswith(
                "Fields ending in _en are always written in English."
            )
        assert "Vietnamese" in get_language_instruction("vi")
        assert get_language_instruction("xx") == get_language_instruction("en")
