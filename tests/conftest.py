"""
Shared fixtures for the Production Assistant test suite.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from config_manager import AppConfig, AuditConfig, UIConfig
from data_models import (
    BackgroundDesign,
    CharacterDesign,
    ContinuityIssue,
    ContinuityReport,
    DetailedScores,
    Scene,
    StoryFramework,
)
from gemini_service import GeminiService
from project_store import ProjectStore


def make_raw_scene(number: int, **overrides):
    """A breakdown scene the way the model returns it"""
    scene = {
        "shotNumber": number,
        "beatIndex": 0,
        "duration": 5,
        "location": f"Cánh đồng {number}",
        "location_en": f"Meadow {number}",
        "timeOfDay": "Morning",
        "mood": "calm",
        "action": f"Mei walks, shot {number}",
        "action_en": f"Mei walks, shot {number}",
        "visualNotes": "soft light",
        "motionNotes": "gió nhẹ",
        "motionNotes_en": "gentle wind",
        "soundNotes": "chim hót",
        "soundNotes_en": "birdsong",
        "suggestedShotType": "Wide",
    }
    scene.update(overrides)
    return scene


def make_scene(number: int, **overrides) -> Scene:
    fields = dict(
        id=f"shot-{number}",
        global_shot_number=number,
        shot_number=number,
        beat_index=0,
        duration=5,
        location=f"Meadow {number}",
        location_en=f"Meadow {number}",
        time_of_day="Morning",
        mood="calm",
        action=f"Mei walks, shot {number}",
        action_en=f"Mei walks, shot {number}",
        motion_notes="gentle wind",
        motion_notes_en="gentle wind",
        sound_notes="birdsong",
        sound_notes_en="birdsong",
        suggested_shot_type="Wide",
    )
    fields.update(overrides)
    return Scene(**fields)


@pytest.fixture
def raw_story():
    return {
        "logline": "A girl follows a fox cub into the forest",
        "theme": "Nature and the forest spirits",
        "setting": "A village at the edge of a cedar forest",
        "mainCharacter": "Mei",
        "storyBeats": ["Mei finds the cub", "The forest opens", "Mei returns home"],
        "suggestedTitles": ["The Fox Path"],
        "hashtags": ["#fox", "#forest"],
        "summary": "Mei befriends a fox cub.",
    }


@pytest.fixture
def raw_transition():
    scene = make_raw_scene(0)
    del scene["shotNumber"]
    del scene["beatIndex"]
    scene.update(action="Leaves drift", action_en="Leaves drift", suggestedShotType="Contemplative")
    return scene


@pytest.fixture
def raw_report():
    return {
        "overall_score": 38,
        "detailed_scores": {
            "spatial": 7, "temporal": 8, "emotional": 6,
            "visual": 7, "pacing": 5, "ghibli_alignment": 8,
        },
        "major_issues": [
            {
                "id": "issue-1",
                "between_shots": "Shot 2 -> Shot 3",
                "issue_type": "spatial",
                "severity": "major",
                "description": "Mei jumps from the meadow to the river",
                "ghibli_principle_violated": "Ma",
                "fix_suggestion": "Add a walking shot",
            }
        ],
        "suggestions": [],
        "emotional_curve": [3, 5, 4],
        "rhythm_score": 6,
    }


@pytest.fixture
def sample_story():
    return StoryFramework(
        logline="A girl follows a fox cub into the forest",
        theme="Nature and the forest spirits",
        setting="Cedar forest village",
        main_character="Mei",
        story_beats=["Mei finds the cub", "Mei returns home"],
        suggested_titles=["The Fox Path"],
        hashtags=["#fox"],
        summary="Mei befriends a fox cub.",
    )


@pytest.fixture
def sample_scenes():
    return [make_scene(n) for n in range(1, 5)]


@pytest.fixture
def sample_report():
    return ContinuityReport(
        overall_score=38,
        detailed_scores=DetailedScores(spatial=7, temporal=8, emotional=6, visual=7,
                                       pacing=5, style_alignment=8),
        issues=[
            ContinuityIssue(
                id="issue-1",
                between_shots="Shot 2 -> Shot 3",
                issue_type="spatial",
                severity="major",
                description="Mei jumps from the meadow to the river",
            )
        ],
        emotional_curve=[3, 5, 4],
        rhythm_score=6,
    )


@pytest.fixture
def sample_character():
    return CharacterDesign(id="char-1", name="Mei", name_en="Mei", age="8",
                           personality="tò mò", personality_en="curious")


@pytest.fixture
def sample_background():
    return BackgroundDesign(id="bg-1", location="Meadow", location_en="Meadow",
                            weather="Clear", palette=["#E6E2D3"], usage_count=3)


@pytest.fixture
def app_config():
    """Configuration with progress output and re-audit off"""
    return AppConfig(ui=UIConfig(show_progress=False),
                     audit=AuditConfig(reaudit_after_fix=False))


@pytest.fixture
def mock_gemini_service():
    """Create a mock Gemini service for testing"""
    service = MagicMock(spec=GeminiService)
    service.generate_json = AsyncMock()
    service.generate_text = AsyncMock(
        return_value="Aesthetic: watercolor\nColor: moss greens\nLighting: morning haze\n"
    )
    service.default_model = "gemini-test"
    service.fast_model = "gemini-test-fast"
    return service


@pytest.fixture
def store():
    return ProjectStore()
