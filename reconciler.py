"""
Reconciles raw model output into the typed project entities.

Required fields come from the response schemas and fail fast when missing;
optional fields are filled from the defaulting tables below, never ad hoc at
the point of use. Every structural change to a scene list goes through
``renumber_scenes`` so global shot numbers stay a dense 1..N sequence.
"""

import dataclasses
import logging
import re
import time
import uuid
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import response_schemas
from data_models import (
    BackgroundDesign,
    CharacterDesign,
    ContinuityIssue,
    ContinuityReport,
    ContinuitySuggestion,
    DetailedScores,
    OptimizationAnalysis,
    Scene,
    StoryFramework,
)
from localization import get_text

logger = logging.getLogger(__name__)

TRANSITION_ICON = "🔄"

SCENE_DEFAULTS = {
    "beatIndex": 0,
    "mood": "",
    "visualNotes": "",
    "soundNotes": "",
    "soundNotes_en": "",
    "charactersInScene": None,
}

CHARACTER_DEFAULTS = {
    "age": "?",
    "personality": "",
    "personality_en": "",
    "description": "",
    "description_en": "",
}

MASTER_BACKGROUND_DEFAULTS = {
    "scenes": [],
    "reuse_count": None,
}

ISSUE_DEFAULTS = {
    "ghibli_principle_violated": "",
    "fix_suggestion": "",
}

MANUAL_HASHTAGS = ["#manual_script", "#animation", "#storytelling"]


class ReconciliationError(Exception):
    """Raised when model output lacks required fields or has the wrong shape"""
    pass


def new_id(prefix: str) -> str:
    """Process-unique identifier: millisecond timestamp plus random suffix"""
    return f"{prefix}-{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}"


def _require(raw: Any, required: Iterable[str], entity: str) -> Dict[str, Any]:
    if not isinstance(raw, dict):
        raise ReconciliationError(f"{entity}: expected an object, got {type(raw).__name__}")
    missing = [name for name in required if raw.get(name) is None]
    if missing:
        raise ReconciliationError(f"{entity}: missing required fields {missing}")
    return raw


def _with_defaults(raw: Dict[str, Any], defaults: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(defaults)
    merged.update({k: v for k, v in raw.items() if v is not None})
    return merged


def _as_int(value: Any, name: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ReconciliationError(f"{name}: expected an integer, got {value!r}")


def _as_float(value: Any, name: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ReconciliationError(f"{name}: expected a number, got {value!r}")


def _as_str_list(value: Any, name: str) -> List[str]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ReconciliationError(f"{name}: expected a list, got {type(value).__name__}")
    return [str(item) for item in value]


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


# Story


def story_from_ai(raw: Any) -> StoryFramework:
    data = _require(raw, response_schemas.required_fields(response_schemas.STORY_FRAMEWORK),
                    "story framework")
    return StoryFramework(
        logline=str(data["logline"]),
        theme=str(data["theme"]),
        setting=str(data["setting"]),
        main_character=str(data["mainCharacter"]),
        story_beats=_as_str_list(data["storyBeats"], "storyBeats"),
        suggested_titles=_as_str_list(data["suggestedTitles"], "suggestedTitles"),
        hashtags=_as_str_list(data["hashtags"], "hashtags"),
        summary=str(data["summary"]),
    )


def story_from_manual_text(text: str, main_character: str, story_type: str,
                           language: str = "en") -> StoryFramework:
    """Synthesize a framework whose beats are the non-empty lines of ``text``"""
    beats = [line.strip() for line in text.split("\n") if line.strip()]
    return StoryFramework(
        logline=get_text(language, "manual_logline"),
        theme=story_type,
        setting=get_text(language, "unknown_setting"),
        main_character=main_character or "Protagonist",
        story_beats=beats,
        suggested_titles=list(get_text(language, "manual_titles")),
        hashtags=list(MANUAL_HASHTAGS),
        summary=text[:200] + "...",
    )


# Scenes


def _scene_fields(data: Dict[str, Any], entity: str) -> Dict[str, Any]:
    data = _with_defaults(data, SCENE_DEFAULTS)
    return dict(
        duration=_as_int(data["duration"], f"{entity}.duration"),
        location=str(data["location"]),
        location_en=str(data["location_en"]),
        time_of_day=str(data["timeOfDay"]),
        mood=str(data["mood"]),
        action=str(data["action"]),
        action_en=str(data["action_en"]),
        visual_notes=str(data["visualNotes"]),
        motion_notes=str(data["motionNotes"]),
        motion_notes_en=str(data["motionNotes_en"]),
        sound_notes=str(data["soundNotes"]),
        sound_notes_en=str(data["soundNotes_en"]),
        suggested_shot_type=str(data["suggestedShotType"]),
        characters_in_scene=data["charactersInScene"],
        beat_index=_as_int(data["beatIndex"], f"{entity}.beatIndex"),
    )


def scenes_from_breakdown(raw: Any) -> Tuple[List[Scene], List[str]]:
    """Build the shot list and animation priorities from a breakdown reply"""
    data = _require(raw, response_schemas.required_fields(response_schemas.SCENE_BREAKDOWN),
                    "scene breakdown")
    if not isinstance(data["scenes"], list):
        raise ReconciliationError("scene breakdown: scenes must be a list")

    required = response_schemas.required_fields(response_schemas.SCENE)
    stamp = int(time.time() * 1000)
    scenes = []
    for idx, item in enumerate(data["scenes"]):
        entity = f"scene[{idx}]"
        shot = _require(item, required, entity)
        scenes.append(Scene(
            id=f"shot-{idx}-{stamp}",
            global_shot_number=idx + 1,
            shot_number=_as_int(shot["shotNumber"], f"{entity}.shotNumber"),
            **_scene_fields(shot, entity),
        ))

    priorities = _as_str_list(data["suggestedAnimationPriorities"], "suggestedAnimationPriorities")
    return scenes, priorities


def transition_from_ai(raw: Any, beat_index: int) -> Scene:
    """Build a transition shot; numbering is assigned when it is inserted"""
    required = response_schemas.required_fields(response_schemas.TRANSITION_SHOT)
    data = _require(raw, required, "transition shot")
    fields = _scene_fields(data, "transition shot")
    fields["beat_index"] = beat_index
    return Scene(id=new_id("trans"), suggested_shot_icon=TRANSITION_ICON, **fields)


def renumber_scenes(scenes: Sequence[Scene], sync_display: bool = False) -> List[Scene]:
    """Return copies numbered 1..N in list order.

    With ``sync_display`` the display and scene numbers follow the global
    number too, as they must after a shot is spliced in.
    """
    renumbered = []
    for position, scene in enumerate(scenes, start=1):
        changes = {"global_shot_number": position}
        if sync_display:
            changes["shot_number"] = position
            changes["scene_number"] = position
        renumbered.append(dataclasses.replace(scene, **changes))
    return renumbered


def parse_shot_range(text: str) -> Optional[Tuple[int, int]]:
    """Extract the first two integers of a free-form range like "Shot 3 -> 4".

    Returns None when fewer than two integers appear.
    """
    numbers = re.findall(r"\d+", text or "")
    if len(numbers) < 2:
        return None
    return int(numbers[0]), int(numbers[1])


def find_scene(scenes: Sequence[Scene], global_shot_number: int) -> Optional[Scene]:
    """Look a scene up by its global shot number, not its list index"""
    for scene in scenes:
        if scene.global_shot_number == global_shot_number:
            return scene
    return None


def insert_transition(scenes: Sequence[Scene], transition: Scene,
                      number_a: int, number_b: int) -> List[Scene]:
    """Splice ``transition`` between two shots and renumber densely"""
    placeholder = (number_a + number_b) / 2
    keyed = [(scene.global_shot_number, scene) for scene in scenes]
    keyed.append((placeholder, transition))
    # sorted() is stable, so on ties the new shot lands after the existing one
    ordered = [scene for _, scene in sorted(keyed, key=lambda pair: pair[0])]
    return renumber_scenes(ordered, sync_display=True)


def remove_scene(scenes: Sequence[Scene], scene_id: str) -> List[Scene]:
    return renumber_scenes([scene for scene in scenes if scene.id != scene_id], sync_display=True)


def move_scene(scenes: Sequence[Scene], scene_id: str, new_position: int) -> List[Scene]:
    """Move a scene to a 1-based position (clamped) and renumber"""
    remaining = [scene for scene in scenes if scene.id != scene_id]
    moving = [scene for scene in scenes if scene.id == scene_id]
    if not moving:
        return renumber_scenes(scenes, sync_display=True)
    index = max(0, min(len(remaining), new_position - 1))
    remaining.insert(index, moving[0])
    return renumber_scenes(remaining, sync_display=True)


# Continuity


def _issue_from_ai(raw: Any, index: int) -> Optional[ContinuityIssue]:
    required = [name for name in response_schemas.required_fields(response_schemas.CONTINUITY_ISSUE)
                if name not in ISSUE_DEFAULTS]
    try:
        data = _with_defaults(_require(raw, required, f"issue[{index}]"), ISSUE_DEFAULTS)
    except ReconciliationError as e:
        logger.debug(f"Dropping malformed continuity issue: {e}")
        return None

    issue_type = str(data["issue_type"]).lower()
    severity = str(data["severity"]).lower()
    if issue_type not in response_schemas.ISSUE_TYPES or severity not in response_schemas.SEVERITIES:
        logger.debug(f"Dropping continuity issue with unknown tags: {issue_type}/{severity}")
        return None

    return ContinuityIssue(
        id=str(data["id"]),
        between_shots=str(data["between_shots"]),
        issue_type=issue_type,
        severity=severity,
        description=str(data["description"]),
        principle_violated=str(data["ghibli_principle_violated"]),
        fix_suggestion=str(data["fix_suggestion"]),
    )


def _dedupe_issues(issues: Iterable[ContinuityIssue]) -> List[ContinuityIssue]:
    seen_ids = set()
    seen_content = set()
    unique = []
    for issue in issues:
        content = (issue.between_shots, issue.issue_type, issue.description)
        if content in seen_content:
            continue
        seen_content.add(content)
        if not issue.id or issue.id in seen_ids:
            issue = dataclasses.replace(issue, id=new_id("issue"))
        seen_ids.add(issue.id)
        unique.append(issue)
    return unique


def report_from_ai(raw: Any) -> ContinuityReport:
    data = _require(raw, response_schemas.required_fields(response_schemas.CONTINUITY_REPORT),
                    "continuity report")
    scores = _require(data["detailed_scores"],
                      response_schemas.required_fields(response_schemas.DETAILED_SCORES),
                      "detailed_scores")
    if not isinstance(data["major_issues"], list):
        raise ReconciliationError("continuity report: major_issues must be a list")

    issues = [_issue_from_ai(item, idx) for idx, item in enumerate(data["major_issues"])]
    suggestions = [
        ContinuitySuggestion(**{
            name: str(item.get(name, ""))
            for name in ("position", "action", "reason", "suggested_content")
        })
        for item in data.get("suggestions") or []
        if isinstance(item, dict)
    ]

    def score(name: str) -> float:
        return _clamp(_as_float(scores[name], name), 0, 10)

    return ContinuityReport(
        overall_score=_clamp(_as_float(data["overall_score"], "overall_score"), 0, 50),
        detailed_scores=DetailedScores(
            spatial=score("spatial"),
            temporal=score("temporal"),
            emotional=score("emotional"),
            visual=score("visual"),
            pacing=score("pacing"),
            style_alignment=score("ghibli_alignment"),
        ),
        issues=_dedupe_issues(issue for issue in issues if issue is not None),
        suggestions=suggestions,
        emotional_curve=[_as_float(value, "emotional_curve")
                         for value in data["emotional_curve"] or []],
        rhythm_score=_as_float(data["rhythm_score"], "rhythm_score"),
    )


def remove_issue(report: ContinuityReport, issue_id: str) -> ContinuityReport:
    """Return a copy of the report without the resolved issue"""
    return dataclasses.replace(report, issues=[i for i in report.issues if i.id != issue_id])


# Characters and backgrounds


def characters_from_suggestions(raw: Any, language: str = "en") -> List[CharacterDesign]:
    if raw is None:
        return []
    if not isinstance(raw, dict):
        raise ReconciliationError("asset suggestions: expected an object")

    characters = []
    for idx, item in enumerate(raw.get("characters") or []):
        data = _with_defaults(_require(item, ["name"], f"character[{idx}]"), CHARACTER_DEFAULTS)
        characters.append(CharacterDesign(
            id=new_id("char-suggest"),
            name=str(data["name"]),
            name_en=str(data.get("name_en") or data["name"]),
            age=str(data["age"]),
            personality=str(data["personality"]),
            personality_en=str(data["personality_en"]),
            clothing_style=get_text(language, "pending_design"),
            description=str(data["description"]),
            description_en=str(data["description_en"]),
        ))
    return characters


def masters_from_optimization(raw: Any, palette: Sequence[str],
                              language: str = "en",
                              time_of_day_key: str = "daytime"
                              ) -> Tuple[List[BackgroundDesign], OptimizationAnalysis]:
    """Turn an optimization reply into a master-only background set"""
    data = _require(raw, response_schemas.required_fields(response_schemas.BACKGROUND_OPTIMIZATION),
                    "background optimization")
    if not isinstance(data["master_backgrounds"], list):
        raise ReconciliationError("background optimization: master_backgrounds must be a list")

    required = response_schemas.required_fields(response_schemas.MASTER_BACKGROUND)
    required = [name for name in required if name not in MASTER_BACKGROUND_DEFAULTS]

    backgrounds = []
    seen_ids = set()
    for idx, item in enumerate(data["master_backgrounds"]):
        master = _with_defaults(_require(item, required, f"master_background[{idx}]"),
                                MASTER_BACKGROUND_DEFAULTS)
        background_id = f"master-{master['id']}"
        if background_id in seen_ids:
            background_id = new_id("master")
        seen_ids.add(background_id)

        scenes = [_as_int(n, f"master_background[{idx}].scenes") for n in master["scenes"]]
        reuse_count = master["reuse_count"]
        backgrounds.append(BackgroundDesign(
            id=background_id,
            location=str(master["name"]),
            location_en=str(master["name_en"]),
            time_of_day=get_text(language, time_of_day_key),
            weather="Clear",
            season="Summer",
            description=str(master["description"]),
            description_en=str(master["description"]),
            palette=list(palette),
            is_master=True,
            usage_count=_as_int(reuse_count, "reuse_count") if reuse_count is not None else len(scenes),
            associated_scenes=scenes,
        ))

    analysis = OptimizationAnalysis(
        total_scenes=_as_int(data["total_scenes"], "total_scenes"),
        original_locations_needed=_as_int(data["original_locations_needed"],
                                          "original_locations_needed"),
        optimized_locations_needed=_as_int(data["optimized_locations_needed"],
                                           "optimized_locations_needed"),
        reduction_percentage=_as_float(data["reduction_percentage"], "reduction_percentage"),
        master_backgrounds=list(data["master_backgrounds"]),
        consolidation_suggestions=_as_str_list(data.get("consolidation_suggestions"),
                                               "consolidation_suggestions"),
    )
    return backgrounds, analysis


def promote_background(background: BackgroundDesign, raw: Any) -> BackgroundDesign:
    """Flip a background to master and attach the generated master prompt"""
    data = _require(raw, response_schemas.required_fields(response_schemas.MASTER_BACKGROUND_PROMPT),
                    "master background prompt")
    palette = _as_str_list(data["base_palette"], "base_palette") or list(background.palette)
    return dataclasses.replace(
        background,
        is_master=True,
        description_en=str(data["master_prompt"]),
        palette=palette,
    )


def manual_character(name: str, age: str = "", personality: str = "",
                     language: str = "en") -> CharacterDesign:
    return CharacterDesign(
        id=new_id("char"),
        name=name,
        name_en=name,
        age=age or get_text(language, "unknown_age"),
        personality=personality or get_text(language, "ordinary_personality"),
        personality_en=personality,
        clothing_style=get_text(language, "everyday_clothing"),
        description=get_text(language, "manual_character"),
        description_en="",
    )


def manual_background(location: str, description: str = "",
                      palette: Sequence[str] = (), language: str = "en") -> BackgroundDesign:
    return BackgroundDesign(
        id=new_id("bg"),
        location=location,
        location_en=location,
        time_of_day=get_text(language, "daytime"),
        weather=get_text(language, "clear_weather"),
        season=get_text(language, "summer"),
        description=description or get_text(language, "manual_background"),
        description_en="",
        palette=list(palette),
        is_master=True,
    )


# Auxiliary replies


def seo_from_ai(raw: Any) -> Dict[str, Any]:
    data = _require(raw, response_schemas.required_fields(response_schemas.SEO_TRANSLATION),
                    "seo translation")
    return {
        "titles": _as_str_list(data["titles"], "titles"),
        "summary": str(data["summary"]),
        "hashtags": _as_str_list(data["hashtags"], "hashtags"),
    }


def sounds_from_ai(raw: Any) -> List[str]:
    """Keep the sound names of well-formed ambient sound entries"""
    if not isinstance(raw, list):
        raise ReconciliationError("ambient sounds: expected a list")
    return [str(item["sound"]) for item in raw if isinstance(item, dict) and item.get("sound")]


def keyframes_from_ai(raw: Any) -> List[Dict[str, Any]]:
    data = _require(raw, [], "keyframe data")
    keyframes = data.get("keyframes") or []
    if not isinstance(keyframes, list):
        raise ReconciliationError("keyframe data: keyframes must be a list")
    return [item for item in keyframes if isinstance(item, dict)]
