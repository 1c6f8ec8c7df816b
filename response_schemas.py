"""
Response shape descriptors sent with structured generation requests.

Schemas use the Gemini OpenAPI subset (upper-case type names). The
``required`` lists double as the strict-field lists used by the reconciler.
"""

from typing import Any, Dict, List, Optional


def _string() -> Dict[str, Any]:
    return {"type": "STRING"}


def _integer() -> Dict[str, Any]:
    return {"type": "INTEGER"}


def _number() -> Dict[str, Any]:
    return {"type": "NUMBER"}


def _enum(values: List[str]) -> Dict[str, Any]:
    return {"type": "STRING", "format": "enum", "enum": list(values)}


def _array(items: Dict[str, Any]) -> Dict[str, Any]:
    return {"type": "ARRAY", "items": items}


def _object(properties: Dict[str, Any], required: Optional[List[str]] = None) -> Dict[str, Any]:
    schema = {"type": "OBJECT", "properties": properties}
    if required:
        schema["required"] = list(required)
    return schema


ISSUE_TYPES = ["spatial", "temporal", "emotional", "visual", "narrative"]
SEVERITIES = ["critical", "major", "minor"]

STORY_FRAMEWORK = _object(
    {
        "logline": _string(),
        "theme": _string(),
        "setting": _string(),
        "mainCharacter": _string(),
        "summary": _string(),
        "suggestedTitles": _array(_string()),
        "hashtags": _array(_string()),
        "storyBeats": _array(_string()),
    },
    ["logline", "theme", "setting", "mainCharacter", "storyBeats", "summary",
     "suggestedTitles", "hashtags"],
)

_SHOT_PROPERTIES = {
    "duration": _integer(),
    "location": _string(),
    "location_en": _string(),
    "action": _string(),
    "action_en": _string(),
    "motionNotes": _string(),
    "motionNotes_en": _string(),
    "soundNotes": _string(),
    "soundNotes_en": _string(),
    "suggestedShotType": _string(),
    "mood": _string(),
    "timeOfDay": _string(),
    "visualNotes": _string(),
}

SCENE = _object(
    {
        "shotNumber": _integer(),
        "beatIndex": _integer(),
        "charactersInScene": _string(),
        **_SHOT_PROPERTIES,
    },
    ["shotNumber", "duration", "location", "location_en", "action", "action_en",
     "motionNotes", "motionNotes_en", "suggestedShotType", "timeOfDay"],
)

SCENE_BREAKDOWN = _object(
    {
        "scenes": _array(SCENE),
        "suggestedAnimationPriorities": _array(_string()),
    },
    ["scenes", "suggestedAnimationPriorities"],
)

TRANSITION_SHOT = _object(
    dict(_SHOT_PROPERTIES),
    ["duration", "location", "location_en", "action", "action_en", "motionNotes",
     "motionNotes_en", "soundNotes", "soundNotes_en", "suggestedShotType", "mood",
     "timeOfDay", "visualNotes"],
)

CONTINUITY_ISSUE = _object(
    {
        "id": _string(),
        "between_shots": _string(),
        "issue_type": _enum(ISSUE_TYPES),
        "severity": _enum(SEVERITIES),
        "description": _string(),
        "ghibli_principle_violated": _string(),
        "fix_suggestion": _string(),
    },
    ["id", "between_shots", "issue_type", "severity", "description",
     "ghibli_principle_violated", "fix_suggestion"],
)

DETAILED_SCORES = _object(
    {
        "spatial": _number(),
        "temporal": _number(),
        "emotional": _number(),
        "visual": _number(),
        "pacing": _number(),
        "ghibli_alignment": _number(),
    },
    ["spatial", "temporal", "emotional", "visual", "pacing", "ghibli_alignment"],
)

CONTINUITY_REPORT = _object(
    {
        "overall_score": _number(),
        "detailed_scores": DETAILED_SCORES,
        "major_issues": _array(CONTINUITY_ISSUE),
        "suggestions": _array(_object({
            "position": _string(),
            "action": _string(),
            "reason": _string(),
            "suggested_content": _string(),
        })),
        "emotional_curve": _array(_number()),
        "rhythm_score": _number(),
    },
    ["overall_score", "detailed_scores", "major_issues", "emotional_curve", "rhythm_score"],
)

MASTER_BACKGROUND = _object(
    {
        "id": _string(),
        "name": _string(),
        "name_en": _string(),
        "scenes": _array(_integer()),
        "reuse_count": _integer(),
        "description": _string(),
    },
    ["id", "name", "name_en", "scenes", "reuse_count", "description"],
)

BACKGROUND_OPTIMIZATION = _object(
    {
        "total_scenes": _integer(),
        "original_locations_needed": _integer(),
        "optimized_locations_needed": _integer(),
        "reduction_percentage": _number(),
        "master_backgrounds": _array(MASTER_BACKGROUND),
        "consolidation_suggestions": _array(_string()),
    },
    ["total_scenes", "original_locations_needed", "optimized_locations_needed",
     "reduction_percentage", "master_backgrounds"],
)

MASTER_BACKGROUND_PROMPT = _object(
    {
        "master_prompt": _string(),
        "landmark_elements": _array(_string()),
        "base_palette": _array(_string()),
    },
    ["master_prompt", "base_palette"],
)

ASSET_SUGGESTIONS = _object(
    {
        "characters": _array(_object(
            {
                "name": _string(),
                "name_en": _string(),
                "age": _string(),
                "personality": _string(),
                "personality_en": _string(),
                "description": _string(),
                "description_en": _string(),
            },
            ["name"],
        )),
        "backgrounds": _array(_object({
            "location": _string(),
            "location_en": _string(),
            "description": _string(),
            "description_en": _string(),
        })),
    }
)

KEYFRAME_DATA = _object(
    {
        "keyframes": _array(_object({
            "frame": _integer(),
            "element": _string(),
            "action": _string(),
            "value": _string(),
        })),
    }
)

SEO_TRANSLATION = _object(
    {
        "titles": _array(_string()),
        "summary": _string(),
        "hashtags": _array(_string()),
    },
    ["titles", "summary", "hashtags"],
)

AMBIENT_SOUNDS = _array(_object(
    {
        "type": _string(),
        "sound": _string(),
        "vol": _string(),
    },
    ["type", "sound", "vol"],
))


def required_fields(schema: Dict[str, Any]) -> List[str]:
    """Return the required property names of an object schema"""
    return list(schema.get("required", []))
