"""
Prompt builders for every generation call.

Each function is pure: the same project-derived input always yields the same
instruction text. The production rules embedded here (shot lengths, pacing,
sound) are guidance for the model and are not checked on the way back.
"""

import json
from typing import Any, Dict, List, Sequence

from data_models import Scene
from localization import get_language_instruction


def _to_json(data: Any) -> str:
    return json.dumps(data, ensure_ascii=False)


def build_story_framework_prompt(idea: str, story_type: str, target_seconds: int,
                                 language: str = "en") -> str:
    return (
        f'Idea: "{idea}". Genre: "{story_type}". Target runtime: {target_seconds}s.\n'
        "Write a detailed story framework for a hand-drawn classic anime short.\n"
        "Focus on humanity, stillness and emotional depth.\n"
        "Describe the motion of characters and of the environment in full.\n"
        f"{get_language_instruction(language)}\n"
        "Return JSON."
    )


def build_aesthetic_prompt(logline: str, story_type: str) -> str:
    return (
        "You are the art director of a classic hand-drawn animated film.\n"
        f'Based on the script "{logline}" and the theme "{story_type}", write a SHORT style guide in English.\n'
        "NEVER mention the name of any specific studio or copyrighted property.\n"
        "\n"
        "Keep every item very short (1-2 lines):\n"
        "1. Aesthetic: the hand-drawn style (watercolor, organic lines, painterly).\n"
        "2. Color: an emotional palette that fits this story.\n"
        "3. Lighting: the signature treatment of light (soft diffused, golden hour, atmospheric mist).\n"
        "\n"
        "Tailor color and lighting to the soul of this story. Return plain text as:\n"
        "Aesthetic: ...\n"
        "Color: ...\n"
        "Lighting: ..."
    )


def build_scene_breakdown_prompt(story_beats: Sequence[str], story_type: str,
                                 target_seconds: int, language: str = "en") -> str:
    return (
        "You are a storyboard director. Break the following script into camera shots.\n"
        f'Genre: "{story_type}". Target total runtime: about {target_seconds}s.\n'
        "\n"
        "RHYTHM RULES:\n"
        "1. Every shot MUST last 3-8 seconds (optimal for video generation).\n"
        '2. STILLNESS RATIO: at least 30% of the shots are "Contemplative" (no main action, '
        "only environmental motion such as wind and clouds, or a character standing still and breathing).\n"
        "3. NO CRAMMING: never more than 3 consecutive action shots. Alternate with still "
        "shots (breathing room).\n"
        "4. SOUND: every shot describes specific ambient sound. NEVER mention background music.\n"
        "5. Set beatIndex to the zero-based index of the story beat each shot belongs to.\n"
        f"{get_language_instruction(language)}\n"
        "\n"
        f"Script (story beats): {_to_json(list(story_beats))}"
    )


def _continuity_digest(scenes: Sequence[Scene]) -> List[Dict[str, Any]]:
    return [
        {
            "n": scene.global_shot_number,
            "act": scene.action_en,
            "loc": scene.location_en,
            "dur": scene.duration,
            "mood": scene.mood,
            "type": scene.suggested_shot_type,
            "time": scene.time_of_day,
        }
        for scene in scenes
    ]


def build_continuity_prompt(scenes: Sequence[Scene]) -> str:
    return (
        "Analyse the film flow and hand-drawn animation rhythm of the following shot list.\n"
        "\n"
        f"Data: {_to_json(_continuity_digest(scenes))}\n"
        "\n"
        "RHYTHM AUDIT REQUIREMENTS:\n"
        "- Check that at least 30% of shots are contemplative.\n"
        "- Check for any run of more than 3 consecutive action shots.\n"
        '- Propose transition or "breathing" (Ma) shots to reach the ideal rhythm.\n'
        "- Assess spatial and temporal consistency.\n"
        "- In between_shots always name the two bounding shot numbers, e.g. \"Shot 3 -> Shot 4\".\n"
        "- Score overall_score out of 50 and each detailed score out of 10.\n"
        "\n"
        "RETURN JSON."
    )


def build_background_optimization_prompt(scenes: Sequence[Scene], language: str = "en") -> str:
    digest = [
        {
            "n": scene.global_shot_number,
            "loc": scene.location,
            "loc_en": scene.location_en,
            "time": scene.time_of_day,
        }
        for scene in scenes
    ]
    return (
        "You are a background design specialist. Analyse the shot list and find the minimum "
        "number of MASTER backgrounds needed by merging shots that share a geographic location.\n"
        "\n"
        f"Shot data: {_to_json(digest)}\n"
        "\n"
        "RULES:\n"
        "- 1 unique physical place = 1 Master Background.\n"
        "- Write a general description for each Master Background so an artist can paint it "
        "once and reuse it many times.\n"
        "- name_en must reuse the wording of the loc_en values it covers.\n"
        f"{get_language_instruction(language)}"
    )


def build_master_background_prompt(location_en: str, reuse_count: int = 1) -> str:
    return (
        f'Write a detailed Master Background Prompt for the location: "{location_en}" '
        f"(reused in {reuse_count} shots).\n"
        "Requirements: classic animation watercolor style, neutral lighting, rich detail.\n"
        'Return JSON containing "master_prompt", "landmark_elements", "base_palette" '
        "(hex colors)."
    )


def build_seo_translation_prompt(seo: Dict[str, Any], target_language: str) -> str:
    return (
        f"Translate the following SEO data into {target_language}. Keep the keys "
        f'"titles", "summary" and "hashtags": {_to_json(seo)}'
    )


def build_asset_suggestion_prompt(scenes: Sequence[Scene], max_assets: int = 5,
                                  language: str = "en") -> str:
    return (
        f"Suggest characters and backgrounds (at most {max_assets} of each) from: "
        f"{_to_json([scene.to_dict() for scene in scenes])}.\n"
        f"{get_language_instruction(language)}"
    )


def build_keyframe_prompt(elements: Sequence[str]) -> str:
    return (
        f"Create animation keyframe data for: {', '.join(elements)}.\n"
        "Style: natural hand-drawn animation.\n"
        "Return JSON."
    )


def build_ambient_sound_prompt(context: Dict[str, Any]) -> str:
    return (
        "Based on the following setting, suggest ambient sounds for a hand-drawn animated film: "
        f"{_to_json(context)}."
    )


def build_transition_prompt(shot_a: Scene, shot_b: Scene, context: str,
                            language: str = "en") -> str:
    return (
        "Create one transition shot between Shot A and Shot B in hand-drawn animation style.\n"
        f"Shot A: {_to_json(shot_a.to_dict())}\n"
        f"Shot B: {_to_json(shot_b.to_dict())}\n"
        f"Context: {context}\n"
        f"{get_language_instruction(language)}"
    )
