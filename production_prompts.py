"""
Production prompt assembly.

Renders the character and environment master references, the per-shot
keyframe and motion prompts and the full production script from local
project data only. The wording and field order here are the export format
consumed downstream, so changes must be made deliberately.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from data_models import BackgroundDesign, CharacterDesign, Project, Scene
from localization import get_text

DEFAULT_AESTHETIC = "hand-drawn classic anime, watercolor texture, organic lines"
DEFAULT_COLOR = "vibrant yet soft natural palette"
DEFAULT_LIGHTING = "soft diffused natural light"

SCRIPT_HEADER = "=== STUDIO GHIBLI MASTER PRODUCTION SCRIPT ===\n\n"
ASSET_SECTION = "--- PHASE 1: ASSET MANIFEST ---\n"
SHOT_SECTION = "\n\n--- PHASE 2: SHOT PRODUCTION ---\n"
SHOT_SEPARATOR = "\n------------------------------------------\n"


@dataclass
class CoreStyle:
    """Aesthetic, color and lighting lines pulled from the style guide"""
    aesthetic: str = DEFAULT_AESTHETIC
    color: str = DEFAULT_COLOR
    lighting: str = DEFAULT_LIGHTING


@dataclass
class SceneReferences:
    """Assets a shot refers to, resolved by name and location matching"""
    characters: List[CharacterDesign]
    background: Optional[BackgroundDesign]
    character_names: str
    background_name: str

    @property
    def character(self) -> Optional[CharacterDesign]:
        return self.characters[0] if self.characters else None


def _style_line(lines: Sequence[str], label: str, default: str) -> str:
    line = next((line for line in lines if label in line), None)
    if line is None:
        return default
    parts = line.split(":")
    value = parts[1].strip() if len(parts) > 1 else ""
    return value or default


def parse_core_style(core_aesthetic: Optional[str]) -> CoreStyle:
    if not core_aesthetic:
        return CoreStyle()
    lines = core_aesthetic.split("\n")
    return CoreStyle(
        aesthetic=_style_line(lines, "Aesthetic:", DEFAULT_AESTHETIC),
        color=_style_line(lines, "Color:", DEFAULT_COLOR),
        lighting=_style_line(lines, "Lighting:", DEFAULT_LIGHTING),
    )


def _mentions(needles: Sequence[str], haystack: str) -> bool:
    # Empty names never match, otherwise "" would be in every string
    return any(needle and needle.lower() in haystack for needle in needles)


def resolve_references(scene: Scene, characters: Sequence[CharacterDesign],
                       backgrounds: Sequence[BackgroundDesign]) -> SceneReferences:
    """Find the characters and background a shot refers to"""
    action = (scene.action or "").lower()
    cast = (scene.characters_in_scene or "").lower()
    location = (scene.location or "").lower()

    matched = [
        c for c in characters
        if _mentions([c.name, c.name_en], action) or _mentions([c.name, c.name_en], cast)
    ]
    background = next(
        (bg for bg in backgrounds if _mentions([bg.location, bg.location_en], location)), None
    )

    return SceneReferences(
        characters=matched,
        background=background,
        character_names=", ".join(c.name_en for c in matched) if matched else "Generic character",
        background_name=(background.location_en if background else None)
        or scene.location_en or scene.location,
    )


def character_prompt(character: CharacterDesign, style: CoreStyle) -> str:
    return "\n".join([
        f"{(character.name_en or character.name).upper()} – MASTER CHARACTER REFERENCE",
        "",
        "A single character design reference, full body, neutral standing pose, facing slightly to the left, no background.",
        "",
        "Physical traits:",
        f"- Age: {character.age or 'Unknown'}",
        f"- Personality: {character.personality_en or character.personality}",
        f"- Features: {character.description_en or 'Expressive eyes, gentle facial structure, natural body proportions'}",
        "",
        "Clothing:",
        f"- {character.clothing_style or 'Consistent everyday clothing'}, simple design, functional and nostalgic aesthetic",
        "",
        "Style and line art:",
        "- soft hand-drawn line art",
        "- subtle line weight variation",
        "- no hard outlines",
        "",
        "Color and rendering:",
        f"- {style.color or 'flat pastel base colors'}",
        "- soft watercolor shading",
        "- low contrast",
        "- no dramatic lighting",
        "- no strong shadows",
        "",
        "Expression and mood:",
        "- calm, neutral expression",
        "- gentle and natural posture",
        "",
        "Style:",
        "- Studio Ghibli character design",
        "- model sheet style",
        "- clean, consistent, reusable character reference",
        "- no environment, no props, no action",
    ])


def environment_prompt(background: BackgroundDesign, style: CoreStyle) -> str:
    return "\n".join([
        f"{(background.location_en or background.location).upper()} – MASTER ENVIRONMENT REFERENCE",
        "",
        "A wide, reusable Studio Ghibli style background environment, no characters, designed for multiple camera angles.",
        "",
        "Spatial layout:",
        "- Foreground elements: Natural foliage, small hand-drawn details",
        f"- Midground structures: {background.description_en or 'Architectural elements or central landscape focus'}",
        "- Background depth and distant elements: Atmospheric mist, soft mountain silhouettes or sky",
        "",
        "Lighting:",
        f"- {style.lighting or 'soft diffused natural light'}",
        "- ambient and bounce light behavior following golden hour or soft daylight",
        "",
        "Materials and textures:",
        "- hand-painted watercolor layers",
        "- organic paper grain",
        "- painterly imperfections, weathered wooden or stone textures",
        "",
        "Color palette:",
        f"- {style.color or 'dominant natural earth tones'}",
        "- saturation level: medium-low for nostalgic feel",
        "- harmony rules based on environment's mood",
        "",
        "Atmosphere:",
        "- nostalgic, calm, high atmospheric depth",
        f"- weather: {background.weather or 'clear'}",
        "- air quality: crisp, misty, or soft hazy bloom",
        "",
        "Style:",
        "- Studio Ghibli background art",
        "- hand-painted watercolor layers",
        "- organic paper grain",
        "- painterly, cinematic but calm",
        "- background illustration only",
    ])


def keyframe_prompt(scene: Scene, refs: SceneReferences, style: CoreStyle) -> str:
    character = refs.character
    subject = (character.name_en if character else None) or "Character"
    place = (refs.background.location_en if refs.background else None) or scene.location_en
    return "\n".join([
        f"#SHOT [{scene.global_shot_number}] – BANANA PRO (KEYFRAME)",
        f"Subject: {subject} in {place}.",
        f"Action: {scene.action_en}.",
        f"Aesthetic: Official Ghibli art style, watercolor background art, {style.aesthetic}.",
        f"Lighting: {style.lighting}.",
        "Technical: High-resolution keyframe, visible pencil line texture, hand-painted aesthetic.",
    ])


def motion_prompt(scene: Scene) -> str:
    motion = scene.motion_notes_en or "subtle organic movement"
    return "\n".join([
        f"#SHOT [{scene.global_shot_number}] – VEO 3 (ANIMATION)",
        f"Prompt: [{scene.suggested_shot_type} cinematic animation]. Motion: [{motion}, character "
        "blinking and soft breathing, environment leaves rustling]. Style: [Studio Ghibli "
        "frame-by-frame quality, watercolor painterly motion]. 24fps.",
        "Audio: No background music. No soundtrack. No cinematic score. Environment sound: "
        f"[{scene.sound_notes_en or 'natural ambient sounds'}].",
    ])


def prompts_unlocked(project: Project) -> bool:
    """Production prompts need a shot list and an applied design"""
    return bool(project.scenes) and project.design_applied


def shot_prompts(project: Project) -> List[Tuple[Scene, str, str]]:
    """Keyframe and motion prompt for every shot, in shot order"""
    style = parse_core_style(project.core_aesthetic)
    rendered = []
    for scene in project.scenes or []:
        refs = resolve_references(scene, project.characters, project.backgrounds)
        rendered.append((scene, keyframe_prompt(scene, refs, style), motion_prompt(scene)))
    return rendered


def export_all(project: Project) -> str:
    """Aggregate every asset and shot prompt into one production script"""
    style = parse_core_style(project.core_aesthetic)

    parts = [SCRIPT_HEADER, ASSET_SECTION]
    for character in project.characters:
        parts.append(f"\n{character_prompt(character, style)}\n")
    for background in project.backgrounds:
        parts.append(f"\n{environment_prompt(background, style)}\n")

    parts.append(SHOT_SECTION)
    for _, keyframe, motion in shot_prompts(project):
        parts.append(SHOT_SEPARATOR)
        parts.append(f"{keyframe}\n")
        parts.append(f"\n{motion}\n")
    return "".join(parts)


# Shot list


def is_contemplative(scene: Scene) -> bool:
    return (
        "contemplative" in (scene.suggested_shot_type or "").lower()
        or "static" in (scene.motion_notes_en or "").lower()
        or "breathing" in (scene.action_en or "").lower()
    )


def total_duration(scenes: Sequence[Scene]) -> int:
    return sum(scene.duration for scene in scenes)


def rhythm_summary(scenes: Sequence[Scene]) -> Dict[str, float]:
    """Contemplative share and the longest unbroken run of action shots"""
    contemplative = 0
    longest_run = 0
    run = 0
    for scene in scenes:
        if is_contemplative(scene):
            contemplative += 1
            run = 0
        else:
            run += 1
            longest_run = max(longest_run, run)

    count = len(scenes)
    return {
        "shots": count,
        "contemplative": contemplative,
        "contemplative_ratio": contemplative / count if count else 0.0,
        "longest_action_run": longest_run,
        "total_duration": total_duration(scenes),
    }


def shot_list_text(scenes: Sequence[Scene], language: str = "en") -> str:
    """Plain-text shot list with localized labels"""

    def label(name: str) -> str:
        return get_text(language, f"label_{name}")

    entries = []
    for scene in scenes:
        entries.append(
            f"[SHOT {scene.global_shot_number}]\n"
            f"{label('location')}: {scene.location} ({scene.location_en})\n"
            f"{label('time')}: {scene.time_of_day}\n"
            f"{label('duration')}: {scene.duration}s | {label('shot_type')}: {scene.suggested_shot_type}\n"
            f"{label('action')}: {scene.action}\n"
            f"{label('action_en')}: {scene.action_en}\n"
            f"{label('motion')}: {scene.motion_notes}\n"
            f"{label('audio')}: {scene.sound_notes}\n"
            f"{label('visual')}: {scene.visual_notes}\n"
            + "-" * 50
        )
    return "\n\n".join(entries)
