"""
Data models for the Production Assistant.

Every entity serializes to the JSON key names used by exported project files
(camelCase and ``_en`` suffixed keys), so the Python attribute names can stay
snake_case while saved projects remain interchangeable.
"""

from dataclasses import MISSING, dataclass, field, fields
from typing import Any, Dict, List, Optional


def _json_key(f) -> str:
    return f.metadata.get("key", f.name)


def _has_value_default(f) -> bool:
    """True for fields whose default is a real value rather than None"""
    if f.default_factory is not MISSING:
        return True
    return f.default is not MISSING and f.default is not None


def _dump(value: Any) -> Any:
    if isinstance(value, JsonModel):
        return value.to_dict()
    if isinstance(value, list):
        return [_dump(item) for item in value]
    if isinstance(value, dict):
        return {key: _dump(item) for key, item in value.items()}
    return value


class JsonModel:
    """Mixin giving dataclasses a lossless dict round-trip"""

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-ready dictionary using the file key names"""
        return {_json_key(f): _dump(getattr(self, f.name)) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]):
        """Build an instance from a dictionary produced by ``to_dict``"""
        kwargs = {}
        for f in fields(cls):
            for name in (_json_key(f),) + tuple(f.metadata.get("aliases", ())):
                if name in data:
                    # null only stands for "absent" on fields that never hold None
                    if data[name] is not None or not _has_value_default(f):
                        kwargs[f.name] = _load(f, data[name])
                    break
        return cls(**kwargs)


def _load(f, value: Any) -> Any:
    nested = f.metadata.get("nested")
    if nested is None or value is None:
        return value
    if isinstance(value, list):
        return [nested.from_dict(item) for item in value]
    return nested.from_dict(value)


def key(name: str, **extra) -> Dict[str, Any]:
    """Field metadata helper mapping an attribute to its JSON key"""
    return {"key": name, **extra}


@dataclass
class StoryFramework(JsonModel):
    """Story skeleton produced by the story pipeline"""
    logline: str
    theme: str
    setting: str
    main_character: str = field(metadata=key("mainCharacter"))
    story_beats: List[str] = field(default_factory=list, metadata=key("storyBeats"))
    suggested_titles: List[str] = field(default_factory=list, metadata=key("suggestedTitles"))
    hashtags: List[str] = field(default_factory=list)
    summary: str = ""


@dataclass
class Scene(JsonModel):
    """A single shot, the atomic planning unit of the production"""
    id: str
    global_shot_number: int = field(default=0, metadata=key("globalShotNumber"))
    shot_number: int = field(default=0, metadata=key("shotNumber"))
    beat_index: int = field(default=0, metadata=key("beatIndex"))
    duration: int = 0
    location: str = ""
    location_en: str = ""
    time_of_day: str = field(default="", metadata=key("timeOfDay"))
    mood: str = ""
    action: str = ""
    action_en: str = ""
    visual_notes: str = field(default="", metadata=key("visualNotes"))
    motion_notes: str = field(default="", metadata=key("motionNotes"))
    motion_notes_en: str = field(default="", metadata=key("motionNotes_en"))
    sound_notes: str = field(default="", metadata=key("soundNotes"))
    sound_notes_en: str = field(default="", metadata=key("soundNotes_en"))
    suggested_shot_type: str = field(default="", metadata=key("suggestedShotType"))
    suggested_shot_icon: Optional[str] = field(default=None, metadata=key("suggestedShotIcon"))
    characters_in_scene: Optional[str] = field(default=None, metadata=key("charactersInScene"))
    scene_number: Optional[int] = field(default=None, metadata=key("sceneNumber"))


@dataclass
class CharacterDesign(JsonModel):
    """Character asset, suggested by the model or added by hand"""
    id: str
    name: str
    name_en: str = ""
    age: str = ""
    personality: str = ""
    personality_en: str = ""
    clothing_style: str = field(default="", metadata=key("clothingStyle"))
    description: str = ""
    description_en: str = ""


@dataclass
class BackgroundDesign(JsonModel):
    """Background asset; master backgrounds are drawn once and reused"""
    id: str
    location: str
    location_en: str = ""
    time_of_day: str = field(default="", metadata=key("timeOfDay"))
    weather: str = ""
    season: str = ""
    description: str = ""
    description_en: str = ""
    palette: List[str] = field(default_factory=list)
    is_master: bool = field(default=False, metadata=key("isMaster"))
    usage_count: Optional[int] = field(
        default=None, metadata=key("usageCount", aliases=("reuse_count",))
    )
    associated_scenes: List[int] = field(default_factory=list, metadata=key("associatedScenes"))


@dataclass
class ContinuityIssue(JsonModel):
    """A flagged break in continuity between two shots"""
    id: str
    between_shots: str
    issue_type: str
    severity: str
    description: str
    principle_violated: str = field(default="", metadata=key("ghibli_principle_violated"))
    fix_suggestion: str = ""


@dataclass
class ContinuitySuggestion(JsonModel):
    position: str = ""
    action: str = ""
    reason: str = ""
    suggested_content: str = ""


@dataclass
class DetailedScores(JsonModel):
    """Per-dimension continuity scores, 0-10 each"""
    spatial: float = 0
    temporal: float = 0
    emotional: float = 0
    visual: float = 0
    pacing: float = 0
    style_alignment: float = field(default=0, metadata=key("ghibli_alignment"))


@dataclass
class ContinuityReport(JsonModel):
    """Scored critique of the shot sequence, regenerated wholesale by audit"""
    overall_score: float
    detailed_scores: DetailedScores = field(
        default_factory=DetailedScores, metadata={"nested": DetailedScores}
    )
    issues: List[ContinuityIssue] = field(
        default_factory=list, metadata=key("major_issues", nested=ContinuityIssue)
    )
    suggestions: List[ContinuitySuggestion] = field(
        default_factory=list, metadata={"nested": ContinuitySuggestion}
    )
    emotional_curve: List[float] = field(default_factory=list)
    rhythm_score: float = 0


@dataclass
class OptimizationAnalysis(JsonModel):
    """Result of consolidating scene locations into master backgrounds"""
    total_scenes: int = 0
    original_locations_needed: int = 0
    optimized_locations_needed: int = 0
    reduction_percentage: float = 0
    master_backgrounds: List[Dict[str, Any]] = field(default_factory=list)
    consolidation_suggestions: List[str] = field(default_factory=list)


@dataclass
class PostSettings(JsonModel):
    grain_intensity: int = field(default=15, metadata=key("grainIntensity"))
    paper_texture: int = field(default=20, metadata=key("paperTexture"))
    ambient_sounds: List[str] = field(default_factory=list, metadata=key("ambientSounds"))


@dataclass
class Project(JsonModel):
    """Root aggregate for one animated short"""
    name: str
    story: Optional[StoryFramework] = field(default=None, metadata={"nested": StoryFramework})
    scenes: Optional[List[Scene]] = field(default=None, metadata={"nested": Scene})
    characters: List[CharacterDesign] = field(
        default_factory=list, metadata={"nested": CharacterDesign}
    )
    backgrounds: List[BackgroundDesign] = field(
        default_factory=list, metadata={"nested": BackgroundDesign}
    )
    suggested_priorities: List[str] = field(default_factory=list, metadata=key("suggestedPriorities"))
    continuity_report: Optional[ContinuityReport] = field(
        default=None, metadata=key("continuityReport", nested=ContinuityReport)
    )
    core_aesthetic: Optional[str] = field(default=None, metadata=key("coreAesthetic"))
    optimization_analysis: Optional[OptimizationAnalysis] = field(
        default=None, metadata=key("optimizationAnalysis", nested=OptimizationAnalysis)
    )
    animations: List[Dict[str, Any]] = field(default_factory=list)
    post_settings: PostSettings = field(
        default_factory=PostSettings, metadata=key("postSettings", nested=PostSettings)
    )
    design_applied: bool = field(default=False, metadata=key("designApplied"))
