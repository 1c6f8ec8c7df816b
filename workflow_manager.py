"""
Pipeline orchestrator for the Production Assistant.

Runs the strictly sequential generation flows (story, shot breakdown,
continuity audit, issue fix) and the design-room operations. Every flow
reads a snapshot of the project, performs its calls in order and writes
its results back in a single store update, so a failed flow leaves the
project untouched. The manual-story flow is the exception: it stores the
synthesized story and aesthetic before the breakdown runs, so those stay
when the breakdown fails. Failures are converted to short localized
messages on the returned StageResult; nothing here terminates the process.
"""

import asyncio
import dataclasses
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Set

import reconciler
import response_schemas
from config_manager import AppConfig
from data_models import Project, StoryFramework
from localization import get_text, parse_target_seconds
from project_store import ProjectStore
from prompt_builders import (
    build_aesthetic_prompt,
    build_ambient_sound_prompt,
    build_asset_suggestion_prompt,
    build_background_optimization_prompt,
    build_continuity_prompt,
    build_keyframe_prompt,
    build_master_background_prompt,
    build_scene_breakdown_prompt,
    build_seo_translation_prompt,
    build_story_framework_prompt,
    build_transition_prompt,
)

logger = logging.getLogger(__name__)


class StageStatus(Enum):
    """Status of a pipeline run"""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    ABORTED = "aborted"


class FixState(Enum):
    """Progress of a continuity fix"""
    IDLE = "idle"
    LOCATING_SHOTS = "locating_shots"
    ABORTED = "aborted"
    GENERATING = "generating"
    INSERTING = "inserting"
    RESEQUENCING = "resequencing"
    DONE = "done"
    FAILED = "failed"


@dataclass
class StageResult:
    """Result of executing a pipeline"""
    stage_name: str
    status: StageStatus
    start_time: datetime
    end_time: Optional[datetime] = None
    error: Optional[Exception] = None
    output: Any = None
    message: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def duration(self) -> Optional[float]:
        """Get stage duration in seconds"""
        if self.end_time and self.start_time:
            return (self.end_time - self.start_time).total_seconds()
        return None

    @property
    def success(self) -> bool:
        """Check if stage completed successfully"""
        return self.status == StageStatus.COMPLETED


class WorkflowError(Exception):
    """Base exception for workflow errors"""
    pass


class ValidationError(WorkflowError):
    """Raised when a flow's inputs are not ready; no call is made"""

    def __init__(self, message_key: str, **values):
        super().__init__(message_key)
        self.message_key = message_key
        self.values = values


class PipelineOrchestrator:
    """Sequences generation calls and reconciles their results into the project"""

    def __init__(self, gemini_service: Any, store: ProjectStore, config: AppConfig,
                 language: Optional[str] = None):
        self.gemini_service = gemini_service
        self.store = store
        self.config = config
        self.language = language or config.language.default

        self.fix_history: List[FixState] = [FixState.IDLE]
        self._background_tasks: Set[asyncio.Task] = set()

        self._stage_start_callbacks: List[Callable] = []
        self._stage_complete_callbacks: List[Callable] = []

    def add_stage_start_callback(self, callback: Callable[[str], None]):
        """Add callback for stage start events"""
        self._stage_start_callbacks.append(callback)

    def add_stage_complete_callback(self, callback: Callable[[StageResult], None]):
        """Add callback for stage completion events"""
        self._stage_complete_callbacks.append(callback)

    @property
    def fix_state(self) -> FixState:
        return self.fix_history[-1]

    def _text(self, key: str, **values) -> str:
        return get_text(self.language, key, **values)

    def _target_seconds(self, length: Optional[str]) -> int:
        return parse_target_seconds(length or self.config.production.default_length)

    def _story_type(self, story_type: Optional[str]) -> str:
        return story_type or self.config.production.default_story_type

    # Stage plumbing

    async def _call_async_or_sync(self, func: Callable, *args, **kwargs):
        """Call function whether it's async or sync"""
        if asyncio.iscoroutinefunction(func):
            return await func(*args, **kwargs)
        else:
            return func(*args, **kwargs)

    async def _notify(self, callbacks: List[Callable], payload: Any):
        for callback in callbacks:
            try:
                await self._call_async_or_sync(callback, payload)
            except Exception as e:
                logger.warning(f"Stage callback failed: {e}")

    async def _run_stage(self, stage_name: str, failure_key: str,
                         operation: Callable[[], Awaitable[Any]]) -> StageResult:
        """Run one flow, converting any failure into a localized message"""
        logger.info(f"Starting stage: {stage_name}")
        result = StageResult(stage_name=stage_name, status=StageStatus.RUNNING,
                             start_time=datetime.now())
        await self._notify(self._stage_start_callbacks, stage_name)

        try:
            result.output = await operation()
            result.status = StageStatus.COMPLETED
            logger.info(f"Stage {stage_name} completed")
        except ValidationError as e:
            result.status = StageStatus.ABORTED
            result.error = e
            result.message = self._text(e.message_key, **e.values)
            logger.info(f"Stage {stage_name} aborted: {e.message_key}")
        except Exception as e:
            result.status = StageStatus.FAILED
            result.error = e
            result.message = self._text(failure_key)
            logger.error(f"Stage {stage_name} failed: {e}")

        result.end_time = datetime.now()
        await self._notify(self._stage_complete_callbacks, result)
        return result

    def _run_local(self, stage_name: str, operation: Callable[[], Any],
                   success_key: Optional[str] = None) -> StageResult:
        """Run a design-room edit that makes no remote call"""
        result = StageResult(stage_name=stage_name, status=StageStatus.RUNNING,
                             start_time=datetime.now())
        try:
            result.output = operation()
            result.status = StageStatus.COMPLETED
            if success_key:
                result.message = self._text(success_key)
        except ValidationError as e:
            result.status = StageStatus.ABORTED
            result.error = e
            result.message = self._text(e.message_key, **e.values)
        result.end_time = datetime.now()
        return result

    # Story pipeline

    async def generate_story(self, idea: str, story_type: Optional[str] = None,
                             length: Optional[str] = None) -> StageResult:
        """Generate a story framework, then an aesthetic guide for it"""

        async def operation():
            if not idea or not idea.strip():
                raise ValidationError("idea_missing")
            kind = self._story_type(story_type)

            raw = await self.gemini_service.generate_json(
                build_story_framework_prompt(idea, kind, self._target_seconds(length), self.language),
                response_schemas.STORY_FRAMEWORK,
            )
            story = reconciler.story_from_ai(raw)
            aesthetic = await self._generate_aesthetic(story.logline, kind)

            self.store.update(story=story, core_aesthetic=aesthetic, scenes=None)
            return story

        return await self._run_stage("story", "story_failed", operation)

    async def _generate_aesthetic(self, logline: str, story_type: str) -> str:
        text = await self.gemini_service.generate_text(
            build_aesthetic_prompt(logline, story_type),
            model=self.gemini_service.fast_model,
        )
        return text.strip()

    # Scene breakdown pipeline

    async def break_into_scenes(self, framework: Optional[StoryFramework] = None,
                                story_type: Optional[str] = None,
                                length: Optional[str] = None) -> StageResult:
        """Shot list, then background optimization, then asset suggestions"""

        async def operation():
            story = framework or self.store.snapshot().story
            if story is None:
                raise ValidationError("story_missing")
            return await self._breakdown(story, self._story_type(story_type),
                                         self._target_seconds(length))

        return await self._run_stage("breakdown", "breakdown_failed", operation)

    async def break_manual_story(self, text: str, main_character: str = "",
                                 story_type: Optional[str] = None,
                                 length: Optional[str] = None) -> StageResult:
        """Treat each non-empty line of ``text`` as a story beat and break it down"""

        async def operation():
            kind = self._story_type(story_type)
            story = reconciler.story_from_manual_text(text or "", main_character, kind,
                                                      self.language)
            if not story.story_beats:
                raise ValidationError("manual_story_empty")

            aesthetic = await self._generate_aesthetic(story.logline, kind)
            self.store.update(story=story, core_aesthetic=aesthetic, scenes=None)
            return await self._breakdown(story, kind, self._target_seconds(length))

        return await self._run_stage("manual_story", "breakdown_failed", operation)

    async def _breakdown(self, story: StoryFramework, story_type: str,
                         target_seconds: int) -> Project:
        service = self.gemini_service
        production = self.config.production

        raw = await service.generate_json(
            build_scene_breakdown_prompt(story.story_beats, story_type, target_seconds,
                                         self.language),
            response_schemas.SCENE_BREAKDOWN,
        )
        scenes, priorities = reconciler.scenes_from_breakdown(raw)
        logger.info(f"Breakdown produced {len(scenes)} shots")

        raw = await service.generate_json(
            build_background_optimization_prompt(scenes, self.language),
            response_schemas.BACKGROUND_OPTIMIZATION,
        )
        backgrounds, analysis = reconciler.masters_from_optimization(
            raw, production.default_palette, self.language, "daytime"
        )

        raw = await service.generate_json(
            build_asset_suggestion_prompt(scenes[:production.asset_sample_scenes],
                                          production.max_suggested_assets, self.language),
            response_schemas.ASSET_SUGGESTIONS,
            model=service.fast_model,
        )
        characters = reconciler.characters_from_suggestions(raw, self.language)

        return self.store.update(
            scenes=scenes,
            suggested_priorities=priorities,
            backgrounds=backgrounds,
            optimization_analysis=analysis,
            characters=characters,
            continuity_report=None,
            design_applied=False,
        )

    # Continuity audit

    async def run_audit(self) -> StageResult:
        """Replace the continuity report with a fresh audit of the shot list"""
        return await self._run_stage("audit", "audit_failed", self._audit)

    async def _audit(self):
        scenes = self.store.snapshot().scenes
        if not scenes:
            raise ValidationError("audit_no_scenes")

        stamp = self.store.begin_audit()
        raw = await self.gemini_service.generate_json(
            build_continuity_prompt(scenes), response_schemas.CONTINUITY_REPORT
        )
        report = reconciler.report_from_ai(raw)
        self.store.commit_audit(report, stamp)
        return report

    async def _silent_audit(self):
        try:
            await self._audit()
            logger.info("Background re-audit finished")
        except Exception as e:
            logger.warning(f"Background re-audit failed: {e}")

    def _launch_reaudit(self) -> asyncio.Task:
        task = asyncio.create_task(self._silent_audit())
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)
        return task

    async def wait_for_background(self):
        """Wait for detached re-audits to finish"""
        if self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)

    # Issue fix

    def _advance_fix(self, state: FixState):
        logger.debug(f"Fix state: {self.fix_state.value} -> {state.value}")
        self.fix_history.append(state)

    async def fix_issue(self, issue_id: str, position: Optional[str] = None) -> StageResult:
        """Insert a generated transition shot where a continuity issue sits.

        ``position`` defaults to the issue's between-shots text. The first two
        integers in it name the bounding shots by global number.
        """
        self.fix_history = [FixState.IDLE]

        async def operation():
            try:
                return await self._fix(issue_id, position)
            except ValidationError:
                self._advance_fix(FixState.ABORTED)
                raise
            except Exception:
                self._advance_fix(FixState.FAILED)
                raise

        return await self._run_stage("fix", "fix_failed", operation)

    async def _fix(self, issue_id: str, position: Optional[str]):
        project = self.store.snapshot()
        report = project.continuity_report
        if report is None:
            raise ValidationError("report_missing")
        issue = next((i for i in report.issues if i.id == issue_id), None)
        if issue is None:
            raise ValidationError("issue_missing", issue_id=issue_id)
        position = position or issue.between_shots

        self._advance_fix(FixState.LOCATING_SHOTS)
        shot_range = reconciler.parse_shot_range(position)
        if shot_range is None:
            raise ValidationError("fix_unparseable", position=position)
        number_a, number_b = shot_range
        scenes = project.scenes or []
        shot_a = reconciler.find_scene(scenes, number_a)
        shot_b = reconciler.find_scene(scenes, number_b)
        if shot_a is None or shot_b is None:
            raise ValidationError("fix_unknown_shots")

        self._advance_fix(FixState.GENERATING)
        context = f"{self._text('fix_context')} {issue.description}"
        raw = await self.gemini_service.generate_json(
            build_transition_prompt(shot_a, shot_b, context, self.language),
            response_schemas.TRANSITION_SHOT,
        )
        transition = reconciler.transition_from_ai(raw, shot_a.beat_index)

        self._advance_fix(FixState.INSERTING)
        self._advance_fix(FixState.RESEQUENCING)
        new_scenes = reconciler.insert_transition(scenes, transition, number_a, number_b)
        self.store.update(scenes=new_scenes,
                          continuity_report=reconciler.remove_issue(report, issue_id))
        self._advance_fix(FixState.DONE)
        logger.info(f"Inserted transition {transition.id} between shots {number_a} and {number_b}")

        if self.config.audit.reaudit_after_fix:
            self._launch_reaudit()
        return transition

    # Shot list edits

    def delete_scene(self, scene_id: str) -> StageResult:
        def operation():
            scenes = self.store.snapshot().scenes or []
            if not any(scene.id == scene_id for scene in scenes):
                raise ValidationError("scene_missing", scene_id=scene_id)
            return self.store.update(scenes=reconciler.remove_scene(scenes, scene_id))

        return self._run_local("delete_scene", operation)

    def move_scene(self, scene_id: str, new_position: int) -> StageResult:
        def operation():
            scenes = self.store.snapshot().scenes or []
            if not any(scene.id == scene_id for scene in scenes):
                raise ValidationError("scene_missing", scene_id=scene_id)
            return self.store.update(scenes=reconciler.move_scene(scenes, scene_id, new_position))

        return self._run_local("move_scene", operation)

    # Design room

    async def optimize_backgrounds(self) -> StageResult:
        """Replace the backgrounds with a consolidated master-only set"""

        async def operation():
            scenes = self.store.snapshot().scenes
            if not scenes:
                raise ValidationError("optimize_no_scenes")
            raw = await self.gemini_service.generate_json(
                build_background_optimization_prompt(scenes, self.language),
                response_schemas.BACKGROUND_OPTIMIZATION,
            )
            backgrounds, analysis = reconciler.masters_from_optimization(
                raw, self.config.production.default_palette, self.language, "neutral_time"
            )
            return self.store.update(backgrounds=backgrounds, optimization_analysis=analysis,
                                     design_applied=False)

        return await self._run_stage("optimize", "optimize_failed", operation)

    async def promote_to_master(self, background_id: str) -> StageResult:
        """Turn one background into a master with a generated reference description"""

        async def operation():
            backgrounds = self.store.snapshot().backgrounds
            background = next((bg for bg in backgrounds if bg.id == background_id), None)
            if background is None:
                raise ValidationError("background_missing", background_id=background_id)

            raw = await self.gemini_service.generate_json(
                build_master_background_prompt(background.location_en or background.location,
                                               background.usage_count or 1),
                response_schemas.MASTER_BACKGROUND_PROMPT,
                model=self.gemini_service.fast_model,
            )
            promoted = reconciler.promote_background(background, raw)
            self.store.update(
                backgrounds=[promoted if bg.id == background_id else bg for bg in backgrounds],
                design_applied=False,
            )
            return promoted

        return await self._run_stage("promote", "promote_failed", operation)

    def add_character(self, name: str, age: str = "", personality: str = "") -> StageResult:
        def operation():
            if not name or not name.strip():
                raise ValidationError("name_required")
            character = reconciler.manual_character(name.strip(), age, personality, self.language)
            characters = self.store.snapshot().characters
            self.store.update(characters=characters + [character], design_applied=False)
            return character

        return self._run_local("add_character", operation)

    def add_background(self, location: str, description: str = "") -> StageResult:
        def operation():
            if not location or not location.strip():
                raise ValidationError("name_required")
            background = reconciler.manual_background(
                location.strip(), description, self.config.production.default_palette,
                self.language
            )
            backgrounds = self.store.snapshot().backgrounds
            self.store.update(backgrounds=backgrounds + [background], design_applied=False)
            return background

        return self._run_local("add_background", operation)

    def delete_character(self, character_id: str) -> StageResult:
        def operation():
            characters = self.store.snapshot().characters
            remaining = [c for c in characters if c.id != character_id]
            if len(remaining) == len(characters):
                raise ValidationError("character_missing", character_id=character_id)
            return self.store.update(characters=remaining, design_applied=False)

        return self._run_local("delete_character", operation)

    def delete_background(self, background_id: str) -> StageResult:
        def operation():
            backgrounds = self.store.snapshot().backgrounds
            remaining = [bg for bg in backgrounds if bg.id != background_id]
            if len(remaining) == len(backgrounds):
                raise ValidationError("background_missing", background_id=background_id)
            return self.store.update(backgrounds=remaining, design_applied=False)

        return self._run_local("delete_background", operation)

    def apply_design(self) -> StageResult:
        """Lock in the current assets and unlock production prompts"""
        def operation():
            project = self.store.snapshot()
            if not project.characters and not project.backgrounds:
                raise ValidationError("design_empty")
            return self.store.update(design_applied=True)

        return self._run_local("apply_design", operation, success_key="design_applied")

    # Auxiliary generation

    async def translate_seo(self, target_language: str) -> StageResult:
        """Translate titles, summary and hashtags; the project is not changed"""

        async def operation():
            story = self.store.snapshot().story
            if story is None:
                raise ValidationError("story_missing")
            seo = {"titles": story.suggested_titles, "summary": story.summary,
                   "hashtags": story.hashtags}
            raw = await self.gemini_service.generate_json(
                build_seo_translation_prompt(seo, target_language),
                response_schemas.SEO_TRANSLATION,
                model=self.gemini_service.fast_model,
            )
            return reconciler.seo_from_ai(raw)

        return await self._run_stage("translate_seo", "translate_failed", operation)

    async def generate_keyframes(self, elements: Sequence[str],
                                 shot_id: Optional[str] = None) -> StageResult:
        """Generate keyframe data for animated elements and record it"""

        async def operation():
            if not elements:
                raise ValidationError("elements_missing")
            raw = await self.gemini_service.generate_json(
                build_keyframe_prompt(elements),
                response_schemas.KEYFRAME_DATA,
                model=self.gemini_service.fast_model,
            )
            record = {
                "shotId": shot_id or "unassigned",
                "keyframes": reconciler.keyframes_from_ai(raw),
                "loops": list(elements),
            }
            animations = self.store.snapshot().animations
            self.store.update(animations=animations + [record])
            return record

        return await self._run_stage("keyframes", "keyframes_failed", operation)

    async def scan_ambient_sounds(self) -> StageResult:
        """Suggest ambient sounds for the story setting and store their names"""

        async def operation():
            project = self.store.snapshot()
            if project.story is None:
                raise ValidationError("story_missing")
            context = {
                "setting": project.story.setting,
                "theme": project.story.theme,
                "locations": sorted({scene.location_en for scene in project.scenes or []}),
            }
            raw = await self.gemini_service.generate_json(
                build_ambient_sound_prompt(context),
                response_schemas.AMBIENT_SOUNDS,
                model=self.gemini_service.fast_model,
            )
            sounds = reconciler.sounds_from_ai(raw)
            post_settings = dataclasses.replace(project.post_settings, ambient_sounds=sounds)
            self.store.update(post_settings=post_settings)
            return sounds

        return await self._run_stage("sounds", "sounds_failed", operation)
