"""
Tests for the pipeline orchestrator: flow ordering, atomic updates,
localized failures and the continuity fix state machine.
"""

import pytest

from config_manager import AppConfig, AuditConfig, UIConfig
from data_models import Project
from gemini_service import RateLimitError
from localization import get_text
from project_store import ProjectStore
from tests.conftest import make_raw_scene
from workflow_manager import FixState, PipelineOrchestrator, StageStatus


@pytest.fixture
def orchestrator(mock_gemini_service, store, app_config):
    return PipelineOrchestrator(mock_gemini_service, store, app_config)


@pytest.fixture
def raw_breakdown():
    return {
        "scenes": [make_raw_scene(n) for n in range(1, 4)],
        "suggestedAnimationPriorities": ["grass in wind"],
    }


@pytest.fixture
def raw_optimization():
    return {
        "total_scenes": 3,
        "original_locations_needed": 3,
        "optimized_locations_needed": 1,
        "reduction_percentage": 66.7,
        "master_backgrounds": [
            {"id": "m1", "name": "Cánh đồng", "name_en": "Meadow", "scenes": [1, 2, 3],
             "reuse_count": 3, "description": "Rolling grass"},
        ],
    }


@pytest.fixture
def raw_assets():
    return {"characters": [{"name": "Mei", "age": "8"}], "backgrounds": []}


@pytest.fixture
def audited_store(sample_story, sample_scenes, sample_report):
    return ProjectStore(Project(name="Fox", story=sample_story, scenes=sample_scenes,
                                continuity_report=sample_report))


class TestStoryPipeline:
    @pytest.mark.asyncio
    async def test_generate_story(self, orchestrator, mock_gemini_service, store, raw_story):
        store.update(scenes=[])
        mock_gemini_service.generate_json.return_value = raw_story

        result = await orchestrator.generate_story("A fox cub", "Nature", "90 seconds")

        assert result.success
        project = store.snapshot()
        assert project.story.main_character == "Mei"
        assert project.core_aesthetic == "Aesthetic: watercolor\nColor: moss greens\nLighting: morning haze"
        assert project.scenes is None

        prompt = mock_gemini_service.generate_json.call_args[0][0]
        assert "Target runtime: 90s" in prompt
        assert mock_gemini_service.generate_text.call_args.kwargs["model"] == "gemini-test-fast"

    @pytest.mark.asyncio
    async def test_rate_limit_exhaustion_becomes_message(self, orchestrator, mock_gemini_service, store):
        mock_gemini_service.generate_json.side_effect = RateLimitError("429")

        result = await orchestrator.generate_story("A fox cub")

        assert result.status == StageStatus.FAILED
        assert result.message == get_text("en", "story_failed")
        assert isinstance(result.error, RateLimitError)
        assert store.snapshot().story is None

    @pytest.mark.asyncio
    async def test_aesthetic_failure_leaves_project_untouched(self, orchestrator, mock_gemini_service,
                                                              store, raw_story):
        mock_gemini_service.generate_json.return_value = raw_story
        mock_gemini_service.generate_text.side_effect = RuntimeError("boom")

        result = await orchestrator.generate_story("A fox cub")

        assert not result.success
        assert store.snapshot().story is None

    @pytest.mark.asyncio
    async def test_empty_idea_is_rejected(self, orchestrator, mock_gemini_service):
        result = await orchestrator.generate_story("   ")

        assert result.status == StageStatus.ABORTED
        assert result.message == get_text("en", "idea_missing")
        mock_gemini_service.generate_json.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_messages_follow_language(self, mock_gemini_service, store, app_config):
        orchestrator = PipelineOrchestrator(mock_gemini_service, store, app_config, language="vi")
        mock_gemini_service.generate_json.side_effect = RateLimitError("429")

        result = await orchestrator.generate_story("Một chú cáo")

        assert result.message == get_text("vi", "story_failed")


class TestBreakdownPipeline:
    @pytest.mark.asyncio
    async def test_break_into_scenes(self, orchestrator, mock_gemini_service, store, sample_story,
                                     raw_breakdown, raw_optimization, raw_assets):
        store.update(story=sample_story, design_applied=True)
        mock_gemini_service.generate_json.side_effect = [raw_breakdown, raw_optimization, raw_assets]

        result = await orchestrator.break_into_scenes()

        assert result.success
        project = store.snapshot()
        assert [s.global_shot_number for s in project.scenes] == [1, 2, 3]
        assert [bg.id for bg in project.backgrounds] == ["master-m1"]
        assert all(bg.is_master for bg in project.backgrounds)
        assert [c.name for c in project.characters] == ["Mei"]
        assert project.suggested_priorities == ["grass in wind"]
        assert project.optimization_analysis.optimized_locations_needed == 1
        assert not project.design_applied

        calls = mock_gemini_service.generate_json.call_args_list
        assert len(calls) == 3
        assert calls[2].kwargs["model"] == "gemini-test-fast"

    @pytest.mark.asyncio
    async def test_assets_sample_first_scenes(self, orchestrator, mock_gemini_service, store,
                                              sample_story, raw_optimization, raw_assets):
        store.update(story=sample_story)
        breakdown = {
            "scenes": [make_raw_scene(n, action=f"action-{n}") for n in range(1, 11)],
            "suggestedAnimationPriorities": [],
        }
        mock_gemini_service.generate_json.side_effect = [breakdown, raw_optimization, raw_assets]

        await orchestrator.break_into_scenes()

        asset_prompt = mock_gemini_service.generate_json.call_args_list[2][0][0]
        assert "action-8" in asset_prompt
        assert "action-9" not in asset_prompt

    @pytest.mark.asyncio
    async def test_requires_story(self, orchestrator, mock_gemini_service):
        result = await orchestrator.break_into_scenes()

        assert result.status == StageStatus.ABORTED
        assert result.message == get_text("en", "story_missing")
        mock_gemini_service.generate_json.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failure_midway_changes_nothing(self, orchestrator, mock_gemini_service, store,
                                                  sample_story, raw_breakdown):
        store.update(story=sample_story)
        mock_gemini_service.generate_json.side_effect = [raw_breakdown, RuntimeError("overloaded")]

        result = await orchestrator.break_into_scenes()

        assert result.message == get_text("en", "breakdown_failed")
        assert store.snapshot().scenes is None
        assert store.snapshot().backgrounds == []

    @pytest.mark.asyncio
    async def test_manual_story(self, orchestrator, mock_gemini_service, store,
                                raw_breakdown, raw_optimization, raw_assets):
        mock_gemini_service.generate_json.side_effect = [raw_breakdown, raw_optimization, raw_assets]

        result = await orchestrator.break_manual_story("Mei wakes\n\n  Mei walks  \n", "Mei")

        assert result.success
        project = store.snapshot()
        assert project.story.story_beats == ["Mei wakes", "Mei walks"]
        assert project.story.main_character == "Mei"
        assert project.core_aesthetic.startswith("Aesthetic:")
        assert len(project.scenes) == 3
        mock_gemini_service.generate_text.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_manual_story_keeps_story_when_breakdown_fails(self, orchestrator,
                                                                mock_gemini_service, store):
        mock_gemini_service.generate_json.side_effect = RateLimitError("429")

        result = await orchestrator.break_manual_story("Mei wakes\nMei walks", "Mei")

        assert result.status == StageStatus.FAILED
        project = store.snapshot()
        assert project.story.story_beats == ["Mei wakes", "Mei walks"]
        assert project.core_aesthetic.startswith("Aesthetic:")
        assert project.scenes is None

    @pytest.mark.asyncio
    async def test_manual_story_requires_beats(self, orchestrator, mock_gemini_service):
        result = await orchestrator.break_manual_story(" \n \n")

        assert result.status == StageStatus.ABORTED
        assert result.message == get_text("en", "manual_story_empty")
        mock_gemini_service.generate_text.assert_not_awaited()


class TestAudit:
    @pytest.mark.asyncio
    async def test_requires_scenes(self, orchestrator, mock_gemini_service, store):
        store.update(scenes=[])

        result = await orchestrator.run_audit()

        assert result.status == StageStatus.ABORTED
        assert result.message == get_text("en", "audit_no_scenes")
        mock_gemini_service.generate_json.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_replaces_report(self, mock_gemini_service, audited_store, app_config, raw_report):
        orchestrator = PipelineOrchestrator(mock_gemini_service, audited_store, app_config)
        raw_report["overall_score"] = 44
        raw_report["major_issues"] = []
        mock_gemini_service.generate_json.return_value = raw_report

        result = await orchestrator.run_audit()

        assert result.success
        report = audited_store.snapshot().continuity_report
        assert report.overall_score == 44
        assert report.issues == []

    @pytest.mark.asyncio
    async def test_failure_keeps_previous_report(self, mock_gemini_service, audited_store, app_config):
        orchestrator = PipelineOrchestrator(mock_gemini_service, audited_store, app_config)
        mock_gemini_service.generate_json.side_effect = RuntimeError("503")

        result = await orchestrator.run_audit()

        assert result.message == get_text("en", "audit_failed")
        assert audited_store.snapshot().continuity_report.overall_score == 38


class TestFixIssue:
    @pytest.mark.asyncio
    async def test_inserts_transition(self, mock_gemini_service, audited_store, app_config,
                                      raw_transition):
        orchestrator = PipelineOrchestrator(mock_gemini_service, audited_store, app_config)
        mock_gemini_service.generate_json.return_value = raw_transition

        result = await orchestrator.fix_issue("issue-1")

        assert result.success
        project = audited_store.snapshot()
        assert [s.global_shot_number for s in project.scenes] == [1, 2, 3, 4, 5]
        assert project.scenes[2].id == result.output.id
        assert project.scenes[2].suggested_shot_icon == "🔄"
        assert [s.scene_number for s in project.scenes] == [1, 2, 3, 4, 5]
        assert project.continuity_report.issues == []
        assert orchestrator.fix_history == [
            FixState.IDLE, FixState.LOCATING_SHOTS, FixState.GENERATING,
            FixState.INSERTING, FixState.RESEQUENCING, FixState.DONE,
        ]

    @pytest.mark.asyncio
    async def test_position_override(self, mock_gemini_service, audited_store, app_config,
                                     raw_transition):
        orchestrator = PipelineOrchestrator(mock_gemini_service, audited_store, app_config)
        mock_gemini_service.generate_json.return_value = raw_transition

        result = await orchestrator.fix_issue("issue-1", "Shot 3 -> Shot 4")

        assert audited_store.snapshot().scenes[3].id == result.output.id

    @pytest.mark.asyncio
    async def test_unparseable_position_aborts(self, mock_gemini_service, audited_store, app_config):
        orchestrator = PipelineOrchestrator(mock_gemini_service, audited_store, app_config)
        before = audited_store.snapshot()

        result = await orchestrator.fix_issue("issue-1", "somewhere in the middle")

        assert result.status == StageStatus.ABORTED
        assert "somewhere in the middle" in result.message
        assert orchestrator.fix_state == FixState.ABORTED
        assert audited_store.snapshot() == before
        mock_gemini_service.generate_json.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_shot_numbers_abort(self, mock_gemini_service, audited_store, app_config):
        orchestrator = PipelineOrchestrator(mock_gemini_service, audited_store, app_config)
        before = audited_store.snapshot()

        result = await orchestrator.fix_issue("issue-1", "Shot 9 -> Shot 10")

        assert result.message == get_text("en", "fix_unknown_shots")
        assert audited_store.snapshot() == before
        mock_gemini_service.generate_json.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_issue(self, orchestrator):
        result = await orchestrator.fix_issue("issue-404")
        assert result.message == get_text("en", "report_missing")

    @pytest.mark.asyncio
    async def test_generation_failure_fails_without_mutation(self, mock_gemini_service,
                                                             audited_store, app_config):
        orchestrator = PipelineOrchestrator(mock_gemini_service, audited_store, app_config)
        mock_gemini_service.generate_json.side_effect = RateLimitError("429")
        before = audited_store.snapshot()

        result = await orchestrator.fix_issue("issue-1")

        assert result.message == get_text("en", "fix_failed")
        assert orchestrator.fix_history[-2:] == [FixState.GENERATING, FixState.FAILED]
        assert audited_store.snapshot() == before

    @pytest.mark.asyncio
    async def test_background_reaudit(self, mock_gemini_service, audited_store, raw_transition,
                                      raw_report):
        config = AppConfig(ui=UIConfig(show_progress=False), audit=AuditConfig(reaudit_after_fix=True))
        orchestrator = PipelineOrchestrator(mock_gemini_service, audited_store, config)
        raw_report["overall_score"] = 47
        raw_report["major_issues"] = []
        mock_gemini_service.generate_json.side_effect = [raw_transition, raw_report]

        result = await orchestrator.fix_issue("issue-1")
        await orchestrator.wait_for_background()

        assert result.success
        assert mock_gemini_service.generate_json.await_count == 2
        audit_prompt = mock_gemini_service.generate_json.call_args_list[1][0][0]
        assert '"n": 5' in audit_prompt
        assert audited_store.snapshot().continuity_report.overall_score == 47

    @pytest.mark.asyncio
    async def test_background_reaudit_failure_is_only_logged(self, mock_gemini_service,
                                                             audited_store, raw_transition):
        config = AppConfig(ui=UIConfig(show_progress=False), audit=AuditConfig(reaudit_after_fix=True))
        orchestrator = PipelineOrchestrator(mock_gemini_service, audited_store, config)
        mock_gemini_service.generate_json.side_effect = [raw_transition, RateLimitError("429")]

        result = await orchestrator.fix_issue("issue-1")
        await orchestrator.wait_for_background()

        assert result.success
        project = audited_store.snapshot()
        assert len(project.scenes) == 5
        assert project.continuity_report.issues == []


class TestDesignRoom:
    @pytest.mark.asyncio
    async def test_optimize_requires_scenes(self, orchestrator, mock_gemini_service):
        result = await orchestrator.optimize_backgrounds()
        assert result.message == get_text("en", "optimize_no_scenes")
        mock_gemini_service.generate_json.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_optimize_replaces_backgrounds(self, orchestrator, mock_gemini_service, store,
                                                 sample_scenes, sample_background, raw_optimization):
        store.update(scenes=sample_scenes, backgrounds=[sample_background], design_applied=True)
        mock_gemini_service.generate_json.return_value = raw_optimization

        result = await orchestrator.optimize_backgrounds()

        assert result.success
        project = store.snapshot()
        assert [bg.id for bg in project.backgrounds] == ["master-m1"]
        assert project.backgrounds[0].time_of_day == "Neutral"
        assert not project.design_applied

    @pytest.mark.asyncio
    async def test_promote_to_master(self, orchestrator, mock_gemini_service, store, sample_background):
        store.update(backgrounds=[sample_background])
        mock_gemini_service.generate_json.return_value = {
            "master_prompt": "Wide meadow", "base_palette": ["#445566"], "landmark_elements": [],
        }

        result = await orchestrator.promote_to_master("bg-1")

        assert result.success
        background = store.snapshot().backgrounds[0]
        assert background.is_master
        assert background.description_en == "Wide meadow"
        assert background.palette == ["#445566"]
        prompt = mock_gemini_service.generate_json.call_args[0][0]
        assert "reused in 3 shots" in prompt
        assert mock_gemini_service.generate_json.call_args.kwargs["model"] == "gemini-test-fast"

    @pytest.mark.asyncio
    async def test_promote_unknown_background(self, orchestrator):
        result = await orchestrator.promote_to_master("bg-404")
        assert result.message == get_text("en", "background_missing", background_id="bg-404")

    def test_add_character_clears_gate(self, orchestrator, store):
        store.update(design_applied=True)

        result = orchestrator.add_character("  Mei ", age="8")

        assert result.success
        project = store.snapshot()
        assert project.characters[0].name == "Mei"
        assert project.characters[0].age == "8"
        assert not project.design_applied

    def test_add_character_requires_name(self, orchestrator, store):
        result = orchestrator.add_character("")
        assert result.status == StageStatus.ABORTED
        assert store.snapshot().characters == []

    def test_add_background_uses_default_palette(self, orchestrator, store):
        orchestrator.add_background("Old bridge")
        background = store.snapshot().backgrounds[0]
        assert background.palette == ["#E6E2D3", "#7C9473"]
        assert background.is_master

    def test_delete_background(self, orchestrator, store, sample_background):
        store.update(backgrounds=[sample_background], design_applied=True)

        assert orchestrator.delete_background("bg-1").success
        assert store.snapshot().backgrounds == []
        assert not store.snapshot().design_applied

    def test_delete_unknown_character(self, orchestrator):
        result = orchestrator.delete_character("char-404")
        assert result.message == get_text("en", "character_missing", character_id="char-404")

    def test_apply_design_requires_assets(self, orchestrator, store):
        result = orchestrator.apply_design()
        assert result.message == get_text("en", "design_empty")
        assert not store.snapshot().design_applied

    def test_apply_design(self, orchestrator, store, sample_character):
        store.update(characters=[sample_character])

        result = orchestrator.apply_design()

        assert result.success
        assert result.message == get_text("en", "design_applied")
        assert store.snapshot().design_applied


class TestShotEdits:
    def test_delete_scene(self, orchestrator, store, sample_scenes):
        store.update(scenes=sample_scenes)

        assert orchestrator.delete_scene("shot-1").success
        assert [s.global_shot_number for s in store.snapshot().scenes] == [1, 2, 3]

    def test_move_unknown_scene(self, orchestrator, store, sample_scenes):
        store.update(scenes=sample_scenes)
        result = orchestrator.move_scene("shot-404", 1)
        assert result.status == StageStatus.ABORTED


class TestAuxiliary:
    @pytest.mark.asyncio
    async def test_translate_seo_is_transient(self, orchestrator, mock_gemini_service, store, sample_story):
        store.update(story=sample_story)
        translated = {"titles": ["狐の小道"], "summary": "メイ", "hashtags": ["#狐"]}
        mock_gemini_service.generate_json.return_value = translated

        result = await orchestrator.translate_seo("Japanese")

        assert result.output == translated
        assert store.snapshot().story == sample_story
        assert "Japanese" in mock_gemini_service.generate_json.call_args[0][0]

    @pytest.mark.asyncio
    async def test_generate_keyframes_appends_record(self, orchestrator, mock_gemini_service, store):
        keyframe = {"frame": 0, "element": "grass", "action": "sway", "value": "5deg"}
        mock_gemini_service.generate_json.return_value = {"keyframes": [keyframe]}

        await orchestrator.generate_keyframes(["grass"], shot_id="shot-1")
        await orchestrator.generate_keyframes(["clouds"])

        animations = store.snapshot().animations
        assert animations[0] == {"shotId": "shot-1", "keyframes": [keyframe], "loops": ["grass"]}
        assert animations[1]["shotId"] == "unassigned"

    @pytest.mark.asyncio
    async def test_scan_ambient_sounds(self, orchestrator, mock_gemini_service, store, sample_story):
        store.update(story=sample_story)
        mock_gemini_service.generate_json.return_value = [
            {"type": "nature", "sound": "Cicadas", "vol": "low"},
            {"type": "nature", "sound": "Stream", "vol": "mid"},
        ]

        result = await orchestrator.scan_ambient_sounds()

        assert result.output == ["Cicadas", "Stream"]
        settings = store.snapshot().post_settings
        assert settings.ambient_sounds == ["Cicadas", "Stream"]
        assert settings.grain_intensity == 15

    @pytest.mark.asyncio
    async def test_stage_callbacks(self, orchestrator):
        started, finished = [], []
        orchestrator.add_stage_start_callback(started.append)
        orchestrator.add_stage_complete_callback(finished.append)

        await orchestrator.scan_ambient_sounds()

        assert started == ["sounds"]
        assert finished[0].status == StageStatus.ABORTED
