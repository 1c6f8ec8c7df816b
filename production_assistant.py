#!/usr/bin/env python3
"""
Animated Short Production Assistant
Takes a story idea through story framework, shot list, asset design and
continuity audit to export-ready production prompts.
"""

import argparse
import asyncio
import logging
import os
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Awaitable, Callable, Optional, Union

from dotenv import load_dotenv
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from config_manager import AppConfig, config_manager
from data_models import Project
from gemini_service import GeminiService, GeminiServiceError
from localization import get_story_themes, get_supported_languages, get_text
from production_prompts import (
    character_prompt,
    environment_prompt,
    export_all,
    is_contemplative,
    parse_core_style,
    prompts_unlocked,
    rhythm_summary,
    shot_list_text,
    shot_prompts,
)
from project_store import (
    ProjectImportError,
    ProjectStore,
    export_filename,
    load_project,
    project_summary,
    save_project,
)
from workflow_manager import PipelineOrchestrator, StageResult

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.FileHandler('production_assistant.log'),
        logging.StreamHandler()
    ]
)
logger = logging.getLogger(__name__)

SEVERITY_STYLES = {"critical": "bold red", "major": "yellow", "minor": "dim"}
THEME_HELP = "Story theme, or its number from the `themes` command"


class ProductionAssistantError(Exception):
    """Base exception for production assistant errors"""
    pass


class ProductionAssistant:
    """Command front end over one project file"""

    def __init__(self, project_path: Union[str, Path], api_key: Optional[str] = None,
                 config_path: Union[str, Path] = "config.json", language: Optional[str] = None,
                 console: Optional[Console] = None):
        load_dotenv()

        self.console = console or Console()
        self.config = self._load_and_validate_config(config_path)
        self.language = language or self.config.language.default
        if (self.language not in get_supported_languages()
                or self.language not in self.config.language.supported):
            raise ProductionAssistantError(f"Unsupported language: {self.language}")

        self._api_key = api_key
        self.project_path = Path(project_path)
        self.store = ProjectStore(self._load_project(), self.config.audit.race_policy,
                                  self.language)
        self.orchestrator = PipelineOrchestrator(None, self.store, self.config, self.language)
        self.orchestrator.add_stage_start_callback(self._on_stage_start)

        logger.info(f"ProductionAssistant initialized for {self.project_path}")

    def _load_and_validate_config(self, config_path: Union[str, Path]) -> AppConfig:
        """Load and validate configuration"""
        try:
            config = config_manager.load_config(config_path)
            logger.info(f"Configuration loaded from {config_path}")
            return config
        except Exception as e:
            self.console.print(f"[red]Error loading configuration: {e}[/red]")
            raise ProductionAssistantError(f"Configuration error: {e}") from e

    def _get_api_key(self) -> str:
        """Get and validate API key from various sources"""
        api_key = self._api_key or os.getenv('GEMINI_API_KEY')

        if not api_key:
            api_key = self.console.input("[yellow]Enter your Google Gemini API key: [/yellow]")

        if not api_key or not api_key.strip():
            raise ProductionAssistantError("API key is required but not provided")

        return api_key.strip()

    def _connect(self):
        """Create the generation client on first remote call"""
        if self.orchestrator.gemini_service is None:
            self.orchestrator.gemini_service = GeminiService(self._get_api_key(), asdict(self.config))

    def _load_project(self) -> Optional[Project]:
        if not self.project_path.exists():
            logger.info(f"No project at {self.project_path}, starting a new one")
            return None
        try:
            return load_project(self.project_path, self.language)
        except ProjectImportError as e:
            raise ProductionAssistantError(str(e)) from e

    def save(self) -> Path:
        return save_project(self.store.snapshot(), self.project_path)

    async def _on_stage_start(self, stage_name: str):
        logger.debug(f"Stage started: {stage_name}")

    async def run_remote(self, description: str,
                         operation: Callable[[], Awaitable[StageResult]]) -> StageResult:
        """Run a generation flow behind a spinner"""
        self._connect()
        if not self.config.ui.show_progress:
            return await operation()

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=self.console,
            transient=True
        ) as progress:
            progress.add_task(description, total=None)
            return await operation()

    def report(self, result: StageResult) -> bool:
        """Print a flow's outcome; returns whether it succeeded"""
        if result.success:
            if result.message:
                self.console.print(f"[green]✅ {result.message}[/green]")
            elif result.duration is not None:
                self.console.print(f"[green]✅ {result.stage_name} completed in {result.duration:.2f}s[/green]")
            return True
        self.console.print(f"[red]❌ {result.message}[/red]")
        return False

    # Display helpers

    def display_story(self, project: Project):
        story = project.story
        if story is None:
            self.console.print(f"[yellow]{get_text(self.language, 'story_missing')}[/yellow]")
            return
        beats = "\n".join(f"{i}. {beat}" for i, beat in enumerate(story.story_beats, start=1))
        self.console.print(Panel(
            f"[bold]{story.logline}[/bold]\n\n"
            f"[cyan]Theme:[/cyan] {story.theme}\n"
            f"[cyan]Setting:[/cyan] {story.setting}\n"
            f"[cyan]Main character:[/cyan] {story.main_character}\n\n"
            f"{beats}",
            title="📖 Story Framework",
            border_style="blue"
        ))
        if project.core_aesthetic:
            self.console.print(Panel(project.core_aesthetic, title="🎨 Style Guide", border_style="magenta"))

    def display_scenes(self, project: Project):
        scenes = project.scenes or []
        table = Table(title="🎬 Shot List", show_header=True, header_style="bold blue")
        table.add_column("#", justify="right")
        table.add_column("Shot", justify="right")
        table.add_column("Location")
        table.add_column("Time")
        table.add_column("Dur", justify="right")
        table.add_column("Type")
        table.add_column("Action")

        for scene in scenes:
            shot_type = scene.suggested_shot_type
            if is_contemplative(scene):
                shot_type = f"[green]{shot_type}[/green]"
            table.add_row(
                str(scene.global_shot_number),
                f"{scene.suggested_shot_icon or ''}{scene.shot_number}",
                scene.location,
                scene.time_of_day,
                f"{scene.duration}s",
                shot_type,
                scene.action,
            )
        self.console.print(table)

        summary = rhythm_summary(scenes)
        self.console.print(
            f"[blue]{summary['shots']} shots, {summary['total_duration']}s total, "
            f"{summary['contemplative_ratio']:.0%} contemplative, "
            f"longest action run {summary['longest_action_run']}[/blue]"
        )

    def display_design(self, project: Project):
        table = Table(title="👤 Characters", show_header=True, header_style="bold blue")
        table.add_column("ID")
        table.add_column("Name")
        table.add_column("Age")
        table.add_column("Personality")
        for character in project.characters:
            table.add_row(character.id, f"{character.name} ({character.name_en})",
                          character.age, character.personality)
        self.console.print(table)

        table = Table(title="🏞 Backgrounds", show_header=True, header_style="bold blue")
        table.add_column("ID")
        table.add_column("Location")
        table.add_column("Master")
        table.add_column("Reuse", justify="right")
        table.add_column("Shots")
        for background in project.backgrounds:
            table.add_row(
                background.id,
                f"{background.location} ({background.location_en})",
                "★" if background.is_master else "",
                str(background.usage_count or ""),
                ", ".join(str(n) for n in background.associated_scenes),
            )
        self.console.print(table)

        analysis = project.optimization_analysis
        if analysis:
            self.console.print(
                f"[blue]Locations: {analysis.original_locations_needed} → "
                f"{analysis.optimized_locations_needed} "
                f"(-{analysis.reduction_percentage:.0f}%)[/blue]"
            )

    def display_report(self, project: Project):
        report = project.continuity_report
        if report is None:
            self.console.print(f"[yellow]{get_text(self.language, 'report_missing')}[/yellow]")
            return

        scores = report.detailed_scores
        self.console.print(Panel(
            f"[bold]Overall: {report.overall_score:g}/50[/bold]   Rhythm: {report.rhythm_score:g}\n"
            f"Spatial {scores.spatial:g} · Temporal {scores.temporal:g} · "
            f"Emotional {scores.emotional:g} · Visual {scores.visual:g} · "
            f"Pacing {scores.pacing:g} · Style {scores.style_alignment:g}",
            title="🔍 Continuity Report",
            border_style="cyan"
        ))

        table = Table(show_header=True, header_style="bold blue")
        table.add_column("ID")
        table.add_column("Shots")
        table.add_column("Severity")
        table.add_column("Type")
        table.add_column("Description")
        for issue in report.issues:
            style = SEVERITY_STYLES.get(issue.severity, "")
            table.add_row(issue.id, issue.between_shots, f"[{style}]{issue.severity}[/{style}]",
                          issue.issue_type, issue.description)
        self.console.print(table)

    def display_summary(self, project: Project):
        table = Table(title=f"📁 {project.name}", show_header=True)
        table.add_column("Item", style="cyan")
        table.add_column("Value", style="green")
        for name, value in project_summary(project).items():
            table.add_row(name.replace("_", " ").title(), "-" if value is None else str(value))
        self.console.print(table)

    def story_theme(self, value: Optional[str]) -> Optional[str]:
        """Resolve a theme number from the `themes` list; other text passes through"""
        themes = get_story_themes(self.language)
        if value and value.strip().isdigit() and 1 <= int(value) <= len(themes):
            return themes[int(value) - 1]
        return value

    # Commands

    async def cmd_themes(self, args) -> bool:
        table = Table(title="Story themes")
        table.add_column("#", justify="right")
        table.add_column("Theme")
        for number, theme in enumerate(get_story_themes(self.language), 1):
            table.add_row(str(number), theme)
        self.console.print(table)
        return True

    async def cmd_story(self, args) -> bool:
        result = await self.run_remote("Writing story framework...", lambda: self.orchestrator.generate_story(
            args.idea, self.story_theme(args.story_type), args.length))
        if self.report(result):
            self.display_story(self.store.snapshot())
        return result.success

    async def cmd_manual(self, args) -> bool:
        text = Path(args.file).read_text(encoding="utf-8") if args.file else args.text
        result = await self.run_remote("Breaking manual story into shots...",
                                       lambda: self.orchestrator.break_manual_story(
                                           text, args.main_character,
                                           self.story_theme(args.story_type), args.length))
        if self.report(result):
            self.display_scenes(self.store.snapshot())
        return result.success

    async def cmd_scenes(self, args) -> bool:
        result = await self.run_remote("Breaking story into shots...",
                                       lambda: self.orchestrator.break_into_scenes(
                                           None, self.story_theme(args.story_type), args.length))
        if self.report(result):
            project = self.store.snapshot()
            self.display_scenes(project)
            self.display_design(project)
        return result.success

    async def cmd_audit(self, args) -> bool:
        result = await self.run_remote("Auditing continuity...", self.orchestrator.run_audit)
        if self.report(result):
            self.display_report(self.store.snapshot())
        return result.success

    async def cmd_fix(self, args) -> bool:
        result = await self.run_remote("Generating transition shot...",
                                       lambda: self.orchestrator.fix_issue(args.issue_id, args.position))
        if self.report(result):
            self.console.print(f"[green]🔄 Inserted {result.output.id}[/green]")
            with Progress(SpinnerColumn(), TextColumn("{task.description}"),
                          console=self.console, transient=True) as progress:
                progress.add_task("Re-auditing continuity...", total=None)
                await self.orchestrator.wait_for_background()
            project = self.store.snapshot()
            self.display_scenes(project)
            self.display_report(project)
        return result.success

    async def cmd_optimize(self, args) -> bool:
        result = await self.run_remote("Optimizing backgrounds...", self.orchestrator.optimize_backgrounds)
        if self.report(result):
            self.display_design(self.store.snapshot())
        return result.success

    async def cmd_promote(self, args) -> bool:
        result = await self.run_remote("Writing master background...",
                                       lambda: self.orchestrator.promote_to_master(args.background_id))
        if self.report(result):
            self.display_design(self.store.snapshot())
        return result.success

    async def cmd_add_character(self, args) -> bool:
        return self.report(self.orchestrator.add_character(args.name, args.age, args.personality))

    async def cmd_add_background(self, args) -> bool:
        return self.report(self.orchestrator.add_background(args.location, args.description))

    async def cmd_delete_character(self, args) -> bool:
        return self.report(self.orchestrator.delete_character(args.character_id))

    async def cmd_delete_background(self, args) -> bool:
        return self.report(self.orchestrator.delete_background(args.background_id))

    async def cmd_delete_shot(self, args) -> bool:
        return self.report(self.orchestrator.delete_scene(args.scene_id))

    async def cmd_move_shot(self, args) -> bool:
        return self.report(self.orchestrator.move_scene(args.scene_id, args.position))

    async def cmd_apply_design(self, args) -> bool:
        return self.report(self.orchestrator.apply_design())

    async def cmd_prompts(self, args) -> bool:
        project = self.store.snapshot()
        if not prompts_unlocked(project):
            self.console.print(f"[yellow]{get_text(self.language, 'prompts_locked')}[/yellow]")
            return False

        if args.output:
            Path(args.output).write_text(export_all(project), encoding="utf-8")
            self.console.print(f"[green]📁 Production script saved: {args.output}[/green]")
            return True

        style = parse_core_style(project.core_aesthetic)
        for character in project.characters:
            self.console.print(Panel(character_prompt(character, style), border_style="magenta"))
        for background in project.backgrounds:
            self.console.print(Panel(environment_prompt(background, style), border_style="green"))
        for _, keyframe, motion in shot_prompts(project):
            self.console.print(Panel(f"{keyframe}\n\n{motion}", border_style="blue"))
        return True

    async def cmd_shots(self, args) -> bool:
        project = self.store.snapshot()
        if not project.scenes:
            self.console.print(f"[yellow]{get_text(self.language, 'audit_no_scenes')}[/yellow]")
            return False
        text = shot_list_text(project.scenes, self.language)
        if args.output:
            Path(args.output).write_text(text, encoding="utf-8")
            self.console.print(f"[green]📁 Shot list saved: {args.output}[/green]")
        else:
            self.console.print(text, markup=False)
        return True

    async def cmd_translate_seo(self, args) -> bool:
        result = await self.run_remote("Translating SEO data...",
                                       lambda: self.orchestrator.translate_seo(args.language))
        if self.report(result):
            seo = result.output
            self.console.print(Panel(
                "\n".join(seo["titles"]) + f"\n\n{seo['summary']}\n\n" + " ".join(seo["hashtags"]),
                title=f"🌐 SEO ({args.language})",
                border_style="blue"
            ))
        return result.success

    async def cmd_keyframes(self, args) -> bool:
        result = await self.run_remote("Generating keyframes...",
                                       lambda: self.orchestrator.generate_keyframes(args.elements, args.shot))
        if self.report(result):
            table = Table(title="🎞 Keyframes", show_header=True, header_style="bold blue")
            for column in ("frame", "element", "action", "value"):
                table.add_column(column.title())
            for keyframe in result.output["keyframes"]:
                table.add_row(*(str(keyframe.get(c, "")) for c in ("frame", "element", "action", "value")))
            self.console.print(table)
        return result.success

    async def cmd_sounds(self, args) -> bool:
        result = await self.run_remote("Scanning ambient sounds...", self.orchestrator.scan_ambient_sounds)
        if self.report(result):
            for sound in result.output:
                self.console.print(f"  🔊 {sound}")
        return result.success

    async def cmd_show(self, args) -> bool:
        project = self.store.snapshot()
        self.display_summary(project)
        if args.section in ("story", "all"):
            self.display_story(project)
        if args.section in ("shots", "all") and project.scenes:
            self.display_scenes(project)
        if args.section in ("design", "all"):
            self.display_design(project)
        if args.section in ("report", "all"):
            self.display_report(project)
        return True

    async def cmd_export(self, args) -> bool:
        project = self.store.snapshot()
        path = Path(args.output or export_filename(project.name))
        save_project(project, path)
        self.console.print(f"[green]📁 Project exported: {path}[/green]")
        return True

    async def cmd_rename(self, args) -> bool:
        if not args.name.strip():
            self.console.print(f"[red]❌ {get_text(self.language, 'name_required')}[/red]")
            return False
        self.store.update(name=args.name.strip())
        return True

    async def execute(self, args) -> bool:
        """Run one command; the project file is saved after any command"""
        handler = getattr(self, f"cmd_{args.command.replace('-', '_')}")
        try:
            return await handler(args)
        finally:
            await self.orchestrator.wait_for_background()
            self.save()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Animated Short Production Assistant",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s story "A girl finds a lost fox cub" --length "90 seconds"
  %(prog)s scenes                          # Break the story into shots
  %(prog)s audit                           # Check continuity
  %(prog)s fix issue-1                     # Insert a transition for an issue
  %(prog)s apply-design && %(prog)s prompts -o script.txt
  %(prog)s --project forest.json --language vi show
        """
    )

    parser.add_argument(
        "--project", "-p",
        default="project.json",
        help="Project file to load and save (default: project.json)"
    )
    parser.add_argument(
        "--config", "-c",
        default="config.json",
        help="Path to configuration file (default: config.json)"
    )
    parser.add_argument(
        "--api-key",
        help="Google Gemini API key (or set GEMINI_API_KEY env var)"
    )
    parser.add_argument(
        "--language",
        choices=sorted(get_supported_languages()),
        help="Language for localized text and messages"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging"
    )

    commands = parser.add_subparsers(dest="command", required=True)

    story = commands.add_parser("story", help="Generate a story framework and style guide")
    story.add_argument("idea", help="Story idea")
    story.add_argument("--story-type", "-t", help=THEME_HELP)
    story.add_argument("--length", "-l", help='Preset (Short/Medium/Long) or e.g. "90 seconds"')

    manual = commands.add_parser("manual", help="Break a hand-written story into shots")
    source = manual.add_mutually_exclusive_group(required=True)
    source.add_argument("--text", help="Story beats, one per line")
    source.add_argument("--file", "-f", help="File with one story beat per line")
    manual.add_argument("--main-character", default="", help="Protagonist name")
    manual.add_argument("--story-type", "-t", help=THEME_HELP)
    manual.add_argument("--length", "-l", help="Target length")

    scenes = commands.add_parser("scenes", help="Break the story into shots and suggest assets")
    scenes.add_argument("--story-type", "-t", help=THEME_HELP)
    scenes.add_argument("--length", "-l", help="Target length")

    commands.add_parser("audit", help="Run a continuity audit")

    fix = commands.add_parser("fix", help="Insert a transition shot for a continuity issue")
    fix.add_argument("issue_id", help="Issue ID from the continuity report")
    fix.add_argument("--position", help='Override the shot range, e.g. "Shot 3 -> Shot 4"')

    commands.add_parser("optimize", help="Consolidate locations into master backgrounds")

    promote = commands.add_parser("promote", help="Promote a background to master")
    promote.add_argument("background_id")

    add_character = commands.add_parser("add-character", help="Add a character by hand")
    add_character.add_argument("name")
    add_character.add_argument("--age", default="")
    add_character.add_argument("--personality", default="")

    add_background = commands.add_parser("add-background", help="Add a background by hand")
    add_background.add_argument("location")
    add_background.add_argument("--description", default="")

    delete_character = commands.add_parser("delete-character", help="Remove a character")
    delete_character.add_argument("character_id")

    delete_background = commands.add_parser("delete-background", help="Remove a background")
    delete_background.add_argument("background_id")

    delete_shot = commands.add_parser("delete-shot", help="Remove a shot and renumber")
    delete_shot.add_argument("scene_id")

    move_shot = commands.add_parser("move-shot", help="Move a shot to a new position")
    move_shot.add_argument("scene_id")
    move_shot.add_argument("position", type=int, help="1-based target position")

    commands.add_parser("apply-design", help="Lock the design and unlock production prompts")

    prompts = commands.add_parser("prompts", help="Render production prompts")
    prompts.add_argument("--output", "-o", help="Write the full production script to a file")

    shots = commands.add_parser("shots", help="Render the shot list as text")
    shots.add_argument("--output", "-o", help="Write the shot list to a file")

    translate = commands.add_parser("translate-seo", help="Translate titles, summary and hashtags")
    translate.add_argument("language", help="Target language, e.g. Japanese")

    keyframes = commands.add_parser("keyframes", help="Generate keyframe data for elements")
    keyframes.add_argument("elements", nargs="+", help="Elements to animate")
    keyframes.add_argument("--shot", help="Shot ID the keyframes belong to")

    commands.add_parser("sounds", help="Suggest ambient sounds for the story setting")

    commands.add_parser("themes", help="List the story themes")

    show = commands.add_parser("show", help="Show the project")
    show.add_argument("section", nargs="?", default="all",
                      choices=["all", "story", "shots", "design", "report"])

    export = commands.add_parser("export", help="Export the project JSON")
    export.add_argument("--output", "-o", help="Target file (default: <name>_project.json)")

    rename = commands.add_parser("rename", help="Rename the project")
    rename.add_argument("name")

    return parser


def main():
    """Main entry point"""
    console = Console()
    args = build_parser().parse_args()

    # Configure logging level
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)
        logger.debug("Verbose logging enabled")

    try:
        assistant = ProductionAssistant(args.project, args.api_key, args.config,
                                        args.language, console)
        ok = asyncio.run(assistant.execute(args))
    except KeyboardInterrupt:
        console.print("\n[yellow]⚠️ Interrupted by user[/yellow]")
        sys.exit(130)
    except (ProductionAssistantError, GeminiServiceError) as e:
        console.print(f"[red]❌ {e}[/red]")
        logger.error(f"Command failed: {e}")
        sys.exit(1)
    except Exception as e:
        console.print(f"[red]❌ Fatal error: {e}[/red]")
        logger.exception("Fatal error in main")
        sys.exit(1)

    sys.exit(0 if ok else 1)


if __name__ == "__main__":
    main()
