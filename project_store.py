"""
Owner of the single in-memory project and its JSON persistence.

Readers get deep-copied snapshots; writers replace whole fields through
``update``. Nothing outside this module holds a live reference to the
project, so a half-finished pipeline can never leave shared state torn.
"""

import copy
import json
import logging
import re
from dataclasses import fields
from itertools import count
from pathlib import Path
from typing import Any, Dict, Optional, Union

from config_manager import RACE_POLICIES
from data_models import ContinuityReport, Project
from localization import get_text

logger = logging.getLogger(__name__)

_PROJECT_FIELDS = frozenset(f.name for f in fields(Project))


class ProjectImportError(Exception):
    """Raised when a project file cannot be loaded"""
    pass


class ProjectStore:
    """State controller for one Project"""

    def __init__(self, project: Optional[Project] = None,
                 race_policy: str = "last_write_wins", language: str = "en"):
        if race_policy not in RACE_POLICIES:
            raise ValueError(f"race_policy must be one of {RACE_POLICIES}, got {race_policy}")
        self._project = project or Project(name=get_text(language, "project_name"))
        self.race_policy = race_policy
        self._audit_stamps = count(1)
        self._latest_audit_request = 0

    def snapshot(self) -> Project:
        """Return an independent copy of the current project"""
        return copy.deepcopy(self._project)

    def update(self, **changes: Any) -> Project:
        """Replace whole fields of the project; unknown names are rejected"""
        unknown = set(changes) - _PROJECT_FIELDS
        if unknown:
            raise KeyError(f"Unknown project fields: {sorted(unknown)}")

        for name, value in changes.items():
            setattr(self._project, name, copy.deepcopy(value))
        logger.debug(f"Project fields updated: {sorted(changes)}")
        return self.snapshot()

    def replace(self, project: Project) -> None:
        """Swap in a whole project, e.g. after an import"""
        self._project = copy.deepcopy(project)

    def begin_audit(self) -> int:
        """Stamp an audit request; pass the stamp to ``commit_audit``"""
        stamp = next(self._audit_stamps)
        self._latest_audit_request = stamp
        return stamp

    def commit_audit(self, report: ContinuityReport, stamp: int) -> bool:
        """Store an audit result, honoring the configured race policy.

        Returns False when the result was discarded because a newer audit
        request exists under ``latest_request_wins``.
        """
        if self.race_policy == "latest_request_wins" and stamp < self._latest_audit_request:
            logger.info(f"Discarding stale audit result #{stamp} "
                        f"(latest request is #{self._latest_audit_request})")
            return False
        self.update(continuity_report=report)
        return True


def export_filename(name: str) -> str:
    return re.sub(r"\s+", "_", name) + "_project.json"


def export_project_json(project: Project) -> str:
    return json.dumps(project.to_dict(), indent=2, ensure_ascii=False)


def import_project_json(text: str, language: str = "en") -> Project:
    """Parse an exported project file.

    The document must be a JSON object with a non-empty ``name``; anything
    else raises ProjectImportError carrying a localized message.
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        logger.error(f"Project import failed: {e}")
        raise ProjectImportError(get_text(language, "import_failed")) from e

    if not isinstance(data, dict) or not data.get("name"):
        raise ProjectImportError(get_text(language, "import_invalid"))

    try:
        return Project.from_dict(data)
    except (TypeError, AttributeError) as e:
        logger.error(f"Project import failed: {e}")
        raise ProjectImportError(get_text(language, "import_failed")) from e


def save_project(project: Project, path: Union[str, Path]) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = path.with_suffix(path.suffix + ".tmp")
    with open(temp_path, "w", encoding="utf-8") as f:
        f.write(export_project_json(project))
    temp_path.replace(path)
    logger.info(f"Project saved to {path}")
    return path


def load_project(path: Union[str, Path], language: str = "en") -> Project:
    path = Path(path)
    with open(path, "r", encoding="utf-8") as f:
        project = import_project_json(f.read(), language)
    logger.info(f"Project loaded from {path}")
    return project


def project_summary(project: Project) -> Dict[str, Any]:
    """Counts used by the CLI ``show`` command"""
    report = project.continuity_report
    return {
        "name": project.name,
        "has_story": project.story is not None,
        "scenes": len(project.scenes or []),
        "characters": len(project.characters),
        "backgrounds": len(project.backgrounds),
        "masters": sum(1 for bg in project.backgrounds if bg.is_master),
        "continuity_score": report.overall_score if report else None,
        "open_issues": len(report.issues) if report else 0,
        "design_applied": project.design_applied,
    }
