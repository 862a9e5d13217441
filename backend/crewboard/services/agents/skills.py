"""Skill documents loaded from disk and injected into agent prompts.

Each skill lives at ``<skills_path>/<skill_id>/SKILL.md``. The cache is an
explicit object owned by the pipeline container so tests and the reload
endpoint can rebuild it.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from crewboard.core.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = get_logger(__name__)

SKILL_FILENAME = "SKILL.md"
_DESCRIPTION_SCAN_LINES = 10
_MIN_PROSE_DESCRIPTION_CHARS = 20


@dataclass(frozen=True)
class Skill:
    """A named instruction document."""

    id: str
    name: str
    description: str
    content: str
    path: Path


def _frontmatter_value(lines: list[str], key: str) -> str | None:
    in_frontmatter = False
    prefix = f"{key}:"
    for raw_line in lines:
        line = raw_line.strip()
        if line == "---":
            if in_frontmatter:
                return None
            in_frontmatter = True
            continue
        if not in_frontmatter:
            return None
        if line.lower().startswith(prefix):
            value = line.split(":", maxsplit=1)[-1].strip().strip("\"'")
            return value or None
    return None


def _infer_display_name(lines: list[str], fallback: str) -> str:
    name = _frontmatter_value(lines, "name")
    if name:
        return name
    for raw_line in lines:
        line = raw_line.strip()
        if line.startswith("# "):
            heading = line[2:].strip()
            if heading:
                return heading
    return fallback


def _infer_description(lines: list[str]) -> str:
    description = _frontmatter_value(lines, "description")
    if description:
        return description
    in_frontmatter = False
    scanned = 0
    for raw_line in lines:
        line = raw_line.strip()
        if line == "---":
            in_frontmatter = not in_frontmatter
            continue
        if in_frontmatter:
            continue
        scanned += 1
        if scanned > _DESCRIPTION_SCAN_LINES:
            break
        if line.startswith("> "):
            return line[2:].strip()
        if len(line) > _MIN_PROSE_DESCRIPTION_CHARS and not line.startswith("#"):
            return line
    return ""


def load_skill(skills_path: Path, skill_id: str) -> Skill | None:
    """Read one skill from disk, or None when it is absent or unreadable."""
    skill_file = skills_path / skill_id / SKILL_FILENAME
    if not skill_file.is_file():
        logger.warning(
            "agent.skills.not_found",
            extra={"skill_id": skill_id, "path": str(skill_file)},
        )
        return None
    try:
        content = skill_file.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        logger.exception("agent.skills.read_failed", extra={"skill_id": skill_id})
        return None

    lines = content.splitlines()
    return Skill(
        id=skill_id,
        name=_infer_display_name(lines, skill_id),
        description=_infer_description(lines),
        content=content,
        path=skill_file,
    )


class SkillCache:
    """Lazily populated, reloadable in-memory index of skills."""

    def __init__(self, skills_path: str | Path) -> None:
        self.skills_path = Path(skills_path)
        self._skills: dict[str, Skill] = {}
        self._missing: set[str] = set()
        self._initialized = False

    def _ensure_loaded(self) -> None:
        if self._initialized:
            return
        self._initialized = True
        if not self.skills_path.is_dir():
            logger.warning(
                "agent.skills.directory_missing",
                extra={"path": str(self.skills_path)},
            )
            return
        try:
            skill_dirs = sorted(entry.name for entry in self.skills_path.iterdir() if entry.is_dir())
        except OSError:
            logger.exception("agent.skills.scan_failed", extra={"path": str(self.skills_path)})
            return
        for skill_id in skill_dirs:
            skill = load_skill(self.skills_path, skill_id)
            if skill is not None:
                self._skills[skill_id] = skill
        logger.info(
            "agent.skills.loaded",
            extra={"count": len(self._skills), "path": str(self.skills_path)},
        )

    def get_skill(self, skill_id: str) -> Skill | None:
        self._ensure_loaded()
        cached = self._skills.get(skill_id)
        if cached is not None or skill_id in self._missing:
            return cached
        # Skills added after the initial scan are picked up on first request.
        # Misses are remembered until reload().
        skill = load_skill(self.skills_path, skill_id)
        if skill is None:
            self._missing.add(skill_id)
        else:
            self._skills[skill_id] = skill
        return skill

    def get_skills(self, skill_ids: Iterable[str]) -> list[Skill]:
        skills: list[Skill] = []
        for skill_id in skill_ids:
            skill = self.get_skill(skill_id)
            if skill is not None:
                skills.append(skill)
        return skills

    def list_skills(self) -> list[Skill]:
        self._ensure_loaded()
        return list(self._skills.values())

    def reload(self) -> int:
        """Drop the cache and rescan the skills directory."""
        self._skills.clear()
        self._missing.clear()
        self._initialized = False
        self._ensure_loaded()
        return len(self._skills)

    def build_skills_prompt(self, skill_ids: Iterable[str]) -> str:
        skills = self.get_skills(skill_ids)
        if not skills:
            return ""
        sections = [f"## Skill: {skill.name}\n\n{skill.content}" for skill in skills]
        return "# Available Skills\n\n" + "\n\n---\n\n".join(sections)
