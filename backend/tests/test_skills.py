# ruff: noqa: INP001
"""Skill document loading and prompt injection tests."""

from __future__ import annotations

from typing import TYPE_CHECKING

from crewboard.services.agents.skills import SkillCache, load_skill

if TYPE_CHECKING:
    from pathlib import Path


def _write_skill(root: Path, skill_id: str, content: str) -> None:
    skill_dir = root / skill_id
    skill_dir.mkdir(parents=True, exist_ok=True)
    (skill_dir / "SKILL.md").write_text(content, encoding="utf-8")


def test_load_skill_reads_frontmatter(tmp_path: Path) -> None:
    _write_skill(
        tmp_path,
        "github",
        "---\nname: GitHub\ndescription: Use the gh CLI.\n---\n\n# GitHub\n\nBody text.\n",
    )

    skill = load_skill(tmp_path, "github")

    assert skill is not None
    assert skill.id == "github"
    assert skill.name == "GitHub"
    assert skill.description == "Use the gh CLI."
    assert "Body text." in skill.content


def test_load_skill_falls_back_to_heading_and_prose(tmp_path: Path) -> None:
    _write_skill(
        tmp_path,
        "designer",
        "# Design Helper\n\nChecks layouts against accessibility guidelines.\n",
    )

    skill = load_skill(tmp_path, "designer")

    assert skill is not None
    assert skill.name == "Design Helper"
    assert skill.description == "Checks layouts against accessibility guidelines."


def test_load_skill_missing_returns_none(tmp_path: Path) -> None:
    assert load_skill(tmp_path, "absent") is None


def test_build_skills_prompt_skips_unknown_ids(tmp_path: Path) -> None:
    _write_skill(tmp_path, "coordinator", "# Coordinator\n\nRoute work.\n")
    _write_skill(tmp_path, "coding-agent", "# Coding Agent\n\nWrite code.\n")
    cache = SkillCache(tmp_path)

    prompt = cache.build_skills_prompt(["coordinator", "nope", "coding-agent"])

    assert prompt.startswith("# Available Skills\n\n")
    assert "## Skill: Coordinator" in prompt
    assert "## Skill: Coding Agent" in prompt
    assert prompt.index("Coordinator") < prompt.index("Coding Agent")
    assert "\n\n---\n\n" in prompt


def test_build_skills_prompt_empty_when_nothing_resolves(tmp_path: Path) -> None:
    cache = SkillCache(tmp_path)

    assert cache.build_skills_prompt(["nope"]) == ""
    assert cache.build_skills_prompt([]) == ""


def test_reload_picks_up_new_skills(tmp_path: Path) -> None:
    _write_skill(tmp_path, "one", "# One\n")
    cache = SkillCache(tmp_path)
    assert [skill.id for skill in cache.list_skills()] == ["one"]

    _write_skill(tmp_path, "two", "# Two\n")
    assert [skill.id for skill in cache.list_skills()] == ["one"]

    assert cache.reload() == 2
    assert sorted(skill.id for skill in cache.list_skills()) == ["one", "two"]


def test_missing_directory_yields_empty_cache(tmp_path: Path) -> None:
    cache = SkillCache(tmp_path / "missing")

    assert cache.list_skills() == []
    assert cache.reload() == 0


def test_description_skips_frontmatter_without_description(tmp_path: Path) -> None:
    _write_skill(
        tmp_path,
        "release",
        "---\nname: Release Manager Display Name\nversion: 2\n---\n\n"
        "# Release\n\nCuts tagged releases and writes the changelog.\n",
    )

    skill = load_skill(tmp_path, "release")

    assert skill is not None
    assert skill.name == "Release Manager Display Name"
    assert skill.description == "Cuts tagged releases and writes the changelog."


def test_unknown_skill_is_remembered_until_reload(tmp_path: Path) -> None:
    tmp_path.mkdir(exist_ok=True)
    cache = SkillCache(tmp_path)
    assert cache.get_skill("late") is None

    _write_skill(tmp_path, "late", "# Late\n")

    assert cache.get_skill("late") is None
    assert cache.build_skills_prompt(["late"]) == ""
    assert cache.reload() == 1
    late = cache.get_skill("late")
    assert late is not None
    assert late.name == "Late"
