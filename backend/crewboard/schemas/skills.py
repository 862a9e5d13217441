"""Schemas for skill listing endpoints."""

from __future__ import annotations

from sqlmodel import SQLModel


class SkillRead(SQLModel):
    id: str
    name: str
    description: str


class SkillReloadResponse(SQLModel):
    count: int
