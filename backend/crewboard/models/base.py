"""Shared SQLModel base that exposes the ``objects`` query manager."""

from __future__ import annotations

from typing import ClassVar

from sqlmodel import SQLModel

from crewboard.db.query_manager import ManagerDescriptor


class QueryModel(SQLModel, table=False):
    """Base for tables queried through ``Model.objects``."""

    objects: ClassVar[ManagerDescriptor] = ManagerDescriptor()
