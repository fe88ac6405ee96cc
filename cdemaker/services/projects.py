from __future__ import annotations
from typing import List, Optional
from datetime import datetime, timezone
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from cdemaker.models import Project


async def create_project(session: AsyncSession, name: str, user_id: Optional[str] = None) -> Project:
    project = Project(name=name, user_id=user_id)
    session.add(project)
    await session.commit()
    await session.refresh(project)
    return project


async def list_projects(session: AsyncSession, user_id: Optional[str] = None) -> List[Project]:
    """A user's projects, or the anonymous ones when user_id is None. Newest first."""
    stmt = select(Project).order_by(Project.created_at.desc())
    if user_id:
        stmt = stmt.where(Project.user_id == user_id)
    else:
        stmt = stmt.where(Project.user_id.is_(None))
    res = await session.execute(stmt)
    return list(res.scalars().all())


async def get_project(session: AsyncSession, project_id: str) -> Optional[Project]:
    res = await session.execute(select(Project).where(Project.id == project_id))
    return res.scalars().first()


async def update_project(session: AsyncSession, project_id: str, name: str) -> Optional[Project]:
    project = await get_project(session, project_id)
    if project is None:
        return None
    project.name = name
    project.updated_at = datetime.now(timezone.utc)
    session.add(project)
    await session.commit()
    await session.refresh(project)
    return project


async def delete_project(session: AsyncSession, project_id: str) -> bool:
    project = await get_project(session, project_id)
    if project is None:
        return False
    await session.delete(project)
    await session.commit()
    return True
