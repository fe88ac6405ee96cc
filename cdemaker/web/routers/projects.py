from __future__ import annotations
from typing import Any, Dict, Optional
import logging
from fastapi import APIRouter, Depends, Query, Request
from starlette.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from cdemaker.db import get_session
from cdemaker.models import Project
from cdemaker.services.auth import AuthUnavailableError, get_current_user
from cdemaker.services import projects as repo

log = logging.getLogger(__name__)
router = APIRouter()


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


def _project_json(p: Project) -> Dict[str, Any]:
    return p.model_dump(mode="json")


async def _json_body(request: Request) -> Dict[str, Any]:
    try:
        body = await request.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def _valid_str(v: Any) -> bool:
    return isinstance(v, str) and bool(v)


def _auth_unavailable(e: AuthUnavailableError) -> JSONResponse:
    log.warning("[auth] %s", e)
    return _error("Authentication service unavailable", 503)


@router.get("/api/projects")
async def get_projects(
    request: Request,
    id: Optional[str] = Query(None),
    session: AsyncSession = Depends(get_session),
):
    try:
        if id:
            project = await repo.get_project(session, id)
            if project is None:
                return _error("Project not found", 404)
            return JSONResponse(_project_json(project))
        user = await get_current_user(request)
        projects = await repo.list_projects(session, user.id if user else None)
        return JSONResponse([_project_json(p) for p in projects])
    except AuthUnavailableError as e:
        return _auth_unavailable(e)
    except Exception:
        log.exception("Error fetching projects")
        return _error("Failed to fetch projects", 500)


@router.post("/api/projects")
async def post_project(request: Request, session: AsyncSession = Depends(get_session)):
    try:
        body = await _json_body(request)
        name = body.get("name")
        if not _valid_str(name):
            return _error("Project name is required", 400)
        user = await get_current_user(request)
        project = await repo.create_project(session, name, user.id if user else None)
        return JSONResponse(_project_json(project), status_code=201)
    except AuthUnavailableError as e:
        return _auth_unavailable(e)
    except Exception:
        log.exception("Error creating project")
        return _error("Failed to create project", 500)


@router.put("/api/projects")
async def put_project(request: Request, session: AsyncSession = Depends(get_session)):
    try:
        body = await _json_body(request)
        project_id, name = body.get("id"), body.get("name")
        if not _valid_str(project_id):
            return _error("Project ID is required", 400)
        if not _valid_str(name):
            return _error("Project name is required", 400)
        project = await repo.update_project(session, project_id, name)
        if project is None:
            return _error("Project not found", 404)
        return JSONResponse(_project_json(project))
    except Exception:
        log.exception("Error updating project")
        return _error("Failed to update project", 500)


@router.delete("/api/projects")
async def delete_project(id: Optional[str] = Query(None), session: AsyncSession = Depends(get_session)):
    try:
        if not id:
            return _error("Project ID is required", 400)
        if not await repo.delete_project(session, id):
            return _error("Project not found", 404)
        return JSONResponse({"success": True})
    except Exception:
        log.exception("Error deleting project")
        return _error("Failed to delete project", 500)
