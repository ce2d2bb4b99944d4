"""
FastAPI routes for the video generation pipeline.

Pipeline Endpoints:
  POST  /pipeline/credentials                 — Store API key and/or session cookies
  POST  /pipeline/run                         — Start a run (background unless ?wait=true)
  GET   /pipeline/status/{run_id}             — Stage, step status, scenes, error
  POST  /pipeline/{run_id}/select_character   — Pick a character variation (review)
  PATCH /pipeline/{run_id}/scenes/{scene_id}  — Edit a scene (review)
  POST  /pipeline/{run_id}/approve            — Approval signal → batch
  POST  /pipeline/{run_id}/cancel             — Cooperative cancel
  POST  /pipeline/resume/{record_id}          — Rehydrate a review-pending project

Project Endpoints:
  GET  /projects               — List stored projects, newest first
  GET  /projects/{id}          — Get one project
  GET  /projects/{id}/export   — Project as a JSON document
  POST /projects/import        — Import an exported project
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Response

from ..auth import Credentials, parse_cookie_export
from ..errors import ApprovalError, GenerationError, InvalidTransitionError, RunNotFoundError
from .models import (
    ApproveRequest,
    CredentialsRequest,
    RunRecord,
    RunRequest,
    RunStatusResponse,
    Scene,
    SceneEditRequest,
    SelectCharacterRequest,
)
from .orchestrator import VideoGenerationService

logger = logging.getLogger(__name__)

# Singleton service instance, created on first use
_service: Optional[VideoGenerationService] = None


def get_service() -> VideoGenerationService:
    global _service
    if _service is None:
        _service = VideoGenerationService()
    return _service


def _http_error(e: Exception) -> HTTPException:
    """Map pipeline errors onto HTTP statuses."""
    if isinstance(e, RunNotFoundError):
        return HTTPException(status_code=404, detail=e.message)
    if isinstance(e, InvalidTransitionError):
        return HTTPException(status_code=409, detail=e.message)
    if isinstance(e, ApprovalError):
        return HTTPException(status_code=400, detail=e.message)
    if isinstance(e, ValueError):
        return HTTPException(status_code=400, detail=str(e))
    logger.error(f"Request failed: {e}", exc_info=True)
    detail = e.message if isinstance(e, GenerationError) else str(e)
    return HTTPException(status_code=500, detail=detail)


# ═════════════════════════════════════════════════════════════════════════════
# Pipeline Router
# ═════════════════════════════════════════════════════════════════════════════

pipeline_router = APIRouter(prefix="/pipeline", tags=["pipeline"])


@pipeline_router.post("/credentials")
async def save_credentials(
    request: CredentialsRequest,
    service: VideoGenerationService = Depends(get_service),
):
    """Store credentials; returns the secret-free metadata."""
    cookies = list(request.cookies)
    if request.cookie_export:
        try:
            cookies.extend(parse_cookie_export(request.cookie_export))
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))

    meta = service.save_credentials(Credentials(api_key=request.api_key, cookies=cookies))
    return {"status": "ok", **meta}


@pipeline_router.get("/last_inputs")
async def get_last_inputs(service: VideoGenerationService = Depends(get_service)):
    return service.projects.last_inputs()


@pipeline_router.post("/run", response_model=RunStatusResponse)
async def run_pipeline(
    request: RunRequest,
    wait: bool = False,
    service: VideoGenerationService = Depends(get_service),
):
    """Start a run. With ?wait=true, respond once it completes, fails or pauses for review."""
    if wait:
        run = await service.start_run(request.idea, request.script, request.config)
    else:
        run = service.start_run_background(request.idea, request.script, request.config)
    return service.get_status(run.run_id)


@pipeline_router.get("/status/{run_id}", response_model=RunStatusResponse)
async def get_pipeline_status(run_id: str, service: VideoGenerationService = Depends(get_service)):
    try:
        return service.get_status(run_id)
    except RunNotFoundError as e:
        raise _http_error(e)


@pipeline_router.post("/{run_id}/select_character", response_model=RunStatusResponse)
async def select_character(
    run_id: str,
    request: SelectCharacterRequest,
    service: VideoGenerationService = Depends(get_service),
):
    try:
        service.select_character(run_id, request.variation_id)
    except (GenerationError, ValueError) as e:
        raise _http_error(e)
    return service.get_status(run_id)


@pipeline_router.patch("/{run_id}/scenes/{scene_id}", response_model=Scene)
async def edit_scene(
    run_id: str,
    scene_id: str,
    request: SceneEditRequest,
    service: VideoGenerationService = Depends(get_service),
):
    try:
        return service.edit_scene(run_id, scene_id, request.video_prompt, request.voice_script)
    except (GenerationError, ValueError) as e:
        raise _http_error(e)


@pipeline_router.post("/{run_id}/approve", response_model=RunStatusResponse)
async def approve_run(
    run_id: str,
    request: ApproveRequest,
    wait: bool = False,
    service: VideoGenerationService = Depends(get_service),
):
    """Resume a review-pending run at the batch stage."""
    try:
        if wait:
            await service.approve(run_id, request.character_id, request.scenes)
        else:
            service.approve_background(run_id, request.character_id, request.scenes)
    except (GenerationError, ValueError) as e:
        raise _http_error(e)
    return service.get_status(run_id)


@pipeline_router.post("/{run_id}/cancel", response_model=RunStatusResponse)
async def cancel_run(run_id: str, service: VideoGenerationService = Depends(get_service)):
    try:
        service.cancel(run_id)
    except RunNotFoundError as e:
        raise _http_error(e)
    return service.get_status(run_id)


@pipeline_router.post("/resume/{record_id}", response_model=RunStatusResponse)
async def resume_run(record_id: str, service: VideoGenerationService = Depends(get_service)):
    try:
        run = service.resume(record_id)
    except GenerationError as e:
        raise _http_error(e)
    return service.get_status(run.run_id)


# ═════════════════════════════════════════════════════════════════════════════
# Project Router — stored run records
# ═════════════════════════════════════════════════════════════════════════════

project_router = APIRouter(prefix="/projects", tags=["projects"])


@project_router.get("", response_model=list[RunRecord])
async def list_projects(service: VideoGenerationService = Depends(get_service)):
    return service.projects.list_records()


@project_router.post("/import", response_model=RunRecord)
async def import_project(payload: dict, service: VideoGenerationService = Depends(get_service)):
    try:
        return service.projects.import_record(payload)
    except ValueError as e:
        raise _http_error(e)


@project_router.get("/{project_id}", response_model=RunRecord)
async def get_project(project_id: str, service: VideoGenerationService = Depends(get_service)):
    try:
        return service.projects.get_record(project_id)
    except RunNotFoundError as e:
        raise _http_error(e)


@project_router.get("/{project_id}/export")
async def export_project(project_id: str, service: VideoGenerationService = Depends(get_service)):
    try:
        content = service.projects.export_record(project_id)
    except RunNotFoundError as e:
        raise _http_error(e)
    return Response(
        content=content,
        media_type="application/json",
        headers={"Content-Disposition": f'attachment; filename="project_{project_id}.json"'},
    )
