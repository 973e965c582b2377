"""
FastAPI routes for the story workflow.

Story Endpoints:
  GET    /stories?user_id=              — Refetch and list an owner's stories
  POST   /stories                       — Create a draft story
  GET    /stories/{id}                  — Story snapshot + derived stage
  PATCH  /stories/{id}                  — Edit story fields
  DELETE /stories/{id}                  — Delete story (cascades)
  PUT    /stories/{id}/segments         — Replace scene segmentation
  GET    /stories/{id}/warnings         — Non-fatal sync warnings

Generation Endpoints:
  POST /stories/{id}/advance                      — Run the step the derived stage calls for
  POST /stories/{id}/characters/generate          — Generate the cast
  POST /stories/{id}/characters/photos/generate   — Portraits for characters without one
  POST /stories/{id}/segments/generate            — Cut the story into scenes
  POST /stories/{id}/video/generate               — Generate the video
  POST /stories/{id}/video/generate/stream        — Same, streaming NDJSON progress
  GET  /videos/{provider}/{external_id}/status

Services are built once at startup and read from request.app.state.
"""

import json
import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.responses import StreamingResponse

from ..provider_factory import check_video_status
from .errors import (
    PersistenceError,
    PreconditionError,
    ValidationError,
    WorkflowBusyError,
    WorkflowCancelled,
    WorkflowError,
)
from .models import (
    SegmentsReplaceRequest,
    StoryCreateRequest,
    StoryResponse,
    StoryUpdate,
    VideoGenerationResult,
    VideoOptions,
    VideoProvider,
    WorkflowResponse,
)
from .orchestrator import StoryWorkflowService, WorkflowResult
from .progress import ProgressStream
from .story_service import StoryService

logger = logging.getLogger(__name__)


def _story_service(request: Request) -> StoryService:
    return request.app.state.story_service


def _workflow(request: Request) -> StoryWorkflowService:
    return request.app.state.workflow


def _status_code(error: Exception) -> int:
    if isinstance(error, WorkflowBusyError):
        return 409
    if isinstance(error, PreconditionError):
        return 404
    if isinstance(error, ValidationError):
        return 422
    if isinstance(error, PersistenceError):
        return 502
    return 500


def _http_error(error: Exception) -> HTTPException:
    code = _status_code(error)
    if code == 500:
        logger.error(f"Unexpected workflow error: {error}", exc_info=error)
    return HTTPException(status_code=code, detail=str(error))


def _to_response(result: WorkflowResult) -> WorkflowResponse:
    return WorkflowResponse(
        story_id=result.story_id,
        state=result.state.value,
        story=result.story,
        events=result.events,
        warnings=result.warnings,
        characters=result.characters,
        segments=result.segments,
        photos=result.photos,
        video=result.video,
    )


# ═════════════════════════════════════════════════════════════════════════════
# Story Router
# ═════════════════════════════════════════════════════════════════════════════

story_router = APIRouter(prefix="/stories", tags=["stories"])


@story_router.get("", response_model=list[StoryResponse])
async def list_stories(request: Request, user_id: str = Query(...)):
    service = _story_service(request)
    try:
        stories = await service.list_stories(user_id)
    except WorkflowError as e:
        raise _http_error(e)
    return [StoryResponse(story=s, progress=service.progress(s.id)) for s in stories]


@story_router.post("", response_model=StoryResponse)
async def create_story(request: Request, body: StoryCreateRequest):
    service = _story_service(request)
    try:
        result = await service.create_story(body)
    except WorkflowError as e:
        raise _http_error(e)
    return StoryResponse(story=result.story, progress=service.progress(result.story.id))


@story_router.get("/{story_id}", response_model=StoryResponse)
async def get_story(request: Request, story_id: str):
    service = _story_service(request)
    try:
        story = await service.get_story(story_id)
    except WorkflowError as e:
        raise _http_error(e)
    return StoryResponse(story=story, progress=service.progress(story_id))


@story_router.patch("/{story_id}", response_model=StoryResponse)
async def update_story(request: Request, story_id: str, body: StoryUpdate):
    service = _story_service(request)
    try:
        result = await service.update_story(story_id, body)
    except WorkflowError as e:
        raise _http_error(e)
    return StoryResponse(story=result.story, progress=service.progress(story_id))


@story_router.delete("/{story_id}")
async def delete_story(request: Request, story_id: str):
    try:
        await _story_service(request).delete_story(story_id)
    except WorkflowError as e:
        raise _http_error(e)
    return {"status": "deleted", "story_id": story_id}


@story_router.put("/{story_id}/segments", response_model=StoryResponse)
async def replace_segments(request: Request, story_id: str, body: SegmentsReplaceRequest):
    service = _story_service(request)
    try:
        result = await service.replace_segments(story_id, body.segments)
    except WorkflowError as e:
        raise _http_error(e)
    return StoryResponse(story=result.story, progress=service.progress(story_id))


@story_router.get("/{story_id}/warnings")
async def story_warnings(request: Request, story_id: str):
    return [
        {
            "operation": w.operation,
            "message": w.message,
            "timestamp": w.timestamp.isoformat(),
        }
        for w in _story_service(request).warnings(story_id)
    ]


# ── Generation ───────────────────────────────────────────────────────────────

@story_router.post("/{story_id}/characters/generate", response_model=WorkflowResponse)
async def generate_characters(request: Request, story_id: str):
    try:
        await _story_service(request).get_story(story_id)
        result = await _workflow(request).generate_characters(story_id)
    except WorkflowError as e:
        raise _http_error(e)
    return _to_response(result)


@story_router.post("/{story_id}/advance", response_model=WorkflowResponse)
async def advance(request: Request, story_id: str, options: Optional[VideoOptions] = None):
    try:
        await _story_service(request).get_story(story_id)
        result = await _workflow(request).advance(story_id, options=options)
    except WorkflowError as e:
        raise _http_error(e)
    return _to_response(result)


@story_router.post("/{story_id}/characters/photos/generate", response_model=WorkflowResponse)
async def generate_character_photos(request: Request, story_id: str):
    try:
        await _story_service(request).get_story(story_id)
        result = await _workflow(request).generate_character_photos(story_id)
    except WorkflowError as e:
        raise _http_error(e)
    return _to_response(result)


@story_router.post("/{story_id}/segments/generate", response_model=WorkflowResponse)
async def generate_segments(request: Request, story_id: str):
    try:
        await _story_service(request).get_story(story_id)
        result = await _workflow(request).generate_segments(story_id)
    except WorkflowError as e:
        raise _http_error(e)
    return _to_response(result)


@story_router.post("/{story_id}/video/generate", response_model=WorkflowResponse)
async def generate_video(request: Request, story_id: str, options: Optional[VideoOptions] = None):
    try:
        await _story_service(request).get_story(story_id)
        result = await _workflow(request).generate_video(story_id, options=options)
    except WorkflowError as e:
        raise _http_error(e)
    return _to_response(result)


@story_router.post("/{story_id}/video/generate/stream")
async def generate_video_stream(request: Request, story_id: str, options: Optional[VideoOptions] = None):
    """
    One JSON object per line: each progress event, then a final
    {"result": ...} or {"error": ..., "status_code": ...} line.

    Closing the connection cancels the run at its next checkpoint.
    """
    workflow = _workflow(request)
    try:
        await _story_service(request).get_story(story_id)
    except WorkflowError as e:
        raise _http_error(e)

    stream = ProgressStream()
    cancel_event = asyncio.Event()
    task = asyncio.create_task(
        workflow.generate_video(story_id, progress=stream.push, cancel_event=cancel_event, options=options)
    )

    def _on_done(done: asyncio.Task):
        stream.finish()
        if not done.cancelled() and isinstance(done.exception(), WorkflowCancelled):
            logger.info(f"[{story_id}] Streamed workflow cancelled")

    task.add_done_callback(_on_done)

    async def body():
        try:
            async for event in stream:
                yield event.model_dump_json() + "\n"
            try:
                result = await task
            except WorkflowCancelled:
                return
            except WorkflowError as e:
                yield json.dumps({"error": str(e), "status_code": _status_code(e)}) + "\n"
                return
            yield json.dumps({"result": _to_response(result).model_dump(mode="json")}) + "\n"
        finally:
            if not task.done():
                logger.info(f"[{story_id}] Stream closed early, cancelling workflow")
                cancel_event.set()

    return StreamingResponse(body(), media_type="application/x-ndjson")


# ═════════════════════════════════════════════════════════════════════════════
# Video Router
# ═════════════════════════════════════════════════════════════════════════════

video_router = APIRouter(prefix="/videos", tags=["videos"])


@video_router.get("/{provider}/{external_id}/status", response_model=VideoGenerationResult)
async def video_status(provider: VideoProvider, external_id: str):
    try:
        return await check_video_status(provider, external_id)
    except WorkflowError as e:
        raise _http_error(e)
    except Exception as e:
        logger.error(f"Status lookup failed for {provider.value}/{external_id}: {e}", exc_info=True)
        raise HTTPException(status_code=502, detail=str(e))
