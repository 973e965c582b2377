"""
Runway ML video generation client.

Async httpx client with its own retry policy (exponential backoff on
429/5xx and transport errors). Polling sleeps on the event loop, so a
chain timeout or a cancelled run stops the task at its next await.
"""

import os
import random
import asyncio
import logging

import httpx

from .presets import build_video_prompt
from .pipeline.errors import TransientProviderError
from .pipeline.models import VideoGenerationRequest, VideoGenerationResult, VideoStatus

logger = logging.getLogger(__name__)

RUNWAY_API_KEY = os.environ.get("RUNWAY_API_KEY", "")
RUNWAY_API_BASE = "https://api.runwayml.com/v1"
RUNWAY_MODEL = os.environ.get("RUNWAY_MODEL", "gen3a_turbo")
MAX_CLIP_SECONDS = 10

# ── Retry configuration ──────────────────────────────────────────────────────
MAX_RETRIES = 3
BASE_DELAY = 2.0       # seconds, doubles each retry: 2, 4, 8
JITTER_MAX = 1.0        # random jitter 0–1s added to each delay
RETRYABLE_STATUS_CODES = {429, 502, 503, 504}
REQUEST_TIMEOUT = 30

POLL_INTERVAL = 5  # seconds
MAX_POLL_ATTEMPTS = 60


def is_configured() -> bool:
    return bool(RUNWAY_API_KEY)


def _backoff_delay(attempt: int) -> float:
    return BASE_DELAY * (2 ** attempt) + random.uniform(0, JITTER_MAX)


async def _request_with_backoff(method: str, url: str, **kwargs) -> httpx.Response:
    """
    Make an HTTP request with exponential backoff on retryable errors (429, 5xx).

    Uses: base_delay * 2^attempt + random jitter, or the server's Retry-After.
    """
    headers = {"Authorization": f"Bearer {RUNWAY_API_KEY}"}

    async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT) as client:
        for attempt in range(MAX_RETRIES + 1):
            try:
                response = await client.request(method, url, headers=headers, **kwargs)
            except httpx.TransportError as e:
                if attempt >= MAX_RETRIES:
                    raise TransientProviderError(f"Runway request failed: {e}") from e
                delay = _backoff_delay(attempt)
                logger.warning(
                    f"Runway request error on attempt {attempt + 1}/{MAX_RETRIES + 1}: {e}, "
                    f"retrying in {delay:.1f}s"
                )
                await asyncio.sleep(delay)
                continue

            if response.status_code not in RETRYABLE_STATUS_CODES or attempt >= MAX_RETRIES:
                response.raise_for_status()
                return response

            retry_after = response.headers.get("Retry-After")
            if retry_after and retry_after.isdigit():
                delay = int(retry_after)
            else:
                delay = _backoff_delay(attempt)

            logger.warning(
                f"Runway {response.status_code} on attempt {attempt + 1}/{MAX_RETRIES + 1}, "
                f"retrying in {delay:.1f}s (url={url})"
            )
            await asyncio.sleep(delay)

    raise TransientProviderError(f"Request to {url} failed after {MAX_RETRIES + 1} attempts")


async def submit_generation(request: VideoGenerationRequest) -> str:
    """Start a Runway generation task and return its id."""
    payload = {
        "model": RUNWAY_MODEL,
        "prompt": build_video_prompt(request),
        "duration": min(request.duration, MAX_CLIP_SECONDS),
        "aspect_ratio": request.aspect_ratio.value,
        "motion_bucket_id": 127,
    }
    logger.info(f"Runway request for story {request.story_id}: model={RUNWAY_MODEL}")

    response = await _request_with_backoff("POST", f"{RUNWAY_API_BASE}/video_generations", json=payload)
    data = response.json()
    task_id = data.get("id")
    if not task_id:
        raise TransientProviderError(f"Runway submit failed, no id: {data}")
    return task_id


def _to_result(task_id: str, data: dict) -> VideoGenerationResult:
    status = str(data.get("status", "")).upper()
    output = data.get("output") or []

    if status == "SUCCEEDED":
        mapped = VideoStatus.COMPLETED
    elif status in ("FAILED", "CANCELLED"):
        mapped = VideoStatus.FAILED
    elif status == "PENDING":
        mapped = VideoStatus.PENDING
    else:
        mapped = VideoStatus.PROCESSING

    return VideoGenerationResult(
        external_id=task_id,
        video_url=output[0] if output else None,
        thumbnail_url=data.get("thumbnail"),
        status=mapped,
        instructions=data.get("failure"),
    )


async def get_task_status(task_id: str) -> VideoGenerationResult:
    """Look up a Runway task and map it onto a provider result."""
    response = await _request_with_backoff("GET", f"{RUNWAY_API_BASE}/video_generations/{task_id}")
    return _to_result(task_id, response.json())


async def generate_video(request: VideoGenerationRequest) -> VideoGenerationResult:
    """Submit and poll until the task finishes."""
    task_id = await submit_generation(request)
    logger.info(f"Runway task submitted: {task_id}")

    for attempt in range(MAX_POLL_ATTEMPTS):
        await asyncio.sleep(POLL_INTERVAL)
        result = await get_task_status(task_id)
        logger.info(f"Runway poll #{attempt + 1}: status={result.status.value}")

        if result.status == VideoStatus.COMPLETED:
            if not result.video_url:
                raise TransientProviderError(f"Runway completed but returned no video URL: {task_id}")
            return result
        if result.status == VideoStatus.FAILED:
            raise TransientProviderError(f"Runway generation failed: {result.instructions or 'unknown error'}")

    raise TransientProviderError(f"Runway task {task_id} still running after {MAX_POLL_ATTEMPTS * POLL_INTERVAL}s")
