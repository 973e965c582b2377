"""
Replicate client: Stable Video Diffusion clips and SDXL character portraits.

Submits a prediction and polls it to completion with httpx.AsyncClient.
The output URL of an image prediction rides in the same result field as a
clip URL.
"""

import os
import asyncio
import logging

import httpx

from .presets import FRAME_SIZES, NEGATIVE_PROMPT, PORTRAIT_NEGATIVE_PROMPT, build_video_prompt
from .pipeline.errors import TransientProviderError
from .pipeline.models import PortraitRequest, VideoGenerationRequest, VideoGenerationResult, VideoStatus

logger = logging.getLogger(__name__)

# ── Config ───────────────────────────────────────────────────────────────────

REPLICATE_API_TOKEN = os.getenv("REPLICATE_API_TOKEN", "")
REPLICATE_API_BASE = "https://api.replicate.com/v1"
REPLICATE_MODEL_VERSION = os.getenv(
    "REPLICATE_MODEL_VERSION",
    "cdb532257c2bff8c6dc96fb90da3a8a44c7a18bb0e9b0db6ce8e1b8a8ad8dca8",
)
MAX_VIDEO_LENGTH = 5

REPLICATE_PORTRAIT_VERSION = os.getenv(
    "REPLICATE_PORTRAIT_VERSION",
    "ac732df83cea7fff18b8472768c88ad041fa750ff7682a21affe81863cbe77e45",
)
PORTRAIT_SIZE = 768
PORTRAIT_POLL_INTERVAL = 2

POLL_INTERVAL = 5  # seconds
MAX_POLL_ATTEMPTS = 60

_STATUS_MAP = {
    "starting": VideoStatus.PENDING,
    "processing": VideoStatus.PROCESSING,
    "succeeded": VideoStatus.COMPLETED,
    "failed": VideoStatus.FAILED,
    "canceled": VideoStatus.FAILED,
}


def is_configured() -> bool:
    return bool(REPLICATE_API_TOKEN)


def _headers() -> dict:
    return {
        "Authorization": f"Token {REPLICATE_API_TOKEN}",
        "Content-Type": "application/json",
    }


def _to_result(prediction: dict) -> VideoGenerationResult:
    output = prediction.get("output")
    if isinstance(output, list):
        output = output[0] if output else None
    return VideoGenerationResult(
        external_id=prediction.get("id"),
        video_url=output,
        status=_STATUS_MAP.get(prediction.get("status", ""), VideoStatus.PROCESSING),
        instructions=prediction.get("error"),
    )


async def get_prediction(prediction_id: str) -> VideoGenerationResult:
    async with httpx.AsyncClient(timeout=15) as client:
        resp = await client.get(
            f"{REPLICATE_API_BASE}/predictions/{prediction_id}",
            headers=_headers(),
        )
        resp.raise_for_status()
        return _to_result(resp.json())


async def _submit(payload: dict) -> str:
    async with httpx.AsyncClient(timeout=30) as client:
        submit_resp = await client.post(
            f"{REPLICATE_API_BASE}/predictions",
            headers=_headers(),
            json=payload,
        )
        submit_resp.raise_for_status()
        prediction = submit_resp.json()

    prediction_id = prediction.get("id")
    if not prediction_id:
        raise TransientProviderError(f"Replicate submit failed, no id: {prediction}")
    return prediction_id


async def _wait_for(prediction_id: str, interval: float) -> VideoGenerationResult:
    """Poll until the prediction succeeds; raise if it fails or never finishes."""
    for attempt in range(MAX_POLL_ATTEMPTS):
        await asyncio.sleep(interval)
        result = await get_prediction(prediction_id)
        logger.info(f"Replicate poll #{attempt + 1}: status={result.status.value}")

        if result.status == VideoStatus.COMPLETED:
            if not result.video_url:
                raise TransientProviderError(f"Replicate completed but no output: {prediction_id}")
            return result
        if result.status == VideoStatus.FAILED:
            raise TransientProviderError(f"Replicate prediction failed: {result.instructions or 'unknown error'}")

    raise TransientProviderError(
        f"Replicate prediction {prediction_id} timed out after {MAX_POLL_ATTEMPTS * interval:.0f}s"
    )


async def generate_video(request: VideoGenerationRequest) -> VideoGenerationResult:
    """Submit a prediction and wait for the rendered clip."""
    width, height = FRAME_SIZES[request.aspect_ratio]
    prediction_id = await _submit({
        "version": REPLICATE_MODEL_VERSION,
        "input": {
            "video_length": min(request.duration, MAX_VIDEO_LENGTH),
            "prompt": build_video_prompt(request),
            "negative_prompt": NEGATIVE_PROMPT,
            "width": width,
            "height": height,
        },
    })
    logger.info(f"Replicate prediction submitted for story {request.story_id}: {prediction_id}")
    return await _wait_for(prediction_id, POLL_INTERVAL)


async def generate_portrait(request: PortraitRequest) -> str:
    """SDXL character portrait; returns the image URL."""
    prediction_id = await _submit({
        "version": REPLICATE_PORTRAIT_VERSION,
        "input": {
            "prompt": request.prompt,
            "negative_prompt": PORTRAIT_NEGATIVE_PROMPT,
            "width": PORTRAIT_SIZE,
            "height": PORTRAIT_SIZE,
            "num_inference_steps": 50,
            "guidance_scale": 7.5,
            "scheduler": "DPMSolverMultistep",
        },
    })
    logger.info(f"Replicate portrait submitted for {request.name}: {prediction_id}")
    result = await _wait_for(prediction_id, PORTRAIT_POLL_INTERVAL)
    return result.video_url
