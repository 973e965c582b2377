"""
HuggingFace Inference client: text-to-video clips and SDXL character portraits.

The inference endpoints answer with raw media bytes, which are uploaded to
R2 so the stored record can point at a public URL.
"""

import os
import logging
from uuid import uuid4

import httpx

from .presets import PORTRAIT_NEGATIVE_PROMPT, build_video_prompt
from .pipeline import storage
from .pipeline.errors import TransientProviderError
from .pipeline.models import (
    AspectRatio,
    PortraitRequest,
    VideoGenerationRequest,
    VideoGenerationResult,
    VideoStatus,
)

logger = logging.getLogger(__name__)

HUGGINGFACE_API_KEY = os.getenv("HUGGINGFACE_API_KEY", "")
HUGGINGFACE_MODEL_URL = os.getenv(
    "HUGGINGFACE_MODEL_URL",
    "https://api-inference.huggingface.co/models/damo-vilab/text-to-video-ms-1.7b",
)
HUGGINGFACE_PORTRAIT_URL = os.getenv(
    "HUGGINGFACE_PORTRAIT_URL",
    "https://api-inference.huggingface.co/models/stabilityai/stable-diffusion-xl-base-1.0",
)
FRAMES_PER_SECOND = 8
MAX_FRAMES = 24


def is_configured() -> bool:
    return bool(HUGGINGFACE_API_KEY) and storage.is_configured()


async def generate_video(request: VideoGenerationRequest) -> VideoGenerationResult:
    vertical = request.aspect_ratio == AspectRatio.VERTICAL
    payload = {
        "inputs": build_video_prompt(request),
        "parameters": {
            "num_frames": min(request.duration * FRAMES_PER_SECOND, MAX_FRAMES),
            "height": 320 if vertical else 256,
            "width": 256 if vertical else 320,
        },
    }

    async with httpx.AsyncClient(timeout=120) as client:
        resp = await client.post(
            HUGGINGFACE_MODEL_URL,
            headers={"Authorization": f"Bearer {HUGGINGFACE_API_KEY}"},
            json=payload,
        )

    if resp.status_code != 200:
        raise TransientProviderError(f"HuggingFace API error {resp.status_code}: {resp.text[:300]}")
    if not resp.content:
        raise TransientProviderError("HuggingFace returned an empty video")

    external_id = f"hf-{uuid4().hex[:12]}"
    video_url = await storage.upload_story_media(
        request.story_id, f"{external_id}.mp4", resp.content, "video/mp4"
    )
    logger.info(f"HuggingFace video stored for story {request.story_id}: {video_url}")

    return VideoGenerationResult(
        external_id=external_id,
        video_url=video_url,
        status=VideoStatus.COMPLETED,
    )


async def generate_portrait(request: PortraitRequest) -> str:
    """SDXL character portrait, stored in R2; returns its public URL."""
    payload = {
        "inputs": request.prompt,
        "parameters": {
            "negative_prompt": PORTRAIT_NEGATIVE_PROMPT,
            "num_inference_steps": 50,
            "guidance_scale": 7.5,
            "width": 768,
            "height": 768,
        },
    }

    async with httpx.AsyncClient(timeout=120) as client:
        resp = await client.post(
            HUGGINGFACE_PORTRAIT_URL,
            headers={"Authorization": f"Bearer {HUGGINGFACE_API_KEY}"},
            json=payload,
        )

    if resp.status_code != 200:
        raise TransientProviderError(f"HuggingFace API error {resp.status_code}: {resp.text[:300]}")
    if not resp.content:
        raise TransientProviderError("HuggingFace returned an empty image")

    photo_url = await storage.upload_story_media(
        request.story_id, f"portrait-{request.character_id}.png", resp.content, "image/png"
    )
    logger.info(f"HuggingFace portrait stored for {request.name}: {photo_url}")
    return photo_url
