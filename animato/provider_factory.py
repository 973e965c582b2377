import os
import logging

from . import gemini, huggingface, replicate, runway
from .pipeline.errors import PreconditionError
from .pipeline.fallback_chain import FallbackChain, GenerationKind, ProviderHandle
from .pipeline.models import VideoGenerationResult, VideoProvider

logger = logging.getLogger(__name__)

PROVIDER_TIMEOUT = float(os.getenv("PROVIDER_TIMEOUT_SECONDS", "300"))
PORTRAIT_TIMEOUT = float(os.getenv("PORTRAIT_TIMEOUT_SECONDS", "120"))


class ProviderFactory:
    """Builds the fixed-priority provider chains from whichever credentials are set."""

    @staticmethod
    def character_chain(timeout: float = PROVIDER_TIMEOUT) -> FallbackChain:
        handles = []
        if gemini.is_configured():
            handles.append(ProviderHandle(name="gemini", call=gemini.extract_characters, timeout=timeout))
        logger.info(f"Character providers: {[h.name for h in handles] or 'none (templates only)'}")
        return FallbackChain(GenerationKind.CHARACTERS, handles)

    @staticmethod
    def photo_chain(timeout: float = PORTRAIT_TIMEOUT) -> FallbackChain:
        # Priority: Replicate SDXL → HuggingFace SDXL
        candidates = [
            (replicate, "replicate", replicate.generate_portrait),
            (huggingface, "huggingface", huggingface.generate_portrait),
        ]
        handles = [
            ProviderHandle(name=name, call=call, timeout=timeout)
            for module, name, call in candidates
            if module.is_configured()
        ]
        logger.info(f"Portrait providers: {[h.name for h in handles] or 'none (designed portraits only)'}")
        return FallbackChain(GenerationKind.PHOTOS, handles)

    @staticmethod
    def video_chain(timeout: float = PROVIDER_TIMEOUT) -> FallbackChain:
        # Priority: Runway → Replicate → HuggingFace
        candidates = [
            (runway, "runway", VideoProvider.RUNWAY, runway.generate_video),
            (replicate, "replicate", VideoProvider.REPLICATE, replicate.generate_video),
            (huggingface, "huggingface", VideoProvider.HUGGINGFACE, huggingface.generate_video),
        ]
        handles = [
            ProviderHandle(name=name, call=call, tag=tag.value, timeout=timeout)
            for module, name, tag, call in candidates
            if module.is_configured()
        ]
        logger.info(f"Video providers: {[h.name for h in handles] or 'none (placeholder only)'}")
        return FallbackChain(GenerationKind.VIDEO, handles)


async def check_video_status(provider: VideoProvider, external_id: str) -> VideoGenerationResult:
    """Status of a job previously submitted to a provider that supports lookups."""
    if provider == VideoProvider.RUNWAY and runway.is_configured():
        return await runway.get_task_status(external_id)
    if provider == VideoProvider.REPLICATE and replicate.is_configured():
        return await replicate.get_prediction(external_id)
    raise PreconditionError(f"Status lookup not available for provider {provider.value}")
