import os
import time
import logging
from contextlib import asynccontextmanager

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI

load_dotenv()

from . import metrics, gemini, huggingface, replicate, runway
from .provider_factory import ProviderFactory
from .story_locks import StoryLockRegistry, redis_from_env
from .pipeline.orchestrator import StoryWorkflowService
from .pipeline.repository import SupabaseStoryRepository
from .pipeline.routes import story_router, video_router
from .pipeline.story_service import StoryService
from .pipeline.story_store import StoryStore

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def build_services(app: FastAPI, repository=None, redis_client=None):
    """Construct the single instance of every service and keep it on app.state."""
    store = StoryStore(repository or SupabaseStoryRepository())
    locks = StoryLockRegistry(redis_client)
    app.state.store = store
    app.state.locks = locks
    app.state.story_service = StoryService(store)
    app.state.workflow = StoryWorkflowService(
        store,
        ProviderFactory.character_chain(),
        ProviderFactory.video_chain(),
        locks,
        photo_chain=ProviderFactory.photo_chain(),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Story workflow service starting up...")
    metrics.set_gauge("start_time", time.time())
    redis_client = redis_from_env()
    if redis_client is None:
        logger.info("No REDIS_URL, story locks are in-process only")
    build_services(app, redis_client=redis_client)
    yield
    logger.info("Story workflow service shutting down...")
    if redis_client is not None:
        await redis_client.aclose()


def create_app() -> FastAPI:
    app = FastAPI(title="Animato", lifespan=lifespan)
    app.include_router(story_router)
    app.include_router(video_router)

    @app.get("/health")
    def health_check():
        """Verify the service is running and which integrations are configured."""
        return {
            "status": "ok",
            "supabase_url_set": bool(os.environ.get("SUPABASE_URL")),
            "providers": {
                "gemini": gemini.is_configured(),
                "runway": runway.is_configured(),
                "replicate": replicate.is_configured(),
                "huggingface": huggingface.is_configured(),
            },
        }

    @app.get("/metrics")
    def get_metrics():
        """Return a snapshot of all service metrics."""
        return metrics.get_snapshot()

    return app


app = create_app()


if __name__ == "__main__":
    port = int(os.environ.get("PORT", 8080))
    uvicorn.run("animato.main:app", host="0.0.0.0", port=port, reload=True)
