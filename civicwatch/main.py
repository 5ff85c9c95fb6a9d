import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request

from civicwatch.api.escalation import router as escalation_router
from civicwatch.core.config import Settings, get_settings
from civicwatch.services.ai_service import GeminiTextGenerator, NotificationComposer
from civicwatch.services.authority_service import AuthorityResolver
from civicwatch.services.change_stream_service import IssueChangeStreamListener
from civicwatch.services.email_service import Notifier, create_mail_transport
from civicwatch.services.escalation_service import EscalationService
from civicwatch.services.mongodb_service import (
    MongoAuthorityStore,
    MongoIssueStore,
    create_mongo_client,
    ping_database,
)
from civicwatch.services.prompt_manager import PromptManager

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )


def build_escalation_service(settings: Settings, db) -> EscalationService:
    """Wire the pipeline from long-lived clients built once per process."""
    composer = NotificationComposer(
        GeminiTextGenerator(settings.gemini_api_key, settings.gemini_model),
        prompt_manager=PromptManager(),
        use_fallback_template=settings.use_fallback_template,
    )
    notifier = Notifier(
        create_mail_transport(settings),
        from_email=settings.from_email,
        dry_run=settings.email_dry_run,
    )
    return EscalationService(
        issue_store=MongoIssueStore(db[settings.issues_collection]),
        resolver=AuthorityResolver(MongoAuthorityStore(db[settings.authorities_collection])),
        composer=composer,
        notifier=notifier,
        threshold=settings.upvote_threshold,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    settings: Settings = app.state.settings
    logger.info("🚀 Starting CivicWatch escalation backend...")
    logger.info(f"🔧 Settings: {settings.describe()}")

    client = create_mongo_client(settings)
    db = client[settings.mongodb_name]
    app.state.mongo_client = client
    app.state.escalation_service = build_escalation_service(settings, db)

    if await ping_database(client):
        try:
            await MongoAuthorityStore(db[settings.authorities_collection]).ensure_indexes()
        except Exception as e:
            logger.warning(f"⚠️ Index creation failed: {e}")
    else:
        logger.warning("⚠️ Starting without a reachable MongoDB; escalations will fail until it is restored")

    listener: Optional[IssueChangeStreamListener] = None
    if settings.watch_issue_changes:
        listener = IssueChangeStreamListener(db[settings.issues_collection], app.state.escalation_service)
        await listener.enable_pre_images()
        listener.start()
    app.state.change_listener = listener

    logger.info("✅ All services initialized - Server ready!")

    yield

    # Shutdown
    logger.info("🔄 Shutting down...")
    if listener is not None:
        await listener.stop()
    client.close()
    logger.info("✅ All services closed gracefully")


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings)

    app = FastAPI(title="CivicWatch Escalation Backend", version="1.0.0", lifespan=lifespan)
    app.state.settings = settings

    @app.get("/health")
    async def health(request: Request):
        return {
            "status": "healthy",
            "environment": settings.env,
            "escalation_service": getattr(request.app.state, "escalation_service", None) is not None,
            "watching_changes": getattr(request.app.state, "change_listener", None) is not None,
        }

    app.include_router(escalation_router, prefix="/api")
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("civicwatch.main:app", host="0.0.0.0", port=8000)
