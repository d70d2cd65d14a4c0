from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from expense_categorizer.api.routes import categorize, learning, patterns, rules
from expense_categorizer.core import settings
from expense_categorizer.core.configuration import EngineConfig
from expense_categorizer.engine import CategorizationEngine
from expense_categorizer.logger import get_logger, setup_logging
from expense_categorizer.services.categorization import CategorizationPipeline
from expense_categorizer.storage.base import StorageError
from expense_categorizer.storage.factory import build_store
from expense_categorizer.storage.memory import MemoryStore

logger = get_logger(__name__)


def create_app() -> FastAPI:
    setup_logging()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        logger.info("Initializing services...")
        settings.log_environment()

        backend = settings.get_storage_backend()
        if backend == "memory":
            logger.warning("STORAGE_BACKEND=memory. Learned state will be lost on shutdown.")

        try:
            store = build_store(backend, settings.DATA_DIR)
        except StorageError as exc:
            logger.error("[STORE] %s storage unavailable, keeping state in memory: %s", backend, exc)
            store = MemoryStore()
        engine = CategorizationEngine(store=store, config=EngineConfig.from_settings())

        app.state.engine = engine
        app.state.pipeline = CategorizationPipeline(engine=engine)

        logger.info("Services initialized (storage: %s).", backend)
        yield
        engine.save()
        logger.info("Service shutting down.")

    app = FastAPI(title="Expense Categorizer", lifespan=lifespan)

    app.include_router(categorize.router)
    app.include_router(learning.router)
    app.include_router(rules.router)
    app.include_router(patterns.router)

    return app


app = create_app()
