"""FastAPI application entry point for the reconciliation admin API."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
import os
from server.api.routers.ReconciliationRouter import reconciliation_router
from services.reconciliation.ReconciliationService import ReconciliationService
from shared.clients.db.DBClientManager import DBClientManager
from shared.clients.rag.RAGClientManager import RAGClientManager
from shared.helper.HelperConfig import HelperConfig
from shared.logging.logging_setup import setup_logging

app_version = os.getenv("APP_VERSION", "unknown")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application startup and shutdown."""
    app.state.logging = setup_logging()
    app.state.config = HelperConfig(logger=app.state.logging)

    # Initialise clients
    db_client = DBClientManager(helper_config=app.state.config).get_client()
    rag_client = RAGClientManager(helper_config=app.state.config).get_client()
    try:
        await db_client.boot()
        await rag_client.boot()

        # Health checks
        await db_client.do_healthcheck()
        await rag_client.do_healthcheck()
        if not await rag_client.do_existence_check():
            app.state.logging.warning("Collection %r does not exist yet, every partition will report zero points.", rag_client.get_collection())

        app.state.reconciliation_service = ReconciliationService(
            helper_config=app.state.config,
            db_client=db_client,
            rag_client=rag_client,
        )

        app.state.logging.info("Reconciliation API ready.")
        yield
    finally:
        await db_client.close()
        await rag_client.close()
        app.state.logging.info("Reconciliation API shut down.")


app = FastAPI(
    title="Archive Reconciliation",
    description="Consistency checks and repair between the archive database and its vector index.",
    version=app_version,
    lifespan=lifespan,
)

app.include_router(reconciliation_router)


# Server Start
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("APP_PORT", "8000")))
