"""
FastAPI application entry point.

Family finance assistant for an Australian household: accounts, spending,
tax, super, the family trust, documents and an AI accountant.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from famfin import __version__
from famfin.api import api_router, callback_router
from famfin.config import get_settings
from famfin.database import close_db, init_db

logger = logging.getLogger(__name__)

settings = get_settings()


def configure_logging() -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    configure_logging()

    # Startup
    logger.info("Starting family finance assistant %s", __version__)
    await init_db()
    logger.info("Database initialized")
    if not settings.is_anthropic_configured():
        logger.warning("ANTHROPIC_API_KEY not set, chat runs in rule-based mode")
    if not settings.is_openai_configured():
        logger.warning("OPENAI_API_KEY not set, document search uses local embeddings")

    yield

    # Shutdown
    logger.info("Shutting down")
    await close_db()


app = FastAPI(
    title="Family Finance Assistant",
    description="""
    Household finance for an Australian family.

    ## Features
    - **Accounts & transactions**: balances, categories, rules, CSV import
    - **Xero**: OAuth connection and bank transaction sync
    - **Tax**: income, deductions, estimated tax and refund per person
    - **Super**: contributions against the concessional and non-concessional caps
    - **Family trust**: income, franking credits and distribution modelling
    - **Documents**: storage and semantic search
    - **AI accountant**: chat with tool access to the household's data
    """,
    version=__version__,
    lifespan=lifespan,
)

# CORS middleware for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routers
app.include_router(api_router)
app.include_router(callback_router)


@app.get("/")
async def root():
    """Root endpoint - health check."""
    return {
        "status": "healthy",
        "app": "Family Finance Assistant",
        "version": __version__,
    }


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("famfin.main:app", host="0.0.0.0", port=8000, reload=True)
