"""FastAPI application entry point."""

from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from dotenv import load_dotenv
from loguru import logger

load_dotenv()

from ecount_intake.db import init_db  # noqa: E402
from ecount_intake.api import router, close_shared_pipeline  # noqa: E402
from ecount_intake.api.routes import get_settings  # noqa: E402
from ecount_intake.errors import IntakeError  # noqa: E402


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup: Initialize database
    await init_db()

    # Check if we should seed data
    settings = get_settings()
    if settings.seed_database:
        from ecount_intake.db.seed import seed_database
        from ecount_intake.db import AsyncSessionLocal

        async with AsyncSessionLocal() as session:
            await seed_database(
                session,
                company_code=settings.ecount.company_code,
                user_id=settings.ecount.user_id,
            )

    yield

    # Shutdown: release the Ecount HTTP client
    await close_shared_pipeline()


app = FastAPI(
    title="Ecount Order Intake",
    description="Natural-language order parsing and Ecount ERP submission",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS middleware for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://localhost:3000", "http://127.0.0.1:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(IntakeError)
async def intake_error_handler(request: Request, exc: IntakeError):
    """Map pipeline errors to their status code and a stable JSON body."""
    if exc.status_code >= 500:
        logger.error("{} {} failed ({}): {}", request.method, request.url.path, exc.kind.value, exc.message)
    else:
        logger.info("{} {} rejected ({}): {}", request.method, request.url.path, exc.kind.value, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# API routes
app.include_router(router, prefix="/api")


# Health check
@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "ecount-order-intake"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
