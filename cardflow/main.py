"""Main FastAPI application entry point."""
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from cardflow.api.routes import router
from cardflow.core.logging import get_logger
from cardflow.database import init_db

logger = get_logger("main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables on startup."""
    init_db()
    logger.info("Cardflow ready")
    yield


app = FastAPI(
    title="Cardflow - Content Card Lifecycle Engine",
    description="Approval workflow, audit ledger and SLA clock for social content cards.",
    version="0.1.0",
    lifespan=lifespan,
)

# Enable CORS for local development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # For MVP - restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routes
app.include_router(router, prefix="/api", tags=["Content cards"])


# Health check
@app.get("/health")
def health_check():
    return {"status": "healthy", "service": "Cardflow"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
