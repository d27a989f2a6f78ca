"""FastAPI application entry point."""

from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from artemis.api import router as api_router
from artemis.core.config import get_settings

app = FastAPI(
    title="Artemis",
    description="ERP assistant streaming generated UI with branchable snapshot history",
    version="0.1.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
async def health_check() -> JSONResponse:
    """Health check endpoint."""
    return JSONResponse(
        content={"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()},
        status_code=200,
    )


# Include v1 API router
app.include_router(api_router, prefix="/v1", tags=["v1"])
