"""
# `studyprep/main.py` - Application entry point

## Overview
Builds the FastAPI app: logging, CORS, the shared error handlers and the routers.

## Routers (under `API_PREFIX`, default `/api`)
- `/users` - user lifecycle (Identity Verifier + Ownership Gate)
- `/uploads` - file uploads (Identity Verifier)
- `/admin` - user management and dashboard counters (Role Gate: owner or admin)

`GET /health` stays outside the prefix and needs no credential.
"""
import logging
from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from studyprep.config import settings
from studyprep.core.errors import register_error_handlers
from studyprep.routers import admin, uploads, users

logging.basicConfig(
    level=logging.DEBUG if settings.debug else settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

# Initialize FastAPI app
app = FastAPI(
    title="StudyPrep API",
    description="Authorization gate and user lifecycle for the StudyPrep learning app.",
    version="1.0.0",
    redirect_slashes=False,
    debug=settings.debug,
)

# Configure CORS (allow front-end domain or all origins as specified)
allow_origins = [origin.strip() for origin in settings.allowed_origins.split(',')] if settings.allowed_origins else ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)

app.include_router(users.router, prefix=settings.api_prefix)
app.include_router(uploads.router, prefix=settings.api_prefix)
app.include_router(admin.admin_router, prefix=settings.api_prefix)


@app.get("/health", tags=["Health"])
def health():
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}


# Run the app directly with uvicorn (for development)
if __name__ == "__main__":
    import uvicorn
    uvicorn.run("studyprep.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
