from __future__ import annotations

import logging
import os

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from league_repo import LeagueRepo
from transfer_market.background import reset_supervisor
from app.api.router import api_router
from app.services.transfer_facade import get_db_path

logger = logging.getLogger(__name__)

app = FastAPI(title="Transfer market server")


@app.on_event("startup")
def _startup_init_db() -> None:
    db_path = get_db_path()
    with LeagueRepo(db_path) as repo:
        repo.init_db()
    logger.info("TRANSFER_SERVER_STARTED db=%s", db_path)


@app.on_event("shutdown")
def _shutdown_background() -> None:
    reset_supervisor(wait=False)


app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def _auth_guard_middleware(request: Request, call_next):
    """Optional admin guard.

    If TRANSFER_ADMIN_TOKEN is configured, require it on state-changing API calls.
    """
    required_token = (os.environ.get("TRANSFER_ADMIN_TOKEN") or "").strip()
    if not required_token:
        return await call_next(request)

    path = request.url.path or ""
    method = (request.method or "GET").upper()
    if method != "POST" or not path.startswith("/api/"):
        return await call_next(request)

    provided = (request.headers.get("X-Admin-Token") or "").strip()
    if provided != required_token:
        return JSONResponse(status_code=401, content={"detail": "Unauthorized: invalid X-Admin-Token"})

    return await call_next(request)


app.include_router(api_router)
