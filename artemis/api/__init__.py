"""API router for v1 endpoints."""

from fastapi import APIRouter

from artemis.api import actions, chat, ui_snapshots

router = APIRouter()

# Orchestration turns (SSE)
router.include_router(chat.router, tags=["chat"])

# UI snapshot history and branches
router.include_router(ui_snapshots.router, tags=["ui_snapshots"])

# Confirmed write actions
router.include_router(actions.router, tags=["actions"])
