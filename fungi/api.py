"""Control API — a small HTTP surface for poking a running fungus.

  GET  /             alive check
  POST /             inject FUNGI code (installed as the current program)
  POST /askforreply  answer a text with the current program
  GET  /tag          statuses under the mycelial hashtag
  POST /tag          post a message under the mycelial hashtag
  GET  /state        current program, fitness and phase
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, FastAPI
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from fungi import __version__
from fungi.exceptions import FeedUnavailable
from fungi.language.rules import serialize
from fungi.lifecycle.controller import LifecycleController

_logger = logging.getLogger(__name__)

router = APIRouter()

_controller: LifecycleController | None = None


def set_controller(controller: LifecycleController | None) -> None:
    global _controller
    _controller = controller


def _not_ready() -> JSONResponse:
    return JSONResponse({"error": "Fungus not running"}, status_code=503)


class InjectRequest(BaseModel):
    code: str


class AskRequest(BaseModel):
    text: str


class TagMessage(BaseModel):
    message: str


@router.get("/")
async def alive() -> dict:
    return {"responseBody": {"alive": True}}


@router.post("/")
async def inject(request: InjectRequest):
    if _controller is None:
        return _not_ready()
    success = await _controller.inject_program(request.code)
    return {"responseBody": success}


@router.post("/askforreply")
async def ask_for_reply(request: AskRequest):
    if _controller is None:
        return _not_ready()
    return {"responseBody": _controller.answer(request.text)}


@router.get("/tag")
async def get_tag():
    if _controller is None:
        return _not_ready()
    try:
        statuses = await _controller.get_tag_statuses()
    except FeedUnavailable as e:
        _logger.error("Error fetching posts: %s", e)
        return JSONResponse({"error": "Failed to fetch posts"}, status_code=500)
    return {"responseBody": [s.model_dump(mode="json") for s in statuses]}


@router.post("/tag")
async def post_tag(request: TagMessage):
    if _controller is None:
        return _not_ready()
    try:
        await _controller.post_under_tag(request.message)
    except FeedUnavailable as e:
        _logger.error("Error posting under tag: %s", e)
        return JSONResponse({"responseBody": False}, status_code=500)
    return {"responseBody": True}


@router.get("/state")
async def state():
    if _controller is None:
        return _not_ready()
    current = _controller.current
    return {
        "program": serialize(current.rule_system),
        "fitness": current.fitness,
        "sequence": current.created_at,
        "phase": _controller.phase.value,
        "history_size": len(_controller.history),
        "mycelial_size": len(_controller.mycelial),
    }


control_app = FastAPI(title="fungi control", version=__version__)
control_app.include_router(router)
