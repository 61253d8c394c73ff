"""HTTP admin API for controlling the intercoms."""

from __future__ import annotations

import logging
from typing import Any, Mapping

from fastapi import FastAPI, Request
from pydantic import BaseModel

from ._types import IntercomError
from ._utils import logger

LOGGER = logger.getChild("admin")

NOT_FOUND = "Doorbell not found"


class PlayRequest(BaseModel):
    media_id: str


def _ok(**extra: Any) -> dict:
    return {"status": "OK", **extra}


def _error(error: Exception) -> dict:
    return {"status": "ERROR", "error": str(error)}


def create_app(registry: Mapping[str, Any], *, log: logging.Logger = LOGGER) -> FastAPI:
    """
    Build the admin API for the devices in ``registry``.

    Every device route answers ``{"status": "OK", ...}`` on success and
    ``{"status": "ERROR", "error": msg}`` when the device is unknown or
    the operation failed.
    """
    app = FastAPI(
        title="Intercom Gateway",
        description="Plays audio on SIP door stations and relays their button presses.",
    )

    def lookup(name: str) -> Any:
        device = registry.get(name)
        if device is None:
            raise IntercomError(NOT_FOUND)
        return device

    @app.get("/status")
    async def status() -> dict:
        return _ok()

    @app.get("/list")
    async def list_devices() -> dict:
        return {"devices": list(registry)}

    @app.get("/{doorbell}/info")
    async def info(doorbell: str) -> dict:
        log.info(f"Doorbell {doorbell} info")
        try:
            device = lookup(doorbell)
        except IntercomError as exc:
            log.error(f"info for doorbell {doorbell} ended with error: {exc}")
            return _error(exc)
        return _ok(state="playing" if device.is_playing else "idle")

    @app.post("/{doorbell}/stop")
    async def stop(doorbell: str) -> dict:
        log.info(f"Doorbell {doorbell} stop")
        try:
            await lookup(doorbell).stop()
        except IntercomError as exc:
            log.error(f"stop for doorbell {doorbell} ended with error: {exc}")
            return _error(exc)
        return _ok()

    @app.post("/{doorbell}/play")
    async def play(doorbell: str, body: PlayRequest) -> dict:
        log.info(f"Doorbell {doorbell} media_id {body.media_id}")
        try:
            await lookup(doorbell).play_url(body.media_id, background=True)
        except IntercomError as exc:
            log.error(f"play url for doorbell {doorbell} ended with error: {exc}")
            return _error(exc)
        return _ok()

    @app.post("/{doorbell}/simulateButtonPress")
    async def simulate_button_press(doorbell: str) -> dict:
        try:
            await lookup(doorbell).handle_button_press()
        except IntercomError as exc:
            log.error(f"simulate button press for doorbell {doorbell} ended with error: {exc}")
            return _error(exc)
        return _ok()

    @app.post("/{doorbell}/playAudioFile")
    async def play_audio_file(doorbell: str, request: Request) -> dict:
        try:
            device = lookup(doorbell)
            data = await request.body()
            log.debug(f"Doorbell {doorbell} audio file of {len(data)} bytes")
            await device.play_buffer(data)
        except IntercomError as exc:
            log.error(f"playAudioFile for doorbell {doorbell} ended with error: {exc}")
            return _error(exc)
        return _ok()

    return app


__all__ = ["create_app", "PlayRequest"]
