"""
HTTP entry surface for the PhotoLab PIN gate.
One app owns exactly one PinEntrySession; the UI drives it through
these routes and re-renders from the returned snapshot.

Run with: uvicorn --factory photolab.main:create_app
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from fastapi import FastAPI, HTTPException, Path
from starlette.requests import Request

from photolab.config import AppConfig, load_config
from photolab.keypad import KEYPAD_LAYOUT, map_key_name, map_keycode
from photolab.pin_session import PinEntrySession
from photolab.secure_store import SecureStore, build_store
from photolab.utils import logger, set_log_level


def _session(request: Request) -> PinEntrySession:
    return request.app.state.pin_session


def _require_open(session: PinEntrySession) -> None:
    if not session.is_open:
        raise HTTPException(status_code=409, detail="PIN entry is not open")


def create_app(
    cfg: Optional[AppConfig] = None,
    store: Optional[SecureStore] = None,
    clock: Optional[Callable[[], float]] = None,
) -> FastAPI:
    if cfg is None:
        try:
            cfg = load_config()
        except FileNotFoundError:
            logger.warning("[API] No configuration found; using defaults")
            cfg = AppConfig()
    set_log_level(cfg.log_level)

    app = FastAPI(title="PhotoLab PIN API", version="1.0.0")
    app.state.last_unlock_utc = None
    app.state.shakes = 0

    def on_matches(_pin: str) -> None:
        app.state.last_unlock_utc = datetime.now(timezone.utc).isoformat()

    def on_invalid() -> None:
        app.state.shakes += 1

    kwargs: Dict[str, Any] = {}
    if clock is not None:
        kwargs["clock"] = clock
    app.state.pin_session = PinEntrySession(
        store if store is not None else build_store(cfg.store),
        policy=cfg.pin.to_policy(),
        on_matches=on_matches,
        on_invalid=on_invalid,
        secure_key=cfg.store.key,
        **kwargs,
    )

    @app.get("/ping")
    def ping():
        return {"ok": True, "ts": datetime.now(timezone.utc).isoformat()}

    @app.get("/pin/keypad")
    def keypad():
        return {"layout": KEYPAD_LAYOUT, "pin_length": cfg.pin.pin_length}

    @app.post("/pin/open")
    async def pin_open(request: Request):
        return await _session(request).open()

    @app.post("/pin/close")
    async def pin_close(request: Request):
        _session(request).close()
        return {"ok": True}

    @app.get("/pin/state")
    async def pin_state(request: Request):
        snap = _session(request).snapshot()
        snap["last_unlock_utc"] = request.app.state.last_unlock_utc
        return snap

    @app.post("/pin/digit/{digit}")
    async def pin_digit(request: Request, digit: int = Path(..., ge=0, le=9)):
        session = _session(request)
        _require_open(session)
        return await session.add_digit(digit)

    @app.post("/pin/backspace")
    async def pin_backspace(request: Request):
        session = _session(request)
        _require_open(session)
        return session.remove_digit()

    @app.post("/pin/clear")
    async def pin_clear(request: Request):
        session = _session(request)
        _require_open(session)
        return session.clear_digits()

    @app.post("/pin/submit")
    async def pin_submit(request: Request):
        session = _session(request)
        _require_open(session)
        return await session.submit()

    @app.post("/pin/key/{name}")
    async def pin_key(request: Request, name: str):
        session = _session(request)
        _require_open(session)
        sym = map_key_name(name)
        if sym is None:
            raise HTTPException(status_code=400, detail=f"Unmapped key: {name}")
        return await session.press(sym)

    @app.post("/pin/keycode/{code}")
    async def pin_keycode(request: Request, code: int):
        session = _session(request)
        _require_open(session)
        sym = map_keycode(code)
        if sym is None:
            raise HTTPException(status_code=400, detail=f"Unmapped keycode: {code}")
        return await session.press(sym)

    @app.delete("/pin/credential")
    async def pin_forget(request: Request):
        session = _session(request)
        _require_open(session)
        if not session.authenticated:
            raise HTTPException(status_code=403, detail="Enter the current PIN first")
        ok = await session.forget_pin()
        snap = session.snapshot()
        snap["deleted"] = ok
        return snap

    logger.info("[API] PhotoLab PIN API ready (store=%s)", cfg.store.backend)
    return app
