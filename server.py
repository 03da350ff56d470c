from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path

import uvicorn
from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from game import Game
from settings import Settings

logger = logging.getLogger("team-rps.server")

SETTINGS = Settings.from_env()
GAME = Game(SETTINGS)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await GAME.start()
    try:
        yield
    finally:
        GAME.stop()


app = FastAPI(title="Team Rock-Paper-Scissors", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

BASE_DIR = Path(__file__).resolve().parent
WEB_DIR = BASE_DIR / "dist"
if WEB_DIR.exists():
    app.mount("/rps", StaticFiles(directory=str(WEB_DIR), html=True), name="rps")


@app.get("/")
async def root():
    return {"ok": True, "hint": "Connect a WebSocket to /ws to play."}


@app.get("/api/health")
async def health():
    return {
        "ok": True,
        "phase": GAME.state.phase,
        "gameNumber": GAME.state.game_number,
        "connections": len(GAME.connections),
    }


@app.get("/api/state")
async def state():
    return GAME.public_snapshot()


@app.websocket("/")
@app.websocket("/ws")
async def websocket_endpoint(ws: WebSocket):
    await ws.accept()
    conn = await GAME.connect(ws)
    try:
        while True:
            message = await ws.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000))
            text = message.get("text")
            await GAME.handle_message(conn.id, text if text is not None else message.get("bytes"))
    except WebSocketDisconnect:
        pass
    except RuntimeError as exc:
        # Socket already closed by the idle sweep
        logger.debug("Receive loop for %s ended: %s", conn.id, exc)
    finally:
        await GAME.disconnect(conn.id)


def main() -> None:
    logging.basicConfig(
        level=SETTINGS.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info("WebSocket server running on port %d", SETTINGS.port)
    uvicorn.run(app, host=SETTINGS.host, port=SETTINGS.port)


if __name__ == "__main__":
    main()
