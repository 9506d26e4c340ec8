from fastapi import FastAPI, HTTPException, Request
from datetime import datetime, timezone
import logging
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from moose_tracker import __version__
from moose_tracker.roster import RefreshInProgressError, RosterService
from moose_tracker.scraper import ScrapeSessionError

logger = logging.getLogger(__name__)

app = FastAPI()
service = RosterService()


@app.middleware("http")
async def no_store(request: Request, call_next):
    response = await call_next(request)
    response.headers["Cache-Control"] = "no-store"
    return response


async def _payload(request: Request) -> dict:
    try:
        payload = await request.json()
    except Exception:
        payload = {}
    return payload if isinstance(payload, dict) else {}


async def _call(action: str, coro):
    try:
        return await coro
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except RefreshInProgressError as e:
        raise HTTPException(status_code=429, detail=str(e))
    except (ScrapeSessionError, RuntimeError) as e:
        logger.error("%s failed: %s", action, e)
        raise HTTPException(status_code=500, detail=f"Failed to {action}: {str(e)}")


@app.get("/api/health")
async def health() -> dict:
    return {
        "ok": True,
        "time": datetime.now(timezone.utc).isoformat(),
        "version": __version__,
    }


@app.get("/api/players")
async def list_players() -> list:
    return await service.list_players()


@app.post("/api/players")
async def add_player(request: Request) -> dict:
    payload = await _payload(request)
    return await _call("add player", service.add_player(payload.get("steamUrl"), payload.get("serverName")))


@app.post("/api/players/reorder")
async def reorder_players(request: Request) -> dict:
    payload = await _payload(request)
    order = payload.get("order")
    if not isinstance(order, list):
        order = []
    return await _call("reorder players", service.reorder(order, payload.get("serverName")))


@app.put("/api/players/{player_id}")
async def update_player(player_id: str, request: Request) -> dict:
    try:
        index = int(player_id)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid player id")
    payload = await _payload(request)
    return await _call(
        "update player",
        service.update_player(
            index,
            steam_url=payload.get("steamUrl"),
            steam_id=payload.get("steamId"),
            steam_name=payload.get("steamName"),
            server_name=payload.get("serverName"),
        ),
    )


@app.delete("/api/players/{player_id}")
async def remove_player(player_id: str, steamUrl: str = None, serverName: str = None, byIndex: str = None) -> dict:
    return await _call(
        "remove player",
        service.remove_player(player_id, steam_url=steamUrl, server_name=serverName, by_index=byIndex == "1"),
    )


@app.post("/api/refresh")
async def refresh(request: Request) -> dict:
    payload = await _payload(request)
    tabs = payload.get("tabs") if isinstance(payload.get("tabs"), list) else None
    return await _call("refresh", service.refresh(payload.get("serverName"), payload.get("strategy"), tabs))


@app.get("/api/data")
async def data(serverName: str = None) -> dict:
    return await _call("refresh", service.data(serverName))


@app.get("/api/refresh-status")
async def refresh_status() -> dict:
    return service.status()


@app.post("/api/resolve-steam")
async def resolve_steam(request: Request) -> dict:
    payload = await _payload(request)
    return await _call("resolve steam profile", service.resolve_steam(payload.get("steamUrl"), payload.get("steamId")))


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    port = int(os.environ.get("PORT", "3000"))
    print("Starting Moose Tracker server...")
    print(f"Open http://localhost:{port} in your browser")
    uvicorn.run(app, host="0.0.0.0", port=port)
