"""
HTTP surface: scraper webhook, listing collection for the map, and debug logs.
"""
from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from listing_map.core.ingest import dataset_collector_factory, ingest_payload
from listing_map.core.settings import Settings
from listing_map.core.supabase_repo import SupabaseRepo


logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
LOGGER = logging.getLogger(__name__)

app = FastAPI(title="Listing Map", version="0.1.0")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()


def get_repo(settings: Settings = Depends(get_settings)) -> SupabaseRepo:
    return SupabaseRepo(settings.supabase_url, settings.supabase_key)


def get_collector_factory(settings: Settings = Depends(get_settings)) -> Any:
    return dataset_collector_factory(settings.dataset_url, settings.dataset_timeout_seconds)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    LOGGER.error("Unhandled exception on %s: %s", request.url.path, exc, exc_info=True)
    return JSONResponse(status_code=500, content={"error": "Internal Server Error"})


@app.get("/health")
def health_check() -> dict[str, str]:
    return {"status": "ok"}


@app.post("/api/webhooks/apify")
async def apify_webhook(
    request: Request,
    repo: SupabaseRepo = Depends(get_repo),
    collector_factory: Any = Depends(get_collector_factory),
) -> JSONResponse:
    try:
        body = await request.json()
    except ValueError:
        return JSONResponse(status_code=400, content={"error": "Invalid JSON body"})

    try:
        # Store writes and dataset fetches are blocking; keep them off the event loop.
        result = await run_in_threadpool(ingest_payload, repo, body, collector_factory)
    except Exception as exc:  # noqa: BLE001
        LOGGER.exception("Webhook error: %s", exc)
        return JSONResponse(status_code=500, content={"error": str(exc)})

    content: dict[str, Any] = {"message": result.message}
    if result.count:
        content["count"] = result.count
    return JSONResponse(status_code=200, content=content)


@app.get("/api/listings")
def list_listings(repo: SupabaseRepo = Depends(get_repo)) -> list[dict[str, Any]]:
    try:
        return repo.fetch_listings_with_history()
    except Exception as exc:  # noqa: BLE001
        LOGGER.error("Error fetching properties: %s", exc)
        raise HTTPException(status_code=503, detail="Listing store unavailable") from exc


@app.get("/api/debug/logs")
def debug_logs(limit: int = 5, repo: SupabaseRepo = Depends(get_repo)) -> list[dict[str, Any]]:
    return repo.get_recent_debug_logs(limit=max(1, min(limit, 50)))


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("listing_map.web.app:app", host="0.0.0.0", port=8000)
