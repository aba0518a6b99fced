from __future__ import annotations

import asyncio
import json
import logging
import os
import time
from collections import deque
from datetime import datetime, timezone
from typing import Any, AsyncGenerator, AsyncIterator

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.middleware.base import BaseHTTPMiddleware

import settings
from comlink_client import ComlinkClient, normalize_ally_code
from errors import InvalidInput, RelayError
from llm_client import ChatClient
from name_resolver import NameTable, load_name_table
from prompt_assembler import build_messages, validate_image, validate_message
from roster_normalizer import RosterNormalizer, build_roster_summary
from skill_classifier import SkillCatalog, load_skill_definitions

logging.basicConfig(level=settings.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger("swgoh_coach")

RATE_LIMIT_PRUNE_SECONDS = 300

name_table = NameTable()
skill_catalog = SkillCatalog()
comlink = ComlinkClient()
chat_client = ChatClient()
normalizer = RosterNormalizer(name_table, skill_catalog)
request_buckets: dict[str, deque[int]] = {}
background_tasks: list[asyncio.Task] = []


def client_ip(request: Request) -> str:
    return (request.headers.get("x-forwarded-for") or (request.client.host if request.client else "") or "unknown").split(",")[0].strip()


def prune_buckets(now_ms: int) -> None:
    for ip in list(request_buckets):
        bucket = request_buckets[ip]
        while bucket and bucket[0] <= now_ms - settings.RATE_LIMIT_WINDOW_MS:
            bucket.popleft()
        if not bucket:
            del request_buckets[ip]


class CorsAndRateLimitMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        origin = request.headers.get("origin", "")
        is_allowed = (not origin) or (not settings.ALLOWED_ORIGINS) or (origin in settings.ALLOWED_ORIGINS)

        if request.method == "OPTIONS":
            if not is_allowed:
                return JSONResponse({"error": "Origin not allowed.", "category": "invalid-input"}, status_code=403)
            response = JSONResponse({}, status_code=204)
            if origin:
                response.headers["Access-Control-Allow-Origin"] = origin
                response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,OPTIONS"
            response.headers["Access-Control-Allow-Headers"] = "Content-Type, Authorization"
            return response

        if request.url.path.startswith("/api"):
            now_ms = int(time.time() * 1000)
            bucket = request_buckets.setdefault(client_ip(request), deque())
            while bucket and bucket[0] <= now_ms - settings.RATE_LIMIT_WINDOW_MS:
                bucket.popleft()
            if len(bucket) >= settings.RATE_LIMIT_MAX_REQUESTS:
                retry_after = max(1, (settings.RATE_LIMIT_WINDOW_MS - (now_ms - bucket[0])) // 1000)
                response = JSONResponse({"error": "Too many requests. Please wait.", "category": "rate-limited", "retryAfterSeconds": retry_after}, status_code=429)
                response.headers["Retry-After"] = str(retry_after)
                return response
            bucket.append(now_ms)

        if not is_allowed:
            return JSONResponse({"error": "Origin not allowed.", "category": "invalid-input"}, status_code=403)

        response = await call_next(request)
        if origin and is_allowed:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
        if is_allowed:
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,OPTIONS"
            response.headers["Access-Control-Allow-Headers"] = "Content-Type, Authorization"
        return response


app = FastAPI()
app.add_middleware(CorsAndRateLimitMiddleware)


def error_response(error: Exception) -> JSONResponse:
    if isinstance(error, RelayError):
        if error.body:
            logger.warning("Upstream detail for %s error: %s", error.category, error.body[:500])
        return JSONResponse(error.to_payload(), status_code=error.status)
    logger.exception("Unhandled error while serving request", exc_info=error)
    return JSONResponse({"error": "Internal server error", "category": "internal"}, status_code=500)


async def refresh_caches() -> None:
    await asyncio.gather(load_name_table(comlink, name_table), load_skill_definitions(comlink, skill_catalog))


async def refresh_loop() -> None:
    while True:
        try:
            await refresh_caches()
        except Exception:
            logger.exception("Cache refresh crashed; retrying on the next interval.")
        await asyncio.sleep(settings.CACHE_REFRESH_SECONDS)


async def prune_loop() -> None:
    while True:
        await asyncio.sleep(RATE_LIMIT_PRUNE_SECONDS)
        prune_buckets(int(time.time() * 1000))


async def fetch_roster(ally_code: str) -> dict[str, Any]:
    player = await comlink.get_player(ally_code)
    roster = normalizer.normalize(player)
    roster["ally_code"] = roster["ally_code"] or ally_code
    return roster


def sse(payload: dict[str, Any]) -> str:
    return f"data: {json.dumps(payload)}\n\n"


async def relay_stream(first: str | None, chunks: AsyncGenerator[str, None]) -> AsyncIterator[str]:
    try:
        if first:
            yield sse({"delta": first})
        async for delta in chunks:
            yield sse({"delta": delta})
    except RelayError as error:
        logger.warning("Chat stream interrupted: %s", error)
        yield sse(error.to_payload())
        return
    except Exception as error:
        logger.exception("Chat stream crashed", exc_info=error)
        yield sse({"error": "Internal server error", "category": "internal"})
        return
    finally:
        # Client may have gone away mid-stream; release the upstream connection.
        await chunks.aclose()
    yield sse({"done": True})


@app.on_event("startup")
async def startup_event() -> None:
    background_tasks.append(asyncio.create_task(refresh_loop()))
    background_tasks.append(asyncio.create_task(prune_loop()))


@app.on_event("shutdown")
async def shutdown_event() -> None:
    for task in background_tasks:
        task.cancel()
    background_tasks.clear()
    await comlink.aclose()
    await chat_client.aclose()


@app.get("/health")
async def health() -> dict[str, Any]:
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "names": len(name_table),
        "skills": len(skill_catalog),
        "names_loaded_at": name_table.loaded_at or None,
        "skills_loaded_at": skill_catalog.loaded_at or None,
    }


@app.get("/api/player/{code}")
async def player_roster(code: str):
    try:
        roster = await fetch_roster(normalize_ally_code(code))
        return {**roster, "summary": build_roster_summary(roster)}
    except Exception as error:
        return error_response(error)


@app.post("/api/chat")
async def chat(request: Request):
    try:
        try:
            body = await request.json()
        except ValueError as error:
            raise InvalidInput("Request body must be JSON.") from error
        body = body if isinstance(body, dict) else {}
        message = validate_message(body.get("message"))
        image = validate_image(body.get("image"))
        ally_code = body.get("ally_code")
        if ally_code:
            try:
                ally_code = normalize_ally_code(ally_code)
            except InvalidInput as error:
                raise InvalidInput("Invalid ally code") from error
        roster_summary = body.get("roster_summary") if isinstance(body.get("roster_summary"), str) else ""
        if not roster_summary.strip() and ally_code:
            try:
                roster_summary = build_roster_summary(await fetch_roster(ally_code))
            except RelayError as error:
                logger.warning("Continuing chat without roster for %s: %s", ally_code, error)
        messages = build_messages(message, roster_summary, body.get("history"), image)

        if not body.get("stream"):
            return {"reply": await chat_client.complete(messages)}

        chunks = chat_client.stream(messages)
        try:
            first = await chunks.__anext__()
        except StopAsyncIteration:
            first = None
        return StreamingResponse(relay_stream(first, chunks), media_type="text/event-stream", headers={"Cache-Control": "no-cache"})
    except Exception as error:
        return error_response(error)


@app.exception_handler(404)
async def not_found(_request: Request, _exc: Exception):
    return JSONResponse({"error": "Not found.", "category": "not-found"}, status_code=404)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=int(os.getenv("PORT", "3000")), reload=False)
