import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from dotenv import load_dotenv

from app.cache import query_cache
from app.realtime import RealtimeListener, build_cache_handlers, realtime_enabled
from app.routes import admin, auth, dashboard, deliveries, order_track, parts_rules, quotes, quotes_api
from core.database import init_db
from core.errors import QuoteDeskError

# Ensure .env values are loaded even if uvicorn is launched without `dotenv run`.
# override=True so editing `.env` and restarting takes effect over stale shell values.
load_dotenv(override=True)

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
log = logging.getLogger("api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    listener = None
    if realtime_enabled():
        listener = RealtimeListener(handlers=build_cache_handlers(query_cache))
        listener.start()
    app.state.realtime = listener
    yield
    if listener:
        listener.stop()


app = FastAPI(lifespan=lifespan)


app.include_router(auth.router)
app.include_router(dashboard.router)
app.include_router(quotes.router)
app.include_router(quotes_api.router)
app.include_router(admin.router)
app.include_router(parts_rules.router)
app.include_router(deliveries.router)
app.include_router(order_track.router)


@app.exception_handler(QuoteDeskError)
async def quote_desk_error_handler(request: Request, exc: QuoteDeskError):
    log.info("%s %s -> %s: %s", request.method, request.url.path, exc.status_code, exc)
    return JSONResponse({"error": str(exc)}, status_code=exc.status_code)


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    log.error("%s %s failed", request.method, request.url.path, exc_info=exc)
    if request.url.path.startswith("/api/"):
        return JSONResponse({"error": "Internal server error"}, status_code=500)
    return PlainTextResponse("Internal Server Error", status_code=500)


@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("X-Frame-Options", "SAMEORIGIN")
    response.headers.setdefault(
        "Content-Security-Policy",
        "default-src 'self'; img-src 'self' data:; style-src 'self' 'unsafe-inline'; script-src 'self' 'unsafe-inline'; "
        "font-src 'self' data:; connect-src 'self';",
    )
    return response
