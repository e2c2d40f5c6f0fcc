# backend/main.py
import os
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.routing import APIRoute

# backend.config loads backend/.env or .env on import
from backend.config import ALLOWED_ORIGINS, CACHE_BACKEND

ENV = os.getenv("ENV", "dev").lower()
AUTO_MIGRATE = os.getenv("AUTO_MIGRATE", "false").strip().lower() == "true"

# -----------
# Logging
# -----------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
log = logging.getLogger("app")

# ----------------------------------------
# DB metadata (DEV ONLY: auto-create tables)
# ----------------------------------------
from backend.database import Base, engine  # noqa: E402
from backend import models  # noqa: F401,E402

if ENV == "dev" or AUTO_MIGRATE:
    Base.metadata.create_all(bind=engine)

# -----------
# Routers
# -----------
from backend.routes import paths, career  # noqa: E402
from backend.routes.cache_debug import router as cache_debug_router  # noqa: E402

app = FastAPI(
    title="CareerPaths API",
    version="1.0.0",
    description="Learning-path versioning (graph diff/patch) and cached career insights",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,          # must be explicit when credentials=True
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    max_age=600,
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    response = await call_next(request)
    log.info("REQ %s %s -> %s", request.method, request.url.path, response.status_code)
    return response

# ------------------------------------------------
# Mount routers (avoid double /api/v1 prefixes)
# ------------------------------------------------
app.include_router(paths.router,  prefix="/api/v1")
app.include_router(career.router, prefix="/api/v1")

# cache_debug_router carries its own explicit prefix ("/api/v1/_debug/cache")
app.include_router(cache_debug_router)

# -----------
# Health & root
# -----------
@app.get("/health")
def health():
    return {"status": "ok", "env": ENV, "cache_backend": CACHE_BACKEND}

@app.get("/")
def root():
    return {"name": "CareerPaths API", "version": "1.0.0"}


@app.on_event("startup")
async def list_routes():
    log.info("ENV=%s AUTO_MIGRATE=%s CACHE_BACKEND=%s", ENV, AUTO_MIGRATE, CACHE_BACKEND)
    for r in app.routes:
        if isinstance(r, APIRoute):
            methods = ",".join(sorted(r.methods))
            log.debug("%-10s %-45s -> %s.%s", methods, r.path, r.endpoint.__module__, r.endpoint.__name__)
