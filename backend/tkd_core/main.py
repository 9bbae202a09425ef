import logging
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tkd_core.database import init_db
from tkd_core.routes import brackets, divisions, runtime, tournaments
from tkd_core.services.division_rules import get_rule_table

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="TKD Division & Bracket API")

_cors_origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]
_extra = os.getenv("CORS_ORIGINS", "")
if _extra:
    _cors_origins.extend(o.strip() for o in _extra.split(",") if o.strip())

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(tournaments.router, prefix="/api", tags=["tournaments"])
app.include_router(divisions.router, prefix="/api", tags=["divisions"])
app.include_router(brackets.router, prefix="/api", tags=["brackets"])
# Match results + advancement
app.include_router(runtime.router, prefix="/api", tags=["runtime"])


@app.on_event("startup")
def on_startup():
    init_db()  # Use centralized init_db() which imports models and creates tables
    # Fail at startup rather than on the first classification if the configured table is malformed
    table = get_rule_table()
    logger.info("Division rules loaded: %s", ", ".join(c.name for c in table.categories))


@app.get("/api/health")
def health_check():
    """Diagnostic endpoint"""
    return {"app_name": "TKD Division & Bracket API", "status": "healthy"}
