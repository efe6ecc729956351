import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from sqlmodel import Session

from .api.exceptions import register_exception_handlers
from .api.routes import admin_router, router as banking_router
from .core import db
from .core.config import get_settings
from .core.dependencies import get_memory_store
from .services import LedgerService, SqlLedgerStore, seed_demo_data

settings = get_settings()
logging.basicConfig(level=settings.log_level)

def _seed() -> None:
    if settings.storage_backend == "memory":
        seed_demo_data(LedgerService(get_memory_store(), settings))
        return
    with Session(db.get_engine()) as session:
        seed_demo_data(LedgerService(SqlLedgerStore(session), settings))

@asynccontextmanager
async def lifespan(app: FastAPI):
    db.init_db()
    if settings.seed_demo_data:
        _seed()
    yield

app = FastAPI(title=settings.app_name, lifespan=lifespan)

app.include_router(banking_router)
app.include_router(admin_router)
register_exception_handlers(app)

@app.get("/health")
def read_health() -> dict[str, str]:
    return {"status": "ok"}
