from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import LOG_LEVEL, get_allowed_origins
from .db import Base, engine
from .errors import register_exception_handlers
from .logging import get_logger, setup_logging
from .routers import auth, events, projects, reports, tasks, time_entries, users

setup_logging(LOG_LEVEL)
logger = get_logger(__name__)

Base.metadata.create_all(bind=engine)

app = FastAPI(title="TimeTrack API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_allowed_origins(),
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

app.include_router(auth.router)
app.include_router(users.router)
app.include_router(projects.router)
app.include_router(tasks.router)
app.include_router(time_entries.router)
app.include_router(reports.router)
app.include_router(events.router)


@app.get("/health")
def health():
    return {"status": "ok"}
