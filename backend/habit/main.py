"""Main FastAPI application for the habit alarms backend."""
from fastapi import FastAPI, Request

from habit.api.routes.alarms import router as alarms_router
from habit.api.routes.chat import router as chat_router
from habit.api.routes.notifications import router as notifications_router
from habit.api.routes.tasks import router as tasks_router
from habit.core.config import settings
from habit.core.logging import configure_logging
from habit.core.middleware import RequestIDMiddleware
from habit.core.telemetry import init_opik, trace
from habit.db.session import SessionLocal, engine, init_db
from habit.worker.alarm_runtime import start_alarm_runtime, stop_alarm_runtime

configure_logging(log_level=settings.log_level)

app = FastAPI(title=settings.app_name, version="0.1.0")
app.add_middleware(RequestIDMiddleware)
app.include_router(tasks_router)
app.include_router(alarms_router)
app.include_router(notifications_router)
app.include_router(chat_router)


@app.on_event("startup")
async def startup() -> None:
    """Create tables, then bring up alarm delivery and re-arm stored alarms."""
    init_opik()
    init_db(engine)
    start_alarm_runtime(SessionLocal)


@app.on_event("shutdown")
async def shutdown() -> None:
    stop_alarm_runtime()


@app.get("/health", tags=["health"], summary="Readiness probe")
async def health_check(request: Request) -> dict[str, str]:
    """Return a simple status payload so automation can probe the API."""
    with trace("http.health_check", metadata={"route": "/health"}, request_id=request.state.request_id):
        return {"status": "ok"}
