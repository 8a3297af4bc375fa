"""
FastAPI server — ingestion, insight query and notification fetch/ack.
Run: uvicorn smart_notifications.api.server:app --reload --port 8000
"""

from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from smart_notifications.engine.config import EngineConfig, configure_logging, load_config
from smart_notifications.engine.errors import NotificationNotFound, StorageError, ValidationError
from smart_notifications.engine.models import EventType, Priority
from smart_notifications.engine.scheduler import NotificationScheduler
from smart_notifications.engine.store import RecentEventCache
from smart_notifications.engine.tracking import EventTracker


# ─── Request Schemas ──────────────────────────────────────

class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class TrackRequest(_CamelModel):
    user_id: str = Field(alias="userId")
    event_type: str = Field(alias="eventType")
    event_data: Dict[str, Any] = Field(default_factory=dict, alias="eventData")
    session_id: Optional[str] = Field(default=None, alias="sessionId")
    user_agent: Optional[str] = Field(default=None, alias="userAgent")
    page: Optional[str] = None


class RunRequest(_CamelModel):
    user_id: str = Field(alias="userId")
    now: Optional[datetime] = None


class AckRequest(_CamelModel):
    notification_id: str = Field(alias="notificationId")


class ScheduleRequest(_CamelModel):
    user_id: str = Field(alias="userId")
    type: str
    title: str
    message: str
    scheduled_for: datetime = Field(alias="scheduledFor")
    priority: Priority = Priority.MEDIUM
    data: Dict[str, Any] = Field(default_factory=dict)


def create_app(config: Optional[EngineConfig] = None,
               scheduler: Optional[NotificationScheduler] = None,
               tracker: Optional[EventTracker] = None) -> FastAPI:
    config = config or load_config()
    scheduler = scheduler or NotificationScheduler(config=config)
    tracker = tracker or EventTracker(
        scheduler.events,
        cache=RecentEventCache(config.recent_cache_size) if config.recent_cache_size else None,
        clock=scheduler.clock,
    )

    app = FastAPI(title="Smart Notification Engine", version="1.0.0")
    app.state.scheduler = scheduler
    app.state.tracker = tracker

    # ─── Endpoints ───────────────────────────────────────

    @app.post("/v1/events", status_code=201)
    def track(req: TrackRequest):
        try:
            event = tracker.track(req.model_dump(by_alias=True))
        except ValidationError as e:
            raise HTTPException(status_code=422, detail=str(e))
        if event is None:
            return JSONResponse(status_code=202, content={"success": False, "error": "event not recorded"})
        return {"success": True, "id": event.id, "timestamp": event.timestamp.isoformat()}

    @app.get("/v1/events")
    def list_events(userId: str, eventType: Optional[str] = None, limit: int = 100):
        try:
            kind = EventType(eventType) if eventType else None
        except ValueError:
            raise HTTPException(status_code=422, detail=f"Unknown eventType '{eventType}'")
        try:
            events = scheduler.events.query(userId, limit=limit, event_type=kind)
        except StorageError:
            raise HTTPException(status_code=503, detail="Event store unavailable")
        return {"events": [e.to_dict() for e in reversed(events)]}

    @app.get("/v1/insights")
    def insights(userId: str):
        try:
            results = scheduler.insights_for(userId)
        except StorageError:
            raise HTTPException(status_code=503, detail="Event store unavailable")
        return {"userId": userId, "insights": [i.to_dict() for i in results]}

    @app.post("/v1/notifications/run")
    def run(req: RunRequest):
        try:
            emitted = scheduler.run(req.user_id, now=req.now)
        except StorageError:
            raise HTTPException(status_code=503, detail="Event store unavailable")
        return {
            "success": True,
            "notifications": [n.to_dict() for n in emitted],
            "count": len(emitted),
        }

    @app.get("/v1/notifications/pending")
    def pending(userId: str, now: Optional[datetime] = None):
        results = scheduler.pending(userId, now)
        return {"notifications": [n.to_dict() for n in results], "count": len(results)}

    @app.post("/v1/notifications/ack")
    def ack(req: AckRequest):
        try:
            changed = scheduler.ack(req.notification_id)
        except NotificationNotFound:
            raise HTTPException(status_code=404, detail=f"Notification '{req.notification_id}' not found")
        return {"success": True, "alreadySent": not changed}

    @app.get("/v1/notifications/history")
    def history(userId: str, type: Optional[str] = None, limit: int = 20):
        results = scheduler.notifications.history(userId, limit=limit, type=type)
        return {"notifications": [n.to_dict() for n in results], "count": len(results)}

    @app.post("/v1/notifications/schedule", status_code=201)
    def schedule(req: ScheduleRequest):
        notification = scheduler.schedule_custom(
            req.user_id, req.type, req.title, req.message,
            req.scheduled_for, priority=req.priority, data=req.data,
        )
        return {"success": True, "notification": notification.to_dict()}

    @app.get("/v1/rules")
    def list_rules():
        return {"rules": [r.to_dict() for r in scheduler.registry]}

    @app.get("/v1/health")
    def health():
        return {
            "status": "ok",
            "components": {
                "api": "ok",
                "event_store": type(scheduler.events).__name__,
                "notification_store": type(scheduler.notifications).__name__,
                "rules_loaded": len(scheduler.registry),
            },
        }

    @app.get("/v1/stats")
    def stats():
        store = scheduler.notifications
        return store.stats() if hasattr(store, "stats") else {}

    return app


app = create_app()


def main():
    import uvicorn

    config = load_config()
    configure_logging(config.log_level)
    uvicorn.run(create_app(config), host="0.0.0.0", port=8000)


if __name__ == "__main__":
    main()
