"""FastAPI application for observing and steering the combat loop."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from fastapi import Body, FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.responses import HTMLResponse
from pydantic import ValidationError

from combat_agent.actions.bridge import HttpBridgeSink
from combat_agent.config.loader import BridgeConfig, CombatConfig, deep_merge
from combat_agent.models.detections import DetectionFrame
from combat_agent.models.skills import Skill
from combat_agent.models.state import CombatState
from combat_agent.observer.streaming import EventStreamService

if TYPE_CHECKING:
    from combat_agent.actions.dispatcher import ActionDispatcher
    from combat_agent.core.loop import AgentLoop
    from combat_agent.core.metrics import MetricsCollector
    from combat_agent.core.state_machine import CombatStateMachine
    from combat_agent.interfaces.actuation import CommandSink
    from combat_agent.perception.sources import QueueDetectionSource

logger = logging.getLogger(__name__)

LOOP_COMMANDS = ("pause", "resume", "reset-stats", "reset")

LIVE_PAGE_HTML = """<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8" />
  <title>Combat Agent Live</title>
  <style>
    body { font-family: sans-serif; margin: 0; padding: 1rem; background: #111; color: #eee; }
    .panel { background: #1a1a1a; border: 1px solid #2f2f2f; border-radius: 8px; padding: 0.75rem; }
    pre { white-space: pre-wrap; max-height: 80vh; overflow-y: auto; font-size: 12px; }
  </style>
</head>
<body>
  <h2>Combat Agent Live Observer</h2>
  <div class="panel">
    <h3>Events</h3>
    <pre id="events"></pre>
  </div>
  <script>
    const eventsEl = document.getElementById("events");
    const proto = location.protocol === "https:" ? "wss" : "ws";
    const ws = new WebSocket(`${proto}://${location.host}/ws/events`);
    ws.onmessage = (ev) => {
      const data = JSON.parse(ev.data);
      eventsEl.textContent = `${JSON.stringify(data)}\\n` + eventsEl.textContent;
    };
  </script>
</body>
</html>
"""


def create_app(
    machine: CombatStateMachine,
    event_service: EventStreamService | None = None,
    source: QueueDetectionSource | None = None,
    sink: CommandSink | None = None,
    dispatcher: ActionDispatcher | None = None,
    metrics: MetricsCollector | None = None,
    loop: AgentLoop | None = None,
) -> FastAPI:
    """Create FastAPI app with status, control and event streaming endpoints.

    Args:
        machine: The combat state machine being observed.
        event_service: Shared event stream. A new one is created if None.
        source: Queue fed by ``POST /detections``. Ingest is disabled if None.
        sink: Command sink whose status and health are reported.
        dispatcher: Dispatcher whose bridge settings follow config updates.
        metrics: Loop metrics included in ``/status``.
        loop: Running loop. When given, control commands and combat or
            skill updates are queued for the loop thread instead of being
            applied directly, so only that thread writes to the machine.
    """
    app = FastAPI(title="Combat Agent Observer", version="0.1.0")
    events = event_service or EventStreamService()
    app.state.event_service = events
    app.state.machine = machine

    @app.get("/live")
    async def live_page() -> HTMLResponse:
        return HTMLResponse(LIVE_PAGE_HTML)

    @app.get("/status")
    def status() -> dict[str, Any]:
        return {
            "loop": loop.state.value if loop is not None else None,
            "combat": machine.snapshot(),
            "config": machine.config.model_dump(),
            "metrics": metrics.get_metrics().model_dump(mode="json") if metrics else None,
            "bridge": sink.status.to_dict() if sink is not None else None,
        }

    @app.post("/detections", status_code=202)
    def ingest_detections(frame: DetectionFrame) -> dict[str, Any]:
        if source is None:
            raise HTTPException(status_code=503, detail="Detection ingest is not enabled")
        source.push(frame)
        return {"accepted": len(frame.detections), "pending": source.pending, "dropped": source.dropped}

    @app.patch("/config/combat")
    def update_combat_config(updates: dict[str, Any] = Body(...)) -> dict[str, Any]:
        try:
            config = CombatConfig.model_validate(deep_merge(machine.config.model_dump(), updates))
        except ValidationError as e:
            raise HTTPException(status_code=422, detail=str(e)) from e
        if loop is not None:
            command_id = events.push_control_command("update-combat", {"updates": updates})
            return {"queued": True, "id": command_id, "config": config.model_dump()}
        machine.replace_config(config)
        events.push_event({"event": "config", "section": "combat", "fields": sorted(updates)})
        return {"queued": False, "config": config.model_dump()}

    @app.put("/skills")
    def replace_skills(skills: list[Skill]) -> dict[str, Any]:
        roster = [skill.model_dump() for skill in skills]
        if loop is not None:
            command_id = events.push_control_command("replace-skills", {"skills": roster})
            return {"queued": True, "id": command_id, "skills": roster}
        machine.update_skills(skills)
        events.push_event({"event": "config", "section": "skills", "count": len(skills)})
        return {"queued": False, "skills": roster}

    @app.patch("/config/bridge")
    def update_bridge_config(updates: dict[str, Any] = Body(...)) -> dict[str, Any]:
        try:
            if isinstance(sink, HttpBridgeSink):
                config = sink.update_config(updates)
            else:
                base = dispatcher.config if dispatcher is not None else BridgeConfig()
                config = BridgeConfig.model_validate({**base.model_dump(), **updates})
        except ValidationError as e:
            raise HTTPException(status_code=422, detail=str(e)) from e
        if dispatcher is not None:
            dispatcher.config = config
        events.push_event({"event": "config", "section": "bridge", "fields": sorted(updates)})
        return config.model_dump()

    @app.get("/bridge/health")
    def bridge_health() -> dict[str, Any]:
        if sink is None:
            raise HTTPException(status_code=404, detail="No command sink configured")
        sink.test_connection()
        return sink.status.to_dict()

    @app.post("/control/force-state/{state}")
    def force_state(state: str) -> dict[str, Any]:
        try:
            target = CombatState(state)
        except ValueError as e:
            raise HTTPException(status_code=422, detail=f"Unknown combat state: {state}") from e
        if loop is not None:
            command_id = events.push_control_command("force-state", {"state": target.value})
            return {"queued": True, "id": command_id}
        machine.force_state(target)
        return {"queued": False, "state": machine.state.value}

    @app.post("/control/{command}")
    def control(command: str) -> dict[str, Any]:
        if command not in LOOP_COMMANDS:
            raise HTTPException(status_code=404, detail=f"Unknown control command: {command}")
        if loop is not None:
            command_id = events.push_control_command(command)
            return {"queued": True, "id": command_id}
        if command in ("pause", "resume"):
            raise HTTPException(status_code=409, detail="No loop attached")
        if command == "reset":
            machine.reset()
        else:
            machine.reset_stats()
        return {"queued": False, "state": machine.state.value}

    @app.websocket("/ws/events")
    async def events_stream(websocket: WebSocket) -> None:
        await websocket.accept()
        service: EventStreamService = app.state.event_service
        last_event_id = 0
        try:
            while True:
                for event in service.get_events_since(last_event_id):
                    await websocket.send_json(event)
                    last_event_id = int(event["id"])
                await asyncio.sleep(0.1)
        except WebSocketDisconnect:
            logger.debug("Events WebSocket client disconnected")
        except Exception as e:
            logger.warning("Events stream error: %s", e)

    return app
