"""
Worldgen Kernel API — FastAPI application.

Exposes:
- Engine control (status, step one epoch, run to completion)
- World queries (export, single entity, statistics)
- Event stream (recorded simulation events, paged by index)
- Framework validation results
"""

from typing import Callable, Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from worldgen_kernel.engine.emitter import RecordingEmitter
from worldgen_kernel.engine.scheduler import WorldEngine


# --- Request/Response Models ---

class RunResponse(BaseModel):
    stop_reason: Optional[str]
    metadata: dict


class EventPage(BaseModel):
    events: list
    next_index: int


# --- Application Factory ---

def create_app(
    engine: Optional[WorldEngine] = None,
    engine_factory: Optional[Callable[[RecordingEmitter], WorldEngine]] = None,
    emitter: Optional[RecordingEmitter] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Either pass a ready engine (and the RecordingEmitter it writes to), or an
    engine_factory that receives the emitter and builds the engine.
    """

    app = FastAPI(
        title="Worldgen Kernel API",
        description="Procedural world-growth engine",
        version="0.1.0",
    )

    recorder = emitter or RecordingEmitter()
    if engine is None:
        if engine_factory is None:
            raise ValueError("create_app needs an engine or an engine_factory")
        engine = engine_factory(recorder)

    app.state.engine = engine
    app.state.emitter = recorder

    # === ENGINE ===

    @app.get("/engine/status")
    def engine_status():
        """Current tick, epoch, era and world size."""
        return engine.status()

    @app.post("/engine/step")
    async def engine_step():
        """Run one epoch."""
        if engine.finished:
            raise HTTPException(409, "Engine already finished")
        more = await engine.step()
        return {"continue": more, **engine.status()}

    @app.post("/engine/run", response_model=RunResponse)
    async def engine_run():
        """Run to termination (or finish a stepped run) and report why it stopped."""
        if engine.finished:
            export = engine.export_state()
        elif engine.should_continue():
            export = await engine.run()
        else:
            export = await engine.finish()
        return RunResponse(
            stop_reason=engine.stop_reason,
            metadata=export["metadata"],
        )

    # === WORLD ===

    @app.get("/world/state")
    def get_world_state():
        """Full world export: entities, relationships, pressures and history."""
        return engine.export_state()

    @app.get("/world/entities/{entity_id}")
    def get_entity(entity_id: str):
        """Get a single entity."""
        entity = engine.store.get_entity(entity_id)
        if not entity:
            raise HTTPException(404, "Entity not found")
        return entity.model_dump(mode="json")

    @app.get("/world/statistics")
    def get_statistics():
        """Run statistics so far."""
        return engine.export_statistics().model_dump(mode="json")

    # === EVENTS ===

    @app.get("/events", response_model=EventPage)
    def get_events(since: int = 0):
        """Recorded events from index `since` onward."""
        if since < 0:
            raise HTTPException(400, "since must be non-negative")
        return EventPage(events=recorder.since(since), next_index=len(recorder.events))

    # === VALIDATION ===

    @app.get("/validation")
    def get_validation():
        """Framework validation result computed at engine construction."""
        return engine.validation.model_dump()

    return app
