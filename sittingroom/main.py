import asyncio
import logging
import os
from typing import Optional

import uvicorn
from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from sittingroom import __version__
from sittingroom.core.errors import (
    EngineError,
    NoDataError,
    PlaybackError,
    RenderBusyError,
    RenderError,
    SequenceError,
)
from sittingroom.core.io import AudioIO
from sittingroom.export.exporter import Exporter, iteration_filename
from sittingroom.params.canonical_defaults import ROOM_PRESETS
from sittingroom.playback.sinks import NullSink, SoundDeviceSink
from sittingroom.session.engine import RoomSession

# Configure Logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("sitting-room")

_ERROR_STATUS = (
    (SequenceError, 409),
    (RenderBusyError, 409),
    (NoDataError, 409),
    (RenderError, 422),
    (EngineError, 500),
    (PlaybackError, 503),
)


def _default_session() -> RoomSession:
    sink = SoundDeviceSink() if os.getenv("SITTINGROOM_SINK", "null") == "device" else NullSink()
    return RoomSession(sink=sink)


def _iteration_or_404(session: RoomSession, index: int):
    iteration = session.iteration(index)
    if iteration is None:
        raise HTTPException(status_code=404, detail=f"Iteration {index} does not exist")
    return iteration


def _log_batch_result(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Background batch failed: %s", exc)


def create_app(session: Optional[RoomSession] = None) -> FastAPI:
    app = FastAPI(
        title="Sitting Room Engine",
        version=__version__,
        description="Iterative room-resonance re-recording engine",
    )
    app.state.session = session or _default_session()
    app.state.batch_task = None

    # CORS (Allow Frontend)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def _register(exc_type, status_code):
        async def handler(request: Request, exc: Exception):
            logger.warning("%s on %s: %s", type(exc).__name__, request.url.path, exc)
            return JSONResponse(status_code=status_code, content={"status": "error", "message": str(exc)})

        app.add_exception_handler(exc_type, handler)

    for exc_type, status_code in _ERROR_STATUS:
        _register(exc_type, status_code)

    def current() -> RoomSession:
        return app.state.session

    @app.get("/health")
    async def health_check():
        return {"status": "ok", "service": "sitting-room-engine"}

    @app.get("/status")
    async def status():
        return current().status()

    # --- Capture ---

    @app.post("/capture")
    async def capture(request: Request, condition: bool = True):
        """
        Stores the uploaded recording (raw WAV body) as iteration 0.
        """
        body = await request.body()
        if not body:
            raise RenderError("Empty upload: send the recording as a WAV request body")
        samples, sample_rate = AudioIO.read(body)
        iteration = current().capture(samples, sample_rate, condition=condition)
        return iteration.summary()

    # --- Parameters ---

    @app.get("/params")
    async def get_params():
        return current().params.to_dict()

    @app.put("/params")
    async def put_params(params: dict):
        try:
            snapshot = current().update_params(**params)
        except (ValueError, TypeError) as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc
        return snapshot.to_dict()

    @app.get("/rooms")
    async def list_rooms():
        return {name: list(freqs) for name, freqs in ROOM_PRESETS.items()}

    @app.post("/rooms/{name}")
    async def select_room(name: str):
        try:
            snapshot = current().select_room_preset(name)
        except ValueError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return snapshot.to_dict()

    @app.put("/params/resonances/{position}")
    async def set_resonance(position: int, data: dict):
        try:
            snapshot = current().set_resonance(position, float(data["freq_hz"]))
        except (KeyError, ValueError, TypeError) as exc:
            raise HTTPException(status_code=422, detail=f"Invalid resonance update: {exc}") from exc
        return snapshot.to_dict()

    @app.put("/settings/max_iterations")
    async def set_max_iterations(data: dict):
        try:
            count = int(data["max_iterations"])
        except (KeyError, ValueError, TypeError, OverflowError) as exc:
            raise HTTPException(status_code=422, detail=f"Invalid iteration cap: {exc}") from exc
        return {"max_iterations": current().set_max_iterations(count)}

    @app.post("/params/randomize")
    async def randomize_params():
        return current().randomize_parameters().to_dict()

    # --- Iterations ---

    @app.post("/iterations/next")
    async def advance():
        iteration = await current().advance()
        if iteration is None:
            return {"status": "discarded", "message": "Session was reset while rendering"}
        return iteration.summary()

    async def _batch(randomize: bool, wait: bool):
        session = current()
        runner = session.random_batch if randomize else session.auto_process
        if wait:
            produced = await runner()
            return {"status": "complete", "iterations": [it.index for it in produced]}
        task = app.state.batch_task
        if task is not None and not task.done():
            raise RenderBusyError("A batch is already running")
        task = asyncio.get_running_loop().create_task(runner())
        task.add_done_callback(_log_batch_result)
        app.state.batch_task = task
        return {"status": "started"}

    @app.post("/batch/auto")
    async def auto_process(wait: bool = False):
        return await _batch(randomize=False, wait=wait)

    @app.post("/batch/random")
    async def random_batch(wait: bool = False):
        return await _batch(randomize=True, wait=wait)

    @app.post("/batch/stop")
    async def stop_batch():
        current().stop_batch()
        return {"status": "stopped"}

    @app.post("/reset")
    async def reset():
        current().reset()
        return {"status": "ok"}

    @app.get("/iterations")
    async def list_iterations():
        return [it.summary() for it in current().iterations()]

    @app.get("/iterations/{index}/metrics")
    async def iteration_metrics(index: int):
        return _iteration_or_404(current(), index).metrics.to_dict()

    @app.get("/iterations/{index}/spectrum")
    async def iteration_spectrum(index: int):
        iteration = _iteration_or_404(current(), index)
        return {"index": index, "spectrum": iteration.spectrum.tolist()}

    @app.get("/iterations/{index}/wav")
    async def iteration_wav(index: int):
        iteration = _iteration_or_404(current(), index)
        return Response(
            content=Exporter.iteration_wav(iteration),
            media_type="audio/wav",
            headers={"Content-Disposition": f"attachment; filename={iteration_filename(index)}"},
        )

    @app.get("/phase")
    async def phase():
        session = current()
        return {
            "phase": session.current_phase.value,
            "history": [entry.to_dict() for entry in session.phase_history],
        }

    @app.get("/params/log")
    async def parameter_log():
        return [entry.to_dict() for entry in current().parameter_log]

    # --- Export ---

    @app.get("/export/zip")
    async def export_zip():
        return Response(
            content=Exporter.session_zip(current()),
            media_type="application/zip",
            headers={"Content-Disposition": "attachment; filename=i_am_sitting_in_a_room.zip"},
        )

    @app.get("/export/sequence")
    async def export_sequence():
        return Response(
            content=Exporter.sequence_wav(current()),
            media_type="audio/wav",
            headers={"Content-Disposition": "attachment; filename=full_sequence.wav"},
        )

    # --- Playback ---

    @app.post("/playback/loop")
    async def start_loop():
        current().scheduler.start_loop()
        return current().scheduler.status()

    @app.post("/playback/realtime")
    async def start_realtime():
        current().scheduler.start_realtime()
        return current().scheduler.status()

    @app.post("/playback/stop")
    async def stop_playback():
        current().scheduler.stop()
        return current().scheduler.status()

    @app.get("/playback")
    async def playback_status():
        return current().scheduler.status()

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run("sittingroom.main:app", host="0.0.0.0", port=8000, reload=True)
