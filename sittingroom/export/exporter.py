import io
import json
import zipfile
from datetime import datetime
from typing import Iterable, List

import numpy as np

from sittingroom.core.errors import NoDataError
from sittingroom.core.io import AudioIO
from sittingroom.core.types import Iteration

SEQUENCE_GAP_S = 1.0


def iteration_filename(index: int) -> str:
    return f"iteration_{index:02d}.wav"


class Exporter:
    @staticmethod
    def iteration_wav(iteration: Iteration) -> bytes:
        """16-bit PCM WAV of one stored iteration."""
        return AudioIO.to_bytes(iteration.samples, iteration.sample_rate)

    @staticmethod
    def session_zip(session) -> bytes:
        """
        ZIP of every stored iteration (iteration_00.wav, iteration_01.wav, ...) plus
        session_info.json with per-iteration metrics, the phase history and the
        randomizer's parameter log.
        """
        iterations = session.iterations()
        if not iterations:
            raise NoDataError("No audio to export")

        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as zip_file:
            meta = {
                "created_at": datetime.now().isoformat(),
                "iterations": [it.summary() for it in iterations],
                "phase": session.current_phase.value,
                "phase_history": [entry.to_dict() for entry in session.phase_history],
                "parameter_log": [entry.to_dict() for entry in session.parameter_log],
            }
            zip_file.writestr("session_info.json", json.dumps(meta, indent=2))

            for it in iterations:
                zip_file.writestr(iteration_filename(it.index), Exporter.iteration_wav(it))

        return buffer.getvalue()

    @staticmethod
    def sequence(iterations: Iterable[Iteration], gap_s: float = SEQUENCE_GAP_S):
        """
        Concatenate iterations in index order with gap_s of silence between them
        (none after the last). Returns (samples, sample_rate).
        """
        ordered = sorted(iterations, key=lambda it: it.index)
        if not ordered:
            raise NoDataError("No audio to export")
        sample_rate = ordered[-1].sample_rate
        gap = np.zeros(int(round(sample_rate * gap_s)), dtype=np.float32)

        parts: List[np.ndarray] = []
        for i, it in enumerate(ordered):
            if i > 0:
                parts.append(gap)
            parts.append(np.asarray(it.samples, dtype=np.float32))
        return np.concatenate(parts), sample_rate

    @staticmethod
    def sequence_wav(session, gap_s: float = SEQUENCE_GAP_S) -> bytes:
        samples, sample_rate = Exporter.sequence(session.iterations(), gap_s)
        return AudioIO.to_bytes(samples, sample_rate)
