import logging
import random
from typing import Dict, List, Optional, Sequence, Tuple

from sittingroom.core.types import ImpulseResponseKind, ParameterLogEntry, ParameterSnapshot
from sittingroom.params.canonical_defaults import ROOM_PRESETS

logger = logging.getLogger(__name__)

CONVOLVER_KINDS: Tuple[ImpulseResponseKind, ...] = (
    ImpulseResponseKind.SMALL,
    ImpulseResponseKind.LARGE,
    ImpulseResponseKind.PLATE,
)


class ParameterRandomizer:
    def __init__(
        self,
        rng: Optional[random.Random] = None,
        presets: Optional[Dict[str, Sequence[float]]] = None,
    ):
        self.rng = rng or random.Random()
        self.presets = presets or ROOM_PRESETS
        self.room_change_probability = 0.3
        self.convolver_probability = 0.5
        self._log: List[ParameterLogEntry] = []

    @property
    def log(self) -> Tuple[ParameterLogEntry, ...]:
        return tuple(self._log)

    def reset(self) -> None:
        self._log = []

    def randomize(self, current: ParameterSnapshot, iteration_index: int) -> ParameterSnapshot:
        """
        Draw a new snapshot for the render that will produce iteration_index.
        Q uniform-int [20, 100), wet [0.5, 1.0), feedback [0.7, 1.0), convolver 50%,
        room preset swapped 30% of the time. The draw is logged for the parameter trail.
        """
        rng = self.rng
        changes = {
            "filter_q": float(rng.randrange(20, 100)),
            "dry_wet_mix": 0.5 + rng.random() * 0.5,
            "feedback_gain": 0.7 + rng.random() * 0.3,
            "use_convolver": rng.random() < self.convolver_probability,
        }

        room_changed_to = None
        if rng.random() < self.room_change_probability:
            room_changed_to = self._pick_room(current.room_preset)
            changes["room_resonances"] = tuple(self.presets[room_changed_to])
            changes["room_preset"] = room_changed_to

        if changes["use_convolver"]:
            changes["impulse_response_kind"] = rng.choice(CONVOLVER_KINDS)

        snapshot = current.replace(**changes)
        self._log.append(ParameterLogEntry(iteration_index, snapshot, room_changed_to))
        logger.info("Iteration %d params: %s", iteration_index, snapshot.to_dict())
        return snapshot

    def _pick_room(self, current_preset: Optional[str]) -> str:
        """Uniform over the catalogue, excluding the active preset when there is another choice."""
        names = [name for name in self.presets if name != current_preset]
        if not names:
            names = list(self.presets)
        return self.rng.choice(names)
