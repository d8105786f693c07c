"""
Bus mixer: sums named buses after applying a linear gain to each.
Shorter buses are zero-padded to the longest one.
"""
from dataclasses import dataclass
from typing import Dict, Tuple

import torch


@dataclass
class BusSpec:
    """Linear gain and mute for one bus."""
    name: str
    gain: float = 1.0
    mute: bool = False


class BusMixer:
    def __init__(self):
        self._buses: Dict[str, Tuple[torch.Tensor, BusSpec]] = {}

    def add(self, name: str, audio: torch.Tensor, gain: float = 1.0, mute: bool = False) -> None:
        """Register a bus. Same name overwrites."""
        self._buses[name] = (audio.view(-1), BusSpec(name, gain, mute))

    def mix(self) -> torch.Tensor:
        """Sum all buses after gain and mute."""
        if not self._buses:
            return torch.tensor([], dtype=torch.float32)

        ref_len = max(audio.shape[-1] for audio, _ in self._buses.values())
        master = None
        for audio, spec in self._buses.values():
            if audio.shape[-1] < ref_len:
                audio = torch.nn.functional.pad(audio, (0, ref_len - audio.shape[-1]))
            contribution = torch.zeros_like(audio) if spec.mute else audio * spec.gain
            master = contribution.clone() if master is None else master + contribution
        return master
