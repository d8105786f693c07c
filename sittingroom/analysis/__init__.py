"""
Spectral analysis of iterations: spectrum snapshot, metrics and phase classification.
"""
from sittingroom.analysis.metrics import analyze
from sittingroom.analysis.phase import PhaseClassifier, classify_phase
from sittingroom.analysis.spectrum import spectrum_snapshot
from sittingroom.analysis.thresholds import PHASE_THRESHOLDS

__all__ = ["analyze", "PhaseClassifier", "classify_phase", "spectrum_snapshot", "PHASE_THRESHOLDS"]
