"""
Analysis constants and phase thresholds.
Phase rules are evaluated in order; the conditions overlap on purpose.
"""
SPECTRUM_BINS = 1024
SPECTRUM_MAX = 200.0  # snapshot scale: loudest bin before smoothing
SMOOTH_RADIUS = 5  # +/- bins in the moving average
MAX_WINDOWS = 10

FLATNESS_EPSILON = 1e-4
TOP_BINS_FOR_PEAK_RATIO = 10
PEAK_MAGNITUDE_MIN = 30.0  # dominant peaks must exceed this on the snapshot scale
MAX_DOMINANT_PEAKS = 5

PHASE_THRESHOLDS = {
    "speech": {
        "intelligibility_min": 0.6,
        "flatness_min": 0.3,
    },
    "hybrid": {
        "intelligibility_min": 0.3,
        "peak_ratio_max": 0.7,
    },
    "modal": {
        "peak_ratio_min": 0.5,
        "flatness_max": 0.2,
    },
}
