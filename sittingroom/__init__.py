"""
Sitting-room engine: iterative room-resonance feedback on a recorded voice.
"""
__version__ = "1.0.0"
