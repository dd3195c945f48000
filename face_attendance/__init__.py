"""
Face-signature matching and once-per-day attendance recording.
"""
__version__ = "1.0.0"
