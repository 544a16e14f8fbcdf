"""
TIMS Insight Service

Natural-language explanations of room-temperature readings backed by Gemini,
with a deterministic local fallback.
"""
__version__ = "1.0.0"
