"""
TIMS Insight core: configuration, Gemini access and the insight pipeline.
"""
