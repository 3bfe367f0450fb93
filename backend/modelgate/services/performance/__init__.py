"""
Model performance telemetry: windows, aggregation and scoring.
"""
