"""Property-based invariants for the fatigue estimator and the insight pipeline.

Run:
    pytest tests/properties/ -v
    pytest tests/properties/ -v --hypothesis-seed=42  # reproducible
"""
