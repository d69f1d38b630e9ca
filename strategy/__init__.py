"""Batch-size control, EMA tracking, shared state and donation."""
