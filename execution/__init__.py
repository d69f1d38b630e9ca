"""Batch construction and dispatch."""
