"""Temporal aggregation and smoothing of subject detections."""
