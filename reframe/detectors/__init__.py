"""Detector backends and the detection adapter."""
