"""
Core package init for the subject-tracking reframer.

Makes the `reframe` modules importable without requiring an editable install.
"""

__all__ = [
    "detectors",
    "io_utils",
    "options",
    "pipeline",
    "planning",
    "render",
    "tracking",
    "types",
    "video",
]
