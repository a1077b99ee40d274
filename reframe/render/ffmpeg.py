"""Serialization of crop plans into ffmpeg filter-graph expressions."""

from __future__ import annotations

from typing import List, Optional, Sequence

from reframe.types import CropParameters


def emit(crop: CropParameters) -> str:
    """Static crop filter ``crop=<width>:<height>:<x>:<y>``."""
    return f"crop={int(crop.width)}:{int(crop.height)}:{int(crop.x)}:{int(crop.y)}"


def _fmt_time(value: float) -> str:
    return f"{value:.3f}"


def _piecewise(crops: Sequence[CropParameters], attr: str, default: int) -> str:
    """Nested ``if(between(t,start,end),value,...)`` over the timed crops."""
    parts: List[str] = []
    for crop in crops:
        cond = f"between(t,{_fmt_time(crop.start_time)},{_fmt_time(crop.end_time)})"  # type: ignore[arg-type]
        parts.append(f"if({cond},{int(getattr(crop, attr))},")
    return "".join(parts) + str(int(default)) + ")" * len(crops)


def emit_timeline(crops: Sequence[CropParameters], fallback: Optional[CropParameters] = None) -> str:
    """Single crop filter that follows the subject across timed crops.

    All crops must share the same width and height; ``x``/``y`` switch at the
    interval boundaries. Time outside every interval uses ``fallback`` (normally
    the planner's static centered crop), or the last crop when none is given.
    """
    if not crops:
        raise ValueError("emit_timeline requires at least one crop")
    first = crops[0]
    if any(c.width != first.width or c.height != first.height for c in crops):
        raise ValueError("All crops in a timeline must share the same width and height")
    if fallback is not None and (fallback.width != first.width or fallback.height != first.height):
        raise ValueError("Fallback crop must match the timeline width and height")

    positions = {(c.x, c.y) for c in crops}
    if fallback is None:
        if len(positions) == 1:
            return emit(first)
        crops, fallback = crops[:-1], crops[-1]
    elif positions == {(fallback.x, fallback.y)}:
        return emit(first)
    if any(c.start_time is None or c.end_time is None for c in crops):
        raise ValueError("Timeline crops need start_time and end_time")

    x_expr = _piecewise(crops, "x", fallback.x)
    y_expr = _piecewise(crops, "y", fallback.y)
    return f"crop={int(first.width)}:{int(first.height)}:x='{x_expr}':y='{y_expr}'"
