"""Range model: total, pure operations over a SelectionRange.

Nothing here raises. Out-of-range input is clamped so that after every
operation

    0 <= start <= end <= duration
    end - start <= max_span
    end - start >= min(min_span, duration)

Clamps are always applied in the same order (see ``clamp_range``); a
different order gives different results when several bounds are violated
at once, e.g. when the duration shrinks below the current start.
"""

import math

from vinclip.models import MAX_SPAN, MIN_SPAN, SelectionRange

# Float slack for the minimum-span check so that ``end - (end - min_span)``
# rounding does not nudge ``end`` by one ulp.
_EPS = 1e-9


def _finite(value: float, fallback: float) -> float:
    try:
        value = float(value)
    except (TypeError, ValueError):
        return fallback
    return value if math.isfinite(value) else fallback


def _floor(r: SelectionRange) -> float:
    return min(r.min_span, max(r.duration, 0.0))


def clamp_range(
    start: float,
    end: float,
    duration: float,
    max_span: float = MAX_SPAN,
    min_span: float = MIN_SPAN,
) -> SelectionRange:
    """Build a valid range from raw candidate bounds.

    Order: end into [0, duration]; start into [0, end]; span down to
    max_span by moving start forward; span up to min_span by moving end
    forward, pinning the window to the end of the source if that overshoots.
    """
    duration = max(_finite(duration, 0.0), 0.0)
    end = _finite(end, duration)
    start = _finite(start, 0.0)
    floor = min(min_span, duration)

    end = min(max(end, 0.0), duration)
    start = min(max(start, 0.0), end)
    if end - start > max_span:
        start = end - max_span
    if end - start < floor - _EPS:
        end = start + floor
        if end > duration:
            end = duration
            start = duration - floor

    return SelectionRange(
        start=start, end=end, duration=duration, max_span=max_span, min_span=min_span
    )


def initial_range(
    duration: float, max_span: float = MAX_SPAN, min_span: float = MIN_SPAN
) -> SelectionRange:
    """Default selection once metadata is known: the first max_span seconds."""
    return clamp_range(0.0, min(max_span, duration), duration, max_span, min_span)


def with_duration(r: SelectionRange, duration: float) -> SelectionRange:
    """Re-clamp an existing selection against a new source duration."""
    return clamp_range(r.start, r.end, duration, r.max_span, r.min_span)


def set_start(r: SelectionRange, t: float) -> SelectionRange:
    """Move the start bound, never closer than min_span to end."""
    t = _finite(t, r.start)
    t = min(t, r.end - _floor(r))
    return clamp_range(t, r.end, r.duration, r.max_span, r.min_span)


def set_end(r: SelectionRange, t: float) -> SelectionRange:
    """Move the end bound, keeping the span within [min_span, max_span]."""
    t = _finite(t, r.end)
    t = max(t, r.start + _floor(r))
    t = min(t, r.start + r.max_span)
    return clamp_range(r.start, t, r.duration, r.max_span, r.min_span)


def move_window(r: SelectionRange, delta: float) -> SelectionRange:
    """Shift both bounds together without changing the span."""
    delta = _finite(delta, 0.0)
    span = r.span
    start = min(max(r.start + delta, 0.0), r.duration - span)
    return clamp_range(start, start + span, r.duration, r.max_span, r.min_span)


def pixel_to_time(pixel_delta: float, timeline_width_px: float, duration: float) -> float:
    """Map a horizontal pointer distance on the timeline to seconds."""
    if not timeline_width_px or timeline_width_px <= 0:
        return 0.0
    return _finite(pixel_delta, 0.0) / timeline_width_px * duration


def position_to_time(pointer_x: float, timeline_width_px: float, duration: float) -> float:
    """Absolute pointer position on the timeline, as seconds within [0, duration]."""
    return min(max(pixel_to_time(pointer_x, timeline_width_px, duration), 0.0), duration)
