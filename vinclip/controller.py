"""Selection controller: turns pointer and keyboard input into range updates.

All input ends up as a call into ``vinclip.selection``; the controller never
builds a SelectionRange itself, so no event sequence can produce an invalid
range.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from vinclip import selection
from vinclip.models import SelectionRange

logger = logging.getLogger(__name__)

RangeListener = Callable[[SelectionRange], None]


class Handle(Enum):
    NONE = "none"
    START = "start"
    END = "end"
    FRAME = "frame"


@dataclass(frozen=True)
class DragSession:
    """State captured at pointer-down, alive until pointer-up or leave."""

    handle: Handle
    anchor_x: float
    anchor_range: SelectionRange
    width_px: float


_IDLE = DragSession(Handle.NONE, 0.0, selection.clamp_range(0.0, 0.0, 0.0), 0.0)

COARSE_KEYS = {"ArrowLeft": -1, "ArrowRight": 1}
FINE_KEYS = {",": -1, ".": 1}
PLAY_KEYS = {" ", "Space", "Spacebar"}
END_MODIFIER = "shift"


class SelectionController:
    def __init__(
        self,
        range_: SelectionRange,
        fps: float | None = None,
        coarse_step: float = 1.0,
        default_fps: float = 30.0,
        on_change: RangeListener | None = None,
        on_settle: RangeListener | None = None,
    ):
        self._range = range_
        self._drag = _IDLE
        self.fps = fps or default_fps
        self.coarse_step = coarse_step
        self.playing = False
        self.on_change = on_change
        self.on_settle = on_settle

    @property
    def range(self) -> SelectionRange:
        return self._range

    @property
    def drag(self) -> DragSession:
        return self._drag

    @property
    def dragging(self) -> bool:
        return self._drag.handle is not Handle.NONE

    @property
    def fine_step(self) -> float:
        return 1.0 / self.fps

    def _apply(self, new: SelectionRange) -> SelectionRange:
        if new != self._range:
            self._range = new
            if self.on_change:
                self.on_change(new)
        return self._range

    def _settle(self) -> None:
        if self.on_settle:
            self.on_settle(self._range)

    # --- metadata ---

    def set_duration(self, duration: float) -> SelectionRange:
        new = self._apply(selection.with_duration(self._range, duration))
        self._settle()
        return new

    def select(self, start: float, end: float) -> SelectionRange:
        """Replace both bounds at once, e.g. from typed-in times."""
        r = self._range
        new = self._apply(selection.clamp_range(start, end, r.duration, r.max_span, r.min_span))
        self._settle()
        return new

    # --- pointer drag ---

    def begin(self, handle: Handle, pointer_x: float, width_px: float) -> bool:
        if handle is Handle.NONE or not width_px > 0:
            return False
        if self.dragging:
            # A pointer-down without the matching up: close the old drag first.
            self.end()
        self._drag = DragSession(handle, pointer_x, self._range, width_px)
        logger.debug("drag %s started at x=%s", handle.value, pointer_x)
        return True

    def update(self, pointer_x: float) -> SelectionRange:
        drag = self._drag
        if drag.handle is Handle.NONE:
            return self._range

        duration = self._range.duration
        if drag.handle is Handle.FRAME:
            # The duration may have changed since pointer-down.
            anchor = selection.with_duration(drag.anchor_range, duration)
            delta = selection.pixel_to_time(pointer_x - drag.anchor_x, drag.width_px, duration)
            return self._apply(selection.move_window(anchor, delta))

        t = selection.position_to_time(pointer_x, drag.width_px, duration)
        if drag.handle is Handle.START:
            return self._apply(selection.set_start(self._range, t))
        return self._apply(selection.set_end(self._range, t))

    def end(self) -> None:
        if not self.dragging:
            return
        logger.debug("drag %s ended", self._drag.handle.value)
        self._drag = _IDLE
        self._settle()

    def leave(self) -> None:
        """Pointer left the timeline; never leave a drag stuck."""
        self.end()

    # --- keyboard ---

    def nudge(self, delta: float, modifier: bool = False) -> SelectionRange:
        if modifier:
            new = self._apply(selection.set_end(self._range, self._range.end + delta))
        else:
            new = self._apply(selection.set_start(self._range, self._range.start + delta))
        self._settle()
        return new

    def toggle_playback(self) -> bool:
        self.playing = not self.playing
        return self.playing

    def key(self, key: str, modifiers: list[str] | tuple[str, ...] = ()) -> bool:
        if key in PLAY_KEYS:
            self.toggle_playback()
            return True
        if self._range.duration <= 0:
            return False
        modifier = END_MODIFIER in {m.lower() for m in modifiers}
        if key in COARSE_KEYS:
            self.nudge(COARSE_KEYS[key] * self.coarse_step, modifier)
            return True
        if key in FINE_KEYS:
            self.nudge(FINE_KEYS[key] * self.fine_step, modifier)
            return True
        return False

    # --- raw UI events ---

    def handle_event(self, event: dict) -> bool:
        """Dispatch one UI event dict. Returns False for ignored or malformed events."""
        if not isinstance(event, dict):
            logger.debug("ignoring non-dict event %r", event)
            return False
        kind = event.get("type")
        try:
            if kind == "pointerdown":
                handle = Handle(event.get("handle", "frame"))
                return self.begin(handle, float(event["x"]), float(event["width"]))
            if kind == "pointermove":
                if not self.dragging:
                    return False
                self.update(float(event["x"]))
                return True
            if kind == "pointerup":
                self.end()
                return True
            if kind == "pointerleave":
                self.leave()
                return True
            if kind == "keydown":
                modifiers = event.get("modifiers") or ()
                if isinstance(modifiers, str):
                    modifiers = (modifiers,)
                return self.key(str(event["key"]), tuple(str(m) for m in modifiers))
        except (KeyError, TypeError, ValueError) as e:
            logger.debug("malformed %s event %r: %s", kind, event, e)
            return False
        logger.debug("ignoring unknown event type %r", kind)
        return False
