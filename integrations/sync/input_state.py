"""
Local Input State

Key-down/key-up flags polled once per frame, plus a scripted input source
that stands in for a keyboard when running headless.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

logger = logging.getLogger('arena.sync.input_state')

# Axis bindings: (keys, axis, sign)
KEY_BINDINGS: Tuple[Tuple[Tuple[str, ...], str, int], ...] = (
    (('ArrowUp', 'w'), 'z', -1),
    (('ArrowDown', 's'), 'z', 1),
    (('ArrowLeft', 'a'), 'x', -1),
    (('ArrowRight', 'd'), 'x', 1),
)


class InputState:
    """Pressed-state per key name, owned by one session"""

    def __init__(self):
        self._keys: Dict[str, bool] = {}

    def press(self, key: str):
        self._keys[key] = True

    def release(self, key: str):
        self._keys[key] = False

    def release_all(self):
        self._keys.clear()

    def is_pressed(self, *keys: str) -> bool:
        """True if any of the given keys is down"""
        return any(self._keys.get(key, False) for key in keys)

    def direction(self) -> Tuple[int, int]:
        """Net (x, z) direction from the bound keys, each -1, 0 or 1"""
        dx = dz = 0
        for keys, axis, sign in KEY_BINDINGS:
            if self.is_pressed(*keys):
                if axis == 'x':
                    dx += sign
                else:
                    dz += sign
        return dx, dz

    def snapshot(self) -> Dict[str, bool]:
        return dict(self._keys)


@dataclass
class ScriptStep:
    key: str
    frames: int


class ScriptedInput:
    """
    Holds keys down for a number of frames each, in sequence.

    Scripts look like ``"d:1.0,w:0.5"``: hold ``d`` for one second, then
    ``w`` for half a second. Durations are converted to frames at the given
    frame rate.
    """

    def __init__(self, steps: List[ScriptStep]):
        self.steps = steps
        self._index = 0
        self._frames_left = steps[0].frames if steps else 0
        self._held: Optional[str] = None

    @classmethod
    def parse(cls, script: str, frame_rate: float) -> 'ScriptedInput':
        """
        Raises:
            ValueError: If a step is not ``key:seconds`` with a positive duration
        """
        steps = []
        for part in script.split(','):
            part = part.strip()
            if not part:
                continue
            key, sep, seconds = part.rpartition(':')
            if not sep or not key:
                raise ValueError(f"Script step '{part}' must look like key:seconds")
            duration = float(seconds)
            if duration <= 0:
                raise ValueError(f"Script step '{part}' must have a positive duration")
            steps.append(ScriptStep(key=key, frames=max(1, round(duration * frame_rate))))
        return cls(steps)

    @property
    def finished(self) -> bool:
        return self._index >= len(self.steps)

    def advance(self, input_state: InputState) -> bool:
        """
        Apply the script for one frame.

        Returns:
            False once the script has run out
        """
        if self._held is not None and self._frames_left <= 0:
            input_state.release(self._held)
            self._held = None
            self._index += 1
            if not self.finished:
                self._frames_left = self.steps[self._index].frames

        if self.finished:
            return False

        step = self.steps[self._index]
        if self._held is None:
            input_state.press(step.key)
            self._held = step.key
            logger.debug(f"Holding '{step.key}' for {step.frames} frames")

        self._frames_left -= 1
        return True
