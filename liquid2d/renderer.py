"""
renderer.py: Renderer Interface and a Headless Recorder
=======================================================
The engine only ever draws through this small capability set. The live
matplotlib window (visualizer.MatplotlibRenderer) and the headless
RecordingRenderer both satisfy it, so the driver loop never needs to know
which one it talks to.
"""

from typing import Callable, Protocol

import numpy as np


class Renderer(Protocol):
    def clear(self): ...

    def draw_contour(self, points: np.ndarray, values: np.ndarray, color, level: float = 0.0): ...

    def draw_points(self, points: np.ndarray, color, size: float = 1.0): ...

    def draw_vectors(self, starts: np.ndarray, ends: np.ndarray, color): ...

    def draw_grid_lines(self, origin, dx: float, size, color): ...

    def screenshot(self, path: str): ...

    def set_user_display(self, callback: Callable[[], None]): ...

    def set_user_keyboard(self, callback: Callable[[str], None]): ...

    def run(self): ...


class RecordingRenderer:
    """
    Headless renderer: stores draw calls instead of drawing them.

    run() calls the display callback `frames` times (or until stop() is
    called from inside it), so the driver loop can run without a window.
    """

    def __init__(self, frames: int = 1):
        self.frames = frames
        self.calls = []
        self.screenshots = []
        self.display_callback = None
        self.keyboard_callback = None
        self._stopped = False

    def clear(self):
        self.calls.clear()

    def draw_contour(self, points, values, color, level=0.0):
        self.calls.append(("contour", np.asarray(values).shape, color))

    def draw_points(self, points, color, size=1.0):
        self.calls.append(("points", len(points), color))

    def draw_vectors(self, starts, ends, color):
        self.calls.append(("vectors", len(starts), color))

    def draw_grid_lines(self, origin, dx, size, color):
        self.calls.append(("grid", tuple(size), color))

    def screenshot(self, path):
        self.screenshots.append(path)

    def set_user_display(self, callback):
        self.display_callback = callback

    def set_user_keyboard(self, callback):
        self.keyboard_callback = callback

    def press(self, key: str):
        """Simulate a key press."""
        if self.keyboard_callback is not None:
            self.keyboard_callback(key)

    def stop(self):
        self._stopped = True

    def run(self):
        self._stopped = False
        for _ in range(self.frames):
            if self._stopped or self.display_callback is None:
                break
            self.display_callback()

    def count(self, kind: str) -> int:
        return sum(1 for call in self.calls if call[0] == kind)
