"""
driver.py: Interactive Driver Loop
==================================
SimulationContext holds everything the interactive demo needs (engine,
CFL controller, renderer, run/step/capture flags, frame counter) in one
object that is handed to the renderer's callbacks.

Controls (forwarded by the renderer):
  space -> toggle continuous running
  n     -> advance exactly one frame
  p     -> toggle screenshot capture
"""

import logging
import os
from enum import Enum

from .controller import CflController, FrameReport

logger = logging.getLogger(__name__)

SCREENSHOT_PATTERN = "screenshot%04d"


class ControlSignal(Enum):
    TOGGLE_RUN = "toggle_run"
    SINGLE_STEP = "single_step"
    TOGGLE_CAPTURE = "toggle_capture"


KEY_BINDINGS = {
    " ": ControlSignal.TOGGLE_RUN,
    "n": ControlSignal.SINGLE_STEP,
    "p": ControlSignal.TOGGLE_CAPTURE,
}


class SimulationContext:
    """
    Args:
        sim               : LiquidSimulation (or anything the controller can step)
        controller        : CflController covering one frame per display call
        renderer          : Renderer protocol implementation
        screenshot_dir    : Directory for captured frames
        screenshot_format : Image extension appended to the numbered pattern
        draw_velocity     : Vector length for the velocity overlay (None = off)
    """

    def __init__(self, sim, controller: CflController, renderer,
                 screenshot_dir: str = "output", screenshot_format: str = "png",
                 draw_velocity: float = None):
        self.sim = sim
        self.controller = controller
        self.renderer = renderer
        self.screenshot_dir = screenshot_dir
        self.screenshot_format = screenshot_format
        self.draw_velocity = draw_velocity

        self.running = False
        self.single_step = False
        self.capture = False
        self.dirty = True
        self.frame_count = 0
        self.reports = []

    def attach(self):
        """Register the display and keyboard callbacks with the renderer."""
        self.renderer.set_user_display(self.display)
        self.renderer.set_user_keyboard(self.on_key)

    def handle(self, signal: ControlSignal):
        if signal == ControlSignal.TOGGLE_RUN:
            self.running = not self.running
        elif signal == ControlSignal.SINGLE_STEP:
            self.single_step = True
        elif signal == ControlSignal.TOGGLE_CAPTURE:
            self.capture = not self.capture
        logger.debug("Control %s: running=%s capture=%s", signal.value, self.running, self.capture)

    def on_key(self, key: str):
        signal = KEY_BINDINGS.get(key)
        if signal is not None:
            self.handle(signal)

    def screenshot_path(self, frame: int) -> str:
        name = (SCREENSHOT_PATTERN % frame) + "." + self.screenshot_format
        return os.path.join(self.screenshot_dir, name)

    def display(self) -> FrameReport:
        """
        One display tick: advance a frame if running (or single-stepping),
        then redraw and optionally capture when something changed.
        """
        report = None
        if self.running or self.single_step:
            self.renderer.clear()
            report = self.controller.advance_frame(self.sim, self.renderer)
            self.reports.append(report)
            self.single_step = False
            self.dirty = True

        if self.dirty:
            self.renderer.clear()
            self.sim.draw_surface(self.renderer)
            self.sim.draw_air(self.renderer)
            self.sim.draw_collision(self.renderer)
            if self.draw_velocity is not None:
                self.sim.draw_velocity(self.renderer, self.draw_velocity)
            self.dirty = False

            if self.capture:
                os.makedirs(self.screenshot_dir, exist_ok=True)
                self.renderer.screenshot(self.screenshot_path(self.frame_count))
            self.frame_count += 1
        return report

    def run(self):
        self.attach()
        self.renderer.run()
