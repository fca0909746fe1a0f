"""
visualizer.py: Live Liquid Viewer
=================================
A matplotlib implementation of the liquid2d Renderer interface:
  - Level sets are drawn as zero contours (liquid, air, solid)
  - Marker particles as small dots
  - Velocities as line segments

Uses matplotlib FuncAnimation to call the display callback periodically and
forwards key presses (space / n / p) to the keyboard callback.
"""

import numpy as np
import matplotlib.pyplot as plt
import matplotlib.animation as animation
from matplotlib.collections import LineCollection


class MatplotlibRenderer:
    """
    Real-time 2D viewer for a LiquidSimulation.

    Usage (standalone):
        from liquid2d import build_hole_scene, CflController, SimulationContext
        from visualizer import MatplotlibRenderer

        sim = build_hole_scene()
        renderer = MatplotlibRenderer(origin=(0, 0), extent=5.0)
        SimulationContext(sim, CflController(1 / 120), renderer).run()
        # space = run/pause, n = single frame, p = toggle screenshots
    """

    def __init__(self, origin=(0.0, 0.0), extent: float = 1.0, title: str = "Liquid Sim",
                 size_inches: float = 8.0, fps: int = 30):
        """
        Args:
            origin      : World position of the lower-left corner
            extent      : Width/height of the square world window
            title       : Window title prefix
            size_inches : Figure size
            fps         : Display callback rate
        """
        self.origin = np.asarray(origin, dtype=np.float64)
        self.extent = float(extent)
        self.title = title
        self.fps = fps

        self.display_callback = None
        self.keyboard_callback = None
        self.anim = None
        self.frame = 0

        self.fig, self.ax = plt.subplots(figsize=(size_inches, size_inches))
        self.fig.patch.set_facecolor('#0a0a0a')
        self.fig.canvas.mpl_connect('key_press_event', self._on_key)
        self._style_axes()

    def _style_axes(self):
        ax = self.ax
        ax.set_facecolor('#0a0a0a')
        ax.set_xlim(self.origin[0], self.origin[0] + self.extent)
        ax.set_ylim(self.origin[1], self.origin[1] + self.extent)
        ax.set_aspect('equal')
        ax.set_xticks([])
        ax.set_yticks([])
        for spine in ax.spines.values():
            spine.set_edgecolor('#333333')
        ax.set_title(f"{self.title} | frame {self.frame}  [space: run | n: step | p: capture]",
                     color='#aaaaaa', fontsize=9, fontfamily='monospace')

    # ── Renderer interface ──────────────────────────────────────────────────

    def clear(self):
        self.ax.cla()
        self._style_axes()

    def draw_contour(self, points, values, color, level=0.0):
        values = np.asarray(values)
        if values.min() > level or values.max() < level:
            return
        self.ax.contour(points[..., 0], points[..., 1], values, levels=[level], colors=[color], linewidths=1.2)

    def draw_points(self, points, color, size=1.0):
        points = np.asarray(points)
        if len(points):
            self.ax.scatter(points[:, 0], points[:, 1], s=size, color=color, linewidths=0)

    def draw_vectors(self, starts, ends, color):
        if len(starts):
            segments = np.stack([np.asarray(starts), np.asarray(ends)], axis=1)
            self.ax.add_collection(LineCollection(segments, colors=[color], linewidths=0.6))

    def draw_grid_lines(self, origin, dx, size, color):
        x = origin[0] + dx * np.arange(size[0] + 1)
        y = origin[1] + dx * np.arange(size[1] + 1)
        self.ax.vlines(x, y[0], y[-1], colors=[color], linewidths=0.2)
        self.ax.hlines(y, x[0], x[-1], colors=[color], linewidths=0.2)

    def screenshot(self, path):
        self.fig.savefig(path, facecolor=self.fig.get_facecolor())
        print(f"Saved: {path}")

    def set_user_display(self, callback):
        self.display_callback = callback

    def set_user_keyboard(self, callback):
        self.keyboard_callback = callback

    def _on_key(self, event):
        if self.keyboard_callback is not None and event.key is not None:
            key = " " if event.key == "space" else event.key
            self.keyboard_callback(key)

    def _update(self, frame_num):
        self.frame = frame_num
        if self.display_callback is not None:
            self.display_callback()
        return []

    def run(self):
        """Open the window and start calling the display callback."""
        self.anim = animation.FuncAnimation(
            self.fig,
            self._update,
            interval=1000 // self.fps,
            blit=False,
            cache_frame_data=False
        )
        plt.show()
