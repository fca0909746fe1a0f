"""
main.py: Master Entry Point
===========================
Runs the classic demo: a liquid square with a square air hole falling inside
a square container, with surface tension and bubble preservation.

Usage:
    python main.py --mode live          # Interactive window (space / n / p)
    python main.py                      # Headless, prints stats per frame
    python main.py --mode benchmark     # Per-stage timing breakdown
    python main.py --config scene.json --frames 240 --volume-correction
"""

import argparse
import logging
import os

import numpy as np


def build_config(args):
    """Config file (if any) first, then explicit command line overrides."""
    from liquid2d import SimulationConfig

    config = SimulationConfig.from_json(args.config) if args.config else SimulationConfig()
    overrides = {
        "dx": args.dx,
        "narrow_band": args.band,
        "frame_time": args.frame_time,
        "surface_tension": args.surface_tension,
        "viscosity": args.viscosity,
        "order": args.order,
    }
    for key, value in overrides.items():
        if value is not None:
            setattr(config, key, value)
    if args.nx is not None or args.ny is not None:
        nx, ny = config.resolution
        config.resolution = (args.nx or nx, args.ny or ny)
    if args.no_bubbles:
        config.enforce_bubbles = False
    if args.no_air:
        config.air_volume = False
    if args.volume_correction:
        config.volume_correction = True
    if args.screenshots:
        config.screenshot_dir = args.screenshots
    config.validate()
    return config


def run_live(config):
    """Live interactive visualization."""
    from liquid2d import CflController, SimulationContext, build_hole_scene
    from visualizer import MatplotlibRenderer

    print(f"Starting live simulation ({config.resolution[0]}x{config.resolution[1]}, dx={config.dx})...")
    print("space: run/pause | n: single frame | p: toggle screenshots\n")

    sim = build_hole_scene(config)
    renderer = MatplotlibRenderer(origin=sim.xform.offset, extent=config.dx * max(config.resolution))
    controller = CflController(config.frame_time, force=config.gravity, cfl_factor=config.cfl_factor)
    context = SimulationContext(sim, controller, renderer,
                                screenshot_dir=config.screenshot_dir,
                                screenshot_format=config.screenshot_format)
    context.run()


def run_headless(config, frames: int = 10):
    """Run the simulation without display, printing stats each frame."""
    from liquid2d import CflController, build_hole_scene

    print(f"\nHeadless simulation | {config.resolution[0]}x{config.resolution[1]} | {frames} frames")
    print(f"{'─'*72}")

    sim = build_hole_scene(config)
    controller = CflController(config.frame_time, force=config.gravity, cfl_factor=config.cfl_factor)
    start_volume = sim.compute_volume(True)
    frame_times = []

    for f in range(frames):
        n_before = len(sim.perf_log)
        report = controller.advance_frame(sim)
        logs = sim.perf_log[n_before:]
        frame_ms = sum(m["total_ms"] for m in logs)
        frame_times.append(frame_ms)

        volume = sim.compute_volume(True)
        print(f"  Frame {f:03d} | {len(report):3d} substeps | {frame_ms:8.1f}ms | "
              f"|v|max={sim.max_vel_mag():.4f} | "
              f"div_max={logs[-1]['divergence_max'] if logs else 0.0:.2e} | "
              f"area={volume:.4f} ({100 * (volume - start_volume) / start_volume:+.2f}%)")

    print(f"\n{'─'*72}")
    print(f"  Average: {np.mean(frame_times):.1f}ms/frame")
    print(f"  Min:     {np.min(frame_times):.1f}ms")
    print(f"  Max:     {np.max(frame_times):.1f}ms")


def run_benchmark(config, frames: int = 5):
    """Per-stage timing breakdown of the substep pipeline."""
    from liquid2d import CflController, build_hole_scene

    print(f"\n{'='*60}")
    print(f"  LIQUID BENCHMARK | {config.resolution[0]}x{config.resolution[1]} | {frames} frames")
    print(f"{'='*60}")

    sim = build_hole_scene(config)
    controller = CflController(config.frame_time, force=config.gravity, cfl_factor=config.cfl_factor)

    # Warm up
    controller.advance_frame(sim)
    n_warm = len(sim.perf_log)

    for _ in range(frames):
        controller.advance_frame(sim)
    logs = sim.perf_log[n_warm:]

    keys = ["advect_ms", "surface_ms", "viscosity_ms", "project_ms",
            "extrapolate_ms", "advect_fields_ms", "total_ms"]

    print(f"\n{'Stage':<20} {'Mean':>8} {'Min':>8} {'Max':>8}")
    print(f"{'─'*50}")
    for k in keys:
        vals = [m[k] for m in logs]
        print(f"  {k:<18} {np.mean(vals):>7.1f}ms {np.min(vals):>7.1f}ms {np.max(vals):>7.1f}ms")

    iters = [m["cg_iterations"] for m in logs]
    print(f"\n{'─'*50}")
    print(f"  Substeps measured : {len(logs)}")
    print(f"  CG iterations     : mean {np.mean(iters):.1f}, max {np.max(iters)}")
    print(f"  Divergence max    : {max(m['divergence_max'] for m in logs):.2e}")


def main(argv=None):
    parser = argparse.ArgumentParser(description="2D Free-Surface Liquid Simulation")
    parser.add_argument(
        "--mode", choices=["live", "headless", "benchmark"],
        default="headless",
        help="Run mode (default: headless)"
    )
    parser.add_argument("--config",          type=str,   default=None, help="JSON configuration file")
    parser.add_argument("--dx",              type=float, default=None, help="Grid spacing (default: 0.025)")
    parser.add_argument("--nx",              type=int,   default=None, help="Cells along x (default: 200)")
    parser.add_argument("--ny",              type=int,   default=None, help="Cells along y (default: 200)")
    parser.add_argument("--band",            type=int,   default=None, help="Narrow band half-width in cells (default: 10)")
    parser.add_argument("--frame-time",      type=float, default=None, help="Frame duration in seconds (default: 1/120)")
    parser.add_argument("--frames",          type=int,   default=10,   help="Number of frames (headless/benchmark)")
    parser.add_argument("--surface-tension", type=float, default=None, help="Surface tension coefficient (default: 10)")
    parser.add_argument("--viscosity",       type=float, default=None, help="Enable viscosity with this coefficient")
    parser.add_argument("--order",           choices=["euler", "rk3", "rk4"], default=None, help="Advection scheme")
    parser.add_argument("--no-bubbles",      action="store_true", help="Do not enforce enclosed air volumes")
    parser.add_argument("--no-air",          action="store_true", help="Do not track the air phase with particles")
    parser.add_argument("--volume-correction", action="store_true", help="Correct long-run liquid volume drift")
    parser.add_argument("--screenshots",     type=str,   default=None, help="Screenshot directory (default: output)")
    parser.add_argument("--log-level",       default="WARNING",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"], help="Log level")

    args = parser.parse_args(argv)

    from liquid2d.logging_config import setup_logging
    setup_logging(getattr(logging, args.log_level))

    config = build_config(args)
    if args.screenshots:
        os.makedirs(config.screenshot_dir, exist_ok=True)

    if args.mode == "live":
        run_live(config)
    elif args.mode == "headless":
        run_headless(config, frames=args.frames)
    elif args.mode == "benchmark":
        run_benchmark(config, frames=args.frames)


if __name__ == "__main__":
    main()
