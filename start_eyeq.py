"""
EyeQ — Launcher
================
Main entry point: opens the camera, starts the attention engine and
shows the live preview with the attention HUD.

Usage:
  python start_eyeq.py --source 0
  python start_eyeq.py --mode reading --smoothing direct --debug

Keys:
  m        toggle focus mode (screen / reading)
  s        start / end the session
  d        toggle debug overlay
  q / ESC  quit
"""

import argparse
import os
import sys
import time

import cv2

# Add root
sys.path.append(os.path.dirname(os.path.abspath(__file__)))

from eyeq_engine import EyeQEngine
from eyeq_hud import EyeQHUD
from eyeq_scoring import format_session_time, format_streak
from eyeq_utils import CONFIG, load_config, setup_logger

_log = setup_logger("EyeQLauncher")

WINDOW_NAME = "EyeQ | Attention Tracker"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="EyeQ attention tracker")
    parser.add_argument("--source", type=str, default=None, help="Camera ID (0, 1, etc.) or video file path")
    parser.add_argument("--mode", choices=("screen", "reading"), default="screen", help="Initial focus mode")
    parser.add_argument("--tick-interval", type=float, default=None, help="State-machine tick interval (seconds)")
    parser.add_argument("--smoothing", choices=("exponential", "direct"), default=None, help="Display smoothing policy")
    parser.add_argument("--config", type=str, default=None, help="Path to a config.yaml override")
    parser.add_argument("--debug", action="store_true", help="Show the raw pose/gaze debug overlay")
    parser.add_argument("--headless", action="store_true", help="Run without UI window")
    return parser


def build_config(args: argparse.Namespace) -> dict:
    if args.config and not os.path.isfile(args.config):
        raise FileNotFoundError(f"Config file not found: {args.config}")
    config = load_config(args.config) if args.config else CONFIG
    config = {**config, "camera": dict(config["camera"])}
    if args.source is not None:
        config["camera"]["id"] = int(args.source) if args.source.isdigit() else args.source
    return config


def handle_key(key: int, engine: EyeQEngine, hud: EyeQHUD) -> bool:
    """Apply one keypress. Returns False when the user asked to quit."""
    if key in (ord('q'), ord('Q'), 27):
        return False
    if key in (ord('m'), ord('M')):
        mode = engine.toggle_mode()
        print(f"[EYEQ] Mode: {mode.value}")
    elif key in (ord('s'), ord('S')):
        if engine.active:
            _print_summary(engine.end_session())
        else:
            engine.start_session()
            print("[EYEQ] Session started.")
    elif key in (ord('d'), ord('D')):
        hud.toggle_debug()
    return True


def _print_summary(summary):
    if not summary:
        return
    print("[EYEQ] Session ended — "
          f"time {format_session_time(summary['session_elapsed_seconds'])}, "
          f"avg {summary['average_attention']:.0f}%, "
          f"best streak {format_streak(summary['longest_streak_seconds'])}")


def main(argv=None):
    args = build_parser().parse_args(argv)
    try:
        config = build_config(args)
    except FileNotFoundError as e:
        _log.error("Start-up failed: %s", e)
        return 1

    print("=" * 60)
    print("  EyeQ — Starting...")
    print(f"  Source:    {config['camera']['id']}")
    print(f"  Mode:      {args.mode}")
    print(f"  Smoothing: {args.smoothing or config['smoothing']['policy']}")
    print("=" * 60)

    hud = EyeQHUD(debug=args.debug)
    engine = None

    try:
        engine = EyeQEngine(
            config,
            mode=args.mode,
            tick_interval=args.tick_interval,
            smoothing=args.smoothing,
        )

        if not args.headless:
            cv2.namedWindow(WINDOW_NAME, cv2.WINDOW_AUTOSIZE)

        engine.start()
        engine.start_session()
        print("[EYEQ] Session active. Keys: M mode | S start/end | D debug | Q/ESC quit")

        last_summary = 0.0
        while engine.running:
            if args.headless:
                time.sleep(1.0 / 30)
                engine.refresh_display()
                now = time.monotonic()
                if now - last_summary >= 5.0:
                    snap = engine.get_snapshot()
                    _log.info("score=%d (%s) avg=%.0f%% streak=%s alert=%s",
                              snap.score, snap.label, snap.average_attention,
                              format_streak(snap.longest_streak_seconds),
                              snap.refocus_alert_active)
                    last_summary = now
                continue

            key = cv2.waitKey(1) & 0xFF
            if key != 0xFF and not handle_key(key, engine, hud):
                print("\n[EYEQ] Exit key pressed — shutting down...")
                break

            frame = engine.get_latest_frame()
            if frame is None:
                time.sleep(0.005)
                continue

            engine.refresh_display()
            annotated, _ = hud.render(frame, engine.get_snapshot())
            cv2.imshow(WINDOW_NAME, annotated)

    except KeyboardInterrupt:
        print("\n[EYEQ] Interrupted by user.")
    except (RuntimeError, FileNotFoundError) as e:
        _log.error("Start-up failed: %s", e)
        return 1
    finally:
        print("[EYEQ] Cleaning up...")
        if not args.headless:
            cv2.destroyAllWindows()
            cv2.waitKey(1)
        if engine:
            _print_summary(engine.end_session())
            engine.stop()
        print("[EYEQ] Shutdown complete.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
