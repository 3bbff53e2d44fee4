"""
EyeQ — Attention Engine (Session Orchestrator)
===============================================
Wires camera, inference adapters and the session state machine together
with independent periodic tasks.

Architecture:
  Engine-scoped (start() .. stop()):
    - camera task: reads validated frames into the frame slot
  Session-scoped (start_session() .. end_session()):
    - landmark task (200 ms): frame -> keypoints -> FaceAnalysis
                              -> analysis slot (phone flag merged in)
    - phone task    (500 ms): frame -> phone flag -> phone slot
    - tick task     (tick interval): analysis slot -> SessionStateMachine
    - clock task    (1 s): wall-clock elapsed seconds

Hand-off between tasks uses LatestValueSlot (last writer wins, no
queue). The tick stays idle until the first analysis exists.

Session termination stops and joins every session task BEFORE state is
reset, and each task carries a session generation number so a late
straggler can never write into a newer session.
"""

from __future__ import annotations

import threading
import time
from typing import Callable, Optional

from eyeq_geometry import analyze_keypoints
from eyeq_logger import EyeQLogger
from eyeq_scoring import AttentionScorer, get_attention_color, get_attention_label
from eyeq_session import LatestValueSlot, SessionStateMachine
from eyeq_smoother import ScoreSmoother
from eyeq_types import FaceAnalysis, FocusMode, NO_FACE_ANALYSIS, SessionSnapshot
from eyeq_utils import CONFIG, merge_config, setup_logger

_log = setup_logger("EyeQEngine")


class PeriodicTask:
    """Runs `target` every `interval` seconds on a daemon thread.

    Exceptions from `target` are reported through `on_error` and the
    loop keeps going after at least ERROR_BACKOFF seconds. The first run
    happens immediately on start().
    """

    ERROR_BACKOFF = 0.05

    def __init__(
        self,
        name: str,
        interval: float,
        target: Callable[[], None],
        on_error: Optional[Callable[[str, Exception], None]] = None,
    ) -> None:
        self.name = name
        self.interval = max(0.0, float(interval))
        self.target = target
        self.on_error = on_error
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 2.0) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                _log.warning("Task %s did not stop within %.1f s", self.name, timeout)
        self._thread = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _run(self) -> None:
        while not self._stop_event.is_set():
            started = time.monotonic()
            failed = False
            try:
                self.target()
            except Exception as e:
                failed = True
                if self.on_error is not None:
                    self.on_error(self.name, e)
                else:
                    _log.error("Task %s failed: %s", self.name, e)
            remaining = self.interval - (time.monotonic() - started)
            if failed:
                remaining = max(remaining, self.ERROR_BACKOFF)
            if remaining > 0:
                self._stop_event.wait(remaining)


class EyeQEngine:
    """Real-time attention engine: one camera, one session at a time."""

    def __init__(
        self,
        config: Optional[dict] = None,
        camera=None,
        face_pipeline=None,
        phone_detector=None,
        mode: FocusMode | str | None = None,
        tick_interval: Optional[float] = None,
        smoothing: Optional[str] = None,
    ) -> None:
        self.config = merge_config(CONFIG, config or {})
        inference = self.config["inference"]
        session = self.config["session"]

        self.logger = EyeQLogger(self.config["logging"]["event_log_path"])

        # External collaborators
        if camera is None:
            from eyeq_camera import EyeQCamera
            cam_cfg = self.config["camera"]
            camera = EyeQCamera(cam_cfg["id"], cam_cfg["width"], cam_cfg["height"])
        self.camera = camera

        if face_pipeline is None:
            from eyeq_face_pipeline import EyeQFacePipeline
            face_pipeline = EyeQFacePipeline(inference["landmarker_model"])
        self.face_pipeline = face_pipeline

        if phone_detector is None:
            phone_detector = self._load_phone_detector()
        self.phone_detector = phone_detector

        # Core
        self.state_machine = SessionStateMachine(
            tick_interval=tick_interval if tick_interval is not None else session["tick_interval"],
            mode=mode or FocusMode.SCREEN,
            scorer=AttentionScorer(self.config["scoring"]["screen"], self.config["scoring"]["reading"]),
            focus_threshold=session["focus_threshold"],
            refocus_threshold=session["refocus_threshold"],
            refocus_delay=session["refocus_delay"],
        )
        smoothing_cfg = self.config["smoothing"]
        self.smoother = ScoreSmoother(
            policy=smoothing or smoothing_cfg["policy"],
            factor=smoothing_cfg["factor"],
            snap=smoothing_cfg["snap"],
        )

        # Hand-off slots
        self.frame_slot: LatestValueSlot = LatestValueSlot()
        self.analysis_slot: LatestValueSlot[FaceAnalysis] = LatestValueSlot()
        self.phone_slot: LatestValueSlot[bool] = LatestValueSlot()

        self._state_lock = threading.Lock()
        self._session_lock = threading.Lock()
        self._generation = 0
        self._active = False
        self._session_start: Optional[float] = None

        self._camera_task = PeriodicTask("eyeq-camera", 0.0, self.capture_frame, self._on_task_error)
        self._session_tasks: list[PeriodicTask] = []
        self.running = False

        self.logger.event(
            "engine_init",
            mode=self.state_machine.mode.value,
            tick_interval=self.state_machine.tick_interval,
            smoothing=self.smoother.policy,
            phone_detection=self.phone_detector is not None,
        )

    def _load_phone_detector(self):
        """Phone detection is optional: a missing model only disables it."""
        from eyeq_phone_detector import PhoneDetector
        inference = self.config["inference"]
        try:
            return PhoneDetector(
                inference["phone_model"],
                inference["phone_config"],
                inference["phone_score_threshold"],
                inference["phone_max_detections"],
            )
        except (FileNotFoundError, OSError) as e:
            self.logger.warn("Phone detection disabled", {"reason": str(e)})
            return None

    # ── Engine lifecycle ──────────────────────────────────────

    def start(self) -> None:
        """Start frame capture (sessions are started separately)."""
        self.running = True
        self._camera_task.start()

    def stop(self) -> None:
        """End any session, stop capture and release collaborators."""
        self.end_session()
        self._camera_task.stop()
        self.running = False
        if hasattr(self.camera, "release"):
            self.camera.release()
        if hasattr(self.face_pipeline, "release"):
            self.face_pipeline.release()
        self.logger.event("engine_stopped")
        self.logger.close()

    # ── Session lifecycle ─────────────────────────────────────

    @property
    def active(self) -> bool:
        return self._active

    def start_session(self) -> bool:
        """Start a new session. Returns False if one is already active."""
        with self._session_lock:
            if self._active:
                return False
            self._generation += 1
            generation = self._generation
            self._session_start = time.monotonic()
            self._active = True

            inference = self.config["inference"]
            self._session_tasks = [
                PeriodicTask("eyeq-landmarks", inference["landmark_interval"],
                             lambda: self.process_landmarks(generation), self._on_task_error),
                PeriodicTask("eyeq-tick", self.state_machine.tick_interval,
                             lambda: self.tick(generation), self._on_task_error),
                PeriodicTask("eyeq-clock", self.config["session"]["elapsed_interval"],
                             lambda: self.update_clock(generation), self._on_task_error),
            ]
            if self.phone_detector is not None:
                self._session_tasks.append(
                    PeriodicTask("eyeq-phone", inference["phone_interval"],
                                 lambda: self.process_phone(generation), self._on_task_error))
            for task in self._session_tasks:
                task.start()

        self.logger.event("session_start", mode=self.state_machine.mode.value)
        return True

    def end_session(self) -> Optional[dict]:
        """Stop all session tasks, then reset state. Returns the final summary."""
        with self._session_lock:
            if not self._active:
                return None
            self._active = False
            self._generation += 1
            for task in self._session_tasks:
                task.stop()
            self._session_tasks = []

            with self._state_lock:
                summary = self.state_machine.get_summary()
                self.state_machine.reset()
                self.smoother.reset()
                self.analysis_slot.clear()
                self.phone_slot.clear()
            self._session_start = None

        self.logger.event("session_end", **summary)
        return summary

    def set_mode(self, mode: FocusMode | str) -> FocusMode:
        """Switch scoring profile; applies from the next tick."""
        mode = FocusMode.parse(mode)
        with self._state_lock:
            previous = self.state_machine.mode
            self.state_machine.set_mode(mode)
        if mode is not previous:
            self.logger.event("mode_change", previous=previous.value, mode=mode.value)
        return mode

    def toggle_mode(self) -> FocusMode:
        current = self.state_machine.mode
        return self.set_mode(FocusMode.READING if current is FocusMode.SCREEN else FocusMode.SCREEN)

    # ── Task bodies (public for direct, thread-free use) ──────

    def _is_current(self, generation: Optional[int]) -> bool:
        return generation is None or (self._active and generation == self._generation)

    def capture_frame(self) -> bool:
        ok, frame, _ = self.camera.read_validated_frame()
        if ok:
            self.frame_slot.publish(frame)
        else:
            time.sleep(0.01)
        return ok

    def process_landmarks(self, generation: Optional[int] = None) -> Optional[FaceAnalysis]:
        """Run landmark inference on the latest frame and publish the analysis."""
        frame = self.frame_slot.read()
        if frame is None:
            return None

        try:
            keypoints = self.face_pipeline.detect_keypoints(frame)
        except Exception as e:
            # previous analysis stays in the slot
            self.logger.warn("Landmark inference failed", {"error": str(e)})
            return None

        analysis = analyze_keypoints(keypoints) if keypoints is not None else NO_FACE_ANALYSIS
        analysis = analysis.with_phone(bool(self.phone_slot.read()))
        if not self._is_current(generation):
            return None
        self.analysis_slot.publish(analysis)
        return analysis

    def process_phone(self, generation: Optional[int] = None) -> Optional[bool]:
        """Run phone detection on the latest frame and publish the flag."""
        if self.phone_detector is None:
            return None
        frame = self.frame_slot.read()
        if frame is None:
            return None

        try:
            detected = bool(self.phone_detector.detect(frame))
        except Exception as e:
            self.logger.warn("Phone detection failed", {"error": str(e)})
            return None

        if not self._is_current(generation):
            return None
        self.phone_slot.publish(detected)
        return detected

    def tick(self, generation: Optional[int] = None) -> Optional[int]:
        """One state-machine step with the freshest analysis."""
        analysis = self.analysis_slot.read()
        if analysis is None:
            return None
        phone = self.phone_slot.read()
        if phone is not None:
            analysis = analysis.with_phone(phone)

        with self._state_lock:
            if not self._is_current(generation):
                return None
            was_alerting = self.state_machine.state.refocus_alert_active
            score = self.state_machine.tick(analysis)
            self.smoother.set_target(score)
            alerting = self.state_machine.state.refocus_alert_active

        if alerting != was_alerting:
            self.logger.event(
                "refocus_alert_raised" if alerting else "refocus_alert_cleared",
                score=score,
                mode=self.state_machine.mode.value,
            )
        return score

    def update_clock(self, generation: Optional[int] = None) -> Optional[int]:
        with self._state_lock:
            if self._session_start is None or not self._is_current(generation):
                return None
            return self.state_machine.update_elapsed(time.monotonic() - self._session_start)

    def _on_task_error(self, name: str, error: Exception) -> None:
        self.logger.error(f"Task {name} error", error)

    # ── Consumer API ──────────────────────────────────────────

    def refresh_display(self) -> float:
        """Advance the display smoother by one rendered frame."""
        with self._state_lock:
            return self.smoother.step()

    def get_latest_frame(self):
        return self.frame_slot.read()

    def get_snapshot(self) -> SessionSnapshot:
        with self._state_lock:
            s = self.state_machine.state
            score = s.last_score
            return SessionSnapshot(
                active=self._active,
                mode=self.state_machine.mode,
                score=score,
                display_score=self.smoother.value,
                label=get_attention_label(score),
                color=get_attention_color(score),
                session_elapsed_seconds=s.session_elapsed_seconds,
                average_attention=s.average_attention,
                longest_streak_seconds=s.longest_streak_seconds,
                refocus_alert_active=s.refocus_alert_active,
                latest=self.analysis_slot.read(),
            )
