"""
Session controller for face enrollment and live verification.

Owns the session state, the camera through the backend, and the frame loop:

    IDLE --start_camera--> ENROLL_CAPTURE --cancel_capture--> IDLE (frame discarded)
                                          --confirm_capture--> IDLE (frame kept)
    IDLE + frame --toggle_verification--> VERIFY --toggle_verification--> IDLE
    IDLE + frame --save--> IDLE (frame cleared)

Commands are coroutines serialized by one lock, so a command issued while
another is running waits for it. Every path that releases the camera first
stops the frame loop and waits for it to drain, then calls stop_camera()
best-effort: a failing release is logged and the local running state is
cleared regardless, so the next start_camera() is never blocked.

Command failures are raised to the caller as core.errors exceptions.
Errors from the frame loop have no caller and are queued as notifications.
"""

import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Deque, Dict, List, Optional

from core.backend import FaceBackend
from core.errors import (
    FaceUnlockError,
    PreconditionError,
    ResourceBusyError,
    ValidationError,
)
from core.models import (
    AccountIdentity,
    CapturedFrame,
    EnrollmentRecord,
    MatchClass,
    Notification,
    RecordHandle,
    SessionMode,
    VerificationSample,
)
from core.verification import VerificationResult, VerificationScorer, classify
from frontend.frame_loop import FrameLoop, LoopMode, LoopResult

logger = logging.getLogger(__name__)

MAX_NOTIFICATIONS = 50


@dataclass(frozen=True)
class SessionSnapshot:
    """Read-only view of the session for rendering."""
    mode: SessionMode
    running: bool
    display_image: Optional[str]
    has_captured_frame: bool
    confidence: Optional[int]
    classification: Optional[MatchClass]
    threshold: int

    @property
    def can_save(self) -> bool:
        return self.has_captured_frame and not self.running


class SessionController:
    """
    Drives one capture/verification session against a FaceBackend.

    Args:
        backend: The face backend (local, HTTP or mock).
        scorer: Verification scorer; built from defaults if omitted.
        tick_interval: Seconds between frame loop ticks.
        tick_timeout: Per-tick bound on backend calls (None for no bound).
    """

    def __init__(
        self,
        backend: FaceBackend,
        scorer: Optional[VerificationScorer] = None,
        tick_interval: float = 1 / 30,
        tick_timeout: Optional[float] = 5.0,
    ):
        self.backend = backend
        self.scorer = scorer or VerificationScorer()
        self.tick_interval = tick_interval
        self.tick_timeout = tick_timeout

        self.mode = SessionMode.IDLE
        self.running = False
        self.captured_frame: Optional[CapturedFrame] = None
        self.stream_image: Optional[str] = None
        self.verification: Optional[VerificationResult] = None
        self.threshold = self.scorer.default_threshold
        self.username = ""

        self._loop: Optional[FrameLoop] = None
        self._command_lock = asyncio.Lock()
        self._notifications: Deque[Notification] = deque(maxlen=MAX_NOTIFICATIONS)

    @classmethod
    def from_config(cls, backend: FaceBackend, config: Dict[str, Any]) -> "SessionController":
        """Build a controller from the "verification" and "session" config sections."""
        session_config = config.get("session", {})
        timeout = session_config.get("tick_timeout_sec", 5.0)
        return cls(
            backend,
            scorer=VerificationScorer(config.get("verification", {})),
            tick_interval=float(session_config.get("tick_interval_ms", 33)) / 1000.0,
            tick_timeout=float(timeout) if timeout else None,
        )

    # ==================== Commands ====================

    async def select_from_file(self, path: str) -> CapturedFrame:
        """
        Use a still image as the reference.

        Raises:
            PreconditionError: While the camera is streaming.
            DetectionError: No face found, unreadable file, or backend down.
        """
        async with self._command_lock:
            if self.running:
                raise PreconditionError("Stop the camera before selecting a file")
            frame = await self.backend.check_face_from_image(path)
            self.captured_frame = frame
            self._clear_verification()
            logger.info(f"Reference selected from {path}")
            return frame

    async def start_camera(self) -> None:
        """
        Acquire the camera and start streaming enrollment frames.

        Raises:
            ResourceBusyError: This session already holds the camera, or the
                               backend reports it held.
            DeviceError: The camera hardware is unavailable.
        """
        async with self._command_lock:
            if self.running:
                raise ResourceBusyError("The camera is already streaming")
            await self.backend.open_camera()
            self.running = True
            self.mode = SessionMode.ENROLL_CAPTURE
            self._start_loop(LoopMode.ENROLL)
            logger.info("Enrollment capture started")

    async def confirm_capture(self) -> Optional[CapturedFrame]:
        """
        Stop streaming and keep the last captured frame.

        Raises:
            PreconditionError: Live verification is running; toggle it off instead.
        """
        async with self._command_lock:
            if self.mode is SessionMode.VERIFY:
                raise PreconditionError("Stop verification before confirming a capture")
            await self._stop_streaming()
            logger.info(
                "Capture confirmed" if self.captured_frame else "Capture stopped without a frame"
            )
            return self.captured_frame

    async def cancel_capture(self) -> None:
        """Stop streaming and discard the captured frame."""
        async with self._command_lock:
            try:
                await self._stop_streaming()
            finally:
                self.captured_frame = None
                self.stream_image = None
                self._clear_verification()
            logger.info("Capture cancelled")

    async def toggle_verification(self) -> SessionMode:
        """
        Enter or leave live verification.

        Returns:
            The new session mode.

        Raises:
            PreconditionError: Entering without a captured frame, or while
                               enrollment capture is streaming.
            ResourceBusyError / DeviceError: The camera could not be acquired.
        """
        async with self._command_lock:
            if self.mode is SessionMode.VERIFY:
                try:
                    await self._stop_streaming()
                finally:
                    self._clear_verification()
                logger.info("Verification stopped")
                return self.mode

            if self.captured_frame is None:
                raise PreconditionError("Capture or select a face before verifying")
            if self.running:
                raise PreconditionError("Confirm or cancel the capture before verifying")

            await self.backend.open_camera()
            self.running = True
            self.mode = SessionMode.VERIFY
            self._clear_verification()
            self._start_loop(LoopMode.VERIFY, self.captured_frame.raw_image)
            logger.info("Verification started")
            return self.mode

    async def save(
        self,
        alias: Optional[str],
        threshold: Any,
        account: AccountIdentity,
    ) -> RecordHandle:
        """
        Save the captured reference as an enrollment.

        Args:
            alias: Optional display name; None is saved as "".
            threshold: Match threshold percentage in [20, 100].
            account: Linked account credentials; the username is required.

        Returns:
            Handle of the stored registration.

        Raises:
            PreconditionError: While the camera is streaming.
            ValidationError: No captured frame, no username, or bad threshold.
            StorageError: The backend could not store the record. Local state
                          is unchanged and the save can be retried.
        """
        async with self._command_lock:
            if self.running:
                raise PreconditionError("Stop the camera before saving")
            if self.captured_frame is None:
                raise ValidationError("Capture or select a face before saving")
            if account is None or not account.username.strip():
                raise ValidationError("A username is required")
            threshold = self.scorer.validate_threshold(threshold)

            record = EnrollmentRecord(
                alias=(alias or "").strip(),
                reference_image=self.captured_frame.raw_image,
                threshold=threshold,
                username=account.username.strip(),
            )
            handle = await self.backend.save_face_registration(record)

            self.threshold = threshold
            self.captured_frame = None
            self.stream_image = None
            self._clear_verification()
            logger.info(f"Enrollment saved as {handle.file_name}")
            return handle

    async def load_username(self) -> str:
        """Prefill the username from the OS account. Failures become a warning."""
        try:
            self.username = await self.backend.get_current_username()
        except FaceUnlockError as e:
            self._notify("warning", f"Could not read the current username: {e.message}", e.code)
        return self.username

    def set_threshold(self, value: Any) -> int:
        """
        Change the match threshold and reclassify the last confidence.

        Raises:
            ValidationError: If the value is out of range.
        """
        self.threshold = self.scorer.validate_threshold(value)
        if self.verification is not None:
            self.verification = VerificationResult(
                confidence=self.verification.confidence,
                classification=classify(self.verification.confidence, self.threshold),
                threshold=self.threshold,
            )
        return self.threshold

    async def shutdown(self) -> None:
        """Stop any stream and release the camera."""
        async with self._command_lock:
            await self._stop_streaming()
            self._clear_verification()

    # ==================== State for the UI ====================

    def snapshot(self) -> SessionSnapshot:
        if self.mode is SessionMode.VERIFY and self.stream_image:
            display = self.stream_image
        elif self.captured_frame is not None:
            display = self.captured_frame.display_image
        else:
            display = None

        return SessionSnapshot(
            mode=self.mode,
            running=self.running,
            display_image=display,
            has_captured_frame=self.captured_frame is not None,
            confidence=self.verification.confidence if self.verification else None,
            classification=self.verification.classification if self.verification else None,
            threshold=self.threshold,
        )

    def drain_notifications(self) -> List[Notification]:
        items = list(self._notifications)
        self._notifications.clear()
        return items

    @property
    def loop(self) -> Optional[FrameLoop]:
        return self._loop

    # ==================== Internals ====================

    def _start_loop(self, mode: LoopMode, reference_image: Optional[str] = None) -> None:
        self._loop = FrameLoop(
            self.backend,
            mode,
            stop_token=asyncio.Event(),
            on_result=self._on_loop_result,
            on_error=self._on_loop_error,
            reference_image=reference_image,
            tick_interval=self.tick_interval,
            tick_timeout=self.tick_timeout,
        )
        self._loop.start()

    async def _stop_streaming(self) -> None:
        """Drain the frame loop, then release the camera best-effort."""
        loop, self._loop = self._loop, None
        try:
            if loop is not None:
                await loop.stop()
        finally:
            self.running = False
            self.mode = SessionMode.IDLE
            await self._release_camera()

    async def _release_camera(self) -> None:
        try:
            await self.backend.stop_camera()
        except Exception as e:
            logger.warning(f"Camera release failed, continuing: {e}")

    def _on_loop_result(self, result: LoopResult) -> None:
        if isinstance(result, CapturedFrame):
            self.captured_frame = result
        elif isinstance(result, VerificationSample):
            self._apply_sample(result)

    def _apply_sample(self, sample: VerificationSample) -> None:
        self.verification = self.scorer.score(sample, self.threshold)
        if sample.stream_image:
            self.stream_image = sample.stream_image

    def _on_loop_error(self, error: FaceUnlockError) -> None:
        self._notify("error", error.message, error.code)

    def _notify(self, level: str, message: str, code: Optional[str] = None) -> None:
        self._notifications.append(Notification(level=level, message=message, code=code))

    def _clear_verification(self) -> None:
        self.verification = None
        self.stream_image = None
