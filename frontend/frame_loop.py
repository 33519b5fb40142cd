"""
Frame loop driver for the capture/verify session.

One FrameLoop instance runs one asyncio task that repeatedly:
    1. checks the stop token and exits for good if it is set
    2. makes exactly one backend call (enroll frame or verify sample),
       bounded by a per-tick timeout
    3. hands the result (or a surfaced error) to the controller
    4. waits for the next tick or the stop token, whichever comes first

The next call is only armed after the previous one has returned, so there is
never more than one call in flight, and a stop request takes effect after the
in-flight call finishes. Its result is still delivered before the loop exits.

NoFaceDetectedError is the normal state while the camera searches for a face
and is swallowed. Every other error is reported and the loop keeps running;
exceptions from outside core.errors are wrapped as DetectionError first.
Only the stop token ends the loop.
"""

import asyncio
import logging
from enum import Enum
from typing import Callable, Optional, Union

from core.backend import FaceBackend
from core.errors import DetectionError, FaceUnlockError, NoFaceDetectedError
from core.models import CapturedFrame, VerificationSample

logger = logging.getLogger(__name__)

LoopResult = Union[CapturedFrame, VerificationSample]


class LoopMode(Enum):
    """Which backend call each tick makes."""
    ENROLL = "enroll"
    VERIFY = "verify"


class FrameLoop:
    """
    Cooperative, self-rescheduling frame loop.

    Args:
        backend: Backend to call once per tick.
        mode: ENROLL calls check_face_from_camera(), VERIFY calls
              verify_face(reference_image).
        stop_token: Event owned by the controller; setting it ends the loop.
        on_result: Called with each CapturedFrame / VerificationSample.
        on_error: Called with each surfaced (non no-face) error.
        reference_image: Required in VERIFY mode.
        tick_interval: Seconds between the end of one call and the next.
        tick_timeout: Seconds a single backend call may take before it is
                      reported as a DetectionError. None disables the bound.
    """

    def __init__(
        self,
        backend: FaceBackend,
        mode: LoopMode,
        stop_token: asyncio.Event,
        on_result: Callable[[LoopResult], None],
        on_error: Callable[[FaceUnlockError], None],
        reference_image: Optional[str] = None,
        tick_interval: float = 1 / 30,
        tick_timeout: Optional[float] = 5.0,
    ):
        if mode is LoopMode.VERIFY and not reference_image:
            raise ValueError("VERIFY mode requires a reference image")

        self.backend = backend
        self.mode = mode
        self.stop_token = stop_token
        self.on_result = on_result
        self.on_error = on_error
        self.reference_image = reference_image
        self.tick_interval = tick_interval
        self.tick_timeout = tick_timeout

        self.ticks = 0
        self.no_face_ticks = 0
        self.error_ticks = 0

        self._task: Optional[asyncio.Task] = None
        self._finished = False

    def start(self) -> None:
        """
        Schedule the loop task on the running event loop.

        Raises:
            RuntimeError: If this loop was already started. A stopped loop is
                          terminal; create a new FrameLoop to resume.
        """
        if self._task is not None or self._finished:
            raise RuntimeError("FrameLoop instances cannot be restarted")
        self._task = asyncio.create_task(self._run(), name=f"frame-loop-{self.mode.value}")
        logger.debug(f"Frame loop started in {self.mode.value} mode")

    def request_stop(self) -> None:
        """Signal the loop to stop at the next tick boundary."""
        self.stop_token.set()

    async def join(self) -> None:
        """Wait until the loop task has fully drained."""
        if self._task is not None:
            await self._task

    async def stop(self) -> None:
        self.request_stop()
        await self.join()

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def finished(self) -> bool:
        return self._finished

    async def _run(self) -> None:
        try:
            while not self.stop_token.is_set():
                await self._tick()
                await self._wait_next_tick()
        finally:
            self._finished = True
            logger.debug(
                f"Frame loop ({self.mode.value}) exited after {self.ticks} ticks "
                f"({self.no_face_ticks} without a face, {self.error_ticks} errors)"
            )

    async def _tick(self) -> None:
        self.ticks += 1
        try:
            result = await asyncio.wait_for(self._call_backend(), timeout=self.tick_timeout)
        except NoFaceDetectedError:
            self.no_face_ticks += 1
            logger.debug("No face in frame, rescheduling")
            return
        except asyncio.TimeoutError:
            self._report(DetectionError(f"Face backend did not answer within {self.tick_timeout}s"))
            return
        except FaceUnlockError as e:
            self._report(e)
            return
        except Exception as e:
            logger.exception("Unexpected error from face backend")
            self._report(DetectionError(f"Face backend failed: {e}"))
            return

        self.on_result(result)

    async def _call_backend(self) -> LoopResult:
        if self.mode is LoopMode.ENROLL:
            return await self.backend.check_face_from_camera()
        return await self.backend.verify_face(self.reference_image)

    def _report(self, error: FaceUnlockError) -> None:
        self.error_ticks += 1
        logger.warning(f"Frame loop error ({error.code}): {error.message}")
        self.on_error(error)

    async def _wait_next_tick(self) -> None:
        try:
            await asyncio.wait_for(self.stop_token.wait(), timeout=self.tick_interval)
        except asyncio.TimeoutError:
            pass
