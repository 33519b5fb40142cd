"""
Tests for the SessionController.

This test suite verifies:
- Camera acquisition and the busy guard
- Confirm/cancel of enrollment capture, including failing camera release
- Entering and leaving live verification
- Threshold changes and reclassification
- Saving enrollments and failure handling
- Loop errors surfacing as notifications

Run with: pytest tests/test_session_controller.py -v
"""

import asyncio
import os
import sys
import pytest
from unittest.mock import AsyncMock, MagicMock

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.errors import (
    DetectionError,
    DeviceError,
    FaceUnlockError,
    NoFaceDetectedError,
    PreconditionError,
    ResourceBusyError,
    StorageError,
    ValidationError,
)
from core.models import (
    AccountIdentity,
    CapturedFrame,
    MatchClass,
    RecordHandle,
    SessionMode,
    VerificationSample,
)
from frontend.session_controller import SessionController


FRAME = CapturedFrame(
    display_image="data:image/jpeg;base64,ZGlzcGxheQ==",
    raw_image="data:image/jpeg;base64,cmF3",
)
LIVE = "data:image/jpeg;base64,bGl2ZQ=="
ACCOUNT = AccountIdentity(username="alice", password="secret")


def make_backend():
    backend = MagicMock()
    backend.check_face_from_image = AsyncMock(return_value=FRAME)
    backend.open_camera = AsyncMock()
    backend.stop_camera = AsyncMock()
    backend.check_face_from_camera = AsyncMock(return_value=FRAME)
    backend.verify_face = AsyncMock(return_value=VerificationSample(score=0.91, stream_image=LIVE))
    backend.save_face_registration = AsyncMock(return_value=RecordHandle(file_name="abc.npz"))
    backend.get_current_username = AsyncMock(return_value="alice")
    return backend


def make_controller(backend=None):
    return SessionController(backend or make_backend(), tick_interval=0.005, tick_timeout=1.0)


async def wait_until(predicate, timeout=2.0):
    async def poll():
        while not predicate():
            await asyncio.sleep(0.005)
    await asyncio.wait_for(poll(), timeout)


class TestEnrollCapture:
    """Tests for start_camera / confirm_capture / cancel_capture."""

    def test_start_camera_streams_frames(self):
        async def main():
            controller = make_controller()
            await controller.start_camera()
            assert controller.running
            assert controller.mode is SessionMode.ENROLL_CAPTURE
            await wait_until(lambda: controller.captured_frame is not None)
            await controller.shutdown()
            return controller

        controller = asyncio.run(main())
        assert controller.captured_frame == FRAME

    def test_start_while_running_is_busy(self):
        async def main():
            backend = make_backend()
            controller = make_controller(backend)
            await controller.start_camera()
            with pytest.raises(ResourceBusyError):
                await controller.start_camera()
            assert controller.running
            await controller.shutdown()
            return backend

        backend = asyncio.run(main())
        assert backend.open_camera.await_count == 1

    def test_open_failure_leaves_idle(self):
        async def main():
            backend = make_backend()
            backend.open_camera.side_effect = DeviceError("no camera")
            controller = make_controller(backend)
            with pytest.raises(DeviceError):
                await controller.start_camera()
            return controller

        controller = asyncio.run(main())
        assert not controller.running
        assert controller.mode is SessionMode.IDLE
        assert controller.loop is None

    def test_confirm_keeps_frame_and_releases_camera(self):
        async def main():
            backend = make_backend()
            controller = make_controller(backend)
            await controller.start_camera()
            await wait_until(lambda: controller.captured_frame is not None)
            frame = await controller.confirm_capture()
            return backend, controller, frame

        backend, controller, frame = asyncio.run(main())
        assert frame == FRAME
        assert controller.captured_frame == FRAME
        assert not controller.running
        assert controller.mode is SessionMode.IDLE
        backend.stop_camera.assert_awaited()
        assert controller.snapshot().can_save

    def test_confirm_without_face_returns_none(self):
        async def main():
            backend = make_backend()
            backend.check_face_from_camera.side_effect = NoFaceDetectedError()
            controller = make_controller(backend)
            await controller.start_camera()
            await wait_until(lambda: backend.check_face_from_camera.await_count >= 3)
            return controller, await controller.confirm_capture()

        controller, frame = asyncio.run(main())
        assert frame is None
        assert controller.drain_notifications() == []

    def test_no_face_ticks_keep_streaming(self):
        """Five frames without a face: still running, nothing to report."""
        async def main():
            backend = make_backend()
            backend.check_face_from_camera.side_effect = [NoFaceDetectedError()] * 5 + [FRAME] * 100
            controller = make_controller(backend)
            await controller.start_camera()
            await wait_until(lambda: controller.captured_frame is not None)
            state = (controller.running, controller.mode, controller.loop.no_face_ticks)
            await controller.shutdown()
            return controller, state

        controller, (running, mode, no_face_ticks) = asyncio.run(main())
        assert running
        assert mode is SessionMode.ENROLL_CAPTURE
        assert no_face_ticks == 5
        assert controller.drain_notifications() == []

    def test_cancel_discards_frame_even_if_release_fails(self):
        async def main():
            backend = make_backend()
            backend.stop_camera.side_effect = DeviceError("release failed")
            controller = make_controller(backend)
            await controller.start_camera()
            await wait_until(lambda: controller.captured_frame is not None)

            await controller.cancel_capture()
            state = (controller.captured_frame, controller.running, controller.mode)

            # Not blocked by the failed release
            await controller.start_camera()
            await controller.shutdown()
            return backend, state

        backend, (frame, running, mode) = asyncio.run(main())
        assert frame is None
        assert not running
        assert mode is SessionMode.IDLE
        assert backend.open_camera.await_count == 2

    def test_loop_errors_become_notifications(self):
        async def main():
            backend = make_backend()
            backend.check_face_from_camera.side_effect = DetectionError("model crashed")
            controller = make_controller(backend)
            await controller.start_camera()
            await wait_until(lambda: len(controller._notifications) > 0)
            await controller.shutdown()
            return controller

        controller = asyncio.run(main())
        notifications = controller.drain_notifications()
        assert notifications
        assert notifications[0].level == "error"
        assert notifications[0].code == "DETECTION_ERROR"
        assert controller.drain_notifications() == []

    def test_unexpected_backend_exception_keeps_streaming(self):
        async def main():
            backend = make_backend()
            backend.check_face_from_camera.side_effect = [KeyError("display_image")] + [FRAME] * 1000
            controller = make_controller(backend)
            await controller.start_camera()
            await wait_until(lambda: controller.captured_frame is not None)
            alive = controller.loop is not None and controller.loop.is_running
            frame = await controller.confirm_capture()
            return backend, controller, alive, frame

        backend, controller, alive, frame = asyncio.run(main())
        assert alive
        assert backend.check_face_from_camera.await_count >= 2
        assert frame == FRAME
        assert not controller.running
        notifications = controller.drain_notifications()
        assert len(notifications) == 1
        assert notifications[0].level == "error"
        assert notifications[0].code == "DETECTION_ERROR"

    def test_select_from_file_while_running(self):
        async def main():
            backend = make_backend()
            controller = make_controller(backend)
            await controller.start_camera()
            with pytest.raises(PreconditionError):
                await controller.select_from_file("face.jpg")
            await controller.shutdown()
            return backend

        backend = asyncio.run(main())
        backend.check_face_from_image.assert_not_awaited()

    def test_select_from_file_failure_keeps_previous_frame(self):
        async def main():
            backend = make_backend()
            controller = make_controller(backend)
            await controller.select_from_file("first.jpg")
            backend.check_face_from_image.side_effect = DetectionError("no face")
            with pytest.raises(DetectionError):
                await controller.select_from_file("second.jpg")
            return controller

        controller = asyncio.run(main())
        assert controller.captured_frame == FRAME


class TestVerification:
    """Tests for toggle_verification and threshold changes."""

    def test_toggle_without_frame(self):
        async def main():
            backend = make_backend()
            controller = make_controller(backend)
            with pytest.raises(PreconditionError):
                await controller.toggle_verification()
            return backend, controller

        backend, controller = asyncio.run(main())
        assert controller.mode is SessionMode.IDLE
        assert not controller.running
        backend.open_camera.assert_not_awaited()

    def test_toggle_during_enroll_capture(self):
        async def main():
            controller = make_controller()
            await controller.start_camera()
            await wait_until(lambda: controller.captured_frame is not None)
            with pytest.raises(PreconditionError):
                await controller.toggle_verification()
            mode = controller.mode
            await controller.shutdown()
            return mode

        assert asyncio.run(main()) is SessionMode.ENROLL_CAPTURE

    def test_verify_round_trip(self):
        async def main():
            backend = make_backend()
            controller = make_controller(backend)
            await controller.select_from_file("face.jpg")

            mode = await controller.toggle_verification()
            assert mode is SessionMode.VERIFY
            await wait_until(lambda: controller.verification is not None)
            during = controller.snapshot()

            mode = await controller.toggle_verification()
            return backend, controller, during, mode

        backend, controller, during, mode = asyncio.run(main())

        assert during.mode is SessionMode.VERIFY
        assert during.confidence == 91
        assert during.classification is MatchClass.MATCH
        assert during.display_image == LIVE
        assert not during.can_save
        backend.verify_face.assert_awaited_with(FRAME.raw_image)

        assert mode is SessionMode.IDLE
        assert controller.verification is None
        assert controller.captured_frame == FRAME
        assert controller.snapshot().display_image == FRAME.display_image
        backend.stop_camera.assert_awaited()

    def test_confirm_during_verification(self):
        async def main():
            controller = make_controller()
            await controller.select_from_file("face.jpg")
            await controller.toggle_verification()
            await wait_until(lambda: controller.verification is not None)
            with pytest.raises(PreconditionError):
                await controller.confirm_capture()
            mode = controller.mode
            await controller.toggle_verification()
            return controller, mode

        controller, mode = asyncio.run(main())
        assert mode is SessionMode.VERIFY
        assert controller.mode is SessionMode.IDLE
        assert controller.snapshot().confidence is None

    def test_set_threshold_reclassifies(self):
        async def main():
            backend = make_backend()
            backend.verify_face.return_value = VerificationSample(score=0.42)
            controller = make_controller(backend)
            await controller.select_from_file("face.jpg")
            await controller.toggle_verification()
            await wait_until(lambda: controller.verification is not None)
            await controller.toggle_verification()
            return controller

        controller = asyncio.run(main())
        # Stopping clears the result; reapply one to check reclassification
        controller._apply_sample(VerificationSample(score=0.42))
        assert controller.verification.classification is MatchClass.MISMATCH

        controller.set_threshold(30)
        assert controller.verification.confidence == 42
        assert controller.verification.classification is MatchClass.MATCH

        with pytest.raises(ValidationError):
            controller.set_threshold(10)
        assert controller.threshold == 30


class TestSave:
    """Tests for save()."""

    def test_save_with_empty_alias(self):
        async def main():
            backend = make_backend()
            controller = make_controller(backend)
            await controller.select_from_file("face.jpg")
            handle = await controller.save(None, 60, ACCOUNT)
            return backend, controller, handle

        backend, controller, handle = asyncio.run(main())

        assert handle.file_name == "abc.npz"
        record = backend.save_face_registration.await_args.args[0]
        assert record.alias == ""
        assert record.threshold == 60
        assert record.username == "alice"
        assert record.reference_image == FRAME.raw_image
        assert controller.captured_frame is None
        assert controller.threshold == 60

    def test_storage_failure_keeps_state(self):
        async def main():
            backend = make_backend()
            backend.save_face_registration.side_effect = StorageError("disk full")
            controller = make_controller(backend)
            await controller.select_from_file("face.jpg")
            with pytest.raises(StorageError):
                await controller.save("Office", 70, ACCOUNT)
            return controller

        controller = asyncio.run(main())
        assert controller.captured_frame == FRAME
        assert controller.threshold == 50
        assert controller.snapshot().can_save

    @pytest.mark.parametrize("threshold", [19, 101, 55.5, "high"])
    def test_invalid_threshold(self, threshold):
        async def main():
            backend = make_backend()
            controller = make_controller(backend)
            await controller.select_from_file("face.jpg")
            with pytest.raises(ValidationError):
                await controller.save("", threshold, ACCOUNT)
            return backend

        backend = asyncio.run(main())
        backend.save_face_registration.assert_not_awaited()

    def test_missing_username(self):
        async def main():
            backend = make_backend()
            controller = make_controller(backend)
            await controller.select_from_file("face.jpg")
            with pytest.raises(ValidationError):
                await controller.save("", 50, AccountIdentity(username="   "))
            return backend

        backend = asyncio.run(main())
        backend.save_face_registration.assert_not_awaited()

    def test_missing_frame(self):
        async def main():
            controller = make_controller()
            with pytest.raises(ValidationError):
                await controller.save("", 50, ACCOUNT)

        asyncio.run(main())

    def test_save_while_streaming(self):
        async def main():
            controller = make_controller()
            await controller.start_camera()
            await wait_until(lambda: controller.captured_frame is not None)
            with pytest.raises(PreconditionError):
                await controller.save("", 50, ACCOUNT)
            await controller.shutdown()

        asyncio.run(main())


class TestUsername:
    """Tests for load_username()."""

    def test_load_username(self):
        controller = make_controller()
        assert asyncio.run(controller.load_username()) == "alice"
        assert controller.username == "alice"

    def test_load_username_failure_is_warning(self):
        backend = make_backend()
        backend.get_current_username.side_effect = FaceUnlockError("no passwd entry")
        controller = make_controller(backend)

        assert asyncio.run(controller.load_username()) == ""
        notifications = controller.drain_notifications()
        assert len(notifications) == 1
        assert notifications[0].level == "warning"
