"""
Headless Enrollment: capture or select a face, verify it live, save it.

Drives the same SessionController the Gradio UI uses, from the terminal:
  1. Reference: --image FILE, or camera capture for --capture-seconds
  2. Live verification for --verify-seconds (skipped with 0)
  3. Save the registration for --username

Usage:
    # Camera capture, 5 s of verification, save
    python scripts/run_enroll.py --username alice --alias "Work laptop"

    # Reference from a photo, against the API service
    python scripts/run_enroll.py --mode live --image me.jpg --username alice

    # No camera needed
    python scripts/run_enroll.py --mode mock --username demo --threshold 60
"""

import argparse
import asyncio
import getpass
import logging
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).parent.parent.resolve()
sys.path.insert(0, str(PROJECT_ROOT))

from core.config import get_config, setup_logging  # noqa: E402
from core.errors import FaceUnlockError  # noqa: E402
from core.models import AccountIdentity, SessionMode  # noqa: E402
from frontend.api_client import ConnectionMode, create_backend  # noqa: E402
from frontend.components.session_panel import format_notifications  # noqa: E402
from frontend.session_controller import SessionController  # noqa: E402

logger = logging.getLogger("run_enroll")


def print_banner(text: str, char: str = "="):
    line = char * 60
    print(f"\n{line}")
    print(text)
    print(line)


def print_notifications(controller: SessionController) -> None:
    for message in format_notifications(controller.drain_notifications()):
        print(f"  ! {message}")


async def capture_reference(controller: SessionController, args) -> bool:
    """Phase 1: fill controller.captured_frame. Returns False on failure."""
    if args.image:
        print_banner("PHASE 1: Reference from file")
        print(f"  Image: {args.image}")
        await controller.select_from_file(args.image)
        print("  Face found")
        return True

    print_banner("PHASE 1: Camera capture")
    print(f"  Look at the camera for {args.capture_seconds:.0f}s...")
    await controller.start_camera()
    try:
        await asyncio.sleep(args.capture_seconds)
    finally:
        frame = await controller.confirm_capture()
    print_notifications(controller)

    if frame is None:
        print("  No face was captured")
        return False
    print("  Face captured")
    return True


async def verify_reference(controller: SessionController, seconds: float) -> None:
    """Phase 2: live verification, printing the confidence once a second."""
    print_banner("PHASE 2: Live verification")
    await controller.toggle_verification()
    try:
        for _ in range(int(seconds)):
            await asyncio.sleep(1.0)
            snapshot = controller.snapshot()
            if snapshot.confidence is None:
                print("  waiting for a face...")
            else:
                print(f"  confidence {snapshot.confidence:3d}%  {snapshot.classification.value}")
    finally:
        if controller.mode is SessionMode.VERIFY:
            await controller.toggle_verification()
    print_notifications(controller)


async def run(args) -> int:
    config = get_config()
    backend = create_backend(ConnectionMode(args.mode), config)
    controller = SessionController.from_config(backend, config)

    try:
        try:
            if not await capture_reference(controller, args):
                return 1

            if args.verify_seconds > 0:
                await verify_reference(controller, args.verify_seconds)

            username = args.username or await controller.load_username()
            password = getpass.getpass("  Password: ") if args.ask_password else ""

            print_banner("PHASE 3: Save")
            print(f"  Username:  {username}")
            print(f"  Alias:     {args.alias or '(none)'}")
            print(f"  Threshold: {args.threshold}%")
            handle = await controller.save(
                args.alias,
                args.threshold,
                AccountIdentity(username=username, password=password),
            )
        except FaceUnlockError as e:
            print(f"\nERROR: {e.message} ({e.code})")
            return 1

        print_banner("ENROLLMENT COMPLETE")
        print(f"  Saved as {handle.file_name}")
        return 0
    finally:
        await controller.shutdown()
        await backend.close()


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Headless face enrollment: capture, verify, save",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--mode", choices=[m.value for m in ConnectionMode], default="local",
        help="Backend: in-process, API service, or simulated (default: local)",
    )
    parser.add_argument(
        "--image", type=str, default=None,
        help="Use this image as the reference instead of the camera",
    )
    parser.add_argument(
        "--capture-seconds", type=float, default=3.0,
        help="How long to stream before confirming the capture (default: 3)",
    )
    parser.add_argument(
        "--verify-seconds", type=float, default=5.0,
        help="Live verification duration, 0 to skip (default: 5)",
    )
    parser.add_argument("--alias", type=str, default="", help="Display name for the registration")
    parser.add_argument(
        "--threshold", type=int, default=50,
        help="Match threshold percentage, 20-100 (default: 50)",
    )
    parser.add_argument(
        "--username", type=str, default=None,
        help="Linked account (default: current OS user)",
    )
    parser.add_argument(
        "--ask-password", action="store_true",
        help="Prompt for the linked account's password",
    )
    args = parser.parse_args()

    setup_logging()
    return asyncio.run(run(args))


if __name__ == "__main__":
    sys.exit(main())
