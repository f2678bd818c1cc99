"""
Photo capture.

CaptureAdapter takes exactly one shot per call and stores it as
<photo_dir>/intruder_<epoch-ms>.jpg. Every expected failure (camera not ready,
shot failed, file could not be moved) is reported as CaptureFailure.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Protocol, runtime_checkable

from ..errors import CaptureFailure
from ..models import PhotoRef

logger = logging.getLogger(__name__)


@runtime_checkable
class CameraDevice(Protocol):
    def open(self) -> None:
        ...

    def is_ready(self) -> bool:
        ...

    def take_picture(self, path: Path) -> None:
        """Write one JPEG frame to path."""
        ...

    def close(self) -> None:
        ...


class OpenCVCamera:
    """
    Camera backed by cv2.VideoCapture.

    Args:
        index: Device index (0 = default camera)
        jpeg_quality: JPEG quality (1-100)
        warmup_frames: Frames discarded after opening so exposure can settle
    """

    def __init__(self, index: int = 0, jpeg_quality: int = 70, warmup_frames: int = 3):
        self.index = index
        self.jpeg_quality = jpeg_quality
        self.warmup_frames = warmup_frames
        self._cap = None

    def open(self) -> None:
        if self._cap is not None:
            return
        import cv2

        cap = cv2.VideoCapture(self.index)
        if not cap.isOpened():
            cap.release()
            raise RuntimeError(f"Could not open camera {self.index}")

        for _ in range(self.warmup_frames):
            cap.read()

        self._cap = cap
        logger.info("Camera %s opened", self.index)

    def is_ready(self) -> bool:
        return self._cap is not None and self._cap.isOpened()

    def take_picture(self, path: Path) -> None:
        import cv2

        if self._cap is None:
            raise RuntimeError("Camera is not open")

        ok, frame = self._cap.read()
        if not ok or frame is None:
            raise RuntimeError(f"Camera {self.index} returned no frame")

        if not cv2.imwrite(str(path), frame, [cv2.IMWRITE_JPEG_QUALITY, self.jpeg_quality]):
            raise RuntimeError(f"Could not encode frame to {path}")

    def close(self) -> None:
        if self._cap is not None:
            self._cap.release()
            self._cap = None
            logger.info("Camera %s released", self.index)


class CaptureAdapter:
    """Owns the camera resource and the photo directory."""

    def __init__(self, camera: CameraDevice, photo_dir: Path, library_dir: Optional[Path] = None):
        self.camera = camera
        self.photo_dir = Path(photo_dir)
        self.library_dir = Path(library_dir) if library_dir is not None else None
        self._staging_dir = self.photo_dir / ".staging"

    async def activate(self) -> None:
        """Bring the camera live. Raises CaptureFailure if it cannot be opened."""
        try:
            await asyncio.to_thread(self._prepare_dirs)
            await asyncio.to_thread(self.camera.open)
        except Exception as exc:
            raise CaptureFailure(f"Camera could not be opened: {exc}") from exc

    async def deactivate(self) -> None:
        try:
            await asyncio.to_thread(self.camera.close)
        except Exception as exc:
            logger.warning("Error releasing camera: %s", exc)

    async def capture_photo(self) -> PhotoRef:
        """Take one photo and move it into photo_dir. No retries."""
        if not self.camera.is_ready():
            raise CaptureFailure("Camera is not ready")

        captured_at = datetime.now(timezone.utc)
        shot_path = self._staging_dir / f"{uuid.uuid4().hex}.jpg"
        try:
            await asyncio.to_thread(self._prepare_dirs)
            await asyncio.to_thread(self.camera.take_picture, shot_path)
        except Exception as exc:
            raise CaptureFailure(f"Photo capture failed: {exc}") from exc

        target = self.photo_dir / f"intruder_{int(captured_at.timestamp() * 1000)}.jpg"
        try:
            await asyncio.to_thread(shutil.move, str(shot_path), str(target))
        except OSError as exc:
            raise CaptureFailure(f"Could not store photo at {target}: {exc}") from exc

        if self.library_dir is not None:
            await self._copy_to_library(target)

        logger.info("Photo stored at %s", target)
        return PhotoRef(path=target, captured_at=captured_at)

    async def _copy_to_library(self, photo: Path) -> None:
        try:
            await asyncio.to_thread(self.library_dir.mkdir, parents=True, exist_ok=True)
            await asyncio.to_thread(shutil.copy2, photo, self.library_dir / photo.name)
        except OSError as exc:
            logger.warning("Could not copy photo to library %s: %s", self.library_dir, exc)

    def _prepare_dirs(self) -> None:
        # Ensure output directory exists
        self._staging_dir.mkdir(parents=True, exist_ok=True)
