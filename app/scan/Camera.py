import asyncio
import logging
import os
from typing import Optional

import cv2
import numpy as np

from app.models.Errors import CameraFailureError, CameraNotFoundError, CameraPermissionDeniedError

logger = logging.getLogger('uvicorn')


class CameraStream:
    """Stream de vídeo ativo. Deve ser parado para liberar o dispositivo."""

    def __init__(self, capture: "cv2.VideoCapture"):
        self.capture = capture
        self.active = True
        self.enabled = True

    def read_frame(self) -> np.ndarray:
        if not self.active or not self.capture.isOpened():
            raise CameraFailureError("Camera stream is not active.")
        ok, frame = self.capture.read()
        if not ok or frame is None:
            raise CameraFailureError("Failed to read a frame from the camera.")
        return frame

    def enable(self) -> None:
        self.enabled = True

    def stop(self) -> None:
        if not self.active:
            return
        self.active = False
        self.enabled = False
        if self.capture.isOpened():
            self.capture.release()


class OpenCVCamera:
    """Acesso à câmera local via OpenCV."""

    def __init__(self, device_index: int = 0):
        self.device_index = device_index

    def _device_path(self) -> Optional[str]:
        path = f"/dev/video{self.device_index}"
        return path if os.path.exists(path) else None

    def _open_sync(self, width: int, height: int) -> CameraStream:
        device_path = self._device_path()
        if device_path and not os.access(device_path, os.R_OK | os.W_OK):
            raise CameraPermissionDeniedError(f"Permission denied for camera device {device_path}.")

        try:
            capture = cv2.VideoCapture(self.device_index)
        except cv2.error as e:
            raise CameraFailureError(str(e)) from e

        if not capture.isOpened():
            capture.release()
            raise CameraNotFoundError(f"No camera found at index {self.device_index}.")

        # Resolução ideal; o driver pode ignorar
        capture.set(cv2.CAP_PROP_FRAME_WIDTH, width)
        capture.set(cv2.CAP_PROP_FRAME_HEIGHT, height)
        return CameraStream(capture)

    async def open(self, facing_mode: str = "user", width: int = 1080, height: int = 1080) -> CameraStream:
        logger.info(f"[SCAN] Abrindo câmera {self.device_index} ({facing_mode}, {width}x{height})")
        return await asyncio.to_thread(self._open_sync, width, height)


def encode_jpeg(frame: np.ndarray, quality: int = 90) -> bytes:
    ok, buffer = cv2.imencode(".jpg", frame, [int(cv2.IMWRITE_JPEG_QUALITY), quality])
    if not ok:
        raise CameraFailureError("Failed to encode the captured frame as JPEG.")
    return buffer.tobytes()
