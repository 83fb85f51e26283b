import asyncio
import logging
from enum import Enum
from typing import Optional

from pydantic_ai.models import Model

from app.Settings import DEFAULT_MODEL
from app.ai.AiServices import analyze_skin_image
from app.ai.Credentials import CredentialContext, ensure_credential
from app.models.Errors import (
    CREDENTIAL_ERRORS,
    CameraError,
    CameraNotFoundError,
    CameraPermissionDeniedError,
    CredentialInvalidReselectionDoneError,
    CredentialRequiredNoPickerError,
    CredentialSelectionFailedError,
    NoImageToAnalyzeError,
)
from app.models.Request import CapturedImage
from app.models.Response import AnalysisResult
from app.scan.Camera import CameraStream, OpenCVCamera, encode_jpeg
from app.scan.ImageUtils import ImageProcessingError, prepare_upload, to_base64

logger = logging.getLogger('uvicorn')


class ScanState(Enum):
    INITIALIZING = "initializing"
    CREDENTIAL_REQUIRED = "credential_required"
    CAMERA_READY = "camera_ready"
    CAMERA_UNAVAILABLE = "camera_unavailable"
    CAPTURED = "captured"
    ANALYZING = "analyzing"


# Upload só é oferecido depois que a credencial foi resolvida
UPLOAD_STATES = (ScanState.CAMERA_READY, ScanState.CAMERA_UNAVAILABLE, ScanState.CAPTURED)

CREDENTIAL_REQUIRED_MESSAGE = "An API key is required to use this application. Please select one to proceed."


def camera_error_message(error: Exception) -> str:
    if isinstance(error, CameraPermissionDeniedError):
        return "Camera access denied. Please grant permission to the camera or upload an image."
    if isinstance(error, CameraNotFoundError):
        return "No camera found on your device. Please upload an image manually."
    return f"Failed to access camera: {error}. Please upload an image manually."


class ScanSession:
    """
    Fluxo de captura de uma sessão de scan.

    Mantém no máximo um stream de câmera ativo; toda transição que sai de um
    stream ativo o encerra (captura, upload, nova seleção de chave, `close`).
    """

    def __init__(
        self,
        credentials: CredentialContext,
        camera: Optional[OpenCVCamera] = None,
        model_name: str = DEFAULT_MODEL,
        model: Optional[Model] = None,
        width: int = 1080,
        height: int = 1080,
        jpeg_quality: int = 90,
    ):
        self.credentials = credentials
        self.camera = camera or OpenCVCamera()
        self.model_name = model_name
        self.model = model
        self.width = width
        self.height = height
        self.jpeg_quality = jpeg_quality

        self.state = ScanState.INITIALIZING
        self.error: Optional[str] = None
        self.captured: Optional[CapturedImage] = None
        self.last_result: Optional[AnalysisResult] = None
        self._stream: Optional[CameraStream] = None

    async def __aenter__(self) -> "ScanSession":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def camera_active(self) -> bool:
        return self._stream is not None and self._stream.active

    def _release_stream(self) -> None:
        if self._stream is not None:
            self._stream.stop()
            self._stream = None

    def _enter_credential_required(self, message: str) -> None:
        self._release_stream()
        self.state = ScanState.CREDENTIAL_REQUIRED
        self.error = message

    async def _acquire_camera(self) -> ScanState:
        # Reaproveita o stream existente, apenas reabilitando
        if self.camera_active:
            self._stream.enable()
            self.state = ScanState.CAMERA_READY
            return self.state

        self._stream = None
        try:
            self._stream = await self.camera.open(facing_mode="user", width=self.width, height=self.height)
        except Exception as e:
            logger.error(f"[SCAN] Erro ao acessar a câmera: {e}")
            self.state = ScanState.CAMERA_UNAVAILABLE
            self.error = camera_error_message(e)
            return self.state

        self.state = ScanState.CAMERA_READY
        return self.state

    async def initialize(self) -> ScanState:
        self.state = ScanState.INITIALIZING
        self.error = None
        self._release_stream()

        try:
            await ensure_credential(self.credentials)
        except (CredentialRequiredNoPickerError, CredentialSelectionFailedError) as e:
            logger.info(f"[SCAN] Seleção de chave necessária: {e}")
            self._enter_credential_required(CREDENTIAL_REQUIRED_MESSAGE)
            return self.state

        return await self._acquire_camera()

    async def select_credential(self) -> ScanState:
        if self.state != ScanState.CREDENTIAL_REQUIRED:
            raise RuntimeError(f"Credential selection is not available in state {self.state.value}.")

        self.error = None
        try:
            await self.credentials.picker.open_select_key()
        except Exception as e:
            logger.error(f"[SCAN] Erro ao selecionar a chave: {e}")
            self.error = f"Failed to select API key: {e}. Please try again."
            return self.state

        self.credentials.selected = True
        if self.captured is not None:
            self.state = ScanState.CAPTURED
            return self.state
        return await self._acquire_camera()

    async def capture_from_camera(self) -> Optional[CapturedImage]:
        if self.state != ScanState.CAMERA_READY or not self.camera_active:
            raise CameraError("Camera is not ready. Retake or upload an image instead.")

        self.error = None
        try:
            frame = await asyncio.to_thread(self._stream.read_frame)
            jpeg = encode_jpeg(frame, self.jpeg_quality)
        except CameraError as e:
            logger.error(f"[SCAN] Falha na captura: {e}")
            self._release_stream()
            self.state = ScanState.CAMERA_UNAVAILABLE
            self.error = camera_error_message(e)
            return None

        self.captured = CapturedImage(data=to_base64(jpeg), mime_type="image/jpeg")
        self._release_stream()
        self.state = ScanState.CAPTURED
        logger.info(f"[SCAN] Foto capturada ({len(jpeg)} bytes)")
        return self.captured

    async def capture_from_upload(
        self, data: bytes, content_type: Optional[str], filename: Optional[str] = None
    ) -> Optional[CapturedImage]:
        if self.state not in UPLOAD_STATES:
            raise RuntimeError(f"Image upload is not available in state {self.state.value}.")

        self.error = None
        try:
            image_data, mime_type = await asyncio.to_thread(prepare_upload, data, content_type, filename)
        except ImageProcessingError as e:
            logger.error(f"[SCAN] Erro ao processar o arquivo: {e}")
            self.error = f"Failed to process image: {e}"
            return None

        self.captured = CapturedImage(data=to_base64(image_data), mime_type=mime_type)
        self._release_stream()
        self.state = ScanState.CAPTURED
        return self.captured

    async def retake(self) -> ScanState:
        self.error = None
        self.captured = None
        self.last_result = None
        return await self._acquire_camera()

    async def analyze(self) -> AnalysisResult:
        if self.captured is None:
            error = NoImageToAnalyzeError()
            self.error = error.message
            raise error

        self.state = ScanState.ANALYZING
        self.error = None
        try:
            result = await analyze_skin_image(
                self.captured.data,
                self.captured.mime_type,
                self.credentials,
                model_name=self.model_name,
                model=self.model,
            )
        except CredentialInvalidReselectionDoneError as e:
            # Nova chave já selecionada: a análise pode ser repetida
            self.state = ScanState.CAPTURED
            self.error = e.message
            raise
        except CREDENTIAL_ERRORS as e:
            self._enter_credential_required(e.message)
            raise
        except Exception as e:
            self.state = ScanState.CAPTURED
            self.error = f"Analysis failed: {e}."
            raise

        self.state = ScanState.CAPTURED
        self.last_result = result
        return result

    def close(self) -> None:
        self._release_stream()
        self.captured = None
