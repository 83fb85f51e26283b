import base64
import logging
from io import BytesIO
from typing import Optional, Tuple

from PIL import Image, UnidentifiedImageError
import pillow_heif

logger = logging.getLogger('uvicorn')

# Registrar plugin HEIF para Pillow
pillow_heif.register_heif_opener()

CONVERTIBLE_TYPES = ["image/heic", "image/heif", "application/octet-stream", ""]


class ImageProcessingError(ValueError):
    pass


def to_base64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def prepare_upload(data: bytes, content_type: Optional[str], filename: Optional[str] = None) -> Tuple[bytes, str]:
    """
    Prepara um arquivo enviado pelo usuário para análise.

    Imagens HEIC/HEIF ou de tipo desconhecido são convertidas para JPEG.

    Returns:
        (bytes da imagem, tipo MIME)
    """
    if not data:
        raise ImageProcessingError("The uploaded file is empty.")

    content_type = (content_type or "").strip().lower()
    filename = filename or "image"

    needs_conversion = content_type in CONVERTIBLE_TYPES or filename.lower().endswith(('.heic', '.heif'))
    if not needs_conversion:
        if not content_type.startswith("image/"):
            raise ImageProcessingError(f"Unsupported file type: {content_type}")
        return data, content_type

    try:
        pil_image = Image.open(BytesIO(data))

        # Converter para RGB se necessário (HEIC pode ter outros modos)
        if pil_image.mode in ("RGBA", "LA", "P"):
            pil_image = pil_image.convert("RGB")

        jpeg_buffer = BytesIO()
        pil_image.save(jpeg_buffer, format="JPEG", quality=95)
    except (UnidentifiedImageError, OSError) as e:
        logger.error(f"Erro ao converter imagem: {e}")
        raise ImageProcessingError(f"Could not read image file {filename}: {e}") from e

    logger.info(f"Imagem convertida para JPEG: {filename.rsplit('.', 1)[0]}.jpg")
    return jpeg_buffer.getvalue(), "image/jpeg"
