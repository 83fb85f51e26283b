import base64
import binascii

from pydantic import BaseModel, ConfigDict, Field


class CapturedImage(BaseModel):
    """Imagem capturada (câmera ou upload) em base64, sem prefixo de data URL."""
    data: str
    mime_type: str

    @property
    def data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.data}"

    def to_bytes(self) -> bytes:
        return base64.b64decode(self.data)


class Base64ImageRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    image: str
    mime_type: str = Field(default="image/jpeg", alias="mimeType")

    def to_captured_image(self) -> CapturedImage:
        data = self.image.strip()
        mime_type = self.mime_type
        # Aceita também "data:image/png;base64,..."
        if data.startswith("data:") and "," in data:
            header, data = data.split(",", 1)
            mime_type = header[len("data:"):].split(";", 1)[0] or mime_type
        try:
            base64.b64decode(data, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ValueError(f"Imagem base64 inválida: {e}")
        return CapturedImage(data=data, mime_type=mime_type)


class SelectCredentialRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    api_key: str = Field(alias="apiKey", min_length=1)
