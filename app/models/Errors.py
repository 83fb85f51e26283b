from typing import Optional


class SkinScanError(RuntimeError):
    """Erro base da aplicação. `kind` identifica o tipo para a camada de UI."""
    kind: str = "SkinScanError"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


# Credenciais

class CredentialMissingError(SkinScanError):
    kind = "CredentialMissing"


class CredentialRequiredNoPickerError(CredentialMissingError):
    kind = "CredentialRequiredNoPicker"

    def __init__(self, message: str = "An API key is required and no key picker is available. Set API_KEY to proceed."):
        super().__init__(message)


class CredentialSelectionFailedError(SkinScanError):
    kind = "CredentialSelectionFailed"


class CredentialInvalidError(SkinScanError):
    """A chave foi rejeitada pelo modelo remoto e precisa ser selecionada de novo."""
    kind = "CredentialInvalidOrUnselected"


class CredentialInvalidReselectionDoneError(CredentialInvalidError):
    """A chave rejeitada já foi substituída pelo seletor; basta repetir."""
    kind = "CredentialInvalidReselectionDone"


class CredentialReselectionFailedError(SkinScanError):
    kind = "CredentialReselectionFailed"


CREDENTIAL_ERRORS = (
    CredentialMissingError,
    CredentialSelectionFailedError,
    CredentialInvalidError,
    CredentialReselectionFailedError,
)


# Câmera

class CameraError(SkinScanError):
    kind = "CameraOtherFailure"


class CameraPermissionDeniedError(CameraError):
    kind = "CameraPermissionDenied"


class CameraNotFoundError(CameraError):
    kind = "CameraNotFound"


class CameraFailureError(CameraError):
    kind = "CameraOtherFailure"


# Resposta do modelo

class AnalysisResponseError(SkinScanError):
    kind = "AnalysisResponseError"


class EmptyResponseError(AnalysisResponseError):
    kind = "EmptyResponse"


class MalformedJSONError(AnalysisResponseError):
    kind = "MalformedJSON"

    def __init__(self, detail: str, raw_text: str):
        super().__init__(f"AI response is not valid JSON. Details: {detail}. Raw response: {raw_text}")
        self.detail = detail
        self.raw_text = raw_text


class InvalidTopLevelError(AnalysisResponseError):
    kind = "InvalidTopLevel"


class InvalidEnumError(AnalysisResponseError):
    kind = "InvalidEnum"

    def __init__(self, field: str, value):
        super().__init__(f"AI response field \"{field}\" has an unexpected value: {value!r}.")
        self.field = field
        self.value = value


class InvalidIssueError(AnalysisResponseError):
    kind = "InvalidIssue"

    def __init__(self, key: str, message: Optional[str] = None):
        super().__init__(message or f"AI response issue \"{key}\" is missing score or is malformed.")
        self.key = key


class InvalidRecommendationError(AnalysisResponseError):
    kind = "InvalidRecommendation"

    def __init__(self, key: str):
        super().__init__(
            f"AI response recommendation \"{key}\" is missing or malformed (expected array of strings)."
        )
        self.key = key


class NoImageToAnalyzeError(SkinScanError):
    kind = "NoImageToAnalyze"

    def __init__(self, message: str = "No image to analyze. Please take a photo or upload one."):
        super().__init__(message)
