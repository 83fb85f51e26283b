import asyncio
import getpass
import logging
from dataclasses import dataclass, field
from typing import NoReturn, Optional

from app.models.Errors import (
    CredentialInvalidError,
    CredentialInvalidReselectionDoneError,
    CredentialReselectionFailedError,
    CredentialRequiredNoPickerError,
    CredentialSelectionFailedError,
)

logger = logging.getLogger('uvicorn')

# Mensagem devolvida pela API do Gemini quando a chave não é reconhecida
CREDENTIAL_REJECTED_SIGNAL = "Requested entity was not found."
API_KEY_BILLING_LINK = "https://ai.google.dev/gemini-api/docs/billing"


class CredentialPicker:
    """Capacidade do host para escolher uma chave de API interativamente."""
    available = True

    async def has_selected_api_key(self) -> bool:
        raise NotImplementedError

    async def open_select_key(self) -> None:
        raise NotImplementedError

    def get_api_key(self) -> Optional[str]:
        raise NotImplementedError


class NullCredentialPicker(CredentialPicker):
    """Usado quando o host não oferece seletor de chave."""
    available = False

    async def has_selected_api_key(self) -> bool:
        return False

    async def open_select_key(self) -> None:
        raise RuntimeError("No API key picker is available on this host.")

    def get_api_key(self) -> Optional[str]:
        return None


class StaticCredentialPicker(CredentialPicker):
    """
    Seletor alimentado pelo cliente HTTP: a chave é oferecida com `offer()`
    e só passa a valer quando `open_select_key()` é chamado.
    """

    def __init__(self, api_key: Optional[str] = None):
        self._api_key = api_key
        self._pending: Optional[str] = None

    def offer(self, api_key: str) -> None:
        self._pending = api_key.strip()

    async def has_selected_api_key(self) -> bool:
        return bool(self._api_key)

    async def open_select_key(self) -> None:
        if not self._pending:
            raise RuntimeError("No API key was provided for selection.")
        self._api_key, self._pending = self._pending, None

    def get_api_key(self) -> Optional[str]:
        return self._api_key


class PromptCredentialPicker(CredentialPicker):
    """Pede a chave no terminal (sem eco)."""

    def __init__(self, prompt: str = "Gemini API key: "):
        self.prompt = prompt
        self._api_key: Optional[str] = None

    async def has_selected_api_key(self) -> bool:
        return bool(self._api_key)

    async def open_select_key(self) -> None:
        print(f"Select an API key to continue. Billing details: {API_KEY_BILLING_LINK}")
        api_key = (await asyncio.to_thread(getpass.getpass, self.prompt)).strip()
        if not api_key:
            raise RuntimeError("API key selection was cancelled.")
        self._api_key = api_key

    def get_api_key(self) -> Optional[str]:
        return self._api_key


def build_credential_picker(kind: str) -> CredentialPicker:
    """Escolhe a implementação do seletor uma única vez, na inicialização."""
    kind = (kind or "none").strip().lower()
    if kind == "prompt":
        return PromptCredentialPicker()
    if kind == "static":
        return StaticCredentialPicker()
    if kind == "none":
        return NullCredentialPicker()
    raise ValueError(f"Unknown credential picker: {kind!r}. Use: none, prompt or static")


@dataclass
class CredentialContext:
    """Estado da seleção de credencial, passado explicitamente ao pipeline."""
    picker: CredentialPicker = field(default_factory=NullCredentialPicker)
    environment_key: Optional[str] = None
    selected: bool = False

    @property
    def picker_available(self) -> bool:
        return self.picker.available

    def resolve_api_key(self) -> Optional[str]:
        return self.picker.get_api_key() or self.environment_key


async def ensure_credential(context: CredentialContext) -> None:
    """
    Verifica se há uma chave disponível e, se necessário, abre o seletor.

    Raises:
        CredentialRequiredNoPickerError: sem seletor e sem chave no ambiente
        CredentialSelectionFailedError: o seletor falhou ou foi cancelado
    """
    if not context.picker_available:
        if not context.environment_key:
            logger.error("[CREDENCIAL] API_KEY não definida e nenhum seletor disponível.")
            raise CredentialRequiredNoPickerError()
        context.selected = True
        return

    has_key = await context.picker.has_selected_api_key()
    if not has_key or not context.selected:
        logger.warning("[CREDENCIAL] Nenhuma chave selecionada. Abrindo seletor...")
        try:
            await context.picker.open_select_key()
        except Exception as e:
            logger.error(f"[CREDENCIAL] Erro ao abrir o seletor de chave: {e}")
            raise CredentialSelectionFailedError(f"Failed to select API key: {e}") from e
        context.selected = True


def is_credential_rejection(error: BaseException) -> bool:
    return CREDENTIAL_REJECTED_SIGNAL in str(error)


async def handle_credential_error(context: CredentialContext, error: Exception) -> NoReturn:
    """
    Trata erros da chamada remota. Sempre lança: um erro de credencial
    quando a chave foi rejeitada, ou o próprio `error` nos demais casos.
    """
    if not is_credential_rejection(error):
        raise error

    logger.error("[CREDENCIAL] Chave inválida ou não selecionada. Solicitando nova seleção.")
    context.selected = False

    if context.picker_available:
        try:
            await context.picker.open_select_key()
        except Exception as e:
            logger.error(f"[CREDENCIAL] Erro ao reabrir o seletor de chave: {e}")
            raise CredentialReselectionFailedError(
                "The API key is invalid and selecting a new one failed. Please select a valid API key."
            ) from e
        context.selected = True
        raise CredentialInvalidReselectionDoneError(
            "The API key was rejected and a new one was selected. Please try the analysis again."
        ) from error

    if not context.environment_key:
        raise CredentialRequiredNoPickerError() from error

    raise CredentialInvalidError(
        "The API key is invalid or was not selected. Please select a valid API key and try again."
    ) from error
