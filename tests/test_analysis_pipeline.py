from __future__ import annotations

import asyncio
import base64
import json

import pytest
from pydantic_ai import BinaryContent
from pydantic_ai.messages import ModelResponse, TextPart, UserPromptPart
from pydantic_ai.models.function import AgentInfo, FunctionModel

from app.ai.AiServices import analyze_skin_image
from app.ai.Credentials import CredentialContext, StaticCredentialPicker
from app.models.Errors import (
    CredentialInvalidError,
    CredentialInvalidReselectionDoneError,
    CredentialMissingError,
    CredentialReselectionFailedError,
    CredentialRequiredNoPickerError,
    EmptyResponseError,
    InvalidEnumError,
)

IMAGE_BYTES = b"\xff\xd8\xff\xe0fake-jpeg"
IMAGE_B64 = base64.b64encode(IMAGE_BYTES).decode("ascii")


class RecordingModel:
    """FunctionModel que devolve um texto fixo (ou lança) e guarda as mensagens."""

    def __init__(self, text: str = "", error: Exception | None = None):
        self.text = text
        self.error = error
        self.calls: list = []
        self.model = FunctionModel(self._respond)

    def _respond(self, messages, info: AgentInfo) -> ModelResponse:
        self.calls.append(messages)
        if self.error is not None:
            raise self.error
        return ModelResponse(parts=[TextPart(self.text)])


def _analyze(model: RecordingModel, credentials: CredentialContext):
    return asyncio.run(analyze_skin_image(IMAGE_B64, "image/jpeg", credentials, model=model.model))


def test_analyze_sends_prompt_and_image_and_returns_validated_result(valid_payload):
    model = RecordingModel(f"```json\n{json.dumps(valid_payload)}\n```")
    credentials = CredentialContext(environment_key="env-key")

    result = _analyze(model, credentials)

    assert result.to_payload() == valid_payload
    assert len(model.calls) == 1
    user_parts = [part for part in model.calls[0][0].parts if isinstance(part, UserPromptPart)]
    content = user_parts[0].content
    assert "Analyze the facial skin" in content[0]
    assert isinstance(content[1], BinaryContent)
    assert content[1].data == IMAGE_BYTES
    assert content[1].media_type == "image/jpeg"


def test_missing_credential_without_picker_fails_before_remote_call(valid_payload):
    model = RecordingModel(json.dumps(valid_payload))

    with pytest.raises(CredentialRequiredNoPickerError) as exc_info:
        _analyze(model, CredentialContext())

    assert exc_info.value.kind == "CredentialRequiredNoPicker"
    assert model.calls == []


def test_missing_credential_with_picker_is_credential_missing(valid_payload):
    model = RecordingModel(json.dumps(valid_payload))

    with pytest.raises(CredentialMissingError) as exc_info:
        _analyze(model, CredentialContext(picker=StaticCredentialPicker()))

    assert type(exc_info.value) is CredentialMissingError
    assert model.calls == []


def test_validation_errors_pass_through_unchanged(valid_payload):
    valid_payload["skinType"] = "greasy"
    credentials = CredentialContext(environment_key="env-key", selected=True)

    with pytest.raises(InvalidEnumError):
        _analyze(RecordingModel(json.dumps(valid_payload)), credentials)

    assert credentials.selected is True


def test_empty_model_text_is_empty_response():
    with pytest.raises(EmptyResponseError):
        _analyze(RecordingModel("   "), CredentialContext(environment_key="env-key"))


def test_unrelated_remote_failure_is_reraised_unchanged():
    error = RuntimeError("503 Service Unavailable")

    with pytest.raises(RuntimeError) as exc_info:
        _analyze(RecordingModel(error=error), CredentialContext(environment_key="env-key", selected=True))

    assert exc_info.value is error


def test_rejected_key_with_env_credential_asks_for_a_new_key():
    credentials = CredentialContext(environment_key="env-key", selected=True)
    model = RecordingModel(error=RuntimeError("404 NOT_FOUND. Requested entity was not found."))

    with pytest.raises(CredentialInvalidError):
        _analyze(model, credentials)

    assert credentials.selected is False


def test_rejected_key_reselected_through_picker_can_be_retried(valid_payload):
    picker = StaticCredentialPicker(api_key="old-key")
    picker.offer("new-key")
    credentials = CredentialContext(picker=picker, selected=True)
    model = RecordingModel(error=RuntimeError("Requested entity was not found."))

    with pytest.raises(CredentialInvalidReselectionDoneError):
        _analyze(model, credentials)

    assert credentials.selected is True
    assert credentials.resolve_api_key() == "new-key"

    model.error = None
    model.text = json.dumps(valid_payload)
    assert _analyze(model, credentials).to_payload() == valid_payload


def test_rejected_key_with_failing_picker_is_reselection_failure():
    credentials = CredentialContext(picker=StaticCredentialPicker(api_key="old-key"), selected=True)
    model = RecordingModel(error=RuntimeError("Requested entity was not found."))

    with pytest.raises(CredentialReselectionFailedError):
        _analyze(model, credentials)

    assert credentials.selected is False
