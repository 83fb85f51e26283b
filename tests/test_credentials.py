from __future__ import annotations

import asyncio

import pytest

from app.ai.Credentials import (
    CredentialContext,
    CredentialPicker,
    NullCredentialPicker,
    PromptCredentialPicker,
    StaticCredentialPicker,
    build_credential_picker,
    ensure_credential,
    handle_credential_error,
)
from app.models.Errors import (
    CredentialInvalidError,
    CredentialInvalidReselectionDoneError,
    CredentialReselectionFailedError,
    CredentialRequiredNoPickerError,
    CredentialSelectionFailedError,
    InvalidIssueError,
)

REJECTED = RuntimeError("Requested entity was not found.")


class FakePicker(CredentialPicker):
    def __init__(self, has_key: bool = False, fail: bool = False):
        self.has_key = has_key
        self.fail = fail
        self.opened = 0

    async def has_selected_api_key(self) -> bool:
        return self.has_key

    async def open_select_key(self) -> None:
        self.opened += 1
        if self.fail:
            raise RuntimeError("user cancelled")
        self.has_key = True

    def get_api_key(self):
        return "picked-key" if self.has_key else None


def test_environment_key_is_accepted_without_picker():
    context = CredentialContext(environment_key="env-key")

    asyncio.run(ensure_credential(context))

    assert context.selected is True


def test_no_picker_and_no_environment_key_requires_credential():
    context = CredentialContext()

    with pytest.raises(CredentialRequiredNoPickerError):
        asyncio.run(ensure_credential(context))
    assert context.selected is False


def test_picker_is_opened_when_nothing_selected_yet():
    picker = FakePicker(has_key=True)
    context = CredentialContext(picker=picker)

    asyncio.run(ensure_credential(context))
    asyncio.run(ensure_credential(context))

    assert picker.opened == 1
    assert context.selected is True


def test_picker_failure_is_selection_failure():
    context = CredentialContext(picker=FakePicker(fail=True))

    with pytest.raises(CredentialSelectionFailedError):
        asyncio.run(ensure_credential(context))
    assert context.selected is False


def test_unrelated_error_is_reraised_unchanged():
    picker = FakePicker(has_key=True)
    context = CredentialContext(picker=picker, selected=True)
    error = InvalidIssueError("acne")

    with pytest.raises(InvalidIssueError) as exc_info:
        asyncio.run(handle_credential_error(context, error))

    assert exc_info.value is error
    assert context.selected is True
    assert picker.opened == 0


def test_rejection_reopens_picker_and_signals_retry():
    picker = FakePicker(has_key=True)
    context = CredentialContext(picker=picker, selected=True)

    with pytest.raises(CredentialInvalidReselectionDoneError) as exc_info:
        asyncio.run(handle_credential_error(context, REJECTED))

    assert exc_info.value.kind == "CredentialInvalidReselectionDone"
    assert picker.opened == 1
    assert context.selected is True


def test_rejection_with_environment_key_only_is_not_reselection_done():
    context = CredentialContext(environment_key="env-key", selected=True)

    with pytest.raises(CredentialInvalidError) as exc_info:
        asyncio.run(handle_credential_error(context, REJECTED))

    assert exc_info.value.kind == "CredentialInvalidOrUnselected"
    assert exc_info.value.kind != CredentialInvalidReselectionDoneError.kind
    assert context.selected is False


def test_rejection_with_failing_picker_is_reselection_failure():
    context = CredentialContext(picker=FakePicker(fail=True), selected=True)

    with pytest.raises(CredentialReselectionFailedError):
        asyncio.run(handle_credential_error(context, REJECTED))
    assert context.selected is False


def test_rejection_without_picker_or_environment_key_requires_credential():
    context = CredentialContext(selected=True)

    with pytest.raises(CredentialRequiredNoPickerError):
        asyncio.run(handle_credential_error(context, REJECTED))
    assert context.selected is False


def test_static_picker_only_selects_offered_key():
    picker = StaticCredentialPicker()

    with pytest.raises(RuntimeError):
        asyncio.run(picker.open_select_key())

    picker.offer("  client-key ")
    asyncio.run(picker.open_select_key())
    assert asyncio.run(picker.has_selected_api_key()) is True
    assert picker.get_api_key() == "client-key"


def test_prompt_picker_reads_key_from_terminal(monkeypatch):
    monkeypatch.setattr("getpass.getpass", lambda prompt: " typed-key ")
    picker = PromptCredentialPicker()

    asyncio.run(picker.open_select_key())

    assert picker.get_api_key() == "typed-key"


def test_prompt_picker_cancel_raises(monkeypatch):
    monkeypatch.setattr("getpass.getpass", lambda prompt: "")

    with pytest.raises(RuntimeError):
        asyncio.run(PromptCredentialPicker().open_select_key())


def test_build_credential_picker():
    assert isinstance(build_credential_picker("none"), NullCredentialPicker)
    assert isinstance(build_credential_picker("static"), StaticCredentialPicker)
    assert isinstance(build_credential_picker("PROMPT"), PromptCredentialPicker)
    with pytest.raises(ValueError):
        build_credential_picker("browser")
