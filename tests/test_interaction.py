"""Tests for user interaction module."""

import io
from unittest import mock

import pytest
from rich.console import Console

from devflow.interaction import (
    AutoResponseHandler,
    CallbackInteractionHandler,
    CLIInteractionHandler,
    InputType,
    InteractionRequest,
    InteractionResponse,
    QuestionCategory,
)


def _cli_handler():
    buffer = io.StringIO()
    console = Console(file=buffer, force_terminal=False, width=120, no_color=True)
    return CLIInteractionHandler(console=console), buffer


class TestInteractionRequest:
    """Tests for InteractionRequest dataclass."""

    def test_basic_choice_request(self):
        request = InteractionRequest(
            question="Select the project to deploy",
            options=["Portal", "Admin"],
        )

        assert request.input_type == InputType.CHOICE
        assert request.category == QuestionCategory.SELECTION

    def test_input_types(self):
        assert set(InputType) == {InputType.CHOICE, InputType.CONFIRM, InputType.SECRET}

    def test_format_prompt_choice(self):
        """Descriptions and the default marker are rendered next to options."""
        request = InteractionRequest(
            question="Select the branch to merge",
            title="Automatic branch merge",
            options=["feature/login", "dev"],
            descriptions=["(current)", ""],
            default="feature/login",
        )

        prompt = request.format_prompt()
        assert "Automatic branch merge" in prompt
        assert "[1] feature/login (默认)  (current)" in prompt
        assert "[2] dev" in prompt

    def test_format_prompt_confirm(self):
        request = InteractionRequest(
            question="Abort build 77?",
            input_type=InputType.CONFIRM,
            category=QuestionCategory.CONFIRMATION,
        )
        assert "[y/n]" in request.format_prompt()

    def test_format_prompt_secret(self):
        request = InteractionRequest(question="Token", input_type=InputType.SECRET)
        assert "(输入将被隐藏)" in request.format_prompt()


class TestInteractionResponse:
    def test_from_choice_valid(self):
        response = InteractionResponse.from_choice(2, ["a", "b", "c"])
        assert response.value == "b"
        assert response.index == 1

    def test_from_choice_invalid(self):
        with pytest.raises(ValueError):
            InteractionResponse.from_choice(5, ["a", "b"])
        with pytest.raises(ValueError):
            InteractionResponse.from_choice(0, ["a", "b"])

    def test_cancelled_response(self):
        response = InteractionResponse.cancelled_response()
        assert response.cancelled
        assert response.index is None
        assert not response.confirmed

    def test_confirmed(self):
        assert InteractionResponse(value="yes").confirmed
        assert not InteractionResponse(value="no").confirmed


class TestCLIInteractionHandler:
    def test_choice_by_number(self):
        handler, _ = _cli_handler()
        request = InteractionRequest(question="Pick", options=["a", "b"])
        with mock.patch("builtins.input", return_value="2"):
            response = handler.ask(request)
        assert response.value == "b"

    def test_choice_empty_uses_default(self):
        handler, _ = _cli_handler()
        request = InteractionRequest(question="Pick", options=["a", "b"], default="b")
        with mock.patch("builtins.input", return_value=""):
            assert handler.ask(request).value == "b"

    def test_choice_q_cancels(self):
        handler, _ = _cli_handler()
        request = InteractionRequest(question="Pick", options=["a", "b"])
        with mock.patch("builtins.input", return_value="q"):
            assert handler.ask(request).cancelled

    def test_choice_retries_invalid_input(self):
        handler, buffer = _cli_handler()
        request = InteractionRequest(question="Pick", options=["a", "b"])
        with mock.patch("builtins.input", side_effect=["9", "1"]):
            assert handler.ask(request).value == "a"
        assert "无效选项" in buffer.getvalue()

    def test_choice_rejects_zero_and_free_text(self):
        handler, buffer = _cli_handler()
        request = InteractionRequest(question="Pick", options=["a", "b"])
        with mock.patch("builtins.input", side_effect=["0", "custom-branch", "b"]) as prompt:
            response = handler.ask(request)
        assert response.value == "b"
        assert response.index == 1
        assert prompt.call_count == 3
        assert "请输入有效的选项编号" in buffer.getvalue()

    def test_confirm(self):
        handler, _ = _cli_handler()
        request = InteractionRequest(question="Go?", input_type=InputType.CONFIRM)
        with mock.patch("builtins.input", return_value="y"):
            assert handler.ask(request).confirmed
        with mock.patch("builtins.input", return_value=""):
            assert not handler.ask(request).confirmed

    def test_empty_secret_is_cancelled(self):
        handler, _ = _cli_handler()
        request = InteractionRequest(question="Token", input_type=InputType.SECRET)
        with mock.patch("getpass.getpass", return_value="  "):
            assert handler.ask(request).cancelled
        with mock.patch("getpass.getpass", return_value="abc"):
            assert handler.ask(request).value == "abc"

    def test_eof_cancels(self):
        handler, _ = _cli_handler()
        request = InteractionRequest(question="Pick", options=["a"])
        with mock.patch("builtins.input", side_effect=EOFError):
            assert handler.ask(request).cancelled

    def test_log_stops_after_close(self):
        handler, buffer = _cli_handler()
        handler.log("first line")
        handler.close()
        handler.log("second line")
        output = buffer.getvalue()
        assert "first line" in output
        assert "second line" not in output

    def test_progress_tracks_completion(self):
        handler, _ = _cli_handler()
        with handler.progress("Merge") as progress:
            progress.report(10, "start")
            progress.report(95, "almost")
        assert progress.completed == 100


class TestCallbackInteractionHandler:
    def test_routes_to_callbacks(self):
        notes, lines = [], []
        handler = CallbackInteractionHandler(
            ask_callback=lambda request: InteractionResponse(value="yes"),
            notify_callback=lambda message, level: notes.append((level, message)),
            log_callback=lines.append,
        )
        assert handler.ask(InteractionRequest(question="?", input_type=InputType.CONFIRM)).confirmed
        handler.notify("done", "success")
        handler.log("line")
        assert notes == [("success", "done")]
        assert lines == ["line"]


class TestAutoResponseHandler:
    def test_auto_confirm(self):
        request = InteractionRequest(question="Deploy?", input_type=InputType.CONFIRM)
        assert AutoResponseHandler().ask(request).confirmed
        assert not AutoResponseHandler(always_confirm=False).ask(request).confirmed

    def test_choice_prefers_default(self):
        request = InteractionRequest(question="Pick", options=["a", "b"], default="b")
        assert AutoResponseHandler().ask(request).value == "b"
        assert AutoResponseHandler(use_defaults=False).ask(request).value == "a"

    def test_predefined_responses(self):
        handler = AutoResponseHandler(default_responses={"branch": "dev"})
        request = InteractionRequest(question="Select the branch to merge", options=["main", "dev"])
        response = handler.ask(request)
        assert response.value == "dev"
        assert response.index == 1

    def test_secret_without_default_is_cancelled(self):
        request = InteractionRequest(question="Token", input_type=InputType.SECRET)
        assert AutoResponseHandler().ask(request).cancelled
