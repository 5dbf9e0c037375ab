"""User interaction handler used by the orchestrators."""

from __future__ import annotations

import getpass
import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Iterator, List, Optional

from rich.console import Console
from rich.progress import BarColumn, Progress, TextColumn

logger = logging.getLogger(__name__)


class InputType(str, Enum):
    """Type of user input expected."""
    CHOICE = "choice"       # 选择题，从options中选择
    CONFIRM = "confirm"     # 是/否确认
    SECRET = "secret"       # 敏感信息（Token 等）


class QuestionCategory(str, Enum):
    """Category of questions for context."""
    SELECTION = "selection"         # 选择项目、分支、部署任务
    CONFIRMATION = "confirmation"   # 确认部署、合并、终止等操作
    INFORMATION = "information"     # 需要额外信息（Token 等）
    WARNING = "warning"             # 前置检查未通过时的处理选项


@dataclass
class InteractionRequest:
    """A request from an orchestrator to the user for input."""

    question: str                               # 主要问题
    input_type: InputType = InputType.CHOICE    # 输入类型
    options: List[str] = field(default_factory=list)  # 可选项（用于 CHOICE 类型）
    descriptions: List[str] = field(default_factory=list)  # 与 options 一一对应的说明
    category: QuestionCategory = QuestionCategory.SELECTION
    title: Optional[str] = None                 # 标题
    context: Optional[str] = None               # 附加上下文信息
    default: Optional[str] = None               # 默认选项（高亮但不强制）

    def format_prompt(self) -> str:
        """Format the request as a user-friendly prompt."""
        lines = []

        icons = {
            QuestionCategory.SELECTION: "📋",
            QuestionCategory.CONFIRMATION: "⚠️",
            QuestionCategory.INFORMATION: "📝",
            QuestionCategory.WARNING: "🔧",
        }
        icon = icons.get(self.category, "❓")

        if self.title:
            lines.append(f"\n{icon} {self.title}")
            lines.append(f"   {self.question}")
        else:
            lines.append(f"\n{icon} {self.question}")

        if self.context:
            lines.append(f"\n   ℹ️  {self.context}")

        if self.input_type == InputType.CHOICE and self.options:
            lines.append("")
            for i, option in enumerate(self.options, 1):
                default_marker = " (默认)" if self.default == option else ""
                description = ""
                if i <= len(self.descriptions) and self.descriptions[i - 1]:
                    description = f"  {self.descriptions[i - 1]}"
                lines.append(f"   [{i}] {option}{default_marker}{description}")

        elif self.input_type == InputType.CONFIRM:
            default_hint = f" (默认: {self.default})" if self.default else ""
            lines.append(f"\n   请输入 [y/n]{default_hint}:")

        elif self.input_type == InputType.SECRET:
            lines.append("\n   (输入将被隐藏)")

        return "\n".join(lines)


@dataclass
class InteractionResponse:
    """User's response to an interaction request."""

    value: str                      # 用户输入的值
    selected_option: Optional[int] = None  # 选择的选项索引（1-based）
    cancelled: bool = False         # 用户是否取消了

    @property
    def confirmed(self) -> bool:
        return not self.cancelled and self.value == "yes"

    @property
    def index(self) -> Optional[int]:
        """0-based index of the chosen option, or None."""
        if self.cancelled or not self.selected_option:
            return None
        return self.selected_option - 1

    @classmethod
    def from_choice(cls, option_index: int, options: List[str]) -> "InteractionResponse":
        """Create response from a choice selection."""
        if 1 <= option_index <= len(options):
            return cls(value=options[option_index - 1], selected_option=option_index)
        raise ValueError(f"Invalid option index: {option_index}")

    @classmethod
    def cancelled_response(cls) -> "InteractionResponse":
        """Create a cancelled response."""
        return cls(value="", cancelled=True)


class ProgressReporter:
    """Receives percentage increments inside a progress scope."""

    def __init__(self, title: str) -> None:
        self.title = title
        self.completed = 0

    def report(self, increment: int = 0, message: str = "") -> None:
        self.completed = min(100, self.completed + increment)
        logger.info("[%s %d%%] %s", self.title, self.completed, message)


class UserInteractionHandler(ABC):
    """Abstract base class for the hosting environment's presentation surface."""

    @abstractmethod
    def ask(self, request: InteractionRequest) -> InteractionResponse:
        """
        Present a request to the user and get their response.

        Args:
            request: The interaction request to present

        Returns:
            The user's response
        """

    @abstractmethod
    def notify(self, message: str, level: str = "info") -> None:
        """
        Send a notification to the user (no response needed).

        Args:
            message: The message to display
            level: Severity level (info, warning, error, success)
        """

    def log(self, message: str) -> None:
        """Append a line to the output log."""
        logger.info(message)

    @contextmanager
    def progress(self, title: str) -> Iterator[ProgressReporter]:
        """Open a progress scope; the reporter is discarded on exit."""
        yield ProgressReporter(title)

    def close(self) -> None:
        """Release the log sink."""


class CLIInteractionHandler(UserInteractionHandler):
    """Command-line interface interaction handler."""

    def __init__(self, use_rich: bool = True, console: Optional[Console] = None) -> None:
        """
        Initialize the CLI handler.

        Args:
            use_rich: Whether to style output with rich markup
            console: Console to write to, mostly for tests
        """
        self.use_rich = use_rich
        self.console = console or Console(highlight=False, no_color=not use_rich)
        self._closed = False

    def ask(self, request: InteractionRequest) -> InteractionResponse:
        """Present request and get user input via CLI."""
        self.console.print(request.format_prompt(), markup=False)

        try:
            if request.input_type == InputType.CHOICE:
                return self._handle_choice(request)
            elif request.input_type == InputType.CONFIRM:
                return self._handle_confirm(request)
            else:  # SECRET
                return self._handle_secret(request)
        except KeyboardInterrupt:
            self.console.print("\n   (已取消)")
            return InteractionResponse.cancelled_response()
        except EOFError:
            return InteractionResponse.cancelled_response()

    def _handle_choice(self, request: InteractionRequest) -> InteractionResponse:
        """Handle choice input; an empty answer picks the default, 'q' cancels."""
        if not request.options:
            return InteractionResponse.cancelled_response()

        while True:
            prompt = "\n   请选择"
            if request.default in request.options:
                prompt += f" [{request.options.index(request.default) + 1}]"
            prompt += " (q 取消): "

            user_input = input(prompt).strip()

            if user_input.lower() in ("q", "quit"):
                return InteractionResponse.cancelled_response()

            # 使用默认值
            if not user_input and request.default in request.options:
                idx = request.options.index(request.default) + 1
                return InteractionResponse.from_choice(idx, request.options)

            try:
                choice = int(user_input)
            except ValueError:
                # 允许直接输入选项文本
                if user_input in request.options:
                    idx = request.options.index(user_input) + 1
                    return InteractionResponse.from_choice(idx, request.options)
                self.console.print("   ❌ 请输入有效的选项编号")
                continue

            if 1 <= choice <= len(request.options):
                return InteractionResponse.from_choice(choice, request.options)
            self.console.print(f"   ❌ 无效选项，请输入 1-{len(request.options)}")

    def _handle_confirm(self, request: InteractionRequest) -> InteractionResponse:
        """Handle yes/no confirmation."""
        default = request.default or "n"

        while True:
            prompt = f"\n   确认? [y/n] (默认: {default}): "
            user_input = input(prompt).strip().lower()

            if not user_input:
                user_input = default

            if user_input in ("y", "yes", "是"):
                return InteractionResponse(value="yes")
            elif user_input in ("n", "no", "否"):
                return InteractionResponse(value="no")
            else:
                self.console.print("   ❌ 请输入 y 或 n")

    def _handle_secret(self, request: InteractionRequest) -> InteractionResponse:
        """Handle secret input; an empty value counts as cancelled."""
        user_input = getpass.getpass("\n   请输入 (不显示): ").strip()
        if not user_input:
            return InteractionResponse.cancelled_response()
        return InteractionResponse(value=user_input)

    def notify(self, message: str, level: str = "info") -> None:
        """Display a notification message."""
        styles = {
            "info": ("ℹ️", "cyan"),
            "warning": ("⚠️", "yellow"),
            "error": ("❌", "red"),
            "success": ("✅", "green"),
        }
        icon, style = styles.get(level, ("•", "white"))
        self.console.print(f"\n{icon} {message}", style=style, markup=False)

    def log(self, message: str) -> None:
        if self._closed:
            logger.debug("Log sink closed, dropping: %s", message)
            return
        timestamp = datetime.now().strftime("%H:%M:%S")
        self.console.print(f"[{timestamp}] {message}", markup=False)

    @contextmanager
    def progress(self, title: str) -> Iterator[ProgressReporter]:
        with Progress(
            TextColumn("[bold]{task.description}"),
            BarColumn(),
            TextColumn("{task.percentage:>3.0f}%"),
            TextColumn("{task.fields[message]}"),
            console=self.console,
        ) as bar:
            task_id = bar.add_task(title, total=100, message="")
            yield _RichProgressReporter(title, bar, task_id)

    def close(self) -> None:
        self._closed = True


class _RichProgressReporter(ProgressReporter):
    def __init__(self, title: str, bar: Progress, task_id) -> None:
        super().__init__(title)
        self._bar = bar
        self._task_id = task_id

    def report(self, increment: int = 0, message: str = "") -> None:
        self.completed = min(100, self.completed + increment)
        self._bar.update(self._task_id, advance=increment, message=message)


class CallbackInteractionHandler(UserInteractionHandler):
    """
    Interaction handler that uses callbacks.
    Useful when another host (an editor, a web UI) renders the prompts.
    """

    def __init__(
        self,
        ask_callback: Callable[[InteractionRequest], InteractionResponse],
        notify_callback: Optional[Callable[[str, str], None]] = None,
        log_callback: Optional[Callable[[str], None]] = None,
    ) -> None:
        """
        Initialize with callbacks.

        Args:
            ask_callback: Function to call when asking user for input
            notify_callback: Function to call for notifications
            log_callback: Function to call for output log lines
        """
        self.ask_callback = ask_callback
        self.notify_callback = notify_callback or (lambda msg, lvl: logger.info("[%s] %s", lvl, msg))
        self.log_callback = log_callback

    def ask(self, request: InteractionRequest) -> InteractionResponse:
        return self.ask_callback(request)

    def notify(self, message: str, level: str = "info") -> None:
        self.notify_callback(message, level)

    def log(self, message: str) -> None:
        if self.log_callback:
            self.log_callback(message)
        else:
            super().log(message)


class AutoResponseHandler(UserInteractionHandler):
    """
    Automatic response handler for testing or non-interactive mode.
    Always uses default values or predefined responses.
    """

    def __init__(
        self,
        default_responses: Optional[dict] = None,
        always_confirm: bool = True,
        use_defaults: bool = True,
    ) -> None:
        """
        Initialize auto-response handler.

        Args:
            default_responses: Dict mapping question keywords to responses
            always_confirm: Whether to auto-confirm (True) or reject (False)
            use_defaults: Whether to use default values when available
        """
        self.default_responses = default_responses or {}
        self.always_confirm = always_confirm
        self.use_defaults = use_defaults

    def ask(self, request: InteractionRequest) -> InteractionResponse:
        logger.info(f"Auto-responding to: {request.question[:50]}...")

        # Check for predefined response
        for keyword, response in self.default_responses.items():
            if keyword.lower() in request.question.lower():
                if request.input_type == InputType.CHOICE and response in request.options:
                    return InteractionResponse.from_choice(
                        request.options.index(response) + 1, request.options
                    )
                return InteractionResponse(value=response)

        if request.input_type == InputType.CONFIRM:
            return InteractionResponse(value="yes" if self.always_confirm else "no")

        if request.input_type == InputType.CHOICE and request.options:
            if self.use_defaults and request.default in request.options:
                idx = request.options.index(request.default) + 1
                return InteractionResponse.from_choice(idx, request.options)
            # 选择第一个选项
            return InteractionResponse.from_choice(1, request.options)

        if self.use_defaults and request.default:
            return InteractionResponse(value=request.default)
        return InteractionResponse.cancelled_response()

    def notify(self, message: str, level: str = "info") -> None:
        logger.info(f"[{level}] {message}")
