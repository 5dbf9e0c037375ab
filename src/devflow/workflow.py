"""High-level wiring of the deploy and merge orchestrators for one process."""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Union

from .api import ApiClient, TokenProvider
from .config import AppConfig
from .deploy import DeployOrchestrator
from .deploy.poller import TimerFactory
from .gitops import BranchMergeOrchestrator, GitCommandRunner
from .interaction import AutoResponseHandler, CLIInteractionHandler, UserInteractionHandler
from .utils.logging import get_logger

logger = get_logger(__name__)


def create_interaction_handler(config: AppConfig) -> UserInteractionHandler:
    mode = config.interaction.mode.lower()
    if mode == "cli":
        return CLIInteractionHandler(use_rich=config.interaction.use_rich)
    if mode == "auto":
        return AutoResponseHandler()
    raise ValueError(f"Unsupported interaction mode: {config.interaction.mode}")


class DevFlowWorkflow:
    """Owns the collaborators shared by the deploy and merge commands.

    The deploy orchestrator and API session are created lazily so that a merge
    never prompts for a token.
    """

    def __init__(
        self,
        config: AppConfig,
        workdir: Union[str, Path, None] = None,
        interaction_handler: Optional[UserInteractionHandler] = None,
        api_client: Optional[ApiClient] = None,
        git_runner: Optional[GitCommandRunner] = None,
        timer_factory: Optional[TimerFactory] = None,
    ) -> None:
        self.config = config
        self.workdir = Path(workdir) if workdir else Path.cwd()
        # 用户交互处理器 - 默认使用 CLI
        self.interaction_handler = interaction_handler or create_interaction_handler(config)
        self._api_client = api_client
        self._git_runner = git_runner
        self._timer_factory = timer_factory
        self._deploy: Optional[DeployOrchestrator] = None
        self._merge: Optional[BranchMergeOrchestrator] = None

    @property
    def deploy(self) -> DeployOrchestrator:
        if self._deploy is None:
            if self._api_client is None:
                token_provider = TokenProvider(self.config.api, self.interaction_handler)
                self._api_client = ApiClient(self.config.api, token_provider)
            self._deploy = DeployOrchestrator(
                self._api_client,
                self.config.deploy,
                self.interaction_handler,
                timer_factory=self._timer_factory,
            )
        return self._deploy

    @property
    def merge(self) -> BranchMergeOrchestrator:
        if self._merge is None:
            runner = self._git_runner or GitCommandRunner(
                self.workdir,
                git_binary=self.config.git.git_binary,
                timeout=self.config.git.timeout,
            )
            self._merge = BranchMergeOrchestrator(runner, self.config.git, self.interaction_handler)
        return self._merge

    def close(self) -> None:
        """Stop polling and release the session and log sink."""
        if self._deploy is not None:
            self._deploy.dispose()
        if self._api_client is not None:
            self._api_client.close()
        self.interaction_handler.close()
        logger.debug("devflow workflow closed")

    def __enter__(self) -> "DevFlowWorkflow":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
