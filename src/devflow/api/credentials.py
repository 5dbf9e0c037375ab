"""Bearer token resolution for the build API."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from ..config import ApiConfig, load_saved_auth_token, save_auth_token
from ..interaction import InputType, InteractionRequest, QuestionCategory, UserInteractionHandler

logger = logging.getLogger(__name__)


class TokenProvider:
    """Resolves the token from config, then the credential file, then the user.

    A token typed in at the prompt is persisted and cached for the process.
    """

    def __init__(
        self,
        config: ApiConfig,
        interaction_handler: UserInteractionHandler,
        credentials_file: Optional[Path] = None,
    ) -> None:
        self.config = config
        self.interaction_handler = interaction_handler
        self.credentials_file = credentials_file
        self._token: Optional[str] = None

    def __call__(self) -> Optional[str]:
        if self._token:
            return self._token

        token = self.config.auth_token or load_saved_auth_token(self.credentials_file)
        if not token:
            token = self._prompt()
        self._token = token or None
        return self._token

    def _prompt(self) -> Optional[str]:
        response = self.interaction_handler.ask(
            InteractionRequest(
                question="请输入认证Token",
                input_type=InputType.SECRET,
                category=QuestionCategory.INFORMATION,
                context="The token is saved locally and reused on later runs",
            )
        )
        if response.cancelled or not response.value:
            logger.warning("No auth token provided")
            return None

        try:
            path = save_auth_token(response.value, self.credentials_file)
        except OSError as exc:
            logger.warning("Could not save auth token, it is kept for this session only: %s", exc)
        else:
            logger.info("Auth token saved to %s", path)
        return response.value
