"""Configuration loading utilities for devflow."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

from .paths import DEFAULT_CONFIG_PATH, get_credentials_file

# Load .env file if it exists
load_dotenv()

# 路径前缀 -> 服务地址，前缀本身保留在请求路径中
DEFAULT_PREFIX_MAP = {
    "/api-dev": "http://10.52.70.10:410",
    "/local-faw": "http://10.52.70.10:510",
}


@dataclass
class ApiConfig:
    """Configuration for the remote build API."""

    prefix_map: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_PREFIX_MAP))
    auth_token: Optional[str] = None
    timeout: float = 120.0                 # 请求超时（秒）


@dataclass
class DeployConfig:
    """Settings related to pipeline execution and polling."""

    environment_type: str = "daily"
    poll_interval: float = 20.0            # 轮询间隔（秒）
    page_size: int = 100


@dataclass
class GitConfig:
    """Settings for the branch merge workflow."""

    git_binary: str = "git"
    remote: str = "origin"
    merge_targets: List[str] = field(default_factory=lambda: ["dev", "sit"])
    timeout: Optional[float] = 300.0       # 单条 git 命令超时（秒），None 表示不限制


@dataclass
class InteractionConfig:
    """Configuration for user interaction."""

    mode: str = "cli"  # "cli" | "auto"
    use_rich: bool = True


@dataclass
class AppConfig:
    """Top-level configuration."""

    api: ApiConfig = field(default_factory=ApiConfig)
    deploy: DeployConfig = field(default_factory=DeployConfig)
    git: GitConfig = field(default_factory=GitConfig)
    interaction: InteractionConfig = field(default_factory=InteractionConfig)

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "AppConfig":
        api_payload = _strip_comments(payload.get("api", {}) or {})
        deploy_payload = _strip_comments(payload.get("deploy", {}) or {})
        git_payload = _strip_comments(payload.get("git", {}) or {})
        interaction_payload = _strip_comments(payload.get("interaction", {}) or {})

        # prefix_map 合并而不是覆盖，方便只追加一个前缀
        prefix_map = dict(DEFAULT_PREFIX_MAP)
        prefix_map.update(api_payload.pop("prefix_map", None) or {})

        return cls(
            api=ApiConfig(**{**ApiConfig().__dict__, **api_payload, "prefix_map": prefix_map}),
            deploy=DeployConfig(**{**DeployConfig().__dict__, **deploy_payload}),
            git=GitConfig(**{**GitConfig().__dict__, **git_payload}),
            interaction=InteractionConfig(
                **{**InteractionConfig().__dict__, **interaction_payload}
            ),
        )


def _strip_comments(section: Dict[str, Any]) -> Dict[str, Any]:
    # 过滤掉以下划线开头的注释字段
    return {k: v for k, v in section.items() if not k.startswith("_")}


def load_config(path: Optional[str] = None) -> AppConfig:
    """Load configuration from `path` or the default location.

    Falls back to built-in defaults when no file is found, unless an explicit
    `path` was given.

    Environment variables (higher priority than config file):
    - DEVFLOW_AUTH_TOKEN: Bearer token for the build API
    - DEVFLOW_API_TIMEOUT: HTTP timeout in seconds
    - DEVFLOW_POLL_INTERVAL: Seconds between deployment status polls
    - DEVFLOW_GIT_TIMEOUT: Timeout for a single git command in seconds
    - DEVFLOW_ENVIRONMENT_TYPE: Target environment for pipeline runs
    """

    if path and not Path(path).is_file():
        raise FileNotFoundError(f"Could not find configuration file: {path}")

    candidate_paths = []
    if path:
        candidate_paths.append(Path(path))
    candidate_paths.append(DEFAULT_CONFIG_PATH)

    config = AppConfig()
    for candidate in candidate_paths:
        if candidate.is_file():
            with candidate.open("r", encoding="utf-8") as handle:
                data = json.load(handle)
            config = AppConfig.from_dict(data)
            break

    env_token = os.getenv("DEVFLOW_AUTH_TOKEN")
    if env_token:
        config.api.auth_token = env_token

    env_timeout = os.getenv("DEVFLOW_API_TIMEOUT")
    if env_timeout:
        config.api.timeout = float(env_timeout)

    env_interval = os.getenv("DEVFLOW_POLL_INTERVAL")
    if env_interval:
        config.deploy.poll_interval = float(env_interval)

    env_git_timeout = os.getenv("DEVFLOW_GIT_TIMEOUT")
    if env_git_timeout:
        config.git.timeout = float(env_git_timeout)

    env_environment = os.getenv("DEVFLOW_ENVIRONMENT_TYPE")
    if env_environment:
        config.deploy.environment_type = env_environment

    return config


def load_saved_auth_token(path: Optional[Path] = None) -> Optional[str]:
    """Read a previously persisted token, if any."""
    credentials_file = path or get_credentials_file()
    if not credentials_file.is_file():
        return None
    with credentials_file.open("r", encoding="utf-8") as handle:
        data = json.load(handle)
    return data.get("auth_token") or None


def save_auth_token(token: str, path: Optional[Path] = None) -> Path:
    """Persist a prompted token so later runs do not ask again."""
    credentials_file = path or get_credentials_file()
    credentials_file.parent.mkdir(parents=True, exist_ok=True)
    with credentials_file.open("w", encoding="utf-8") as handle:
        json.dump({"auth_token": token}, handle, indent=2)
    return credentials_file
