"""Unified path constants for devflow.

All local state is stored under the .devflow directory:
- .devflow/credentials.json   # Bearer token captured from the prompt
"""

from pathlib import Path

# 基础目录（在当前工作目录下）
BASE_DIR = Path(".devflow")

CREDENTIALS_FILE = BASE_DIR / "credentials.json"  # 认证 Token
DEFAULT_CONFIG_PATH = Path("config/default_config.json")


def ensure_dirs() -> None:
    """确保所有必要目录存在."""
    BASE_DIR.mkdir(parents=True, exist_ok=True)


def get_credentials_file() -> Path:
    """获取 credentials 文件路径."""
    ensure_dirs()
    return CREDENTIALS_FILE
