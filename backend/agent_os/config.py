# -*- coding: utf-8 -*-
"""
Agent OS - 上下文预算与智能回退核心
Agent OS - Context Budgeting and Intelligent Fallback Core

Copyright © 2025-2026 Agent OS Team
License: PolyForm Noncommercial License 1.0.0

模块说明 / Module Description:
  应用配置 - 环境变量设置与 YAML 运行参数
  Application Configuration - Environment-driven settings plus YAML tuning sections.

使用示例 / Usage:
    from agent_os.config import settings, config

    settings.debug                        # AGENT_OS_DEBUG
    config.get("context_budget", {})      # section from config.yaml
"""

from pathlib import Path
from typing import Any, Dict

import yaml
from pydantic_settings import BaseSettings, SettingsConfigDict

BACKEND_ROOT = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    """
    进程级设置 / Process-level settings

    Values come from ``AGENT_OS_*`` environment variables or a ``.env`` file.
    """

    app_name: str = "Agent OS"
    debug: bool = False
    host: str = "127.0.0.1"
    port: int = 8000
    config_path: Path = BACKEND_ROOT / "config.yaml"
    sources_root: Path = BACKEND_ROOT / "data" / "sources"
    log_dir: Path = BACKEND_ROOT / "logs"

    model_config = SettingsConfigDict(
        env_prefix="AGENT_OS_",
        env_file=".env",
        extra="ignore",
    )

    @property
    def data_dir(self) -> Path:
        return self.sources_root


def load_yaml_config(path: Path) -> Dict[str, Any]:
    """
    加载 YAML 配置文件 / Load the YAML tuning file.

    A missing file yields an empty mapping so every component falls back to
    its built-in defaults.

    Raises:
        ValueError: 文件顶层不是映射 / The file does not hold a top-level mapping.
    """
    config_path = Path(path)
    if not config_path.exists():
        return {}

    loaded = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    if not isinstance(loaded, dict):
        raise ValueError(f"config file must contain a top-level mapping: {config_path}")
    return loaded


settings = Settings()
config: Dict[str, Any] = load_yaml_config(settings.config_path)
