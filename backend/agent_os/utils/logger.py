# -*- coding: utf-8 -*-
"""
Agent OS - 上下文预算与智能回退核心
Agent OS - Context Budgeting and Intelligent Fallback Core

Copyright © 2025-2026 Agent OS Team
License: PolyForm Noncommercial License 1.0.0

模块说明 / Module Description:
  集中式日志系统 - 提供统一的日志配置和管理
  Centralized Logging Module - Unified logging configuration and management

使用示例 / Usage:
    from agent_os.utils.logger import get_logger

    logger = get_logger(__name__)
    logger.info("Context loaded: %d files", count)
    logger.warning("Recovery failed for %s", operation_name)
"""

import logging
import sys
from logging.handlers import RotatingFileHandler

from agent_os.config import settings

log_dir = settings.log_dir
log_dir.mkdir(parents=True, exist_ok=True)

# Define log format
# 定义日志格式
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def get_logger(name: str) -> logging.Logger:
    """
    获取或创建指定名称的logger

    Get or create a logger with the specified name.

    Creates a logger with a stdout console handler and a rotating file
    handler (10MB max size, 5 backups) under ``settings.log_dir``.

    Args:
        name: Logger名称，通常为 __name__ / Logger name (typically __name__)

    Returns:
        配置好的logger实例 / Configured logger instance
    """
    logger = logging.getLogger(name)

    # Avoid adding handlers multiple times
    if logger.handlers:
        return logger

    level = logging.DEBUG if settings.debug else logging.INFO
    logger.setLevel(level)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
    logger.addHandler(console_handler)

    # File Handler (rotating, max 10MB, keep 5 backups)
    file_handler = RotatingFileHandler(
        log_dir / "agent_os.log",
        maxBytes=10 * 1024 * 1024,
        backupCount=5,
        encoding='utf-8'
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
    logger.addHandler(file_handler)

    return logger
