# -*- coding: utf-8 -*-
"""
Agent OS - 上下文预算与智能回退核心
Agent OS - Context Budgeting and Intelligent Fallback Core

Copyright © 2025-2026 Agent OS Team
License: PolyForm Noncommercial License 1.0.0

模块说明 / Module Description:
  路径安全工具 - 确保上下文源路径不逃逸源目录
  Path Safety Utilities - Keep context source paths inside the sources root.
"""

from pathlib import Path


def validate_path_within(child: Path, parent: Path) -> Path:
    """
    验证child路径在parent目录内

    Validate that *child* resolves to a path inside *parent* and return the
    resolved child path.

    Raises:
        ValueError: 如果子路径逃逸出父目录 / If the child escapes the parent directory

    Example:
        >>> validate_path_within(Path("sources/standards/a.md"), Path("sources"))
        PosixPath('/.../sources/standards/a.md')
        >>> validate_path_within(Path("sources/../etc"), Path("sources"))
        # Raises ValueError
    """
    resolved_parent = parent.resolve()
    resolved_child = child.resolve()

    try:
        resolved_child.relative_to(resolved_parent)
    except ValueError:
        raise ValueError(f"路径逃逸源目录 / Path escapes sources directory: {child}") from None

    return resolved_child
