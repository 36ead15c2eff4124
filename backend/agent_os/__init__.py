# -*- coding: utf-8 -*-
"""
Agent OS - 上下文预算与智能回退核心
Agent OS - Context Budgeting and Intelligent Fallback Core

Copyright © 2025-2026 Agent OS Team
License: PolyForm Noncommercial License 1.0.0
"""

__version__ = "0.1.0"
