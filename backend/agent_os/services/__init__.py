"""
Services / 服务层
"""

from agent_os.services.context_service import ContextService

__all__ = ["ContextService"]
