"""Application services"""

from .ai.ai_service import AIService, AIConfig, AITransformation
from .cleanup.cleanup_service import CleanupService, DatabaseOptimizer

__all__ = ['AIService', 'AIConfig', 'AITransformation', 'CleanupService', 'DatabaseOptimizer']
