"""
undot 包 - git 操作历史记录与撤销

记录提交、迁移、批量提交和配置修改，并在安全检查通过后撤销它们
"""
from .config import __version__, Settings, load_settings
from .core import (
    OperationHistory,
    OperationRequest,
    OperationType,
    UndoError,
    UndotError,
)

__all__ = [
    "__version__",
    "Settings",
    "load_settings",
    "OperationHistory",
    "OperationRequest",
    "OperationType",
    "UndoError",
    "UndotError",
]
