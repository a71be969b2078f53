"""撤销引擎异常定义"""


class UndotError(Exception):
    """所有 undot 异常的基类"""


class GitError(UndotError):
    """git 命令执行失败"""


class ConfigStoreError(UndotError):
    """键值配置读写失败"""


class HistoryStoreError(UndotError):
    """历史文件读写失败"""


class UndoError(UndotError):
    """撤销流程中的错误"""

    def __init__(self, message: str, operation_id: str = ""):
        super().__init__(message)
        self.operation_id = operation_id


class NotFoundError(UndoError):
    """历史中不存在该操作"""


class NotUndoableError(UndoError):
    """操作被标记为不可撤销"""


class AlreadyUndoneError(UndoError):
    """操作已经撤销过"""


class UnsafeStateError(UndoError):
    """安全检查未通过，reason 为可读原因"""

    def __init__(self, reason: str, operation_id: str = ""):
        super().__init__(f"无法安全撤销操作: {reason}。使用 --force 强制执行", operation_id)
        self.reason = reason


class ExecutionFailureError(UndoError):
    """撤销步骤本身失败，记录保持 completed 以便人工检查后重试"""
