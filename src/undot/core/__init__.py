"""undot 核心：历史存储、记录、安全检查、撤销执行与备份协调"""

from .backup import BackupCoordinator
from .config_store import ConfigManager
from .errors import (
    AlreadyUndoneError,
    ConfigStoreError,
    ExecutionFailureError,
    GitError,
    HistoryStoreError,
    NotFoundError,
    NotUndoableError,
    UndoError,
    UndotError,
    UnsafeStateError,
)
from .executor import UndoExecutor
from .git_manager import GitManager, RepositoryBackend
from .history_store import HistoryStore
from .models import (
    BackupInfo,
    BatchCommit,
    BatchUndoData,
    CommitUndoData,
    ConfigUndoData,
    MigrateUndoData,
    OperationRecord,
    OperationRequest,
    OperationStatus,
    OperationType,
    RepoStatus,
    SafetyResult,
    UndoLastReport,
    UndoOutcome,
)
from .recorder import OperationRecorder
from .safety import SafetyChecker
from .service import OperationHistory

__all__ = [
    # 服务
    'OperationHistory',
    'HistoryStore',
    'OperationRecorder',
    'SafetyChecker',
    'UndoExecutor',
    'BackupCoordinator',
    # 协作者
    'GitManager',
    'RepositoryBackend',
    'ConfigManager',
    # 模型
    'OperationRecord',
    'OperationRequest',
    'OperationType',
    'OperationStatus',
    'CommitUndoData',
    'MigrateUndoData',
    'BatchUndoData',
    'BatchCommit',
    'ConfigUndoData',
    'BackupInfo',
    'RepoStatus',
    'SafetyResult',
    'UndoOutcome',
    'UndoLastReport',
    # 异常
    'UndotError',
    'UndoError',
    'NotFoundError',
    'NotUndoableError',
    'AlreadyUndoneError',
    'UnsafeStateError',
    'ExecutionFailureError',
    'GitError',
    'ConfigStoreError',
    'HistoryStoreError',
]
