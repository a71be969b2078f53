"""撤销执行器

按操作类型分派到对应的还原策略。策略表覆盖 OperationType 的全部成员，
新增类型而未提供策略会在导入时报错。
"""

from pathlib import Path
from typing import Any, Callable, Dict

from loguru import logger

from .backup import RepoFactory
from .config_store import ConfigManager
from .errors import ConfigStoreError, ExecutionFailureError, GitError
from .git_manager import GitManager
from .models import (
    BatchUndoData,
    CommitUndoData,
    ConfigUndoData,
    MigrateUndoData,
    OperationRecord,
    OperationType,
)

UndoResultDict = Dict[str, Any]


class UndoExecutor:
    """撤销执行器"""

    def __init__(self, config_store: ConfigManager, repo_factory: RepoFactory = GitManager):
        """
        Args:
            config_store: 提供 get/set/remove 的键值配置，用于 config 类型
            repo_factory: 根据工作目录创建仓库后端
        """
        self.config_store = config_store
        self.repo_factory = repo_factory

    def execute(self, record: OperationRecord) -> UndoResultDict:
        """执行还原，任何失败都以 ExecutionFailureError 抛出"""
        strategy = STRATEGIES[record.type]
        try:
            return strategy(self, record)
        except ExecutionFailureError:
            raise
        except (GitError, ConfigStoreError, OSError) as e:
            logger.error(f"撤销 {record.id} 失败: {e}")
            raise ExecutionFailureError(f"撤销执行失败: {e}", record.id) from e

    def _repo(self, record: OperationRecord):
        # 空路径会落到进程当前目录
        if not record.metadata.working_directory:
            raise ExecutionFailureError("记录缺少工作目录，无法定位仓库", record.id)
        return self.repo_factory(Path(record.metadata.working_directory))

    def undo_commit(self, record: OperationRecord) -> UndoResultDict:
        data = record.undo_data
        if not isinstance(data, CommitUndoData) or not data.commit_hash or not data.parent_hash:
            raise ExecutionFailureError("commit 操作的撤销数据不完整", record.id)

        logger.info(f"撤销提交 {data.commit_hash[:8]}，重置到 {data.parent_hash[:8]}")
        self._repo(record).reset_to_ref(data.parent_hash, hard=True)
        return {
            'type': 'commit_undo',
            'removedCommit': data.commit_hash,
            'resetTo': data.parent_hash,
        }

    def undo_migrate(self, record: OperationRecord) -> UndoResultDict:
        info = record.backup_info
        if info is None or not info.backup_branch:
            raise ExecutionFailureError("没有可用于撤销迁移的备份信息", record.id)

        logger.info(f"从备份 {info.backup_branch} 恢复")
        self._repo(record).restore_from_backup(info.backup_branch)

        migrated = []
        if isinstance(record.undo_data, MigrateUndoData):
            migrated = list(record.undo_data.migrated_commits)
        if not migrated:
            migrated = list(record.result.get('migratedCommits') or [])
        return {
            'type': 'migration_undo',
            'restoredFrom': info.backup_branch,
            'migratedCommits': migrated,
        }

    def undo_batch(self, record: OperationRecord) -> UndoResultDict:
        data = record.undo_data
        if not isinstance(data, BatchUndoData) or not data.created_commits:
            raise ExecutionFailureError("batch 操作的撤销数据不完整", record.id)

        first = data.created_commits[0]
        reset_to = first.parent_hash
        if not reset_to:
            raise ExecutionFailureError("批量提交中第一个提交缺少父提交哈希", record.id)

        logger.info(f"撤销 {len(data.created_commits)} 个批量提交，重置到 {reset_to[:8]}")
        self._repo(record).reset_to_ref(reset_to, hard=True)
        return {
            'type': 'batch_undo',
            'removedCommits': [c.hash for c in data.created_commits],
            'resetTo': reset_to,
        }

    def undo_config(self, record: OperationRecord) -> UndoResultDict:
        data = record.undo_data
        if not isinstance(data, ConfigUndoData) or not data.key or not data.has_previous_value:
            raise ExecutionFailureError("config 操作的撤销数据不完整", record.id)

        if data.previous_value is None:
            # 修改前不存在该键
            self.config_store.remove(data.key)
            logger.info(f"已删除配置 {data.key}")
        else:
            self.config_store.set(data.key, data.previous_value)
            logger.info(f"已恢复配置 {data.key} = {data.previous_value!r}")
        return {
            'type': 'config_undo',
            'key': data.key,
            'restoredValue': data.previous_value,
        }


STRATEGIES: Dict[OperationType, Callable[[UndoExecutor, OperationRecord], UndoResultDict]] = {
    OperationType.COMMIT: UndoExecutor.undo_commit,
    OperationType.MIGRATE: UndoExecutor.undo_migrate,
    OperationType.BATCH: UndoExecutor.undo_batch,
    OperationType.CONFIG: UndoExecutor.undo_config,
}

_missing = set(OperationType) - set(STRATEGIES)
if _missing:
    raise RuntimeError(f"缺少撤销策略: {sorted(t.value for t in _missing)}")
