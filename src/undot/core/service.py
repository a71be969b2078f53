"""
操作历史服务 - 组合记录、安全检查、撤销与备份清理的高级接口
"""
from pathlib import Path
from typing import List, Optional, Union

from loguru import logger

from ..config import Settings
from .backup import BackupCoordinator, RepoFactory
from .config_store import ConfigManager
from .errors import (
    AlreadyUndoneError,
    HistoryStoreError,
    NotFoundError,
    NotUndoableError,
    UndotError,
    UnsafeStateError,
)
from .executor import UndoExecutor
from .exporter import export_history
from .git_manager import GitManager
from .history_store import HistoryStore, TimeFilter
from .models import (
    BatchUndoData,
    ClearResult,
    CommitUndoData,
    MigrateUndoData,
    OperationRecord,
    OperationRequest,
    OperationStatus,
    OperationType,
    SafetyResult,
    UndoAttempt,
    UndoLastReport,
    UndoOutcome,
    now_iso,
)
from .recorder import OperationRecorder
from .safety import SafetyChecker


class OperationHistory:
    """操作历史服务

    所有协作者通过构造函数注入，便于在测试中替换为假实现。
    """

    def __init__(
        self,
        store: HistoryStore,
        recorder: OperationRecorder,
        checker: SafetyChecker,
        executor: UndoExecutor,
        backups: BackupCoordinator,
        max_backup_age_days: int,
    ):
        self.store = store
        self.recorder = recorder
        self.checker = checker
        self.executor = executor
        self.backups = backups
        self.max_backup_age_days = max_backup_age_days

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        repo_factory: RepoFactory = GitManager,
        config_store: Optional[ConfigManager] = None,
    ) -> "OperationHistory":
        backups = BackupCoordinator(settings.backup_dir, repo_factory)
        store = HistoryStore(settings.history_file, backups, settings.max_backup_age_days)
        return cls(
            store=store,
            recorder=OperationRecorder(store, settings.max_entries),
            checker=SafetyChecker(repo_factory),
            executor=UndoExecutor(
                config_store or ConfigManager(settings.config_store_file), repo_factory
            ),
            backups=backups,
            max_backup_age_days=settings.max_backup_age_days,
        )

    def record(self, request: OperationRequest) -> Optional[str]:
        """记录已完成的操作；写入失败只记录错误，不影响已完成的操作本身

        请求本身不合法（未知类型、撤销数据与类型不匹配）时同样只记录错误，
        此时不会写入任何记录。
        """
        try:
            return self.recorder.record(request)
        except HistoryStoreError as e:
            logger.error(f"记录操作失败，该操作将无法撤销: {e}")
            return None
        except ValueError as e:
            logger.error(f"操作记录请求无效，该操作将无法撤销: {e}")
            return None

    def get_history(
        self,
        limit: Optional[int] = 20,
        type: Optional[Union[OperationType, str]] = None,
        since: TimeFilter = None,
        until: TimeFilter = None,
        undoable_only: bool = False,
    ) -> List[OperationRecord]:
        return self.store.query(
            type=type, since=since, until=until, undoable_only=undoable_only, limit=limit
        )

    def get_operation(self, operation_id: str) -> OperationRecord:
        record = self.store.get(operation_id)
        if record is None:
            raise NotFoundError(f"历史中不存在操作 {operation_id}", operation_id)
        return record

    def check_undo_safety(self, operation_id: str) -> SafetyResult:
        return self.checker.check_undo_safety(self.get_operation(operation_id))

    def undo(self, operation_id: str, force: bool = False, dry_run: bool = False) -> UndoOutcome:
        """撤销指定操作

        Args:
            operation_id: 操作 ID
            force: 安全检查不通过时仍然执行
            dry_run: 只返回预演结果，不做任何修改

        Returns:
            UndoOutcome: 撤销结果或预演结果

        Raises:
            NotFoundError, NotUndoableError, AlreadyUndoneError, UnsafeStateError:
                校验失败，不会修改任何状态
            ExecutionFailureError: 还原步骤失败，记录保持 completed
        """
        return self._undo_record(self.get_operation(operation_id), force, dry_run)

    def _undo_record(
        self,
        record: OperationRecord,
        force: bool,
        dry_run: bool,
        expected_head: Optional[str] = None,
    ) -> UndoOutcome:
        operation_id = record.id
        if not record.undoable:
            raise NotUndoableError(f"操作 {operation_id} 不可撤销", operation_id)
        if record.is_undone:
            raise AlreadyUndoneError(f"操作 {operation_id} 已经撤销过", operation_id)

        safety = self.checker.check_undo_safety(record, expected_head)
        if not safety.safe:
            if not force:
                raise UnsafeStateError(safety.reason or "未知原因", operation_id)
            logger.warning(f"强制撤销 {operation_id}，忽略安全检查: {safety.reason}")

        if dry_run:
            return UndoOutcome(
                operation_id=operation_id,
                dry_run=True,
                record=record,
                safety=safety,
                message="撤销预演完成",
            )

        logger.info(f"开始撤销: {record.description}")
        undo_result = self.executor.execute(record)
        self._mark_undone(record, undo_result)
        logger.success(f"已撤销操作 {operation_id}: {record.description}")

        return UndoOutcome(
            operation_id=operation_id,
            record=record,
            safety=safety,
            undo_result=undo_result,
            message="操作已成功撤销",
        )

    def _mark_undone(self, record: OperationRecord, undo_result: dict) -> None:
        record.status = OperationStatus.UNDONE
        record.undone_at = now_iso()
        record.undo_result = undo_result
        if not self.store.replace(record):
            logger.warning(f"撤销完成但记录 {record.id} 已不在历史中")

    def undo_last(self, count: int = 1, force: bool = False, dry_run: bool = False) -> UndoLastReport:
        """按从新到旧的顺序撤销最近 count 个可撤销操作

        非 force 模式下遇到第一个失败即停止，之后的记录保持不变。
        预演时仓库不会变化，每条记录按前面的撤销完成后 HEAD 应处的位置做检查。
        """
        if count < 1:
            raise ValueError("撤销数量必须大于 0")

        candidates = [
            r for r in self.store.query(undoable_only=True, limit=None)
            if r.status == OperationStatus.COMPLETED
        ][:count]

        if not candidates:
            raise NotFoundError("没有可撤销的操作")
        if len(candidates) < count:
            raise NotFoundError(f"只有 {len(candidates)} 个可撤销的操作，请求撤销 {count} 个")

        report = UndoLastReport(requested=count)
        simulated_head: Optional[str] = None
        for record in candidates:
            try:
                outcome = self._undo_record(record, force, dry_run, simulated_head)
                report.attempts.append(UndoAttempt(record.id, success=True, outcome=outcome))
                if dry_run:
                    simulated_head = _head_after_undo(record, simulated_head)
            except UndotError as e:
                logger.error(f"撤销 {record.id} 失败: {e}")
                report.attempts.append(UndoAttempt(
                    record.id, success=False, error=str(e), error_type=type(e).__name__
                ))
                if not force:
                    break

        logger.info(report.message)
        return report

    def clear_history(
        self,
        older_than: TimeFilter = None,
        type: Optional[Union[OperationType, str]] = None,
        keep_backups: bool = False,
    ) -> ClearResult:
        return self.store.clear(older_than=older_than, type=type, keep_backups=keep_backups)

    def export_history(self, output_file: Union[str, Path], fmt: str = "json") -> int:
        records = self.store.query(limit=None)
        return export_history(records, output_file, fmt)

    def sweep_backups(self) -> int:
        return self.backups.sweep_expired(self.max_backup_age_days)


def _head_after_undo(record: OperationRecord, head: Optional[str]) -> Optional[str]:
    """撤销该记录后 HEAD 应处的提交，未知时保持传入的 head"""
    data = record.undo_data
    if isinstance(data, CommitUndoData) and data.parent_hash:
        return data.parent_hash
    if isinstance(data, BatchUndoData) and data.created_commits and data.created_commits[0].parent_hash:
        return data.created_commits[0].parent_hash
    if isinstance(data, MigrateUndoData) and data.original_head:
        return data.original_head
    return head
