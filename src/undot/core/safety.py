"""
撤销安全检查 - 在真正改动仓库之前确认当前状态与记录时的假设一致
"""
import os
from pathlib import Path
from typing import Callable, Dict, Optional

from loguru import logger

from .backup import RepoFactory
from .errors import GitError
from .git_manager import GitManager, RepositoryBackend
from .models import (
    BatchUndoData,
    CommitUndoData,
    OperationRecord,
    OperationType,
    SafetyResult,
)

TypeCheck = Callable[[OperationRecord, RepositoryBackend, Optional[str]], SafetyResult]

SAFE = SafetyResult(safe=True)


def _head_matches(
    repo: RepositoryBackend, expected: str, label: str, head: Optional[str] = None
) -> SafetyResult:
    """head 不为空时代替仓库的实际 HEAD 参与比较"""
    if head is None:
        try:
            head = repo.current_head_hash()
        except GitError as e:
            logger.debug(f"读取 HEAD 失败: {e}")
            return SafetyResult(False, "无法确认当前仓库状态")

    if head != expected:
        return SafetyResult(
            False,
            f"{label}之后仓库又有新的提交 (HEAD {head[:8]})，撤销会丢失这些提交",
        )
    return SAFE


def _check_commit(record: OperationRecord, repo: RepositoryBackend, head: Optional[str]) -> SafetyResult:
    data = record.undo_data
    if not isinstance(data, CommitUndoData) or not data.commit_hash:
        return SafetyResult(False, "记录缺少提交哈希，无法确认仓库状态")
    return _head_matches(repo, data.commit_hash, "该提交", head)


def _check_migrate(record: OperationRecord, repo: RepositoryBackend, head: Optional[str]) -> SafetyResult:
    info = record.backup_info
    if info is None or not info.backup_branch:
        return SafetyResult(False, "记录没有备份分支信息，无法撤销迁移")
    try:
        refs = repo.list_refs()
    except GitError as e:
        logger.debug(f"列出引用失败: {e}")
        return SafetyResult(False, "无法确认备份分支是否存在")
    if info.backup_branch not in refs:
        return SafetyResult(False, f"备份分支 {info.backup_branch} 已不存在，无法安全撤销迁移")
    return SAFE


def _check_batch(record: OperationRecord, repo: RepositoryBackend, head: Optional[str]) -> SafetyResult:
    data = record.undo_data
    if not isinstance(data, BatchUndoData) or not data.created_commits:
        return SafetyResult(False, "记录缺少批量提交信息，无法确认仓库状态")
    return _head_matches(repo, data.created_commits[-1].hash, "批量提交", head)


def _check_config(record: OperationRecord, repo: RepositoryBackend, head: Optional[str]) -> SafetyResult:
    return SAFE


TYPE_CHECKS: Dict[OperationType, TypeCheck] = {
    OperationType.COMMIT: _check_commit,
    OperationType.MIGRATE: _check_migrate,
    OperationType.BATCH: _check_batch,
    OperationType.CONFIG: _check_config,
}

_missing = set(OperationType) - set(TYPE_CHECKS)
if _missing:
    raise RuntimeError(f"缺少安全检查: {sorted(t.value for t in _missing)}")


class SafetyChecker:
    """撤销安全检查器，只报告结果，从不自行跳过检查"""

    def __init__(self, repo_factory: RepoFactory = GitManager):
        self.repo_factory = repo_factory

    def check_undo_safety(self, record: OperationRecord, expected_head: Optional[str] = None) -> SafetyResult:
        """检查撤销该记录是否安全

        Args:
            record: 要撤销的记录
            expected_head: 预演连续撤销时，前面的撤销完成后 HEAD 应处的提交；
                为 None 时读取仓库的实际 HEAD

        Returns:
            SafetyResult: safe 为 False 时 reason 说明原因
        """
        if not record.metadata.working_directory:
            return SafetyResult(False, "记录缺少工作目录")

        working_dir = Path(record.metadata.working_directory)
        if not working_dir.is_dir() or not os.access(working_dir, os.R_OK | os.X_OK):
            return SafetyResult(False, f"工作目录已无法访问: {working_dir}")

        try:
            repo = self.repo_factory(working_dir)
            status = repo.get_status()
        except GitError as e:
            logger.debug(f"获取仓库状态失败: {e}")
            return SafetyResult(False, "不在 git 仓库中或 git 不可用")

        if not status.is_clean:
            return SafetyResult(False, "仓库有未提交的修改，请先提交或暂存后再撤销")

        try:
            return TYPE_CHECKS[record.type](record, repo, expected_head)
        except Exception as e:
            logger.exception(f"安全检查异常: {e}")
            return SafetyResult(False, f"安全检查失败: {e}")
