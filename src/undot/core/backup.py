"""
备份协调模块 - 创建、清理与记录关联的备份，并按保留期清理过期备份

清理过程中的任何文件系统或 git 错误只记录日志，不会中断记录或撤销流程。
"""
import shutil
import time
from pathlib import Path
from typing import Callable, Optional

from loguru import logger

from ..config import BACKUP_BRANCH_PREFIX
from .errors import GitError
from .git_manager import GitManager, RepositoryBackend
from .models import BackupInfo, OperationRecord

RepoFactory = Callable[[Path], RepositoryBackend]


class BackupCoordinator:
    """备份协调器"""

    def __init__(self, backup_dir: Path, repo_factory: Optional[RepoFactory] = None):
        self.backup_dir = Path(backup_dir)
        self.repo_factory = repo_factory or GitManager
        self.backup_dir.mkdir(parents=True, exist_ok=True)

    def backup_path_for(self, operation_id: str) -> Path:
        """返回某个操作的备份目录（会被创建）"""
        path = self.backup_dir / operation_id
        path.mkdir(parents=True, exist_ok=True)
        return path

    def create_branch_backup(self, repo: RepositoryBackend, operation_id: str) -> BackupInfo:
        """在当前 HEAD 创建备份分支，用于迁移之类的历史改写

        Args:
            repo: 仓库后端
            operation_id: 关联的操作标识，用于命名备份分支

        Returns:
            BackupInfo: 可直接写入记录的备份引用
        """
        status = repo.get_status()
        if not status.is_clean:
            raise GitError("创建备份前仓库必须是干净的，请先提交或暂存修改")

        branch = f"{BACKUP_BRANCH_PREFIX}{operation_id}"
        repo.create_branch(branch)
        logger.info(f"已创建备份分支: {branch}")
        return BackupInfo(backup_branch=branch)

    def cleanup(self, record: OperationRecord) -> None:
        """删除记录引用的备份，失败只记录警告"""
        info = record.backup_info
        if info is None:
            return

        if info.backup_path:
            self._remove_path(Path(info.backup_path))

        if info.backup_branch:
            if not record.metadata.working_directory:
                logger.warning(f"记录缺少工作目录，跳过删除备份分支: {info.backup_branch}")
                return
            working_dir = Path(record.metadata.working_directory)
            if not working_dir.is_dir():
                logger.debug(f"工作目录不存在，跳过删除备份分支: {info.backup_branch}")
                return
            try:
                repo = self.repo_factory(working_dir)
                if info.backup_branch in repo.list_refs():
                    repo.delete_branch(info.backup_branch)
            except GitError as e:
                logger.warning(f"删除备份分支失败 {info.backup_branch}: {e}")

    def sweep_expired(self, max_age_days: int) -> int:
        """删除超过保留期的备份，不论是否仍被记录引用

        Returns:
            int: 删除的条目数
        """
        cutoff = time.time() - max_age_days * 86400
        removed = 0
        try:
            entries = list(self.backup_dir.iterdir())
        except OSError as e:
            logger.warning(f"无法扫描备份目录 {self.backup_dir}: {e}")
            return 0

        for entry in entries:
            try:
                expired = entry.stat().st_mtime < cutoff
            except OSError as e:
                logger.warning(f"无法读取备份信息 {entry}: {e}")
                continue
            if expired and self._remove_path(entry):
                removed += 1

        if removed:
            logger.info(f"已清理 {removed} 个过期备份")
        return removed

    def _remove_path(self, path: Path) -> bool:
        if not path.exists():
            return False
        try:
            if path.is_dir():
                shutil.rmtree(path)
            else:
                path.unlink()
            logger.debug(f"已删除备份: {path}")
            return True
        except OSError as e:
            logger.warning(f"删除备份失败 {path}: {e}")
            return False
