"""
仓库后端模块 - 撤销引擎只通过 RepositoryBackend 接口操作仓库
"""
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Union

from loguru import logger

from .errors import GitError
from .models import RepoStatus


class RepositoryBackend(ABC):
    """仓库操作接口"""

    @abstractmethod
    def get_status(self) -> RepoStatus:
        """返回工作区状态，不是仓库时抛出 GitError"""

    @abstractmethod
    def reset_to_ref(self, ref: str, hard: bool = True) -> None:
        """把当前分支重置到 ref"""

    @abstractmethod
    def restore_from_backup(self, ref: str) -> None:
        """用备份引用恢复当前分支"""

    @abstractmethod
    def list_refs(self) -> List[str]:
        """列出本地分支和标签"""

    @abstractmethod
    def current_head_hash(self) -> str:
        """当前 HEAD 的完整提交哈希"""

    @abstractmethod
    def create_branch(self, name: str, start_point: str = "HEAD") -> None:
        """在 start_point 处创建分支，不切换"""

    @abstractmethod
    def delete_branch(self, name: str) -> None:
        """强制删除本地分支"""


class GitManager(RepositoryBackend):
    """通过 git 命令行实现的仓库后端"""

    def __init__(self, repo_path: Union[str, Path], git_executable: str = "git"):
        self.repo_path = Path(repo_path)
        self.git_executable = git_executable

    def _run(self, *args: str) -> str:
        cmd = [self.git_executable, "-C", str(self.repo_path), *args]
        logger.debug(f"执行: {' '.join(cmd)}")
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, check=False)
        except OSError as e:
            raise GitError(f"无法执行 git: {e}") from e

        if result.returncode != 0:
            stderr = result.stderr.strip() or result.stdout.strip()
            raise GitError(f"git {' '.join(args)} 失败: {stderr}")
        return result.stdout.strip()

    def is_repo(self) -> bool:
        try:
            return self._run("rev-parse", "--is-inside-work-tree") == "true"
        except GitError:
            return False

    def get_status(self) -> RepoStatus:
        if not self.is_repo():
            raise GitError(f"不是 git 仓库: {self.repo_path}")

        # 未跟踪的文件也视为脏工作区
        porcelain = self._run("status", "--porcelain")
        try:
            current_ref = self._run("symbolic-ref", "--short", "HEAD")
        except GitError:
            current_ref = "HEAD"
        return RepoStatus(is_clean=porcelain == "", current_ref=current_ref)

    def reset_to_ref(self, ref: str, hard: bool = True) -> None:
        mode = "--hard" if hard else "--mixed"
        self._run("reset", mode, ref)
        logger.info(f"已重置到 {ref} ({mode})")

    def resolve(self, ref: str) -> str:
        return self._run("rev-parse", "--verify", f"{ref}^{{commit}}")

    def restore_from_backup(self, ref: str) -> None:
        try:
            backup_head = self.resolve(ref)
        except GitError as e:
            raise GitError(f"备份引用不可访问: {ref}") from e

        self._run("reset", "--hard", ref)

        current_head = self.current_head_hash()
        if current_head != backup_head:
            raise GitError(
                f"恢复校验失败: HEAD 为 {current_head[:8]}，备份为 {backup_head[:8]}"
            )
        logger.info(f"已从备份 {ref} 恢复")

    def list_refs(self) -> List[str]:
        output = self._run(
            "for-each-ref", "--format=%(refname:short)", "refs/heads", "refs/tags"
        )
        return [line for line in output.splitlines() if line]

    def current_head_hash(self) -> str:
        return self._run("rev-parse", "HEAD")

    def create_branch(self, name: str, start_point: str = "HEAD") -> None:
        self._run("branch", name, start_point)
        logger.info(f"已创建分支 {name} -> {start_point}")

    def delete_branch(self, name: str) -> None:
        self._run("branch", "-D", name)
        logger.info(f"已删除分支 {name}")
