"""
测试共用的假仓库、假配置和夹具
"""
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

from undot.config import Settings
from undot.core import (
    BackupCoordinator,
    GitError,
    HistoryStore,
    OperationHistory,
    RepoStatus,
    RepositoryBackend,
)
from undot.core.models import (
    CommitUndoData,
    OperationRecord,
    OperationRequest,
    OperationType,
    RecordMetadata,
)


class FakeRepo(RepositoryBackend):
    """内存中的仓库，reset 会移动 head"""

    def __init__(self, head: str = "abc123", clean: bool = True, refs: Optional[List[str]] = None):
        self.head = head
        self.clean = clean
        self.is_repo = True
        self.refs = list(refs or ["main"])
        self.fail_reset = False
        self.resets: List[tuple] = []
        self.restored: List[str] = []
        self.created: List[str] = []
        self.deleted: List[str] = []

    def get_status(self) -> RepoStatus:
        if not self.is_repo:
            raise GitError("not a git repository")
        return RepoStatus(is_clean=self.clean, current_ref="main")

    def reset_to_ref(self, ref: str, hard: bool = True) -> None:
        if self.fail_reset:
            raise GitError("reset failed")
        self.resets.append((ref, hard))
        self.head = ref

    def restore_from_backup(self, ref: str) -> None:
        if ref not in self.refs:
            raise GitError(f"unknown ref {ref}")
        self.restored.append(ref)

    def list_refs(self) -> List[str]:
        return list(self.refs)

    def current_head_hash(self) -> str:
        return self.head

    def create_branch(self, name: str, start_point: str = "HEAD") -> None:
        self.refs.append(name)
        self.created.append(name)

    def delete_branch(self, name: str) -> None:
        self.refs.remove(name)
        self.deleted.append(name)


class FakeConfigStore:
    """字典实现的键值配置"""

    def __init__(self, data: Optional[Dict[str, Any]] = None):
        self.data = dict(data or {})

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    def set(self, key: str, value: Any) -> Any:
        previous = self.data.get(key)
        self.data[key] = value
        return previous

    def remove(self, key: str) -> bool:
        return self.data.pop(key, None) is not None


@pytest.fixture
def repo():
    return FakeRepo()


@pytest.fixture
def repo_factory(repo):
    return lambda path: repo


@pytest.fixture
def workdir(tmp_path):
    path = tmp_path / "repo"
    path.mkdir()
    return path


@pytest.fixture
def settings(tmp_path):
    return Settings(home=tmp_path / "home")


@pytest.fixture
def config_store():
    return FakeConfigStore()


@pytest.fixture
def backups(settings, repo_factory):
    return BackupCoordinator(settings.backup_dir, repo_factory)


@pytest.fixture
def store(settings, backups):
    return HistoryStore(settings.history_file, backups, settings.max_backup_age_days)


@pytest.fixture
def history(settings, repo_factory, config_store):
    return OperationHistory.from_settings(settings, repo_factory=repo_factory, config_store=config_store)


def commit_request(workdir: Path, commit_hash: str, parent_hash: str, **kwargs) -> OperationRequest:
    return OperationRequest(
        type=OperationType.COMMIT,
        command="commit",
        description=f"commit {commit_hash}",
        result={'commitHash': commit_hash},
        undo_data=CommitUndoData(commit_hash=commit_hash, parent_hash=parent_hash),
        working_directory=str(workdir),
        **kwargs,
    )


def make_record(
    record_id: str,
    timestamp: str = "2024-01-01T12:00:00",
    type: OperationType = OperationType.COMMIT,
    working_directory: str = "/tmp",
    **kwargs,
) -> OperationRecord:
    return OperationRecord(
        id=record_id,
        timestamp=timestamp,
        type=type,
        command=type.value,
        description=f"{type.value} {record_id}",
        metadata=RecordMetadata(working_directory=working_directory),
        **kwargs,
    )


def iso(year: int, month: int, day: int) -> str:
    return datetime(year, month, day, 12, 0, 0).isoformat()
