"""undot 数据模型

操作记录以 JSON 持久化，字段名沿用 camelCase，to_dict/from_dict 负责转换。
撤销数据按操作类型使用各自的 dataclass，见 UNDO_DATA_TYPES。
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from dateutil import parser as date_parser


class OperationType(str, Enum):
    """可记录的操作类型（封闭集合）"""
    COMMIT = "commit"
    MIGRATE = "migrate"
    BATCH = "batch"
    CONFIG = "config"


class OperationStatus(str, Enum):
    """记录状态，completed -> undone 单向转换"""
    COMPLETED = "completed"
    UNDONE = "undone"


def now_iso() -> str:
    return datetime.now().isoformat()


def parse_timestamp(value: Union[str, datetime, date]) -> datetime:
    """解析时间戳，带时区的时间统一转换为本地无时区时间

    Args:
        value: ISO 字符串、datetime 或 date

    Returns:
        datetime: 无时区的本地时间
    """
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime(value.year, value.month, value.day)
    else:
        dt = date_parser.isoparse(str(value))
    if dt.tzinfo is not None:
        dt = dt.astimezone().replace(tzinfo=None)
    return dt


class _Missing:
    """区分「没有记录」与「记录为 null」"""

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING = _Missing()


@dataclass
class CommitUndoData:
    """commit 操作的撤销数据"""
    commit_hash: Optional[str] = None
    parent_hash: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {'commitHash': self.commit_hash, 'parentHash': self.parent_hash}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CommitUndoData":
        return cls(commit_hash=data.get('commitHash'), parent_hash=data.get('parentHash'))


@dataclass
class MigrateUndoData:
    """migrate 操作的撤销数据，真正的恢复依赖 backup_info"""
    original_head: Optional[str] = None
    migrated_commits: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {'originalHead': self.original_head, 'migratedCommits': list(self.migrated_commits)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MigrateUndoData":
        return cls(
            original_head=data.get('originalHead'),
            migrated_commits=list(data.get('migratedCommits') or []),
        )


@dataclass
class BatchCommit:
    """批量提交中的单个提交"""
    hash: str
    parent_hash: Optional[str] = None


@dataclass
class BatchUndoData:
    """batch 操作的撤销数据，created_commits 按创建顺序（最早的在前）"""
    created_commits: List[BatchCommit] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'createdCommits': [
                {'hash': c.hash, 'parentHash': c.parent_hash} for c in self.created_commits
            ]
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BatchUndoData":
        commits = [
            BatchCommit(hash=c['hash'], parent_hash=c.get('parentHash'))
            for c in data.get('createdCommits') or []
        ]
        return cls(created_commits=commits)


@dataclass
class ConfigUndoData:
    """config 操作的撤销数据，previous_value 为 None 表示修改前该键不存在"""
    key: Optional[str] = None
    previous_value: Any = MISSING

    @property
    def has_previous_value(self) -> bool:
        return self.previous_value is not MISSING

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {'key': self.key}
        if self.has_previous_value:
            data['previousValue'] = self.previous_value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConfigUndoData":
        return cls(key=data.get('key'), previous_value=data.get('previousValue', MISSING))


UndoData = Union[CommitUndoData, MigrateUndoData, BatchUndoData, ConfigUndoData]

UNDO_DATA_TYPES = {
    OperationType.COMMIT: CommitUndoData,
    OperationType.MIGRATE: MigrateUndoData,
    OperationType.BATCH: BatchUndoData,
    OperationType.CONFIG: ConfigUndoData,
}


def parse_undo_data(op_type: OperationType, data: Any) -> Optional[UndoData]:
    """把 JSON 字典或已构造的对象转换为对应类型的撤销数据"""
    if data is None:
        return None
    expected = UNDO_DATA_TYPES[op_type]
    if isinstance(data, expected):
        return data
    if isinstance(data, dict):
        return expected.from_dict(data)
    raise ValueError(f"{op_type.value} 操作的撤销数据类型不匹配: {type(data).__name__}")


@dataclass
class BackupInfo:
    """备份引用：备份分支和/或备份目录"""
    backup_branch: Optional[str] = None
    backup_path: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {'backupBranch': self.backup_branch, 'backupPath': self.backup_path}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["BackupInfo"]:
        if not data:
            return None
        return cls(backup_branch=data.get('backupBranch'), backup_path=data.get('backupPath'))


@dataclass
class RecordMetadata:
    """记录时的环境信息，撤销时用于安全检查"""
    working_directory: str
    user: str = ""
    platform: str = ""
    python_version: str = ""
    tool_version: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            'workingDirectory': self.working_directory,
            'user': self.user,
            'platform': self.platform,
            'pythonVersion': self.python_version,
            'toolVersion': self.tool_version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RecordMetadata":
        return cls(
            working_directory=data.get('workingDirectory', ''),
            user=data.get('user', ''),
            platform=data.get('platform', ''),
            python_version=data.get('pythonVersion', ''),
            tool_version=data.get('toolVersion', ''),
        )


@dataclass
class OperationRecord:
    """一条操作历史记录"""
    id: str
    timestamp: str
    type: OperationType
    command: str
    description: str
    metadata: RecordMetadata
    args: Dict[str, Any] = field(default_factory=dict)
    status: OperationStatus = OperationStatus.COMPLETED
    undoable: bool = True
    result: Dict[str, Any] = field(default_factory=dict)
    undo_data: Optional[UndoData] = None
    backup_info: Optional[BackupInfo] = None
    duration: float = 0
    undone_at: Optional[str] = None
    undo_result: Optional[Dict[str, Any]] = None

    @property
    def is_undone(self) -> bool:
        return self.status == OperationStatus.UNDONE

    @property
    def created_at(self) -> datetime:
        return parse_timestamp(self.timestamp)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'id': self.id,
            'timestamp': self.timestamp,
            'type': self.type.value,
            'command': self.command,
            'args': self.args,
            'description': self.description,
            'status': self.status.value,
            'undoable': self.undoable,
            'metadata': self.metadata.to_dict(),
            'result': self.result,
            'backupInfo': self.backup_info.to_dict() if self.backup_info else None,
            'undoData': self.undo_data.to_dict() if self.undo_data else None,
            'duration': self.duration,
        }
        if self.undone_at is not None:
            data['undoneAt'] = self.undone_at
            data['undoResult'] = self.undo_result
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OperationRecord":
        op_type = OperationType(data['type'])
        return cls(
            id=data['id'],
            timestamp=data['timestamp'],
            type=op_type,
            command=data.get('command', ''),
            description=data.get('description', ''),
            metadata=RecordMetadata.from_dict(data.get('metadata') or {}),
            args=data.get('args') or {},
            status=OperationStatus(data.get('status', OperationStatus.COMPLETED.value)),
            undoable=bool(data.get('undoable', True)),
            result=data.get('result') or {},
            undo_data=parse_undo_data(op_type, data.get('undoData')),
            backup_info=BackupInfo.from_dict(data.get('backupInfo')),
            duration=data.get('duration') or 0,
            undone_at=data.get('undoneAt'),
            undo_result=data.get('undoResult'),
        )


@dataclass
class OperationRequest:
    """外部操作成功后交给记录器的信息"""
    type: OperationType
    command: str
    description: str
    args: Dict[str, Any] = field(default_factory=dict)
    undoable: bool = True
    result: Dict[str, Any] = field(default_factory=dict)
    undo_data: Optional[UndoData] = None
    backup_info: Optional[BackupInfo] = None
    duration: float = 0
    working_directory: Optional[str] = None


@dataclass
class SafetyResult:
    """安全检查结果"""
    safe: bool
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {'safe': self.safe, 'reason': self.reason}


@dataclass
class RepoStatus:
    """仓库状态"""
    is_clean: bool
    current_ref: str = ""


@dataclass
class UndoOutcome:
    """单次撤销（或预演）的结果"""
    operation_id: str
    dry_run: bool = False
    record: Optional[OperationRecord] = None
    safety: Optional[SafetyResult] = None
    undo_result: Optional[Dict[str, Any]] = None
    message: str = ""


@dataclass
class UndoAttempt:
    """undo_last 中单条记录的尝试结果"""
    operation_id: str
    success: bool
    outcome: Optional[UndoOutcome] = None
    error: Optional[str] = None
    error_type: Optional[str] = None


@dataclass
class UndoLastReport:
    """undo_last 的汇总结果"""
    requested: int
    attempts: List[UndoAttempt] = field(default_factory=list)

    @property
    def successful(self) -> List[UndoAttempt]:
        return [a for a in self.attempts if a.success]

    @property
    def failed(self) -> List[UndoAttempt]:
        return [a for a in self.attempts if not a.success]

    @property
    def success(self) -> bool:
        return not self.failed and len(self.attempts) == self.requested

    @property
    def message(self) -> str:
        return f"已撤销 {len(self.successful)}/{self.requested} 个操作"


@dataclass
class ClearResult:
    """清理历史的结果"""
    removed_count: int = 0
    remaining_count: int = 0
