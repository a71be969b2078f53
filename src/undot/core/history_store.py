"""历史存储

所有记录保存在一个 JSON 数组文件中（最新的在前），每次修改都整体重写。
只适用于单进程使用，没有文件锁。
"""

import json
import os
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Union

from loguru import logger

from ..config import MAX_BACKUP_AGE_DAYS
from .backup import BackupCoordinator
from .errors import HistoryStoreError
from .models import ClearResult, OperationRecord, OperationType, parse_timestamp

TimeFilter = Optional[Union[str, datetime]]


class HistoryStore:
    """操作历史存储"""

    def __init__(
        self,
        history_file: Path,
        backups: BackupCoordinator,
        max_backup_age_days: int = MAX_BACKUP_AGE_DAYS,
    ):
        """初始化历史存储

        Args:
            history_file: 历史 JSON 文件路径
            backups: 备份协调器，删除记录时用于清理备份
            max_backup_age_days: 初始化时清理超过该天数的备份
        """
        self.history_file = Path(history_file)
        self.backups = backups
        self.history_file.parent.mkdir(parents=True, exist_ok=True)
        if not self.history_file.exists():
            self.save([])
        self.backups.sweep_expired(max_backup_age_days)

    def load(self) -> List[OperationRecord]:
        """读取全部记录，文件损坏时移到一旁并返回空列表"""
        if not self.history_file.exists():
            return []

        try:
            with open(self.history_file, 'r', encoding='utf-8') as f:
                data = json.load(f)
            if not isinstance(data, list):
                raise ValueError("顶层必须是数组")
            return [OperationRecord.from_dict(item) for item in data]
        except OSError as e:
            raise HistoryStoreError(f"读取历史文件失败 {self.history_file}: {e}") from e
        except (ValueError, KeyError, TypeError) as e:
            self._quarantine(e)
            return []

    def _quarantine(self, error: Exception) -> None:
        stamp = datetime.now().strftime('%Y%m%d-%H%M%S')
        target = self.history_file.with_name(f"{self.history_file.name}.corrupt-{stamp}")
        logger.error(f"历史文件格式错误 ({error})，已移动到 {target}，将创建新的历史记录")
        try:
            os.replace(self.history_file, target)
        except OSError as e:
            raise HistoryStoreError(f"无法移走损坏的历史文件: {e}") from e

    def save(self, records: List[OperationRecord]) -> None:
        """整体写入全部记录"""
        tmp_file = self.history_file.with_name(self.history_file.name + ".tmp")
        try:
            with open(tmp_file, 'w', encoding='utf-8') as f:
                json.dump([r.to_dict() for r in records], f, ensure_ascii=False, indent=2)
            os.replace(tmp_file, self.history_file)
        except OSError as e:
            raise HistoryStoreError(f"保存历史文件失败 {self.history_file}: {e}") from e

    def query(
        self,
        type: Optional[Union[OperationType, str]] = None,
        since: TimeFilter = None,
        until: TimeFilter = None,
        undoable_only: bool = False,
        limit: Optional[int] = 20,
    ) -> List[OperationRecord]:
        """按条件查询记录（最新的在前）

        Args:
            type: 只返回该类型的记录
            since: 只返回该时间之后（含）的记录
            until: 只返回该时间之前（含）的记录
            undoable_only: 只返回可撤销的记录
            limit: 返回数量上限，None 表示不限制

        Returns:
            List[OperationRecord]: 匹配的记录
        """
        records = self.load()

        if type is not None:
            op_type = OperationType(type)
            records = [r for r in records if r.type == op_type]
        if since is not None:
            since_dt = parse_timestamp(since)
            records = [r for r in records if r.created_at >= since_dt]
        if until is not None:
            until_dt = parse_timestamp(until)
            records = [r for r in records if r.created_at <= until_dt]
        if undoable_only:
            records = [r for r in records if r.undoable]

        if limit is not None:
            records = records[:limit]
        return records

    def get(self, operation_id: str) -> Optional[OperationRecord]:
        for record in self.load():
            if record.id == operation_id:
                return record
        return None

    def replace(self, record: OperationRecord) -> bool:
        """用新内容替换同 id 的记录，记录不存在时返回 False"""
        records = self.load()
        for index, existing in enumerate(records):
            if existing.id == record.id:
                records[index] = record
                self.save(records)
                return True
        return False

    def clear(
        self,
        older_than: TimeFilter = None,
        type: Optional[Union[OperationType, str]] = None,
        keep_backups: bool = False,
    ) -> ClearResult:
        """删除同时满足所有条件的记录，不给条件时删除全部

        Args:
            older_than: 只删除早于该时间的记录
            type: 只删除该类型的记录
            keep_backups: 为 True 时保留被删除记录的备份

        Returns:
            ClearResult: 删除数量与剩余数量
        """
        records = self.load()
        cutoff = parse_timestamp(older_than) if older_than is not None else None
        op_type = OperationType(type) if type is not None else None

        def matches(record: OperationRecord) -> bool:
            if cutoff is not None and record.created_at >= cutoff:
                return False
            if op_type is not None and record.type != op_type:
                return False
            return True

        removed = [r for r in records if matches(r)]
        remaining = [r for r in records if not matches(r)]

        self.save(remaining)

        if not keep_backups:
            for record in removed:
                self.backups.cleanup(record)

        logger.info(f"已清理 {len(removed)} 条历史记录，剩余 {len(remaining)} 条")
        return ClearResult(removed_count=len(removed), remaining_count=len(remaining))
