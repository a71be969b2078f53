"""操作记录器 - 外部操作成功后生成并写入历史记录"""

import getpass
import os
import platform
import secrets
import time
from typing import Set

from loguru import logger

from ..config import MAX_HISTORY_ENTRIES, __version__
from .history_store import HistoryStore
from .models import (
    OperationRecord,
    OperationRequest,
    OperationType,
    RecordMetadata,
    now_iso,
    parse_undo_data,
)


def generate_operation_id() -> str:
    return f"op_{int(time.time() * 1000)}_{secrets.token_hex(4)}"


def _current_user() -> str:
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return ""


class OperationRecorder:
    """操作记录器"""

    def __init__(self, store: HistoryStore, max_entries: int = MAX_HISTORY_ENTRIES):
        if max_entries < 1:
            raise ValueError("max_entries 必须大于 0")
        self.store = store
        self.max_entries = max_entries

    def _unique_id(self, existing: Set[str]) -> str:
        operation_id = generate_operation_id()
        while operation_id in existing:
            operation_id = generate_operation_id()
        return operation_id

    def build_metadata(self, request: OperationRequest) -> RecordMetadata:
        return RecordMetadata(
            working_directory=os.path.abspath(request.working_directory or os.getcwd()),
            user=_current_user(),
            platform=platform.system().lower(),
            python_version=platform.python_version(),
            tool_version=__version__,
        )

    def record(self, request: OperationRequest) -> str:
        """记录一次已成功完成的操作

        超过上限时淘汰最旧的记录并清理它们引用的备份。

        Args:
            request: 操作信息

        Returns:
            str: 新记录的 ID
        """
        op_type = OperationType(request.type)
        records = self.store.load()

        record = OperationRecord(
            id=self._unique_id({r.id for r in records}),
            timestamp=now_iso(),
            type=op_type,
            command=request.command,
            description=request.description,
            metadata=self.build_metadata(request),
            args=dict(request.args),
            undoable=request.undoable,
            result=dict(request.result),
            undo_data=parse_undo_data(op_type, request.undo_data),
            backup_info=request.backup_info,
            duration=request.duration,
        )

        records.insert(0, record)
        evicted = records[self.max_entries:]
        del records[self.max_entries:]

        self.store.save(records)

        for old in evicted:
            logger.debug(f"淘汰历史记录 {old.id}")
            self.store.backups.cleanup(old)

        logger.info(f"记录操作 {record.id}: {record.type.value} - {record.description}")
        return record.id
