"""历史导出 - JSON 或 CSV"""

import csv
import io
import json
from pathlib import Path
from typing import List, Union

from loguru import logger

from .models import OperationRecord, now_iso

EXPORT_VERSION = "1.0.0"
CSV_COLUMNS = ['id', 'timestamp', 'type', 'command', 'description', 'status', 'undoable', 'duration']
SUPPORTED_FORMATS = ('json', 'csv')


def records_to_json(records: List[OperationRecord]) -> str:
    payload = {
        'exportedAt': now_iso(),
        'version': EXPORT_VERSION,
        'totalEntries': len(records),
        'entries': [r.to_dict() for r in records],
    }
    return json.dumps(payload, ensure_ascii=False, indent=2)


def records_to_csv(records: List[OperationRecord]) -> str:
    """扁平化为 CSV，所有单元格都加引号；没有记录时返回空字符串"""
    if not records:
        return ""
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator='\n')
    writer.writerow(CSV_COLUMNS)
    for r in records:
        writer.writerow([
            r.id,
            r.timestamp,
            r.type.value,
            r.command,
            r.description,
            r.status.value,
            str(r.undoable).lower(),
            r.duration,
        ])
    return buffer.getvalue()


def export_history(records: List[OperationRecord], output_file: Union[str, Path], fmt: str = 'json') -> int:
    """导出记录到文件

    Args:
        records: 要导出的记录
        output_file: 输出文件路径
        fmt: 'json' 或 'csv'

    Returns:
        int: 导出的记录数
    """
    fmt = fmt.lower()
    if fmt == 'json':
        content = records_to_json(records)
    elif fmt == 'csv':
        content = records_to_csv(records)
    else:
        raise ValueError(f"不支持的导出格式: {fmt}")

    output_file = Path(output_file)
    output_file.parent.mkdir(parents=True, exist_ok=True)
    output_file.write_text(content, encoding='utf-8')
    logger.info(f"已导出 {len(records)} 条记录到 {output_file}")
    return len(records)
