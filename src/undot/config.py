"""
程序全局配置模块
"""
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import tomli

__version__ = "0.1.0"

# 默认数据目录，可通过 UNDOT_HOME 环境变量覆盖
DEFAULT_HOME = Path.home() / ".undot"
HOME_ENV_VAR = "UNDOT_HOME"

# 历史文件与备份目录
HISTORY_DIR_NAME = "history"
HISTORY_FILE_NAME = "operations.json"
BACKUP_DIR_NAME = "backups"
SETTINGS_FILE_NAME = "config.toml"
CONFIG_STORE_FILE_NAME = "config.yaml"

# 保留策略
MAX_HISTORY_ENTRIES = 100
MAX_BACKUP_AGE_DAYS = 30

# 备份分支前缀
BACKUP_BRANCH_PREFIX = "undot-backup-"

LOG_LEVELS = ("TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL")


@dataclass
class Settings:
    """运行时配置"""
    home: Path
    max_entries: int = MAX_HISTORY_ENTRIES
    max_backup_age_days: int = MAX_BACKUP_AGE_DAYS
    log_level: str = "INFO"

    @property
    def history_dir(self) -> Path:
        return self.home / HISTORY_DIR_NAME

    @property
    def history_file(self) -> Path:
        return self.history_dir / HISTORY_FILE_NAME

    @property
    def backup_dir(self) -> Path:
        return self.history_dir / BACKUP_DIR_NAME

    @property
    def config_store_file(self) -> Path:
        return self.home / CONFIG_STORE_FILE_NAME

    @property
    def log_dir(self) -> Path:
        return self.home / "logs"


def resolve_home() -> Path:
    env_home = os.environ.get(HOME_ENV_VAR)
    return Path(env_home).expanduser() if env_home else DEFAULT_HOME


def _positive_int(section: Dict[str, Any], key: str, default: int) -> int:
    value = section.get(key, default)
    if not isinstance(value, int) or isinstance(value, bool) or value < 1:
        raise ValueError(f"配置项 {key} 必须是正整数，当前值: {value!r}")
    return value


def load_settings(path: Optional[Path] = None, home: Optional[Path] = None) -> Settings:
    """加载配置

    Args:
        path: config.toml 路径，默认为 <home>/config.toml，不存在时使用默认值
        home: 数据目录，默认由 resolve_home() 决定

    Returns:
        Settings: 配置对象
    """
    home = home or resolve_home()
    path = path or home / SETTINGS_FILE_NAME

    data: Dict[str, Any] = {}
    if path.exists():
        with open(path, 'rb') as f:
            data = tomli.load(f)

    history = data.get('history', {})
    logging_section = data.get('logging', {})

    log_level = str(logging_section.get('level', 'INFO')).upper()
    if log_level not in LOG_LEVELS:
        raise ValueError(f"未知的日志级别: {log_level}")

    return Settings(
        home=home,
        max_entries=_positive_int(history, 'max_entries', MAX_HISTORY_ENTRIES),
        max_backup_age_days=_positive_int(history, 'max_backup_age_days', MAX_BACKUP_AGE_DAYS),
        log_level=log_level,
    )
