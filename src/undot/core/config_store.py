"""
键值配置存储 - YAML 文件，键使用点号分隔的层级路径（如 git.defaultTime）
"""
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from loguru import logger

from .errors import ConfigStoreError


class ConfigManager:
    """YAML 键值配置"""

    def __init__(self, config_file: Union[str, Path]):
        self.config_file = Path(config_file)

    def load(self) -> Dict[str, Any]:
        if not self.config_file.exists():
            return {}
        try:
            with open(self.config_file, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigStoreError(f"读取配置失败 {self.config_file}: {e}") from e
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigStoreError(f"配置文件格式错误，顶层必须是映射: {self.config_file}")
        return data

    def save(self, data: Dict[str, Any]) -> None:
        try:
            self.config_file.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_file, 'w', encoding='utf-8') as f:
                yaml.safe_dump(data, f, default_flow_style=False, allow_unicode=True, sort_keys=False)
        except OSError as e:
            raise ConfigStoreError(f"保存配置失败 {self.config_file}: {e}") from e

    def get(self, key: str, default: Any = None) -> Any:
        node: Any = self.load()
        for part in key.split('.'):
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]
        return node

    def has(self, key: str) -> bool:
        sentinel = object()
        return self.get(key, sentinel) is not sentinel

    def set(self, key: str, value: Any) -> Optional[Any]:
        """设置值，返回旧值（不存在时为 None）"""
        data = self.load()
        parts = key.split('.')
        node = data
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child
        previous = node.get(parts[-1])
        node[parts[-1]] = value
        self.save(data)
        logger.debug(f"配置 {key} = {value!r}")
        return previous

    def remove(self, key: str) -> bool:
        """删除键，空的父级映射一并删除；键不存在时返回 False"""
        data = self.load()
        parts = key.split('.')
        trail = [data]
        for part in parts[:-1]:
            child = trail[-1].get(part)
            if not isinstance(child, dict):
                return False
            trail.append(child)

        if parts[-1] not in trail[-1]:
            return False
        del trail[-1][parts[-1]]

        for depth in range(len(parts) - 1, 0, -1):
            if trail[depth]:
                break
            del trail[depth - 1][parts[depth - 1]]

        self.save(data)
        logger.debug(f"配置 {key} 已删除")
        return True

    def get_all(self) -> Dict[str, Any]:
        return self.load()
