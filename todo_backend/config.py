from __future__ import annotations

# todo_backend/config.py
import os
from dataclasses import dataclass
from typing import Any

import yaml

# 配置解析顺序：
# 1) 环境变量 TODO_DB_PATH（最高优先级，仅影响 db 路径）
# 2) config.yaml 的 test_db_path（当检测到测试环境时）
# 3) config.yaml 中的其余键
# 4) 兜底：下方 AppConfig 的默认值
_PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
_DEFAULT_DB = os.path.join(".", "data", "todos.db")

_STR_KEYS = ("db_path", "test_db_path", "journal_mode", "log_dir", "log_file", "log_level", "host")
_INT_KEYS = ("log_max_size_mb", "log_max_backups", "port")


@dataclass(frozen=True)
class AppConfig:
    db_path: str = _DEFAULT_DB
    journal_mode: str = "WAL"
    log_dir: str = "./logs"
    log_file: str = "app.log"
    log_max_size_mb: int = 50
    log_max_backups: int = 5
    log_level: str = "INFO"
    dev_mode: bool = True
    host: str = "127.0.0.1"
    port: int = 8080


def config_file_path() -> str:
    return os.environ.get("TODO_CONFIG") or os.path.join(_PROJECT_ROOT, "config.yaml")


def _read_config_yaml(path: str | None = None) -> dict[str, Any]:
    cfg_path = path or config_file_path()
    if not os.path.exists(cfg_path):
        return {}
    try:
        with open(cfg_path, "r", encoding="utf-8") as f:
            cfg = yaml.safe_load(f) or {}
        out: dict[str, Any] = {}
        for k in _STR_KEYS:
            v = cfg.get(k)
            if isinstance(v, str) and v.strip():
                out[k] = v.strip()
        for k in _INT_KEYS:
            v = cfg.get(k)
            if isinstance(v, int) and not isinstance(v, bool):
                out[k] = v
        if isinstance(cfg.get("dev_mode"), bool):
            out["dev_mode"] = cfg["dev_mode"]
        return out
    except Exception:
        # 配置文件损坏时按默认值启动
        return {}


def _is_test_env() -> bool:
    return (os.environ.get("APP_ENV") == "test") or (os.environ.get("PYTEST_CURRENT_TEST") is not None)


def resolve_db_path(cfg: dict[str, Any]) -> str:
    env_path = os.environ.get("TODO_DB_PATH")
    if env_path:
        return env_path
    if _is_test_env() and cfg.get("test_db_path"):
        return cfg["test_db_path"]
    return cfg.get("db_path") or _DEFAULT_DB


def load_config(path: str | None = None) -> AppConfig:
    """读取 YAML 配置并叠加环境变量，返回不可变的 AppConfig。"""
    cfg = _read_config_yaml(path)
    db_path = resolve_db_path(cfg)
    cfg.pop("test_db_path", None)
    cfg["db_path"] = db_path
    cfg["journal_mode"] = cfg.get("journal_mode", AppConfig.journal_mode).upper()
    return AppConfig(**cfg)
