import json, logging, os, time, uuid, datetime as dt
from logging.handlers import RotatingFileHandler
from typing import Any, Optional

from .config import AppConfig

oplog = logging.getLogger("todo_backend.oplog")

# LogRecord 自带属性；其余字段视为 extra，写入 JSON
_RESERVED = set(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime"}

_HANDLER_MARK = "_todo_backend_handler"


class JsonFormatter(logging.Formatter):
    """One JSON object per line: time, level, logger, msg, plus any ``extra`` fields."""

    def format(self, record: logging.LogRecord) -> str:
        rec: dict[str, Any] = {
            "time": dt.datetime.fromtimestamp(record.created, dt.timezone.utc).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for k, v in record.__dict__.items():
            if k not in _RESERVED and not k.startswith("_"):
                rec[k] = v
        if record.exc_info:
            rec["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(rec, ensure_ascii=False, default=str)


class KeyValueFormatter(logging.Formatter):
    """Console text: ``time LEVEL msg key=value ...``."""

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        extras = " ".join(
            f"{k}={v}" for k, v in record.__dict__.items()
            if k not in _RESERVED and not k.startswith("_")
        )
        return f"{base} {extras}" if extras else base


def configure_logging(cfg: AppConfig) -> logging.Logger:
    """
    双路输出：滚动 JSON 文件 + 控制台。
    重复调用时先移除上一次安装的 handler，避免日志重复。
    """
    root = logging.getLogger()
    for h in list(root.handlers):
        if getattr(h, _HANDLER_MARK, False):
            root.removeHandler(h)
            h.close()

    level = logging.getLevelName(cfg.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO
    root.setLevel(level)

    os.makedirs(cfg.log_dir, exist_ok=True)
    file_handler = RotatingFileHandler(
        os.path.join(cfg.log_dir, cfg.log_file),
        maxBytes=cfg.log_max_size_mb * 1024 * 1024,
        backupCount=cfg.log_max_backups,
        encoding="utf-8",
    )
    file_handler.setFormatter(JsonFormatter())

    console = logging.StreamHandler()
    if cfg.dev_mode:
        console.setFormatter(KeyValueFormatter("%(asctime)s %(levelname)-5s %(message)s", datefmt="%H:%M:%S"))
    else:
        console.setFormatter(KeyValueFormatter("time=%(asctime)s level=%(levelname)s msg=%(message)r"))

    for h in (file_handler, console):
        setattr(h, _HANDLER_MARK, True)
        root.addHandler(h)
    return root


class LogContext:
    def __init__(self, action: str, request_id: Optional[str] = None):
        self.action = action
        self.request_id = request_id or str(uuid.uuid4())
        self.start = time.perf_counter()
        self.after = None
        self.payload = None
        self.entity_type = None
        self.entity_id = None

    def set_entity(self, etype: str, eid):
        self.entity_type = etype
        self.entity_id = str(eid)

    def set_after(self, obj): self.after = obj
    def set_payload(self, obj): self.payload = obj

    def record(self, result: str = "OK", err: Optional[str] = None) -> dict:
        return {
            "action": self.action,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "request_id": self.request_id,
            "payload": self.payload,
            "after": self.after,
            "result": result,
            "err_msg": err,
            "latency_ms": int((time.perf_counter() - self.start) * 1000),
        }

    def write(self, result: str = "OK", err: Optional[str] = None):
        level = logging.INFO if result == "OK" else logging.WARNING
        oplog.log(level, "operation", extra=self.record(result, err))
