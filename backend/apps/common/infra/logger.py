"""
日志封装：提供统一的日志记录器

- 日志写入 settings.LOG_PATH/system.log，按日期轮转
- 支持 PLAIN（默认）与 JSON 两种格式，由 settings.LOG_FORMAT 控制
- 自动注入请求上下文（request_id、user_id、username、ip、path）
"""

from __future__ import annotations

import json
import logging
import logging.handlers
import os
from datetime import datetime
from pathlib import Path
from typing import Optional

from django.conf import settings as django_settings

_configured = False


class ArenaJSONFormatter(logging.Formatter):
    """
    JSON 格式化器：单行 JSON，便于日志平台采集

    输出示例：
    {"timestamp": "2026-10-19 16:57:25", "level": "INFO", "logger": "apps.competitions.services",
     "message": "比赛状态同步完成", "request_id": "3f2a9c1d0b7e"}
    """

    def format(self, record: logging.LogRecord) -> str:
        from apps.common.utils.request_context import get_request_context

        ctx = get_request_context()
        log_dict = {
            "timestamp": datetime.fromtimestamp(record.created).strftime("%Y-%m-%d %H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if ctx.get("username"):
            log_dict["username"] = ctx["username"]
        if ctx.get("user_id") is not None:
            log_dict["user_id"] = ctx["user_id"]
        if ctx.get("ip"):
            log_dict["ip_address"] = ctx["ip"]
        if ctx.get("path"):
            log_dict["request_path"] = ctx["path"]
        if ctx.get("request_id"):
            log_dict["request_id"] = ctx["request_id"]
        if record.exc_info:
            log_dict["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_dict, ensure_ascii=False, default=str)


class ArenaPlainFormatter(logging.Formatter):
    """
    PLAIN 格式化器：人类可读，易于 grep

    格式：{timestamp} {level} {logger} {message} [{username}|{user_id}|{ip_address}|{request_path}]
    """

    def format(self, record: logging.LogRecord) -> str:
        from apps.common.utils.request_context import get_request_context

        ctx = get_request_context()
        timestamp = datetime.fromtimestamp(record.created).strftime("%Y-%m-%d %H:%M:%S")
        username = ctx.get("username") or "-"
        user_id = str(ctx.get("user_id")) if ctx.get("user_id") is not None else "-"
        ip_address = ctx.get("ip") or "-"
        request_path = ctx.get("path") or "-"
        context_info = f"[{username}|{user_id}|{ip_address}|{request_path}]"

        log_line = f"{timestamp} {record.levelname} {record.name} {record.getMessage()} {context_info}"
        if record.exc_info:
            log_line += "\n" + self.formatException(record.exc_info)
        return log_line


class SafeTimedRotatingFileHandler(logging.handlers.TimedRotatingFileHandler):
    """轮转失败（文件被其他进程占用）时跳过本次轮转，下一次写入再尝试"""

    def doRollover(self):
        try:
            super().doRollover()
        except PermissionError:
            pass


def get_log_path_from_settings() -> str:
    """基于 settings.LOG_PATH 生成日志文件路径，默认 logs/system.log"""
    log_dir_path = Path(getattr(django_settings, "LOG_PATH", "logs"))
    log_dir_path.mkdir(parents=True, exist_ok=True)
    return str(log_dir_path / "system.log")


def build_formatter() -> logging.Formatter:
    """根据 settings.LOG_FORMAT 选择格式化器"""
    fmt = str(getattr(django_settings, "LOG_FORMAT", "plain")).lower()
    if fmt == "json":
        return ArenaJSONFormatter()
    return ArenaPlainFormatter()


def configure_logging(force: bool = False, *, level: Optional[int] = None, log_file_path: Optional[str] = None) -> None:
    """
    配置日志系统（默认只配置一次）

    - 按日期轮转（每天午夜），保留 30 天
    - DEBUG=true 时额外输出到控制台
    """
    global _configured
    if _configured and not force:
        return

    log_level = level if level is not None else logging.INFO
    log_file_path = log_file_path if log_file_path is not None else get_log_path_from_settings()

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    for handler in list(root_logger.handlers):
        handler.close()
    root_logger.handlers.clear()

    file_handler = SafeTimedRotatingFileHandler(
        filename=log_file_path,
        when="midnight",
        interval=1,
        backupCount=30,
        encoding="utf-8",
        delay=True,
    )
    file_handler.suffix = "%Y-%m-%d"
    file_handler.setLevel(log_level)

    formatter = build_formatter()
    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)

    if os.getenv("DEBUG", "False").lower() == "true":
        console_handler = logging.StreamHandler()
        console_handler.setLevel(logging.DEBUG)
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

    _configured = True


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    获取 logger 实例

        logger = get_logger(__name__)
        logger.info("比赛状态同步完成")
    """
    if not _configured:
        configure_logging()
    return logging.getLogger(name)


SENSITIVE_KEYS = {"password", "token", "secret", "authorization", "cron_secret", "github_token"}


def sanitize_extra(extra: Optional[dict] = None) -> dict:
    """过滤敏感字段，避免在日志中泄露密码/令牌"""
    if not extra:
        return {}
    return {k: ("***" if k.lower() in SENSITIVE_KEYS else v) for k, v in extra.items()}


def logger_extra(extra: Optional[dict] = None) -> dict:
    """封装 extra，自动过滤敏感字段"""
    return sanitize_extra(extra)
