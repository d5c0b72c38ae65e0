"""
通用入参校验工具：失败时统一抛 apps.common.exceptions.ValidationError
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from django.core.exceptions import ValidationError as DjangoValidationError
from django.core.validators import URLValidator
from django.utils import timezone
from django.utils.dateparse import parse_datetime

from apps.common.exceptions import ValidationError

DANGEROUS_MARKERS = (
    "<script",
    "javascript:",
    "onerror=",
    "onload=",
    "<iframe",
    "<object",
    "<embed",
    "svg/onload",
)


def forbid_dangerous_html(value: str, *, field_name: str = "字段") -> None:
    """
    拒绝常见可执行 HTML 片段（<script>/<iframe>/javascript: 等）
    普通文本和 Markdown 放行
    """
    if not value:
        return
    lower = value.lower()
    if any(marker in lower for marker in DANGEROUS_MARKERS):
        raise ValidationError(message=f"{field_name} 含有潜在危险的 HTML/脚本片段")


def _as_text(value, *, field_name: str) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValidationError(message=f"{field_name}格式不正确")
    return value.strip()


def require_text(value: Optional[str], *, field_name: str, max_length: int | None = None) -> str:
    """必填文本：去掉首尾空白后不能为空，可选长度上限"""
    text = _as_text(value, field_name=field_name)
    if not text:
        raise ValidationError(message=f"{field_name}不能为空")
    return limit_text(text, field_name=field_name, max_length=max_length)


def limit_text(value: Optional[str], *, field_name: str, max_length: int | None) -> str:
    text = _as_text(value, field_name=field_name)
    if max_length is not None and len(text) > max_length:
        raise ValidationError(
            message=f"{field_name}长度不能超过 {max_length} 个字符",
            extra={"field": field_name, "max_length": max_length},
        )
    forbid_dangerous_html(text, field_name=field_name)
    return text


def validate_url_optional(url: Optional[str], *, allow_blank: bool = True, field_name: str = "URL") -> None:
    """可选 URL 校验，空值可放过"""
    if allow_blank and not url:
        return
    try:
        URLValidator(schemes=["http", "https"])(url)
    except DjangoValidationError as exc:
        raise ValidationError(message=f"{field_name} 格式不正确") from exc


def ensure_aware_datetime(value: datetime | str | None, *, field_name: str) -> datetime:
    """字符串或 naive datetime 统一转换为时区感知的 datetime"""
    if value is None or value == "":
        raise ValidationError(message=f"须指定{field_name}")
    if isinstance(value, str):
        dt = parse_datetime(value)
        if dt is None:
            raise ValidationError(message=f"{field_name}格式不正确，请使用 ISO 8601")
    elif isinstance(value, datetime):
        dt = value
    else:
        raise ValidationError(message=f"{field_name}格式不正确")
    if timezone.is_naive(dt):
        dt = timezone.make_aware(dt, timezone.get_default_timezone())
    return dt
