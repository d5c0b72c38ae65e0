"""
全局异常处理器（DRF 入口）：
1) BizError 及子类 → 直接转换为 {code, message, data, extra}
2) DRF 内置异常（Validation/Authentication/Permission/NotFound/Throttled）→ 映射为 BizError
3) 其余异常 → 记录完整日志，返回 500 标准格式，不向调用方暴露内部细节
"""

from typing import Any

from django.db import DatabaseError
from rest_framework import status
from rest_framework.exceptions import (
    ValidationError as DRFValidationError,
    AuthenticationFailed,
    NotAuthenticated,
    PermissionDenied as DRFPermissionDenied,
    NotFound as DRFNotFound,
    Throttled,
)
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

from .exceptions import (
    BizError,
    ValidationError as BizValidationError,
    AuthError,
    PermissionDeniedError,
    NotFoundError,
    RateLimitError,
)
from .response import api_response, payload_from_biz_error
from .infra.logger import get_logger
from .utils.request_context import get_request_context

logger = get_logger(__name__)


def _extract_message(detail: Any) -> str:
    """从 DRF 的 detail（str / list / dict）中提取第一条可读错误信息"""
    if isinstance(detail, str):
        return detail

    if isinstance(detail, list) and detail:
        return _extract_message(detail[0])

    if isinstance(detail, dict) and detail:
        first_value = next(iter(detail.values()))
        return _extract_message(first_value)

    return str(detail)


def _handle_biz_error(exc: BizError) -> Response:
    payload = payload_from_biz_error(exc)
    return Response(payload, status=exc.http_status)


def _handle_unexpected_exception(exc: Exception, context: dict) -> Response:
    """
    程序 bug 或存储不可达：
    - 记录完整堆栈；
    - 返回统一的 500 响应，调用方不得假定任何写入已成功
    """
    ctx = get_request_context()
    req = context.get("request")
    user = getattr(req, "user", None)
    logger.exception(
        "Unhandled exception in API",
        exc_info=exc,
        extra={
            "path": getattr(req, "path", None),
            "method": getattr(req, "method", None),
            "user_id": getattr(user, "id", None) if user and getattr(user, "is_authenticated", False) else None,
        },
    )
    message = "内部服务器错误，请稍后重试"
    if isinstance(exc, DatabaseError):
        message = "存储服务暂时不可用，本次操作未生效"

    return api_response(
        code=50000,
        message=message,
        data=None,
        http_status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        extra={
            "view": context.get("view").__class__.__name__ if context.get("view") else None,
            "request_id": ctx.get("request_id"),
        },
    )


def _map_drf_exception_to_biz(exc: Exception) -> BizError | None:
    """把 DRF 内置异常映射为 BizError 子类，映射不到返回 None"""
    if isinstance(exc, DRFValidationError):
        message = _extract_message(exc.detail)
        return BizValidationError(message=message, extra={"raw_detail": exc.detail})

    if isinstance(exc, (AuthenticationFailed, NotAuthenticated)):
        return AuthError(message=_extract_message(getattr(exc, "detail", str(exc))))

    if isinstance(exc, DRFPermissionDenied):
        return PermissionDeniedError(message=_extract_message(getattr(exc, "detail", str(exc))))

    if isinstance(exc, DRFNotFound):
        return NotFoundError(message=_extract_message(getattr(exc, "detail", str(exc))))

    if isinstance(exc, Throttled):
        return RateLimitError(
            message=_extract_message(getattr(exc, "detail", str(exc))),
            extra={"wait": getattr(exc, "wait", None)},
        )

    return None


def custom_exception_handler(exc: Exception, context: dict) -> Response | None:
    """
    DRF 全局异常处理器（REST_FRAMEWORK["EXCEPTION_HANDLER"]）

    处理顺序：BizError → DRF 内置异常映射 → DRF 默认处理包一层 → 500
    """
    if isinstance(exc, BizError):
        return _handle_biz_error(exc)

    mapped = _map_drf_exception_to_biz(exc)
    if mapped is not None:
        return _handle_biz_error(mapped)

    drf_response = drf_exception_handler(exc, context)
    if drf_response is not None:
        raw_data = drf_response.data
        status_code = drf_response.status_code
        return api_response(
            code=40000 if status_code < 500 else 50000,
            message=_extract_message(raw_data),
            data=None,
            http_status=status_code,
            extra={"raw": raw_data},
        )

    return _handle_unexpected_exception(exc, context)
