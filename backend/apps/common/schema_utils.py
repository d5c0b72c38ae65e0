# apps/common/schema_utils.py
from __future__ import annotations

from drf_spectacular.utils import OpenApiParameter, inline_serializer
from rest_framework import serializers

_CACHE: dict[str, type[serializers.Serializer]] = {}


def _cached(name: str, builder):
    """同名 inline serializer 只生成一次，避免 OpenAPI 组件冲突"""
    if name not in _CACHE:
        _CACHE[name] = builder()
    return _CACHE[name]


def _instantiate(cls, kwargs):
    if isinstance(cls, serializers.Serializer):
        return cls if not kwargs else cls.__class__(**kwargs)
    return cls(**kwargs) if kwargs else cls


def api_response_schema(
    name: str,
    data_fields: dict,
    *,
    extra_serializer: serializers.Field | None = None,
) -> serializers.Serializer:
    """
    构造统一响应 Schema：code/message/data/extra
    - name 用于生成唯一的响应/数据命名
    - data_fields 为 data 内部的字段定义
    """
    normalized_fields = {}
    for key, value in data_fields.items():
        if isinstance(value, type) and issubclass(value, serializers.Serializer):
            normalized_fields[key] = value()
        else:
            normalized_fields[key] = value
    data_serializer = inline_serializer(name=f"{name}Data", fields=normalized_fields)
    return inline_serializer(
        name=f"{name}Response",
        fields={
            "code": serializers.IntegerField(help_text="业务状态码，0 表示成功"),
            "message": serializers.CharField(help_text="提示信息"),
            "data": data_serializer,
            "extra": extra_serializer
            if extra_serializer
            else serializers.DictField(required=False, allow_null=True, help_text="附加信息"),
        },
    )


def pagination_meta_serializer():
    return _cached(
        "PaginationMeta",
        lambda: inline_serializer(
            name="PaginationMeta",
            fields={
                "page": serializers.IntegerField(help_text="当前页码（从 1 开始）"),
                "page_size": serializers.IntegerField(help_text="每页条数"),
                "total": serializers.IntegerField(help_text="总条数"),
                "total_pages": serializers.IntegerField(help_text="总页数", required=False, allow_null=True),
                "has_next": serializers.BooleanField(help_text="是否有下一页"),
                "has_previous": serializers.BooleanField(help_text="是否有上一页"),
            },
        ),
    )


def pagination_parameters() -> list[OpenApiParameter]:
    """通用分页查询参数"""
    return [
        OpenApiParameter(name="page", location=OpenApiParameter.QUERY, description="页码（从 1 开始）", required=False, type=int),
        OpenApiParameter(name="page_size", location=OpenApiParameter.QUERY, description="每页条数", required=False, type=int),
    ]


def list_response(
    name: str,
    item_serializer,
    extra_fields: dict | None = None,
    *,
    paginated: bool = False,
):
    """列表响应：data.items 为数组，可选附加字段与分页元信息"""
    items_field = (
        item_serializer(many=True)
        if isinstance(item_serializer, type) and issubclass(item_serializer, serializers.Serializer)
        else item_serializer
    )
    fields = {"items": items_field}
    if extra_fields:
        fields.update(extra_fields)
    return api_response_schema(
        name,
        fields,
        extra_serializer=pagination_meta_serializer() if paginated else None,
    )


# ======================
# 常用数据结构
# ======================

def user_summary_serializer(**kwargs):
    cls = _cached(
        "UserSummary",
        lambda: inline_serializer(
            name="UserSummary",
            fields={
                "id": serializers.IntegerField(),
                "username": serializers.CharField(),
                "avatar_url": serializers.CharField(required=False, allow_blank=True, allow_null=True),
                "github_username": serializers.CharField(required=False, allow_blank=True, allow_null=True),
            },
        ),
    )
    return _instantiate(cls, kwargs)


def next_transition_serializer(**kwargs):
    cls = _cached(
        "NextTransition",
        lambda: inline_serializer(
            name="NextTransition",
            fields={
                "phase": serializers.CharField(help_text="即将进入的阶段"),
                "at": serializers.DateTimeField(help_text="切换时间"),
                "at_ts": serializers.IntegerField(help_text="切换时间（秒级时间戳）"),
                "remaining_seconds": serializers.IntegerField(help_text="剩余秒数"),
                "remaining_display": serializers.CharField(help_text="倒计时展示，如 2d 3h"),
            },
        ),
    )
    return _instantiate(cls, kwargs)


def phase_actions_serializer(**kwargs):
    cls = _cached(
        "PhaseActions",
        lambda: inline_serializer(
            name="PhaseActions",
            fields={
                "can_join": serializers.BooleanField(),
                "can_submit": serializers.BooleanField(),
                "can_vote": serializers.BooleanField(),
                "prompt_visible": serializers.BooleanField(),
            },
        ),
    )
    return _instantiate(cls, kwargs)


def competition_summary_serializer(**kwargs):
    cls = _cached(
        "CompetitionSummary",
        lambda: inline_serializer(
            name="CompetitionSummary",
            fields={
                "id": serializers.IntegerField(),
                "title": serializers.CharField(help_text="比赛标题"),
                "description": serializers.CharField(required=False, allow_blank=True),
                "starts_at": serializers.DateTimeField(help_text="开始时间"),
                "ends_at": serializers.DateTimeField(help_text="提交截止时间"),
                "voting_ends_at": serializers.DateTimeField(help_text="投票截止时间"),
                "status": serializers.CharField(help_text="按当前时间计算的阶段"),
                "status_label": serializers.CharField(help_text="阶段展示文案"),
                "participant_count": serializers.IntegerField(required=False),
            },
        ),
    )
    return _instantiate(cls, kwargs)


def submission_serializer(**kwargs):
    cls = _cached(
        "SubmissionItem",
        lambda: inline_serializer(
            name="SubmissionItem",
            fields={
                "id": serializers.IntegerField(),
                "competition_id": serializers.IntegerField(),
                "title": serializers.CharField(),
                "description": serializers.CharField(required=False, allow_blank=True, allow_null=True),
                "repo_url": serializers.CharField(),
                "demo_url": serializers.CharField(required=False, allow_blank=True, allow_null=True),
                "repo_created_at": serializers.DateTimeField(required=False, allow_null=True),
                "yes_votes": serializers.IntegerField(),
                "no_votes": serializers.IntegerField(),
                "submitted_at": serializers.DateTimeField(),
                "updated_at": serializers.DateTimeField(),
                "user": user_summary_serializer(required=False),
                "my_vote": serializers.BooleanField(required=False, allow_null=True, help_text="当前用户的投票"),
            },
        ),
    )
    return _instantiate(cls, kwargs)


def repo_verification_serializer(**kwargs):
    cls = _cached(
        "RepoVerification",
        lambda: inline_serializer(
            name="RepoVerification",
            fields={
                "valid": serializers.BooleanField(),
                "error": serializers.CharField(required=False, allow_null=True),
                "repo": serializers.DictField(required=False, allow_null=True),
                "commits": serializers.DictField(required=False, allow_null=True),
            },
        ),
    )
    return _instantiate(cls, kwargs)


def leaderboard_entry_serializer(**kwargs):
    cls = _cached(
        "LeaderboardEntry",
        lambda: inline_serializer(
            name="LeaderboardEntry",
            fields={
                "rank": serializers.IntegerField(help_text="排名（从 1 开始）"),
                "submission_id": serializers.IntegerField(),
                "title": serializers.CharField(),
                "repo_url": serializers.CharField(),
                "yes_votes": serializers.IntegerField(),
                "no_votes": serializers.IntegerField(),
                "user": user_summary_serializer(),
            },
        ),
    )
    return _instantiate(cls, kwargs)
