from __future__ import annotations

import hmac

from django.conf import settings
from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import serializers
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.common import response
from apps.common.exceptions import CronTokenError
from apps.common.infra.logger import get_logger, logger_extra
from apps.common.pagination import StandardPagination
from apps.common.permissions import AllowAny, IsAdminOrReadOnly, IsAuthenticated
from apps.common.schema_utils import (
    api_response_schema,
    competition_summary_serializer,
    list_response,
    next_transition_serializer,
    pagination_parameters,
    phase_actions_serializer,
)
from apps.common.utils.time import now

from .schemas import CompetitionCreateSchema
from .services import (
    CompetitionContextService,
    CompetitionDetailService,
    CompetitionListService,
    CreateCompetitionService,
    JoinCompetitionService,
    LeaveCompetitionService,
    PhaseQueryService,
    ReconcileStatusService,
    serialize_competition,
)

logger = get_logger(__name__)


def _phase_schema(name: str):
    return api_response_schema(
        name,
        {
            "phase": serializers.CharField(help_text="当前阶段：upcoming/live/voting/completed"),
            "status_label": serializers.CharField(),
            "next_transition": next_transition_serializer(required=False, allow_null=True),
            "server_time": serializers.DateTimeField(),
            "server_ts": serializers.IntegerField(),
            "actions": phase_actions_serializer(),
        },
    )


class CompetitionListView(APIView):
    """比赛列表（公开）与创建比赛（管理员）"""

    permission_classes = [IsAdminOrReadOnly]
    pagination_class = StandardPagination

    @extend_schema(
        summary="比赛列表",
        responses=list_response("CompetitionList", competition_summary_serializer(many=True), paginated=True),
        parameters=[
            OpenApiParameter(
                name="status",
                location=OpenApiParameter.QUERY,
                description="按当前阶段过滤：upcoming/live/voting/completed",
                required=False,
                type=str,
            ),
            *pagination_parameters(),
        ],
        tags=["competitions"],
    )
    def get(self, request: Request) -> Response:
        items = CompetitionListService().execute(phase=request.query_params.get("status") or None)
        paginator = StandardPagination()
        page = paginator.paginate_queryset(items, request, view=self)
        return paginator.get_paginated_response({"items": page})

    @extend_schema(
        summary="创建比赛",
        request=OpenApiTypes.OBJECT,
        responses=api_response_schema("CompetitionCreate", {"competition": competition_summary_serializer()}),
        tags=["competitions"],
    )
    def post(self, request: Request) -> Response:
        schema = CompetitionCreateSchema.from_dict(request.data)
        reference = now()
        competition = CreateCompetitionService().execute(schema, user=request.user, now=reference)
        snapshot = CompetitionContextService.snapshot(competition, reference)
        return response.created(
            {"competition": serialize_competition(competition, snapshot, include_prompt=True)},
            message="比赛已创建",
        )


class CompetitionDetailView(APIView):
    """比赛详情：开赛前不返回题目"""

    permission_classes = [AllowAny]

    @extend_schema(
        summary="比赛详情",
        request=None,
        responses=OpenApiTypes.OBJECT,
        tags=["competitions"],
    )
    def get(self, request: Request, competition_id: int) -> Response:
        data = CompetitionDetailService().execute(competition_id, user=request.user)
        return response.success({"competition": data})


class CompetitionPhaseView(APIView):
    """阶段查询：客户端按倒计时轮询，发现阶段变化后刷新页面数据"""

    permission_classes = [AllowAny]

    @extend_schema(summary="比赛当前阶段", request=None, responses=_phase_schema("CompetitionPhase"), tags=["competitions"])
    def get(self, request: Request, competition_id: int) -> Response:
        _ = request
        return response.success(PhaseQueryService().execute(competition_id))


class CompetitionJoinView(APIView):
    """报名（POST）与退出（DELETE），仅开赛前开放"""

    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="报名参赛",
        request=None,
        responses=api_response_schema("CompetitionJoin", {"competition_id": serializers.IntegerField(), "joined_at": serializers.DateTimeField()}),
        tags=["competitions"],
    )
    def post(self, request: Request, competition_id: int) -> Response:
        participant = JoinCompetitionService().execute(request.user, competition_id)
        return response.created(
            {"competition_id": participant.competition_id, "joined_at": participant.joined_at},
            message="报名成功",
        )

    @extend_schema(summary="退出比赛", request=None, responses=api_response_schema("CompetitionLeave", {}), tags=["competitions"])
    def delete(self, request: Request, competition_id: int) -> Response:
        LeaveCompetitionService().execute(request.user, competition_id)
        return response.success(None, message="已退出比赛")


class CompetitionReconcileView(APIView):
    """
    阶段对账的 HTTP 触发入口，供外部定时器调用

    需携带 Authorization: Bearer <CRON_SECRET>；CRON_SECRET 为空时入口关闭
    """

    permission_classes = [AllowAny]
    authentication_classes: list = []

    @staticmethod
    def _check_cron_token(request: Request) -> None:
        secret = getattr(settings, "CRON_SECRET", "")
        header = request.headers.get("Authorization", "")
        if not secret:
            raise CronTokenError(message="定时任务入口未启用")
        expected = f"Bearer {secret}"
        if not hmac.compare_digest(header.encode(), expected.encode()):
            logger.warning("定时任务令牌校验失败", extra=logger_extra({"has_header": bool(header)}))
            raise CronTokenError()

    def _run(self, request: Request) -> Response:
        self._check_cron_token(request)
        summary = ReconcileStatusService().execute(now())
        return response.success(summary.to_dict(), message=f"Updated {summary.total} competitions")

    @extend_schema(
        summary="比赛阶段对账",
        request=None,
        responses=api_response_schema(
            "CompetitionReconcile",
            {
                "to_live": serializers.ListField(child=serializers.DictField()),
                "to_voting": serializers.ListField(child=serializers.DictField()),
                "to_completed": serializers.ListField(child=serializers.DictField()),
                "failed": serializers.ListField(child=serializers.DictField()),
                "total": serializers.IntegerField(),
                "timestamp": serializers.CharField(),
            },
        ),
        tags=["competitions"],
    )
    def get(self, request: Request) -> Response:
        return self._run(request)

    @extend_schema(summary="比赛阶段对账（POST）", request=None, responses=OpenApiTypes.OBJECT, tags=["competitions"])
    def post(self, request: Request) -> Response:
        return self._run(request)
