from __future__ import annotations

from typing import Optional

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import serializers
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.common import response
from apps.common.exceptions import ValidationError
from apps.common.permissions import AllowAny, IsAdmin, IsAuthenticated
from apps.common.schema_utils import (
    api_response_schema,
    competition_summary_serializer,
    leaderboard_entry_serializer,
)

from .schemas import VoteCastSchema
from .services import CastVoteService, LeaderboardService, VoteTallyAuditService


class VoteView(APIView):
    """
    投票 / 改票：仅 voting 阶段开放
    首次投票返回 201，改票或重复投票返回 200
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="为作品投票",
        request=OpenApiTypes.OBJECT,
        responses=api_response_schema(
            "VoteCast",
            {
                "submission_id": serializers.IntegerField(),
                "value": serializers.BooleanField(),
                "created": serializers.BooleanField(),
                "changed": serializers.BooleanField(),
                "yes_votes": serializers.IntegerField(),
                "no_votes": serializers.IntegerField(),
            },
        ),
        tags=["voting"],
    )
    def post(self, request: Request, submission_id: int) -> Response:
        schema = VoteCastSchema.from_dict(request.data)
        outcome = CastVoteService().execute(request.user, submission_id, schema)
        if outcome.created:
            return response.created(outcome.to_dict(), message="投票成功")
        return response.success(outcome.to_dict(), message="投票已更新" if outcome.changed else "投票未变化")


class LeaderboardView(APIView):
    """排行榜（公开）"""

    permission_classes = [AllowAny]

    @extend_schema(
        summary="比赛排行榜",
        request=None,
        responses=api_response_schema(
            "Leaderboard",
            {
                "competition": competition_summary_serializer(),
                "phase": serializers.CharField(),
                "is_final": serializers.BooleanField(help_text="比赛已结束，名次不再变化"),
                "entries": leaderboard_entry_serializer(many=True),
            },
        ),
        tags=["voting"],
    )
    def get(self, request: Request, competition_id: int) -> Response:
        _ = request
        return response.success(LeaderboardService().execute(competition_id))


class VoteTallyAuditView(APIView):
    """
    票数缓存核对（管理员）：GET 只报告偏差，POST 报告并修复
    可用 ?competition=<id> 限定比赛
    """

    permission_classes = [IsAdmin]

    @staticmethod
    def _competition_id(request: Request) -> Optional[int]:
        raw = request.query_params.get("competition")
        if raw in (None, ""):
            return None
        try:
            return int(raw)
        except ValueError as exc:
            raise ValidationError(message="competition 必须为整数") from exc

    @extend_schema(
        summary="核对票数缓存",
        request=None,
        parameters=[
            OpenApiParameter(name="competition", location=OpenApiParameter.QUERY, required=False, type=int),
        ],
        responses=OpenApiTypes.OBJECT,
        tags=["voting"],
    )
    def get(self, request: Request) -> Response:
        report = VoteTallyAuditService().execute(self._competition_id(request))
        return response.success(report.to_dict())

    @extend_schema(
        summary="核对并修复票数缓存",
        request=None,
        parameters=[
            OpenApiParameter(name="competition", location=OpenApiParameter.QUERY, required=False, type=int),
        ],
        responses=OpenApiTypes.OBJECT,
        tags=["voting"],
    )
    def post(self, request: Request) -> Response:
        report = VoteTallyAuditService().execute(self._competition_id(request), repair=True)
        return response.success(report.to_dict(), message=f"已修复 {len(report.drifted)} 个作品")
