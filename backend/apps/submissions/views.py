from __future__ import annotations

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import extend_schema
from rest_framework import serializers
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.common import response
from apps.common.permissions import AllowAny, IsAuthenticated
from apps.common.schema_utils import (
    api_response_schema,
    list_response,
    repo_verification_serializer,
    submission_serializer,
)

from .schemas import RepoVerifySchema, SubmissionUpsertSchema
from .serializers import serialize_submission
from .services import (
    MySubmissionService,
    RepoVerifyService,
    SubmissionListService,
    SubmissionUpsertService,
)


# 视图层：作品列表、提交/更新作品、我的作品与仓库校验


class CompetitionSubmissionsView(APIView):
    """
    GET：比赛作品列表（公开），按排行顺序
    POST：提交或更新自己的作品，仅 live 阶段、仅已报名用户
    """

    def get_permissions(self):
        if self.request.method == "GET":
            return [AllowAny()]
        return [IsAuthenticated()]

    @extend_schema(
        summary="比赛作品列表",
        request=None,
        responses=list_response("SubmissionList", submission_serializer(many=True)),
        tags=["submissions"],
    )
    def get(self, request: Request, competition_id: int) -> Response:
        items = SubmissionListService().execute(competition_id, user=request.user)
        return response.success({"items": items})

    @extend_schema(
        summary="提交 / 更新作品",
        request=OpenApiTypes.OBJECT,
        responses=api_response_schema(
            "SubmissionUpsert",
            {
                "submission": submission_serializer(),
                "created": serializers.BooleanField(),
                "verification": repo_verification_serializer(required=False, allow_null=True),
            },
        ),
        tags=["submissions"],
    )
    def post(self, request: Request, competition_id: int) -> Response:
        schema = SubmissionUpsertSchema.from_dict(request.data)
        result = SubmissionUpsertService().execute(request.user, competition_id, schema)
        payload = {
            "submission": serialize_submission(result.submission),
            "created": result.created,
            "verification": result.verification.to_dict() if result.verification else None,
        }
        if result.created:
            return response.created(payload, message="作品已提交")
        return response.success(payload, message="作品已更新")


class MySubmissionView(APIView):
    """当前用户在该比赛中的作品，没有提交时 submission 为 null"""

    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="我的作品",
        request=None,
        responses=api_response_schema("MySubmission", {"submission": submission_serializer(allow_null=True)}),
        tags=["submissions"],
    )
    def get(self, request: Request, competition_id: int) -> Response:
        submission = MySubmissionService().execute(request.user, competition_id)
        return response.success({"submission": serialize_submission(submission) if submission else None})


class RepoVerifyView(APIView):
    """
    GitHub 仓库校验：格式、存在、公开，并返回提交统计
    校验失败时仍返回 200，结果放在 valid/error 中
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="校验 GitHub 仓库",
        request=OpenApiTypes.OBJECT,
        responses=api_response_schema("RepoVerify", {"verification": repo_verification_serializer()}),
        tags=["submissions"],
    )
    def post(self, request: Request) -> Response:
        schema = RepoVerifySchema.from_dict(request.data)
        verification = RepoVerifyService().execute(schema)
        return response.success({"verification": verification.to_dict()})
