"""账户模块的 API 视图层

每个接口仅负责：
- 接收并校验参数（Schema）
- 调用对应业务 Service
- 使用统一响应封装成功结果
"""

from __future__ import annotations

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import extend_schema, inline_serializer
from rest_framework import serializers
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.common import response
from apps.common.permissions import AllowAny, IsAuthenticated
from apps.common.schema_utils import api_response_schema, submission_serializer, user_summary_serializer

from .schemas import ProfileUpdateSchema
from .services import ProfileService, UpdateProfileService, serialize_user


class MeView(APIView):
    """当前登录用户：GET 查看资料，PATCH 部分更新头像 / GitHub 用户名"""

    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="当前用户资料",
        request=None,
        responses=api_response_schema("Me", {"user": user_summary_serializer()}),
        tags=["accounts"],
    )
    def get(self, request: Request) -> Response:
        return response.success({"user": serialize_user(request.user, private=True)})

    @extend_schema(
        summary="更新当前用户资料",
        request=OpenApiTypes.OBJECT,
        responses=api_response_schema("MeUpdate", {"user": user_summary_serializer()}),
        tags=["accounts"],
    )
    def patch(self, request: Request) -> Response:
        schema = ProfileUpdateSchema.from_dict(request.data)
        user = UpdateProfileService().execute(request.user, schema)
        return response.success({"user": serialize_user(user, private=True)}, message="资料已更新")


class PublicProfileView(APIView):
    """公开主页：用户资料、参赛作品与战绩"""

    permission_classes = [AllowAny]

    @extend_schema(
        summary="用户公开主页",
        request=None,
        responses=api_response_schema(
            "PublicProfile",
            {
                "user": user_summary_serializer(),
                "submissions": submission_serializer(many=True),
                "stats": inline_serializer(
                    name="ProfileStats",
                    fields={
                        "competitions_entered": serializers.IntegerField(),
                        "submissions_made": serializers.IntegerField(),
                        "total_yes_votes": serializers.IntegerField(),
                        "best_placement": serializers.IntegerField(allow_null=True),
                    },
                ),
            },
        ),
        tags=["accounts"],
    )
    def get(self, request: Request, username: str) -> Response:
        _ = request
        return response.success(ProfileService().execute(username))
