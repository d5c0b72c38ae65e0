from __future__ import annotations

from drf_spectacular.utils import extend_schema
from rest_framework import serializers
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.common import response
from apps.common.permissions import AllowAny
from apps.common.schema_utils import api_response_schema
from apps.common.utils.time import now, to_timestamp


class HealthCheckView(APIView):
    """
    健康检查接口
    - 用于负载均衡/监控探活，同时返回服务器时间，便于客户端校准倒计时
    """

    permission_classes = [AllowAny]
    authentication_classes: list = []

    @extend_schema(
        summary="健康检查",
        request=None,
        responses=api_response_schema(
            "HealthCheck",
            {"status": serializers.CharField(), "server_time": serializers.IntegerField()},
        ),
    )
    def get(self, request: Request) -> Response:
        _ = request
        return response.success({"status": "ok", "server_time": to_timestamp(now())})
