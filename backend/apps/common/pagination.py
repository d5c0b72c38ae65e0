"""
自定义分页器（apps.common.pagination）

- 与 common.response.page_success 对齐，extra 内包含页码/总数/是否有前后页
- 控制默认/最大分页大小，防止一次拉取过多数据
"""

from __future__ import annotations

from typing import Any, List

from rest_framework.pagination import PageNumberPagination
from rest_framework.request import Request
from rest_framework.response import Response

from apps.common.response import page_success


class StandardPagination(PageNumberPagination):
    """
    标准分页器：默认每页 20 条，?page_size= 最大 100
    """

    page_size: int = 20
    page_size_query_param: str = "page_size"
    max_page_size: int = 100

    def get_paginated_response(self, data: List[Any]) -> Response:
        paginator = self.page.paginator
        return page_success(
            items=data,
            page=self.page.number,
            page_size=paginator.per_page,
            total=paginator.count,
            total_pages=paginator.num_pages,
            has_next=self.page.has_next(),
            has_previous=self.page.has_previous(),
        )

    def get_page_size(self, request: Request) -> int | None:
        # page_size 为 0 或负值时回落为 1
        size = super().get_page_size(request)
        if size is None:
            return None
        return max(1, size)
