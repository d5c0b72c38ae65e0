from __future__ import annotations

from django.contrib import admin

from .models import Vote


@admin.register(Vote)
class VoteAdmin(admin.ModelAdmin):
    """投票后台：只读，直接改动会破坏作品票数缓存"""

    list_display = ("id", "submission", "user", "value", "created_at", "updated_at")
    list_filter = ("value",)
    search_fields = ("submission__title", "user__username")
    list_select_related = ("submission", "user")

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
