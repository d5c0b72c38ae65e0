from __future__ import annotations

from django.contrib import admin

from .models import Submission


@admin.register(Submission)
class SubmissionAdmin(admin.ModelAdmin):
    """作品后台：票数只读，只能通过投票或计数核对命令修改"""

    list_display = ("id", "competition", "user", "title", "yes_votes", "no_votes", "submitted_at")
    list_filter = ("competition",)
    search_fields = ("title", "user__username", "repo_url")
    list_select_related = ("competition", "user")
    readonly_fields = ("yes_votes", "no_votes", "repo_created_at", "submitted_at", "updated_at")

    def has_add_permission(self, request):
        return False
