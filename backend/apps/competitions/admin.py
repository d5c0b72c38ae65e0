from __future__ import annotations

from django.contrib import admin

from apps.common.utils.time import now

from .lifecycle import phase_of, status_label
from .models import Competition, Participant


class ParticipantInline(admin.TabularInline):
    model = Participant
    extra = 0
    readonly_fields = ("user", "joined_at")
    can_delete = False


@admin.register(Competition)
class CompetitionAdmin(admin.ModelAdmin):
    """比赛后台：列表中同时展示缓存状态与按当前时间计算的阶段"""

    list_display = ("id", "title", "starts_at", "ends_at", "voting_ends_at", "status", "current_phase")
    list_filter = ("status",)
    search_fields = ("title",)
    readonly_fields = ("status", "created_at", "updated_at")
    inlines = [ParticipantInline]

    @admin.display(description="当前阶段")
    def current_phase(self, obj: Competition) -> str:
        return status_label(phase_of(obj, now()))


@admin.register(Participant)
class ParticipantAdmin(admin.ModelAdmin):
    list_display = ("id", "competition", "user", "joined_at")
    search_fields = ("competition__title", "user__username")
    list_select_related = ("competition", "user")
