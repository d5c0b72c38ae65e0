from __future__ import annotations

from django.core.management.base import BaseCommand

from apps.competitions.services import ReconcileStatusService


class Command(BaseCommand):
    help = "立即执行一轮比赛阶段对账（与 Celery 定时任务相同）"

    def handle(self, *args, **options):
        summary = ReconcileStatusService().execute()
        for label, items in (
            ("进入进行中", summary.to_live),
            ("进入投票", summary.to_voting),
            ("已结束", summary.to_completed),
        ):
            for item in items:
                self.stdout.write(f"{label}: #{item['id']} {item['title']}")
        for item in summary.failed:
            self.stdout.write(self.style.ERROR(f"回写失败: #{item['id']} {item['title']} ({item['error']})"))
        self.stdout.write(self.style.SUCCESS(f"共更新 {summary.total} 场比赛"))
