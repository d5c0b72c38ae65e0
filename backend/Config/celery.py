from __future__ import annotations

import os

from celery import Celery
from django.conf import settings

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "Config.settings")

# 创建 Celery 应用，使用 Django 配置中的 CELERY_* 变量
app = Celery("Config")
app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks()

if getattr(settings, "TIME_ZONE", None):
    app.conf.timezone = settings.TIME_ZONE

# 比赛状态同步：settings 未声明时按 RECONCILE_INTERVAL_SECONDS 注入默认调度
reconcile_interval = getattr(settings, "RECONCILE_INTERVAL_SECONDS", 60)
app.conf.beat_schedule = dict(getattr(settings, "CELERY_BEAT_SCHEDULE", {}))
if "reconcile-competition-statuses" not in app.conf.beat_schedule:
    app.conf.beat_schedule["reconcile-competition-statuses"] = {
        "task": "competitions.reconcile_statuses",
        "schedule": reconcile_interval,
    }
