from __future__ import annotations

from celery import shared_task

from apps.common.infra.logger import get_logger, logger_extra

from .services import ReconcileStatusService

logger = get_logger(__name__)


@shared_task(name="competitions.reconcile_statuses")
def reconcile_statuses() -> dict:
    """
    Celery Beat 定时任务：把比赛 status 缓存推进到按时间计算的阶段

    调度周期见 settings.RECONCILE_INTERVAL_SECONDS；多次执行或重叠执行都是安全的
    """
    summary = ReconcileStatusService().execute()
    if summary.failed:
        logger.warning(
            "部分比赛状态未能回写",
            extra=logger_extra({"failed_ids": [item["id"] for item in summary.failed]}),
        )
    return summary.to_dict()
