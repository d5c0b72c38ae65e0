from __future__ import annotations

from django.conf import settings
from django.db import models

# 模型文件：参赛作品，一人一场比赛只能有一个作品

User = settings.AUTH_USER_MODEL


class Submission(models.Model):
    """
    参赛作品：
    - (competition, user) 唯一，重复提交按更新处理
    - yes_votes / no_votes 是投票的计数缓存，只通过原子增减维护，
      必须与 Vote 表中对应取值的行数一致
    """

    competition = models.ForeignKey(
        "competitions.Competition",
        verbose_name="比赛",
        on_delete=models.CASCADE,
        related_name="submissions",
    )
    user = models.ForeignKey(
        User,
        verbose_name="提交人",
        on_delete=models.CASCADE,
        related_name="submissions",
    )
    title = models.CharField("作品标题", max_length=100)
    description = models.CharField("作品简介", max_length=500, blank=True, default="")
    repo_url = models.URLField("仓库地址", max_length=500)
    demo_url = models.URLField("演示地址", max_length=500, blank=True, default="")
    # 仓库创建时间，来自 GitHub 校验结果
    repo_created_at = models.DateTimeField("仓库创建时间", null=True, blank=True)
    yes_votes = models.PositiveIntegerField("愿意使用", default=0)
    no_votes = models.PositiveIntegerField("不会使用", default=0)
    submitted_at = models.DateTimeField("提交时间", auto_now_add=True)
    updated_at = models.DateTimeField("更新时间", auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["competition", "user"], name="uniq_submission_competition_user"),
        ]
        indexes = [
            models.Index(fields=["competition", "-yes_votes", "id"], name="submission_rank_idx"),
        ]
        ordering = ["-yes_votes", "id"]
        verbose_name = "作品"
        verbose_name_plural = "作品"

    def __str__(self) -> str:
        return self.title
