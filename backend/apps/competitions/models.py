from __future__ import annotations

from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import models

from .lifecycle import Phase

# 模型文件：比赛与报名记录的数据结构，不承载业务流程

User = settings.AUTH_USER_MODEL


class Competition(models.Model):
    """
    比赛模型：
    - 三个时间点 starts_at < ends_at < voting_ends_at 决定阶段
    - status 只是阶段的缓存，由定时对账任务回写；读取时一律按时间重新计算
    """

    title = models.CharField("比赛标题", max_length=200)
    description = models.TextField("比赛简介", blank=True, default="")
    # 比赛题目，开赛前不对外展示
    prompt = models.TextField("比赛题目", blank=True, default="")
    starts_at = models.DateTimeField("开始时间", db_index=True)
    ends_at = models.DateTimeField("提交截止时间")
    voting_ends_at = models.DateTimeField("投票截止时间")
    status = models.CharField(
        "阶段缓存",
        max_length=16,
        choices=Phase.choices,
        default=Phase.UPCOMING,
        db_index=True,
    )
    created_by = models.ForeignKey(
        User,
        verbose_name="创建者",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="created_competitions",
    )
    created_at = models.DateTimeField("创建时间", auto_now_add=True)
    updated_at = models.DateTimeField("更新时间", auto_now=True)

    class Meta:
        ordering = ["starts_at", "id"]
        verbose_name = "比赛"
        verbose_name_plural = "比赛"

    def __str__(self) -> str:
        return self.title

    def clean(self):
        """后台表单校验：三个时间点必须严格递增"""
        if self.starts_at and self.ends_at and self.voting_ends_at:
            if not (self.starts_at < self.ends_at < self.voting_ends_at):
                raise DjangoValidationError("时间须满足 开始时间 < 提交截止时间 < 投票截止时间")


class Participant(models.Model):
    """报名记录：同一用户在同一比赛中只能报名一次"""

    competition = models.ForeignKey(
        Competition,
        verbose_name="比赛",
        on_delete=models.CASCADE,
        related_name="participants",
    )
    user = models.ForeignKey(
        User,
        verbose_name="用户",
        on_delete=models.CASCADE,
        related_name="participations",
    )
    joined_at = models.DateTimeField("报名时间", auto_now_add=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["competition", "user"], name="uniq_participant_competition_user"),
        ]
        ordering = ["joined_at", "id"]
        verbose_name = "报名记录"
        verbose_name_plural = "报名记录"

    def __str__(self) -> str:
        return f"{self.user_id}@{self.competition_id}"
