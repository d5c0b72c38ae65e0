from __future__ import annotations

from django.conf import settings
from django.db import models

User = settings.AUTH_USER_MODEL


class Vote(models.Model):
    """
    投票：“你会使用这个作品吗？”
    - (submission, user) 唯一，改票即更新 value
    - value 为 True 计入 yes_votes，False 计入 no_votes
    """

    submission = models.ForeignKey(
        "submissions.Submission",
        verbose_name="作品",
        on_delete=models.CASCADE,
        related_name="votes",
    )
    user = models.ForeignKey(
        User,
        verbose_name="投票人",
        on_delete=models.CASCADE,
        related_name="votes",
    )
    value = models.BooleanField("是否愿意使用")
    comment = models.CharField("留言", max_length=500, blank=True, default="")
    created_at = models.DateTimeField("投票时间", auto_now_add=True)
    updated_at = models.DateTimeField("更新时间", auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["submission", "user"], name="uniq_vote_submission_user"),
        ]
        ordering = ["id"]
        verbose_name = "投票"
        verbose_name_plural = "投票"

    def __str__(self) -> str:
        return f"{self.user_id}->{self.submission_id}:{'yes' if self.value else 'no'}"
