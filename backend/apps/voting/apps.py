from django.apps import AppConfig


class VotingConfig(AppConfig):
    """
    Voting 应用配置：投票、排行榜与票数核对
    """

    default_auto_field = "django.db.models.BigAutoField"
    name = "apps.voting"
    label = "voting"
    verbose_name = "Voting"
