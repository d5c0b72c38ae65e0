from django.apps import AppConfig


class CompetitionsConfig(AppConfig):
    """
    Competitions 应用配置：比赛、报名与阶段对账
    """

    default_auto_field = 'django.db.models.BigAutoField'
    name = 'apps.competitions'
    label = 'competitions'
    verbose_name = "Competitions"
