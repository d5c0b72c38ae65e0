from django.apps import AppConfig


class SubmissionsConfig(AppConfig):
    """
    Submissions 应用配置：参赛作品与仓库校验
    """

    default_auto_field = "django.db.models.BigAutoField"
    name = "apps.submissions"
    label = "submissions"
    verbose_name = "Submissions"
