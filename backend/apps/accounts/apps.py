from django.apps import AppConfig


class AccountsConfig(AppConfig):
    """
    账户模块应用配置
    """

    default_auto_field = "django.db.models.BigAutoField"
    name = "apps.accounts"
    label = "accounts"
    verbose_name = "Accounts"
