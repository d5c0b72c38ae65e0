import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("competitions", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Submission",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("title", models.CharField(max_length=100, verbose_name="作品标题")),
                ("description", models.CharField(blank=True, default="", max_length=500, verbose_name="作品简介")),
                ("repo_url", models.URLField(max_length=500, verbose_name="仓库地址")),
                ("demo_url", models.URLField(blank=True, default="", max_length=500, verbose_name="演示地址")),
                ("repo_created_at", models.DateTimeField(blank=True, null=True, verbose_name="仓库创建时间")),
                ("yes_votes", models.PositiveIntegerField(default=0, verbose_name="愿意使用")),
                ("no_votes", models.PositiveIntegerField(default=0, verbose_name="不会使用")),
                ("submitted_at", models.DateTimeField(auto_now_add=True, verbose_name="提交时间")),
                ("updated_at", models.DateTimeField(auto_now=True, verbose_name="更新时间")),
                (
                    "competition",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="submissions",
                        to="competitions.competition",
                        verbose_name="比赛",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="submissions",
                        to=settings.AUTH_USER_MODEL,
                        verbose_name="提交人",
                    ),
                ),
            ],
            options={
                "verbose_name": "作品",
                "verbose_name_plural": "作品",
                "ordering": ["-yes_votes", "id"],
                "indexes": [
                    models.Index(fields=["competition", "-yes_votes", "id"], name="submission_rank_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(fields=("competition", "user"), name="uniq_submission_competition_user"),
                ],
            },
        ),
    ]
