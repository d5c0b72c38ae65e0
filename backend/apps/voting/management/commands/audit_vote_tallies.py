from __future__ import annotations

from django.core.management.base import BaseCommand

from apps.voting.services import VoteTallyAuditService


class Command(BaseCommand):
    help = "核对作品票数缓存与投票记录是否一致，可选修复"

    def add_arguments(self, parser):
        parser.add_argument("--competition", type=int, default=None, help="只核对指定比赛")
        parser.add_argument("--repair", action="store_true", help="把偏差的票数改写为统计值")

    def handle(self, *args, **options):
        report = VoteTallyAuditService().execute(options["competition"], repair=options["repair"])
        for item in report.drifted:
            stored, counted = item["stored"], item["counted"]
            self.stdout.write(
                self.style.WARNING(
                    f"作品 #{item['submission_id']}: "
                    f"yes {stored['yes_votes']} -> {counted['yes_votes']}, "
                    f"no {stored['no_votes']} -> {counted['no_votes']}"
                )
            )
        summary = f"共核对 {report.checked} 个作品，偏差 {len(report.drifted)} 个"
        if report.drifted and report.repaired:
            summary += "，已修复"
        self.stdout.write(self.style.SUCCESS(summary))
