from __future__ import annotations

from datetime import datetime, timedelta, timezone as dt_timezone
from io import StringIO
from unittest import mock

from django.core.management import call_command
from django.test import SimpleTestCase, TestCase
from rest_framework.test import APITestCase

from apps.common.exceptions import (
    JoinClosedError,
    NotFoundError,
    SelfVoteError,
    SubmissionClosedError,
    ValidationError,
    VotingClosedError,
)
from apps.common.infra.github_client import RepoVerification
from apps.common.tests_utils import AuthenticatedAPIMixin, make_competition, make_user
from apps.competitions.services import CompetitionDetailService, JoinCompetitionService
from apps.submissions.models import Submission
from apps.submissions.schemas import SubmissionUpsertSchema
from apps.submissions.services import SubmissionUpsertService

from .models import Vote
from .repo import VoteRepo
from .schemas import VoteCastSchema
from .services import CastVoteService, LeaderboardService, VoteTallyAuditService

# 测试用例：投票计数、改票、排行榜与票数核对，以及完整比赛流程

T = datetime(2026, 3, 1, 10, 0, tzinfo=dt_timezone.utc)
VOTING_NOW = T + timedelta(hours=2, minutes=30)
REPO_URL = "https://github.com/octo/tool"


def _submission(competition, user, title: str, **extra) -> Submission:
    return Submission.objects.create(competition=competition, user=user, title=title, repo_url=REPO_URL, **extra)


class VoteSchemaTests(SimpleTestCase):
    def test_value_must_be_boolean(self):
        self.assertIs(VoteCastSchema(value=True).value, True)
        self.assertIs(VoteCastSchema(value="false").value, False)
        with self.assertRaises(ValidationError):
            VoteCastSchema(value="maybe")
        with self.assertRaises(ValidationError):
            VoteCastSchema(value=1)


class CastVoteServiceTests(TestCase):
    """投票计数缓存必须与投票记录一致"""

    def setUp(self) -> None:
        self.competition = make_competition(now=T, starts_in=timedelta(0))
        self.author = make_user("alice")
        self.voter = make_user("bob")
        self.submission = _submission(self.competition, self.author, "Tool")

    def _vote(self, value: bool, user=None, now=VOTING_NOW):
        return CastVoteService().execute(user or self.voter, self.submission.pk, VoteCastSchema(value=value), now=now)

    def test_first_vote_increments_matching_counter(self):
        outcome = self._vote(True)
        self.assertTrue(outcome.created)
        self.assertEqual((outcome.yes_votes, outcome.no_votes), (1, 0))

    def test_changing_vote_moves_exactly_one_count(self):
        self._vote(True)
        outcome = self._vote(False)
        self.assertFalse(outcome.created)
        self.assertTrue(outcome.changed)
        self.assertEqual((outcome.yes_votes, outcome.no_votes), (0, 1))
        self.assertEqual(Vote.objects.filter(submission=self.submission, user=self.voter).count(), 1)

    def test_repeating_same_vote_is_noop(self):
        self._vote(False)
        outcome = self._vote(False)
        self.assertFalse(outcome.changed)
        self.assertEqual((outcome.yes_votes, outcome.no_votes), (0, 1))

    def test_counters_match_vote_rows(self):
        voters = [make_user(f"voter{i}") for i in range(4)]
        for index, user in enumerate(voters):
            self._vote(index % 2 == 0, user=user)
        self._vote(True, user=voters[1])
        self.submission.refresh_from_db()
        self.assertEqual(self.submission.yes_votes, Vote.objects.filter(submission=self.submission, value=True).count())
        self.assertEqual(self.submission.no_votes, Vote.objects.filter(submission=self.submission, value=False).count())
        self.assertEqual((self.submission.yes_votes, self.submission.no_votes), (3, 1))

    def test_concurrent_first_vote_handled_as_change(self):
        # 另一请求已先写入 yes 票，本请求加锁读取时还看不到
        Vote.objects.create(submission=self.submission, user=self.voter, value=True)
        Submission.objects.filter(pk=self.submission.pk).update(yes_votes=1)
        vote_repo = VoteRepo()
        real_lock = vote_repo.lock_for_user
        calls = []

        def racing_lock(submission_id, user_id):
            calls.append(submission_id)
            return None if len(calls) == 1 else real_lock(submission_id, user_id)

        with mock.patch.object(vote_repo, "lock_for_user", side_effect=racing_lock):
            outcome = CastVoteService(vote_repo=vote_repo).execute(
                self.voter, self.submission.pk, VoteCastSchema(value=False), now=VOTING_NOW
            )
        self.assertEqual(len(calls), 2)
        self.assertFalse(outcome.created)
        self.assertTrue(outcome.changed)
        self.assertEqual((outcome.yes_votes, outcome.no_votes), (0, 1))
        self.assertEqual(Vote.objects.filter(submission=self.submission, user=self.voter).count(), 1)
        self.assertIs(Vote.objects.get(submission=self.submission, user=self.voter).value, False)

    def test_self_vote_rejected(self):
        with self.assertRaises(SelfVoteError):
            self._vote(True, user=self.author)
        self.assertFalse(Vote.objects.exists())

    def test_voting_window_only(self):
        for now in (T + timedelta(hours=1), T + timedelta(hours=3)):
            with self.subTest(now=now):
                with self.assertRaises(VotingClosedError):
                    self._vote(True, now=now)
        self.submission.refresh_from_db()
        self.assertEqual((self.submission.yes_votes, self.submission.no_votes), (0, 0))

    def test_unknown_submission(self):
        with self.assertRaises(NotFoundError):
            CastVoteService().execute(self.voter, 999999, VoteCastSchema(value=True), now=VOTING_NOW)


class LeaderboardAndAuditTests(TestCase):
    def setUp(self) -> None:
        self.competition = make_competition(now=T, starts_in=timedelta(0))
        self.subs = [
            _submission(self.competition, make_user("alice"), "A", yes_votes=5),
            _submission(self.competition, make_user("bob"), "B", yes_votes=5),
            _submission(self.competition, make_user("carol"), "C", yes_votes=3),
        ]

    def test_ranking_ties_break_by_submission_order(self):
        for _ in range(3):
            board = LeaderboardService().execute(self.competition.pk, now=VOTING_NOW)
            self.assertEqual([entry["title"] for entry in board["entries"]], ["A", "B", "C"])
            self.assertEqual([entry["rank"] for entry in board["entries"]], [1, 2, 3])
        self.assertFalse(board["is_final"])
        final = LeaderboardService().execute(self.competition.pk, now=T + timedelta(hours=3))
        self.assertTrue(final["is_final"])

    def test_audit_reports_and_repairs_drift(self):
        # 计数缓存与投票记录不一致：没有任何投票行
        report = VoteTallyAuditService().execute(self.competition.pk)
        self.assertEqual(report.checked, 3)
        self.assertEqual(len(report.drifted), 3)
        self.assertEqual(Submission.objects.get(pk=self.subs[0].pk).yes_votes, 5)

        repaired = VoteTallyAuditService().execute(self.competition.pk, repair=True)
        self.assertTrue(repaired.repaired)
        self.assertFalse(Submission.objects.filter(yes_votes__gt=0).exists())
        self.assertEqual(VoteTallyAuditService().execute().drifted, [])

    def test_audit_command(self):
        out = StringIO()
        call_command("audit_vote_tallies", "--repair", stdout=out)
        self.assertIn("偏差 3 个", out.getvalue())
        self.assertFalse(Submission.objects.filter(yes_votes__gt=0).exists())


class CompetitionLifecycleScenarioTests(TestCase):
    """starts_at=T、ends_at=T+2h、voting_ends_at=T+3h 的完整流程"""

    def setUp(self) -> None:
        self.competition = make_competition(now=T, starts_in=timedelta(0), prompt="Build a CLI")
        self.alice = make_user("alice")
        self.bob = make_user("bob")
        self.upsert = SubmissionUpsertService(verifier=lambda url: RepoVerification(valid=True, repo={}))

    def _submit(self, user, now):
        schema = SubmissionUpsertSchema(title=f"{user.username} tool", repo_url=REPO_URL)
        return self.upsert.execute(user, self.competition.pk, schema, now=now)

    def test_full_lifecycle(self):
        before = T - timedelta(seconds=1)
        detail = CompetitionDetailService().execute(self.competition.pk, now=before)
        self.assertEqual(detail["status"], "upcoming")
        self.assertIsNone(detail["prompt"])
        JoinCompetitionService().execute(self.alice, self.competition.pk, now=before)
        JoinCompetitionService().execute(self.bob, self.competition.pk, now=before)

        detail = CompetitionDetailService().execute(self.competition.pk, now=T)
        self.assertEqual(detail["status"], "live")
        self.assertEqual(detail["prompt"], "Build a CLI")
        with self.assertRaises(JoinClosedError):
            JoinCompetitionService().execute(make_user("carol"), self.competition.pk, now=T)
        alice_sub = self._submit(self.alice, T).submission
        bob_sub = self._submit(self.bob, T + timedelta(minutes=1)).submission

        voting = T + timedelta(hours=2)
        self.assertEqual(CompetitionDetailService().execute(self.competition.pk, now=voting)["status"], "voting")
        with self.assertRaises(SubmissionClosedError):
            self._submit(self.alice, voting)
        CastVoteService().execute(self.bob, alice_sub.pk, VoteCastSchema(value=True), now=voting)
        CastVoteService().execute(self.alice, bob_sub.pk, VoteCastSchema(value=False), now=voting)

        completed = T + timedelta(hours=3)
        with self.assertRaises(VotingClosedError):
            CastVoteService().execute(self.bob, alice_sub.pk, VoteCastSchema(value=False), now=completed)
        board = LeaderboardService().execute(self.competition.pk, now=completed)
        self.assertTrue(board["is_final"])
        self.assertEqual(board["phase"], "completed")
        self.assertEqual(
            [(entry["submission_id"], entry["yes_votes"], entry["no_votes"]) for entry in board["entries"]],
            [(alice_sub.pk, 1, 0), (bob_sub.pk, 0, 1)],
        )


class VotingAPITests(AuthenticatedAPIMixin, APITestCase):
    def setUp(self) -> None:
        self.competition = make_competition(starts_in=-timedelta(hours=2, minutes=30))
        self.author = make_user("alice")
        self.voter = make_user("bob")
        self.submission = _submission(self.competition, self.author, "Tool")

    def test_vote_then_change(self):
        client = self.auth_client(self.voter)
        url = f"/api/voting/submissions/{self.submission.pk}/vote/"
        resp = client.post(url, {"value": True, "comment": "would use daily"}, format="json")
        self.assertEqual(resp.status_code, 201)
        self.assertEqual(resp.data["data"]["yes_votes"], 1)

        resp = client.post(url, {"value": False}, format="json")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual((resp.data["data"]["yes_votes"], resp.data["data"]["no_votes"]), (0, 1))

    def test_self_vote_forbidden_and_login_required(self):
        url = f"/api/voting/submissions/{self.submission.pk}/vote/"
        self.assertEqual(self.client.post(url, {"value": True}, format="json").status_code, 401)
        resp = self.auth_client(self.author).post(url, {"value": True}, format="json")
        self.assertEqual(resp.status_code, 403)
        self.assertEqual(resp.data["code"], SelfVoteError.default_code)

    def test_leaderboard_is_public(self):
        resp = self.client.get(f"/api/voting/competitions/{self.competition.pk}/leaderboard/")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data["data"]["entries"][0]["submission_id"], self.submission.pk)
        self.assertFalse(resp.data["data"]["is_final"])

    def test_audit_endpoint_is_admin_only(self):
        Submission.objects.filter(pk=self.submission.pk).update(yes_votes=2)
        self.assertEqual(self.auth_client(self.voter).get("/api/voting/audit/").status_code, 403)

        admin = self.auth_client(make_user("root", is_staff=True))
        resp = admin.get("/api/voting/audit/", {"competition": self.competition.pk})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data["data"]["drifted"][0]["counted"], {"yes_votes": 0, "no_votes": 0})

        resp = admin.post(f"/api/voting/audit/?competition={self.competition.pk}")
        self.assertEqual(resp.status_code, 200)
        self.submission.refresh_from_db()
        self.assertEqual(self.submission.yes_votes, 0)
        self.assertEqual(admin.get("/api/voting/audit/", {"competition": "abc"}).status_code, 400)
