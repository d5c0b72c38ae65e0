from __future__ import annotations

from datetime import datetime, timedelta, timezone as dt_timezone
from unittest import mock

from django.test import SimpleTestCase, TestCase
from rest_framework.test import APITestCase

from apps.common.exceptions import (
    InvalidRepositoryUrlError,
    NotParticipantError,
    SubmissionClosedError,
    ValidationError,
)
from apps.common.infra.github_client import MSG_PRIVATE, RepoVerification
from apps.common.tests_utils import AuthenticatedAPIMixin, make_competition, make_user
from apps.competitions.models import Participant
from apps.voting.models import Vote

from .models import Submission
from .repo import SubmissionRepo, SubmissionWithProfile
from .schemas import RepoVerifySchema, SubmissionUpsertSchema
from .services import MySubmissionService, SubmissionListService, SubmissionUpsertService

# 测试用例：作品提交（仅 live、仅已报名、一人一份）、列表与仓库校验

T = datetime(2026, 3, 1, 10, 0, tzinfo=dt_timezone.utc)
REPO_URL = "https://github.com/octo/tool"


def _verified(url: str) -> RepoVerification:
    return RepoVerification(valid=True, repo={"full_name": "octo/tool", "created_at": "2026-03-01T10:05:00Z"})


def _schema(**overrides) -> SubmissionUpsertSchema:
    data = {"title": "Tool", "repo_url": REPO_URL, "description": "A handy tool"}
    data.update(overrides)
    return SubmissionUpsertSchema(**data)


class SubmissionSchemaTests(SimpleTestCase):
    def test_repo_url_must_be_github(self):
        with self.assertRaises(InvalidRepositoryUrlError):
            _schema(repo_url="https://gitlab.com/octo/tool")
        with self.assertRaises(InvalidRepositoryUrlError):
            _schema(repo_url="https://github.com/octo")

    def test_title_and_demo_url(self):
        with self.assertRaises(ValidationError):
            _schema(title="  ")
        with self.assertRaises(ValidationError):
            _schema(title="x" * 101)
        with self.assertRaises(ValidationError):
            _schema(demo_url="javascript:alert(1)")
        self.assertEqual(_schema(demo_url=" https://tool.example.com ").demo_url, "https://tool.example.com")

    def test_verify_schema_requires_url(self):
        with self.assertRaises(ValidationError):
            RepoVerifySchema.from_dict({})


class SubmissionUpsertServiceTests(TestCase):
    """提交 / 更新作品"""

    def setUp(self) -> None:
        self.competition = make_competition(now=T, starts_in=timedelta(0))
        self.user = make_user("alice")
        Participant.objects.create(competition=self.competition, user=self.user)
        self.service = SubmissionUpsertService(verifier=_verified)
        self.live_now = T + timedelta(minutes=30)

    def test_first_submit_creates_then_resubmit_updates(self):
        first = self.service.execute(self.user, self.competition.pk, _schema(), now=self.live_now)
        self.assertTrue(first.created)
        self.assertEqual(first.submission.repo_created_at, datetime(2026, 3, 1, 10, 5, tzinfo=dt_timezone.utc))

        second = self.service.execute(self.user, self.competition.pk, _schema(title="Tool v2"), now=self.live_now)
        self.assertFalse(second.created)
        self.assertEqual(second.submission.pk, first.submission.pk)
        self.assertEqual(Submission.objects.filter(competition=self.competition, user=self.user).count(), 1)
        self.assertEqual(Submission.objects.get().title, "Tool v2")

    def test_failed_verification_does_not_block_submission(self):
        service = SubmissionUpsertService(verifier=lambda url: RepoVerification(valid=False, error=MSG_PRIVATE))
        result = service.execute(self.user, self.competition.pk, _schema(), now=self.live_now)
        self.assertTrue(result.created)
        self.assertEqual(result.verification.error, MSG_PRIVATE)
        self.assertIsNone(result.submission.repo_created_at)

    def test_skip_verification(self):
        verifier = mock.Mock()
        service = SubmissionUpsertService(verifier=verifier)
        result = service.execute(self.user, self.competition.pk, _schema(), now=self.live_now, verify=False)
        verifier.assert_not_called()
        self.assertIsNone(result.verification)

    def test_concurrent_first_submit_becomes_update(self):
        # 另一请求已先插入作品，本请求加锁读取时还看不到
        existing = Submission.objects.create(competition=self.competition, user=self.user, title="Tool", repo_url=REPO_URL)
        submission_repo = SubmissionRepo()
        real_lock = submission_repo.lock_for_user
        calls = []

        def racing_lock(competition_id, user_id):
            calls.append(competition_id)
            return None if len(calls) == 1 else real_lock(competition_id, user_id)

        service = SubmissionUpsertService(submission_repo=submission_repo, verifier=_verified)
        with mock.patch.object(submission_repo, "lock_for_user", side_effect=racing_lock):
            result = service.execute(self.user, self.competition.pk, _schema(title="Tool v2"), now=self.live_now)
        self.assertEqual(len(calls), 2)
        self.assertFalse(result.created)
        self.assertEqual(result.submission.pk, existing.pk)
        self.assertEqual(Submission.objects.filter(competition=self.competition, user=self.user).count(), 1)
        self.assertEqual(Submission.objects.get().title, "Tool v2")

    def test_only_participants_may_submit(self):
        outsider = make_user("mallory")
        with self.assertRaises(NotParticipantError):
            self.service.execute(outsider, self.competition.pk, _schema(), now=self.live_now)

    def test_submission_window_is_live_only(self):
        for now in (T - timedelta(seconds=1), T + timedelta(hours=2)):
            with self.subTest(now=now):
                with self.assertRaises(SubmissionClosedError):
                    self.service.execute(self.user, self.competition.pk, _schema(), now=now)
        self.assertFalse(Submission.objects.exists())

    def test_verifier_not_called_when_closed(self):
        verifier = mock.Mock()
        service = SubmissionUpsertService(verifier=verifier)
        with self.assertRaises(SubmissionClosedError):
            service.execute(self.user, self.competition.pk, _schema(), now=T + timedelta(hours=2))
        verifier.assert_not_called()


class SubmissionQueryTests(TestCase):
    def setUp(self) -> None:
        self.competition = make_competition(now=T, starts_in=timedelta(0))
        self.alice = make_user("alice", github_username="alice-gh")
        self.bob = make_user("bob")
        self.carol = make_user("carol")
        self.first = Submission.objects.create(
            competition=self.competition, user=self.alice, title="A", repo_url=REPO_URL, yes_votes=5,
        )
        self.second = Submission.objects.create(
            competition=self.competition, user=self.bob, title="B", repo_url=REPO_URL, yes_votes=5,
        )
        self.third = Submission.objects.create(
            competition=self.competition, user=self.carol, title="C", repo_url=REPO_URL, yes_votes=3,
        )

    def test_ranking_is_deterministic_with_ties(self):
        repo = SubmissionRepo()
        for _ in range(3):
            self.assertEqual(
                [s.pk for s in repo.ranked(self.competition.pk)],
                [self.first.pk, self.second.pk, self.third.pk],
            )
        self.assertEqual([repo.rank_of(s) for s in (self.first, self.second, self.third)], [1, 2, 3])

    def test_list_with_profiles_is_typed(self):
        items = SubmissionRepo().list_with_profiles(self.competition.pk)
        self.assertIsInstance(items[0], SubmissionWithProfile)
        self.assertEqual(items[0].user.github_username, "alice-gh")

    def test_list_includes_callers_vote(self):
        Vote.objects.create(submission=self.second, user=self.carol, value=False)
        items = SubmissionListService().execute(self.competition.pk, user=self.carol)
        votes = {item["id"]: item["my_vote"] for item in items}
        self.assertEqual(votes, {self.first.pk: None, self.second.pk: False, self.third.pk: None})

    def test_my_submission(self):
        self.assertEqual(MySubmissionService().execute(self.bob, self.competition.pk), self.second)
        self.assertIsNone(MySubmissionService().execute(make_user("dave"), self.competition.pk))


class SubmissionAPITests(AuthenticatedAPIMixin, APITestCase):
    """接口冒烟：提交、列表、我的作品、仓库校验"""

    def setUp(self) -> None:
        self.competition = make_competition(starts_in=-timedelta(minutes=5))
        self.user = make_user("alice")
        Participant.objects.create(competition=self.competition, user=self.user)
        self.client_alice = self.auth_client(self.user)
        patcher = mock.patch("apps.common.infra.github_client.validate_repository_url", side_effect=_verified)
        self.verifier = patcher.start()
        self.addCleanup(patcher.stop)

    def test_submit_then_update(self):
        url = f"/api/submissions/competitions/{self.competition.pk}/"
        payload = {"title": "Tool", "repo_url": REPO_URL}
        resp = self.client_alice.post(url, payload, format="json")
        self.assertEqual(resp.status_code, 201)
        self.assertTrue(resp.data["data"]["verification"]["valid"])

        resp = self.client_alice.post(url, {**payload, "title": "Tool v2"}, format="json")
        self.assertEqual(resp.status_code, 200)
        self.assertFalse(resp.data["data"]["created"])

        resp = self.client.get(url)
        self.assertEqual([item["title"] for item in resp.data["data"]["items"]], ["Tool v2"])

        resp = self.client_alice.get(f"/api/submissions/competitions/{self.competition.pk}/mine/")
        self.assertEqual(resp.data["data"]["submission"]["title"], "Tool v2")

    def test_invalid_repo_url_rejected(self):
        resp = self.client_alice.post(
            f"/api/submissions/competitions/{self.competition.pk}/",
            {"title": "Tool", "repo_url": "https://example.com/tool"},
            format="json",
        )
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.data["code"], InvalidRepositoryUrlError.default_code)
        self.verifier.assert_not_called()

    def test_wrongly_typed_fields_rejected(self):
        url = f"/api/submissions/competitions/{self.competition.pk}/"
        for payload in (
            {"title": 123, "repo_url": REPO_URL},
            {"title": "Tool", "repo_url": REPO_URL, "description": False},
            {"title": "Tool", "repo_url": 7},
        ):
            with self.subTest(payload=payload):
                resp = self.client_alice.post(url, payload, format="json")
                self.assertEqual(resp.status_code, 400)
                self.assertEqual(resp.data["code"], ValidationError.default_code)
        self.assertFalse(Submission.objects.exists())

    def test_outsider_gets_forbidden(self):
        client = self.auth_client(make_user("mallory"))
        resp = client.post(
            f"/api/submissions/competitions/{self.competition.pk}/",
            {"title": "Tool", "repo_url": REPO_URL},
            format="json",
        )
        self.assertEqual(resp.status_code, 403)
        self.assertEqual(resp.data["code"], NotParticipantError.default_code)

    def test_verify_repo_endpoint(self):
        resp = self.client_alice.post("/api/submissions/verify-repo/", {"url": REPO_URL}, format="json")
        self.assertEqual(resp.status_code, 200)
        self.assertTrue(resp.data["data"]["verification"]["valid"])
        self.verifier.assert_called_once_with(REPO_URL)

        resp = self.client_alice.post("/api/submissions/verify-repo/", {}, format="json")
        self.assertEqual(resp.status_code, 400)
