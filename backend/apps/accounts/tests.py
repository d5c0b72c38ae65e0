from __future__ import annotations

from datetime import timedelta

from django.test import TestCase
from rest_framework.test import APITestCase

from apps.common.exceptions import NotFoundError, ValidationError
from apps.common.tests_utils import AuthenticatedAPIMixin, make_competition, make_user
from apps.competitions.models import Participant
from apps.submissions.models import Submission

from .schemas import ProfileUpdateSchema
from .services import ProfileService, UpdateProfileService

# 测试用例：个人资料更新与公开主页统计


class ProfileServiceTests(TestCase):
    def setUp(self) -> None:
        self.user = make_user("alice", github_username="alice-gh")
        self.rival = make_user("bob")
        self.first = make_competition(starts_in=-timedelta(days=10), title="First")
        self.second = make_competition(starts_in=-timedelta(days=5), title="Second")
        self.unsubmitted = make_competition(starts_in=timedelta(days=1), title="Next")
        for competition in (self.first, self.second, self.unsubmitted):
            Participant.objects.create(competition=competition, user=self.user)

        Submission.objects.create(
            competition=self.first, user=self.rival, title="Rival", repo_url="https://github.com/bob/x", yes_votes=9,
        )
        Submission.objects.create(
            competition=self.first, user=self.user, title="Mine 1", repo_url="https://github.com/alice/a", yes_votes=4,
        )
        Submission.objects.create(
            competition=self.second, user=self.user, title="Mine 2", repo_url="https://github.com/alice/b", yes_votes=2,
        )

    def test_public_profile_stats(self):
        data = ProfileService().execute("alice")
        self.assertEqual(data["user"]["github_username"], "alice-gh")
        self.assertNotIn("email", data["user"])
        self.assertEqual(
            data["stats"],
            {"competitions_entered": 3, "submissions_made": 2, "total_yes_votes": 6, "best_placement": 1},
        )
        ranks = {item["title"]: item["rank"] for item in data["submissions"]}
        self.assertEqual(ranks, {"Mine 1": 2, "Mine 2": 1})
        self.assertEqual({item["competition"]["title"] for item in data["submissions"]}, {"First", "Second"})

    def test_profile_without_submissions(self):
        data = ProfileService().execute("bob")
        self.assertEqual(data["stats"]["best_placement"], 1)
        newcomer = make_user("carol")
        stats = ProfileService().execute(newcomer.username)["stats"]
        self.assertEqual(stats, {"competitions_entered": 0, "submissions_made": 0, "total_yes_votes": 0, "best_placement": None})

    def test_unknown_user(self):
        with self.assertRaises(NotFoundError):
            ProfileService().execute("nobody")

    def test_partial_update(self):
        user = UpdateProfileService().execute(self.user, ProfileUpdateSchema(avatar_url="https://img.example.com/a.png"))
        user.refresh_from_db()
        self.assertEqual(user.avatar_url, "https://img.example.com/a.png")
        self.assertEqual(user.github_username, "alice-gh")

    def test_update_validation(self):
        with self.assertRaises(ValidationError):
            ProfileUpdateSchema()
        with self.assertRaises(ValidationError):
            ProfileUpdateSchema(avatar_url="not a url")


class AccountAPITests(AuthenticatedAPIMixin, APITestCase):
    def setUp(self) -> None:
        self.user = make_user("alice")

    def test_me_get_and_patch(self):
        client = self.auth_client(self.user)
        resp = client.get("/api/accounts/me/")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data["data"]["user"]["email"], "alice@example.com")

        resp = client.patch("/api/accounts/me/", {"github_username": "alice-gh"}, format="json")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data["data"]["user"]["github_username"], "alice-gh")

    def test_invalid_token_rejected(self):
        self.client.credentials(HTTP_AUTHORIZATION="Bearer not-a-token")
        resp = self.client.get("/api/accounts/me/")
        self.assertEqual(resp.status_code, 401)
        self.assertEqual(resp.data["code"], 40102)

    def test_public_profile(self):
        resp = self.client.get("/api/accounts/profiles/alice/")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data["data"]["user"]["username"], "alice")
        self.assertEqual(self.client.get("/api/accounts/profiles/ghost/").status_code, 404)
