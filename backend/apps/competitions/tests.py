from __future__ import annotations

from datetime import datetime, timedelta, timezone as dt_timezone
from io import StringIO
from unittest import mock

from django.core.management import call_command
from django.db import DatabaseError
from django.test import SimpleTestCase, TestCase, override_settings
from rest_framework.test import APITestCase

from apps.common.exceptions import AlreadyJoinedError, JoinClosedError, NotFoundError, ValidationError
from apps.common.tests_utils import AuthenticatedAPIMixin, make_competition, make_user

from .lifecycle import (
    PHASE_ORDER,
    Phase,
    PhaseSnapshot,
    Transition,
    format_duration,
    format_time_remaining,
    next_transition,
    resolve_phase,
    status_label,
)
from .models import Competition, Participant
from .repo import CompetitionRepo
from .schemas import CompetitionCreateSchema
from .services import (
    CompetitionDetailService,
    CompetitionListService,
    CreateCompetitionService,
    JoinCompetitionService,
    LeaveCompetitionService,
    ReconcileStatusService,
)
from .tasks import reconcile_statuses

# 测试用例：阶段推导、倒计时、报名闸门、状态对账与接口冒烟

T = datetime(2026, 3, 1, 10, 0, tzinfo=dt_timezone.utc)
SECOND = timedelta(seconds=1)
STARTS, ENDS, VOTING_ENDS = T, T + timedelta(hours=2), T + timedelta(hours=3)


def _competition_at(now: datetime = T, **extra) -> Competition:
    """starts_at=T、ends_at=T+2h、voting_ends_at=T+3h 的比赛，now 只影响默认基准"""
    return make_competition(now=now, starts_in=T - now, **extra)


class PhaseResolutionTests(SimpleTestCase):
    """阶段推导与下一次切换预测：逐个边界检查"""

    def test_every_boundary_instant(self):
        cases = [
            (STARTS - SECOND, Phase.UPCOMING),
            (STARTS, Phase.LIVE),
            (ENDS - SECOND, Phase.LIVE),
            (ENDS, Phase.VOTING),
            (VOTING_ENDS - SECOND, Phase.VOTING),
            (VOTING_ENDS, Phase.COMPLETED),
            (VOTING_ENDS + timedelta(days=30), Phase.COMPLETED),
        ]
        for now, expected in cases:
            with self.subTest(now=now):
                self.assertEqual(resolve_phase(now, STARTS, ENDS, VOTING_ENDS), expected)

    def test_next_transition_matches_next_boundary(self):
        self.assertEqual(next_transition(STARTS - SECOND, STARTS, ENDS, VOTING_ENDS), Transition(Phase.LIVE, STARTS))
        self.assertEqual(next_transition(STARTS, STARTS, ENDS, VOTING_ENDS), Transition(Phase.VOTING, ENDS))
        self.assertEqual(next_transition(ENDS, STARTS, ENDS, VOTING_ENDS), Transition(Phase.COMPLETED, VOTING_ENDS))
        self.assertIsNone(next_transition(VOTING_ENDS, STARTS, ENDS, VOTING_ENDS))

    def test_next_transition_is_none_only_when_completed(self):
        instant = STARTS - timedelta(minutes=30)
        while instant <= VOTING_ENDS + timedelta(minutes=30):
            phase = resolve_phase(instant, STARTS, ENDS, VOTING_ENDS)
            transition = next_transition(instant, STARTS, ENDS, VOTING_ENDS)
            self.assertEqual(transition is None, phase == Phase.COMPLETED, msg=str(instant))
            if transition is not None:
                self.assertGreater(transition.at, instant)
                self.assertEqual(PHASE_ORDER.index(transition.phase), PHASE_ORDER.index(phase) + 1)
            instant += timedelta(minutes=15)

    def test_snapshot_gates(self):
        competition = Competition(starts_at=STARTS, ends_at=ENDS, voting_ends_at=VOTING_ENDS)
        expected = {
            STARTS - SECOND: (True, False, False, False),
            STARTS: (False, True, False, True),
            ENDS: (False, False, True, True),
            VOTING_ENDS: (False, False, False, True),
        }
        for now, (join, submit, vote, prompt) in expected.items():
            snapshot = PhaseSnapshot.capture(competition, now)
            with self.subTest(phase=snapshot.phase):
                self.assertEqual(
                    (snapshot.can_join, snapshot.can_submit, snapshot.can_vote, snapshot.prompt_visible),
                    (join, submit, vote, prompt),
                )
        self.assertTrue(PhaseSnapshot.capture(competition, VOTING_ENDS).is_final)
        self.assertIsNone(PhaseSnapshot.capture(competition, VOTING_ENDS).remaining_seconds)
        self.assertEqual(PhaseSnapshot.capture(competition, STARTS - SECOND).remaining_seconds, 1)


class DurationFormatTests(SimpleTestCase):
    def test_format_duration_floors_each_unit(self):
        cases = [
            (0, "0s"),
            (-5, "0s"),
            (30, "30s"),
            (59.9, "59s"),
            (15 * 60 + 30, "15m 30s"),
            (3 * 3600 + 15 * 60 + 59, "3h 15m"),
            (2 * 86400 + 3 * 3600 + 59 * 60, "2d 3h"),
        ]
        for seconds, expected in cases:
            with self.subTest(seconds=seconds):
                self.assertEqual(format_duration(seconds), expected)

    def test_format_time_remaining_and_labels(self):
        self.assertEqual(format_time_remaining(STARTS, STARTS - timedelta(minutes=5)), "5m 0s")
        self.assertEqual(format_time_remaining(STARTS, STARTS + SECOND), "0s")
        self.assertEqual(status_label("live"), "Live")
        self.assertEqual(status_label("archived"), "Unknown")


class CompetitionSchemaTests(SimpleTestCase):
    def test_times_must_be_strictly_increasing(self):
        with self.assertRaises(ValidationError):
            CompetitionCreateSchema(title="Build", starts_at=STARTS, ends_at=STARTS, voting_ends_at=VOTING_ENDS)
        with self.assertRaises(ValidationError):
            CompetitionCreateSchema(title="Build", starts_at=STARTS, ends_at=ENDS, voting_ends_at=ENDS)

    def test_iso_strings_are_accepted(self):
        schema = CompetitionCreateSchema.from_dict({
            "title": " Build ",
            "starts_at": "2026-03-01T10:00:00Z",
            "ends_at": "2026-03-01T12:00:00Z",
            "voting_ends_at": "2026-03-01T13:00:00Z",
        })
        self.assertEqual(schema.title, "Build")
        self.assertEqual(schema.ends_at, ENDS)


class ParticipationServiceTests(TestCase):
    """报名 / 退出只在 upcoming 阶段开放"""

    def setUp(self) -> None:
        self.competition = _competition_at()
        self.user = make_user("alice")

    def test_join_before_start(self):
        participant = JoinCompetitionService().execute(self.user, self.competition.pk, now=STARTS - SECOND)
        self.assertEqual(participant.competition, self.competition)
        with self.assertRaises(AlreadyJoinedError):
            JoinCompetitionService().execute(self.user, self.competition.pk, now=STARTS - SECOND)
        self.assertEqual(Participant.objects.filter(user=self.user).count(), 1)

    def test_join_rejected_at_start_instant(self):
        with self.assertRaises(JoinClosedError):
            JoinCompetitionService().execute(self.user, self.competition.pk, now=STARTS)
        self.assertFalse(Participant.objects.exists())

    def test_store_level_window_rejects_stale_decision(self):
        # 快照判断仍在报名期，但存储层按同一时刻复核时比赛已开始
        repo = CompetitionRepo()
        with self.assertRaises(JoinClosedError):
            repo.lock_in_phase(self.competition.pk, Phase.UPCOMING, STARTS, error=JoinClosedError())
        with self.assertRaises(NotFoundError):
            repo.lock_in_phase(999999, Phase.UPCOMING, STARTS)

    def test_leave(self):
        JoinCompetitionService().execute(self.user, self.competition.pk, now=STARTS - timedelta(hours=1))
        LeaveCompetitionService().execute(self.user, self.competition.pk, now=STARTS - SECOND)
        self.assertFalse(Participant.objects.exists())
        with self.assertRaises(NotFoundError):
            LeaveCompetitionService().execute(self.user, self.competition.pk, now=STARTS - SECOND)

    def test_leave_rejected_once_live(self):
        JoinCompetitionService().execute(self.user, self.competition.pk, now=STARTS - SECOND)
        with self.assertRaises(JoinClosedError):
            LeaveCompetitionService().execute(self.user, self.competition.pk, now=STARTS)
        self.assertTrue(Participant.objects.filter(user=self.user).exists())


class CompetitionQueryServiceTests(TestCase):
    def setUp(self) -> None:
        self.competition = _competition_at(prompt="Ship a CLI")
        self.user = make_user("alice")

    def test_prompt_hidden_until_start(self):
        before = CompetitionDetailService().execute(self.competition.pk, now=STARTS - SECOND)
        self.assertIsNone(before["prompt"])
        self.assertEqual(before["status"], "upcoming")
        self.assertEqual(before["phase"]["next_transition"]["phase"], "live")
        self.assertEqual(before["phase"]["next_transition"]["remaining_display"], "1s")

        after = CompetitionDetailService().execute(self.competition.pk, now=STARTS)
        self.assertEqual(after["prompt"], "Ship a CLI")
        self.assertEqual(after["status"], "live")

    def test_detail_includes_caller_state(self):
        JoinCompetitionService().execute(self.user, self.competition.pk, now=STARTS - SECOND)
        data = CompetitionDetailService().execute(self.competition.pk, user=self.user, now=STARTS)
        self.assertTrue(data["is_participant"])
        self.assertIsNone(data["my_submission"])
        self.assertEqual(data["participant_count"], 1)

    def test_list_uses_computed_phase_not_cached_status(self):
        # status 缓存仍为 upcoming，但按时间已进入投票
        items = CompetitionListService().execute(now=ENDS, phase="voting")
        self.assertEqual([item["id"] for item in items], [self.competition.pk])
        self.assertEqual(CompetitionListService().execute(now=ENDS, phase="upcoming"), [])

    def test_create_sets_initial_status(self):
        admin = make_user("root", is_staff=True)
        schema = CompetitionCreateSchema(title="Late", starts_at=STARTS, ends_at=ENDS, voting_ends_at=VOTING_ENDS)
        competition = CreateCompetitionService().execute(schema, user=admin, now=ENDS)
        self.assertEqual(competition.status, Phase.VOTING)
        self.assertEqual(competition.created_by, admin)


class ReconcileStatusTests(TestCase):
    """状态对账：幂等、单调、错过多轮时一次追上"""

    def setUp(self) -> None:
        self.competition = _competition_at()

    def _status(self) -> str:
        self.competition.refresh_from_db()
        return self.competition.status

    def test_noop_before_start(self):
        summary = ReconcileStatusService().execute(STARTS - SECOND)
        self.assertEqual(summary.total, 0)
        self.assertEqual(self._status(), Phase.UPCOMING)

    def test_second_run_is_idempotent(self):
        first = ReconcileStatusService().execute(STARTS)
        second = ReconcileStatusService().execute(STARTS)
        self.assertEqual([item["id"] for item in first.to_live], [self.competition.pk])
        self.assertEqual(second.total, 0)
        self.assertEqual(self._status(), Phase.LIVE)

    def test_fast_forward_through_missed_boundaries(self):
        summary = ReconcileStatusService().execute(VOTING_ENDS + timedelta(hours=5))
        self.assertEqual(len(summary.to_live), 1)
        self.assertEqual(len(summary.to_voting), 1)
        self.assertEqual(len(summary.to_completed), 1)
        self.assertEqual(self._status(), Phase.COMPLETED)

    def test_status_never_moves_backwards(self):
        seen = []
        for now in (ENDS, STARTS, STARTS - SECOND, VOTING_ENDS, ENDS, STARTS):
            ReconcileStatusService().execute(now)
            seen.append(PHASE_ORDER.index(Phase(self._status())))
        self.assertEqual(seen, sorted(seen))
        self.assertEqual(self._status(), Phase.COMPLETED)

    def test_row_failure_is_recorded_and_others_continue(self):
        other = _competition_at(title="Other")
        original = CompetitionRepo.advance_status

        def flaky(repo, competition_id, **kwargs):
            if competition_id == self.competition.pk:
                raise DatabaseError("database is locked")
            return original(repo, competition_id, **kwargs)

        with mock.patch.object(CompetitionRepo, "advance_status", flaky):
            summary = ReconcileStatusService().execute(STARTS)

        self.assertEqual([item["id"] for item in summary.failed], [self.competition.pk])
        self.assertEqual([item["id"] for item in summary.to_live], [other.pk])
        self.assertEqual(self._status(), Phase.UPCOMING)

    def test_celery_task_and_management_command(self):
        with mock.patch("apps.competitions.services.current_time", return_value=ENDS):
            result = reconcile_statuses()
            self.assertEqual(result["total"], 2)
            call_command("reconcile_competitions", stdout=StringIO())
        self.assertEqual(self._status(), Phase.VOTING)


class CompetitionAPITests(AuthenticatedAPIMixin, APITestCase):
    """接口冒烟：列表、详情、阶段、报名、对账入口"""

    def setUp(self) -> None:
        self.user = make_user("alice")
        self.admin = make_user("root", is_staff=True)
        self.upcoming = make_competition(starts_in=timedelta(hours=1), prompt="secret prompt")
        self.live = make_competition(starts_in=-timedelta(minutes=10), title="Live Build")

    def test_list_and_detail(self):
        resp = self.client.get("/api/competitions/")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data["extra"]["total"], 2)
        statuses = {item["id"]: item["status"] for item in resp.data["data"]["items"]}
        self.assertEqual(statuses, {self.upcoming.pk: "upcoming", self.live.pk: "live"})

        resp = self.client.get("/api/competitions/", {"status": "live"})
        self.assertEqual([item["id"] for item in resp.data["data"]["items"]], [self.live.pk])

        resp = self.client.get(f"/api/competitions/{self.upcoming.pk}/")
        self.assertIsNone(resp.data["data"]["competition"]["prompt"])

        resp = self.client.get("/api/competitions/424242/")
        self.assertEqual(resp.status_code, 404)

    def test_phase_endpoint(self):
        resp = self.client.get(f"/api/competitions/{self.live.pk}/phase/")
        self.assertEqual(resp.status_code, 200)
        data = resp.data["data"]
        self.assertEqual(data["phase"], "live")
        self.assertEqual(data["next_transition"]["phase"], "voting")
        self.assertTrue(data["actions"]["can_submit"])
        self.assertIn("server_ts", data)

    def test_create_requires_admin(self):
        payload = {
            "title": "New",
            "starts_at": "2030-01-01T00:00:00Z",
            "ends_at": "2030-01-01T02:00:00Z",
            "voting_ends_at": "2030-01-01T03:00:00Z",
        }
        self.assertEqual(self.client.post("/api/competitions/", payload, format="json").status_code, 401)
        self.assertEqual(self.auth_client(self.user).post("/api/competitions/", payload, format="json").status_code, 403)
        resp = self.auth_client(self.admin).post("/api/competitions/", payload, format="json")
        self.assertEqual(resp.status_code, 201)
        self.assertEqual(resp.data["data"]["competition"]["status"], "upcoming")

    def test_create_rejects_wrongly_typed_fields(self):
        admin = self.auth_client(self.admin)
        payload = {
            "title": "New",
            "starts_at": 5,
            "ends_at": "2030-01-01T02:00:00Z",
            "voting_ends_at": "2030-01-01T03:00:00Z",
        }
        resp = admin.post("/api/competitions/", payload, format="json")
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.data["code"], ValidationError.default_code)

        resp = admin.post("/api/competitions/", {**payload, "starts_at": "2030-01-01T00:00:00Z", "title": 42}, format="json")
        self.assertEqual(resp.status_code, 400)
        self.assertFalse(Competition.objects.filter(title="New").exists())

    def test_join_and_leave(self):
        client = self.auth_client(self.user)
        resp = client.post(f"/api/competitions/{self.upcoming.pk}/join/")
        self.assertEqual(resp.status_code, 201)
        self.assertEqual(client.post(f"/api/competitions/{self.upcoming.pk}/join/").status_code, 409)
        self.assertEqual(client.delete(f"/api/competitions/{self.upcoming.pk}/join/").status_code, 200)

        resp = client.post(f"/api/competitions/{self.live.pk}/join/")
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.data["code"], JoinClosedError.default_code)
        self.assertEqual(resp.data["extra"]["phase"], "live")

    def test_join_requires_login(self):
        self.assertEqual(self.client.post(f"/api/competitions/{self.upcoming.pk}/join/").status_code, 401)

    @override_settings(CRON_SECRET="s3cret")
    def test_reconcile_endpoint_checks_bearer_token(self):
        self.assertEqual(self.client.post("/api/competitions/reconcile/").status_code, 401)
        resp = self.client.post("/api/competitions/reconcile/", HTTP_AUTHORIZATION="Bearer wrong")
        self.assertEqual(resp.status_code, 401)

        resp = self.client.get("/api/competitions/reconcile/", HTTP_AUTHORIZATION="Bearer s3cret")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data["message"], "Updated 1 competitions")
        self.live.refresh_from_db()
        self.assertEqual(self.live.status, Phase.LIVE)

    @override_settings(CRON_SECRET="")
    def test_reconcile_endpoint_disabled_without_secret(self):
        resp = self.client.post("/api/competitions/reconcile/", HTTP_AUTHORIZATION="Bearer ")
        self.assertEqual(resp.status_code, 401)
