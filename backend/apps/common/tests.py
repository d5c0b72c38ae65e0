# -*- coding: utf-8 -*-
"""
公共模块单测：
- 入参校验工具
- GitHub 仓库校验客户端（HTTP 调用全部打桩）
- 统一响应结构与健康检查
"""

from __future__ import annotations

from unittest import mock

from django.test import SimpleTestCase, TestCase, override_settings
from requests.exceptions import ConnectTimeout
from rest_framework.test import APITestCase

from apps.common import response
from apps.common.exceptions import ConflictError, ValidationError, require
from apps.common.infra import github_client
from apps.common.utils.validators import (
    ensure_aware_datetime,
    limit_text,
    require_text,
    validate_url_optional,
)


class ValidatorTests(SimpleTestCase):
    """文本 / URL / 时间入参校验"""

    def test_require_text_strips_and_rejects_blank(self):
        self.assertEqual(require_text("  hello ", field_name="标题"), "hello")
        with self.assertRaises(ValidationError):
            require_text("   ", field_name="标题")

    def test_limit_text_enforces_length_and_blocks_script(self):
        with self.assertRaises(ValidationError):
            limit_text("a" * 11, field_name="简介", max_length=10)
        with self.assertRaises(ValidationError):
            limit_text("<script>alert(1)</script>", field_name="简介", max_length=100)
        self.assertEqual(limit_text("**markdown** ok", field_name="简介", max_length=100), "**markdown** ok")

    def test_validate_url_optional(self):
        validate_url_optional("")
        validate_url_optional("https://demo.example.com/app")
        with self.assertRaises(ValidationError):
            validate_url_optional("ftp://example.com/file")
        with self.assertRaises(ValidationError):
            validate_url_optional("", allow_blank=False)

    def test_ensure_aware_datetime_parses_iso_strings(self):
        value = ensure_aware_datetime("2026-03-01T10:00:00+00:00", field_name="开始时间")
        self.assertIsNotNone(value.tzinfo)
        naive = ensure_aware_datetime("2026-03-01T10:00:00", field_name="开始时间")
        self.assertIsNotNone(naive.tzinfo)
        with self.assertRaises(ValidationError):
            ensure_aware_datetime("not a date", field_name="开始时间")
        with self.assertRaises(ValidationError):
            ensure_aware_datetime(None, field_name="开始时间")

    def test_non_string_input_is_validation_error(self):
        for value in (123, True, ["a"], {"x": 1}):
            with self.subTest(value=value):
                with self.assertRaises(ValidationError):
                    require_text(value, field_name="标题")
                with self.assertRaises(ValidationError):
                    limit_text(value, field_name="简介", max_length=10)
        self.assertEqual(limit_text(None, field_name="简介", max_length=10), "")
        for value in (5, 1.5, False, ["2026-03-01"]):
            with self.subTest(value=value):
                with self.assertRaises(ValidationError):
                    ensure_aware_datetime(value, field_name="开始时间")

    def test_require_raises_given_error(self):
        require(True, ConflictError())
        with self.assertRaises(ConflictError):
            require(False, ConflictError())


def _fake_response(status_code: int = 200, payload=None, headers=None, reason: str = "OK"):
    resp = mock.Mock()
    resp.status_code = status_code
    resp.ok = 200 <= status_code < 400
    resp.reason = reason
    resp.headers = headers or {}
    resp.json.return_value = payload
    return resp


class GitHubClientTests(SimpleTestCase):
    """仓库校验：URL 解析、可见性判断与提交统计"""

    def test_parse_github_url(self):
        parsed = github_client.parse_github_url("https://github.com/octo/tool.git")
        self.assertEqual(parsed, github_client.ParsedGitHubUrl(owner="octo", repo="tool"))
        self.assertEqual(github_client.parse_github_url("https://github.com/octo/tool/").repo, "tool")
        self.assertIsNone(github_client.parse_github_url("https://gitlab.com/octo/tool"))
        self.assertIsNone(github_client.parse_github_url("https://github.com/octo"))
        self.assertIsNone(github_client.parse_github_url("https://github.com/octo/tool/tree/main"))

    def test_invalid_url_does_not_call_github(self):
        with mock.patch.object(github_client, "_github_get") as fake_get:
            result = github_client.validate_repository_url("not-a-url")
        fake_get.assert_not_called()
        self.assertFalse(result.valid)
        self.assertEqual(result.error, github_client.MSG_INVALID_URL)

    def test_error_statuses_map_to_messages(self):
        cases = [
            (_fake_response(404), github_client.MSG_NOT_FOUND),
            (_fake_response(403), github_client.MSG_RATE_LIMITED),
            (_fake_response(200, {"private": True}), github_client.MSG_PRIVATE),
        ]
        for resp, message in cases:
            with self.subTest(message=message):
                with mock.patch.object(github_client, "_github_get", return_value=resp):
                    result = github_client.verify_repository("octo", "tool")
                self.assertFalse(result.valid)
                self.assertEqual(result.error, message)

    def test_network_failure_is_reported_not_raised(self):
        with mock.patch.object(github_client, "_github_get", side_effect=ConnectTimeout("timed out")):
            result = github_client.verify_repository("octo", "tool")
        self.assertFalse(result.valid)
        self.assertEqual(result.error, github_client.MSG_UNAVAILABLE)

    def test_valid_repository_with_commit_info(self):
        repo_payload = {"name": "tool", "full_name": "octo/tool", "private": False, "created_at": "2026-03-01T10:30:00Z"}
        recent = _fake_response(
            200,
            [{"commit": {"author": {"date": "2026-03-01T12:00:00Z"}}}],
            headers={"Link": '<https://api.github.com/repos/octo/tool/commits?per_page=1&page=7>; rel="last"'},
        )
        oldest = _fake_response(200, [{"commit": {"author": {"date": "2026-03-01T10:31:00Z"}}}])
        with mock.patch.object(
            github_client,
            "_github_get",
            side_effect=[_fake_response(200, repo_payload), recent, oldest],
        ) as fake_get:
            result = github_client.validate_repository_url("https://github.com/octo/tool")

        self.assertTrue(result.valid)
        self.assertEqual(result.repo["full_name"], "octo/tool")
        self.assertEqual(result.commits.commit_count, 7)
        self.assertEqual(result.commits.first_commit_at, "2026-03-01T10:31:00Z")
        self.assertEqual(result.commits.last_commit_at, "2026-03-01T12:00:00Z")
        self.assertEqual(fake_get.call_args_list[-1].kwargs["params"], {"per_page": 1, "page": 7})
        self.assertNotIn("extra", result.to_dict())

    @override_settings(GITHUB_APP_TOKEN="ghs_test")
    def test_token_is_sent_when_configured(self):
        self.assertEqual(github_client._headers()["Authorization"], "Bearer ghs_test")


class ResponseEnvelopeTests(SimpleTestCase):
    def test_success_and_created_envelope(self):
        ok = response.success({"id": 1}, message="done")
        self.assertEqual(ok.status_code, 200)
        self.assertEqual(ok.data, {"code": 0, "message": "done", "data": {"id": 1}})

        created = response.created({"id": 2})
        self.assertEqual(created.status_code, 201)
        self.assertEqual(created.data["code"], 0)

    def test_page_success_carries_page_meta(self):
        resp = response.page_success(
            items={"items": []},
            page=2,
            page_size=10,
            total=15,
            has_next=False,
            has_previous=True,
            total_pages=2,
        )
        self.assertEqual(resp.data["extra"]["total_pages"], 2)
        self.assertTrue(resp.data["extra"]["has_previous"])


class HealthCheckTests(APITestCase):
    def test_health_check_returns_server_time(self):
        resp = self.client.get("/health/")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data["data"]["status"], "ok")
        self.assertIn("server_time", resp.data["data"])


class ErrorEnvelopeTests(TestCase):
    def test_anonymous_request_gets_auth_error_envelope(self):
        resp = self.client.get("/api/accounts/me/")
        self.assertEqual(resp.status_code, 401)
        self.assertEqual(resp.json()["code"], 40100)
