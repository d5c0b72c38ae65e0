"""
GitHub 仓库校验客户端（apps.common.infra.github_client）

- 只做“仓库是否存在 / 是否公开 / 提交元数据”这类窄范围查询
- 所有 HTTP 调用都带超时（GITHUB_API_TIMEOUT，默认 5 秒）
- 网络或接口失败不抛异常，统一折算为 RepoVerification(valid=False, error=...)，
  调用方把它当作提示信息，不阻塞写入
"""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass, field
from typing import Any, Optional

import requests
from django.conf import settings
from requests.exceptions import RequestException

from apps.common.infra.logger import get_logger, logger_extra

logger = get_logger(__name__)

GITHUB_API_BASE = "https://api.github.com"
GITHUB_URL_PATTERN = re.compile(r"^https?://github\.com/([^/]+)/([^/]+)/?$")
LAST_PAGE_PATTERN = re.compile(r'page=(\d+)>; rel="last"')

REPO_FIELDS = (
    "name",
    "full_name",
    "description",
    "html_url",
    "private",
    "created_at",
    "updated_at",
    "pushed_at",
    "default_branch",
    "language",
    "stargazers_count",
    "forks_count",
)

MSG_INVALID_URL = "Invalid GitHub URL. Please use format: https://github.com/owner/repo"
MSG_NOT_FOUND = "Repository not found. Make sure it exists and is public."
MSG_RATE_LIMITED = "Rate limited. Please try again later."
MSG_PRIVATE = "Repository must be public."
MSG_UNAVAILABLE = "Failed to verify repository. Please try again."


@dataclass(frozen=True)
class ParsedGitHubUrl:
    owner: str
    repo: str


@dataclass
class CommitInfo:
    first_commit_at: Optional[str] = None
    last_commit_at: Optional[str] = None
    commit_count: int = 0


@dataclass
class RepoVerification:
    valid: bool
    error: Optional[str] = None
    repo: Optional[dict[str, Any]] = None
    commits: Optional[CommitInfo] = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data.pop("extra", None)
        return data


def parse_github_url(url: str) -> Optional[ParsedGitHubUrl]:
    """解析 https://github.com/<owner>/<repo>，不匹配返回 None；仓库名去掉 .git 后缀"""
    match = GITHUB_URL_PATTERN.match((url or "").strip())
    if not match:
        return None
    repo = match.group(2)
    if repo.endswith(".git"):
        repo = repo[: -len(".git")]
    return ParsedGitHubUrl(owner=match.group(1), repo=repo)


def _headers() -> dict[str, str]:
    headers = {"Accept": "application/vnd.github.v3+json"}
    token = getattr(settings, "GITHUB_APP_TOKEN", "")
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return headers


def _github_get(path: str, params: Optional[dict] = None) -> requests.Response:
    return requests.get(
        f"{GITHUB_API_BASE}{path}",
        headers=_headers(),
        params=params,
        timeout=getattr(settings, "GITHUB_API_TIMEOUT", 5),
    )


def verify_repository(owner: str, repo: str) -> RepoVerification:
    """确认仓库存在且公开"""
    try:
        resp = _github_get(f"/repos/{owner}/{repo}")
    except RequestException as exc:
        logger.warning(
            "GitHub 仓库校验请求失败",
            extra=logger_extra({"owner": owner, "repo": repo, "error": str(exc)}),
        )
        return RepoVerification(valid=False, error=MSG_UNAVAILABLE)

    if resp.status_code == 404:
        return RepoVerification(valid=False, error=MSG_NOT_FOUND)
    if resp.status_code == 403:
        logger.warning("GitHub 接口限流", extra=logger_extra({"owner": owner, "repo": repo}))
        return RepoVerification(valid=False, error=MSG_RATE_LIMITED)
    if not resp.ok:
        return RepoVerification(valid=False, error=f"Failed to verify repository: {resp.reason}")

    try:
        data = resp.json()
    except ValueError:
        logger.warning("GitHub 返回非 JSON 响应", extra=logger_extra({"owner": owner, "repo": repo}))
        return RepoVerification(valid=False, error=MSG_UNAVAILABLE)

    if data.get("private"):
        return RepoVerification(valid=False, error=MSG_PRIVATE)

    return RepoVerification(valid=True, repo={key: data.get(key) for key in REPO_FIELDS})


def _commit_date(commits: list) -> Optional[str]:
    if not commits:
        return None
    return ((commits[0].get("commit") or {}).get("author") or {}).get("date")


def get_commit_info(owner: str, repo: str) -> CommitInfo:
    """
    读取提交元数据：最近一次提交时间、提交总数、首次提交时间

    总数来自 per_page=1 时 Link 头里 rel="last" 的页码
    """
    try:
        recent = _github_get(f"/repos/{owner}/{repo}/commits", params={"per_page": 1})
        if not recent.ok:
            return CommitInfo()
        recent_commits = recent.json()
        last_commit_at = _commit_date(recent_commits)

        commit_count = len(recent_commits)
        last_page = LAST_PAGE_PATTERN.search(recent.headers.get("Link", ""))
        if last_page:
            commit_count = int(last_page.group(1))

        first_commit_at = None
        if commit_count > 1:
            oldest = _github_get(
                f"/repos/{owner}/{repo}/commits",
                params={"per_page": 1, "page": commit_count},
            )
            if oldest.ok:
                first_commit_at = _commit_date(oldest.json())
        else:
            first_commit_at = last_commit_at
    except (RequestException, ValueError) as exc:
        logger.warning(
            "GitHub 提交信息查询失败",
            extra=logger_extra({"owner": owner, "repo": repo, "error": str(exc)}),
        )
        return CommitInfo()

    return CommitInfo(
        first_commit_at=first_commit_at,
        last_commit_at=last_commit_at,
        commit_count=commit_count,
    )


def validate_repository_url(url: str) -> RepoVerification:
    """完整校验：URL 格式 → 仓库可见性 → 提交元数据"""
    parsed = parse_github_url(url)
    if parsed is None:
        return RepoVerification(valid=False, error=MSG_INVALID_URL)

    verification = verify_repository(parsed.owner, parsed.repo)
    if not verification.valid:
        return verification

    verification.commits = get_commit_info(parsed.owner, parsed.repo)
    return verification
