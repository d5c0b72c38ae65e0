from __future__ import annotations

from typing import Optional

from .models import Submission
from .repo import SubmissionWithProfile


def serialize_user_profile(user) -> dict:
    return {
        "id": user.pk,
        "username": user.username,
        "avatar_url": user.avatar_url,
        "github_username": user.github_username,
    }


def serialize_submission(submission: Submission, *, include_user: bool = False) -> dict:
    """作品序列化：基础字段与票数"""
    data = {
        "id": submission.pk,
        "competition_id": submission.competition_id,
        "title": submission.title,
        "description": submission.description,
        "repo_url": submission.repo_url,
        "demo_url": submission.demo_url,
        "repo_created_at": submission.repo_created_at,
        "yes_votes": submission.yes_votes,
        "no_votes": submission.no_votes,
        "submitted_at": submission.submitted_at,
        "updated_at": submission.updated_at,
    }
    if include_user:
        data["user"] = serialize_user_profile(submission.user)
    return data


def serialize_submission_with_profile(item: SubmissionWithProfile, *, my_vote: Optional[bool] = None) -> dict:
    data = item.to_dict()
    data["my_vote"] = my_vote
    return data
