"""
后台用户管理：在 Django 自带 UserAdmin 基础上展示 GitHub 资料字段
"""

from __future__ import annotations

from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as DjangoUserAdmin

from .models import User


@admin.register(User)
class UserAdmin(DjangoUserAdmin):
    list_display = ("username", "github_username", "email", "is_staff", "date_joined")
    search_fields = ("username", "github_username", "email")
    fieldsets = DjangoUserAdmin.fieldsets + (
        ("GitHub 资料", {"fields": ("github_username", "avatar_url")}),
    )
