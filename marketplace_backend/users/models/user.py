"""
PATH: users/models/user.py

CUSTOM USER MODEL (Telegram identity)

- telegram_id is the canonical login identity (Mini App initData carries it).
- A user can buy and sell; role only marks intent and platform staff.
- Passwords are optional (Telegram users authenticate through initData).
"""

from __future__ import annotations

import uuid

from django.contrib.auth.models import AbstractBaseUser, BaseUserManager, PermissionsMixin
from django.db import models


# ---------------- USER MANAGER ----------------
class UserManager(BaseUserManager):
    def create_user(self, telegram_id=None, password=None, **extra_fields):
        if telegram_id in (None, ""):
            raise ValueError("telegram_id is required")

        extra_fields.setdefault("is_active", True)
        username = (extra_fields.get("username") or "").strip()
        extra_fields["username"] = username or None

        user = self.model(telegram_id=int(telegram_id), **extra_fields)

        if password:
            user.set_password(password)
        else:
            user.set_unusable_password()

        user.save(using=self._db)
        return user

    def create_superuser(self, telegram_id, password=None, **extra_fields):
        if not password:
            raise ValueError("Superuser must have a password")

        extra_fields.setdefault("role", User.ROLE_ADMIN)
        extra_fields.setdefault("is_staff", True)
        extra_fields.setdefault("is_superuser", True)

        if extra_fields.get("is_staff") is not True:
            raise ValueError("Superuser must have is_staff=True")
        if extra_fields.get("is_superuser") is not True:
            raise ValueError("Superuser must have is_superuser=True")

        return self.create_user(telegram_id=telegram_id, password=password, **extra_fields)


# ---------------- USER MODEL ----------------
class User(AbstractBaseUser, PermissionsMixin):
    ROLE_BUYER = "buyer"
    ROLE_SELLER = "seller"
    ROLE_ADMIN = "admin"

    ROLE_CHOICES = [
        (ROLE_BUYER, "Buyer"),
        (ROLE_SELLER, "Seller"),
        (ROLE_ADMIN, "Admin"),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    telegram_id = models.BigIntegerField(unique=True)
    username = models.CharField(max_length=64, null=True, blank=True)

    first_name = models.CharField(max_length=100, blank=True, default="")
    last_name = models.CharField(max_length=100, blank=True, default="")
    photo_url = models.URLField(blank=True, default="")
    language_code = models.CharField(max_length=8, blank=True, default="")

    role = models.CharField(max_length=20, choices=ROLE_CHOICES, default=ROLE_BUYER)

    is_active = models.BooleanField(default=True)
    is_staff = models.BooleanField(default=False)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = UserManager()

    USERNAME_FIELD = "telegram_id"
    REQUIRED_FIELDS = []

    class Meta:
        ordering = ["-created_at"]

    @property
    def display_name(self) -> str:
        full = f"{self.first_name} {self.last_name}".strip()
        return full or self.username or str(self.telegram_id)

    @property
    def is_platform_admin(self) -> bool:
        return bool(self.is_staff or self.role == self.ROLE_ADMIN)

    def __str__(self):
        return f"{self.display_name} ({self.telegram_id})"
