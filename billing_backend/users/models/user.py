"""
PATH: users/models/user.py

CUSTOM USER MODEL

The "current actor" consulted by the billing engine:
- role decides what the user may do (see permissions/roles.py)
- branch / company decide which bills the user may see and create

Rules:
- branch and waiter users must be attached to a branch
- company users must be attached to a company
- the company is derived from the branch when only the branch is given
"""

from __future__ import annotations

import uuid

from django.contrib.auth.models import AbstractBaseUser, BaseUserManager, PermissionsMixin
from django.core.exceptions import ValidationError
from django.db import models


# ---------------- USER MANAGER ----------------
class UserManager(BaseUserManager):
    def create_user(self, email=None, password=None, **extra_fields):
        """
        Supports:
        - create_user(email="a@b.com", password="x", role="branch", branch=branch)
        - create_user(username="waiter1", password="x")  (email becomes <username>@local.test)
        """
        username = (extra_fields.pop("username", "") or "").strip()
        email = (email or "").strip()

        if not email and not username:
            raise ValueError("Provide at least email or username")

        if not email:
            email = f"{username.lower()}@local.test"

        email = self.normalize_email(email)
        extra_fields.setdefault("is_active", True)

        user = self.model(email=email, **extra_fields)

        if password:
            user.set_password(password)
        else:
            user.set_unusable_password()

        user.full_clean(exclude=["password"])
        user.save(using=self._db)
        return user

    def create_superuser(self, email, password=None, **extra_fields):
        if not email:
            raise ValueError("Superuser must have an email")
        if not password:
            raise ValueError("Superuser must have a password")

        extra_fields.setdefault("role", User.ROLE_SUPERADMIN)
        extra_fields.setdefault("is_staff", True)
        extra_fields.setdefault("is_superuser", True)

        if extra_fields.get("is_staff") is not True:
            raise ValueError("Superuser must have is_staff=True")
        if extra_fields.get("is_superuser") is not True:
            raise ValueError("Superuser must have is_superuser=True")

        return self.create_user(email=email, password=password, **extra_fields)


# ---------------- USER MODEL ----------------
class User(AbstractBaseUser, PermissionsMixin):
    ROLE_SUPERADMIN = "superadmin"
    ROLE_COMPANY = "company"
    ROLE_BRANCH = "branch"
    ROLE_WAITER = "waiter"

    ROLE_CHOICES = [
        (ROLE_SUPERADMIN, "Super Admin"),
        (ROLE_COMPANY, "Company"),
        (ROLE_BRANCH, "Branch"),
        (ROLE_WAITER, "Waiter"),
    ]

    BRANCH_ROLES = {ROLE_BRANCH, ROLE_WAITER}

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    email = models.EmailField(unique=True)

    first_name = models.CharField(max_length=100, blank=True)
    last_name = models.CharField(max_length=100, blank=True)

    role = models.CharField(max_length=20, choices=ROLE_CHOICES, default=ROLE_WAITER)

    company = models.ForeignKey(
        "branches.Company",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="users",
    )
    branch = models.ForeignKey(
        "branches.Branch",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="users",
    )

    is_active = models.BooleanField(default=True)
    is_staff = models.BooleanField(default=False)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = UserManager()

    USERNAME_FIELD = "email"
    REQUIRED_FIELDS = []

    class Meta:
        ordering = ["-created_at"]

    def clean(self):
        if self.email:
            self.email = self.__class__.objects.normalize_email(self.email).strip()

        if self.role in self.BRANCH_ROLES and not self.branch_id:
            raise ValidationError({"branch": f"Role '{self.role}' requires a branch."})

        if self.branch_id and not self.company_id:
            self.company_id = self.branch.company_id

        if self.role == self.ROLE_COMPANY and not self.company_id:
            raise ValidationError({"company": "Role 'company' requires a company."})

    def __str__(self):
        return f"{self.email} ({self.role})"
