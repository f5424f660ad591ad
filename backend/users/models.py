from django.contrib.auth.models import AbstractUser
from django.db import models


class User(AbstractUser):
    ROLE_SUPERADMIN = "SUPERADMIN"
    ROLE_ORCHESTRATOR = "ORCHESTRATOR"
    ROLE_APPROVER = "APPROVER"
    ROLE_ADMIN = "ADMIN"

    ROLES = (
        (ROLE_SUPERADMIN, "Super administrator"),
        (ROLE_ORCHESTRATOR, "Orchestrator"),
        (ROLE_APPROVER, "Approver"),
        (ROLE_ADMIN, "Election administrator"),
    )

    role = models.CharField(max_length=20, choices=ROLES)
    email = models.EmailField(unique=True, blank=True, null=True, verbose_name="Email address")

    REQUIRED_FIELDS = ["email", "role"]

    def save(self, *args, **kwargs):
        # Blank emails are stored as NULL so the unique constraint ignores them.
        if not (self.email or "").strip():
            self.email = None
        return super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"{self.username} ({self.get_role_display()})"
