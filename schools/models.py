from django.conf import settings
from django.db import models


class School(models.Model):
    # Basic Info
    name = models.CharField(max_length=100)
    short_name = models.CharField(max_length=20, blank=True, help_text="Short name for sidebar display")

    # Contact & Address
    email = models.EmailField(blank=True)
    phone = models.CharField(max_length=20, blank=True)
    address = models.TextField(blank=True)

    # Administration
    headmaster_name = models.CharField(max_length=100, blank=True, verbose_name="Head's Name")

    # Metadata
    created_on = models.DateField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return self.name

    @property
    def display_name(self):
        """Return short_name if available, otherwise name."""
        return self.short_name or self.name


class SchoolAdmin(models.Model):
    """Links an administrator account to the one school it manages."""
    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='school_admin'
    )
    school = models.ForeignKey(
        School,
        on_delete=models.CASCADE,
        related_name='admins'
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = "School Admin"
        verbose_name_plural = "School Admins"

    def __str__(self):
        return f"{self.user} ({self.school})"
