"""Outbound email for renewal reminders."""

from .config import EmailConfig, load_email_config
from .providers import DevPrintProvider, EmailProvider, SMTPProvider, create_email_provider
from .renderer import render_renewal_reminder

__all__ = [
    "DevPrintProvider",
    "EmailConfig",
    "EmailProvider",
    "SMTPProvider",
    "create_email_provider",
    "load_email_config",
    "render_renewal_reminder",
]
