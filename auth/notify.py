"""
auth/notify.py -- Password-reset delivery channel.

The engine hands the raw reset token to a PasswordResetNotifier and does not
wait on the outcome. Delivery mechanism and retry policy belong to the
implementation. LoggingResetNotifier is the default: it records that a token
was issued and, only when reveal_token is set (local development), the token
itself.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Protocol

from auth.models import AccountView

logger = logging.getLogger("tenantauth.notify")


class PasswordResetNotifier(Protocol):
    def send_password_reset(self, account: AccountView, token: str, expires_at: datetime) -> None: ...


class LoggingResetNotifier:
    def __init__(self, reveal_token: bool = False) -> None:
        self.reveal_token = reveal_token

    def send_password_reset(self, account: AccountView, token: str, expires_at: datetime) -> None:
        if self.reveal_token:
            logger.info("Password reset token for %s: %s (expires %s)", account.email, token, expires_at.isoformat())
        else:
            logger.info("Password reset issued for account %s (expires %s)", account.id, expires_at.isoformat())
