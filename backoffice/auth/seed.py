from __future__ import annotations

import logging

from sqlalchemy import select

from .core import hash_password
from ..config import Settings
from ..database import db_session
from ..models import User

log = logging.getLogger("backoffice.auth")

_DEFAULT_PASSWORD = "changeme"


def seed_admin(settings: Settings) -> None:
    """
    Create the first admin account if no users exist.

    Credentials come from BACKOFFICE_ADMIN_EMAIL / BACKOFFICE_ADMIN_PASSWORD /
    BACKOFFICE_ADMIN_NAME. The default password is refused outside
    development.
    """
    with db_session() as session:
        existing = session.execute(select(User).limit(1)).scalar_one_or_none()
        if existing:
            return  # Users already seeded — don't overwrite

        if settings.admin_password == _DEFAULT_PASSWORD:
            if settings.environment != "development":
                log.error(
                    "Refusing to seed admin with the default password in %s; "
                    "set BACKOFFICE_ADMIN_PASSWORD.",
                    settings.environment,
                )
                return
            log.warning("Seeding admin with DEFAULT password 'changeme' (development only)")

        session.add(
            User(
                email=settings.admin_email.strip().lower(),
                name=settings.admin_name,
                password_hash=hash_password(settings.admin_password),
                role="admin",
                is_active=True,
            )
        )
        log.info("Default admin created: %s", settings.admin_email)
