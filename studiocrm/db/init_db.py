from pathlib import Path

from sqlalchemy.orm import Session

from studiocrm.core.config import settings
from studiocrm.core.logging_setup import get_logger
from studiocrm.core.security import hash_password
from studiocrm.db.database import engine, SessionLocal, Base
from studiocrm.db import models  # noqa: F401  (ensures models are imported for metadata)
from studiocrm.db.settings_crud import ensure_studio_settings_row

LOG = get_logger(__name__)


def init_db() -> None:
    if not settings.DATABASE_URL:
        Path(settings.DB_DIR).mkdir(parents=True, exist_ok=True)
    Base.metadata.create_all(bind=engine)


def ensure_studio_settings() -> None:
    db: Session = SessionLocal()
    try:
        row = ensure_studio_settings_row(db)
        LOG.info("Studio settings ensured: %s", row.studio_name)
    finally:
        db.close()


def ensure_admin_user() -> None:
    db: Session = SessionLocal()
    try:
        admin = db.query(models.AdminUser).filter(models.AdminUser.email == settings.ADMIN_EMAIL).first()
        if admin is None:
            admin = models.AdminUser(
                email=settings.ADMIN_EMAIL,
                password_hash=hash_password(settings.ADMIN_PASSWORD),
                name="Studio Admin",
                role="admin",
                is_active=True,
            )
            db.add(admin)
            db.commit()
            LOG.info("Admin user created: %s", settings.ADMIN_EMAIL)
            return

        changed = False
        if admin.role != "admin":
            admin.role = "admin"
            changed = True
        if not admin.is_active:
            admin.is_active = True
            changed = True
        if settings.ADMIN_FORCE_RESET:
            admin.password_hash = hash_password(settings.ADMIN_PASSWORD)
            changed = True

        if changed:
            db.commit()
            LOG.info("Admin user updated: %s (force_reset=%s)", settings.ADMIN_EMAIL, settings.ADMIN_FORCE_RESET)
    finally:
        db.close()
