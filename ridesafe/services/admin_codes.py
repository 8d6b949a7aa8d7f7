"""Registry of invitation codes for admin self-registration.

Codes in the configured bypass list are always valid and never touch the
table. Read paths answer ``False`` instead of raising.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ridesafe.core import config
from ridesafe.core.errors import CodeAlreadyUsed, ValidationError
from ridesafe.database import persistence_guard, utcnow
from ridesafe.models.admin_code import AdminCode

logger = logging.getLogger(__name__)

SYSTEM_CREATOR = 'system'


@dataclass
class AdminCodeView:
    code: str
    is_active: bool
    created_by: str | None = None
    created_at: datetime | None = None
    used_by: str | None = None
    used_at: datetime | None = None
    is_bypass: bool = False


class AdminCodeRegistry:
    def __init__(self, db: Session, bypass_codes: Iterable[str] | None = None):
        self.db = db
        self.bypass_codes = frozenset(config.ADMIN_BYPASS_CODES if bypass_codes is None else bypass_codes)

    def validate(self, code: str | None) -> bool:
        if not code or not code.strip():
            return False

        if code in self.bypass_codes:
            logger.info('Admin code accepted from the bypass list.')
            return True

        try:
            admin_code = self.db.get(AdminCode, code)
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception('Admin code lookup failed.')
            return False

        if admin_code is None:
            return False
        return bool(admin_code.is_active and not admin_code.used_by)

    def consume(self, code: str, used_by: str) -> bool:
        """Spend a registry code; bypass codes are only logged."""
        if code in self.bypass_codes:
            logger.info('Bypass admin code used by %s.', used_by)
            return True

        with persistence_guard(self.db):
            admin_code = self.db.get(AdminCode, code)
            if admin_code is None or not admin_code.is_active or admin_code.used_by:
                return False
            admin_code.is_active = False
            admin_code.used_by = used_by
            admin_code.used_at = utcnow()
            self.db.commit()

        logger.info('Admin code consumed by %s.', used_by)
        return True

    def add(self, code: str, created_by: str) -> AdminCode:
        code = (code or '').strip()
        if not code:
            raise ValidationError('Admin code is required.')

        with persistence_guard(self.db):
            admin_code = self.db.get(AdminCode, code)
            if admin_code is not None and admin_code.used_by:
                raise CodeAlreadyUsed(f'Admin code {code} was already used by {admin_code.used_by}.')
            if admin_code is None:
                admin_code = AdminCode(code=code)
                self.db.add(admin_code)
            admin_code.is_active = True
            admin_code.created_by = created_by
            admin_code.created_at = utcnow()
            self.db.commit()
            self.db.refresh(admin_code)
        return admin_code

    def deactivate(self, code: str) -> bool:
        with persistence_guard(self.db):
            admin_code = self.db.get(AdminCode, code)
            if admin_code is None:
                return False
            admin_code.is_active = False
            self.db.commit()
        return True

    def delete(self, code: str) -> bool:
        # Codes are never removed so consumption stays auditable.
        return self.deactivate(code)

    def list_all(self) -> list[AdminCodeView]:
        with persistence_guard(self.db):
            admin_codes = list(self.db.scalars(select(AdminCode).order_by(AdminCode.created_at, AdminCode.code)))

        if not admin_codes:
            return [
                AdminCodeView(code=code, is_active=True, created_by=SYSTEM_CREATOR, is_bypass=True)
                for code in sorted(self.bypass_codes)
            ]

        return [
            AdminCodeView(
                code=admin_code.code,
                is_active=admin_code.is_active,
                created_by=admin_code.created_by,
                created_at=admin_code.created_at,
                used_by=admin_code.used_by,
                used_at=admin_code.used_at,
                is_bypass=admin_code.code in self.bypass_codes,
            )
            for admin_code in admin_codes
        ]

    def initialize_defaults(self) -> int:
        """Seed the bypass codes into an empty registry; returns how many were added."""
        with persistence_guard(self.db):
            existing = self.db.scalar(select(func.count()).select_from(AdminCode))
            if existing:
                return 0
            for code in sorted(self.bypass_codes):
                self.db.add(AdminCode(code=code, is_active=True, created_by=SYSTEM_CREATOR, created_at=utcnow()))
            self.db.commit()

        logger.info('Seeded %d admin code(s).', len(self.bypass_codes))
        return len(self.bypass_codes)
