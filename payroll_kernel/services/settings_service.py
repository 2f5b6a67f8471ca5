"""
SettingsService -- writer for the payroll settings singleton.

The payroll run only reads settings.  This service creates the row on first
save and overwrites it afterwards; ``seed_default_settings`` leaves an
existing row untouched.
"""

from uuid import UUID

from sqlalchemy import select

from payroll_kernel.domain.dtos import PayrollSettings
from payroll_kernel.logging_config import get_logger
from payroll_kernel.models.settings import GLOBAL_SETTINGS_KEY, PayrollSettingsModel
from payroll_kernel.services.base import BaseService

logger = get_logger("services.settings")


class SettingsService(BaseService[PayrollSettingsModel]):
    """Persists ``PayrollSettings``.  Flushes only; the caller commits."""

    def _current(self) -> PayrollSettingsModel | None:
        return self.session.scalars(
            select(PayrollSettingsModel).where(
                PayrollSettingsModel.settings_key == GLOBAL_SETTINGS_KEY
            )
        ).one_or_none()

    def save_settings(self, settings: PayrollSettings, actor_id: UUID) -> PayrollSettings:
        model = self._current()
        if model is None:
            model = PayrollSettingsModel.from_dto(settings, actor_id)
            self.session.add(model)
            created = True
        else:
            model.apply_dto(settings, actor_id)
            created = False
        self.session.flush()

        logger.info(
            "payroll_settings_saved",
            extra={
                "settings_created": created,
                "pf_enabled": settings.pf_enabled,
                "esi_enabled": settings.esi_enabled,
                "pt_enabled": settings.pt_enabled,
                "tds_enabled": settings.tds_enabled,
            },
        )
        return model.to_dto()

    def seed_default_settings(
        self, defaults: PayrollSettings, actor_id: UUID
    ) -> PayrollSettings:
        """Store ``defaults`` only if no settings exist yet; return what is stored."""
        model = self._current()
        if model is not None:
            logger.debug("payroll_settings_seed_skipped")
            return model.to_dto()
        return self.save_settings(defaults, actor_id)
