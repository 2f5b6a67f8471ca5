"""
Payroll settings ORM model.

A single row keyed by ``settings_key = "global"``.  The payroll run reads it
once per call and never writes it; ``SettingsService`` is the only writer.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from payroll_kernel.db.base import Money, Rate, TrackedBase
from payroll_kernel.db.types import round_money

GLOBAL_SETTINGS_KEY = "global"


class PayrollSettingsModel(TrackedBase):
    """ORM model for ``PayrollSettings``."""

    __tablename__ = "payroll_settings"

    __table_args__ = (
        UniqueConstraint("settings_key", name="uq_payroll_settings_key"),
    )

    settings_key: Mapped[str] = mapped_column(
        String(20), nullable=False, default=GLOBAL_SETTINGS_KEY
    )
    company_name: Mapped[str | None] = mapped_column(String(255))

    basic_pay_percentage: Mapped[Decimal] = mapped_column(Rate, nullable=False)
    hra_percentage: Mapped[Decimal] = mapped_column(Rate, nullable=False)
    special_allowance_percentage: Mapped[Decimal] = mapped_column(Rate, nullable=False)

    pf_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    pf_percentage: Mapped[Decimal] = mapped_column(Rate, nullable=False)
    esi_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    esi_percentage: Mapped[Decimal] = mapped_column(Rate, nullable=False)
    pt_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    pt_amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    tds_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    tds_percentage: Mapped[Decimal] = mapped_column(Rate, nullable=False)

    def to_dto(self):
        from payroll_kernel.domain.dtos import PayrollSettings

        return PayrollSettings(
            basic_pay_percentage=round_money(self.basic_pay_percentage, 4),
            hra_percentage=round_money(self.hra_percentage, 4),
            special_allowance_percentage=round_money(self.special_allowance_percentage, 4),
            pf_enabled=self.pf_enabled,
            pf_percentage=round_money(self.pf_percentage, 4),
            esi_enabled=self.esi_enabled,
            esi_percentage=round_money(self.esi_percentage, 4),
            pt_enabled=self.pt_enabled,
            pt_amount=round_money(self.pt_amount),
            tds_enabled=self.tds_enabled,
            tds_percentage=round_money(self.tds_percentage, 4),
            company_name=self.company_name,
        )

    def apply_dto(self, dto, updated_by_id: UUID) -> None:
        """Overwrite every setting from ``dto``."""
        for name, value in dto.to_dict().items():
            setattr(self, name, value)
        self.updated_by_id = updated_by_id

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID) -> "PayrollSettingsModel":
        model = cls(settings_key=GLOBAL_SETTINGS_KEY, created_by_id=created_by_id)
        for name, value in dto.to_dict().items():
            setattr(model, name, value)
        return model
