"""
Employee store ORM models.

Responsibility:
    Persist employees and their remittance bank accounts.  The payroll core
    only reads these tables; they are written by employee maintenance and by
    test fixtures.

Invariants enforced:
    - ``employee_code`` is unique (uq_payroll_employee_code).
    - ``category`` and ``status`` store enum .value strings.
    - ``monthly_ctc`` is a Money column -- NEVER float.
    - Bank accounts keep their entry order through ``position``.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from payroll_kernel.db.base import Money, TrackedBase
from payroll_kernel.db.types import round_money


class EmployeeModel(TrackedBase):
    """
    ORM model for ``Employee``.

    Guarantees:
        - ``bank_accounts`` loads in ``position`` order.
        - ``to_dto()`` returns a frozen ``Employee`` with a tuple of accounts.
    """

    __tablename__ = "payroll_employees"

    __table_args__ = (
        UniqueConstraint("employee_code", name="uq_payroll_employee_code"),
    )

    employee_code: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[str] = mapped_column(String(50), nullable=False)
    monthly_ctc: Mapped[Decimal] = mapped_column(Money, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="Active")
    department: Mapped[str | None] = mapped_column(String(100))

    bank_accounts: Mapped[list["BankAccountModel"]] = relationship(
        back_populates="employee",
        order_by="BankAccountModel.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def to_dto(self):
        from payroll_kernel.domain.dtos import Employee, EmployeeCategory, EmployeeStatus

        return Employee(
            id=self.id,
            employee_code=self.employee_code,
            name=self.name,
            category=EmployeeCategory(self.category),
            monthly_ctc=round_money(self.monthly_ctc),
            status=EmployeeStatus(self.status),
            department=self.department,
            bank_accounts=tuple(account.to_dto() for account in self.bank_accounts),
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID) -> "EmployeeModel":
        return cls(
            id=dto.id,
            employee_code=dto.employee_code,
            name=dto.name,
            category=dto.category.value,
            monthly_ctc=dto.monthly_ctc,
            status=dto.status.value,
            department=dto.department,
            bank_accounts=[
                BankAccountModel.from_dto(account, position, created_by_id)
                for position, account in enumerate(dto.bank_accounts)
            ],
            created_by_id=created_by_id,
        )

    def __repr__(self) -> str:
        return f"<EmployeeModel {self.employee_code}: {self.name} ({self.category})>"


class BankAccountModel(TrackedBase):
    """ORM model for ``BankAccount``; owned by one employee."""

    __tablename__ = "payroll_bank_accounts"

    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("payroll_employees.id"), nullable=False, index=True
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    bank_name: Mapped[str] = mapped_column(String(100), nullable=False)
    account_number: Mapped[str] = mapped_column(String(50), nullable=False)
    ifsc: Mapped[str] = mapped_column(String(20), nullable=False)
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    employee: Mapped["EmployeeModel"] = relationship(back_populates="bank_accounts")

    def to_dto(self):
        from payroll_kernel.domain.dtos import BankAccount

        return BankAccount(
            id=self.id,
            bank_name=self.bank_name,
            account_number=self.account_number,
            ifsc=self.ifsc,
            is_default=self.is_default,
        )

    @classmethod
    def from_dto(cls, dto, position: int, created_by_id: UUID) -> "BankAccountModel":
        return cls(
            id=dto.id,
            position=position,
            bank_name=dto.bank_name,
            account_number=dto.account_number,
            ifsc=dto.ifsc,
            is_default=dto.is_default,
            created_by_id=created_by_id,
        )
