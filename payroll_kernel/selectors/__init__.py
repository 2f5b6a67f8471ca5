"""Read-only selectors."""

from payroll_kernel.selectors.base import BaseSelector
from payroll_kernel.selectors.payroll_selector import PayrollSelector

__all__ = ["BaseSelector", "PayrollSelector"]
