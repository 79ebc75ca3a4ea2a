"""Distribution calculator: per-participant shares of a cash/bank pool.

Pure computation, no ledger access. All money is Decimal rounded to cents
with ROUND_HALF_UP; when a total has to be split in two legs, one leg is
computed by multiplication and the other by subtraction so the legs always
add back up to the total.
"""

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Sequence

from src.services.errors import InvalidShare, PartitionIncomplete

TWO_PLACES = Decimal("0.01")
HUNDRED = Decimal("100")
ZERO = Decimal("0")


def to_decimal(value) -> Decimal:
    """Convert int/float/str/Decimal to Decimal without float artifacts."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_money(value) -> Decimal:
    """Round to cents (ROUND_HALF_UP)."""
    return to_decimal(value).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def split_proportionally(total: Decimal, first_weight: Decimal, second_weight: Decimal) -> tuple[Decimal, Decimal]:
    """Split ``total`` into two legs proportional to the weights.

    The first leg is multiplied out and rounded, the second is the remainder.
    Zero combined weight yields two zero legs.
    """
    total = round_money(total)
    denominator = to_decimal(first_weight) + to_decimal(second_weight)
    if denominator == 0:
        return ZERO, ZERO
    first = round_money(total * to_decimal(first_weight) / denominator)
    return first, total - first


@dataclass(frozen=True)
class PoolAmounts:
    """Cash and bank legs available to a distribution."""

    cash: Decimal
    bank: Decimal

    @property
    def total(self) -> Decimal:
        return self.cash + self.bank


@dataclass
class ParticipantShare:
    """Share input for an employee (``employee_id`` set) or the company (``None``)."""

    percentage: Decimal
    employee_id: int | None = None
    cash_held: Decimal = ZERO
    bank_held: Decimal = ZERO
    discount: Decimal = ZERO
    note: str | None = None

    def __post_init__(self):
        self.percentage = round_money(self.percentage)
        self.cash_held = round_money(self.cash_held)
        self.bank_held = round_money(self.bank_held)
        self.discount = round_money(self.discount)


@dataclass
class ShareBreakdown:
    """Computed gross, held and net figures for one participant."""

    employee_id: int | None
    percentage: Decimal
    cash_amount: Decimal
    bank_amount: Decimal
    cash_held: Decimal
    bank_held: Decimal
    discount: Decimal
    total: Decimal
    note: str | None = None

    @property
    def is_company(self) -> bool:
        return self.employee_id is None

    @property
    def is_negative(self) -> bool:
        """Over-held or over-discounted: shown to the user, never clamped here."""
        return self.total < 0

    @property
    def discount_legs(self) -> tuple[Decimal, Decimal]:
        """(bank_discount, cash_discount) split by the gross bank/cash amounts."""
        return split_proportionally(self.discount, self.bank_amount, self.cash_amount)

    @property
    def net_bank(self) -> Decimal:
        bank_discount, _ = self.discount_legs
        return self.bank_amount - self.bank_held - bank_discount

    @property
    def net_cash(self) -> Decimal:
        _, cash_discount = self.discount_legs
        return self.cash_amount - self.cash_held - cash_discount


@dataclass
class DistributionPlan:
    """Result of ``compute_shares``: the pool and every participant's breakdown."""

    pool: PoolAmounts
    employees: list[ShareBreakdown] = field(default_factory=list)
    company: ShareBreakdown | None = None

    @property
    def participants(self) -> list[ShareBreakdown]:
        return [*self.employees, self.company]

    @property
    def employee_bank_held(self) -> Decimal:
        return sum((e.bank_held for e in self.employees), ZERO)

    @property
    def employee_cash_held(self) -> Decimal:
        return sum((e.cash_held for e in self.employees), ZERO)

    @property
    def total_discount(self) -> Decimal:
        """Employee discounts plus the company's own discount."""
        return sum((p.discount for p in self.participants), ZERO)

    @property
    def negative_participants(self) -> list[ShareBreakdown]:
        return [p for p in self.participants if p.is_negative]


class DistributionCalculator:
    """Computes participant shares and enforces the 100% partition."""

    @staticmethod
    def check_partition(percentages: Iterable[Decimal], item_index: int | None = None) -> None:
        """Raise PartitionIncomplete unless percentages sum to exactly 100.

        Args:
            percentages: Participant percentages (rounded to 2 decimals)
            item_index: Map item index, for per-item partitions

        Raises:
            PartitionIncomplete: With the signed deviation from 100
        """
        total = sum((round_money(p) for p in percentages), ZERO)
        deviation = total - HUNDRED
        if deviation != 0:
            raise PartitionIncomplete(deviation, item_index=item_index)

    @staticmethod
    def validate_shares(participants: Sequence[ParticipantShare], company: ParticipantShare) -> None:
        """Range and identity checks on share inputs."""
        if company.employee_id is not None:
            raise InvalidShare("Company share must not reference an employee")

        seen: set[int] = set()
        for share in participants:
            if share.employee_id is None:
                raise InvalidShare("Employee share is missing employee_id")
            if share.employee_id in seen:
                raise InvalidShare(f"Employee {share.employee_id} appears more than once")
            seen.add(share.employee_id)

        for share in [*participants, company]:
            who = f"employee {share.employee_id}" if share.employee_id is not None else "company"
            if share.percentage < 0 or share.percentage > HUNDRED:
                raise InvalidShare(f"Percentage for {who} must be between 0 and 100")
            if share.cash_held < 0 or share.bank_held < 0:
                raise InvalidShare(f"Held amounts for {who} must be 0 or more")
            if share.discount < 0:
                raise InvalidShare(f"Discount for {who} must be 0 or more")

    @staticmethod
    def breakdown(pool: PoolAmounts, share: ParticipantShare) -> ShareBreakdown:
        """Gross legs and signed total for one participant."""
        cash_amount = round_money(pool.cash * share.percentage / HUNDRED)
        bank_amount = round_money(pool.bank * share.percentage / HUNDRED)
        total = (cash_amount - share.cash_held) + (bank_amount - share.bank_held) - share.discount
        return ShareBreakdown(
            employee_id=share.employee_id,
            percentage=share.percentage,
            cash_amount=cash_amount,
            bank_amount=bank_amount,
            cash_held=share.cash_held,
            bank_held=share.bank_held,
            discount=share.discount,
            total=total,
            note=share.note,
        )

    def compute_shares(
        self,
        pool: PoolAmounts,
        participants: Sequence[ParticipantShare],
        company: ParticipantShare,
    ) -> DistributionPlan:
        """Compute every participant's share of the pool.

        Args:
            pool: Selected cash/bank amounts
            participants: Employee shares
            company: Company share

        Returns:
            DistributionPlan with one breakdown per participant

        Raises:
            InvalidShare: On out-of-range or duplicated inputs
            PartitionIncomplete: If percentages do not total exactly 100
        """
        if pool.cash < 0 or pool.bank < 0:
            raise InvalidShare("Pool amounts must be 0 or more")

        self.validate_shares(participants, company)
        self.check_partition([share.percentage for share in [*participants, company]])

        return DistributionPlan(
            pool=pool,
            employees=[self.breakdown(pool, share) for share in participants],
            company=self.breakdown(pool, company),
        )


__all__ = [
    "DistributionCalculator",
    "DistributionPlan",
    "ParticipantShare",
    "PoolAmounts",
    "ShareBreakdown",
    "round_money",
    "split_proportionally",
    "to_decimal",
]
