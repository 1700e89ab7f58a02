"""
Order pricing - subtotal, fees, taxes and total

taxes = tax_rate x (subtotal + processing + shipping + insurance)
total = subtotal + processing + shipping + insurance + taxes

Every amount is rounded half-up to the cent.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

ZERO = Decimal("0")
MONEY = Decimal("0.01")


def round_money(value: Decimal) -> Decimal:
    return value.quantize(MONEY, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class OrderTotals:
    subtotal: Decimal
    processing_fee: Decimal
    shipping_fee: Decimal
    insurance_fee: Decimal
    taxes: Decimal
    total_amount: Decimal

    @property
    def fees(self) -> Decimal:
        return self.processing_fee + self.shipping_fee + self.insurance_fee


class CalculationService:
    """Prices an order from its line totals

    processing_fee_rate and tax_rate are fractions (0.05 is 5%).
    shipping_fee and insurance_fee are flat amounts per order.
    """

    def __init__(
        self,
        processing_fee_rate: Decimal = Decimal("0.05"),
        tax_rate: Decimal = Decimal("0.0825"),
        shipping_fee: Decimal = ZERO,
        insurance_fee: Decimal = ZERO,
    ) -> None:
        for name, value in (
            ("processing_fee_rate", processing_fee_rate),
            ("tax_rate", tax_rate),
            ("shipping_fee", shipping_fee),
            ("insurance_fee", insurance_fee),
        ):
            if value < ZERO:
                raise ValueError(f"{name} cannot be negative")
        self.processing_fee_rate = Decimal(processing_fee_rate)
        self.tax_rate = Decimal(tax_rate)
        self.shipping_fee = round_money(Decimal(shipping_fee))
        self.insurance_fee = round_money(Decimal(insurance_fee))

    @staticmethod
    def item_total(quantity: Decimal, unit_price: Decimal) -> Decimal:
        return round_money(quantity * unit_price)

    def calculate(self, line_totals: Iterable[Decimal]) -> OrderTotals:
        subtotal = round_money(sum(line_totals, ZERO))
        processing = round_money(subtotal * self.processing_fee_rate)
        taxable = subtotal + processing + self.shipping_fee + self.insurance_fee
        taxes = round_money(taxable * self.tax_rate)
        return OrderTotals(
            subtotal=subtotal,
            processing_fee=processing,
            shipping_fee=self.shipping_fee,
            insurance_fee=self.insurance_fee,
            taxes=taxes,
            total_amount=taxable + taxes,
        )
