"""Interactive till loop driving the transaction engine.

:class:`TillSession` owns the session's single :class:`~till_pos.core_logic.Receipt`
and :class:`~till_pos.core_logic.Shift` and walks the operator through
lookup, quantity entry, payment and settlement. Input and output are injected
callables so the loop can be scripted in tests.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, List, Optional

from . import core_logic, log
from .constants import CENTS, PaymentMethod


InputFunc = Callable[[str], str]
OutputFunc = Callable[[str], None]

DONE_KEYWORD = "done"
RECEIPT_RULE = "-" * 41
REPORT_RULE = "=" * 42


class SessionEnded(Exception):
    """Raised when the operator's input stream is exhausted."""


def format_money(amount: Decimal) -> str:
    """Render ``amount`` with exactly two decimals, rounding half up."""
    return str(amount.quantize(CENTS, rounding=ROUND_HALF_UP))


def format_receipt(summary: core_logic.ReceiptSummary) -> str:
    rows = ["", "---------------- Receipt ----------------"]
    for line in summary.lines:
        rows.append(
            f"{line.name:<20} x{line.quantity} @ {format_money(line.unit_price)}"
            f" = {format_money(line.line_total)}"
        )
    rows.append(RECEIPT_RULE)
    rows.append(f"Total: {format_money(summary.total)}")
    rows.append(f"Payment Method: {summary.method.value if summary.method else ''}")
    rows.append(f"Amount Received: {format_money(summary.amount_tendered)}")
    if summary.change_due is not None:
        rows.append(f"Change: {format_money(summary.change_due)}")
    rows.append(RECEIPT_RULE)
    rows.append("")
    return "\n".join(rows)


def format_shift_report(report: core_logic.ShiftReport) -> str:
    rows = [
        "",
        "=============== Shift Report ===============",
        f"Cashier: {report.cashier_name}",
        f"Initial Cash: {format_money(report.opening_cash)}",
        f"Receipts: {report.receipt_count}",
        f"Total Cash Sales: {format_money(report.cash_sales)}",
        f"Total Card Sales: {format_money(report.card_sales)}",
        f"Total Sales: {format_money(report.total_sales)}",
        f"Total Change Given: {format_money(report.change_given)}",
        f"Final Cash: {format_money(report.final_cash)}",
        REPORT_RULE,
        "",
    ]
    return "\n".join(rows)


class TillSession:
    """One till: a catalog, the current receipt and the cashier's shift."""

    def __init__(
        self,
        catalog: core_logic.Catalog,
        *,
        receipt: Optional[core_logic.Receipt] = None,
        shift: Optional[core_logic.Shift] = None,
        input_func: InputFunc = input,
        output_func: OutputFunc = print,
    ) -> None:
        self.catalog = catalog
        self.receipt = receipt if receipt is not None else core_logic.Receipt()
        self.shift = shift if shift is not None else core_logic.Shift()
        self._input = input_func
        self._output = output_func

    # -- prompt helpers -----------------------------------------------------

    def prompt(self, message: str) -> str:
        try:
            return self._input(message)
        except EOFError as exc:
            raise SessionEnded() from exc

    def say(self, message: str) -> None:
        self._output(message)

    def read_int(self, message: str) -> int:
        """Prompt until the operator enters a positive whole number."""
        while True:
            raw = self.prompt(message).strip()
            try:
                value = int(raw)
            except ValueError:
                self.say("Invalid input. Please enter an integer.")
                continue
            if value > 0:
                return value
            self.say("Value must be positive. Please try again.")

    def read_money(self, message: str) -> Decimal:
        """Prompt until the operator enters a non-negative amount."""
        while True:
            raw = self.prompt(message)
            try:
                value = core_logic.to_money(raw)
            except ValueError:
                self.say("Invalid input. Please enter a number.")
                continue
            if value >= 0:
                return value
            self.say("Value cannot be negative. Please try again.")

    # -- menus --------------------------------------------------------------

    def run(self) -> None:
        """Show the shift menu until the operator exits or input runs out."""
        try:
            while True:
                if not self.shift.is_open:
                    choice = self.read_int("1. Open Shift\n2. Exit\nChoose: ")
                    if choice == 1:
                        self.open_shift()
                    elif choice == 2:
                        break
                    else:
                        self.say("Invalid choice.")
                else:
                    choice = self.read_int("1. New Receipt\n2. Close Shift\nChoose: ")
                    if choice == 1:
                        self.handle_receipt()
                    elif choice == 2:
                        self.close_shift()
                    else:
                        self.say("Invalid choice.")
        except SessionEnded:
            log.info("Input closed; ending till session")
            self.receipt.clear()

    def open_shift(self) -> None:
        name = self.prompt("Cashier name: ").strip()
        cash = self.read_money("Initial cash: ")
        self.shift.open(name, cash)

    def close_shift(self) -> core_logic.ShiftReport:
        report = self.shift.close()
        self.say(format_shift_report(report))
        return report

    # -- receipt ------------------------------------------------------------

    def choose_product(self, query: str) -> Optional[core_logic.Product]:
        """Resolve ``query`` to one product, asking the operator if ambiguous."""
        matches: List[core_logic.Product] = self.catalog.lookup(query)
        if not matches:
            self.say("Product not found.")
            return None
        if len(matches) == 1:
            return matches[0]

        self.say("Multiple products found:")
        for index, product in enumerate(matches, start=1):
            self.say(
                f" {index}. {product.name} ({product.code}) "
                f"{format_money(product.unit_price)}$"
            )
        choice = self.read_int("Select product: ")
        if choice > len(matches):
            self.say("Invalid selection.")
            return None
        return matches[choice - 1]

    def collect_items(self) -> None:
        while True:
            query = self.prompt(f"Enter barcode/name or '{DONE_KEYWORD}' to finish: ").strip()
            if query == DONE_KEYWORD:
                return
            if not query:
                continue
            product = self.choose_product(query)
            if product is None:
                continue
            quantity = self.read_int("Enter quantity: ")
            self.receipt.add_item(product, quantity)
            self.say(f"Added {quantity} x {product.name}")

    def take_payment(self) -> core_logic.Settlement:
        """Prompt for a tender until the receipt settles."""
        while True:
            method = self.prompt("Payment method (cash/card): ").strip().lower()
            try:
                resolved = core_logic.resolve_payment_method(method)
            except core_logic.UnknownPaymentMethodError:
                self.say("Invalid method.")
                continue

            amount = self.receipt.total
            if resolved is PaymentMethod.CASH:
                amount = self.read_money("Enter cash amount: ")
            try:
                return self.receipt.settle_payment(resolved, amount, self.shift.available_cash)
            except core_logic.InsufficientPaymentError:
                self.say("Insufficient payment.")
            except core_logic.DrawerShortfallError:
                self.say("Change unavailable: not enough cash in the drawer.")

    def handle_receipt(self) -> Optional[core_logic.ReceiptSummary]:
        """Build, settle, print and clear one receipt.

        Returns:
            ReceiptSummary | None: What was printed, or ``None`` for an empty
                receipt.
        """
        self.receipt.clear()
        self.collect_items()

        self.say(f"\nCurrent receipt total: {format_money(self.receipt.total)}$\n")
        if self.receipt.is_empty:
            self.say("No products in receipt.")
            self.receipt.clear()
            return None

        settlement = self.take_payment()
        self.shift.record_settlement(settlement)
        summary = self.receipt.summary()
        self.say(format_receipt(summary))
        self.receipt.clear()
        return summary
