"""Transaction engine for the till.

This module holds the three pieces of state a single till works with: the
read-only :class:`Catalog`, the reusable :class:`Receipt` for the customer at
the counter, and the :class:`Shift` ledger that tracks what should be in the
cash drawer. All filesystem access goes through :mod:`till_pos.data_manager`.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple, Union

from . import data_manager, log
from .constants import DEFAULT_DELIMITER, ZERO, PaymentMethod, ReopenPolicy


class TillError(Exception):
    """Base class for every error raised by the transaction engine."""


class CatalogLoadError(TillError):
    """Raised when a catalog cannot be produced from its source."""


class CatalogUnreadableError(CatalogLoadError):
    """Raised when the catalog source cannot be opened or decoded."""


class PaymentError(TillError):
    """Raised when a settlement is rejected. The caller may retry."""


class InsufficientPaymentError(PaymentError):
    """Raised when the cash tendered does not cover the receipt total."""


class DrawerShortfallError(PaymentError):
    """Raised when the drawer cannot cover the change for a cash payment."""


class UnknownPaymentMethodError(PaymentError):
    """Raised for tender types other than cash or card."""


MoneyLike = Union[Decimal, int, str]


@dataclass(frozen=True)
class RuntimeContext:
    """Configuration and the loaded catalog shared by every front-end."""

    settings: data_manager.ConfigSettings
    catalog: "Catalog"


def load_runtime_context(config_path: Optional[Path] = None, *, catalog_path: Optional[Path] = None) -> RuntimeContext:
    """Load settings and the product catalog for a till session.

    Args:
        config_path (Path | None): Explicit ``config.ini``. When omitted the
            data layer searches upward from the working directory and falls
            back to defaults.
        catalog_path (Path | None): Overrides the configured catalog file.

    Returns:
        RuntimeContext: Settings plus a fully loaded catalog.

    Raises:
        FileNotFoundError: If an explicit ``config_path`` does not exist.
        data_manager.ConfigurationError: If the configuration is malformed.
        CatalogUnreadableError: If the catalog source cannot be read.
    """
    settings = data_manager.load_settings(config_path)
    if catalog_path is not None:
        settings = replace(settings, catalog_file=Path(catalog_path).expanduser().resolve())
    catalog = Catalog.load(settings.catalog_file, delimiter=settings.delimiter)
    log.info("Loaded runtime context for catalog '%s'", settings.catalog_file)
    return RuntimeContext(settings=settings, catalog=catalog)


def new_shift(context: RuntimeContext) -> "Shift":
    """Create a closed shift honouring the configured reopen policy."""
    return Shift(reopen_policy=context.settings.reopen_policy)


def to_money(value: MoneyLike) -> Decimal:
    """Coerce ``value`` into a finite :class:`Decimal`.

    Floats go through ``str`` so ``2.5`` becomes ``Decimal("2.5")`` rather than
    its binary expansion.

    Raises:
        ValueError: If ``value`` is not a finite number.
    """

    if isinstance(value, Decimal):
        amount = value
    else:
        text = str(value).strip()
        # Decimal accepts digit grouping like "1_0"; prices and tenders do not.
        if "_" in text:
            raise ValueError(f"Not a monetary amount: {value!r}")
        try:
            amount = Decimal(text)
        except InvalidOperation as exc:
            raise ValueError(f"Not a monetary amount: {value!r}") from exc
    if not amount.is_finite():
        raise ValueError(f"Not a monetary amount: {value!r}")
    return amount


def require_positive_quantity(quantity: int) -> None:
    """Validate that a line quantity is a strictly positive integer.

    Raises:
        ValueError: If ``quantity`` is not an ``int`` or is zero or negative.
    """
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        log.error("Quantity validation failed: %r", quantity)
        raise ValueError("Quantity must be a positive whole number")


def require_nonnegative_money(amount: Decimal) -> None:
    """Validate that a monetary value is nonnegative.

    Raises:
        ValueError: If ``amount`` is less than zero.
    """
    if amount < ZERO:
        log.error("Monetary value validation failed: %s", amount)
        raise ValueError("Amount must be zero or positive")


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Product:
    """A purchasable item as listed in the catalog."""

    name: str
    code: str
    unit_price: Decimal


def parse_product_row(raw_row: Sequence[str]) -> Optional[Product]:
    """Turn one raw catalog row into a :class:`Product`.

    A valid row has exactly three fields which are non-empty after trimming:
    name, code and a finite, non-negative price.

    Returns:
        Product | None: The product, or ``None`` when the row is malformed.
    """

    fields = [str(cell).strip() for cell in raw_row]
    # Workbooks pad short rows with empty trailing cells.
    while len(fields) > 3 and not fields[-1]:
        fields.pop()
    if len(fields) != 3 or not all(fields):
        return None

    name, code, price_text = fields
    try:
        price = to_money(price_text)
    except ValueError:
        return None
    if price < ZERO:
        return None
    return Product(name=name, code=code, unit_price=price)


class Catalog:
    """Read-only product list with an exact-code index and a name search.

    Products keep their load order. When two rows share a code the first one
    wins :meth:`find_by_code`; both still show up in name searches.
    """

    def __init__(self, products: Iterable[Product], *, skipped_rows: int = 0, source: Optional[Path] = None) -> None:
        self._products: Tuple[Product, ...] = tuple(products)
        self._by_code: Dict[str, Product] = {}
        for product in self._products:
            self._by_code.setdefault(product.code, product)
        self.skipped_rows = skipped_rows
        self.source = source

    @classmethod
    def from_products(cls, products: Iterable[Product], *, skipped_rows: int = 0) -> "Catalog":
        return cls(products, skipped_rows=skipped_rows)

    @classmethod
    def load(cls, source: Path, *, delimiter: str = DEFAULT_DELIMITER) -> "Catalog":
        """Build a catalog from a header-first tabular source.

        Malformed rows (wrong field count, blank fields, bad or negative
        price) are skipped and counted in :attr:`skipped_rows`; they never
        abort the load. A source that cannot be opened aborts it entirely.

        Args:
            source (Path): Delimited text file or ``.xlsx`` workbook.
            delimiter (str): Field separator for text sources.

        Returns:
            Catalog: Catalog holding every well-formed row in source order.

        Raises:
            CatalogUnreadableError: If the source cannot be opened or decoded.
        """

        path = Path(source)
        products: List[Product] = []
        skipped = 0
        try:
            for row_number, raw in enumerate(data_manager.iter_catalog_rows(path, delimiter=delimiter), start=1):
                product = parse_product_row(raw)
                if product is None:
                    skipped += 1
                    log.warning("Skipping malformed catalog data row %d in '%s': %r", row_number, path, raw)
                    continue
                products.append(product)
        except OSError as exc:
            log.error("Unable to read catalog '%s': %s", path, exc)
            raise CatalogUnreadableError(f"Failed to load product catalog from '{path}': {exc}") from exc

        log.info("Loaded %d products from '%s' (%d rows skipped)", len(products), path, skipped)
        return cls(products, skipped_rows=skipped, source=path)

    @property
    def products(self) -> Tuple[Product, ...]:
        return self._products

    def __len__(self) -> int:
        return len(self._products)

    def __iter__(self) -> Iterator[Product]:
        return iter(self._products)

    def find_by_code(self, code: str) -> Optional[Product]:
        """Exact, case-sensitive code lookup."""
        product = self._by_code.get(code)
        log.debug("Code lookup '%s' -> %s", code, product.name if product else None)
        return product

    def find_by_name(self, text: str) -> List[Product]:
        """Return every product whose name contains ``text``, ignoring case.

        Results are in load order. A blank query matches nothing.
        """
        needle = text.strip().casefold()
        if not needle:
            return []
        matches = [product for product in self._products if needle in product.name.casefold()]
        log.debug("Name search '%s' matched %d products", text, len(matches))
        return matches

    def lookup(self, text: str) -> List[Product]:
        """Resolve operator input: an exact code first, then a name search.

        Picking one product out of several candidates is left to the caller.
        """
        product = self.find_by_code(text)
        if product is not None:
            return [product]
        return self.find_by_name(text)


# ---------------------------------------------------------------------------
# Receipt
# ---------------------------------------------------------------------------


@dataclass
class ReceiptLine:
    """One product on a receipt and how many of it were sold."""

    product: Product
    quantity: int

    @property
    def line_total(self) -> Decimal:
        return self.product.unit_price * self.quantity


@dataclass(frozen=True)
class Settlement:
    """Outcome of a successful :meth:`Receipt.settle_payment` call."""

    method: PaymentMethod
    total: Decimal
    amount_tendered: Decimal
    change_due: Decimal


@dataclass(frozen=True)
class ReceiptLineSummary:
    name: str
    code: str
    quantity: int
    unit_price: Decimal
    line_total: Decimal


@dataclass(frozen=True)
class ReceiptSummary:
    """Printable snapshot of a receipt. ``change_due`` is only set for cash."""

    lines: Tuple[ReceiptLineSummary, ...]
    total: Decimal
    method: Optional[PaymentMethod]
    amount_tendered: Decimal
    change_due: Optional[Decimal]


def resolve_payment_method(method: Union[PaymentMethod, str]) -> PaymentMethod:
    """Normalise ``method`` into a :class:`PaymentMethod`.

    Raises:
        UnknownPaymentMethodError: For anything but cash or card.
    """
    if isinstance(method, PaymentMethod):
        return method
    try:
        return PaymentMethod(str(method).strip().lower())
    except ValueError as exc:
        log.warning("Rejected unknown payment method %r", method)
        raise UnknownPaymentMethodError(f"Unknown payment method: {method}") from exc


class Receipt:
    """Line items and payment for the transaction currently at the till.

    The running total is updated on every :meth:`add_item`, so it always equals
    the sum of the line totals. One instance is reused for the whole session;
    :meth:`clear` returns it to the empty state.
    """

    def __init__(self) -> None:
        self._lines: List[ReceiptLine] = []
        self._total = ZERO
        self.method: Optional[PaymentMethod] = None
        self.amount_tendered = ZERO
        self.change_due = ZERO

    @property
    def total(self) -> Decimal:
        return self._total

    @property
    def lines(self) -> Tuple[ReceiptLine, ...]:
        return tuple(self._lines)

    @property
    def is_empty(self) -> bool:
        return not self._lines

    def add_item(self, product: Product, quantity: int) -> ReceiptLine:
        """Add ``quantity`` units of ``product``.

        Adding a code that is already on the receipt increases that line's
        quantity instead of appending a second line.

        Raises:
            ValueError: If ``quantity`` is not a positive integer.
        """
        require_positive_quantity(quantity)
        increment = product.unit_price * quantity
        for line in self._lines:
            if line.product.code == product.code:
                line.quantity += quantity
                self._total += increment
                log.debug("Merged %d x '%s' into existing line (qty=%d)", quantity, product.code, line.quantity)
                return line

        line = ReceiptLine(product=product, quantity=quantity)
        self._lines.append(line)
        self._total += increment
        log.debug("Added line %d x '%s'", quantity, product.code)
        return line

    def settle_payment(
        self,
        method: Union[PaymentMethod, str],
        tendered_amount: MoneyLike,
        available_cash: MoneyLike,
    ) -> Settlement:
        """Validate and record how the customer pays.

        Cash must cover the total, and the drawer must still be able to cover
        the change once this sale's cash is in it:
        ``available_cash + total - change >= 0``. Card payments always succeed
        and are recorded as tendering exactly the total. On failure the
        receipt's payment fields are left untouched. The receipt is never
        cleared here so the caller can still print it.

        Args:
            method (PaymentMethod | str): ``cash`` or ``card``.
            tendered_amount: Money handed over. Ignored for card.
            available_cash: Cash currently expected in the drawer.

        Returns:
            Settlement: The recorded payment.

        Raises:
            InsufficientPaymentError: Cash tendered is below the total.
            DrawerShortfallError: The drawer cannot cover the change.
            UnknownPaymentMethodError: ``method`` is neither cash nor card.
        """
        resolved = resolve_payment_method(method)
        total = self._total

        if resolved is PaymentMethod.CARD:
            tendered = total
            change = ZERO
        else:
            tendered = to_money(tendered_amount)
            drawer = to_money(available_cash)
            if tendered < total:
                log.warning("Cash payment rejected: tendered %s < total %s", tendered, total)
                raise InsufficientPaymentError(f"Insufficient payment: {tendered} tendered for a total of {total}")
            change = tendered - total
            if drawer + total - change < ZERO:
                log.warning(
                    "Cash payment rejected: drawer %s cannot cover change %s on total %s",
                    drawer,
                    change,
                    total,
                )
                raise DrawerShortfallError(f"Not enough cash in the drawer to give {change} in change")

        self.method = resolved
        self.amount_tendered = tendered
        self.change_due = change
        log.info("Settled receipt total=%s by %s (tendered=%s, change=%s)", total, resolved.value, tendered, change)
        return Settlement(method=resolved, total=total, amount_tendered=tendered, change_due=change)

    def summary(self) -> ReceiptSummary:
        lines = tuple(
            ReceiptLineSummary(
                name=line.product.name,
                code=line.product.code,
                quantity=line.quantity,
                unit_price=line.product.unit_price,
                line_total=line.line_total,
            )
            for line in self._lines
        )
        return ReceiptSummary(
            lines=lines,
            total=self._total,
            method=self.method,
            amount_tendered=self.amount_tendered,
            change_due=self.change_due if self.method is PaymentMethod.CASH else None,
        )

    def clear(self) -> None:
        """Drop every line and forget the previous payment."""
        self._lines = []
        self._total = ZERO
        self.method = None
        self.amount_tendered = ZERO
        self.change_due = ZERO


# ---------------------------------------------------------------------------
# Shift
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ShiftReport:
    """End-of-shift figures for the cashier and the drawer."""

    cashier_name: str
    opening_cash: Decimal
    cash_sales: Decimal
    card_sales: Decimal
    total_sales: Decimal
    change_given: Decimal
    final_cash: Decimal
    receipt_count: int


class Shift:
    """Running ledger of one cashier session at the till.

    Starts closed. :meth:`open` and :meth:`close` are the only state changes.
    What a second :meth:`open` does to the running totals is decided by
    ``reopen_policy``: ``RESET`` starts the new session from zero, while
    ``ACCUMULATE`` carries the previous totals forward. Opening a shift that is
    still open only replaces the cashier and opening cash; its unreported totals
    are kept under either policy.
    """

    def __init__(self, *, reopen_policy: ReopenPolicy = ReopenPolicy.RESET) -> None:
        self.reopen_policy = reopen_policy
        self.cashier_name = ""
        self.opening_cash = ZERO
        self.cash_sales_total = ZERO
        self.card_sales_total = ZERO
        self.change_given_total = ZERO
        self.receipt_count = 0
        self._open = False
        self._ever_opened = False

    @property
    def is_open(self) -> bool:
        return self._open

    @property
    def available_cash(self) -> Decimal:
        return self.opening_cash + self.cash_sales_total - self.change_given_total

    def open(self, cashier_name: str, opening_cash: MoneyLike) -> None:
        """Start a session for ``cashier_name`` with ``opening_cash`` in the drawer.

        Raises:
            ValueError: If ``opening_cash`` is negative or not a number.
        """
        amount = to_money(opening_cash)
        require_nonnegative_money(amount)

        if self._open:
            log.warning("Shift for '%s' reopened while still open; keeping its totals", self.cashier_name)
        elif self._ever_opened and self.reopen_policy is ReopenPolicy.RESET:
            self._reset_totals()

        self.cashier_name = cashier_name.strip()
        self.opening_cash = amount
        self._open = True
        self._ever_opened = True
        log.info("Opened shift for '%s' with %s opening cash", self.cashier_name, amount)

    def close(self) -> ShiftReport:
        """Close the shift and return its final report.

        Closing an already closed shift simply reports again.
        """
        if not self._open:
            log.warning("Shift for '%s' closed while not open", self.cashier_name)
        self._open = False
        report = self.report()
        log.info(
            "Closed shift for '%s': sales=%s final cash=%s",
            report.cashier_name,
            report.total_sales,
            report.final_cash,
        )
        return report

    def add_cash_sale(self, sale_amount: MoneyLike, change_given: MoneyLike) -> None:
        """Record a settled cash receipt. The drawer check happens at settlement."""
        amount = to_money(sale_amount)
        change = to_money(change_given)
        require_nonnegative_money(amount)
        require_nonnegative_money(change)
        self.cash_sales_total += amount
        self.change_given_total += change
        self.receipt_count += 1

    def add_card_sale(self, sale_amount: MoneyLike) -> None:
        amount = to_money(sale_amount)
        require_nonnegative_money(amount)
        self.card_sales_total += amount
        self.receipt_count += 1

    def record_settlement(self, settlement: Settlement) -> None:
        """Push a receipt's settlement into the matching running total."""
        if settlement.method is PaymentMethod.CASH:
            self.add_cash_sale(settlement.total, settlement.change_due)
        else:
            self.add_card_sale(settlement.total)

    def report(self) -> ShiftReport:
        return ShiftReport(
            cashier_name=self.cashier_name,
            opening_cash=self.opening_cash,
            cash_sales=self.cash_sales_total,
            card_sales=self.card_sales_total,
            total_sales=self.cash_sales_total + self.card_sales_total,
            change_given=self.change_given_total,
            final_cash=self.available_cash,
            receipt_count=self.receipt_count,
        )

    def _reset_totals(self) -> None:
        self.cash_sales_total = ZERO
        self.card_sales_total = ZERO
        self.change_given_total = ZERO
        self.receipt_count = 0
