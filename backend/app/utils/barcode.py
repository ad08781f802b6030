"""Bale barcode codec.

Label format (printed by the operator station, read by every scanner):

    {date}-{sku}-{serial}-{weight}      e.g. "24.12.2025-LF-101-50.5"

  date    DD.MM.YYYY production date
  sku     product short code
  serial  integer, unique per product and date
  weight  kg, shortest decimal form ("50.5", "50")

There is no escaping: SKUs containing "-" are not supported.  Segments
beyond the fourth are ignored.
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation

from app.middleware.exceptions import ValidationError

DATE_FORMAT = "%d.%m.%Y"
SEPARATOR = "-"


@dataclass(frozen=True)
class ParsedBarcode:
    date: str
    sku: str
    serial: int
    weight: float

    @property
    def production_date(self) -> date | None:
        """The date segment as a date, or None when it is not DD.MM.YYYY."""
        try:
            return datetime.strptime(self.date, DATE_FORMAT).date()
        except ValueError:
            return None


def format_weight(weight: float) -> str:
    value = Decimal(str(weight)).normalize()
    return format(value, "f")


def format_date(value: date) -> str:
    return value.strftime(DATE_FORMAT)


def build_barcode(production_date: date, sku: str, serial: int, weight: float) -> str:
    return SEPARATOR.join([
        format_date(production_date),
        sku,
        str(serial),
        format_weight(weight),
    ])


def parse_barcode(barcode: str) -> ParsedBarcode:
    """Split a scanned label into its identity fields.

    Raises:
        ValidationError (MALFORMED_BARCODE) when there are fewer than four
        segments or the serial / weight segments are not numbers.
    """
    parts = (barcode or "").strip().split(SEPARATOR)
    if len(parts) < 4:
        raise ValidationError(
            f"Malformed barcode '{barcode}': expected date-sku-serial-weight",
            error_code="MALFORMED_BARCODE",
        )

    date_str, sku, serial_str, weight_str = parts[:4]
    try:
        serial = int(serial_str)
        weight = float(Decimal(weight_str))
    except (ValueError, InvalidOperation):
        raise ValidationError(
            f"Malformed barcode '{barcode}': serial and weight must be numeric",
            error_code="MALFORMED_BARCODE",
        )

    return ParsedBarcode(date=date_str, sku=sku, serial=serial, weight=weight)


def try_parse_barcode(barcode: str) -> ParsedBarcode | None:
    try:
        return parse_barcode(barcode)
    except ValidationError:
        return None
