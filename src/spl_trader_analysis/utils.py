"""
Utility functions for validation, formatting and export.
"""

from typing import List, Dict, Any, Iterable, Union
from datetime import datetime, timezone
from decimal import Decimal
import csv
import io
import re
import logging

# Set up logging
logging.basicConfig(level=logging.WARNING)
logger = logging.getLogger(__name__)

SOLANA_ADDRESS_PATTERN = re.compile(r'^[1-9A-HJ-NP-Za-km-z]{32,44}$')

CSV_FIELDS = [
    'wallet', 'type', 'amount', 'date',
    'isFirstBuy', 'sellPercentage', 'txSignature'
]


def is_valid_solana_address(address: str) -> bool:
    """Check if a string looks like a base58 Solana account address."""
    if not address:
        return False

    return bool(SOLANA_ADDRESS_PATTERN.match(address))


def parse_datetime(value: Union[str, datetime]) -> datetime:
    """Parse an ISO-8601 timestamp. Naive values are taken as UTC."""
    if isinstance(value, datetime):
        parsed = value
    elif not isinstance(value, str):
        raise TypeError(f"Expected an ISO-8601 string, got {type(value).__name__}")
    else:
        text = value.strip()
        if text.endswith('Z') or text.endswith('z'):
            text = text[:-1] + '+00:00'
        parsed = datetime.fromisoformat(text)

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def to_iso_timestamp(block_time: Union[int, float]) -> str:
    """Convert unix seconds to an ISO-8601 UTC string with milliseconds."""
    moment = datetime.fromtimestamp(block_time, tz=timezone.utc)
    return moment.strftime('%Y-%m-%dT%H:%M:%S.') + f"{moment.microsecond // 1000:03d}Z"


def format_number(number: Union[int, float, Decimal], decimals: int = 2) -> str:
    """Format a number with thousands separators and at most `decimals` fraction digits."""
    try:
        text = f"{number:,.{decimals}f}"
        if '.' in text:
            text = text.rstrip('0').rstrip('.')
        if text in ('-0', ''):
            return '0'
        return text
    except (ValueError, TypeError) as e:
        logger.warning(f"Error formatting number {number}: {e}")
        return str(number)


def format_date(iso_date: str) -> str:
    """Format an ISO date string as local date and time."""
    try:
        return parse_datetime(iso_date).astimezone().strftime("%Y-%m-%d %H:%M:%S")
    except (ValueError, TypeError) as e:
        logger.warning(f"Error formatting date {iso_date}: {e}")
        return iso_date


def _row_dict(row: Any) -> Dict[str, Any]:
    return row.to_dict() if hasattr(row, 'to_dict') else row


def _format_csv_value(value: Any) -> str:
    if value is None:
        return ''
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, Decimal):
        if value == value.to_integral_value():
            return str(int(value))
        return f"{value.normalize():f}"
    return str(value)


def rows_to_csv(rows: Iterable[Any]) -> str:
    """
    Convert result rows to CSV text.

    Accepts ResultRow objects or their dict form. Returns an empty string
    when there are no rows; otherwise a header line followed by one line per
    row, separated by newlines without a trailing newline.

    Quoting is the csv module's minimal style: values containing a comma are
    quoted, and so are values containing a double quote or a line break,
    with inner quotes doubled.
    """
    rows = list(rows)
    if not rows:
        return ''

    output = io.StringIO()
    writer = csv.writer(output, lineterminator='\n')
    writer.writerow(CSV_FIELDS)
    for row in rows:
        data = _row_dict(row)
        writer.writerow([_format_csv_value(data.get(name)) for name in CSV_FIELDS])

    return output.getvalue()[:-1]


def sort_rows(rows: Iterable[Any], key: str, descending: bool = False) -> List[Any]:
    """Sort rows by a wire field name. Rows without a value always sort last."""
    if key not in CSV_FIELDS:
        raise ValueError(f"Unknown sort field: {key}")

    present = []
    missing = []
    for row in rows:
        if _row_dict(row).get(key) is None:
            missing.append(row)
        else:
            present.append(row)

    present.sort(key=lambda r: _row_dict(r)[key], reverse=descending)
    return present + missing
