"""Field normalizers shared by the quote engine and by adapters.

All numeric rewriting here works on the string form of a value so that
display strings never pick up binary floating-point artifacts.
"""

import re
from datetime import date
from decimal import Decimal, InvalidOperation, localcontext
from typing import Any, Dict, List, Optional, Tuple, Union

MONTH_NAMES = {
    'jan': 1, 'feb': 2, 'mar': 3, 'apr': 4, 'may': 5, 'jun': 6,
    'jul': 7, 'aug': 8, 'sep': 9, 'oct': 10, 'nov': 11, 'dec': 12,
}

# Significant digits kept when a scaled chunk is written back
SCALE_PRECISION = 15

_NUMERIC_SEPARATOR = re.compile(r'([^0-9.])')
_ISO_DATE = re.compile(r'(\d+)\W+(\w+)\W+(\d+)')
_US_DATE = re.compile(r'(\w+)\W+(\d+)\W+(\d+)')
_EURO_DATE = re.compile(r'(\d+)\W+(\w+)\W+(\d+)')
_TIME = re.compile(r'^(\d+)[.:UH](\d+)(AM|PM)?')


def b_to_billions(value: str) -> str:
    """Expand a numeric string with a trailing "B" into a plain integer string.

    >>> b_to_billions("1.6B")
    '1600000000'
    """
    if value and value[-1] in 'bB':
        return decimal_shiftup(value[:-1], 9)
    return value


def decimal_shiftup(value: str, shift: int) -> str:
    """Move the decimal point of ``value`` ``shift`` places to the right.

    A negative ``shift`` moves the point to the left. Only string
    manipulation is used, so no precision is lost.

    Args:
        value: Numeric string such as "123.45" or "-0.25"
        shift: Number of places to move the point

    Returns:
        The shifted numeric string, e.g. ``decimal_shiftup("0.25", 1) == "2.5"``
    """
    value = value.strip()
    sign = ''
    if value[:1] in '+-':
        sign, value = value[0], value[1:]

    if '.' in value:
        integer, fraction = value.split('.', 1)
    else:
        integer, fraction = value, ''

    digits = integer + fraction
    # shift is now relative to the end of the digit string
    shift -= len(fraction)

    if shift >= 0:
        result = digits + '0' * shift
    else:
        if -shift >= len(digits):
            digits = '0' * (1 - shift - len(digits)) + digits
        result = digits[:shift] + '.' + digits[shift:]

    integer_part, dot, fraction_part = result.partition('.')
    integer_part = integer_part.lstrip('0') or '0'
    return sign + integer_part + dot + fraction_part


def _format_decimal(number: Decimal) -> str:
    with localcontext() as ctx:
        ctx.prec = SCALE_PRECISION
        number = +number
    text = format(number, 'f')
    if '.' in text:
        text = text.rstrip('0').rstrip('.')
    return text if text not in ('-0', '') else '0'


def scale_field(field: Any, scale: Union[str, float, int, Decimal]) -> str:
    """Multiply every number embedded in ``field`` by ``scale``.

    Separators between numbers are preserved, which lets compound values
    such as ranges ("105.4 - 108.3") or "1,234" be rescaled in place.

    Args:
        field: Value to rescale (converted to ``str``)
        scale: Multiplier

    Returns:
        The rescaled string
    """
    factor = Decimal(str(scale))
    chunks = _NUMERIC_SEPARATOR.split(str(field))

    for i, chunk in enumerate(chunks):
        if not any(c.isdigit() for c in chunk):
            continue
        try:
            chunks[i] = _format_decimal(Decimal(chunk) * factor)
        except InvalidOperation:
            # e.g. a dotted version string such as "1.2.3"
            continue

    return ''.join(chunks)


def _expand_year(year: int) -> int:
    return year + 2000 if year < 100 else year


def _month_number(month: Union[str, int]) -> int:
    text = str(month)
    if text.isdigit():
        return int(text)
    try:
        return MONTH_NAMES[text[:3].lower()]
    except KeyError:
        raise ValueError(f"Unrecognised month: {month!r}")


def unify_date(pieces: Dict[str, Any], today: Optional[date] = None) -> Tuple[str, str]:
    """Build a US and an ISO date string out of whatever date pieces are known.

    Recognised keys are ``isodate``, ``usdate``, ``eurodate``, ``year``,
    ``month`` and ``day``. Later keys override earlier ones in that order.
    Missing components default to ``today``. Two digit years are taken as
    20YY. When no year is given at all and the month lies after the current
    month, the date is assumed to be from last year.

    Args:
        pieces: Mapping of date components
        today: Reference date, defaults to the current date

    Returns:
        Tuple of ``(MM/DD/YYYY, YYYY-MM-DD)``

    Raises:
        ValueError: If a date string or month name cannot be parsed
    """
    today = today or date.today()
    year: int = today.year
    month: Union[str, int] = today.month
    day: Union[str, int] = today.day
    this_month = today.month
    year_specified = False

    if pieces.get('isodate'):
        match = _ISO_DATE.search(str(pieces['isodate']))
        if not match:
            raise ValueError(f"Unparsable ISO date: {pieces['isodate']!r}")
        year, month, day = int(match.group(1)), match.group(2), match.group(3)
        year = _expand_year(year)
        year_specified = True

    if pieces.get('usdate'):
        match = _US_DATE.search(str(pieces['usdate']))
        if not match:
            raise ValueError(f"Unparsable US date: {pieces['usdate']!r}")
        month, day, year = match.group(1), match.group(2), int(match.group(3))
        year = _expand_year(year)
        year_specified = True

    if pieces.get('eurodate'):
        match = _EURO_DATE.search(str(pieces['eurodate']))
        if not match:
            raise ValueError(f"Unparsable European date: {pieces['eurodate']!r}")
        day, month, year = match.group(1), match.group(2), int(match.group(3))
        year = _expand_year(year)
        year_specified = True

    if pieces.get('year') is not None:
        year = _expand_year(int(pieces['year']))
        year_specified = True

    if pieces.get('month') is not None:
        month = pieces['month']
    if pieces.get('day') is not None:
        day = pieces['day']

    month_number = _month_number(month)
    day_number = int(day)

    if not year_specified and this_month < month_number:
        year -= 1

    return (
        f"{month_number:02d}/{day_number:02d}/{year:04d}",
        f"{year:04d}-{month_number:02d}-{day_number:02d}",
    )


def iso_time(time_string: str) -> str:
    """Convert a loosely formatted time ("9:10 AM", "11.39PM") to "HH:MM".

    Unparsable input yields "00:00".
    """
    text = time_string.replace(' ', '').upper()
    match = _TIME.match(text)
    if not match:
        return "00:00"

    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours == 12:
        hours = 0
    if match.group(3) == 'PM':
        hours += 12

    if 0 <= hours <= 23 and 0 <= minutes <= 59:
        return f"{hours:02d}:{minutes:02d}"
    return "00:00"


def parse_delimited(text: str, delimiter: str = ',') -> List[str]:
    """Split a delimited record, honouring double-quoted fields.

    Quoted fields may contain the delimiter and backslash-escaped
    characters; escapes are returned untouched. Empty fields, including one
    produced by a trailing delimiter, come back as ``""``.

    Args:
        text: The record to split
        delimiter: ``","`` or ``";"``

    Returns:
        List of field values
    """
    sep = re.escape(delimiter)
    pattern = re.compile(
        rf'"([^"\\]*(?:\\.[^"\\]*)*)"{sep}?'
        rf'|([^{sep}]+){sep}?'
        rf'|{sep}'
    )

    fields = []
    for match in pattern.finditer(text):
        if match.group(1) is not None:
            fields.append(match.group(1))
        elif match.group(2) is not None:
            fields.append(match.group(2))
        else:
            fields.append('')

    if text.endswith(delimiter):
        fields.append('')
    return fields


def parse_csv(text: str) -> List[str]:
    return parse_delimited(text, ',')


def parse_csv_semicolon(text: str) -> List[str]:
    return parse_delimited(text, ';')


def smart_compare(value: Any, pattern: Union[str, int, float, re.Pattern]) -> bool:
    """Match ``value`` against a literal or a compiled regular expression.

    A literal matches as a substring, a compiled pattern with ``search``.
    When ``value`` is a list, tuple or set the comparison succeeds if any
    element matches.
    """
    if isinstance(value, (list, tuple, set, frozenset)):
        return any(smart_compare(item, pattern) for item in value)

    if value is None:
        return False

    if isinstance(pattern, re.Pattern):
        return pattern.search(str(value)) is not None
    return str(pattern) in str(value)
