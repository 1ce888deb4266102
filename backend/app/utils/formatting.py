"""Amount, time and score formatting shared by prompts and citations."""

from datetime import datetime, tzinfo

LONG_DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"


def format_amount(amount: int) -> str:
    """Format an amount in minor units as a fixed two-decimal string.

    Examples:
        >>> format_amount(123456)
        '1234.56'
        >>> format_amount(-5)
        '-0.05'
    """
    sign = "-" if amount < 0 else ""
    integer, decimals = divmod(abs(amount), 100)
    return f"{sign}{integer}.{decimals:02d}"


def format_long_datetime(unix_time: int, tz: tzinfo) -> str:
    """Format unix seconds as 'YYYY-MM-DD HH:MM:SS' in the given timezone."""
    return datetime.fromtimestamp(unix_time, tz).strftime(LONG_DATETIME_FORMAT)


def format_year_month(unix_time: int, tz: tzinfo) -> str:
    """Format unix seconds as numeric 'YYYYMM' in the given timezone."""
    return datetime.fromtimestamp(unix_time, tz).strftime("%Y%m")


def round_score(score: float) -> float:
    """Round a similarity score to 4 decimals."""
    return round(score * 10000) / 10000
