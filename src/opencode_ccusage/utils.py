"""Small helpers shared by the CLI and the pipeline."""

from datetime import UTC, datetime, timedelta


def parse_since(value: str, *, now: datetime | None = None) -> datetime:
    """Parse a `--since` value: a whole number of days back, or an ISO date.

    Naive ISO values are interpreted as UTC.

    Raises:
        ValueError: If the value is neither form.
    """
    stripped = value.strip()
    if stripped.isascii() and stripped.isdigit():
        reference = now or datetime.now(UTC)
        return reference - timedelta(days=int(stripped))

    try:
        parsed = datetime.fromisoformat(stripped)
    except ValueError:
        raise ValueError(
            f'Invalid --since value: "{value}". Use a number of days or an ISO date.'
        ) from None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def to_epoch_ms(value: datetime) -> int:
    """Convert a datetime to epoch milliseconds (naive values are UTC)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return int(value.timestamp() * 1000)


def pluralize(count: int, singular: str, plural: str | None = None) -> str:
    """Format a count with the matching noun form."""
    noun = singular if count == 1 else (plural or f"{singular}s")
    return f"{count} {noun}"
