from datetime import datetime, timezone


def utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


def micro_time(dt: datetime) -> str:
    """The API server insists on exactly six fractional digits for Lease timestamps, which
    `isoformat` will drop whenever microsecond == 0.
    """
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")
