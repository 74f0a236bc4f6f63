"""Timestamp helpers"""

from datetime import datetime, timezone


def utc_now() -> str:
    """Current UTC time as ISO-8601 with a Z suffix, second precision"""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def epoch_millis() -> int:
    return int(datetime.now(timezone.utc).timestamp() * 1000)


def iso_from_timestamp(value) -> str:
    """ISO-8601 UTC string for an epoch-millisecond number or an ISO string"""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        moment = datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    else:
        moment = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        moment = moment.astimezone(timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")
