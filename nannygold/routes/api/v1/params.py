from datetime import date

from nannygold.errors import InvalidInputError


def parse_as_of(payload):
    raw = (payload or {}).get("as_of")
    if not raw:
        return None
    try:
        return date.fromisoformat(str(raw))
    except ValueError as exc:
        raise InvalidInputError("as_of must be an ISO date (YYYY-MM-DD).") from exc
