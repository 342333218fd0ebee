"""Built-in filters, tests and global functions.

Filters are plain callables taking the filtered value first, then the
positional and keyword arguments written in the template::

    {{ link.url | replace(from="$BASE_URL", to=config.base_url) }}
    {{ page.date | date(format="%+") }}

A filter signals bad arguments by raising FilterError (or TypeError /
ValueError, which the evaluator reports as FilterError).
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from datetime import date, datetime, timedelta, timezone
from typing import Any
from urllib.parse import quote
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import mistune
from markupsafe import Markup, escape

from .errors import FilterError
from .evaluator import Undefined, get_attribute, pass_context, stringify
from .utils import join_root_url

_WEEKDAYS = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")
_MONTHS = (
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
)

_markdown = mistune.create_markdown(
    escape=False, plugins=["strikethrough", "footnotes", "table", "url"]
)


def _text(value: Any) -> str:
    return value if isinstance(value, str) else stringify(value)


# --- date formatting ---


def _offset(moment: datetime, separator: str) -> str:
    delta = moment.utcoffset() or timedelta(0)
    sign = "-" if delta < timedelta(0) else "+"
    minutes = abs(int(delta.total_seconds())) // 60
    return f"{sign}{minutes // 60:02d}{separator}{minutes % 60:02d}"


def _twelve_hour(moment: datetime) -> str:
    return f"{(moment.hour % 12) or 12:02d}"


_DIRECTIVES = {
    "Y": lambda d: f"{d.year:04d}",
    "y": lambda d: f"{d.year % 100:02d}",
    "m": lambda d: f"{d.month:02d}",
    "d": lambda d: f"{d.day:02d}",
    "e": lambda d: f"{d.day:2d}",
    "j": lambda d: f"{d.timetuple().tm_yday:03d}",
    "H": lambda d: f"{d.hour:02d}",
    "I": _twelve_hour,
    "M": lambda d: f"{d.minute:02d}",
    "S": lambda d: f"{d.second:02d}",
    "p": lambda d: "AM" if d.hour < 12 else "PM",
    "a": lambda d: _WEEKDAYS[d.weekday()][:3],
    "A": lambda d: _WEEKDAYS[d.weekday()],
    "b": lambda d: _MONTHS[d.month - 1][:3],
    "h": lambda d: _MONTHS[d.month - 1][:3],
    "B": lambda d: _MONTHS[d.month - 1],
    "z": lambda d: _offset(d, ""),
    "Z": lambda d: d.tzname() or "UTC",
    "s": lambda d: str(int(d.timestamp())),
    "F": lambda d: f"{d.year:04d}-{d.month:02d}-{d.day:02d}",
    "D": lambda d: f"{d.month:02d}/{d.day:02d}/{d.year % 100:02d}",
    "T": lambda d: f"{d.hour:02d}:{d.minute:02d}:{d.second:02d}",
    "R": lambda d: f"{d.hour:02d}:{d.minute:02d}",
    "+": lambda d: (
        f"{d.year:04d}-{d.month:02d}-{d.day:02d}T"
        f"{d.hour:02d}:{d.minute:02d}:{d.second:02d}{_offset(d, ':')}"
    ),
    "%": lambda d: "%",
}


def to_datetime(value: Any) -> datetime:
    """Coerce a date-like value to an aware datetime (naive values are UTC).

    Raises:
        FilterError: If the value cannot be read as a date.
    """
    if isinstance(value, datetime):
        moment = value
    elif isinstance(value, date):
        moment = datetime(value.year, value.month, value.day)
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            moment = datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            raise FilterError(f"Timestamp {value} is out of range") from None
    elif isinstance(value, str):
        text = value.strip()
        if text[-1:] in ("Z", "z"):
            text = text[:-1] + "+00:00"
        try:
            moment = datetime.fromisoformat(text)
        except ValueError:
            raise FilterError(f"Cannot parse '{value}' as a date") from None
    else:
        raise FilterError(f"Cannot format {type(value).__name__} as a date")
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


def format_datetime(moment: datetime, fmt: str) -> str:
    """Format a datetime with strftime-style directives, independent of locale.

    ``%+`` gives RFC 3339 (``2021-05-01T00:00:00+00:00``) and ``%:z`` gives
    ``+hh:mm``.

    Raises:
        FilterError: On an unknown directive or a trailing ``%``.
    """
    out: list[str] = []
    index = 0
    while index < len(fmt):
        char = fmt[index]
        if char != "%":
            out.append(char)
            index += 1
            continue
        directive = fmt[index + 1 : index + 2]
        if directive == ":" and fmt[index + 2 : index + 3] == "z":
            out.append(_offset(moment, ":"))
            index += 3
            continue
        if not directive:
            raise FilterError(f"Date format '{fmt}' ends with a lone '%'")
        handler = _DIRECTIVES.get(directive)
        if handler is None:
            raise FilterError(f"Invalid date format directive '%{directive}' in '{fmt}'")
        out.append(handler(moment))
        index += 2
    return "".join(out)


def do_date(value: Any, format: str = "%Y-%m-%d", timezone: str | None = None) -> str:
    if not isinstance(format, str):
        raise FilterError("date format must be a string")
    moment = to_datetime(value)
    if timezone is not None:
        try:
            moment = moment.astimezone(ZoneInfo(timezone))
        except (ZoneInfoNotFoundError, ValueError):
            raise FilterError(f"Unknown timezone '{timezone}'") from None
    return format_datetime(moment, format)


# --- string filters ---


def do_safe(value: Any) -> Markup:
    if isinstance(value, Markup):
        return value
    return Markup(stringify(value))


def do_escape(value: Any) -> Markup:
    return escape(stringify(value) if not isinstance(value, str) else value)


def do_replace(value: Any, *args: Any, **kwargs: Any) -> str:
    """Replace every occurrence of ``from`` with ``to``.

    Accepts ``replace("a", "b")`` or ``replace(from="a", to="b")``.
    """
    params = dict(zip(("from", "to"), args))
    params.update(kwargs)
    unknown = set(params) - {"from", "to"}
    if unknown:
        raise FilterError(f"replace got unexpected argument(s): {', '.join(sorted(unknown))}")
    old, new = params.get("from"), params.get("to")
    if not isinstance(old, str) or not isinstance(new, str):
        raise FilterError("replace requires string 'from' and 'to' arguments")
    if not old:
        raise FilterError("replace 'from' must not be empty")
    return _text(value).replace(old, new)


def do_default(obj: Any, value: Any = "", boolean: bool = False) -> Any:
    if isinstance(obj, Undefined) or (boolean and not obj):
        return value
    return obj


def do_length(value: Any) -> int:
    return len(value)


def do_lower(value: Any) -> str:
    return _text(value).lower()


def do_upper(value: Any) -> str:
    return _text(value).upper()


def do_capitalize(value: Any) -> str:
    return _text(value).capitalize()


def do_title(value: Any) -> str:
    return _text(value).title()


def do_trim(value: Any) -> str:
    return _text(value).strip()


def do_truncate(value: Any, length: int = 255, end: str = "…") -> str:
    text = _text(value)
    if len(text) <= length:
        return text
    return text[:length] + end


def do_striptags(value: Any) -> str:
    return Markup(_text(value)).striptags()


def do_markdown(value: Any, inline: bool = False) -> Markup:
    html = _markdown(_text(value)).strip()
    if inline and html.startswith("<p>") and html.endswith("</p>") and html.count("<p>") == 1:
        html = html[3:-4]
    return Markup(html)


def do_json_encode(value: Any, pretty: bool = False) -> str:
    return json.dumps(value, indent=2 if pretty else None, default=str, ensure_ascii=False)


def do_urlencode(value: Any) -> str:
    return quote(_text(value), safe="/")


# --- sequence filters ---


def do_join(value: Iterable[Any], sep: str = "") -> str:
    return sep.join(stringify(item) for item in value)


def do_first(value: Any) -> Any:
    items = list(value)
    return items[0] if items else Undefined("first")


def do_last(value: Any) -> Any:
    items = list(value)
    return items[-1] if items else Undefined("last")


def do_reverse(value: Any) -> Any:
    if isinstance(value, str):
        return value[::-1]
    return list(reversed(list(value)))


def do_sort(value: Iterable[Any], attribute: str | None = None, reverse: bool = False) -> list[Any]:
    def key(item: Any) -> Any:
        if attribute is None:
            return item
        found = item
        for part in attribute.split("."):
            found = get_attribute(found, part, attribute)
        if isinstance(found, Undefined):
            raise FilterError(f"sort: item has no attribute '{attribute}'")
        return found

    return sorted(value, key=key, reverse=reverse)


# --- tests ---


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


DEFAULT_TESTS = {
    "none": lambda value: value is None,
    "string": lambda value: isinstance(value, str),
    "number": _is_number,
    "iterable": lambda value: isinstance(value, Iterable) and not isinstance(value, str),
    "mapping": lambda value: isinstance(value, Mapping),
    "odd": lambda value: value % 2 == 1,
    "even": lambda value: value % 2 == 0,
    "starting_with": lambda value, prefix: _text(value).startswith(prefix),
    "ending_with": lambda value, suffix: _text(value).endswith(suffix),
    "containing": lambda value, item: item in value,
}


# --- globals ---


@pass_context
def get_url(frame: Mapping[str, Any], path: str, trailing_slash: bool = False) -> str:
    """Build an absolute URL from a site-relative path and ``config.base_url``."""
    if not isinstance(path, str):
        raise FilterError("get_url path must be a string")
    if path.startswith(("http://", "https://", "//")):
        return path
    config = frame.get("config")
    base = get_attribute(config, "base_url", "config.base_url") if config is not None else ""
    if not isinstance(base, str):
        base = ""
    url = join_root_url(base, path if path.startswith("/") else f"/{path}")
    if trailing_slash and not url.endswith("/"):
        url += "/"
    return url


def do_range(end: int, start: int = 0, step: int = 1) -> list[int]:
    return list(range(start, end, step))


DEFAULT_FILTERS = {
    "safe": do_safe,
    "escape": do_escape,
    "e": do_escape,
    "replace": do_replace,
    "date": do_date,
    "default": do_default,
    "length": do_length,
    "lower": do_lower,
    "upper": do_upper,
    "capitalize": do_capitalize,
    "title": do_title,
    "trim": do_trim,
    "truncate": do_truncate,
    "striptags": do_striptags,
    "markdown": do_markdown,
    "json_encode": do_json_encode,
    "urlencode": do_urlencode,
    "join": do_join,
    "first": do_first,
    "last": do_last,
    "reverse": do_reverse,
    "sort": do_sort,
}

DEFAULT_GLOBALS = {
    "get_url": get_url,
    "range": do_range,
}
