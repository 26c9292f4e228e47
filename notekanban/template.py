"""
New-note title templates.

Templates are literal text with embedded `<%= expression %>` tags. The
only helper exposed is today(), returning a date that can be shifted with
.add("1d") / .add("-1h") and rendered with .format("MM/dd").

Rendering never raises: any failure becomes the error text, which then
ends up as the note title so the user can see what went wrong.
"""
import logging
import re
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

from babel.dates import format_datetime
from jinja2 import StrictUndefined
from jinja2.sandbox import SandboxedEnvironment

logger = logging.getLogger(__name__)

DEFAULT_DATE_FORMAT = "yyyy-MM-dd"

# Compact duration syntax: "1d", "-1h", "2.5 hrs", "90" (milliseconds)
_DURATION_RE = re.compile(
    r"^\s*(?P<value>-?(?:\d+)?\.?\d+)\s*"
    r"(?P<unit>milliseconds?|msecs?|ms|seconds?|secs?|s|minutes?|mins?|m"
    r"|hours?|hrs?|h|days?|d|weeks?|w|years?|yrs?|y)?\s*$",
    re.IGNORECASE,
)

_UNIT_SECONDS = {
    "ms": 0.001,
    "s": 1,
    "m": 60,
    "h": 3600,
    "d": 86400,
    "w": 7 * 86400,
    "y": 365.25 * 86400,
}


def parse_duration(text: str) -> timedelta:
    """Parse a compact duration string. Raises ValueError when it is not one."""
    match = _DURATION_RE.match(text or "")
    if not match:
        raise ValueError(f"Unknown duration argument {text!r}")
    unit = (match.group("unit") or "ms").lower()
    if unit.startswith("ms") or unit.startswith("msec") or unit.startswith("milli"):
        key = "ms"
    elif unit.startswith("mi"):
        key = "m"
    else:
        key = unit[0]
    return timedelta(seconds=float(match.group("value")) * _UNIT_SECONDS[key])


class TemplateDate:
    """Chainable date value handed to templates by today()."""

    def __init__(self, date: datetime, pattern: str = DEFAULT_DATE_FORMAT):
        self.date = date
        self._pattern = pattern

    def add(self, delta: str) -> "TemplateDate":
        self.date = self.date + parse_duration(delta)
        return self

    def format(self, pattern: str) -> "TemplateDate":
        self._pattern = pattern
        return self

    def __str__(self) -> str:
        return format_datetime(self.date, self._pattern, locale="en")


# ejs tag variants mapped onto the delimiters below: "<%-" outputs like
# "<%=", and "<%_" / "_%>" strip whitespace like Jinja's "<%-" / "-%>"
_EJS_TAGS = [("<%-", "<%="), ("<%_", "<%-"), ("_%>", "-%>")]


def _from_ejs(template: str) -> str:
    for ejs, jinja in _EJS_TAGS:
        template = template.replace(ejs, jinja)
    return template


_env = SandboxedEnvironment(
    block_start_string="<%",
    block_end_string="%>",
    variable_start_string="<%=",
    variable_end_string="%>",
    comment_start_string="<%#",
    comment_end_string="%>",
    undefined=StrictUndefined,
    autoescape=False,
    keep_trailing_newline=True,
)


class TemplateRenderer:
    """Renders one template string; `clock` supplies the current time."""

    def __init__(
        self,
        template: str,
        data: Optional[Dict[str, Any]] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.template = template
        self.data = data or {}
        self.clock = clock or datetime.now

    def today(self) -> TemplateDate:
        return TemplateDate(self.clock())

    def render(self) -> str:
        try:
            compiled = _env.from_string(_from_ejs(self.template))
            return compiled.render(**self.data, today=self.today)
        except Exception as e:
            logger.warning(f"Template {self.template!r} failed to render: {e}")
            return f"{type(e).__name__}: {e}"
