"""
Timestamp helpers for the dateTime.iso8601 wire type.

XML-RPC timestamps carry no timezone. We emit the wall clock time of the
datetime as given, so aware datetimes lose their offset on the wire.
"""

import re
import datetime

class FixedOffset(datetime.tzinfo):
    """Fixed offset in minutes east from UTC."""

    def __init__(self, offset, name):
        self.__offset = datetime.timedelta(minutes = offset)
        self.__name = name

    def utcoffset(self, dt):
        return self.__offset

    def tzname(self, dt):
        return self.__name

    def dst(self, dt):
        return datetime.timedelta(0)

UTC = FixedOffset(0, "UTC")

TIMESTAMP_FORMATS = ("%Y%m%dT%H:%M:%S", "%Y-%m-%dT%H:%M:%S", "%Y%m%dT%H%M%S")

_OFFSET_RE = re.compile(r"([+-])(\d\d):?(\d\d)$")

def format_timestamp(in_date):
    """Format a datetime as yyyyMMddThh:mm:ss. Microseconds and tzinfo are dropped."""
    return "%04d%02d%02dT%02d:%02d:%02d"%(in_date.year, in_date.month, in_date.day,
                                         in_date.hour, in_date.minute, in_date.second)

def parse_timestamp(date_str):
    """Parse a dateTime.iso8601 value.

    Accepts the compact form used by XML-RPC as well as the extended ISO-8601
    form, optionally followed by fractional seconds and a Z or +hh:mm suffix.

    :param date_str: the element text
    :return: a datetime, aware only if the text carried an offset, or None if
        the text can't be parsed
    """
    date_str = date_str.strip()
    tz = None
    if date_str.endswith("Z"):
        date_str = date_str[:-1]
        tz = UTC
    else:
        m = _OFFSET_RE.search(date_str)
        # only treat it as an offset when it follows the time part
        if m is not None and ":" in date_str[:m.start()]:
            minutes = int(m.group(2)) * 60 + int(m.group(3))
            if m.group(1) == "-": minutes = -minutes
            tz = FixedOffset(minutes, m.group(0))
            date_str = date_str[:m.start()]

    micros = 0
    if "." in date_str:
        date_str, frac = date_str.split(".", 1)
        if not frac.isdigit():
            return None
        micros = int((frac + "000000")[:6])

    for fmt in TIMESTAMP_FORMATS:
        try:
            dt = datetime.datetime.strptime(date_str, fmt)
        except ValueError:
            continue
        return dt.replace(microsecond=micros, tzinfo=tz)
    return None
