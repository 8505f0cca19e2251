"""
Field extraction from portal HTML/JS.

Every function here is pure. Bad input yields a `Failure`, never an exception.
"""

from __future__ import annotations

import re
from datetime import timedelta
from html.parser import HTMLParser
from typing import Iterator, MutableMapping, Optional

from ..result import Failure, FailureKind, Result, parser_error
from . import keys


_ALERT_RE = re.compile(r"""alert\s*\(\s*(['"])(?P<message>.*?)\1\s*\)""", re.S)
_CONTROL_CHARS_RE = re.compile(r"[\x00-\x1f\x7f]")
_CONCAT_RE = re.compile(r"""["']\s*\+\s*["']""")
_STRING_LITERAL_RE = re.compile(r"""(["'])(?P<body>.*?)\1""", re.S)
_DURATION_SEGMENT_RE = re.compile(r"^\d+$")

_TOKEN_KEYS: tuple[str, ...] = keys.MANDATORY_SCRIPT_TOKENS + keys.OPTIONAL_SCRIPT_TOKENS


class FieldMap(MutableMapping[str, str]):
    """
    Case-insensitive `str -> str` mapping that keeps the first-seen spelling of each key.
    """

    def __init__(self, data: Optional[object] = None) -> None:
        self._data: dict[str, tuple[str, str]] = {}
        if data is not None:
            self.update(data)  # type: ignore[arg-type]

    def __setitem__(self, key: str, value: str) -> None:
        folded = key.casefold()
        existing = self._data.get(folded)
        self._data[folded] = (existing[0] if existing else key, value)

    def __getitem__(self, key: str) -> str:
        return self._data[key.casefold()][1]

    def __delitem__(self, key: str) -> None:
        del self._data[key.casefold()]

    def __iter__(self) -> Iterator[str]:
        return (original for original, _ in self._data.values())

    def __len__(self) -> int:
        return len(self._data)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and key.casefold() in self._data

    def copy(self) -> "FieldMap":
        return FieldMap(self)

    def __repr__(self) -> str:
        return f"FieldMap({dict(self.items())!r})"


class _HiddenInputParser(HTMLParser):
    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.fields = FieldMap()
        self.seen_any = False

    def handle_starttag(self, tag: str, attrs: list[tuple[str, Optional[str]]]) -> None:
        if tag != "input":
            return
        attrs_dict = {k: (v or "") for k, v in attrs if k}
        if attrs_dict.get("type", "").strip().lower() != "hidden":
            return
        name = attrs_dict.get("name", "").strip()
        if not name:
            return
        # Later duplicates overwrite earlier ones (document order).
        self.fields[name] = attrs_dict.get("value", "")
        self.seen_any = True

    handle_startendtag = handle_starttag


class _ScriptCollector(HTMLParser):
    def __init__(self) -> None:
        super().__init__(convert_charrefs=False)
        self.scripts: list[str] = []
        self._current: Optional[list[str]] = None

    def handle_starttag(self, tag: str, attrs: list[tuple[str, Optional[str]]]) -> None:
        if tag == "script":
            self._current = []

    def handle_endtag(self, tag: str) -> None:
        if tag == "script" and self._current is not None:
            self.scripts.append("".join(self._current))
            self._current = None

    def handle_data(self, data: str) -> None:
        if self._current is not None:
            self._current.append(data)

    def close(self) -> None:
        super().close()
        # Unterminated trailing <script>: keep what we have.
        if self._current is not None:
            self.scripts.append("".join(self._current))
            self._current = None


def extract_hidden_form_fields(html: str) -> Result[FieldMap]:
    """
    Collect every `<input type="hidden" name=...>` as `name -> value`.

    Fails with ParserError when the document has no such input (it is not the portal form).
    """
    parser = _HiddenInputParser()
    parser.feed(html or "")
    parser.close()
    if not parser.seen_any:
        return parser_error("the page does not contain the portal login form", "no hidden inputs found")
    return Result.success(parser.fields)


def _classify_alert(text: str) -> FailureKind:
    lowered = text.casefold()
    if "saldo" in lowered:
        return FailureKind.NO_BALANCE
    if "usuario" in lowered or "contraseña" in lowered or "contrasena" in lowered:
        return FailureKind.INVALID_CREDENTIALS
    return FailureKind.UNEXPECTED_RESPONSE


def find_inline_alert(html: str) -> Optional[str]:
    collector = _ScriptCollector()
    collector.feed(html or "")
    collector.close()
    for script in collector.scripts:
        match = _ALERT_RE.search(script)
        if match:
            return match.group("message").strip()
    return None


def check_for_inline_alert(html: str) -> Result[None]:
    """
    Look for a JavaScript `alert('...')` inside `<script>` blocks; the portal reports login errors
    this way. The alert text becomes the failure message.
    """
    message = find_inline_alert(html)
    if message is None:
        return Result.success(None)
    return Result.fail(Failure(_classify_alert(message), message))


def _normalize_script(text: str) -> str:
    flattened = _CONTROL_CHARS_RE.sub("", text)
    return _CONCAT_RE.sub("", flattened)


def _parse_query_string(text: str) -> FieldMap:
    pairs = FieldMap()
    for part in text.split("&"):
        name, sep, value = part.partition("=")
        name = name.strip()
        if not sep or not name:
            continue
        pairs[name] = value.strip()
    return pairs


def _has_all_mandatory(fields: FieldMap) -> bool:
    return all(fields.get(key) for key in keys.MANDATORY_SCRIPT_TOKENS)


def _tokens_from_literals(script: str) -> FieldMap:
    """
    Parse every string literal mentioning a mandatory key as a query string (anything up to the
    first `?` is a URL path and is dropped). Literals carrying all mandatory keys win over
    partial ones such as `href="/web/online.do?CSRFHW=..."`.
    """
    parsed: list[FieldMap] = []
    for match in _STRING_LITERAL_RE.finditer(script):
        body = match.group("body")
        folded = body.casefold().replace(" ", "")
        if not any(f"{key.casefold()}=" in folded for key in keys.MANDATORY_SCRIPT_TOKENS):
            continue
        _, sep, query = body.partition("?")
        parsed.append(_parse_query_string(query if sep else body))

    parsed.sort(key=lambda fields: not _has_all_mandatory(fields))
    merged = FieldMap()
    for fields in parsed:
        for name, value in fields.items():
            if value and not merged.get(name):
                merged[name] = value
    return merged


def _tokens_from_assignments(script: str) -> FieldMap:
    found = FieldMap()
    for key in _TOKEN_KEYS:
        m = re.search(rf"\b{re.escape(key)}\s*=\s*([^&\"'\s;]+)", script, re.I)
        if m:
            found[key] = m.group(1)
    return found


def extract_session_tokens_from_script(html: str) -> Result[FieldMap]:
    """
    Pull the session tokens out of the post-login page script, e.g.:

        var urlParam = "ATTRIBUTE_UUID=043E...&CSRFHW=be0d..."
                     + "&wlanuserip=10.227.53.40"
                     + "&loggerId=20260121163024923+user@nauta.com.cu"
                     + "&username=user@nauta.com.cu";

    An inline alert short-circuits with its own failure. `ATTRIBUTE_UUID` and `CSRFHW` are
    required; `loggerId` and `username` are included when present.
    """
    alert = check_for_inline_alert(html)
    if alert.failed:
        return Result.fail(alert.failure)

    script = _normalize_script(html or "")
    candidates = _tokens_from_literals(script)
    if not _has_all_mandatory(candidates):
        for key, value in _tokens_from_assignments(script).items():
            if not candidates.get(key):
                candidates[key] = value

    tokens = FieldMap()
    for key in _TOKEN_KEYS:
        value = candidates.get(key, "")
        if value:
            tokens[key] = value

    missing = [key for key in keys.MANDATORY_SCRIPT_TOKENS if key not in tokens]
    if missing:
        return parser_error("could not extract session tokens", f"missing: {', '.join(missing)}")
    return Result.success(tokens)


def try_parse_duration(text: Optional[str]) -> tuple[bool, timedelta]:
    """
    Parse the portal's remaining-time format `HOURS:MM:SS` (hours may exceed 24, e.g. `125:00:00`).

    Never raises; returns `(False, timedelta(0))` on malformed input.
    """
    if not text:
        return False, timedelta(0)
    parts = text.strip().split(":")
    if len(parts) != 3:
        return False, timedelta(0)
    if not all(_DURATION_SEGMENT_RE.match(p.strip()) for p in parts):
        return False, timedelta(0)

    hours, minutes, seconds = (int(p.strip()) for p in parts)
    if minutes > 59 or seconds > 59:
        return False, timedelta(0)
    return True, timedelta(hours=hours, minutes=minutes, seconds=seconds)


def format_duration(value: timedelta) -> str:
    total = max(0, int(value.total_seconds()))
    hours, rest = divmod(total, 3600)
    minutes, seconds = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"
