"""Syntax-level repair of near-JSON emitted by the local model.

The sanitizer knows nothing about the dashboard schema. It turns whatever the
model produced into the best candidate JSON text it can, and records which
repairs fired so the orchestrator can log and classify failures.

Every step walks the text with a string-literal mask, so characters inside
quoted strings are never touched.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field, fields
from typing import Dict, List, Optional, Tuple


_FENCE_OPEN = re.compile(r"\A```[\w+-]*[ \t]*(?:\r?\n)?")
_FENCE_CLOSE = re.compile(r"(?:\r?\n)?[ \t]*```\Z")
_IDENT_START = re.compile(r"[A-Za-z_$]")
_IDENT_CHAR = re.compile(r"[A-Za-z0-9_$-]")

_CLOSERS = {"{": "}", "[": "]"}


@dataclass
class SanitizeReport:
    changed: bool = False
    code_fences_removed: bool = False
    extracted_json: bool = False
    trailing_commas_removed: bool = False
    unquoted_keys_fixed: bool = False
    root_merge_applied: bool = False
    wrapper_fix_applied: bool = False
    missing_brace_added: bool = False
    closers_added: int = 0
    object_found: bool = True

    def fired(self) -> List[str]:
        names: List[str] = []
        for item in fields(self):
            if item.name in {"changed", "object_found", "closers_added"}:
                continue
            if getattr(self, item.name):
                names.append(item.name)
        return names

    def as_log_extra(self) -> Dict[str, object]:
        return {item.name: getattr(self, item.name) for item in fields(self)}


@dataclass
class SanitizeResult:
    candidate: str
    report: SanitizeReport = field(default_factory=SanitizeReport)


def _string_mask(text: str) -> List[bool]:
    """Flag every index that belongs to a string literal, quotes included."""

    mask = [False] * len(text)
    in_string = False
    escaped = False
    for index, char in enumerate(text):
        if in_string:
            mask[index] = True
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
        elif char == '"':
            mask[index] = True
            in_string = True
    return mask


def _ends_inside_string(text: str) -> bool:
    in_string = False
    escaped = False
    for char in text:
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
        elif char == '"':
            in_string = True
    return in_string


def _skip_ws(text: str, index: int) -> int:
    while index < len(text) and text[index].isspace():
        index += 1
    return index


def strip_code_fences(text: str) -> Tuple[str, bool]:
    trimmed = text.strip()
    stripped = _FENCE_OPEN.sub("", trimmed, count=1)
    stripped = _FENCE_CLOSE.sub("", stripped, count=1).strip()
    return stripped, stripped != trimmed


def _root_span_end(text: str, start: int, mask: List[bool]) -> Optional[int]:
    depth = 0
    for index in range(start, len(text)):
        if mask[index]:
            continue
        char = text[index]
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return index
    return None


def extract_json_object(text: str) -> Tuple[Optional[str], bool]:
    """Return the first balanced root object (plus any ``,{...}`` siblings).

    Falls back to slicing between the first ``{`` and the last ``}`` when the
    root never balances. Returns ``(None, False)`` when there is no ``{``.
    """

    mask = _string_mask(text)
    start = next((i for i, char in enumerate(text) if char == "{" and not mask[i]), None)
    if start is None:
        return None, False

    end = _root_span_end(text, start, mask)
    if end is not None:
        # Sibling roots separated by a comma stay in the span for the merge step.
        while True:
            comma = _skip_ws(text, end + 1)
            if comma >= len(text) or text[comma] != "," or mask[comma]:
                break
            brace = _skip_ws(text, comma + 1)
            if brace >= len(text) or text[brace] != "{":
                break
            sibling_end = _root_span_end(text, brace, mask)
            if sibling_end is None:
                end = len(text) - 1
                break
            end = sibling_end
        span = text[start : end + 1]
        return span, span != text

    last_close = max((i for i, char in enumerate(text) if char == "}" and not mask[i]), default=-1)
    span = text[start : last_close + 1] if last_close > start else text[start:]
    return span, span != text


def remove_trailing_commas(text: str) -> Tuple[str, bool]:
    mask = _string_mask(text)
    out: List[str] = []
    removed = False
    for index, char in enumerate(text):
        if char == "," and not mask[index]:
            following = _skip_ws(text, index + 1)
            if following < len(text) and text[following] in "}]":
                removed = True
                continue
        out.append(char)
    return "".join(out), removed


def quote_unquoted_keys(text: str) -> Tuple[str, bool]:
    """Quote bare identifiers sitting where an object key is expected."""

    mask = _string_mask(text)
    out: List[str] = []
    stack: List[str] = []
    expect_key = False
    fixed = False
    index = 0
    while index < len(text):
        char = text[index]
        if mask[index]:
            if char == '"' and expect_key:
                # A quoted key; the colon will flip us to value mode.
                expect_key = False
            out.append(char)
            index += 1
            continue

        if char == "{":
            stack.append("object")
            expect_key = True
        elif char == "[":
            stack.append("array")
            expect_key = False
        elif char in "}]":
            if stack:
                stack.pop()
            expect_key = False
        elif char == ",":
            expect_key = bool(stack) and stack[-1] == "object"
        elif char == ":":
            expect_key = False
        elif expect_key and _IDENT_START.match(char):
            end = index + 1
            while end < len(text) and _IDENT_CHAR.match(text[end]):
                end += 1
            colon = _skip_ws(text, end)
            if colon < len(text) and text[colon] == ":":
                out.append(f'"{text[index:end]}"')
                fixed = True
                expect_key = False
                index = end
                continue

        out.append(char)
        index += 1
    return "".join(out), fixed


def merge_root_objects(text: str) -> Tuple[str, bool]:
    """Fold ``{...},{...}`` at the document root into a single object."""

    mask = _string_mask(text)
    out: List[str] = []
    depth = 0
    applied = False
    index = 0
    while index < len(text):
        char = text[index]
        if mask[index]:
            out.append(char)
            index += 1
            continue

        if char in "{[":
            depth += 1
        elif char in "}]":
            if char == "}" and depth == 1:
                comma = _skip_ws(text, index + 1)
                brace = _skip_ws(text, comma + 1) if comma < len(text) and text[comma] == "," else len(text)
                if brace < len(text) and text[brace] == "{":
                    applied = True
                    inner = _skip_ws(text, brace + 1)
                    first_has_members = "".join(out).rstrip()[-1:] != "{"
                    second_has_members = inner < len(text) and text[inner] != "}"
                    if first_has_members and second_has_members:
                        out.append(",")
                    # Still inside the root object; the sibling's members follow.
                    index = brace + 1
                    continue
            depth -= 1
        out.append(char)
        index += 1
    return "".join(out), applied


def unwrap_anonymous_members(text: str) -> Tuple[str, bool]:
    """Drop the braces of a bare ``{...}`` that follows a root-level comma."""

    mask = _string_mask(text)
    out: List[str] = []
    depth = 0
    applied = False
    skip_close_at_depth: List[int] = []
    index = 0
    while index < len(text):
        char = text[index]
        if mask[index]:
            out.append(char)
            index += 1
            continue

        if char == "," and depth == 1:
            brace = _skip_ws(text, index + 1)
            if brace < len(text) and text[brace] == "{":
                applied = True
                inner = _skip_ws(text, brace + 1)
                if inner < len(text) and text[inner] == "}":
                    # An empty wrapper contributes nothing, comma included.
                    index = inner + 1
                    continue
                out.append(char)
                out.append(text[index + 1 : brace])
                depth += 1
                skip_close_at_depth.append(depth)
                index = brace + 1
                continue
        if char in "{[":
            depth += 1
        elif char in "}]":
            if char == "}" and skip_close_at_depth and skip_close_at_depth[-1] == depth:
                skip_close_at_depth.pop()
                depth -= 1
                index += 1
                continue
            depth -= 1
        out.append(char)
        index += 1
    return "".join(out), applied


def close_missing_brackets(text: str) -> Tuple[str, int]:
    """Append the closers a cleanly truncated document is missing."""

    if _ends_inside_string(text):
        return text, 0
    mask = _string_mask(text)
    stack: List[str] = []
    for index, char in enumerate(text):
        if mask[index]:
            continue
        if char in _CLOSERS:
            stack.append(char)
        elif char in "}]":
            if not stack:
                # More closers than openers; nothing we can append fixes that.
                return text, 0
            stack.pop()
    if not stack:
        return text, 0
    body = text.rstrip()
    if body.endswith(","):
        body = body[:-1].rstrip()
    closers = "".join(_CLOSERS[opener] for opener in reversed(stack))
    return body + closers, len(stack)


def sanitize(raw: Optional[str]) -> SanitizeResult:
    """Run the fixed repair pipeline; never raises."""

    original = raw or ""
    report = SanitizeReport()

    text, report.code_fences_removed = strip_code_fences(original)

    extracted, report.extracted_json = extract_json_object(text)
    if extracted is None:
        report.object_found = False
        report.changed = text != original
        return SanitizeResult(candidate=text, report=report)
    text = extracted

    text, report.trailing_commas_removed = remove_trailing_commas(text)
    text, report.unquoted_keys_fixed = quote_unquoted_keys(text)
    text, report.root_merge_applied = merge_root_objects(text)
    text, report.wrapper_fix_applied = unwrap_anonymous_members(text)
    text, report.closers_added = close_missing_brackets(text)
    report.missing_brace_added = report.closers_added > 0

    report.changed = text != original
    return SanitizeResult(candidate=text, report=report)


def preview_text(text: str, head: int = 220, tail: int = 220) -> Dict[str, object]:
    length = len(text)
    if length <= head + tail + 20:
        return {"length": length, "head": text, "tail": ""}
    return {"length": length, "head": text[:head], "tail": text[length - tail :]}


def describe_json_error_location(text: str, error: json.JSONDecodeError) -> Dict[str, object]:
    position = min(max(error.pos, 0), len(text))
    start = max(0, position - 120)
    end = min(len(text), position + 120)
    return {
        "position": position,
        "line": error.lineno,
        "column": error.colno,
        "snippet": text[start:end],
    }
