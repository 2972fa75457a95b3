"""Lightweight syntax checks run after every file write.

Only cheap structural checks (tag closure, bracket balance); the result is
appended to the tool output so the model can fix obvious mistakes in the
next round.
"""

from __future__ import annotations

from pathlib import PurePosixPath

_HTML_CHECK_TAGS = ("div", "span", "section", "header", "footer", "main", "nav", "ul", "li")


def validate(file_path: str, content: str) -> list[str]:
    """Return a list of problems found in *content*; empty means it passed."""
    errors: list[str] = []
    ext = PurePosixPath(file_path).suffix.lower().lstrip(".")

    if ext == "vue":
        _check_vue(content, errors)
    elif ext in ("js", "ts", "json"):
        _check_brackets(content, errors)
    elif ext in ("css", "scss"):
        _check_css_braces(content, errors)
    elif ext == "html":
        _check_html_tags(content, errors)
    return errors


def format_result(errors: list[str]) -> str | None:
    if not errors:
        return None
    return "⚠️ syntax check: " + "; ".join(errors)


# ---------------------------------------------------------------------------
# Checks
# ---------------------------------------------------------------------------


def _check_vue(content: str, errors: list[str]) -> None:
    if "<template" not in content:
        errors.append("missing <template> block")
    elif "</template>" not in content:
        errors.append("<template> is not closed")
    if "<script" in content and "</script>" not in content:
        errors.append("<script> is not closed")
    if "<style" in content and "</style>" not in content:
        errors.append("<style> is not closed")
    _check_brackets(content, errors)


def _check_brackets(content: str, errors: list[str]) -> None:
    """Balance of {} [] (), skipping string literals and comments."""
    balance = {"{": 0, "[": 0, "(": 0}
    closers = {"}": "{", "]": "[", ")": "("}
    quote: str | None = None
    i, n = 0, len(content)

    while i < n:
        c = content[i]
        if quote:
            if c == "\\":
                i += 2
                continue
            if c == quote:
                quote = None
        elif c in "\"'`":
            quote = c
        elif content.startswith("//", i):
            end = content.find("\n", i)
            i = n if end == -1 else end
            continue
        elif content.startswith("/*", i):
            end = content.find("*/", i + 2)
            i = n if end == -1 else end + 2
            continue
        elif c in balance:
            balance[c] += 1
        elif c in closers:
            balance[closers[c]] -= 1
        i += 1

    labels = {"{": "braces {}", "[": "brackets []", "(": "parentheses ()"}
    for opener, diff in balance.items():
        if diff != 0:
            errors.append(f"unbalanced {labels[opener]} (difference: {diff})")


def _check_css_braces(content: str, errors: list[str]) -> None:
    diff = content.count("{") - content.count("}")
    if diff != 0:
        errors.append(f"unbalanced CSS braces {{}} (difference: {diff})")


def _check_html_tags(content: str, errors: list[str]) -> None:
    for tag in _HTML_CHECK_TAGS:
        # "<li" would also count "<link", so match the tag name followed by a delimiter
        opened = sum(content.count(f"<{tag}{end}") for end in (">", " ", "\n", "\t", "/"))
        closed = content.count(f"</{tag}>")
        if opened > closed:
            errors.append(f"<{tag}> may not be closed (open: {opened}, close: {closed})")
            break
