"""Extract code from the plain-text answers of the HTML and multi-file pipelines."""

from __future__ import annotations

import re
from dataclasses import dataclass

from loguru import logger

_HTML_BLOCK = re.compile(r"```html\s*\n([\s\S]*?)```", re.IGNORECASE)
_GENERIC_BLOCK = re.compile(r"```\s*\n([\s\S]*?)```")
_CSS_BLOCK = re.compile(r"```css\s*\n([\s\S]*?)```", re.IGNORECASE)
_JS_BLOCK = re.compile(r"```(?:js|javascript)\s*\n([\s\S]*?)```", re.IGNORECASE)
_HTML_DOCUMENT = re.compile(r"(<!DOCTYPE[^>]*>\s*)?(<html[\s\S]*?</html>)", re.IGNORECASE)


@dataclass
class HtmlCodeResult:
    html_code: str = ""


@dataclass
class MultiFileCodeResult:
    html_code: str = ""
    css_code: str = ""
    js_code: str = ""


def _first_group(pattern: re.Pattern[str], text: str) -> str | None:
    match = pattern.search(text)
    return match.group(1) if match else None


def extract_html_document(text: str) -> str | None:
    """A bare ``<html>…</html>`` document, with its doctype when present."""
    match = _HTML_DOCUMENT.search(text)
    if not match:
        return None
    return (match.group(1) or "") + match.group(2)


class HtmlCodeParser:
    """Single-file page: fenced html, then a fence holding a document, then a bare document."""

    def parse(self, text: str) -> HtmlCodeResult:
        code = _first_group(_HTML_BLOCK, text)
        if code is None:
            generic = _first_group(_GENERIC_BLOCK, text)
            if generic is not None and ("<html" in generic or "<!DOCTYPE" in generic):
                code = generic
        if code and code.strip():
            return HtmlCodeResult(html_code=code.strip())

        logger.warning("No html code block in answer | chars={}", len(text))
        document = extract_html_document(text)
        if document and document.strip():
            return HtmlCodeResult(html_code=document.strip())

        logger.error("Could not extract html from answer, keeping raw text")
        return HtmlCodeResult(html_code=text.strip())


class MultiFileCodeParser:
    """``index.html`` + ``style.css`` + ``script.js`` from separate fences."""

    def parse(self, text: str) -> MultiFileCodeResult:
        html = _first_group(_HTML_BLOCK, text)
        css = _first_group(_CSS_BLOCK, text)
        js = _first_group(_JS_BLOCK, text)

        if not html or not html.strip():
            logger.warning("No html code block in answer, trying a bare document")
            html = extract_html_document(text)
        if not html or not html.strip():
            logger.error("Could not extract html from answer | chars={}", len(text))

        return MultiFileCodeResult(
            html_code=(html or "").strip(),
            css_code=(css or "").strip(),
            js_code=(js or "").strip(),
        )
