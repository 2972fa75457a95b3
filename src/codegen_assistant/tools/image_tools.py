"""Image search and logo tools.

``searchImages`` queries Pixabay first, then Pexels, and finally falls back
to deterministic picsum placeholders so the model always gets usable URLs.
"""

from __future__ import annotations

import re
from html import escape
from pathlib import Path
from typing import Literal
from urllib.parse import quote

import httpx
from loguru import logger
from pydantic import BaseModel, Field

from codegen_assistant.tools.base import BaseTool

PIXABAY_API_URL = "https://pixabay.com/api/"
PEXELS_API_URL = "https://api.pexels.com/v1/search"

Purpose = Literal["hero", "card", "avatar", "background"]

_PLACEHOLDER_SIZES: dict[str, tuple[int, int]] = {
    "hero": (1920, 1080),
    "background": (1920, 1080),
    "card": (600, 400),
    "avatar": (200, 200),
}


class SearchImagesArgs(BaseModel):
    query: str = Field(description="Search keywords, e.g. 'business office' or 'mountain landscape'")
    count: int = Field(default=3, ge=1, le=10, description="Number of images to return (1-5 recommended)")
    purpose: Purpose = Field(
        default="card",
        description="Where the image is used: 'hero' banner, 'card', 'avatar' or 'background'",
    )


class SearchImagesTool(BaseTool):
    name = "searchImages"
    display_name = "Search images"
    description = (
        "Search high-quality stock images by keyword and return a list of image URLs. "
        "Uses Pixabay, then Pexels; returns placeholder images when both are unavailable."
    )
    args_model = SearchImagesArgs

    def __init__(
        self,
        output_root: Path,
        pixabay_api_key: str | None = None,
        pexels_api_key: str | None = None,
        timeout: float = 10.0,
        client: httpx.Client | None = None,
    ) -> None:
        super().__init__(output_root)
        self.pixabay_api_key = pixabay_api_key
        self.pexels_api_key = pexels_api_key
        self.client = client or httpx.Client(timeout=timeout)

    def run(self, args: SearchImagesArgs, context_id: str) -> str:
        logger.info("Searching images | query={} | count={} | purpose={}", args.query, args.count, args.purpose)

        if self.pixabay_api_key:
            urls = self._search_pixabay(args.query, args.count, args.purpose)
            if urls:
                return _format_urls("Pixabay", urls)
            logger.warning("Pixabay returned nothing, falling back to Pexels | query={}", args.query)

        if self.pexels_api_key:
            urls = self._search_pexels(args.query, args.count, args.purpose)
            if urls:
                return _format_urls("Pexels", urls)
            logger.warning("Pexels returned nothing, using placeholders | query={}", args.query)

        return _format_urls("placeholder", placeholder_urls(args.query, args.count, args.purpose))

    def executed_summary(self, arguments: dict) -> str:
        return f"[{self.name}] {self.display_name} \"{arguments.get('query', '')}\""

    # ------------------------------------------------------------------
    # Providers
    # ------------------------------------------------------------------

    def _search_pixabay(self, query: str, count: int, purpose: str) -> list[str]:
        params = {
            "key": self.pixabay_api_key,
            "q": query,
            "image_type": "photo",
            "orientation": "horizontal" if purpose in ("hero", "background") else "all",
            # Pixabay requires per_page in [3, 200]
            "per_page": max(3, min(count * 2, 30)),
            "safesearch": "true",
        }
        size_key = "largeImageURL" if purpose in ("hero", "background") else "webformatURL"
        try:
            response = self.client.get(PIXABAY_API_URL, params=params)
            response.raise_for_status()
            hits = response.json().get("hits") or []
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Pixabay request failed | query={} | error={}", query, exc)
            return []
        urls = [hit.get(size_key) or hit.get("webformatURL") for hit in hits]
        return [u for u in urls if u][:count]

    def _search_pexels(self, query: str, count: int, purpose: str) -> list[str]:
        orientation = {"avatar": "square", "card": "landscape"}.get(purpose, "landscape")
        size_key = {"hero": "large2x", "background": "large2x", "avatar": "small"}.get(purpose, "medium")
        try:
            response = self.client.get(
                PEXELS_API_URL,
                params={"query": query, "per_page": max(1, min(count * 2, 15)), "orientation": orientation},
                headers={"Authorization": self.pexels_api_key or ""},
            )
            response.raise_for_status()
            photos = response.json().get("photos") or []
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Pexels request failed | query={} | error={}", query, exc)
            return []
        urls = [(photo.get("src") or {}).get(size_key) or (photo.get("src") or {}).get("medium") for photo in photos]
        return [u for u in urls if u][:count]


def placeholder_urls(query: str, count: int, purpose: str) -> list[str]:
    """Deterministic picsum URLs sized for *purpose*."""
    width, height = _PLACEHOLDER_SIZES.get(purpose, _PLACEHOLDER_SIZES["card"])
    seed = re.sub(r"[^a-z0-9]+", "-", query.lower()).strip("-") or "image"
    return [f"https://picsum.photos/seed/{seed}-{i + 1}/{width}/{height}" for i in range(count)]


def _format_urls(source: str, urls: list[str]) -> str:
    return f"Found the following image URLs (source: {source}):\n" + "\n".join(urls)


# ---------------------------------------------------------------------------
# Logo
# ---------------------------------------------------------------------------


class GenerateLogoArgs(BaseModel):
    text: str = Field(description="Logo text, e.g. a company name or abbreviation")
    style: Literal["text", "icon", "initial", "badge"] = Field(
        default="initial", description="'text', 'icon', 'initial' or 'badge'"
    )
    primaryColor: str = Field(default="#6366f1", description="Theme colour as hex, e.g. '#6366f1'")
    size: Literal["small", "medium", "large"] = Field(
        default="medium", description="'small' 32px, 'medium' 64px or 'large' 128px"
    )


_SIZE_PX = {"small": 32, "medium": 64, "large": 128}


def initials(text: str) -> str:
    words = text.split()
    if not words:
        return "?"
    if len(words) == 1:
        return words[0][:2].upper()
    return (words[0][0] + words[-1][0]).upper()


class GenerateLogoTool(BaseTool):
    name = "generateLogo"
    display_name = "Generate logo"
    description = "Generate a website logo as an image URL or inline SVG"
    args_model = GenerateLogoArgs

    def run(self, args: GenerateLogoArgs, context_id: str) -> str:
        px = _SIZE_PX[args.size]
        color = args.primaryColor.lstrip("#")

        if args.style == "icon":
            body = (
                "Logo URL:\n"
                f"https://api.dicebear.com/7.x/shapes/svg?seed={quote(args.text)}&backgroundColor={color}&size={px}"
            )
        elif args.style == "badge":
            body = f"Logo SVG:\n```svg\n{_badge_svg(args.text, args.primaryColor, px)}\n```"
        elif args.style == "text":
            body = f"Logo SVG:\n```svg\n{_text_svg(args.text, args.primaryColor, px)}\n```"
        else:
            body = (
                "Logo URL:\n"
                f"https://ui-avatars.com/api/?name={quote(initials(args.text))}"
                f"&background={color}&color=fff&size={px}&bold=true&format=svg"
            )

        logger.info("Generated logo | text={} | style={}", args.text, args.style)
        return (
            "Logo generated:\n"
            f"- text: {args.text}\n- style: {args.style}\n- colour: {args.primaryColor}\n- size: {px}px\n\n"
            f"{body}"
        )

    def executed_summary(self, arguments: dict) -> str:
        return (
            f"[{self.name}] {self.display_name} - text: {arguments.get('text', 'Logo')}, "
            f"style: {arguments.get('style', 'initial')}"
        )


def _badge_svg(text: str, color: str, size: int) -> str:
    return (
        f'<svg width="{size}" height="{size}" viewBox="0 0 {size} {size}" xmlns="http://www.w3.org/2000/svg">\n'
        f'  <rect width="{size}" height="{size}" rx="{size // 8}" fill="{escape(color)}"/>\n'
        f'  <text x="50%" y="50%" dominant-baseline="central" text-anchor="middle" fill="white" '
        f'font-family="Arial, sans-serif" font-weight="bold" font-size="{size // 3}">{escape(initials(text))}</text>\n'
        "</svg>"
    )


def _text_svg(text: str, color: str, size: int) -> str:
    font_size = size // 2
    width = len(text) * font_size + 20
    return (
        f'<svg width="{width}" height="{size}" viewBox="0 0 {width} {size}" xmlns="http://www.w3.org/2000/svg">\n'
        f'  <text x="10" y="50%" dominant-baseline="central" fill="{escape(color)}" '
        f"font-family=\"'Segoe UI', Arial, sans-serif\" font-weight=\"bold\" font-size=\"{font_size}\">"
        f"{escape(text)}</text>\n"
        "</svg>"
    )
