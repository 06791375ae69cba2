# stampchat/services/stamps.py

from __future__ import annotations

import html
import re
from typing import Iterable, List, Optional

import markdown
from markupsafe import Markup, escape

from stampchat.core.config import settings
from stampchat.models.models import Message, RenderedMessage, Segment

STAMP_PATTERN = re.compile(r":stamp_([A-Za-z0-9-]+)")
_SINGLE_PARAGRAPH = re.compile(r"^<p>(.*)</p>$", re.DOTALL)

SAFE_SCHEMES = frozenset({"http", "https", "mailto"})
_URL_ATTR = re.compile(r'\b(href|src)="([^"]*)"')
_SCHEME = re.compile(r"^([a-z][a-z0-9+.-]*):")
# browsers ignore these inside a scheme ("java\tscript:")
_URL_NOISE = re.compile(r"[\x00-\x20\x7f]")


def _safe_url(value: str) -> bool:
    """Relative URLs and http(s)/mailto links only."""
    url = _URL_NOISE.sub("", html.unescape(value)).lower()
    match = _SCHEME.match(url)
    return match is None or match.group(1) in SAFE_SCHEMES


def _neutralise_urls(rendered: str) -> str:
    def replace(match: re.Match) -> str:
        if _safe_url(match.group(2)):
            return match.group(0)
        return f'{match.group(1)}="#"'

    return _URL_ATTR.sub(replace, rendered)


def stamp_url(name: str, template: Optional[str] = None) -> str:
    return (template or settings.STAMP_URL_TEMPLATE).format(name=name)


def _render_markup(chunk: str) -> str:
    """
    Escape user text, then render markdown on top of it.

    Raw HTML typed by users never reaches the output as markup, and link
    or image URLs with a scheme other than http, https or mailto are
    replaced by "#". A chunk that renders to a single paragraph is returned
    without the <p> wrapper so it can sit inline next to stamps.
    """
    if not chunk.strip():
        return str(escape(chunk))
    rendered = _neutralise_urls(markdown.markdown(str(escape(chunk))))
    match = _SINGLE_PARAGRAPH.match(rendered)
    if match and "<p>" not in match.group(1):
        # keep the spacing next to neighbouring stamps
        lead = chunk[: len(chunk) - len(chunk.lstrip())]
        trail = chunk[len(chunk.rstrip()):]
        return f"{lead}{match.group(1)}{trail}"
    return rendered


def render_message(
    text: str,
    stamps: Optional[Iterable[str]] = None,
    url_template: Optional[str] = None,
) -> List[Segment]:
    """
    Split message text into stamp and markup segments.

    `:stamp_<name>` becomes a stamp segment when <name> is in the
    allow-list (settings.STAMP_NAMES unless `stamps` is given); any other
    text, including unknown stamp tokens, is escaped and rendered as
    markdown.
    """
    allowed = set(settings.STAMP_NAMES if stamps is None else stamps)
    segments: List[Segment] = []
    buffer = ""
    position = 0

    for match in STAMP_PATTERN.finditer(text):
        name = match.group(1)
        buffer += text[position:match.start()]
        position = match.end()
        if name not in allowed:
            buffer += match.group(0)
            continue
        if buffer:
            segments.append(Segment(kind="html", html=_render_markup(buffer)))
            buffer = ""
        url = stamp_url(name, url_template)
        img = Markup('<img class="stamp" src="{}" alt="{}">').format(url, match.group(0))
        segments.append(Segment(kind="stamp", asset=name, url=url, html=str(img)))

    buffer += text[position:]
    if buffer:
        segments.append(Segment(kind="html", html=_render_markup(buffer)))
    return segments


def render_html(text: str, stamps: Optional[Iterable[str]] = None) -> str:
    return "".join(segment.html for segment in render_message(text, stamps))


def render(message: Message) -> RenderedMessage:
    return RenderedMessage(**message.model_dump(), segments=render_message(message.text))
