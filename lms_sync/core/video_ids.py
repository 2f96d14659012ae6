from __future__ import annotations

import re


_YOUTUBE_URL_RE = re.compile(
    r'(?:youtube\.com/watch\?(?:.*&)?v=|youtu\.be/|youtube\.com/embed/|youtube\.com/shorts/)([A-Za-z0-9_-]{11})'
)
_YOUTUBE_LOOSE_RE = re.compile(r'(?:v=|/)([A-Za-z0-9_-]{11})(?:\?|$|&)')
_YOUTUBE_BARE_ID_RE = re.compile(r'^[A-Za-z0-9_-]{11}$')
_ZOOM_PASSCODE_RE = re.compile(r'(https?://\S+)\s+Passcode:\s*(.+)', re.IGNORECASE)
_WHITESPACE_RE = re.compile(r'\s+')
_TRAILING_PERIODS_RE = re.compile(r'\.+$')


def extract_youtube_id(value: str | None) -> str | None:
    text = (value or '').strip()
    if not text:
        return None
    if _YOUTUBE_BARE_ID_RE.match(text):
        return text
    match = _YOUTUBE_URL_RE.search(text) or _YOUTUBE_LOOSE_RE.search(text)
    return match.group(1) if match else None


def content_id_for(
    *,
    external_content_id: str | None = None,
    youtube_video_url: str | None = None,
    youtube_embed_url: str | None = None,
    zoom_recording_id: str | None = None,
    drive_id: str | None = None,
) -> str | None:
    stored = (external_content_id or '').strip()
    if stored:
        return stored
    for url in (youtube_video_url, youtube_embed_url):
        youtube_id = extract_youtube_id(url)
        if youtube_id:
            return youtube_id
    for fallback in (zoom_recording_id, drive_id):
        value = (fallback or '').strip()
        if value:
            return value
    return None


def extract_zoom_details(value: str | None) -> tuple[str, str]:
    """Split Zoom's share text ("<url> Passcode: <code>") into url and passcode."""
    text = (value or '').strip()
    match = _ZOOM_PASSCODE_RE.search(text)
    if not match:
        return text, ''
    return match.group(1).strip(), match.group(2).strip()


def normalize_title(value: str | None) -> str:
    text = _WHITESPACE_RE.sub(' ', (value or '').strip().lower())
    return _TRAILING_PERIODS_RE.sub('', text)
