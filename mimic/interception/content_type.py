"""
Content type sniffing for mimicked bodies

Mappings store raw bytes without a declared type, so the served
Content-Type is inferred from the bytes themselves.
"""

import json
import re

PNG_MAGIC = b"\x89PNG"
JPEG_MAGIC = b"\xff\xd8\xff"

TEXT_PLAIN = "text/plain; charset=utf-8"
TEXT_HTML = "text/html; charset=utf-8"
APPLICATION_JSON = "application/json"
APPLICATION_JAVASCRIPT = "application/javascript; charset=utf-8"

# Tokens that mark a body as script source
SCRIPT_TOKENS = ("function", "const ", "let ", "var ", "=>", "//", "/*")

# Member call such as console.log( or document.getElementById(
MEMBER_CALL = re.compile(r"\b[A-Za-z_$][\w$]*\.[A-Za-z_$][\w$]*\s*\(")


def _looks_like_json(text: str) -> bool:
    try:
        json.loads(text)
    except ValueError:
        return False
    return True


def _looks_like_html(text: str) -> bool:
    lowered = text.lower()
    return lowered.startswith("<!") or lowered.startswith("<html") or "<html" in lowered


def detect_content_type(body: bytes) -> str:
    """
    Infer a Content-Type header value from body bytes

    Order: PNG/JPEG magic, JSON, HTML, script heuristics, plain text.
    """
    if not body:
        return TEXT_PLAIN

    if body.startswith(PNG_MAGIC):
        return "image/png"
    if body.startswith(JPEG_MAGIC):
        return "image/jpeg"

    text = body.decode("utf-8", errors="replace").strip()
    if not text:
        return TEXT_PLAIN

    if _looks_like_json(text):
        return APPLICATION_JSON

    if _looks_like_html(text):
        return TEXT_HTML

    if any(token in text for token in SCRIPT_TOKENS) or MEMBER_CALL.search(text):
        return APPLICATION_JAVASCRIPT

    return TEXT_PLAIN
