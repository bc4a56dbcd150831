"""File validation and type detection for uploads."""

import codecs
import mimetypes
import re

import filetype

from snipdrop.config import CDNConfig
from snipdrop.core.errors import BlockedType

DEFAULT_EXTENSION = "bin"
GENERIC_MIMETYPE = "application/octet-stream"
TEXT_MIMETYPE = "text/plain"
SHELL_MIMETYPE = "application/x-sh"

# Bytes collected before the content type is sniffed.
SNIFF_WINDOW = 8192

_SHELL_INTERPRETERS = (b"sh", b"bash", b"zsh", b"ksh", b"dash", b"ash")

_EXTENSION_RE = re.compile(r"[a-z0-9]+")

_TEXTUAL_APPLICATION_TYPES = {"application/json", "application/javascript", "application/xml"}


def split_extension(filename: str | None) -> str:
    """
    Return the suffix after the last dot of *filename*, or 'bin' when there is none.
    The suffix ends up in the on-disk name and in response headers, so anything
    other than lowercase ASCII letters and digits is replaced by 'bin'.
    """
    if not filename or "." not in filename:
        return DEFAULT_EXTENSION
    ext = filename.rsplit(".", 1)[-1].strip().lower()
    if not _EXTENSION_RE.fullmatch(ext):
        return DEFAULT_EXTENSION
    return ext


def _is_shell_script(head: bytes) -> bool:
    if not head.startswith(b"#!"):
        return False
    first_line = head[2:].split(b"\n", 1)[0].strip()
    parts = first_line.split()
    if not parts:
        return False
    interpreter = parts[0].rsplit(b"/", 1)[-1]
    if interpreter == b"env" and len(parts) > 1:
        interpreter = parts[1]
    return interpreter in _SHELL_INTERPRETERS


def _looks_like_text(head: bytes) -> bool:
    if b"\x00" in head:
        return False
    # The window may end in the middle of a multi-byte character.
    decoder = codecs.getincrementaldecoder("utf-8")()
    try:
        decoder.decode(head, final=False)
    except UnicodeDecodeError:
        return False
    return True


def sniff_mimetype(head: bytes) -> str:
    """
    Detect the MIME type from the leading bytes of an upload.
    Magic numbers win; shebang shell scripts and UTF-8 text are recognised
    afterwards; everything else is application/octet-stream.
    """
    if not head:
        return GENERIC_MIMETYPE
    kind = filetype.guess(head)
    if kind is not None:
        return kind.mime
    if _is_shell_script(head):
        return SHELL_MIMETYPE
    if _looks_like_text(head):
        return TEXT_MIMETYPE
    return GENERIC_MIMETYPE


def is_textual(mimetype: str) -> bool:
    return mimetype.startswith("text/")


def canonical_extension(mimetype: str, declared: str) -> str:
    """Prefer the extension registered for the sniffed type, unless it is the generic binary one."""
    guessed = mimetypes.guess_extension(mimetype, strict=False)
    if not guessed:
        return declared
    guessed = guessed.lstrip(".").lower()
    if guessed == DEFAULT_EXTENSION:
        return declared
    return guessed


def mimetype_for_extension(extension: str) -> str:
    """Best-effort textual MIME type for a stored extension, text/plain when unknown."""
    guessed, _ = mimetypes.guess_type(f"file.{extension}", strict=False)
    if guessed and (is_textual(guessed) or guessed in _TEXTUAL_APPLICATION_TYPES):
        return guessed
    return TEXT_MIMETYPE


def validate_declared(config: CDNConfig, content_type: str | None, extension: str) -> None:
    """Reject a file part from its headers alone, before any body bytes are read."""
    if not config.is_content_type_allowed(content_type):
        raise BlockedType(f"'{content_type}' is not allowed.")
    if not config.is_extension_allowed(extension):
        raise BlockedType(f"'{extension}' is not allowed.")


def validate_sniffed(config: CDNConfig, mimetype: str) -> None:
    if not config.is_content_type_allowed(mimetype):
        raise BlockedType(f"'{mimetype}' is not allowed.")
