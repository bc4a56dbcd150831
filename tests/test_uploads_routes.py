"""Integration tests for the upload routes (snipdrop/routers/uploads.py).

Covers: POST /upload (pastes, files, limits, blocklist, admin key) and POST /short.
"""
import re

import pytest
from httpx import AsyncClient

from snipdrop.config import DEFAULT_ADMIN_SECRET
from snipdrop.schemas.record import CodeRecord, FileRecord, ShortRecord, parse_record

ADMIN_HEADERS = {"x-admin-key": "s3cret-admin-key"}
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64
EXE_BYTES = b"MZ\x90\x00\x03\x00\x00\x00" + b"\x00" * 64

URL_RE = re.compile(r"^http://cdn\.test/([a-z]{8})(?:\.([a-z0-9]+))?$")


def _identifier(url: str) -> str:
    match = URL_RE.match(url)
    assert match, url
    return match.group(1)


# ---------------------------------------------------------------------------
# Pastes
# ---------------------------------------------------------------------------


class TestUploadPaste:

    async def test_text_upload_returns_url(self, client: AsyncClient, store, config) -> None:
        resp = await client.post("/upload", files={"file": ("notes.txt", b"hello\n", "text/plain")})
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/plain")
        match = URL_RE.match(resp.text)
        assert match
        assert match.group(2) == "txt"

        record = parse_record(store.data[config.record_key(match.group(1))])
        assert isinstance(record, CodeRecord)
        assert record.mimetype == "txt"
        assert record.is_admin is False
        assert record.path.read_bytes() == b"hello\n"

    async def test_paste_keeps_declared_extension(self, client: AsyncClient) -> None:
        resp = await client.post(
            "/upload", files={"file": ("main.rs", b"fn main() {}\n", "application/octet-stream")}
        )
        assert resp.status_code == 200
        assert resp.text.endswith(".rs")

    @pytest.mark.parametrize("filename", ["notes.рус", "notes.a/b"])
    async def test_unsafe_extension_is_replaced(self, client: AsyncClient, filename: str) -> None:
        resp = await client.post("/upload", files={"file": (filename, b"hello text", "text/plain")})
        assert resp.status_code == 200
        assert URL_RE.match(resp.text), resp.text

        identifier = _identifier(resp.text)
        raw = await client.get(f"/{identifier}/raw")
        assert raw.status_code == 200
        assert raw.content == b"hello text"
        assert raw.headers["content-disposition"].isascii()

    async def test_reservation_released_after_upload(self, client: AsyncClient, store) -> None:
        resp = await client.post("/upload", files={"file": ("a.txt", b"x", "text/plain")})
        assert resp.status_code == 200
        assert [k for k in store.data if "-reserved:" in k] == []


# ---------------------------------------------------------------------------
# Binary files
# ---------------------------------------------------------------------------


class TestUploadFile:

    async def test_binary_with_unsafe_extension_downloads(self, client: AsyncClient) -> None:
        resp = await client.post(
            "/upload", files={"file": ("blob.данные", b"\x00\x01\x02\x03", "application/octet-stream")}
        )
        assert resp.status_code == 200
        assert URL_RE.match(resp.text), resp.text

        download = await client.get(f"/{_identifier(resp.text)}")
        assert download.status_code == 200
        assert download.content == b"\x00\x01\x02\x03"
        assert download.headers["content-disposition"].startswith("attachment")

    async def test_png_becomes_file_record(self, client: AsyncClient, store, config) -> None:
        resp = await client.post("/upload", files={"file": ("pic", PNG_BYTES, "image/png")})
        assert resp.status_code == 200
        assert resp.text.endswith(".png")

        record = parse_record(store.data[config.record_key(_identifier(resp.text))])
        assert isinstance(record, FileRecord)
        assert record.mimetype == "image/png"
        assert record.path.name.endswith(".png")


# ---------------------------------------------------------------------------
# Size limits
# ---------------------------------------------------------------------------


class TestUploadLimits:

    async def test_exactly_at_limit_is_accepted(self, client: AsyncClient, uploaded_files) -> None:
        resp = await client.post("/upload", files={"file": ("a.txt", b"a" * 1024, "text/plain")})
        assert resp.status_code == 200
        assert len(uploaded_files()) == 1

    async def test_one_byte_over_limit_is_rejected(
        self, client: AsyncClient, store, uploaded_files
    ) -> None:
        resp = await client.post("/upload", files={"file": ("a.txt", b"a" * 1025, "text/plain")})
        assert resp.status_code == 413
        assert resp.text == "File too big (Maximum allowed is 1 KiB)"
        assert uploaded_files() == []
        assert store.data == {}

    async def test_admin_has_no_limit(self, client: AsyncClient, uploaded_files) -> None:
        resp = await client.post(
            "/upload",
            files={"file": ("big.txt", b"a" * 4096, "text/plain")},
            headers=ADMIN_HEADERS,
        )
        assert resp.status_code == 200
        assert len(uploaded_files(is_admin=True)) == 1
        assert uploaded_files() == []

    async def test_configured_admin_limit_is_enforced(
        self, client: AsyncClient, config, uploaded_files
    ) -> None:
        config.storage.admin_filesize_limit = 1
        over = await client.post(
            "/upload",
            files={"file": ("big.txt", b"a" * 1025, "text/plain")},
            headers=ADMIN_HEADERS,
        )
        assert over.status_code == 413
        assert uploaded_files(is_admin=True) == []

        at_limit = await client.post(
            "/upload",
            files={"file": ("big.txt", b"a" * 1024, "text/plain")},
            headers=ADMIN_HEADERS,
        )
        assert at_limit.status_code == 200
        assert len(uploaded_files(is_admin=True)) == 1

    async def test_wrong_admin_key_gets_public_limit(self, client: AsyncClient) -> None:
        resp = await client.post(
            "/upload",
            files={"file": ("big.txt", b"a" * 4096, "text/plain")},
            headers={"x-admin-key": "guess"},
        )
        assert resp.status_code == 413

    async def test_default_admin_secret_disables_admin(self, client: AsyncClient, config) -> None:
        config.admin_secret = DEFAULT_ADMIN_SECRET
        resp = await client.post(
            "/upload",
            files={"file": ("big.txt", b"a" * 4096, "text/plain")},
            headers={"x-admin-key": DEFAULT_ADMIN_SECRET},
        )
        assert resp.status_code == 413


# ---------------------------------------------------------------------------
# Blocklist
# ---------------------------------------------------------------------------


class TestUploadBlocklist:

    async def test_blocked_extension(self, client: AsyncClient, uploaded_files) -> None:
        resp = await client.post("/upload", files={"file": ("setup.exe", b"hello", "text/plain")})
        assert resp.status_code == 415
        assert resp.text == "'exe' is not allowed."
        assert uploaded_files() == []

    async def test_blocked_declared_content_type(self, client: AsyncClient) -> None:
        resp = await client.post(
            "/upload", files={"file": ("run.txt", b"echo hi", "application/x-sh")}
        )
        assert resp.status_code == 415
        assert resp.text == "'application/x-sh' is not allowed."

    async def test_spoofed_executable_is_sniffed(self, client: AsyncClient, store, uploaded_files) -> None:
        resp = await client.post("/upload", files={"file": ("notes.txt", EXE_BYTES, "text/plain")})
        assert resp.status_code == 415
        assert uploaded_files() == []
        assert store.data == {}

    async def test_shell_script_is_sniffed(self, client: AsyncClient) -> None:
        resp = await client.post(
            "/upload", files={"file": ("notes.txt", b"#!/bin/bash\nrm -rf /\n", "text/plain")}
        )
        assert resp.status_code == 415

    async def test_blocklist_applies_to_admin(self, client: AsyncClient) -> None:
        resp = await client.post(
            "/upload",
            files={"file": ("setup.exe", b"hello", "text/plain")},
            headers=ADMIN_HEADERS,
        )
        assert resp.status_code == 415


# ---------------------------------------------------------------------------
# Malformed requests
# ---------------------------------------------------------------------------


class TestUploadMissingField:

    async def test_wrong_field_name(self, client: AsyncClient) -> None:
        resp = await client.post("/upload", files={"document": ("a.txt", b"x", "text/plain")})
        assert resp.status_code == 400
        assert "file" in resp.text

    async def test_not_multipart(self, client: AsyncClient) -> None:
        resp = await client.post("/upload", content=b"hello", headers={"content-type": "text/plain"})
        assert resp.status_code == 400


# ---------------------------------------------------------------------------
# Short links
# ---------------------------------------------------------------------------


class TestShortUrl:

    async def test_shorten_then_redirect(self, client: AsyncClient, store, config) -> None:
        resp = await client.post("/short", data={"url": "https://example.com/some/long/path"})
        assert resp.status_code == 200
        identifier = _identifier(resp.text)
        assert resp.text == f"http://cdn.test/{identifier}"

        record = parse_record(store.data[config.record_key(identifier)])
        assert isinstance(record, ShortRecord)

        redirect = await client.get(f"/{identifier}")
        assert redirect.status_code == 307
        assert redirect.headers["location"] == "https://example.com/some/long/path"

    async def test_invalid_url(self, client: AsyncClient, store) -> None:
        resp = await client.post("/short", data={"url": "not-a-url"})
        assert resp.status_code == 400
        assert resp.text == "Invalid URL format provided: 'not-a-url'"
        assert store.data == {}

    async def test_missing_url(self, client: AsyncClient) -> None:
        resp = await client.post("/short", data={"other": "x"})
        assert resp.status_code == 400


@pytest.mark.parametrize("path", ["/", "/_/health"])
async def test_static_routes(client: AsyncClient, path: str) -> None:
    resp = await client.get(path)
    assert resp.status_code == 200
