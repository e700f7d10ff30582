from types import SimpleNamespace

import pytest

from core_utils import (
    ensure_sha256_prefix,
    generate_request_id,
    payload_fp,
    request_id_from,
    sha256_hex,
)


def test_sha256_hex_accepts_text_and_bytes():
    assert sha256_hex("abc") == sha256_hex(b"abc")
    with pytest.raises(TypeError):
        sha256_hex(123)


def test_prefix_is_not_doubled():
    fp = payload_fp(b"{}")
    assert fp.startswith("sha256:")
    assert ensure_sha256_prefix(fp) == fp


def test_request_ids():
    rid = generate_request_id()
    assert len(rid) == 16 and rid != generate_request_id()
    assert request_id_from(SimpleNamespace(headers={"x-request-id": " r1 "})) == "r1"
    assert request_id_from(SimpleNamespace(headers={})) is None
    assert request_id_from(None) is None
