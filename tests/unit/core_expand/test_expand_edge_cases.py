import pytest

from core_expand import (
    BatchFetchError,
    ExpandConfig,
    ExpansionErrors,
    MemoryProvider,
    PayloadDecodeError,
    PayloadEncodeError,
    expand,
)
from core_utils import jsonx


def _doc(data: bytes):
    return jsonx.loads(data)


@pytest.mark.asyncio
async def test_undecodable_input_raises(provider):
    with pytest.raises(PayloadDecodeError):
        await expand(provider, b"{not json")


@pytest.mark.asyncio
@pytest.mark.parametrize("raw", [b"[1, 2, 3]", b'"text"', b"42", b"null"])
async def test_non_mapping_root_is_returned_untouched(provider, raw):
    result = await expand(provider, raw)
    assert result.data == raw
    assert result.ok
    assert provider.calls == []


@pytest.mark.asyncio
async def test_negative_depth_override_is_rejected(provider):
    with pytest.raises(ValueError):
        await expand(provider, b"{}", depth=-1)


@pytest.mark.asyncio
async def test_depth_override_beats_configured_depth(provider):
    src = b'{"_expand":{"post":"posts/1"}}'
    shallow = await expand(provider, src, depth=1)
    assert _doc(shallow.data) == {"post": {"id": 1, "title": "Hello"}}

    deep = await expand(provider, src, depth=2)
    assert _doc(deep.data)["post"]["author"] == {"id": 7, "name": "Alice"}


@pytest.mark.asyncio
async def test_missing_named_reference_is_omitted_silently(provider):
    result = await expand(provider, b'{"id":1,"_expand":{"author":"users/404","tag":"tags/py"}}')
    assert _doc(result.data) == {"id": 1, "tag": {"slug": "py"}}
    assert result.ok


@pytest.mark.asyncio
async def test_failing_named_reference_is_omitted_silently(catalog):
    provider = MemoryProvider(catalog, failing=["users/7"])
    result = await expand(provider, b'{"id":1,"_expand":{"author":"users/7"}}')
    assert _doc(result.data) == {"id": 1}
    assert result.ok


@pytest.mark.asyncio
async def test_named_list_reference_resolves_in_order(provider):
    result = await expand(provider, b'{"_expand":{"tags":["tags/py","tags/missing","tags/go"]}}')
    assert _doc(result.data) == {"tags": [{"slug": "py"}, {"slug": "go"}]}
    assert provider.calls == [("read_many", ("tags/py", "tags/missing", "tags/go"))]


@pytest.mark.asyncio
async def test_empty_requested_list_stays_a_list(provider):
    result = await expand(provider, b'{"_expand":[]}')
    assert _doc(result.data) == []
    assert provider.calls == []


@pytest.mark.asyncio
async def test_requested_list_with_only_misses_discards_fields(provider):
    result = await expand(provider, b'{"title":"x","_expand":["nope/1"]}')
    # nothing resolved: no placeholder, and the requested list shape wins
    assert _doc(result.data) == []


@pytest.mark.asyncio
async def test_non_string_list_keys_are_discarded(provider):
    result = await expand(provider, b'{"_expand":["tags/py",7,null,{"k":1},"tags/go"]}')
    assert _doc(result.data) == [{"slug": "py"}, {"slug": "go"}]
    assert provider.calls == [("read_many", ("tags/py", "tags/go"))]


@pytest.mark.asyncio
@pytest.mark.parametrize("value", ["users/7", 3, None, True])
async def test_scalar_reference_block_is_ignored(provider, value):
    result = await expand(provider, jsonx.dumpb({"id": 1, "_expand": value}))
    assert _doc(result.data) == {"id": 1}
    assert provider.calls == []


@pytest.mark.asyncio
async def test_non_mapping_entries_are_skipped(provider):
    provider.put("scalars/1", [1, 2, 3])
    provider.put("raw/bad", b"\xff\xfe not json")
    src = b'{"_expand":{"one":"scalars/1","list":["scalars/1","raw/bad","tags/py"]}}'
    result = await expand(provider, src)
    assert _doc(result.data) == {"list": [{"slug": "py"}]}
    assert result.ok


@pytest.mark.asyncio
async def test_references_inside_ordinary_maps_use_the_same_budget(provider):
    src = {"a": {"b": {"c": {"_expand": {"author": "users/7"}}}}}
    provider.config = ExpandConfig(max_depth=1)
    result = await expand(provider, jsonx.dumpb(src))
    assert _doc(result.data) == {"a": {"b": {"c": {"author": {"id": 7, "name": "Alice"}}}}}


@pytest.mark.asyncio
async def test_field_order_does_not_change_the_result(provider):
    a = await expand(provider, b'{"x":{"_expand":{"p":"posts/1"}},"_expand":{"u":"users/8"}}', depth=2)
    b = await expand(provider, b'{"_expand":{"u":"users/8"},"x":{"_expand":{"p":"posts/1"}}}', depth=2)
    assert _doc(a.data) == _doc(b.data)


@pytest.mark.asyncio
async def test_resolved_name_overrides_ordinary_field(provider):
    result = await expand(provider, b'{"author":"placeholder","_expand":{"author":"users/7"}}')
    assert _doc(result.data) == {"author": {"id": 7, "name": "Alice"}}


@pytest.mark.asyncio
async def test_whole_batch_failure_yields_empty_list_and_error(catalog):
    provider = MemoryProvider(catalog, fail_batches=True)
    result = await expand(provider, b'{"title":"x","_expand":["tags/py"]}')
    assert _doc(result.data) == []
    assert len(result.errors) == 1
    assert isinstance(result.errors[0], BatchFetchError)


@pytest.mark.asyncio
async def test_errors_from_nested_levels_are_collected(catalog):
    catalog["lists/1"] = {"_expand": ["tags/py", "tags/go"]}
    catalog["lists/2"] = {"_expand": ["users/7", "users/8"]}
    provider = MemoryProvider(catalog, failing=["tags/go", "users/8"])
    result = await expand(provider, b'{"_expand":{"a":"lists/1","b":"lists/2"}}')
    assert _doc(result.data) == {"a": [{"slug": "py"}], "b": [{"id": 7, "name": "Alice"}]}
    assert len(result.errors) == 2
    with pytest.raises(ExpansionErrors) as exc_info:
        result.raise_for_errors()
    assert len(exc_info.value) == 2


class _BrokenEncoder(MemoryProvider):
    def serialize(self, value):
        raise PayloadEncodeError("boom")


@pytest.mark.asyncio
async def test_encode_failure_returns_input_and_reports():
    provider = _BrokenEncoder()
    src = b'{"id":1}'
    result = await expand(provider, src)
    assert result.data == src
    assert isinstance(result.errors[0], PayloadEncodeError)
    assert isinstance(result.error, ExpansionErrors)


@pytest.mark.asyncio
async def test_custom_reserved_names(catalog):
    cfg = ExpandConfig(expand_key="$ref", placeholder_key="$list", max_depth=1)
    provider = MemoryProvider(catalog, cfg)
    result = await expand(provider, b'{"n":1,"$ref":["tags/py"],"_expand":["tags/go"]}')
    assert _doc(result.data) == {"n": 1, "_expand": ["tags/go"], "$list": [{"slug": "py"}]}


@pytest.mark.asyncio
async def test_request_context_is_passed_to_reads(provider):
    seen = []

    class Recording(MemoryProvider):
        async def read_one(self, key, ctx=None):
            seen.append(ctx)
            return await super().read_one(key, ctx)

    rec = Recording({"users/7": {"id": 7}})
    ctx = object()
    await expand(rec, b'{"_expand":{"a":"users/7"}}', ctx)
    assert seen == [ctx]


def _nested(levels: int) -> bytes:
    return b'{"a":' * levels + b"1" + b"}" * levels


@pytest.mark.asyncio
async def test_overly_deep_entry_is_a_miss_next_to_good_siblings():
    provider = MemoryProvider({"deep/1": _nested(3000), "ok/1": {"v": 2}})
    result = await expand(provider, b'{"_expand":{"x":"deep/1","y":"ok/1"}}')
    assert _doc(result.data) == {"y": {"v": 2}}
    assert result.ok

    listed = await expand(provider, b'{"_expand":["deep/1","ok/1"]}')
    assert _doc(listed.data) == [{"v": 2}]
    assert listed.ok


@pytest.mark.asyncio
async def test_overly_deep_root_is_a_decode_error(provider):
    with pytest.raises(PayloadDecodeError):
        await expand(provider, _nested(3000))


@pytest.mark.asyncio
async def test_deep_document_without_references_round_trips(provider):
    src = _nested(300)
    result = await expand(provider, src)
    assert result.ok
    assert _doc(result.data) == _doc(src)
    assert provider.calls == []
