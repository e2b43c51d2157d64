import json

import httpx
import pytest

from gateway_core.domain.exceptions import ProviderProtocolError, UnavailableError
from gateway_core.domain.models import StreamChunk
from gateway_core.streaming.decoder import DecoderState, StreamDecoder, decode_stream


def _record(**fields) -> str:
    return f"data: {json.dumps(fields, ensure_ascii=False)}\n"


RAW = (
    _record(role="assistant")
    + _record(delta="The ")
    + "\n"
    + "event: ping\n"
    + "data: {not json}\n"
    + _record(delta="answer ")
    + "data: [1, 2]\r\n"
    + _record(delta="is ½ = 0.5.")
    + "data: [DONE]\n"
).encode("utf-8")

EXPECTED = [
    StreamChunk(role="assistant"),
    StreamChunk(delta="The "),
    StreamChunk(delta="answer "),
    StreamChunk(delta="is ½ = 0.5."),
]


def _decode_all(chunks):
    decoder = StreamDecoder()
    out = []
    for c in chunks:
        out.extend(decoder.feed(c))
    out.extend(decoder.close())
    return out


def test_decoder_basic_sequence():
    assert _decode_all([RAW]) == EXPECTED


def test_decoder_split_invariance_every_boundary():
    for i in range(len(RAW) + 1):
        assert _decode_all([RAW[:i], RAW[i:]]) == EXPECTED, f"split at byte {i}"


def test_decoder_byte_by_byte():
    assert _decode_all([RAW[i:i + 1] for i in range(len(RAW))]) == EXPECTED


def test_decoder_multiple_records_in_one_chunk_and_empty_chunks():
    chunks = [b"", _record(delta="a").encode() + _record(delta="b").encode(), b"", b""]
    assert [c.delta for c in _decode_all(chunks)] == ["a", "b"]


def test_decoder_chunk_without_marker_yields_nothing():
    decoder = StreamDecoder()
    assert decoder.feed(b"id: 1\nevent: message\n") == []
    assert decoder.state == DecoderState.AWAITING_RECORD


def test_decoder_states():
    decoder = StreamDecoder()
    assert decoder.state == DecoderState.AWAITING_RECORD
    decoder.feed(b'data: {"delta": "x"}\n')
    assert decoder.state == DecoderState.HAVE_RECORD
    decoder.feed(b'data: {"del')
    assert decoder.state == DecoderState.HAVE_PARTIAL_LINE
    # 结束时残留半行也会被解析
    assert decoder.feed(b'ta": "y"}') == []
    assert decoder.close() == [StreamChunk(delta="y")]
    assert decoder.state == DecoderState.STREAM_ENDED


def test_decoder_discards_malformed_records():
    decoder = StreamDecoder()
    out = decoder.feed(b"data: {broken\n" + _record(delta="ok").encode())
    assert out == [StreamChunk(delta="ok")]
    assert decoder.discarded == 1


def test_decoder_rejects_input_after_end():
    decoder = StreamDecoder()
    decoder.close()
    with pytest.raises(ProviderProtocolError):
        decoder.feed(b"data: {}\n")


def test_decode_stream_transport_error_marks_errored():
    def chunks():
        yield _record(delta="partial").encode()
        raise httpx.ReadError("connection reset")

    decoder = StreamDecoder()
    gen = decoder.decode(chunks())
    assert next(gen) == StreamChunk(delta="partial")
    with pytest.raises(UnavailableError):
        next(gen)
    assert decoder.state == DecoderState.STREAM_ERRORED


def test_decode_stream_helper():
    assert list(decode_stream(iter([RAW[:10], RAW[10:]]))) == EXPECTED
