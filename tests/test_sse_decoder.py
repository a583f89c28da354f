import pytest

from culture_interpreter.client.sse import SSEDecoder, parse_frame


def test_frames_split_across_chunks_are_reassembled():
    decoder = SSEDecoder()
    assert decoder.feed(b'data: {"type":"te') == []
    assert decoder.feed(b'xt","text":"a"}\n') == []
    frames = decoder.feed(b'\ndata: {"type":"text","text":"b"}\n\n')

    assert [parse_frame(f)["text"] for f in frames] == ["a", "b"]


def test_multibyte_character_split_between_chunks():
    data = 'data: {"type":"text","text":"Grüße 日本"}\n\n'.encode("utf-8")
    cut = data.index("日".encode("utf-8")) + 1

    decoder = SSEDecoder()
    frames = decoder.feed(data[:cut]) + decoder.feed(data[cut:])

    assert parse_frame(frames[0])["text"] == "Grüße 日本"


def test_crlf_delimiters_and_trailing_frame_on_flush():
    decoder = SSEDecoder()
    frames = decoder.feed(b'data: {"type":"text","text":"x"}\r\n\r\ndata: {"type":"complete"}')
    assert len(frames) == 1
    assert parse_frame(decoder.flush()[0]) == {"type": "complete"}
    assert decoder.flush() == []


def test_parse_frame_edge_cases():
    assert parse_frame(": keep-alive") is None
    assert parse_frame("event: ping") is None
    with pytest.raises(ValueError):
        parse_frame("data: [1, 2]")
    with pytest.raises(ValueError):
        parse_frame("data: {not json")
