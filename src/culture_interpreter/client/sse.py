"""Incremental Server-Sent-Events decoding."""

from __future__ import annotations

import codecs
import json
from typing import Any, Dict, List, Optional


class SSEDecoder:
    """Reassembles SSE frames from arbitrarily split byte chunks.

    Multi-byte UTF-8 sequences split across chunks are held back until
    complete; a partial frame stays buffered until its blank-line delimiter
    arrives.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""

    def _split(self) -> List[str]:
        self._buffer = self._buffer.replace("\r\n", "\n")
        frames = self._buffer.split("\n\n")
        self._buffer = frames.pop()
        return [frame for frame in frames if frame.strip()]

    def feed(self, data: bytes) -> List[str]:
        self._buffer += self._decoder.decode(data)
        return self._split()

    def flush(self) -> List[str]:
        self._buffer += self._decoder.decode(b"", final=True)
        frames = self._split()
        if self._buffer.strip():
            frames.append(self._buffer)
        self._buffer = ""
        return frames


def parse_frame(frame: str) -> Optional[Dict[str, Any]]:
    """Returns the JSON payload of a frame, or None for frames without data.

    Raises ValueError when the data is not a JSON object with a ``type``.
    """
    data_lines = [line[5:].lstrip() for line in frame.split("\n") if line.startswith("data:")]
    if not data_lines:
        return None
    payload = json.loads("\n".join(data_lines))
    if not isinstance(payload, dict) or not isinstance(payload.get("type"), str):
        raise ValueError("SSE payload is not an event object")
    return payload
