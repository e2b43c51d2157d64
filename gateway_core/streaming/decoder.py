"""Stream Decoder：把 Provider 的 ``data: <json>`` 字节流还原为增量记录。

状态机::

    AWAITING_RECORD -> HAVE_PARTIAL_LINE -> HAVE_RECORD(delta) -> (循环)
                                         \\-> STREAM_ENDED / STREAM_ERRORED

要点：

1. 字节块大小任意，一条记录可能被切在两个块之间，因此维护一个跨块的字节缓冲。
2. 按 ``\\n`` 切行，只有完整的行才做 UTF-8 解码，多字节字符被切开也不会出错。
3. 只看以记录前缀（默认 ``data:``）开头的行；JSON 解析失败的记录直接丢弃，
   Provider 的一次分帧故障不应让整个回答失败。
4. 只有传输层错误或流关闭才会让状态机结束；结束时残留的半行也会被解析并输出。

因此对同一段字节，无论如何切块，解码出的 StreamChunk 序列都完全相同。
"""

import json
from enum import Enum
from typing import Iterable, Iterator, List, Optional

from gateway_core.domain.exceptions import GatewayError, ProviderProtocolError
from gateway_core.domain.models import StreamChunk
from gateway_core.providers.classifier import classify_transport_error


DONE_SENTINEL = "[DONE]"


class DecoderState(str, Enum):
    AWAITING_RECORD = "AWAITING_RECORD"
    HAVE_PARTIAL_LINE = "HAVE_PARTIAL_LINE"
    HAVE_RECORD = "HAVE_RECORD"
    STREAM_ENDED = "STREAM_ENDED"
    STREAM_ERRORED = "STREAM_ERRORED"


TERMINAL_STATES = (DecoderState.STREAM_ENDED, DecoderState.STREAM_ERRORED)


class StreamDecoder:
    """增量解码器，每次 send 调用独占一个实例。"""

    def __init__(self, marker: str = "data:"):
        self._marker = marker.encode("utf-8")
        self._buffer = bytearray()
        self.state = DecoderState.AWAITING_RECORD
        self.discarded = 0

    # ---- 状态机输入 ----

    def feed(self, chunk: bytes) -> List[StreamChunk]:
        """喂入一个字节块，返回其中完整记录解码出的增量。"""

        self._check_open()
        if not chunk:
            return []
        self._buffer.extend(chunk)
        out: List[StreamChunk] = []
        while True:
            idx = self._buffer.find(b"\n")
            if idx < 0:
                break
            line = bytes(self._buffer[:idx])
            del self._buffer[: idx + 1]
            record = self._parse_line(line)
            if record is not None:
                self.state = DecoderState.HAVE_RECORD
                out.append(record)
        if self._buffer:
            self.state = DecoderState.HAVE_PARTIAL_LINE
        elif not out:
            self.state = DecoderState.AWAITING_RECORD
        return out

    def close(self) -> List[StreamChunk]:
        """流正常结束：解析残留的半行后进入 STREAM_ENDED。"""

        self._check_open()
        out: List[StreamChunk] = []
        if self._buffer:
            record = self._parse_line(bytes(self._buffer))
            self._buffer.clear()
            if record is not None:
                out.append(record)
        self.state = DecoderState.STREAM_ENDED
        return out

    def fail(self) -> None:
        """传输层错误：丢弃缓冲并进入 STREAM_ERRORED。"""

        self._buffer.clear()
        self.state = DecoderState.STREAM_ERRORED

    # ---- 驱动整个字节流 ----

    def decode(self, chunks: Iterable[bytes]) -> Iterator[StreamChunk]:
        """同步拉取字节块并逐条产出增量。

        调用方按需拉取，解码器不会跑在消费者前面。
        """

        try:
            for chunk in chunks:
                for record in self.feed(chunk):
                    yield record
        except GeneratorExit:
            self.fail()
            raise
        except Exception as e:
            self.fail()
            raise classify_transport_error(e)
        for record in self.close():
            yield record

    # ---- 辅助方法 ----

    def _check_open(self) -> None:
        if self.state in TERMINAL_STATES:
            raise ProviderProtocolError(
                "Response stream already finished",
                cause={"state": self.state.value},
                code="STREAM_CLOSED",
            )

    def _parse_line(self, line: bytes) -> Optional[StreamChunk]:
        if line.endswith(b"\r"):
            line = line[:-1]
        if not line.startswith(self._marker):
            return None
        try:
            text = line[len(self._marker):].decode("utf-8").strip()
        except UnicodeDecodeError:
            self.discarded += 1
            return None
        if not text or text == DONE_SENTINEL:
            return None
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            self.discarded += 1
            return None
        if not isinstance(data, dict):
            self.discarded += 1
            return None
        delta = data.get("delta")
        role = data.get("role")
        if not isinstance(delta, str):
            delta = None
        if not isinstance(role, str):
            role = None
        if delta is None and role is None:
            return None
        return StreamChunk(delta=delta, role=role)


def decode_stream(chunks: Iterable[bytes], marker: str = "data:") -> Iterator[StreamChunk]:
    return StreamDecoder(marker=marker).decode(chunks)
