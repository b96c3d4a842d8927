"""Newline-delimited JSON decoder for the streaming generate endpoint.

The transport hands over byte fragments of arbitrary size. A frame may be
split across fragments, so bytes are buffered until a newline arrives and
each complete frame is decoded on its own. Decoding whole frames (rather than
fragments) also keeps multi-byte UTF-8 characters intact when a fragment
boundary falls inside one.
"""

import json
import logging
from collections.abc import AsyncGenerator, AsyncIterable, Callable

from pydantic import ValidationError

from src.chat.errors import DecodeError, PrematureTermination
from src.models.schemas import StreamRecord

logger = logging.getLogger(__name__)

FRAME_SEPARATOR = b"\n"

DecodeErrorCallback = Callable[[DecodeError], None]


class StreamDecoder:
    """Incremental frame decoder.

    Feed raw fragments in arrival order; complete frames come back as
    StreamRecord objects in the same order. Malformed frames are skipped.
    """

    def __init__(self, on_decode_error: DecodeErrorCallback | None = None) -> None:
        self._buffer = bytearray()
        self._on_decode_error = on_decode_error
        self.error_count = 0

    @property
    def pending(self) -> int:
        """Number of buffered bytes not yet terminated by a newline."""
        return len(self._buffer)

    def feed(self, fragment: bytes) -> list[StreamRecord]:
        """Buffer a fragment and decode every frame it completes.

        Args:
            fragment: Raw bytes as delivered by the transport.

        Returns:
            Records for all frames completed by this fragment.
        """
        self._buffer.extend(fragment)
        records: list[StreamRecord] = []

        while True:
            index = self._buffer.find(FRAME_SEPARATOR)
            if index < 0:
                break
            frame = bytes(self._buffer[:index])
            del self._buffer[: index + 1]
            record = self._decode_frame(frame)
            if record is not None:
                records.append(record)

        return records

    def finish(self) -> list[StreamRecord]:
        """Decode a trailing frame that arrived without a final newline."""
        if not self._buffer:
            return []
        frame = bytes(self._buffer)
        self._buffer.clear()
        record = self._decode_frame(frame)
        return [record] if record is not None else []

    def _decode_frame(self, frame: bytes) -> StreamRecord | None:
        if not frame.strip():
            return None

        try:
            payload = json.loads(frame.decode("utf-8"))
            return StreamRecord.model_validate(payload)
        except UnicodeDecodeError as e:
            self._report(DecodeError(f"Frame is not valid UTF-8: {e}", frame))
        except json.JSONDecodeError as e:
            self._report(DecodeError(f"Frame is not valid JSON: {e}", frame))
        except ValidationError as e:
            self._report(DecodeError(f"Frame is not a stream record: {e}", frame))
        return None

    def _report(self, error: DecodeError) -> None:
        self.error_count += 1
        logger.warning(f"Skipping malformed frame ({len(error.frame)} bytes): {error}")
        if self._on_decode_error is not None:
            self._on_decode_error(error)


async def decode_stream(
    chunks: AsyncIterable[bytes],
    on_decode_error: DecodeErrorCallback | None = None,
) -> AsyncGenerator[StreamRecord]:
    """Decode a byte stream into stream records.

    Records are yielded strictly in arrival order. Consumption stops after
    the first record with ``done=true``.

    Args:
        chunks: Byte fragments from the transport.
        on_decode_error: Optional callback for skipped frames.

    Yields:
        Decoded StreamRecord objects.

    Raises:
        PrematureTermination: If the input ends without a ``done=true`` record.
    """
    decoder = StreamDecoder(on_decode_error=on_decode_error)

    async for fragment in chunks:
        for record in decoder.feed(fragment):
            yield record
            if record.done:
                return

    for record in decoder.finish():
        yield record
        if record.done:
            return

    raise PrematureTermination(
        f"Stream ended without a final frame ({decoder.error_count} malformed frames skipped)"
    )
