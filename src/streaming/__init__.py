"""Stream ingestion for the inference service's newline-delimited responses."""

from src.streaming.decoder import StreamDecoder, decode_stream

__all__ = ["StreamDecoder", "decode_stream"]
