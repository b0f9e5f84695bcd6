"""Component layer helpers for the decoding core."""

from .chunk_driver import feed_batch, feed_incremental, feed_raw_pcm, iter_chunks
from .decoder_pool import DecoderPool

__all__ = [
    "DecoderPool",
    "feed_batch",
    "feed_incremental",
    "feed_raw_pcm",
    "iter_chunks",
]
