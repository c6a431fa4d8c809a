"""
Token counting for extraction buffer thresholds and message truncation.
"""

from typing import Optional

import tiktoken

_ENCODING_NAME = 'cl100k_base'
_encoder: Optional[tiktoken.Encoding] = None


def _get_encoder() -> tiktoken.Encoding:
    global _encoder
    if _encoder is None:
        _encoder = tiktoken.get_encoding(_ENCODING_NAME)
    return _encoder


def count_tokens(text: Optional[str]) -> int:
    """Number of tokens in text; 0 for empty input."""
    if not text:
        return 0
    return len(_get_encoder().encode(text))


def truncate_tokens(text: str, max_tokens: int) -> str:
    """Keep at most max_tokens tokens of text."""
    encoder = _get_encoder()
    tokens = encoder.encode(text)
    if len(tokens) <= max_tokens:
        return text
    return encoder.decode(tokens[:max_tokens])
