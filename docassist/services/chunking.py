"""
Splits extracted document text into overlapping fixed-size windows.
"""

from typing import Any

from langchain_text_splitters import TextSplitter

from docassist.settings import settings


def _validate(max_chunk_size: int, overlap: int) -> None:
    if max_chunk_size <= 0:
        raise ValueError(f"max_chunk_size must be positive, got {max_chunk_size}")
    if overlap < 0:
        raise ValueError(f"overlap must not be negative, got {overlap}")
    if overlap >= max_chunk_size:
        raise ValueError(
            f"overlap ({overlap}) must be smaller than max_chunk_size ({max_chunk_size})"
        )


def split(text: str, max_chunk_size: int, overlap: int) -> list[str]:
    """
    Split `text` into windows of at most `max_chunk_size` characters where
    each window starts `max_chunk_size - overlap` characters after the
    previous one, so consecutive chunks share exactly `overlap` characters.

    Empty text yields no chunks; text that fits in one window yields it as is.
    Dropping the first `overlap` characters of every chunk after the first and
    concatenating gives back the original text.
    """
    _validate(max_chunk_size, overlap)
    if not text:
        return []
    if len(text) <= max_chunk_size:
        return [text]

    stride = max_chunk_size - overlap
    chunks = []
    start = 0
    while True:
        end = start + max_chunk_size
        chunks.append(text[start:end])
        if end >= len(text):
            break
        start += stride
    return chunks


class SlidingWindowSplitter(TextSplitter):
    """
    LangChain splitter that keeps the exact overlap contract of `split`,
    unlike RecursiveCharacterTextSplitter which re-merges on separators.
    """

    def __init__(
        self,
        chunk_size: int | None = None,
        chunk_overlap: int | None = None,
        **kwargs: Any,
    ) -> None:
        chunk_size = settings.CHUNK_SIZE if chunk_size is None else chunk_size
        chunk_overlap = settings.CHUNK_OVERLAP if chunk_overlap is None else chunk_overlap
        _validate(chunk_size, chunk_overlap)
        super().__init__(chunk_size=chunk_size, chunk_overlap=chunk_overlap, **kwargs)

    def split_text(self, text: str) -> list[str]:
        return split(text, self._chunk_size, self._chunk_overlap)
