import random

import pytest

from docassist.services.chunking import SlidingWindowSplitter, split


def test_default_window_scenario():
    text = "".join(chr(ord("a") + i % 26) for i in range(5000))
    chunks = SlidingWindowSplitter().split_text(text)

    assert len(chunks) == 6
    assert [len(c) for c in chunks] == [1000, 1000, 1000, 1000, 1000, 1000]
    assert chunks[1].startswith(chunks[0][-200:])


def test_empty_and_short_text():
    assert split("", 10, 2) == []
    assert split("short", 10, 2) == ["short"]
    assert split("exactly10!", 10, 2) == ["exactly10!"]


@pytest.mark.parametrize("size,overlap", [(0, 0), (-1, 0), (10, -1), (10, 10), (10, 11)])
def test_invalid_parameters_raise(size, overlap):
    with pytest.raises(ValueError):
        split("some text", size, overlap)


def test_splitter_rejects_invalid_overlap():
    with pytest.raises(ValueError):
        SlidingWindowSplitter(chunk_size=100, chunk_overlap=100)


def test_coverage_and_overlap_hold_for_random_inputs():
    rng = random.Random(1234)
    for _ in range(200):
        size = rng.randint(1, 60)
        overlap = rng.randint(0, size - 1)
        text = "".join(rng.choice("abc xyz\n") for _ in range(rng.randint(0, 400)))

        chunks = split(text, size, overlap)

        assert all(0 < len(chunk) <= size for chunk in chunks)
        if not text:
            assert chunks == []
            continue
        rebuilt = chunks[0] + "".join(chunk[overlap:] for chunk in chunks[1:])
        assert rebuilt == text
        if overlap:
            for previous, current in zip(chunks, chunks[1:]):
                assert previous[-overlap:] == current[:overlap]


def test_split_is_deterministic():
    text = "lorem ipsum " * 300
    assert split(text, 100, 25) == split(text, 100, 25)


def test_create_documents_carries_metadata():
    splitter = SlidingWindowSplitter(chunk_size=4, chunk_overlap=1)
    docs = splitter.create_documents(["abcdefg"], metadatas=[{"document_id": "d1"}])

    assert [doc.page_content for doc in docs] == ["abcd", "defg"]
    assert all(doc.metadata["document_id"] == "d1" for doc in docs)
