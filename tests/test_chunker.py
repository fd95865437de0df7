# tests/test_chunker.py
import random

import pytest
from langchain_text_splitters import RecursiveCharacterTextSplitter

from app.errors import ConfigurationError
from app.memory.chunker import chunk_text


def reconstruct(chunks, overlap):
    """Glue chunks back together, dropping the repeated overlap."""
    text = chunks[0]
    for chunk in chunks[1:]:
        text += chunk[overlap:]
    return text


def merge_words(chunks):
    """Word sequence of the chunks with the repeated overlap words removed."""
    words = chunks[0].split()
    for chunk in chunks[1:]:
        following = chunk.split()
        while following and following[0] in words:
            following.pop(0)
        words.extend(following)
    return words


class TestChunkingScenarios:
    """Known inputs with known outputs."""

    def test_paragraph_separator(self):
        """Paragraphs that fit exactly become their own chunks."""
        chunks = chunk_text(
            "aaaa\n\nbbbb",
            size=4,
            overlap=0,
            separators=["\n\n", "\n", "", ""],
        )

        assert chunks == ["aaaa", "bbbb"]

    def test_short_text_is_single_chunk(self):
        chunks = chunk_text("hello world", size=100, overlap=10)

        assert chunks == ["hello world"]

    def test_character_split_with_overlap(self):
        """With only the "" separator, neighbours share `overlap` characters."""
        chunks = chunk_text("abcdefghij", size=4, overlap=2, separators=[""])

        assert chunks == ["abcd", "cdef", "efgh", "ghij"]
        assert reconstruct(chunks, 2) == "abcdefghij"

    def test_words_are_packed_up_to_size(self):
        text = "one two three four five six"

        chunks = chunk_text(text, size=9, overlap=0, separators=[" ", ""])

        assert chunks == ["one two", "three", "four five", "six"]
        assert " ".join(chunks) == text

    def test_falls_back_to_characters_for_long_words(self):
        chunks = chunk_text("abcdefghijkl xy", size=5, overlap=0)

        assert all(len(c) <= 5 for c in chunks)
        assert "".join(chunks).replace(" ", "") == "abcdefghijklxy"

    def test_separator_priority(self):
        """Paragraph breaks win over line breaks and spaces."""
        text = "alpha beta\ngamma\n\ndelta epsilon"

        chunks = chunk_text(text, size=20, overlap=0)

        assert chunks == ["alpha beta\ngamma", "delta epsilon"]


class TestChunkingInvariants:
    """Properties that hold for any valid input."""

    LONG_TEXT = (
        "Retrieval works best when chunks keep whole sentences together. "
        "Overlap carries the end of one chunk into the start of the next. "
    ) * 40

    @pytest.mark.parametrize("size,overlap", [(50, 0), (100, 20), (200, 50), (1000, 200)])
    def test_chunks_never_exceed_size(self, size, overlap):
        chunks = chunk_text(self.LONG_TEXT, size=size, overlap=overlap)

        assert chunks
        assert all(len(c) <= size for c in chunks)

    def test_no_empty_chunks(self):
        text = "word   \n\n   \n\n  another\n\n\n\n  last"

        chunks = chunk_text(text, size=8, overlap=2)

        assert all(c.strip() for c in chunks)

    def test_deterministic(self):
        first = chunk_text(self.LONG_TEXT, size=120, overlap=30)
        second = chunk_text(self.LONG_TEXT, size=120, overlap=30)

        assert first == second

    def test_order_preserved(self):
        text = " ".join(f"w{i:03d}" for i in range(200))

        chunks = chunk_text(text, size=40, overlap=0)

        words = " ".join(chunks).split()
        assert words == text.split()

    def test_consecutive_chunks_overlap(self):
        text = " ".join(f"token{i}" for i in range(100))

        chunks = chunk_text(text, size=60, overlap=20)

        for previous, current in zip(chunks, chunks[1:]):
            head = current.split(" ")[0]
            assert head in previous

    def test_overlap_removed_reconstructs_words(self):
        """With the default separators only the dropped spaces are lost."""
        text = " ".join(f"w{i:03d}" for i in range(300))

        chunks = chunk_text(text, size=60, overlap=20)

        assert len(chunks) > 1
        assert any(
            set(previous.split()) & set(current.split())
            for previous, current in zip(chunks, chunks[1:])
        )
        assert " ".join(merge_words(chunks)) == text

    def test_matches_recursive_character_splitter(self):
        rng = random.Random(7)
        alphabet = ["ab", "cde", "f", " ", " ", "\n", "\n\n", "xyzw"]

        for _ in range(100):
            text = "".join(rng.choice(alphabet) for _ in range(rng.randint(1, 120)))
            size = rng.randint(2, 40)
            overlap = rng.randint(0, size - 1)

            expected = [
                chunk for chunk in RecursiveCharacterTextSplitter(
                    chunk_size=size,
                    chunk_overlap=overlap,
                    keep_separator=False,
                ).split_text(text)
                if chunk.strip()
            ] if text.strip() else []

            assert chunk_text(text, size=size, overlap=overlap) == expected

    def test_default_configuration(self):
        chunks = chunk_text(self.LONG_TEXT)

        assert all(len(c) <= 1000 for c in chunks)
        assert len(chunks) > 1


class TestChunkingEdgeCases:

    def test_empty_text(self):
        assert chunk_text("") == []

    def test_whitespace_text(self):
        assert chunk_text("   \n\n  \t ") == []

    def test_overlap_equal_to_size_is_rejected(self):
        with pytest.raises(ConfigurationError):
            chunk_text("some text", size=10, overlap=10)

    def test_overlap_larger_than_size_is_rejected(self):
        with pytest.raises(ConfigurationError):
            chunk_text("some text", size=10, overlap=20)

    def test_negative_overlap_is_rejected(self):
        with pytest.raises(ConfigurationError):
            chunk_text("some text", size=10, overlap=-1)

    def test_zero_size_is_rejected(self):
        with pytest.raises(ConfigurationError):
            chunk_text("some text", size=0, overlap=0)

    def test_configuration_error_reports_stage(self):
        with pytest.raises(ConfigurationError) as exc_info:
            chunk_text("some text", size=5, overlap=5)

        assert exc_info.value.stage == "chunking"
