"""Property-based tests for stream smoothing."""

from hypothesis import given
from hypothesis import strategies as st

from legislator_worker.chat import smooth_stream


class TestSmoothStreamProperties:
    """Property-based tests for smooth_stream."""

    @given(st.lists(st.text(max_size=30), max_size=20), st.sampled_from(["word", "line", "cjk"]))
    def test_chunks_concatenate_to_input(self, tokens, granularity):
        chunks = list(smooth_stream(tokens, granularity))

        assert "".join(chunks) == "".join(tokens)
        assert all(chunks)
