"""Property-based tests for RSS helpers."""

from hypothesis import given
from hypothesis import strategies as st

from legislator_worker.models import FeedItem
from legislator_worker.rss import decode_html_entities, dedup_by_url, parse_feed

urls = st.sampled_from(["", "https://a/1", "https://a/2", "https://a/3", "https://b/1"])
plain_text = st.text(
    alphabet=st.characters(whitelist_categories=("Lu", "Ll", "Nd", "Lo")),
    min_size=1,
    max_size=40,
)


class TestRssProperties:
    """Property-based tests for RSS helpers."""

    @given(st.lists(urls, max_size=30))
    def test_dedup_is_idempotent_and_unique(self, links):
        """Deduplicating twice changes nothing and leaves each URL at most once."""
        items = [FeedItem(id=str(i), title="t", link=link) for i, link in enumerate(links)]

        once = dedup_by_url(items)
        twice = dedup_by_url(once)

        assert once == twice
        non_empty = [item.link for item in once if item.link]
        assert len(non_empty) == len(set(non_empty))
        assert {item.link for item in once} == set(links)

    @given(st.lists(urls, max_size=30))
    def test_dedup_preserves_first_seen_order(self, links):
        items = [FeedItem(id=str(i), title="t", link=link) for i, link in enumerate(links)]
        ids = [int(item.id) for item in dedup_by_url(items)]
        assert ids == sorted(ids)

    @given(plain_text)
    def test_plain_text_decodes_to_itself(self, text):
        assert decode_html_entities(text) == text.strip()

    @given(st.lists(st.tuples(plain_text, plain_text), max_size=10))
    def test_every_complete_item_is_parsed(self, entries):
        xml = "<rss><channel>" + "".join(
            f"<item><title>{title}</title><link>https://x/{link}</link></item>"
            for title, link in entries
        ) + "</channel></rss>"

        items = parse_feed(xml)

        assert [(item.title, item.link) for item in items] == [
            (title.strip(), f"https://x/{link}") for title, link in entries
        ]
