"""
Unit tests for the opaque feed cursor.
"""

import base64

import pytest


class TestFeedCursor:
    def test_first_page_when_absent(self):
        from feed.cursor import FeedCursor

        assert FeedCursor.decode(None).page == 0
        assert FeedCursor.decode("").page == 0

    def test_next_page_decodes(self):
        from feed.cursor import FeedCursor

        encoded = FeedCursor(page=2).next().encode()
        assert FeedCursor.decode(encoded).page == 3

    @pytest.mark.parametrize("bad", [
        "not-a-cursor!!",
        base64.urlsafe_b64encode(b"[1, 2]").decode(),
        base64.urlsafe_b64encode(b'{"page": -1}').decode(),
        base64.urlsafe_b64encode(b'{"page": "2"}').decode(),
        base64.urlsafe_b64encode(b'{"page": true}').decode(),
    ])
    def test_malformed_raises_invalid_input(self, bad):
        from core.errors import InvalidInput
        from feed.cursor import FeedCursor

        with pytest.raises(InvalidInput) as exc:
            FeedCursor.decode(bad)
        assert exc.value.field == "cursor"
