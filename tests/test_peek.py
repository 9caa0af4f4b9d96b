"""Tests for browsing a user's posts."""

import pytest

from connectors.errors import UnsupportedMediaTypeError, ValidationError
from connectors.peek import apply_filter, peek, peek_post, to_media_item

from conftest import FakeSession, run

IMAGE_VERSIONS = {"image_versions2": {"candidates": [{"url": "https://cdn/i.jpg"}]}}
VIDEO_VERSIONS = {"video_versions": [{"url": "https://cdn/v.mp4"}]}


def post(pk, media_type, **extra):
    return {
        "id": f"{pk}_42",
        "code": f"C{pk}",
        "media_type": media_type,
        "taken_at": 1700000000,
        "user": {"username": "alice"},
        "caption": {"text": f"post {pk}"},
        "like_count": 10,
        "comment_count": 2,
        **IMAGE_VERSIONS,
        **extra,
    }


def feed_session(pages):
    """Serves pages keyed by max_id ('' for the first page)."""
    def private_request(endpoint, params=None):
        return pages[(params or {}).get("max_id", "")]

    return FakeSession({"user_id_from_username": "42", "private_request": private_request})


def test_to_media_item_video():
    item = to_media_item(post(1, 2, **VIDEO_VERSIONS))
    assert item.media_type == "VIDEO"
    assert item.media_url == "https://cdn/v.mp4"
    assert item.thumbnail_url == "https://cdn/i.jpg"
    assert item.permalink == "https://www.instagram.com/p/C1/"
    assert item.timestamp == "2023-11-14T22:13:20.000Z"
    assert item.likes == 10
    assert "children" not in item.to_dict()


def test_to_media_item_carousel_children():
    children = [{"id": "c1", "media_type": 1, **IMAGE_VERSIONS}, {"id": "c2", "media_type": 2, **VIDEO_VERSIONS}]
    item = to_media_item(post(1, 8, carousel_media=children))
    assert item.media_type == "CAROUSEL_ALBUM"
    assert [(c.media_type, c.media_url) for c in item.children] == [
        ("IMAGE", "https://cdn/i.jpg"),
        ("VIDEO", "https://cdn/v.mp4"),
    ]


def test_unsupported_feed_item_skipped():
    assert to_media_item(post(1, 5)) is None


def test_apply_filter():
    items = [to_media_item(post(1, 1)), to_media_item(post(2, 2)), to_media_item(post(3, 8))]
    assert [m.media_type for m in apply_filter(items, "photos")] == ["IMAGE", "CAROUSEL_ALBUM"]
    assert [m.media_type for m in apply_filter(items, "videos")] == ["VIDEO"]
    assert len(apply_filter(items, "all")) == 3


def test_peek_pages_until_exhausted():
    """Should follow next_max_id until more_available is false."""
    session = feed_session({
        "": {"items": [post(1, 1), post(2, 5)], "more_available": True, "next_max_id": "p2"},
        "p2": {"items": [post(3, 2)], "more_available": False},
    })

    items = run(peek(session, "alice"))

    assert [m.id for m in items] == ["1_42", "3_42"]
    assert session.calls[0] == ("user_id_from_username", ("alice",), {})
    assert session.calls[1][1] == ("feed/user/42/",)


def test_peek_stops_at_limit():
    """Enough matches on the first page means no second request."""
    session = feed_session({
        "": {"items": [post(1, 1), post(2, 1), post(3, 1)], "more_available": True, "next_max_id": "p2"},
    })

    items = run(peek(session, "alice", limit=2))

    assert len(items) == 2
    assert len(session.calls) == 2


def test_peek_filter_spans_pages():
    session = feed_session({
        "": {"items": [post(1, 1)], "more_available": True, "next_max_id": "p2"},
        "p2": {"items": [post(2, 2), post(3, 2)], "more_available": False},
    })

    items = run(peek(session, "alice", filter="videos", limit=1))

    assert [m.id for m in items] == ["2_42"]


def test_peek_requires_username():
    with pytest.raises(ValidationError):
        run(peek(FakeSession(), ""))


def test_peek_post_by_shortcode():
    info = {"items": [post(9, 1)]}
    session = FakeSession({"media_pk_from_code": "999", "private_request": info})

    item = run(peek_post(session, "C9"))

    assert item.id == "9_42"
    assert session.calls[1][1] == ("media/999/info/",)


def test_peek_post_unsupported():
    session = FakeSession({"media_pk_from_code": "999", "private_request": {"items": [post(9, 5)]}})

    with pytest.raises(UnsupportedMediaTypeError):
        run(peek_post(session, "C9"))
