import xml.sax
from datetime import datetime
from unittest.mock import patch

import feedparser
import pytest

from episode_aggregator.core.dialects import (
    MAX_SYNDICATION_TITLE_LENGTH,
    SYNDICATION,
    VIDEO_PLATFORM,
    parse_syndication_date,
    parse_video_platform_date,
    resolve_dialect,
)
from episode_aggregator.core.errors import ParseError
from episode_aggregator.core.models import DATETIME_FORMAT, Source, format_utc, utc_now
from tests.feeds import rss_feed, rss_item, youtube_entry, youtube_feed


@pytest.fixture
def rss_source():
    return Source(source_id=1, feed_name="", feed_url="http://x/feed", dialect_tag="rss")


@pytest.fixture
def youtube_source():
    return Source(
        source_id=2,
        feed_name="",
        feed_url="https://www.youtube.com/feeds/videos.xml?channel_id=abc",
        dialect_tag="youtube",
    )


@pytest.mark.parametrize(
    "value,expected",
    [
        ("Mon, 02 Jan 2006 15:04:05 +0000", "2006-01-02 15:04:05"),
        ("Mon, 2 Jan 2006 15:04:05 -0700", "2006-01-02 22:04:05"),
        ("Mon, 02 Jan 2006 15:04:05 EST", "2006-01-02 20:04:05"),
        ("Mon, 02 Jan 2006 15:04:05 GMT", "2006-01-02 15:04:05"),
    ],
)
def test_parse_syndication_date(value, expected):
    """Test each accepted RSS date layout normalizes to UTC."""
    assert format_utc(parse_syndication_date(value)) == expected


def test_parse_syndication_date_unknown_zone_is_utc():
    """Test an unrecognized zone abbreviation is read as UTC."""
    assert format_utc(parse_syndication_date("Mon, 02 Jan 2006 15:04:05 XYZ")) == "2006-01-02 15:04:05"


@pytest.mark.parametrize("value", ["", "yesterday", "2006-01-02 15:04:05"])
def test_parse_syndication_date_rejects_other_layouts(value):
    assert parse_syndication_date(value) is None


def test_parse_video_platform_date():
    """Test ISO timestamps with an offset are converted to UTC."""
    parsed = parse_video_platform_date("2024-03-01T12:30:00+09:00")
    assert format_utc(parsed) == "2024-03-01 03:30:00"
    assert parse_video_platform_date("March 1st") is None


def test_normalize_date_falls_back_to_now():
    """Test an unparseable date yields the current time and a fallback flag."""
    before = utc_now().replace(microsecond=0, tzinfo=None)
    value, fallback = SYNDICATION.normalize_date("not a date")
    after = utc_now().replace(tzinfo=None)

    assert fallback is True
    assert before <= datetime.strptime(value, DATETIME_FORMAT) <= after


def test_syndication_parse_maps_fields(rss_source):
    """Test RSS items map onto posts in document order."""
    body = rss_feed(
        rss_item(
            title="Pilot Episode",
            link="http://x/1",
            description="The first one",
            content="<p>Full text</p>",
            categories=["Comedy", "Drama"],
        ),
        rss_item(title="Second Episode", link="http://x/2", pub_date="Tue, 3 Jan 2006 08:00:00 +0100"),
        title="Example Podcast",
    )

    posts = SYNDICATION.parse(body, rss_source)

    assert [post.link for post in posts] == ["http://x/1", "http://x/2"]
    first, second = posts
    assert first.title == "Pilot Episode"
    assert first.pub_date == "2006-01-02 15:04:05"
    assert first.description == "The first one"
    assert first.content == "<p>Full text</p>"
    assert first.categories == ["Comedy", "Drama"]
    assert first.pub_date_fallback is False
    assert second.pub_date == "2006-01-03 07:00:00"
    assert rss_source.feed_name == "Example Podcast"
    assert rss_source.posts == posts


def test_syndication_parse_drops_long_titles(rss_source):
    """Test items with titles over the limit are never turned into posts."""
    body = rss_feed(
        rss_item(title="a" * (MAX_SYNDICATION_TITLE_LENGTH + 1), link="http://x/long"),
        rss_item(title="b" * MAX_SYNDICATION_TITLE_LENGTH, link="http://x/limit"),
    )

    posts = SYNDICATION.parse(body, rss_source)

    assert [post.link for post in posts] == ["http://x/limit"]


def test_syndication_parse_flags_date_fallback(rss_source):
    body = rss_feed(rss_item(pub_date="sometime last week"))

    (post,) = SYNDICATION.parse(body, rss_source)

    assert post.pub_date_fallback is True


def test_parse_keeps_feed_name_when_title_empty(rss_source):
    """Test an empty document title leaves the stored feed name alone."""
    rss_source.feed_name = "Previously Seen"

    SYNDICATION.parse(rss_feed(rss_item(), title=""), rss_source)

    assert rss_source.feed_name == "Previously Seen"


def test_posts_get_distinct_keys(rss_source):
    posts = SYNDICATION.parse(
        rss_feed(rss_item(link="http://x/1"), rss_item(link="http://x/2")), rss_source
    )
    assert posts[0].key != posts[1].key


def test_video_platform_parse_maps_fields(youtube_source):
    """Test YouTube entries map title, link, date and media description."""
    body = youtube_feed(
        youtube_entry(video_id="abc123", title="Episode 1 Trailer", description="Watch it"),
        title="Example Channel",
    )

    (post,) = VIDEO_PLATFORM.parse(body, youtube_source)

    assert post.title == "Episode 1 Trailer"
    assert post.link == "https://www.youtube.com/watch?v=abc123"
    assert post.pub_date == "2024-03-01 03:30:00"
    assert post.description == "Watch it"
    assert post.categories == []
    assert youtube_source.feed_name == "Example Channel"


def test_parse_rejects_malformed_document(rss_source):
    """Test a document that is not a feed raises ParseError."""
    with pytest.raises(ParseError) as exc_info:
        SYNDICATION.parse(b"<html><body>not a feed</body></html>", rss_source)
    assert exc_info.value.details["feed_url"] == "http://x/feed"


def test_parse_rejects_wrong_document_family(youtube_source, rss_source):
    """Test each dialect only accepts its own document family."""
    with pytest.raises(ParseError):
        VIDEO_PLATFORM.parse(rss_feed(rss_item()), youtube_source)
    with pytest.raises(ParseError):
        SYNDICATION.parse(youtube_feed(youtube_entry()), rss_source)


@pytest.mark.parametrize(
    "tag,expected",
    [
        ("rss", SYNDICATION),
        ("youtube", VIDEO_PLATFORM),
        ("Anitube", VIDEO_PLATFORM),
        ("", SYNDICATION),
        (None, SYNDICATION),
        ("podcast", SYNDICATION),
    ],
)
def test_resolve_dialect(tag, expected):
    assert resolve_dialect(tag) is expected


def test_item_without_description_keeps_description_empty(rss_source):
    """Test a content body is never taken as the description."""
    body = rss_feed(rss_item(description=None, content="<p>Alpha body</p>"))

    (post,) = SYNDICATION.parse(body, rss_source)

    assert post.description == ""
    assert post.content == "<p>Alpha body</p>"


def test_item_with_description_and_content(rss_source):
    body = rss_feed(rss_item(description="Short blurb", content="<p>Alpha body</p>"))

    (post,) = SYNDICATION.parse(body, rss_source)

    assert post.description == "Short blurb"
    assert post.content == "<p>Alpha body</p>"


def empty_document(version, bozo_exception):
    return feedparser.FeedParserDict(
        version=version,
        bozo=1,
        bozo_exception=bozo_exception,
        entries=[],
        feed=feedparser.FeedParserDict(title="Quiet Feed"),
    )


def test_empty_feed_with_encoding_warning_is_accepted(rss_source):
    """Test a recoverable bozo warning on an empty feed still counts as a document."""
    document = empty_document("rss20", feedparser.CharacterEncodingOverride("declared utf-8, got latin-1"))

    with patch("feedparser.parse", return_value=document):
        posts = SYNDICATION.parse(b"<rss/>", rss_source)

    assert posts == []
    assert rss_source.feed_name == "Quiet Feed"


def test_empty_feed_with_syntax_error_is_rejected(rss_source):
    document = empty_document("rss20", xml.sax.SAXException("not well-formed"))

    with patch("feedparser.parse", return_value=document):
        with pytest.raises(ParseError):
            SYNDICATION.parse(b"<rss>", rss_source)
