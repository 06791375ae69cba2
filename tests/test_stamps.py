from datetime import datetime, timezone

from stampchat.models.models import Message
from stampchat.services.stamps import render, render_html, render_message

STAMPS = ["1", "2", "3"]


def test_stamp_token_renders_as_image():
    segments = render_message(":stamp_3", stamps=STAMPS, url_template="/stamps/{name}.png")
    assert len(segments) == 1
    assert segments[0].kind == "stamp"
    assert segments[0].asset == "3"
    assert segments[0].url == "/stamps/3.png"
    assert segments[0].html.startswith("<img")
    assert ":stamp_3" not in segments[0].html.replace('alt=":stamp_3"', "")


def test_text_around_stamps_is_kept_in_order():
    segments = render_message("hi :stamp_1 there :stamp_2", stamps=STAMPS)
    assert [s.kind for s in segments] == ["html", "stamp", "html", "stamp"]
    assert [s.asset for s in segments if s.kind == "stamp"] == ["1", "2"]
    assert "hi" in segments[0].html
    assert "there" in segments[2].html


def test_unknown_stamp_stays_literal():
    segments = render_message("look :stamp_99", stamps=STAMPS)
    assert [s.kind for s in segments] == ["html"]
    assert ":stamp_99" in segments[0].html


def test_markdown_is_rendered():
    assert render_html("**bold**", stamps=STAMPS) == "<strong>bold</strong>"


def test_html_in_text_is_escaped():
    html = render_html('<script>alert("x")</script>', stamps=STAMPS)
    assert "<script>" not in html
    assert "&lt;script&gt;" in html


def test_render_attaches_segments_to_message():
    message = Message(
        id="m1",
        text=":stamp_1",
        created_at=datetime(2024, 5, 1, tzinfo=timezone.utc),
        username="alice",
    )
    rendered = render(message)
    assert rendered.id == "m1"
    assert rendered.username == "alice"
    assert [s.kind for s in rendered.segments] == ["stamp"]


def test_script_urls_in_links_and_images_are_neutralised():
    link = render_html("[click](javascript:alert(1))", stamps=STAMPS)
    image = render_html("![x](JavaScript:alert(1))", stamps=STAMPS)
    assert "javascript" not in link.lower()
    assert "javascript" not in image.lower()
    assert 'href="#"' in link
    assert 'src="#"' in image


def test_ordinary_links_are_kept():
    assert 'href="https://example.com"' in render_html("[site](https://example.com)", stamps=STAMPS)
    assert 'href="/rooms/abc"' in render_html("[room](/rooms/abc)", stamps=STAMPS)
