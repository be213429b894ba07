# tests/test_link_extractor.py
import pytest

from models.article import LinkRecord
from services.crawler.link_extractor import collect_links, resolve_href
from tests.fakes import BASE_URL, LISTING_URL, FakeRenderer


async def _links_for(html, source):
    renderer = FakeRenderer({LISTING_URL: html})
    await renderer.navigate(LISTING_URL)
    return await collect_links(renderer, source)


# ----------------------------------------------------------------------
# resolve_href
# ----------------------------------------------------------------------
@pytest.mark.parametrize(
    "href,expected",
    [
        ("/a", f"{BASE_URL}/a"),
        ("/2024/01/01/story?x=1", f"{BASE_URL}/2024/01/01/story?x=1"),
        ("https://other.example/b", "https://other.example/b"),
        ("relative/path", "relative/path"),
    ],
)
def test_resolve_href(href, expected):
    assert resolve_href(href, BASE_URL) == expected


# ----------------------------------------------------------------------
# collect_links
# ----------------------------------------------------------------------
@pytest.mark.asyncio
async def test_two_links_in_one_container(source):
    html = """
    <div class="teaser">
      <a class="teaser__link" href="/a"> Foo </a>
      <a class="teaser__link" href="https://other.example/b">Bar</a>
    </div>
    """
    links = await _links_for(html, source)
    assert links == [
        LinkRecord(title="Foo", url=f"{BASE_URL}/a"),
        LinkRecord(title="Bar", url="https://other.example/b"),
    ]


@pytest.mark.asyncio
async def test_missing_container_yields_empty_list(source):
    html = '<div class="other"><a class="teaser__link" href="/a">Foo</a></div>'
    assert await _links_for(html, source) == []


@pytest.mark.asyncio
async def test_container_without_links_yields_empty_list(source):
    assert await _links_for('<div class="teaser"><a href="/a">Foo</a></div>', source) == []


@pytest.mark.asyncio
async def test_empty_and_missing_href_are_skipped(source):
    html = """
    <div class="teaser">
      <a class="teaser__link" href="">Empty</a>
      <a class="teaser__link">Missing</a>
      <a class="teaser__link" href="/kept">Kept</a>
    </div>
    """
    links = await _links_for(html, source)
    assert [l.title for l in links] == ["Kept"]


@pytest.mark.asyncio
async def test_document_order_and_duplicates_kept(source):
    html = """
    <div class="teaser"><a class="teaser__link" href="/one">One</a></div>
    <div class="teaser">
      <a class="teaser__link" href="/two">Two</a>
      <a class="teaser__link" href="/one">One again</a>
    </div>
    """
    links = await _links_for(html, source)
    assert [l.url for l in links] == [
        f"{BASE_URL}/one",
        f"{BASE_URL}/two",
        f"{BASE_URL}/one",
    ]
    assert links[2].title == "One again"
