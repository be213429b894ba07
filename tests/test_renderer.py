# tests/test_renderer.py
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from core.exceptions import BrowserLaunchError
from services.scraper import renderer as renderer_module
from services.scraper.renderer import (
    BrowserSession,
    NodeSnapshot,
    PlaywrightRenderer,
    ResourceFilter,
)


def make_page(url: str = "https://www.economist.com/a") -> MagicMock:
    page = MagicMock()
    page.url = url
    page.route = AsyncMock()
    page.unroute = AsyncMock()
    page.goto = AsyncMock()
    page.wait_for_load_state = AsyncMock()
    page.wait_for_selector = AsyncMock()
    page.evaluate = AsyncMock()
    return page


def make_route(resource_type: str) -> AsyncMock:
    route = AsyncMock()
    route.request = SimpleNamespace(resource_type=resource_type)
    return route


def fake_playwright(monkeypatch, browser):
    driver = MagicMock()
    driver.stop = AsyncMock()
    driver.chromium.launch = AsyncMock(return_value=browser)
    starter = MagicMock()
    starter.start = AsyncMock(return_value=driver)
    monkeypatch.setattr(renderer_module, "async_playwright", lambda: starter)
    return driver


# ----------------------------------------------------------------------
# ResourceFilter
# ----------------------------------------------------------------------
@pytest.mark.asyncio
@pytest.mark.parametrize("resource_type", ["image", "stylesheet", "font", "media"])
async def test_heavy_resources_are_aborted(resource_type):
    route = make_route(resource_type)
    await ResourceFilter(make_page())._handle(route)
    route.abort.assert_awaited_once()
    route.continue_.assert_not_awaited()


@pytest.mark.asyncio
@pytest.mark.parametrize("resource_type", ["document", "script", "xhr", "fetch"])
async def test_other_resources_continue(resource_type):
    route = make_route(resource_type)
    await ResourceFilter(make_page())._handle(route)
    route.continue_.assert_awaited_once()
    route.abort.assert_not_awaited()


@pytest.mark.asyncio
async def test_attach_and_detach_are_idempotent():
    page = make_page()
    resource_filter = ResourceFilter(page)

    await resource_filter.attach()
    await resource_filter.attach()
    assert resource_filter.attached
    page.route.assert_awaited_once()

    await resource_filter.detach()
    await resource_filter.detach()
    assert not resource_filter.attached
    page.unroute.assert_awaited_once()


@pytest.mark.asyncio
async def test_detach_without_attach_is_a_no_op():
    page = make_page()
    await ResourceFilter(page).detach()
    page.unroute.assert_not_awaited()


# ----------------------------------------------------------------------
# PlaywrightRenderer
# ----------------------------------------------------------------------
@pytest.mark.asyncio
async def test_configure_session_sets_timeout_and_attaches_filter(settings):
    page = make_page()
    renderer = PlaywrightRenderer(page, settings)

    await renderer.configure_session()

    page.set_default_navigation_timeout.assert_called_once_with(settings.NAVIGATION_TIMEOUT_MS)
    assert renderer.resource_filter.attached

    await renderer.release_resource_filter()
    assert not renderer.resource_filter.attached


@pytest.mark.asyncio
async def test_navigate_ignores_readiness_timeout(settings):
    page = make_page()
    page.wait_for_load_state.side_effect = PlaywrightTimeoutError("networkidle not reached")

    await PlaywrightRenderer(page, settings).navigate("https://www.economist.com/a")

    page.goto.assert_awaited_once()
    assert page.goto.await_args.kwargs["wait_until"] == "domcontentloaded"


@pytest.mark.asyncio
async def test_navigate_propagates_other_errors(settings):
    page = make_page()
    page.goto.side_effect = PlaywrightError("net::ERR_NAME_NOT_RESOLVED")

    with pytest.raises(PlaywrightError):
        await PlaywrightRenderer(page, settings).navigate("https://nowhere.invalid/")


@pytest.mark.asyncio
async def test_wait_for_selector_reports_absence(settings):
    page = make_page()
    renderer = PlaywrightRenderer(page, settings)
    assert await renderer.wait_for_selector("a", 10) is True

    page.wait_for_selector.side_effect = PlaywrightTimeoutError("timeout")
    assert await renderer.wait_for_selector("a", 10) is False


@pytest.mark.asyncio
async def test_select_all_and_count_read_page_results(settings):
    page = make_page()
    renderer = PlaywrightRenderer(page, settings)

    page.evaluate.return_value = [{"html": "<b>x</b>", "text": "x", "href": "/x"}]
    assert await renderer.select_all("a", within=".teaser") == [
        NodeSnapshot(html="<b>x</b>", text="x", href="/x")
    ]
    assert page.evaluate.await_args.args[1] == ["a", ".teaser", "all"]

    page.evaluate.return_value = None
    assert await renderer.select_all("a") == []
    assert await renderer.count("article") == 0


# ----------------------------------------------------------------------
# BrowserSession
# ----------------------------------------------------------------------
@pytest.mark.asyncio
async def test_session_closes_browser_and_driver(monkeypatch, settings):
    page = make_page()
    context = MagicMock()
    context.new_page = AsyncMock(return_value=page)
    browser = MagicMock()
    browser.new_context = AsyncMock(return_value=context)
    browser.close = AsyncMock()
    driver = fake_playwright(monkeypatch, browser)

    async with BrowserSession(settings) as renderer:
        assert isinstance(renderer, PlaywrightRenderer)
        assert renderer.page is page

    launch = driver.chromium.launch.await_args.kwargs
    assert launch["headless"] is True
    assert launch["args"] == settings.BROWSER_ARGS
    assert browser.new_context.await_args.kwargs["user_agent"] == settings.DEFAULT_USER_AGENT
    browser.close.assert_awaited_once()
    driver.stop.assert_awaited_once()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "failure",
    [PlaywrightError("context refused"), RuntimeError("driver crashed")],
)
async def test_failed_launch_releases_everything(monkeypatch, settings, failure):
    browser = MagicMock()
    browser.new_context = AsyncMock(side_effect=failure)
    browser.close = AsyncMock()
    driver = fake_playwright(monkeypatch, browser)

    with pytest.raises(BrowserLaunchError):
        async with BrowserSession(settings):
            pytest.fail("session body must not run")

    browser.close.assert_awaited_once()
    driver.stop.assert_awaited_once()
