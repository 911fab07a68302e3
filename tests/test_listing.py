import asyncio

import pytest

from app.core.exceptions import TransportError
from app.services.dlsite.listing import ListingScraper, parse_ranking_listing, parse_search_listing
from tests.conftest import BASE_URL, make_client, ranking_page, search_page


class FakeRenderer:
    def __init__(self, html: str = "", error: Exception | None = None):
        self.html = html
        self.error = error
        self.calls: list[str] = []

    async def render(self, url: str) -> str:
        self.calls.append(url)
        if self.error is not None:
            raise self.error
        return self.html


class TestParseSearchListing:
    def test_worklist_items_in_page_order(self):
        html = search_page(["RJ003", "RJ001", "RJ002"])
        assert parse_search_listing(html) == ["RJ003", "RJ001", "RJ002"]

    def test_id_attribute_when_link_is_missing(self):
        html = """
        <ul>
          <li id="search_result_RJ010"><span>no link</span></li>
          <li id="search_result_RJ011"><span>no link</span></li>
        </ul>
        """
        assert parse_search_listing(html) == ["RJ010", "RJ011"]

    def test_falls_back_to_product_links(self):
        html = f"""
        <div class="grid">
          <a href="{BASE_URL}/maniax/work/=/product_id/RJ020.html">a</a>
          <a href="{BASE_URL}/maniax/work/=/product_id/RJ021.html">b</a>
          <a href="{BASE_URL}/maniax/work/=/product_id/RJ020.html">again</a>
        </div>
        """
        assert parse_search_listing(html) == ["RJ020", "RJ021"]

    def test_duplicates_keep_first_position(self):
        html = search_page(["RJ1", "RJ2", "RJ1", "RJ3"])
        assert parse_search_listing(html) == ["RJ1", "RJ2", "RJ3"]

    def test_no_items(self):
        assert parse_search_listing("<html><body><p>0件</p></body></html>") == []


class TestParseRankingListing:
    def test_product_links_in_rank_order(self):
        assert parse_ranking_listing(ranking_page(["RJ5", "RJ3", "RJ9"])) == ["RJ5", "RJ3", "RJ9"]

    def test_ignores_unrelated_links(self):
        html = f"""
        <a href="{BASE_URL}/maniax/circle/profile/=/maker_id/RG1.html">circle</a>
        <a href="{BASE_URL}/maniax/work/=/product_id/RJ7.html">work</a>
        """
        assert parse_ranking_listing(html) == ["RJ7"]

    def test_empty_page(self):
        assert parse_ranking_listing("") == []


class TestListingScraper:
    def test_static_page_does_not_render(self, site):
        client = make_client(site)
        url = client.ranking_url()
        site.add(url, ranking_page(["RJ1", "RJ2"]))
        renderer = FakeRenderer(ranking_page(["RJ9"]))

        ids = asyncio.run(ListingScraper(client, renderer).scrape(url, parse_ranking_listing))

        assert ids == ["RJ1", "RJ2"]
        assert renderer.calls == []

    def test_renders_when_static_page_is_empty(self, site):
        client = make_client(site)
        url = client.ranking_url()
        site.add(url, "<html><body><div id='app'></div></body></html>")
        renderer = FakeRenderer(ranking_page(["RJ9", "RJ8"]))

        ids = asyncio.run(ListingScraper(client, renderer).scrape(url, parse_ranking_listing))

        assert ids == ["RJ9", "RJ8"]
        assert renderer.calls == [url]

    def test_render_failure_is_an_empty_page(self, site):
        client = make_client(site)
        url = client.search_url(1)
        site.add(url, "<html></html>")
        renderer = FakeRenderer(error=RuntimeError("browser crashed"))

        ids = asyncio.run(ListingScraper(client, renderer).scrape(url, parse_search_listing))

        assert ids == []
        assert renderer.calls == [url]

    def test_without_renderer_empty_stays_empty(self, site):
        client = make_client(site)
        url = client.search_url(1)
        site.add(url, "<html></html>")

        assert asyncio.run(ListingScraper(client).scrape(url, parse_search_listing)) == []

    def test_transport_error_propagates(self, site):
        client = make_client(site, max_retries=1)
        url = client.search_url(1)
        site.add(url, 503)
        renderer = FakeRenderer(search_page(["RJ1"]))

        with pytest.raises(TransportError):
            asyncio.run(ListingScraper(client, renderer).scrape(url, parse_search_listing))
        assert renderer.calls == []
        assert site.count(url) == 2
