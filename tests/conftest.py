"""Shared fakes: an in-memory DetailStore, a controllable clock and a fake DLsite site."""

import httpx
import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from app.models.game import CacheEntry, GameDetails, GCLogEntry
from app.services.dlsite.client import DLsiteClient

BASE_URL = "https://www.dlsite.com"


async def no_sleep(_seconds: float) -> None:
    return None


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeDetailStore:
    """Implements the DetailStore coroutine surface on plain dicts."""

    def __init__(self):
        self.rows: dict[str, CacheEntry] = {}
        self.gc_logs: list[GCLogEntry] = []
        self.settings: dict = {}
        self.fail_reads = False
        self.fail_writes = False
        self.fail_gc_log = False
        self.closed = False

    async def get_detail(self, game_id):
        if self.fail_reads:
            raise RedisConnectionError("redis down")
        return self.rows.get(game_id)

    async def upsert_detail(self, game_id, details, ts):
        if self.fail_writes:
            raise RedisConnectionError("redis down")
        self.rows[game_id] = CacheEntry(details=details, ts=ts)

    async def delete_older_than(self, cutoff):
        expired = [game_id for game_id, entry in self.rows.items() if entry.ts < cutoff]
        for game_id in expired:
            del self.rows[game_id]
        return len(expired)

    async def append_gc_log(self, entry):
        if self.fail_gc_log:
            raise RedisConnectionError("redis down")
        self.gc_logs.insert(0, entry)

    async def recent_gc_logs(self, limit=20):
        return self.gc_logs[:limit]

    async def load_settings(self):
        return dict(self.settings)

    async def save_settings(self, values):
        self.settings.update(values)

    async def close(self):
        self.closed = True


def work_page(
    game_id: str,
    title: str,
    release_date: str = "2024年05月10日",
    price: str | None = "1,980円",
    circle: str = "PixelHeart",
    genre: str | None = None,
) -> str:
    rows = [f'<tr><th>販売日</th><td><a href="#">{release_date}</a></td></tr>']
    if price is not None:
        rows.append(f"<tr><th>価格</th><td>{price}</td></tr>")
    if genre:
        rows.append(f"<tr><th>ジャンル</th><td>{genre}</td></tr>")
    return f"""
    <html><head><meta property="og:image" content="//img.dlsite.jp/{game_id}_main.jpg"></head>
    <body>
      <h1 id="work_name">{title}</h1>
      <span class="maker_name"><a href="#">{circle}</a></span>
      <div class="work_parts_area"><p>{title} の紹介文です。</p></div>
      <table id="work_outline">{"".join(rows)}</table>
    </body></html>
    """


def search_page(game_ids: list[str]) -> str:
    items = "".join(
        f'<li class="n_worklist_item"><a href="{BASE_URL}/maniax/work/=/product_id/{gid}.html">{gid}</a></li>'
        for gid in game_ids
    )
    return f'<html><body><ul class="n_worklist">{items}</ul></body></html>'


def ranking_page(game_ids: list[str]) -> str:
    links = "".join(
        f'<div class="ranking_item"><a href="{BASE_URL}/maniax/work/=/product_id/{gid}.html">{gid}</a></div>'
        for gid in game_ids
    )
    return f"<html><body>{links}</body></html>"


class FakeSite:
    """Serves canned pages through httpx.MockTransport and records every request path."""

    def __init__(self):
        self.pages: dict[str, str | int] = {}
        self.requests: list[str] = []

    def add(self, url: str, body: str | int) -> None:
        self.pages[httpx.URL(url).path] = body

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.requests.append(path)
        body = self.pages.get(path, 404)
        if isinstance(body, int):
            return httpx.Response(body, text="error")
        return httpx.Response(200, text=body, headers={"content-type": "text/html; charset=utf-8"})

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def count(self, url: str) -> int:
        path = httpx.URL(url).path
        return sum(1 for p in self.requests if p == path)


def make_client(site: FakeSite, max_retries: int = 3) -> DLsiteClient:
    return DLsiteClient(base_url=BASE_URL, transport=site.transport(), sleep=no_sleep, max_retries=max_retries)


def make_details(game_id: str, release_date: str = "2024-05-10", title: str | None = None) -> GameDetails:
    return GameDetails(id=game_id, title=title or f"Work {game_id}", release_date=release_date, price=1000)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> FakeDetailStore:
    return FakeDetailStore()


@pytest.fixture
def site() -> FakeSite:
    return FakeSite()


def register_work(site: FakeSite, client: DLsiteClient, game_id: str, release_date: str, title: str | None = None):
    """Serve a product page for ``game_id`` released on ``release_date`` (YYYY-MM-DD)."""
    year, month, day = release_date.split("-")
    site.add(client.work_url(game_id), work_page(game_id, title or f"Work {game_id}", f"{year}年{month}月{day}日"))
