import asyncio
import json

from app.cli import build_parser, run
from app.models.game import CacheEntry
from app.services.dlsite_service import DLsiteService
from tests.conftest import make_client, make_details, register_work, search_page


def make_service(site, store, clock):
    return DLsiteService(
        client=make_client(site),
        store=store,
        render_fallback=False,
        detail_delay=0,
        page_delay=0,
        item_delay=0,
        clock=clock,
    )


class TestParser:
    def test_refresh_concurrency_range(self):
        args = build_parser().parse_args(["refresh", "out.json", "--concurrency", "16"])
        assert args.concurrency == 16

    def test_month_arguments(self):
        args = build_parser().parse_args(["month", "2024", "5", "--allow-sample"])
        assert (args.year, args.month, args.allow_sample) == (2024, 5, True)


class TestRun:
    def test_month_writes_json(self, site, store, clock, tmp_path):
        service = make_service(site, store, clock)
        client = service._client
        site.add(client.search_url(1), search_page(["RJ1"]))
        register_work(site, client, "RJ1", "2024-05-20")
        site.add(client.search_url(2), search_page([]))
        output = tmp_path / "games.json"

        code = asyncio.run(run(["month", "2024", "5", "--output", str(output)], service=service))

        assert code == 0
        saved = json.loads(output.read_text(encoding="utf-8"))
        assert [entry["id"] for entry in saved] == ["RJ1"]
        assert store.closed is True

    def test_month_failure_exit_code(self, site, store, clock, tmp_path):
        service = make_service(site, store, clock)
        site.add(service._client.search_url(1), 503)

        code = asyncio.run(run(["month", "2024", "5", "--output", str(tmp_path / "x.json")], service=service))

        assert code == 1
        assert not (tmp_path / "x.json").exists()

    def test_refresh_keeps_entries_that_fail(self, site, store, clock, tmp_path):
        service = make_service(site, store, clock)
        register_work(site, service._client, "RJ1", "2024-05-20", title="Updated")
        path = tmp_path / "games.json"
        path.write_text(
            json.dumps([make_details("RJ1").model_dump(mode="json"), make_details("RJ404").model_dump(mode="json")]),
            encoding="utf-8",
        )

        code = asyncio.run(run(["refresh", str(path), "--concurrency", "2"], service=service))

        saved = json.loads(path.read_text(encoding="utf-8"))
        assert code == 1
        assert [entry["title"] for entry in saved] == ["Updated", "Work RJ404"]

    def test_refresh_ignores_cache(self, site, store, clock, tmp_path):
        service = make_service(site, store, clock)
        register_work(site, service._client, "RJ1", "2024-05-20", title="Fresh")
        store.rows["RJ1"] = CacheEntry(details=make_details("RJ1", title="Cached"), ts=clock.now)
        path = tmp_path / "games.json"
        path.write_text(json.dumps([make_details("RJ1").model_dump(mode="json")]), encoding="utf-8")

        assert asyncio.run(run(["refresh", str(path)], service=service)) == 0
        assert json.loads(path.read_text(encoding="utf-8"))[0]["title"] == "Fresh"

    def test_settings_loads_persisted_values_first(self, site, store, clock, capsys):
        store.settings = {"concurrency": 3, "details_cache_ttl": 600}
        service = make_service(site, store, clock)

        assert asyncio.run(run(["settings"], service=service)) == 0
        assert json.loads(capsys.readouterr().out) == {"concurrency": 3, "details_cache_ttl": 600.0}

    def test_settings_update(self, site, store, clock, capsys):
        service = make_service(site, store, clock)

        assert asyncio.run(run(["settings", "--concurrency", "5", "--ttl", "1200"], service=service)) == 0
        assert store.settings["concurrency"] == 5
        assert store.settings["details_cache_ttl"] == 1200.0

    def test_gc(self, site, store, clock, capsys):
        service = make_service(site, store, clock)
        store.rows["RJ1"] = CacheEntry(details=make_details("RJ1"), ts=clock.now - 99_999)

        assert asyncio.run(run(["gc"], service=service)) == 0
        assert "Deleted 1 cached details" in capsys.readouterr().out
