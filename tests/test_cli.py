from __future__ import annotations

import json

from shelfscan import cli
from shelfscan.errors import UpstreamTimeout
from shelfscan.models import EnrichedBook
from shelfscan.preprocessing import image_dimensions


def test_compress_writes_output_and_prints_stats(tmp_path, make_image, capsys) -> None:
    src = tmp_path / "shelf.png"
    src.write_bytes(make_image(2400, 1200))
    out = tmp_path / "shelf.jpg"

    assert cli.main(["compress", str(src), "-o", str(out)]) == 0

    stats = json.loads(capsys.readouterr().out)
    assert stats["dimensions"] == "1000x500"
    assert stats["output"] == str(out)
    assert image_dimensions(out.read_bytes()) == (1000, 500)


def test_lookup_prints_enriched_books(monkeypatch, capsys) -> None:
    async def fake_enrich(titles, settings):
        return [EnrichedBook.missing(t) for t in titles]

    monkeypatch.setattr(cli, "enrich_titles", fake_enrich)

    assert cli.main(["lookup", "Dune", "Emma"]) == 0

    payload = json.loads(capsys.readouterr().out)
    assert payload == {"books": [{"title": "Dune", "found": False}, {"title": "Emma", "found": False}]}


def test_relay_errors_exit_nonzero(monkeypatch, tmp_path, make_image, capsys) -> None:
    class _TimingOut:
        def scan_books(self, image):
            raise UpstreamTimeout()

        def close(self):
            pass

    monkeypatch.setattr(cli, "create_llm_client", lambda settings: _TimingOut())
    src = tmp_path / "shelf.png"
    src.write_bytes(make_image())

    assert cli.main(["scan", str(src)]) == 1
    assert "Error (408)" in capsys.readouterr().err
