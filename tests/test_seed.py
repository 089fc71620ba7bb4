import asyncio
import json
from pathlib import Path

import vfurniture.seed as seed_module


def snapshot(config, kind):
    return json.loads((Path(config.PUBLIC_DIR) / f"{kind}.json").read_text(encoding="utf-8"))


def test_writes_only_while_empty(client, config):
    first = client.post("/api/saveDefault/categories", json=[{"name": "Bedroom"}])
    assert first.json() == {"message": "Default categories saved if empty", "written": True}

    second = client.post("/api/saveDefault/categories", json=[{"name": "Outdoor"}])
    assert second.json()["written"] is False
    assert snapshot(config, "categories") == [{"name": "Bedroom"}]


def test_empty_list_file_is_overwritten(client, config):
    folder = Path(config.PUBLIC_DIR)
    folder.mkdir(parents=True, exist_ok=True)
    (folder / "products.json").write_text("[]", encoding="utf-8")

    resp = client.post("/api/saveDefault/products", json={"products": [{"name": "Oslo Sofa"}]})
    assert resp.json()["written"] is True
    assert snapshot(config, "products") == [{"name": "Oslo Sofa"}]


def test_legacy_inspiration_path(client, config):
    resp = client.post("/api/saveDefault/insparation", json=[{"title": "Scandi Calm"}])
    assert resp.status_code == 200
    assert snapshot(config, "inspirations") == [{"title": "Scandi Calm"}]


def test_bad_requests(client):
    assert client.post("/api/saveDefault/orders", json=[]).status_code == 404
    assert client.post("/api/saveDefault/products", json={"products": "nope"}).status_code == 400
    assert client.post("/api/saveDefault/products", json="nope").status_code == 400
    assert client.post(
        "/api/saveDefault/products", content=b"{", headers={"content-type": "application/json"}
    ).status_code == 400


def test_snapshot_file_io_runs_off_the_event_loop(client, config, monkeypatch):
    loop_threads = []
    original = seed_module.save_snapshot

    def recording_save(*args):
        try:
            asyncio.get_running_loop()
            loop_threads.append(True)
        except RuntimeError:
            loop_threads.append(False)
        return original(*args)

    monkeypatch.setattr(seed_module, "save_snapshot", recording_save)
    resp = client.post("/api/saveDefault/categories", json=[{"name": "Bedroom"}])

    assert resp.json()["written"] is True
    assert loop_threads == [False]
