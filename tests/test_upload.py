import base64

import httpx
import pytest

from vfurniture.storage import s3

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


@pytest.fixture
def uploads(monkeypatch):
    calls = []

    def fake_upload(data, folder, content_type, config):
        calls.append({"data": data, "folder": folder, "content_type": content_type})
        key = s3.make_key(folder, s3.extension_for(content_type), object_id="abc123")
        return s3.make_public_url(key, config), key

    monkeypatch.setattr(s3, "upload_bytes", fake_upload)
    return calls


def test_multipart_upload(client, uploads):
    resp = client.post(
        "/api/upload",
        files={"file": ("sofa.png", PNG, "image/png")},
        data={"folder": "products"},
    )
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["publicId"].startswith("products/")
    assert body["publicId"].endswith("/abc123.png")
    assert body["url"].endswith(body["publicId"])
    assert uploads[0]["data"] == PNG


def test_multipart_default_folder(client, config, uploads):
    client.post("/api/upload", files={"file": ("a.jpg", b"jpeg-bytes", "image/jpeg")})
    assert uploads[0]["folder"] == config.UPLOAD_FOLDER


def test_data_uri_upload(client, uploads):
    uri = "data:image/png;base64," + base64.b64encode(PNG).decode()
    resp = client.post("/api/upload", json={"image": uri, "folder": "reviews"})
    assert resp.status_code == 200
    assert uploads[0] == {"data": PNG, "folder": "reviews", "content_type": "image/png"}


def test_remote_url_upload(client, uploads, monkeypatch):
    async def fake_download(url):
        return b"webp-bytes", "image/webp"

    monkeypatch.setattr(s3, "download_image", fake_download)
    resp = client.post("/api/upload", json={"image": "https://cdn.example.com/a.webp", "folder": "x"})
    assert resp.status_code == 200
    assert resp.json()["publicId"].endswith(".webp")


def test_remote_url_failure_is_400(client, uploads, monkeypatch):
    async def broken(url):
        raise s3.S3DownloadError("status 404")

    monkeypatch.setattr(s3, "download_image", broken)
    resp = client.post("/api/upload", json={"image": "https://cdn.example.com/a.webp", "folder": "x"})
    assert resp.status_code == 400
    assert uploads == []


def test_rejections(client, uploads):
    assert client.post("/api/upload", files={"other": ("a.png", PNG, "image/png")}).status_code == 400
    assert client.post(
        "/api/upload", files={"file": ("a.pdf", b"%PDF", "application/pdf")}
    ).status_code == 400
    assert client.post("/api/upload", files={"file": ("a.png", b"", "image/png")}).status_code == 400
    assert client.post("/api/upload", json={"image": "data:image/png;base64,AAAA"}).status_code == 400
    assert client.post("/api/upload", json={"image": "not-an-image", "folder": "x"}).status_code == 400
    assert client.post("/api/upload", content=b"raw", headers={"content-type": "text/plain"}).status_code == 400
    assert uploads == []


def test_oversized_file(client, uploads, monkeypatch):
    monkeypatch.setattr(s3, "MAX_IMAGE_BYTES", 16)
    resp = client.post("/api/upload", files={"file": ("a.png", PNG, "image/png")})
    assert resp.status_code == 400
    assert "too large" in resp.json()["error"]


def test_storage_not_configured(client):
    resp = client.post("/api/upload", files={"file": ("a.png", PNG, "image/png")})
    assert resp.status_code == 500
    assert "AWS credentials missing" in resp.json()["error"]


def test_make_key_layout():
    key = s3.make_key("/furniture-store/", "webp", object_id="Xk2v")
    folder, year, month, name = key.split("/")
    assert folder == "furniture-store"
    assert len(year) == 4 and len(month) == 2
    assert name == "Xk2v.webp"


# ─────────────────────────────────────────────
# Remote URL downloads
# ─────────────────────────────────────────────
HOSTS = {"cdn.example.com": {"93.184.216.34"}, "intranet.example.com": {"10.0.0.5"}}


@pytest.fixture
def remote(monkeypatch):
    """Serves image URLs from a handler instead of the network."""
    state = {"handler": lambda request: httpx.Response(200, content=PNG, headers={"content-type": "image/png"})}

    async def fake_resolve(host):
        return HOSTS.get(host, {host})

    async def handler(request):
        return state["handler"](request)

    monkeypatch.setattr(s3, "resolve_host", fake_resolve)
    monkeypatch.setattr(
        s3, "make_http_client", lambda: httpx.AsyncClient(transport=httpx.MockTransport(handler))
    )
    return state


def upload_url(client, url):
    return client.post("/api/upload", json={"image": url, "folder": "x"})


def test_remote_download_is_stored(client, uploads, remote):
    resp = upload_url(client, "https://cdn.example.com/a.png")
    assert resp.status_code == 200, resp.text
    assert uploads[0]["data"] == PNG


@pytest.mark.parametrize("url", [
    "http://127.0.0.1/a.png",
    "http://169.254.169.254/latest/meta-data/",
    "http://[::1]/a.png",
    "https://intranet.example.com/a.png",
])
def test_remote_private_hosts_are_refused(client, uploads, remote, url):
    requested = []
    remote["handler"] = lambda request: requested.append(request) or httpx.Response(200, content=PNG)

    resp = upload_url(client, url)

    assert resp.status_code == 400
    assert "not allowed" in resp.json()["error"]
    assert requested == []
    assert uploads == []


def test_redirect_to_private_host_is_refused(client, uploads, remote):
    remote["handler"] = lambda request: httpx.Response(
        302, headers={"location": "http://169.254.169.254/latest/meta-data/"}
    )
    resp = upload_url(client, "https://cdn.example.com/a.png")
    assert resp.status_code == 400
    assert uploads == []


def test_remote_declared_oversize_is_refused(client, uploads, remote, monkeypatch):
    monkeypatch.setattr(s3, "MAX_IMAGE_BYTES", 16)
    resp = upload_url(client, "https://cdn.example.com/a.png")
    assert resp.status_code == 400
    assert "too large" in resp.json()["error"]


def test_remote_stream_is_cut_off_past_limit(client, uploads, remote, monkeypatch):
    sent = []

    async def endless():
        for _ in range(1000):
            sent.append(1)
            yield b"\x00" * 8

    monkeypatch.setattr(s3, "MAX_IMAGE_BYTES", 16)
    remote["handler"] = lambda request: httpx.Response(
        200, content=endless(), headers={"content-type": "image/png"}
    )

    resp = upload_url(client, "https://cdn.example.com/a.png")

    assert resp.status_code == 400
    assert "too large" in resp.json()["error"]
    assert len(sent) < 1000
    assert uploads == []
