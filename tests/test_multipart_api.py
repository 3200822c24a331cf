import re

import pytest

from uploadgate.auth.jwt import create_access_token

BASE = "/s3-multipart/documents/42/attachment/multipart"
VIDEOS = "/s3-multipart/videos/7/file/multipart"


def _create(client, headers, base=BASE, filename="photo.png"):
    r = client.post(base, headers=headers, json={"filename": filename, "type": "image/png", "metadata": {"name": filename}})
    assert r.status_code == 200, r.text
    return r.json()


def test_full_flow(client, auth_headers, fake_s3):
    data = _create(client, auth_headers)
    assert data["key"] == "photo.png"
    upload_id = data["uploadId"]

    r = client.get(f"{BASE}/{upload_id}/1", headers=auth_headers, params={"key": "photo.png"})
    assert r.status_code == 200
    assert "partNumber=1" in r.json()["url"]
    assert r.json()["expiresIn"] == 1200

    fake_s3.put_part(upload_id, 1, '"etag1"', size=1234)
    r = client.get(f"{BASE}/{upload_id}", headers=auth_headers, params={"key": "photo.png"})
    assert r.status_code == 200
    assert r.json() == [{"PartNumber": 1, "Size": 1234, "ETag": '"etag1"', "LastModified": None}]

    r = client.post(
        f"{BASE}/{upload_id}/complete",
        headers=auth_headers,
        params={"key": "photo.png"},
        json={"parts": [{"PartNumber": 1, "ETag": '"etag1"'}]},
    )
    assert r.status_code == 200
    assert r.json() == {"location": "https://test-bucket.s3.example.test/photo.png"}

    r = client.get(f"{BASE}/{upload_id}/2", headers=auth_headers, params={"key": "photo.png"})
    assert r.status_code == 409
    assert r.json()["error"]["code"] == "invalid_state"


def test_create_generated_key_under_storage_path(client, auth_headers):
    data = _create(client, auth_headers, base=VIDEOS, filename="clip.mp4")
    assert re.fullmatch(r"videos/7/[0-9a-f-]{36}\.mp4", data["key"])


def test_batch_sign(client, auth_headers):
    data = _create(client, auth_headers)
    r = client.get(
        f"{BASE}/{data['uploadId']}/batch",
        headers=auth_headers,
        params={"key": data["key"], "partNumbers": "1,2,3"},
    )
    assert r.status_code == 200
    body = r.json()
    assert set(body["presignedUrls"]) == {"1", "2", "3"}
    assert len(set(body["presignedUrls"].values())) == 3
    assert body["errors"] == {}


def test_batch_sign_with_invalid_tokens(client, auth_headers):
    data = _create(client, auth_headers)
    r = client.get(
        f"{BASE}/{data['uploadId']}/batch",
        headers=auth_headers,
        params={"key": data["key"], "partNumbers": "1,abc,0,2"},
    )
    assert r.status_code == 200
    body = r.json()
    assert set(body["presignedUrls"]) == {"1", "2"}
    assert set(body["errors"]) == {"abc", "0"}


def test_batch_sign_requires_part_numbers(client, auth_headers):
    data = _create(client, auth_headers)
    r = client.get(
        f"{BASE}/{data['uploadId']}/batch",
        headers=auth_headers,
        params={"key": data["key"], "partNumbers": " , "},
    )
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "invalid_part_number"


def test_complete_accepts_camel_case_parts_and_rejects_bad_etag(client, auth_headers, fake_s3):
    data = _create(client, auth_headers)
    fake_s3.put_part(data["uploadId"], 1, "good")

    r = client.post(
        f"{BASE}/{data['uploadId']}/complete",
        headers=auth_headers,
        params={"key": data["key"]},
        json={"parts": [{"partNumber": 1, "eTag": "bad"}]},
    )
    assert r.status_code == 400
    assert r.json()["error"]["type"] == "InvalidParts"

    # sessie is nog open
    r = client.get(f"{BASE}/{data['uploadId']}/1", headers=auth_headers, params={"key": data["key"]})
    assert r.status_code == 200


def test_complete_requires_parts(client, auth_headers):
    data = _create(client, auth_headers)
    r = client.post(
        f"{BASE}/{data['uploadId']}/complete",
        headers=auth_headers,
        params={"key": data["key"]},
        json={"parts": []},
    )
    assert r.status_code == 422


def test_abort_is_idempotent_and_blocks_complete(client, auth_headers, fake_s3):
    data = _create(client, auth_headers)
    url = f"{BASE}/{data['uploadId']}"

    for _ in range(2):
        r = client.delete(url, headers=auth_headers, params={"key": data["key"]})
        assert r.status_code == 200
        assert r.json() == {}
    assert fake_s3.calls.count("abort_multipart_upload") == 1

    r = client.post(
        f"{url}/complete",
        headers=auth_headers,
        params={"key": data["key"]},
        json={"parts": [{"PartNumber": 1, "ETag": "x"}]},
    )
    assert r.status_code == 409


def test_list_parts_unknown_upload_is_404(client, auth_headers):
    r = client.get(f"{BASE}/nope", headers=auth_headers, params={"key": "photo.png"})
    assert r.status_code == 404
    assert r.json()["error"]["aws_code"] == "NoSuchUpload"


def test_sign_part_number_out_of_range(client, auth_headers):
    data = _create(client, auth_headers)
    r = client.get(f"{BASE}/{data['uploadId']}/10001", headers=auth_headers, params={"key": data["key"]})
    assert r.status_code == 400


def test_missing_token_is_401(client, fake_s3):
    r = client.post(BASE, json={"filename": "a.png"})
    assert r.status_code == 401
    assert fake_s3.calls == []


def test_invalid_token_is_401(client):
    r = client.post(BASE, headers={"Authorization": "Bearer not-a-jwt"}, json={"filename": "a.png"})
    assert r.status_code == 401


@pytest.mark.parametrize(
    "path",
    ["/s3-multipart/videos/7/locked/multipart", "/s3-multipart/reports/1/pdf/multipart"],
)
def test_forbidden_field_makes_no_backend_calls(client, auth_headers, fake_s3, path):
    assert client.post(path, headers=auth_headers, json={"filename": "a.png"}).status_code == 403
    assert client.get(f"{path}/u-1/1", headers=auth_headers, params={"key": "a.png"}).status_code == 403
    assert client.delete(f"{path}/u-1", headers=auth_headers, params={"key": "a.png"}).status_code == 403
    assert fake_s3.calls == []


def test_role_protected_field_allows_editor(client, editor_headers):
    data = _create(client, editor_headers, base="/s3-multipart/reports/1/pdf/multipart", filename="q3.pdf")
    assert data["key"].endswith(".pdf")


def test_unknown_field_is_404(client, auth_headers):
    r = client.post("/s3-multipart/videos/7/thumbnail/multipart", headers=auth_headers, json={"filename": "a.png"})
    assert r.status_code == 404
    assert r.json()["error"]["code"] == "field_not_found"


def test_preflight_allows_csrf_header(client):
    r = client.options(
        BASE,
        headers={
            "Origin": "https://admin.example.test",
            "Access-Control-Request-Method": "POST",
            "Access-Control-Request-Headers": "X-CSRF-TOKEN, Content-Type",
        },
    )
    assert r.status_code == 200
    assert "x-csrf-token" in r.headers["access-control-allow-headers"].lower()


def test_health_metrics_and_request_id(client, auth_headers):
    r = client.get("/health", headers={"X-Request-ID": "abc123"})
    assert r.json() == {"status": "ok"}
    assert r.headers["X-Request-ID"] == "abc123"

    _create(client, auth_headers)
    r = client.get("/metrics")
    assert r.status_code == 200
    assert "uploadgate_multipart_total" in r.text


def test_create_accepts_null_metadata(client, auth_headers):
    r = client.post(BASE, headers=auth_headers, json={"filename": "a.png", "type": "image/png", "metadata": None})
    assert r.status_code == 200, r.text
    assert r.json()["key"] == "a.png"


def test_cors_echoes_configured_origin(client, auth_headers):
    r = client.post(
        BASE,
        headers={**auth_headers, "Origin": "https://admin.example.test"},
        json={"filename": "a.png"},
    )
    assert r.status_code == 200
    assert r.headers["access-control-allow-origin"] == "https://admin.example.test"
    assert r.headers["access-control-allow-credentials"] == "true"


def test_cors_does_not_reflect_foreign_origin_with_cookie_auth(client, settings):
    token = create_access_token(settings, user_id="u1")
    r = client.post(
        BASE,
        headers={"Origin": "https://evil.example", "Cookie": f"access_token={token}"},
        json={"filename": "a.png"},
    )
    # het request zelf slaagt, maar de browser krijgt het antwoord niet te zien
    assert r.status_code == 200
    assert r.headers.get("access-control-allow-origin") not in ("https://evil.example", "*")
