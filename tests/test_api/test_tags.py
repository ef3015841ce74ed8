"""Tag CRUD."""


def _create(client, headers, name, **extra):
    return client.post("/api/v1/tags", headers=headers, json={"name": name, **extra})


def test_default_color(client, auth_headers):
    response = _create(client, auth_headers, "metal")
    assert response.status_code == 201
    tag = response.json()
    assert tag["color"] == "#6366f1"
    assert tag["usage_count"] == 0


def test_invalid_color_rejected(client, auth_headers):
    assert _create(client, auth_headers, "metal", color="red").status_code == 400


def test_name_too_long_rejected(client, auth_headers):
    assert _create(client, auth_headers, "x" * 51).status_code == 400


def test_list_sorted_with_usage_count(client, auth_headers, upload_scan):
    zinc = _create(client, auth_headers, "zinc").json()["id"]
    brass = _create(client, auth_headers, "brass", color="#b5a642").json()["id"]
    upload_scan(filename="a.stl", tags=f"[{zinc}, {brass}]")
    upload_scan(filename="b.stl", tags=f"[{zinc}]")

    tags = client.get("/api/v1/tags", headers=auth_headers).json()
    assert [(t["name"], t["usage_count"]) for t in tags] == [("brass", 1), ("zinc", 2)]


def test_duplicate_name_conflicts(client, auth_headers):
    _create(client, auth_headers, "metal")
    assert _create(client, auth_headers, "metal").status_code == 409


def test_update(client, auth_headers):
    tag_id = _create(client, auth_headers, "metal").json()["id"]
    _create(client, auth_headers, "plastic")

    recolored = client.put(f"/api/v1/tags/{tag_id}", headers=auth_headers, json={"color": "#00FF00"})
    assert recolored.status_code == 200
    assert recolored.json()["color"] == "#00FF00"
    assert recolored.json()["name"] == "metal"

    clash = client.put(f"/api/v1/tags/{tag_id}", headers=auth_headers, json={"name": "plastic"})
    assert clash.status_code == 409


def test_delete_detaches_from_scans(client, auth_headers, upload_scan):
    tag_id = _create(client, auth_headers, "metal").json()["id"]
    scan = upload_scan(tags=f"[{tag_id}]").json()
    assert [t["id"] for t in scan["tags"]] == [tag_id]

    assert client.delete(f"/api/v1/tags/{tag_id}", headers=auth_headers).status_code == 204
    assert client.get(f"/api/v1/tags/{tag_id}", headers=auth_headers).status_code == 404

    detail = client.get(f"/api/v1/scans/{scan['id']}", headers=auth_headers).json()
    assert detail["tags"] == []


def test_unknown_tag_is_404(client, auth_headers):
    assert client.get("/api/v1/tags/999", headers=auth_headers).status_code == 404
    assert client.put("/api/v1/tags/999", headers=auth_headers, json={"name": "x"}).status_code == 404
    assert client.delete("/api/v1/tags/999", headers=auth_headers).status_code == 404
