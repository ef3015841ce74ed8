"""Project CRUD."""


def _create(client, headers, name, description=None):
    return client.post("/api/v1/projects", headers=headers, json={"name": name, "description": description})


def test_create_and_list_sorted_by_name(client, auth_headers):
    assert _create(client, auth_headers, "Turbines", "blades and hubs").status_code == 201
    assert _create(client, auth_headers, "Brackets").status_code == 201

    projects = client.get("/api/v1/projects", headers=auth_headers).json()
    assert [p["name"] for p in projects] == ["Brackets", "Turbines"]
    assert projects[1]["description"] == "blades and hubs"
    assert all(p["scan_count"] == 0 for p in projects)


def test_duplicate_name_conflicts(client, auth_headers):
    _create(client, auth_headers, "Turbines")
    response = _create(client, auth_headers, "Turbines")
    assert response.status_code == 409
    assert "error" in response.json()


def test_name_is_required(client, auth_headers):
    response = client.post("/api/v1/projects", headers=auth_headers, json={"name": ""})
    assert response.status_code == 400


def test_names_are_trimmed(client, auth_headers):
    created = _create(client, auth_headers, "  General ")
    assert created.status_code == 201
    assert created.json()["name"] == "General"

    assert _create(client, auth_headers, "General").status_code == 409
    assert _create(client, auth_headers, "   ").status_code == 400

    other = _create(client, auth_headers, "Other").json()
    clash = client.put(f"/api/v1/projects/{other['id']}", headers=auth_headers, json={"name": " General"})
    assert clash.status_code == 409


def test_scan_count(client, auth_headers, upload_scan):
    project_id = _create(client, auth_headers, "Pumps").json()["id"]
    upload_scan(filename="a.stl", project_id=project_id)
    upload_scan(filename="b.stl", project_id=project_id)
    upload_scan(filename="c.stl")

    project = client.get(f"/api/v1/projects/{project_id}", headers=auth_headers).json()
    assert project["scan_count"] == 2


def test_update_and_rename_conflict(client, auth_headers):
    first = _create(client, auth_headers, "Pumps").json()
    _create(client, auth_headers, "Valves")

    renamed = client.put(
        f"/api/v1/projects/{first['id']}", headers=auth_headers, json={"name": "Impellers"}
    )
    assert renamed.status_code == 200
    assert renamed.json()["name"] == "Impellers"

    clash = client.put(f"/api/v1/projects/{first['id']}", headers=auth_headers, json={"name": "Valves"})
    assert clash.status_code == 409

    described = client.put(
        f"/api/v1/projects/{first['id']}", headers=auth_headers, json={"description": "wet end"}
    ).json()
    assert described["name"] == "Impellers"
    assert described["description"] == "wet end"


def test_delete_detaches_scans(client, auth_headers, upload_scan):
    project_id = _create(client, auth_headers, "Temporary").json()["id"]
    scan = upload_scan(project_id=project_id).json()

    assert client.delete(f"/api/v1/projects/{project_id}", headers=auth_headers).status_code == 204
    assert client.get(f"/api/v1/projects/{project_id}", headers=auth_headers).status_code == 404

    detached = client.get(f"/api/v1/scans/{scan['id']}", headers=auth_headers).json()
    assert detached["project_id"] is None
    assert detached["project_name"] is None


def test_unknown_project_is_404(client, auth_headers):
    assert client.get("/api/v1/projects/999", headers=auth_headers).status_code == 404
    assert client.put("/api/v1/projects/999", headers=auth_headers, json={"name": "x"}).status_code == 404
    assert client.delete("/api/v1/projects/999", headers=auth_headers).status_code == 404


def test_requires_authentication(client):
    assert client.get("/api/v1/projects").status_code == 401
    assert client.post("/api/v1/projects", json={"name": "x"}).status_code == 401
