"""Scan upload, listing, versioning, update, delete and the public blob endpoints."""

import asyncio
import json
from pathlib import Path

import pytest

from app.services.scans import ScanService
from conftest import STL_CONTENT


def _create_tag(client, headers, name, color="#ff0000"):
    response = client.post("/api/v1/tags", headers=headers, json={"name": name, "color": color})
    assert response.status_code == 201, response.text
    return response.json()["id"]


def _create_project(client, headers, name):
    response = client.post("/api/v1/projects", headers=headers, json={"name": name})
    assert response.status_code == 201, response.text
    return response.json()["id"]


def _upload_version(client, headers, scan_id, content=b"solid v2\nendsolid v2\n", filename="widget.stl", **fields):
    return client.post(
        f"/api/v1/scans/{scan_id}/versions",
        headers=headers,
        files={"file": (filename, content, "application/octet-stream")},
        data=fields,
    )


def _stored_files(settings):
    return sorted(p for p in Path(settings.LOCAL_STORAGE_DIR).rglob("*") if p.is_file())


class TestCreateScan:

    def test_create_starts_at_version_one(self, upload_scan):
        response = upload_scan(object_name="Widget", notes="first pass", scan_date="2024-03-01")
        assert response.status_code == 201, response.text
        scan = response.json()
        assert scan["object_name"] == "Widget"
        assert scan["filename"] == "widget.stl"
        assert scan["file_format"] == "STL"
        assert scan["file_size"] == len(STL_CONTENT)
        assert scan["scan_date"] == "2024-03-01"
        assert scan["current_version"] == 1
        assert scan["created_by"] == "Scan Owner"
        assert [v["version_number"] for v in scan["versions"]] == [1]
        assert scan["versions"][0]["change_notes"] == "Initial upload"
        assert scan["versions"][0]["file_path"] == scan["file_path"]

    def test_object_name_defaults_to_file_stem(self, upload_scan):
        response = upload_scan(filename="turbine_blade.STP")
        assert response.status_code == 201
        assert response.json()["object_name"] == "turbine_blade"
        assert response.json()["file_format"] == "STP"

    def test_file_is_written_to_storage(self, upload_scan, settings):
        scan = upload_scan().json()
        stored = Path(settings.LOCAL_STORAGE_DIR) / scan["file_path"]
        assert stored.read_bytes() == STL_CONTENT
        assert scan["file_path"].startswith("scans/")

    def test_unsupported_extension_rejected(self, upload_scan, settings):
        response = upload_scan(filename="notes.txt", content=b"hello")
        assert response.status_code == 400
        assert "Unsupported file type" in response.json()["error"]
        assert _stored_files(settings) == []

    def test_empty_file_rejected(self, upload_scan):
        response = upload_scan(content=b"")
        assert response.status_code == 400

    def test_requires_authentication(self, upload_scan):
        response = upload_scan(headers={})
        assert response.status_code == 401

    def test_duplicate_object_name_for_same_owner_conflicts(self, upload_scan, settings):
        assert upload_scan(object_name="Widget").status_code == 201
        response = upload_scan(object_name="Widget")
        assert response.status_code == 409
        # The rejected upload left nothing behind
        assert len(_stored_files(settings)) == 1

    def test_same_object_name_allowed_for_different_owners(self, upload_scan, other_headers):
        assert upload_scan(object_name="Widget").status_code == 201
        assert upload_scan(object_name="Widget", headers=other_headers).status_code == 201

    def test_unknown_project_rejected(self, upload_scan):
        response = upload_scan(project_id=9999)
        assert response.status_code == 400

    def test_unknown_tag_rejected(self, upload_scan):
        response = upload_scan(tags="[9999]")
        assert response.status_code == 400
        assert "9999" in response.json()["error"]

    def test_project_and_tags_are_embedded(self, client, auth_headers, upload_scan):
        project_id = _create_project(client, auth_headers, "Turbines")
        red = _create_tag(client, auth_headers, "red")
        blue = _create_tag(client, auth_headers, "blue", "#0000ff")

        response = upload_scan(project_id=project_id, tags=json.dumps([red, blue]))
        assert response.status_code == 201, response.text
        scan = response.json()
        assert scan["project_id"] == project_id
        assert scan["project_name"] == "Turbines"
        assert [t["name"] for t in scan["tags"]] == ["blue", "red"]
        assert set(scan["tags"][0]) == {"id", "name", "color"}

    def test_comma_separated_tags_accepted(self, client, auth_headers, upload_scan):
        red = _create_tag(client, auth_headers, "red")
        blue = _create_tag(client, auth_headers, "blue")
        response = upload_scan(tags=f"{red},{blue}")
        assert response.status_code == 201
        assert len(response.json()["tags"]) == 2

    def test_invalid_scan_date_rejected(self, upload_scan):
        response = upload_scan(scan_date="yesterday")
        assert response.status_code == 400

    def test_thumbnail_is_stored(self, client, upload_scan, png_bytes):
        response = upload_scan(files={"thumbnail": ("thumb.png", png_bytes, "image/png")})
        assert response.status_code == 201, response.text
        scan = response.json()
        assert scan["thumbnail_path"].startswith("thumbnails/")
        assert scan["thumbnail_path"].endswith(".png")

        thumb = client.get(f"/api/v1/scans/{scan['id']}/thumbnail")
        assert thumb.status_code == 200
        assert thumb.headers["content-type"] == "image/png"
        assert thumb.content == png_bytes

    def test_invalid_thumbnail_rejected(self, upload_scan, settings):
        response = upload_scan(files={"thumbnail": ("thumb.png", b"not an image", "image/png")})
        assert response.status_code == 400
        assert _stored_files(settings) == []


class TestListScans:

    @pytest.fixture
    def catalog(self, upload_scan):
        ids = {}
        for name, notes in [("Gearbox", "steel housing"), ("Impeller", "cast BRONZE"), ("Bracket", None)]:
            fields = {"object_name": name}
            if notes:
                fields["notes"] = notes
            ids[name] = upload_scan(filename=f"{name.lower()}.stl", **fields).json()["id"]
        return ids

    def test_newest_first_with_pagination(self, client, auth_headers, catalog):
        response = client.get("/api/v1/scans", headers=auth_headers, params={"limit": 2})
        assert response.status_code == 200
        body = response.json()
        assert body["pagination"] == {"total": 3, "limit": 2, "offset": 0}
        assert [s["object_name"] for s in body["data"]] == ["Bracket", "Impeller"]

        page_two = client.get("/api/v1/scans", headers=auth_headers, params={"limit": 2, "offset": 2}).json()
        assert [s["object_name"] for s in page_two["data"]] == ["Gearbox"]

    def test_default_limit(self, client, auth_headers, catalog):
        body = client.get("/api/v1/scans", headers=auth_headers).json()
        assert body["pagination"]["limit"] == 50

    def test_search_is_case_insensitive_across_fields(self, client, auth_headers, catalog):
        by_notes = client.get("/api/v1/scans", headers=auth_headers, params={"search": "bronze"}).json()
        assert [s["object_name"] for s in by_notes["data"]] == ["Impeller"]
        assert by_notes["pagination"]["total"] == 1

        by_name = client.get("/api/v1/scans", headers=auth_headers, params={"search": "GEAR"}).json()
        assert [s["object_name"] for s in by_name["data"]] == ["Gearbox"]

        by_filename = client.get("/api/v1/scans", headers=auth_headers, params={"search": "bracket.st"}).json()
        assert [s["object_name"] for s in by_filename["data"]] == ["Bracket"]

    def test_search_treats_wildcards_literally(self, client, auth_headers, catalog):
        body = client.get("/api/v1/scans", headers=auth_headers, params={"search": "%"}).json()
        assert body["data"] == []

    def test_search_alias(self, client, auth_headers, catalog):
        body = client.get("/api/v1/scans/search", headers=auth_headers, params={"search": "steel"}).json()
        assert [s["object_name"] for s in body["data"]] == ["Gearbox"]

    def test_project_filter(self, client, auth_headers, upload_scan, catalog):
        project_id = _create_project(client, auth_headers, "Pumps")
        upload_scan(filename="pump.stl", project_id=project_id)
        body = client.get("/api/v1/scans", headers=auth_headers, params={"project_id": project_id}).json()
        assert [s["object_name"] for s in body["data"]] == ["pump"]
        assert body["data"][0]["project_name"] == "Pumps"

    def test_project_id_zero_is_a_filter(self, client, auth_headers, catalog):
        body = client.get("/api/v1/scans", headers=auth_headers, params={"project_id": 0}).json()
        assert body["data"] == []
        assert body["pagination"]["total"] == 0

    def test_only_own_scans_are_listed(self, client, other_headers, catalog):
        body = client.get("/api/v1/scans", headers=other_headers).json()
        assert body["data"] == []
        assert body["pagination"]["total"] == 0

    @pytest.mark.parametrize("params", [{"limit": 0}, {"limit": 501}, {"offset": -1}])
    def test_out_of_range_paging_rejected(self, client, auth_headers, params):
        response = client.get("/api/v1/scans", headers=auth_headers, params=params)
        assert response.status_code == 400

    def test_requires_authentication(self, client):
        assert client.get("/api/v1/scans").status_code == 401


class TestVersions:

    def test_widget_scenario(self, client, auth_headers, upload_scan):
        scan = upload_scan(object_name="Widget").json()

        response = _upload_version(client, auth_headers, scan["id"], change_notes="fixed seam")
        assert response.status_code == 201, response.text

        detail = client.get(f"/api/v1/scans/{scan['id']}", headers=auth_headers).json()
        assert detail["current_version"] == 2
        assert [v["version_number"] for v in detail["versions"]] == [2, 1]
        assert detail["versions"][0]["change_notes"] == "fixed seam"

    def test_numbers_increase_and_notes_default(self, client, auth_headers, upload_scan):
        scan = upload_scan().json()
        _upload_version(client, auth_headers, scan["id"])
        detail = _upload_version(client, auth_headers, scan["id"]).json()
        assert detail["current_version"] == 3
        assert [v["version_number"] for v in detail["versions"]] == [3, 2, 1]
        assert detail["versions"][0]["change_notes"] == "Version 3"

    def test_file_endpoint_serves_latest_version(self, client, auth_headers, upload_scan):
        scan = upload_scan().json()
        new_content = b"solid v2\nendsolid v2\n"
        detail = _upload_version(client, auth_headers, scan["id"], content=new_content).json()
        assert detail["file_size"] == len(new_content)

        assert client.get(f"/api/v1/scans/{scan['id']}/file").content == new_content
        first = client.get(f"/api/v1/scans/{scan['id']}/versions/1/download")
        assert first.status_code == 200
        assert first.content == STL_CONTENT
        assert "widget_v1.stl" in first.headers["content-disposition"]

    def test_format_change_renames_the_scan_file(self, client, auth_headers, upload_scan):
        scan = upload_scan(object_name="Widget").json()
        obj_content = b"v 0 0 0\nv 1 0 0\nv 0 1 0\nf 1 2 3\n"
        detail = _upload_version(client, auth_headers, scan["id"], content=obj_content, filename="widget.obj").json()
        assert detail["file_format"] == "OBJ"
        assert detail["filename"] == "widget.obj"

        download = client.get(f"/api/v1/scans/{scan['id']}/download")
        assert download.content == obj_content
        assert download.headers["content-type"].startswith("model/obj")
        assert 'filename="widget.obj"' in download.headers["content-disposition"]

        first = client.get(f"/api/v1/scans/{scan['id']}/versions/1/download")
        assert first.content == STL_CONTENT
        assert "widget_v1.stl" in first.headers["content-disposition"]

    def test_unknown_version_download_is_404(self, client, upload_scan):
        scan = upload_scan().json()
        assert client.get(f"/api/v1/scans/{scan['id']}/versions/7/download").status_code == 404

    def test_unsupported_extension_rejected(self, client, auth_headers, upload_scan):
        scan = upload_scan().json()
        response = _upload_version(client, auth_headers, scan["id"], filename="readme.md")
        assert response.status_code == 400

    def test_other_users_scan_is_not_found(self, client, other_headers, upload_scan):
        scan = upload_scan().json()
        assert _upload_version(client, other_headers, scan["id"]).status_code == 404


class TestGetAndUpdate:

    def test_get_unknown_scan(self, client, auth_headers):
        response = client.get("/api/v1/scans/12345", headers=auth_headers)
        assert response.status_code == 404
        assert response.json() == {"error": "Scan not found"}

    def test_other_users_scan_is_hidden(self, client, other_headers, upload_scan):
        scan = upload_scan().json()
        assert client.get(f"/api/v1/scans/{scan['id']}", headers=other_headers).status_code == 404
        assert client.put(
            f"/api/v1/scans/{scan['id']}", headers=other_headers, json={"notes": "mine now"}
        ).status_code == 404
        assert client.delete(f"/api/v1/scans/{scan['id']}", headers=other_headers).status_code == 404

    def test_partial_update(self, client, auth_headers, upload_scan):
        scan = upload_scan(object_name="Widget", notes="draft").json()
        response = client.put(
            f"/api/v1/scans/{scan['id']}",
            headers=auth_headers,
            json={"scanner_model": "Artec Leo", "resolution": "0.2mm"},
        )
        assert response.status_code == 200
        updated = response.json()
        assert updated["scanner_model"] == "Artec Leo"
        assert updated["resolution"] == "0.2mm"
        assert updated["notes"] == "draft"
        assert updated["object_name"] == "Widget"

    def test_storage_fields_cannot_be_changed(self, client, auth_headers, upload_scan):
        scan = upload_scan().json()
        updated = client.put(
            f"/api/v1/scans/{scan['id']}",
            headers=auth_headers,
            json={"file_path": "elsewhere.stl", "file_size": 1, "current_version": 9, "notes": "ok"},
        ).json()
        assert updated["file_path"] == scan["file_path"]
        assert updated["file_size"] == scan["file_size"]
        assert updated["current_version"] == 1
        assert updated["notes"] == "ok"

    def test_tags_are_replaced_wholesale(self, client, auth_headers, upload_scan):
        red = _create_tag(client, auth_headers, "red")
        blue = _create_tag(client, auth_headers, "blue")
        green = _create_tag(client, auth_headers, "green")
        scan = upload_scan(tags=json.dumps([red, blue])).json()

        updated = client.put(
            f"/api/v1/scans/{scan['id']}", headers=auth_headers, json={"tags": [green, blue, green]}
        ).json()
        assert sorted(t["name"] for t in updated["tags"]) == ["blue", "green"]

        cleared = client.put(f"/api/v1/scans/{scan['id']}", headers=auth_headers, json={"tags": []}).json()
        assert cleared["tags"] == []

    def test_update_without_tags_keeps_them(self, client, auth_headers, upload_scan):
        red = _create_tag(client, auth_headers, "red")
        scan = upload_scan(tags=f"[{red}]").json()
        updated = client.put(f"/api/v1/scans/{scan['id']}", headers=auth_headers, json={"notes": "n"}).json()
        assert [t["id"] for t in updated["tags"]] == [red]

    def test_rename_to_existing_name_conflicts(self, client, auth_headers, upload_scan):
        upload_scan(object_name="Widget")
        other = upload_scan(object_name="Gadget").json()
        response = client.put(
            f"/api/v1/scans/{other['id']}", headers=auth_headers, json={"object_name": "Widget"}
        )
        assert response.status_code == 409

    def test_keeping_own_name_is_not_a_conflict(self, client, auth_headers, upload_scan):
        scan = upload_scan(object_name="Widget").json()
        response = client.put(
            f"/api/v1/scans/{scan['id']}", headers=auth_headers, json={"object_name": "Widget", "notes": "x"}
        )
        assert response.status_code == 200

    def test_unknown_tag_in_update_rejected(self, client, auth_headers, upload_scan):
        scan = upload_scan().json()
        response = client.put(f"/api/v1/scans/{scan['id']}", headers=auth_headers, json={"tags": [4242]})
        assert response.status_code == 400

    def test_project_can_be_cleared(self, client, auth_headers, upload_scan):
        project_id = _create_project(client, auth_headers, "Temp")
        scan = upload_scan(project_id=project_id).json()
        updated = client.put(
            f"/api/v1/scans/{scan['id']}", headers=auth_headers, json={"project_id": None}
        ).json()
        assert updated["project_id"] is None
        assert updated["project_name"] is None


class TestDelete:

    def test_delete_removes_row_versions_tags_and_blobs(
        self, client, auth_headers, upload_scan, settings, data_backend, png_bytes
    ):
        red = _create_tag(client, auth_headers, "red")
        scan = upload_scan(
            tags=f"[{red}]", files={"thumbnail": ("t.png", png_bytes, "image/png")}
        ).json()
        _upload_version(client, auth_headers, scan["id"])
        assert len(_stored_files(settings)) == 3

        response = client.delete(f"/api/v1/scans/{scan['id']}", headers=auth_headers)
        assert response.status_code == 204

        assert client.get(f"/api/v1/scans/{scan['id']}", headers=auth_headers).status_code == 404
        assert _stored_files(settings) == []
        with data_backend.session() as repos:
            assert repos.versions.list_for_scan(scan["id"]) == []
            assert repos.tags.get(red).usage_count == 0

    def test_delete_unknown_scan(self, client, auth_headers):
        assert client.delete("/api/v1/scans/999", headers=auth_headers).status_code == 404


class TestPublicEndpoints:

    def test_file_is_served_without_auth(self, client, upload_scan):
        scan = upload_scan().json()
        response = client.get(f"/api/v1/scans/{scan['id']}/file")
        assert response.status_code == 200
        assert response.content == STL_CONTENT
        assert response.headers["content-type"] == "model/stl"

    def test_download_is_an_attachment_with_original_name(self, client, upload_scan):
        scan = upload_scan(filename="Widget Part.stl").json()
        response = client.get(f"/api/v1/scans/{scan['id']}/download")
        assert response.status_code == 200
        assert response.headers["content-disposition"].startswith('attachment; filename="Widget Part.stl"')

    def test_file_url_points_at_static_mount(self, client, upload_scan):
        scan = upload_scan().json()
        url = client.get(f"/api/v1/scans/{scan['id']}/file-url").json()["url"]
        assert url == f"http://testserver/storage/{scan['file_path']}"
        assert client.get(f"/storage/{scan['file_path']}").content == STL_CONTENT

    def test_missing_thumbnail_is_404(self, client, upload_scan):
        scan = upload_scan().json()
        assert client.get(f"/api/v1/scans/{scan['id']}/thumbnail").status_code == 404

    def test_unknown_scan_is_404(self, client):
        for suffix in ("file", "download", "file-url", "thumbnail"):
            response = client.get(f"/api/v1/scans/424242/{suffix}")
            assert response.status_code == 404
            assert "error" in response.json()


def _on_event_loop() -> bool:
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return False
    return True


def test_uploads_run_outside_the_event_loop(client, auth_headers, upload_scan, monkeypatch):
    seen = []
    original_upload = ScanService.upload_scan
    original_version = ScanService.upload_new_version

    def upload(self, *args, **kwargs):
        seen.append(_on_event_loop())
        return original_upload(self, *args, **kwargs)

    def new_version(self, *args, **kwargs):
        seen.append(_on_event_loop())
        return original_version(self, *args, **kwargs)

    monkeypatch.setattr(ScanService, "upload_scan", upload)
    monkeypatch.setattr(ScanService, "upload_new_version", new_version)

    scan = upload_scan().json()
    assert _upload_version(client, auth_headers, scan["id"]).status_code == 201
    assert seen == [False, False]
