"""
tests/test_videos.py -- Integration tests for video versions and video assets.

Coverage:
  - Versioning: version increments per name, independent across names
  - File checks: non-video and suspicious names rejected, names sanitized
  - PATCH: processing metadata, status change, empty PATCH 400
  - Delete: assets and comments of the video go with it
  - Assets: category detection, MIME mismatch 400, client download rules
"""

from __future__ import annotations

from fastapi.testclient import TestClient


def _h(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def _project(client: TestClient, token: str, **overrides) -> dict:
    body = {"title": "Video Project"}
    body.update(overrides)
    resp = client.post("/api/v1/projects", json=body, headers=_h(token))
    assert resp.status_code == 201, resp.text
    return resp.json()


def _video(client: TestClient, token: str, project_id: int, name: str = "Main", file_name: str = "main.mp4"):
    return client.post(
        f"/api/v1/projects/{project_id}/videos",
        json={"name": name, "original_file_name": file_name, "original_file_size": 2048},
        headers=_h(token),
    )


def _asset(client: TestClient, token: str, video_id: int, **overrides):
    body = {"file_name": "frame.png", "file_size": 100, "file_type": "image/png"}
    body.update(overrides)
    return client.post(f"/api/v1/videos/{video_id}/assets", json=body, headers=_h(token))


class TestVersions:
    def test_version_increments_per_name(self, api_client) -> None:
        client, token, _ = api_client
        project = _project(client, token)
        v1 = _video(client, token, project["id"]).json()
        v2 = _video(client, token, project["id"]).json()
        other = _video(client, token, project["id"], name="Teaser").json()
        assert (v1["version"], v2["version"], other["version"]) == (1, 2, 1)
        assert v2["version_label"] == "v2"
        assert v1["status"] == "UPLOADING"

    def test_explicit_version_label(self, api_client) -> None:
        client, token, _ = api_client
        project = _project(client, token)
        resp = client.post(
            f"/api/v1/projects/{project['id']}/videos",
            json={"name": "Main", "original_file_name": "cut.mov", "original_file_size": 1, "version_label": "Final"},
            headers=_h(token),
        )
        assert resp.json()["version_label"] == "Final"

    def test_non_video_file_is_400(self, api_client) -> None:
        client, token, _ = api_client
        project = _project(client, token)
        resp = _video(client, token, project["id"], file_name="notes.pdf")
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "invalid_file"

    def test_suspicious_file_is_400(self, api_client) -> None:
        client, token, _ = api_client
        project = _project(client, token)
        assert _video(client, token, project["id"], file_name="../../etc/passwd.mp4").status_code == 400

    def test_file_name_is_sanitized(self, api_client) -> None:
        client, token, _ = api_client
        project = _project(client, token)
        data = _video(client, token, project["id"], file_name="My Cut (final).mp4").json()
        assert data["original_file_name"] == "My_Cut__final_.mp4"

    def test_list_newest_version_first(self, api_client) -> None:
        client, token, _ = api_client
        project = _project(client, token)
        _video(client, token, project["id"])
        _video(client, token, project["id"])
        listed = client.get(f"/api/v1/projects/{project['id']}/videos", headers=_h(token)).json()
        assert [v["version"] for v in listed] == [2, 1]

    def test_unknown_project_is_404(self, api_client) -> None:
        client, token, _ = api_client
        assert _video(client, token, 999999).status_code == 404


class TestVideoPatch:
    def test_processing_metadata(self, api_client) -> None:
        client, token, _ = api_client
        project = _project(client, token)
        vid = _video(client, token, project["id"]).json()["id"]
        resp = client.patch(
            f"/api/v1/videos/{vid}",
            json={
                "status": "READY",
                "duration": 62.5,
                "width": 1920,
                "height": 1080,
                "fps": 25,
                "thumbnail_path": "thumbs/x.jpg",
            },
            headers=_h(token),
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "READY"
        assert data["duration"] == 62.5
        assert data["fps"] == 25
        assert data["has_thumbnail"] is True

    def test_status_filter(self, api_client) -> None:
        client, token, _ = api_client
        project = _project(client, token)
        ready = _video(client, token, project["id"]).json()["id"]
        _video(client, token, project["id"], name="Pending")
        client.patch(f"/api/v1/videos/{ready}", json={"status": "READY"}, headers=_h(token))
        listed = client.get(
            f"/api/v1/projects/{project['id']}/videos", params={"status": "READY"}, headers=_h(token)
        ).json()
        assert [v["id"] for v in listed] == [ready]

    def test_empty_patch_is_400(self, api_client) -> None:
        client, token, _ = api_client
        project = _project(client, token)
        vid = _video(client, token, project["id"]).json()["id"]
        assert client.patch(f"/api/v1/videos/{vid}", json={}, headers=_h(token)).status_code == 400

    def test_missing_video_is_404(self, api_client) -> None:
        client, token, _ = api_client
        assert client.get("/api/v1/videos/999999", headers=_h(token)).status_code == 404


class TestVideoDelete:
    def test_delete_removes_assets_and_comments(self, api_client) -> None:
        client, token, _ = api_client
        project = _project(client, token)
        vid = _video(client, token, project["id"]).json()["id"]
        asset_id = _asset(client, token, vid).json()["id"]
        client.post(
            f"/api/v1/projects/{project['id']}/comments",
            json={"content": "on the cut", "video_id": vid},
            headers=_h(token),
        )

        assert client.delete(f"/api/v1/videos/{vid}", headers=_h(token)).status_code == 204
        review = client.app.state.review
        assert review.get_video(vid) is None
        assert review.get_asset(asset_id) is None
        assert review.list_comments(project["id"]) == []


class TestAssets:
    def test_category_is_detected(self, api_client) -> None:
        client, token, _ = api_client
        project = _project(client, token)
        vid = _video(client, token, project["id"]).json()["id"]
        resp = _asset(client, token, vid, file_name="score.wav", file_type="audio/wav")
        assert resp.status_code == 201
        assert resp.json()["category"] == "audio"
        assert resp.json()["uploaded_by_name"]

    def test_mime_mismatch_is_400(self, api_client) -> None:
        client, token, _ = api_client
        project = _project(client, token)
        vid = _video(client, token, project["id"]).json()["id"]
        resp = _asset(client, token, vid, file_name="photo.png", file_type="application/pdf")
        assert resp.status_code == 400

    def test_suspicious_asset_is_400(self, api_client) -> None:
        client, token, _ = api_client
        project = _project(client, token)
        vid = _video(client, token, project["id"]).json()["id"]
        resp = _asset(client, token, vid, file_name="install.sh", file_type="text/plain")
        assert resp.status_code == 400
        assert "suspicious" in resp.json()["error"]["message"]

    def test_delete_asset_of_other_video_is_404(self, api_client) -> None:
        client, token, _ = api_client
        project = _project(client, token)
        a = _video(client, token, project["id"], name="A").json()["id"]
        b = _video(client, token, project["id"], name="B").json()["id"]
        asset_id = _asset(client, token, a).json()["id"]
        assert client.delete(f"/api/v1/videos/{b}/assets/{asset_id}", headers=_h(token)).status_code == 404
        assert client.delete(f"/api/v1/videos/{a}/assets/{asset_id}", headers=_h(token)).status_code == 204

    def test_client_needs_approved_video(self, api_client) -> None:
        client, token, _ = api_client
        project = _project(client, token)
        vid = _video(client, token, project["id"]).json()["id"]
        _asset(client, token, vid)
        share_token = client.get(f"/api/v1/share/{project['slug']}").json()["share_token"]
        client.cookies.clear()

        assert client.get(f"/api/v1/videos/{vid}/assets", headers=_h(share_token)).status_code == 403

        client.app.state.review.approve_video(vid)
        resp = client.get(f"/api/v1/videos/{vid}/assets", headers=_h(share_token))
        assert resp.status_code == 200
        assert [a["file_name"] for a in resp.json()] == ["frame.png"]

    def test_client_blocked_when_downloads_disabled(self, api_client) -> None:
        client, token, _ = api_client
        project = _project(client, token, allow_asset_download=False)
        vid = _video(client, token, project["id"]).json()["id"]
        client.app.state.review.approve_video(vid)
        share_token = client.get(f"/api/v1/share/{project['slug']}").json()["share_token"]
        client.cookies.clear()
        assert client.get(f"/api/v1/videos/{vid}/assets", headers=_h(share_token)).status_code == 403
