"""
tests/test_share.py -- Integration tests for the public share-link API.

Coverage:
  - Password links: 401 without a session, wrong password 403 with no token,
    correct password issues a share token usable as Bearer or cookie
  - Brute force: lockout after `password_attempts` failures, 429 + Retry-After,
    correct password refused while locked, security events recorded
  - OTP links: code mailed only to recipients, generic reply for strangers,
    wrong / malformed codes, SMTP unavailable
  - Guest entry: view-only session, no comments, latest version only
  - auth_mode NONE: viewer receives a client session on first GET
  - Content tokens: bound to the minting session, original quality gated on
    approval, file streaming from storage_root
"""

from __future__ import annotations

from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from auth.lockout import password_lockout_key

SHARE_PASSWORD = "letmein-please"


def _admin(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def _bearer(share_token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {share_token}"}


def _project(client: TestClient, token: str, **overrides) -> dict:
    body = {"title": "Share Test", "client_name": "Acme Films"}
    body.update(overrides)
    resp = client.post("/api/v1/projects", json=body, headers=_admin(token))
    assert resp.status_code == 201, resp.text
    return resp.json()


def _ready_video(client: TestClient, token: str, project_id: int, name: str = "Main Edit") -> dict:
    resp = client.post(
        f"/api/v1/projects/{project_id}/videos",
        json={"name": name, "original_file_name": "edit.mp4", "original_file_size": 1024},
        headers=_admin(token),
    )
    assert resp.status_code == 201, resp.text
    video = resp.json()
    resp = client.patch(f"/api/v1/videos/{video['id']}", json={"status": "READY"}, headers=_admin(token))
    assert resp.status_code == 200, resp.text
    return resp.json()


def _verify(client: TestClient, slug: str, password: str | None) -> "object":
    return client.post(f"/api/v1/share/{slug}/verify", json={"password": password})


# ---------------------------------------------------------------------------
# Password links
# ---------------------------------------------------------------------------


class TestPasswordShare:
    def test_get_without_session_is_401_with_auth_mode(self, api_client) -> None:
        client, token, _ = api_client
        project = _project(client, token, title="Pw Gate", share_password=SHARE_PASSWORD)
        resp = client.get(f"/api/v1/share/{project['slug']}")
        assert resp.status_code == 401
        error = resp.json()["error"]
        assert error["auth_mode"] == "PASSWORD"
        assert error["title"] == "Pw Gate"

    def test_unknown_slug_is_404(self, api_client) -> None:
        client, _, _ = api_client
        assert client.get("/api/v1/share/does-not-exist").status_code == 404

    def test_wrong_password_is_403_without_token(self, api_client) -> None:
        client, token, _ = api_client
        project = _project(client, token, title="Pw Wrong", share_password=SHARE_PASSWORD)
        resp = _verify(client, project["slug"], "nope")
        assert resp.status_code == 403
        assert "share_token" not in resp.json()
        assert "share_token" not in resp.cookies

    def test_missing_password_is_400(self, api_client) -> None:
        client, token, _ = api_client
        project = _project(client, token, title="Pw Missing", share_password=SHARE_PASSWORD)
        assert _verify(client, project["slug"], None).status_code == 400

    def test_unknown_project_is_403_not_404(self, api_client) -> None:
        """verify must not reveal which slugs exist."""
        client, _, _ = api_client
        resp = _verify(client, "no-such-project", "whatever")
        assert resp.status_code == 403
        assert resp.json()["error"]["message"] == "Access denied"

    def test_correct_password_issues_token(self, api_client) -> None:
        client, token, _ = api_client
        project = _project(client, token, title="Pw Right", share_password=SHARE_PASSWORD)
        _ready_video(client, token, project["id"])

        resp = _verify(client, project["slug"], SHARE_PASSWORD)
        assert resp.status_code == 200
        assert resp.headers["Cache-Control"] == "no-store"
        data = resp.json()
        assert data["success"] is True
        assert data["expires_in"] > 0
        client.cookies.clear()

        view = client.get(f"/api/v1/share/{project['slug']}", headers=_bearer(data["share_token"]))
        assert view.status_code == 200, view.text
        body = view.json()
        assert body["title"] == "Pw Right"
        assert len(body["videos"]) == 1
        assert "Main Edit" in body["videos_by_name"]
        assert "share_password_hash" not in body

    def test_cookie_session_works(self, api_client) -> None:
        client, token, _ = api_client
        project = _project(client, token, title="Pw Cookie", share_password=SHARE_PASSWORD)
        assert _verify(client, project["slug"], SHARE_PASSWORD).status_code == 200
        # TestClient keeps the share_token cookie set by /verify.
        assert client.get(f"/api/v1/share/{project['slug']}").status_code == 200

    def test_token_for_another_project_is_refused(self, api_client) -> None:
        client, token, _ = api_client
        first = _project(client, token, title="Pw First", share_password=SHARE_PASSWORD)
        second = _project(client, token, title="Pw Second", share_password="other-password")
        share_token = _verify(client, first["slug"], SHARE_PASSWORD).json()["share_token"]
        client.cookies.clear()
        resp = client.get(f"/api/v1/share/{second['slug']}", headers=_bearer(share_token))
        assert resp.status_code == 401

    def test_otp_only_project_rejects_password(self, api_client) -> None:
        client, token, _ = api_client
        project = _project(client, token, title="Otp Only", share_password=SHARE_PASSWORD, auth_mode="OTP")
        assert _verify(client, project["slug"], SHARE_PASSWORD).status_code == 403

    def test_closed_project_refuses_clients(self, api_client) -> None:
        client, token, _ = api_client
        project = _project(client, token, title="Pw Closed", share_password=SHARE_PASSWORD)
        share_token = _verify(client, project["slug"], SHARE_PASSWORD).json()["share_token"]
        client.cookies.clear()
        client.patch(f"/api/v1/projects/{project['id']}", json={"status": "CLOSED"}, headers=_admin(token))
        resp = client.get(f"/api/v1/share/{project['slug']}", headers=_bearer(share_token))
        assert resp.status_code == 403

    def test_password_change_ends_existing_sessions(self, api_client) -> None:
        client, token, _ = api_client
        project = _project(client, token, title="Pw Rotate", share_password=SHARE_PASSWORD)
        share_token = _verify(client, project["slug"], SHARE_PASSWORD).json()["share_token"]
        client.cookies.clear()
        assert client.get(f"/api/v1/share/{project['slug']}", headers=_bearer(share_token)).status_code == 200

        resp = client.put(
            f"/api/v1/projects/{project['id']}/password", json={"password": "rotated-pass"}, headers=_admin(token)
        )
        assert resp.status_code == 200
        stale = client.get(f"/api/v1/share/{project['slug']}", headers=_bearer(share_token))
        assert stale.status_code == 401

        fresh = _verify(client, project["slug"], "rotated-pass").json()["share_token"]
        client.cookies.clear()
        assert client.get(f"/api/v1/share/{project['slug']}", headers=_bearer(fresh)).status_code == 200

    def test_auth_mode_change_ends_existing_sessions(self, api_client) -> None:
        client, token, _ = api_client
        project = _project(client, token, title="Pw To Otp", share_password=SHARE_PASSWORD)
        share_token = _verify(client, project["slug"], SHARE_PASSWORD).json()["share_token"]
        client.cookies.clear()

        client.patch(f"/api/v1/projects/{project['id']}", json={"auth_mode": "OTP"}, headers=_admin(token))
        resp = client.get(f"/api/v1/share/{project['slug']}", headers=_bearer(share_token))
        assert resp.status_code == 401
        assert resp.json()["error"]["auth_mode"] == "OTP"

    def test_unrelated_edit_keeps_sessions(self, api_client) -> None:
        client, token, _ = api_client
        project = _project(client, token, title="Pw Rename", share_password=SHARE_PASSWORD)
        share_token = _verify(client, project["slug"], SHARE_PASSWORD).json()["share_token"]
        client.cookies.clear()

        client.patch(f"/api/v1/projects/{project['id']}", json={"title": "Pw Renamed"}, headers=_admin(token))
        resp = client.get(f"/api/v1/share/{project['slug']}", headers=_bearer(share_token))
        assert resp.status_code == 200
        assert resp.json()["title"] == "Pw Renamed"

    def test_admin_sees_closed_project(self, api_client) -> None:
        client, token, _ = api_client
        project = _project(client, token, title="Pw Closed Admin", share_password=SHARE_PASSWORD, status="CLOSED")
        resp = client.get(f"/api/v1/share/{project['slug']}", headers=_admin(token))
        assert resp.status_code == 200
        assert resp.json()["is_admin"] is True


class TestPasswordLockout:
    def test_lockout_after_max_attempts(self, api_client) -> None:
        client, token, _ = api_client
        project = _project(client, token, title="Lockout", share_password=SHARE_PASSWORD)
        slug = project["slug"]

        for _ in range(4):
            assert _verify(client, slug, "wrong").status_code == 403

        locked = _verify(client, slug, "wrong")
        assert locked.status_code == 429
        assert int(locked.headers["Retry-After"]) > 0

        # Even the right password is refused while locked out.
        again = _verify(client, slug, SHARE_PASSWORD)
        assert again.status_code == 429
        assert "Retry-After" in again.headers

        events = client.get(
            "/api/v1/security/events", params={"project_id": project["id"]}, headers=_admin(token)
        ).json()
        types = [e["type"] for e in events]
        assert types.count("PASSWORD_FAILED") == 5
        assert "PASSWORD_LOCKOUT" in types

    def test_success_clears_failure_count(self, api_client) -> None:
        client, token, _ = api_client
        project = _project(client, token, title="Lockout Reset", share_password=SHARE_PASSWORD)
        slug = project["slug"]
        for _ in range(3):
            _verify(client, slug, "wrong")
        assert _verify(client, slug, SHARE_PASSWORD).status_code == 200

        cache = client.app.state.cache
        assert cache.get_json(password_lockout_key(slug, "testclient")) is None


# ---------------------------------------------------------------------------
# OTP links
# ---------------------------------------------------------------------------


class TestOtpShare:
    @pytest.fixture
    def otp_project(self, api_client):
        client, token, _ = api_client
        project = _project(client, token, title="Otp Project", auth_mode="OTP")
        resp = client.post(
            f"/api/v1/projects/{project['id']}/recipients",
            json={"email": "client@example.com", "name": "Client"},
            headers=_admin(token),
        )
        assert resp.status_code == 201
        return project

    def test_code_is_mailed_to_recipient(self, api_client, otp_project) -> None:
        client, _, _ = api_client
        mailer = client.app.state.mailer
        resp = client.post(f"/api/v1/share/{otp_project['slug']}/send-otp", json={"email": "Client@Example.com"})
        assert resp.status_code == 200
        code = mailer.last_code_for("client@example.com")
        assert code is not None and len(code) == 6

        verified = client.post(
            f"/api/v1/share/{otp_project['slug']}/verify-otp",
            json={"email": "client@example.com", "code": code},
        )
        assert verified.status_code == 200
        assert verified.json()["share_token"]

    def test_code_is_single_use(self, api_client, otp_project) -> None:
        client, _, _ = api_client
        client.post(f"/api/v1/share/{otp_project['slug']}/send-otp", json={"email": "client@example.com"})
        code = client.app.state.mailer.last_code_for("client@example.com")
        body = {"email": "client@example.com", "code": code}
        assert client.post(f"/api/v1/share/{otp_project['slug']}/verify-otp", json=body).status_code == 200
        assert client.post(f"/api/v1/share/{otp_project['slug']}/verify-otp", json=body).status_code == 403

    def test_unknown_email_gets_generic_reply_and_no_mail(self, api_client, otp_project) -> None:
        client, _, _ = api_client
        mailer = client.app.state.mailer
        before = len(mailer.sent)
        known = client.post(f"/api/v1/share/{otp_project['slug']}/send-otp", json={"email": "client@example.com"})
        unknown = client.post(
            f"/api/v1/share/{otp_project['slug']}/send-otp", json={"email": "stranger@example.com"}
        )
        assert unknown.status_code == known.status_code == 200
        assert unknown.json() == known.json()
        assert len(mailer.sent) == before + 1

    def test_wrong_code_is_403(self, api_client, otp_project) -> None:
        client, _, _ = api_client
        client.post(f"/api/v1/share/{otp_project['slug']}/send-otp", json={"email": "client@example.com"})
        resp = client.post(
            f"/api/v1/share/{otp_project['slug']}/verify-otp",
            json={"email": "client@example.com", "code": "000000"},
        )
        assert resp.status_code == 403
        assert resp.json()["error"]["message"] == "Invalid or expired code"

    def test_non_numeric_code_is_400(self, api_client, otp_project) -> None:
        client, _, _ = api_client
        resp = client.post(
            f"/api/v1/share/{otp_project['slug']}/verify-otp",
            json={"email": "client@example.com", "code": "12ab56"},
        )
        assert resp.status_code == 400

    def test_non_recipient_cannot_verify(self, api_client, otp_project) -> None:
        client, _, _ = api_client
        resp = client.post(
            f"/api/v1/share/{otp_project['slug']}/verify-otp",
            json={"email": "stranger@example.com", "code": "123456"},
        )
        assert resp.status_code == 403

    def test_smtp_not_configured_is_503(self, api_client, otp_project) -> None:
        client, _, _ = api_client
        mailer = client.app.state.mailer
        mailer.configured = False
        try:
            resp = client.post(f"/api/v1/share/{otp_project['slug']}/send-otp", json={"email": "client@example.com"})
        finally:
            mailer.configured = True
        assert resp.status_code == 503

    def test_smtp_failure_is_502(self, api_client, otp_project) -> None:
        client, _, _ = api_client
        mailer = client.app.state.mailer
        mailer.fail_with = OSError("connection refused")
        try:
            resp = client.post(f"/api/v1/share/{otp_project['slug']}/send-otp", json={"email": "client@example.com"})
        finally:
            mailer.fail_with = None
        assert resp.status_code == 502
        assert resp.json()["error"]["code"] == "email_failed"

    def test_password_project_rejects_otp(self, api_client) -> None:
        client, token, _ = api_client
        project = _project(client, token, title="Pw Not Otp", share_password=SHARE_PASSWORD)
        resp = client.post(f"/api/v1/share/{project['slug']}/send-otp", json={"email": "client@example.com"})
        assert resp.status_code == 403


# ---------------------------------------------------------------------------
# Guests and open links
# ---------------------------------------------------------------------------


class TestGuestAccess:
    def test_guest_disabled_is_403(self, api_client) -> None:
        client, token, _ = api_client
        project = _project(client, token, title="No Guests", share_password=SHARE_PASSWORD)
        assert client.post(f"/api/v1/share/{project['slug']}/guest").status_code == 403

    def test_guest_sees_latest_version_and_no_comments(self, api_client) -> None:
        client, token, _ = api_client
        project = _project(
            client, token, title="Guests Welcome", share_password=SHARE_PASSWORD, guest_mode=True
        )
        _ready_video(client, token, project["id"])
        latest = _ready_video(client, token, project["id"])
        client.post(
            f"/api/v1/projects/{project['id']}/comments",
            json={"content": "Internal note"},
            headers=_admin(token),
        )

        resp = client.post(f"/api/v1/share/{project['slug']}/guest")
        assert resp.status_code == 200
        assert resp.json()["guest"] is True
        guest_token = resp.json()["share_token"]
        client.cookies.clear()

        view = client.get(f"/api/v1/share/{project['slug']}", headers=_bearer(guest_token)).json()
        assert [v["id"] for v in view["videos"]] == [latest["id"]]
        assert view["comments"] == []
        assert view["is_guest"] is True

        comment = client.post(
            f"/api/v1/share/{project['slug']}/comments",
            json={"content": "Guest note"},
            headers=_bearer(guest_token),
        )
        assert comment.status_code == 403


class TestOpenLinks:
    def test_none_mode_issues_client_session(self, api_client) -> None:
        client, token, _ = api_client
        project = _project(client, token, title="Open Link")
        assert project["auth_mode"] == "NONE"

        resp = client.get(f"/api/v1/share/{project['slug']}")
        assert resp.status_code == 200
        share_token = resp.json()["share_token"]
        client.cookies.clear()

        comment = client.post(
            f"/api/v1/share/{project['slug']}/comments",
            json={"content": "Looks great", "author_name": "Dana"},
            headers=_bearer(share_token),
        )
        assert comment.status_code == 201, comment.text
        data = comment.json()
        assert data["is_internal"] is False
        assert data["author_name"] == "Dana"
        assert "author_email" not in data

    def test_anonymous_viewer_is_authenticated(self, api_client) -> None:
        client, token, _ = api_client
        project = _project(client, token, title="Open Anonymous")
        share_token = client.get(f"/api/v1/share/{project['slug']}").json()["share_token"]
        client.cookies.clear()
        client.post(
            f"/api/v1/share/{project['slug']}/comments",
            json={"content": "Lovely grade", "author_name": "Dana"},
            headers=_bearer(share_token),
        )

        # No token at all: an open link still counts as a signed-in client.
        resp = client.get(f"/api/v1/projects/{project['id']}/comments")
        assert resp.status_code == 200, resp.text
        [comment] = resp.json()
        assert comment["author_name"] == "Dana"
        assert "author_email" not in comment

    def test_guest_setting_change_ends_open_sessions(self, api_client) -> None:
        client, token, _ = api_client
        project = _project(client, token, title="Open Then Guest")
        share_token = client.get(f"/api/v1/share/{project['slug']}").json()["share_token"]
        client.cookies.clear()

        client.patch(f"/api/v1/projects/{project['id']}", json={"guest_mode": True}, headers=_admin(token))
        comment = client.post(
            f"/api/v1/share/{project['slug']}/comments",
            json={"content": "Still here?"},
            headers=_bearer(share_token),
        )
        # The old token is dead; the request is treated as a fresh anonymous viewer.
        assert comment.status_code == 403

    def test_verify_on_project_without_password_succeeds(self, api_client) -> None:
        client, token, _ = api_client
        project = _project(client, token, title="Open Verify")
        assert _verify(client, project["slug"], "anything").status_code == 200


# ---------------------------------------------------------------------------
# Content tokens and streaming
# ---------------------------------------------------------------------------


class TestContentTokens:
    @pytest.fixture
    def storage(self, tmp_path, monkeypatch):
        from api.routes.v1 import content

        monkeypatch.setattr(content, "get_settings", lambda: SimpleNamespace(storage_root=str(tmp_path)))
        return tmp_path

    def _session(self, client: TestClient, slug: str) -> str:
        share_token = _verify(client, slug, SHARE_PASSWORD).json()["share_token"]
        client.cookies.clear()
        return share_token

    def test_stream_preview_with_minting_session(self, api_client, storage) -> None:
        client, token, _ = api_client
        project = _project(client, token, title="Stream Me", share_password=SHARE_PASSWORD)
        video = _ready_video(client, token, project["id"])
        rel = f"projects/{project['id']}/previews/720.mp4"
        (storage / rel).parent.mkdir(parents=True)
        (storage / rel).write_bytes(b"fake-mp4-bytes")
        client.patch(f"/api/v1/videos/{video['id']}", json={"preview_720_path": rel}, headers=_admin(token))

        share_token = self._session(client, project["slug"])
        minted = client.post(
            f"/api/v1/share/{project['slug']}/video-token",
            json={"video_id": video["id"], "quality": "720p"},
            headers=_bearer(share_token),
        )
        assert minted.status_code == 200, minted.text
        url = minted.json()["url"]

        resp = client.get(url, headers=_bearer(share_token))
        assert resp.status_code == 200
        assert resp.content == b"fake-mp4-bytes"
        assert resp.headers["content-type"] == "video/mp4"

        # Same session asking again gets the same token back.
        again = client.post(
            f"/api/v1/share/{project['slug']}/video-token",
            json={"video_id": video["id"], "quality": "720p"},
            headers=_bearer(share_token),
        )
        assert again.json()["url"] == url

    def test_token_is_bound_to_session(self, api_client, storage) -> None:
        client, token, _ = api_client
        project = _project(client, token, title="Bound Token", share_password=SHARE_PASSWORD)
        video = _ready_video(client, token, project["id"])
        first = self._session(client, project["slug"])
        second = self._session(client, project["slug"])

        url = client.post(
            f"/api/v1/share/{project['slug']}/video-token",
            json={"video_id": video["id"]},
            headers=_bearer(first),
        ).json()["url"]

        assert client.get(url).status_code == 401
        assert client.get(url, headers=_bearer(second)).status_code == 403
        events = client.get("/api/v1/security/events", params={"type": "TOKEN_SESSION_MISMATCH"}, headers=_admin(token))
        assert any(e["video_id"] == video["id"] for e in events.json())

    def test_original_requires_approval_for_clients(self, api_client) -> None:
        client, token, _ = api_client
        project = _project(client, token, title="Original Gate", share_password=SHARE_PASSWORD)
        video = _ready_video(client, token, project["id"])
        share_token = self._session(client, project["slug"])
        body = {"video_id": video["id"], "quality": "original"}

        denied = client.post(f"/api/v1/share/{project['slug']}/video-token", json=body, headers=_bearer(share_token))
        assert denied.status_code == 403

        approve = client.post(
            f"/api/v1/share/{project['slug']}/approve", json={"video_id": video["id"]}, headers=_bearer(share_token)
        )
        assert approve.status_code == 200, approve.text
        allowed = client.post(
            f"/api/v1/share/{project['slug']}/video-token", json=body, headers=_bearer(share_token)
        )
        assert allowed.status_code == 200

    def test_video_from_other_project_is_404(self, api_client) -> None:
        client, token, _ = api_client
        project = _project(client, token, title="Mine", share_password=SHARE_PASSWORD)
        other = _project(client, token, title="Theirs")
        foreign = _ready_video(client, token, other["id"])
        share_token = self._session(client, project["slug"])
        resp = client.post(
            f"/api/v1/share/{project['slug']}/video-token",
            json={"video_id": foreign["id"]},
            headers=_bearer(share_token),
        )
        assert resp.status_code == 404

    def test_password_change_revokes_content_tokens(self, api_client) -> None:
        client, token, _ = api_client
        project = _project(client, token, title="Revoke On Change", share_password=SHARE_PASSWORD)
        video = _ready_video(client, token, project["id"])
        share_token = self._session(client, project["slug"])
        url = client.post(
            f"/api/v1/share/{project['slug']}/video-token",
            json={"video_id": video["id"]},
            headers=_bearer(share_token),
        ).json()["url"]

        client.put(
            f"/api/v1/projects/{project['id']}/password", json={"password": "new-password"}, headers=_admin(token)
        )
        # Both the share session and the content token are gone.
        assert client.get(url, headers=_bearer(share_token)).status_code == 401
        admin_view = client.get(url, headers=_admin(token))
        assert admin_view.status_code == 403

    def test_missing_file_is_404(self, api_client, storage) -> None:
        client, token, _ = api_client
        project = _project(client, token, title="No File", share_password=SHARE_PASSWORD)
        video = _ready_video(client, token, project["id"])
        client.patch(
            f"/api/v1/videos/{video['id']}", json={"preview_720_path": "missing/720.mp4"}, headers=_admin(token)
        )
        share_token = self._session(client, project["slug"])
        url = client.post(
            f"/api/v1/share/{project['slug']}/video-token",
            json={"video_id": video["id"]},
            headers=_bearer(share_token),
        ).json()["url"]
        assert client.get(url, headers=_bearer(share_token)).status_code == 404
