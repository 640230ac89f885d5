"""
API tests for eligibility, downloads, streaming and history
"""
import pytest

from db import DownloadRecord, DownloadCounter

MP4_HEADER = b"\x00\x00\x00\x18ftypmp42\x00\x00\x00\x00"


def download(client, video, headers, quality="480p"):
    return client.post(f"/api/download/video/{video.id}", json={"quality": quality}, headers=headers)


class TestEligibilityEndpoint:
    def test_own_eligibility(self, client, user, auth_headers):
        resp = client.get(f"/api/download/eligibility/{user.id}", headers=auth_headers)

        assert resp.status_code == 200
        data = resp.json()
        assert data["canDownload"] is True
        assert data["maxDownloads"] == 1
        assert data["availableQualities"] == ["480p", "360p"]
        assert data["subscription"]["planType"] == "free"

    def test_other_users_eligibility_forbidden(self, client, user, gold_user, auth_headers):
        resp = client.get(f"/api/download/eligibility/{gold_user.id}", headers=auth_headers)
        assert resp.status_code == 403

    def test_admin_can_check_anyone(self, client, user, admin_user, headers_for):
        resp = client.get(f"/api/download/eligibility/{user.id}", headers=headers_for(admin_user))
        assert resp.status_code == 200

    def test_malformed_id(self, client, auth_headers):
        resp = client.get("/api/download/eligibility/abc", headers=auth_headers)
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Invalid user ID"

    @pytest.mark.parametrize("raw", ["\u00b2", "1\u00b2", "\u0661", "0", "-3"])
    def test_non_ascii_or_non_positive_id(self, client, auth_headers, raw):
        resp = client.get(f"/api/download/eligibility/{raw}", headers=auth_headers)
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Invalid user ID"

    def test_requires_token(self, client, user):
        assert client.get(f"/api/download/eligibility/{user.id}").status_code == 401


class TestDownload:
    """POST /api/download/video/{id}"""

    def test_free_user_first_download(self, client, db_session, user, auth_headers, make_video):
        video = make_video(user, title="Cat Video")

        resp = download(client, video, auth_headers)

        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["download"]["quality"] == "480p"
        assert body["download"]["downloadFilename"] == "Cat-Video-480p.mp4"
        assert body["download"]["streamUrl"].startswith(f"/api/download/stream/{body['download']['id']}?token=")
        assert db_session.query(DownloadRecord).count() == 1
        assert db_session.query(DownloadCounter).one().count == 1

    def test_free_user_second_download_needs_premium(self, client, user, auth_headers, make_video):
        video = make_video(user)
        assert download(client, video, auth_headers).status_code == 200

        resp = download(client, video, auth_headers)

        assert resp.status_code == 403
        body = resp.json()
        assert body["needsPremium"] is True
        assert body["success"] is False
        assert body["currentPlan"] == "free"
        assert body["downloadsToday"] == 1
        assert "Upgrade to premium" in body["message"]

    def test_free_user_cannot_download_720p(self, client, user, auth_headers, make_video):
        video = make_video(user)

        resp = download(client, video, auth_headers, quality="720p")

        assert resp.status_code == 400
        assert resp.json()["availableQualities"] == ["480p", "360p"]

    def test_gold_user_downloads_repeatedly_in_hd(self, client, db_session, gold_user, headers_for, make_video):
        video = make_video(gold_user)
        headers = headers_for(gold_user)

        for _ in range(3):
            resp = download(client, video, headers, quality="720p")
            assert resp.status_code == 200
            assert resp.json()["download"]["isPremium"] is True
        assert db_session.query(DownloadRecord).count() == 3
        assert db_session.query(DownloadCounter).count() == 0

    def test_quality_label_is_normalised(self, client, db_session, gold_user, headers_for, make_video):
        video = make_video(gold_user, title="Cat Video")

        resp = download(client, video, headers_for(gold_user), quality=" 720P ")

        assert resp.status_code == 200
        body = resp.json()["download"]
        assert body["quality"] == "720p"
        assert body["downloadFilename"] == "Cat-Video-720p.mp4"
        assert db_session.query(DownloadRecord).one().quality == "720p"

    def test_unknown_video(self, client, auth_headers):
        assert client.post("/api/download/video/999", json={}, headers=auth_headers).status_code == 404

    def test_malformed_video_id(self, client, auth_headers):
        resp = client.post("/api/download/video/12abc", json={}, headers=auth_headers)
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Invalid video ID"

    def test_missing_file_does_not_use_quota(self, client, db_session, user, auth_headers, make_video):
        video = make_video(user, write=False)

        resp = download(client, video, auth_headers)

        assert resp.status_code == 404
        assert db_session.query(DownloadCounter).count() == 0

    def test_corrupt_file(self, client, user, auth_headers, make_video):
        video = make_video(user, content=b"<html>oops</html>")
        assert download(client, video, auth_headers).status_code == 500

    def test_deleting_history_does_not_refund(self, client, user, auth_headers, make_video):
        video = make_video(user)
        download_id = download(client, video, auth_headers).json()["download"]["id"]

        assert client.delete(f"/api/download/{download_id}", headers=auth_headers).status_code == 200
        assert download(client, video, auth_headers).status_code == 403


class TestStream:
    """GET /api/download/stream/{id}"""

    def _start(self, client, user, auth_headers, make_video, content):
        video = make_video(user, content=content)
        return download(client, video, auth_headers).json()["download"]

    def test_full_file(self, client, user, auth_headers, make_video):
        content = MP4_HEADER + bytes(range(200))
        dl = self._start(client, user, auth_headers, make_video, content)

        resp = client.get(dl["streamUrl"])

        assert resp.status_code == 200
        assert resp.content == content
        assert resp.headers["content-type"] == "video/mp4"
        assert resp.headers["accept-ranges"] == "bytes"
        assert "attachment;" in resp.headers["content-disposition"]
        assert resp.headers["cache-control"] == "no-cache, no-store, must-revalidate"

    def test_partial_content(self, client, user, auth_headers, make_video):
        content = MP4_HEADER + bytes(range(200))
        dl = self._start(client, user, auth_headers, make_video, content)

        resp = client.get(dl["streamUrl"], headers={"Range": "bytes=0-3"})

        assert resp.status_code == 206
        assert resp.content == content[:4]
        assert resp.headers["content-range"] == f"bytes 0-3/{len(content)}"

    def test_unsatisfiable_range(self, client, user, auth_headers, make_video):
        content = MP4_HEADER + b"abc"
        dl = self._start(client, user, auth_headers, make_video, content)

        resp = client.get(dl["streamUrl"], headers={"Range": "bytes=9999-"})

        assert resp.status_code == 416
        assert resp.headers["content-range"] == f"bytes */{len(content)}"

    def test_bad_token(self, client, user, auth_headers, make_video):
        dl = self._start(client, user, auth_headers, make_video, MP4_HEADER)
        assert client.get(f"/api/download/stream/{dl['id']}?token=forged").status_code == 403

    def test_token_bound_to_download(self, client, user, auth_headers, make_video, gold_user, headers_for):
        video = make_video(gold_user)
        first = download(client, video, headers_for(gold_user)).json()["download"]
        second = download(client, video, headers_for(gold_user)).json()["download"]
        token = first["streamUrl"].split("token=")[1]

        assert client.get(f"/api/download/stream/{second['id']}?token={token}").status_code == 403


class TestHistoryAndStats:
    def test_history_newest_first_with_pagination(self, client, gold_user, headers_for, make_video):
        headers = headers_for(gold_user)
        a = make_video(gold_user, title="A", filename="a.mp4")
        b = make_video(gold_user, title="B", filename="b.mp4")
        download(client, a, headers)
        download(client, b, headers)

        resp = client.get(f"/api/download/history/{gold_user.id}?page=1&limit=1", headers=headers)

        assert resp.status_code == 200
        data = resp.json()
        assert [d["videoTitle"] for d in data["downloads"]] == ["B"]
        assert data["pagination"] == {
            "currentPage": 1, "totalPages": 2, "totalDownloads": 2,
            "hasNextPage": True, "hasPrevPage": False,
        }

    def test_stats(self, client, user, auth_headers, make_video):
        download(client, make_video(user), auth_headers)

        data = client.get(f"/api/download/stats/{user.id}", headers=auth_headers).json()

        assert data["totalDownloads"] == 1
        assert data["todayDownloads"] == 1
        assert data["thisMonthDownloads"] == 1
        assert data["subscription"]["canDownloadToday"] is False
        assert data["subscription"]["remainingDownloads"] == 0

    def test_delete_someone_elses_download(self, client, user, gold_user, headers_for, auth_headers, make_video):
        video = make_video(gold_user)
        dl = download(client, video, headers_for(gold_user)).json()["download"]

        assert client.delete(f"/api/download/{dl['id']}", headers=auth_headers).status_code == 404
