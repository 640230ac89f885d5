"""
API tests for likes and dislikes
"""
from db import VideoReaction


def react(client, video, headers, is_like=True):
    return client.post(f"/api/like/{video.id}", json={"isLike": is_like}, headers=headers)


class TestReact:
    def test_like_then_unlike(self, client, db_session, user, auth_headers, make_video):
        video = make_video(user)

        added = react(client, video, auth_headers).json()
        assert added["action"] == "added"
        assert added["liked"] is True
        assert added["likes"] == 1

        removed = react(client, video, auth_headers).json()
        assert removed["action"] == "removed"
        assert removed["likes"] == 0
        assert db_session.query(VideoReaction).count() == 0

    def test_switch_like_to_dislike(self, client, db_session, user, auth_headers, make_video):
        video = make_video(user)
        react(client, video, auth_headers)

        body = react(client, video, auth_headers, is_like=False).json()

        assert body["action"] == "switched"
        assert body["disliked"] is True
        assert (body["likes"], body["dislikes"]) == (0, 1)
        assert db_session.query(VideoReaction).one().reaction == "dislike"

    def test_counts_across_users(self, client, user, gold_user, headers_for, auth_headers, make_video):
        video = make_video(user)
        react(client, video, auth_headers)
        react(client, video, headers_for(gold_user))

        status = client.get(f"/api/like/status/{video.id}", headers=auth_headers).json()

        assert status == {"reaction": "like", "likes": 2, "dislikes": 0}
        assert client.get(f"/api/videos/{video.id}").json()["likes"] == 2

    def test_unknown_video(self, client, auth_headers):
        assert client.post("/api/like/999", json={}, headers=auth_headers).status_code == 404


class TestLikedList:
    def test_split_by_reaction(self, client, user, auth_headers, make_video):
        liked = make_video(user, title="Good", filename="a.mp4")
        disliked = make_video(user, title="Bad", filename="b.mp4")
        react(client, liked, auth_headers)
        react(client, disliked, auth_headers, is_like=False)

        body = client.get(f"/api/like/{user.id}", headers=auth_headers).json()

        assert body["total"] == 2
        assert [v["title"] for v in body["likes"]] == ["Good"]
        assert [v["title"] for v in body["dislikes"]] == ["Bad"]

    def test_malformed_user_id(self, client, auth_headers):
        assert client.get("/api/like/abc", headers=auth_headers).status_code == 400
