"""
Respondent fill API tests — /api/v1/fill/<link>.

Wire contract:
    GET  /fill/<link>          → { instance_id, template_content, is_locked,
                                   submitted_at, answers, version }
    POST /fill/<link>/save     → 200 { success, version, updated_at }
                                 409 { conflict, server_version, updated_at }
    POST /fill/<link>/submit   → 200 { success } · 403 when already locked
"""

import json

BASE = "/api/v1/fill"


def _save(client, link, qid, value, version):
    return client.post(
        f"{BASE}/{link}/save",
        json={"question_id": qid, "answer_value": value, "version": version},
    )


class TestGet:
    def test_get_payload(self, client, instance):
        res = client.get(f"{BASE}/{instance['unique_link']}")
        assert res.status_code == 200
        data = res.get_json()
        assert data["instance_id"] == instance["id"]
        assert data["is_locked"] is False
        assert data["submitted_at"] is None
        assert data["answers"] == {}
        assert data["version"] == 1
        assert json.loads(data["template_content"])["items"][0]["id"] == "has_sec"

    def test_unknown_link_404(self, client):
        res = client.get(f"{BASE}/{'0' * 32}")
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"

    def test_responses_are_not_cached(self, client, instance):
        res = client.get(f"{BASE}/{instance['unique_link']}")
        assert res.headers["Cache-Control"] == "no-store"
        assert res.headers["Referrer-Policy"] == "no-referrer"


class TestSave:
    def test_save_then_conflict(self, client, instance):
        link = instance["unique_link"]
        res = _save(client, link, "has_sec", "yes", 0)
        assert res.status_code == 200
        body = res.get_json()
        assert body["success"] is True
        assert body["version"] == 1

        assert _save(client, link, "has_sec", "no", 1).get_json()["version"] == 2

        res = _save(client, link, "has_sec", "yes", 1)
        assert res.status_code == 409
        body = res.get_json()
        assert body["conflict"] is True
        assert body["server_version"] == 2
        assert "updated_at" in body

    def test_answers_visible_on_reload(self, client, instance):
        link = instance["unique_link"]
        _save(client, link, "detail", "ISO 27001", 0)
        answers = client.get(f"{BASE}/{link}").get_json()["answers"]
        assert answers["detail"]["value"] == "ISO 27001"
        assert answers["detail"]["version"] == 1

    def test_missing_version_counts_as_zero(self, client, instance):
        res = client.post(f"{BASE}/{instance['unique_link']}/save",
                          json={"question_id": "q1", "answer_value": "x"})
        assert res.status_code == 200
        assert res.get_json()["version"] == 1

    def test_missing_question_id_400(self, client, instance):
        res = client.post(f"{BASE}/{instance['unique_link']}/save", json={"answer_value": "x"})
        assert res.status_code == 400
        assert res.get_json()["error"] == "Question ID required"

    def test_bad_version_422(self, client, instance):
        res = _save(client, instance["unique_link"], "q1", "x", "abc")
        assert res.status_code == 422

    def test_unknown_link_404(self, client):
        assert _save(client, "missing", "q1", "x", 0).status_code == 404

    def test_locked_403(self, client, instance):
        link = instance["unique_link"]
        client.post(f"{BASE}/{link}/submit")
        res = _save(client, link, "q1", "x", 0)
        assert res.status_code == 403
        assert res.get_json()["code"] == "ERR_LOCKED"

    def test_form_posts_refused(self, client, instance):
        res = client.post(f"{BASE}/{instance['unique_link']}/save",
                          data="question_id=q1", content_type="application/x-www-form-urlencoded")
        assert res.status_code == 415


class TestSubmit:
    def test_submit_then_already_submitted(self, client, instance):
        link = instance["unique_link"]
        res = client.post(f"{BASE}/{link}/submit")
        assert res.status_code == 200
        assert res.get_json() == {"success": True}

        data = client.get(f"{BASE}/{link}").get_json()
        assert data["is_locked"] is True
        assert data["submitted_at"] is not None

        res = client.post(f"{BASE}/{link}/submit")
        assert res.status_code == 403
        assert res.get_json()["error"] == "Already submitted"

    def test_submit_unknown_404(self, client):
        assert client.post(f"{BASE}/missing/submit").status_code == 404
