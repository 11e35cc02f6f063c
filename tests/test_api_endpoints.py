"""HTTP-level tests: routing, acting-user resolution and the error envelope."""


def test_health(client):
    assert client.get("/health").get_json()["status"] == "healthy"
    assert client.get("/api/v1/health/ready").get_json() == {"status": "ok"}

    res = client.get("/api/v1/health/live")
    assert res.status_code == 200
    assert res.get_json()["checks"]["database"]["status"] == "ok"


def test_missing_acting_user_is_400(client):
    res = client.get("/api/v1/projects")
    assert res.status_code == 400
    assert res.get_json()["code"] == "ERR_VALIDATION_REQUIRED"


def test_non_integer_user_id_is_400(client):
    res = client.get("/api/v1/projects", headers={"X-User-Id": "abc"})
    assert res.status_code == 400
    assert res.get_json()["code"] == "ERR_VALIDATION_INVALID"


def test_non_json_body_is_415(client, headers):
    res = client.post("/api/v1/projects", data="name=x", headers=headers, content_type="text/plain")
    assert res.status_code == 415


def test_user_upsert(client):
    body = {"email": "new@example.com", "name": "New"}
    assert client.post("/api/v1/users", json=body).status_code == 201

    res = client.post("/api/v1/users", json={**body, "name": "Renamed"})
    assert res.status_code == 200
    assert res.get_json()["name"] == "Renamed"


def test_project_crud(client, headers):
    res = client.post("/api/v1/projects", json={"name": "Launch"}, headers=headers)
    assert res.status_code == 201
    project = res.get_json()
    assert project["progress"] == 0

    res = client.put(f"/api/v1/projects/{project['id']}", json={"status": "completed"}, headers=headers)
    assert res.status_code == 200
    assert res.get_json()["status"] == "completed"

    listing = client.get("/api/v1/projects", headers=headers).get_json()
    assert listing["total"] == 1

    res = client.delete(f"/api/v1/projects/{project['id']}", headers=headers)
    assert res.get_json() == {"deleted": True}
    assert client.get(f"/api/v1/projects/{project['id']}", headers=headers).status_code == 404


def test_project_missing_name_is_400(client, headers):
    res = client.post("/api/v1/projects", json={}, headers=headers)
    assert res.status_code == 400


def test_project_bad_status_is_422(client, headers):
    res = client.post("/api/v1/projects", json={"name": "X", "status": "paused"}, headers=headers)
    assert res.status_code == 422
    assert res.get_json()["code"] == "ERR_VALIDATION_CONSTRAINT"


def test_foreign_project_is_403(client, headers, other_headers):
    pid = client.post("/api/v1/projects", json={"name": "Mine"}, headers=headers).get_json()["id"]
    res = client.get(f"/api/v1/projects/{pid}", headers=other_headers)
    assert res.status_code == 403
    assert res.get_json()["code"] == "ERR_FORBIDDEN"


def test_task_toggle_updates_progress(client, headers):
    pid = client.post("/api/v1/projects", json={"name": "P"}, headers=headers).get_json()["id"]
    phase = client.post(f"/api/v1/projects/{pid}/phases", json={"name": "Build"}, headers=headers).get_json()
    task = client.post(f"/api/v1/phases/{phase['id']}/tasks", json={"title": "T"}, headers=headers).get_json()

    res = client.post(f"/api/v1/tasks/{task['id']}/toggle", headers=headers)
    assert res.status_code == 200

    progress = client.get(f"/api/v1/projects/{pid}", headers=headers).get_json()["progress"]
    assert progress == 100


def test_customer_duplicate_email_is_409(client, headers):
    body = {"name": "Ada", "email": "ada@acme.io"}
    assert client.post("/api/v1/customers", json=body, headers=headers).status_code == 201

    res = client.post("/api/v1/customers", json={**body, "email": "ADA@acme.io"}, headers=headers)
    assert res.status_code == 409
    assert res.get_json()["details"] == {"field": "email"}


def test_deal_stage_move(client, headers):
    cid = client.post(
        "/api/v1/customers", json={"name": "Ada", "email": "ada@acme.io"}, headers=headers,
    ).get_json()["id"]
    deal = client.post(
        "/api/v1/deals", json={"customer_id": cid, "title": "Pilot", "value": 1000}, headers=headers,
    ).get_json()

    assert client.post(f"/api/v1/deals/{deal['id']}/stage", json={}, headers=headers).status_code == 400

    res = client.post(f"/api/v1/deals/{deal['id']}/stage", json={"stage": "closed-won"}, headers=headers)
    assert res.status_code == 200
    assert res.get_json()["stage"] == "closed-won"

    unread = client.get("/api/v1/notifications/unread-count", headers=headers).get_json()
    assert unread["unread_count"] == 1


def test_campaign_metrics_flow(client, headers):
    cid = client.post(
        "/api/v1/campaigns", json={"name": "Spring", "type": "email", "budget": 500}, headers=headers,
    ).get_json()["id"]
    res = client.post(
        f"/api/v1/campaigns/{cid}/metrics",
        json={"impressions": 100, "clicks": 10, "cost": 20, "revenue": 60},
        headers=headers,
    )
    assert res.status_code == 201

    agg = client.get(f"/api/v1/campaigns/{cid}/metrics/aggregate", headers=headers).get_json()
    assert agg["total_clicks"] == 10
    assert agg["total_roi"] == 200


def test_idea_scoring_flow(client, headers):
    idea = client.post("/api/v1/ideas", json={"title": "Dark mode"}, headers=headers).get_json()
    crit = client.post(
        "/api/v1/idea-criteria", json={"name": "Impact", "weight": 5}, headers=headers,
    ).get_json()

    res = client.post(
        f"/api/v1/ideas/{idea['id']}/scores", json={"criteria_id": crit["id"], "score": 8}, headers=headers,
    )
    assert res.status_code == 200

    res = client.post(
        f"/api/v1/ideas/{idea['id']}/scores", json={"criteria_id": crit["id"], "score": 11}, headers=headers,
    )
    assert res.status_code == 422


def test_insight_dismiss(client, headers):
    iid = client.post(
        "/api/v1/insights", json={"title": "Churn", "category": "trend", "priority": 4}, headers=headers,
    ).get_json()["id"]
    assert client.post(f"/api/v1/insights/{iid}/dismiss", headers=headers).status_code == 200
    assert client.get("/api/v1/insights", headers=headers).get_json()["total"] == 0


def test_notifications_and_activities(client, headers, other_headers):
    nid = client.post("/api/v1/notifications", json={"title": "Hi"}, headers=headers).get_json()["id"]
    assert client.patch(f"/api/v1/notifications/{nid}/read", headers=other_headers).status_code == 403
    assert client.patch(f"/api/v1/notifications/{nid}/read", headers=headers).status_code == 200

    res = client.post("/api/v1/activities", json={"type": "meeting", "title": "Standup"}, headers=headers)
    assert res.status_code == 201
    feed = client.get("/api/v1/activities", headers=headers).get_json()
    assert [a["title"] for a in feed["items"]] == ["Standup"]


def test_dashboard_overview(client, headers):
    client.post("/api/v1/projects", json={"name": "P"}, headers=headers)
    overview = client.get("/api/v1/dashboard", headers=headers).get_json()
    assert overview["project_count"] == 1
    assert overview["development"]["progress"] == 0


def test_unknown_user_is_404(client):
    res = client.get("/api/v1/dashboard", headers={"X-User-Id": "9999"})
    assert res.status_code == 404
    assert res.get_json() == {"error": "User not found", "code": "ERR_NOT_FOUND"}


def test_missing_project_message_omits_id(client, headers):
    res = client.get("/api/v1/projects/4242", headers=headers)
    assert res.status_code == 404
    assert res.get_json()["error"] == "Project not found"


def test_malformed_score_entries_are_rejected(client, headers):
    idea = client.post("/api/v1/ideas", json={"title": "Dark mode"}, headers=headers).get_json()

    res = client.post(f"/api/v1/ideas/{idea['id']}/scores", json={"scores": [5]}, headers=headers)
    assert res.status_code == 422
    assert res.get_json()["code"] == "ERR_VALIDATION_CONSTRAINT"

    res = client.post(f"/api/v1/ideas/{idea['id']}/scores", json={"scores": "all"}, headers=headers)
    assert res.status_code == 400


def test_reorder_without_criteria_id_is_rejected(client, headers):
    client.post("/api/v1/idea-criteria", json={"name": "Impact", "weight": 5}, headers=headers)
    res = client.post("/api/v1/idea-criteria/reorder", json={"orders": [{"order": 2}]}, headers=headers)
    assert res.status_code == 422
    assert res.get_json()["details"] == {"criteria_id": None}


def test_copy_scores_with_text_target_is_rejected(client, headers):
    idea = client.post("/api/v1/ideas", json={"title": "Dark mode"}, headers=headers).get_json()
    res = client.post(
        f"/api/v1/ideas/{idea['id']}/copy-scores", json={"target_idea_id": "abc"}, headers=headers,
    )
    assert res.status_code == 422
    assert res.get_json()["details"] == {"target_idea_id": "abc"}


def test_deal_with_text_customer_id_is_rejected(client, headers):
    res = client.post("/api/v1/deals", json={"customer_id": "abc", "title": "Pilot"}, headers=headers)
    assert res.status_code == 422


def test_fractional_values_are_not_truncated(client, headers):
    res = client.post(
        "/api/v1/insights", json={"title": "Churn", "category": "trend", "priority": 4.9}, headers=headers,
    )
    assert res.status_code == 422
    res = client.post("/api/v1/idea-criteria", json={"name": "Impact", "weight": 10.5}, headers=headers)
    assert res.status_code == 422


def test_roadmap_flow(client, headers):
    project = client.post("/api/v1/projects", json={"name": "Platform"}, headers=headers).get_json()
    res = client.post(
        f"/api/v1/projects/{project['id']}/milestones",
        json={"title": "Beta", "due_date": "2099-01-15", "owner": "ada"}, headers=headers,
    )
    assert res.status_code == 201
    milestone = res.get_json()
    assert milestone["owner_initial"] == "A"

    feature = client.post(
        f"/api/v1/projects/{project['id']}/features",
        json={"title": "SSO", "milestone_id": milestone["id"], "priority": 5}, headers=headers,
    ).get_json()
    assert client.post(f"/api/v1/features/{feature['id']}/complete", headers=headers).status_code == 200

    detail = client.get(f"/api/v1/milestones/{milestone['id']}/features", headers=headers).get_json()
    assert (detail["progress"], detail["status"], detail["completed_features"]) == (100, "completed", 1)
    stats = client.get("/api/v1/features/stats", headers=headers).get_json()
    assert stats["completed"] == 1
    assert client.post(f"/api/v1/features/{feature['id']}/archive", headers=headers).status_code == 404


def test_milestone_with_bad_due_date_is_rejected(client, headers):
    project = client.post("/api/v1/projects", json={"name": "Platform"}, headers=headers).get_json()
    res = client.post(
        f"/api/v1/projects/{project['id']}/milestones", json={"title": "Beta", "due_date": "soon"}, headers=headers,
    )
    assert res.status_code == 422
    res = client.post(f"/api/v1/projects/{project['id']}/milestones", json={"title": "Beta"}, headers=headers)
    assert res.status_code == 400


def test_campaign_from_template(client, headers):
    template = client.post(
        "/api/v1/campaigns/templates", json={"name": "Webinar", "type": "event"}, headers=headers,
    ).get_json()

    res = client.post(f"/api/v1/campaigns/templates/{template['id']}/campaign", json={"name": "Q3"}, headers=headers)
    assert res.status_code == 400

    res = client.post(
        f"/api/v1/campaigns/templates/{template['id']}/campaign",
        json={"name": "Q3 webinar", "start_date": "2026-07-01"}, headers=headers,
    )
    assert res.status_code == 201
    assert (res.get_json()["status"], res.get_json()["type"]) == ("draft", "event")
    listed = client.get("/api/v1/campaigns/templates?type=event", headers=headers).get_json()
    assert [t["popularity"] for t in listed["items"]] == [1]


def test_template_of_other_user_is_403(client, headers, other_headers):
    template = client.post(
        "/api/v1/campaigns/templates", json={"name": "Webinar", "type": "event"}, headers=headers,
    ).get_json()
    res = client.get(f"/api/v1/campaigns/templates/{template['id']}", headers=other_headers)
    assert res.status_code == 403


def test_top_customers_and_journey(client, headers):
    customer = client.post(
        "/api/v1/customers", json={"name": "Ada", "email": "ada@acme.io"}, headers=headers,
    ).get_json()
    client.post(
        "/api/v1/deals",
        json={"customer_id": customer["id"], "title": "Pilot", "value": 700, "stage": "closed-won"},
        headers=headers,
    )

    top = client.get("/api/v1/customers/top?limit=5", headers=headers).get_json()
    assert top["total"] == 1
    assert top["items"][0]["won_value"] == 700

    journey = client.get(f"/api/v1/customers/{customer['id']}/journey", headers=headers).get_json()
    assert [e["type"] for e in journey["timeline"]] == ["customer_created", "deal_created"]


def test_generate_insights_endpoint(client, headers):
    res = client.post("/api/v1/insights/generate", headers=headers)
    assert res.status_code == 201
    assert {i["title"] for i in res.get_json()["items"]} == {"Getting Started", "Build Your Customer Base"}
    assert client.get("/api/v1/insights", headers=headers).get_json()["total"] == 2


def test_dashboard_next_steps(client, headers):
    assert client.get("/api/v1/dashboard/next-steps", headers=headers).get_json() == {"items": [], "total": 0}

    client.post("/api/v1/campaigns", json={"name": "Spring", "type": "email", "status": "active"}, headers=headers)
    steps = client.get("/api/v1/dashboard/next-steps", headers=headers).get_json()
    assert [s["title"] for s in steps["items"]] == ["Launch Spring"]
