"""API endpoint tests for PolicyLens.

Tests cover the health check, sign-in flow, ownership rules on analyses,
the clause cache, insights, usage sessions, AI routes and error payloads.
"""

import datetime
from urllib.parse import parse_qs, urlparse

import pytest

from app.models import User
from app.routers import auth as auth_router
from app.services.db_storage import DbStorage
from app.services.storage import memory_storage
from app.utils.datetime_helpers import utcnow
from conftest import POLICY_TEXT, analysis_payload


class TestHealthCheck:
    def test_health_returns_200(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "healthy"
        assert "version" in data
        assert data["ai_mode"] == "mock"
        assert data["storage_backend"] == "database"

    def test_health_reports_oauth_status(self, client):
        data = client.get("/health").json()
        assert data["google_oauth_enabled"] is False


class TestAuthEndpoints:
    def test_auth_status_when_disabled(self, client):
        resp = client.get("/api/auth/status")
        assert resp.status_code == 200
        assert resp.json() == {"googleEnabled": False, "authenticated": False}

    def test_google_login_not_configured(self, client):
        resp = client.get("/api/auth/google", follow_redirects=False)
        assert resp.status_code == 501
        assert resp.json()["error"] == "Google OAuth not configured"

    def test_current_user_requires_auth(self, client):
        resp = client.get("/api/user")
        assert resp.status_code == 401
        assert resp.json() == {"error": "Authentication required"}

    def test_current_user_when_signed_in(self, client, make_user, login_as):
        login_as(make_user(name="Asha"))
        resp = client.get("/api/user")
        assert resp.status_code == 200
        data = resp.json()
        assert data["name"] == "Asha"
        assert data["preferredLanguage"] == "en"
        assert "password" not in data

    def test_logout(self, client):
        resp = client.post("/api/auth/logout")
        assert resp.status_code == 200
        assert resp.json() == {"success": True}


class TestGoogleSignIn:
    @pytest.fixture
    def oauth_enabled(self, monkeypatch, settings):
        monkeypatch.setattr(settings, "google_client_id", "client-id")
        monkeypatch.setattr(settings, "google_client_secret", "client-secret")
        return settings

    def _start_login(self, client):
        resp = client.get("/api/auth/google", follow_redirects=False)
        assert resp.status_code == 302
        location = resp.headers["location"]
        assert location.startswith(auth_router.GOOGLE_AUTH_URL)
        return parse_qs(urlparse(location).query)["state"][0]

    def test_full_sign_in_flow(self, client, monkeypatch, oauth_enabled, db_session):
        async def fake_exchange(code):
            assert code == "auth-code"
            return {"sub": "google-123", "email": "asha@example.com", "name": "Asha Rao"}

        monkeypatch.setattr(auth_router, "exchange_code_for_userinfo", fake_exchange)
        state = self._start_login(client)

        resp = client.get(
            "/api/auth/google/callback",
            params={"code": "auth-code", "state": state},
            follow_redirects=False,
        )
        assert resp.status_code == 302
        assert resp.headers["location"] == oauth_enabled.post_login_redirect

        me = client.get("/api/user").json()
        assert me["email"] == "asha@example.com"
        assert me["username"] == "Asha Rao"
        assert me["lastLoginAt"] is not None
        assert client.get("/api/auth/status").json()["authenticated"] is True

        client.post("/api/auth/logout")
        assert client.get("/api/user").status_code == 401

    def test_second_sign_in_reuses_account(self, client, monkeypatch, oauth_enabled, db_session):
        async def fake_exchange(code):
            return {"sub": "google-1", "email": "same@example.com", "name": "Same Person"}

        monkeypatch.setattr(auth_router, "exchange_code_for_userinfo", fake_exchange)
        for _ in range(2):
            state = self._start_login(client)
            client.get("/api/auth/google/callback", params={"code": "c", "state": state}, follow_redirects=False)

        assert DbStorage(db_session).get_user_by_google_id("google-1") is not None
        assert db_session.query(User).count() == 1

    def test_callback_rejects_bad_state(self, client, oauth_enabled):
        self._start_login(client)
        resp = client.get(
            "/api/auth/google/callback",
            params={"code": "c", "state": "forged"},
            follow_redirects=False,
        )
        assert resp.status_code == 400

    def test_callback_requires_code(self, client, oauth_enabled):
        state = self._start_login(client)
        resp = client.get("/api/auth/google/callback", params={"state": state}, follow_redirects=False)
        assert resp.status_code == 400

    def test_callback_exchange_failure(self, client, monkeypatch, oauth_enabled):
        async def failing_exchange(code):
            raise auth_router.OAuthError("token exchange returned 401")

        monkeypatch.setattr(auth_router, "exchange_code_for_userinfo", failing_exchange)
        state = self._start_login(client)
        resp = client.get(
            "/api/auth/google/callback",
            params={"code": "c", "state": state},
            follow_redirects=False,
        )
        assert resp.status_code == 400
        assert resp.json()["error"] == "OAuth authentication failed"

    def test_username_collision_gets_suffix(self, db_session):
        storage = DbStorage(db_session)
        storage.create_user({"username": "Asha Rao", "email": "first@example.com"})
        user = auth_router.find_or_create_google_user(
            storage, {"sub": "g-2", "name": "Asha Rao", "email": "first@example.com"}
        )
        assert user.username.startswith("Asha Rao_")
        assert user.email is None

    def test_suffixed_username_also_taken(self, db_session, monkeypatch):
        storage = DbStorage(db_session)
        storage.create_user({"username": "Asha Rao"})
        storage.create_user({"username": "Asha Rao_7"})
        monkeypatch.setattr(auth_router.random, "randint", lambda a, b: 7)

        user = auth_router.find_or_create_google_user(storage, {"sub": "g-3", "name": "Asha Rao"})
        assert user.username == "Asha Rao_g-3"
        assert user.google_id == "g-3"


class TestAnalyses:
    def test_guest_create_is_not_saved(self, client):
        resp = client.post("/api/analyses", json=analysis_payload())
        assert resp.status_code == 200
        data = resp.json()
        assert data["userId"] is None
        assert data["policyTitle"] == "Family Health Shield"
        assert data["extractedExclusions"] == ["Cosmetic surgery", "Self-inflicted injury"]

    def test_signed_in_create_and_get(self, client, make_user, login_as):
        user = make_user()
        login_as(user)
        resp = client.post("/api/analyses", json=analysis_payload())
        assert resp.status_code == 201
        created = resp.json()
        assert created["userId"] == user.id
        assert created["analyzedAt"].endswith(("Z", "+00:00"))

        resp = client.get(f"/api/analyses/{created['id']}")
        assert resp.status_code == 200
        assert resp.json()["riskLevel"] == "Medium"

    def test_list_requires_auth(self, client):
        assert client.get("/api/analyses").status_code == 401

    def test_list_newest_first_with_limit(self, client, make_user, login_as, clock):
        login_as(make_user())
        for i in range(3):
            client.post("/api/analyses", json=analysis_payload(policyTitle=f"Policy {i}"))
        resp = client.get("/api/analyses", params={"limit": 2})
        assert resp.status_code == 200
        assert [a["policyTitle"] for a in resp.json()] == ["Policy 2", "Policy 1"]

    def test_get_requires_auth(self, client):
        assert client.get("/api/analyses/anything").status_code == 401

    def test_get_missing_returns_404(self, client, make_user, login_as):
        login_as(make_user())
        resp = client.get("/api/analyses/does-not-exist")
        assert resp.status_code == 404
        assert resp.json() == {"error": "Analysis not found"}

    def test_get_other_users_analysis_is_forbidden(self, client, make_user, login_as, db_session):
        owner = make_user()
        other = make_user()
        analysis = DbStorage(db_session).create_policy_analysis({
            "user_id": owner.id,
            "policy_title": "Owner's policy",
            "policy_type": "Life",
            "plain_language_summary": "Term cover.",
            "risk_level": "Low",
        })
        login_as(other)
        assert client.get(f"/api/analyses/{analysis.id}").status_code == 403

    def test_delete_own_analysis(self, client, make_user, login_as):
        login_as(make_user())
        created = client.post("/api/analyses", json=analysis_payload()).json()

        resp = client.delete(f"/api/analyses/{created['id']}")
        assert resp.status_code == 200
        assert resp.json() == {"success": True}
        assert client.get(f"/api/analyses/{created['id']}").status_code == 404

    def test_delete_other_users_analysis_returns_404(self, client, make_user, login_as):
        owner = make_user()
        login_as(owner)
        created = client.post("/api/analyses", json=analysis_payload()).json()

        login_as(make_user())
        assert client.delete(f"/api/analyses/{created['id']}").status_code == 404

        login_as(owner)
        assert client.get(f"/api/analyses/{created['id']}").status_code == 200

    def test_invalid_risk_level_rejected(self, client):
        resp = client.post("/api/analyses", json=analysis_payload(riskLevel="Extreme"))
        assert resp.status_code == 400
        assert "error" in resp.json()

    def test_memory_backend(self, client, monkeypatch, settings, login_as):
        monkeypatch.setattr(settings, "storage_backend", "memory")
        user = memory_storage.create_user({"username": "mem-user"})
        login_as(user)

        created = client.post("/api/analyses", json=analysis_payload()).json()
        assert memory_storage.get_policy_analysis(created["id"]) is not None
        assert [a["id"] for a in client.get("/api/analyses").json()] == [created["id"]]


class TestClauses:
    def _explain(self, client, text="Room rent is capped at 1% of sum insured", explanation="Cheaper rooms only"):
        return client.post("/api/clauses/explain", json={
            "clauseText": text,
            "simplifiedExplanation": explanation,
            "category": "Coverage Limit",
            "realWorldExample": "A 5 lakh policy pays up to 5000 per day for the room",
        })

    def test_explain_then_cached(self, client):
        first = self._explain(client)
        assert first.status_code == 200
        assert first.json()["cached"] is False
        assert first.json()["clause"]["frequencyCount"] == 1

        second = self._explain(client, explanation="Something else")
        data = second.json()
        assert data["cached"] is True
        assert data["clause"]["frequencyCount"] == 2
        assert data["clause"]["simplifiedExplanation"] == "Cheaper rooms only"
        assert data["clause"]["id"] == first.json()["clause"]["id"]

    def test_invalid_category_rejected(self, client):
        resp = client.post("/api/clauses/explain", json={
            "clauseText": "x", "simplifiedExplanation": "y", "category": "Bogus",
        })
        assert resp.status_code == 400

    def test_top_clauses(self, client):
        self._explain(client, text="popular")
        self._explain(client, text="popular")
        self._explain(client, text="rare")
        resp = client.get("/api/clauses/top", params={"limit": 1})
        assert resp.status_code == 200
        top = resp.json()
        assert len(top) == 1
        assert top[0]["clauseText"] == "popular"


class TestInsights:
    def test_create_scrubs_question(self, client):
        resp = client.post("/api/insights", json={
            "normalizedQuestion": "Is dengue covered for Ravi Kumar?",
            "category": "Coverage",
            "isConfused": 0,
        })
        assert resp.status_code == 200
        assert resp.json()["normalizedQuestion"] == "Is <condition> covered for <name>?"

    def test_list_by_category(self, client):
        client.post("/api/insights", json={"normalizedQuestion": "when does cover start", "category": "Timing"})
        client.post("/api/insights", json={"normalizedQuestion": "what proof", "category": "Documentation"})
        resp = client.get("/api/insights/Timing")
        assert resp.status_code == 200
        assert [i["normalizedQuestion"] for i in resp.json()] == ["when does cover start"]

    def test_invalid_category(self, client):
        assert client.get("/api/insights/Nonsense").status_code == 400


class TestUsageSessions:
    def test_create_is_idempotent(self, client):
        first = client.post("/api/session", json={"sessionToken": "abc"})
        assert first.status_code == 200
        data = first.json()
        assert data["isGuest"] == 1
        assert data["policiesAnalyzed"] == 0
        second = client.post("/api/session", json={"sessionToken": "abc"})
        assert second.json()["id"] == data["id"]

    def test_signed_in_session(self, client, make_user, login_as):
        user = make_user()
        login_as(user)
        data = client.post("/api/session", json={"sessionToken": "user-token"}).json()
        assert data["isGuest"] == 0
        assert data["userId"] == user.id

    def test_update_activity(self, client, db_session):
        session_id = client.post("/api/session", json={"sessionToken": "abc"}).json()["id"]
        resp = client.patch(f"/api/session/{session_id}", json={"policiesAnalyzed": 2, "questionsAsked": 3})
        assert resp.status_code == 200
        assert resp.json() == {"success": True}

        stored = DbStorage(db_session).get_session_by_token("abc")
        assert (stored.policies_analyzed, stored.questions_asked) == (2, 3)

    def test_update_rejects_negative_counts(self, client):
        resp = client.patch("/api/session/any", json={"policiesAnalyzed": -1, "questionsAsked": 0})
        assert resp.status_code == 400

    def test_cleanup(self, client, db_session):
        storage = DbStorage(db_session)
        storage.create_session({"session_token": "stale", "expires_at": utcnow() - datetime.timedelta(hours=1)})
        client.post("/api/session", json={"sessionToken": "live"})

        resp = client.post("/api/session/cleanup")
        assert resp.status_code == 200
        assert resp.json() == {"success": True, "removed": 1}


class TestAIRoutes:
    def test_analyze_returns_structured_result(self, client):
        resp = client.post("/api/ai/analyze", json={"policyText": POLICY_TEXT, "policyType": "Health"})
        assert resp.status_code == 200
        data = resp.json()
        assert data["riskLevel"] in ("Low", "Medium", "High")
        assert isinstance(data["keyExclusions"], list)
        assert isinstance(data["claimRequirements"], list)

    def test_analyze_rejects_short_text(self, client):
        resp = client.post("/api/ai/analyze", json={"policyText": "   too short   "})
        assert resp.status_code == 400
        assert "50 characters" in resp.json()["error"]

    def test_short_text_never_reaches_gateway(self, client, monkeypatch):
        from app.routers import ai as ai_router

        async def must_not_run(*args, **kwargs):
            raise AssertionError("gateway called for invalid input")

        monkeypatch.setattr(ai_router, "analyze_policy", must_not_run)
        assert client.post("/api/ai/analyze", json={"policyText": ""}).status_code == 400
        assert client.post("/api/ai/analyze", json={"policyText": "short"}).status_code == 400

    def test_chat_answers_and_records_insight(self, client):
        resp = client.post("/api/ai/chat", json={
            "policyText": POLICY_TEXT,
            "question": "Is dengue covered? I don't understand",
        })
        assert resp.status_code == 200
        assert resp.json()["confidence"] == "High"

        insights = client.get("/api/insights/Coverage").json()
        assert len(insights) == 1
        assert insights[0]["normalizedQuestion"] == "Is <condition> covered? I don't understand"
        assert insights[0]["isConfused"] == 1
        assert insights[0]["policyId"] is None

    def test_chat_answer_survives_insight_failure(self, client, monkeypatch):
        from app.routers import ai as ai_router

        def broken_record_insight(*args, **kwargs):
            raise RuntimeError("database is locked")

        monkeypatch.setattr(ai_router, "record_insight", broken_record_insight)
        resp = client.post("/api/ai/chat", json={"policyText": POLICY_TEXT, "question": "Is dengue covered?"})
        assert resp.status_code == 200
        assert resp.json()["confidence"] == "High"
        assert client.get("/api/insights/Coverage").json() == []

    def test_chat_requires_question(self, client):
        resp = client.post("/api/ai/chat", json={"policyText": POLICY_TEXT, "question": "   "})
        assert resp.status_code == 400
        assert client.get("/api/insights/Other").json() == []

    def test_chat_missing_fields(self, client):
        assert client.post("/api/ai/chat", json={"question": "hi"}).status_code == 400

    def test_rate_limited(self, client, monkeypatch, settings):
        monkeypatch.setattr(settings, "rate_limit_requests", 1)
        body = {"policyText": POLICY_TEXT}
        assert client.post("/api/ai/analyze", json=body).status_code == 200
        resp = client.post("/api/ai/analyze", json=body)
        assert resp.status_code == 429
        assert "error" in resp.json()
