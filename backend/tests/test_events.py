"""Tests for the Event API and service layer.

Covers:
- Create / get / list
- Voting, re-voting, retracting, RSVPs
- Creator-only finalize / cancel / edit / delete
- Error kinds and status codes
- Optimistic locking — stale version → 409
- Mutation ledger — verified via DB query
- Concurrent writers via two sessions
"""
import pytest

from tests.conftest import create_test_event, option_ids

from decisions.engine import AggregateLocked
from decisions.models.decision_mutation import ActionType, DecisionMutation
from decisions.models.event import EventOption, EventResponse
from decisions.services import event_service
from decisions.services.errors import ConcurrentModification


def _vote(client, event_id, user_id, option_id):
    return client.post(f"/api/events/{event_id}/vote", json={"user_id": user_id, "option_id": option_id})


class TestEventCreate:

    def test_create_event(self, client):
        event = create_test_event(client, title="Team dinner")
        assert event["title"] == "Team dinner"
        assert event["status"] == "proposed"
        assert event["event_type"] == "meal"
        assert event["version"] == 1
        assert len(event["options"]) == 4
        assert [a["option_type"] for a in event["axes"]] == ["datetime", "location"]
        assert event["rsvp_counts"] == {"yes": 0, "no": 0, "maybe": 0}

    def test_create_event_rejects_single_option_group(self, client):
        resp = client.post("/api/events/", json={
            "chat_id": "chat-1",
            "creator_id": "alice",
            "title": "Dinner",
            "options": [{"option_type": "datetime", "value": "Friday"}],
        })
        assert resp.status_code == 422
        assert resp.json()["error"] == "ValidationError"

    def test_create_event_rejects_blank_title(self, client):
        resp = client.post("/api/events/", json={"chat_id": "chat-1", "creator_id": "alice", "title": "  "})
        assert resp.status_code == 422

    def test_timezone_localizes_naive_date(self, client):
        event = create_test_event(client, event_date="2026-07-01T19:00:00", timezone="America/New_York")
        assert event["event_date"].startswith("2026-07-01T23:00:00")

    def test_get_unknown_event(self, client):
        resp = client.get("/api/events/does-not-exist")
        assert resp.status_code == 404
        assert resp.json() == {"error": "NotFound", "detail": "Event not found"}

    def test_list_events_by_chat(self, client):
        create_test_event(client, chat_id="chat-1", title="One")
        create_test_event(client, chat_id="chat-1", title="Two")
        create_test_event(client, chat_id="chat-2", title="Elsewhere")
        titles = [e["title"] for e in client.get("/api/events/", params={"chat_id": "chat-1"}).json()]
        assert sorted(titles) == ["One", "Two"]

    def test_list_hides_cancelled_by_default(self, client):
        event = create_test_event(client)
        client.post(f"/api/events/{event['event_id']}/cancel", json={"user_id": "alice"})
        assert client.get("/api/events/").json() == []
        listed = client.get("/api/events/", params={"include_cancelled": True}).json()
        assert [e["status"] for e in listed] == ["cancelled"]


class TestVoting:

    def test_vote_and_tally(self, client):
        event = create_test_event(client)
        first, second = option_ids(event, "datetime")
        for user in ("bob", "carol", "dave"):
            _vote(client, event["event_id"], user, first)
        resp = _vote(client, event["event_id"], "erin", second)
        assert resp.status_code == 200
        data = resp.json()
        options = {o["option_id"]: o for o in data["options"]}
        assert (options[first]["vote_count"], options[first]["percentage"]) == (3, 75)
        assert (options[second]["vote_count"], options[second]["percentage"]) == (1, 25)
        assert options[first]["is_leader"] is True
        axes = {a["option_type"]: a for a in data["axes"]}
        assert axes["datetime"]["leader_option_id"] == first
        assert axes["location"]["total_votes"] == 0

    def test_votes_do_not_bump_version(self, client):
        event = create_test_event(client)
        first = option_ids(event, "datetime")[0]
        data = _vote(client, event["event_id"], "bob", first).json()
        assert data["version"] == 1

    def test_revote_moves_vote(self, client, db):
        event = create_test_event(client)
        first, second = option_ids(event, "datetime")
        _vote(client, event["event_id"], "bob", first)
        data = _vote(client, event["event_id"], "bob", second).json()
        bob = [r for r in data["responses"] if r["user_id"] == "bob"]
        assert len(bob) == 1
        assert bob[0]["option_id"] == second
        rows = db.query(EventResponse).filter(EventResponse.event_id == event["event_id"]).all()
        assert len(rows) == 1

    def test_tie_has_no_leader(self, client):
        event = create_test_event(client)
        first, second = option_ids(event, "location")
        _vote(client, event["event_id"], "bob", first)
        data = _vote(client, event["event_id"], "carol", second).json()
        axes = {a["option_type"]: a for a in data["axes"]}
        assert axes["location"]["leader_option_id"] is None
        assert axes["location"]["has_tie"] is True
        assert not any(o["is_leader"] for o in data["options"])

    def test_vote_for_foreign_option(self, client):
        event = create_test_event(client)
        other = create_test_event(client, title="Other")
        resp = _vote(client, event["event_id"], "bob", other["options"][0]["option_id"])
        assert resp.status_code == 400
        assert resp.json()["error"] == "InvalidReference"

    def test_retract_vote(self, client):
        event = create_test_event(client)
        first = option_ids(event, "datetime")[0]
        _vote(client, event["event_id"], "bob", first)
        resp = client.delete(f"/api/events/{event['event_id']}/vote",
                             params={"user_id": "bob", "option_id": first})
        assert resp.status_code == 200
        assert resp.json()["responses"] == []

    def test_user_responses(self, client):
        event = create_test_event(client)
        _vote(client, event["event_id"], "bob", option_ids(event, "datetime")[0])
        _vote(client, event["event_id"], "bob", option_ids(event, "location")[1])
        client.post(f"/api/events/{event['event_id']}/rsvp", json={"user_id": "bob", "response_type": "maybe"})
        data = client.get(f"/api/events/{event['event_id']}/responses/bob").json()
        assert {v["axis"] for v in data["votes"]} == {"datetime", "location"}
        assert data["rsvp"]["response_type"] == "maybe"


class TestRSVP:

    def test_rsvp_is_idempotent(self, client):
        event = create_test_event(client)
        for _ in range(2):
            resp = client.post(f"/api/events/{event['event_id']}/rsvp",
                               json={"user_id": "bob", "response_type": "yes"})
            assert resp.status_code == 200
        counts = client.get(f"/api/events/{event['event_id']}/rsvp-counts").json()
        assert counts == {"yes": 1, "no": 0, "maybe": 0}

    def test_rsvp_change(self, client):
        event = create_test_event(client)
        client.post(f"/api/events/{event['event_id']}/rsvp", json={"user_id": "bob", "response_type": "yes"})
        data = client.post(f"/api/events/{event['event_id']}/rsvp",
                           json={"user_id": "bob", "response_type": "no"}).json()
        assert data["rsvp_counts"] == {"yes": 0, "no": 1, "maybe": 0}

    def test_unknown_rsvp_type(self, client):
        event = create_test_event(client)
        resp = client.post(f"/api/events/{event['event_id']}/rsvp",
                           json={"user_id": "bob", "response_type": "perhaps"})
        assert resp.status_code == 422


class TestLifecycle:

    def test_finalize_locks_votes_but_accepts_rsvps(self, client):
        event = create_test_event(client)
        first = option_ids(event, "datetime")[0]
        _vote(client, event["event_id"], "bob", first)
        resp = client.post(f"/api/events/{event['event_id']}/finalize", json={"user_id": "alice"})
        assert resp.status_code == 200
        assert resp.json()["status"] == "confirmed"
        assert resp.json()["finalized_at"] is not None

        locked = _vote(client, event["event_id"], "carol", first)
        assert locked.status_code == 423
        assert locked.json()["error"] == "AggregateLocked"

        rsvp = client.post(f"/api/events/{event['event_id']}/rsvp",
                           json={"user_id": "carol", "response_type": "yes"})
        assert rsvp.status_code == 200
        assert rsvp.json()["rsvp_counts"]["yes"] == 1
        options = {o["option_id"]: o for o in rsvp.json()["options"]}
        assert options[first]["vote_count"] == 1

    def test_zero_vote_finalize(self, client):
        event = create_test_event(client)
        resp = client.post(f"/api/events/{event['event_id']}/finalize", json={"user_id": "alice"})
        assert resp.status_code == 200
        assert all(a["leader_option_id"] is None for a in resp.json()["axes"])

    def test_non_creator_cancel_forbidden(self, client):
        event = create_test_event(client)
        resp = client.post(f"/api/events/{event['event_id']}/cancel", json={"user_id": "bob"})
        assert resp.status_code == 403
        assert resp.json()["error"] == "Forbidden"
        assert client.get(f"/api/events/{event['event_id']}").json()["status"] == "proposed"

    def test_non_creator_finalize_forbidden(self, client):
        event = create_test_event(client)
        resp = client.post(f"/api/events/{event['event_id']}/finalize", json={"user_id": "bob"})
        assert resp.status_code == 403

    def test_cancel_after_finalize_is_invalid(self, client):
        event = create_test_event(client)
        client.post(f"/api/events/{event['event_id']}/finalize", json={"user_id": "alice"})
        resp = client.post(f"/api/events/{event['event_id']}/cancel", json={"user_id": "alice"})
        assert resp.status_code == 409
        assert resp.json()["error"] == "InvalidTransition"

    def test_cancelled_event_rejects_rsvp(self, client):
        event = create_test_event(client)
        client.post(f"/api/events/{event['event_id']}/cancel", json={"user_id": "alice"})
        resp = client.post(f"/api/events/{event['event_id']}/rsvp",
                           json={"user_id": "bob", "response_type": "yes"})
        assert resp.status_code == 423


class TestEventUpdate:

    def test_update_bumps_version(self, client):
        event = create_test_event(client)
        resp = client.patch(f"/api/events/{event['event_id']}", params={"actor_user_id": "alice"},
                            json={"title": "Brunch", "status": "voting", "version": 1})
        assert resp.status_code == 200
        data = resp.json()
        assert data["title"] == "Brunch"
        assert data["status"] == "voting"
        assert data["version"] == 2

    def test_stale_version_conflict(self, client):
        event = create_test_event(client)
        client.patch(f"/api/events/{event['event_id']}", params={"actor_user_id": "alice"},
                     json={"title": "First", "version": 1})
        resp = client.patch(f"/api/events/{event['event_id']}", params={"actor_user_id": "alice"},
                            json={"title": "Second", "version": 1})
        assert resp.status_code == 409
        assert resp.json()["error"] == "ConcurrentModification"
        assert client.get(f"/api/events/{event['event_id']}").json()["title"] == "First"

    def test_non_creator_update_forbidden(self, client):
        event = create_test_event(client)
        resp = client.patch(f"/api/events/{event['event_id']}", params={"actor_user_id": "bob"},
                            json={"title": "Hijacked"})
        assert resp.status_code == 403

    def test_removing_option_drops_its_votes(self, client, db):
        event = create_test_event(client)
        d1, d2 = option_ids(event, "datetime")
        l1, l2 = option_ids(event, "location")
        _vote(client, event["event_id"], "bob", d1)
        _vote(client, event["event_id"], "carol", d2)
        _vote(client, event["event_id"], "carol", l2)

        resp = client.patch(f"/api/events/{event['event_id']}", params={"actor_user_id": "alice"}, json={
            "options": [
                {"option_id": d1, "option_type": "datetime", "value": "Friday 8pm"},
                {"option_type": "datetime", "value": "Sunday brunch"},
                {"option_id": l1, "option_type": "location", "value": "Luigi's"},
                {"option_id": l2, "option_type": "location", "value": "Taco Place"},
            ],
        })
        assert resp.status_code == 200, resp.text
        data = resp.json()
        assert d2 not in [o["option_id"] for o in data["options"]]
        assert [o["value"] for o in data["options"]][:2] == ["Friday 8pm", "Sunday brunch"]
        remaining = {(r["user_id"], r["option_id"]) for r in data["responses"]}
        assert remaining == {("bob", d1), ("carol", l2)}
        assert db.query(EventOption).filter(EventOption.option_id == d2).count() == 0

    def test_null_options_rejected(self, client):
        event = create_test_event(client)
        _vote(client, event["event_id"], "bob", option_ids(event, "datetime")[0])
        resp = client.patch(f"/api/events/{event['event_id']}", params={"actor_user_id": "alice"},
                            json={"options": None})
        assert resp.status_code == 422
        assert resp.json()["error"] == "ValidationError"
        unchanged = client.get(f"/api/events/{event['event_id']}").json()
        assert len(unchanged["options"]) == 4
        assert len(unchanged["responses"]) == 1

    def test_update_confirmed_event_is_invalid(self, client):
        event = create_test_event(client)
        client.post(f"/api/events/{event['event_id']}/finalize", json={"user_id": "alice"})
        resp = client.patch(f"/api/events/{event['event_id']}", params={"actor_user_id": "alice"},
                            json={"title": "Too late"})
        assert resp.status_code == 409


class TestEventDelete:

    def test_delete_cascades(self, client, db):
        event = create_test_event(client)
        _vote(client, event["event_id"], "bob", option_ids(event, "datetime")[0])
        resp = client.delete(f"/api/events/{event['event_id']}", params={"actor_user_id": "alice"})
        assert resp.status_code == 204
        assert client.get(f"/api/events/{event['event_id']}").status_code == 404
        assert db.query(EventResponse).count() == 0
        assert db.query(EventOption).count() == 0

    def test_non_creator_delete_forbidden(self, client):
        event = create_test_event(client)
        resp = client.delete(f"/api/events/{event['event_id']}", params={"actor_user_id": "bob"})
        assert resp.status_code == 403


class TestMutationLedger:

    def test_every_write_is_recorded(self, client, db):
        event = create_test_event(client)
        _vote(client, event["event_id"], "bob", option_ids(event, "datetime")[0])
        client.post(f"/api/events/{event['event_id']}/rsvp", json={"user_id": "bob", "response_type": "yes"})
        client.post(f"/api/events/{event['event_id']}/finalize", json={"user_id": "alice"})

        mutations = (
            db.query(DecisionMutation)
            .filter(DecisionMutation.aggregate_id == event["event_id"])
            .order_by(DecisionMutation.created_at)
            .all()
        )
        assert sorted(m.action_type for m in mutations) == sorted(
            [ActionType.create, ActionType.vote, ActionType.rsvp, ActionType.finalize]
        )
        create = next(m for m in mutations if m.action_type == ActionType.create)
        assert create.before_snapshot is None
        assert create.after_snapshot["status"] == "proposed"
        finalize = next(m for m in mutations if m.action_type == ActionType.finalize)
        assert finalize.actor_user_id == "alice"
        assert finalize.before_snapshot["status"] == "proposed"
        assert finalize.after_snapshot["status"] == "confirmed"

    def test_rejected_write_is_not_recorded(self, client, db):
        event = create_test_event(client)
        client.post(f"/api/events/{event['event_id']}/cancel", json={"user_id": "bob"})
        count = db.query(DecisionMutation).filter(DecisionMutation.aggregate_id == event["event_id"]).count()
        assert count == 1


class TestConcurrency:
    """Two sessions working from the same loaded state."""

    def test_racing_status_change_is_rejected(self, session_factory):
        setup = session_factory()
        event = event_service.create_event(setup, "chat-1", "alice", "Dinner")
        setup.close()

        slow, fast = session_factory(), session_factory()
        try:
            event_service.get_event(slow, event.event_id)
            event_service.finalize_event(fast, event.event_id, "alice")
            with pytest.raises(ConcurrentModification):
                event_service.cancel_event(slow, event.event_id, "alice")
        finally:
            slow.close()
            fast.close()

        check = session_factory()
        assert event_service.get_event(check, event.event_id).status.value == "confirmed"
        check.close()

    def test_racing_first_votes_keep_one_response(self, session_factory):
        setup = session_factory()
        event = event_service.create_event(setup, "chat-1", "alice", "Dinner", options=[
            {"option_type": "datetime", "value": "Friday"},
            {"option_type": "datetime", "value": "Saturday"},
        ])
        setup.close()
        first, second = [o.option_id for o in event.options]

        slow, fast = session_factory(), session_factory()
        try:
            event_service.get_event(slow, event.event_id)
            event_service.vote(fast, event.event_id, "bob", first)
            with pytest.raises(ConcurrentModification):
                event_service.vote(slow, event.event_id, "bob", second)
        finally:
            slow.close()
            fast.close()

        check = session_factory()
        result = event_service.get_event(check, event.event_id)
        assert [(r.user_id, r.option_id) for r in result.responses] == [("bob", first)]
        check.close()

    def test_different_users_do_not_conflict(self, session_factory):
        setup = session_factory()
        event = event_service.create_event(setup, "chat-1", "alice", "Dinner", options=[
            {"option_type": "location", "value": "Park"},
            {"option_type": "location", "value": "Beach"},
        ])
        setup.close()
        park = event.options[0].option_id

        one, two = session_factory(), session_factory()
        try:
            event_service.get_event(one, event.event_id)
            event_service.vote(two, event.event_id, "bob", park)
            result = event_service.vote(one, event.event_id, "carol", park)
        finally:
            one.close()
            two.close()
        assert result.version == 1

    def test_vote_after_concurrent_finalize_is_locked(self, session_factory):
        setup = session_factory()
        event = event_service.create_event(setup, "chat-1", "alice", "Dinner", options=[
            {"option_type": "datetime", "value": "Friday"},
            {"option_type": "datetime", "value": "Saturday"},
        ])
        setup.close()
        first = event.options[0].option_id

        slow, fast = session_factory(), session_factory()
        try:
            event_service.get_event(slow, event.event_id)
            event_service.finalize_event(fast, event.event_id, "alice")
            with pytest.raises(AggregateLocked):
                event_service.vote(slow, event.event_id, "carol", first)
        finally:
            slow.close()
            fast.close()

        check = session_factory()
        result = event_service.get_event(check, event.event_id)
        assert result.status.value == "confirmed"
        assert result.ledger.votes() == []
        assert check.query(DecisionMutation).filter(
            DecisionMutation.aggregate_id == event.event_id,
            DecisionMutation.action_type == ActionType.vote,
        ).count() == 0
        check.close()

    def test_rsvp_after_concurrent_cancel_is_locked(self, session_factory):
        setup = session_factory()
        event = event_service.create_event(setup, "chat-1", "alice", "Dinner")
        setup.close()

        slow, fast = session_factory(), session_factory()
        try:
            event_service.get_event(slow, event.event_id)
            event_service.cancel_event(fast, event.event_id, "alice")
            with pytest.raises(AggregateLocked):
                event_service.rsvp(slow, event.event_id, "carol", "yes")
        finally:
            slow.close()
            fast.close()

        check = session_factory()
        assert check.query(EventResponse).filter(EventResponse.event_id == event.event_id).count() == 0
        check.close()

    def test_rsvp_after_concurrent_finalize_is_kept(self, session_factory):
        setup = session_factory()
        event = event_service.create_event(setup, "chat-1", "alice", "Dinner")
        setup.close()

        slow, fast = session_factory(), session_factory()
        try:
            event_service.get_event(slow, event.event_id)
            event_service.finalize_event(fast, event.event_id, "alice")
            result = event_service.rsvp(slow, event.event_id, "carol", "yes")
        finally:
            slow.close()
            fast.close()
        assert result.count_rsvp_by_type()["yes"] == 1
