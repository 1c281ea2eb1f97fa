"""HTTP surface: tournaments, teams, bracket, scoring, standings, registrations and error bodies."""
from fastapi.testclient import TestClient
from sqlmodel import Session

from tests.factories import ORGANIZER_ID

HEADERS = {"X-User-Id": str(ORGANIZER_ID)}


def _create_tournament(client, **overrides):
    payload = {
        "name": "Spring Shootout",
        "format": "SingleElimination",
        "start_date": "2026-04-11T08:00:00",
        "end_date": "2026-04-12T20:00:00",
        "max_teams": 8,
        "venue": "Civic Arena",
    }
    payload.update(overrides)
    response = client.post("/api/tournaments", json=payload, headers=HEADERS)
    assert response.status_code == 201, response.text
    return response.json()


def _add_teams(client, tournament_id, count):
    ids = []
    for i in range(1, count + 1):
        response = client.post(
            f"/api/tournaments/{tournament_id}/teams",
            json={"name": f"Skaters {i}", "seed": i, "captain_user_id": 500 + i},
            headers=HEADERS,
        )
        assert response.status_code == 201, response.text
        ids.append(response.json()["id"])
    return ids


def _transition(client, tournament_id, action, details=None):
    body = {"details": details} if details else None
    return client.post(f"/api/tournaments/{tournament_id}/transitions/{action}", json=body, headers=HEADERS)


def test_health(client: TestClient, session: Session):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_create_tournament_starts_in_draft(client: TestClient, session: Session):
    data = _create_tournament(client)

    assert data["status"] == "Draft"
    assert data["creator_id"] == ORGANIZER_ID
    assert data["tiebreaker_order"] == ["HeadToHead", "GoalDifferential", "GoalsScored"]

    fetched = client.get(f"/api/tournaments/{data['id']}")
    assert fetched.status_code == 200
    assert fetched.json()["name"] == "Spring Shootout"


def test_create_tournament_validates_dates(client: TestClient, session: Session):
    response = client.post(
        "/api/tournaments",
        json={"name": "Backwards", "start_date": "2026-04-12T08:00:00", "end_date": "2026-04-11T08:00:00", "max_teams": 4},
        headers=HEADERS,
    )
    assert response.status_code == 422
    assert any("end_date must be >= start_date" in str(err) for err in response.json()["detail"])


def test_mutations_require_acting_user(client: TestClient, session: Session):
    response = client.post(
        "/api/tournaments",
        json={"name": "Anon", "start_date": "2026-04-11T08:00:00", "end_date": "2026-04-11T18:00:00", "max_teams": 4},
    )
    assert response.status_code == 422


def test_domain_errors_carry_codes(client: TestClient, session: Session):
    missing = client.get("/api/tournaments/4040")
    assert missing.status_code == 404
    assert missing.json()["code"] == "NotFound"

    tournament = _create_tournament(client)
    invalid = _transition(client, tournament["id"], "Start")
    assert invalid.status_code == 409
    assert invalid.json() == {"detail": "Cannot Start a tournament in status Draft", "code": "InvalidTransition"}

    _add_teams(client, tournament["id"], 1)
    too_few = client.post(f"/api/tournaments/{tournament['id']}/bracket", headers=HEADERS)
    assert too_few.status_code == 422
    assert too_few.json()["code"] == "InsufficientTeams"


def test_full_tournament_over_http(client: TestClient, session: Session):
    tournament = _create_tournament(client)
    tid = tournament["id"]

    published = _transition(client, tid, "Publish")
    assert published.status_code == 200, published.text
    assert published.json()["status"] == "Open"
    assert "Start" in published.json()["allowed_actions"]

    team_ids = _add_teams(client, tid, 4)
    bracket = client.post(f"/api/tournaments/{tid}/bracket", headers=HEADERS)
    assert bracket.status_code == 201, bracket.text
    assert [m["bracket_position"] for m in bracket.json()] == ["SF1", "SF2", "Final"]

    started = _transition(client, tid, "Start")
    assert started.json()["status"] == "InProgress"

    matches = {m["bracket_position"]: m for m in client.get(f"/api/tournaments/{tid}/matches").json()}
    sf1 = client.post(
        f"/api/tournaments/{tid}/matches/{matches['SF1']['id']}/score",
        json={"home_score": 4, "away_score": 1},
        headers=HEADERS,
    )
    assert sf1.status_code == 200, sf1.text
    assert sf1.json()["winner_team_id"] == team_ids[0]

    again = client.post(
        f"/api/tournaments/{tid}/matches/{matches['SF1']['id']}/score",
        json={"home_score": 4, "away_score": 1},
        headers=HEADERS,
    )
    assert again.status_code == 409
    assert again.json()["code"] == "InvalidMatchState"

    forfeit = client.post(
        f"/api/tournaments/{tid}/matches/{matches['SF2']['id']}/forfeit",
        json={"forfeiting_team_id": team_ids[2], "reason": "No goalie"},
        headers=HEADERS,
    )
    assert forfeit.status_code == 200, forfeit.text

    final = client.get(f"/api/tournaments/{tid}/matches/{matches['Final']['id']}").json()
    assert (final["home_team_id"], final["away_team_id"]) == (team_ids[0], team_ids[1])

    scored = client.post(
        f"/api/tournaments/{tid}/matches/{final['id']}/score",
        json={"home_score": 2, "away_score": 2, "overtime_winner_team_id": team_ids[1]},
        headers=HEADERS,
    )
    assert scored.status_code == 200, scored.text

    assert client.get(f"/api/tournaments/{tid}").json()["status"] == "Completed"
    teams = {t["id"]: t for t in client.get(f"/api/tournaments/{tid}/teams").json()}
    assert teams[team_ids[1]]["final_placement"] == 1

    log = client.get(f"/api/tournaments/{tid}/audit-log", params={"limit": 3}).json()
    assert [e["action"] for e in log["items"]] == ["Complete", "EnterScore", "Forfeit"]
    assert log["has_more"] is True


def test_seeding_endpoint(client: TestClient, session: Session):
    tid = _create_tournament(client)["id"]
    first, second = _add_teams(client, tid, 2)

    swapped = client.put(
        f"/api/tournaments/{tid}/seeds",
        json={"seeds": [{"team_id": first, "seed": 2}, {"team_id": second, "seed": 1}]},
        headers=HEADERS,
    )
    assert swapped.status_code == 200, swapped.text
    assert [t["id"] for t in swapped.json()] == [second, first]

    duplicate = client.put(
        f"/api/tournaments/{tid}/seeds",
        json={"seeds": [{"team_id": first, "seed": 1}]},
        headers=HEADERS,
    )
    assert duplicate.status_code == 422
    assert duplicate.json()["code"] == "InvalidSeeding"


def test_clear_bracket_endpoint(client: TestClient, session: Session):
    tid = _create_tournament(client, format="RoundRobin")["id"]
    _add_teams(client, tid, 4)
    assert len(client.post(f"/api/tournaments/{tid}/bracket", headers=HEADERS).json()) == 6

    cleared = client.delete(f"/api/tournaments/{tid}/bracket", headers=HEADERS)

    assert cleared.json() == {"tournament_id": tid, "deleted": 6}
    assert client.get(f"/api/tournaments/{tid}/matches").json() == []


def test_round_robin_standings_endpoint(client: TestClient, session: Session):
    tid = _create_tournament(client, format="RoundRobin", playoff_teams_count=1)["id"]
    _transition(client, tid, "Publish")
    team_ids = _add_teams(client, tid, 3)
    client.post(f"/api/tournaments/{tid}/bracket", headers=HEADERS)
    _transition(client, tid, "Start")

    for match in client.get(f"/api/tournaments/{tid}/matches").json():
        if match["home_team_id"] == team_ids[0] or match["away_team_id"] == team_ids[0]:
            home_score, away_score = (5, 0) if match["home_team_id"] == team_ids[0] else (0, 5)
            response = client.post(
                f"/api/tournaments/{tid}/matches/{match['id']}/score",
                json={"home_score": home_score, "away_score": away_score},
                headers=HEADERS,
            )
            assert response.status_code == 200, response.text

    standings = client.get(f"/api/tournaments/{tid}/standings").json()

    assert standings["tournament_id"] == tid
    leader = standings["standings"][0]
    assert (leader["team_id"], leader["points"], leader["goal_differential"]) == (team_ids[0], 6, 10)
    assert leader["is_playoff_bound"] is True
    assert standings["standings"][1]["is_playoff_bound"] is False


def test_event_waitlist_over_http(client: TestClient, session: Session):
    event = client.post(
        "/api/events",
        json={"name": "Friday Pickup", "event_date": "2026-11-13T21:00:00", "max_players": 1},
        headers=HEADERS,
    )
    assert event.status_code == 201, event.text
    eid = event.json()["id"]

    regs = []
    for user_id in (1, 2, 3):
        response = client.post(f"/api/events/{eid}/registrations", headers={"X-User-Id": str(user_id)})
        assert response.status_code == 201, response.text
        regs.append(response.json())
    assert [r["status"] for r in regs] == ["Registered", "Waitlisted", "Waitlisted"]

    dup = client.post(f"/api/events/{eid}/registrations", headers={"X-User-Id": "2"})
    assert dup.status_code == 409
    assert dup.json()["code"] == "DuplicateRegistration"

    bad_order = client.put(
        f"/api/events/{eid}/waitlist/order", json={"registration_ids": [regs[2]["id"]]}, headers=HEADERS
    )
    assert bad_order.status_code == 422
    assert bad_order.json()["code"] == "InvalidWaitlistOrder"

    reordered = client.put(
        f"/api/events/{eid}/waitlist/order",
        json={"registration_ids": [regs[2]["id"], regs[1]["id"]]},
        headers=HEADERS,
    )
    assert [r["user_id"] for r in reordered.json()] == [3, 2]

    cancelled = client.delete(f"/api/events/registrations/{regs[0]['id']}", headers={"X-User-Id": "1"})
    assert cancelled.status_code == 200, cancelled.text
    body = cancelled.json()
    assert body["registration"]["status"] == "Cancelled"
    assert body["promoted"]["user_id"] == 3

    waitlist = client.get(f"/api/events/{eid}/waitlist").json()
    assert [(r["user_id"], r["waitlist_position"]) for r in waitlist] == [(2, 1)]
    assert client.post(f"/api/events/{eid}/waitlist/promote", headers=HEADERS).json() is None


def test_tournament_registration_over_http(client: TestClient, session: Session):
    tid = _create_tournament(client, max_participants=1)["id"]
    closed = client.post(f"/api/tournaments/{tid}/registrations", headers={"X-User-Id": "9"})
    assert closed.status_code == 409

    _transition(client, tid, "Publish")
    first = client.post(f"/api/tournaments/{tid}/registrations", json={"position": "Goalie"}, headers={"X-User-Id": "9"})
    assert first.status_code == 201, first.text
    assert first.json()["position"] == "Goalie"

    second = client.post(f"/api/tournaments/{tid}/registrations", headers={"X-User-Id": "10"})
    assert second.json()["waitlist_position"] == 1

    listing = client.get(f"/api/tournaments/{tid}/registrations").json()
    assert [r["user_id"] for r in listing] == [9, 10]

    paid = client.post(f"/api/tournaments/registrations/{first.json()['id']}/payment/mark", headers={"X-User-Id": "9"})
    assert paid.status_code == 200, paid.text
    assert paid.json()["payment_status"] == "MarkedPaid"
