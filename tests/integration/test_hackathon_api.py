"""Hackathons, teams, submissions, grading and polls end to end."""

from __future__ import annotations

from typing import Any

import pytest
from httpx import AsyncClient

BASE = "/api/v1/hackathons"


async def _hackathon(client: AsyncClient, teacher: dict[str, Any], **fields: Any) -> dict:
    body = {"title": "Build a game", "difficulty": "medium", "minTeamSize": 1, "maxTeamSize": 3, **fields}
    response = await client.post(BASE, json=body, headers=teacher["headers"])
    assert response.status_code == 201, response.text
    return response.json()


async def _team(client: AsyncClient, hackathon_id: int, leader: dict[str, Any], *emails: str) -> dict:
    response = await client.post(f"{BASE}/{hackathon_id}/teams",
                                 json={"name": "Byte Me", "memberEmails": list(emails)},
                                 headers=leader["headers"])
    assert response.status_code == 201, response.text
    return response.json()


@pytest.mark.asyncio
async def test_create_defaults_to_active(client: AsyncClient, teacher: dict[str, Any]) -> None:
    hackathon = await _hackathon(client, teacher)
    assert hackathon["status"] == "active"
    assert hackathon["acceptingSubmissions"] is True

    upcoming = await _hackathon(client, teacher, startsAt="2999-01-01T00:00:00Z")
    assert upcoming["status"] == "upcoming"

    listed = (await client.get(f"{BASE}?status=upcoming", headers=teacher["headers"])).json()
    assert [h["id"] for h in listed] == [upcoming["id"]]


@pytest.mark.asyncio
async def test_students_cannot_create(client: AsyncClient, student: dict[str, Any]) -> None:
    response = await client.post(BASE, json={"title": "Nope"}, headers=student["headers"])
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_join_once_and_capacity(client: AsyncClient, teacher: dict[str, Any], student: dict[str, Any],
                                      register) -> None:
    hackathon = await _hackathon(client, teacher, maxParticipants=1)
    joined = await client.post(f"{BASE}/{hackathon['id']}/join", headers=student["headers"])
    assert joined.json()["isJoined"] is True
    assert joined.json()["participants"] == 1

    again = await client.post(f"{BASE}/{hackathon['id']}/join", headers=student["headers"])
    assert again.status_code == 400
    bob = await register("bob@example.com")
    full = await client.post(f"{BASE}/{hackathon['id']}/join", headers=bob["headers"])
    assert full.status_code == 400


@pytest.mark.asyncio
async def test_team_size_bounds(client: AsyncClient, teacher: dict[str, Any], student: dict[str, Any],
                                register) -> None:
    hackathon = await _hackathon(client, teacher, minTeamSize=2, maxTeamSize=2)
    for email in ("b@example.com", "c@example.com"):
        await register(email)

    alone = await client.post(f"{BASE}/{hackathon['id']}/teams", json={"name": "Solo"},
                              headers=student["headers"])
    assert alone.status_code == 400
    assert alone.json()["detail"] == "Team size must be between 2 and 2"

    crowd = await client.post(f"{BASE}/{hackathon['id']}/teams",
                              json={"name": "Crowd", "memberEmails": ["b@example.com", "c@example.com"]},
                              headers=student["headers"])
    assert crowd.status_code == 400

    pair = await _team(client, hackathon["id"], student, "b@example.com")
    assert sorted(m["email"] for m in pair["members"]) == ["alice@example.com", "b@example.com"]
    assert pair["isMyTeam"] is True


@pytest.mark.asyncio
async def test_one_team_per_hackathon(client: AsyncClient, teacher: dict[str, Any], student: dict[str, Any],
                                      register) -> None:
    hackathon = await _hackathon(client, teacher)
    bob = await register("bob@example.com")
    await _team(client, hackathon["id"], student)
    response = await client.post(f"{BASE}/{hackathon['id']}/teams",
                                 json={"name": "Poachers", "memberEmails": ["alice@example.com"]},
                                 headers=bob["headers"])
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_team_creation_awards_team_player(client: AsyncClient, teacher: dict[str, Any],
                                                student: dict[str, Any]) -> None:
    hackathon = await _hackathon(client, teacher)
    await _team(client, hackathon["id"], student)
    badges = (await client.get(f"/api/v1/rewards/badges/{student['id']}", headers=student["headers"])).json()
    assert "team_player" in [b["badgeId"] for b in badges["badges"]]


@pytest.mark.asyncio
async def test_members_and_leader(client: AsyncClient, teacher: dict[str, Any], student: dict[str, Any],
                                  register) -> None:
    hackathon = await _hackathon(client, teacher)
    bob = await register("bob@example.com")
    team = await _team(client, hackathon["id"], student)
    url = f"{BASE}/{hackathon['id']}/teams/{team['id']}/members"

    added = await client.post(url, json={"email": "bob@example.com"}, headers=student["headers"])
    assert len(added.json()["members"]) == 2

    leader_out = await client.delete(f"{url}/{student['id']}", headers=bob["headers"])
    assert leader_out.status_code == 400

    bob_out = await client.delete(f"{url}/{bob['id']}", headers=student["headers"])
    assert [m["email"] for m in bob_out.json()["members"]] == ["alice@example.com"]


@pytest.mark.asyncio
async def test_non_member_cannot_submit(client: AsyncClient, teacher: dict[str, Any], student: dict[str, Any],
                                        register) -> None:
    hackathon = await _hackathon(client, teacher)
    team = await _team(client, hackathon["id"], student)
    eve = await register("eve@example.com")
    response = await client.post(f"{BASE}/{hackathon['id']}/teams/{team['id']}/submit",
                                 json={"link": "https://example.com/repo"}, headers=eve["headers"])
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_submission_window(client: AsyncClient, teacher: dict[str, Any], student: dict[str, Any]) -> None:
    hackathon = await _hackathon(client, teacher)
    team = await _team(client, hackathon["id"], student)
    toggled = await client.post(f"{BASE}/{hackathon['id']}/toggle-submissions", headers=teacher["headers"])
    assert toggled.json()["acceptingSubmissions"] is False

    response = await client.post(f"{BASE}/{hackathon['id']}/teams/{team['id']}/submit",
                                 json={"link": "https://example.com/repo"}, headers=student["headers"])
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_submit_grade_and_regrade(client: AsyncClient, teacher: dict[str, Any], student: dict[str, Any],
                                        register) -> None:
    hackathon = await _hackathon(client, teacher, difficulty="hard")
    await register("bob@example.com")
    team = await _team(client, hackathon["id"], student, "bob@example.com")
    team_url = f"{BASE}/{hackathon['id']}/teams/{team['id']}"

    submitted = await client.post(f"{team_url}/submit", json={
        "link": "https://example.com/repo",
        "files": [{"fileName": "demo.mp4", "fileUrl": "https://cdn.example.com/demo.mp4"}],
    }, headers=student["headers"])
    assert submitted.json()["status"] == "submitted"

    graded = await client.post(f"{team_url}/grade", json={"score": 80, "feedback": "Solid"},
                               headers=teacher["headers"])
    assert graded.json()["status"] == "graded"
    assert graded.json()["score"] == 80

    for email in ("alice@example.com", "bob@example.com"):
        rows = (await client.get("/api/v1/users/leaderboard", headers=student["headers"])).json()
        assert next(r for r in rows if r["email"] == email)["xp"] == 80

    regraded = await client.post(f"{team_url}/grade", json={"score": 50}, headers=teacher["headers"])
    assert regraded.json()["score"] == 50
    me = (await client.get("/api/v1/users/me", headers=student["headers"])).json()
    assert me["xp"] == 50
    assert "problem_solver" in [b["badgeId"] for b in me["badges"]]

    resubmit = await client.post(f"{team_url}/submit", json={"text": "v2"}, headers=student["headers"])
    assert resubmit.status_code == 409


async def _xp_by_email(client: AsyncClient, viewer: dict[str, Any]) -> dict[str, int]:
    rows = (await client.get("/api/v1/users/leaderboard", headers=viewer["headers"])).json()
    return {r["email"]: r["xp"] for r in rows}


@pytest.mark.asyncio
async def test_member_added_after_grade_gets_full_score(client: AsyncClient, teacher: dict[str, Any],
                                                        student: dict[str, Any], register) -> None:
    hackathon = await _hackathon(client, teacher)
    await register("bob@example.com")
    team = await _team(client, hackathon["id"], student)
    team_url = f"{BASE}/{hackathon['id']}/teams/{team['id']}"
    await client.post(f"{team_url}/submit", json={"text": "v1"}, headers=student["headers"])
    await client.post(f"{team_url}/grade", json={"score": 50}, headers=teacher["headers"])

    await client.post(f"{team_url}/members", json={"email": "bob@example.com"}, headers=student["headers"])
    await client.post(f"{team_url}/grade", json={"score": 60}, headers=teacher["headers"])

    xp = await _xp_by_email(client, student)
    assert xp["alice@example.com"] == 60
    assert xp["bob@example.com"] == 60


@pytest.mark.asyncio
async def test_removed_member_loses_team_award(client: AsyncClient, teacher: dict[str, Any],
                                               student: dict[str, Any], register) -> None:
    hackathon = await _hackathon(client, teacher)
    bob = await register("bob@example.com")
    team = await _team(client, hackathon["id"], student, "bob@example.com")
    team_url = f"{BASE}/{hackathon['id']}/teams/{team['id']}"
    await client.post(f"{team_url}/submit", json={"text": "v1"}, headers=student["headers"])
    await client.post(f"{team_url}/grade", json={"score": 80}, headers=teacher["headers"])

    removed = await client.delete(f"{team_url}/members/{bob['id']}", headers=student["headers"])
    assert removed.status_code == 200
    assert (await _xp_by_email(client, student))["bob@example.com"] == 0

    await client.post(f"{team_url}/grade", json={"score": 0}, headers=teacher["headers"])
    xp = await _xp_by_email(client, student)
    assert xp["alice@example.com"] == 0
    assert xp["bob@example.com"] == 0


@pytest.mark.asyncio
async def test_deleting_graded_team_takes_back_xp(client: AsyncClient, teacher: dict[str, Any],
                                                  student: dict[str, Any]) -> None:
    hackathon = await _hackathon(client, teacher)
    team = await _team(client, hackathon["id"], student)
    team_url = f"{BASE}/{hackathon['id']}/teams/{team['id']}"
    await client.post(f"{team_url}/submit", json={"text": "v1"}, headers=student["headers"])
    await client.post(f"{team_url}/grade", json={"score": 40}, headers=teacher["headers"])

    assert (await client.delete(team_url, headers=student["headers"])).status_code == 204
    me = (await client.get("/api/v1/users/me", headers=student["headers"])).json()
    assert me["xp"] == 0


@pytest.mark.asyncio
async def test_amend_keeps_graded(client: AsyncClient, teacher: dict[str, Any], student: dict[str, Any]) -> None:
    hackathon = await _hackathon(client, teacher)
    team = await _team(client, hackathon["id"], student)
    team_url = f"{BASE}/{hackathon['id']}/teams/{team['id']}"
    await client.post(f"{team_url}/submit", json={
        "files": [{"fileName": "a.zip", "fileUrl": "https://cdn.example.com/a.zip"}],
    }, headers=student["headers"])
    await client.post(f"{team_url}/grade", json={"score": 10}, headers=teacher["headers"])

    amended = await client.patch(f"{team_url}/submission", json={
        "text": "Added docs",
        "addFiles": [{"fileName": "b.zip", "fileUrl": "https://cdn.example.com/b.zip"}],
        "removeFiles": ["https://cdn.example.com/a.zip"],
    }, headers=student["headers"])
    data = amended.json()
    assert data["status"] == "graded"
    assert data["submissionText"] == "Added docs"
    assert [f["fileName"] for f in data["submissionFiles"]] == ["b.zip"]


@pytest.mark.asyncio
async def test_progress_updates(client: AsyncClient, teacher: dict[str, Any], student: dict[str, Any]) -> None:
    hackathon = await _hackathon(client, teacher)
    team = await _team(client, hackathon["id"], student)
    url = f"{BASE}/{hackathon['id']}/teams/{team['id']}/progress"
    posted = await client.post(url, json={"message": "Wireframes done"}, headers=student["headers"])
    assert posted.status_code == 201

    listed = (await client.get(url, headers=student["headers"])).json()
    assert [u["message"] for u in listed] == ["Wireframes done"]
    mine = (await client.get(f"{BASE}/{hackathon['id']}/my-team", headers=student["headers"])).json()
    assert mine["status"] == "in_progress"


@pytest.mark.asyncio
async def test_my_team_none(client: AsyncClient, teacher: dict[str, Any], student: dict[str, Any]) -> None:
    hackathon = await _hackathon(client, teacher)
    response = await client.get(f"{BASE}/{hackathon['id']}/my-team", headers=student["headers"])
    assert response.status_code == 200
    assert response.json() is None


@pytest.mark.asyncio
async def test_poll_one_vote_each(client: AsyncClient, teacher: dict[str, Any], student: dict[str, Any]) -> None:
    hackathon = await _hackathon(client, teacher)
    poll = (await client.post(f"{BASE}/{hackathon['id']}/polls",
                              json={"question": "Best theme?", "options": ["Space", "Ocean"]},
                              headers=teacher["headers"])).json()
    url = f"{BASE}/{hackathon['id']}/polls/{poll['id']}/vote"

    voted = (await client.post(url, json={"optionIndex": 1}, headers=student["headers"])).json()
    assert voted["totalVotes"] == 1
    assert voted["myVote"] == 1
    assert voted["options"][1] == {"text": "Ocean", "votes": 1}

    again = await client.post(url, json={"optionIndex": 0}, headers=student["headers"])
    assert again.status_code == 400
    bad = await client.post(url, json={"optionIndex": 5}, headers=teacher["headers"])
    assert bad.status_code == 400


@pytest.mark.asyncio
async def test_delete_team(client: AsyncClient, teacher: dict[str, Any], student: dict[str, Any]) -> None:
    hackathon = await _hackathon(client, teacher)
    team = await _team(client, hackathon["id"], student)
    await client.post(f"{BASE}/{hackathon['id']}/teams/{team['id']}/progress", json={"message": "hi"},
                      headers=student["headers"])
    response = await client.delete(f"{BASE}/{hackathon['id']}/teams/{team['id']}", headers=student["headers"])
    assert response.status_code == 204
    assert (await client.get(f"{BASE}/{hackathon['id']}/teams", headers=student["headers"])).json() == []
