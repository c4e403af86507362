import asyncio
import io
import uuid
import pytest
from sqlalchemy import select
from PIL import Image
from geoquest.config import settings
from geoquest.models.score import SessionScore
from geoquest.models.tour import Tour
from geoquest.security import make_access_token
import geoquest.routes.game as game_routes
from factories import STOPS, CENTRE_BOX

def operator_headers(operator_id=None):
    return {"Authorization": f"Bearer {make_access_token(str(operator_id or uuid.uuid4()))}"}

def tour_payload(max_teams=20):
    return {
        "name": "Grachtengordel",
        "variant": "wijktocht",
        "max_teams": max_teams,
        "checkpoints": [
            {
                "name": name, "latitude": lat, "longitude": lng, "unlock_radius_m": 50,
                "mission_title": f"Opdracht {name}", "mission_description": f"Vertel iets over {name}.",
                "gms_connection": 20, "gms_meaning": 15, "gms_joy": 20, "gms_growth": 10,
                "hint1": f"Zoek bij {name}", "bonus_photo_points": 5,
            }
            for name, lat, lng in STOPS
        ],
    }

async def setup_session(ac, hdrs, *, status="active", max_teams=20):
    r = await ac.post("/tours", headers=hdrs, json=tour_payload(max_teams))
    assert r.status_code == 201, r.text
    tour = r.json()
    r = await ac.post("/sessions", headers=hdrs, json={"tour_id": tour["id"]})
    assert r.status_code == 201, r.text
    gs = r.json()
    path = {"draft": [], "lobby": ["lobby"], "active": ["lobby", "active"]}[status]
    for target in path:
        r = await ac.post(f"/sessions/{gs['id']}/status", headers=hdrs, json={"status": target})
        assert r.status_code == 200, r.text
    return tour, gs

async def join(ac, code, name="De Vossen"):
    r = await ac.post("/game/join", json={"join_code": code, "team_name": name})
    assert r.status_code == 200, r.text
    body = r.json()
    return body, {"X-Team-Token": body["team_token"]}

def at(cp, accuracy=5):
    return {"latitude": cp["latitude"], "longitude": cp["longitude"], "accuracy_m": accuracy}

@pytest.mark.asyncio
async def test_tour_and_session_setup(client):
    hdrs = operator_headers()
    tour, gs = await setup_session(client, hdrs, status="draft")
    assert [c["order_index"] for c in tour["checkpoints"]] == [0, 1, 2]
    assert gs["status"] == "draft"
    assert len(gs["join_code"]) == 6
    assert not set(gs["join_code"]) & set("O0I1")

    r = await client.get(f"/tours/{tour['id']}", headers=hdrs)
    assert r.status_code == 200
    assert [c["name"] for c in r.json()["checkpoints"]] == ["Dam", "Westerkerk", "Noorderkerk"]

    # sessions are private to their operator
    assert (await client.get(f"/sessions/{gs['id']}", headers=operator_headers())).status_code == 404
    assert (await client.get(f"/sessions/{gs['id']}")).status_code == 401

@pytest.mark.asyncio
async def test_join_rules(client):
    hdrs = operator_headers()
    tour, gs = await setup_session(client, hdrs, status="draft", max_teams=2)

    r = await client.post("/game/join", json={"join_code": gs["join_code"], "team_name": "De Vossen"})
    assert r.status_code == 409
    assert r.json()["error"] == "not_active"

    await client.post(f"/sessions/{gs['id']}/status", headers=hdrs, json={"status": "lobby"})
    first, _ = await join(client, gs["join_code"].lower(), "De Vossen")
    again, _ = await join(client, gs["join_code"], "de vossen")
    assert again["team_id"] == first["team_id"]
    assert again["team_token"] == first["team_token"]

    await join(client, gs["join_code"], "De Uilen")
    r = await client.post("/game/join", json={"join_code": gs["join_code"], "team_name": "De Dassen"})
    assert r.status_code == 409

    r = await client.post("/game/join", json={"join_code": "ZZZZZZ", "team_name": "X"})
    assert r.status_code == 404

@pytest.mark.asyncio
async def test_status_transitions_over_http(client, channel):
    hdrs = operator_headers()
    tour, gs = await setup_session(client, hdrs, status="draft")
    r = await client.post(f"/sessions/{gs['id']}/status", headers=hdrs, json={"status": "active"})
    assert r.status_code == 409
    body = r.json()
    assert body["error"] == "invalid_transition"
    assert body["from"] == "draft" and body["to"] == "active"

    await client.post(f"/sessions/{gs['id']}/status", headers=hdrs, json={"status": "lobby"})
    r = await client.post(f"/sessions/{gs['id']}/status", headers=hdrs, json={"status": "active"})
    assert r.json()["status"] == "active"
    assert r.json()["started_at"] is not None
    events = [m["data"]["status"] for m in channel.events(f"game:{gs['id']}")]
    assert events == ["lobby", "active"]

@pytest.mark.asyncio
async def test_full_team_flow(client, channel, oracle):
    hdrs = operator_headers()
    tour, gs = await setup_session(client, hdrs)
    cps = tour["checkpoints"]
    team, th = await join(client, gs["join_code"])

    r = await client.post("/game/unlock", headers=th,
                          json={"checkpoint_id": cps[0]["id"], "position": at(cps[1])})
    assert r.status_code == 409
    assert r.json()["error"] == "too_far"
    assert r.json()["distance_m"] > 50

    r = await client.post("/game/unlock", headers=th, json={"checkpoint_id": cps[1]["id"], "position": at(cps[1])})
    assert r.status_code == 409
    assert r.json() == {"error": "out_of_order", "detail": "This is not the current checkpoint",
                        "retryable": False, "current_index": 0}

    r = await client.post("/game/unlock", headers=th, json={"checkpoint_id": cps[0]["id"], "position": at(cps[0])})
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["success"] and not body["already_completed"]
    assert body["current_checkpoint_index"] == 1
    assert body["checkpoint"]["mission_title"] == "Opdracht Dam"

    r = await client.post("/game/submit", headers=th, json={"checkpoint_id": cps[0]["id"], "answer": "Gedaan!"})
    assert r.status_code == 200, r.text
    assert r.json()["gms_earned"] == 40
    assert r.json()["total_score"] == 40

    r = await client.post("/game/submit", headers=th, json={"checkpoint_id": cps[0]["id"], "answer": "Nog eens"})
    assert r.status_code == 409
    assert r.json()["error"] == "already_scored"

    r = await client.get(f"/game/sessions/{gs['id']}", headers=th)
    assert r.status_code == 200
    view = r.json()
    assert view["team"]["current_checkpoint_index"] == 1
    assert view["checkpoints"][0]["mission_title"] == "Opdracht Dam"
    assert view["checkpoints"][1]["mission_title"] is None
    assert view["checkpoints"][1]["hint1"] is None
    assert view["checkpoints"][1]["is_current"]
    assert view["scoreboard"][0]["is_current_team"]

    r = await client.get(f"/game/sessions/{gs['id']}/leaderboard", headers=th)
    assert r.status_code == 200
    rows = r.json()["rows"]
    assert rows[0]["team_name"] == "De Vossen" and rows[0]["total_score"] == 40
    assert rows[0]["checkpoints_done"] == 1

    r = await client.get(f"/game/sessions/{gs['id']}/report", headers=th)
    assert r.status_code == 200
    assert r.json()["rank"] == 1
    assert r.json()["dimension_maxes"]["meaning"] == 45

    r = await client.get(f"/sessions/{gs['id']}/scores/verify", headers=hdrs)
    assert r.status_code == 200
    assert r.json()[0]["consistent"]

    pushed = [m["event"] for m in channel.events(f"game:{gs['id']}")]
    assert "checkpointUnlocked" in pushed and "scoreUpdate" in pushed

@pytest.mark.asyncio
async def test_oracle_outage_is_retryable(client, oracle):
    hdrs = operator_headers()
    tour, gs = await setup_session(client, hdrs)
    cp = tour["checkpoints"][0]
    team, th = await join(client, gs["join_code"])
    await client.post("/game/unlock", headers=th, json={"checkpoint_id": cp["id"], "position": at(cp)})

    oracle.error = RuntimeError("gateway down")
    r = await client.post("/game/submit", headers=th, json={"checkpoint_id": cp["id"], "answer": "hallo"})
    assert r.status_code == 503
    assert r.json()["retryable"] is True
    assert r.json()["error"] == "evaluation_unavailable"
    assert "retry-after" in r.headers

    oracle.error = None
    r = await client.post("/game/submit", headers=th, json={"checkpoint_id": cp["id"], "answer": "hallo"})
    assert r.status_code == 200

@pytest.mark.asyncio
async def test_paused_session_rejects_gameplay(client):
    hdrs = operator_headers()
    tour, gs = await setup_session(client, hdrs)
    cp = tour["checkpoints"][0]
    team, th = await join(client, gs["join_code"])
    await client.post(f"/sessions/{gs['id']}/status", headers=hdrs, json={"status": "paused"})

    r = await client.post("/game/position", headers=th, json=at(cp))
    assert r.status_code == 409
    assert r.json() == {"error": "not_active", "detail": "Session is paused", "retryable": False,
                        "status": "paused"}
    r = await client.post("/game/unlock", headers=th, json={"checkpoint_id": cp["id"], "position": at(cp)})
    assert r.status_code == 409

@pytest.mark.asyncio
async def test_geofence_and_position(client, channel):
    hdrs = operator_headers()
    tour, gs = await setup_session(client, hdrs)
    r = await client.put(f"/sessions/{gs['id']}/geofence", headers=hdrs,
                         json={"geofence_polygon": CENTRE_BOX[:2]})
    assert r.status_code == 422
    r = await client.put(f"/sessions/{gs['id']}/geofence", headers=hdrs, json={"geofence_polygon": CENTRE_BOX})
    assert r.status_code == 200
    assert len(r.json()["geofence_polygon"]) == 4

    team, th = await join(client, gs["join_code"])
    r = await client.post("/game/position", headers=th, json={"latitude": 52.39, "longitude": 4.89})
    assert r.status_code == 200
    assert r.json()["is_outside_geofence"]
    alerts = [m for m in channel.events(f"game:{gs['id']}:operator") if m["event"] == "geofenceAlert"]
    assert len(alerts) == 1

    r = await client.get(f"/sessions/{gs['id']}", headers=hdrs)
    assert r.json()["teams"][0]["is_outside_geofence"]

@pytest.mark.asyncio
async def test_photo_upload(client, monkeypatch):
    stored = {}
    monkeypatch.setattr(game_routes, "put_bytes", lambda key, data, mime: stored.update({key: mime}))
    hdrs = operator_headers()
    tour, gs = await setup_session(client, hdrs)
    team, th = await join(client, gs["join_code"])

    buf = io.BytesIO()
    Image.new("RGB", (16, 16), (200, 30, 30)).save(buf, "PNG")
    r = await client.post("/game/photo", headers=th, files={"file": ("foto.png", buf.getvalue(), "image/png")})
    assert r.status_code == 201, r.text
    ref = r.json()["photo_ref"]
    assert ref.startswith(f"sessions/{gs['id']}/teams/{team['team_id']}/")
    assert ref.endswith(".png")
    assert stored == {ref: "image/png"}

    r = await client.post("/game/photo", headers=th, files={"file": ("x.txt", b"not an image", "text/plain")})
    assert r.status_code == 422
    assert r.json()["error"] == "invalid_input"

@pytest.mark.asyncio
async def test_foreign_photo_ref_is_refused(client):
    hdrs = operator_headers()
    tour, gs = await setup_session(client, hdrs)
    cp = tour["checkpoints"][0]
    team, th = await join(client, gs["join_code"])
    await client.post("/game/unlock", headers=th, json={"checkpoint_id": cp["id"], "position": at(cp)})
    r = await client.post("/game/submit", headers=th,
                          json={"checkpoint_id": cp["id"], "photo_ref": "sessions/other/teams/x/a.jpg"})
    assert r.status_code == 422

@pytest.mark.asyncio
async def test_team_token_required(client):
    r = await client.post("/game/position", json={"latitude": 52.0, "longitude": 4.0})
    assert r.status_code == 401
    r = await client.post("/game/position", headers={"X-Team-Token": "nope"},
                          json={"latitude": 52.0, "longitude": 4.0})
    assert r.status_code == 401

@pytest.mark.asyncio
async def test_max_teams_defaults_from_settings(client, session, monkeypatch):
    monkeypatch.setattr(settings, "default_max_teams", 7)
    payload = tour_payload()
    del payload["max_teams"]
    r = await client.post("/tours", headers=operator_headers(), json=payload)
    assert r.status_code == 201, r.text
    assert r.json()["max_teams"] == 7

    tour = Tour(operator_id=uuid.uuid4(), name="Zonder limiet")
    session.add(tour)
    await session.commit()
    assert tour.max_teams == 7

@pytest.mark.asyncio
async def test_verify_is_read_only_and_repair_is_a_post(client, maker):
    hdrs = operator_headers()
    tour, gs = await setup_session(client, hdrs)
    team, th = await join(client, gs["join_code"])
    async with maker() as s:
        row = await s.scalar(select(SessionScore).where(SessionScore.team_id == uuid.UUID(team["team_id"])))
        row.joy = 7
        await s.commit()

    verify = f"/sessions/{gs['id']}/scores/verify"
    r = await client.get(verify, headers=hdrs, params={"repair": "true"})
    assert r.status_code == 200
    assert r.json()[0]["drift"]["joy"] == {"stored": 7, "expected": 0}
    assert not r.json()[0]["repaired"]

    r = await client.post(f"/sessions/{gs['id']}/scores/repair", headers=hdrs)
    assert r.status_code == 200
    assert r.json()[0]["repaired"]
    r = await client.get(verify, headers=hdrs)
    assert r.json()[0]["consistent"]

@pytest.mark.asyncio
async def test_event_pump_failure_is_collected():
    async def send_fails():
        raise RuntimeError("socket closed")

    dead = asyncio.create_task(send_fails())
    await asyncio.wait([dead])
    err = await game_routes.stop_forwarding(dead)
    assert isinstance(err, RuntimeError)

    idle = asyncio.create_task(asyncio.sleep(60))
    assert await game_routes.stop_forwarding(idle) is None
    assert idle.cancelled()
