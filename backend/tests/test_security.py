import uuid
from datetime import datetime, timedelta, timezone
import jwt
import pytest
from geoquest.config import settings
from geoquest.security import decode_token, make_access_token

def test_access_token_round_trip():
    sub = str(uuid.uuid4())
    data = decode_token(make_access_token(sub))
    assert data["sub"] == sub
    assert data["type"] == "access"

@pytest.mark.asyncio
async def test_operator_routes_reject_bad_tokens(client):
    tour_id = uuid.uuid4()
    r = await client.get(f"/tours/{tour_id}", headers={"Authorization": "Bearer not-a-jwt"})
    assert r.status_code == 401

    expired = jwt.encode(
        {"sub": str(uuid.uuid4()), "type": "access", "exp": datetime.now(timezone.utc) - timedelta(minutes=1)},
        settings.jwt_secret, algorithm="HS256",
    )
    r = await client.get(f"/tours/{tour_id}", headers={"Authorization": f"Bearer {expired}"})
    assert r.status_code == 401

    refresh = jwt.encode({"sub": str(uuid.uuid4()), "type": "refresh"}, settings.jwt_secret, algorithm="HS256")
    r = await client.get(f"/tours/{tour_id}", headers={"Authorization": f"Bearer {refresh}"})
    assert r.json()["detail"] == "Wrong token type"

    r = await client.get(f"/tours/{tour_id}", headers={"Authorization": f"Bearer {make_access_token('not-a-uuid')}"})
    assert r.status_code == 401
