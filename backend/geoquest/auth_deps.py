from __future__ import annotations
from uuid import UUID
import jwt
from fastapi import Depends, Header, HTTPException
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from geoquest.db import get_session
from geoquest.security import decode_token
from geoquest.models.game_session import Team

security = HTTPBearer(auto_error=False)

async def get_current_operator(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> UUID:
    if credentials is None:
        raise HTTPException(status_code=401, detail="Missing access token")
    try:
        data = decode_token(credentials.credentials)
    except jwt.PyJWTError:
        raise HTTPException(status_code=401, detail="Invalid token")
    if data.get("type") != "access":
        raise HTTPException(status_code=401, detail="Wrong token type")
    try:
        return UUID(str(data.get("sub")))
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid subject")

async def get_team(
    x_team_token: str | None = Header(None),
    session: AsyncSession = Depends(get_session),
) -> Team:
    if not x_team_token:
        raise HTTPException(status_code=401, detail="Missing team token")
    team = await session.scalar(select(Team).where(Team.token == x_team_token))
    if not team or not team.is_active:
        raise HTTPException(status_code=401, detail="Unknown team token")
    return team
