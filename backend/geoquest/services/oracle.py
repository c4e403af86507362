from __future__ import annotations
from typing import Protocol
import httpx
from pydantic import BaseModel, ConfigDict, Field
from geoquest.config import settings


class OracleRequest(BaseModel):
    mission_title: str
    mission_description: str
    mission_type: str
    answer: str | None = None
    photo_ref: str | None = None
    # per-dimension caps of the checkpoint, used as weighting context
    weights: dict[str, int]
    lenient: bool = False
    variant: str = "wijktocht"


class DimensionScores(BaseModel):
    connection: float = Field(ge=0, le=100, allow_inf_nan=False)
    meaning: float = Field(ge=0, le=100, allow_inf_nan=False)
    joy: float = Field(ge=0, le=100, allow_inf_nan=False)
    growth: float = Field(ge=0, le=100, allow_inf_nan=False)


class OracleVerdict(BaseModel):
    """Validated oracle answer. Anything that does not fit is treated as unavailable."""
    model_config = ConfigDict(extra="ignore")

    score: float = Field(ge=0, le=100, allow_inf_nan=False)
    dimensions: DimensionScores
    feedback: str = ""
    reasoning: str = ""


class ScoringOracle(Protocol):
    async def evaluate(self, req: OracleRequest) -> OracleVerdict: ...


def build_messages(req: OracleRequest) -> list[dict[str, str]]:
    w = req.weights
    audience = (
        "children (be mild, encouraging and use simple language)"
        if req.lenient else f"participants of a '{req.variant}' tour"
    )
    system = (
        "Evaluate a team's submission for a location-based team mission.\n"
        f"Audience: {audience}\n"
        f"Mission type: {req.mission_type}\n"
        "Checkpoint emphasis per dimension (max points): "
        f"connection {w.get('connection', 0)} | meaning {w.get('meaning', 0)} | "
        f"joy {w.get('joy', 0)} | growth {w.get('growth', 0)}\n"
        "Score each of the 4 dimensions 0-25; score higher on dimensions this checkpoint emphasises.\n"
        + ("Be extra lenient: children deserve encouragement.\n" if req.lenient else "")
        + 'Answer ONLY with JSON: {"score": 0-100, "dimensions": {"connection": n, "meaning": n, '
        '"joy": n, "growth": n}, "feedback": "max 2 sentences", "reasoning": "short"}'
    )
    answer = req.answer or f"[Photo submitted: {req.photo_ref}]"
    if req.answer and req.photo_ref:
        answer = f"{req.answer}\n[Photo submitted: {req.photo_ref}]"
    user = f"Mission: {req.mission_title}\n{req.mission_description}\n\nTeam submission: {answer}"
    return [{"role": "system", "content": system}, {"role": "user", "content": user}]


class HttpScoringOracle:
    """OpenAI-compatible chat completions gateway with forced JSON output."""

    def __init__(self, base_url: str, api_key: str, model: str, timeout_s: float,
                 transport: httpx.AsyncBaseTransport | None = None):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.model = model
        self.timeout_s = timeout_s
        self._transport = transport

    async def evaluate(self, req: OracleRequest) -> OracleVerdict:
        body = {
            "model": self.model,
            "messages": build_messages(req),
            "max_tokens": 512,
            "temperature": 0.7,
            "response_format": {"type": "json_object"},
        }
        headers = {"Authorization": f"Bearer {self.api_key}", "X-Title": settings.app_display_name}
        async with httpx.AsyncClient(timeout=self.timeout_s, transport=self._transport) as client:
            r = await client.post(f"{self.base_url}/chat/completions", json=body, headers=headers)
            r.raise_for_status()
        content = r.json()["choices"][0]["message"]["content"]
        return OracleVerdict.model_validate_json(content)


_oracle: ScoringOracle | None = None


def get_oracle() -> ScoringOracle:
    global _oracle
    if _oracle is None:
        _oracle = HttpScoringOracle(
            settings.oracle_base_url, settings.oracle_api_key, settings.oracle_model, settings.oracle_timeout_s
        )
    return _oracle
