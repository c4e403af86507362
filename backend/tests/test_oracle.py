import json
import httpx
import pytest
from pydantic import ValidationError
from geoquest.services.oracle import HttpScoringOracle, OracleRequest, build_messages

REQ = OracleRequest(
    mission_title="Zing een lied",
    mission_description="Zing samen het volkslied bij de Dam.",
    mission_type="video",
    answer="We hebben gezongen",
    weights={"connection": 20, "meaning": 15, "joy": 20, "growth": 10},
)

def completion(content: str) -> dict:
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}

def oracle_for(handler) -> HttpScoringOracle:
    return HttpScoringOracle("https://gateway.test/api/v1/", "k-123", "test-model", 5,
                             transport=httpx.MockTransport(handler))

@pytest.mark.asyncio
async def test_posts_chat_completion_and_parses_verdict():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["authorization"]
        seen["body"] = json.loads(request.content)
        verdict = {"score": 88, "dimensions": {"connection": 18, "meaning": 12, "joy": 20, "growth": 7},
                   "feedback": "Prachtig!", "reasoning": "enthousiast", "extra": "ignored"}
        return httpx.Response(200, json=completion(json.dumps(verdict)))

    v = await oracle_for(handler).evaluate(REQ)
    assert v.score == 88
    assert v.dimensions.joy == 20
    assert v.feedback == "Prachtig!"
    assert seen["url"] == "https://gateway.test/api/v1/chat/completions"
    assert seen["auth"] == "Bearer k-123"
    assert seen["body"]["model"] == "test-model"
    assert seen["body"]["response_format"] == {"type": "json_object"}

@pytest.mark.asyncio
async def test_out_of_range_dimension_is_rejected():
    def handler(request):
        bad = {"score": 50, "dimensions": {"connection": 101, "meaning": 1, "joy": 1, "growth": 1}}
        return httpx.Response(200, json=completion(json.dumps(bad)))

    with pytest.raises(ValidationError):
        await oracle_for(handler).evaluate(REQ)

@pytest.mark.asyncio
async def test_non_json_content_is_rejected():
    def handler(request):
        return httpx.Response(200, json=completion("Ik vind het goed, 8/10"))

    with pytest.raises(ValidationError):
        await oracle_for(handler).evaluate(REQ)

@pytest.mark.asyncio
async def test_gateway_error_raises():
    def handler(request):
        return httpx.Response(502, json={"error": "upstream"})

    with pytest.raises(httpx.HTTPStatusError):
        await oracle_for(handler).evaluate(REQ)

def test_prompt_mentions_weights_and_leniency():
    msgs = build_messages(REQ.model_copy(update={"lenient": True, "photo_ref": "sessions/x/a.jpg"}))
    system, user = msgs[0]["content"], msgs[1]["content"]
    assert "connection 20 | meaning 15 | joy 20 | growth 10" in system
    assert "children" in system
    assert "We hebben gezongen" in user and "sessions/x/a.jpg" in user
