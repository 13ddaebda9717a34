import pytest

from projectica.agents import MARKET_EXPERT
from tests.fakes import USER


@pytest.mark.asyncio
async def test_system_agent_answers_task(client):
    client.fake_service.completion = "Here are three segments."

    res = await client.post(
        "/api/agent/market-research-expert/task",
        json={"input": "Segment the EV market", "taskId": "task-7"},
    )

    assert res.status_code == 200
    assert res.json() == {"taskId": "task-7", "response": "Here are three segments."}
    call = client.fake_service.chat_calls[0]
    assert call["model"] == MARKET_EXPERT.model
    assert call["messages"] == [
        {"role": "system", "content": MARKET_EXPERT.instructions},
        {"role": "user", "content": "Segment the EV market"},
    ]


@pytest.mark.asyncio
async def test_custom_agent_uses_its_own_instructions(client):
    db = client.app.state.db
    await db.upsert_agent(USER, "copywriter", name="Copywriter", instructions="Write punchy copy.", model="gpt-4o")

    res = await client.post("/api/agent/copywriter/task", json={"input": "Tagline please", "taskId": "t1"})

    assert res.status_code == 200
    assert client.fake_service.chat_calls[0]["model"] == "gpt-4o"
    assert client.fake_service.chat_calls[0]["messages"][0]["content"] == "Write punchy copy."


@pytest.mark.asyncio
async def test_unknown_agent(client):
    res = await client.post("/api/agent/ghost/task", json={"input": "Hi", "taskId": "t1"})
    assert res.status_code == 404
    assert res.json() == {"error": "Agent not found"}


@pytest.mark.asyncio
async def test_task_requires_fields(client):
    res = await client.post("/api/agent/market-research-expert/task", json={"input": "Hi"})
    assert res.status_code == 400
    assert res.json() == {"error": "Missing required fields"}
