"""
Tests for the HTTP adapter.

The lifespan hook is not run; each test installs an agent wired to the
scripted LLM and the in-memory store.
"""

import json

import pytest
from fastapi.testclient import TestClient

import api_server
from persona_agent.agent import ConversationAgent
from persona_agent.messages import msg
from persona_agent.services.tools import ToolRegistry


@pytest.fixture
def agent(llm, store, voice, convo_config):
    return ConversationAgent(
        llm=llm,
        store=store,
        voice=voice,
        tools=ToolRegistry(),
        config=convo_config,
        aliases={"moon1945": "moon"},
    )


@pytest.fixture
def client(agent, monkeypatch):
    monkeypatch.setattr(api_server, "agent", agent)
    return TestClient(api_server.app)


def read_lines(response):
    return [json.loads(line) for line in response.text.splitlines() if line.strip()]


class TestHealth:
    def test_health(self, client):
        response = client.get("/api/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    def test_agent_not_ready(self, monkeypatch):
        monkeypatch.setattr(api_server, "agent", None)

        response = TestClient(api_server.app).post("/process", json={"prompt": "Hi", "userId": "moon"})

        assert response.status_code == 503
        assert response.json()["detail"] == msg("error.agent_not_ready")


class TestProcess:
    """Tests for the text turn endpoint."""

    def test_streams_chunks_then_full_reply(self, client):
        response = client.post("/process", json={"prompt": "Hi Rimuru!", "userId": "moon"})

        assert response.status_code == 200
        lines = read_lines(response)
        final = lines[-1]
        assert final["respondingTo"] == "Hi Rimuru!"
        assert final["response"] == "Hello there. I love food."
        assert final["groundedPrompt"].startswith("You are Rimuru.")

        sentences = [line["sentence"] for line in lines[:-1] if "sentence" in line]
        assert sentences == ["Hello there.", "I love food."]
        fragments = [line["response"] for line in lines[:-1] if "sentence" not in line]
        assert "".join(fragments) == final["response"]

    def test_missing_prompt(self, client):
        response = client.post("/process", json={"prompt": "", "userId": "moon"})

        assert response.status_code == 400
        assert response.json() == {"detail": msg("error.prompt_required")}

    def test_camel_case_fields(self, client, voice):
        response = client.post(
            "/process",
            json={"prompt": "Hi", "userId": "moon", "personality": "Frieren", "sourceMaterial": "Frieren"},
        )

        assert "You are Frieren." in read_lines(response)[-1]["groundedPrompt"]
        assert voice.rvc.convert.await_args.args[1] == "frieren"


class TestProcessVoice:
    """Tests for the voice turn endpoint."""

    def test_declined_is_empty_204(self, client, llm):
        llm.gate_answer = "no"

        response = client.post("/processVoice", json={"prompt": "Shion?", "userId": "moon"})

        assert response.status_code == 204
        assert response.content == b""

    def test_accepted_streams_audio(self, client):
        response = client.post("/processVoice", json={"prompt": "Rimuru, hi", "userId": "moon"})

        assert response.status_code == 200
        audio_lines = [line for line in read_lines(response) if line.get("audio")]
        assert [line["sentence"] for line in audio_lines] == ["Hello there.", "I love food."]


class TestHistoryEndpoints:
    """Tests for history listing and deletion."""

    def test_unknown_channel(self, client):
        response = client.post("/getHistory", json={"userId": "nobody", "limit": 5})

        assert response.status_code == 404
        assert response.json() == {"detail": msg("error.channel_not_found")}

    def test_missing_limit(self, client):
        response = client.post("/getHistory", json={"userId": "moon"})

        assert response.status_code == 400

    def test_lists_messages(self, client):
        client.post("/process", json={"prompt": "Hi", "userId": "moon"})

        response = client.post("/getHistory", json={"userId": "moon", "limit": 10})

        assert response.status_code == 200
        assert [(m["author"], m["text"]) for m in response.json()] == [
            ("moon", "Hi"),
            ("Self", "Hello there. I love food."),
        ]

    def test_delete(self, client):
        client.post("/process", json={"prompt": "Hi", "userId": "moon"})

        response = client.post("/deleteHistory", json={"userId": "moon1945"})

        assert response.status_code == 200
        assert response.json() == {"detail": msg("history.deleted")}
        assert client.post("/deleteHistory", json={"userId": "moon"}).status_code == 404
