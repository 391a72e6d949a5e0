"""HTTP surface: routes, status codes and error payloads."""

import json
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

import server
from storylab.errors import LlmUnavailableError, NodeNotFoundError, OversizedResponseError, UpstreamError


class StubFigma:
    def __init__(self, document=None, error=None):
        self.document = document or {"id": "0:0", "type": "DOCUMENT", "children": []}
        self.error = error

    def fetch_file(self, file_id):
        if self.error:
            raise self.error
        return {"document": self.document}

    def fetch_file_metadata_only(self, file_id):
        return {"document": self.document}

    def fetch_node(self, file_id, node_id):
        raise NodeNotFoundError(f"Frame with ID {node_id} not found.")

    def fetch_images(self, file_id, ids):
        return {i: f"https://img/{i}.png" for i in ids}

    def download_image(self, url):
        return b"png"


@pytest.fixture
def wire(config):
    """Install dependency overrides; returns a function taking (figma, llm)."""

    def install(figma=None, llm=None):
        server.app.dependency_overrides[server.get_config] = lambda: config
        if figma is not None:
            server.app.dependency_overrides[server.get_figma_client] = lambda: figma
        if llm is not None:
            server.app.dependency_overrides[server.get_llm_client] = lambda: llm
        return TestClient(server.app)

    yield install
    server.app.dependency_overrides.clear()


class TestImport:
    def test_missing_file_id(self, wire):
        resp = wire(figma=StubFigma()).post("/import", json={})
        assert resp.status_code == 400
        assert resp.json() == {"error": "File ID is required"}

    def test_frames_and_headers(self, wire, sample_document):
        resp = wire(figma=StubFigma(sample_document)).post("/import", json={"fileId": "KEY"})

        assert resp.status_code == 200
        body = resp.json()
        assert [f["name"] for f in body] == ["F1", "F2", "F3"]
        assert body[0]["imageUrl"] == "https://img/1:1.png"
        assert body[0]["metadata"] == {"width": 375, "height": 812, "type": "FRAME"}
        assert "fileSize" not in body[0]
        assert resp.headers["X-Frames-Total"] == "3"
        assert resp.headers["X-Frames-Returned"] == "3"
        assert resp.headers["X-Import-Strategy"] == "full"

    def test_node_miss_falls_back_to_file(self, wire, sample_document):
        resp = wire(figma=StubFigma(sample_document)).post("/import", json={"fileId": "KEY", "nodeId": "9-9"})
        assert resp.status_code == 200
        assert resp.headers["X-Import-Strategy"] == "full"

    def test_upstream_status_is_mirrored(self, wire):
        resp = wire(figma=StubFigma(error=UpstreamError(403))).post("/import", json={"fileId": "KEY"})
        assert resp.status_code == 403
        assert resp.json()["error"] == "Access denied. Make sure you have access to this Figma file."

    def test_oversized_file_imports_metadata(self, wire, sample_document):
        figma = StubFigma(sample_document, error=OversizedResponseError(2, 1))
        resp = wire(figma=figma).post("/import", json={"fileId": "KEY"})

        assert resp.status_code == 200
        assert resp.headers["X-Import-Strategy"] == "metadata"
        assert all(f["imageUrl"] == "" for f in resp.json())


class TestPreview:
    def test_limit(self, wire, sample_document):
        resp = wire(figma=StubFigma(sample_document)).post("/preview", json={"fileId": "KEY", "limit": 2})
        assert [f["name"] for f in resp.json()] == ["F1", "F2"]


class TestHealth:
    def test_healthy(self, wire, fake_llm):
        resp = wire(llm=fake_llm()).get("/health")
        body = resp.json()
        assert resp.status_code == 200
        assert body["healthy"] is True
        assert body["url"] == "http://fake-llm"
        assert "timestamp" in body

    def test_check_crashing_is_500(self, wire, fake_llm):
        llm = fake_llm()
        llm.is_healthy = lambda: 1 / 0
        resp = wire(llm=llm).get("/health")
        assert resp.status_code == 500
        assert resp.json() == {"healthy": False, "error": "Failed to check AI service status"}


class TestGenerateStories:
    FRAME = {"id": "1:1", "name": "Login", "imageUrl": "https://img/1.png",
             "metadata": {"width": 375, "height": 812, "type": "FRAME"}}

    def test_empty_frames(self, wire, fake_llm):
        resp = wire(figma=StubFigma(), llm=fake_llm()).post("/generate-stories", json={"frames": []})
        assert resp.status_code == 400
        assert resp.json() == {"error": "Frames are required"}

    def test_unhealthy_backend(self, wire, fake_llm):
        resp = wire(figma=StubFigma(), llm=fake_llm(healthy=False)).post(
            "/generate-stories", json={"frames": [self.FRAME]}
        )
        assert resp.status_code == 503

    def test_stories_in_camel_case(self, wire, fake_llm):
        reply = json.dumps([{"title": "Sign in", "acceptance_criteria": ["works"], "story_points": 2}])
        resp = wire(figma=StubFigma(), llm=fake_llm([reply])).post(
            "/generate-stories", json={"frames": [self.FRAME], "context": "SaaS"}
        )

        assert resp.status_code == 200
        story = resp.json()[0]
        assert story["title"] == "Sign in"
        assert story["acceptanceCriteria"] == ["works"]
        assert story["storyPoints"] == 2
        assert story["id"].startswith("story-")

    def test_no_story_at_all_is_500(self, wire, fake_llm):
        resp = wire(figma=StubFigma(), llm=fake_llm([LlmUnavailableError("down")])).post(
            "/generate-stories", json={"frames": [self.FRAME]}
        )
        assert resp.status_code == 500
        assert resp.json()["error"] == "Failed to generate any user stories"


class TestGenerateFromUrl:
    def test_missing_url(self, wire, fake_llm):
        resp = wire(figma=StubFigma(), llm=fake_llm()).post("/generate-from-url", json={})
        assert resp.status_code == 400
        assert resp.json() == {"error": "Figma URL missing or invalid"}

    def test_screens(self, wire, fake_llm, sample_document):
        resp = wire(figma=StubFigma(sample_document), llm=fake_llm(["stories text"])).post(
            "/generate-from-url", json={"figmaUrl": "https://www.figma.com/design/KEY/App"}
        )
        assert resp.json() == {"stories": "stories text", "screens": ["F1", "F2", "F3"]}


class TestDependencies:
    def test_llm_client_is_closed_after_request(self, config, fake_llm):
        llm = fake_llm()
        server.app.dependency_overrides[server.get_config] = lambda: config
        try:
            with patch.object(server, "build_llm_client", return_value=llm):
                resp = TestClient(server.app).get("/health")
        finally:
            server.app.dependency_overrides.clear()

        assert resp.status_code == 200
        assert llm.closed

    def test_llm_client_is_closed_when_route_fails(self, config, fake_llm):
        llm = fake_llm(healthy=False)
        server.app.dependency_overrides[server.get_config] = lambda: config
        server.app.dependency_overrides[server.get_figma_client] = lambda: StubFigma()
        try:
            with patch.object(server, "build_llm_client", return_value=llm):
                resp = TestClient(server.app).post("/generate-stories", json={"frames": [TestGenerateStories.FRAME]})
        finally:
            server.app.dependency_overrides.clear()

        assert resp.status_code == 503
        assert llm.closed

    @pytest.mark.parametrize("error", [
        ValueError("Unknown AI_PROVIDER: bard"),
        FileNotFoundError("StoryLab config file not found at '/nope.json'."),
    ])
    def test_bad_configuration_is_a_json_error(self, error):
        with patch.object(server, "load_config", side_effect=error):
            resp = TestClient(server.app).get("/health")

        assert resp.status_code == 500
        assert resp.json() == {"error": "Invalid StoryLab configuration", "details": str(error)}
