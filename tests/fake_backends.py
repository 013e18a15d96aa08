"""In-memory stand-ins for Qdrant and Ollama, served through httpx.MockTransport."""

import json
import math
import string

import httpx

EMBED_DIMENSIONS = 27


def fake_embedding(text: str) -> list[float]:
    """Letter histogram plus a constant component, so no vector is all zeros."""
    lowered = text.lower()
    return [float(lowered.count(letter)) for letter in string.ascii_lowercase] + [1.0]


def cosine(a: list[float], b: list[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return dot / norm if norm else 0.0


def _json(request: httpx.Request) -> dict:
    return json.loads(request.content) if request.content else {}


def _matches(point: dict, filter: dict) -> bool:
    payload = point.get("payload") or {}
    return all(payload.get(c["key"]) == c["match"]["value"] for c in filter.get("must", []))


class FakeQdrant:
    def __init__(self) -> None:
        self.collections: dict[str, dict] = {}
        self.fail_create = False
        self.fail_search = False
        self.fail_upsert = False
        self.scroll_requests: list[dict] = []
        self.count_requests: list[dict] = []
        self.delete_requests: list[dict] = []

    def points(self, collection: str) -> list[dict]:
        return list(self.collections[collection]["points"].values())

    def handle(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path == "/healthz":
            return httpx.Response(200, text="healthz check passed")

        parts = path.strip("/").split("/")
        if len(parts) < 2 or parts[0] != "collections":
            return httpx.Response(404, json={"status": {"error": "Not found"}})
        name, rest = parts[1], parts[2:]

        if not rest:
            if request.method == "PUT":
                if self.fail_create:
                    return httpx.Response(500, json={"status": {"error": "disk full"}})
                if name in self.collections:
                    return httpx.Response(409, json={"status": {"error": "already exists"}})
                self.collections[name] = {"config": _json(request), "points": {}}
                return httpx.Response(200, json={"result": True, "status": "ok"})
            if request.method == "DELETE":
                if self.collections.pop(name, None) is None:
                    return httpx.Response(404, json={"status": {"error": "Not found"}})
                return httpx.Response(200, json={"result": True, "status": "ok"})

        if rest == ["exists"]:
            return httpx.Response(200, json={"result": {"exists": name in self.collections}, "status": "ok"})

        collection = self.collections.get(name)
        if collection is None:
            return httpx.Response(404, json={"status": {"error": f"Collection {name} not found"}})
        stored = collection["points"]
        body = _json(request)

        if rest == ["points"] and request.method == "PUT":
            if self.fail_upsert:
                return httpx.Response(500, json={"status": {"error": "upsert failed"}})
            for point in body["points"]:
                stored[point["id"]] = point
            return httpx.Response(200, json={"result": {"status": "completed"}, "status": "ok"})

        if rest == ["points", "search"]:
            if self.fail_search:
                return httpx.Response(500, json={"status": {"error": "search failed"}})
            scored = sorted(
                ({"id": p["id"], "score": cosine(body["vector"], p["vector"]), "payload": p["payload"]} for p in stored.values()),
                key=lambda hit: hit["score"],
                reverse=True,
            )
            return httpx.Response(200, json={"result": scored[: body["limit"]], "status": "ok"})

        if rest == ["points", "scroll"]:
            self.scroll_requests.append(body)
            ordered = sorted(stored.values(), key=lambda p: p["id"])
            start = 0
            if body.get("offset") is not None:
                start = next((i for i, p in enumerate(ordered) if p["id"] == body["offset"]), len(ordered))
            limit = body.get("limit") or 10
            page = ordered[start: start + limit]
            next_offset = ordered[start + limit]["id"] if start + limit < len(ordered) else None
            return httpx.Response(200, json={
                "result": {
                    "points": [{"id": p["id"], "payload": p["payload"]} for p in page],
                    "next_page_offset": next_offset,
                },
                "status": "ok",
                "time": 0.001,
            })

        if rest == ["points", "count"]:
            self.count_requests.append(body)
            count = sum(1 for p in stored.values() if _matches(p, body.get("filter") or {}))
            return httpx.Response(200, json={"result": {"count": count}, "status": "ok"})

        if rest == ["points", "delete"]:
            self.delete_requests.append(body)
            if "filter" in body:
                for point_id in [pid for pid, p in stored.items() if _matches(p, body["filter"])]:
                    del stored[point_id]
            for point_id in body.get("points", []):
                stored.pop(point_id, None)
            return httpx.Response(200, json={"result": {"status": "completed"}, "status": "ok"})

        return httpx.Response(404, json={"status": {"error": "Unknown endpoint"}})


class FakeOllama:
    def __init__(self) -> None:
        self.reply_tokens: list[str] = ["Hello", ", ", "world", "!"]
        self.models: list[dict] = [{"name": "fake-chat", "details": {"family": "fake"}}]
        self.chat_requests: list[dict] = []
        self.embed_requests: list[dict] = []
        self.fail_embed = False
        self.fail_chat = False
        self.fail_models = False

    def handle(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path in ("", "/"):
            return httpx.Response(200, text="Ollama is running")

        if path == "/api/embed":
            body = _json(request)
            self.embed_requests.append(body)
            if self.fail_embed:
                return httpx.Response(500, json={"error": "embedding model crashed"})
            return httpx.Response(200, json={"model": body["model"], "embeddings": [fake_embedding(t) for t in body["input"]]})

        if path == "/api/show":
            return httpx.Response(200, json={"model_info": {"fake.embedding_length": EMBED_DIMENSIONS}})

        if path == "/api/tags":
            if self.fail_models:
                return httpx.Response(503, json={"error": "unavailable"})
            return httpx.Response(200, json={"models": self.models})

        if path == "/api/chat":
            body = _json(request)
            self.chat_requests.append(body)
            if self.fail_chat:
                return httpx.Response(500, json={"error": "model not loaded"})
            if not body.get("stream"):
                return httpx.Response(200, json={
                    "model": body["model"],
                    "message": {"role": "assistant", "content": "".join(self.reply_tokens)},
                    "done": True,
                })
            lines = [
                json.dumps({"model": body["model"], "message": {"role": "assistant", "content": token}, "done": False})
                for token in self.reply_tokens
            ]
            lines.append(json.dumps({"model": body["model"], "message": {"role": "assistant", "content": ""}, "done": True}))
            return httpx.Response(200, content=("\n".join(lines) + "\n").encode("utf-8"))

        return httpx.Response(404, json={"error": "not found"})


class FakeBackend:
    """Routes requests to the fake Qdrant or Ollama by host name."""

    def __init__(self) -> None:
        self.qdrant = FakeQdrant()
        self.ollama = FakeOllama()
        self.transport = httpx.MockTransport(self.handle)

    def handle(self, request: httpx.Request) -> httpx.Response:
        if request.url.host == "qdrant.test":
            return self.qdrant.handle(request)
        if request.url.host == "ollama.test":
            return self.ollama.handle(request)
        return httpx.Response(502, text=f"unexpected host {request.url.host}")
