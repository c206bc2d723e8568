"""In-memory backup server used as the fake backend of the dashboard tests."""

import json
import re

import httpx


API_URL = "http://backup.test/api"
VALID_TOKEN = "token-admin"
TIMESTAMP = "2025-01-21T10:00:00Z"


def envelope(status_code, data=None):
    if data is None and status_code == 204:
        return httpx.Response(204)
    return httpx.Response(status_code, json={"data": data})


def failure(status_code, message):
    return httpx.Response(status_code, json={"error": {"message": message}})


def string_map(value):
    """Target configs decode into a string to string map on the server."""
    return isinstance(value, dict) and all(isinstance(item, str) for item in value.values())


class FakeBackupServer:
    """Just enough of the backup server's REST API to exercise the client side."""

    def __init__(self):
        self.calls = []
        self.registration_enabled = True
        self.users = {
            1: {"id": 1, "email": "admin@example.com", "is_admin": True,
                "created_at": TIMESTAMP, "updated_at": TIMESTAMP},
        }
        self.passwords = {"admin@example.com": "secret"}
        self.tokens = {VALID_TOKEN: 1}
        self.sources = {}
        self.targets = {}
        self.snapshots = {}
        self.jobs = {}
        self.settings = {"registration_enabled": "true"}
        self.file_trees = {}
        self.manifests = {}
        self.fail_next = {}
        self.holds = {}
        self._next_id = 100

    def next_id(self):
        self._next_id += 1
        return self._next_id

    def add_source(self, name="documents", path="/home/user/documents", target_id=None):
        source_id = self.next_id()
        self.sources[source_id] = {
            "id": source_id, "name": name, "path": path, "exclusions": [],
            "target_id": target_id, "created_at": TIMESTAMP, "updated_at": TIMESTAMP,
        }
        return source_id

    def add_target(self, name="local-disk", target_type="local", config=None):
        target_id = self.next_id()
        self.targets[target_id] = {
            "id": target_id, "name": name, "type": target_type,
            "config": config or {"path": "/mnt/backups"},
            "created_at": TIMESTAMP, "updated_at": TIMESTAMP,
        }
        return target_id

    def add_snapshot(self, source_id=1, target_id=1, status="success"):
        snapshot_id = self.next_id()
        self.snapshots[snapshot_id] = {
            "id": snapshot_id, "source_id": source_id, "target_id": target_id,
            "status": status, "file_count": 2, "total_bytes": 1536, "delta_bytes": 1024,
            "created_at": TIMESTAMP, "completed_at": TIMESTAMP,
        }
        return snapshot_id

    def count(self, method, path):
        return self.calls.count((method, path))

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        response = self.dispatch(request)
        # A held call answers with the state it saw when it arrived
        gate = self.holds.pop((request.method, request.url.path.removeprefix("/api")), None)
        if gate is not None:
            await gate.wait()
        return response

    def dispatch(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.removeprefix("/api")
        self.calls.append((request.method, path))

        if (request.method, path) in self.fail_next:
            return self.fail_next.pop((request.method, path))

        body = json.loads(request.content) if request.content else None

        if path == "/auth/login":
            return self.login(body)
        if path == "/auth/register":
            return self.register(body)

        token = request.headers.get("Authorization", "").removeprefix("Bearer ")
        user_id = self.tokens.get(token)
        if user_id is None:
            return failure(401, "Invalid or expired token")

        if path == "/auth/me":
            return envelope(200, self.users[user_id])
        return self.route(request.method, path, body, request)

    def login(self, body):
        if self.passwords.get(body["email"]) != body["password"]:
            return failure(401, "Invalid email or password")
        user = next(u for u in self.users.values() if u["email"] == body["email"])
        token = f"token-{user['id']}-{self.next_id()}"
        self.tokens[token] = user["id"]
        return envelope(200, {"token": token, "user": user})

    def register(self, body):
        if not self.registration_enabled:
            return failure(403, "Registration is currently disabled. Contact an administrator.")
        if body["email"] in self.passwords:
            return failure(400, "email already in use")
        user_id = self.next_id()
        user = {"id": user_id, "email": body["email"], "is_admin": False,
                "created_at": TIMESTAMP, "updated_at": TIMESTAMP}
        self.users[user_id] = user
        self.passwords[body["email"]] = body["password"]
        token = f"token-{user_id}"
        self.tokens[token] = user_id
        return envelope(201, {"token": token, "user": user})

    def route(self, method, path, body, request):
        for pattern, handler in (
            (r"/(sources|targets|snapshots|jobs|users)", self.collection),
            (r"/(sources|targets|snapshots|jobs|users)/(\d+)", self.item),
            (r"/sources/(\d+)/run", self.run_source),
            (r"/snapshots/(\d+)/files", self.snapshot_files),
            (r"/snapshots/(\d+)/manifest", self.snapshot_manifest),
            (r"/snapshots/(\d+)/restore", self.restore_snapshot),
            (r"/users/(\d+)/admin", self.set_admin),
            (r"/settings", self.settings_route),
            (r"/system/files", self.system_files),
        ):
            match = re.fullmatch(pattern, path)
            if match:
                return handler(method, body, request, *match.groups())
        return failure(404, "Not found")

    def collection(self, method, body, request, name):
        records = getattr(self, name)
        if method == "GET":
            return envelope(200, list(records.values()))
        if name == "targets" and not string_map(body["config"]):
            return failure(400, "Invalid request body")
        record_id = self.next_id()
        if name == "targets" and "path" not in body["config"] and body["type"] == "local":
            return failure(400, "local backend requires 'path' in config")
        record = {**body, "id": record_id, "created_at": TIMESTAMP, "updated_at": TIMESTAMP}
        if name == "users":
            record = {"id": record_id, "email": body["email"], "is_admin": False,
                      "created_at": TIMESTAMP, "updated_at": TIMESTAMP}
        records[record_id] = record
        return envelope(201, record)

    def item(self, method, body, request, name, record_id):
        records = getattr(self, name)
        record_id = int(record_id)
        if record_id not in records:
            return failure(404, f"{name[:-1].capitalize()} not found")
        if method == "GET":
            return envelope(200, records[record_id])
        if method == "PUT":
            if name == "targets" and not string_map(body["config"]):
                return failure(400, "Invalid request body")
            records[record_id] = {**records[record_id], **body, "id": record_id}
            return envelope(200, records[record_id])
        del records[record_id]
        return envelope(204)

    def run_source(self, method, body, request, source_id):
        source_id = int(source_id)
        if source_id not in self.sources:
            return failure(404, "Source not found")
        if self.sources[source_id]["target_id"] is None:
            return failure(400, "Source has no target")
        job_id = self.next_id()
        self.jobs[job_id] = {"id": job_id, "type": "backup", "source_id": source_id,
                             "status": "pending", "started_at": TIMESTAMP}
        self.add_snapshot(source_id, self.sources[source_id]["target_id"], "pending")
        return envelope(202, {"job_id": job_id, "status": "pending"})

    def snapshot_files(self, method, body, request, snapshot_id):
        return envelope(200, self.file_trees[int(snapshot_id)])

    def snapshot_manifest(self, method, body, request, snapshot_id):
        return httpx.Response(
            200, content=self.manifests[int(snapshot_id)],
            headers={"Content-Disposition": f"attachment; filename=manifest-{snapshot_id}.json"},
        )

    def restore_snapshot(self, method, body, request, snapshot_id):
        job_id = self.next_id()
        self.jobs[job_id] = {"id": job_id, "type": "restore", "snapshot_id": int(snapshot_id),
                             "status": "pending", "started_at": TIMESTAMP}
        return envelope(202, {"job_id": job_id, "status": "pending"})

    def set_admin(self, method, body, request, user_id):
        self.users[int(user_id)]["is_admin"] = body["is_admin"]
        return envelope(200, {"message": "User updated successfully"})

    def settings_route(self, method, body, request):
        if method == "GET":
            return envelope(200, self.settings)
        self.settings[body["key"]] = body["value"]
        return envelope(200, {"message": "Setting updated successfully"})

    def system_files(self, method, body, request):
        current = request.url.params.get("path", "/home/user")
        return envelope(200, {
            "current_path": current,
            "entries": [
                {"name": "..", "path": "/home", "is_dir": True},
                {"name": "documents", "path": f"{current}/documents", "is_dir": True},
                {"name": "notes.txt", "path": f"{current}/notes.txt", "is_dir": False},
            ],
        })
