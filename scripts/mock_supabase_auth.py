#!/usr/bin/env python3
"""Local stand-in for Supabase Auth's ``GET /auth/v1/user``.

Set ``JOBLY_SUPABASE_URL`` to the printed address and any non-empty
``JOBLY_SUPABASE_ANON_KEY``, then call the API with one of the tokens in
``MOCK_USERS`` (or in a ``--users`` JSON file mapping token to user object).
"""

from __future__ import annotations

import argparse
import json
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Any

USER_PATH = "/auth/v1/user"

MOCK_USERS: dict[str, dict[str, Any]] = {
    "admin-token": {
        "id": "11111111-1111-1111-1111-111111111111",
        "email": "admin@jobly.test",
        "app_metadata": {"role": "admin"},
        "user_metadata": {},
    },
    "roles-admin-token": {
        "id": "22222222-2222-2222-2222-222222222222",
        "email": "ops@jobly.test",
        "app_metadata": {"roles": ["user", "admin"]},
        "user_metadata": {},
    },
    "user-token": {
        "id": "33333333-3333-3333-3333-333333333333",
        "email": "user@jobly.test",
        "app_metadata": {"role": "user"},
        # Writable by the user themselves; must never grant admin.
        "user_metadata": {"role": "admin"},
    },
}


class MockSupabaseHandler(BaseHTTPRequestHandler):
    server_version = "MockSupabase/1.0"
    users: dict[str, dict[str, Any]] = MOCK_USERS

    def do_GET(self) -> None:  # noqa: N802 - stdlib handler signature
        if self.path == "/healthz":
            self._send(HTTPStatus.OK, {"status": "ok"})
        elif self.path != USER_PATH:
            self._send(HTTPStatus.NOT_FOUND, {"msg": "not found"})
        elif not self.headers.get("apikey"):
            self._send(HTTPStatus.UNAUTHORIZED, {"msg": "No API key found in request"})
        else:
            user = self.users.get(self._bearer_token())
            if user is None:
                self._send(HTTPStatus.UNAUTHORIZED, {"msg": "invalid JWT"})
            else:
                self._send(HTTPStatus.OK, user)

    def log_message(self, format: str, *args: object) -> None:  # noqa: A002 - stdlib signature
        print("mock-supabase:", format % args, flush=True)

    def _bearer_token(self) -> str:
        scheme, _, token = self.headers.get("Authorization", "").partition(" ")
        return token.strip() if scheme.lower() == "bearer" else ""

    def _send(self, status: HTTPStatus, payload: dict[str, Any]) -> None:
        body = json.dumps(payload).encode("utf-8")
        self.send_response(status.value)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)


def build_server(
    host: str = "127.0.0.1",
    port: int = 54321,
    users: dict[str, dict[str, Any]] | None = None,
) -> ThreadingHTTPServer:
    handler = type("ConfiguredMockSupabaseHandler", (MockSupabaseHandler,), {"users": {**MOCK_USERS, **(users or {})}})
    return ThreadingHTTPServer((host, port), handler)


def main() -> None:
    parser = argparse.ArgumentParser(description="Mock Supabase auth /auth/v1/user endpoint.")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=54321)
    parser.add_argument("--users", type=Path, help="JSON object mapping bearer token to user payload")
    args = parser.parse_args()

    extra_users = json.loads(args.users.read_text(encoding="utf-8")) if args.users else None
    server = build_server(args.host, args.port, extra_users)
    print(f"mock-supabase listening on http://{args.host}:{args.port}", flush=True)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        pass
    finally:
        server.server_close()


if __name__ == "__main__":
    main()
