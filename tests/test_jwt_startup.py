"""
tests/test_jwt_startup.py — Signing secret checks and token handling
=====================================================================
The secret loader is called directly with a patched environment; the
already-imported API keeps the secret it started with.
"""

from __future__ import annotations

import os
from pathlib import Path
from unittest.mock import patch

import jwt
import pytest

from bumpboard.api import deps
from conftest import auth, make_profile

ENV_EXAMPLE = Path(__file__).resolve().parent.parent / ".env.example"


def _load_with(secret: str | None) -> str:
    env = {k: v for k, v in os.environ.items() if k != "JWT_SECRET"}
    if secret is not None:
        env["JWT_SECRET"] = secret
    with patch.dict(os.environ, env, clear=True):
        return deps._load_jwt_secret()


class TestSecretLoader:
    def test_missing(self):
        with pytest.raises(RuntimeError, match="not set"):
            _load_with(None)

    @pytest.mark.parametrize("weak", ["bumpboard-dev-secret-change-me", "change-me", "secret"])
    def test_weak_defaults(self, weak):
        with pytest.raises(RuntimeError, match="known weak default"):
            _load_with(weak)

    def test_length_boundary(self):
        with pytest.raises(RuntimeError, match=r"too short \(31 chars\)"):
            _load_with("k" * 31)
        assert _load_with("k" * 32) == "k" * 32

    def test_env_example_does_not_ship_a_usable_secret(self):
        line = next(
            row for row in ENV_EXAMPLE.read_text().splitlines() if row.startswith("JWT_SECRET=")
        )
        with pytest.raises(RuntimeError):
            _load_with(line.split("=", 1)[1])


class TestTokensAtTheApi:
    def test_token_signed_with_loaded_secret_is_accepted(self, client, db_engine):
        make_profile(db_engine)
        resp = client.get("/api/me/listings", headers=auth("user-1"))
        assert resp.status_code == 200

    def test_token_signed_with_other_secret_is_rejected(self, client):
        forged = jwt.encode({"sub": "user-1"}, "x" * 64, algorithm=deps.JWT_ALGORITHM)
        resp = client.get("/api/me/listings", headers={"Authorization": f"Bearer {forged}"})
        assert resp.status_code == 401

    def test_token_without_subject_is_rejected(self, client):
        token = jwt.encode({"username": "nobody"}, deps.JWT_SECRET, algorithm=deps.JWT_ALGORITHM)
        resp = client.get("/api/me/listings", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401
        assert resp.json()["detail"] == "Token has no subject"

    def test_non_bearer_header_is_rejected(self, client):
        resp = client.get("/api/me/listings", headers={"Authorization": "Basic abc"})
        assert resp.status_code == 401
