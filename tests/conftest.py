import asyncio
import json
from unittest.mock import Mock

import pytest

from app.imagehub.clients import ProviderRegistry
from app.imagehub.clients.base import BaseGenerator, GeneratorResult
from app.imagehub.credentials import CredentialStore
from app.imagehub.queue import GenerationQueue
from app.imagehub.session import Session
from app.imagehub.store import SettingsStore
from app.storage import StorageService


class ScriptedGenerator(BaseGenerator):
    """
    Fake provider answering from a per-prompt script.

    Script entries are consumed in order: bytes succeed, a str is returned
    as an error message, an Exception is raised. Unscripted calls succeed.
    """

    def __init__(self, script=None):
        self.script = {prompt: list(outcomes) for prompt, outcomes in (script or {}).items()}
        self.calls = []
        self.active = 0
        self.max_active = 0
        self._gates = {}

    def hold(self, prompt):
        """Block calls for prompt until the returned gate is set."""
        entered, gate = asyncio.Event(), asyncio.Event()
        self._gates[prompt] = (entered, gate)
        return entered, gate

    async def generate(self, prompt, credential):
        self.calls.append(prompt)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(0)
            if prompt in self._gates:
                entered, gate = self._gates[prompt]
                entered.set()
                await gate.wait()

            outcomes = self.script.get(prompt)
            outcome = outcomes.pop(0) if outcomes else f"img:{prompt}".encode()
            if isinstance(outcome, Exception):
                raise outcome
            if isinstance(outcome, str):
                return GeneratorResult(None, error=outcome)
            return GeneratorResult(data=outcome)
        finally:
            self.active -= 1


@pytest.fixture
def storage(tmp_path, monkeypatch):
    monkeypatch.delenv("AZURE_STORAGE_CONNECTION_STRING", raising=False)
    return StorageService(tmp_path / "storage")


@pytest.fixture
def store(storage):
    return SettingsStore(storage)


@pytest.fixture
def session(store):
    session = Session(store)
    session.login("tester@gmail.com")
    return session


@pytest.fixture
def credentials(store):
    credentials = CredentialStore(store)
    credentials.save("Fake", "secret-key")
    return credentials


@pytest.fixture
def generator():
    return ScriptedGenerator()


@pytest.fixture
def registry(generator):
    return ProviderRegistry({"Fake": generator})


@pytest.fixture
def queue(registry, credentials, session):
    return GenerationQueue(registry, credentials, session, provider="Fake")


@pytest.fixture
def make_response():
    """Build a stand-in for requests.Response."""

    def _make(status_code=200, payload=None, text=None):
        response = Mock()
        response.status_code = status_code
        response.ok = status_code < 400
        if text is not None:
            response.text = text
            response.json.side_effect = ValueError("Expecting value")
        else:
            response.text = json.dumps(payload)
            response.json.return_value = payload
        return response

    return _make
