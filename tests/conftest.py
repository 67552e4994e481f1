import itertools
import json
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from fragment_agent.config import EngineConfig
from fragment_agent.models import ExecutionContext
from fragment_agent.steps import StepExecutor, StepLog
from fragment_agent.tools import ToolEnv

# ---------------------------------------------------------------------------
# Sandbox fakes
# ---------------------------------------------------------------------------


class FakeFiles:
    def __init__(self):
        self.store: dict[str, str] = {}
        self.unwritable: set[str] = set()
        self.writes: list[str] = []

    def read(self, path):
        if path not in self.store:
            raise FileNotFoundError(f"No such file: {path}")
        return self.store[path]

    def write(self, path, content):
        if path in self.unwritable:
            raise PermissionError(f"permission denied: {path}")
        self.writes.append(path)
        self.store[path] = content


class FakeCommands:
    def __init__(self):
        self.calls: list[str] = []
        self.status_codes: list[str] = []
        self.default_status = "200"
        self.fail_with: str | None = None
        self.outputs: dict[str, str] = {}

    def run(self, cmd, on_stdout=None, on_stderr=None):
        self.calls.append(cmd)
        if "curl" in cmd:
            code = self.status_codes.pop(0) if self.status_codes else self.default_status
            return SimpleNamespace(stdout=code)
        if "nohup" in cmd:
            return SimpleNamespace(stdout="4242\n")
        if cmd in self.outputs:
            if on_stdout:
                on_stdout(self.outputs[cmd])
            return SimpleNamespace(stdout=self.outputs[cmd])
        if self.fail_with is not None:
            if on_stdout:
                on_stdout("partial output")
            if on_stderr:
                on_stderr("something broke")
            raise RuntimeError(self.fail_with)
        return SimpleNamespace(stdout=f"ran: {cmd}")

    def matching(self, needle):
        return [c for c in self.calls if needle in c]


class FakeSandbox:
    def __init__(self, sandbox_id="sbx-123"):
        self.sandbox_id = sandbox_id
        self.files = FakeFiles()
        self.commands = FakeCommands()

    def get_host(self, port):
        return f"{port}-{self.sandbox_id}.e2b.app"


class FakeProvider:
    def __init__(self, sandbox=None):
        self.sandbox = sandbox or FakeSandbox()
        self.create = MagicMock(side_effect=lambda template: self.sandbox.sandbox_id)
        self.connect = MagicMock(side_effect=lambda sandbox_id: self.sandbox)


# ---------------------------------------------------------------------------
# Model fakes
# ---------------------------------------------------------------------------

_call_ids = itertools.count(1)


def tool_call(name, **arguments):
    return SimpleNamespace(
        id=f"call_{next(_call_ids)}",
        type="function",
        function=SimpleNamespace(name=name, arguments=json.dumps(arguments)),
    )


def model_response(text=None, calls=()):
    message = SimpleNamespace(content=text, tool_calls=list(calls) or None)
    return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def scripted_client(*responses):
    client = MagicMock()
    client.chat.completions.create.side_effect = list(responses)
    return client


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def config():
    return EngineConfig(
        api_key="test-key",
        probe_max_polls=3,
        probe_interval=0,
        verify_public_url=False,
    )


@pytest.fixture
def sandbox():
    return FakeSandbox()


@pytest.fixture
def provider(sandbox):
    return FakeProvider(sandbox)


@pytest.fixture
def env(sandbox):
    return ToolEnv(
        context=ExecutionContext(sandbox_id=sandbox.sandbox_id),
        executor=StepExecutor(StepLog()),
        connect=lambda: sandbox,
    )
