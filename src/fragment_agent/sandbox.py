# sandbox.py
# Remote sandbox access and the shell commands the engine runs inside it.
#
# The engine only relies on: create(template) -> id, connect(id) -> handle,
# handle.get_host(port), handle.commands.run(cmd, on_stdout=, on_stderr=),
# handle.files.read(path), handle.files.write(path, content).

import shlex
from typing import Any

DEV_LOG_PATH = "/tmp/dev.log"
DEFAULT_START_COMMAND = "pnpm dev --port 3000"

_PNPM_ENV = 'export PNPM_HOME=~/.local/share/pnpm; export PATH="$PNPM_HOME:$PATH"'


# ---------------------------------------------------------------------------
# Command builders
# ---------------------------------------------------------------------------


def _login_shell(script: str) -> str:
    return f"bash -lc {shlex.quote(script)}"


def probe_command(port: int) -> str:
    return _login_shell(f'curl -s -o /dev/null -w "%{{http_code}}" http://localhost:{port}')


def install_command(fallback: bool = True) -> str:
    """pnpm install via corepack. With `fallback`, npm ci runs if pnpm fails."""
    if fallback:
        script = (
            f"{_PNPM_ENV}; corepack enable || true; "
            "pnpm i --silent --no-frozen-lockfile || npm ci --no-audit --no-fund"
        )
    else:
        script = f"{_PNPM_ENV}; corepack enable && pnpm i --silent --no-frozen-lockfile"
    return _login_shell(script)


def launch_command(cmd: str, log_path: str = DEV_LOG_PATH) -> str:
    """Start `cmd` detached, output redirected to `log_path`. Prints the PID."""
    return _login_shell(f"nohup {cmd} > {log_path} 2>&1 & echo $!")


# ---------------------------------------------------------------------------
# Helpers over a connected handle
# ---------------------------------------------------------------------------


def http_status(handle: Any, port: int) -> str:
    """One HTTP probe against localhost:<port> inside the sandbox."""
    result = handle.commands.run(probe_command(port))
    return result.stdout.strip()


def public_url(handle: Any, port: int) -> str:
    return f"https://{handle.get_host(port)}"


# ---------------------------------------------------------------------------
# Provider
# ---------------------------------------------------------------------------


class SandboxProvider:
    """Creates and reconnects to E2B sandboxes."""

    def __init__(self, api_key: str | None = None) -> None:
        self._api_key = api_key

    def create(self, template: str) -> str:
        from e2b_code_interpreter import Sandbox

        sandbox = Sandbox.create(template, api_key=self._api_key)
        return sandbox.sandbox_id

    def connect(self, sandbox_id: str) -> Any:
        from e2b_code_interpreter import Sandbox

        return Sandbox.connect(sandbox_id, api_key=self._api_key)
