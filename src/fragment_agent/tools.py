# tools.py
# Tool registry: the fixed set of actions the model may invoke.
#
# Every handler runs its sandbox work through exactly one durable step and
# always returns text. Failures become "Error: ..." strings for the model;
# nothing raised by a tool action escapes dispatch().

import json
from dataclasses import dataclass
from typing import Any, Callable

from pydantic import BaseModel, Field, ValidationError

from fragment_agent import display
from fragment_agent.models import ExecutionContext, FileEntry, FileRef, ToolCall
from fragment_agent.sandbox import (
    DEFAULT_START_COMMAND,
    http_status,
    install_command,
    launch_command,
)
from fragment_agent.steps import StepExecutor

FINALIZE_TOOL = "finalizeTask"


@dataclass
class ToolEnv:
    """What a tool handler is allowed to touch during one run."""

    context: ExecutionContext
    executor: StepExecutor
    connect: Callable[[], Any]
    app_port: int = 3000


# ---------------------------------------------------------------------------
# Argument schemas
# ---------------------------------------------------------------------------


class TerminalArgs(BaseModel):
    command: str = Field(..., description="The command to run.")


class ReadFilesArgs(BaseModel):
    files: list[FileRef] = Field(..., description="The files to read from the sandbox.")


class WriteFilesArgs(BaseModel):
    files: list[FileEntry] = Field(..., description="The files to create or overwrite.")


class StartDevServerArgs(BaseModel):
    install: bool = Field(default=True, description="Whether to install dependencies before starting.")
    cmd: str = Field(default=DEFAULT_START_COMMAND, description="The command to start the dev server.")


class NoArgs(BaseModel):
    pass


class FinalizeArgs(BaseModel):
    summary: str = Field(..., min_length=1, description="The final task summary without any XML tags.")


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


def _tool_terminal(args: TerminalArgs, env: ToolEnv, step_name: str) -> str:
    def action() -> str:
        buffers = {"stdout": "", "stderr": ""}

        def on_stdout(data: str) -> None:
            buffers["stdout"] += str(data)

        def on_stderr(data: str) -> None:
            buffers["stderr"] += str(data)

        try:
            sandbox = env.connect()
            result = sandbox.commands.run(args.command, on_stdout=on_stdout, on_stderr=on_stderr)
            return result.stdout
        except Exception as exc:
            return (
                f"Error: command failed: {exc}\n"
                f"stdout: {buffers['stdout']}\n"
                f"stderr: {buffers['stderr']}"
            )

    return env.executor.run(step_name, action)


def _tool_read_files(args: ReadFilesArgs, env: ToolEnv, step_name: str) -> str:
    def action() -> str:
        try:
            sandbox = env.connect()
            contents = [
                {"path": ref.path, "content": sandbox.files.read(ref.path)}
                for ref in args.files
            ]
            return json.dumps(contents)
        except Exception as exc:
            return f"Error: {exc}"

    return env.executor.run(step_name, action)


def _tool_write_files(args: WriteFilesArgs, env: ToolEnv, step_name: str) -> str:
    # The step commits what was written; the file map is updated from that
    # outcome so a replayed step restores it without writing again.
    def action() -> dict:
        written: list[dict] = []
        try:
            sandbox = env.connect()
            for entry in args.files:
                sandbox.files.write(entry.path, entry.content)
                written.append(entry.model_dump())
        except Exception as exc:
            return {"written": written, "error": str(exc)}
        return {"written": written, "error": None}

    outcome = env.executor.run(step_name, action)
    for entry in outcome["written"]:
        env.context.updated_files[entry["path"]] = entry["content"]

    if outcome["error"] is not None:
        return f"Error: {outcome['error']}"
    return json.dumps({"updatedFiles": env.context.updated_files})


def _tool_start_dev_server(args: StartDevServerArgs, env: ToolEnv, step_name: str) -> str:
    def action() -> str:
        try:
            sandbox = env.connect()
            if args.install:
                sandbox.commands.run(install_command(fallback=False))
            start = sandbox.commands.run(launch_command(args.cmd))
            return f"Started dev server with PID {start.stdout.strip()}"
        except Exception as exc:
            return f"Error: {exc}"

    return env.executor.run(step_name, action)


def _tool_check_server_status(args: NoArgs, env: ToolEnv, step_name: str) -> str:
    def action() -> str:
        try:
            sandbox = env.connect()
            return f"HTTP {http_status(sandbox, env.app_port)}"
        except Exception as exc:
            return f"Error: {exc}"

    return env.executor.run(step_name, action)


def _tool_finalize(args: FinalizeArgs, env: ToolEnv, step_name: str) -> str:
    summary = env.executor.run(step_name, lambda: args.summary.strip())
    if env.context.record_summary(summary):
        display.summary_recorded(env.context.summary, source=FINALIZE_TOOL)
    return "OK"


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ToolSpec:
    name: str
    description: str
    args_model: type[BaseModel]
    handler: Callable[[Any, ToolEnv, str], str]

    def declaration(self) -> dict:
        """OpenAI function-calling declaration for this tool."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.args_model.model_json_schema(),
            },
        }


TOOLS: dict[str, ToolSpec] = {
    tool.name: tool
    for tool in (
        ToolSpec(
            "terminal",
            "Run a shell command in the sandbox (non-interactive).",
            TerminalArgs,
            _tool_terminal,
        ),
        ToolSpec(
            "readFiles",
            "Read files from the sandbox.",
            ReadFilesArgs,
            _tool_read_files,
        ),
        ToolSpec(
            "createOrUpdateFiles",
            "Create or update files in the sandbox.",
            WriteFilesArgs,
            _tool_write_files,
        ),
        ToolSpec(
            "startDevServer",
            "Install deps and start the dev server on port 3000 in background.",
            StartDevServerArgs,
            _tool_start_dev_server,
        ),
        ToolSpec(
            "checkServerStatus",
            "Check if the dev server on localhost:3000 is responding.",
            NoArgs,
            _tool_check_server_status,
        ),
        ToolSpec(
            FINALIZE_TOOL,
            "Call this tool exactly once when the task is complete. "
            "Provide only the plain summary text (no tags).",
            FinalizeArgs,
            _tool_finalize,
        ),
    )
}


def tool_declarations() -> list[dict]:
    return [tool.declaration() for tool in TOOLS.values()]


def dispatch(call: ToolCall, env: ToolEnv, step_name: str) -> str:
    """
    Validate and execute one tool call.

    Unknown tools and malformed arguments are reported back as text; the
    handler's action runs as the durable step `step_name`.
    """
    tool = TOOLS.get(call.name)
    if tool is None:
        display.tool_not_found(call.name)
        return f"Error: unknown tool '{call.name}'. Available tools: {', '.join(TOOLS)}."

    try:
        args = tool.args_model.model_validate_json(call.arguments or "{}")
    except ValidationError as exc:
        return f"Error: invalid arguments for {call.name}: {exc}"

    return tool.handler(args, env, step_name)
