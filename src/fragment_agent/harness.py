# harness.py
# Durable agent loop.
#
# The loop owns all control flow and run state. The model only ever sees
# the system prompt, the declared tools, and the history the loop feeds it.
#
# Control flow:
#   PROVISIONING (sandbox id, public URL) → PROBING (dev server liveness)
#   → CONVERSING ⇄ TOOL_DISPATCH → DONE
#
# Every side effect (sandbox calls, model calls) runs as a named durable
# step, so a resumed run replays committed work instead of repeating it.
# Terminal output goes through display.py.

import time
from enum import Enum
from typing import Any, Callable

import httpx
from openai import OpenAI

from fragment_agent import display
from fragment_agent.config import EngineConfig
from fragment_agent.liveness import ensure_up, status_is_up
from fragment_agent.models import (
    ExecutionContext,
    FragmentResult,
    ModelTurn,
    ProbeOutcome,
    ProbeStatus,
    RunEvent,
    ToolCall,
)
from fragment_agent.sandbox import (
    SandboxProvider,
    http_status,
    install_command,
    launch_command,
    public_url,
)
from fragment_agent.steps import JsonStepLog, StepExecutor, StepLog, StepLogError
from fragment_agent.summary import extract_task_summary
from fragment_agent.tools import FINALIZE_TOOL, ToolEnv, dispatch, tool_declarations


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ProvisioningError(Exception):
    """Raised when the sandbox cannot be created or reached. Always fatal."""


class ModelCallError(Exception):
    """Raised when the model backend fails. Fatal for the current attempt."""


# ---------------------------------------------------------------------------
# System Prompt
# ---------------------------------------------------------------------------

SYSTEM_PROMPT = """\
You are a senior software engineer working inside a sandboxed Next.js project.

Environment:
- The project lives in the current working directory of the sandbox.
- A dev server is expected on port 3000 and hot-reloads on file changes.
- Write files with relative paths (e.g. "app/page.tsx"). Never use absolute paths.
- Install packages with the terminal tool before importing them.

Agent guidelines:
- Use tools to inspect, create, and run the project. Prefer small, iterative steps.
- If the server isn't running, start it on port 3000 and verify it's reachable before summarizing.
- When done, either emit <task_summary>...</task_summary> or call finalizeTask \
with the plain-text summary.\
"""


# ---------------------------------------------------------------------------
# Termination
# ---------------------------------------------------------------------------


class LoopState(str, Enum):
    PROVISIONING = "provisioning"
    PROBING = "probing"
    CONVERSING = "conversing"
    TOOL_DISPATCH = "tool_dispatch"
    DONE = "done"


class TerminationCondition:
    """Checked after every completed turn, never mid-turn."""

    def holds(self, turns: list[ModelTurn], context: ExecutionContext) -> bool:
        raise NotImplementedError

    def describe(self) -> str:
        return type(self).__name__


class StepCountIs(TerminationCondition):
    def __init__(self, limit: int) -> None:
        self.limit = limit

    def holds(self, turns: list[ModelTurn], context: ExecutionContext) -> bool:
        return len(turns) >= self.limit

    def describe(self) -> str:
        return f"step ceiling of {self.limit} reached"


class HasToolCall(TerminationCondition):
    def __init__(self, tool_name: str) -> None:
        self.tool_name = tool_name

    def holds(self, turns: list[ModelTurn], context: ExecutionContext) -> bool:
        return bool(turns) and any(call.name == self.tool_name for call in turns[-1].tool_calls)

    def describe(self) -> str:
        return f"{self.tool_name} was called"


class SummaryAchieved(TerminationCondition):
    def holds(self, turns: list[ModelTurn], context: ExecutionContext) -> bool:
        return context.summary_achieved

    def describe(self) -> str:
        return "task summary recorded"


def first_satisfied(
    conditions: list[TerminationCondition],
    turns: list[ModelTurn],
    context: ExecutionContext,
) -> TerminationCondition | None:
    for condition in conditions:
        if condition.holds(turns, context):
            return condition
    return None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _assistant_message(turn: ModelTurn) -> dict:
    message: dict[str, Any] = {"role": "assistant", "content": turn.text or None}
    if turn.tool_calls:
        message["tool_calls"] = [
            {
                "id": call.id,
                "type": "function",
                "function": {"name": call.name, "arguments": call.arguments},
            }
            for call in turn.tool_calls
        ]
    return message


def _tool_step_name(call: ToolCall, turn_index: int, call_index: int) -> str:
    return f"{call.name}-{turn_index}-{call_index}"


# ---------------------------------------------------------------------------
# AgentLoop
# ---------------------------------------------------------------------------


class AgentLoop:
    """
    Runs one instruction to completion against a fresh sandbox.

    Example:
        loop = AgentLoop(EngineConfig.from_env())
        result = loop.run(RunEvent(value="Build a landing page with a signup form."))
        print(result.sandbox_url, result.summary)

    Re-running with the same `RunEvent.run_id` and a persistent step log
    resumes the run: committed steps are replayed, not re-executed.
    """

    def __init__(
        self,
        config: EngineConfig,
        sandbox_provider: SandboxProvider | None = None,
        client: Any = None,
        step_log: StepLog | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._config = config
        self._sandbox = sandbox_provider or SandboxProvider(config.sandbox_api_key)
        self._client = client
        self._step_log = step_log
        self._sleep = sleep
        display.banner(config.model, config.sandbox_template)

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = OpenAI(base_url=self._config.base_url, api_key=self._config.api_key)
        return self._client

    def _make_log(self, run_id: str) -> StepLog:
        if self._step_log is not None:
            return self._step_log
        if self._config.step_log_dir:
            return JsonStepLog(self._config.step_log_dir, run_id)
        return StepLog()

    # ------------------------------------------------------------------
    # PROVISIONING
    # ------------------------------------------------------------------

    def provision(self, executor: StepExecutor) -> tuple[str, str]:
        """Create the sandbox and resolve its public URL. Raises ProvisioningError."""
        port = self._config.app_port
        try:
            sandbox_id = executor.run(
                "get-sandbox-id",
                lambda: self._sandbox.create(self._config.sandbox_template),
            )
            sandbox_url = executor.run(
                "get-sandbox-url",
                lambda: public_url(self._sandbox.connect(sandbox_id), port),
            )
        except StepLogError:
            raise
        except Exception as exc:
            msg = f"Sandbox provisioning failed: {exc}"
            display.halt(msg)
            raise ProvisioningError(msg) from exc

        display.sandbox_ready(sandbox_id, sandbox_url)
        return sandbox_id, sandbox_url

    # ------------------------------------------------------------------
    # PROBING
    # ------------------------------------------------------------------

    def ensure_dev_server(self, executor: StepExecutor, sandbox_id: str) -> ProbeOutcome:
        """Liveness check with bootstrap fallback. Never raises for sandbox faults."""
        port = self._config.app_port

        def action() -> dict:
            try:
                sandbox = self._sandbox.connect(sandbox_id)
            except Exception as exc:
                return ProbeOutcome(status=ProbeStatus.ERROR, detail=f"Error: {exc}").model_dump(mode="json")

            def bootstrap() -> None:
                sandbox.commands.run(install_command(fallback=True))
                sandbox.commands.run(launch_command(f"pnpm dev --port {port}"))

            outcome = ensure_up(
                probe=lambda: status_is_up(http_status(sandbox, port)),
                bootstrap=bootstrap,
                max_polls=self._config.probe_max_polls,
                poll_interval=self._config.probe_interval,
                sleep=self._sleep,
            )
            return outcome.model_dump(mode="json")

        outcome = ProbeOutcome.model_validate(executor.run("ensure-dev-server", action))
        display.probe_result(outcome)
        return outcome

    def check_public_url(self, sandbox_url: str) -> None:
        """Host-side request against the sandbox URL. Display only."""
        try:
            response = httpx.get(sandbox_url, timeout=10, follow_redirects=True)
        except httpx.HTTPError as exc:
            display.public_url_status(sandbox_url, f"unreachable ({exc})")
            return
        display.public_url_status(sandbox_url, str(response.status_code))

    # ------------------------------------------------------------------
    # CONVERSING
    # ------------------------------------------------------------------

    def call_model(self, messages: list[dict]) -> ModelTurn:
        try:
            response = self.client.chat.completions.create(
                model=self._config.model,
                temperature=self._config.temperature,
                messages=messages,
                tools=tool_declarations(),
            )
            message = response.choices[0].message
        except Exception as exc:
            raise ModelCallError(f"Model call failed: {exc}") from exc

        return ModelTurn(
            text=(message.content or "").strip(),
            tool_calls=[
                ToolCall(
                    id=tc.id,
                    name=tc.function.name,
                    arguments=tc.function.arguments or "{}",
                )
                for tc in (message.tool_calls or [])
            ],
        )

    def model_turn(self, executor: StepExecutor, turn_index: int, messages: list[dict]) -> ModelTurn:
        outcome = executor.run(
            f"model-turn-{turn_index}",
            lambda: self.call_model(messages).model_dump(mode="json"),
        )
        return ModelTurn.model_validate(outcome)

    def converse(
        self,
        executor: StepExecutor,
        context: ExecutionContext,
        prompt: str,
    ) -> str:
        """
        Turn loop. Returns the reason the loop stopped.

        Each turn is one model call, then every tool call of that turn is
        dispatched in order as its own durable step. Termination is checked
        only once the turn is fully processed.
        """
        max_steps = self._config.max_steps
        conditions: list[TerminationCondition] = [
            StepCountIs(max_steps),
            HasToolCall(FINALIZE_TOOL),
            SummaryAchieved(),
        ]
        env = ToolEnv(
            context=context,
            executor=executor,
            connect=lambda: self._sandbox.connect(context.sandbox_id),
            app_port=self._config.app_port,
        )
        messages: list[dict] = [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ]
        turns: list[ModelTurn] = []

        while True:
            turn_index = len(turns) + 1
            display.turn_start(turn_index, max_steps)

            turn = self.model_turn(executor, turn_index, messages)
            turns.append(turn)
            messages.append(_assistant_message(turn))
            if turn.text:
                display.model_text(turn.text)

            if turn.tool_calls:
                display.state_changed(LoopState.TOOL_DISPATCH)
            for call_index, call in enumerate(turn.tool_calls):
                display.tool_call(call.name, call.arguments)
                result = dispatch(call, env, _tool_step_name(call, turn_index, call_index))
                display.tool_result(result)
                messages.append({"role": "tool", "tool_call_id": call.id, "content": result})

            # Inline summaries never replace one already set by finalizeTask.
            if context.record_summary(extract_task_summary(turn.text)):
                display.summary_recorded(context.summary, source="text")

            satisfied = first_satisfied(conditions, turns, context)
            if satisfied is not None:
                return satisfied.describe()
            if not turn.tool_calls:
                return "model stopped calling tools"
            display.state_changed(LoopState.CONVERSING)

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def run(self, event: RunEvent) -> FragmentResult:
        """
        Full pipeline entry point.

        Only provisioning failures (and a broken step log or model backend)
        raise. Tool and liveness faults are absorbed into the conversation,
        and a run that never produces a summary still returns normally.
        """
        display.run_received(event.value, event.run_id)
        executor = StepExecutor(self._make_log(event.run_id))

        display.state_changed(LoopState.PROVISIONING)
        sandbox_id, sandbox_url = self.provision(executor)
        context = ExecutionContext(sandbox_id=sandbox_id)

        display.state_changed(LoopState.PROBING)
        outcome = self.ensure_dev_server(executor, sandbox_id)
        if self._config.verify_public_url and outcome.status in (ProbeStatus.UP, ProbeStatus.STARTED):
            self.check_public_url(sandbox_url)

        display.state_changed(LoopState.CONVERSING)
        reason = self.converse(executor, context, event.value)
        display.terminated(reason)

        display.state_changed(LoopState.DONE)
        result = FragmentResult(
            files=dict(context.updated_files),
            summary=context.summary,
            sandbox_url=sandbox_url,
        )
        display.final_result(result)
        return result
