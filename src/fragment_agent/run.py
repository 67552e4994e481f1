# run.py
# Console entry point. Wiring only.
#
# Settings come from the environment / .env (see config.py).
# Pass the instruction as arguments, or run without any for the demo prompt.
#   fragment-agent "Build a todo app with a dark mode toggle"

import sys

from fragment_agent.config import EngineConfig
from fragment_agent.harness import AgentLoop
from fragment_agent.models import RunEvent

DEMO_PROMPT = "Create a landing page for a coffee shop with a hero section and a menu grid."


def main(argv: list[str] | None = None) -> None:
    args = sys.argv[1:] if argv is None else argv
    prompt = " ".join(args).strip() or DEMO_PROMPT

    loop = AgentLoop(EngineConfig.from_env())
    loop.run(RunEvent(value=prompt))


if __name__ == "__main__":
    main()
