#!/usr/bin/env python3
"""
Hypatia - AI research assistant

Command-line interface for creating experiments and running workflow steps.

Usage:
    python scripts/hypatia.py new "Green roofs" --field "Climate Science" --idea "..."
    python scripts/hypatia.py list
    python scripts/hypatia.py show <id>
    python scripts/hypatia.py step <id> 3 --feedback "Focus on cost"
    python scripts/hypatia.py complete <id> 3
    python scripts/hypatia.py simulate <id>
    python scripts/hypatia.py analyze <id>
    python scripts/hypatia.py auto <id>
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Load environment variables
from dotenv import load_dotenv
load_dotenv()

# Add parent to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from Hypatia.config import TOTAL_STEPS, COMPLETE, step_title
from Hypatia.infrastructure import HypatiaError, describe_error
from Hypatia.orchestrators import HypatiaSession
from Hypatia.storage import ExperimentNotFoundError
from Hypatia.utils import console


def parse_args() -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Hypatia: AI research assistant",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Experiments are stored as JSON files under the storage directory
(HYPATIA_STORAGE_DIR, default ./Experiments). The Gemini key is read
from --api-key or GEMINI_API_KEY.
        """,
    )
    parser.add_argument("--api-key", help="Gemini API key (defaults to GEMINI_API_KEY)")
    parser.add_argument("--storage", help="Directory holding experiment files")
    parser.add_argument("--verbose", "-v", action="store_true", help="Show agent logs")
    parser.add_argument("--no-color", action="store_true", help="Disable colored output")

    sub = parser.add_subparsers(dest="command", required=True)

    new = sub.add_parser("new", help="Create an experiment")
    new.add_argument("title")
    new.add_argument("--field", default="General Science")
    new.add_argument("--idea", default="", help="Initial research idea (step 1 input)")

    sub.add_parser("list", help="List experiments")

    show = sub.add_parser("show", help="Show an experiment's progress")
    show.add_argument("experiment_id")
    show.add_argument("--step", type=int, help="Print one step's output in full")

    step = sub.add_parser("step", help="Generate one step's output")
    step.add_argument("experiment_id")
    step.add_argument("step", type=int)
    step.add_argument("--input", dest="user_input", help="Replace the step input first")
    step.add_argument("--feedback", default="", help="Regenerate with this feedback")

    complete = sub.add_parser("complete", help="Summarize a step and move on")
    complete.add_argument("experiment_id")
    complete.add_argument("step", type=int)

    simulate = sub.add_parser("simulate", help="Run the code-simulation agent for step 6")
    simulate.add_argument("experiment_id")
    simulate.add_argument("--synthesize", action="store_true", help="Synthesize a dataset in one call instead")

    analyze = sub.add_parser("analyze", help="Run the data-analysis agent for step 7")
    analyze.add_argument("experiment_id")
    analyze.add_argument("--fallback", action="store_true", help="Text-only summary if the agent fails")

    auto = sub.add_parser("auto", help="Run the remaining steps automatically")
    auto.add_argument("experiment_id")
    auto.add_argument("--from-step", type=int, help="First step to run")

    return parser.parse_args()


def print_experiment(session: HypatiaSession, experiment_id: str, step: int = None) -> None:
    experiment = session.store.get(experiment_id)
    if step is not None:
        console.header(f"Step {step}: {step_title(step)}")
        print(experiment.step(step).output or "(no output yet)")
        return

    console.header(experiment.title)
    print(f"  ID:     {experiment.id}")
    print(f"  Field:  {experiment.field}")
    print(f"  Mode:   {experiment.automation_mode or 'not chosen'}")
    cursor = "complete" if experiment.current_step == COMPLETE else f"step {experiment.current_step}"
    print(f"  Cursor: {cursor}")
    print()
    for k in range(1, TOTAL_STEPS + 1):
        record = experiment.step(k)
        mark = "✓" if record.summary else ("•" if record.output else " ")
        line = f"  [{mark}] {k:>2}. {step_title(k)}"
        if record.summary:
            line += f": {record.summary[:80]}"
        print(line)


async def run_command(args: argparse.Namespace, session: HypatiaSession) -> int:
    store = session.store

    if args.command == "new":
        experiment = store.create_experiment(args.title, field=args.field, description=args.idea)
        console.success(f"Created experiment {experiment.id}")
    elif args.command == "list":
        experiments = store.list_experiments()
        if not experiments:
            console.info("No experiments found.")
        for e in experiments:
            cursor = "done" if e.current_step == COMPLETE else f"step {e.current_step}"
            print(f"  {e.id}  {e.title} [{e.field}] ({cursor}, {e.status})")
    elif args.command == "show":
        print_experiment(session, args.experiment_id, args.step)
    elif args.command == "step":
        await session.runner.generate(
            args.experiment_id,
            args.step,
            user_input=args.user_input,
            feedback=args.feedback,
            on_chunk=lambda chunk: print(chunk, end="", flush=True),
        )
        print()
        console.success(f"Step {args.step} generated")
    elif args.command == "complete":
        await session.runner.complete_step(args.experiment_id, args.step)
    elif args.command == "simulate":
        if args.synthesize:
            summary, _ = await session.runner.synthesize_dataset(args.experiment_id)
            console.success("Dataset synthesized", summary)
        else:
            state = await session.simulation.run(args.experiment_id)
            if not state.succeeded:
                console.error("Simulation failed", state.last_error)
                return 1
            console.success(f"Simulation finished after {state.iterations} attempt(s)", state.result.summary)
    elif args.command == "analyze":
        state = await session.analysis.run(args.experiment_id)
        if not state.succeeded:
            console.error("Analysis failed", state.last_error)
            if not args.fallback:
                return 1
            await session.analysis.fallback_summary(args.experiment_id)
            console.warning("Stored a text-only fallback summary")
        else:
            console.success(f"Analysis complete with {len(state.result['chartSuggestions'])} chart(s)")
    elif args.command == "auto":
        experiment = store.get(args.experiment_id)
        if experiment.automation_mode is None:
            store.set_automation_mode(args.experiment_id, "automated")
        await session.sequencer.run(args.experiment_id, start_step=args.from_step)
    return 0


async def main() -> int:
    args = parse_args()
    if args.verbose:
        console.set_verbose(True)
    if args.no_color:
        console.enable_colors(False)

    try:
        session = HypatiaSession.open(api_key=args.api_key, storage_dir=args.storage)
    except HypatiaError as e:
        console.error(describe_error(e))
        return 1

    async with session:
        try:
            return await run_command(args, session)
        except ExperimentNotFoundError as e:
            console.error(f"No experiment with id {e.args[0]}")
        except (HypatiaError, ValueError) as e:
            console.error(describe_error(e))
    return 1


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
