#!/usr/bin/env python3
"""Interactive planning chat in the terminal.

Commands inside the chat:
    /approve    Approve the current recommendation
    /reset      Start a new conversation
    /quit       Exit

Usage:
    python -m planchat.cli.chat --project-id 1234
    python -m planchat.cli.chat --sprint-id 5678 --url http://localhost:8000
"""

import argparse
import asyncio
import logging
import sys
import time

from sqlalchemy.exc import SQLAlchemyError

from planchat.config import settings
from planchat.planning import (
    ApprovalError,
    DecompositionRecommendation,
    PlanningChatController,
    PlanningRequestError,
    SessionExpiredError,
)
from planchat.planning.status_messages import get_status_message

logging.basicConfig(
    level=logging.WARNING,
    format="%(asctime)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


class TerminalView:
    """Prints controller state changes as they happen."""

    def __init__(self) -> None:
        self._message_id: str | None = None
        self._printed = 0
        self._status: str | None = None

    def __call__(self, chat: PlanningChatController) -> None:
        if chat.phase is not None:
            if chat.phase.enhanced:
                status = get_status_message(chat.phase.phase, time.time() * 1000)
            else:
                status = chat.phase.message
            if status != self._status:
                self._status = status
                sys.stderr.write(f"\r\033[K  {status}")
                sys.stderr.flush()
        elif self._status is not None:
            self._status = None
            sys.stderr.write("\r\033[K")
            sys.stderr.flush()

        if not chat.messages or chat.messages[-1].role != "orchestrator":
            return
        message = chat.messages[-1]
        if message.id != self._message_id:
            self._message_id = message.id
            self._printed = 0
        if len(message.content) > self._printed:
            sys.stdout.write(message.content[self._printed:])
            sys.stdout.flush()
            self._printed = len(message.content)


def print_recommendation(recommendation: DecompositionRecommendation) -> None:
    """Print a plan as an indented outline."""
    print("\nProposed plan:")
    if recommendation.sprints:
        for sprint in recommendation.sprints:
            print(f"  Sprint: {sprint.name}")
            for task in sprint.tasks:
                print(f"    - {task.title or task.description}")
    for task in recommendation.effective_tasks:
        print(f"  - {task.title or task.description}")
    print("Type /approve to create it.")


async def run_chat(args: argparse.Namespace) -> int:
    """Run the interactive loop."""
    async with PlanningChatController(
        project_id=args.project_id,
        sprint_id=args.sprint_id,
        base_url=args.url,
        skip_history=args.no_history,
    ) as chat:
        chat.add_listener(TerminalView())

        try:
            if await chat.load_history():
                print(f"Resumed conversation with {len(chat.messages)} messages.")
        except SQLAlchemyError as e:
            logger.warning(f"Could not load conversation history: {e}")

        while True:
            try:
                line = await asyncio.to_thread(input, "\n> ")
            except EOFError:
                return 0
            text = line.strip()
            if not text:
                continue

            if text == "/quit":
                return 0
            if text == "/reset":
                chat.reset()
                print("Started a new conversation.")
                continue
            if text == "/approve":
                try:
                    result = await chat.approve_recommendation()
                except ApprovalError as e:
                    print(f"Approval failed: {e}")
                    continue
                if result is None:
                    print("Nothing to approve yet.")
                    continue
                print(result.message or "Approved.")
                if result.verification and not result.verification.verified:
                    print(
                        f"Warning: {len(result.verification.failures)} created entities "
                        "are not visible yet."
                    )
                continue

            try:
                await chat.send_message(text)
            except SessionExpiredError:
                print("\nThe planning session expired. Send your message again to start a new one.")
                continue
            except PlanningRequestError as e:
                print(f"\nRequest failed: {e}")
                continue

            if chat.current_recommendation is not None:
                print_recommendation(chat.current_recommendation)


def main() -> int:
    parser = argparse.ArgumentParser(description="Interactive planning chat")
    parser.add_argument("--project-id", help="Project to plan for")
    parser.add_argument("--sprint-id", help="Sprint to plan for")
    parser.add_argument("--url", default=settings.dashboard_url, help="Base URL of the planchat server")
    parser.add_argument("--no-history", action="store_true", help="Do not resume the active conversation")
    args = parser.parse_args()

    try:
        return asyncio.run(run_chat(args))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
