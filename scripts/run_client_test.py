#!/usr/bin/env python3
"""API client integration test for the heysme orchestrator server.

Drives complete sessions against a live server as a pure HTTP client:
create → stream user messages through ``collecting`` (answering any choice
prompt) → confirm the proposal → auto-start ``generating`` → check that
the session ends ``ready`` at 100%.

Each run picks a persona and a random order of its facts, so different
runs exercise different conversation shapes.

Usage::

    # Install deps (first time only)
    uv pip install httpx rich

    # Quick smoke test (1 persona, 1 run)
    uv run python scripts/run_client_test.py -p backend -n 1 -v

    # Full run (all personas x 3 runs)
    uv run python scripts/run_client_test.py

    # Reproducible run with full event payloads
    uv run python scripts/run_client_test.py --seed 42 -vv
"""

from __future__ import annotations

import argparse
import asyncio
import json
import random
import sys
import time
from dataclasses import dataclass, field
from typing import Any

import httpx
from rich.console import Console
from rich.table import Table

# ---------------------------------------------------------------------------
# Personas — facts a simulated user shares, one message at a time
# ---------------------------------------------------------------------------

PERSONAS: dict[str, list[str]] = {
    "backend": [
        "I'm a backend engineer.",
        "I've been writing Go and Python services for about eight years.",
        "Lately I care most about observability and on-call health.",
    ],
    "designer": [
        "I work as a product designer at a small startup.",
        "Before that I spent five years doing brand identity work.",
        "I'm trying to move into design systems.",
    ],
    "student": [
        "I'm a final-year biology student.",
        "I volunteer at a wildlife rescue on weekends.",
        "I want a research assistant position after graduating.",
    ],
}

STAGE_ORDER = ["collecting", "confirming", "generating", "ready"]


# ---------------------------------------------------------------------------
# APIClient — thin httpx wrapper, SSE-aware
# ---------------------------------------------------------------------------

class APIClient:
    """Async HTTP client for the orchestrator API."""

    def __init__(self, base_url: str, timeout: float = 120.0):
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> APIClient:
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
        )
        return self

    async def __aexit__(self, *args: Any) -> None:
        if self._client:
            await self._client.aclose()

    async def health_check(self) -> bool:
        """Check server health. Returns True if server is reachable."""
        try:
            resp = await self._client.get("/health")  # type: ignore[union-attr]
            return resp.status_code == 200 and resp.json().get("status") == "ok"
        except (httpx.ConnectError, httpx.TimeoutException):
            return False

    async def create_session(self) -> str:
        resp = await self._client.post("/api/v1/sessions", json={})  # type: ignore[union-attr]
        resp.raise_for_status()
        return resp.json()["sessionId"]

    async def get_status(self, session_id: str) -> dict:
        resp = await self._client.get(f"/api/v1/sessions/{session_id}")  # type: ignore[union-attr]
        resp.raise_for_status()
        return resp.json()

    async def interact(self, session_id: str, type_: str, data: dict | None = None) -> dict:
        resp = await self._client.post(  # type: ignore[union-attr]
            f"/api/v1/sessions/{session_id}/interactions",
            json={"type": type_, "data": data or {}},
        )
        resp.raise_for_status()
        return resp.json()

    async def stream(self, session_id: str, message: str) -> list[dict]:
        """POST to the stream endpoint and collect events until ``[DONE]``."""
        events: list[dict] = []
        saw_done_sentinel = False
        async with self._client.stream(  # type: ignore[union-attr]
            "POST",
            f"/api/v1/sessions/{session_id}/stream",
            json={"message": message},
        ) as resp:
            resp.raise_for_status()
            async for line in resp.aiter_lines():
                if not line.startswith("data: "):
                    continue
                data = line[len("data: "):]
                if data == "[DONE]":
                    saw_done_sentinel = True
                    break
                events.append(json.loads(data))
        if not saw_done_sentinel:
            raise RuntimeError("stream ended without [DONE] sentinel")
        return events


# ---------------------------------------------------------------------------
# SessionResult — outcome of one session run
# ---------------------------------------------------------------------------

@dataclass
class SessionResult:
    """Outcome of a single session run."""

    persona: str
    run_index: int
    status: str = "pending"          # "success", "failed", "incomplete"
    stage: str | None = None
    progress: int = 0
    streams: int = 0
    fragments: int = 0
    prompts_answered: int = 0
    error: str | None = None


# ---------------------------------------------------------------------------
# RichPrinter — verbosity-aware console output
# ---------------------------------------------------------------------------

class RichPrinter:
    """Verbosity-aware console output using rich."""

    def __init__(self, verbosity: int = 0):
        self.console = Console()
        self.verbosity = verbosity

    def session_header(self, index: int, total: int, persona: str, run: int, runs: int) -> None:
        self.console.print(
            f"\n[bold cyan][{index}/{total}][/] {persona} (run {run}/{runs})"
        )

    def stage_ok(self, stage: str, detail: str) -> None:
        self.console.print(f"  [green]✓[/] {stage} — {detail}")

    def exchange(self, message: str, reply: str) -> None:
        """Print a message/reply pair (verbosity >= 1)."""
        if self.verbosity < 1:
            return
        self.console.print(f"    [dim]U:[/] {message or '(auto-start)'}")
        self.console.print(f"    [dim]A:[/] {reply[:200]}")

    def json_payload(self, label: str, data: Any) -> None:
        """Print full JSON payload (verbosity >= 2)."""
        if self.verbosity < 2:
            return
        formatted = json.dumps(data, ensure_ascii=False, indent=2)
        self.console.print(f"    [dim]{label}:[/]")
        self.console.print(f"    {formatted}")

    def result_line(self, result: SessionResult) -> None:
        if result.status == "success":
            status_str = "[green]OK[/]"
        elif result.status == "failed":
            status_str = f"[red]FAILED[/]: {result.error}"
        else:
            status_str = f"[yellow]{result.status.upper()}[/]"
        self.console.print(
            f"  → {result.stage} ({result.progress}%) — {status_str}"
        )


# ---------------------------------------------------------------------------
# SessionRunner — drives one session start-to-finish
# ---------------------------------------------------------------------------

class SessionRunner:
    """Run a single session through the API."""

    def __init__(
        self,
        client: APIClient,
        printer: RichPrinter,
        rng: random.Random,
        max_streams: int = 12,
    ):
        self._client = client
        self._printer = printer
        self._rng = rng
        self._max_streams = max_streams

    async def run(self, persona: str, run_index: int) -> SessionResult:
        result = SessionResult(persona=persona, run_index=run_index)
        facts = list(PERSONAS[persona])
        self._rng.shuffle(facts)

        try:
            session_id = await self._client.create_session()
            status = await self._client.get_status(session_id)
            self._check(status["stage"] == "collecting", "new session not collecting")
            self._check(status["progress"] == 0, "new session progress not 0")

            # --- collecting: share facts until the stage completes ---
            last_progress = 0
            while status["stage"] == "collecting":
                if result.streams >= self._max_streams:
                    result.status = "incomplete"
                    break
                message = facts.pop(0) if facts else "That's everything about me."
                events = await self._stream(session_id, message, result)
                last = self._terminal_kind(events)
                if last == "proposal":
                    pending = events[-2]["payload"]["pendingInteraction"]
                    if pending["kind"] == "choice" and pending["options"]:
                        option = self._rng.choice(pending["options"])
                        await self._client.interact(
                            session_id, "select", {"optionId": option["id"]},
                        )
                        result.prompts_answered += 1
                status = await self._client.get_status(session_id)
                self._check(status["progress"] >= last_progress, "progress decreased")
                last_progress = status["progress"]

            if result.status == "incomplete":
                return self._finish(result, status)
            self._printer.stage_ok("collecting", f"{result.streams} message(s)")

            # --- confirming: accept the proposal ---
            self._check(status["stage"] == "confirming", f"unexpected stage {status['stage']}")
            self._printer.json_payload("proposal", status.get("pendingInteraction"))
            outcome = await self._client.interact(session_id, "confirm")
            self._check(outcome["action"] == "advance", "confirm did not advance")
            self._check(outcome["nextStageId"] == "generating", "confirm skipped a stage")
            result.prompts_answered += 1
            self._printer.stage_ok("confirming", "proposal confirmed")

            # --- a duplicate confirm must not advance again ---
            try:
                await self._client.interact(session_id, "confirm")
                raise AssertionError("duplicate confirm accepted")
            except httpx.HTTPStatusError as exc:
                self._check(exc.response.status_code == 409, "duplicate confirm not 409")

            # --- generating: auto-start with an empty message ---
            events = await self._stream(session_id, "", result)
            self._check(self._terminal_kind(events) == "stageComplete", "generating did not complete")
            status = await self._client.get_status(session_id)
            self._printer.stage_ok("generating", f"{result.fragments} fragment(s) total")

            self._check(status["stage"] == "ready", "session not ready")
            self._check(status["progress"] == 100, "ready session progress not 100")
            result.status = "success"
        except (httpx.HTTPError, AssertionError, RuntimeError, KeyError) as exc:
            result.status = "failed"
            result.error = f"{type(exc).__name__}: {exc}"
            return result
        return self._finish(result, status)

    async def _stream(self, session_id: str, message: str, result: SessionResult) -> list[dict]:
        events = await self._client.stream(session_id, message)
        result.streams += 1
        self._check(events and events[-1]["kind"] == "done", "stream not terminated by done")
        errors = [e for e in events if e["kind"] == "error"]
        if errors:
            raise RuntimeError(f"stream error: {errors[0]['payload']}")
        fragments = [e["payload"]["text"] for e in events if e["kind"] == "fragment"]
        result.fragments += len(fragments)
        self._printer.exchange(message, "".join(fragments))
        self._printer.json_payload("events", [e for e in events if e["kind"] != "fragment"])
        return events

    @staticmethod
    def _terminal_kind(events: list[dict]) -> str | None:
        """Kind of the event just before ``done``."""
        return events[-2]["kind"] if len(events) >= 2 else None

    @staticmethod
    def _check(condition: Any, message: str) -> None:
        if not condition:
            raise AssertionError(message)

    @staticmethod
    def _finish(result: SessionResult, status: dict) -> SessionResult:
        result.stage = status["stage"]
        result.progress = status["progress"]
        return result


# ---------------------------------------------------------------------------
# ResultCollector — aggregate results for the summary
# ---------------------------------------------------------------------------

class ResultCollector:
    """Collect and aggregate session results for the final summary."""

    def __init__(self) -> None:
        self.results: list[SessionResult] = []

    def add(self, result: SessionResult) -> None:
        self.results.append(result)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if r.status == "failed")

    def print_summary(self, console: Console) -> None:
        """Print a rich summary table of all results."""
        console.print("\n")
        console.rule("[bold]Session Summary")
        console.print()

        passed = sum(1 for r in self.results if r.status == "success")
        incomplete = sum(1 for r in self.results if r.status == "incomplete")
        console.print(f"  Total:       {len(self.results)}")
        console.print(f"  [green]Passed:[/]      {passed}")
        console.print(f"  [red]Failed:[/]      {self.failed}")
        console.print(f"  [yellow]Incomplete:[/]  {incomplete}")
        console.print()

        table = Table(title="Results by Persona", show_lines=True)
        table.add_column("#", style="dim", width=4)
        table.add_column("Persona", min_width=12)
        table.add_column("Run", width=4)
        table.add_column("Status", width=8)
        table.add_column("Stage", width=12)
        table.add_column("Streams", width=8)
        table.add_column("Prompts", width=8)

        for i, r in enumerate(self.results, 1):
            status_str = {
                "success": "[green]OK[/]",
                "failed": "[red]FAIL[/]",
                "incomplete": "[yellow]INC[/]",
            }.get(r.status, r.status)
            table.add_row(
                str(i), r.persona, str(r.run_index), status_str,
                r.stage or "-", str(r.streams), str(r.prompts_answered),
            )
        console.print(table)

        failed = [r for r in self.results if r.status == "failed"]
        if failed:
            console.print()
            console.rule("[red]Failed Sessions")
            for r in failed:
                console.print(f"  {r.persona} (run {r.run_index}): {r.error}")
        console.print()


# ---------------------------------------------------------------------------
# CLI + async main
# ---------------------------------------------------------------------------

def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="API client integration test for the heysme orchestrator server.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--base-url",
        default="http://localhost:8080",
        help="Server base URL (default: http://localhost:8080)",
    )
    parser.add_argument(
        "-n", "--runs",
        type=int, default=3,
        help="Number of runs per persona (default: 3)",
    )
    parser.add_argument(
        "-p", "--persona",
        type=str, default=None,
        help=f"Filter personas (comma-separated, from: {', '.join(PERSONAS)})",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count", default=0,
        help="Increase verbosity (-v for exchanges, -vv for full event JSON)",
    )
    parser.add_argument(
        "--seed",
        type=int, default=None,
        help="RNG seed for reproducibility (default: current timestamp)",
    )
    parser.add_argument(
        "--max-streams",
        type=int, default=12,
        help="Safety limit: max collecting messages per session (default: 12)",
    )
    parser.add_argument(
        "--timeout",
        type=float, default=120.0,
        help="HTTP request timeout in seconds (default: 120)",
    )
    return parser.parse_args()


async def main() -> None:
    args = parse_args()
    console = Console()

    seed = args.seed if args.seed is not None else int(time.time())
    rng = random.Random(seed)
    console.print(f"[dim]RNG seed: {seed}[/]")

    personas = list(PERSONAS)
    if args.persona:
        personas = [p.strip() for p in args.persona.split(",")]
        for p in personas:
            if p not in PERSONAS:
                console.print(f"[red]Unknown persona:[/] '{p}'")
                console.print(f"Available: {', '.join(PERSONAS)}")
                sys.exit(1)

    total_sessions = len(personas) * args.runs
    console.print(f"[bold]Running {total_sessions} sessions[/]")

    printer = RichPrinter(verbosity=args.verbose)
    collector = ResultCollector()

    async with APIClient(args.base_url, timeout=args.timeout) as client:
        if not await client.health_check():
            console.print(
                f"[red]Server at {args.base_url} is not reachable. "
                f"Is the server running?[/]"
            )
            sys.exit(1)
        console.print(f"[green]Server health check passed[/] ({args.base_url})")

        runner = SessionRunner(client, printer, rng, max_streams=args.max_streams)
        session_num = 0
        for persona in personas:
            for run_idx in range(1, args.runs + 1):
                session_num += 1
                printer.session_header(session_num, total_sessions, persona, run_idx, args.runs)
                result = await runner.run(persona, run_idx)
                printer.result_line(result)
                collector.add(result)

    collector.print_summary(console)

    if collector.failed > 0:
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
