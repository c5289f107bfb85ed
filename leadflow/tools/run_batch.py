#!/usr/bin/env python3
"""
run_batch.py - Batch-test a conversation flow against the lead personas.

Runs every persona (or a chosen subset) through the flow, prints the
aggregated report and optionally writes it as JSON. With --test-cases, runs
the scripted scenarios from a JSON/YAML file instead.

Exit Codes:
  0 - Batch finished with no failing persona / test case
  1 - At least one persona verdict or test case failed
  2 - Fatal error (unreadable flow, unknown persona, bad test case file)

Examples:
  leadflow-batch flows/qualification.json
  leadflow-batch --template direct-close --personas ideal,minor --json
  leadflow-batch flows/qualification.json --test-cases cases.yaml
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from leadflow.flow.serializer import FlowDataError, read_flow_file
from leadflow.flow.templates import get_template
from leadflow.flow.types import FlowData
from leadflow.simulation.batch import BatchRunner
from leadflow.simulation.orchestrator import SimulationOrchestrator
from leadflow.simulation.personas import DEFAULT_PERSONAS, get_persona_by_id
from leadflow.simulation.resolvers import create_batch_summarizer, create_turn_resolver
from leadflow.simulation.testcases import TestCaseResult, load_test_cases, run_test_case
from leadflow.simulation.types import (
    BatchProgress,
    BatchTestResult,
    LeadPersona,
    Verdict,
    batch_test_result_to_dict,
)

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_FATAL = 2


def _load_flow(args: argparse.Namespace) -> FlowData:
    if args.template:
        template = get_template(args.template)
        if template is None:
            raise FlowDataError(f"Unknown template: {args.template}")
        return template.flow
    if not args.flow:
        raise FlowDataError("No flow given: pass a flow file or --template")
    return read_flow_file(args.flow)


def _select_personas(persona_list: Optional[str]) -> List[LeadPersona]:
    if not persona_list:
        return list(DEFAULT_PERSONAS)
    personas = []
    for persona_id in (p.strip() for p in persona_list.split(",") if p.strip()):
        persona = get_persona_by_id(persona_id)
        if persona is None:
            raise KeyError(persona_id)
        personas.append(persona)
    return personas


def format_report(result: BatchTestResult) -> str:
    """Render a batch report as plain text."""
    lines = [
        f"Batch {result.id}: {result.total_runs} run(s)",
        f"  Conversion rate: {result.conversion_rate:.1f}%",
        f"  Avg messages:    {result.avg_messages:.1f}",
        f"  Node coverage:   {result.node_coverage} node(s), {result.total_node_coverage_percent:.1f}%",
        "",
    ]
    for persona_result in result.persona_results:
        lines.append(
            f"  [{persona_result.verdict.value.upper():7}] {persona_result.persona_id:<14} "
            f"outcome={persona_result.outcome.value} messages={persona_result.messages_count} "
            f"issues={len(persona_result.issues)}"
        )
        if persona_result.notes:
            lines.append(f"            {persona_result.notes}")
    return "\n".join(lines)


async def _run_batch(
    orchestrator: SimulationOrchestrator,
    flow: FlowData,
    personas: List[LeadPersona],
    args: argparse.Namespace,
) -> BatchTestResult:
    runner = BatchRunner(
        orchestrator,
        personas=personas,
        summarizer=create_batch_summarizer(args.mode),
        run_delay=0.0,
    )

    def _report_progress(progress: BatchProgress) -> None:
        if progress.current:
            logger.info("Running persona %d/%d: %s", progress.current, progress.total, progress.current_persona)

    runner.add_listener(_report_progress)
    return await runner.run(flow)


async def _run_test_cases(
    orchestrator: SimulationOrchestrator,
    flow: FlowData,
    path: str,
) -> List[TestCaseResult]:
    results = []
    for test_case in load_test_cases(path):
        results.append(await run_test_case(orchestrator, test_case, flow))
    return results


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entrypoint for batch testing."""
    parser = argparse.ArgumentParser(description="Batch-test a conversation flow")
    parser.add_argument("flow", nargs="?", help="FlowData JSON file")
    parser.add_argument("--template", help="Use a packaged template instead of a file")
    parser.add_argument("--personas", help="Comma-separated persona ids (default: all)")
    parser.add_argument(
        "--mode",
        choices=["stub", "http"],
        default=None,
        help="Turn resolver mode (default: LEADFLOW_RESOLVER_MODE / runtime.yaml)",
    )
    parser.add_argument("--max-turns", type=int, default=None, help="Turn cap per run")
    parser.add_argument("--test-cases", metavar="FILE", help="Run scripted test cases from FILE")
    parser.add_argument("--output", "-o", metavar="FILE", help="Write the JSON report to FILE")
    parser.add_argument("--json", action="store_true", help="Print the JSON report")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable info logging")

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        flow = _load_flow(args)
        personas = _select_personas(args.personas)
    except FlowDataError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FATAL
    except KeyError as e:
        print(f"Error: unknown persona {e}", file=sys.stderr)
        return EXIT_FATAL
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FATAL

    if flow.is_empty():
        print("Error: the flow has no nodes", file=sys.stderr)
        return EXIT_FATAL

    orchestrator = SimulationOrchestrator(
        create_turn_resolver(args.mode),
        max_turns=args.max_turns,
        turn_delay=0.0,
    )

    if args.test_cases:
        try:
            results = asyncio.run(_run_test_cases(orchestrator, flow, args.test_cases))
        except (OSError, ValueError) as e:
            print(f"Error: {e}", file=sys.stderr)
            return EXIT_FATAL
        payload = {"testCases": [r.to_dict() for r in results]}
        if args.json:
            print(json.dumps(payload, indent=2))
        else:
            for r in results:
                status = "PASS" if r.passed else "FAIL"
                outcome = r.run.outcome.value if r.run.outcome else "none"
                print(f"[{status}] {r.test_case.id} {r.test_case.name} (outcome={outcome})")
                if r.missing_nodes:
                    print(f"       not visited: {', '.join(r.missing_nodes)}")
        if args.output:
            Path(args.output).write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")
        return EXIT_OK if all(r.passed for r in results) else EXIT_FAILED

    result = asyncio.run(_run_batch(orchestrator, flow, personas, args))
    payload = batch_test_result_to_dict(result)
    if args.json:
        print(json.dumps(payload, indent=2))
    else:
        print(format_report(result))
    if args.output:
        Path(args.output).write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")

    failed = any(p.verdict == Verdict.FAIL for p in result.persona_results)
    return EXIT_FAILED if failed else EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
