#!/usr/bin/env python3
"""
validate_flow.py - Structural validator for conversation flow files.

Checks one or more FlowData JSON files (or prompts carrying a <flow> tag, or
packaged templates) and prints every finding grouped error, warning, info.

Exit Codes:
  0 - No errors (warnings allowed unless --strict)
  1 - At least one flow has errors (or warnings with --strict)
  2 - Fatal error (unreadable file, malformed flow document)

Examples:
  leadflow-validate flows/qualification.json
  leadflow-validate --prompt prompts/agent.md
  leadflow-validate --template vsl-funnel --json
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from leadflow.flow.serializer import FlowDataError, extract_flow_from_prompt, read_flow_file
from leadflow.flow.templates import get_template
from leadflow.flow.types import FlowData
from leadflow.validator import SEVERITY_WARNING, ValidationReport, validate_flow

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_FATAL = 2


def _load_targets(args: argparse.Namespace) -> List[Tuple[str, FlowData]]:
    """Resolve CLI arguments into (label, flow) pairs.

    Raises:
        FlowDataError: If a document is malformed or a prompt holds no flow.
        OSError: If a file cannot be read.
        KeyError: If a template id is unknown.
    """
    targets: List[Tuple[str, FlowData]] = []
    for template_id in args.template or []:
        template = get_template(template_id)
        if template is None:
            raise KeyError(template_id)
        targets.append((f"template:{template_id}", template.flow))
    for path in args.paths:
        if args.prompt:
            flow = extract_flow_from_prompt(Path(path).read_text(encoding="utf-8"))
            if flow is None:
                raise FlowDataError(f"{path}: no <flow> tag found")
        else:
            flow = read_flow_file(path)
        targets.append((str(path), flow))
    return targets


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entrypoint for the flow validator."""
    parser = argparse.ArgumentParser(
        description="Validate conversation flow files",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__.split("Exit Codes:", 1)[1] if __doc__ else None,
    )
    parser.add_argument("paths", nargs="*", help="FlowData JSON files (or prompt files with --prompt)")
    parser.add_argument(
        "--prompt",
        action="store_true",
        help="Treat inputs as prompt text and validate the embedded <flow> tag",
    )
    parser.add_argument(
        "--template",
        action="append",
        metavar="ID",
        help="Validate a packaged template (repeatable)",
    )
    parser.add_argument("--strict", action="store_true", help="Treat warnings as failures")
    parser.add_argument("--json", action="store_true", help="Output machine-readable JSON")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if not args.paths and not args.template:
        parser.error("nothing to validate: pass flow files or --template")

    try:
        targets = _load_targets(args)
    except FlowDataError as e:
        print(f"Error: {e}", file=sys.stderr)
        for detail in e.errors:
            print(f"  {detail}", file=sys.stderr)
        return EXIT_FATAL
    except KeyError as e:
        print(f"Error: unknown template {e}", file=sys.stderr)
        return EXIT_FATAL
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FATAL

    failed = False
    results: Dict[str, Any] = {}
    for label, flow in targets:
        report = ValidationReport(validate_flow(flow))
        counts = report.counts()
        flow_failed = report.has_errors() or (args.strict and counts[SEVERITY_WARNING] > 0)
        failed = failed or flow_failed
        results[label] = report.to_dict()
        if not args.json:
            print(f"== {label}")
            print(report.format())

    if args.json:
        print(json.dumps({"status": "FAIL" if failed else "PASS", "flows": results}, indent=2))

    return EXIT_FAILED if failed else EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
