#!/usr/bin/env python3
"""
export_flow.py - Render a conversation flow as step text or Mermaid.

Reads a FlowData JSON file (or a prompt carrying a <flow> tag, or a packaged
template) and prints it as numbered steps or as a fenced Mermaid diagram.

Exit Codes:
  0 - Rendered
  2 - Fatal error (unreadable file, malformed flow document, unknown template)

Examples:
  leadflow-export flows/qualification.json
  leadflow-export --prompt prompts/agent.md --format mermaid
  leadflow-export --template vsl-funnel --name "VSL funnel" -o funnel.md
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from leadflow.flow.serializer import FlowDataError, extract_flow_from_prompt, read_flow_file
from leadflow.flow.templates import get_template, list_templates
from leadflow.flow.text_export import TextFormat, flow_to_text
from leadflow.flow.types import FlowData

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FATAL = 2


def _load_flow(args: argparse.Namespace) -> Tuple[str, FlowData]:
    """Resolve CLI arguments into (default name, flow).

    Raises:
        FlowDataError: If the document is malformed or a prompt holds no flow.
        OSError: If the file cannot be read.
        KeyError: If the template id is unknown.
    """
    if args.template:
        template = get_template(args.template)
        if template is None:
            raise KeyError(args.template)
        return template.name, template.flow
    path = Path(args.path)
    if args.prompt:
        flow = extract_flow_from_prompt(path.read_text(encoding="utf-8"))
        if flow is None:
            raise FlowDataError(f"{path}: no <flow> tag found")
        return path.stem, flow
    return path.stem, read_flow_file(path)


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entrypoint for the flow exporter."""
    parser = argparse.ArgumentParser(
        description="Render a conversation flow as text",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__.split("Exit Codes:", 1)[1] if __doc__ else None,
    )
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("path", nargs="?", help="FlowData JSON file (or prompt file with --prompt)")
    source.add_argument("--template", metavar="ID", help="Render a packaged template")
    parser.add_argument("--prompt", action="store_true", help="Read the <flow> tag from a prompt file")
    parser.add_argument(
        "--format",
        choices=[f.value for f in TextFormat],
        default=TextFormat.STRUCTURED.value,
        help="Output format (default: structured)",
    )
    parser.add_argument("--name", help="Heading for the output (default: file stem or template name)")
    parser.add_argument("-o", "--output", help="Write the text to a file instead of stdout")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        default_name, flow = _load_flow(args)
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

    # Packaged templates double as the known flows for linked end nodes
    available_flows: Dict[str, str] = {t.id: t.name for t in list_templates()}
    text = flow_to_text(flow, args.name or default_name, TextFormat(args.format), available_flows)

    if args.output:
        Path(args.output).write_text(text + "\n", encoding="utf-8")
        logger.debug("Wrote %s rendering to %s", args.format, args.output)
    else:
        print(text)
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
