"""gateway-analyzer: flag anomalies in Cloudflare Gateway HTTP logs."""

import logging
import os
import sys
import uuid
from argparse import ArgumentParser

from gateway_analyzer.config import Config
from gateway_analyzer.formatters import get_formatter
from gateway_analyzer.llm_client import WorkersAIClient
from gateway_analyzer.narrative import NarrativeGenerator
from gateway_analyzer.pipeline import AnalysisPipeline

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [gateway-analyzer] %(levelname)s %(message)s",
    stream=sys.stderr,
)
logger = logging.getLogger(__name__)


def build_parser() -> ArgumentParser:
    """Build the CLI argument parser."""
    parser = ArgumentParser(
        prog="gateway-analyzer",
        description="Detect security anomalies in Cloudflare Gateway HTTP logs.",
    )
    parser.add_argument(
        "--config",
        default=os.environ.get("CONFIG_PATH", "config.yaml"),
        help="Path to YAML config file (default: config.yaml)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    analyze = sub.add_parser("analyze", help="Analyze a log file and print the report")
    analyze.add_argument("file", help="Gateway log file (JSON lines or comma-delimited)")
    analyze.add_argument(
        "--output",
        choices=["text", "json", "csv"],
        default="text",
        help="Output format (default: text)",
    )
    analyze.add_argument(
        "--no-ai",
        action="store_true",
        help="Skip the text-generation service and use the built-in narrative",
    )

    sub.add_parser("serve", help="Run the HTTP upload API")

    generate = sub.add_parser("generate", help="Write synthetic gateway logs to stdout")
    generate.add_argument("--count", type=int, default=200, help="Benign entries (default: 200)")
    generate.add_argument("--seed", type=int, default=None, help="Random seed")
    generate.add_argument("--format", choices=["json", "csv"], default="json")
    generate.add_argument("--incidents", action="store_true", help="Inject one of each incident")
    return parser


def run_analyze(args, config) -> int:
    narrative_config = config["narrative"]
    client = None if args.no_ai else WorkersAIClient.from_config(narrative_config)
    pipeline = AnalysisPipeline(
        narrator=NarrativeGenerator.from_config(narrative_config, client=client),
        burst_window_seconds=config["detection"]["burst_window_seconds"],
        max_findings=config["detection"]["max_findings"],
    )

    with open(args.file, "rb") as f:
        data = f.read()

    try:
        result = pipeline.run(data, str(uuid.uuid4()))
    except Exception as e:
        logger.error("Analysis failed: %s", e)
        return 1
    finally:
        pipeline.close()

    print(get_formatter(args.output)(result))
    return 0


def run_serve(config) -> int:
    from gateway_analyzer.app import create_app

    app = create_app(config)
    server = config["server"]
    logger.info("API listening on %s:%d", server["host"], server["port"])
    app.run(host=server["host"], port=server["port"], debug=server["debug"])
    return 0


def run_generate(args) -> int:
    from gateway_analyzer.simulator import generate_batch, to_delimited_lines, to_json_lines

    logs = generate_batch(count=args.count, seed=args.seed, incidents=args.incidents)
    render = to_json_lines if args.format == "json" else to_delimited_lines
    sys.stdout.write(render(logs))
    return 0


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    if args.command == "generate":
        return run_generate(args)

    config = Config(args.config)
    if args.command == "serve":
        return run_serve(config)
    return run_analyze(args, config)


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        sys.exit(0)
    except BrokenPipeError:
        sys.exit(0)
