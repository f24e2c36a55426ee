#!/usr/bin/env python3
"""
Design Simulation CLI

Topology checks, batch scenario simulation, a headless live run and
trace replay for infrastructure component graphs.

Graphs, scenarios and traces are read from JSON or YAML files.

Usage Examples:
    # Batch simulation with the default Normal/Peak Load scenarios
    python simulate_design.py batch design.json

    # Custom scenarios, fixed seed, JSON export
    python simulate_design.py batch design.yaml --scenarios load.yaml --seed 7 -o out.json

    # Validate a design
    python simulate_design.py validate design.json

    # Check a single connection
    python simulate_design.py check app_server object_store --protocol http

    # Live run for 300 ticks with two traced requests
    python simulate_design.py live design.json --ticks 300 --inject 2

    # Replay traces captured by a live run
    python simulate_design.py replay traces.json --speed 2
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import argparse
import json
import logging

import yaml

from trafficsim.config import Settings
from trafficsim.config.container import Container
from trafficsim.core import GraphData
from trafficsim.simulation import Scenario, TracedRequest


# =============================================================================
# Argument Parsing
# =============================================================================

def build_parser() -> argparse.ArgumentParser:
    """Build the CLI argument parser with subcommands."""
    common_parser = argparse.ArgumentParser(add_help=False)

    output_group = common_parser.add_argument_group("Output")
    output_group.add_argument("--output", "-o", metavar="FILE", help="Export results to JSON")
    output_group.add_argument("--json", action="store_true", help="Print JSON to stdout")
    output_group.add_argument("--quiet", "-q", action="store_true", help="Minimal output")
    output_group.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    parser = argparse.ArgumentParser(
        prog="simulate_design.py",
        description="Traffic simulation for infrastructure component graphs.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    subs = parser.add_subparsers(dest="command", help="Command")

    # batch
    bt = subs.add_parser("batch", help="Run scenarios through the batch engine", parents=[common_parser])
    bt.add_argument("graph", help="Design file (JSON or YAML)")
    bt.add_argument("--scenarios", "-s", metavar="FILE", help="Scenario list (JSON or YAML)")
    bt.add_argument("--seed", type=int, default=None, help="Random seed")

    # validate
    va = subs.add_parser("validate", help="Validate a design", parents=[common_parser])
    va.add_argument("graph", help="Design file (JSON or YAML)")

    # check
    ck = subs.add_parser("check", help="Check a single connection", parents=[common_parser])
    ck.add_argument("source_type", help="Source component type")
    ck.add_argument("target_type", help="Target component type")
    ck.add_argument("--protocol", "-p", default=None, help="Protocol to check")

    # live
    lv = subs.add_parser("live", help="Headless live run", parents=[common_parser])
    lv.add_argument("graph", help="Design file (JSON or YAML)")
    lv.add_argument("--ticks", "-t", type=int, default=120, help="Ticks to run")
    lv.add_argument("--speed", type=float, default=1.0, help="Simulation speed (0.25-4)")
    lv.add_argument("--load-factor", type=float, default=1.0, help="Load multiplier (0-5)")
    lv.add_argument("--inject", type=int, default=0, help="Traced requests to inject")
    lv.add_argument("--seed", type=int, default=None, help="Random seed")

    # replay
    rp = subs.add_parser("replay", help="Replay traced requests", parents=[common_parser])
    rp.add_argument("traces", help="Traces file (JSON or YAML)")
    rp.add_argument("--speed", type=float, default=1.0, help="Playback speed")
    rp.add_argument("--stagger", type=float, default=100.0, help="Start offset between requests (ms)")
    rp.add_argument("--frame-ms", type=float, default=50.0, help="Virtual time between printed frames")

    return parser


def load_document(path: str):
    """Read a JSON or YAML file."""
    with open(path) as f:
        if Path(path).suffix.lower() in (".yaml", ".yml"):
            return yaml.safe_load(f)
        return json.load(f)


# =============================================================================
# Command Handlers
# =============================================================================

def handle_batch(args, sim, display) -> dict:
    """Handle the 'batch' subcommand."""
    graph = GraphData.from_dict(load_document(args.graph))
    scenarios = None
    if args.scenarios:
        doc = load_document(args.scenarios)
        items = doc.get("scenarios", []) if isinstance(doc, dict) else doc
        scenarios = [Scenario.from_dict(s) for s in items]
    output = sim.run_batch(graph, scenarios, seed=args.seed)
    if not args.quiet:
        display.display_batch(output)
    return output.to_dict()


def handle_validate(args, sim, display) -> dict:
    """Handle the 'validate' subcommand."""
    graph = GraphData.from_dict(load_document(args.graph))
    report = sim.validate_graph(graph)
    if not args.quiet:
        display.display_validation(report)
    return report.to_dict()


def handle_check(args, sim, display) -> dict:
    """Handle the 'check' subcommand."""
    result = sim.check_connection(args.source_type, args.target_type, args.protocol)
    if not args.quiet:
        display.print_header(f"Connection: {args.source_type} -> {args.target_type}")
        status = display.colored("valid", display.Colors.GREEN) if result["valid"] else display.colored("invalid", display.Colors.RED)
        print(f"\n  Status:           {status}")
        if result.get("message"):
            print(f"  Message:          {result['message']}")
        if result.get("suggestion"):
            print(f"  Suggestion:       {result['suggestion']}")
        print(f"  Default Protocol: {result['defaultProtocol']}")
        if result.get("protocolWarning"):
            print(f"  {display.colored('Warning:', display.Colors.YELLOW)}          {result['protocolWarning']}")
    return result


def handle_live(args, sim, display) -> dict:
    """Handle the 'live' subcommand."""
    graph = GraphData.from_dict(load_document(args.graph))
    session = sim.open_live_session(seed=args.seed)
    frames, traces = [], []
    try:
        session.send({"type": "init", "graph": graph.to_dict(), "speed": args.speed, "loadFactor": args.load_factor})
        session.send({"type": "start"})
        for _ in range(args.inject):
            session.send({"type": "injectRequest"})

        if not args.quiet:
            display.print_header(f"Live Run: {args.ticks} ticks")
        while len(frames) < args.ticks:
            message = session.next_message(timeout=5.0)
            if message is None:
                raise TimeoutError("Live engine stopped producing frames")
            if message.type == "tick":
                frames.append(message.frame)
                if not args.quiet and message.frame.tick % 30 == 0:
                    display.display_frame(message.frame)
            elif message.type == "trace":
                traces.append(message.trace)
            elif message.type == "engineUnavailable":
                raise RuntimeError(f"Live engine unavailable: {message.reason}")
        session.send({"type": "pause"})
    finally:
        session.close()

    if not args.quiet and traces:
        display.print_subheader(f"Traced Requests ({len(traces)})")
        for trace in traces:
            display.display_trace(trace)
    return {
        "ticks": len(frames),
        "final": frames[-1].to_dict() if frames else None,
        "traces": [t.to_dict() for t in traces],
    }


def handle_replay(args, sim, display) -> dict:
    """Handle the 'replay' subcommand."""
    doc = load_document(args.traces)
    items = doc.get("traces", []) if isinstance(doc, dict) else doc
    traces = [TracedRequest.from_dict(t) for t in items]
    names = {h.component_id: h.component_name for t in traces for h in t.hops}

    replay_frames = []
    clock = 0.0
    while True:
        frame = sim.replay(traces, [clock], playback_speed=args.speed, stagger_ms=args.stagger)[0]
        replay_frames.append(frame)
        if not args.quiet:
            display.display_replay_frame(frame, names)
        if frame.finished:
            break
        clock += args.frame_ms * args.speed
    return {"frames": [f.to_dict() for f in replay_frames]}


# =============================================================================
# Main Entry Point
# =============================================================================

def main() -> int:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return 1

    settings = Settings.from_env()

    # Logging
    log_level = (
        logging.WARNING if args.quiet
        else logging.DEBUG if args.verbose
        else getattr(logging, settings.log_level.upper(), logging.INFO)
    )
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    container = Container.from_settings(settings)
    display = container.display_service()

    try:
        sim = container.simulation_service()

        handlers = {
            "batch": handle_batch,
            "validate": handle_validate,
            "check": handle_check,
            "live": handle_live,
            "replay": handle_replay,
        }
        handler = handlers[args.command]
        result_data = handler(args, sim, display)

        if args.json:
            print(json.dumps(result_data, indent=2))

        if args.output:
            with open(args.output, "w") as f:
                json.dump(result_data, f, indent=2)
            if not args.quiet:
                print(f"\n{display.colored(f'Results saved to: {args.output}', display.Colors.GREEN)}")

        return 0

    except KeyboardInterrupt:
        print("\nSimulation interrupted.")
        return 130
    except Exception as e:
        print(display.colored(f"Error: {e}", display.Colors.RED), file=sys.stderr)
        if args.verbose:
            logging.exception("Simulation failed")
        return 1
    finally:
        container.close()


if __name__ == "__main__":
    sys.exit(main())
