"""
Display Module

Terminal display formatting for validation reports, batch simulation
output, live frames and trace replay.

Provides:
    - Colors: ANSI terminal color codes
    - ConsoleDisplay: display functions grouped for the CLI
"""

from __future__ import annotations
from typing import Dict, List, TYPE_CHECKING

if TYPE_CHECKING:
    from ..core.validator import ValidationReport
    from ..simulation.models import Diagnostic, SimulationOutput, TickFrame, TracedRequest
    from ..simulation.trace_replay import ReplayFrame


# =============================================================================
# Terminal Colors
# =============================================================================

class Colors:
    """ANSI color codes for terminal output."""
    RED = "\033[91m"
    GREEN = "\033[92m"
    YELLOW = "\033[93m"
    BLUE = "\033[94m"
    CYAN = "\033[96m"
    WHITE = "\033[97m"
    GRAY = "\033[90m"
    BOLD = "\033[1m"
    RESET = "\033[0m"


def colored(text: str, color: str, bold: bool = False) -> str:
    """Apply color to text."""
    style = Colors.BOLD if bold else ""
    return f"{style}{color}{text}{Colors.RESET}"


def severity_color(severity: str) -> str:
    return {
        "critical": Colors.RED,
        "warning": Colors.YELLOW,
        "info": Colors.BLUE,
    }.get(severity, Colors.RESET)


class ConsoleDisplay:
    """Console output for the trafficsim CLI."""

    Colors = Colors
    colored = staticmethod(colored)

    def print_header(self, title: str, char: str = "=", width: int = 78) -> None:
        print(f"\n{colored(char * width, Colors.CYAN)}")
        print(f"{colored(f' {title} '.center(width), Colors.CYAN, bold=True)}")
        print(f"{colored(char * width, Colors.CYAN)}")

    def print_subheader(self, title: str, char: str = "-", width: int = 78) -> None:
        print(f"\n{colored(f' {title} ', Colors.WHITE, bold=True)}")
        print(f"{colored(char * width, Colors.GRAY)}")

    # =========================================================================
    # Validation
    # =========================================================================

    def display_validation(self, report: "ValidationReport") -> None:
        self.print_header("Topology Validation")
        status = colored("VALID", Colors.GREEN, bold=True) if report.is_valid else colored("INVALID", Colors.RED, bold=True)
        print(f"\n  Status: {status}")
        if report.errors:
            self.print_subheader(f"Errors ({len(report.errors)})")
            for error in report.errors:
                print(f"  {colored('x', Colors.RED)} {error}")
        if report.warnings:
            self.print_subheader(f"Warnings ({len(report.warnings)})")
            for warning in report.warnings:
                print(f"  {colored('!', Colors.YELLOW)} {warning}")

    # =========================================================================
    # Batch
    # =========================================================================

    def _display_diagnostics(self, diagnostics: List["Diagnostic"]) -> None:
        for d in diagnostics:
            sev = colored(f"[{d.severity.value.upper()}]", severity_color(d.severity.value))
            print(f"  {sev} {d.node_name}: {d.message}")
            if d.suggestion:
                print(f"        {colored('->', Colors.GRAY)} {d.suggestion}")

    def display_batch(self, output: "SimulationOutput") -> None:
        self.print_header("Batch Simulation")
        overall = colored("PASSED", Colors.GREEN, bold=True) if output.passed else colored("FAILED", Colors.RED, bold=True)
        print(f"\n  {colored('Result:', Colors.CYAN)}       {overall}")
        print(f"  {colored('Score:', Colors.CYAN)}        {output.total_score:.1f} / 100")
        print(f"  {colored('Seed:', Colors.CYAN)}         {output.seed}")

        for result in output.scenarios:
            m = result.metrics
            status = colored("pass", Colors.GREEN) if result.passed else colored("fail", Colors.RED)
            self.print_subheader(f"{result.scenario_name} ({status}, score {result.score:.1f})")
            print(f"  {'Offered RPS:':<20} {m.rps:,.1f}")
            print(f"  {'Throughput RPS:':<20} {m.throughput_rps:,.1f}")
            err_color = Colors.RED if m.error_rate > 0.01 else Colors.GREEN
            print(f"  {'Error Rate:':<20} {colored(f'{m.error_rate * 100:.2f}%', err_color)}")
            print(f"  {'Latency avg/p50:':<20} {m.avg_latency_ms:.1f} / {m.p50_latency_ms:.1f} ms")
            print(f"  {'Latency p95/p99:':<20} {m.p95_latency_ms:.1f} / {m.p99_latency_ms:.1f} ms")
            print(f"  {'Monthly Cost:':<20} ${m.estimated_cost_monthly:,.2f}")
            if m.bottlenecks:
                print(f"  {'Bottlenecks:':<20} {colored(', '.join(m.bottlenecks), Colors.RED)}")
            if result.feedback:
                for line in result.feedback:
                    print(f"  {colored('x', Colors.RED)} {line}")
            self._display_diagnostics(list(result.diagnostics))

        if output.spof_diagnostics:
            self.print_subheader("Single Points of Failure")
            self._display_diagnostics(list(output.spof_diagnostics))

    # =========================================================================
    # Live & Replay
    # =========================================================================

    def display_frame(self, frame: "TickFrame") -> None:
        m = frame.metrics
        print(
            f"  tick {frame.tick:>5}  particles {len(frame.particles):>4}  "
            f"rps {m.rps:>9,.1f}  latency {m.avg_latency_ms:>7.1f} ms  "
            f"errors {m.error_rate * 100:>6.2f}%"
        )

    def display_trace(self, trace: "TracedRequest") -> None:
        color = Colors.GREEN if trace.completed else Colors.RED
        print(f"\n  {colored(trace.id, color, bold=True)} ({trace.status.value}, {trace.duration_ms:.1f} ms)")
        for hop in trace.hops:
            print(
                f"    {hop.component_name:<28} {hop.arrival_ms:>10.1f} -> {hop.departure_ms:>10.1f} ms  "
                f"{hop.status.value}"
            )

    def display_replay_frame(self, frame: "ReplayFrame", names: Dict[str, str]) -> None:
        print(f"\n  {colored(f't = {frame.clock_ms:.0f} ms', Colors.CYAN)}  processed {frame.requests_processed}")
        for cursor in frame.cursors:
            where = names.get(cursor.component_id, cursor.component_id)
            print(f"    {cursor.request_id:<16} {cursor.phase.value:<11} {where} ({cursor.progress * 100:.0f}%)")
