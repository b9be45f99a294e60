# src/testmgr/cli/render.py

"""
Rich renderables shared by the CLI commands.
"""

from collections.abc import Iterable

from rich.table import Table
from rich.text import Text
from rich.tree import Tree

from testmgr.catalog import STATUS_EMOJI_MAP, CatalogStore, TestStatus
from testmgr.coverage import FileCoverage
from testmgr.discovery.models import EntityKind, TestEntity
from testmgr.history.models import HistorySummary, RunSession, TestAggregate
from testmgr.runtime import RunSummary

STATUS_STYLES = {
    TestStatus.PASSED: "green",
    TestStatus.FAILED: "bold red",
    TestStatus.SKIPPED: "yellow",
    TestStatus.UNKNOWN: "dim",
    TestStatus.PENDING: "cyan",
    TestStatus.RUNNING: "cyan",
    TestStatus.ABORTED: "magenta",
}

KIND_ICONS = {
    EntityKind.DIRECTORY: "📁",
    EntityKind.FILE: "📄",
    EntityKind.GROUP: "🧪",
    EntityKind.CASE: "•",
}


def _entity_label(entity: TestEntity, catalog: CatalogStore | None) -> Text:
    label = Text(f"{KIND_ICONS[entity.kind]} {entity.name}")
    if catalog is not None and entity.kind.is_runnable:
        status = catalog.rollup_status(entity)
        label.append(f"  {STATUS_EMOJI_MAP[status]}", style=STATUS_STYLES[status])
    return label


def entity_tree(roots: Iterable[TestEntity], catalog: CatalogStore | None = None, title: str = "Tests") -> Tree:
    tree = Tree(Text(title, style="bold"))

    def add(branch: Tree, entity: TestEntity) -> None:
        node = branch.add(_entity_label(entity, catalog))
        for child in entity.children:
            add(node, child)

    for root in roots:
        add(tree, root)
    return tree


def summary_line(summary: RunSummary) -> Text:
    counts = summary.counts()
    text = Text()
    if summary.cancelled:
        text.append("Cancelled ", style="magenta")
    elif summary.success:
        text.append("OK ", style="bold green")
    else:
        text.append("FAILED ", style="bold red")
    parts = [
        (TestStatus.PASSED, "passed"),
        (TestStatus.FAILED, "failed"),
        (TestStatus.SKIPPED, "skipped"),
        (TestStatus.UNKNOWN, "unknown"),
    ]
    text.append(
        ", ".join(f"{counts[status]} {label}" for status, label in parts if counts[status] or status == TestStatus.PASSED)
    )
    text.append(f" in {summary.duration_ms / 1000.0:.2f}s (exit code {summary.exit_code})", style="dim")
    return text


def failures_table(summary: RunSummary, catalog: CatalogStore) -> Table | None:
    failed = [cid for cid, status in summary.statuses.items() if status == TestStatus.FAILED]
    if not failed:
        return None
    table = Table(title="Failures", show_lines=True, expand=True)
    table.add_column("Test", style="red", no_wrap=True)
    table.add_column("Message", overflow="fold")
    for canonical_id in failed:
        record = catalog.get(canonical_id)
        message = Text((record.last_failure_message or "") if record else "")
        if record is not None and record.last_diff is not None:
            message.append(f"\nexpected: {record.last_diff.expected}", style="green")
            message.append(f"\nactual:   {record.last_diff.actual}", style="red")
        table.add_row(canonical_id, message)
    return table


def history_summary_table(summary: HistorySummary) -> Table:
    table = Table(title="Test history", show_header=False)
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Sessions", str(summary.sessions))
    table.add_row("Tests recorded", str(summary.tests))
    table.add_row("Passed", str(summary.passed))
    table.add_row("Failed", str(summary.failed))
    table.add_row("Skipped", str(summary.skipped))
    table.add_row("Avg session", f"{summary.mean_session_duration_ms / 1000.0:.2f}s")
    table.add_row("Avg test", f"{summary.mean_test_duration_ms:.1f}ms")
    return table


def sessions_table(sessions: Iterable[RunSession]) -> Table:
    table = Table(title="Recent sessions")
    table.add_column("Session")
    table.add_column("Started")
    table.add_column("Total", justify="right")
    table.add_column("Passed", justify="right", style="green")
    table.add_column("Failed", justify="right", style="red")
    table.add_column("Skipped", justify="right", style="yellow")
    table.add_column("Duration", justify="right")
    for session in sessions:
        table.add_row(
            session.session_id,
            session.start_time.strftime("%Y-%m-%d %H:%M:%S"),
            str(session.total),
            str(session.passed),
            str(session.failed),
            str(session.skipped),
            f"{session.duration_ms / 1000.0:.2f}s",
        )
    return table


def aggregates_table(title: str, aggregates: Iterable[TestAggregate]) -> Table:
    table = Table(title=title)
    table.add_column("Test", no_wrap=True)
    table.add_column("Runs", justify="right")
    table.add_column("Failure rate", justify="right")
    table.add_column("Avg duration", justify="right")
    table.add_column("Last", justify="center")
    for aggregate in aggregates:
        table.add_row(
            aggregate.canonical_id,
            str(aggregate.runs),
            f"{aggregate.failure_rate:.0%}",
            f"{aggregate.mean_duration_ms:.1f}ms",
            aggregate.last_status.value,
        )
    return table


def flaky_table(scores: Iterable[tuple[str, float]]) -> Table:
    table = Table(title="Flaky tests")
    table.add_column("Test", no_wrap=True)
    table.add_column("Flakiness", justify="right", style="yellow")
    for canonical_id, score in scores:
        table.add_row(canonical_id, f"{score:.2f}")
    return table


def _compress_lines(lines: Iterable[int]) -> str:
    """Formats line numbers as ranges: 1-3, 7, 9-10."""
    ranges: list[str] = []
    start = prev = None
    for number in sorted(lines):
        if start is None:
            start = prev = number
        elif number == prev + 1:
            prev = number
        else:
            ranges.append(str(start) if start == prev else f"{start}-{prev}")
            start = prev = number
    if start is not None:
        ranges.append(str(start) if start == prev else f"{start}-{prev}")
    return ", ".join(ranges)


def coverage_table(files: dict[str, FileCoverage], show_uncovered: bool = False) -> Table:
    table = Table(title="Coverage")
    table.add_column("File", no_wrap=True)
    table.add_column("Lines", justify="right")
    table.add_column("Covered", justify="right")
    table.add_column("Percent", justify="right")
    if show_uncovered:
        table.add_column("Missing", overflow="fold")

    total = covered = 0
    for name in sorted(files):
        file_cov = files[name]
        total += file_cov.total
        covered += len(file_cov.covered)
        style = "green" if file_cov.percent >= 80 else "yellow" if file_cov.percent >= 50 else "red"
        row = [name, str(file_cov.total), str(len(file_cov.covered)), Text(f"{file_cov.percent:.1f}%", style=style)]
        if show_uncovered:
            row.append(_compress_lines(file_cov.uncovered))
        table.add_row(*row)

    overall = 100.0 * covered / total if total else 100.0
    footer = ["TOTAL", str(total), str(covered), f"{overall:.1f}%"]
    if show_uncovered:
        footer.append("")
    table.add_section()
    table.add_row(*footer, style="bold")
    return table


# 🔼⚙️
