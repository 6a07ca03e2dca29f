"""Run report accumulation and fan-in.

Each detection worker keeps its own RunReport and folds product outcomes
into it; the orchestrator sums the partial reports once every worker is
done. Addition is order-independent, so the total does not depend on how
products were spread across workers.
"""

from typing import Iterable, Dict

from changewatch.api.schemas import RunReport, ProductOutcome, ProductStatus, PageOutcome, PageStatus

COUNTERS = (
    "added", "removed", "checked", "updated",
    "skipped", "failed", "pages_fetched", "pages_failed",
)


def record_product(report: RunReport, outcome: ProductOutcome) -> RunReport:
    """Fold one product outcome into a worker's partial report."""
    report.checked += 1
    if outcome.status is ProductStatus.SKIPPED:
        report.skipped += 1
    elif outcome.status is ProductStatus.FAILED:
        report.failed += 1
    elif outcome.changed:
        report.updated += 1
        report.added += outcome.added
        report.removed += outcome.removed
    return report


def record_page(report: RunReport, outcome: PageOutcome) -> RunReport:
    """Count a page as fetched or failed. End-of-data pages count as neither."""
    if outcome.status is PageStatus.OK:
        report.pages_fetched += 1
    elif outcome.status in (PageStatus.ERROR, PageStatus.MALFORMED):
        report.pages_failed += 1
    return report


def merge_reports(partials: Iterable[RunReport]) -> RunReport:
    """Sum partial reports into one."""
    totals: Dict[str, int] = {name: 0 for name in COUNTERS}
    for partial in partials:
        for name in COUNTERS:
            totals[name] += getattr(partial, name)
    return RunReport(**totals)


def summary_line(report: RunReport) -> str:
    """Terminal line printed at the end of a run."""
    if report.updated == 0:
        return "No changed items found"
    return f"Total changed items: {report.updated}"
