"""Tests for run report accumulation and fan-in."""

from changewatch.api.schemas import (
    PageOutcome, PageStatus, ProductOutcome, ProductStatus, RunReport,
)
from changewatch.pipeline.report import merge_reports, record_page, record_product, summary_line


def outcome(status, added=0, removed=0):
    changed = status in (ProductStatus.CREATED, ProductStatus.UPDATED)
    return ProductOutcome(product_id="p", status=status, added=added, removed=removed, changed=changed)


class TestRecordProduct:
    def test_changed_product(self):
        report = record_product(RunReport(), outcome(ProductStatus.UPDATED, added=2, removed=1))
        assert (report.checked, report.updated, report.added, report.removed) == (1, 1, 2, 1)

    def test_unchanged_product(self):
        report = record_product(RunReport(), outcome(ProductStatus.UNCHANGED))
        assert (report.checked, report.updated) == (1, 0)

    def test_skipped_and_failed_count_as_checked_only(self):
        report = RunReport()
        record_product(report, outcome(ProductStatus.SKIPPED))
        record_product(report, outcome(ProductStatus.FAILED))
        assert report.checked == 2
        assert report.skipped == 1
        assert report.failed == 1
        assert report.updated == report.added == report.removed == 0


class TestRecordPage:
    def test_statuses(self):
        report = RunReport()
        for status in PageStatus:
            record_page(report, PageOutcome(page=1, status=status))
        assert report.pages_fetched == 1
        assert report.pages_failed == 2


class TestMergeReports:
    def test_sums_partials(self):
        partials = [
            RunReport(added=1, removed=0, checked=4, updated=1),
            RunReport(added=0, removed=3, checked=6, updated=2, skipped=1),
            RunReport(),
        ]
        total = merge_reports(partials)
        assert (total.added, total.removed, total.checked, total.updated, total.skipped) == (1, 3, 10, 3, 1)

    def test_order_does_not_matter(self):
        partials = [RunReport(checked=n, updated=n // 2, added=n % 3) for n in range(1, 9)]
        assert merge_reports(partials) == merge_reports(reversed(partials))

    def test_empty(self):
        assert merge_reports([]) == RunReport()


class TestSummaryLine:
    def test_no_changes(self):
        assert summary_line(RunReport(checked=10)) == "No changed items found"

    def test_changes(self):
        assert summary_line(RunReport(checked=10, updated=3)) == "Total changed items: 3"
