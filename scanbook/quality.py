"""
OCR quality report.

Pages below the minimum confidence are reported, never removed: dropping
them would break the page numbering the outputs rely on.
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable

from .ocr import RecognitionResult

logger = logging.getLogger(__name__)


class IssueSeverity(Enum):
    """Severity levels for reported issues."""

    INFO = "info"
    WARNING = "warning"


@dataclass(frozen=True)
class PageIssue:
    """A quality issue on a specific page."""

    page_index: int
    severity: IssueSeverity
    issue_type: str
    message: str


@dataclass
class ConfidenceReport:
    """Per-run OCR quality summary."""

    total_pages: int
    min_confidence: float
    mean_confidence: float = 0.0
    issues: list[PageIssue] = field(default_factory=list)

    @property
    def low_confidence_pages(self) -> list[int]:
        return [i.page_index for i in self.issues if i.issue_type == "LOW_CONFIDENCE"]

    @property
    def empty_pages(self) -> list[int]:
        return [i.page_index for i in self.issues if i.issue_type == "EMPTY_PAGE"]

    @property
    def warning_count(self) -> int:
        return sum(1 for i in self.issues if i.severity == IssueSeverity.WARNING)

    @classmethod
    def from_results(
        cls,
        results: Iterable[RecognitionResult],
        min_confidence: float = 30.0,
        total_pages: int | None = None,
    ) -> "ConfidenceReport":
        """Shortcut for QualityAnalyzer(min_confidence).analyze(results).

        total_pages overrides the page count when some pages were never
        recognized (e.g. a source page count known up front).
        """
        report = QualityAnalyzer(min_confidence).analyze(results)
        if total_pages is not None:
            report.total_pages = total_pages
        return report

    def summary(self) -> str:
        """Generate human-readable summary."""
        lines = [
            "OCR Quality Report",
            "==================",
            f"Total pages: {self.total_pages}",
            f"Mean confidence: {self.mean_confidence:.1f}%",
            f"Below {self.min_confidence:g}%: {len(self.low_confidence_pages)}",
            f"Empty: {len(self.empty_pages)}",
        ]

        if self.issues:
            lines.append("")
            lines.append("Issues by page:")
            lines.append("-" * 40)
            for issue in sorted(self.issues, key=lambda i: i.page_index):
                marker = "[WARN]" if issue.severity == IssueSeverity.WARNING else "[INFO]"
                lines.append(f"Page {issue.page_index + 1:4d} {marker} {issue.issue_type}: {issue.message}")

        return "\n".join(lines)


class QualityAnalyzer:
    """Builds a ConfidenceReport from recognition results."""

    # Characters that shouldn't appear frequently in normal text
    GARBAGE_CHARS = re.compile(r'[□■◊◆●○►▼▲★☆♦♣♠♥※†‡¶§¤]')

    def __init__(self, min_confidence: float = 30.0) -> None:
        self.min_confidence = min_confidence

    def analyze_page(self, result: RecognitionResult) -> list[PageIssue]:
        issues = []

        if result.is_empty:
            issues.append(PageIssue(
                page_index=result.page_index,
                severity=IssueSeverity.INFO,
                issue_type="EMPTY_PAGE",
                message="No text recognized",
            ))
            return issues

        if result.confidence < self.min_confidence:
            issues.append(PageIssue(
                page_index=result.page_index,
                severity=IssueSeverity.WARNING,
                issue_type="LOW_CONFIDENCE",
                message=f"Confidence {result.confidence:.1f}% below {self.min_confidence:g}%",
            ))

        garbage = self.GARBAGE_CHARS.findall(result.text)
        if garbage and len(garbage) / len(result.text) > 0.01:
            issues.append(PageIssue(
                page_index=result.page_index,
                severity=IssueSeverity.WARNING,
                issue_type="GARBAGE_CHARS",
                message=f"Found {len(garbage)} suspicious characters",
            ))

        return issues

    def analyze(self, results: Iterable[RecognitionResult]) -> ConfidenceReport:
        """Analyze every recognized page, including ones left out of the output."""
        results = sorted(results, key=lambda r: r.page_index)
        scored = [r.confidence for r in results if not r.is_empty]

        report = ConfidenceReport(
            total_pages=len(results),
            min_confidence=self.min_confidence,
            mean_confidence=sum(scored) / len(scored) if scored else 0.0,
        )
        for result in results:
            report.issues.extend(self.analyze_page(result))

        if report.low_confidence_pages:
            pages = ", ".join(str(i + 1) for i in report.low_confidence_pages)
            logger.warning(f"Low OCR confidence on pages: {pages}")

        return report
