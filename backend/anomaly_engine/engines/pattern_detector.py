"""Recurring-structure detection: correlations, arithmetic identities and
seasonality within a dealer's submissions, plus dealer-level yearly,
monthly and peer-group patterns.
"""

import bisect
import logging
from collections import defaultdict
from itertools import combinations
from typing import List, Optional

from anomaly_engine.config import DetectionThresholds
from anomaly_engine.domain.finding_types import PatternType
from anomaly_engine.engines.statistical_detector import values_by_address
from anomaly_engine.schemas.dealer import Dealer
from anomaly_engine.schemas.findings import DataPattern, IndustryComparison, Severity
from anomaly_engine.schemas.submission import Submission, newest_first, sheet_of
from anomaly_engine.utils.periods import month_name, span
from anomaly_engine.utils.statistics import mean, pearson, percent_change

logger = logging.getLogger(__name__)


def common_addresses(submissions: List[Submission]) -> list[str]:
    """Numeric addresses present in every submission, sorted."""
    if not submissions:
        return []
    shared = set(submissions[0].numeric_values())
    for submission in submissions[1:]:
        shared &= set(submission.numeric_values())
    return sorted(shared)


def _near(index: list[tuple[float, int]], target: float, tol: float, exclude: tuple[int, int]) -> list[int]:
    """Positions in a sorted (value, position) index within ``tol`` of ``target``."""
    lo = bisect.bisect_left(index, (target - tol, -1))
    found = []
    for value, k in index[lo:]:
        if value >= target + tol:
            break
        if k not in exclude and abs(target - value) < tol:
            found.append(k)
    return sorted(found)


class PatternDetector:
    """Mine relationships that hold across cells or across time."""

    def __init__(self, thresholds: Optional[DetectionThresholds] = None):
        self.t = thresholds or DetectionThresholds()

    def detect_submission_patterns(
        self, submission: Submission, history: List[Submission]
    ) -> List[DataPattern]:
        """All submission-level patterns.

        ``history`` holds the same dealer's other submissions.
        """
        patterns: list[DataPattern] = []
        patterns.extend(self.detect_correlations(submission, history))
        patterns.extend(self.detect_arithmetic_relationships(submission))
        patterns.extend(self.detect_seasonal_patterns(submission, history))
        return patterns

    # ── submission level ─────────────────────────────────────────────

    def detect_correlations(
        self, submission: Submission, history: List[Submission]
    ) -> List[DataPattern]:
        """Pearson correlation between every pair of always-present addresses."""
        if len(history) < self.t.correlation_min_history:
            return []
        series_source = [submission] + list(history)
        addresses = common_addresses(series_source)
        if len(addresses) < self.t.correlation_min_addresses:
            return []

        rows = [s.numeric_values() for s in series_source]
        columns = {address: [row[address] for row in rows] for address in addresses}
        time_range = span(s.period for s in series_source)
        patterns: list[DataPattern] = []
        for first, second in combinations(addresses, 2):
            r = pearson(columns[first], columns[second])
            if r is None or abs(r) <= self.t.correlation_threshold:
                continue
            kind = (
                PatternType.STRONG_POSITIVE_CORRELATION
                if r > 0
                else PatternType.STRONG_NEGATIVE_CORRELATION
            )
            word = "positive" if r > 0 else "negative"
            patterns.append(DataPattern(
                pattern_type=kind.value,
                description=f"Strong {word} correlation (r = {r:.2f}) between {first} and {second}",
                significance=Severity.HIGH if abs(r) > self.t.correlation_high else Severity.MEDIUM,
                confidence_score=round(abs(r) * 100, 2),
                correlation=round(r, 4),
                related_cell_addresses=(first, second),
                time_range=time_range,
            ))
        return patterns

    def detect_arithmetic_relationships(self, submission: Submission) -> List[DataPattern]:
        """Find cells on one sheet where a + b = c or a - b = c.

        Pairs are taken in address order (i < j); the third cell is looked up
        in a sorted value index instead of a nested scan. Zero cells count
        towards a sheet's size but never take part in a relationship.
        """
        by_sheet: dict[str, list[tuple[str, float]]] = defaultdict(list)
        for address, value in sorted(submission.numeric_values().items()):
            by_sheet[sheet_of(address)].append((address, value))

        tol = self.t.arithmetic_tolerance
        time_range = span([submission.period])
        patterns: list[DataPattern] = []
        for sheet in sorted(by_sheet):
            if len(by_sheet[sheet]) < self.t.arithmetic_min_cells:
                continue
            cells = [(a, v) for a, v in by_sheet[sheet] if v != 0]
            index = sorted((value, k) for k, (_, value) in enumerate(cells))

            for i, j in combinations(range(len(cells)), 2):
                (a_addr, a), (b_addr, b) = cells[i], cells[j]
                for k in _near(index, a + b, tol, (i, j)):
                    c_addr, c = cells[k]
                    patterns.append(self._relationship(
                        PatternType.SUM_RELATIONSHIP, f"{a_addr} + {b_addr} = {c_addr}",
                        (a_addr, b_addr, c_addr), (a, b, c), "+", time_range,
                    ))
                for k in _near(index, a - b, tol, (i, j)):
                    c_addr, c = cells[k]
                    patterns.append(self._relationship(
                        PatternType.DIFFERENCE_RELATIONSHIP, f"{a_addr} - {b_addr} = {c_addr}",
                        (a_addr, b_addr, c_addr), (a, b, c), "-", time_range,
                    ))
        return patterns

    def _relationship(self, kind, formula, addresses, values, op, time_range) -> DataPattern:
        a, b, c = values
        return DataPattern(
            pattern_type=kind.value,
            description=f"{formula} ({a:,.2f} {op} {b:,.2f} = {c:,.2f})",
            significance=Severity.HIGH,
            confidence_score=self.t.arithmetic_confidence,
            formula=formula,
            related_cell_addresses=addresses,
            time_range=time_range,
        )

    def detect_seasonal_patterns(
        self, submission: Submission, history: List[Submission]
    ) -> List[DataPattern]:
        """Calendar-month peaks and troughs across at least a year of data."""
        if len(history) < self.t.seasonal_min_history:
            return []
        series_source = [submission] + list(history)
        time_range = span(s.period for s in series_source)
        patterns: list[DataPattern] = []

        rows = [(s.month, s.numeric_values()) for s in series_source]
        for address in common_addresses(series_source):
            by_month: dict[int, list[float]] = defaultdict(list)
            for month, row in rows:
                by_month[month].append(row[address])
            if len(by_month) < 2:
                continue
            averages = {m: mean(v) for m, v in sorted(by_month.items())}
            high_month = max(averages, key=averages.get)
            low_month = min(averages, key=averages.get)
            high, low = averages[high_month], averages[low_month]
            if low <= 0:
                continue
            pct = (high - low) * 100 / low
            if pct < self.t.seasonal_min_percent:
                continue
            patterns.append(DataPattern(
                pattern_type=PatternType.SEASONAL_PATTERN.value,
                description=(
                    f"Cell {address} shows seasonal pattern with highest values in "
                    f"{month_name(high_month)} and lowest in {month_name(low_month)} "
                    f"({pct:.1f}% difference)"
                ),
                significance=Severity.HIGH if pct > self.t.seasonal_high_percent else Severity.MEDIUM,
                confidence_score=min(
                    self.t.seasonal_max_confidence, self.t.seasonal_base_confidence + pct / 2
                ),
                related_cell_addresses=(address,),
                time_range=time_range,
            ))
        return patterns

    # ── dealer level ─────────────────────────────────────────────────

    def detect_dealer_patterns(
        self,
        dealer: Dealer,
        submissions: List[Submission],
        group_submissions: List[Submission],
    ) -> List[DataPattern]:
        """Yearly, monthly and peer-group patterns for one dealer."""
        if len(submissions) < self.t.dealer_pattern_min_submissions:
            logger.info(
                "Dealer %s has %d submissions; dealer patterns need %d",
                dealer.id, len(submissions), self.t.dealer_pattern_min_submissions,
            )
            return []
        recent = newest_first(submissions)[: self.t.dealer_pattern_max_submissions]
        patterns: list[DataPattern] = []
        patterns.extend(self.detect_yearly_changes(dealer, recent))
        patterns.extend(self.detect_monthly_patterns(dealer, recent))
        patterns.extend(self.detect_group_deviation(dealer, recent, group_submissions))
        return patterns

    def detect_yearly_changes(self, dealer: Dealer, submissions: List[Submission]) -> List[DataPattern]:
        by_year: dict[int, list[Submission]] = defaultdict(list)
        for s in submissions:
            by_year[s.year].append(s)
        if len(by_year) < 2:
            return []
        yearly = {
            year: {address: mean(values) for address, values in values_by_address(subs).items()}
            for year, subs in by_year.items()
        }

        years = sorted(yearly)
        patterns: list[DataPattern] = []
        for prev_year, year in zip(years, years[1:]):
            changes = []
            for address in sorted(set(yearly[prev_year]) & set(yearly[year])):
                change = percent_change(yearly[year][address], yearly[prev_year][address])
                if change is not None and abs(change) >= self.t.yearly_change_percent:
                    changes.append((address, change))
            if not changes:
                continue
            top = sorted(changes, key=lambda item: -abs(item[1]))[: self.t.pattern_top_n]
            summary = ", ".join(
                f"{address} {'increased' if change > 0 else 'decreased'} by {abs(change):.1f}%"
                for address, change in top
            )
            strongest = max(abs(change) for _, change in top)
            patterns.append(DataPattern(
                pattern_type=PatternType.YEARLY_CHANGE_PATTERN.value,
                description=f"Dealer {dealer.name} showed significant changes from {prev_year} to {year}: {summary}",
                significance=(
                    Severity.HIGH if strongest >= self.t.yearly_change_high_percent else Severity.MEDIUM
                ),
                confidence_score=self.t.yearly_change_confidence,
                related_cell_addresses=tuple(address for address, _ in top),
                time_range=span([(prev_year, 1), (year, 12)]),
            ))
        return patterns

    def detect_monthly_patterns(self, dealer: Dealer, submissions: List[Submission]) -> List[DataPattern]:
        frequency: dict[str, int] = defaultdict(int)
        for s in submissions:
            for address in s.numeric_values():
                frequency[address] += 1
        frequent = sorted(
            (a for a, n in frequency.items() if n >= self.t.monthly_address_min_share * len(submissions)),
            key=lambda a: (-frequency[a], a),
        )[: self.t.monthly_max_addresses]

        time_range = span(s.period for s in submissions)
        patterns: list[DataPattern] = []
        for address in frequent:
            by_month: dict[int, list[float]] = defaultdict(list)
            for s in submissions:
                value = s.numeric_values().get(address)
                if value is not None:
                    by_month[s.month].append(value)
            if len(by_month) < self.t.monthly_min_months:
                continue
            overall = mean([v for values in by_month.values() for v in values])
            if not overall:
                continue
            peaks, troughs = [], []
            for month in sorted(by_month):
                deviation = percent_change(mean(by_month[month]), overall)
                if deviation >= self.t.monthly_deviation_percent:
                    peaks.append(f"{month_name(month)} (+{deviation:.1f}%)")
                elif deviation <= -self.t.monthly_deviation_percent:
                    troughs.append(f"{month_name(month)} ({deviation:.1f}%)")
            if not peaks and not troughs:
                continue
            parts = []
            if peaks:
                parts.append("peaks in " + ", ".join(peaks))
            if troughs:
                parts.append("troughs in " + ", ".join(troughs))
            patterns.append(DataPattern(
                pattern_type=PatternType.MONTHLY_SEASONAL_PATTERN.value,
                description=f"Dealer {dealer.name} shows seasonal patterns for {address}: {'; '.join(parts)}",
                significance=Severity.MEDIUM,
                confidence_score=self.t.monthly_confidence,
                related_cell_addresses=(address,),
                time_range=time_range,
            ))
        return patterns

    def detect_group_deviation(
        self,
        dealer: Dealer,
        submissions: List[Submission],
        group_submissions: List[Submission],
    ) -> List[DataPattern]:
        """Compare a dealer's recent averages with the rest of its group."""
        own = newest_first(submissions)[: self.t.group_deviation_dealer_window]
        peers = newest_first(
            [s for s in group_submissions if s.dealer_id != dealer.id]
        )[: self.t.group_deviation_group_window]
        if (
            len(own) < self.t.group_deviation_min_dealer_submissions
            or len(peers) < self.t.group_deviation_min_group_submissions
        ):
            return []

        group_values = {
            address: values
            for address, values in values_by_address(peers).items()
            if len(values) >= self.t.group_deviation_min_occurrences
        }
        dealer_values = values_by_address(own)
        shared = sorted(set(group_values) & set(dealer_values))
        if len(shared) < self.t.pattern_top_n:
            return []

        deviations = []
        for address in shared:
            group_avg = mean(group_values[address])
            diff = percent_change(mean(dealer_values[address]), group_avg)
            if diff is not None and abs(diff) >= self.t.group_deviation_percent:
                deviations.append((address, diff, group_avg))
        if not deviations:
            return []

        top = sorted(deviations, key=lambda item: -abs(item[1]))[: self.t.pattern_top_n]
        if all(d > 0 for _, d, _ in top):
            tendency = "higher"
        elif all(d < 0 for _, d, _ in top):
            tendency = "lower"
        else:
            tendency = "different"
        summary = ", ".join(
            f"{address} {abs(d):.1f}% {'higher' if d > 0 else 'lower'}" for address, d, _ in top
        )
        lead_address, lead_diff, lead_avg = top[0]
        return [DataPattern(
            pattern_type=PatternType.GROUP_DEVIATION_PATTERN.value,
            description=(
                f"Dealer {dealer.name} shows {tendency} values than other "
                f"{dealer.group_label} dealers: {summary}"
            ),
            significance=(
                Severity.HIGH
                if abs(lead_diff) >= self.t.group_deviation_high_percent
                else Severity.MEDIUM
            ),
            confidence_score=self.t.group_deviation_confidence,
            related_cell_addresses=tuple(address for address, _, _ in top),
            time_range=span(s.period for s in own),
            industry_comparison=IndustryComparison(
                benchmark=round(lead_avg, 2), deviation=round(lead_diff, 2)
            ),
        )]
