"""Rule-based statistical anomaly detection.

Covers distribution shape (bimodality, skew), cross-dealer outliers,
temporal trends, per-submission checks (template completeness, intra-table
outliers, year-over-year variance) and dealer-level quarter-end and
industry comparisons. Every check works on snapshot schemas and returns a
list of ``DataAnomaly``; below its minimum sample size a check returns
nothing.
"""

import logging
from collections import defaultdict
from typing import Iterable, List, Optional

from anomaly_engine.config import DetectionThresholds
from anomaly_engine.domain.finding_types import AnomalyType
from anomaly_engine.domain.recommendations import count_impact, recommended_action, value_impact
from anomaly_engine.domain.severity import high_if_above, severity_from_z
from anomaly_engine.schemas.dealer import Dealer
from anomaly_engine.schemas.findings import DataAnomaly, Severity
from anomaly_engine.schemas.snapshot import DetectionSnapshot
from anomaly_engine.schemas.submission import Submission, chronological
from anomaly_engine.schemas.template import TemplateStructure
from anomaly_engine.utils.cancellation import CancellationToken, is_cancelled
from anomaly_engine.utils.periods import QUARTER_END_MONTHS, month_name, period_label, span
from anomaly_engine.utils.statistics import (
    histogram,
    mean,
    percent_change,
    population_std,
    skewness,
    strictly_decreasing,
    strictly_increasing,
    top_two_bins,
    z_score,
)

logger = logging.getLogger(__name__)


def values_by_address(submissions: Iterable[Submission]) -> dict[str, list[float]]:
    """Numeric values per global address across submissions, in input order."""
    grouped: dict[str, list[float]] = defaultdict(list)
    for submission in submissions:
        for address, value in submission.numeric_values().items():
            grouped[address].append(value)
    return dict(grouped)


def first_per_dealer(submissions: Iterable[Submission]) -> dict[int, Submission]:
    """Earliest submission per dealer; later duplicates are ignored."""
    chosen: dict[int, Submission] = {}
    for submission in chronological(list(submissions)):
        chosen.setdefault(submission.dealer_id, submission)
    return chosen


class StatisticalAnomalyDetector:
    """Detect anomalies with descriptive statistics and fixed rules."""

    def __init__(self, thresholds: Optional[DetectionThresholds] = None):
        self.t = thresholds or DetectionThresholds()

    # ══════════════════════════════════════════════════════════════════
    # BATCH SCOPES (global window, dealer group)
    # ══════════════════════════════════════════════════════════════════

    def detect_batch(
        self,
        snapshot: DetectionSnapshot,
        entity: str = "All dealers",
        cancel_token: Optional[CancellationToken] = None,
    ) -> List[DataAnomaly]:
        """Distribution, cross-dealer and trend checks over a snapshot."""
        anomalies: list[DataAnomaly] = []
        submissions = list(snapshot.submissions)
        anomalies.extend(self.detect_distribution_anomalies(submissions, entity, cancel_token))
        anomalies.extend(self.detect_cross_dealer_outliers(snapshot, cancel_token))
        anomalies.extend(self.detect_temporal_trends(submissions, entity, cancel_token))
        return anomalies

    def detect_distribution_anomalies(
        self,
        submissions: List[Submission],
        entity: str = "All dealers",
        cancel_token: Optional[CancellationToken] = None,
    ) -> List[DataAnomaly]:
        """Flag bimodal and strongly skewed value distributions per address."""
        if not submissions:
            return []
        grouped = values_by_address(submissions)
        time_range = span(s.period for s in submissions)
        anomalies: list[DataAnomaly] = []

        for address in sorted(grouped):
            if is_cancelled(cancel_token):
                logger.info("Distribution scan cancelled after %d findings", len(anomalies))
                break
            values = grouped[address]
            if len(values) < self.t.distribution_min_observations:
                continue

            avg = mean(values)
            counts = histogram(values, self.t.histogram_bins)
            peaks = top_two_bins(counts) if counts else None
            if peaks:
                (first_idx, first_count), (second_idx, second_count) = peaks
                if (
                    abs(first_idx - second_idx) > 1
                    and second_count >= self.t.bimodal_peak_ratio * first_count
                ):
                    anomalies.append(DataAnomaly(
                        anomaly_type=AnomalyType.BIMODAL_DISTRIBUTION.value,
                        description=(
                            f"Cell {address} shows a bimodal distribution pattern, "
                            f"suggesting two distinct groups of values"
                        ),
                        severity=Severity.MEDIUM,
                        affected_entity=entity,
                        affected_metric=address,
                        expected_value=avg,
                        related_cell_addresses=(address,),
                        recommended_action=recommended_action(AnomalyType.BIMODAL_DISTRIBUTION.value),
                        time_range=time_range,
                    ))

            skew = skewness(values)
            if abs(skew) > self.t.skewness_limit:
                direction = "positively" if skew > 0 else "negatively"
                anomalies.append(DataAnomaly(
                    anomaly_type=AnomalyType.SKEWED_DISTRIBUTION.value,
                    description=f"Cell {address} values are strongly {direction} skewed (skewness: {skew:.2f})",
                    severity=Severity.LOW,
                    affected_entity=entity,
                    affected_metric=address,
                    expected_value=avg,
                    threshold=self.t.skewness_limit,
                    related_cell_addresses=(address,),
                    recommended_action=recommended_action(AnomalyType.SKEWED_DISTRIBUTION.value),
                    time_range=time_range,
                ))
        return anomalies

    def detect_cross_dealer_outliers(
        self,
        snapshot: DetectionSnapshot,
        cancel_token: Optional[CancellationToken] = None,
    ) -> List[DataAnomaly]:
        """Compare each dealer's value with its peers in the latest shared period.

        The period is the most recent one in which at least one address is
        reported by ``cross_dealer_min_dealers`` dealers. Each value is
        scored against the other dealers' values for the same address.
        """
        by_period: dict[tuple[int, int], list[Submission]] = defaultdict(list)
        for submission in snapshot.submissions:
            by_period[submission.period].append(submission)

        for period in sorted(by_period, reverse=True):
            per_dealer = first_per_dealer(by_period[period])
            reported: dict[str, dict[int, float]] = defaultdict(dict)
            for dealer_id, submission in per_dealer.items():
                for address, value in submission.numeric_values().items():
                    reported[address][dealer_id] = value
            shared = {
                address: values
                for address, values in reported.items()
                if len(values) >= self.t.cross_dealer_min_dealers
            }
            if shared:
                return self._score_cross_dealer(snapshot, period, shared, cancel_token)
        return []

    def _score_cross_dealer(
        self,
        snapshot: DetectionSnapshot,
        period: tuple[int, int],
        shared: dict[str, dict[int, float]],
        cancel_token: Optional[CancellationToken],
    ) -> list[DataAnomaly]:
        anomalies: list[DataAnomaly] = []
        time_range = span([period])
        for address in sorted(shared):
            if is_cancelled(cancel_token):
                logger.info("Cross-dealer scan cancelled after %d findings", len(anomalies))
                break
            values = shared[address]
            for dealer_id in sorted(values):
                value = values[dealer_id]
                peers = [v for other, v in values.items() if other != dealer_id]
                peer_mean = mean(peers)
                peer_std = population_std(peers)
                z = z_score(value, peer_mean, peer_std)
                if z is None or z <= self.t.outlier_z_score:
                    continue
                deviation = percent_change(value, peer_mean)
                direction = "above" if value > peer_mean else "below"
                gap = f"{abs(deviation):.1f}% {direction}" if deviation is not None else direction
                dealer_name = snapshot.dealer_name(dealer_id)
                anomalies.append(DataAnomaly(
                    anomaly_type=AnomalyType.CROSS_DEALER_OUTLIER.value,
                    description=(
                        f"Dealer '{dealer_name}' reported {value:,.2f} for {address}, "
                        f"{gap} the peer average of {peer_mean:,.2f} (z = {z:.2f})"
                    ),
                    severity=severity_from_z(z, self.t.outlier_z_medium, self.t.outlier_z_high),
                    anomaly_score=min(100.0, z * self.t.anomaly_score_per_z),
                    affected_entity=dealer_name,
                    affected_metric=address,
                    actual_value=value,
                    expected_value=peer_mean,
                    threshold=peer_mean + self.t.outlier_z_score * peer_std,
                    related_cell_addresses=(address,),
                    business_impact=value_impact(value, peer_mean),
                    recommended_action=recommended_action(AnomalyType.CROSS_DEALER_OUTLIER.value),
                    time_range=time_range,
                ))
        return anomalies

    def detect_temporal_trends(
        self,
        submissions: List[Submission],
        entity: str = "All dealers",
        cancel_token: Optional[CancellationToken] = None,
    ) -> List[DataAnomaly]:
        """Flag addresses whose monthly totals move strictly one way."""
        months = sorted({s.period for s in submissions})[-self.t.trend_months:]
        if len(months) < self.t.trend_months:
            return []

        totals: dict[str, dict[tuple[int, int], float]] = defaultdict(lambda: defaultdict(float))
        for submission in submissions:
            if submission.period not in months:
                continue
            for address, value in submission.numeric_values().items():
                totals[address][submission.period] += value

        time_range = span(months)
        anomalies: list[DataAnomaly] = []
        for address in sorted(totals):
            if is_cancelled(cancel_token):
                logger.info("Trend scan cancelled after %d findings", len(anomalies))
                break
            per_month = totals[address]
            if len(per_month) < len(months):
                continue
            series = [per_month[m] for m in months]
            if strictly_increasing(series):
                kind, word = AnomalyType.INCREASING_TREND, "increase"
            elif strictly_decreasing(series):
                kind, word = AnomalyType.DECREASING_TREND, "decrease"
            else:
                continue
            change = percent_change(series[-1], series[0])
            if change is None:
                continue
            anomalies.append(DataAnomaly(
                anomaly_type=kind.value,
                description=(
                    f"Cell {address} shows a consistent {word} over the last "
                    f"{len(months)} months, with {abs(change):.1f}% total {word}"
                ),
                severity=high_if_above(abs(change), self.t.trend_high_percent),
                anomaly_score=min(100.0, abs(change)),
                affected_entity=entity,
                affected_metric=address,
                actual_value=series[-1],
                expected_value=series[0],
                related_cell_addresses=(address,),
                recommended_action=recommended_action(kind.value),
                time_range=time_range,
            ))
        return anomalies

    # ══════════════════════════════════════════════════════════════════
    # SINGLE SUBMISSION
    # ══════════════════════════════════════════════════════════════════

    def detect_submission_anomalies(
        self,
        submission: Submission,
        template: Optional[TemplateStructure],
        previous: Optional[Submission],
        dealer_name: str,
    ) -> List[DataAnomaly]:
        anomalies: list[DataAnomaly] = []
        if template is not None:
            anomalies.extend(self._detect_missing_cells(submission, template, dealer_name))
            anomalies.extend(self._detect_table_outliers(submission, template, dealer_name))
        if previous is not None:
            anomalies.extend(self._detect_year_over_year(submission, previous, dealer_name))
        return anomalies

    def _detect_missing_cells(
        self, submission: Submission, template: TemplateStructure, dealer_name: str
    ) -> list[DataAnomaly]:
        """One finding per table with expected cells left blank."""
        cells = submission.cell_by_address()
        time_range = span([submission.period])
        anomalies: list[DataAnomaly] = []
        for sheet, table in template.tables():
            missing = [
                tc.global_address
                for tc in table.cells
                if tc.expects_value
                and (tc.global_address not in cells or cells[tc.global_address].is_blank)
            ]
            if not missing:
                continue
            anomalies.append(DataAnomaly(
                anomaly_type=AnomalyType.MISSING_DATA.value,
                description=f"Found {len(missing)} empty cells in table '{table.name}' on sheet '{sheet.name}'",
                severity=high_if_above(len(missing), self.t.missing_cells_high),
                affected_entity=dealer_name,
                affected_metric=f"{sheet.name}/{table.name}",
                actual_value=float(len(missing)),
                threshold=float(self.t.missing_cells_high),
                related_cell_addresses=tuple(missing),
                business_impact=count_impact(len(missing), "missing cells"),
                recommended_action=recommended_action(AnomalyType.MISSING_DATA.value),
                time_range=time_range,
            ))
        return anomalies

    def _detect_table_outliers(
        self, submission: Submission, template: TemplateStructure, dealer_name: str
    ) -> list[DataAnomaly]:
        """Flag values far from the rest of their table."""
        numeric = submission.numeric_values()
        time_range = span([submission.period])
        anomalies: list[DataAnomaly] = []
        for sheet, table in template.tables():
            values = {
                tc.global_address: numeric[tc.global_address]
                for tc in table.cells
                if tc.global_address in numeric
            }
            if len(values) <= self.t.table_min_numeric_cells:
                continue
            avg = mean(list(values.values()))
            std = population_std(list(values.values()))
            if std == 0:
                continue
            outliers = [
                address
                for address, value in values.items()
                if z_score(value, avg, std) > self.t.table_outlier_z_score
            ]
            if not outliers:
                continue
            anomalies.append(DataAnomaly(
                anomaly_type=AnomalyType.STATISTICAL_OUTLIER.value,
                description=f"Found {len(outliers)} outlier values in table '{table.name}' on sheet '{sheet.name}'",
                severity=high_if_above(len(outliers), self.t.table_outliers_high),
                affected_entity=dealer_name,
                affected_metric=f"{sheet.name}/{table.name}",
                expected_value=avg,
                threshold=avg + self.t.table_outlier_z_score * std,
                related_cell_addresses=tuple(outliers),
                recommended_action=recommended_action(AnomalyType.STATISTICAL_OUTLIER.value),
                time_range=time_range,
            ))
        return anomalies

    def _detect_year_over_year(
        self, submission: Submission, previous: Submission, dealer_name: str
    ) -> list[DataAnomaly]:
        current = submission.numeric_values()
        prior = previous.numeric_values()
        time_range = span([previous.period, submission.period])
        anomalies: list[DataAnomaly] = []

        for address in sorted(current):
            if address not in prior:
                continue
            change = percent_change(current[address], prior[address])
            if change is None or abs(change) <= self.t.yoy_variance_percent:
                continue
            direction = "increase" if change > 0 else "decrease"
            anomalies.append(DataAnomaly(
                anomaly_type=AnomalyType.YEAR_OVER_YEAR_VARIANCE.value,
                description=(
                    f"Cell {address} shows {abs(change):.1f}% {direction} compared to "
                    f"{month_name(submission.month)} last year"
                ),
                severity=high_if_above(abs(change), self.t.yoy_variance_high_percent),
                anomaly_score=min(100.0, abs(change)),
                affected_entity=dealer_name,
                affected_metric=address,
                actual_value=current[address],
                expected_value=prior[address],
                threshold=self.t.yoy_variance_percent,
                related_cell_addresses=(address,),
                business_impact=value_impact(current[address], prior[address]),
                recommended_action=recommended_action(AnomalyType.YEAR_OVER_YEAR_VARIANCE.value),
                time_range=time_range,
            ))

        dropped = sorted(set(prior) - set(current))
        if dropped:
            anomalies.append(DataAnomaly(
                anomaly_type=AnomalyType.MISSING_HISTORICAL_DATA.value,
                description=(
                    f"Found {len(dropped)} cells that were reported last year "
                    f"but missing in current submission"
                ),
                severity=high_if_above(len(dropped), self.t.missing_history_high),
                affected_entity=dealer_name,
                actual_value=float(len(dropped)),
                related_cell_addresses=tuple(dropped),
                business_impact=count_impact(len(dropped), "previously reported cells"),
                recommended_action=recommended_action(AnomalyType.MISSING_HISTORICAL_DATA.value),
                time_range=time_range,
            ))
        return anomalies

    # ══════════════════════════════════════════════════════════════════
    # DEALER SCOPE
    # ══════════════════════════════════════════════════════════════════

    def detect_quarterly_pattern(
        self, dealer: Dealer, submissions: List[Submission]
    ) -> List[DataAnomaly]:
        """Flag addresses inflated at quarter-end months."""
        if len(submissions) < self.t.quarterly_min_submissions:
            return []

        quarter: dict[str, list[float]] = defaultdict(list)
        other: dict[str, list[float]] = defaultdict(list)
        frequency: dict[str, int] = defaultdict(int)
        for submission in submissions:
            target = quarter if submission.month in QUARTER_END_MONTHS else other
            for address, value in submission.numeric_values().items():
                target[address].append(value)
                frequency[address] += 1

        time_range = span(s.period for s in submissions)
        anomalies: list[DataAnomaly] = []
        for address in sorted(frequency):
            if frequency[address] < len(submissions) / 2:
                continue
            q_values, o_values = quarter[address], other[address]
            if len(q_values) < self.t.quarterly_min_samples or len(o_values) < self.t.quarterly_min_samples:
                continue
            q_avg, o_avg = mean(q_values), mean(o_values)
            if o_avg <= 0 or q_avg <= o_avg * self.t.quarterly_uplift_ratio:
                continue
            uplift = percent_change(q_avg, o_avg)
            anomalies.append(DataAnomaly(
                anomaly_type=AnomalyType.QUARTERLY_PATTERN.value,
                description=(
                    f"Dealer '{dealer.name}' shows {uplift:.1f}% higher values for "
                    f"{address} at quarter-end months"
                ),
                severity=high_if_above(uplift, self.t.quarterly_high_uplift_percent),
                anomaly_score=min(100.0, uplift),
                affected_entity=dealer.name,
                affected_metric=address,
                actual_value=q_avg,
                expected_value=o_avg,
                threshold=o_avg * self.t.quarterly_uplift_ratio,
                related_cell_addresses=(address,),
                business_impact=value_impact(q_avg, o_avg),
                recommended_action=recommended_action(AnomalyType.QUARTERLY_PATTERN.value),
                time_range=time_range,
            ))
        return anomalies

    def detect_industry_deviation(
        self,
        dealer: Dealer,
        submission: Submission,
        peer_submissions: List[Submission],
    ) -> List[DataAnomaly]:
        """Compare a submission with other dealers' values for the same month."""
        peers = first_per_dealer(
            s for s in peer_submissions
            if s.dealer_id != dealer.id and s.period == submission.period
        )
        peer_values = values_by_address(peers.values())
        time_range = span([submission.period])
        anomalies: list[DataAnomaly] = []

        for address, value in sorted(submission.numeric_values().items()):
            others = peer_values.get(address, [])
            if len(others) < self.t.industry_min_peers:
                continue
            industry_avg = mean(others)
            deviation = percent_change(value, industry_avg)
            if deviation is None or abs(deviation) <= self.t.industry_deviation_percent:
                continue
            direction = "above" if deviation > 0 else "below"
            anomalies.append(DataAnomaly(
                anomaly_type=AnomalyType.INDUSTRY_DEVIATION.value,
                description=(
                    f"Dealer '{dealer.name}' is {abs(deviation):.1f}% {direction} industry "
                    f"average for {address} in {period_label(*submission.period)}"
                ),
                severity=high_if_above(abs(deviation), self.t.industry_high_deviation_percent),
                anomaly_score=min(100.0, abs(deviation)),
                affected_entity=dealer.name,
                affected_metric=address,
                actual_value=value,
                expected_value=industry_avg,
                threshold=self.t.industry_deviation_percent,
                related_cell_addresses=(address,),
                business_impact=value_impact(value, industry_avg),
                recommended_action=recommended_action(AnomalyType.INDUSTRY_DEVIATION.value),
                time_range=time_range,
            ))
        return anomalies
