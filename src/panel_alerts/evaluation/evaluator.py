"""Rule evaluation pass.

For every enabled rule: fetch the metric, compare it with the threshold,
pass the cooldown gate, raise an alert and dispatch it. Rules are
isolated from each other: an unavailable metric or an unexpected error
is recorded for that rule and the pass continues.
"""

from __future__ import annotations

import logging
import operator
import threading
from collections.abc import Callable

from panel_alerts.clock import Clock, utc_now
from panel_alerts.errors import DependencyUnavailable
from panel_alerts.incidents.lifecycle import IncidentLifecycle
from panel_alerts.metrics.source import MetricFetcher, MetricSource
from panel_alerts.models import (
    AlertRule,
    ComparisonOperator,
    EvaluationReport,
    RuleEvaluation,
    RuleOutcome,
)
from panel_alerts.notify.dispatcher import NotificationDispatcher
from panel_alerts.rules.store import RuleStore

logger = logging.getLogger(__name__)

# Absolute tolerance for eq/ne comparisons.
EQ_TOLERANCE = 0.001

OPERATORS: dict[ComparisonOperator, Callable[[float, float], bool]] = {
    ComparisonOperator.GT: operator.gt,
    ComparisonOperator.GTE: operator.ge,
    ComparisonOperator.LT: operator.lt,
    ComparisonOperator.LTE: operator.le,
    ComparisonOperator.EQ: lambda v, t: abs(v - t) < EQ_TOLERANCE,
    ComparisonOperator.NE: lambda v, t: abs(v - t) >= EQ_TOLERANCE,
}


def threshold_crossed(op: ComparisonOperator, value: float, threshold: float) -> bool:
    return OPERATORS[op](value, threshold)


class Evaluator:
    """Runs evaluation passes over all enabled rules.

    The background scheduler and on-demand callers share ``evaluate_all``.
    Concurrent passes are safe: the cooldown gate in the rule store is a
    single conditional update, so a rule triggers at most once per window.
    """

    def __init__(
        self,
        rules: RuleStore,
        lifecycle: IncidentLifecycle,
        dispatcher: NotificationDispatcher,
        metric_source: MetricSource,
        clock: Clock | None = None,
        metric_timeout: float = 5.0,
    ) -> None:
        self._rules = rules
        self._lifecycle = lifecycle
        self._dispatcher = dispatcher
        self._fetcher = MetricFetcher(metric_source, timeout=metric_timeout)
        self._clock = clock or utc_now

    def evaluate_all(self, cancel: threading.Event | None = None) -> EvaluationReport:
        report = EvaluationReport(started_at=self._clock())
        rules = self._rules.list_enabled_rules()
        logger.debug("Evaluating %d alert rules", len(rules))

        for rule in rules:
            if cancel is not None and cancel.is_set():
                logger.info("Evaluation pass cancelled after %d rules", len(report.results))
                report.cancelled = True
                break
            try:
                result = self.evaluate_rule(rule)
            except Exception as exc:
                logger.exception("Error evaluating alert rule %s", rule.rule_id)
                result = RuleEvaluation(
                    rule_id=rule.rule_id,
                    outcome=RuleOutcome.ERROR,
                    error=str(exc) or type(exc).__name__,
                )
            report.results.append(result)

        report.finished_at = self._clock()
        triggered = len(report.triggered)
        if triggered:
            logger.info("Evaluation pass raised %d alert(s)", triggered)
        return report

    def current_value(self, rule: AlertRule) -> float:
        """Fetch the rule's metric. Raises DependencyUnavailable."""
        return self._fetcher.fetch(rule.metric_name, rule.server_id)

    def close(self) -> None:
        self._fetcher.close()

    def evaluate_rule(self, rule: AlertRule) -> RuleEvaluation:
        """Evaluate a single rule. Unexpected errors propagate."""
        try:
            value = self.current_value(rule)
        except DependencyUnavailable as exc:
            logger.warning("Skipping rule %s: %s", rule.rule_id, exc)
            return RuleEvaluation(
                rule_id=rule.rule_id, outcome=RuleOutcome.UNAVAILABLE, error=str(exc),
            )

        if not threshold_crossed(rule.operator, value, rule.threshold):
            return RuleEvaluation(
                rule_id=rule.rule_id, outcome=RuleOutcome.NOT_TRIGGERED, value=value,
            )

        now = self._clock()
        if not self._rules.try_mark_triggered(rule.rule_id, now, rule.cooldown_minutes):
            logger.debug("Rule %s suppressed by cooldown", rule.rule_id)
            return RuleEvaluation(
                rule_id=rule.rule_id, outcome=RuleOutcome.SUPPRESSED, value=value,
            )

        alert = self._lifecycle.create(rule, value)
        dispatch = self._dispatcher.dispatch(alert, rule)
        self._lifecycle.record_notification(alert.alert_id, dispatch)
        return RuleEvaluation(
            rule_id=rule.rule_id,
            outcome=RuleOutcome.TRIGGERED,
            value=value,
            alert_id=alert.alert_id,
            dispatch=dispatch,
        )
