"""
Credit Timeline - Analysis Engine

Runs the rule registry against one subject's AnalysisContext.

Evaluation is fail-soft: a rule that raises is recorded as a
RuleEvaluationError in the result and logged, and the remaining rules still
run. The engine never persists anything; the result belongs to the caller.
"""
from __future__ import annotations
import logging
from typing import List, Optional, Sequence

from ...errors import RuleEvaluationError
from ...models.timeline import AnalysisContext, AnalysisEngineResult, Insight, Severity, sort_insights
from .config import AnomalyConfig, DEFAULT_ANOMALY_CONFIG
from .registry import DEFAULT_RULES
from .rules import AnomalyRule

logger = logging.getLogger(__name__)


def count_by_severity(insights: List[Insight]) -> dict:
    counts = {severity.value: 0 for severity in Severity}
    for insight in insights:
        counts[insight.severity.value] += 1
    return counts


def run_rules(
    context: AnalysisContext,
    config: Optional[AnomalyConfig] = None,
    rules: Sequence[AnomalyRule] = DEFAULT_RULES,
    log: Optional[logging.Logger] = None,
) -> AnalysisEngineResult:
    """
    Evaluate every rule in registration order and aggregate the insights.

    Args:
        context: Immutable view of the subject's timeline
        config: Resolved anomaly config; defaults when omitted
        rules: Rules to run, in order
        log: Optional logger; defaults to this module's

    Returns:
        AnalysisEngineResult with insights sorted severity desc, then most recent first
    """
    log = log or logger
    config = config or DEFAULT_ANOMALY_CONFIG

    all_insights: List[Insight] = []
    rule_errors: List[RuleEvaluationError] = []
    evaluated: List[str] = []

    for rule in rules:
        rule_id = rule.rule_id.value
        try:
            produced = rule.evaluate(context, config.for_rule(rule_id))
        except Exception as exc:
            rule_errors.append(RuleEvaluationError(rule_id, exc))
            log.warning(f"Anomaly rule {rule_id} failed for subject {context.subject_id}: {exc}", exc_info=True)
            continue

        evaluated.append(rule_id)
        all_insights.extend(produced)
        log.debug(f"Rule {rule_id} produced {len(produced)} insight(s)")

    insights = sort_insights(all_insights)
    result = AnalysisEngineResult(
        subject_id=context.subject_id,
        insights=insights,
        counts_by_severity=count_by_severity(insights),
        rule_errors=rule_errors,
        rules_evaluated=evaluated,
    )

    log.info(
        f"Analysis complete for subject {context.subject_id}: "
        f"{len(insights)} insights, {len(rule_errors)} rule errors"
    )
    return result
