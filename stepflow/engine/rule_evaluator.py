"""Rule Evaluator - Decides whether business rules block a submission"""
from typing import Any, Dict, Iterable, NamedTuple, Optional

from ..config.settings import settings
from ..domain.enums import RuleAction
from ..domain.errors import MalformedRuleExpression, RuleEvaluationFailure
from ..domain.models import RuleDefinition
from ..utils.logger import get_logger
from .expression import evaluate_expression

logger = get_logger(__name__)


class BlockingMatch(NamedTuple):
    rule: RuleDefinition
    message: str


class RuleEvaluator:
    """
    Evaluate blocking business rules safely

    Only REQUIRE_APPROVAL and REJECT rules are considered. A rule whose
    expression cannot be parsed or evaluated is logged and treated as not
    matched; it never aborts the check. Holds no state.
    """

    def __init__(self, max_expression_length: Optional[int] = None):
        self.max_expression_length = max_expression_length or settings.rule_expression_max_length

    def evaluate_blocking_rules(
        self,
        rules: Iterable[RuleDefinition],
        context: Dict[str, Any]
    ) -> Optional[str]:
        """
        Evaluate rules in order

        Args:
            rules: Rules in their defined order
            context: Variables built from the submitted form values

        Returns:
            Message of the first matching blocking rule, or None if nothing blocks
        """
        match = self.first_blocking_match(rules, context)
        return match.message if match else None

    def first_blocking_match(
        self,
        rules: Iterable[RuleDefinition],
        context: Dict[str, Any]
    ) -> Optional[BlockingMatch]:
        """Return the first blocking rule whose condition is true"""
        if rules is None or context is None:
            return None

        for rule in rules:
            expression = rule.condition_expression
            if not expression or not expression.strip() or not rule.is_blocking:
                continue

            if self._matches(rule, expression, context):
                return BlockingMatch(rule, format_block_message(rule))

        return None

    def _matches(self, rule: RuleDefinition, expression: str, context: Dict[str, Any]) -> bool:
        try:
            return evaluate_expression(expression, context, self.max_expression_length)
        except MalformedRuleExpression as e:
            logger.error(
                f"Unparseable business rule expression '{expression}' on rule '{rule.name}': {e}",
                extra={"rule_name": rule.name}
            )
        except RuleEvaluationFailure as e:
            logger.warning(
                f"Failed to evaluate business rule '{rule.name}' with expression '{expression}': {e}",
                extra={"rule_name": rule.name}
            )
        return False


def format_block_message(rule: RuleDefinition) -> str:
    """Human-readable message for a matched blocking rule"""
    name = rule.name or "Rule"
    if rule.action_type == RuleAction.REJECT.value:
        message = f"Submission rejected by rule: {name}"
        if rule.description:
            message += f". {rule.description}"
        return message
    message = f"This submission requires approval (rule: {name})."
    if rule.description:
        message += f" {rule.description}"
    return message
