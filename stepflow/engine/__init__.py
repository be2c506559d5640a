"""Workflow Engine - Instance lifecycle, rules and access control"""
from .engine import WorkflowEngine, encode_form_values
from .access_guard import AccessGuard
from .context_builder import ContextBuilder
from .rule_evaluator import RuleEvaluator
from .expression import evaluate_expression, parse_expression

__all__ = [
    "WorkflowEngine",
    "encode_form_values",
    "AccessGuard",
    "ContextBuilder",
    "RuleEvaluator",
    "evaluate_expression",
    "parse_expression",
]
