"""
pipeline.py - Ordered rule filter pipeline

Runs the configured global transformations over the merged rule list of all
sources, in one pass, in canonical order:

    1. RemoveComments   drop # ! [ lines               (cleaner.strip_comments)
    2. Compress         hosts/plain -> ||domain^       (pruning.compress)
    3. Deduplicate      first occurrence wins          (pruning.deduplicate)
    4. Validate         dot, no whitespace, len > 3    (cleaner.validate_rules)

Stages may shrink the list or rewrite lines, but never reorder survivors, so
the output is deterministic for a given input order. Running the pipeline on
its own output returns that output unchanged.

Sanity guards:
    - empty after RemoveComments          -> NoRulesAfterCommentStrip
    - empty after the last stage          -> NoRulesAfterValidation
    - fewer than ``min_rules`` at the end -> SuspiciouslyFewRules
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Iterable, NamedTuple

from blocklist.cleaner import strip_comments, validate_rules
from blocklist.config import DEFAULT_MIN_RULES, DEFAULT_TRANSFORMATIONS, Transformation
from blocklist.errors import (
    NoRulesAfterCommentStrip,
    NoRulesAfterValidation,
    SuspiciouslyFewRules,
)
from blocklist.log import get_logger
from blocklist.pruning import compress, deduplicate

logger = get_logger(__name__)

Stage = Callable[[list[str]], list[str]]

STAGES: dict[Transformation, Stage] = {
    Transformation.REMOVE_COMMENTS: strip_comments,
    Transformation.COMPRESS: compress,
    Transformation.DEDUPLICATE: deduplicate,
    Transformation.VALIDATE: validate_rules,
}


class StageStats(NamedTuple):
    """Line counts around one stage."""
    transformation: Transformation
    before: int
    after: int

    @property
    def removed(self) -> int:
        return self.before - self.after


@dataclass
class RuleFilterPipeline:
    """
    Apply global transformations to an ordered rule list.

    Attributes:
        transformations: Stages to run; executed in canonical order
        min_rules: Smallest acceptable final rule count
        stats: Per-stage counts from the most recent run()
    """
    transformations: Iterable[Transformation] = DEFAULT_TRANSFORMATIONS
    min_rules: int = DEFAULT_MIN_RULES
    stats: list[StageStats] = field(default_factory=list, init=False)

    def __post_init__(self) -> None:
        requested = set(self.transformations)
        self.transformations = tuple(t for t in Transformation if t in requested)

    def run(self, lines: list[str]) -> list[str]:
        """
        Filter lines through every configured stage.

        Raises:
            NoRulesAfterCommentStrip: Nothing left once comments are removed
            NoRulesAfterValidation: Nothing left after the last stage
            SuspiciouslyFewRules: Fewer than min_rules left
        """
        self.stats = []
        rules = lines

        for transformation in self.transformations:
            before = len(rules)
            rules = STAGES[transformation](rules)
            self.stats.append(StageStats(transformation, before, len(rules)))
            logger.info(
                "%s: removed %d of %d lines", transformation.value, before - len(rules), before
            )
            if transformation is Transformation.REMOVE_COMMENTS and not rules:
                raise NoRulesAfterCommentStrip()

        if not rules:
            raise NoRulesAfterValidation()
        if len(rules) < self.min_rules:
            raise SuspiciouslyFewRules(len(rules), self.min_rules)

        return rules
