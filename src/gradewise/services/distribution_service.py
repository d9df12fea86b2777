import logging
from datetime import datetime, timezone
from typing import Dict, List, Mapping, Sequence

from gradewise.core.distribution import TOTAL_WEIGHT, default_distribution, validate_distribution
from gradewise.core.errors import GradewiseError, ValidationError
from gradewise.core.grade_scale import (
    RETAKE_SCALE,
    STANDARD_SCALE,
    GradeScaleRule,
    ScaleVariant,
    rules_from_dicts,
)
from gradewise.services.store import GradingStore


logger = logging.getLogger(__name__)


class MarksDistributionManager:
    def __init__(self, store: GradingStore) -> None:
        self.store = store

    def load(self, subject_id: str) -> Dict[str, float]:
        """Persisted weights for the subject, or the default split when none
        are stored.

        Storage errors propagate as ``PersistenceError``; a stored document
        whose weights do not total 100 raises ``ValidationError``.
        """
        stored = self.store.get_distribution(subject_id)
        if not stored:
            return default_distribution()

        # Older documents nest the weights under "distribution".
        source = stored.get("distribution") if isinstance(stored.get("distribution"), Mapping) else stored
        return validate_distribution(source)

    def get(self, subject_id: str) -> Dict[str, float]:
        """Like ``load`` but never fails: any problem yields the default split."""
        try:
            return self.load(subject_id)
        except GradewiseError as exc:
            logger.warning("Using default marks distribution for %s: %s", subject_id, exc)
            return default_distribution()

    def set(self, subject_id: str, distribution: Mapping) -> Dict[str, float]:
        if not subject_id:
            raise ValidationError("subjectId is required")
        weights = validate_distribution(distribution)

        self.store.set_distribution(
            subject_id,
            {
                "subjectId": subject_id,
                **weights,
                "total": TOTAL_WEIGHT,
                "updatedAt": datetime.now(timezone.utc),
            },
        )
        logger.info("Saved marks distribution for subject %s", subject_id)
        return weights


class ProgramGradingRules:
    """Per-program grading scales; programs without a document use the defaults."""

    def __init__(self, store: GradingStore) -> None:
        self.store = store

    @staticmethod
    def _defaults(program_id: str) -> Dict:
        return {
            "programId": program_id,
            "gradingScale": [rule.to_dict() for rule in STANDARD_SCALE],
            "retakeGradingScale": [rule.to_dict() for rule in RETAKE_SCALE],
            "useDefault": True,
        }

    def get(self, program_id: str) -> Dict:
        stored = self.store.get_program_rules(program_id)
        if not stored:
            return self._defaults(program_id)
        return {"programId": program_id, **stored}

    def set(self, program_id: str, grading_scale: Sequence[Dict], retake_grading_scale: Sequence[Dict]) -> Dict:
        if not program_id:
            raise ValidationError("programId is required")
        standard = rules_from_dicts(grading_scale)
        retake = rules_from_dicts(retake_grading_scale)

        data = {
            "gradingScale": [rule.to_dict() for rule in standard],
            "retakeGradingScale": [rule.to_dict() for rule in retake],
            "useDefault": False,
            "updatedAt": datetime.now(timezone.utc),
        }
        self.store.set_program_rules(program_id, data)
        return {"programId": program_id, **data}

    def scale_for(self, program_id: str, variant: ScaleVariant) -> List[GradeScaleRule]:
        rules = self.get(program_id)
        key = "retakeGradingScale" if variant == ScaleVariant.RETAKE else "gradingScale"
        return rules_from_dicts(rules.get(key) or [])
