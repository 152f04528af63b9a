"""Engine configuration."""

import os
from dataclasses import dataclass, fields


@dataclass
class EngineConfig:
    """Policy values for the task engine.

    Attributes:
        max_correction_attempts: Correction attempts allowed per original step.
        stale_task_minutes: Inactivity after which an active task is interrupted.
        skill_ttl_days: Days since last successful use before a skill expires.
        max_skills_per_tenant: Hard cap on stored skills per tenant.
        min_skill_success_rate: Minimum success rate for a skill hint.
        skill_lookup_limit: Maximum number of skill hints per lookup.
        dom_hash_max_bytes: Byte budget of the cleaned DOM used for hashing.
        skeleton_max_text_length: Max direct text kept per skeleton node.
        skeletonize_snapshots: Store skeleton DOMs on TaskAction records.
        blocker_confidence_threshold: Minimum confidence to pause on a blocker.
        llm_model: Model used by the default LLM proposer.
    """
    max_correction_attempts: int = 2
    stale_task_minutes: int = 30
    skill_ttl_days: int = 90
    max_skills_per_tenant: int = 10_000
    min_skill_success_rate: float = 0.5
    skill_lookup_limit: int = 5
    dom_hash_max_bytes: int = 50_000
    skeleton_max_text_length: int = 100
    skeletonize_snapshots: bool = True
    blocker_confidence_threshold: float = 0.85
    llm_model: str = "gpt-4o-mini"

    @classmethod
    def from_env(cls, prefix: str = "SCREEN_TASKS_") -> "EngineConfig":
        """Build a config from environment variables.

        Each field can be overridden by ``<prefix><FIELD_NAME>``, e.g.
        ``SCREEN_TASKS_MAX_CORRECTION_ATTEMPTS=3``.
        """
        overrides = {}
        for f in fields(cls):
            raw = os.environ.get(f"{prefix}{f.name.upper()}")
            if raw is None or raw == "":
                continue
            if f.type in (bool, "bool"):
                overrides[f.name] = raw.strip().lower() in {"1", "true", "yes", "on"}
            elif f.type in (int, "int"):
                overrides[f.name] = int(raw)
            elif f.type in (float, "float"):
                overrides[f.name] = float(raw)
            else:
                overrides[f.name] = raw
        return cls(**overrides)
