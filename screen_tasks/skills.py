"""Skill library: learned (failure -> correction) patterns.

Skills are scoped to ``(tenant_id, domain)`` and keyed by the failure
signature ``(goal_normalized, failed_action)``. A successful correction
reinforces the skill, a repeat failure of the same correction weakens
it, and skills unused for the TTL are purged.
"""

import logging
from collections import Counter
from datetime import datetime, timedelta
from typing import Any, Callable

from screen_tasks.config import EngineConfig
from screen_tasks.errors import ValidationError
from screen_tasks.interfaces.storage import SkillRepository
from screen_tasks.models.skill import (
    FailedState,
    Skill,
    SkillHint,
    SuccessfulAction,
    normalize_goal,
)

logger = logging.getLogger(__name__)


class SkillLibrary:
    """Lookup, reinforcement and maintenance of skills.

    Args:
        repository: Skill persistence.
        config: Policy values (TTL, cap, lookup defaults).
        clock: Returns the current time; injectable for tests.
    """

    def __init__(
        self,
        repository: SkillRepository,
        config: EngineConfig | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.repository = repository
        self.config = config or EngineConfig()
        self.clock = clock

    async def lookup(
        self,
        tenant_id: str,
        domain: str,
        goal: str,
        min_success_rate: float | None = None,
        limit: int | None = None,
    ) -> list[SkillHint]:
        """Find skill hints for a goal on a domain.

        Exact normalized-goal matches are used when any exist; otherwise
        every skill of the tenant/domain is considered. Results are
        ordered by success rate (then recency) and filtered by
        ``min_success_rate``.

        Args:
            tenant_id: Tenant to search; other tenants are never visible.
            domain: Site hostname.
            goal: Human-level goal (normalized here).
            min_success_rate: Minimum rate; defaults to the configured value.
            limit: Maximum hints; defaults to the configured value.

        Returns:
            At most ``limit`` hints.
        """
        _require(tenant_id=tenant_id, domain=domain)
        if min_success_rate is None:
            min_success_rate = self.config.min_skill_success_rate
        if limit is None:
            limit = self.config.skill_lookup_limit
        if limit <= 0:
            return []

        goal_normalized = normalize_goal(goal or "")
        candidates = await self.repository.find_by_goal(tenant_id, domain, goal_normalized)
        if not candidates:
            candidates = await self.repository.list_for_domain(tenant_id, domain)

        eligible = [s for s in candidates if s.success_rate >= min_success_rate]
        eligible.sort(key=lambda s: (s.success_rate, s.last_used), reverse=True)
        return [s.to_hint() for s in eligible[:limit]]

    async def record(
        self,
        tenant_id: str,
        domain: str,
        goal: str,
        failed_state: FailedState,
        successful_action: SuccessfulAction,
    ) -> Skill:
        """Record a successful correction.

        Increments ``success_count`` when the failure signature is known,
        creates a fresh skill otherwise. When the tenant is at its cap,
        the weakest least recently used skill is evicted first.
        """
        _require(tenant_id=tenant_id, domain=domain, failed_action=failed_state.action)
        goal_normalized = normalize_goal(goal or "")

        existing = await self.repository.find_by_key(
            tenant_id, domain, goal_normalized, failed_state.action
        )
        if existing is None:
            await self._enforce_cap(tenant_id)

        skill = await self.repository.upsert_success(
            tenant_id=tenant_id,
            domain=domain,
            goal=goal,
            goal_normalized=goal_normalized,
            failed_state=failed_state,
            successful_action=successful_action,
            now=self.clock(),
        )
        logger.info(
            "Skill %s on %s: %s -> %s (%d/%d)",
            "reinforced" if existing else "recorded",
            skill.domain,
            failed_state.action,
            successful_action.action,
            skill.success_count,
            skill.success_count + skill.failure_count,
        )
        return skill

    async def penalize(
        self,
        tenant_id: str,
        domain: str,
        goal: str,
        failed_action: str,
    ) -> Skill | None:
        """Record that a known correction was tried again and failed.

        Returns:
            The updated skill, or None if no such skill exists.
        """
        _require(tenant_id=tenant_id, domain=domain, failed_action=failed_action)
        skill = await self.repository.increment_failure(
            tenant_id, domain, normalize_goal(goal or ""), failed_action, self.clock()
        )
        if skill is not None:
            logger.info(
                "Skill penalized on %s: %s (rate %.2f)",
                skill.domain, failed_action, skill.success_rate,
            )
        return skill

    async def purge_expired(self, tenant_id: str | None = None) -> int:
        """Delete skills with no successful use within the TTL."""
        cutoff = self.clock() - timedelta(days=self.config.skill_ttl_days)
        deleted = await self.repository.delete_expired(cutoff, tenant_id=tenant_id)
        if deleted:
            logger.info("Purged %d expired skills", deleted)
        return deleted

    async def cleanup_low_performing(
        self,
        tenant_id: str,
        min_rate: float = 0.3,
        min_attempts: int = 3,
    ) -> int:
        """Delete skills that had a fair chance and still perform poorly."""
        _require(tenant_id=tenant_id)
        deleted = await self.repository.delete_low_performing(tenant_id, min_rate, min_attempts)
        logger.info("Cleaned up %d low-performing skills for tenant %s", deleted, tenant_id)
        return deleted

    async def stats(self, tenant_id: str) -> dict[str, Any]:
        """Total skills, average success rate and the top five domains."""
        _require(tenant_id=tenant_id)
        skills = await self.repository.list_for_tenant(tenant_id)
        domains = Counter(s.domain for s in skills)
        return {
            "total_skills": len(skills),
            "avg_success_rate": (
                sum(s.success_rate for s in skills) / len(skills) if skills else 0.0
            ),
            "top_domains": [
                {"domain": domain, "count": count}
                for domain, count in domains.most_common(5)
            ],
        }

    async def _enforce_cap(self, tenant_id: str) -> None:
        while await self.repository.count(tenant_id) >= self.config.max_skills_per_tenant:
            evicted = await self.repository.evict_one(tenant_id)
            if evicted is None:
                break
            logger.info(
                "Evicted skill %s (rate %.2f) for tenant %s at cap",
                evicted.skill_id, evicted.success_rate, tenant_id,
            )


def format_skill_hints(hints: list[SkillHint]) -> str:
    """Render hints as the LEARNED PATTERNS block of a correction prompt.

    Returns an empty string when there are no hints.
    """
    if not hints:
        return ""

    lines = [
        "LEARNED PATTERNS (from previous successful corrections):",
        "These patterns worked in the past for similar goals:",
        "",
    ]
    for i, hint in enumerate(hints, 1):
        lines.extend([
            f'{i}. For goal "{hint.goal}":',
            f'   - AVOID: {hint.failed_action} on "{hint.failed_element}" (failed before)',
            f'   - USE: {hint.successful_action} on "{hint.successful_element}" (strategy: {hint.strategy})',
            f"   - Success rate: {hint.success_rate * 100:.0f}%",
            "",
        ])
    lines.append(
        "Consider these patterns when choosing your action. "
        "Prefer successful alternatives over known failures."
    )
    return "\n".join(lines)


def _require(**values: str) -> None:
    for name, value in values.items():
        if not value or not str(value).strip():
            raise ValidationError(f"{name} is required")
