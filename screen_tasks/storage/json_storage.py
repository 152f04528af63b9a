"""JSON file-based storage for skills.

Provides persistent storage using a JSON file.
Suitable for development and small deployments.
"""

import json
import logging
from datetime import datetime
from pathlib import Path

from screen_tasks.models.skill import CorrectionStrategy, FailedState, Skill, SuccessfulAction
from screen_tasks.storage.memory_storage import InMemorySkillStorage

logger = logging.getLogger(__name__)


class JSONSkillStorage(InMemorySkillStorage):
    """JSON file storage for skills.

    The file is read once at construction and rewritten after every
    mutation. Safe for single-process use only.

    Example:
        storage = JSONSkillStorage("./skills.json")
        skill = await storage.upsert_success(...)
    """

    def __init__(self, path: str | Path = "./skills.json"):
        """Initialize storage.

        Args:
            path: Path to JSON file. Created if doesn't exist.
        """
        super().__init__()
        self.path = Path(path)
        self._ensure_file()
        for data in self._load():
            skill = self._dict_to_skill(data)
            self._skills[skill.key] = skill

    def _ensure_file(self) -> None:
        """Create file if it doesn't exist."""
        if not self.path.exists():
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text("[]")

    def _load(self) -> list[dict]:
        """Load all skills from file."""
        try:
            return json.loads(self.path.read_text())
        except (json.JSONDecodeError, FileNotFoundError) as e:
            logger.warning("Could not read skills from %s: %s", self.path, e)
            return []

    def _save_all(self, skills: list[dict]) -> None:
        """Save all skills to file."""
        self.path.write_text(json.dumps(skills, ensure_ascii=False, indent=2, default=str))

    def _changed(self) -> None:
        self._save_all([self._skill_to_dict(s) for s in self._skills.values()])

    def _skill_to_dict(self, skill: Skill) -> dict:
        """Convert Skill to JSON-serializable dict."""
        return {
            "skill_id": skill.skill_id,
            "tenant_id": skill.tenant_id,
            "domain": skill.domain,
            "goal": skill.goal,
            "goal_normalized": skill.goal_normalized,
            "failed_state": {
                "action": skill.failed_state.action,
                "element_description": skill.failed_state.element_description,
                "error_type": skill.failed_state.error_type,
                "error_message": skill.failed_state.error_message,
            },
            "successful_action": {
                "action": skill.successful_action.action,
                "element_description": skill.successful_action.element_description,
                "strategy": skill.successful_action.strategy.value,
                "reasoning": skill.successful_action.reasoning,
            },
            "success_count": skill.success_count,
            "failure_count": skill.failure_count,
            "last_used": skill.last_used.isoformat(),
            "created_at": skill.created_at.isoformat(),
            "updated_at": skill.updated_at.isoformat(),
        }

    def _dict_to_skill(self, data: dict) -> Skill:
        """Convert dict to Skill object."""
        failed = data["failed_state"]
        success = data["successful_action"]
        now = datetime.now()
        return Skill(
            skill_id=data["skill_id"],
            tenant_id=data["tenant_id"],
            domain=data["domain"],
            goal=data.get("goal", data["goal_normalized"]),
            goal_normalized=data["goal_normalized"],
            failed_state=FailedState(
                action=failed["action"],
                element_description=failed.get("element_description", ""),
                error_type=failed.get("error_type", "VERIFICATION_FAILED"),
                error_message=failed.get("error_message"),
            ),
            successful_action=SuccessfulAction(
                action=success["action"],
                element_description=success.get("element_description", ""),
                strategy=CorrectionStrategy.parse(success.get("strategy")),
                reasoning=success.get("reasoning"),
            ),
            success_count=data.get("success_count", 1),
            failure_count=data.get("failure_count", 0),
            last_used=datetime.fromisoformat(data["last_used"]) if data.get("last_used") else now,
            created_at=datetime.fromisoformat(data["created_at"]) if data.get("created_at") else now,
            updated_at=datetime.fromisoformat(data["updated_at"]) if data.get("updated_at") else now,
        )
