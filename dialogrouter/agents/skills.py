"""Registry of skills the router can hand control to."""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Iterator

from loguru import logger

from dialogrouter.core.errors import ConfigurationError


@dataclass(frozen=True)
class SkillPrompt:
    """One question a scripted skill asks, and the slot the answer fills."""

    slot: str
    text: str


@dataclass(frozen=True)
class SkillManifest:
    """
    Describes a registered skill: its id, the intents that trigger it and,
    for scripted skills, the prompts it walks through.
    """

    id: str
    name: str
    intents: tuple[str, ...] = ()
    keywords: tuple[str, ...] = ()
    prompts: tuple[SkillPrompt, ...] = ()
    closing: str | None = None

    def triggered_by(self, intent_or_name: str) -> bool:
        """
        Check whether an intent label or an app name addresses this skill.

        Args:
            intent_or_name (str): Recognized intent or APP_NAME entity value.

        Returns:
            bool: True if the skill matches.
        """
        if not intent_or_name:
            return False
        lowered = intent_or_name.strip().lower()
        return (
            intent_or_name in self.intents
            or lowered == self.id.lower()
            or lowered == self.name.lower()
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SkillManifest":
        skill_id = str(data.get("id") or "").strip()
        if not skill_id:
            raise ConfigurationError("Skill manifest is missing an id.")
        prompts = tuple(
            SkillPrompt(slot=str(p["slot"]), text=str(p["text"]))
            for p in data.get("prompts") or []
        )
        return cls(
            id=skill_id,
            name=str(data.get("name") or skill_id),
            intents=tuple(data.get("intents") or ()),
            keywords=tuple(k.lower() for k in data.get("keywords") or ()),
            prompts=prompts,
            closing=data.get("closing"),
        )


class SkillRegistry:
    """
    Ordered set of skill manifests.
    """

    def __init__(self, manifests: Iterable[SkillManifest] = ()) -> None:
        """
        Initialize the registry.

        Args:
            manifests (Iterable[SkillManifest], optional): Manifests in priority order. Defaults to ().
        """
        self._skills: dict[str, SkillManifest] = {}
        for manifest in manifests:
            self.register(manifest)

    def __iter__(self) -> Iterator[SkillManifest]:
        return iter(self._skills.values())

    def __len__(self) -> int:
        return len(self._skills)

    def register(self, manifest: SkillManifest) -> None:
        """
        Register a skill manifest. Re-registering an id replaces it in place.

        Args:
            manifest (SkillManifest): The manifest.
        """
        self._skills[manifest.id] = manifest

    def get(self, skill_id: str | None) -> SkillManifest | None:
        if not skill_id:
            return None
        return self._skills.get(skill_id)

    def is_skill(self, intent_or_name: str | None) -> SkillManifest | None:
        """
        Return the first skill triggered by an intent or app name.

        Args:
            intent_or_name (str | None): Intent label or APP_NAME value.

        Returns:
            SkillManifest | None: The matching manifest, or None.
        """
        if not intent_or_name:
            return None
        for manifest in self._skills.values():
            if manifest.triggered_by(intent_or_name):
                return manifest
        return None

    def list_skills(self) -> list[str]:
        """
        Return registered skill ids in registration order.

        Returns:
            list[str]: Skill ids.
        """
        return list(self._skills.keys())


def load_skill_registry(path: str | Path, required: bool = True) -> SkillRegistry | None:
    """
    Load skill manifests from a JSON file of the form `{"skills": [...]}`.

    Args:
        path (str | Path): The manifest file.
        required (bool, optional): Raise when the file is missing instead of returning None. Defaults to True.

    Returns:
        SkillRegistry | None: The registry, or None if the file is missing and not required.

    Raises:
        ConfigurationError: If the file is missing (and required) or malformed.
    """
    path = Path(path)
    if not path.exists():
        if required:
            logger.error("ConfigurationError: Skill manifest not found at {}", path)
            raise ConfigurationError(f"Skill manifest not found at {path}")
        logger.error("No skill manifest at {}; routing will refuse turns.", path)
        return None

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        logger.error("ConfigurationError: Invalid skill manifest {}: {}", path, e)
        raise ConfigurationError(f"Invalid skill manifest {path}: {e}") from e

    entries = data.get("skills") if isinstance(data, dict) else data
    if not isinstance(entries, list):
        raise ConfigurationError(f"Skill manifest {path} must contain a 'skills' list.")

    registry = SkillRegistry(SkillManifest.from_dict(entry) for entry in entries)
    logger.info("Loaded {} skills from {}", len(registry), path)
    return registry
