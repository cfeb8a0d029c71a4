"""Loading of user stories from files."""

import asyncio
from pathlib import Path

import yaml

from story_automation.models.story import UserStory

YAML_SUFFIXES = frozenset({".yaml", ".yml"})


async def load_user_story(path: Path) -> UserStory:
    """Load a user story from a YAML document or a plain text file.

    YAML documents are mappings with at least a ``story`` key; any other file
    is read as the story text itself.

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If a YAML document is not a mapping or misses fields

    """
    content = await asyncio.to_thread(path.read_text, encoding="utf-8")

    if path.suffix.lower() not in YAML_SUFFIXES:
        return UserStory(story=content.strip())

    data = yaml.safe_load(content)
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a mapping with a 'story' key")
    return UserStory.model_validate(data)
