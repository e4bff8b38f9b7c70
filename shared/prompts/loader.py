"""Prompt template loading and management."""
from pathlib import Path
from typing import Dict, Any


class PromptLoader:
    """Load and format `.txt` prompt templates from a feature's template directory.

    Templates use str.format placeholders. Loaded files are cached per directory
    for the life of the process.
    """

    _cache: Dict[str, str] = {}

    def __init__(self, prompts_dir: Path):
        """
        Args:
            prompts_dir: Directory holding the feature's templates
        """
        self._prompts_dir = Path(prompts_dir)

    def load_template(self, template_name: str) -> str:
        """
        Load a prompt template by name.

        Args:
            template_name: Name of template file (without .txt extension)

        Returns:
            Template content as string

        Raises:
            FileNotFoundError: No such template in this directory
        """
        cache_key = f"{self._prompts_dir}:{template_name}"
        if cache_key not in self._cache:
            template_path = self._prompts_dir / f"{template_name}.txt"
            with open(template_path, 'r', encoding='utf-8') as f:
                self._cache[cache_key] = f.read()
        return self._cache[cache_key]

    def render(self, template_name: str, variables: Dict[str, Any]) -> str:
        """
        Load and render a prompt template with a variables dict.

        Args:
            template_name: Name of template file (without .txt extension)
            variables: Values for the template's placeholders

        Returns:
            Rendered prompt string
        """
        return self.load_template(template_name).format(**variables)

    @classmethod
    def clear_cache(cls):
        """Drop all cached templates (useful for testing)."""
        cls._cache.clear()
