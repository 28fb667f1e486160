"""Prompt loading utility for the YAML-based prompt library.

The built-in templates live in ``ebook_ai/prompts/<version>.yaml``. Callers may
override any template with their own text; placeholders such as ``{{title}}``
are substituted on their first occurrence only.
"""

import yaml
from pathlib import Path
from typing import Dict, Any, Optional, Union
from functools import lru_cache
import logging

from ebook_ai.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

SUPPORTED_VERSIONS = ("v1", "v2")
MINDMAP_KINDS = ("chapter", "arrow", "combined")


class PromptLoader:
    """Loads and manages prompts from YAML files."""

    def __init__(self, prompts_dir: Optional[Union[str, Path]] = None, version: str = "v1"):
        """Initialize the prompt loader.

        Args:
            prompts_dir: Directory containing prompt YAML files.
                        Defaults to the ``prompts`` directory shipped with the package.
            version: Built-in template set to use ('v1' or 'v2').
        """
        if prompts_dir is None:
            prompts_dir = Path(__file__).resolve().parent.parent / "prompts"
        self.prompts_dir = Path(prompts_dir)

        if version not in SUPPORTED_VERSIONS:
            raise ConfigurationError(
                f"Unknown prompt version: {version}",
                suggestion=f"Use one of: {', '.join(SUPPORTED_VERSIONS)}"
            )
        self.version = version

        if not self.prompts_dir.exists():
            logger.warning(f"Prompts directory not found: {self.prompts_dir}")

    @lru_cache(maxsize=16)
    def _load_yaml_file(self, filename: str) -> Dict[str, Any]:
        """Load and cache a YAML file.

        Args:
            filename: Name of the YAML file (e.g., 'v1.yaml')

        Returns:
            Dictionary containing the loaded YAML content
        """
        file_path = self.prompts_dir / filename

        if not file_path.exists():
            logger.error(f"Prompt file not found: {file_path}")
            return {}

        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                return yaml.safe_load(f) or {}
        except Exception as e:
            logger.error(f"Error loading prompt file {file_path}: {e}")
            return {}

    def _templates(self) -> Dict[str, Any]:
        return self._load_yaml_file(f"{self.version}.yaml")

    def _template(self, *path: str) -> str:
        node: Any = self._templates()
        for key in path:
            node = node.get(key, {}) if isinstance(node, dict) else {}
        if not isinstance(node, str) or not node:
            raise ConfigurationError(
                f"Prompt template '{'.'.join(path)}' missing from {self.version}.yaml",
                suggestion=f"Check {self.prompts_dir}"
            )
        return node

    def get_chapter_summary_prompt(self, title: str, content: str, book_type: str = "non-fiction",
                                   custom_template: Optional[str] = None) -> str:
        key = "fiction" if book_type == "fiction" else "nonFiction"
        template = custom_template or self._template("chapterSummary", key)
        return self._substitute_template(template, {"title": title, "content": content})

    def get_connection_analysis_prompt(self, chapter_summaries: str,
                                       custom_template: Optional[str] = None) -> str:
        template = custom_template or self._template("connectionAnalysis")
        return self._substitute_template(template, {"chapterSummaries": chapter_summaries})

    def get_overall_summary_prompt(self, book_title: str, chapter_info: str, connections: str,
                                   custom_template: Optional[str] = None) -> str:
        template = custom_template or self._template("overallSummary")
        return self._substitute_template(template, {
            "chapterInfo": chapter_info,
            "connections": connections,
            "bookTitle": book_title,
        })

    def get_mindmap_prompt(self, kind: str = "chapter", custom_template: Optional[str] = None) -> str:
        if kind not in MINDMAP_KINDS:
            raise ValueError(f"Unknown mind map prompt kind: {kind}")
        return custom_template or self._template("mindmap", kind)

    def get_test_connection_prompt(self) -> str:
        return self._template("system", "testConnection")

    def get_language_instruction(self, language: Optional[str]) -> str:
        """Instruction telling the model which language to answer in."""
        languages = self._load_yaml_file("languages.yaml")
        instructions = languages.get("instructions", {}) or {}
        default = languages.get("default", "en")
        code = (language or default).lower()
        if code not in instructions:
            logger.warning(f"Unsupported output language '{language}', falling back to '{default}'")
            code = default
        return instructions.get(code, "")

    def _substitute_template(self, template: str, variables: Dict[str, Any]) -> str:
        """Replace the first ``{{name}}`` occurrence of each variable."""
        result = template
        for name, value in variables.items():
            result = result.replace("{{" + name + "}}", str(value), 1)
        return result


# Global prompt loader instance
_prompt_loader = None


def get_prompt_loader() -> PromptLoader:
    """Get the global prompt loader instance."""
    global _prompt_loader
    if _prompt_loader is None:
        _prompt_loader = PromptLoader()
    return _prompt_loader


def reload_prompts():
    """Reload all prompts (useful while editing the YAML files)."""
    global _prompt_loader
    if _prompt_loader:
        _prompt_loader._load_yaml_file.cache_clear()
