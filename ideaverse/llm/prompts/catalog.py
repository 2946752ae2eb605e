"""
Prompt template catalog.

Templates live in config/prompts/<locale>.yaml, one file per supported
locale. Each template has a display name, a description and the content
with `{placeholder}` markers.

Users may customise individual templates per locale. Customisations shadow
the shipped content until reset and, when an overrides file is configured,
are persisted to it as YAML ({locale: {template_name: content}}).
"""

import re
from pathlib import Path
from typing import Any, Dict, List, Optional

import structlog
import yaml
from pydantic import BaseModel

from ideaverse.core.config import SUPPORTED_LOCALES, settings
from ideaverse.core.exceptions import PromptTemplateNotFoundError

log = structlog.get_logger(__name__)

_PLACEHOLDER = re.compile(r"\{(\w+)\}")


class PromptTemplate(BaseModel):
    """One named template as shipped in the locale file."""

    name: str
    title: str = ""
    description: str = ""
    content: str


class PromptCatalog:
    """Resolve named templates per locale, honouring user overrides."""

    def __init__(
        self,
        prompts_dir: Optional[Path] = None,
        default_locale: Optional[str] = None,
        overrides_path: Optional[Path] = None,
    ):
        """
        Initialize the catalog.

        Args:
            prompts_dir: Directory with <locale>.yaml files
                (defaults to settings.config_dir / "prompts")
            default_locale: Fallback locale (defaults to settings.default_locale)
            overrides_path: YAML file for persisted overrides
                (defaults to settings.prompt_overrides_path; None keeps
                overrides in memory only)
        """
        self.prompts_dir = prompts_dir or settings.config_dir / "prompts"
        self.default_locale = default_locale or settings.default_locale
        self.overrides_path = (
            overrides_path if overrides_path is not None else settings.prompt_overrides_path
        )
        self._templates: Dict[str, Dict[str, PromptTemplate]] = {}
        self._overrides: Dict[str, Dict[str, str]] = self._load_overrides()

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def resolve_locale(self, locale: Optional[str]) -> str:
        """Return `locale` if supported, else the default locale."""
        if locale is None:
            return self.default_locale
        if locale not in SUPPORTED_LOCALES:
            log.warning(
                "prompt_locale_fallback", requested=locale, using=self.default_locale
            )
            return self.default_locale
        return locale

    def get_template(self, name: str, locale: Optional[str] = None) -> PromptTemplate:
        """
        Get a template with any override applied.

        Raises:
            PromptTemplateNotFoundError: If `name` is not in the locale file
        """
        locale = self.resolve_locale(locale)
        templates = self._load_locale(locale)
        if name not in templates:
            raise PromptTemplateNotFoundError(
                f"Prompt template '{name}' not found for locale '{locale}'"
            )
        template = templates[name]
        override = self._overrides.get(locale, {}).get(name)
        if override is not None:
            template = template.model_copy(update={"content": override})
        return template

    def resolve_template(
        self,
        name: str,
        variables: Optional[Dict[str, Any]] = None,
        locale: Optional[str] = None,
    ) -> str:
        """
        Render a template by literal `{key}` substitution.

        Only the supplied variables are replaced; any other braces (JSON
        examples in the prompt text) are left as they are.

        Args:
            name: Template name, e.g. "interview_system"
            variables: Placeholder values (stringified)
            locale: Requested locale; unsupported values fall back

        Returns:
            Rendered template text

        Raises:
            PromptTemplateNotFoundError: If `name` does not exist
        """
        content = self.get_template(name, locale).content
        if not variables:
            return content

        # Single pass, so substituted values are never re-expanded
        def substitute(match: "re.Match[str]") -> str:
            key = match.group(1)
            return str(variables[key]) if key in variables else match.group(0)

        return _PLACEHOLDER.sub(substitute, content)

    def list_templates(self, locale: Optional[str] = None) -> List[Dict[str, Any]]:
        """Describe every template of a locale, flagging customised ones."""
        locale = self.resolve_locale(locale)
        overrides = self._overrides.get(locale, {})
        return [
            {
                "name": name,
                "title": template.title,
                "description": template.description,
                "content": overrides.get(name, template.content),
                "customized": name in overrides,
            }
            for name, template in self._load_locale(locale).items()
        ]

    # ------------------------------------------------------------------
    # Overrides
    # ------------------------------------------------------------------

    def set_override(self, name: str, content: str, locale: Optional[str] = None) -> None:
        """Replace the content of one template for one locale."""
        locale = self.resolve_locale(locale)
        # Validates the name
        self.get_template(name, locale)
        self._overrides.setdefault(locale, {})[name] = content
        self._save_overrides()
        log.info("prompt_override_set", template=name, locale=locale)

    def reset_override(self, name: str, locale: Optional[str] = None) -> None:
        """Restore the shipped content of one template."""
        locale = self.resolve_locale(locale)
        self.get_template(name, locale)
        if self._overrides.get(locale, {}).pop(name, None) is not None:
            self._save_overrides()
            log.info("prompt_override_reset", template=name, locale=locale)

    def reset_overrides(self, locale: Optional[str] = None) -> None:
        """Restore every template of one locale."""
        locale = self.resolve_locale(locale)
        if self._overrides.pop(locale, None):
            self._save_overrides()
        log.info("prompt_overrides_reset", locale=locale)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def _load_locale(self, locale: str) -> Dict[str, PromptTemplate]:
        if locale in self._templates:
            return self._templates[locale]

        path = self.prompts_dir / f"{locale}.yaml"
        if not path.exists():
            raise FileNotFoundError(f"Prompt file not found: {path}")

        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        raw = data.get("templates") or {}
        templates = {
            name: PromptTemplate(
                name=name,
                title=entry.get("name", ""),
                description=entry.get("description", ""),
                content=entry["content"],
            )
            for name, entry in raw.items()
        }
        self._templates[locale] = templates
        log.info("prompts_loaded", locale=locale, count=len(templates))
        return templates

    def _load_overrides(self) -> Dict[str, Dict[str, str]]:
        if self.overrides_path is None or not self.overrides_path.exists():
            return {}
        with open(self.overrides_path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            log.warning("prompt_overrides_invalid", path=str(self.overrides_path))
            return {}
        return {
            str(locale): {str(k): str(v) for k, v in (entries or {}).items()}
            for locale, entries in data.items()
        }

    def _save_overrides(self) -> None:
        if self.overrides_path is None:
            return
        self.overrides_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.overrides_path, "w", encoding="utf-8") as f:
            yaml.safe_dump(self._overrides, f, allow_unicode=True, sort_keys=True)
