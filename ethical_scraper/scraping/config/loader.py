"""
JSON site configuration loader with validation and an in-memory cache.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from ethical_scraper.scraping.config.models import (
    ActionKind,
    Extractor,
    Instruction,
    SiteConfig,
    SiteOptions,
    TEXT_CONTENT,
    Transform,
    Viewport,
    WaitCondition,
)
from ethical_scraper.scraping.errors import SiteConfigError
from ethical_scraper.scraping.logging_utils import log_event

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("domain", "enabled", "name", "instructions", "extractors", "options")


class SiteConfigLoader:
    """
    Loads `<config_dir>/<name>.json` documents and caches parsed configurations.
    """

    def __init__(self, *, config_dir: str | Path) -> None:
        self._config_dir = Path(config_dir)
        self._cache: dict[str, SiteConfig] = {}

    @property
    def config_dir(self) -> Path:
        return self._config_dir

    def load_config(self, config_name: str) -> SiteConfig | None:
        """
        Return the named configuration, or None when no file exists.

        Raises SiteConfigError when the file exists but is malformed.
        """

        cached = self._cache.get(config_name)
        if cached is not None:
            return cached

        path = self._config_dir / f"{config_name}.json"
        if not path.exists():
            log_event(
                logger,
                logging.WARNING,
                "site_config_not_found",
                config_name=config_name,
                path=path,
            )
            return None

        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise SiteConfigError(f"Config '{config_name}' is not valid JSON: {exc}") from exc

        config = parse_site_config(raw, source=config_name)
        self._cache[config_name] = config
        log_event(
            logger,
            logging.INFO,
            "site_config_loaded",
            config_name=config_name,
            instructions=len(config.instructions),
            extractors=len(config.extractors),
            version=config.version,
        )
        return config

    def reload_config(self, config_name: str) -> SiteConfig | None:
        self._cache.pop(config_name, None)
        return self.load_config(config_name)

    def load_all(self) -> dict[str, SiteConfig]:
        """
        Load every valid configuration in the directory, skipping broken files.
        """

        loaded: dict[str, SiteConfig] = {}
        for config_name in self.available_configs():
            try:
                config = self.load_config(config_name)
            except SiteConfigError as exc:
                log_event(
                    logger,
                    logging.ERROR,
                    "site_config_invalid",
                    config_name=config_name,
                    error=str(exc),
                )
                continue
            if config is not None:
                loaded[config_name] = config
        return loaded

    def available_configs(self) -> list[str]:
        if not self._config_dir.is_dir():
            return []
        return sorted(path.stem for path in self._config_dir.glob("*.json"))

    def clear_cache(self) -> int:
        cleared = len(self._cache)
        self._cache.clear()
        log_event(logger, logging.INFO, "site_config_cache_cleared", cleared=cleared)
        return cleared

    def cache_stats(self) -> dict[str, Any]:
        return {"size": len(self._cache), "configs": sorted(self._cache)}


def parse_site_config(raw: object, *, source: str = "<inline>") -> SiteConfig:
    """
    Validate and convert one raw JSON document into a SiteConfig.
    """

    if not isinstance(raw, dict):
        raise SiteConfigError(f"Config '{source}' must be a JSON object.")

    missing = [name for name in REQUIRED_FIELDS if name not in raw]
    if missing:
        raise SiteConfigError(f"Config '{source}' missing required field(s): {', '.join(missing)}.")

    name = _required_str(raw, "name", source=source)
    domain = _required_str(raw, "domain", source=source)

    raw_instructions = raw["instructions"]
    if not isinstance(raw_instructions, list):
        raise SiteConfigError(f"Config '{source}': instructions must be a list.")
    raw_extractors = raw["extractors"]
    if not isinstance(raw_extractors, list):
        raise SiteConfigError(f"Config '{source}': extractors must be a list.")

    instructions = tuple(
        parse_instruction(entry, index=index) for index, entry in enumerate(raw_instructions, start=1)
    )
    extractors = tuple(parse_extractor(entry) for entry in raw_extractors)

    return SiteConfig(
        name=name,
        domain=domain.lower(),
        enabled=_optional_bool(raw.get("enabled"), False),
        instructions=instructions,
        extractors=extractors,
        options=parse_options(raw.get("options")),
        description=_optional_str(raw.get("description")),
        selectors=_normalize_selectors(raw.get("selectors")),
        url_patterns=tuple(_string_list(_field(raw, "url_patterns"))),
        priority=_optional_int(raw.get("priority"), 5),
        version=_optional_str(raw.get("version")) or "1.0.0",
        last_updated=_optional_str(_field(raw, "last_updated")),
    )


def parse_instruction(entry: object, *, index: int = 0) -> Instruction:
    if not isinstance(entry, dict):
        raise SiteConfigError(f"Instruction #{index} must be an object.")

    description = _optional_str(entry.get("description"))
    if not description:
        raise SiteConfigError(f"Instruction #{index} requires a non-empty description.")

    raw_action = _optional_str(entry.get("action"))
    try:
        action = ActionKind((raw_action or "").lower())
    except ValueError as exc:
        raise SiteConfigError(
            f"Instruction #{index} has unknown action {raw_action!r}."
        ) from exc

    raw_wait_for = _optional_str(_field(entry, "wait_for"))
    wait_for: WaitCondition | None = None
    if raw_wait_for:
        try:
            wait_for = WaitCondition(raw_wait_for.lower())
        except ValueError as exc:
            raise SiteConfigError(
                f"Instruction #{index} has unknown waitFor {raw_wait_for!r}."
            ) from exc

    timeout = entry.get("timeout")
    return Instruction(
        step=_optional_int(entry.get("step"), index),
        action=action,
        description=description,
        target=_optional_str(entry.get("target")),
        value=_optional_str(entry.get("value")),
        timeout=_optional_int(timeout, None) if timeout is not None else None,
        wait_for=wait_for,
        optional=_optional_bool(entry.get("optional"), False),
    )


def parse_extractor(entry: object) -> Extractor:
    if not isinstance(entry, dict):
        raise SiteConfigError("Extractor must be an object.")

    name = _optional_str(entry.get("name"))
    selector = _optional_str(entry.get("selector"))
    if not name or not selector:
        raise SiteConfigError(f"Extractor requires a name and selector: {entry!r}.")

    raw_transform = _optional_str(entry.get("transform"))
    transform: Transform | None = None
    if raw_transform:
        try:
            transform = Transform(raw_transform.lower())
        except ValueError as exc:
            raise SiteConfigError(
                f"Extractor '{name}' has unknown transform {raw_transform!r}."
            ) from exc

    return Extractor(
        name=name,
        selector=selector,
        attribute=_optional_str(entry.get("attribute")) or TEXT_CONTENT,
        multiple=_optional_bool(entry.get("multiple"), False),
        required=_optional_bool(entry.get("required"), False),
        transform=transform,
    )


def parse_options(raw: object) -> SiteOptions:
    if not isinstance(raw, dict):
        return SiteOptions()

    viewport = Viewport()
    raw_viewport = raw.get("viewport")
    if isinstance(raw_viewport, dict):
        viewport = Viewport(
            width=max(1, _optional_int(raw_viewport.get("width"), 1920)),
            height=max(1, _optional_int(raw_viewport.get("height"), 1080)),
        )

    return SiteOptions(
        headless=_optional_bool(raw.get("headless"), True),
        user_agent=_optional_str(_field(raw, "user_agent")),
        viewport=viewport,
        wait_for_network_idle=_optional_bool(_field(raw, "wait_for_network_idle"), True),
        screenshot_on_error=_optional_bool(_field(raw, "screenshot_on_error"), False),
        politeness_delay_ms=max(0, _optional_int(_field(raw, "politeness_delay"), 1000)),
        max_retries=max(0, _optional_int(_field(raw, "max_retries"), 0)),
        include_iframes=_optional_bool(_field(raw, "include_iframes"), True),
        screenshot=_optional_bool(raw.get("screenshot"), False),
        iframe_path=tuple(_string_list(_field(raw, "iframe_path"))),
    )


def _field(entry: dict, snake_name: str) -> Any:
    """
    Read a key written either in snake_case or camelCase.
    """

    if snake_name in entry:
        return entry[snake_name]
    head, *rest = snake_name.split("_")
    camel_name = head + "".join(part.capitalize() for part in rest)
    if camel_name in entry:
        return entry[camel_name]
    if snake_name == "politeness_delay":
        return _field(entry, "politeness_delay_ms")
    return None


def _required_str(entry: dict, key: str, *, source: str) -> str:
    value = _optional_str(entry.get(key))
    if not value:
        raise SiteConfigError(f"Config '{source}': '{key}' must be a non-empty string.")
    return value


def _normalize_selectors(selectors: object) -> dict[str, str]:
    if not isinstance(selectors, dict):
        return {}

    normalized: dict[str, str] = {}
    for key, value in selectors.items():
        if not isinstance(key, str) or not isinstance(value, str):
            continue
        if key.strip() and value.strip():
            normalized[key.strip()] = value.strip()
    return normalized


def _string_list(value: object) -> list[str]:
    if isinstance(value, str):
        return [value.strip()] if value.strip() else []
    if not isinstance(value, list):
        return []
    return [item.strip() for item in value if isinstance(item, str) and item.strip()]


def _optional_str(value: object) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        return None
    stripped = value.strip()
    return stripped or None


def _optional_int(value: object, default: int | None) -> int | None:
    if value is None or isinstance(value, bool):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _optional_bool(value: object, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in {"1", "true", "yes", "on"}:
            return True
        if normalized in {"0", "false", "no", "off"}:
            return False
    return default
