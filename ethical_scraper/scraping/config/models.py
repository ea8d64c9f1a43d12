"""
Declarative scraping vocabulary: instructions, extractors and site configurations.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class ActionKind(str, Enum):
    """
    Closed set of automation steps an instruction can perform.
    """

    NAVIGATE = "navigate"
    CLICK = "click"
    WAIT = "wait"
    TYPE = "type"
    SCROLL = "scroll"
    EXTRACT = "extract"
    SCREENSHOT = "screenshot"


class WaitCondition(str, Enum):
    NAVIGATION = "navigation"
    SELECTOR = "selector"
    TIMEOUT = "timeout"
    NETWORK_IDLE = "networkidle"


class Transform(str, Enum):
    TRIM = "trim"
    LOWERCASE = "lowercase"
    UPPERCASE = "uppercase"
    URL = "url"
    NUMBER = "number"


TEXT_CONTENT = "textContent"


@dataclass(frozen=True)
class Instruction:
    """
    One automation step, executed strictly in step order.
    """

    step: int
    action: ActionKind
    description: str
    target: str | None = None
    value: str | None = None
    timeout: int | None = None
    wait_for: WaitCondition | None = None
    optional: bool = False


@dataclass(frozen=True)
class Extractor:
    """
    Named rule for pulling one field out of a document.
    """

    name: str
    selector: str
    attribute: str = TEXT_CONTENT
    multiple: bool = False
    required: bool = False
    transform: Transform | None = None


@dataclass(frozen=True)
class Viewport:
    width: int = 1920
    height: int = 1080


@dataclass(frozen=True)
class SiteOptions:
    """
    Browser and politeness options for one site.
    """

    headless: bool = True
    user_agent: str | None = None
    viewport: Viewport = field(default_factory=Viewport)
    wait_for_network_idle: bool = True
    screenshot_on_error: bool = False
    politeness_delay_ms: int = 1000
    max_retries: int = 0
    include_iframes: bool = True
    screenshot: bool = False
    iframe_path: tuple[str, ...] = ()


@dataclass(frozen=True)
class SiteConfig:
    """
    Full declarative definition of how to scrape one site.
    """

    name: str
    domain: str
    enabled: bool
    instructions: tuple[Instruction, ...]
    extractors: tuple[Extractor, ...]
    options: SiteOptions = field(default_factory=SiteOptions)
    description: str | None = None
    selectors: dict[str, str] = field(default_factory=dict)
    url_patterns: tuple[str, ...] = ()
    priority: int = 5
    version: str = "1.0.0"
    last_updated: str | None = None
