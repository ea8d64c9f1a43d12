"""
BeautifulSoup-based extraction layer shared by page and frame contexts.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from typing import Any
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag

from ethical_scraper.scraping.config.models import TEXT_CONTENT, Extractor, Transform
from ethical_scraper.scraping.errors import ExtractionFailed
from ethical_scraper.scraping.logging_utils import log_event, preview_value

logger = logging.getLogger(__name__)

NUMBER_REGEX = re.compile(r"-?\d[\d,]*(?:\.\d+)?|-?\.\d+")


class ExtractionLayer:
    """
    Deterministic extractor evaluation over an HTML document snapshot.
    """

    @classmethod
    def extract_fields(
        cls,
        *,
        html: str,
        extractors: Sequence[Extractor],
        base_url: str = "",
        scope: str = "page",
    ) -> dict[str, Any]:
        """
        Run every extractor in order and return a field-name to value map.

        Required extractors that yield nothing raise ExtractionFailed; optional
        ones are logged and skipped.
        """

        soup = BeautifulSoup(html or "", "html.parser")
        data: dict[str, Any] = {}
        failures = 0

        for extractor in extractors:
            try:
                value = cls.run_extractor(soup=soup, extractor=extractor, base_url=base_url)
            except Exception as exc:
                failures += 1
                log_event(
                    logger,
                    logging.ERROR,
                    "extractor_error",
                    scope=scope,
                    extractor=extractor.name,
                    selector=extractor.selector,
                    error=str(exc),
                )
                if extractor.required:
                    raise ExtractionFailed(
                        f'Required extraction failed for "{extractor.name}": {exc}',
                        details={"extractor": extractor.name, "scope": scope},
                    ) from exc
                continue

            if value is None:
                if extractor.required:
                    raise ExtractionFailed(
                        f'Required field "{extractor.name}" not found '
                        f"(selector: {extractor.selector})",
                        details={"extractor": extractor.name, "scope": scope},
                    )
                log_event(
                    logger,
                    logging.INFO,
                    "optional_field_missing",
                    scope=scope,
                    extractor=extractor.name,
                )
                continue

            data[extractor.name] = value
            log_event(
                logger,
                logging.DEBUG,
                "field_extracted",
                scope=scope,
                extractor=extractor.name,
                value=preview_value(value),
            )

        log_event(
            logger,
            logging.INFO,
            "extraction_completed",
            scope=scope,
            extracted=len(data),
            failures=failures,
        )
        return data

    @classmethod
    def run_extractor(
        cls,
        *,
        soup: BeautifulSoup,
        extractor: Extractor,
        base_url: str = "",
    ) -> Any:
        """
        Evaluate one extractor; returns None when it yields nothing.
        """

        if extractor.multiple:
            values = []
            for node in soup.select(extractor.selector):
                value = cls._transform(cls._read(node, extractor.attribute), extractor, base_url)
                if value is not None:
                    values.append(value)
            return values or None

        node = soup.select_one(extractor.selector)
        if node is None:
            return None
        return cls._transform(cls._read(node, extractor.attribute), extractor, base_url)

    @staticmethod
    def _read(node: Tag, attribute: str) -> str | None:
        if attribute == TEXT_CONTENT:
            raw = node.get_text()
        elif attribute == "innerHTML":
            raw = node.decode_contents()
        elif attribute == "outerHTML":
            raw = str(node)
        else:
            raw = node.get(attribute)
            if isinstance(raw, list):
                raw = " ".join(raw)
        if raw is None:
            return None
        stripped = raw.strip()
        return stripped or None

    @staticmethod
    def _transform(value: str | None, extractor: Extractor, base_url: str) -> Any:
        if value is None or extractor.transform is None:
            return value

        transform = extractor.transform
        if transform is Transform.TRIM:
            return " ".join(value.split())
        if transform is Transform.LOWERCASE:
            return value.lower()
        if transform is Transform.UPPERCASE:
            return value.upper()
        if transform is Transform.URL:
            return urljoin(base_url, value) if base_url else value
        if transform is Transform.NUMBER:
            return parse_number(value)
        return value


def parse_number(text: str) -> int | float | None:
    """
    Parse the first numeric token in `text`, ignoring thousands separators.
    """

    match = NUMBER_REGEX.search(text)
    if match is None:
        return None
    token = match.group(0).replace(",", "")
    if "." in token:
        return float(token)
    return int(token)
