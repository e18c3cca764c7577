"""
Declarative field extraction.

Every container element matched on a page yields exactly one
ExtractedRecord. Field selectors are evaluated relative to their
container so sibling listings never contaminate each other. Field names
are matched against a fixed vocabulary of well-known record attributes;
anything else lands in the record's extra mapping.
"""

import logging
import re
from typing import Iterable, List, Optional
from urllib.parse import urljoin, urlsplit

from harvest.exceptions import FieldExtractionError, NoContainersFound, SelectorError
from harvest.extraction.markup import MarkupDocument, MarkupElement
from harvest.models import ExtractedRecord, FieldDefinition

logger = logging.getLogger(__name__)


# Normalized field name -> ExtractedRecord attribute
FIELD_VOCABULARY = {
    "title": "title",
    "price": "price",
    "description": "description",
    "rating": "rating",
    "reviewcount": "review_count",
    "reviews": "review_count",
    "image": "image_url",
    "imageurl": "image_url",
    "url": "product_url",
    "producturl": "product_url",
    "link": "product_url",
    "category": "category",
    "instock": "in_stock",
    "availability": "in_stock",
}

URL_ATTRIBUTES = {"image_url", "product_url"}

PLACEHOLDER_TITLE = "Untitled item"


def normalize_field_name(name: str) -> str:
    """Lower-case a field name and drop separators: 'Review_Count' -> 'reviewcount'."""
    return re.sub(r"[\s_\-]", "", name or "").lower()


def normalize_url(value: str, base_url: str) -> str:
    """
    Make a URL absolute.

    Absolute http(s) URLs are returned unchanged, protocol-relative URLs
    get https, root-relative paths are joined to the origin of base_url
    and anything else is resolved against base_url itself.
    """
    value = (value or "").strip()
    if not value:
        return ""

    if value.lower().startswith(("http://", "https://")):
        return value
    if value.startswith("//"):
        return f"https:{value}"

    try:
        base = urlsplit(base_url)
        if value.startswith("/") and base.scheme and base.netloc:
            return f"{base.scheme}://{base.netloc}{value}"
        return urljoin(base_url, value)
    except ValueError:
        logger.debug(f"Could not normalize URL {value!r} against {base_url!r}")
        return value


def parse_in_stock(value: str) -> bool:
    """Availability text -> in-stock flag."""
    lowered = value.lower()
    return "in stock" in lowered or "out of stock" not in lowered


class FieldExtractor:
    """Turns container elements into ExtractedRecords."""

    def extract_all(
        self,
        document: MarkupDocument,
        container_selector: str,
        fields: Iterable[FieldDefinition],
        base_url: str,
        warnings: Optional[List[str]] = None,
        page_number: Optional[int] = None,
    ) -> List[ExtractedRecord]:
        """
        Extract one record per container element.

        Args:
            document: Parsed page
            container_selector: CSS selector of the repeated record element
            fields: Extraction rules, applied in order (last write wins)
            base_url: Page URL used to absolutize product and image URLs
            warnings: List that collects non-fatal extraction warnings
            page_number: Page the document came from, used in placeholders

        Returns:
            Records in document order

        Raises:
            NoContainersFound: If the container selector matches nothing
            SelectorError: If the container selector is not valid CSS
        """
        containers = document.query(container_selector)
        if not containers:
            raise NoContainersFound(container_selector)

        fields = list(fields)
        collected = warnings if warnings is not None else []
        seen = set(collected)

        def warn(message: str) -> None:
            # Same problem repeats for every container; report it once
            if message not in seen:
                seen.add(message)
                collected.append(message)
                logger.warning(message)

        records = []
        for index, container in enumerate(containers, start=1):
            record = self.extract_record(container, fields, base_url, warn)
            if not record.title:
                record.title = self._placeholder_title(index, page_number)
            record.page_number = page_number
            records.append(record)

        logger.debug(f"Extracted {len(records)} records with '{container_selector}'")
        return records

    def extract_record(
        self,
        container: MarkupElement,
        fields: Iterable[FieldDefinition],
        base_url: str,
        warn=None,
    ) -> ExtractedRecord:
        """Build a record from one container. Failing fields are skipped."""
        warn = warn or logger.warning
        record = ExtractedRecord(title="")

        for field_def in fields:
            if not field_def.selector:
                continue
            try:
                value = self.extract_value(container, field_def, warn)
            except FieldExtractionError as e:
                logger.debug(f"Skipping field: {e}")
                warn(str(e))
                continue
            self._assign(record, field_def.name, value, base_url)

        return record

    def extract_value(self, container: MarkupElement, field_def: FieldDefinition, warn=None) -> str:
        """
        Read one field's value from a container.

        Raises:
            FieldExtractionError: If the selector cannot be evaluated
        """
        warn = warn or logger.warning
        selector = field_def.selector.strip()

        if selector.startswith("/"):
            warn(f"XPath selectors are not fully supported: {field_def.selector}")
            selector = selector.lstrip("/")
            if not selector:
                raise FieldExtractionError(field_def.name, "empty selector")

        try:
            matches = container.query(selector)
        except (SelectorError, NotImplementedError) as e:
            raise FieldExtractionError(field_def.name, str(e)) from e

        attribute = field_def.attribute or "text"
        if attribute == "text":
            value = " ".join(match.text() for match in matches).strip()
        elif attribute == "html":
            value = matches[0].html() if matches else ""
        else:
            value = (matches[0].attr(attribute) or "") if matches else ""

        if field_def.regex:
            value = self._apply_regex(value, field_def, warn)

        return value

    @staticmethod
    def _apply_regex(value: str, field_def: FieldDefinition, warn) -> str:
        try:
            pattern = re.compile(field_def.regex)
        except re.error as e:
            warn(str(FieldExtractionError(field_def.name, f"invalid regex '{field_def.regex}': {e}")))
            return value

        match = pattern.search(value)
        if match and match.groups() and match.group(1):
            return match.group(1)
        # Keep the raw value when the pattern does not apply
        return value

    @staticmethod
    def _assign(record: ExtractedRecord, name: str, value: str, base_url: str) -> None:
        attribute = FIELD_VOCABULARY.get(normalize_field_name(name))

        if attribute is None:
            record.extra[name] = value
        elif attribute == "in_stock":
            record.in_stock = parse_in_stock(value)
        elif attribute in URL_ATTRIBUTES:
            setattr(record, attribute, normalize_url(value, base_url) or None)
        elif attribute == "title":
            record.title = value
        else:
            setattr(record, attribute, value or None)

    @staticmethod
    def _placeholder_title(index: int, page_number: Optional[int]) -> str:
        if page_number is not None:
            return f"{PLACEHOLDER_TITLE} {page_number}-{index}"
        return f"{PLACEHOLDER_TITLE} {index}"
