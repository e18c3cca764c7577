"""
Job file loading.

A job file describes one scrape configuration and its fields, as YAML or
JSON:

    name: Example shop
    url: https://shop.example.com/products
    page_limit: 3
    request_interval: 2
    container_selector: .product-card
    fields:
      - name: title
        selector: h2
      - name: price
        selector: .price
        regex: '([0-9.,]+)'
      - name: product_url
        selector: a
        attribute: href
"""

import json
import logging
from pathlib import Path
from typing import List, Tuple

import yaml

from harvest.exceptions import ConfigurationError
from harvest.models import FieldDefinition, ScrapeConfiguration

logger = logging.getLogger(__name__)


def load_job(path: str) -> Tuple[ScrapeConfiguration, List[FieldDefinition]]:
    """Load a scrape configuration and its fields from a YAML or JSON file.

    Args:
        path: Path to the job file (.yaml, .yml or .json)

    Returns:
        (configuration, fields)

    Raises:
        ConfigurationError: If the file is missing or malformed
    """
    file_path = Path(path)
    if not file_path.exists():
        raise ConfigurationError(f"Job file not found: {path}")

    with open(file_path, "r", encoding="utf-8") as f:
        try:
            if file_path.suffix.lower() == ".json":
                data = json.load(f)
            else:
                data = yaml.safe_load(f)
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Could not parse job file {path}: {e}") from e

    return parse_job(data)


def parse_job(data) -> Tuple[ScrapeConfiguration, List[FieldDefinition]]:
    """Build a configuration and fields from already-parsed job data."""
    if not isinstance(data, dict):
        raise ConfigurationError("Job file must contain a mapping at top level")

    raw_fields = data.get("fields") or []
    if not isinstance(raw_fields, list):
        raise ConfigurationError("'fields' must be a list")

    fields = []
    for raw_field in raw_fields:
        if not isinstance(raw_field, dict):
            raise ConfigurationError(f"Field definition must be a mapping: {raw_field!r}")
        fields.append(FieldDefinition.from_dict(raw_field))

    config = ScrapeConfiguration.from_dict({k: v for k, v in data.items() if k != "fields"})
    logger.debug(f"Loaded job '{config.name or config.url}' with {len(fields)} fields")
    return config, fields
