"""Tests for job file loading."""

import json

import pytest

from harvest.exceptions import ConfigurationError
from harvest.job_loader import load_job, parse_job
from harvest.models import PaginationType

YAML_JOB = """
name: Example shop
url: https://shop.example.com/products
page_limit: 3
pagination_type: standard
use_challenge_bypass: true
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


class TestLoadJob:
    """Tests for load_job."""

    def test_yaml(self, tmp_path):
        path = tmp_path / "shop.yaml"
        path.write_text(YAML_JOB)

        config, fields = load_job(str(path))

        assert config.name == "Example shop"
        assert config.url == "https://shop.example.com/products"
        assert config.page_limit == 3
        assert config.pagination_type == PaginationType.STANDARD
        assert config.use_challenge_bypass is True
        assert config.container_selector == ".product-card"
        assert [f.name for f in fields] == ["title", "price", "product_url"]
        assert fields[1].regex == "([0-9.,]+)"
        assert fields[2].attribute == "href"

    def test_json(self, tmp_path):
        path = tmp_path / "shop.json"
        path.write_text(json.dumps({
            "url": "https://shop.example.com",
            "fields": [{"name": "title", "selector": "h1"}],
        }))

        config, fields = load_job(str(path))

        assert config.url == "https://shop.example.com"
        assert fields[0].selector == "h1"

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            load_job(str(tmp_path / "nope.yaml"))

    def test_malformed_yaml(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("url: [unclosed")

        with pytest.raises(ConfigurationError, match="Could not parse"):
            load_job(str(path))


class TestParseJob:
    """Tests for parse_job."""

    def test_without_fields(self):
        config, fields = parse_job({"url": "https://shop.example.com"})
        assert fields == []

    def test_not_a_mapping(self):
        with pytest.raises(ConfigurationError):
            parse_job(["url"])

    def test_fields_not_a_list(self):
        with pytest.raises(ConfigurationError, match="must be a list"):
            parse_job({"url": "https://a.example", "fields": {"name": "title"}})

    def test_field_without_selector(self):
        with pytest.raises(ConfigurationError):
            parse_job({"url": "https://a.example", "fields": [{"name": "title"}]})
