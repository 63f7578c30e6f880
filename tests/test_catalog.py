"""Tests for the plugin catalog."""

import json
from pathlib import Path

import pytest

from aics.constants import DEFAULT_CATALOG_FILE
from aics.plugins.catalog import CatalogEntry, PluginCatalog, PluginCategory
from tests.conftest import manifest_dict


def entry(plugin_id, source="bundle.zip", **fields):
    return {"manifest": manifest_dict(plugin_id, **fields), "source": source}


@pytest.fixture
def catalog():
    return PluginCatalog.from_data(
        {
            "plugins": [
                entry("com.example.py", name="Python Tools", capabilities=["languageSupport", "linter"]),
                entry("com.example.dark", name="Dark Theme", capabilities=["theme"], description="Easy on the eyes"),
                entry("com.example.ai", name="AI Helper", capabilities=["ai", "commands"]),
            ]
        }
    )


class TestCatalogSearch:
    """Tests for PluginCatalog.search."""

    def test_all_sorted_by_name(self, catalog):
        assert [e.id for e in catalog.search()] == ["com.example.ai", "com.example.dark", "com.example.py"]

    def test_query_matches_name_case_insensitive(self, catalog):
        assert [e.id for e in catalog.search("python")] == ["com.example.py"]

    def test_query_matches_description(self, catalog):
        assert [e.id for e in catalog.search("EYES")] == ["com.example.dark"]

    @pytest.mark.parametrize(
        "category, expected",
        [
            (PluginCategory.LANGUAGES, ["com.example.py"]),
            (PluginCategory.THEMES, ["com.example.dark"]),
            (PluginCategory.AI, ["com.example.ai"]),
            (PluginCategory.TOOLS, ["com.example.ai"]),
            (PluginCategory.UI, []),
        ],
    )
    def test_category_filter(self, catalog, category, expected):
        assert [e.id for e in catalog.search(category=category)] == expected

    def test_query_and_category_combine(self, catalog):
        assert catalog.search("dark", PluginCategory.AI) == []


class TestCatalogLoading:
    """Tests for building catalogs from data and files."""

    def test_invalid_entries_skipped(self, caplog):
        catalog = PluginCatalog.from_data(
            {"plugins": [entry("com.example.ok"), {"manifest": {"id": "com.example.bad"}, "source": "x"}]}
        )
        assert [e.id for e in catalog.search()] == ["com.example.ok"]
        assert "Skipping invalid catalog entry" in caplog.text

    def test_duplicates_keep_first(self):
        catalog = PluginCatalog.from_data(
            {"plugins": [entry("com.example.a", source="first"), entry("com.example.a", source="second")]}
        )
        assert len(catalog) == 1
        assert catalog.get("com.example.a").source == "first"

    def test_non_object_data(self):
        assert len(PluginCatalog.from_data(["not", "a", "catalog"])) == 0

    def test_entry_to_dict(self):
        e = CatalogEntry.model_validate(entry("com.example.a", permissions=["network", "fileRead"]))
        data = e.to_dict(installed=True)
        assert data["installed"] is True
        assert data["permissions"] == ["fileRead", "network"]

    @pytest.mark.asyncio
    async def test_load_resolves_relative_sources(self, tmp_path):
        path = tmp_path / "catalog.json"
        path.write_text(
            json.dumps(
                {
                    "plugins": [
                        entry("com.example.rel", source="bundles/rel.aicsplugin"),
                        entry("com.example.url", source="https://example.com/url.zip"),
                    ]
                }
            )
        )

        catalog = await PluginCatalog.load(str(path))

        assert catalog.get("com.example.rel").source == str((tmp_path / "bundles" / "rel.aicsplugin").resolve())
        assert catalog.get("com.example.url").source == "https://example.com/url.zip"

    @pytest.mark.asyncio
    async def test_load_missing_file(self, tmp_path):
        assert len(await PluginCatalog.load(str(tmp_path / "none.json"))) == 0

    @pytest.mark.asyncio
    async def test_load_malformed_file(self, tmp_path):
        path = tmp_path / "catalog.json"
        path.write_text("{oops")
        assert len(await PluginCatalog.load(str(path))) == 0

    @pytest.mark.asyncio
    async def test_shipped_catalog_is_valid(self):
        catalog = await PluginCatalog.load(str(DEFAULT_CATALOG_FILE))
        assert {e.id for e in catalog.search()} == {"com.aics.word-count", "com.aics.ai-explain"}
        for e in catalog.search():
            assert (Path(e.source) / "manifest.json").is_file()
