"""Tests for manifest parsing, serialization and compatibility checks."""

import json

import pytest

from aics.plugins.errors import IncompatibleVersionError, ParseError
from aics.plugins.manifest import (
    PluginCapability,
    PluginPermission,
    check_compatibility,
    parse_manifest,
    resolve_entry_file,
    serialize_manifest,
)
from tests.conftest import manifest_dict

REQUIRED_FIELDS = [
    "id",
    "name",
    "version",
    "author",
    "description",
    "capabilities",
    "permissions",
    "entryPoint",
    "minimumAppVersion",
]


def _parse(plugin_id="com.example.sample", **overrides):
    return parse_manifest(json.dumps(manifest_dict(plugin_id, **overrides)))


class TestParseManifest:
    """Tests for parse_manifest."""

    def test_parses_all_fields(self):
        """Camel-case JSON fields map onto the model."""
        m = _parse(
            "com.example.fmt",
            capabilities=["formatter", "commands"],
            permissions=["fileRead"],
            dependencies=["com.example.base"],
            icon="fmt.png",
            homepage="https://example.com",
            minimumAppVersion="1.0.0",
        )
        assert m.id == "com.example.fmt"
        assert m.capabilities == frozenset({PluginCapability.FORMATTER, PluginCapability.COMMANDS})
        assert m.permissions == frozenset({PluginPermission.FILE_READ})
        assert m.dependencies == ("com.example.base",)
        assert m.entry_point == "main.py:register"
        assert m.minimum_app_version == "1.0.0"
        assert m.icon == "fmt.png"

    def test_accepts_bytes(self):
        m = parse_manifest(json.dumps(manifest_dict()).encode("utf-8"))
        assert m.name == "Sample"

    def test_entry_callable_defaults_to_register(self):
        m = _parse(entryPoint="src/plugin.py")
        assert m.entry_file == "src/plugin.py"
        assert m.entry_callable == "register"

    def test_explicit_entry_callable(self):
        m = _parse(entryPoint="main.py:setup")
        assert m.entry_callable == "setup"

    def test_empty_description_allowed(self):
        assert _parse(description="").description == ""

    def test_unknown_fields_ignored(self):
        m = _parse(extra="ignored")
        assert not hasattr(m, "extra")

    @pytest.mark.parametrize("field", REQUIRED_FIELDS)
    def test_missing_required_field(self, field):
        """Every required field is enforced."""
        data = manifest_dict()
        del data[field]
        with pytest.raises(ParseError):
            parse_manifest(json.dumps(data))

    def test_unknown_capability_rejected(self):
        with pytest.raises(ParseError):
            _parse(capabilities=["commands", "telepathy"])

    def test_unknown_permission_rejected(self):
        with pytest.raises(ParseError):
            _parse(permissions=["rootAccess"])

    def test_malformed_json(self):
        with pytest.raises(ParseError, match="not valid JSON"):
            parse_manifest('{"id": ')

    def test_non_object_json(self):
        with pytest.raises(ParseError, match="JSON object"):
            parse_manifest("[1, 2, 3]")

    @pytest.mark.parametrize("version", ["1.0", "v1.0.0", "1.0.0.0", "01.0.0"])
    def test_invalid_semver(self, version):
        with pytest.raises(ParseError):
            _parse(version=version)

    def test_prerelease_semver_allowed(self):
        assert _parse(version="2.0.0-beta.1+build.5").version == "2.0.0-beta.1+build.5"

    @pytest.mark.parametrize(
        "entry", ["../escape.py", "/abs/main.py", "lib/../../x.py", "main.js", "main.py:not-valid"]
    )
    def test_invalid_entry_point(self, entry):
        with pytest.raises(ParseError):
            _parse(entryPoint=entry)

    @pytest.mark.parametrize("plugin_id", ["", "-leading", "has space", "a/b"])
    def test_invalid_id(self, plugin_id):
        with pytest.raises(ParseError):
            _parse(plugin_id)

    def test_self_dependency_rejected(self):
        with pytest.raises(ParseError):
            _parse("com.example.a", dependencies=["com.example.a"])

    def test_invalid_minimum_app_version(self):
        with pytest.raises(ParseError):
            _parse(minimumAppVersion="latest")

    def test_error_carries_plugin_id(self):
        with pytest.raises(ParseError) as exc_info:
            _parse("com.example.bad", version="nope")
        assert exc_info.value.plugin_id == "com.example.bad"

    def test_manifest_is_immutable(self):
        m = _parse()
        with pytest.raises(Exception):
            m.name = "changed"


class TestSerializeManifest:
    """Tests for serialize_manifest."""

    def test_round_trip(self):
        """parse(serialize(M)) == M."""
        m = _parse(
            capabilities=["linter", "ai", "commands"],
            permissions=["network", "fileRead"],
            dependencies=["com.example.base"],
            homepage="https://example.com",
        )
        assert parse_manifest(serialize_manifest(m)) == m

    def test_round_trip_minimal(self):
        m = _parse()
        assert parse_manifest(serialize_manifest(m)) == m

    def test_output_uses_camel_case_and_sorted_lists(self):
        m = _parse(capabilities=["ui", "ai", "commands"], permissions=["terminal", "clipboard"])
        data = json.loads(serialize_manifest(m))
        assert data["entryPoint"] == "main.py:register"
        assert data["minimumAppVersion"] == "1.0.0"
        assert data["capabilities"] == ["ai", "commands", "ui"]
        assert data["permissions"] == ["clipboard", "terminal"]
        assert "entry_point" not in data
        assert "icon" not in data


class TestCompatibility:
    """Tests for check_compatibility."""

    def test_equal_version_is_compatible(self):
        check_compatibility(_parse(minimumAppVersion="1.0.0"), "1.0.0")

    def test_older_requirement_is_compatible(self):
        check_compatibility(_parse(minimumAppVersion="0.9.0"), "1.0.0")

    def test_newer_requirement_raises(self):
        with pytest.raises(IncompatibleVersionError) as exc_info:
            check_compatibility(_parse("com.example.new", minimumAppVersion="2.1.0"), "1.0.0")
        assert exc_info.value.required == "2.1.0"
        assert exc_info.value.running == "1.0.0"
        assert exc_info.value.plugin_id == "com.example.new"

    def test_versions_compare_numerically(self):
        check_compatibility(_parse(minimumAppVersion="1.9.0"), "1.10.0")


class TestResolveEntryFile:
    """Tests for resolve_entry_file."""

    def test_resolves_inside_bundle(self, make_bundle):
        bundle = make_bundle(entryPoint="src/main.py")
        m = parse_manifest((bundle / "manifest.json").read_bytes())
        assert resolve_entry_file(m, bundle) == (bundle / "src" / "main.py").resolve()

    def test_missing_entry_file(self, tmp_path):
        bundle = tmp_path / "b.aicsplugin"
        bundle.mkdir()
        m = _parse(entryPoint="missing.py")
        with pytest.raises(ParseError, match="missing"):
            resolve_entry_file(m, bundle)
