"""Tests for plugin specification parsing and validation."""
import pytest

from plugsync.spec import (
    MAX_SPEC_LENGTH,
    PluginSpecification,
    SpecParser,
    ValidationError,
    parse_spec,
    plugin_key,
)


class TestValidSpecs:
    """Well-formed specifications parse into their fields."""

    @pytest.mark.parametrize("raw,owner,name,version,subpath", [
        ("zsh-users/zsh-autosuggestions", "zsh-users", "zsh-autosuggestions", None, None),
        ("romkatv/powerlevel10k@v1.16.1", "romkatv", "powerlevel10k", "v1.16.1", None),
        ("ohmyzsh/ohmyzsh:plugins/git", "ohmyzsh", "ohmyzsh", None, "plugins/git"),
        ("ohmyzsh/ohmyzsh@master:plugins/git", "ohmyzsh", "ohmyzsh", "master", "plugins/git"),
        ("ohmyzsh/ohmyzsh:plugins/git@master", "ohmyzsh", "ohmyzsh", "master", "plugins/git"),
        ("a_b.c/d-e.f@1.0_rc-2:x/y.z/w_1", "a_b.c", "d-e.f", "1.0_rc-2", "x/y.z/w_1"),
    ])
    def test_fields(self, raw, owner, name, version, subpath):
        spec = parse_spec(raw)
        assert spec.owner == owner
        assert spec.name == name
        assert spec.version == version
        assert spec.subpath == subpath
        assert spec.raw == raw

    def test_plugin_name_and_cache_dir(self):
        spec = parse_spec("ohmyzsh/ohmyzsh@master:plugins/git")
        assert spec.plugin_name == "ohmyzsh/ohmyzsh"
        assert spec.cache_dir_name == "ohmyzsh__ohmyzsh"

    def test_canonical_str(self):
        spec = parse_spec("ohmyzsh/ohmyzsh:plugins/git@master")
        assert str(spec) == "ohmyzsh/ohmyzsh@master:plugins/git"

    def test_specification_is_immutable(self):
        spec = parse_spec("a/b")
        with pytest.raises(AttributeError):
            spec.owner = "c"

    def test_max_length_accepted(self):
        raw = "o/" + "n" * (MAX_SPEC_LENGTH - 2)
        assert len(raw) == MAX_SPEC_LENGTH
        assert parse_spec(raw).name == "n" * (MAX_SPEC_LENGTH - 2)

    def test_parse_is_pure(self):
        assert parse_spec("a/b@v1") == parse_spec("a/b@v1")


class TestRejectedSpecs:
    """Malformed or unsafe specifications raise ValidationError."""

    @pytest.mark.parametrize("raw", [
        "a/b;rm -rf /",
        "a/b`id`",
        "a/$(whoami)",
        "a/b$HOME",
        "a/b|cat",
        "a/b&",
        "a/b>out",
        "a/b<in",
        "a/b*",
        "a/b?",
        "a/[b]",
        "a/{b,c}",
        "a/b\\c",
        "a/b\nc/d",
        "a/b\rc",
        "a/b\0",
    ])
    def test_shell_metacharacters(self, raw):
        with pytest.raises(ValidationError) as exc:
            parse_spec(raw)
        assert exc.value.field == "raw"

    @pytest.mark.parametrize("raw", [
        "../etc/passwd",
        "a/b:../../etc",
        "a/..b",
        "/etc/passwd",
        "~/plugins/x",
    ])
    def test_path_escapes(self, raw):
        with pytest.raises(ValidationError):
            parse_spec(raw)

    @pytest.mark.parametrize("raw", ["", "   ", "\t"])
    def test_empty(self, raw):
        with pytest.raises(ValidationError, match="empty"):
            parse_spec(raw)

    def test_too_long(self):
        raw = "o/" + "n" * MAX_SPEC_LENGTH
        with pytest.raises(ValidationError, match="too long"):
            parse_spec(raw)

    def test_internal_whitespace(self):
        with pytest.raises(ValidationError, match="whitespace"):
            parse_spec("a/b c")

    def test_not_a_string(self):
        with pytest.raises(ValidationError):
            parse_spec(None)

    @pytest.mark.parametrize("raw,field", [
        ("noslash", "name"),
        ("a/b/c", "name"),
        ("/b", "raw"),
        ("a/", "name"),
        ("a/@v1", "name"),
        ("a/b@", "version"),
        ("a/b:", "subpath"),
        ("a/b@v1@v2", "version"),
        ("a/b:x:y", "subpath"),
        ("a/b:x//y", "subpath"),
        ("a/b:x/", "subpath"),
        ("a/b:./x", "subpath"),
        ("a/b@v%1", "version"),
        ("a+/b", "owner"),
        ("a/b!", "name"),
    ])
    def test_field_errors(self, raw, field):
        with pytest.raises(ValidationError) as exc:
            parse_spec(raw)
        assert exc.value.offending_field == field

    def test_message_names_field_and_remedy(self):
        with pytest.raises(ValidationError) as exc:
            parse_spec("a/b@")
        message = str(exc.value)
        assert "'a/b@'" in message
        assert "version" in message
        assert "owner/name" in exc.value.remedy

    def test_control_characters_escaped_in_message(self):
        with pytest.raises(ValidationError) as exc:
            parse_spec("a/b\nc")
        assert "\n" not in str(exc.value)


class TestParseMany:
    """Batch parsing of a declared list."""

    def test_collects_errors_and_keeps_going(self):
        specs, errors = SpecParser().parse_many(["a/b", "bad;spec", "c/d@v1"])
        assert [s.plugin_name for s in specs] == ["a/b", "c/d"]
        assert len(errors) == 1
        assert errors[0].raw == "bad;spec"

    def test_duplicates_keep_first(self, caplog):
        specs, errors = SpecParser().parse_many(["a/b@v1", "c/d", "a/b@v2"])
        assert errors == []
        assert [s.raw for s in specs] == ["a/b@v1", "c/d"]
        assert "Duplicate declaration of a/b" in caplog.text


class TestPluginKey:
    def test_name(self):
        assert plugin_key("a/b") == "a/b"

    def test_full_spec(self):
        assert plugin_key("ohmyzsh/ohmyzsh@master:plugins/git") == "ohmyzsh/ohmyzsh"

    def test_invalid(self):
        with pytest.raises(ValidationError):
            plugin_key("not-a-plugin")


def test_specification_equality():
    assert PluginSpecification("a", "b", raw="a/b") == parse_spec("a/b")
