import json
import logging
import os
import stat
from typing import Optional

import pytest

from config_keeper import (
    ConfigField,
    ConfigurationError,
    ConfigurationLoader,
    Float32,
    Int8,
    Int16,
    Int32,
    NotLoadedError,
    PersistedModel,
    SectionField,
    coerce,
    config_header,
    from_path,
    load,
    post_load,
)
from config_keeper.fields import post_load_hooks

FORMATS = ["json", "yaml", "yml", "toml", "properties"]

# text of an unparseable integer for the top-level ``port`` key, per format
BAD_PORT = {
    "json": '"eighty"',
    "yaml": "eighty",
    "yml": "eighty",
    "toml": '"eighty"',
    "properties": "eighty",
}


class Database(PersistedModel):
    host: str = ConfigField("localhost", comment="Database host")
    port: Int32 = ConfigField(5432)


@config_header("Server configuration")
class ServerCfg(PersistedModel):
    name: str = ConfigField("TestServer", comment_section="General")
    port: int = ConfigField(8080)
    database: Database = SectionField(Database)


class Limits(PersistedModel):
    ratio: Float32 = ConfigField(0.5)
    tags: list[str] = ConfigField(default_factory=lambda: ["a"])


class Tuning(PersistedModel):
    workers: Int16 = ConfigField(4)
    limits: Limits = SectionField(Limits, comment="Hard limits")


class AppCfg(PersistedModel):
    title: str = ConfigField("app", comment=["Title line 1", "line 2"])
    debug: bool = ConfigField(False, comment_section="Flags")
    verbose: bool = ConfigField(True)
    ratio: float = ConfigField(1.5)
    mapping: dict[str, int] = ConfigField(default_factory=lambda: {"a": 1})
    maybe: Optional[str] = ConfigField(None)
    tuning: Tuning = SectionField(Tuning, comment="Performance tuning")


class Narrow(PersistedModel):
    small: Int8 = ConfigField(0)
    medium: Int32 = ConfigField(0)
    whole: int = ConfigField(0)


class SinglePrecision(PersistedModel):
    ratio: Float32 = ConfigField(0.1)
    small: Int8 = ConfigField(300)


class TextValues(PersistedModel):
    title: str = ConfigField("[prod]")
    note: str = ConfigField("plain")
    hosts: dict[str, int] = ConfigField(default_factory=lambda: {"a": 1})


class Sparse(PersistedModel):
    values: list[Optional[int]] = ConfigField(default_factory=lambda: [1, None, 2])


class Hooked(PersistedModel):
    value: int = ConfigField(1)
    calls: int = 0

    @post_load
    def count_load(self):
        self.calls += 1


class HookBase(PersistedModel):
    value: int = ConfigField(1)
    events: list = []

    @post_load
    def base_hook(self):
        self.events.append("base")


class HookChild(HookBase):
    @post_load
    def child_hook(self):
        self.events.append("child")


class HookOff(HookBase):
    def base_hook(self):
        self.events.append("off")


class FailingHook(PersistedModel):
    value: int = ConfigField(1)

    @post_load
    def explode(self):
        raise RuntimeError("boom")


def _path(tmp_path, ext, stem="config"):
    return tmp_path / f"{stem}.{ext}"


def _edit(path, old, new):
    text = path.read_text(encoding="utf-8")
    assert old in text
    path.write_text(text.replace(old, new), encoding="utf-8")


# ------------------------------------------------------------------
# loadInitial
# ------------------------------------------------------------------

@pytest.mark.parametrize("ext", FORMATS)
def test_missing_file_is_created_with_defaults(tmp_path, ext):
    path = _path(tmp_path, ext)
    cfg = load(path, ServerCfg)

    assert path.exists()
    assert cfg.model_dump() == ServerCfg().model_dump()
    assert cfg.file_path == path

    written = path.read_bytes()
    again = load(path, ServerCfg)
    assert again.model_dump() == ServerCfg().model_dump()
    assert path.read_bytes() == written


def test_missing_parent_directories_are_created(tmp_path):
    path = tmp_path / "a" / "b" / "server.json"
    load(path, ServerCfg)
    assert path.exists()


@pytest.mark.parametrize("ext", FORMATS)
def test_round_trip_keeps_every_value(tmp_path, ext):
    path = _path(tmp_path, ext)
    cfg = load(path, AppCfg)
    cfg.title = "changed: yes # not a comment"
    cfg.debug = True
    cfg.verbose = False
    cfg.ratio = 2.25
    cfg.mapping = {"x": 2, "y": 3}
    cfg.maybe = "set"
    cfg.tuning.workers = 12
    cfg.tuning.limits.ratio = 0.25
    cfg.tuning.limits.tags = ["x", "y z"]
    cfg.save()

    fresh = load(path, AppCfg)
    assert fresh.model_dump() == cfg.model_dump()
    assert fresh.model_dump() != AppCfg().model_dump()


@pytest.mark.parametrize("ext", FORMATS)
def test_empty_file_is_left_alone(tmp_path, ext):
    path = _path(tmp_path, ext)
    path.write_text("")
    cfg = load(path, Hooked)
    assert cfg.model_dump() == Hooked().model_dump()
    assert cfg.calls == 0
    assert path.read_bytes() == b""
    # still attached: saving works
    cfg.value = 3
    cfg.save()
    assert load(path, Hooked).value == 3


@pytest.mark.parametrize(
    "ext, text",
    [
        ("yaml", "# only a comment\n"),
        ("toml", "# only a comment\n"),
        ("properties", "# comment\n! another\n\n"),
        ("json", "  \n\n"),
    ],
)
def test_comment_only_documents_count_as_empty(tmp_path, ext, text):
    path = _path(tmp_path, ext)
    path.write_text(text)
    cfg = load(path, Hooked)
    assert cfg.calls == 0
    assert path.read_text() == text


@pytest.mark.parametrize("ext", FORMATS)
def test_bad_field_keeps_its_default(tmp_path, ext, caplog):
    path = _path(tmp_path, ext)
    load(path, ServerCfg)
    _edit(path, "8080", BAD_PORT[ext])
    _edit(path, "TestServer", "Edited")
    _edit(path, "5432", "6543")

    with caplog.at_level(logging.WARNING, logger="config_keeper"):
        cfg = load(path, ServerCfg)

    assert cfg.name == "Edited"
    assert cfg.port == 8080
    assert cfg.database.port == 6543
    assert any("port" in r.getMessage() for r in caplog.records)


@pytest.mark.parametrize(
    "ext, text",
    [
        ("json", "{not json"),
        ("json", "[1, 2]"),
        ("yaml", "a: [unclosed"),
        ("yaml", "- just\n- a list\n"),
        ("toml", "port = "),
    ],
)
def test_broken_document_falls_back_to_defaults(tmp_path, ext, text, caplog):
    path = _path(tmp_path, ext)
    path.write_text(text)

    with caplog.at_level(logging.WARNING, logger="config_keeper"):
        cfg = load(path, Hooked)

    assert cfg.model_dump() == Hooked().model_dump()
    assert cfg.calls == 0
    assert path.read_text() == text
    assert caplog.records
    assert cfg.persistence is not None


def test_wide_numbers_narrow_into_declared_types(tmp_path):
    path = tmp_path / "narrow.json"
    path.write_text(json.dumps({"small": 300, "medium": 3_000_000_000, "whole": 3.9}))
    cfg = load(path, Narrow)
    assert cfg.small == 44
    assert cfg.medium == 3_000_000_000 - 2**32
    assert cfg.whole == 3


@pytest.mark.parametrize("ext", FORMATS)
def test_narrowed_defaults_match_what_reload_yields(tmp_path, ext):
    path = _path(tmp_path, ext)
    first = load(path, SinglePrecision)
    assert first.ratio == coerce(0.1, Float32)
    assert first.ratio != 0.1
    assert first.small == 44

    second = load(path, SinglePrecision)
    assert second.model_dump() == first.model_dump()

    second.ratio = 0.2
    assert second.ratio == coerce(0.2, Float32)
    second.save()
    assert load(path, SinglePrecision).model_dump() == second.model_dump()


@pytest.mark.parametrize("ext", FORMATS)
def test_bracket_text_and_dotted_mapping_keys_round_trip(tmp_path, ext):
    path = _path(tmp_path, ext)
    cfg = load(path, TextValues)
    assert load(path, TextValues).title == "[prod]"

    cfg.title = "[1, 2]"
    cfg.note = "{}"
    cfg.hosts = {"db.internal": 5432, "plain": 1}
    cfg.save()

    fresh = load(path, TextValues)
    assert fresh.model_dump() == cfg.model_dump()


def test_toml_leaves_none_out_of_arrays(tmp_path):
    path = tmp_path / "sparse.toml"
    cfg = load(path, Sparse)
    assert cfg.values == [1, None, 2]
    assert load(path, Sparse).values == [1, 2]


def test_factory_must_build_a_persisted_model(tmp_path):
    with pytest.raises(TypeError):
        load(tmp_path / "x.json", dict)


# ------------------------------------------------------------------
# sections
# ------------------------------------------------------------------

@pytest.mark.parametrize("ext", FORMATS)
def test_edited_nested_value_is_picked_up(tmp_path, ext):
    path = _path(tmp_path, ext)
    cfg = load(path, ServerCfg)
    text = path.read_text()
    assert "name" in text and "8080" in text and "5432" in text

    _edit(path, "5432", "3306")
    cfg.reload()
    assert cfg.database.port == 3306
    assert cfg.port == 8080

    fresh = load(path, ServerCfg)
    assert fresh.database.port == 3306
    assert fresh.port == 8080
    assert fresh.name == "TestServer"


def test_two_levels_of_sections_are_addressable(tmp_path):
    import tomli
    import yaml

    for ext in ("json", "yaml", "toml"):
        path = _path(tmp_path, ext)
        cfg = load(path, AppCfg)
        cfg.tuning.limits.ratio = 0.75
        cfg.save()
        text = path.read_text()
        if ext == "json":
            data = json.loads(text)
        elif ext == "yaml":
            data = yaml.safe_load(text)
        else:
            data = tomli.loads(text)
        assert data["tuning"]["limits"]["ratio"] == 0.75
        assert data["tuning"]["workers"] == 4

    path = _path(tmp_path, "properties")
    cfg = load(path, AppCfg)
    cfg.tuning.limits.ratio = 0.75
    cfg.save()
    assert "tuning.limits.ratio=0.75" in path.read_text().splitlines()


# ------------------------------------------------------------------
# save
# ------------------------------------------------------------------

@pytest.mark.parametrize("ext", FORMATS)
def test_failed_encode_leaves_file_untouched(tmp_path, ext, monkeypatch):
    path = _path(tmp_path, ext)
    cfg = load(path, ServerCfg)
    before = path.read_bytes()

    def boom(*args, **kwargs):
        raise RuntimeError("encoder failed")

    monkeypatch.setattr(cfg.persistence.backend, "encode", boom)

    cfg.port = 1
    with pytest.raises(ConfigurationError) as info:
        cfg.save()

    assert isinstance(info.value.__cause__, RuntimeError)
    assert path.read_bytes() == before
    assert os.listdir(tmp_path) == [path.name]


def test_failed_replace_removes_temp_file(tmp_path, monkeypatch):
    path = tmp_path / "server.yaml"
    cfg = load(path, ServerCfg)
    before = path.read_bytes()

    def refuse(src, dst):
        raise OSError("disk says no")

    monkeypatch.setattr(os, "replace", refuse)
    cfg.port = 1
    with pytest.raises(ConfigurationError, match="server.yaml"):
        cfg.save()

    assert path.read_bytes() == before
    assert os.listdir(tmp_path) == [path.name]


def test_save_keeps_file_permissions(tmp_path):
    path = tmp_path / "server.toml"
    cfg = load(path, ServerCfg)
    os.chmod(path, 0o640)
    cfg.port = 9000
    cfg.save()
    assert stat.S_IMODE(os.stat(path).st_mode) == 0o640
    assert load(path, ServerCfg).port == 9000


def test_unloaded_instance_cannot_persist():
    cfg = ServerCfg()
    assert cfg.persistence is None
    assert cfg.file_path is None
    with pytest.raises(NotLoadedError, match="not properly initialized"):
        cfg.save()
    with pytest.raises(NotLoadedError, match="not properly initialized"):
        cfg.reload()


# ------------------------------------------------------------------
# reload
# ------------------------------------------------------------------

def test_reload_updates_in_place(tmp_path):
    path = tmp_path / "server.json"
    cfg = load(path, ServerCfg)
    database = cfg.database

    data = json.loads(path.read_text())
    data["name"] = "Reloaded"
    data["database"]["host"] = "db.internal"
    path.write_text(json.dumps(data))

    cfg.reload()
    assert cfg.name == "Reloaded"
    assert cfg.database is database
    assert database.host == "db.internal"


def test_reload_only_overwrites_present_keys(tmp_path):
    path = tmp_path / "server.json"
    cfg = load(path, ServerCfg)
    cfg.port = 1234
    path.write_text(json.dumps({"name": "Partial"}))

    cfg.reload()
    assert cfg.name == "Partial"
    assert cfg.port == 1234


@pytest.mark.parametrize("text", ["{broken", "", "[]"])
def test_reload_keeps_values_on_unusable_file(tmp_path, text):
    path = tmp_path / "server.json"
    cfg = load(path, ServerCfg)
    cfg.port = 1
    cfg.database.port = 2
    path.write_text(text)

    cfg.reload()
    assert cfg.port == 1
    assert cfg.database.port == 2
    assert path.read_text() == text


def test_reload_without_file_is_a_no_op(tmp_path):
    path = tmp_path / "server.json"
    cfg = load(path, ServerCfg)
    cfg.port = 1
    path.unlink()

    cfg.reload()
    assert cfg.port == 1
    assert not path.exists()


def test_reload_bad_field_keeps_current_value(tmp_path):
    path = tmp_path / "server.json"
    cfg = load(path, ServerCfg)
    cfg.port = 1234
    path.write_text(json.dumps({"name": "New", "port": "eighty"}))

    cfg.reload()
    assert cfg.name == "New"
    assert cfg.port == 1234


# ------------------------------------------------------------------
# post-load hooks
# ------------------------------------------------------------------

def test_hooks_run_after_every_successful_load(tmp_path):
    path = tmp_path / "hooked.yaml"
    cfg = load(path, Hooked)
    assert cfg.calls == 1

    again = load(path, Hooked)
    assert again.calls == 1

    again.reload()
    assert again.calls == 2


def test_hook_order_and_overrides(tmp_path):
    assert post_load_hooks(HookChild) == ["base_hook", "child_hook"]
    assert post_load_hooks(HookOff) == []

    cfg = load(tmp_path / "child.json", HookChild)
    assert cfg.events == ["base", "child"]

    off = load(tmp_path / "off.json", HookOff)
    assert off.events == []


def test_failing_hook_surfaces_as_configuration_error(tmp_path):
    with pytest.raises(ConfigurationError, match="explode") as info:
        load(tmp_path / "failing.json", FailingHook)
    assert isinstance(info.value.__cause__, RuntimeError)


# ------------------------------------------------------------------
# modes and settings
# ------------------------------------------------------------------

def test_fluent_modes(tmp_path):
    plain = from_path(tmp_path / "plain.yaml").without_comments().load(ServerCfg)
    assert "#" not in plain.file_path.read_text()

    commented = from_path(tmp_path / "commented.yaml").with_comments().load(ServerCfg)
    text = commented.file_path.read_text()
    assert text.startswith("# Server configuration\n")
    assert "# Database host" in text

    explicit = from_path(tmp_path / "explicit.toml").mode("simple").load(ServerCfg)
    assert "#" not in explicit.file_path.read_text()


def test_default_mode_comes_from_environment(tmp_path, monkeypatch):
    monkeypatch.setenv("CONFIG_KEEPER_DEFAULT_MODE", "simple")
    cfg = ConfigurationLoader().load(tmp_path / "env.properties", ServerCfg)
    assert "#" not in cfg.file_path.read_text()


def test_temp_suffix_setting(tmp_path, monkeypatch):
    seen = []
    real_replace = os.replace

    def spy(src, dst):
        seen.append(os.path.basename(src))
        real_replace(src, dst)

    monkeypatch.setenv("CONFIG_KEEPER_TEMP_SUFFIX", ".partial")
    monkeypatch.setattr(os, "replace", spy)
    load(tmp_path / "suffix.json", ServerCfg)
    assert seen and seen[0].endswith(".partial")
    assert seen[0].startswith(".suffix.json.")
