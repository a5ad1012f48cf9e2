"""
Tests for the thread-safe Config instance.

This module tests loading from files and directories, include merging,
decryption, atomic swaps, concurrent access and the fatal load path.
"""

import io
import random
import string
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta
from pathlib import Path
from typing import Callable, List

import pytest

from layerconf import (
    Config,
    ConfigDecryptError,
    ConfigParseError,
    ConfigPathError,
    LoadOptions,
    OptionError,
    get_shared,
    with_aes_encrypt,
    with_enable_include,
    with_encrypted_file_suffix,
)

WriteFile = Callable[..., Path]

SETTINGS_YAML = """
---
key1: val1
key2: val2
key3: val3
key4:
  k4.1: 12
  k4.2: "qq"
  k4.3: "123 : 123"
k5: 14
"""


def _random_string(length: int) -> str:
    return "".join(random.choices(string.ascii_letters, k=length))


class TestLoadOptions:
    """Test cases for LoadOptions and its builder helpers."""

    def test_defaults(self) -> None:
        options = LoadOptions()

        assert options.enable_include is False
        assert options.aes_key is None
        assert options.encrypted_suffix == ".enc"
        assert options.watch_modify is False
        assert options.atomic is True

    def test_build(self, aes_key: bytes) -> None:
        options = LoadOptions.build(
            with_enable_include(),
            with_aes_encrypt(aes_key),
            with_encrypted_file_suffix(".secret"),
        )

        assert options.enable_include is True
        assert options.aes_key == aes_key
        assert options.encrypted_suffix == ".secret"

    def test_empty_aes_key_rejected(self) -> None:
        with pytest.raises(OptionError, match="aes key is empty"):
            with_aes_encrypt(b"")
        with pytest.raises(OptionError):
            LoadOptions(aes_key=b"")

    def test_negative_debounce_rejected(self) -> None:
        with pytest.raises(OptionError):
            LoadOptions(watch_debounce=-1)


class TestConfigLoad:
    """Test cases for Config.load_from_file and friends."""

    def test_load_from_dir(self, write_file: WriteFile, tmp_path: Path) -> None:
        write_file("settings.yml", SETTINGS_YAML)
        cfg = Config()

        chain = cfg.load_from_dir(tmp_path)

        assert chain == [str(tmp_path / "settings.yml")]
        for key, expect in {"key1": "val1", "key2": "val2", "key3": "val3"}.items():
            assert cfg.get_string(key) == expect
            assert cfg.get(key) == expect

        assert cfg.get_int64("key4.k4.1") == 12
        assert cfg.get_duration("key4.k4.1") == timedelta(seconds=12)
        assert cfg.get_int64("k5") == 14

        mr = cfg.get_string_map_string("key4")
        assert mr == {"k4.1": "12", "k4.2": "qq", "k4.3": "123 : 123"}
        assert cfg.get_string_map("key4")["k4.1"] == 12

    def test_set_round_trip(self) -> None:
        cfg = Config()
        cfg.set("kkz", 123)

        assert cfg.get_int("kkz") == 123
        assert cfg.get_duration("kkz") == timedelta(seconds=123)
        assert cfg.is_set("kkz") is True
        assert cfg.is_set(_random_string(100)) is False

    def test_load_toml(self, write_file: WriteFile) -> None:
        path = write_file("settings.toml", 'root = "root"\n\n[foo]\n\ta = 1\n\tb = "b"\n\tc = true\n')
        cfg = Config()

        cfg.load_from_file(path, LoadOptions(enable_include=True))

        assert cfg.get_string("root") == "root"
        assert cfg.get_int("foo.a") == 1
        assert cfg.get_string("foo.b") == "b"
        assert cfg.get_bool("foo.c") is True

    def test_include_merge(self, write_file: WriteFile) -> None:
        entry = write_file("settings.yml", "include: base.yml\na: 2\n")
        base = write_file("base.yml", "a: 1\nb: 1\n")
        cfg = Config()

        chain = cfg.load_from_file(entry, LoadOptions(enable_include=True))

        assert chain == [str(entry), str(base)]
        assert cfg.get_int("a") == 2
        assert cfg.get_int("b") == 1

    def test_absolute_include_under_entry_dir(self, write_file: WriteFile) -> None:
        entry = write_file("settings.yml", "include: /etc/base.yml\na: 2\n")
        write_file("etc/base.yml", "a: 1\nb: 1\n")
        cfg = Config()

        cfg.load_from_file(entry, LoadOptions(enable_include=True))

        assert cfg.get_int("a") == 2
        assert cfg.get_int("b") == 1

    def test_include_ignored_when_disabled(self, write_file: WriteFile) -> None:
        entry = write_file("settings.yml", "include: base.yml\na: 2\n")
        write_file("base.yml", "a: 1\nb: 1\n")
        cfg = Config()

        cfg.load_from_file(entry)

        assert cfg.get_int("a") == 2
        assert cfg.is_set("b") is False

    def test_cyclic_include(self, write_file: WriteFile) -> None:
        a = write_file("a.yml", "include: b.yml\nfrom_a: 1\nshared: a\n")
        b = write_file("b.yml", "include: a.yml\nfrom_b: 1\nshared: b\n")
        cfg = Config()

        chain = cfg.load_from_file(a, LoadOptions(enable_include=True))

        assert chain == [str(a), str(b)]
        assert cfg.get_int("from_a") == 1
        assert cfg.get_int("from_b") == 1
        assert cfg.get_string("shared") == "a"

    def test_encrypted_include(self, write_file: WriteFile, aes_key: bytes) -> None:
        entry = write_file("settings.yml", "include: secrets.yml.enc\nname: app\n")
        write_file("secrets.yml.enc", "db:\n  password: hunter2\n", key=aes_key)
        cfg = Config()

        cfg.load_from_file(entry, LoadOptions.build(with_enable_include(), with_aes_encrypt(aes_key)))

        assert cfg.get_string("name") == "app"
        assert cfg.get_string("db.password") == "hunter2"

    def test_encrypted_entry_file(self, write_file: WriteFile, aes_key: bytes) -> None:
        entry = write_file("settings.json.enc", '{"a": {"b": 3}}', key=aes_key)
        cfg = Config()

        cfg.load_from_file(entry, LoadOptions(aes_key=aes_key))

        assert cfg.get_int("a.b") == 3

    def test_wrong_key(self, write_file: WriteFile, aes_key: bytes) -> None:
        entry = write_file("settings.yml.enc", "a: 1\n", key=aes_key)
        cfg = Config()

        with pytest.raises(ConfigDecryptError):
            cfg.load_from_file(entry, LoadOptions(aes_key=b"z" * 32))

    def test_missing_entry(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigPathError):
            Config().load_from_file(tmp_path / "settings.yml")

    def test_entry_is_directory(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigPathError, match="is not a file"):
            Config().load_from_file(tmp_path)

    def test_reload_replaces_previous_file(self, write_file: WriteFile) -> None:
        first = write_file("first.yml", "a: 1\n")
        second = write_file("second.yml", "b: 2\n")
        cfg = Config()

        cfg.load_from_file(first)
        cfg.load_from_file(second)

        assert cfg.is_set("a") is False
        assert cfg.get_int("b") == 2

    def test_overrides_survive_load(self, write_file: WriteFile) -> None:
        entry = write_file("settings.yml", "a: 1\n")
        cfg = Config()
        cfg.set("a", 100)

        cfg.load_from_file(entry)

        assert cfg.get_int("a") == 100


class TestAtomicLoad:
    """Test cases for atomic and in-place loads."""

    def test_atomic_failure_leaves_store_untouched(self, write_file: WriteFile) -> None:
        good = write_file("good.yml", "a: 1\n")
        entry = write_file("settings.yml", "include: base.yml\nbroken: [\n")
        write_file("base.yml", "b: 2\n")
        cfg = Config()
        cfg.load_from_file(good)

        with pytest.raises(ConfigParseError):
            cfg.load_from_file(entry, LoadOptions(enable_include=True))

        assert cfg.get_int("a") == 1
        assert cfg.is_set("b") is False

    def test_in_place_failure_leaves_partial_state(self, write_file: WriteFile) -> None:
        entry = write_file("settings.yml", "include: base.yml\na: 1\n")
        base = write_file("base.yml", "b: 2\n")
        cfg = Config()
        options = LoadOptions(enable_include=True, atomic=False)
        cfg.load_from_file(entry, options)

        entry.write_text("include: base.yml\na: 5\n", encoding="utf-8")
        base.write_text("b: [\n", encoding="utf-8")
        with pytest.raises(ConfigParseError):
            cfg.load_from_file(entry, options)

        # the entry file was read before the include failed
        assert cfg.get_int("a") == 5
        assert cfg.is_set("b") is False

    def test_atomic_failure_keeps_previous_view(self, write_file: WriteFile) -> None:
        entry = write_file("settings.yml", "include: base.yml\na: 1\n")
        base = write_file("base.yml", "b: 2\n")
        cfg = Config()
        options = LoadOptions(enable_include=True)
        cfg.load_from_file(entry, options)

        entry.write_text("include: base.yml\na: 5\n", encoding="utf-8")
        base.write_text("b: [\n", encoding="utf-8")
        with pytest.raises(ConfigParseError):
            cfg.load_from_file(entry, options)

        assert cfg.get_int("a") == 1
        assert cfg.get_int("b") == 2

    def test_in_place_load_merges(self, write_file: WriteFile) -> None:
        entry = write_file("settings.yml", "include: base.yml\na: 2\n")
        write_file("base.yml", "a: 1\nb: 1\n")
        cfg = Config()

        cfg.load_from_file(entry, LoadOptions(enable_include=True, atomic=False))

        assert cfg.get_int("a") == 2
        assert cfg.get_int("b") == 1


class TestConfigStreams:
    """Test cases for direct stream reads and typed decoding."""

    def test_read_and_merge_config(self) -> None:
        cfg = Config()
        cfg.read_config(io.StringIO("a: 1\nb: 1\n"))
        cfg.merge_config(io.StringIO('{"b": 2}'), "json")

        assert cfg.all_settings() == {"a": 1, "b": 2}

    def test_bind_flags(self) -> None:
        cfg = Config()
        cfg.read_config(io.StringIO("port: 80\n"))
        cfg.bind_flags({"port": 8080, "verbose": False}, changed=["port"])

        assert cfg.get_int("port") == 8080
        assert cfg.get_bool("verbose") is False
        assert cfg.is_set("verbose") is True

    def test_unmarshal(self) -> None:
        from pydantic import BaseModel

        class Inner(BaseModel):
            b: int
            c: str

        class Outer(BaseModel):
            a: Inner

        cfg = Config()
        cfg.read_config(io.StringIO("a:\n  b: 123\n  c: abc\n"))

        assert cfg.unmarshal(Outer).a.b == 123
        assert cfg.unmarshal_key("a", Inner).c == "abc"


class TestLoadSettings:
    """Test cases for the fatal in-place load."""

    def test_load_settings(self, write_file: WriteFile, tmp_path: Path) -> None:
        write_file("settings.yml", "a: 1\n")
        cfg = Config()
        cfg.add_config_path(tmp_path)

        cfg.load_settings()

        assert cfg.get_int("a") == 1

    def test_load_settings_named_file(self, write_file: WriteFile, tmp_path: Path) -> None:
        write_file("app.json", '{"a": 2}')
        cfg = Config()
        cfg.set_config_name("app")
        cfg.add_config_path(tmp_path)

        cfg.load_settings()

        assert cfg.get_int("a") == 2

    def test_load_settings_missing_is_fatal(self, tmp_path: Path) -> None:
        cfg = Config()
        cfg.set_config_file(tmp_path / "missing.yml")

        with pytest.raises(SystemExit) as exc_info:
            cfg.load_settings()
        assert exc_info.value.code == 1

    def test_load_settings_malformed_is_fatal(self, write_file: WriteFile) -> None:
        cfg = Config()
        cfg.set_config_file(write_file("settings.yml", "a: [\n"))

        with pytest.raises(SystemExit):
            cfg.load_settings()


class TestConcurrency:
    """Test cases for concurrent access."""

    def test_concurrent_set_get(self) -> None:
        cfg = Config()
        keys = [f"k{i}" for i in range(20)]
        written = {key: set() for key in keys}
        written_lock = threading.Lock()
        errors: List[str] = []

        def worker(seed: int) -> None:
            rnd = random.Random(seed)
            for _ in range(300):
                key = rnd.choice(keys)
                if rnd.random() < 0.5:
                    value = f"{key}-{seed}-{rnd.randint(0, 10**6)}"
                    with written_lock:
                        written[key].add(value)
                    cfg.set(key, value)
                else:
                    got = cfg.get(key)
                    if got is None:
                        continue
                    with written_lock:
                        if got not in written[key]:
                            errors.append(f"{key}={got}")

        with ThreadPoolExecutor(max_workers=10) as pool:
            list(pool.map(worker, range(10)))

        assert errors == []

    def test_reads_during_reload(self, write_file: WriteFile) -> None:
        entry = write_file("settings.yml", "include: base.yml\nname: top\n")
        write_file("base.yml", "name: base\nextra: 1\n")
        cfg = Config()
        options = LoadOptions(enable_include=True)
        cfg.load_from_file(entry, options)
        seen: List[str] = []
        stop = threading.Event()

        def reader() -> None:
            while not stop.is_set():
                seen.append(cfg.get_string("name"))

        thread = threading.Thread(target=reader)
        thread.start()
        try:
            for _ in range(50):
                cfg.load_from_file(entry, options)
        finally:
            stop.set()
            thread.join()

        assert set(seen) == {"top"}


class TestShared:
    """Test cases for the process-wide default instance."""

    def test_get_shared_is_singleton(self) -> None:
        assert get_shared() is get_shared()
        assert isinstance(get_shared(), Config)

    def test_shared_is_independent_of_new_instances(self) -> None:
        key = _random_string(20)
        get_shared().set(key, "shared")

        assert Config().is_set(key) is False
        assert get_shared().get_string(key) == "shared"
