"""Tests for request body sources."""

from __future__ import annotations

import random
from typing import TYPE_CHECKING

import pytest

from loadburst._internal.errors import ConfigError, RequestError
from loadburst.engine.body import (
    BodyReadError,
    FileSetBodySource,
    StaticBodySource,
    build_body_source,
    list_directory,
    parse_manifest,
)
from loadburst.engine.config import DirectoryBody, FileBody, LiteralBody, ManifestBody, Order

if TYPE_CHECKING:
    from pathlib import Path


class TestStaticBodySource:
    async def test_same_body_for_every_index(self):
        source = StaticBodySource(b"payload")
        rng = random.Random(1)
        first = await source.resolve(0, rng)
        later = await source.resolve(99, rng)
        assert first.data == later.data == b"payload"
        assert first.label is None

    async def test_default_is_empty(self):
        body = await StaticBodySource().resolve(0, random.Random())
        assert body.data == b""


class TestListDirectory:
    def test_sorted_by_name(self, body_dir: Path):
        files = list_directory(body_dir)
        assert [f.name for f in files] == ["test1.json", "test2.json", "test3.json"]

    def test_skips_subdirectories(self, body_dir: Path):
        (body_dir / "nested").mkdir()
        assert len(list_directory(body_dir)) == 3

    def test_empty_directory(self, tmp_path: Path):
        with pytest.raises(ConfigError, match="contains no files"):
            list_directory(tmp_path)

    def test_missing_directory(self, tmp_path: Path):
        with pytest.raises(ConfigError, match="Cannot read input directory"):
            list_directory(tmp_path / "missing")


class TestParseManifest:
    def test_keeps_manifest_order_and_resolves_relative_paths(
        self, manifest_file: Path, body_dir: Path
    ):
        entries = parse_manifest(manifest_file)
        assert entries == [body_dir / "test2.json", body_dir / "test1.json"]

    def test_only_comments(self, tmp_path: Path):
        path = tmp_path / "empty.txt"
        path.write_text("# nothing here\n\n   \n")
        with pytest.raises(ConfigError, match="lists no body files"):
            parse_manifest(path)

    def test_entries_are_not_checked_up_front(self, tmp_path: Path):
        path = tmp_path / "manifest.txt"
        path.write_text("missing.json\n")
        assert parse_manifest(path) == [tmp_path / "missing.json"]

    def test_unreadable_manifest(self, tmp_path: Path):
        with pytest.raises(ConfigError, match="Cannot read manifest"):
            parse_manifest(tmp_path / "missing.txt")


class TestFileSetBodySource:
    def test_requires_files(self):
        with pytest.raises(ConfigError):
            FileSetBodySource([])

    def test_sequential_cycles_through_files(self, body_dir: Path):
        files = list_directory(body_dir)
        source = FileSetBodySource(files, Order.SEQUENTIAL)
        rng = random.Random(0)
        picked = [source.select(i, rng).stem for i in range(7)]
        assert picked == ["test1", "test2", "test3", "test1", "test2", "test3", "test1"]

    def test_random_picks_within_set(self, body_dir: Path):
        files = list_directory(body_dir)
        source = FileSetBodySource(files, Order.RANDOM)
        rng = random.Random(7)
        picked = {source.select(i, rng) for i in range(200)}
        assert picked <= set(files)
        assert len(picked) > 1

    def test_random_is_reproducible_with_seed(self, body_dir: Path):
        source = FileSetBodySource(list_directory(body_dir), Order.RANDOM)
        first_rng, second_rng = random.Random(3), random.Random(3)
        first = [source.select(i, first_rng) for i in range(20)]
        second = [source.select(i, second_rng) for i in range(20)]
        assert first == second

    async def test_resolve_reads_file_and_labels_it(self, body_dir: Path):
        source = FileSetBodySource(list_directory(body_dir))
        body = await source.resolve(1, random.Random())
        assert body.data == b'{"name": "test2"}'
        assert body.label == "test2"

    async def test_unreadable_file_raises_body_read_error(self, tmp_path: Path):
        source = FileSetBodySource([tmp_path / "gone.json"])
        with pytest.raises(BodyReadError) as exc_info:
            await source.resolve(0, random.Random())
        assert exc_info.value.label == "gone"
        assert isinstance(exc_info.value, RequestError)


class TestBuildBodySource:
    def test_none_gives_empty_body(self):
        source = build_body_source(None)
        assert isinstance(source, StaticBodySource)
        assert source.data == b""

    def test_literal(self):
        source = build_body_source(LiteralBody.from_text("héllo"))
        assert isinstance(source, StaticBodySource)
        assert source.data == "héllo".encode()

    def test_file_is_read_once(self, tmp_path: Path):
        path = tmp_path / "body.json"
        path.write_bytes(b"{}")
        source = build_body_source(FileBody(path))
        path.unlink()
        assert isinstance(source, StaticBodySource)
        assert source.data == b"{}"

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(ConfigError, match="Cannot read data file"):
            build_body_source(FileBody(tmp_path / "missing.json"))

    def test_directory(self, body_dir: Path):
        source = build_body_source(DirectoryBody(body_dir, Order.RANDOM))
        assert isinstance(source, FileSetBodySource)
        assert source.order is Order.RANDOM
        assert len(source.files) == 3

    def test_manifest(self, manifest_file: Path):
        source = build_body_source(ManifestBody(manifest_file))
        assert isinstance(source, FileSetBodySource)
        assert [f.stem for f in source.files] == ["test2", "test1"]
