"""Request body sources.

A ``BodySpec`` is turned into a ``BodySource`` once, before the run
starts. Every request then asks the source for the body of its index,
without branching on the kind of spec at each call site.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from loadburst._internal.errors import ConfigError, RequestError
from loadburst._internal.logging import get_logger
from loadburst.engine.config import (
    BodySpec,
    DirectoryBody,
    FileBody,
    LiteralBody,
    ManifestBody,
    Order,
)

if TYPE_CHECKING:
    import random

logger = get_logger("engine.body")


@dataclass(frozen=True)
class ResolvedBody:
    """The bytes to send for one request.

    Attributes:
        data: Request payload (may be empty).
        label: Base name (without extension) of the file the payload came
            from, or None when the body does not come from a file set.
    """

    data: bytes
    label: str | None = None


class BodyReadError(RequestError):
    """Raised when the file selected for a request cannot be read."""

    def __init__(self, message: str, label: str | None = None) -> None:
        super().__init__(message)
        self.label = label


class BodySource(ABC):
    """Resolves the request body for a given request index."""

    @abstractmethod
    async def resolve(self, index: int, rng: random.Random) -> ResolvedBody:
        """Return the body for request ``index``.

        Args:
            index: 0-based submission index of the request.
            rng: The calling worker's random source.

        Returns:
            The resolved body.

        Raises:
            BodyReadError: If the selected file cannot be read. This is a
                per-request failure, not a fatal one.
        """


class StaticBodySource(BodySource):
    """Returns the same bytes for every request."""

    def __init__(self, data: bytes = b"") -> None:
        self._body = ResolvedBody(data=data)

    @property
    def data(self) -> bytes:
        return self._body.data

    async def resolve(self, index: int, rng: random.Random) -> ResolvedBody:
        return self._body


class FileSetBodySource(BodySource):
    """Picks one file per request from a fixed list of candidate files.

    The list is built once and shared read-only by all workers. With
    ``Order.SEQUENTIAL`` request ``i`` gets file ``i mod k``; with
    ``Order.RANDOM`` every request draws an independent uniform index from
    the worker's own random source, so files may repeat or be skipped.
    The selected file is read when the request is dispatched.
    """

    def __init__(self, files: list[Path], order: Order = Order.SEQUENTIAL) -> None:
        if not files:
            msg = "A file set body source needs at least one file"
            raise ConfigError(msg)
        self._files = tuple(files)
        self._order = order

    @property
    def files(self) -> tuple[Path, ...]:
        return self._files

    @property
    def order(self) -> Order:
        return self._order

    def select(self, index: int, rng: random.Random) -> Path:
        """Return the file that serves as the body of request ``index``."""
        if self._order is Order.RANDOM:
            return self._files[rng.randrange(len(self._files))]
        return self._files[index % len(self._files)]

    async def resolve(self, index: int, rng: random.Random) -> ResolvedBody:
        path = self.select(index, rng)
        label = path.stem
        try:
            data = await asyncio.to_thread(path.read_bytes)
        except OSError as exc:
            msg = f"{type(exc).__name__}: cannot read body file {path}: {exc.strerror or exc}"
            raise BodyReadError(msg, label=label) from exc
        return ResolvedBody(data=data, label=label)


def list_directory(path: Path) -> list[Path]:
    """List the regular files of ``path`` sorted by name.

    Raises:
        ConfigError: If the directory cannot be read or holds no files.
    """
    try:
        files = sorted((p for p in path.iterdir() if p.is_file()), key=lambda p: p.name)
    except OSError as exc:
        msg = f"Cannot read input directory {path}: {exc}"
        raise ConfigError(msg) from exc
    if not files:
        msg = f"Input directory contains no files: {path}"
        raise ConfigError(msg)
    return files


def parse_manifest(path: Path) -> list[Path]:
    """Parse a manifest file into the list of body files it names.

    One path per line; blank lines and ``#`` comments are skipped, and
    relative paths are taken relative to the manifest's directory. Entries
    keep their manifest order. Whether each entry is readable is checked
    per request, not here.

    Raises:
        ConfigError: If the manifest cannot be read or lists no entries.
    """
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        msg = f"Cannot read manifest {path}: {exc}"
        raise ConfigError(msg) from exc

    base = path.parent
    entries: list[Path] = []
    for line in text.splitlines():
        entry = line.strip()
        if not entry or entry.startswith("#"):
            continue
        candidate = Path(entry).expanduser()
        entries.append(candidate if candidate.is_absolute() else base / candidate)

    if not entries:
        msg = f"Manifest lists no body files: {path}"
        raise ConfigError(msg)
    return entries


def build_body_source(spec: BodySpec | None) -> BodySource:
    """Turn a body specification into a ``BodySource``.

    Single files are read here, directories listed and manifests parsed,
    so every problem with the source itself surfaces before any request
    is sent.

    Args:
        spec: The run's body specification, or None for no body.

    Returns:
        A BodySource for the run.

    Raises:
        ConfigError: If the source cannot be read.
    """
    if spec is None:
        return StaticBodySource()

    if isinstance(spec, LiteralBody):
        return StaticBodySource(spec.data)

    if isinstance(spec, FileBody):
        try:
            data = spec.path.read_bytes()
        except OSError as exc:
            msg = f"Cannot read data file {spec.path}: {exc}"
            raise ConfigError(msg) from exc
        logger.debug("Loaded body from %s (%d bytes)", spec.path, len(data))
        return StaticBodySource(data)

    if isinstance(spec, DirectoryBody):
        files = list_directory(spec.path)
        logger.debug("Found %d body files in %s", len(files), spec.path)
        return FileSetBodySource(files, spec.order)

    if isinstance(spec, ManifestBody):
        entries = parse_manifest(spec.path)
        logger.debug("Manifest %s lists %d body files", spec.path, len(entries))
        return FileSetBodySource(entries, spec.order)

    msg = f"Unsupported body specification: {spec!r}"
    raise ConfigError(msg)
