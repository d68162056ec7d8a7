from __future__ import annotations

import logging
import posixpath
from dataclasses import dataclass
from urllib.parse import urlparse

from .chroot import image_cmd

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GitSource:
    url: str
    tag: str

    def describe(self) -> str:
        return f"{self.url}@{self.tag}"


@dataclass(frozen=True)
class ArchiveSource:
    url: str

    @property
    def filename(self) -> str:
        name = posixpath.basename(urlparse(self.url).path)
        return name or "source.tar"

    def describe(self) -> str:
        return self.url


def git_clone(target_root: str, src: GitSource, dest: str, *, dry_run: bool = False) -> None:
    """Shallow clone of a single tag."""

    image_cmd(
        target_root,
        ["git", "clone", "--depth", "1", "--branch", src.tag, src.url, dest],
        dry_run=dry_run,
    )


def download_archive(target_root: str, src: ArchiveSource, dest: str, *, dry_run: bool = False) -> None:
    """Download an archive next to dest and unpack it into dest.

    Release tarballs carry one top-level directory which is stripped, so
    dest is the source tree itself.
    """

    archive = posixpath.join(posixpath.dirname(dest), src.filename)
    image_cmd(target_root, ["curl", "-fsSL", "-o", archive, src.url], dry_run=dry_run)
    image_cmd(target_root, ["mkdir", "-p", dest], dry_run=dry_run)
    image_cmd(target_root, ["tar", "-xf", archive, "-C", dest, "--strip-components=1"], dry_run=dry_run)
    image_cmd(target_root, ["rm", "-f", archive], check=False, dry_run=dry_run)


def fetch_source(target_root: str, src: GitSource | ArchiveSource, dest: str, *, dry_run: bool = False) -> None:
    # A leftover tree from an interrupted run would make git clone fail.
    image_cmd(target_root, ["rm", "-rf", dest], check=False, dry_run=dry_run)
    image_cmd(target_root, ["mkdir", "-p", posixpath.dirname(dest.rstrip("/")) or "/"], dry_run=dry_run)

    logger.info("Fetching %s -> %s", src.describe(), dest)
    if isinstance(src, GitSource):
        git_clone(target_root, src, dest, dry_run=dry_run)
    else:
        download_archive(target_root, src, dest, dry_run=dry_run)
