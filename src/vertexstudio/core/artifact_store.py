"""File-backed storage for generated images and videos.

Artifacts live flat in the outputs directory and the filename is the only
index: the generation id, the variant number and the artifact kind are all
encoded in it.

==================================  =========================================
Filename                            Meaning
==================================  =========================================
``result-{id}.{ext}``               the single image of a generation
``result-{id}-{variant}.{ext}``     one of several images of a generation
``result-{id}-video.mp4``           the video animated from that generation
==================================  =========================================

The extension is the MIME subtype of the image (``png`` when unknown).
Files that do not follow the pattern are ignored by listings, which keeps
``metadata.json`` and any stray files out of the results.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path

from .errors import NotFoundError, StorageError

logger = logging.getLogger(__name__)

PUBLIC_PREFIX = "/outputs"
DEFAULT_EXTENSION = "png"
VIDEO_EXTENSION = ".mp4"

_RESULT_PATTERN = re.compile(r"^result-(\d+)(?:-.*)?\.[^.]+$")
_VARIANT_SUFFIX = re.compile(r"^(result-\d+)(?:-\d+)?$")


def extract_generation_id(filename: str) -> int | None:
    """Parse the generation id out of an artifact filename.

    Examples:
        >>> extract_generation_id("result-123.png")
        123
        >>> extract_generation_id("result-123-video.mp4")
        123
        >>> extract_generation_id("not-a-result-file.png") is None
        True
    """
    match = _RESULT_PATTERN.match(filename)
    return int(match.group(1)) if match else None


def extension_for(mime_type: str | None) -> str:
    """Return the file extension for a MIME type (``image/jpeg`` -> ``jpeg``)."""
    if mime_type and "/" in mime_type:
        subtype = mime_type.split("/", 1)[1]
        if subtype:
            return subtype
    return DEFAULT_EXTENSION


def public_url(filename: str) -> str:
    return f"{PUBLIC_PREFIX}/{filename}"


def edited_filenames(original: str, mime_types: list[str]) -> list[str]:
    """Choose the filenames for the results of an edit.

    A single result replaces the original file (keeping its stem, taking the
    extension of the new MIME type).  Several results become numbered
    variants of the generation, dropping any variant suffix the original
    already had.

    Examples:
        >>> edited_filenames("result-7.png", ["image/png"])
        ['result-7.png']
        >>> edited_filenames("result-7-1.png", ["image/png", "image/jpeg"])
        ['result-7-0.png', 'result-7-1.jpeg']
    """
    stem = Path(original).stem
    if len(mime_types) == 1:
        return [f"{stem}.{extension_for(mime_types[0])}"]

    match = _VARIANT_SUFFIX.match(stem)
    base = match.group(1) if match else stem
    return [f"{base}-{i}.{extension_for(mime)}" for i, mime in enumerate(mime_types)]


@dataclass
class ArtifactGroup:
    """Public URLs of every artifact belonging to one generation id."""

    images: list[str] = field(default_factory=list)
    videos: list[str] = field(default_factory=list)


class ArtifactStore:
    """Read and write artifacts in the outputs directory.

    Args:
        outputs_dir: Directory that holds every artifact.
    """

    def __init__(self, outputs_dir: Path) -> None:
        self.outputs_dir = Path(outputs_dir)
        self.outputs_dir.mkdir(parents=True, exist_ok=True)

    def path_for(self, filename: str) -> Path:
        """Absolute path of *filename*; only the basename is honoured."""
        return self.outputs_dir / Path(filename).name

    def exists(self, filename: str) -> bool:
        return self.path_for(filename).is_file()

    def read(self, filename: str) -> bytes:
        """Return the bytes of an artifact.

        Raises:
            NotFoundError: If the artifact does not exist.
            StorageError: If it exists but cannot be read.
        """
        path = self.path_for(filename)
        if not path.is_file():
            raise NotFoundError("Image file not found")
        try:
            return path.read_bytes()
        except OSError as e:
            raise StorageError(f"Failed to read {path.name}: {e}") from e

    def save_as(self, data: bytes, filename: str) -> str:
        """Write *data* under *filename*, overwriting it, and return its URL."""
        path = self.path_for(filename)
        try:
            path.write_bytes(data)
        except OSError as e:
            raise StorageError(f"Failed to write {path.name}: {e}") from e
        logger.debug(f"Wrote {len(data)} bytes to {path}")
        return public_url(path.name)

    def save(
        self,
        data: bytes,
        mime_type: str,
        generation_id: int,
        variant: int | None = None,
    ) -> str:
        """Save one image of a generation and return its public URL."""
        extension = extension_for(mime_type)
        if variant is None:
            filename = f"result-{generation_id}.{extension}"
        else:
            filename = f"result-{generation_id}-{variant}.{extension}"
        return self.save_as(data, filename)

    def delete(self, filename: str) -> bool:
        """Delete an artifact if present.  Returns whether a file was removed."""
        path = self.path_for(filename)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageError(f"Failed to delete {path.name}: {e}") from e
        logger.info(f"Deleted {path.name}")
        return True

    @staticmethod
    def video_filename(generation_id: int) -> str:
        return f"result-{generation_id}-video{VIDEO_EXTENSION}"

    def delete_video(self, generation_id: int) -> bool:
        return self.delete(self.video_filename(generation_id))

    def save_video(self, data: bytes, generation_id: int) -> str:
        """Replace the video of a generation and return its public URL."""
        self.delete_video(generation_id)
        return self.save_as(data, self.video_filename(generation_id))

    def list_by_generation_id(self) -> dict[int, ArtifactGroup]:
        """Scan the outputs directory once and group artifacts by id.

        Returns:
            Mapping of generation id to its :class:`ArtifactGroup`, with
            image and video URLs sorted by filename.
        """
        groups: dict[int, ArtifactGroup] = {}
        try:
            entries = sorted(p for p in self.outputs_dir.iterdir() if p.is_file())
        except FileNotFoundError:
            return groups
        except OSError as e:
            raise StorageError(f"Failed to list {self.outputs_dir}: {e}") from e

        for path in entries:
            if path.suffix == ".json":
                continue
            generation_id = extract_generation_id(path.name)
            if generation_id is None:
                continue

            group = groups.setdefault(generation_id, ArtifactGroup())
            if path.suffix == VIDEO_EXTENSION:
                group.videos.append(public_url(path.name))
            else:
                group.images.append(public_url(path.name))

        return groups
