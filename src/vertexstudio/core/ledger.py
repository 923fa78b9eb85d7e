"""Prompt history ledger stored as a single JSON document.

The ledger records, for each generation id, the prompts that produced its
current image (the creation prompt followed by every edit prompt in the
order applied), the service-rewritten version of the creation prompt and
the prompts of every video animated from it.

Document shape (``outputs/metadata.json``)::

    [
      {
        "id": 1718000000000,
        "prompts": ["a red fox", "add snow"],
        "enhancedPrompt": "A photorealistic red fox ...",
        "videoPrompts": ["the fox runs"]
      }
    ]

Older documents stored a single ``"prompt"`` string per entry; those are
upgraded to a one-element ``"prompts"`` list when loaded.

Every mutation is a whole-document load-modify-store.  Mutations are
serialised through one lock per ledger instance so concurrent requests in
the same process cannot lose each other's updates, and the document is
replaced atomically so a crash never leaves a half-written file.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from dataclasses import dataclass, field
from pathlib import Path

from .errors import StorageError

logger = logging.getLogger(__name__)


@dataclass
class GenerationRecord:
    """Prompt history of one generation id."""

    id: int
    prompts: list[str] = field(default_factory=list)
    enhanced_prompt: str | None = None
    video_prompts: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "prompts": list(self.prompts),
            "enhancedPrompt": self.enhanced_prompt,
            "videoPrompts": list(self.video_prompts),
        }

    @classmethod
    def from_dict(cls, item: dict) -> GenerationRecord | None:
        """Build a record from a ledger entry, or ``None`` if it is unusable.

        Handles both the current ``prompts`` list and the legacy single
        ``prompt`` string.  Entries without an id, or without any prompt
        or video prompt, are discarded.
        """
        generation_id = item.get("id")
        if not generation_id or isinstance(generation_id, bool):
            return None
        try:
            generation_id = int(generation_id)
        except (TypeError, ValueError):
            logger.warning(f"Skipping ledger entry with invalid id: {generation_id!r}")
            return None

        prompts = item.get("prompts")
        if not isinstance(prompts, list):
            legacy = item.get("prompt")
            prompts = [legacy] if legacy else []
        video_prompts = item.get("videoPrompts")
        if not isinstance(video_prompts, list):
            video_prompts = []

        if not prompts and not video_prompts:
            return None

        return cls(
            id=generation_id,
            prompts=[str(p) for p in prompts],
            enhanced_prompt=item.get("enhancedPrompt"),
            video_prompts=[str(p) for p in video_prompts],
        )


class MetadataLedger:
    """Load and mutate the JSON prompt ledger.

    Args:
        path: Location of ``metadata.json``.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._lock = threading.RLock()

    def load(self) -> dict[int, GenerationRecord]:
        """Read the ledger, returning an empty mapping when absent or malformed."""
        if not self.path.exists():
            return {}

        try:
            with open(self.path, encoding="utf-8") as handle:
                raw_entries = json.load(handle)
        except (OSError, ValueError) as e:
            logger.error(f"Error loading metadata from {self.path}: {e}", exc_info=True)
            return {}

        if not isinstance(raw_entries, list):
            logger.error(f"Ignoring metadata in {self.path}: expected a list")
            return {}

        records: dict[int, GenerationRecord] = {}
        for item in raw_entries:
            if not isinstance(item, dict):
                continue
            record = GenerationRecord.from_dict(item)
            if record is not None:
                records[record.id] = record
        return records

    def get(self, generation_id: int) -> GenerationRecord | None:
        return self.load().get(generation_id)

    def _save(self, records: dict[int, GenerationRecord]) -> None:
        payload = [record.to_dict() for record in records.values()]
        self.path.parent.mkdir(parents=True, exist_ok=True)
        try:
            fd, tmp_name = tempfile.mkstemp(
                dir=self.path.parent, prefix=".metadata-", suffix=".tmp"
            )
        except OSError as e:
            raise StorageError(f"Failed to write metadata: {e}") from e
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(payload, handle, indent=2)
            os.replace(tmp_name, self.path)
        except (OSError, TypeError, ValueError) as e:
            Path(tmp_name).unlink(missing_ok=True)
            raise StorageError(f"Failed to write metadata: {e}") from e

    def _update(self, generation_id: int, mutate) -> GenerationRecord:
        with self._lock:
            records = self.load()
            record = records.get(generation_id) or GenerationRecord(id=generation_id)
            mutate(record)
            records[generation_id] = record
            self._save(records)
            return record

    def record_creation(
        self,
        generation_id: int,
        prompt: str,
        enhanced_prompt: str | None = None,
    ) -> GenerationRecord:
        """Record the creation prompt of a generation.

        The prompt is appended unless it is already the most recent entry,
        so saving the same creation twice does not duplicate it.  Existing
        video prompts are preserved.
        """

        def mutate(record: GenerationRecord) -> None:
            if not record.prompts or record.prompts[-1] != prompt:
                record.prompts.append(prompt)
            if record.enhanced_prompt is None:
                record.enhanced_prompt = enhanced_prompt

        return self._update(generation_id, mutate)

    def append_edit(self, generation_id: int, edit_prompt: str) -> GenerationRecord:
        """Append an edit prompt; blank prompts are ignored."""
        edit_prompt = edit_prompt.strip()

        def mutate(record: GenerationRecord) -> None:
            if edit_prompt:
                record.prompts.append(edit_prompt)

        return self._update(generation_id, mutate)

    def append_video_prompt(self, generation_id: int, prompt: str) -> GenerationRecord:
        """Append a video prompt; blank prompts are ignored."""
        prompt = prompt.strip()

        def mutate(record: GenerationRecord) -> None:
            if prompt:
                record.video_prompts.append(prompt)

        return self._update(generation_id, mutate)
