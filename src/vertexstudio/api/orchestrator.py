"""Request orchestration for the generation endpoints.

:class:`GenerationOrchestrator` ties the remote client, the artifact store
and the ledger together.  Each public method is one endpoint: a straight
sequence of validate, remote call, persist and respond, aborting on the
first failure by raising a :class:`~vertexstudio.core.errors.StudioError`.
Route handlers only translate the returned dictionaries to JSON.

Consistency between the artifact files and the ledger is this module's
responsibility; nothing spans both in a transaction.  When a create fails
after some of its images were written, those files are removed again so
the listing never shows an image without its prompt.  An edit that fails
while writing cannot restore the image it overwrote, so it is logged and
the ledger is left as it was.
"""

from __future__ import annotations

import logging
import threading
import time
from pathlib import PurePosixPath

from vertexstudio.api.models import EditImageRequest, GenerateImageRequest, GenerateVideoRequest
from vertexstudio.core.artifact_store import ArtifactStore, edited_filenames, extract_generation_id
from vertexstudio.core.errors import StudioError, ValidationError
from vertexstudio.core.ledger import MetadataLedger
from vertexstudio.core.vertex_client import VertexClient

logger = logging.getLogger(__name__)


class GenerationIdSource:
    """Issue millisecond timestamp ids that strictly increase.

    Two requests in the same millisecond (or a clock stepping backwards)
    still receive distinct, increasing ids for the life of the process.
    """

    def __init__(self, clock=time.time) -> None:
        self._clock = clock
        self._last = 0
        self._lock = threading.Lock()

    def next_id(self) -> int:
        with self._lock:
            self._last = max(int(self._clock() * 1000), self._last + 1)
            return self._last


def resolve_generation_id(image_path: str) -> tuple[str, int]:
    """Split a public image path into its filename and generation id.

    Raises:
        ValidationError: If the filename does not follow the artifact
            naming convention.
    """
    filename = PurePosixPath(image_path).name
    generation_id = extract_generation_id(filename)
    if generation_id is None:
        raise ValidationError(
            "Invalid image path format", details=f"Unrecognised image path: {image_path}"
        )
    return filename, generation_id


class GenerationOrchestrator:
    """Run the create, edit, animate and list flows.

    Args:
        client: Remote generation client.
        store: Artifact store for the outputs directory.
        ledger: Prompt ledger stored next to the artifacts.
        ids: Source of new generation ids.
    """

    def __init__(
        self,
        client: VertexClient,
        store: ArtifactStore,
        ledger: MetadataLedger,
        ids: GenerationIdSource | None = None,
    ) -> None:
        self.client = client
        self.store = store
        self.ledger = ledger
        self.ids = ids or GenerationIdSource()

    async def generate_image(self, req: GenerateImageRequest) -> dict:
        """Create a new generation from a text prompt.

        Returns:
            Dictionary with ``success``, ``id``, ``prompts``,
            ``enhancedPrompt``, ``resultImages`` and ``count``.
        """
        generation_id = self.ids.next_id()
        images = await self.client.generate_image(
            req.prompt,
            sample_count=req.sample_count,
            aspect_ratio=req.aspect_ratio,
            safety_setting=req.safety_setting,
            person_generation=req.person_generation,
        )

        enhanced_prompt = images[0].enhanced_prompt
        saved: list[str] = []
        numbered = len(images) > 1
        try:
            for i, image in enumerate(images):
                variant = i if numbered else None
                saved.append(self.store.save(image.data, image.mime_type, generation_id, variant))
            record = self.ledger.record_creation(generation_id, req.prompt, enhanced_prompt)
        except StudioError:
            logger.error(f"Rolling back {len(saved)} image(s) of generation {generation_id}")
            for url in saved:
                self.store.delete(PurePosixPath(url).name)
            raise

        logger.info(f"Generation {generation_id} created with {len(saved)} image(s)")

        return {
            "success": True,
            "id": generation_id,
            "prompts": record.prompts,
            "enhancedPrompt": enhanced_prompt,
            "resultImages": saved,
            "count": len(saved),
        }

    async def edit_image(self, req: EditImageRequest) -> dict:
        """Edit an existing image and append the edit to its prompt history.

        Any video of the generation is deleted, since it no longer matches
        the image.

        Raises:
            ValidationError: The image path does not name an artifact.
            NotFoundError: The image file does not exist.
        """
        filename, generation_id = resolve_generation_id(req.image_path)
        source = self.store.read(filename)

        images = await self.client.edit_image(
            source,
            req.edit_prompt,
            sample_count=req.sample_count,
            safety_setting=req.safety_setting,
            person_generation=req.person_generation,
        )

        self.store.delete_video(generation_id)

        targets = edited_filenames(filename, [image.mime_type for image in images])
        saved: list[str] = []
        try:
            for image, target in zip(images, targets):
                saved.append(self.store.save_as(image.data, target))
        except StudioError:
            logger.error(
                f"Edit of generation {generation_id} failed after writing {len(saved)} image(s); "
                f"overwritten files are not restored"
            )
            raise

        record = self.ledger.append_edit(generation_id, req.edit_prompt)
        logger.info(f"Generation {generation_id} edited ({len(saved)} image(s))")

        return {
            "success": True,
            "id": generation_id,
            "prompts": record.prompts,
            "editPrompt": req.edit_prompt,
            "enhancedPrompt": images[0].enhanced_prompt,
            "resultImages": saved,
            "count": len(saved),
        }

    async def generate_video(self, req: GenerateVideoRequest) -> dict:
        """Animate an existing image, replacing any previous video.

        Nothing is written unless the remote operation succeeds.
        """
        filename, generation_id = resolve_generation_id(req.image_path)
        source = self.store.read(filename)

        video = await self.client.generate_video(
            source,
            req.prompt,
            aspect_ratio=req.aspect_ratio,
            duration_seconds=req.duration,
        )

        video_url = self.store.save_video(video, generation_id)
        self.ledger.append_video_prompt(generation_id, req.prompt)
        logger.info(f"Generation {generation_id} animated: {video_url}")

        return {
            "success": True,
            "id": generation_id,
            "videoUrl": video_url,
            "prompt": req.prompt,
        }

    def list_results(self) -> dict:
        """List every generation that still has an image, newest first."""
        records = self.ledger.load()
        results = []

        groups = self.store.list_by_generation_id()
        for generation_id in sorted(groups, reverse=True):
            group = groups[generation_id]
            if not group.images:
                continue

            record = records.get(generation_id)
            prompts = record.prompts if record else []
            entry = {
                "id": generation_id,
                "prompts": prompts or [f"Generated image {generation_id}"],
                "videoPrompts": record.video_prompts if record else [],
                "resultImages": group.images,
            }
            if group.videos:
                entry["resultVideos"] = group.videos
            results.append(entry)

        return {"results": results}
