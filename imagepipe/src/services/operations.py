"""
Release operations applied to an already built image: tag, save, publish.
"""

import logging
from typing import List, Optional

from imagepipe.src.errors import (
    CommandError,
    MissingBuildContextError,
    OperationError,
    PublishError,
)
from imagepipe.src.models.image import ImageReference, build_image_references
from imagepipe.src.models.step import PublishSpec, PublishTarget, SaveSpec

logger = logging.getLogger(__name__)

def _require_image(built_image: Optional[str], operation: str) -> ImageReference:
    if not built_image:
        raise MissingBuildContextError(operation)
    return ImageReference.parse(built_image)

class TagOperationExecutor:
    """Applies additional tags to the built image."""

    def execute(self, tags: List[str], built_image: Optional[str], runtime) -> List[str]:
        """
        Tag the built image with each tag and return the new references.
        Re-applying an existing tag is harmless; `docker tag` simply repoints it.
        """
        source = _require_image(built_image, "apply tags")
        if not tags:
            logger.info("No additional tags to apply")
            return []

        targets = [source.with_tag(tag) for tag in dict.fromkeys(tags)]
        logger.info(f"Applying {len(targets)} additional tag(s) to image: {built_image}")

        try:
            for target in targets:
                runtime.tag_image(built_image, target)
        except CommandError as e:
            raise OperationError(
                f"Failed to apply tags to image '{built_image}': {e}",
                reason="tag",
                detail=e.stderr,
            ) from e

        logger.info(f"Successfully applied tags: {', '.join(targets)}")
        return targets

class SaveOperationExecutor:
    """Saves the built image to an archive."""

    def execute(self, spec: SaveSpec, built_image: Optional[str], runtime):
        _require_image(built_image, "save image")
        logger.info(
            f"Saving image '{built_image}' to '{spec.output_file}' "
            f"with compression: {spec.compression.value}"
        )

        try:
            runtime.save_image(built_image, spec.output_file, spec.compression)
        except (CommandError, OSError) as e:
            raise OperationError(
                f"Failed to save image '{built_image}' to '{spec.output_file}': {e}",
                reason="save",
                detail=str(e),
            ) from e

        logger.info(f"Successfully saved image to: {spec.output_file}")

class PublishOperationExecutor:
    """Pushes the built image to one or more named targets."""

    def execute(self, spec: PublishSpec, built_image: Optional[str], runtime):
        """
        Publish to every target. Targets are independent: each one is
        attempted, and failures are reported per target name.
        """
        source = _require_image(built_image, "publish image")
        logger.info(f"Publishing image '{built_image}' to {len(spec.targets)} target(s)")

        failures = {}
        for target in spec.targets:
            try:
                self.publish_to_target(built_image, source, target, spec, runtime)
            except CommandError as e:
                logger.error(f"Publishing to target '{target.name}' failed: {e}")
                failures[target.name] = e.stderr.strip() or str(e)

        if failures:
            raise PublishError(built_image, failures)

        logger.info("Successfully published image to all targets")

    def publish_to_target(
        self,
        built_image: str,
        source: ImageReference,
        target: PublishTarget,
        spec: PublishSpec,
        runtime,
    ):
        logger.info(f"Publishing to target: {target.name}")
        for target_ref in build_target_references(source, target, spec):
            runtime.tag_image(built_image, target_ref)
            runtime.push_image(target_ref)
            logger.info(f"Successfully published: {target_ref}")

def resolve_publish_tags(source: ImageReference, target: PublishTarget, spec: PublishSpec) -> List[str]:
    if target.tags:
        return list(target.tags)
    if spec.tags:
        return list(spec.tags)
    return [source.tag or "latest"]

def build_target_references(
    source: ImageReference,
    target: PublishTarget,
    spec: PublishSpec,
) -> List[str]:
    """
    Build the references an image is published under for one target.
    The registry is never inherited; repository and image name are, when the
    target does not set its own.
    """
    tags = resolve_publish_tags(source, target, spec)

    if target.repository or target.image_name:
        repository = target.repository
        image_name = target.image_name
        namespace = target.namespace
    elif target.namespace:
        repository = None
        image_name = source.image_name
        namespace = target.namespace
    else:
        repository = source.path
        image_name = None
        namespace = None

    return build_image_references(target.registry, namespace, repository, image_name, tags)
