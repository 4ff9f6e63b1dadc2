"""
Image reference parsing and construction.
"""

from pydantic import BaseModel
from typing import List, Optional

DEFAULT_TAG = "latest"

class ImageReference(BaseModel):
    """A parsed image reference: [registry/]path[:tag][@digest]."""

    registry: str = ""
    path: str
    tag: str = ""
    digest: str = ""

    @classmethod
    def parse(cls, ref: str) -> "ImageReference":
        if not ref or not ref.strip():
            raise ValueError("Image reference must not be empty")

        name, _, digest = ref.strip().partition("@")

        # A colon after the last slash separates the tag; earlier ones belong to a registry port
        tag = ""
        last_slash = name.rfind("/")
        last_colon = name.rfind(":")
        if last_colon > last_slash:
            name, tag = name[:last_colon], name[last_colon + 1:]

        if not tag and not digest:
            tag = DEFAULT_TAG

        registry = ""
        parts = name.split("/")
        if len(parts) > 1 and ("." in parts[0] or ":" in parts[0] or parts[0] == "localhost"):
            registry = parts[0]
            name = "/".join(parts[1:])

        if not name:
            raise ValueError(f"Invalid image reference '{ref}'")

        return cls(registry=registry, path=name, tag=tag, digest=digest)

    @property
    def namespace(self) -> str:
        return self.path.rpartition("/")[0]

    @property
    def image_name(self) -> str:
        return self.path.rpartition("/")[2]

    @property
    def repository(self) -> str:
        """Reference without tag or digest."""
        return f"{self.registry}/{self.path}" if self.registry else self.path

    def with_tag(self, tag: str) -> str:
        return f"{self.repository}:{tag}"

    def __str__(self) -> str:
        ref = self.repository
        if self.tag:
            ref += f":{self.tag}"
        if self.digest:
            ref += f"@{self.digest}"
        return ref

def build_repository_style_reference(registry: str, repository: str) -> str:
    return f"{registry}/{repository}" if registry else repository

def build_namespace_style_reference(registry: str, namespace: str, image_name: str) -> str:
    return "/".join(part for part in (registry, namespace, image_name) if part)

def build_image_references(
    registry: Optional[str],
    namespace: Optional[str],
    repository: Optional[str],
    image_name: Optional[str],
    tags: List[str],
) -> List[str]:
    """
    Build full image references from naming components.
    Repository style wins over namespace + image name style.
    Returns an empty list when neither repository nor image name is given.
    """
    registry = registry or ""
    if repository:
        base = build_repository_style_reference(registry, repository)
    elif image_name:
        base = build_namespace_style_reference(registry, namespace or "", image_name)
    else:
        return []

    return [f"{base}:{tag}" for tag in tags]
