# Copyright 2024 Michael Maillet, Damien Davison, Sacha Davison
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Image reference parsing.
Parses base image references like 'alpine:3.19.1' or 'ghcr.io/org/app@sha256:...'
so policies can tell pinned images from floating ones.
"""

import re
from typing import Optional
from dataclasses import dataclass


_INVALID = re.compile(r'[\s"\'$]')


@dataclass
class ImageReference:
    """
    Parsed image reference. Unlike a pull client, the tag is left as None
    when the reference does not spell one out.

    Examples:
        - alpine -> docker.io/library/alpine (no tag)
        - alpine:3.19.1 -> docker.io/library/alpine:3.19.1
        - localhost:5000/app:v1 -> localhost:5000/app:v1
        - gcr.io/project/image@sha256:abc123... -> gcr.io/project/image@sha256:abc123...
    """

    registry: str
    repository: str
    tag: Optional[str] = None
    digest: Optional[str] = None

    DEFAULT_REGISTRY = "docker.io"
    DEFAULT_TAG = "latest"

    @classmethod
    def parse(cls, reference: str) -> "ImageReference":
        """
        Parse an image reference string.

        Args:
            reference: Image reference string (e.g., 'python:3.11-alpine3.19')

        Returns:
            Parsed ImageReference object.

        Raises:
            ValueError: If the reference is empty or contains characters that
                cannot appear in an image name (whitespace, quotes, unexpanded
                variables).
        """
        if not reference:
            raise ValueError("Empty image reference")
        if _INVALID.search(reference):
            raise ValueError(f"Invalid image reference: {reference!r}")

        digest = None
        if "@" in reference:
            reference, digest = reference.rsplit("@", 1)
            if not digest:
                raise ValueError("Empty digest in image reference")

        tag = None
        if ":" in reference:
            last_colon = reference.rfind(":")
            after_colon = reference[last_colon + 1 :]
            # localhost:5000/image -> the colon belongs to the registry port
            if "/" not in after_colon:
                tag = after_colon
                reference = reference[:last_colon]
                if not tag:
                    raise ValueError("Empty tag in image reference")

        parts = reference.split("/")
        if not all(parts):
            raise ValueError(f"Invalid image reference: {reference!r}")

        if len(parts) == 1:
            registry = cls.DEFAULT_REGISTRY
            repository = f"library/{parts[0]}"
        elif "." in parts[0] or ":" in parts[0] or parts[0] == "localhost":
            registry = parts[0]
            repository = "/".join(parts[1:])
        else:
            registry = cls.DEFAULT_REGISTRY
            repository = reference

        return cls(registry=registry, repository=repository, tag=tag, digest=digest)

    @staticmethod
    def looks_like_image(value: str) -> bool:
        """
        True for values that can only be an image reference, never a stage
        name or index (they carry a tag, a digest or a path).
        """
        return any(c in value for c in ":/@")

    @property
    def effective_tag(self) -> Optional[str]:
        """The tag a build would resolve to."""
        if self.digest:
            return self.tag
        return self.tag or self.DEFAULT_TAG

    @property
    def is_pinned(self) -> bool:
        """Pinned by digest, or by an explicit tag other than 'latest'."""
        if self.digest:
            return True
        return self.tag is not None and self.tag != self.DEFAULT_TAG
