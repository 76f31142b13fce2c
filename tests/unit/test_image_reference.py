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
Unit tests for image reference parsing and string interpolation.
"""
import pytest
from stagecheck.REGISTRY.image_reference import ImageReference
from stagecheck.UTILS.string_interpolation import EnvironmentInterpolator


class TestImageReference:
    """Tests for ImageReference parsing."""

    def test_parse_simple_name(self):
        """An untagged name keeps tag None but resolves to latest."""
        ref = ImageReference.parse("alpine")
        assert ref.registry == "docker.io"
        assert ref.repository == "library/alpine"
        assert ref.tag is None
        assert ref.effective_tag == "latest"
        assert not ref.is_pinned

    def test_parse_with_tag(self):
        ref = ImageReference.parse("python:3.11-alpine3.19")
        assert ref.repository == "library/python"
        assert ref.tag == "3.11-alpine3.19"
        assert ref.is_pinned

    def test_latest_is_not_pinned(self):
        assert not ImageReference.parse("alpine:latest").is_pinned

    def test_parse_user_image(self):
        ref = ImageReference.parse("myuser/myimage:v1")
        assert ref.registry == "docker.io"
        assert ref.repository == "myuser/myimage"

    def test_parse_full_reference(self):
        ref = ImageReference.parse("gcr.io/distroless/static-debian12:nonroot")
        assert ref.registry == "gcr.io"
        assert ref.repository == "distroless/static-debian12"
        assert ref.tag == "nonroot"

    def test_parse_with_digest(self):
        ref = ImageReference.parse("alpine@sha256:abc123")
        assert ref.digest == "sha256:abc123"
        assert ref.tag is None
        assert ref.is_pinned

    def test_parse_registry_port(self):
        ref = ImageReference.parse("localhost:5000/app:v2")
        assert ref.registry == "localhost:5000"
        assert ref.repository == "app"
        assert ref.tag == "v2"

    @pytest.mark.parametrize("value", ["", "alpine:", "bad image", "a//b", "alpine@", "$IMAGE"])
    def test_invalid(self, value):
        with pytest.raises(ValueError):
            ImageReference.parse(value)

    @pytest.mark.parametrize("value, expected", [
        ("builder", False), ("0", False), ("nginx:1.25", True), ("org/tool", True), ("a@sha256:1", True),
    ])
    def test_looks_like_image(self, value, expected):
        assert ImageReference.looks_like_image(value) == expected


class TestEnvironmentInterpolator:
    """Tests for variable interpolation."""

    def test_forms(self):
        context = {"A": "1", "EMPTY": ""}
        assert EnvironmentInterpolator.interpolate("$A-${A}", context) == "1-1"
        assert EnvironmentInterpolator.interpolate("${EMPTY:-d}", context) == "d"
        assert EnvironmentInterpolator.interpolate("${A:+set}${EMPTY:+set}", context) == "set"

    def test_missing_variable(self):
        with pytest.raises(KeyError):
            EnvironmentInterpolator.interpolate("${MISSING}", {})

    def test_has_variables(self):
        assert EnvironmentInterpolator.has_variables("node:${V}-alpine")
        assert not EnvironmentInterpolator.has_variables("node:20-alpine")
