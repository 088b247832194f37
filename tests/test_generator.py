"""Tests for the template code generator."""

import asyncio
import json
import re

import pytest

from preview_orchestrator.core.config import Settings
from preview_orchestrator.services.generator import (
    PROMPT_FILE,
    TemplateCodeGenerator,
    new_artifact_name,
    release_artifact,
)
from preview_orchestrator.workers.base import GenerationError

from tests.conftest import make_large_template


def test_generate_copies_bundled_template(tmp_path):
    generator = TemplateCodeGenerator(Settings().TEMPLATE_DIR, tmp_path)

    artifact = asyncio.run(generator.generate("A todo app"))

    assert artifact.parent == tmp_path
    assert (artifact / "index.html").is_file()
    assert (artifact / "styles.css").is_file()
    metadata = json.loads((artifact / PROMPT_FILE).read_text(encoding="utf-8"))
    assert metadata["prompt"] == "A todo app"
    assert metadata["template"] == "preview-template"


def test_each_generation_gets_its_own_directory(tmp_path):
    generator = TemplateCodeGenerator(Settings().TEMPLATE_DIR, tmp_path)

    first = asyncio.run(generator.generate("one"))
    second = asyncio.run(generator.generate("two"))

    assert first != second


def test_missing_template_raises_generation_error(tmp_path):
    output = tmp_path / "out"
    generator = TemplateCodeGenerator(tmp_path / "missing-template", output)

    with pytest.raises(GenerationError, match="Failed to copy template"):
        asyncio.run(generator.generate("A todo app"))

    assert not output.exists() or list(output.iterdir()) == []


def test_artifact_name_format():
    assert re.match(r"^preview_\d+_[a-z0-9]{9}$", new_artifact_name())


def test_release_artifact(tmp_path):
    artifact = tmp_path / "artifact"
    artifact.mkdir()
    (artifact / "index.html").write_text("<html></html>", encoding="utf-8")

    assert release_artifact(artifact)
    assert not artifact.exists()
    # Already gone is fine
    assert release_artifact(artifact)
    assert release_artifact(None)


def test_cancelled_generation_leaves_nothing_behind(tmp_path):
    """A copy abandoned mid-way is removed once the copy thread finishes."""
    output = tmp_path / "out"
    generator = TemplateCodeGenerator(make_large_template(tmp_path), output)

    async def generate_with_deadline():
        await asyncio.wait_for(generator.generate("A todo app"), timeout=0.001)

    with pytest.raises(asyncio.TimeoutError):
        asyncio.run(generate_with_deadline())

    # asyncio.run waits for the default executor, so the copy thread has finished
    assert not output.exists() or list(output.iterdir()) == []
