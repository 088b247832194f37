"""
Code Generator
Turns a prompt into a directory of app code ready to deploy.

The current generator clones a predefined template and records the prompt
next to it. A model-backed generator only has to implement CodeGenerator.
"""

import asyncio
import json
import logging
import shutil
import threading
import time
import uuid
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from preview_orchestrator.workers.base import GenerationError

logger = logging.getLogger(__name__)

PROMPT_FILE = "preview.json"


class CodeGenerator(ABC):
    """Capability: produce a deployable artifact for a prompt."""

    @abstractmethod
    async def generate(self, prompt: str) -> Path:
        """
        Generate app code for a prompt.

        Returns:
            Path to the generated app directory
        """


class TemplateCodeGenerator(CodeGenerator):
    """Copies a static template into a fresh output directory."""

    def __init__(self, template_dir: Path, output_root: Path):
        self.template_dir = Path(template_dir)
        self.output_root = Path(output_root)

    async def generate(self, prompt: str) -> Path:
        output_path = self.output_root / new_artifact_name()
        abandoned = threading.Event()

        try:
            await asyncio.to_thread(self._copy_template, output_path, abandoned)
            metadata = {"prompt": prompt, "template": self.template_dir.name}
            (output_path / PROMPT_FILE).write_text(json.dumps(metadata, indent=2), encoding="utf-8")
        except asyncio.CancelledError:
            # The copy thread cannot be interrupted; it removes its output when done
            abandoned.set()
            release_artifact(output_path)
            logger.warning(f"[Generator] Generation cancelled, discarding {output_path}")
            raise
        except OSError as e:
            release_artifact(output_path)
            raise GenerationError(f"Failed to copy template: {e}") from e

        logger.info(f"[Generator] Template copied to: {output_path}")
        return output_path

    def _copy_template(self, output_path: Path, abandoned: threading.Event) -> None:
        try:
            shutil.copytree(self.template_dir, output_path)
        finally:
            if abandoned.is_set():
                release_artifact(output_path)


def new_artifact_name() -> str:
    """preview_<epoch-ms>_<suffix>, unique per call."""
    return f"preview_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


def release_artifact(path: Optional[Path]) -> bool:
    """
    Delete a generated artifact. Best-effort: errors are logged, never raised.

    Returns:
        True if nothing is left on disk
    """
    if path is None:
        return True
    try:
        shutil.rmtree(path)
    except FileNotFoundError:
        return True
    except OSError as e:
        logger.warning(f"[Generator] Could not remove artifact {path}: {e}")
        return False
    return True


__all__ = ["CodeGenerator", "TemplateCodeGenerator", "new_artifact_name", "release_artifact"]
