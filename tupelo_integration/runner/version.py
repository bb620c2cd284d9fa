# Where: tupelo_integration/runner/version.py
# What: Work out which service version a backend image provides.
# Why: Testers branch on TUPELO_VERSION, so every backend must report something.
from __future__ import annotations

import logging
import re

from tupelo_integration.runner import constants
from tupelo_integration.runner.engine import DockerEngine
from tupelo_integration.runner.errors import EngineError

logger = logging.getLogger(__name__)

_VERSION_RE = re.compile(r"v(\d+\.\d+\.\d+)")


def version_from_output(output: str) -> str:
    matched = _VERSION_RE.search(output or "")
    if matched:
        return matched.group(1)
    return ""


def image_tag(image: str) -> str:
    """Return the tag of an image reference, or "" when it has none.

    ``registry:5000/app`` carries a registry port, not a tag, and digests
    (``app@sha256:...``) and bare image IDs (``sha256:...``) are not tags either.
    """
    reference = image.split("@", 1)[0]
    if reference.startswith("sha256:"):
        return ""
    last_segment = reference.rsplit("/", 1)[-1]
    if ":" not in last_segment:
        return ""
    return last_segment.rsplit(":", 1)[1]


def resolve_version(engine: DockerEngine, image: str) -> str:
    output = ""
    if image:
        try:
            output = engine.run_output(image, ["version"])
        except EngineError as exc:
            logger.info("version lookup failed for %s: %s", image, exc)
    return version_from_output(output) or image_tag(image) or constants.FALLBACK_VERSION
