# src/stackreview/handoff.py
"""
Handoff to the external upload collaborator.

The core never persists anything. This module:
- converts extraction output into StackItems for review
- validates a batch against its modality template
- hands each artifact, in sequence order, to an UploadCollaborator which
  owns durable storage and identifier assignment

No retries: a failing upload ends the handoff and is reported in the result.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Protocol, Sequence

from .archive import ExtractedImage
from .errors import ConfigError, HandoffError
from .playback import StackItem

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# MODALITY TEMPLATES
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ModalityTemplate:
    """Per-modality upload limits."""
    key: str
    name: str
    description: str
    max_files: int
    require_caption: bool = False
    require_order: bool = False
    stack_mode: bool = False
    suggested_aspect: Optional[str] = None  # e.g. "1:1"

    def __post_init__(self):
        if self.max_files < 1:
            raise ConfigError(f"max_files must be >= 1, got {self.max_files}")


MODALITY_TEMPLATES: Dict[str, ModalityTemplate] = {
    'general': ModalityTemplate(
        key='general',
        name='General',
        description='Standard upload for any kind of medical image',
        max_files=10,
    ),
    'xray': ModalityTemplate(
        key='xray',
        name='X-Ray',
        description='Plain radiographs',
        max_files=4,
        require_caption=True,
        suggested_aspect='1:1',
    ),
    'ct': ModalityTemplate(
        key='ct',
        name='CT',
        description='Stack of sequential slices (ZIP)',
        max_files=200,
        require_order=True,
        stack_mode=True,
    ),
    'mri': ModalityTemplate(
        key='mri',
        name='MRI',
        description='Multiple sequences and slices',
        max_files=100,
        require_order=True,
        stack_mode=True,
    ),
}


def get_template(key: str) -> ModalityTemplate:
    try:
        return MODALITY_TEMPLATES[key]
    except KeyError:
        raise ConfigError(
            f"Unknown modality template {key!r}; expected one of {sorted(MODALITY_TEMPLATES)}"
        ) from None


# ═══════════════════════════════════════════════════════════════════════════════
# CONVERSION
# ═══════════════════════════════════════════════════════════════════════════════

def default_caption(image: ExtractedImage) -> str:
    return f"Image {image.order} - {image.name}"


def to_stack_items(images: Sequence[ExtractedImage]) -> List[StackItem]:
    """Convert extraction output into reviewable StackItems."""
    return [
        StackItem(
            id=f"temp_{idx}",
            image=img.data,
            caption=default_caption(img),
            sequence_order=img.order,
        )
        for idx, img in enumerate(images)
    ]


# ═══════════════════════════════════════════════════════════════════════════════
# UPLOAD
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class HandoffArtifact:
    """One possibly-edited image ready for persistence."""
    name: str
    data: bytes
    content_type: str
    sequence_order: int
    caption: Optional[str] = None

    @classmethod
    def from_extracted(cls, image: ExtractedImage, caption: Optional[str] = None) -> 'HandoffArtifact':
        return cls(
            name=image.name,
            data=image.data,
            content_type=image.content_type,
            sequence_order=image.order,
            caption=caption,
        )


class UploadCollaborator(Protocol):
    """External persistence. Returns the durable identifier it assigned."""
    def upload(self, artifact: HandoffArtifact) -> str: ...


@dataclass
class HandoffResult:
    success: bool = True
    error: Optional[str] = None
    uploaded: List[str] = field(default_factory=list)   # identifiers, in order

    @property
    def uploaded_count(self) -> int:
        return len(self.uploaded)


def validate_batch(artifacts: Sequence[HandoffArtifact], template: ModalityTemplate) -> None:
    """
    Check a batch against its template.

    Raises:
        HandoffError: too many files, or missing captions where required
    """
    if len(artifacts) > template.max_files:
        raise HandoffError(
            f"{template.name} accepts at most {template.max_files} files, got {len(artifacts)}"
        )
    if template.require_caption:
        missing = [a.name for a in artifacts if not (a.caption and a.caption.strip())]
        if missing:
            raise HandoffError(f"{template.name} requires a caption for: {', '.join(missing)}")
    if template.require_order:
        orders = [a.sequence_order for a in artifacts]
        if len(set(orders)) != len(orders):
            raise HandoffError(f"{template.name} requires a unique sequence order per image")


def hand_off(
    artifacts: Sequence[HandoffArtifact],
    template: ModalityTemplate,
    uploader: UploadCollaborator,
) -> HandoffResult:
    """
    Validate and hand a batch over to the uploader in sequence order.

    Template violations raise HandoffError before anything is uploaded.
    Upload failures stop the batch and are reported in the result.
    """
    try:
        validate_batch(artifacts, template)
    except HandoffError as exc:
        logger.warning(f"Handoff rejected: {exc}")
        raise

    result = HandoffResult()
    ordered = sorted(artifacts, key=lambda a: a.sequence_order)

    for artifact in ordered:
        try:
            identifier = uploader.upload(artifact)
        except Exception as e:
            result.success = False
            result.error = f"Upload of {artifact.name} failed: {e}"
            logger.warning(result.error)
            break
        result.uploaded.append(identifier)

    logger.info(f"Handed off {result.uploaded_count}/{len(ordered)} images ({template.key})")
    return result
