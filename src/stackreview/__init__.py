# src/stackreview/__init__.py
"""
Stack Review - ordered diagnostic image stacks.

Three capabilities, no persistence:
- archive.py: ZIP extraction with filename-based order inference (ordering.py)
- editor.py: single-image crop/brightness/contrast editing with atomic export
- playback.py: ordered stack navigation with cine-style autoplay

handoff.py passes the ordered, possibly-edited artifacts to an external
upload collaborator. config.py and errors.py hold the shared configuration
structs and error taxonomy.
"""

from .errors import (
    StackReviewError,
    ArchiveReadError,
    ExportUnavailable,
    HandoffError,
    ConfigError,
)

from .config import (
    IMAGE_SUFFIXES,
    ExtractorConfig,
    EditorConfig,
    PlaybackConfig,
)

from .ordering import (
    OrderingMethod,
    OrderKey,
    PatternMatcher,
    SequenceOrderResolver,
    DEFAULT_MATCHERS,
    build_default_matchers,
    resolve_order,
    get_ordering_label,
)

from .archive import (
    ArchiveExtractor,
    ExtractedImage,
    ExtractionResult,
    extract_archive,
    format_size_label,
    guess_content_type,
    is_archive_upload,
)

from .editor import (
    AdjustmentState,
    CropRegion,
    EditedImage,
    RasterEditSession,
    apply_filters,
    to_display_range,
)

from .playback import (
    AsyncioScheduler,
    KeyEvent,
    KeyEventHub,
    PlaybackState,
    StackItem,
    StackPlaybackController,
)

from .handoff import (
    HandoffArtifact,
    HandoffResult,
    ModalityTemplate,
    MODALITY_TEMPLATES,
    UploadCollaborator,
    get_template,
    hand_off,
    to_stack_items,
    validate_batch,
)

__version__ = "0.1.0"
__all__ = [
    # Errors
    'StackReviewError',
    'ArchiveReadError',
    'ExportUnavailable',
    'HandoffError',
    'ConfigError',

    # Config
    'IMAGE_SUFFIXES',
    'ExtractorConfig',
    'EditorConfig',
    'PlaybackConfig',

    # Ordering
    'OrderingMethod',
    'OrderKey',
    'PatternMatcher',
    'SequenceOrderResolver',
    'DEFAULT_MATCHERS',
    'build_default_matchers',
    'resolve_order',
    'get_ordering_label',

    # Archive
    'ArchiveExtractor',
    'ExtractedImage',
    'ExtractionResult',
    'extract_archive',
    'format_size_label',
    'guess_content_type',
    'is_archive_upload',

    # Editor
    'AdjustmentState',
    'CropRegion',
    'EditedImage',
    'RasterEditSession',
    'apply_filters',
    'to_display_range',

    # Playback
    'AsyncioScheduler',
    'KeyEvent',
    'KeyEventHub',
    'PlaybackState',
    'StackItem',
    'StackPlaybackController',

    # Handoff
    'HandoffArtifact',
    'HandoffResult',
    'ModalityTemplate',
    'MODALITY_TEMPLATES',
    'UploadCollaborator',
    'get_template',
    'hand_off',
    'to_stack_items',
    'validate_batch',
]
