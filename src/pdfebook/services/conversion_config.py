"""
Conversion Configuration and Resolution.

This module contains the option dataclasses for a conversion run and the
resolution step that turns caller options into the concrete settings the
pipeline uses: sync-target compression policy first, then the memory
profile's worker plan. Resolution happens once, before rasterization; the
resulting ResolvedConfig is immutable for the rest of the run.
"""

import dataclasses
import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pdfebook.constants import (
    AUTO_TARGET_CAP_MB,
    AUTO_TARGET_INPUT_FRACTION,
    BYTES_PER_MB,
    DEFAULT_IMAGE_MAX_WIDTH,
    DEFAULT_IMAGE_QUALITY,
    DEFAULT_MAX_FILE_SIZE_MB,
    MAXIMUM_COMPRESSION_QUALITY_CAP,
    MINIMUM_COMPRESSION_QUALITY_FLOOR,
    MODERATE_RATIO,
    SYNC_QUALITY_FLOOR,
    SYNC_QUALITY_STEP,
    SYNC_QUALITY_THRESHOLD,
    SYNC_WIDTH_FLOOR,
    SYNC_WIDTH_STEP,
    SYNC_WIDTH_THRESHOLD,
    VERY_AGGRESSIVE_QUALITY_FLOOR,
    VERY_AGGRESSIVE_QUALITY_STEP,
    VERY_AGGRESSIVE_RATIO,
    VERY_AGGRESSIVE_WIDTH_FLOOR,
    VERY_AGGRESSIVE_WIDTH_STEP,
)
from pdfebook.services.resource_manager import (
    ResourceTier,
    compute_worker_plan,
    detect_resources,
)
from pdfebook.utils.exceptions import ConfigError

logger = logging.getLogger(__name__)


class OutputFormat(Enum):
    """Supported output containers."""

    EPUB = "epub"
    MOBI = "mobi"
    AZW3 = "azw3"
    PDF = "pdf"

    @property
    def extension(self) -> str:
        return f".{self.value}"

    @property
    def display_name(self) -> str:
        return self.value.upper()


class CompressionLevel(Enum):
    MINIMUM = "minimum"
    BALANCED = "balanced"
    MAXIMUM = "maximum"


class MemoryProfile(Enum):
    """Rasterizer scheduling profiles; AUTO picks one from detected RAM."""

    AUTO = "auto"
    LOW_MEMORY = "low-memory"
    BALANCED = "balanced"
    HIGH_PERFORMANCE = "high-performance"


class SyncPolicy(Enum):
    """Size-reduction step applied for a sync target."""

    NONE = "none"
    MODERATE = "moderate"
    VERY_AGGRESSIVE = "very-aggressive"


SYNC_TARGET_CHOICES: tuple[str, ...] = ("no-limit", "auto", "10", "25", "50")

_PROFILE_TIERS: dict[MemoryProfile, ResourceTier] = {
    MemoryProfile.LOW_MEMORY: ResourceTier.CONSTRAINED,
    MemoryProfile.BALANCED: ResourceTier.MODERATE,
    MemoryProfile.HIGH_PERFORMANCE: ResourceTier.ABUNDANT,
}

_ENUM_FIELDS: dict[str, type[Enum]] = {
    "compression_level": CompressionLevel,
    "output_format": OutputFormat,
    "memory_profile": MemoryProfile,
}


@dataclass(frozen=True)
class ConversionConfig:
    """Options for one conversion run.

    Attributes:
        image_quality: JPEG quality for page images (0-100)
        image_max_width: Page images wider than this are downscaled
        compression_level: Clamp applied to image_quality
        grayscale: Convert page images to grayscale
        preserve_annotations: Add an annotation layer to every page
        include_metadata: Embed the page text as an invisible text layer
        enable_ocr: Allow OCR when the document looks scanned
        ocr_languages: Language codes for the OCR backend
        auto_detect_scanned: Run OCR automatically for scanned documents
        output_format: Final container format
        optimize_for_sync: Shrink the output toward sync_target_size
        sync_target_size: "no-limit", "auto" or a size in MB ("10", "25", "50")
        memory_profile: Rasterizer scheduling profile
        optimize_for_device: Fixed-layout hints and output size check
        max_file_size_mb: Output size above which a warning is recorded
    """

    image_quality: int = DEFAULT_IMAGE_QUALITY
    image_max_width: int = DEFAULT_IMAGE_MAX_WIDTH
    compression_level: CompressionLevel = CompressionLevel.BALANCED
    grayscale: bool = False
    preserve_annotations: bool = True
    include_metadata: bool = True
    enable_ocr: bool = False
    ocr_languages: tuple[str, ...] = field(default_factory=lambda: ("eng",))
    auto_detect_scanned: bool = True
    output_format: OutputFormat = OutputFormat.EPUB
    optimize_for_sync: bool = False
    sync_target_size: str = "auto"
    memory_profile: MemoryProfile = MemoryProfile.BALANCED
    optimize_for_device: bool = True
    max_file_size_mb: int = DEFAULT_MAX_FILE_SIZE_MB

    @classmethod
    def from_dict(cls, options: dict[str, Any] | None) -> "ConversionConfig":
        """Build a config from caller options merged over the defaults.

        Enumerations may be given as their string values. Unknown keys are
        ignored. The returned config is validated.

        Raises:
            ConfigError: If a value cannot be parsed or is out of range.
        """
        known = {f.name for f in dataclasses.fields(cls)}
        values: dict[str, Any] = {}

        for key, value in (options or {}).items():
            if key not in known:
                logger.debug(f"Ignoring unknown conversion option: {key}")
                continue
            if value is None:
                continue
            if key in _ENUM_FIELDS:
                value = _parse_enum(key, _ENUM_FIELDS[key], value)
            elif key == "ocr_languages":
                value = _parse_languages(value)
            elif key == "sync_target_size":
                value = str(value)
            values[key] = value

        config = cls(**values)
        config.validate()
        return config

    def validate(self) -> None:
        """Check ranges and enumerations.

        Raises:
            ConfigError: On the first invalid setting.
        """
        for name, enum_type in _ENUM_FIELDS.items():
            if not isinstance(getattr(self, name), enum_type):
                raise ConfigError(name, f"expected one of {_choices(enum_type)}")

        if not _is_int(self.image_quality) or not 0 <= self.image_quality <= 100:
            raise ConfigError("image_quality", "must be an integer between 0 and 100")
        if not _is_int(self.image_max_width) or self.image_max_width <= 0:
            raise ConfigError("image_max_width", "must be a positive integer")
        if not _is_int(self.max_file_size_mb) or self.max_file_size_mb <= 0:
            raise ConfigError("max_file_size_mb", "must be a positive integer")
        if self.sync_target_size not in SYNC_TARGET_CHOICES:
            raise ConfigError(
                "sync_target_size", f"expected one of {', '.join(SYNC_TARGET_CHOICES)}"
            )
        if not self.ocr_languages or not all(
            isinstance(lang, str) and lang for lang in self.ocr_languages
        ):
            raise ConfigError("ocr_languages", "at least one language code is required")

    def to_dict(self) -> dict[str, Any]:
        """Serialize to plain JSON-compatible values."""
        result: dict[str, Any] = {}
        for f in dataclasses.fields(self):
            value = getattr(self, f.name)
            if isinstance(value, Enum):
                value = value.value
            elif isinstance(value, tuple):
                value = list(value)
            result[f.name] = value
        return result


@dataclass(frozen=True)
class ResolvedConfig:
    """Concrete settings for one run, computed once before rasterization.

    Attributes:
        config: Options after the sync-target adjustments
        chunk_size: Pages per sequential rasterization chunk
        concurrency: Pages rendered in parallel within a chunk
        effective_quality: JPEG quality after the compression-level clamp
        sync_policy: Reduction step that was applied for the sync target
        target_size_mb: Sync target in MB, None when there is no target
    """

    config: ConversionConfig
    chunk_size: int
    concurrency: int
    effective_quality: int
    sync_policy: SyncPolicy = SyncPolicy.NONE
    target_size_mb: float | None = None


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _choices(enum_type: type[Enum]) -> str:
    return ", ".join(str(member.value) for member in enum_type)


def _parse_enum(name: str, enum_type: type[Enum], value: Any) -> Enum:
    if isinstance(value, enum_type):
        return value
    try:
        return enum_type(str(value).lower())
    except ValueError:
        raise ConfigError(
            name, f"unsupported value '{value}', expected one of {_choices(enum_type)}"
        ) from None


def _parse_languages(value: Any) -> tuple[str, ...]:
    if isinstance(value, str):
        return tuple(part for part in value.replace(",", "+").split("+") if part)
    return tuple(value)


def effective_quality(quality: int, level: CompressionLevel) -> int:
    """Apply the compression-level clamp to a JPEG quality."""
    if level == CompressionLevel.MAXIMUM:
        return min(quality, MAXIMUM_COMPRESSION_QUALITY_CAP)
    if level == CompressionLevel.MINIMUM:
        return max(quality, MINIMUM_COMPRESSION_QUALITY_FLOOR)
    return quality


def sync_target_mb(target: str, input_size_bytes: int) -> float | None:
    """Return the sync target in MB, or None for "no-limit"."""
    if target == "no-limit":
        return None
    if target == "auto":
        input_mb = input_size_bytes / BYTES_PER_MB
        return min(input_mb * AUTO_TARGET_INPUT_FRACTION, AUTO_TARGET_CAP_MB)
    return float(target)


def _apply_sync_policy(
    config: ConversionConfig, input_size_bytes: int
) -> tuple[ConversionConfig, SyncPolicy, float | None]:
    """Adjust quality, width and compression for a sync target."""
    quality = config.image_quality
    width = config.image_max_width

    # Base reduction whenever sync optimization is on
    if quality > SYNC_QUALITY_THRESHOLD:
        quality = max(SYNC_QUALITY_FLOOR, quality - SYNC_QUALITY_STEP)
    if width > SYNC_WIDTH_THRESHOLD:
        width = max(SYNC_WIDTH_FLOOR, width - SYNC_WIDTH_STEP)

    adjusted = dataclasses.replace(
        config,
        image_quality=quality,
        image_max_width=width,
        compression_level=CompressionLevel.MAXIMUM,
        grayscale=True,
    )

    target_mb = sync_target_mb(config.sync_target_size, input_size_bytes)
    if target_mb is None:
        return adjusted, SyncPolicy.NONE, None

    input_mb = input_size_bytes / BYTES_PER_MB
    if input_mb <= target_mb:
        logger.info(f"Input ({input_mb:.1f} MB) already within sync target ({target_mb:.1f} MB)")
        return adjusted, SyncPolicy.NONE, target_mb

    ratio = target_mb / input_mb
    if ratio < VERY_AGGRESSIVE_RATIO:
        adjusted = dataclasses.replace(
            adjusted,
            image_quality=max(
                VERY_AGGRESSIVE_QUALITY_FLOOR, quality - VERY_AGGRESSIVE_QUALITY_STEP
            ),
            image_max_width=max(VERY_AGGRESSIVE_WIDTH_FLOOR, width - VERY_AGGRESSIVE_WIDTH_STEP),
        )
        policy = SyncPolicy.VERY_AGGRESSIVE
    elif ratio < MODERATE_RATIO:
        adjusted = dataclasses.replace(
            adjusted,
            image_quality=max(SYNC_QUALITY_FLOOR, quality - SYNC_QUALITY_STEP),
            image_max_width=max(SYNC_WIDTH_FLOOR, width - SYNC_WIDTH_STEP),
        )
        policy = SyncPolicy.MODERATE
    else:
        policy = SyncPolicy.NONE

    logger.info(
        f"Sync target {target_mb:.1f} MB for {input_mb:.1f} MB input (ratio {ratio:.2f}): "
        f"{policy.value}, quality={adjusted.image_quality}, width={adjusted.image_max_width}"
    )
    return adjusted, policy, target_mb


def resolve_config(
    config: ConversionConfig,
    input_size_bytes: int,
    cpu_count: int | None = None,
) -> ResolvedConfig:
    """Resolve caller options into the settings used by the pipeline.

    Args:
        config: Validated caller options.
        input_size_bytes: Size of the source PDF.
        cpu_count: Logical CPUs; detected when omitted.

    Returns:
        ResolvedConfig with the sync policy and worker plan applied.
    """
    config.validate()

    policy = SyncPolicy.NONE
    target_mb: float | None = None
    if config.optimize_for_sync:
        config, policy, target_mb = _apply_sync_policy(config, input_size_bytes)

    cpus = cpu_count if cpu_count is not None else (os.cpu_count() or 1)
    if config.memory_profile == MemoryProfile.AUTO:
        tier = detect_resources().tier
    else:
        tier = _PROFILE_TIERS[config.memory_profile]
    plan = compute_worker_plan(tier, cpus)

    resolved = ResolvedConfig(
        config=config,
        chunk_size=plan.chunk_size,
        concurrency=plan.max_workers,
        effective_quality=effective_quality(config.image_quality, config.compression_level),
        sync_policy=policy,
        target_size_mb=target_mb,
    )

    logger.info(
        f"Resolved config: quality={resolved.effective_quality}, "
        f"width={config.image_max_width}, grayscale={config.grayscale}, "
        f"workers={resolved.concurrency}, chunk={resolved.chunk_size}"
    )
    return resolved
