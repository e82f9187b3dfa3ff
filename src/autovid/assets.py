"""Asset loading for a composition run.

Scene images load in parallel (each is independent). A scene whose
image is missing or undecodable gets a numbered placeholder; that
failure is logged and never aborts the batch. Every background comes
back already cover-scaled to the output size so the per-frame path only
copies pixels.

The narration audio is probed with moviepy for its duration. Probing
runs under a timeout; a decode error or a timeout is fatal.
"""

import io
import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from PIL import Image
from moviepy import AudioFileClip

from .compositor import fit_cover, make_placeholder
from .errors import AssetLoadFailure, AssetLoadTimeout, AudioDecodeError
from .models import Scene

LOGGER = logging.getLogger(__name__)

DEFAULT_LOAD_TIMEOUT = 60.0
DEFAULT_LOAD_WORKERS = 4


@dataclass(frozen=True)
class SceneAsset:
    scene: Scene
    background: Image.Image
    placeholder: bool = False


@dataclass(frozen=True)
class AudioAsset:
    path: Path
    duration: float


# ── Images ───────────────────────────────────────────────────────


def load_scene_image(source) -> Image.Image:
    """Decode a scene image from a Pillow image, path, or encoded bytes.

    Raises:
        AssetLoadFailure: No image given, or it cannot be read/decoded.
    """
    if source is None:
        raise AssetLoadFailure("scene has no image")
    try:
        if isinstance(source, Image.Image):
            image = source.copy()
        elif isinstance(source, (bytes, bytearray)):
            image = Image.open(io.BytesIO(source))
        else:
            image = Image.open(Path(source))
        image.load()
    except (OSError, ValueError, Image.DecompressionBombError) as exc:
        raise AssetLoadFailure(f"cannot load image: {exc}") from exc
    if image.width == 0 or image.height == 0:
        raise AssetLoadFailure("image has zero size")
    return image


def resolve_scene_asset(scene: Scene, size: tuple[int, int]) -> SceneAsset:
    """Load and cover-fit one scene image, substituting a placeholder on failure."""
    try:
        image = load_scene_image(scene.image)
    except AssetLoadFailure as exc:
        if scene.image is not None:
            LOGGER.warning("Scene %d: %s; using placeholder", scene.ordinal, exc)
        return SceneAsset(scene, make_placeholder(scene.ordinal, size), placeholder=True)
    return SceneAsset(scene, fit_cover(image, size))


def load_scene_assets(
    scenes: list[Scene],
    size: tuple[int, int],
    max_workers: int = DEFAULT_LOAD_WORKERS,
    timeout: float | None = DEFAULT_LOAD_TIMEOUT,
    on_loaded: Callable[[int, int], None] | None = None,
) -> list[SceneAsset]:
    """Resolve every scene image in parallel, preserving scene order.

    Args:
        scenes: Scenes in timeline order.
        size: Output (width, height).
        max_workers: Thread pool size.
        timeout: Seconds to wait for the whole batch; None waits forever.
        on_loaded: Called as on_loaded(done, total) after each scene.

    Raises:
        AssetLoadTimeout: The batch did not finish within timeout.
    """
    if not scenes:
        return []

    pool = ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(scenes))))
    try:
        futures = [pool.submit(resolve_scene_asset, scene, size) for scene in scenes]
        for done_count, _ in enumerate(as_completed(futures, timeout=timeout), start=1):
            if on_loaded is not None:
                on_loaded(done_count, len(scenes))
        return [future.result() for future in futures]
    except TimeoutError as exc:
        raise AssetLoadTimeout(
            f"scene images not loaded within {timeout:.0f}s"
        ) from exc
    finally:
        pool.shutdown(wait=False, cancel_futures=True)


# ── Audio ────────────────────────────────────────────────────────


def probe_audio(path: str | Path) -> AudioAsset:
    """Decode audio metadata with moviepy.

    Raises:
        AudioDecodeError: Missing file, undecodable stream, or zero duration.
    """
    path = Path(path)
    if not path.exists():
        raise AudioDecodeError(f"audio file not found: {path}")
    try:
        with AudioFileClip(str(path)) as clip:
            duration = clip.duration
    except Exception as exc:
        raise AudioDecodeError(f"cannot decode audio {path}: {exc}") from exc
    if not duration or duration <= 0:
        raise AudioDecodeError(f"audio has no duration: {path}")
    return AudioAsset(path, float(duration))


def prepare_audio(
    path: str | Path, timeout: float | None = DEFAULT_LOAD_TIMEOUT,
) -> AudioAsset:
    """probe_audio() bounded by a timeout.

    Raises:
        AssetLoadTimeout: Metadata not available within timeout.
        AudioDecodeError: See probe_audio.
    """
    pool = ThreadPoolExecutor(max_workers=1)
    try:
        return pool.submit(probe_audio, path).result(timeout=timeout)
    except TimeoutError as exc:
        raise AssetLoadTimeout(
            f"audio metadata not available within {timeout:.0f}s"
        ) from exc
    finally:
        pool.shutdown(wait=False, cancel_futures=True)
