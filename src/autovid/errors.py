"""Error taxonomy for the composition pipeline.

Every error carries a stable code so callers (and the CLI) can report
failures without parsing messages. Per-scene image failures are the only
recoverable kind: the driver substitutes a placeholder and logs them.
Everything else aborts the run and moves it to the Failed state.
"""


class CompositionError(RuntimeError):
    """Runtime error with a stable error code."""

    code = "autovid.composition.error"

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        if code is not None:
            self.code = code


class EmptyTimeline(CompositionError):
    code = "autovid.timeline.empty"


class AssetLoadFailure(CompositionError):
    """A single scene image could not be loaded. Always recovered."""

    code = "autovid.assets.image_load_failed"


class AssetLoadTimeout(CompositionError):
    code = "autovid.assets.timeout"


class AudioDecodeError(CompositionError):
    code = "autovid.assets.audio_decode_failed"


class EncoderInitFailure(CompositionError):
    code = "autovid.encoder.init_failed"


class EncoderFailure(CompositionError):
    code = "autovid.encoder.process_failed"


class NoFramesCaptured(CompositionError):
    code = "autovid.encoder.no_frames"


class CompositionCancelled(CompositionError):
    code = "autovid.composition.cancelled"
