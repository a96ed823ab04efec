"""
Error taxonomy for the ingestion pipeline.

Every failure the pipeline can surface to a job derives from PipelineError,
so the orchestrator can turn it into a human-readable error message. The
class tells callers how to react:

- InvalidInput and its subclasses are user-facing and never retried
- PayloadTooLarge / DocumentTooLarge are rejected before any work starts
- TransientProviderError is raised only once retries are exhausted
- AuthError is a configuration failure and is never retried
- EmptyExtraction / EmptyLLMResponse trigger a fallback or fail the job
"""


class PipelineError(RuntimeError):
    """Base class for all pipeline failures."""


class InvalidInput(PipelineError):
    """Bad format, missing stream or otherwise unusable upload."""


class NoAudioTrack(InvalidInput):
    """A video container has no audio stream to transcribe."""


class UnsupportedFormat(InvalidInput):
    """The upload's format is known but explicitly not supported."""


class PayloadTooLarge(PipelineError):
    """Payload exceeds a hard size ceiling."""


class DocumentTooLarge(PayloadTooLarge):
    """Document exceeds the processing size ceiling."""


class TranscodeFailed(PipelineError):
    """ffmpeg/ffprobe invocation failed or timed out."""


class WorkspaceError(PipelineError):
    """The per-job temporary workspace could not be created or written."""


class TransientProviderError(PipelineError):
    """An external provider kept failing after all retry attempts."""


class AuthError(PipelineError):
    """Invalid or missing provider credentials."""


class EmptyExtraction(PipelineError):
    """No text could be extracted from a document."""


class EmptyLLMResponse(PipelineError):
    """The language model returned no content."""


class JobCanceled(PipelineError):
    """The job was canceled by an external signal."""


class InvalidTransition(PipelineError):
    """A job status change that the state machine does not allow."""
