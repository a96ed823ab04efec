"""
Chunked transcription.

AudioTranscriber sends the chunks of one recording to a TranscriptionProvider
with bounded parallelism, then merges the per-chunk results back into a
single TranscriptionResult in chunk order.
"""

import logging
from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
from pathlib import Path
from typing import Callable, Dict, List, Optional

from ..cancellation import CancellationToken
from ..errors import WorkspaceError
from ..models import AudioChunk, TranscriptionResult
from .providers import TranscriptionProvider, prompt_for_language
from .utils import format_timestamp, offset_segments

logger = logging.getLogger(__name__)

ChunkProgressCallback = Callable[[int, int], None]


class AudioTranscriber:
    """Transcribe a list of audio chunks and reassemble the transcript."""

    def __init__(self, provider: TranscriptionProvider, concurrency: int = 3):
        """
        Args:
            provider: Backend used for every chunk
            concurrency: Maximum number of chunks in flight at once
        """
        self.provider = provider
        self.concurrency = max(1, concurrency)

    def transcribe_chunks(
        self,
        chunks: List[AudioChunk],
        language: Optional[str] = None,
        on_progress: Optional[ChunkProgressCallback] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> TranscriptionResult:
        """
        Transcribe all chunks and merge them.

        Args:
            chunks: Chunks in any order; the index defines reassembly order
            language: Optional language hint passed to every chunk
            on_progress: Called with (completed, total) after each chunk finishes
            cancel_token: Stops new provider calls once canceled

        Returns:
            Merged TranscriptionResult; segment times are on the source timeline

        Raises:
            JobCanceled: If the token is canceled
            PipelineError: The first chunk failure (after that chunk's retries); chunks
                still in flight stop at their next retry checkpoint
        """
        if not chunks:
            return TranscriptionResult(text="", duration=0.0, provider=self.provider.name, model=self.provider.model)

        ordered = sorted(chunks, key=lambda c: c.index)
        total = len(ordered)
        prompt = prompt_for_language(language)
        results: Dict[int, TranscriptionResult] = {}

        logger.info(f"Transcribing {total} chunk(s) with {self.provider.name}/{self.provider.model}")
        # Canceled with the job, or by the first failing chunk
        chunk_token = cancel_token.child() if cancel_token is not None else CancellationToken()

        with ThreadPoolExecutor(max_workers=min(self.concurrency, total)) as executor:
            futures: Dict[Future, AudioChunk] = {
                executor.submit(self._transcribe_one, chunk, language, prompt, chunk_token): chunk
                for chunk in ordered
            }
            pending = set(futures)
            try:
                while pending:
                    done, pending = wait(pending, return_when=FIRST_EXCEPTION)
                    for future in done:
                        chunk = futures[future]
                        # Re-raises the chunk's error
                        results[chunk.index] = future.result()
                        if on_progress:
                            on_progress(len(results), total)
            except BaseException:
                chunk_token.cancel()
                for future in pending:
                    future.cancel()
                raise

        return self._merge(ordered, results)

    def _transcribe_one(
        self,
        chunk: AudioChunk,
        language: Optional[str],
        prompt: Optional[str],
        cancel_token: Optional[CancellationToken],
    ) -> TranscriptionResult:
        if cancel_token is not None:
            cancel_token.raise_if_canceled()

        path = Path(chunk.file_path)
        try:
            audio_bytes = path.read_bytes()
        except OSError as e:
            raise WorkspaceError(f"Could not read audio chunk {path.name}: {e}") from e

        logger.info(
            f"Transcribing chunk {chunk.index + 1} "
            f"({format_timestamp(chunk.start_time)}-{format_timestamp(chunk.end_time)})"
        )
        return self.provider.transcribe(
            audio_bytes,
            path.name,
            language=language,
            prompt=prompt,
            cancel_token=cancel_token,
        )

    def _merge(self, ordered: List[AudioChunk], results: Dict[int, TranscriptionResult]) -> TranscriptionResult:
        texts = []
        segments = []
        language = None
        for chunk in ordered:
            result = results[chunk.index]
            if result.text:
                texts.append(result.text)
            segments.extend(offset_segments(result.segments, chunk.start_time))
            language = language or result.language

        # Chunk boundaries cover the whole source
        duration = ordered[-1].end_time
        if duration <= 0 and segments:
            duration = segments[-1].end

        return TranscriptionResult(
            text="\n\n".join(texts),
            duration=duration,
            provider=self.provider.name,
            model=self.provider.model,
            segments=segments,
            language=language,
        )
