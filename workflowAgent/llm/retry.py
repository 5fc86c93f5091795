"""Fallback wrapper over one or more named language models."""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Dict, List, Optional

from langchain_core.messages import AIMessage

from workflowAgent.llm.types import ErrorChunk, LanguageModel, LLMRequest, StreamChunk
from workflowAgent.utils.error_handler import ModelInvocationError, TaskAbortedError

LOGGER = logging.getLogger(__name__)


class RetryLanguageModel:
    """Expose several endpoints as a single call-or-stream capability.

    Endpoints are tried in order; the first that answers wins. For streams an
    endpoint counts as answering once its first chunk arrives, so a failure
    before any output falls through to the next endpoint. Failures after the
    first chunk belong to the caller, which owns the backoff policy.
    """

    def __init__(
        self,
        llms: Dict[str, LanguageModel],
        names: Optional[List[str]] = None,
        stream_first_timeout: Optional[float] = 60.0,
    ):
        self.llms = llms
        self.names = [name for name in (names or list(llms.keys())) if name in llms]
        if "default" in llms and "default" not in self.names:
            self.names.append("default")
        if not self.names:
            raise ModelInvocationError("No language model configured")
        self.stream_first_timeout = stream_first_timeout

    async def call(self, request: LLMRequest) -> AIMessage:
        last_error: Optional[BaseException] = None
        for name in self.names:
            if request.cancel_token is not None:
                request.cancel_token.raise_if_cancelled()
            llm = self.llms[name]
            try:
                if request.cancel_token is not None:
                    return await request.cancel_token.guard(llm.call(request))
                return await llm.call(request)
            except TaskAbortedError:
                raise
            except Exception as e:
                LOGGER.warning(f"Model '{name}' call failed: {e}")
                last_error = e
        raise ModelInvocationError(f"All models failed: {last_error}") from last_error

    async def call_stream(self, request: LLMRequest) -> AsyncIterator[StreamChunk]:
        """Open a stream on the first endpoint that produces a chunk.

        Returns an async iterator that replays that first chunk followed by
        the rest of the endpoint's stream.
        """
        last_error: Optional[BaseException] = None
        for name in self.names:
            if request.cancel_token is not None:
                request.cancel_token.raise_if_cancelled()
            stream = self.llms[name].stream(request).__aiter__()
            try:
                first_read = asyncio.wait_for(stream.__anext__(), self.stream_first_timeout)
                if request.cancel_token is not None:
                    first = await request.cancel_token.guard(first_read)
                else:
                    first = await first_read
            except TaskAbortedError:
                await _close(stream)
                raise
            except StopAsyncIteration:
                last_error = ModelInvocationError(f"Model '{name}' returned an empty stream")
                LOGGER.warning(str(last_error))
                continue
            except Exception as e:
                LOGGER.warning(f"Model '{name}' stream failed: {e}")
                last_error = e
                await _close(stream)
                continue

            if isinstance(first, ErrorChunk):
                LOGGER.warning(f"Model '{name}' stream returned error: {first.error}")
                last_error = ModelInvocationError(str(first.error))
                await _close(stream)
                continue

            LOGGER.debug(f"Streaming from model '{name}'")
            return _replay(first, stream)
        raise ModelInvocationError(f"All models failed: {last_error}") from last_error


async def _replay(first: StreamChunk, stream: AsyncIterator[StreamChunk]) -> AsyncIterator[StreamChunk]:
    try:
        yield first
        async for chunk in stream:
            yield chunk
    finally:
        await _close(stream)


async def _close(stream: AsyncIterator[StreamChunk]) -> None:
    aclose = getattr(stream, "aclose", None)
    if aclose is not None:
        try:
            await aclose()
        except Exception as e:
            LOGGER.debug(f"Error closing model stream: {e}")
