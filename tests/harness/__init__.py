"""In-process test harness for chatz-core.

Re-exports all public API for convenient imports:
    from tests.harness import make_sse_stream, FakeProvider, ...
"""

from tests.harness.builders import (
    DONE_FRAME,
    ClosableStream,
    FakeHTTPResponse,
    FakeProvider,
    anthropic_frame,
    make_sse_stream,
    openai_frame,
    split_bytes,
)

__all__ = [
    "DONE_FRAME",
    "ClosableStream",
    "FakeHTTPResponse",
    "FakeProvider",
    "anthropic_frame",
    "make_sse_stream",
    "openai_frame",
    "split_bytes",
]
