from __future__ import annotations

import pytest

from docstore import DocumentRepository, InMemoryBackend, JsonDocumentCodec, RecordingDiagnostics
from sample_model import SampleModel


@pytest.fixture
def backend() -> InMemoryBackend:
    return InMemoryBackend()


@pytest.fixture
def diagnostics() -> RecordingDiagnostics:
    return RecordingDiagnostics()


@pytest.fixture
def codec() -> JsonDocumentCodec[SampleModel]:
    return JsonDocumentCodec(SampleModel)


@pytest.fixture
def repo(backend, codec, diagnostics) -> DocumentRepository[SampleModel]:
    return DocumentRepository(backend, codec, diagnostics=diagnostics)
