from abc import ABC, abstractmethod

from recipe_importer.app.services.url_parsing.models import ExtractionResult, FetchedDocument


class DocumentExtractor(ABC):
    """Extracts a recipe from an already fetched page."""

    name: str = "document"

    @abstractmethod
    async def extract(self, document: FetchedDocument, source_url: str) -> ExtractionResult:  # pragma: no cover - interface
        raise NotImplementedError


class PlatformExtractor(ABC):
    """Extracts a recipe for URL shapes that need a dedicated provider instead of a page fetch."""

    name: str = "platform"

    @abstractmethod
    def supports_url(self, url: str) -> bool:  # pragma: no cover - interface
        raise NotImplementedError

    @abstractmethod
    async def extract(self, url: str) -> ExtractionResult:  # pragma: no cover - interface
        raise NotImplementedError
