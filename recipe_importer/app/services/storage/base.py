from abc import ABC, abstractmethod


class StorageProvider(ABC):
    @abstractmethod
    def save_bytes(self, data: bytes, content_type: str) -> str:  # pragma: no cover - interface
        raise NotImplementedError

    @abstractmethod
    def read_bytes(self, url: str) -> bytes:  # pragma: no cover - interface
        raise NotImplementedError

    @abstractmethod
    def delete_image(self, url: str) -> None:  # pragma: no cover - interface
        raise NotImplementedError
