"""Provider registry: maps a provider slug to its ``BaseProvider`` class.

Every module under ``authgate.providers`` is imported once and the concrete
provider classes it defines are registered under ``metadata.name``. Plugins
living elsewhere call ``register`` themselves.
"""

import importlib
import inspect
import pkgutil
from typing import TYPE_CHECKING

from authgate.core.logging import get_logger

if TYPE_CHECKING:
    from authgate.providers.base import BaseProvider

logger = get_logger(__name__)


class ProviderRegistry:
    def __init__(self) -> None:
        self._providers: dict[str, type["BaseProvider"]] = {}

    def discover(self, package: str = "authgate.providers") -> None:
        from authgate.providers.base import BaseProvider  # avoid circular import

        pkg = importlib.import_module(package)
        for module_info in pkgutil.iter_modules(pkg.__path__, prefix=f"{package}."):
            if module_info.name.endswith(".base"):
                continue
            try:
                mod = importlib.import_module(module_info.name)
            except Exception as exc:
                logger.warning("Failed to import provider module", name=module_info.name, error=str(exc))
                continue

            # Only classes defined here, not ones the module imported
            for _, obj in inspect.getmembers(mod, inspect.isclass):
                if (
                    obj.__module__ == mod.__name__
                    and issubclass(obj, BaseProvider)
                    and not inspect.isabstract(obj)
                ):
                    self.register(obj)

        logger.info("Provider discovery complete", providers=sorted(self._providers))

    def register(self, provider_cls: type["BaseProvider"]) -> None:
        """Add *provider_cls*; a different class already holding its slug wins."""
        slug = provider_cls.metadata.name
        current = self._providers.get(slug)
        if current is not None and current is not provider_cls:
            logger.warning(
                "Provider slug already taken, skipping",
                name=slug,
                existing=current.__name__,
                new=provider_cls.__name__,
            )
            return
        self._providers[slug] = provider_cls

    def get(self, name: str) -> type["BaseProvider"] | None:
        return self._providers.get(name)

    def all(self) -> dict[str, type["BaseProvider"]]:
        return dict(self._providers)


_registry: ProviderRegistry | None = None


def get_registry() -> ProviderRegistry:
    """Process-wide registry, discovered on first use."""
    global _registry
    if _registry is None:
        _registry = ProviderRegistry()
        _registry.discover()
    return _registry
