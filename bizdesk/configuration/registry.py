from __future__ import annotations

from collections.abc import Mapping

from bizdesk.configuration.defaults import MODULE_DEFINITIONS, ModuleDefinition
from bizdesk.configuration.service import ModuleConfigStore
from bizdesk.core.auth import IdentityProvider, anonymous_identity
from bizdesk.errors import UnknownModuleError
from bizdesk.storage.documents import DocumentStore


class ModuleRegistry:
    """Lazily builds one configuration store per known module."""

    def __init__(
        self,
        documents: DocumentStore,
        definitions: Mapping[str, ModuleDefinition] | None = None,
        identity: IdentityProvider = anonymous_identity,
    ) -> None:
        self.documents = documents
        self._definitions = dict(definitions if definitions is not None else MODULE_DEFINITIONS)
        self._identity = identity
        self._stores: dict[str, ModuleConfigStore] = {}

    @property
    def modules(self) -> list[str]:
        return sorted(self._definitions)

    def definition(self, module: str) -> ModuleDefinition:
        definition = self._definitions.get(module)
        if definition is None:
            raise UnknownModuleError(module)
        return definition

    def store(self, module: str) -> ModuleConfigStore:
        store = self._stores.get(module)
        if store is None:
            definition = self.definition(module)
            store = ModuleConfigStore(
                module=definition.module,
                documents=self.documents,
                default_fields=definition.default_fields,
                default_grid_config=definition.default_grid_config,
                identity=self._identity,
            )
            self._stores[module] = store
        return store

    async def initialized_store(self, module: str) -> ModuleConfigStore:
        store = self.store(module)
        await store.initialize()
        return store
