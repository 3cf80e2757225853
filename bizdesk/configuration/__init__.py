from bizdesk.configuration.defaults import MODULE_DEFINITIONS, ModuleDefinition
from bizdesk.configuration.registry import ModuleRegistry
from bizdesk.configuration.service import ModuleConfigStore

__all__ = ["MODULE_DEFINITIONS", "ModuleConfigStore", "ModuleDefinition", "ModuleRegistry"]
